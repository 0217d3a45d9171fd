"""Tests for the MCP tool server."""

from __future__ import annotations

from aetherlock.bootstrap import Container
from aetherlock.domain.exceptions import EscrowNotFoundError
from aetherlock.mcp_server.tools import _run_tool, build_mcp_server


class TestRunTool:
    async def test_success_passthrough(self) -> None:
        async def call() -> dict:
            return {"ok": True}

        assert await _run_tool("demo", call) == {"ok": True}

    async def test_domain_error_payload(self) -> None:
        async def call() -> dict:
            raise EscrowNotFoundError("abc")

        result = await _run_tool("demo", call)
        assert result["error"] == "ESCROW_NOT_FOUND"
        assert "abc" in result["message"]

    async def test_unexpected_error_payload(self) -> None:
        async def call() -> dict:
            raise RuntimeError("boom")

        assert await _run_tool("demo", call) == {"error": "INTERNAL_ERROR", "message": "boom"}


class TestServer:
    async def test_tools_registered(self, container: Container) -> None:
        mcp = build_mcp_server(container)

        tools = {tool.name for tool in await mcp.list_tools()}

        assert tools == {
            "create_escrow",
            "accept_escrow",
            "submit_work",
            "check_status",
            "release_funds",
            "raise_dispute",
        }
