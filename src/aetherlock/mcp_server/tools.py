"""MCP Tool definitions for AetherLock.

These tools expose the escrow lifecycle via the Model Context Protocol,
allowing AI agents to discover and call them programmatically.

Tools:
    - create_escrow: Create a new escrow (caller is the client)
    - accept_escrow: Freelancer accepts an escrow
    - submit_work: Submit work + trigger verification
    - check_status: Check the current status of an escrow
    - release_funds: Client releases funds to the freelancer
    - raise_dispute: Either party disputes the verification outcome

The MCP server is mounted into FastAPI at /mcp via app.mount(). Every
mutating tool takes the caller's wallet token (`signature:message:publicKey`)
and runs through the same AuthGate as the REST API.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from mcp.server.fastmcp import FastMCP

from aetherlock.bootstrap import Container
from aetherlock.domain.exceptions import AetherLockError
from aetherlock.logging_config import get_logger
from aetherlock.orchestration.review_workflow import run_review_workflow

logger = get_logger(__name__)


async def _run_tool(name: str, call: Callable[[], Awaitable[dict[str, Any]]]) -> dict[str, Any]:
    """Run a tool body, turning failures into an error payload for the agent."""
    try:
        return await call()
    except AetherLockError as exc:
        logger.info(f"mcp.{name}.rejected", code=exc.code, error=exc.message)
        return {"error": exc.code, "message": exc.message}
    except Exception as exc:
        logger.exception(f"mcp.{name}.error")
        return {"error": "INTERNAL_ERROR", "message": str(exc)}


def build_mcp_server(container: Container) -> FastMCP:
    """Create the MCP server bound to the container's lifecycle manager."""
    mcp = FastMCP("AetherLock", json_response=True)
    manager = container.manager
    auth = container.auth_gate

    @mcp.tool()
    async def create_escrow(
        auth_token: str,
        amount: str,
        title: str,
        description: str = "",
        freelancer_address: str = "",
        currency: str = "SOL",
    ) -> dict:
        """Create a new escrow for hiring a freelancer.

        Args:
            auth_token: Your wallet token (signature:message:publicKey).
            amount: Amount to escrow, as a decimal string.
            title: Short title of the job.
            description: What the freelancer must deliver.
            freelancer_address: Designated freelancer wallet (optional).
            currency: Currency code of the amount.

        Returns:
            Escrow details including the escrow_id you'll need for future calls.
        """
        async def call() -> dict[str, Any]:
            wallet = await auth.authenticate(auth_token)
            escrow = await manager.create_escrow(
                client_address=wallet,
                amount=amount,
                title=title,
                description=description,
                freelancer_address=freelancer_address or None,
                currency=currency,
            )
            return {
                **escrow.to_dict(),
                "message": "Escrow created. Next step: the freelancer accepts it.",
            }

        return await _run_tool("create_escrow", call)

    @mcp.tool()
    async def accept_escrow(auth_token: str, escrow_id: str) -> dict:
        """Accept an escrow as the freelancer.

        Args:
            auth_token: Your wallet token (signature:message:publicKey).
            escrow_id: Id of the escrow.

        Returns:
            Updated escrow details with ACTIVE status.
        """
        async def call() -> dict[str, Any]:
            wallet = await auth.authenticate(auth_token)
            escrow = await manager.accept(escrow_id, wallet)
            return {
                **escrow.to_dict(),
                "message": "Escrow accepted. Submit your work when ready.",
            }

        return await _run_tool("accept_escrow", call)

    @mcp.tool()
    async def submit_work(
        auth_token: str,
        escrow_id: str,
        description: str,
        evidence_hashes: list[str],
    ) -> dict:
        """Submit work against an escrow and trigger AI verification.

        Args:
            auth_token: Your wallet token (signature:message:publicKey).
            escrow_id: Id of the escrow.
            description: What was delivered.
            evidence_hashes: Content handles of the uploaded deliverables.

        Returns:
            Verification outcome and the escrow's final status.
        """
        async def call() -> dict[str, Any]:
            wallet = await auth.authenticate(auth_token)
            state = await run_review_workflow(
                manager,
                escrow_id=escrow_id,
                wallet=wallet,
                description=description,
                evidence_handles=evidence_hashes,
                auto_verify=container.settings.auto_verify_on_submit,
            )
            if state.get("verification_passed"):
                message = "Work verified. The client can now release funds."
            else:
                message = f"Work not verified yet. Status: {state.get('final_status')}"
            return {**state, "message": message}

        return await _run_tool("submit_work", call)

    @mcp.tool()
    async def check_status(escrow_id: str) -> dict:
        """Check the current status of an escrow.

        Args:
            escrow_id: Id of the escrow.

        Returns:
            Current status, verification attempts, and allowed next triggers.
        """
        return await _run_tool("check_status", lambda: manager.get_status(escrow_id))

    @mcp.tool()
    async def release_funds(auth_token: str, escrow_id: str) -> dict:
        """Release escrowed funds to the freelancer (client only).

        Args:
            auth_token: Your wallet token (signature:message:publicKey).
            escrow_id: Id of the escrow.

        Returns:
            Completed escrow including the settlement transaction hash.
        """
        async def call() -> dict[str, Any]:
            wallet = await auth.authenticate(auth_token)
            escrow = await manager.release(escrow_id, wallet)
            return {**escrow.to_dict(), "message": "Funds released to the freelancer."}

        return await _run_tool("release_funds", call)

    @mcp.tool()
    async def raise_dispute(auth_token: str, escrow_id: str, reason: str) -> dict:
        """Dispute an escrow's verification outcome.

        Args:
            auth_token: Your wallet token (signature:message:publicKey).
            escrow_id: Id of the escrow.
            reason: Detailed explanation of why you're disputing.

        Returns:
            Updated escrow status and dispute details.
        """
        async def call() -> dict[str, Any]:
            wallet = await auth.authenticate(auth_token)
            escrow = await manager.open_dispute(escrow_id, wallet, reason=reason)
            return {
                **escrow.to_dict(),
                "message": f"Dispute raised. Escrow is now {escrow.status.value}.",
            }

        return await _run_tool("raise_dispute", call)

    return mcp
