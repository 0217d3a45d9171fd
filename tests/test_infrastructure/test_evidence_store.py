"""Tests for the evidence stores.

The Pinata store runs against an httpx.MockTransport so retries and error
mapping are exercised without network access.
"""

from __future__ import annotations

import json

import httpx
import pytest

from aetherlock.domain.exceptions import (
    EvidenceNotFoundError,
    StorageUnavailable,
    ValidationError,
)
from aetherlock.infrastructure.evidence_store import (
    InMemoryEvidenceStore,
    PinataEvidenceStore,
)


def _store(handler, **kwargs) -> PinataEvidenceStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs.setdefault("retry_base_seconds", 0)
    return PinataEvidenceStore("test-jwt", client=client, **kwargs)


class TestInMemoryEvidenceStore:
    async def test_handles_are_content_derived(self) -> None:
        store = InMemoryEvidenceStore()
        first = await store.put({"b": 1, "a": 2})
        second = await store.put({"a": 2, "b": 1})
        assert first == second
        assert first.startswith("bafk")

    async def test_get_returns_copy(self) -> None:
        store = InMemoryEvidenceStore()
        handle = await store.put({"items": [1, 2]})

        fetched = await store.get(handle)
        fetched["items"].append(3)

        assert await store.get(handle) == {"items": [1, 2]}

    async def test_bytes_round_trip(self) -> None:
        store = InMemoryEvidenceStore()
        handle = await store.put(b"\x89PNG", name="logo.png")
        assert await store.get(handle) == b"\x89PNG"
        assert handle in store

    async def test_unknown_handle(self) -> None:
        with pytest.raises(EvidenceNotFoundError):
            await InMemoryEvidenceStore().get("bafkmissing")

    async def test_size_limit(self) -> None:
        store = InMemoryEvidenceStore(max_file_bytes=4)
        with pytest.raises(ValidationError, match="exceeds maximum"):
            await store.put(b"12345")


class TestPinataPut:
    async def test_pin_json(self) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"IpfsHash": "bafkjson"})

        store = _store(handler)
        handle = await store.put({"escrowId": "e1"}, name="dispute-e1", metadata={"escrowId": "e1"})

        assert handle == "bafkjson"
        assert seen[0].url.path == "/pinning/pinJSONToIPFS"
        assert seen[0].headers["Authorization"] == "Bearer test-jwt"
        body = json.loads(seen[0].content)
        assert body["pinataContent"] == {"escrowId": "e1"}
        assert body["pinataMetadata"]["name"] == "dispute-e1"

    async def test_pin_file(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/pinning/pinFileToIPFS"
            return httpx.Response(200, json={"IpfsHash": "bafkfile"})

        store = _store(handler)
        assert await store.put(b"<html></html>", name="index.html") == "bafkfile"

    async def test_retries_transient_errors(self) -> None:
        responses = iter([
            httpx.Response(503),
            httpx.Response(429),
            httpx.Response(200, json={"IpfsHash": "bafkok"}),
        ])
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return next(responses)

        store = _store(handler, max_attempts=3)
        assert await store.put({"a": 1}) == "bafkok"
        assert calls == 3

    async def test_exhausted_retries(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            raise httpx.ConnectError("connection refused")

        store = _store(handler, max_attempts=2)
        with pytest.raises(StorageUnavailable) as exc_info:
            await store.put({"a": 1})

        assert calls == 2
        assert exc_info.value.attempts == 2

    async def test_malformed_reply_is_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(200, json={"unexpected": True})

        store = _store(handler, max_attempts=3)
        with pytest.raises(StorageUnavailable, match="Invalid response"):
            await store.put({"a": 1})
        assert calls == 3

    async def test_bad_credentials_not_retried(self) -> None:
        calls = 0

        def handler(request: httpx.Request) -> httpx.Response:
            nonlocal calls
            calls += 1
            return httpx.Response(401, json={"error": "unauthorized"})

        store = _store(handler, max_attempts=3)
        with pytest.raises(StorageUnavailable, match="credentials"):
            await store.put({"a": 1})
        assert calls == 1

    async def test_size_limit_checked_before_upload(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError("should not upload")

        store = _store(handler, max_file_bytes=3)
        with pytest.raises(ValidationError):
            await store.put(b"too big")


class TestPinataGet:
    async def test_fetch_json(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.host == "gateway.pinata.cloud"
            assert request.url.path == "/ipfs/bafkjson"
            return httpx.Response(200, json={"escrowId": "e1"})

        assert await _store(handler).get("bafkjson") == {"escrowId": "e1"}

    async def test_fetch_bytes(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=b"\x89PNG", headers={"content-type": "image/png"})

        assert await _store(handler).get("bafkimg") == b"\x89PNG"

    async def test_missing_handle(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(404)

        with pytest.raises(EvidenceNotFoundError):
            await _store(handler).get("bafkgone")

    def test_gateway_url(self) -> None:
        store = PinataEvidenceStore("jwt", gateway="https://my.gateway.io/")
        assert store.gateway_url("bafk1") == "https://my.gateway.io/ipfs/bafk1"
