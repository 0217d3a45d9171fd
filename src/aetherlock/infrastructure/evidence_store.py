"""Content-addressed evidence storage.

Two implementations of the EvidenceStore protocol:
    - PinataEvidenceStore:    IPFS pinning via the Pinata HTTP API
    - InMemoryEvidenceStore:  sha256-derived handles, for development and tests

Pinata calls are retried with exponential backoff (tenacity) on transport
errors, rate limiting, 5xx responses and malformed replies. Once the attempts
are exhausted the store raises StorageUnavailable; callers treat that as
terminal for the request.
"""

from __future__ import annotations

import copy
import hashlib
import json
from typing import Any

import httpx
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from aetherlock.domain.exceptions import (
    EvidenceNotFoundError,
    StorageUnavailable,
    ValidationError,
)
from aetherlock.logging_config import get_logger

logger = get_logger(__name__)

Evidence = bytes | dict | list


class _TransientStorageError(Exception):
    """A failure worth retrying."""


def _canonical_bytes(data: Evidence) -> bytes:
    if isinstance(data, bytes):
        return data
    return json.dumps(data, sort_keys=True, separators=(",", ":")).encode()


class InMemoryEvidenceStore:
    """Process-local store with content-derived handles."""

    def __init__(self, max_file_bytes: int = 100 * 1024 * 1024) -> None:
        self._blobs: dict[str, Evidence] = {}
        self._max_bytes = max_file_bytes

    async def put(
        self,
        data: Evidence,
        *,
        name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        raw = _canonical_bytes(data)
        if len(raw) > self._max_bytes:
            raise ValidationError(
                f"Evidence size {len(raw)} exceeds maximum of {self._max_bytes} bytes",
                field="data",
            )
        handle = "bafk" + hashlib.sha256(raw).hexdigest()
        self._blobs[handle] = copy.deepcopy(data)
        return handle

    async def get(self, handle: str) -> Evidence:
        if handle not in self._blobs:
            raise EvidenceNotFoundError(handle)
        return copy.deepcopy(self._blobs[handle])

    def __contains__(self, handle: str) -> bool:
        return handle in self._blobs


class PinataEvidenceStore:
    """IPFS pinning through Pinata with bounded retries."""

    def __init__(
        self,
        jwt: str,
        api_url: str = "https://api.pinata.cloud",
        gateway: str = "gateway.pinata.cloud",
        *,
        max_attempts: int = 3,
        retry_base_seconds: float = 1.0,
        timeout_seconds: float = 30.0,
        max_file_bytes: int = 100 * 1024 * 1024,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._gateway = gateway.removeprefix("https://").rstrip("/")
        self._max_attempts = max(1, max_attempts)
        self._retry_base = retry_base_seconds
        self._max_bytes = max_file_bytes
        self._owned_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout_seconds)
        self._headers = {"Authorization": f"Bearer {jwt}"}

    async def aclose(self) -> None:
        if self._owned_client:
            await self._client.aclose()

    def gateway_url(self, handle: str) -> str:
        return f"https://{self._gateway}/ipfs/{handle}"

    # --- EvidenceStore protocol ---

    async def put(
        self,
        data: Evidence,
        *,
        name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str:
        size = len(_canonical_bytes(data))
        if size > self._max_bytes:
            raise ValidationError(
                f"Evidence size {size} exceeds maximum of {self._max_bytes} bytes (100MB)",
                field="data",
            )

        pin_metadata = {
            "name": name or "aetherlock-evidence",
            "keyvalues": {k: str(v) for k, v in (metadata or {}).items()},
        }
        if isinstance(data, bytes):
            handle = await self._with_retries(
                "pin_file", self._pin_file, data, name or "evidence.bin", pin_metadata,
            )
        else:
            handle = await self._with_retries("pin_json", self._pin_json, data, pin_metadata)

        logger.info("evidence.pinned", handle=handle, size=size, name=pin_metadata["name"])
        return handle

    async def get(self, handle: str) -> Evidence:
        return await self._with_retries("fetch", self._fetch, handle)

    # --- HTTP calls ---

    async def _pin_json(self, data: dict | list, pin_metadata: dict) -> str:
        response = await self._client.post(
            f"{self._api_url}/pinning/pinJSONToIPFS",
            headers=self._headers,
            json={
                "pinataContent": data,
                "pinataMetadata": pin_metadata,
                "pinataOptions": {"cidVersion": 1},
            },
        )
        return self._ipfs_hash(response)

    async def _pin_file(self, data: bytes, filename: str, pin_metadata: dict) -> str:
        response = await self._client.post(
            f"{self._api_url}/pinning/pinFileToIPFS",
            headers=self._headers,
            files={"file": (filename, data)},
            data={
                "pinataMetadata": json.dumps(pin_metadata),
                "pinataOptions": json.dumps({"cidVersion": 1}),
            },
        )
        return self._ipfs_hash(response)

    async def _fetch(self, handle: str) -> Evidence:
        response = await self._client.get(self.gateway_url(handle))
        if response.status_code == 404:
            raise EvidenceNotFoundError(handle)
        self._raise_for_status(response)

        if "json" in response.headers.get("content-type", ""):
            try:
                return response.json()
            except ValueError as err:
                raise _TransientStorageError("gateway returned invalid JSON") from err
        return response.content

    def _ipfs_hash(self, response: httpx.Response) -> str:
        self._raise_for_status(response)
        try:
            handle = response.json().get("IpfsHash")
        except (ValueError, AttributeError) as err:
            raise _TransientStorageError("Invalid response from Pinata API") from err
        if not handle:
            raise _TransientStorageError("Invalid response from Pinata API")
        return str(handle)

    @staticmethod
    def _raise_for_status(response: httpx.Response) -> None:
        status = response.status_code
        if status == 429:
            raise _TransientStorageError("Pinata API rate limit exceeded")
        if status >= 500:
            raise _TransientStorageError(f"Pinata returned {status}")
        if status in (401, 403):
            raise StorageUnavailable("Invalid Pinata API credentials", attempts=1)
        if status >= 400:
            raise StorageUnavailable(f"Pinata rejected the request ({status})", attempts=1)

    # --- Retry wrapper ---

    async def _with_retries(self, operation: str, fn, *args):  # noqa: ANN001, ANN202
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._retry_base, min=0, max=60),
            retry=retry_if_exception_type((_TransientStorageError, httpx.TransportError)),
            before_sleep=self._log_retry(operation),
            reraise=True,
        )
        try:
            return await retrying(fn, *args)
        except (_TransientStorageError, httpx.TransportError) as exc:
            logger.error(
                "evidence.storage_unavailable",
                operation=operation,
                attempts=self._max_attempts,
                error=str(exc),
            )
            raise StorageUnavailable(
                f"Evidence storage unavailable after {self._max_attempts} attempts: {exc}",
                attempts=self._max_attempts,
            ) from exc

    @staticmethod
    def _log_retry(operation: str):  # noqa: ANN205
        def _before_sleep(state: RetryCallState) -> None:
            exc = state.outcome.exception() if state.outcome else None
            logger.warning(
                "evidence.retrying",
                operation=operation,
                attempt=state.attempt_number,
                error=str(exc),
            )

        return _before_sleep
