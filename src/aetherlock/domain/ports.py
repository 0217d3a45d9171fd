"""Collaborator interfaces used by the services.

Each is a Protocol (structural subtyping): the SQL stores, the in-memory
stores, the Pinata client and test doubles just need to match the shape.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable

from aetherlock.domain.models import (
    AuditEntry,
    DisputeInfo,
    Escrow,
    Message,
    SettlementRecord,
)


@runtime_checkable
class EscrowStore(Protocol):
    """Persistence for escrow aggregates and their audit trail."""

    async def add(self, escrow: Escrow, audit: AuditEntry) -> Escrow: ...

    async def get(self, escrow_id: str) -> Escrow | None: ...

    async def commit(
        self,
        escrow: Escrow,
        audit: AuditEntry,
        *,
        dispute: DisputeInfo | None = None,
        settlement: SettlementRecord | None = None,
    ) -> Escrow:
        """Persist the new escrow state and its side records in one transaction."""
        ...

    async def list_for_wallet(self, wallet: str) -> list[Escrow]: ...

    async def audit_trail(self, escrow_id: str) -> list[AuditEntry]: ...


@runtime_checkable
class MessageStore(Protocol):
    """Persistence for chat messages."""

    async def append(
        self,
        escrow_id: str,
        sender_address: str,
        sender_role: str,
        content: str,
    ) -> Message: ...

    async def get(self, escrow_id: str, message_id: int) -> Message | None: ...

    async def mark_read(self, escrow_id: str, message_id: int) -> tuple[Message, bool]:
        """Flip `read` to true; the flag is False when it was already read."""
        ...

    async def list_for_escrow(
        self,
        escrow_id: str,
        *,
        limit: int,
        before: datetime | None = None,
    ) -> list[Message]:
        """Newest `limit` messages older than `before`, in chronological order."""
        ...

    async def count_unread(self, wallet: str, escrow_ids: list[str]) -> int: ...


@runtime_checkable
class EvidenceStore(Protocol):
    """Content-addressed storage for work evidence and dispute records."""

    async def put(
        self,
        data: bytes | dict | list,
        *,
        name: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> str: ...

    async def get(self, handle: str) -> bytes | dict | list: ...


@runtime_checkable
class SignatureVerifier(Protocol):
    """Checks that `signature` over `message` was produced by `public_key`."""

    async def verify(self, signature: str, message: str, public_key: str) -> bool: ...


@runtime_checkable
class SettlementGateway(Protocol):
    """Chain collaborator that pays out an escrow."""

    async def transfer_to_freelancer(
        self,
        escrow_id: str,
        recipient: str,
        amount: Decimal,
    ) -> str:
        """Return the settlement transaction hash."""
        ...
