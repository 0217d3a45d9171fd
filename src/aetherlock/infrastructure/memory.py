"""In-process stores for development, dry runs and tests.

Same protocols as the SQL stores. Records are copied on the way in and on
the way out so callers can never mutate stored state by accident.
"""

from __future__ import annotations

import copy
import itertools
from dataclasses import replace
from datetime import datetime

from aetherlock.domain.enums import PartyRole
from aetherlock.domain.exceptions import EscrowNotFoundError, MessageNotFoundError
from aetherlock.domain.models import (
    AuditEntry,
    DisputeInfo,
    Escrow,
    Message,
    SettlementRecord,
    utcnow,
)


class InMemoryEscrowStore:
    def __init__(self) -> None:
        self._escrows: dict[str, Escrow] = {}
        self._audit: dict[str, list[AuditEntry]] = {}
        self._settlements: dict[str, list[SettlementRecord]] = {}

    async def add(self, escrow: Escrow, audit: AuditEntry) -> Escrow:
        if escrow.escrow_id in self._escrows:
            raise ValueError(f"Escrow {escrow.escrow_id} already exists")
        self._escrows[escrow.escrow_id] = copy.deepcopy(escrow)
        self._audit[escrow.escrow_id] = [audit]
        return copy.deepcopy(escrow)

    async def get(self, escrow_id: str) -> Escrow | None:
        escrow = self._escrows.get(escrow_id)
        return copy.deepcopy(escrow) if escrow else None

    async def commit(
        self,
        escrow: Escrow,
        audit: AuditEntry,
        *,
        dispute: DisputeInfo | None = None,
        settlement: SettlementRecord | None = None,
    ) -> Escrow:
        if escrow.escrow_id not in self._escrows:
            raise EscrowNotFoundError(escrow.escrow_id)
        stored = copy.deepcopy(escrow)
        if dispute is not None:
            stored.dispute = dispute
        self._escrows[escrow.escrow_id] = stored
        self._audit[escrow.escrow_id].append(audit)
        if settlement is not None:
            self._settlements.setdefault(escrow.escrow_id, []).append(settlement)
        return copy.deepcopy(stored)

    async def list_for_wallet(self, wallet: str) -> list[Escrow]:
        matches = [
            e for e in self._escrows.values()
            if wallet in (e.client_address, e.freelancer_address)
        ]
        matches.sort(key=lambda e: e.created_at, reverse=True)
        return [copy.deepcopy(e) for e in matches]

    async def audit_trail(self, escrow_id: str) -> list[AuditEntry]:
        return list(self._audit.get(escrow_id, []))

    async def settlements(self, escrow_id: str) -> list[SettlementRecord]:
        return list(self._settlements.get(escrow_id, []))


class InMemoryMessageStore:
    def __init__(self) -> None:
        self._messages: dict[str, list[Message]] = {}
        self._ids = itertools.count(1)

    async def append(
        self,
        escrow_id: str,
        sender_address: str,
        sender_role: str,
        content: str,
    ) -> Message:
        message = Message(
            id=next(self._ids),
            escrow_id=escrow_id,
            sender_address=sender_address,
            sender_role=PartyRole(sender_role),
            content=content,
            timestamp=utcnow(),
        )
        self._messages.setdefault(escrow_id, []).append(message)
        return message

    async def get(self, escrow_id: str, message_id: int) -> Message | None:
        for message in self._messages.get(escrow_id, []):
            if message.id == message_id:
                return message
        return None

    async def mark_read(self, escrow_id: str, message_id: int) -> tuple[Message, bool]:
        messages = self._messages.get(escrow_id, [])
        for idx, message in enumerate(messages):
            if message.id == message_id:
                if message.read:
                    return message, False
                messages[idx] = replace(message, read=True)
                return messages[idx], True
        raise MessageNotFoundError(message_id)

    async def list_for_escrow(
        self,
        escrow_id: str,
        *,
        limit: int,
        before: datetime | None = None,
    ) -> list[Message]:
        messages = sorted(
            self._messages.get(escrow_id, []),
            key=lambda m: (m.timestamp, m.id),
        )
        if before is not None:
            messages = [m for m in messages if m.timestamp < before]
        return messages[-limit:] if limit > 0 else []

    async def count_unread(self, wallet: str, escrow_ids: list[str]) -> int:
        return sum(
            1
            for escrow_id in escrow_ids
            for m in self._messages.get(escrow_id, [])
            if not m.read and m.sender_address != wallet
        )
