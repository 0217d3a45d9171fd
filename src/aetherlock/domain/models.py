"""Domain records for AetherLock.

Plain dataclasses shared by the lifecycle manager, the realtime hub and every
store implementation. The SQL layer maps these onto ORM rows; the in-memory
stores keep copies of them directly.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from aetherlock.domain.assessment import VerificationResult
from aetherlock.domain.enums import EscrowStatus, PartyRole


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class DisputeInfo:
    """Attached to an escrow when a party opens a dispute."""

    initiated_by: PartyRole
    initiator_address: str
    reason: str
    evidence_handles: tuple[str, ...] = ()
    record_handle: str | None = None
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "initiatedBy": self.initiated_by.value,
            "initiatorAddress": self.initiator_address,
            "reason": self.reason,
            "evidenceHashes": list(self.evidence_handles),
            "recordHandle": self.record_handle,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class Escrow:
    """The escrow aggregate.

    `id` is the internal row id; `escrow_id` is the opaque identifier shared
    with parties and used as the hub room key.
    """

    escrow_id: str
    client_address: str
    amount: Decimal
    title: str
    freelancer_address: str | None = None
    description: str = ""
    currency: str = "SOL"
    deadline: datetime | None = None
    status: EscrowStatus = EscrowStatus.PENDING
    evidence_handle: str | None = None
    verification_result: VerificationResult | None = None
    verification_attempts: int = 0
    dispute_raised: bool = False
    dispute: DisputeInfo | None = None
    settlement_tx_hash: str | None = None
    id: uuid.UUID = field(default_factory=uuid.uuid4)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def role_of(self, wallet: str) -> PartyRole | None:
        if wallet == self.client_address:
            return PartyRole.CLIENT
        if self.freelancer_address is not None and wallet == self.freelancer_address:
            return PartyRole.FREELANCER
        return None

    def to_dict(self) -> dict:
        return {
            "escrowId": self.escrow_id,
            "clientAddress": self.client_address,
            "freelancerAddress": self.freelancer_address,
            "amount": str(self.amount),
            "currency": self.currency,
            "title": self.title,
            "description": self.description,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "status": self.status.value,
            "evidenceHandle": self.evidence_handle,
            "verificationResult": (
                self.verification_result.to_dict() if self.verification_result else None
            ),
            "verificationAttempts": self.verification_attempts,
            "disputeRaised": self.dispute_raised,
            "dispute": self.dispute.to_dict() if self.dispute else None,
            "settlementTxHash": self.settlement_tx_hash,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class Message:
    """A persisted chat message. Only `read` ever changes after creation."""

    id: int
    escrow_id: str
    sender_address: str
    sender_role: PartyRole
    content: str
    read: bool = False
    timestamp: datetime = field(default_factory=utcnow)

    def to_wire(self) -> dict:
        return {
            "id": self.id,
            "escrowId": self.escrow_id,
            "senderId": self.sender_address,
            "senderRole": self.sender_role.value,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "read": self.read,
        }


@dataclass(frozen=True)
class AuditEntry:
    """One append-only row of the escrow event log."""

    escrow_id: str
    trigger: str
    old_status: EscrowStatus | None
    new_status: EscrowStatus
    actor: str
    metadata: dict[str, Any] = field(default_factory=dict)
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> dict:
        return {
            "escrowId": self.escrow_id,
            "trigger": self.trigger,
            "oldStatus": self.old_status.value if self.old_status else None,
            "newStatus": self.new_status.value,
            "actor": self.actor,
            "metadata": self.metadata,
            "createdAt": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class SettlementRecord:
    """Chain transaction that paid out an escrow."""

    escrow_id: str
    tx_hash: str
    chain: str
    amount: Decimal
    recipient: str
    kind: str = "RELEASE"
    timestamp: datetime = field(default_factory=utcnow)
