"""SQLAlchemy 2.0 ORM models for AetherLock.

Five tables:
    1. escrows        — The escrow agreements between client and freelancer.
    2. escrow_events  — Append-only audit log of every state transition.
    3. disputes       — Dispute opened against an escrow (at most one each).
    4. settlements    — Chain payouts recorded on release.
    5. messages       — Per-escrow chat messages.

Design decisions:
    - UUID row ids for escrows; the opaque escrow_id is what parties share.
    - Decimal for amounts (no floating point rounding errors).
    - JSON columns (JSONB on PostgreSQL) for verification results and audit metadata.
    - CHECK constraint on status to prevent invalid enum values at DB level.
    - Integer autoincrement ids for messages so ordering ties break on id.
    - escrow_events is append-only: no UPDATE or DELETE at the application level.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    Uuid,
    event,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from aetherlock.domain.enums import EscrowStatus

JSONType = JSON().with_variant(JSONB(), "postgresql")

_STATUS_VALUES = ", ".join(f"'{s.value}'" for s in EscrowStatus)


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _now() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Helper: auto-set updated_at on flush
# ---------------------------------------------------------------------------
def _set_updated_at(mapper, connection, target):  # noqa: ANN001
    """SQLAlchemy event listener that updates `updated_at` before flush."""
    if hasattr(target, "updated_at"):
        target.updated_at = _now()


# ---------------------------------------------------------------------------
# 1. escrows
# ---------------------------------------------------------------------------
class EscrowRecord(Base):
    """An escrow agreement between a client and a freelancer."""

    __tablename__ = "escrows"

    # --- Identity ---
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    escrow_id: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        unique=True,
        comment="Opaque identifier shared with the parties",
    )

    # --- Participants ---
    client_address: Mapped[str] = mapped_column(String(64), nullable=False)
    freelancer_address: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        default=None,
        comment="Designated freelancer, or the first wallet to accept",
    )

    # --- Terms ---
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 9), nullable=False)
    currency: Mapped[str] = mapped_column(String(16), nullable=False, default="SOL")
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    deadline: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # --- Status (Enum-guarded) ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=EscrowStatus.PENDING.value,
        comment="Current lifecycle state (guarded by EscrowStateMachine)",
    )

    # --- Work & verification ---
    evidence_handle: Mapped[str | None] = mapped_column(String(128), nullable=True)
    verification_result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    verification_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # --- Dispute & settlement ---
    dispute_raised: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    settlement_tx_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, onupdate=_now,
    )

    # --- Relationships ---
    dispute: Mapped[DisputeRecord | None] = relationship(
        "DisputeRecord",
        back_populates="escrow",
        uselist=False,
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(f"status IN ({_STATUS_VALUES})", name="ck_escrow_valid_status"),
        CheckConstraint("amount > 0", name="ck_escrow_positive_amount"),
        CheckConstraint("verification_attempts >= 0", name="ck_escrow_attempts_non_negative"),
        Index("idx_escrow_status", "status"),
        Index("idx_escrow_client", "client_address"),
        Index("idx_escrow_freelancer", "freelancer_address"),
        Index("idx_escrow_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowRecord escrow_id={self.escrow_id} status={self.status} "
            f"amount={self.amount} {self.currency}>"
        )


# ---------------------------------------------------------------------------
# 2. escrow_events (Append-Only Audit Log)
# ---------------------------------------------------------------------------
class EscrowEventRecord(Base):
    """Immutable audit record of every accepted transition.

    This table is APPEND-ONLY. No UPDATE or DELETE operations are permitted
    at the application level.
    """

    __tablename__ = "escrow_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    escrow_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("escrows.escrow_id", ondelete="CASCADE"),
        nullable=False,
    )
    trigger: Mapped[str] = mapped_column(
        String(40),
        nullable=False,
        comment="Trigger value (e.g., accept, release_funds) or 'create'",
    )
    old_status: Mapped[str | None] = mapped_column(
        String(20),
        nullable=True,
        comment="Status before this event (null for creation)",
    )
    new_status: Mapped[str] = mapped_column(String(20), nullable=False)
    actor: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="SYSTEM",
        comment="Who triggered this event (wallet address or SYSTEM)",
    )
    metadata_json: Mapped[dict | None] = mapped_column(
        "metadata", JSONType, nullable=True, default=None,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now,
    )

    __table_args__ = (
        Index("idx_event_escrow", "escrow_id"),
        Index("idx_event_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"<EscrowEventRecord escrow={self.escrow_id} trigger={self.trigger} "
            f"{self.old_status}->{self.new_status}>"
        )


# ---------------------------------------------------------------------------
# 3. disputes
# ---------------------------------------------------------------------------
class DisputeRecord(Base):
    """Dispute attached to an escrow. At most one per escrow."""

    __tablename__ = "disputes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    escrow_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("escrows.escrow_id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    initiated_by: Mapped[str] = mapped_column(String(16), nullable=False)
    initiator_address: Mapped[str] = mapped_column(String(64), nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_handles: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    record_handle: Mapped[str | None] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now,
    )

    escrow: Mapped[EscrowRecord] = relationship("EscrowRecord", back_populates="dispute")

    __table_args__ = (
        CheckConstraint(
            "initiated_by IN ('client', 'freelancer')",
            name="ck_dispute_valid_initiator",
        ),
    )


# ---------------------------------------------------------------------------
# 4. settlements
# ---------------------------------------------------------------------------
class SettlementRow(Base):
    """A chain payout for an escrow."""

    __tablename__ = "settlements"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    escrow_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("escrows.escrow_id", ondelete="CASCADE"),
        nullable=False,
    )
    tx_hash: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    chain: Mapped[str] = mapped_column(String(32), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="RELEASE")
    amount: Mapped[Decimal] = mapped_column(Numeric(20, 9), nullable=False)
    recipient: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now,
    )

    __table_args__ = (Index("idx_settlement_escrow", "escrow_id"),)


# ---------------------------------------------------------------------------
# 5. messages
# ---------------------------------------------------------------------------
class MessageRecord(Base):
    """A chat message between the parties of an escrow."""

    __tablename__ = "messages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    escrow_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("escrows.escrow_id", ondelete="CASCADE"),
        nullable=False,
    )
    sender_address: Mapped[str] = mapped_column(String(64), nullable=False)
    sender_role: Mapped[str] = mapped_column(String(16), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now,
    )

    __table_args__ = (
        CheckConstraint(
            "sender_role IN ('client', 'freelancer')",
            name="ck_message_valid_role",
        ),
        Index("idx_message_escrow_created", "escrow_id", "created_at"),
    )


# ---------------------------------------------------------------------------
# Register the auto-update listener for updated_at
# ---------------------------------------------------------------------------
event.listen(EscrowRecord, "before_update", _set_updated_at)
