"""SQL-backed stores for escrows and chat messages.

The stores encapsulate all SQL queries and map ORM rows to domain records.
Each public method opens its own session; every escrow transition is
committed in a single transaction (escrow row + audit row + any dispute or
settlement row).
"""

from __future__ import annotations

from datetime import UTC, datetime

from sqlalchemy import func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from aetherlock.domain.assessment import VerificationResult
from aetherlock.domain.enums import EscrowStatus, PartyRole
from aetherlock.domain.exceptions import EscrowNotFoundError, MessageNotFoundError
from aetherlock.domain.models import (
    AuditEntry,
    DisputeInfo,
    Escrow,
    Message,
    SettlementRecord,
)
from aetherlock.infrastructure.database.orm_models import (
    DisputeRecord,
    EscrowEventRecord,
    EscrowRecord,
    MessageRecord,
    SettlementRow,
)


def _aware(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


# --- Row <-> record mapping ---


def _dispute_from_row(row: DisputeRecord | None) -> DisputeInfo | None:
    if row is None:
        return None
    return DisputeInfo(
        initiated_by=PartyRole(row.initiated_by),
        initiator_address=row.initiator_address,
        reason=row.reason,
        evidence_handles=tuple(row.evidence_handles or ()),
        record_handle=row.record_handle,
        timestamp=_aware(row.created_at),
    )


def _escrow_from_row(row: EscrowRecord) -> Escrow:
    return Escrow(
        id=row.id,
        escrow_id=row.escrow_id,
        client_address=row.client_address,
        freelancer_address=row.freelancer_address,
        amount=row.amount,
        currency=row.currency,
        title=row.title,
        description=row.description,
        deadline=_aware(row.deadline),
        status=EscrowStatus(row.status),
        evidence_handle=row.evidence_handle,
        verification_result=(
            VerificationResult.from_dict(row.verification_result)
            if row.verification_result
            else None
        ),
        verification_attempts=row.verification_attempts,
        dispute_raised=row.dispute_raised,
        dispute=_dispute_from_row(row.dispute),
        settlement_tx_hash=row.settlement_tx_hash,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _apply_to_row(row: EscrowRecord, escrow: Escrow) -> None:
    row.freelancer_address = escrow.freelancer_address
    row.status = escrow.status.value
    row.evidence_handle = escrow.evidence_handle
    row.verification_result = (
        escrow.verification_result.to_dict() if escrow.verification_result else None
    )
    row.verification_attempts = escrow.verification_attempts
    row.dispute_raised = escrow.dispute_raised
    row.settlement_tx_hash = escrow.settlement_tx_hash
    row.updated_at = escrow.updated_at


def _event_row(audit: AuditEntry) -> EscrowEventRecord:
    return EscrowEventRecord(
        escrow_id=audit.escrow_id,
        trigger=audit.trigger,
        old_status=audit.old_status.value if audit.old_status else None,
        new_status=audit.new_status.value,
        actor=audit.actor,
        metadata_json=audit.metadata or None,
        created_at=audit.created_at,
    )


def _audit_from_row(row: EscrowEventRecord) -> AuditEntry:
    return AuditEntry(
        escrow_id=row.escrow_id,
        trigger=row.trigger,
        old_status=EscrowStatus(row.old_status) if row.old_status else None,
        new_status=EscrowStatus(row.new_status),
        actor=row.actor,
        metadata=row.metadata_json or {},
        created_at=_aware(row.created_at),
    )


def _message_from_row(row: MessageRecord) -> Message:
    return Message(
        id=row.id,
        escrow_id=row.escrow_id,
        sender_address=row.sender_address,
        sender_role=PartyRole(row.sender_role),
        content=row.content,
        read=row.read,
        timestamp=_aware(row.created_at),
    )


class SqlEscrowStore:
    """Escrow aggregates and their audit trail in SQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def add(self, escrow: Escrow, audit: AuditEntry) -> Escrow:
        """Insert a new escrow together with its creation audit row."""
        async with self._session_factory() as session, session.begin():
            row = EscrowRecord(
                id=escrow.id,
                escrow_id=escrow.escrow_id,
                client_address=escrow.client_address,
                freelancer_address=escrow.freelancer_address,
                amount=escrow.amount,
                currency=escrow.currency,
                title=escrow.title,
                description=escrow.description,
                deadline=escrow.deadline,
                status=escrow.status.value,
                created_at=escrow.created_at,
                updated_at=escrow.updated_at,
            )
            session.add(row)
            await session.flush()
            session.add(_event_row(audit))
        return escrow

    async def get(self, escrow_id: str) -> Escrow | None:
        """Fetch an escrow by its opaque id."""
        async with self._session_factory() as session:
            row = await self._get_row(session, escrow_id)
            return _escrow_from_row(row) if row else None

    async def commit(
        self,
        escrow: Escrow,
        audit: AuditEntry,
        *,
        dispute: DisputeInfo | None = None,
        settlement: SettlementRecord | None = None,
    ) -> Escrow:
        """Persist a transition: escrow row, audit row and side rows together."""
        async with self._session_factory() as session, session.begin():
            row = await self._get_row(session, escrow.escrow_id)
            if row is None:
                raise EscrowNotFoundError(escrow.escrow_id)

            _apply_to_row(row, escrow)
            session.add(_event_row(audit))

            if dispute is not None:
                session.add(DisputeRecord(
                    escrow_id=escrow.escrow_id,
                    initiated_by=dispute.initiated_by.value,
                    initiator_address=dispute.initiator_address,
                    reason=dispute.reason,
                    evidence_handles=list(dispute.evidence_handles),
                    record_handle=dispute.record_handle,
                    created_at=dispute.timestamp,
                ))
            if settlement is not None:
                session.add(SettlementRow(
                    escrow_id=settlement.escrow_id,
                    tx_hash=settlement.tx_hash,
                    chain=settlement.chain,
                    kind=settlement.kind,
                    amount=settlement.amount,
                    recipient=settlement.recipient,
                    created_at=settlement.timestamp,
                ))
        return escrow

    async def list_for_wallet(self, wallet: str) -> list[Escrow]:
        """Escrows where the wallet is client or freelancer, newest first."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(EscrowRecord)
                .where(or_(
                    EscrowRecord.client_address == wallet,
                    EscrowRecord.freelancer_address == wallet,
                ))
                .order_by(EscrowRecord.created_at.desc())
            )
            return [_escrow_from_row(row) for row in result.scalars().all()]

    async def audit_trail(self, escrow_id: str) -> list[AuditEntry]:
        """All audit rows for an escrow in chronological order."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(EscrowEventRecord)
                .where(EscrowEventRecord.escrow_id == escrow_id)
                .order_by(EscrowEventRecord.id.asc())
            )
            return [_audit_from_row(row) for row in result.scalars().all()]

    async def settlements(self, escrow_id: str) -> list[SettlementRecord]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(SettlementRow)
                .where(SettlementRow.escrow_id == escrow_id)
                .order_by(SettlementRow.id.asc())
            )
            return [
                SettlementRecord(
                    escrow_id=row.escrow_id,
                    tx_hash=row.tx_hash,
                    chain=row.chain,
                    kind=row.kind,
                    amount=row.amount,
                    recipient=row.recipient,
                    timestamp=_aware(row.created_at),
                )
                for row in result.scalars().all()
            ]

    @staticmethod
    async def _get_row(session: AsyncSession, escrow_id: str) -> EscrowRecord | None:
        result = await session.execute(
            select(EscrowRecord).where(EscrowRecord.escrow_id == escrow_id)
        )
        return result.scalar_one_or_none()


class SqlMessageStore:
    """Chat messages in SQL."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(
        self,
        escrow_id: str,
        sender_address: str,
        sender_role: str,
        content: str,
    ) -> Message:
        async with self._session_factory() as session, session.begin():
            row = MessageRecord(
                escrow_id=escrow_id,
                sender_address=sender_address,
                sender_role=PartyRole(sender_role).value,
                content=content,
                read=False,
                created_at=datetime.now(UTC),
            )
            session.add(row)
            await session.flush()
            return _message_from_row(row)

    async def get(self, escrow_id: str, message_id: int) -> Message | None:
        async with self._session_factory() as session:
            row = await self._get_row(session, escrow_id, message_id)
            return _message_from_row(row) if row else None

    async def mark_read(self, escrow_id: str, message_id: int) -> tuple[Message, bool]:
        """Flip `read` to true; the flag says whether this call did the flip.

        The conditional UPDATE makes concurrent receipts race-free: only one
        of them matches `read = false`.
        """
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(MessageRecord)
                .where(
                    MessageRecord.escrow_id == escrow_id,
                    MessageRecord.id == message_id,
                    MessageRecord.read.is_(False),
                )
                .values(read=True)
            )
            row = await self._get_row(session, escrow_id, message_id)
            if row is None:
                raise MessageNotFoundError(message_id)
            return _message_from_row(row), result.rowcount == 1

    async def list_for_escrow(
        self,
        escrow_id: str,
        *,
        limit: int,
        before: datetime | None = None,
    ) -> list[Message]:
        """Newest `limit` messages older than `before`, in chronological order."""
        stmt = select(MessageRecord).where(MessageRecord.escrow_id == escrow_id)
        if before is not None:
            stmt = stmt.where(MessageRecord.created_at < before)
        stmt = stmt.order_by(
            MessageRecord.created_at.desc(), MessageRecord.id.desc(),
        ).limit(limit)

        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = list(result.scalars().all())
        return [_message_from_row(row) for row in reversed(rows)]

    async def count_unread(self, wallet: str, escrow_ids: list[str]) -> int:
        if not escrow_ids:
            return 0
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.count(MessageRecord.id)).where(
                    MessageRecord.escrow_id.in_(escrow_ids),
                    MessageRecord.sender_address != wallet,
                    MessageRecord.read.is_(False),
                )
            )
            return int(result.scalar_one())

    @staticmethod
    async def _get_row(
        session: AsyncSession,
        escrow_id: str,
        message_id: int,
    ) -> MessageRecord | None:
        result = await session.execute(
            select(MessageRecord).where(
                MessageRecord.id == message_id,
                MessageRecord.escrow_id == escrow_id,
            )
        )
        return result.scalar_one_or_none()
