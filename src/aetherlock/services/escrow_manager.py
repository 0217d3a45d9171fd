"""Escrow Lifecycle Manager — core business logic for the escrow lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (transition guard)
    - AuthGate (who may fire which trigger)
    - EvidenceStore (submission metadata, dispute records)
    - VerificationPipeline (automated verification decision)
    - Settlement gateway (chain payout)
    - EscrowStore (aggregate + audit trail, one transaction per transition)
    - EventBus (typed domain events for the realtime hub)

REST routes, MCP tools and the review workflow all call into this manager,
ensuring a single source of truth for all business rules.

Concurrency: transitions on one escrow are serialized by a per-escrow lock.
A transition that needs external I/O claims the escrow under the lock, does
the I/O without holding it, then re-locks to commit. Any other transition
on a claimed escrow fails fast with "transition in progress".
"""

from __future__ import annotations

import asyncio
import secrets
import weakref
from collections.abc import Callable, Iterable
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from aetherlock.domain.assessment import VerificationRequest
from aetherlock.domain.enums import (
    ArbitrationOutcome,
    DomainEventType,
    EscrowStatus,
    PartyRole,
    Trigger,
)
from aetherlock.domain.events import DomainEvent, EventBus
from aetherlock.domain.exceptions import (
    AuthorizationError,
    EscrowNotFoundError,
    PreconditionError,
    ValidationError,
)
from aetherlock.domain.models import (
    AuditEntry,
    DisputeInfo,
    Escrow,
    SettlementRecord,
    utcnow,
)
from aetherlock.domain.ports import EscrowStore, EvidenceStore, SettlementGateway
from aetherlock.domain.state_machine import allowed_triggers, next_status
from aetherlock.logging_config import get_logger, short_wallet
from aetherlock.services.auth_gate import AuthGate
from aetherlock.services.verification_pipeline import VerificationPipeline

logger = get_logger(__name__)

SYSTEM_ACTOR = "SYSTEM"

REASONS: dict[Trigger, str] = {
    Trigger.ACCEPT: "Escrow accepted by freelancer",
    Trigger.SUBMIT_WORK: "Work submitted for AI verification",
    Trigger.VERIFICATION_PASSED: "AI verification passed",
    Trigger.VERIFICATION_FAILED: "AI verification did not pass",
    Trigger.RELEASE_FUNDS: "Funds released to freelancer",
    Trigger.OPEN_DISPUTE: "Dispute opened",
    Trigger.CANCEL_ESCROW: "Escrow cancelled",
    Trigger.RESOLVE_FOR_FREELANCER: "Dispute resolved in favour of the freelancer",
    Trigger.RESOLVE_FOR_CLIENT: "Dispute resolved in favour of the client",
}


class EscrowLifecycleManager:
    """Manages the escrow lifecycle."""

    def __init__(
        self,
        store: EscrowStore,
        auth_gate: AuthGate,
        evidence_store: EvidenceStore,
        pipeline: VerificationPipeline,
        settlement: SettlementGateway,
        event_bus: EventBus,
        *,
        max_verification_attempts: int = 0,
        cancellable_statuses: Iterable[EscrowStatus | str] = (EscrowStatus.PENDING,),
        settlement_chain: str = "solana-devnet",
    ) -> None:
        self._store = store
        self._auth = auth_gate
        self._evidence = evidence_store
        self._pipeline = pipeline
        self._settlement = settlement
        self._bus = event_bus
        self._max_attempts = max_verification_attempts
        self._cancellable = frozenset(EscrowStatus(s) for s in cancellable_statuses)
        self._chain = settlement_chain
        # Entries vanish once no coroutine holds or waits on the lock.
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )
        self._in_flight: set[str] = set()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_escrow(
        self,
        client_address: str,
        amount: Decimal | str | int,
        title: str,
        description: str = "",
        freelancer_address: str | None = None,
        currency: str = "SOL",
        deadline: datetime | None = None,
    ) -> Escrow:
        """Create a new escrow in PENDING state."""
        try:
            amount = Decimal(str(amount))
        except InvalidOperation as err:
            raise ValidationError(f"Invalid amount: {amount}", field="amount") from err
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Amount must be greater than zero", field="amount")
        if not title or not title.strip():
            raise ValidationError("Title is required", field="title")
        if freelancer_address is not None and freelancer_address == client_address:
            raise ValidationError(
                "Client and freelancer must be different wallets",
                field="freelancer_address",
            )

        escrow = Escrow(
            escrow_id=secrets.token_hex(16),
            client_address=client_address,
            freelancer_address=freelancer_address or None,
            amount=amount,
            currency=currency,
            title=title.strip(),
            description=description.strip(),
            deadline=deadline,
        )
        audit = AuditEntry(
            escrow_id=escrow.escrow_id,
            trigger="create",
            old_status=None,
            new_status=EscrowStatus.PENDING,
            actor=client_address,
            metadata={"amount": str(amount), "currency": currency, "title": escrow.title},
        )
        escrow = await self._store.add(escrow, audit)

        logger.info(
            "escrow.created",
            escrow_id=escrow.escrow_id,
            amount=str(amount),
            client=short_wallet(client_address),
        )
        await self._bus.publish(DomainEvent(
            type=DomainEventType.ESCROW_CREATED,
            escrow_id=escrow.escrow_id,
            payload={
                "escrowId": escrow.escrow_id,
                "clientAddress": escrow.client_address,
                "freelancerAddress": escrow.freelancer_address,
                "amount": str(escrow.amount),
                "title": escrow.title,
            },
            client_address=escrow.client_address,
            freelancer_address=escrow.freelancer_address,
        ))
        return escrow

    # ------------------------------------------------------------------
    # Acceptance
    # ------------------------------------------------------------------

    async def accept(self, escrow_id: str, wallet: str) -> Escrow:
        """Freelancer accepts the escrow: PENDING -> ACTIVE."""
        parties = await self._auth.parties(escrow_id)
        self._check_can_accept(parties.client_address, parties.freelancer_address, wallet)

        async with self._lock_for(escrow_id):
            escrow = await self._load_unclaimed(escrow_id)
            next_status(escrow.status, Trigger.ACCEPT)
            self._check_can_accept(escrow.client_address, escrow.freelancer_address, wallet)

            escrow.freelancer_address = wallet
            escrow, old = await self._transition(escrow, Trigger.ACCEPT, actor=wallet)
            await self._emit_status_changed(escrow, old, Trigger.ACCEPT)

        logger.info("escrow.accepted", escrow_id=escrow_id, freelancer=short_wallet(wallet))
        return escrow

    @staticmethod
    def _check_can_accept(client: str, designated: str | None, wallet: str) -> None:
        if designated is not None and wallet != designated:
            raise AuthorizationError("Only the designated freelancer can accept this escrow")
        if wallet == client:
            raise AuthorizationError("The client cannot accept their own escrow")

    # ------------------------------------------------------------------
    # Work Submission
    # ------------------------------------------------------------------

    async def submit_work(
        self,
        escrow_id: str,
        wallet: str,
        description: str,
        evidence_handles: list[str],
    ) -> Escrow:
        """Freelancer submits work: ACTIVE -> AI_REVIEWING."""
        if not description or not description.strip():
            raise ValidationError("Submission description is required", field="description")
        handles = [h.strip() for h in evidence_handles or [] if h and h.strip()]
        if not handles:
            raise ValidationError("At least one evidence hash is required", field="evidenceHashes")

        await self._auth.require_role(
            escrow_id, wallet, PartyRole.FREELANCER, action="submit work for",
        )

        await self._claim(escrow_id, Trigger.SUBMIT_WORK)
        try:
            metadata = {
                "escrowId": escrow_id,
                "description": description.strip(),
                "evidenceHashes": handles,
                "submittedBy": wallet,
                "timestamp": utcnow().isoformat(),
            }
            handle = await self._evidence.put(
                metadata,
                name=f"submission-{escrow_id}.json",
                metadata={"escrowId": escrow_id, "type": "submission"},
            )

            async with self._lock_for(escrow_id):
                escrow = await self._load(escrow_id)
                escrow.evidence_handle = handle
                escrow, old = await self._transition(
                    escrow,
                    Trigger.SUBMIT_WORK,
                    actor=wallet,
                    metadata={"evidenceHandle": handle, "evidenceCount": len(handles)},
                )
                await self._emit_status_changed(escrow, old, Trigger.SUBMIT_WORK)
        finally:
            self._in_flight.discard(escrow_id)

        logger.info(
            "escrow.work_submitted",
            escrow_id=escrow_id,
            evidence_handle=handle,
            evidence_count=len(handles),
        )
        return escrow

    # ------------------------------------------------------------------
    # Verification (system-triggered)
    # ------------------------------------------------------------------

    async def verify(self, escrow_id: str) -> Escrow:
        """Run the verification pipeline on the latest submission.

        AI_REVIEWING -> VERIFIED when the result passes; otherwise the escrow
        stays AI_REVIEWING with the result recorded.
        """
        escrow = await self._claim(
            escrow_id, Trigger.VERIFICATION_FAILED, guard=self._check_attempts_left,
        )
        try:
            request = await self._build_verification_request(escrow)
            result = await self._pipeline.verify(request)

            trigger = (
                Trigger.VERIFICATION_PASSED if result.passed else Trigger.VERIFICATION_FAILED
            )
            async with self._lock_for(escrow_id):
                escrow = await self._load(escrow_id)
                escrow.verification_result = result
                escrow.verification_attempts += 1
                escrow, old = await self._transition(
                    escrow,
                    trigger,
                    actor=SYSTEM_ACTOR,
                    metadata={
                        "passed": result.passed,
                        "confidence": result.confidence,
                        "provider": result.provider,
                        "attempt": escrow.verification_attempts,
                    },
                )
                await self._bus.publish(self._event(
                    escrow,
                    DomainEventType.VERIFICATION_COMPLETE,
                    {
                        "escrowId": escrow.escrow_id,
                        "passed": result.passed,
                        "confidence": result.confidence,
                        "feedback": result.feedback,
                    },
                ))
                if result.passed:
                    await self._emit_status_changed(escrow, old, trigger)
        finally:
            self._in_flight.discard(escrow_id)

        logger.info(
            "escrow.verification_recorded",
            escrow_id=escrow_id,
            passed=result.passed,
            confidence=result.confidence,
            provider=result.provider,
            attempt=escrow.verification_attempts,
        )
        return escrow

    def _check_attempts_left(self, escrow: Escrow) -> None:
        if self._max_attempts and escrow.verification_attempts >= self._max_attempts:
            raise PreconditionError(
                f"Verification attempt limit reached ({self._max_attempts}); "
                "release the funds or open a dispute",
                code="VERIFICATION_ATTEMPTS_EXHAUSTED",
            )

    async def _build_verification_request(self, escrow: Escrow) -> VerificationRequest:
        if not escrow.evidence_handle:
            raise PreconditionError("No submission to verify")

        submission = await self._evidence.get(escrow.evidence_handle)
        if not isinstance(submission, dict):
            submission = {}

        return VerificationRequest(
            escrow_id=escrow.escrow_id,
            requirements={
                "title": escrow.title,
                "description": escrow.description,
                "amount": str(escrow.amount),
                "currency": escrow.currency,
            },
            evidence_handles=tuple(submission.get("evidenceHashes") or ()),
            description=str(submission.get("description", "")),
        )

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    async def release(self, escrow_id: str, wallet: str) -> Escrow:
        """Client releases funds: AI_REVIEWING | VERIFIED -> COMPLETED."""
        await self._auth.require_role(
            escrow_id, wallet, PartyRole.CLIENT, action="release funds from",
        )
        escrow = await self._claim(escrow_id, Trigger.RELEASE_FUNDS)
        try:
            escrow = await self._settle_and_commit(escrow, Trigger.RELEASE_FUNDS, actor=wallet)
        finally:
            self._in_flight.discard(escrow_id)

        logger.info(
            "escrow.released",
            escrow_id=escrow_id,
            tx_hash=escrow.settlement_tx_hash,
            amount=str(escrow.amount),
        )
        return escrow

    async def _settle_and_commit(self, escrow: Escrow, trigger: Trigger, actor: str) -> Escrow:
        recipient = escrow.freelancer_address
        if recipient is None:
            raise PreconditionError("Escrow has no freelancer to pay")

        tx_hash = await self._settlement.transfer_to_freelancer(
            escrow.escrow_id, recipient, escrow.amount,
        )
        record = SettlementRecord(
            escrow_id=escrow.escrow_id,
            tx_hash=tx_hash,
            chain=self._chain,
            amount=escrow.amount,
            recipient=recipient,
        )

        async with self._lock_for(escrow.escrow_id):
            escrow = await self._load(escrow.escrow_id)
            escrow.settlement_tx_hash = tx_hash
            escrow, old = await self._transition(
                escrow,
                trigger,
                actor=actor,
                metadata={"txHash": tx_hash, "chain": self._chain},
                settlement=record,
            )
            await self._emit_status_changed(escrow, old, trigger)
        return escrow

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def open_dispute(
        self,
        escrow_id: str,
        wallet: str,
        reason: str,
        evidence_handles: list[str] | None = None,
    ) -> Escrow:
        """Either party disputes: AI_REVIEWING | VERIFIED -> DISPUTED."""
        if not reason or not reason.strip():
            raise ValidationError("Dispute reason is required", field="reason")
        handles = tuple(h.strip() for h in evidence_handles or [] if h and h.strip())

        role = await self._auth.require_role(
            escrow_id,
            wallet,
            PartyRole.CLIENT,
            PartyRole.FREELANCER,
            action="open a dispute on",
        )
        await self._claim(escrow_id, Trigger.OPEN_DISPUTE, guard=self._check_not_disputed)
        try:
            timestamp = utcnow()
            record = {
                "escrowId": escrow_id,
                "initiatedBy": role.value,
                "initiatorAddress": wallet,
                "reason": reason.strip(),
                "evidenceHashes": list(handles),
                "timestamp": timestamp.isoformat(),
            }
            record_handle = await self._evidence.put(
                record,
                name=f"dispute-{escrow_id}.json",
                metadata={"escrowId": escrow_id, "type": "dispute"},
            )
            dispute = DisputeInfo(
                initiated_by=role,
                initiator_address=wallet,
                reason=reason.strip(),
                evidence_handles=handles,
                record_handle=record_handle,
                timestamp=timestamp,
            )

            async with self._lock_for(escrow_id):
                escrow = await self._load(escrow_id)
                escrow.dispute = dispute
                escrow.dispute_raised = True
                escrow, old = await self._transition(
                    escrow,
                    Trigger.OPEN_DISPUTE,
                    actor=wallet,
                    metadata={"initiatedBy": role.value, "recordHandle": record_handle},
                    dispute=dispute,
                )
                await self._bus.publish(self._event(
                    escrow,
                    DomainEventType.DISPUTE_OPENED,
                    {
                        "escrowId": escrow.escrow_id,
                        "initiatedBy": role.value,
                        "initiatorAddress": wallet,
                        "reason": dispute.reason,
                    },
                ))
                await self._emit_status_changed(escrow, old, Trigger.OPEN_DISPUTE)
        finally:
            self._in_flight.discard(escrow_id)

        logger.info("escrow.dispute_opened", escrow_id=escrow_id, by=role.value)
        return escrow

    @staticmethod
    def _check_not_disputed(escrow: Escrow) -> None:
        if escrow.dispute_raised:
            raise PreconditionError("A dispute has already been raised for this escrow")

    async def resolve_dispute(
        self,
        escrow_id: str,
        outcome: ArbitrationOutcome | str,
        note: str = "",
    ) -> Escrow:
        """Apply an arbitration ruling to a DISPUTED escrow.

        Freelancer wins: funds are settled and the escrow completes.
        Client wins: the escrow is cancelled.
        """
        try:
            outcome = ArbitrationOutcome(outcome)
        except ValueError as err:
            raise ValidationError(f"Unknown arbitration outcome: {outcome}", field="outcome") from err

        if outcome is ArbitrationOutcome.FREELANCER:
            escrow = await self._claim(escrow_id, Trigger.RESOLVE_FOR_FREELANCER)
            try:
                escrow = await self._settle_and_commit(
                    escrow, Trigger.RESOLVE_FOR_FREELANCER, actor=SYSTEM_ACTOR,
                )
            finally:
                self._in_flight.discard(escrow_id)
        else:
            async with self._lock_for(escrow_id):
                escrow = await self._load_unclaimed(escrow_id)
                escrow, old = await self._transition(
                    escrow,
                    Trigger.RESOLVE_FOR_CLIENT,
                    actor=SYSTEM_ACTOR,
                    metadata={"note": note} if note else None,
                )
                await self._emit_status_changed(escrow, old, Trigger.RESOLVE_FOR_CLIENT)

        logger.info("escrow.dispute_resolved", escrow_id=escrow_id, outcome=outcome.value)
        return escrow

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    async def cancel(self, escrow_id: str, wallet: str) -> Escrow:
        """Client cancels the escrow while its status is cancellable."""
        await self._auth.require_role(escrow_id, wallet, PartyRole.CLIENT, action="cancel")

        async with self._lock_for(escrow_id):
            escrow = await self._load_unclaimed(escrow_id)
            next_status(escrow.status, Trigger.CANCEL_ESCROW)
            if escrow.status not in self._cancellable:
                raise PreconditionError(
                    f"Escrow cannot be cancelled while {escrow.status.value}",
                )
            escrow, old = await self._transition(escrow, Trigger.CANCEL_ESCROW, actor=wallet)
            await self._emit_status_changed(escrow, old, Trigger.CANCEL_ESCROW)

        logger.info("escrow.cancelled", escrow_id=escrow_id)
        return escrow

    # ------------------------------------------------------------------
    # Read helpers
    # ------------------------------------------------------------------

    async def get(self, escrow_id: str) -> Escrow:
        """Get an escrow or raise."""
        return await self._load(escrow_id)

    async def get_status(self, escrow_id: str) -> dict[str, Any]:
        """Get escrow status with the triggers that could fire next."""
        escrow = await self._load(escrow_id)
        return {
            "escrow_id": escrow.escrow_id,
            "status": escrow.status.value,
            "verification_attempts": escrow.verification_attempts,
            "max_verification_attempts": self._max_attempts,
            "dispute_raised": escrow.dispute_raised,
            "allowed_triggers": allowed_triggers(escrow.status.value),
            "in_progress": escrow_id in self._in_flight,
        }

    async def get_audit_trail(self, escrow_id: str) -> list[AuditEntry]:
        await self._load(escrow_id)
        return await self._store.audit_trail(escrow_id)

    async def list_for_wallet(self, wallet: str) -> list[Escrow]:
        return await self._store.list_for_wallet(wallet)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    async def _load(self, escrow_id: str) -> Escrow:
        escrow = await self._store.get(escrow_id)
        if escrow is None:
            raise EscrowNotFoundError(escrow_id)
        return escrow

    def _lock_for(self, escrow_id: str) -> asyncio.Lock:
        lock = self._locks.get(escrow_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[escrow_id] = lock
        return lock

    async def _load_unclaimed(self, escrow_id: str) -> Escrow:
        if escrow_id in self._in_flight:
            raise PreconditionError(
                "Another transition is in progress for this escrow",
                code="TRANSITION_IN_PROGRESS",
            )
        return await self._load(escrow_id)

    async def _claim(
        self,
        escrow_id: str,
        trigger: Trigger,
        guard: Callable[[Escrow], None] | None = None,
    ) -> Escrow:
        """Check the transition can fire and mark the escrow as in flight.

        The caller must discard the claim when its I/O and commit are done.
        """
        async with self._lock_for(escrow_id):
            escrow = await self._load_unclaimed(escrow_id)
            next_status(escrow.status, trigger)
            if guard is not None:
                guard(escrow)
            self._in_flight.add(escrow_id)
            return escrow

    async def _transition(
        self,
        escrow: Escrow,
        trigger: Trigger,
        *,
        actor: str,
        metadata: dict[str, Any] | None = None,
        dispute: DisputeInfo | None = None,
        settlement: SettlementRecord | None = None,
    ) -> tuple[Escrow, EscrowStatus]:
        """Fire `trigger` and persist the escrow with its audit entry."""
        old = escrow.status
        escrow.status = next_status(old, trigger)
        escrow.updated_at = utcnow()

        audit = AuditEntry(
            escrow_id=escrow.escrow_id,
            trigger=trigger.value,
            old_status=old,
            new_status=escrow.status,
            actor=actor,
            metadata={"reason": REASONS[trigger], **(metadata or {})},
        )
        saved = await self._store.commit(escrow, audit, dispute=dispute, settlement=settlement)
        return saved, old

    def _event(
        self,
        escrow: Escrow,
        event_type: DomainEventType,
        payload: dict[str, Any],
    ) -> DomainEvent:
        return DomainEvent(
            type=event_type,
            escrow_id=escrow.escrow_id,
            payload=payload,
            client_address=escrow.client_address,
            freelancer_address=escrow.freelancer_address,
        )

    async def _emit_status_changed(
        self,
        escrow: Escrow,
        old: EscrowStatus,
        trigger: Trigger,
    ) -> None:
        await self._bus.publish(self._event(
            escrow,
            DomainEventType.STATUS_CHANGED,
            {
                "escrowId": escrow.escrow_id,
                "fromStatus": old.value,
                "toStatus": escrow.status.value,
                "reason": REASONS[trigger],
            },
        ))
