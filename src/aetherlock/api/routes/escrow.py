"""Escrow REST API routes.

These endpoints provide the HTTP interface for the escrow lifecycle. The
MCP tools in mcp_server/tools.py call the same lifecycle manager, ensuring
consistency. Every mutating route acts as the wallet proven by the
`Authorization` token.

Routes:
    POST   /api/v1/escrows                 — Create a new escrow (caller is the client)
    GET    /api/v1/escrows?wallet=         — List escrows in which a wallet is a party
    GET    /api/v1/escrows/{id}            — Get escrow details
    GET    /api/v1/escrows/{id}/status     — Get lightweight status check
    GET    /api/v1/escrows/{id}/events     — Get audit trail
    POST   /api/v1/escrows/{id}/accept     — Freelancer accepts
    POST   /api/v1/escrows/{id}/submit     — Submit work (+ verification)
    POST   /api/v1/escrows/{id}/verify     — Re-run verification
    POST   /api/v1/escrows/{id}/release    — Client releases funds
    POST   /api/v1/escrows/{id}/dispute    — Either party opens a dispute
    POST   /api/v1/escrows/{id}/cancel     — Client cancels
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Header, Query

from aetherlock.api.deps import get_caller_wallet, get_container, get_manager
from aetherlock.bootstrap import Container
from aetherlock.domain.exceptions import DuplicateOperationError
from aetherlock.infrastructure.redis_client import check_idempotency, set_idempotency
from aetherlock.logging_config import get_logger
from aetherlock.orchestration.review_workflow import run_review_workflow
from aetherlock.schemas.escrow import (
    CreateEscrowRequest,
    EscrowEventResponse,
    EscrowResponse,
    EscrowStatusResponse,
    RaiseDisputeRequest,
    SubmissionResponse,
    SubmitWorkRequest,
)
from aetherlock.services.escrow_manager import EscrowLifecycleManager

router = APIRouter(prefix="/api/v1/escrows", tags=["Escrow"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=EscrowResponse,
    status_code=201,
    summary="Create a new escrow",
)
async def create_escrow(
    request: CreateEscrowRequest,
    wallet: str = Depends(get_caller_wallet),
    container: Container = Depends(get_container),
    idempotency_key: str | None = Header(default=None),
) -> EscrowResponse:
    """Create a new escrow in PENDING state with the caller as client."""
    redis = container.redis
    if idempotency_key and redis is not None:
        existing = await check_idempotency(redis, idempotency_key)
        if existing:
            raise DuplicateOperationError(idempotency_key, existing_id=existing)

    escrow = await container.manager.create_escrow(
        client_address=wallet,
        amount=request.amount,
        title=request.title,
        description=request.description,
        freelancer_address=request.freelancer_address,
        currency=request.currency,
        deadline=request.deadline,
    )

    if idempotency_key and redis is not None:
        await set_idempotency(
            redis,
            idempotency_key,
            escrow.escrow_id,
            ttl_seconds=container.settings.redis_idempotency_ttl_seconds,
        )
    return EscrowResponse.model_validate(escrow)


# ---------------------------------------------------------------------------
# Lifecycle actions
# ---------------------------------------------------------------------------


@router.post(
    "/{escrow_id}/accept",
    response_model=EscrowResponse,
    summary="Freelancer accepts escrow",
)
async def accept_escrow(
    escrow_id: str,
    wallet: str = Depends(get_caller_wallet),
    manager: EscrowLifecycleManager = Depends(get_manager),
) -> EscrowResponse:
    """Freelancer accepts the escrow. Transitions PENDING -> ACTIVE."""
    escrow = await manager.accept(escrow_id, wallet)
    return EscrowResponse.model_validate(escrow)


@router.post(
    "/{escrow_id}/submit",
    response_model=SubmissionResponse,
    summary="Submit work and trigger verification",
)
async def submit_work(
    escrow_id: str,
    request: SubmitWorkRequest,
    wallet: str = Depends(get_caller_wallet),
    container: Container = Depends(get_container),
) -> SubmissionResponse:
    """Submit work and, when enabled, run the verification pipeline.

    Triggers: ACTIVE -> AI_REVIEWING -> VERIFIED (passed) or stays AI_REVIEWING.
    """
    state = await run_review_workflow(
        container.manager,
        escrow_id=escrow_id,
        wallet=wallet,
        description=request.description,
        evidence_handles=request.evidence_hashes,
        auto_verify=container.settings.auto_verify_on_submit,
    )
    return SubmissionResponse(**state)


@router.post(
    "/{escrow_id}/verify",
    response_model=EscrowResponse,
    summary="Run verification on the latest submission",
)
async def verify_escrow(
    escrow_id: str,
    wallet: str = Depends(get_caller_wallet),
    container: Container = Depends(get_container),
) -> EscrowResponse:
    """Re-run verification for an escrow in AI_REVIEWING. Either party may ask."""
    await container.auth_gate.require_role(escrow_id, wallet, action="verify")
    escrow = await container.manager.verify(escrow_id)
    return EscrowResponse.model_validate(escrow)


@router.post(
    "/{escrow_id}/release",
    response_model=EscrowResponse,
    summary="Release funds to the freelancer",
)
async def release_funds(
    escrow_id: str,
    wallet: str = Depends(get_caller_wallet),
    manager: EscrowLifecycleManager = Depends(get_manager),
) -> EscrowResponse:
    """Client releases funds. Transitions AI_REVIEWING | VERIFIED -> COMPLETED."""
    escrow = await manager.release(escrow_id, wallet)
    return EscrowResponse.model_validate(escrow)


@router.post(
    "/{escrow_id}/dispute",
    response_model=EscrowResponse,
    summary="Open a dispute",
)
async def raise_dispute(
    escrow_id: str,
    request: RaiseDisputeRequest,
    wallet: str = Depends(get_caller_wallet),
    manager: EscrowLifecycleManager = Depends(get_manager),
) -> EscrowResponse:
    """Open a dispute. Valid from AI_REVIEWING or VERIFIED, once per escrow."""
    escrow = await manager.open_dispute(
        escrow_id,
        wallet,
        reason=request.reason,
        evidence_handles=request.evidence_hashes,
    )
    return EscrowResponse.model_validate(escrow)


@router.post(
    "/{escrow_id}/cancel",
    response_model=EscrowResponse,
    summary="Cancel an escrow",
)
async def cancel_escrow(
    escrow_id: str,
    wallet: str = Depends(get_caller_wallet),
    manager: EscrowLifecycleManager = Depends(get_manager),
) -> EscrowResponse:
    """Client cancels while the escrow is still cancellable."""
    escrow = await manager.cancel(escrow_id, wallet)
    return EscrowResponse.model_validate(escrow)


# ---------------------------------------------------------------------------
# Read endpoints
# ---------------------------------------------------------------------------


@router.get(
    "",
    response_model=list[EscrowResponse],
    summary="List escrows for a wallet",
)
async def list_escrows(
    wallet: str = Query(..., min_length=1),
    manager: EscrowLifecycleManager = Depends(get_manager),
) -> list[EscrowResponse]:
    """Escrows in which `wallet` is the client or the freelancer, newest first."""
    escrows = await manager.list_for_wallet(wallet)
    return [EscrowResponse.model_validate(e) for e in escrows]


@router.get(
    "/{escrow_id}",
    response_model=EscrowResponse,
    summary="Get escrow details",
)
async def get_escrow(
    escrow_id: str,
    manager: EscrowLifecycleManager = Depends(get_manager),
) -> EscrowResponse:
    """Fetch an escrow by its id."""
    escrow = await manager.get(escrow_id)
    return EscrowResponse.model_validate(escrow)


@router.get(
    "/{escrow_id}/status",
    response_model=EscrowStatusResponse,
    summary="Get lightweight status check",
)
async def get_status(
    escrow_id: str,
    manager: EscrowLifecycleManager = Depends(get_manager),
) -> EscrowStatusResponse:
    """Return the current status and allowed next triggers."""
    status_data = await manager.get_status(escrow_id)
    return EscrowStatusResponse(**status_data)


@router.get(
    "/{escrow_id}/events",
    response_model=list[EscrowEventResponse],
    summary="Get audit trail",
)
async def get_events(
    escrow_id: str,
    manager: EscrowLifecycleManager = Depends(get_manager),
) -> list[EscrowEventResponse]:
    """Return the full audit trail for an escrow."""
    events = await manager.get_audit_trail(escrow_id)
    return [EscrowEventResponse.model_validate(e) for e in events]
