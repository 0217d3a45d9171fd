"""Pydantic schemas for the Escrow API.

These schemas define the request/response shapes for the REST API and
MCP tools. They are separate from the domain dataclasses and the ORM models
to keep clean boundaries between the API, domain and database layers.
Response models read domain objects directly (`from_attributes`).
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from aetherlock.domain.enums import EscrowStatus, PartyRole

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateEscrowRequest(BaseModel):
    """Request body for creating a new escrow. The caller becomes the client."""

    amount: Decimal = Field(
        ...,
        gt=0,
        description="Escrowed amount, in `currency` units",
        examples=["2.5"],
    )
    title: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Short title of the job",
        examples=["Landing page for a DeFi dashboard"],
    )
    description: str = Field(
        default="",
        max_length=5000,
        description="What the freelancer must deliver",
    )
    freelancer_address: str | None = Field(
        default=None,
        description="Designated freelancer wallet; any wallet may accept when omitted",
    )
    currency: str = Field(default="SOL", max_length=16)
    deadline: datetime | None = None


class SubmitWorkRequest(BaseModel):
    """Request body for a freelancer submitting work."""

    description: str = Field(
        ...,
        min_length=1,
        max_length=10_000,
        description="What was delivered",
    )
    evidence_hashes: list[str] = Field(
        ...,
        min_length=1,
        description="Content handles of the uploaded deliverables",
        examples=[["bafkreib3x..."]],
    )


class RaiseDisputeRequest(BaseModel):
    """Request body for either party opening a dispute."""

    reason: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Why the verification result is being contested",
    )
    evidence_hashes: list[str] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class AnalysisDetailsResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quality_score: int
    completeness_score: int
    accuracy_score: int
    suggestions: list[str]


class VerificationResultResponse(BaseModel):
    """Assessment of a submission."""

    model_config = ConfigDict(from_attributes=True)

    passed: bool
    confidence: int
    feedback: str
    analysis_details: AnalysisDetailsResponse
    timestamp: datetime
    provider: str


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    initiated_by: PartyRole
    initiator_address: str
    reason: str
    evidence_handles: list[str]
    record_handle: str | None
    timestamp: datetime


class EscrowResponse(BaseModel):
    """Response schema for an escrow."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    escrow_id: str
    client_address: str
    freelancer_address: str | None
    amount: Decimal
    currency: str
    title: str
    description: str
    deadline: datetime | None
    status: EscrowStatus
    evidence_handle: str | None
    verification_result: VerificationResultResponse | None
    verification_attempts: int
    dispute_raised: bool
    dispute: DisputeResponse | None
    settlement_tx_hash: str | None
    created_at: datetime
    updated_at: datetime


class EscrowEventResponse(BaseModel):
    """Response schema for an audit entry."""

    model_config = ConfigDict(from_attributes=True)

    escrow_id: str
    trigger: str
    old_status: EscrowStatus | None
    new_status: EscrowStatus
    actor: str
    metadata: dict
    created_at: datetime


class EscrowStatusResponse(BaseModel):
    """Lightweight status check response."""

    escrow_id: str
    status: EscrowStatus
    verification_attempts: int
    max_verification_attempts: int
    dispute_raised: bool
    in_progress: bool
    allowed_triggers: list[str] = Field(
        description="State machine triggers that can fire from the current status"
    )


class SubmissionResponse(BaseModel):
    """Outcome of a submit-and-verify run."""

    escrow_id: str
    final_status: str
    evidence_handle: str = ""
    verification_passed: bool = False
    verification_result: dict = Field(default_factory=dict)
    error: str = ""


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    redis: str = "unknown"
    realtime: dict[str, int] = Field(default_factory=dict)
