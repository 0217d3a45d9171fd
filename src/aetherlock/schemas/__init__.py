"""Pydantic API schemas."""

from aetherlock.schemas.chat import (
    ChatHistoryResponse,
    MessageResponse,
    SendMessageRequest,
    UnreadCountResponse,
)
from aetherlock.schemas.escrow import (
    CreateEscrowRequest,
    EscrowEventResponse,
    EscrowResponse,
    EscrowStatusResponse,
    HealthResponse,
    RaiseDisputeRequest,
    SubmissionResponse,
    SubmitWorkRequest,
)

__all__ = [
    "ChatHistoryResponse",
    "CreateEscrowRequest",
    "EscrowEventResponse",
    "EscrowResponse",
    "EscrowStatusResponse",
    "HealthResponse",
    "MessageResponse",
    "RaiseDisputeRequest",
    "SendMessageRequest",
    "SubmissionResponse",
    "SubmitWorkRequest",
    "UnreadCountResponse",
]
