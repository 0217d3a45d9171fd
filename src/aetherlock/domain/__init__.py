"""Domain layer — pure business logic with zero framework dependencies."""

from aetherlock.domain.assessment import (
    CONFIDENCE_THRESHOLD,
    AssessmentProvider,
    Err,
    Ok,
    VerificationRequest,
    VerificationResult,
)
from aetherlock.domain.enums import (
    DomainEventType,
    EscrowStatus,
    PartyRole,
    Trigger,
)
from aetherlock.domain.exceptions import (
    AetherLockError,
    AuthorizationError,
    EscrowNotFoundError,
    InvalidTransitionError,
    PreconditionError,
    ValidationError,
)
from aetherlock.domain.state_machine import (
    EscrowStateMachine,
    validate_transition,
)

__all__ = [
    "CONFIDENCE_THRESHOLD",
    "AssessmentProvider",
    "Err",
    "Ok",
    "VerificationRequest",
    "VerificationResult",
    "DomainEventType",
    "EscrowStatus",
    "PartyRole",
    "Trigger",
    "AetherLockError",
    "AuthorizationError",
    "EscrowNotFoundError",
    "InvalidTransitionError",
    "PreconditionError",
    "ValidationError",
    "EscrowStateMachine",
    "validate_transition",
]
