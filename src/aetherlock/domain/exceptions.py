"""Domain exceptions for AetherLock.

These exceptions are framework-agnostic and represent business rule violations.
They are caught and translated to HTTP responses by the API layer's middleware
and to `error` events by the realtime socket handler.
"""

from __future__ import annotations

from aetherlock.domain.enums import ProviderErrorKind


class AetherLockError(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, code: str = "AETHERLOCK_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


# --- Caller errors ---


class AuthorizationError(AetherLockError):
    """The caller is not the party this action requires."""

    def __init__(self, message: str, code: str = "NOT_AUTHORIZED") -> None:
        super().__init__(message=message, code=code)


class AuthenticationError(AuthorizationError):
    """The caller's wallet token is missing, malformed or has a bad signature."""

    def __init__(self, message: str, code: str = "NOT_AUTHENTICATED") -> None:
        super().__init__(message=message, code=code)


class PreconditionError(AetherLockError):
    """The action is not valid for the escrow's current state."""

    def __init__(self, message: str, code: str = "PRECONDITION_FAILED") -> None:
        super().__init__(message=message, code=code)


class InvalidTransitionError(PreconditionError):
    """Raised when a trigger cannot fire from the current status.

    Example: PENDING --release_funds--> (no such edge)
    """

    def __init__(self, current_status: str, trigger: str) -> None:
        super().__init__(
            message=f"Cannot {trigger} an escrow in status {current_status}",
            code="INVALID_STATE_TRANSITION",
        )
        self.current_status = current_status
        self.trigger = trigger


class ValidationError(AetherLockError):
    """Malformed input: empty message, missing evidence, bad amount."""

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message=message, code="VALIDATION_ERROR")
        self.field = field


# --- Lookup errors ---


class EscrowNotFoundError(AetherLockError):
    """Raised when an escrow id does not exist."""

    def __init__(self, escrow_id: str) -> None:
        super().__init__(
            message=f"Escrow not found: {escrow_id}",
            code="ESCROW_NOT_FOUND",
        )
        self.escrow_id = escrow_id


class MessageNotFoundError(AetherLockError):
    """Raised when a chat message id does not exist in the given escrow."""

    def __init__(self, message_id: int | str) -> None:
        super().__init__(
            message=f"Message not found: {message_id}",
            code="MESSAGE_NOT_FOUND",
        )
        self.message_id = message_id


class EvidenceNotFoundError(AetherLockError):
    """Raised when a content handle is unknown to the evidence store."""

    def __init__(self, handle: str) -> None:
        super().__init__(
            message=f"Evidence not found: {handle}",
            code="EVIDENCE_NOT_FOUND",
        )
        self.handle = handle


# --- Collaborator errors ---


class StorageUnavailable(AetherLockError):
    """The evidence store exhausted its retries. Terminal for the request."""

    def __init__(self, message: str, attempts: int | None = None) -> None:
        super().__init__(message=message, code="STORAGE_UNAVAILABLE")
        self.attempts = attempts


class ProviderError(AetherLockError):
    """One verification provider failed.

    Recovered inside the verification pipeline by falling back to the next
    provider; never surfaces to callers of the pipeline.
    """

    def __init__(
        self,
        provider: str,
        message: str,
        kind: ProviderErrorKind = ProviderErrorKind.UNAVAILABLE,
    ) -> None:
        super().__init__(message=f"{provider}: {message}", code="PROVIDER_ERROR")
        self.provider = provider
        self.kind = kind


class SettlementError(AetherLockError):
    """Raised when the chain collaborator cannot settle a release."""

    def __init__(self, message: str, tx_hash: str | None = None) -> None:
        super().__init__(message=message, code="SETTLEMENT_ERROR")
        self.tx_hash = tx_hash


# --- Idempotency Errors ---


class DuplicateOperationError(AetherLockError):
    """Raised when a duplicate idempotency key is detected."""

    def __init__(self, idempotency_key: str, existing_id: str | None = None) -> None:
        detail = f" (escrow {existing_id})" if existing_id else ""
        super().__init__(
            message=f"Duplicate operation detected for key: {idempotency_key}{detail}",
            code="DUPLICATE_OPERATION",
        )
        self.existing_id = existing_id
