"""Domain enumerations for AetherLock.

These enums define the canonical states, triggers and event names used
throughout the system. They are framework-agnostic (no SQLAlchemy, no
FastAPI imports).
"""

import enum


class EscrowStatus(enum.StrEnum):
    """Lifecycle states of an escrow.

    State transitions are enforced by the EscrowStateMachine guard.
    See domain/state_machine.py for the transition table.
    """

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    AI_REVIEWING = "AI_REVIEWING"
    VERIFIED = "VERIFIED"
    DISPUTED = "DISPUTED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"

    @property
    def is_terminal(self) -> bool:
        return self in (EscrowStatus.COMPLETED, EscrowStatus.CANCELLED)


class Trigger(enum.StrEnum):
    """Named transitions of the escrow state machine.

    The value of each member is the event name on EscrowStateMachine.
    """

    ACCEPT = "accept"
    SUBMIT_WORK = "submit_work"
    VERIFICATION_PASSED = "verification_passed"
    VERIFICATION_FAILED = "verification_failed"
    RELEASE_FUNDS = "release_funds"
    OPEN_DISPUTE = "open_dispute"
    CANCEL_ESCROW = "cancel_escrow"
    RESOLVE_FOR_FREELANCER = "resolve_for_freelancer"
    RESOLVE_FOR_CLIENT = "resolve_for_client"


class PartyRole(enum.StrEnum):
    """Which side of an escrow a wallet is on."""

    CLIENT = "client"
    FREELANCER = "freelancer"


class ArbitrationOutcome(enum.StrEnum):
    """Ruling handed down by the external arbitration collaborator."""

    FREELANCER = "freelancer"
    CLIENT = "client"


class DomainEventType(enum.StrEnum):
    """Typed events emitted by the lifecycle manager on accepted transitions."""

    ESCROW_CREATED = "escrow.created"
    STATUS_CHANGED = "escrow.status_changed"
    VERIFICATION_COMPLETE = "escrow.verification_complete"
    DISPUTE_OPENED = "escrow.dispute_opened"


class HubEventType(enum.StrEnum):
    """Wire event names delivered to realtime sessions."""

    CHAT_MESSAGE = "chat_message"
    MESSAGE_READ = "message_read"
    TYPING_START = "typing_start"
    TYPING_STOP = "typing_stop"
    ESCROW_UPDATE = "escrow_update"
    NOTIFICATION = "notification"
    USER_JOINED = "user_joined"
    USER_LEFT = "user_left"
    ERROR = "error"


class NotificationType(enum.StrEnum):
    """`type` field of personal `notification` events."""

    MESSAGE_RECEIVED = "message_received"
    ESCROW_OFFER = "escrow_offer"
    ESCROW_UPDATE = "escrow_update"
    VERIFICATION_COMPLETE = "verification_complete"
    DISPUTE_OPENED = "dispute_opened"


class ProviderErrorKind(enum.StrEnum):
    """Why an assessment provider could not produce a usable result."""

    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"
    AUTHENTICATION = "authentication"
    RATE_LIMIT = "rate_limit"
    MALFORMED_RESPONSE = "malformed_response"
    UNAVAILABLE = "unavailable"
