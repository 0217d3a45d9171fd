"""Escrow State Machine Guard.

Uses python-statemachine to enforce legal state transitions at the domain level.
Whatever the HTTP layer, MCP tools or the realtime socket ask for, an illegal
transition (e.g., PENDING -> COMPLETED) raises TransitionNotAllowed.

The machine is instantiated per check and validates a trigger before the
lifecycle manager mutates the escrow aggregate.

Transition table:
    PENDING       -> ACTIVE        (accept)
    ACTIVE        -> AI_REVIEWING  (submit_work)
    AI_REVIEWING  -> VERIFIED      (verification_passed)
    AI_REVIEWING  -> AI_REVIEWING  (verification_failed)
    AI_REVIEWING  -> COMPLETED     (release_funds)
    VERIFIED      -> COMPLETED     (release_funds)
    AI_REVIEWING  -> DISPUTED      (open_dispute)
    VERIFIED      -> DISPUTED      (open_dispute)
    DISPUTED      -> COMPLETED     (resolve_for_freelancer)
    DISPUTED      -> CANCELLED     (resolve_for_client)
    <non-terminal> -> CANCELLED    (cancel_escrow)
"""

from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from aetherlock.domain.enums import EscrowStatus, Trigger
from aetherlock.domain.exceptions import InvalidTransitionError


class EscrowStateMachine(StateMachine):
    """State machine that guards escrow lifecycle transitions.

    Usage:
        sm = EscrowStateMachine(current_status="PENDING")
        sm.accept()          # transitions to ACTIVE
        sm.status            # "ACTIVE"
    """

    # --- States ---
    PENDING = State("PENDING", initial=True)
    ACTIVE = State("ACTIVE")
    AI_REVIEWING = State("AI_REVIEWING")
    VERIFIED = State("VERIFIED")
    DISPUTED = State("DISPUTED")
    COMPLETED = State("COMPLETED", final=True)
    CANCELLED = State("CANCELLED", final=True)

    # --- Events / Transitions ---

    accept = PENDING.to(ACTIVE)
    submit_work = ACTIVE.to(AI_REVIEWING)

    # Verification outcomes; a failed attempt keeps the escrow under review
    verification_passed = AI_REVIEWING.to(VERIFIED)
    verification_failed = AI_REVIEWING.to.itself()

    # Settlement
    release_funds = AI_REVIEWING.to(COMPLETED) | VERIFIED.to(COMPLETED)

    # Disputes
    open_dispute = AI_REVIEWING.to(DISPUTED) | VERIFIED.to(DISPUTED)
    resolve_for_freelancer = DISPUTED.to(COMPLETED)
    resolve_for_client = DISPUTED.to(CANCELLED)

    # Cancellation; which of these edges a caller may use is manager policy
    cancel_escrow = (
        PENDING.to(CANCELLED)
        | ACTIVE.to(CANCELLED)
        | AI_REVIEWING.to(CANCELLED)
        | VERIFIED.to(CANCELLED)
        | DISPUTED.to(CANCELLED)
    )

    def __init__(self, current_status: str = "PENDING") -> None:
        """Initialize the state machine at a given status.

        Args:
            current_status: The current EscrowStatus value (e.g., "ACTIVE").
        """
        valid_values = {s.value for s in self.states}
        if current_status not in valid_values:
            valid = ", ".join(sorted(valid_values))
            raise ValueError(
                f"Unknown status '{current_status}'. Valid states: {valid}"
            )
        super().__init__(start_value=str(current_status))

    @property
    def status(self) -> str:
        """Return the current state value as a string (matches EscrowStatus)."""
        return str(self.current_state.value)


def validate_transition(current_status: str, trigger: str) -> str:
    """Fire `trigger` on a throwaway machine and return the resulting status.

    Raises:
        TransitionNotAllowed: If the transition is illegal.
        ValueError: If the status or trigger name is unknown.
    """
    sm = EscrowStateMachine(current_status=current_status)

    event_method = getattr(sm, str(trigger), None)
    if str(trigger) not in {t.value for t in Trigger} or not callable(event_method):
        raise ValueError(
            f"Unknown trigger '{trigger}'. "
            f"Allowed triggers from {current_status}: {allowed_triggers(current_status)}"
        )

    event_method()
    return sm.status


def next_status(current: EscrowStatus, trigger: Trigger) -> EscrowStatus:
    """Domain-typed wrapper that maps illegal moves to InvalidTransitionError."""
    try:
        return EscrowStatus(validate_transition(current.value, trigger.value))
    except TransitionNotAllowed as err:
        raise InvalidTransitionError(current.value, trigger.value) from err


def can_fire(current_status: str, trigger: Trigger) -> bool:
    try:
        validate_transition(current_status, trigger.value)
    except TransitionNotAllowed:
        return False
    return True


def allowed_triggers(current_status: str) -> list[str]:
    """Return the trigger names that can fire from `current_status`."""
    return [t.value for t in Trigger if can_fire(current_status, t)]
