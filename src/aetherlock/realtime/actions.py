"""Client action dispatch for realtime sessions.

Inbound frames mirror outbound events: {"type": <action>, "data": {...}}.
A failing action is reported to the offending session as an `error` event;
the connection stays open.
"""

from __future__ import annotations

from typing import Any

from aetherlock.domain.enums import HubEventType
from aetherlock.domain.exceptions import AetherLockError, ValidationError
from aetherlock.logging_config import get_logger
from aetherlock.realtime.hub import RealtimeHub, wire_event
from aetherlock.realtime.session import Session

logger = get_logger(__name__)

ACTIONS = (
    "subscribe_escrow",
    "unsubscribe_escrow",
    "chat_message",
    "typing_start",
    "typing_stop",
    "mark_read",
)


def _escrow_id(data: dict[str, Any]) -> str:
    escrow_id = data.get("escrowId")
    if not isinstance(escrow_id, str) or not escrow_id:
        raise ValidationError("escrowId is required", field="escrowId")
    return escrow_id


async def dispatch_action(hub: RealtimeHub, session: Session, frame: Any) -> None:
    """Run one client action; report failures back to the session."""
    try:
        await _dispatch(hub, session, frame)
    except AetherLockError as exc:
        logger.info(
            "hub.action_rejected",
            session_id=session.session_id,
            code=exc.code,
            error=exc.message,
        )
        session.deliver(wire_event(HubEventType.ERROR, {"error": exc.code, "message": exc.message}))


async def _dispatch(hub: RealtimeHub, session: Session, frame: Any) -> None:
    if not isinstance(frame, dict):
        raise ValidationError("Frame must be a JSON object")

    action = frame.get("type")
    data = frame.get("data") or {}
    if not isinstance(data, dict):
        raise ValidationError("data must be a JSON object", field="data")

    if action == "subscribe_escrow":
        await hub.join(session, _escrow_id(data))
    elif action == "unsubscribe_escrow":
        hub.leave(session, _escrow_id(data))
    elif action == "chat_message":
        await hub.send_message(_escrow_id(data), session, data.get("content"))
    elif action == "typing_start":
        hub.typing_start(_escrow_id(data), session)
    elif action == "typing_stop":
        hub.typing_stop(_escrow_id(data), session)
    elif action == "mark_read":
        message_id = data.get("messageId")
        if isinstance(message_id, bool) or not isinstance(message_id, int):
            raise ValidationError("messageId must be an integer", field="messageId")
        await hub.mark_read(_escrow_id(data), message_id, session.wallet_address)
    else:
        raise ValidationError(
            f"Unknown action '{action}'. Valid actions: {', '.join(ACTIONS)}",
            field="type",
        )
