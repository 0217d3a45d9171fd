"""Realtime WebSocket endpoint.

    WS /ws?token=<signature:message:publicKey>

The socket layer only moves frames: outbound events are read from the
session outbox by a sender task; inbound frames go to dispatch_action. Room
membership lives in the hub.
"""

from __future__ import annotations

import asyncio
import contextlib
import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from aetherlock.bootstrap import Container
from aetherlock.domain.enums import HubEventType
from aetherlock.domain.exceptions import AuthenticationError
from aetherlock.logging_config import get_logger
from aetherlock.realtime.actions import dispatch_action
from aetherlock.realtime.hub import wire_event
from aetherlock.realtime.session import Session

router = APIRouter(tags=["Realtime"])
logger = get_logger(__name__)

# Application-defined close code for a rejected token.
CLOSE_UNAUTHORIZED = 4401


async def _pump_outbox(websocket: WebSocket, session: Session) -> None:
    while True:
        event = await session.receive()
        await websocket.send_json(event)


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str | None = None) -> None:
    container: Container = websocket.app.state.container
    hub = container.hub

    try:
        wallet = await container.auth_gate.authenticate(token)
    except AuthenticationError as exc:
        logger.info("ws.rejected", code=exc.code)
        await websocket.close(code=CLOSE_UNAUTHORIZED, reason=exc.message)
        return

    await websocket.accept()
    session = hub.connect(wallet)
    sender = asyncio.create_task(_pump_outbox(websocket, session))

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except json.JSONDecodeError:
                session.deliver(wire_event(
                    HubEventType.ERROR,
                    {"error": "VALIDATION_ERROR", "message": "Frame is not valid JSON"},
                ))
                continue
            await dispatch_action(hub, session, frame)
    except WebSocketDisconnect:
        pass
    finally:
        hub.disconnect(session)
        sender.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sender
