"""Realtime coordination — rooms, sessions and client actions."""

from aetherlock.realtime.actions import dispatch_action
from aetherlock.realtime.hub import RealtimeHub, escrow_room, user_room
from aetherlock.realtime.session import Session

__all__ = [
    "RealtimeHub",
    "Session",
    "dispatch_action",
    "escrow_room",
    "user_room",
]
