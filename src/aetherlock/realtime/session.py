"""A connected realtime client.

The hub writes wire events into the session's outbox; the socket handler
reads them out in order and forwards them to the client.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import Any


class Session:
    """One connection of one authenticated wallet."""

    def __init__(self, wallet_address: str, session_id: str | None = None) -> None:
        self.session_id = session_id or uuid.uuid4().hex
        self.wallet_address = wallet_address
        self.escrow_rooms: set[str] = set()
        self.closed = False
        self._outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def deliver(self, event: dict[str, Any]) -> None:
        """Enqueue an event. Events for a closed session are dropped."""
        if not self.closed:
            self._outbox.put_nowait(event)

    async def receive(self) -> dict[str, Any]:
        return await self._outbox.get()

    def drain(self) -> list[dict[str, Any]]:
        """Pop every queued event without waiting."""
        events = []
        while not self._outbox.empty():
            events.append(self._outbox.get_nowait())
        return events

    def close(self) -> None:
        self.closed = True

    def __repr__(self) -> str:
        return f"<Session {self.session_id[:8]} wallet={self.wallet_address[:8]}...>"
