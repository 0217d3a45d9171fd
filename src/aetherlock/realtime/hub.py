"""Realtime coordination hub.

Room-based publish/subscribe for connected parties:
    - escrow:{escrow_id}  chat, typing, presence and escrow updates
    - user:{wallet}       personal notifications and read receipts

The hub owns the room mapping; the socket layer only moves bytes. Publishing
enqueues to every member synchronously, so events published to one room
reach each member in publish order. Chat messages are persisted before they
are broadcast.

The hub subscribes to the domain EventBus and turns lifecycle events into
escrow_update and notification events. It never authorizes transitions.
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from aetherlock.domain.enums import (
    DomainEventType,
    HubEventType,
    NotificationType,
)
from aetherlock.domain.events import DomainEvent
from aetherlock.domain.exceptions import (
    AuthorizationError,
    MessageNotFoundError,
    ValidationError,
)
from aetherlock.domain.models import Message
from aetherlock.domain.ports import MessageStore
from aetherlock.logging_config import get_logger, short_wallet
from aetherlock.realtime.session import Session
from aetherlock.services.auth_gate import AuthGate, EscrowParties

logger = get_logger(__name__)

MAX_HISTORY_LIMIT = 200


def escrow_room(escrow_id: str) -> str:
    return f"escrow:{escrow_id}"


def user_room(wallet: str) -> str:
    return f"user:{wallet}"


def wire_event(event_type: HubEventType | str, data: dict[str, Any]) -> dict[str, Any]:
    return {"type": str(event_type), "data": data}


class RealtimeHub:
    """Fans out escrow events and chat traffic to connected sessions."""

    def __init__(
        self,
        auth_gate: AuthGate,
        message_store: MessageStore,
        *,
        max_message_length: int = 5000,
        typing_timeout: float = 3.0,
        history_limit: int = 50,
    ) -> None:
        self._auth = auth_gate
        self._messages = message_store
        self._max_length = max_message_length
        self._typing_timeout = typing_timeout
        self._history_limit = history_limit
        self._sessions: dict[str, Session] = {}
        self._rooms: dict[str, set[str]] = {}
        self._typing: dict[tuple[str, str], asyncio.TimerHandle] = {}

    # ------------------------------------------------------------------
    # Connections and rooms
    # ------------------------------------------------------------------

    def connect(self, wallet: str) -> Session:
        """Register a session for an authenticated wallet."""
        session = Session(wallet)
        self._sessions[session.session_id] = session
        self._rooms.setdefault(user_room(wallet), set()).add(session.session_id)
        logger.info(
            "hub.session_connected",
            session_id=session.session_id,
            wallet=short_wallet(wallet),
        )
        return session

    def disconnect(self, session: Session) -> None:
        """Leave every room and drop the session."""
        for escrow_id in list(session.escrow_rooms):
            self.leave(session, escrow_id)

        personal = self._rooms.get(user_room(session.wallet_address))
        if personal is not None:
            personal.discard(session.session_id)
            if not personal:
                del self._rooms[user_room(session.wallet_address)]

        self._sessions.pop(session.session_id, None)
        session.close()
        logger.info(
            "hub.session_disconnected",
            session_id=session.session_id,
            wallet=short_wallet(session.wallet_address),
        )

    async def join(self, session: Session, escrow_id: str) -> None:
        """Subscribe a session to an escrow room. Participants only; idempotent."""
        role = await self._auth.is_participant(escrow_id, session.wallet_address)
        if role is None:
            raise AuthorizationError("Not a participant in this escrow")

        if escrow_id in session.escrow_rooms:
            return

        self._rooms.setdefault(escrow_room(escrow_id), set()).add(session.session_id)
        session.escrow_rooms.add(escrow_id)
        self.publish(
            escrow_id,
            HubEventType.USER_JOINED,
            {"escrowId": escrow_id, "walletAddress": session.wallet_address},
            exclude_session=session.session_id,
        )
        logger.info(
            "hub.room_joined",
            escrow_id=escrow_id,
            wallet=short_wallet(session.wallet_address),
            role=role.value,
        )

    def leave(self, session: Session, escrow_id: str) -> None:
        """Unsubscribe a session from an escrow room. Idempotent."""
        if escrow_id not in session.escrow_rooms:
            return

        session.escrow_rooms.discard(escrow_id)
        members = self._rooms.get(escrow_room(escrow_id))
        if members is not None:
            members.discard(session.session_id)

        self._clear_typing(escrow_id, session.wallet_address, session.session_id)
        self.publish(
            escrow_id,
            HubEventType.USER_LEFT,
            {"escrowId": escrow_id, "walletAddress": session.wallet_address},
            exclude_session=session.session_id,
        )
        logger.info("hub.room_left", escrow_id=escrow_id, wallet=short_wallet(session.wallet_address))

    def members(self, escrow_id: str) -> set[str]:
        return set(self._rooms.get(escrow_room(escrow_id), ()))

    # ------------------------------------------------------------------
    # Fan-out
    # ------------------------------------------------------------------

    def publish(
        self,
        escrow_id: str,
        event_type: HubEventType | str,
        payload: dict[str, Any],
        *,
        exclude_session: str | None = None,
    ) -> int:
        """Deliver an event to every member of the escrow room.

        Returns the number of sessions the event was delivered to.
        """
        return self._fanout(escrow_room(escrow_id), wire_event(event_type, payload), exclude_session)

    def notify(self, wallet: str, payload: dict[str, Any]) -> int:
        """Send a personal notification to every session of a wallet."""
        return self._fanout(user_room(wallet), wire_event(HubEventType.NOTIFICATION, payload))

    def _send_to_user(self, wallet: str, event_type: HubEventType, payload: dict[str, Any]) -> int:
        return self._fanout(user_room(wallet), wire_event(event_type, payload))

    def _fanout(
        self,
        room: str,
        event: dict[str, Any],
        exclude_session: str | None = None,
    ) -> int:
        delivered = 0
        for session_id in list(self._rooms.get(room, ())):
            if session_id == exclude_session:
                continue
            session = self._sessions.get(session_id)
            if session is None:
                continue
            session.deliver(event)
            delivered += 1
        return delivered

    # ------------------------------------------------------------------
    # Chat
    # ------------------------------------------------------------------

    async def send_message(self, escrow_id: str, session: Session, content: str) -> Message:
        """Persist a chat message, then broadcast it to the room."""
        if not isinstance(content, str) or not content.strip():
            raise ValidationError("Message content cannot be empty", field="content")
        if len(content) > self._max_length:
            raise ValidationError(
                f"Message too long (max {self._max_length} characters)", field="content",
            )

        wallet = session.wallet_address
        parties = await self._auth.parties(escrow_id)
        role = parties.role_of(wallet)
        if role is None:
            raise AuthorizationError("Not a participant in this escrow")

        message = await self._messages.append(escrow_id, wallet, role.value, content.strip())

        self._clear_typing(escrow_id, wallet, session.session_id)
        self.publish(escrow_id, HubEventType.CHAT_MESSAGE, message.to_wire())

        counterparty = parties.counterparty(wallet)
        if counterparty:
            self.notify(counterparty, {
                "type": NotificationType.MESSAGE_RECEIVED.value,
                "title": "New Message",
                "message": f"New message in escrow: {parties.title or escrow_id}",
                "escrowId": escrow_id,
            })

        logger.info(
            "hub.message_sent",
            escrow_id=escrow_id,
            message_id=message.id,
            sender=short_wallet(wallet),
        )
        return message

    async def send_message_as(self, escrow_id: str, wallet: str, content: str) -> Message:
        """Send a chat message on behalf of a wallet with no live session (HTTP path)."""
        return await self.send_message(escrow_id, Session(wallet), content)

    async def mark_read(self, escrow_id: str, message_id: int, wallet: str) -> Message:
        """Mark a received message as read and send the sender a read receipt."""
        role = await self._auth.is_participant(escrow_id, wallet)
        if role is None:
            raise AuthorizationError("Not a participant in this escrow")

        message = await self._messages.get(escrow_id, message_id)
        if message is None:
            raise MessageNotFoundError(message_id)
        if message.sender_address == wallet:
            raise ValidationError("Cannot mark own message as read", field="messageId")
        if message.read:
            return message

        message, flipped = await self._messages.mark_read(escrow_id, message_id)
        if not flipped:
            return message
        self._send_to_user(
            message.sender_address,
            HubEventType.MESSAGE_READ,
            {"escrowId": escrow_id, "messageId": message.id},
        )
        logger.debug("hub.message_read", escrow_id=escrow_id, message_id=message_id)
        return message

    async def get_history(
        self,
        escrow_id: str,
        wallet: str,
        limit: int | None = None,
        before: datetime | None = None,
    ) -> list[Message]:
        """Chronological chat history, newest `limit` messages before the cursor."""
        role = await self._auth.is_participant(escrow_id, wallet)
        if role is None:
            raise AuthorizationError("Not a participant in this escrow")

        limit = self._history_limit if limit is None else limit
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        return await self._messages.list_for_escrow(escrow_id, limit=limit, before=before)

    async def unread_count(self, wallet: str) -> int:
        escrow_ids = await self._auth.escrow_ids_for(wallet)
        return await self._messages.count_unread(wallet, escrow_ids)

    # ------------------------------------------------------------------
    # Typing indicators (ephemeral, best effort)
    # ------------------------------------------------------------------

    def typing_start(self, escrow_id: str, session: Session) -> None:
        if escrow_id not in session.escrow_rooms:
            return

        key = (escrow_id, session.wallet_address)
        existing = self._typing.pop(key, None)
        if existing is not None:
            existing.cancel()
        else:
            self.publish(
                escrow_id,
                HubEventType.TYPING_START,
                {"escrowId": escrow_id, "walletAddress": session.wallet_address},
                exclude_session=session.session_id,
            )

        loop = asyncio.get_running_loop()
        self._typing[key] = loop.call_later(
            self._typing_timeout, self._expire_typing, escrow_id, session.wallet_address,
        )

    def typing_stop(self, escrow_id: str, session: Session) -> None:
        if escrow_id not in session.escrow_rooms:
            return
        self._clear_typing(escrow_id, session.wallet_address, session.session_id)

    def is_typing(self, escrow_id: str, wallet: str) -> bool:
        return (escrow_id, wallet) in self._typing

    def _expire_typing(self, escrow_id: str, wallet: str) -> None:
        if self._typing.pop((escrow_id, wallet), None) is None:
            return
        self.publish(
            escrow_id,
            HubEventType.TYPING_STOP,
            {"escrowId": escrow_id, "walletAddress": wallet},
        )

    def _clear_typing(self, escrow_id: str, wallet: str, session_id: str | None = None) -> None:
        handle = self._typing.pop((escrow_id, wallet), None)
        if handle is None:
            return
        handle.cancel()
        self.publish(
            escrow_id,
            HubEventType.TYPING_STOP,
            {"escrowId": escrow_id, "walletAddress": wallet},
            exclude_session=session_id,
        )

    # ------------------------------------------------------------------
    # Domain events
    # ------------------------------------------------------------------

    async def handle_domain_event(self, event: DomainEvent) -> None:
        """EventBus subscriber: turn lifecycle events into wire events."""
        parties = EscrowParties(
            escrow_id=event.escrow_id,
            client_address=event.client_address,
            freelancer_address=event.freelancer_address,
        )
        payload = event.payload

        if event.type is DomainEventType.ESCROW_CREATED:
            if event.freelancer_address:
                self.notify(event.freelancer_address, {
                    "type": NotificationType.ESCROW_OFFER.value,
                    "title": "New Escrow Offer",
                    "message": f"You have been invited to escrow: {payload.get('title', '')}",
                    "escrowId": event.escrow_id,
                })

        elif event.type is DomainEventType.STATUS_CHANGED:
            self.publish(event.escrow_id, HubEventType.ESCROW_UPDATE, {
                "escrowId": event.escrow_id,
                "status": payload["toStatus"],
                "message": payload["reason"],
            })
            for wallet in parties.wallets:
                self.notify(wallet, {
                    "type": NotificationType.ESCROW_UPDATE.value,
                    "title": "Escrow Updated",
                    "message": payload["reason"],
                    "escrowId": event.escrow_id,
                })

        elif event.type is DomainEventType.VERIFICATION_COMPLETE:
            passed = payload["passed"]
            self.publish(event.escrow_id, HubEventType.ESCROW_UPDATE, {
                "escrowId": event.escrow_id,
                "status": "VERIFIED" if passed else "AI_REVIEWING",
                "message": "AI verification complete",
                "verification": {
                    "passed": passed,
                    "confidence": payload["confidence"],
                    "feedback": payload["feedback"],
                },
            })
            outcome = "passed" if passed else "did not pass"
            for wallet in parties.wallets:
                self.notify(wallet, {
                    "type": NotificationType.VERIFICATION_COMPLETE.value,
                    "title": "AI Verification Complete",
                    "message": f"Verification {outcome} with {payload['confidence']}% confidence",
                    "escrowId": event.escrow_id,
                })

        elif event.type is DomainEventType.DISPUTE_OPENED:
            counterparty = parties.counterparty(payload.get("initiatorAddress", ""))
            if counterparty:
                self.notify(counterparty, {
                    "type": NotificationType.DISPUTE_OPENED.value,
                    "title": "Dispute Opened",
                    "message": payload.get("reason", ""),
                    "escrowId": event.escrow_id,
                })

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> dict[str, int]:
        escrow_rooms = [r for r, m in self._rooms.items() if r.startswith("escrow:") and m]
        return {
            "connections": len(self._sessions),
            "wallets": len({s.wallet_address for s in self._sessions.values()}),
            "escrow_rooms": len(escrow_rooms),
        }
