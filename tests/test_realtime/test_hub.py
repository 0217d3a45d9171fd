"""Tests for the RealtimeHub: rooms, chat, typing and domain-event fan-out."""

from __future__ import annotations

import asyncio

import pytest
from conftest import CLIENT, FREELANCER, STRANGER

from aetherlock.domain.exceptions import (
    AuthorizationError,
    MessageNotFoundError,
    ValidationError,
)
from aetherlock.domain.models import Escrow
from aetherlock.realtime import RealtimeHub, Session


def _types(session: Session) -> list[str]:
    return [event["type"] for event in session.drain()]


def _of_type(events: list[dict], event_type: str) -> list[dict]:
    return [e for e in events if e["type"] == event_type]


@pytest.fixture
async def room(hub: RealtimeHub, active_escrow: Escrow) -> tuple[Session, Session]:
    """Client and freelancer sessions joined to the active escrow's room."""
    client = hub.connect(CLIENT)
    freelancer = hub.connect(FREELANCER)
    await hub.join(client, active_escrow.escrow_id)
    await hub.join(freelancer, active_escrow.escrow_id)
    client.drain()
    freelancer.drain()
    return client, freelancer


class TestRooms:
    async def test_join_announces_to_others(self, hub: RealtimeHub, active_escrow: Escrow) -> None:
        client = hub.connect(CLIENT)
        freelancer = hub.connect(FREELANCER)
        await hub.join(client, active_escrow.escrow_id)
        await hub.join(freelancer, active_escrow.escrow_id)

        assert _types(client) == ["user_joined"]
        assert _types(freelancer) == []
        assert len(hub.members(active_escrow.escrow_id)) == 2

    async def test_join_is_idempotent(self, hub: RealtimeHub, active_escrow: Escrow) -> None:
        client = hub.connect(CLIENT)
        await hub.join(client, active_escrow.escrow_id)
        await hub.join(client, active_escrow.escrow_id)
        assert hub.members(active_escrow.escrow_id) == {client.session_id}

    async def test_non_participant_cannot_join(self, hub: RealtimeHub, active_escrow: Escrow) -> None:
        stranger = hub.connect(STRANGER)
        with pytest.raises(AuthorizationError):
            await hub.join(stranger, active_escrow.escrow_id)
        assert hub.members(active_escrow.escrow_id) == set()

    async def test_leave(self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow) -> None:
        client, freelancer = room
        hub.leave(freelancer, active_escrow.escrow_id)
        hub.leave(freelancer, active_escrow.escrow_id)

        assert _types(client) == ["user_left"]
        assert hub.members(active_escrow.escrow_id) == {client.session_id}

    async def test_disconnect_leaves_every_room(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, freelancer = room
        hub.disconnect(freelancer)

        assert freelancer.closed
        assert _types(client) == ["user_left"]
        assert hub.stats() == {"connections": 1, "wallets": 1, "escrow_rooms": 1}

        freelancer.deliver({"type": "late", "data": {}})
        assert freelancer.drain() == []


class TestChat:
    async def test_message_persisted_and_broadcast(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, freelancer = room
        message = await hub.send_message(active_escrow.escrow_id, client, "  Hi there  ")

        assert message.content == "Hi there"
        assert message.sender_role.value == "client"

        client_events = client.drain()
        freelancer_events = freelancer.drain()
        assert [e["type"] for e in client_events] == ["chat_message"]
        assert _of_type(freelancer_events, "chat_message")[0]["data"]["id"] == message.id

        notification = _of_type(freelancer_events, "notification")[0]["data"]
        assert notification["type"] == "message_received"
        assert notification["escrowId"] == active_escrow.escrow_id

        history = await hub.get_history(active_escrow.escrow_id, FREELANCER)
        assert [m.id for m in history] == [message.id]

    async def test_room_order_matches_send_order(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, freelancer = room
        sent = [
            await hub.send_message(active_escrow.escrow_id, client, f"message {i}")
            for i in range(5)
        ]
        received = _of_type(freelancer.drain(), "chat_message")
        assert [e["data"]["id"] for e in received] == [m.id for m in sent]

    async def test_left_session_gets_nothing(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, freelancer = room
        hub.leave(freelancer, active_escrow.escrow_id)

        await hub.send_message(active_escrow.escrow_id, client, "still there?")

        assert _of_type(freelancer.drain(), "chat_message") == []

    @pytest.mark.parametrize("content", ["", "   ", None])
    async def test_empty_message_rejected(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow, content,
    ) -> None:
        client, freelancer = room
        with pytest.raises(ValidationError):
            await hub.send_message(active_escrow.escrow_id, client, content)
        assert freelancer.drain() == []

    async def test_too_long_message_rejected(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, _ = room
        with pytest.raises(ValidationError, match="too long"):
            await hub.send_message(active_escrow.escrow_id, client, "x" * 5001)

    async def test_stranger_cannot_send(self, hub: RealtimeHub, active_escrow: Escrow) -> None:
        with pytest.raises(AuthorizationError):
            await hub.send_message_as(active_escrow.escrow_id, STRANGER, "hello")


class TestReadReceipts:
    async def test_receipt_goes_to_sender(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, freelancer = room
        message = await hub.send_message(active_escrow.escrow_id, client, "Please review")
        client.drain()

        updated = await hub.mark_read(active_escrow.escrow_id, message.id, FREELANCER)

        assert updated.read is True
        receipts = _of_type(client.drain(), "message_read")
        assert receipts[0]["data"] == {"escrowId": active_escrow.escrow_id, "messageId": message.id}

    async def test_second_mark_read_sends_no_receipt(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, _ = room
        message = await hub.send_message(active_escrow.escrow_id, client, "Ping")
        await hub.mark_read(active_escrow.escrow_id, message.id, FREELANCER)
        client.drain()

        again = await hub.mark_read(active_escrow.escrow_id, message.id, FREELANCER)

        assert again.read is True
        assert client.drain() == []

    async def test_concurrent_mark_read_sends_one_receipt(
        self,
        hub: RealtimeHub,
        container,
        room: tuple[Session, Session],
        active_escrow: Escrow,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        client, _ = room
        message = await hub.send_message(active_escrow.escrow_id, client, "Ping")
        client.drain()

        store = container.message_store
        original_get = store.get

        async def slow_get(escrow_id: str, message_id: int):
            found = await original_get(escrow_id, message_id)
            await asyncio.sleep(0.01)
            return found

        monkeypatch.setattr(store, "get", slow_get)

        results = await asyncio.gather(
            hub.mark_read(active_escrow.escrow_id, message.id, FREELANCER),
            hub.mark_read(active_escrow.escrow_id, message.id, FREELANCER),
        )

        assert all(m.read for m in results)
        assert len(_of_type(client.drain(), "message_read")) == 1

    async def test_cannot_mark_own_message(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, _ = room
        message = await hub.send_message(active_escrow.escrow_id, client, "Mine")
        with pytest.raises(ValidationError):
            await hub.mark_read(active_escrow.escrow_id, message.id, CLIENT)

    async def test_unknown_message(self, hub: RealtimeHub, active_escrow: Escrow) -> None:
        with pytest.raises(MessageNotFoundError):
            await hub.mark_read(active_escrow.escrow_id, 999, FREELANCER)

    async def test_unread_count(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, freelancer = room
        first = await hub.send_message(active_escrow.escrow_id, client, "one")
        await hub.send_message(active_escrow.escrow_id, client, "two")
        await hub.send_message(active_escrow.escrow_id, freelancer, "reply")

        assert await hub.unread_count(FREELANCER) == 2
        assert await hub.unread_count(CLIENT) == 1

        await hub.mark_read(active_escrow.escrow_id, first.id, FREELANCER)
        assert await hub.unread_count(FREELANCER) == 1


class TestHistory:
    async def test_limit_keeps_newest(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, _ = room
        for i in range(4):
            await hub.send_message(active_escrow.escrow_id, client, f"m{i}")

        history = await hub.get_history(active_escrow.escrow_id, CLIENT, limit=2)
        assert [m.content for m in history] == ["m2", "m3"]

    async def test_stranger_cannot_read(self, hub: RealtimeHub, active_escrow: Escrow) -> None:
        with pytest.raises(AuthorizationError):
            await hub.get_history(active_escrow.escrow_id, STRANGER)


class TestTyping:
    async def test_start_broadcasts_once(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, freelancer = room
        hub.typing_start(active_escrow.escrow_id, client)
        hub.typing_start(active_escrow.escrow_id, client)

        assert _types(freelancer) == ["typing_start"]
        assert _types(client) == []
        assert hub.is_typing(active_escrow.escrow_id, CLIENT)

    async def test_expires_after_timeout(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, freelancer = room
        hub.typing_start(active_escrow.escrow_id, client)
        await asyncio.sleep(0.15)

        assert _types(freelancer) == ["typing_start", "typing_stop"]
        assert not hub.is_typing(active_escrow.escrow_id, CLIENT)

    async def test_stop_cancels_timer(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, freelancer = room
        hub.typing_start(active_escrow.escrow_id, client)
        hub.typing_stop(active_escrow.escrow_id, client)
        await asyncio.sleep(0.15)

        assert _types(freelancer) == ["typing_start", "typing_stop"]

    async def test_sending_clears_typing(
        self, hub: RealtimeHub, room: tuple[Session, Session], active_escrow: Escrow,
    ) -> None:
        client, freelancer = room
        hub.typing_start(active_escrow.escrow_id, client)
        await hub.send_message(active_escrow.escrow_id, client, "done typing")

        types = _types(freelancer)
        assert types.index("typing_stop") < types.index("chat_message")
        assert not hub.is_typing(active_escrow.escrow_id, CLIENT)

    async def test_ignored_outside_room(self, hub: RealtimeHub, active_escrow: Escrow) -> None:
        client = hub.connect(CLIENT)
        hub.typing_start(active_escrow.escrow_id, client)
        assert not hub.is_typing(active_escrow.escrow_id, CLIENT)


class TestDomainEvents:
    async def test_offer_notifies_freelancer(self, hub: RealtimeHub, manager, sample_escrow_data: dict) -> None:
        freelancer = hub.connect(FREELANCER)

        escrow = await manager.create_escrow(**sample_escrow_data)

        events = freelancer.drain()
        assert events[0]["type"] == "notification"
        assert events[0]["data"]["type"] == "escrow_offer"
        assert events[0]["data"]["escrowId"] == escrow.escrow_id

    async def test_status_change_reaches_room_and_parties(
        self, hub: RealtimeHub, manager, pending_escrow: Escrow,
    ) -> None:
        client = hub.connect(CLIENT)
        await hub.join(client, pending_escrow.escrow_id)

        await manager.accept(pending_escrow.escrow_id, FREELANCER)

        events = client.drain()
        update = _of_type(events, "escrow_update")[0]["data"]
        assert update["status"] == "ACTIVE"
        assert update["message"] == "Escrow accepted by freelancer"
        assert _of_type(events, "notification")[0]["data"]["type"] == "escrow_update"

    async def test_verification_result_is_broadcast(
        self, hub: RealtimeHub, manager, reviewing_escrow: Escrow,
    ) -> None:
        freelancer = hub.connect(FREELANCER)
        await hub.join(freelancer, reviewing_escrow.escrow_id)

        await manager.verify(reviewing_escrow.escrow_id)

        updates = _of_type(freelancer.drain(), "escrow_update")
        assert updates[0]["data"]["verification"]["passed"] is True
        assert updates[0]["data"]["status"] == "VERIFIED"

    async def test_dispute_notifies_counterparty(
        self, hub: RealtimeHub, manager, reviewing_escrow: Escrow,
    ) -> None:
        freelancer = hub.connect(FREELANCER)

        await manager.open_dispute(reviewing_escrow.escrow_id, CLIENT, "Work is incomplete")

        notes = [e["data"] for e in _of_type(freelancer.drain(), "notification")]
        dispute = [n for n in notes if n["type"] == "dispute_opened"]
        assert dispute[0]["message"] == "Work is incomplete"
