"""Tests for inbound realtime action dispatch."""

from __future__ import annotations

import pytest
from conftest import CLIENT, FREELANCER, STRANGER

from aetherlock.domain.models import Escrow
from aetherlock.realtime import RealtimeHub, Session, dispatch_action


def _errors(session: Session) -> list[dict]:
    return [e["data"] for e in session.drain() if e["type"] == "error"]


@pytest.fixture
def client(hub: RealtimeHub) -> Session:
    return hub.connect(CLIENT)


class TestSubscribe:
    async def test_subscribe_and_unsubscribe(
        self, hub: RealtimeHub, client: Session, active_escrow: Escrow,
    ) -> None:
        frame = {"type": "subscribe_escrow", "data": {"escrowId": active_escrow.escrow_id}}
        await dispatch_action(hub, client, frame)
        assert active_escrow.escrow_id in client.escrow_rooms

        frame = {"type": "unsubscribe_escrow", "data": {"escrowId": active_escrow.escrow_id}}
        await dispatch_action(hub, client, frame)
        assert active_escrow.escrow_id not in client.escrow_rooms
        assert _errors(client) == []

    async def test_stranger_gets_error_event(self, hub: RealtimeHub, active_escrow: Escrow) -> None:
        stranger = hub.connect(STRANGER)
        frame = {"type": "subscribe_escrow", "data": {"escrowId": active_escrow.escrow_id}}

        await dispatch_action(hub, stranger, frame)

        assert _errors(stranger) == [
            {"error": "NOT_AUTHORIZED", "message": "Not a participant in this escrow"},
        ]

    async def test_unknown_escrow(self, hub: RealtimeHub, client: Session) -> None:
        await dispatch_action(hub, client, {"type": "subscribe_escrow", "data": {"escrowId": "nope"}})
        assert _errors(client)[0]["error"] == "ESCROW_NOT_FOUND"


class TestChatActions:
    async def test_chat_and_mark_read(
        self, hub: RealtimeHub, client: Session, active_escrow: Escrow,
    ) -> None:
        freelancer = hub.connect(FREELANCER)
        escrow_id = active_escrow.escrow_id
        await dispatch_action(hub, client, {"type": "subscribe_escrow", "data": {"escrowId": escrow_id}})
        await dispatch_action(hub, freelancer, {"type": "subscribe_escrow", "data": {"escrowId": escrow_id}})
        client.drain()

        await dispatch_action(hub, client, {
            "type": "chat_message", "data": {"escrowId": escrow_id, "content": "Hello"},
        })
        chat = [e for e in freelancer.drain() if e["type"] == "chat_message"][0]["data"]
        assert chat["content"] == "Hello"
        assert chat["senderId"] == CLIENT

        await dispatch_action(hub, freelancer, {
            "type": "mark_read", "data": {"escrowId": escrow_id, "messageId": chat["id"]},
        })
        assert [e["type"] for e in client.drain()] == ["chat_message", "message_read"]

    async def test_typing_actions(self, hub: RealtimeHub, client: Session, active_escrow: Escrow) -> None:
        escrow_id = active_escrow.escrow_id
        await dispatch_action(hub, client, {"type": "subscribe_escrow", "data": {"escrowId": escrow_id}})

        await dispatch_action(hub, client, {"type": "typing_start", "data": {"escrowId": escrow_id}})
        assert hub.is_typing(escrow_id, CLIENT)

        await dispatch_action(hub, client, {"type": "typing_stop", "data": {"escrowId": escrow_id}})
        assert not hub.is_typing(escrow_id, CLIENT)


class TestMalformedFrames:
    @pytest.mark.parametrize(
        "frame",
        [
            "not a dict",
            {"type": "subscribe_escrow", "data": "escrow-1"},
            {"type": "subscribe_escrow", "data": {}},
            {"type": "mark_read", "data": {"escrowId": "e", "messageId": "7"}},
            {"type": "mark_read", "data": {"escrowId": "e", "messageId": True}},
            {"type": "launch_rockets", "data": {}},
        ],
    )
    async def test_validation_error_event(self, hub: RealtimeHub, client: Session, frame) -> None:
        await dispatch_action(hub, client, frame)

        errors = _errors(client)
        assert len(errors) == 1
        assert errors[0]["error"] == "VALIDATION_ERROR"

    async def test_session_survives_errors(
        self, hub: RealtimeHub, client: Session, active_escrow: Escrow,
    ) -> None:
        await dispatch_action(hub, client, {"type": "bogus"})
        await dispatch_action(hub, client, {
            "type": "subscribe_escrow", "data": {"escrowId": active_escrow.escrow_id},
        })
        assert active_escrow.escrow_id in client.escrow_rooms
