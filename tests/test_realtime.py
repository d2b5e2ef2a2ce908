"""Tests for the room hub, the message router and chat message delivery."""

import asyncio
import uuid

import pytest
from conftest import RecordingConnection

from supportdesk.conversations.repository import EscalationNotFoundError, SessionNotFoundError
from supportdesk.escalation.service import EscalationRequest, EscalationService
from supportdesk.models import ChatMessage
from supportdesk.realtime.hub import RoomHub, chat_room, status_room
from supportdesk.realtime.router import MessageRouter, Outbox, post_chat_message


def test_emit_reaches_room_members_only():
    hub = RoomHub()
    inside, outside = RecordingConnection(), RecordingConnection()
    hub.join(inside, "chat_1")

    delivered = asyncio.run(hub.emit("chat_1", "receive_message", {"message": "hi"}))

    assert delivered == 1
    assert inside.frames == [{"event": "receive_message", "data": {"message": "hi"}}]
    assert outside.frames == []


def test_emit_can_skip_the_sender():
    hub = RoomHub()
    sender, peer = RecordingConnection(), RecordingConnection()
    hub.join(sender, "chat_1")
    hub.join(peer, "chat_1")

    asyncio.run(hub.emit("chat_1", "typing", {}, exclude=sender))

    assert sender.frames == [] and peer.names() == ["typing"]


def test_failed_send_drops_the_connection():
    hub = RoomHub()
    broken = RecordingConnection(fail=True)
    hub.join(broken, "chat_1")
    hub.join(broken, "status_1")

    assert asyncio.run(hub.emit("chat_1", "receive_message", {})) == 0
    assert hub.rooms_of(broken) == []


def test_leave_all_returns_rooms_left():
    hub = RoomHub()
    conn = RecordingConnection()
    hub.join(conn, "a")
    hub.join(conn, "b")

    assert sorted(hub.leave_all(conn)) == ["a", "b"]
    assert hub.rooms_of(conn) == []
    assert asyncio.run(hub.emit("a", "typing", {})) == 0


def test_presence_is_announced_and_cleared_on_disconnect():
    router = MessageRouter()
    agent, dashboard = RecordingConnection(), RecordingConnection()
    router.hub.join(dashboard, status_room("biz"))

    async def scenario():
        await router.agent_online("biz", "agent-1", agent)
        assert router.online_agents("biz") == ["agent-1"]
        await router.disconnect(agent)

    asyncio.run(scenario())

    assert router.agent_connection("biz", "agent-1") is None
    presence = [frame["data"] for frame in dashboard.events("agent_presence")]
    assert presence == [
        {"agentId": "agent-1", "connected": True},
        {"agentId": "agent-1", "connected": False},
    ]


def test_dispatch_joins_live_agents_then_emits_in_order():
    router = MessageRouter()
    agent = RecordingConnection()
    outbox = Outbox()
    outbox.join_agent("biz", "agent-1", chat_room("esc"))
    outbox.join_agent("biz", "agent-offline", chat_room("esc"))
    outbox.emit(chat_room("esc"), "chat_assigned", {"n": 1})
    outbox.emit(chat_room("esc"), "system_message", {"n": 2})

    async def scenario():
        await router.agent_online("biz", "agent-1", agent)
        await router.dispatch(outbox)

    asyncio.run(scenario())

    assert agent.names() == ["agent_presence", "chat_assigned", "system_message"]
    assert not outbox


def test_post_chat_message_broadcasts_to_the_case_room(seeded, db):
    session_id = seeded.new_chat_session()
    escalation = EscalationService(db).create(
        EscalationRequest(
            business_id=seeded.business_id,
            session_id=session_id,
            customer_name="Dana",
            customer_email="dana@example.com",
        )
    ).escalation
    db.commit()
    router = MessageRouter()
    listener = RecordingConnection()
    router.hub.join(listener, chat_room(escalation.id))

    record, room = asyncio.run(
        post_chat_message(
            db,
            router,
            business_id=seeded.business_id,
            session_id=session_id,
            message="Is anyone there?",
            sender_type="customer",
        )
    )

    assert room == chat_room(escalation.id)
    assert record.escalation_id == escalation.id
    frame = listener.events("receive_message")[0]
    assert frame["data"]["message"] == "Is anyone there?"
    assert frame["data"]["senderType"] == "customer"


def test_post_chat_message_without_room_is_stored_but_not_sent(seeded, db):
    session_id = seeded.new_chat_session()
    router = MessageRouter()

    record, room = asyncio.run(
        post_chat_message(
            db,
            router,
            business_id=seeded.business_id,
            session_id=session_id,
            message="Hello?",
            sender_type="customer",
        )
    )

    assert room is None
    assert record.id is not None


def _post(db, router, business_id, session_id, escalation_id=None):
    return asyncio.run(
        post_chat_message(
            db,
            router,
            business_id=business_id,
            session_id=session_id,
            message="Hello?",
            sender_type="customer",
            escalation_id=escalation_id,
        )
    )


def test_post_chat_message_checks_session_and_case_ownership(seeded, db):
    offline_session = seeded.new_chat_session(seeded.offline_business_id)
    offline_case = EscalationService(db).create(
        EscalationRequest(
            business_id=seeded.offline_business_id,
            session_id=offline_session,
            customer_name="Dana",
            customer_email="dana@example.com",
        )
    ).escalation
    db.commit()
    router = MessageRouter()
    listener = RecordingConnection()
    router.hub.join(listener, chat_room(offline_case.id))
    own_session = seeded.new_chat_session()

    with pytest.raises(SessionNotFoundError):
        _post(db, router, seeded.business_id, uuid.uuid4())
    with pytest.raises(SessionNotFoundError):
        _post(db, router, seeded.business_id, offline_session)
    with pytest.raises(EscalationNotFoundError):
        _post(db, router, seeded.business_id, own_session, escalation_id=offline_case.id)

    assert listener.frames == []
    assert db.query(ChatMessage).filter_by(message="Hello?").count() == 0
