"""Tests for the live-chat queue and agent presence."""

import pytest

from supportdesk.escalation.queue import (
    AgentNotFoundError,
    InvalidStatusError,
    InvalidTransitionError,
    QueueService,
    check_transition,
)
from supportdesk.escalation.service import EscalationRequest, EscalationService
from supportdesk.models import AgentPresence, ChatMessage, QueueEntry


def _open_case(seeded, db, name):
    session_id = seeded.new_chat_session()
    created = EscalationService(db).create(
        EscalationRequest(
            business_id=seeded.business_id,
            session_id=session_id,
            customer_name=name,
            customer_email=f"{name.lower()}@example.com",
        )
    )
    db.commit()
    return created


def _available(db, seeded, agent):
    svc = QueueService(db)
    svc.set_agent_status(seeded.agents[agent], seeded.business_id, "available")
    db.commit()
    return svc


def test_transitions_only_move_forward():
    check_transition("waiting", "assigned")
    check_transition("assigned", "completed")
    check_transition("assigned", "cancelled")
    for current, target in [("assigned", "waiting"), ("completed", "assigned"), ("waiting", "completed")]:
        with pytest.raises(InvalidTransitionError):
            check_transition(current, target)


def test_fifo_assignment_follows_request_order(seeded, db):
    first = _open_case(seeded, db, "First")
    second = _open_case(seeded, db, "Second")

    svc = _available(db, seeded, "alice")

    assert svc.waiting(seeded.business_id)[0].escalation_id == second.escalation.id
    entry = db.get(QueueEntry, first.queue_entry.id)
    assert entry.status == "assigned"
    assert entry.agent_id == seeded.agents["alice"]
    presence = db.query(AgentPresence).filter_by(agent_id=seeded.agents["alice"]).one()
    assert presence.status == "in-chat"


def test_assignment_announces_and_writes_system_messages(seeded, db):
    created = _open_case(seeded, db, "Dana")
    svc = _available(db, seeded, "alice")

    events = [(room, event) for room, event, _ in svc.outbox.events]
    chat = f"chat_{created.escalation.id}"
    assert (chat, "chat_assigned") in events
    assert (f"status_{seeded.business_id}", "chat_assigned") in events
    assert events.count((chat, "system_message")) == 2
    assert svc.outbox.joins == [(str(seeded.business_id), str(seeded.agents["alice"]), chat)]

    texts = [
        m.message
        for m in db.query(ChatMessage).filter_by(escalation_id=created.escalation.id).order_by(ChatMessage.created_at)
    ]
    assert texts == ["Alice has joined the chat", "Chat session has started"]


def test_longest_idle_agent_is_picked_first(seeded, db):
    _available(db, seeded, "bob")
    _available(db, seeded, "alice")

    created = _open_case(seeded, db, "Dana")

    assert created.assignments[0].agent_id == seeded.agents["bob"]


def test_a_claimed_entry_is_never_claimed_twice(seeded, db, session_factory):
    created = _open_case(seeded, db, "Dana")
    svc = QueueService(db)
    entry = svc.waiting(seeded.business_id)[0]

    with session_factory() as other:
        other_entry = other.get(QueueEntry, entry.id)
        assert QueueService(other)._claim(other_entry, seeded.agents["alice"]) is True
        other.commit()

    assert svc._claim(entry, seeded.agents["bob"]) is False
    assert entry.agent_id == seeded.agents["alice"]
    assert created.escalation.id == entry.escalation_id


def test_complete_frees_agent_and_serves_next_customer(seeded, db):
    first = _open_case(seeded, db, "First")
    second = _open_case(seeded, db, "Second")
    _available(db, seeded, "alice")

    svc = QueueService(db)
    completed = svc.complete(first.queue_entry.id)
    db.commit()

    assert completed.status == "completed"
    assert completed.completed_at is not None
    nxt = db.get(QueueEntry, second.queue_entry.id)
    assert nxt.status == "assigned" and nxt.agent_id == seeded.agents["alice"]
    names = [event for _, event, _ in svc.outbox.events]
    assert "chat_ended" in names
    assert "agent_status_update" in names
    ended = db.query(ChatMessage).filter_by(system_message_type="chat_ended").one()
    assert ended.message == "Alice has ended the chat session. Thank you for contacting us!"

    with pytest.raises(InvalidTransitionError):
        svc.complete(first.queue_entry.id)


def test_cancel_waiting_entry(seeded, db):
    created = _open_case(seeded, db, "Dana")
    svc = QueueService(db)

    cancelled = svc.cancel(created.queue_entry.id)

    assert cancelled.status == "cancelled"
    assert svc.waiting(seeded.business_id) == []


def test_enqueue_never_creates_a_second_open_entry(seeded, db):
    created = _open_case(seeded, db, "Dana")
    svc = QueueService(db)

    again = svc.enqueue(created.escalation)

    assert again.id == created.queue_entry.id
    assert db.query(QueueEntry).count() == 1


def test_agent_status_validation(seeded, db):
    svc = QueueService(db)

    with pytest.raises(InvalidStatusError):
        svc.set_agent_status(seeded.agents["alice"], seeded.business_id, "sleeping")
    with pytest.raises(AgentNotFoundError):
        svc.set_agent_status(seeded.agents["carol"], seeded.business_id, "available")

    svc.set_agent_status(seeded.agents["alice"], seeded.business_id, "away")
    svc.set_agent_status(seeded.agents["alice"], seeded.business_id, "online")
    rows = svc.agent_statuses(seeded.business_id)
    assert [(p.status, a.name) for p, a in rows] == [("online", "Alice")]
