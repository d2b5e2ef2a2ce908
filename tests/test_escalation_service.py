"""Tests for :mod:`supportdesk.escalation.service` and case lookup."""

import itertools
import uuid

import pytest

from supportdesk.escalation.cases import CaseLookup
from supportdesk.escalation.queue import AgentNotFoundError, InvalidStatusError, QueueService
from supportdesk.escalation.service import (
    BusinessNotFoundError,
    CaseNumberUnavailableError,
    EscalationRequest,
    EscalationService,
    EscalationValidationError,
    SessionNotFoundError,
)
from supportdesk.models import Escalation, Notification, QueueEntry


def _request(seeded, session_id, business_id=None, **overrides):
    values = dict(
        business_id=business_id or seeded.business_id,
        session_id=session_id,
        customer_name="Dana Customer",
        customer_email="dana@example.com",
        customer_phone="555-0100",
        concern="Order problem",
        description="My backpack has a torn strap.",
    )
    values.update(overrides)
    return EscalationRequest(**values)


def _numbers(*values):
    iterator = iter(values)
    return lambda: next(iterator)


def test_create_with_live_chat_queues_and_logs(seeded, db):
    session_id = seeded.new_chat_session()
    svc = EscalationService(db, number_factory=_numbers("482910"))

    created = svc.create(_request(seeded, session_id))
    db.commit()

    escalation = created.escalation
    assert escalation.case_number == "482910"
    assert escalation.status == "escalated"
    assert created.live_chat_enabled is True
    assert created.queue_entry is not None and created.queue_entry.status == "waiting"
    assert created.assignments == []
    assert [a.action for a in svc.activity(escalation.id)] == ["Case Created"]
    assert db.query(Notification).filter_by(escalation_id=escalation.id).count() == 1
    events = [(room, event) for room, event, _ in svc.outbox.events]
    assert (f"notifications_{seeded.business_id}", "new_notification") in events
    assert (f"status_{seeded.business_id}", "queue_updated") in events


def test_create_without_live_chat_is_a_form_submission(seeded, db):
    session_id = seeded.new_chat_session(seeded.offline_business_id)
    svc = EscalationService(db)

    created = svc.create(_request(seeded, session_id, business_id=seeded.offline_business_id))
    db.commit()

    assert created.live_chat_enabled is False
    assert created.queue_entry is None
    assert len(created.escalation.case_number) == 6
    assert db.query(QueueEntry).count() == 0


def test_create_assigns_immediately_when_an_agent_is_available(seeded, db):
    QueueService(db).set_agent_status(seeded.agents["alice"], seeded.business_id, "available")
    db.commit()
    session_id = seeded.new_chat_session()
    svc = EscalationService(db)

    created = svc.create(_request(seeded, session_id))
    db.commit()

    assert [a.agent_id for a in created.assignments] == [seeded.agents["alice"]]
    assert created.queue_entry.status == "assigned"


def test_precheck_skips_numbers_already_in_use(seeded, db):
    first = EscalationService(db, number_factory=_numbers("111111"))
    first.create(_request(seeded, seeded.new_chat_session()))
    db.commit()

    second = EscalationService(db, number_factory=_numbers("111111", "222222"))
    created = second.create(_request(seeded, seeded.new_chat_session()))
    db.commit()

    assert created.escalation.case_number == "222222"


def test_insert_collision_is_retried_with_a_new_number(seeded, db, monkeypatch):
    EscalationService(db, number_factory=_numbers("111111")).create(
        _request(seeded, seeded.new_chat_session())
    )
    db.commit()

    svc = EscalationService(db, number_factory=_numbers("111111", "333333"))
    # Simulate a concurrent insert that slipped past the pre-check.
    monkeypatch.setattr(svc, "_case_number_taken", lambda number: False)
    created = svc.create(_request(seeded, seeded.new_chat_session()))
    db.commit()

    numbers = sorted(e.case_number for e in db.query(Escalation))
    assert created.escalation.case_number == "333333"
    assert numbers == ["111111", "333333"]


def test_gives_up_when_every_number_is_taken(seeded, db):
    EscalationService(db, number_factory=_numbers("111111")).create(
        _request(seeded, seeded.new_chat_session())
    )
    db.commit()

    svc = EscalationService(db, number_factory=itertools.repeat("111111").__next__, max_attempts=3)
    with pytest.raises(CaseNumberUnavailableError):
        svc.create(_request(seeded, seeded.new_chat_session()))


def test_create_validates_and_checks_ownership(seeded, db):
    svc = EscalationService(db)
    session_id = seeded.new_chat_session()

    with pytest.raises(EscalationValidationError, match="customerEmail"):
        svc.create(_request(seeded, session_id, customer_email=" "))
    with pytest.raises(SessionNotFoundError):
        svc.create(_request(seeded, seeded.new_chat_session(seeded.offline_business_id)))
    with pytest.raises(BusinessNotFoundError):
        svc.create(_request(seeded, session_id, business_id=uuid.uuid4()))


def test_status_changes_are_logged(seeded, db):
    svc = EscalationService(db)
    escalation = svc.create(_request(seeded, seeded.new_chat_session())).escalation

    svc.update_status(escalation.id, "pending")
    with pytest.raises(InvalidStatusError):
        svc.update_status(escalation.id, "closed")

    details = [a.details for a in svc.activity(escalation.id) if a.action == "Change Status"]
    assert details == ["Set status from Escalated to Pending."]


def test_case_owner_assign_and_unassign(seeded, db):
    svc = EscalationService(db)
    escalation = svc.create(_request(seeded, seeded.new_chat_session())).escalation

    svc.update_case_owner(escalation.id, str(seeded.agents["bob"]))
    assert escalation.case_owner_id == seeded.agents["bob"]
    svc.update_case_owner(escalation.id, "")
    assert escalation.case_owner_id is None
    with pytest.raises(AgentNotFoundError):
        svc.update_case_owner(escalation.id, "not-an-id")

    logged = [(a.action, a.details) for a in svc.activity(escalation.id)][1:]
    assert logged == [
        ("Case Owner Assigned", "Case assigned to Bob"),
        ("Case Owner Unassigned", "Case unassigned"),
    ]


def test_case_owner_must_work_for_the_case_business(seeded, db):
    svc = EscalationService(db)
    escalation = svc.create(_request(seeded, seeded.new_chat_session())).escalation

    with pytest.raises(AgentNotFoundError):
        svc.update_case_owner(escalation.id, seeded.agents["carol"])

    assert escalation.case_owner_id is None
    assert [a.action for a in svc.activity(escalation.id)] == ["Case Created"]


def test_business_listing_filters_searches_and_pages(seeded, db):
    svc = EscalationService(db, number_factory=_numbers("100001", "100002", "100003"))
    first = svc.create(_request(seeded, seeded.new_chat_session(), customer_name="Dana Customer")).escalation
    svc.create(_request(seeded, seeded.new_chat_session(), customer_name="Eli Buyer", customer_email="eli@example.com"))
    third = svc.create(_request(seeded, seeded.new_chat_session(), customer_name="Fay Shopper")).escalation
    svc.update_status(third.id, "resolved")
    offline = EscalationService(db, number_factory=_numbers("200001"))
    offline.create(_request(seeded, seeded.new_chat_session(seeded.offline_business_id), business_id=seeded.offline_business_id))
    db.commit()

    everything = svc.for_business(seeded.business_id)
    assert everything.total == 3
    assert {e.case_number for e in everything.escalations} == {"100001", "100002", "100003"}

    assert [e.id for e in svc.for_business(seeded.business_id, status="resolved").escalations] == [third.id]
    assert svc.for_business(seeded.business_id, status="all").total == 3
    assert [e.case_number for e in svc.for_business(seeded.business_id, search="ELI@").escalations] == ["100002"]
    assert [e.id for e in svc.for_business(seeded.business_id, search="100001").escalations] == [first.id]

    paged = svc.for_business(seeded.business_id, page=2, limit=2)
    assert (paged.total, paged.page, paged.limit, paged.total_pages) == (3, 2, 2, 2)
    assert len(paged.escalations) == 1

    with pytest.raises(InvalidStatusError):
        svc.for_business(seeded.business_id, status="closed")
    with pytest.raises(BusinessNotFoundError):
        svc.for_business(uuid.uuid4())


def test_session_listing_returns_only_that_session(seeded, db):
    svc = EscalationService(db, number_factory=_numbers("300001", "300002"))
    session_id = seeded.new_chat_session()
    mine = svc.create(_request(seeded, session_id)).escalation
    svc.create(_request(seeded, seeded.new_chat_session()))
    db.commit()

    assert [e.id for e in svc.for_session(session_id)] == [mine.id]
    assert svc.for_session(uuid.uuid4()) == []


def test_case_lookup_is_scoped_to_the_business(seeded, db):
    session_id = seeded.new_chat_session()
    EscalationService(db, number_factory=_numbers("654321")).create(_request(seeded, session_id))
    db.commit()
    lookup = CaseLookup(db)

    status = lookup.status("654321", seeded.business_id)
    assert status is not None and status.status == "escalated"
    assert lookup.status("654321", seeded.offline_business_id) is None
    case = lookup.for_live_chat("654321", seeded.business_id)
    assert case.session_id == session_id
    assert case.customer_email == "dana@example.com"
