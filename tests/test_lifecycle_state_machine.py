"""
Exhaustive state-machine tests for the application lifecycle.

Drives ``LIFECYCLE_EVENTS`` from ``app/models/application.py`` against an
application placed at every status (ORM factory, guards bypassed):

    - every event is rejected from every status outside its guard
    - terminal statuses (rejected, completed) reject every event
    - each valid edge lands on the documented target status
    - status never moves to a lower rank
"""

import pytest

from app.core.exceptions import AlreadyFinalized, GuardFailed, InvalidTransition
from app.models.application import (
    LIFECYCLE_EVENTS,
    STATUS_ORDER,
    TERMINAL_STATUSES,
)
from app.services import application_lifecycle as lifecycle
from app.services.stage_gate import can_transition
from tests.conftest import STAMPS_BY_STATUS

ALL_STATUSES = sorted(STATUS_ORDER, key=lambda s: (STATUS_ORDER[s], s))


def _outside_guard(event):
    """Statuses from which *event* must be refused with the canonical stamps."""
    rule = LIFECYCLE_EVENTS[event]
    refused = []
    for status in ALL_STATUSES:
        if status in TERMINAL_STATUSES:
            refused.append(status)
        elif rule["from"] is not None and status not in rule["from"]:
            refused.append(status)
        elif any(req not in STAMPS_BY_STATUS[status] for req in rule.get("requires", ())):
            refused.append(status)
    return refused


def _expected_error(event, application):
    once = LIFECYCLE_EVENTS[event].get("once")
    if application.is_terminal:
        return InvalidTransition
    if once and application.has_timestamp(once):
        return AlreadyFinalized
    if (event == "record_interview_result" and application.interview is not None
            and application.interview.result is not None):
        return AlreadyFinalized
    return InvalidTransition


REFUSED = [
    (event, status)
    for event in LIFECYCLE_EVENTS
    for status in _outside_guard(event)
]


# ═════════════════════════════════════════════════════════════════════════════
# Refused edges
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("event,status", REFUSED)
def test_event_refused_outside_guard(make_application, event, status):
    application = make_application(status)
    gate = can_transition(application, event)
    assert gate.allowed is False
    assert isinstance(gate.error, _expected_error(event, application))
    assert gate.reason


@pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES))
@pytest.mark.parametrize("event", sorted(LIFECYCLE_EVENTS))
def test_terminal_status_rejects_every_event(make_application, status, event):
    application = make_application(status)
    gate = can_transition(application, event)
    assert gate.allowed is False
    assert isinstance(gate.error, InvalidTransition)
    assert "terminal" in gate.reason


def test_refused_event_writes_nothing(make_application):
    application = make_application("submitted")
    version = application.version
    with pytest.raises(InvalidTransition):
        lifecycle.upload_visa(application.id, None)
    application = lifecycle.get_application(application.id)
    assert application.status == "submitted"
    assert application.version == version
    assert set(application.timestamps) == {"submitted_at"}


def test_unknown_event_is_invalid(make_application):
    gate = can_transition(make_application("draft"), "teleport")
    assert isinstance(gate.error, InvalidTransition)


# ═════════════════════════════════════════════════════════════════════════════
# Valid edges
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("source", ["submitted", "under_review"])
def test_request_offer_letter_from_review_states(make_application, source):
    application = make_application(source)
    application = lifecycle.request_offer_letter(application.id)
    assert application.status == "offer_letter_requested"
    assert application.has_timestamp("offer_letter_requested_at")


def test_begin_review(make_application):
    application = lifecycle.begin_review(make_application("submitted").id)
    assert application.status == "under_review"


def test_upload_offer_letter(make_application, make_file):
    application = make_application("offer_letter_requested")
    application = lifecycle.upload_offer_letter(application.id, make_file("offer.pdf"))
    assert application.status == "offer_letter_received"
    assert application.offer_letter_document_id is not None
    assert application.has_timestamp("offer_letter_received_at")


def test_upload_offer_letter_without_file_is_guard_failure(make_application):
    application = make_application("offer_letter_requested")
    with pytest.raises(GuardFailed):
        lifecycle.upload_offer_letter(application.id, None)


def test_schedule_interview(make_application):
    from datetime import datetime, timezone

    application = make_application("interview_requested")
    when = datetime(2026, 11, 3, 10, 30, tzinfo=timezone.utc)
    application = lifecycle.schedule_interview(
        application.id, when, location="Room 4", meeting_link="https://meet.example/abc",
    )
    assert application.status == "interview_scheduled"
    assert application.interview.location == "Room 4"
    assert application.interview.result is None
    assert application.has_timestamp("interview_scheduled_at")


def test_schedule_interview_requires_date(make_application):
    application = make_application("interview_requested")
    with pytest.raises(GuardFailed):
        lifecycle.schedule_interview(application.id, None)
    assert lifecycle.get_application(application.id).interview is None


def test_record_interview_fail_is_terminal(make_application):
    application = make_application("interview_scheduled")
    application = lifecycle.record_interview_result(application.id, "fail", notes="Weak answers")
    assert application.status == "rejected"
    assert application.interview.result == "fail"
    assert application.interview.result_notes == "Weak answers"
    with pytest.raises(InvalidTransition):
        lifecycle.apply_cas(application.id)


def test_record_interview_result_rejects_unknown_value(make_application):
    application = make_application("interview_scheduled")
    with pytest.raises(GuardFailed):
        lifecycle.record_interview_result(application.id, "maybe")
    assert lifecycle.get_application(application.id).interview.result is None


def test_apply_cas_from_accepted(make_application):
    application = lifecycle.apply_cas(make_application("accepted").id)
    assert application.status == "cas_application_in_progress"
    with pytest.raises(AlreadyFinalized):
        lifecycle.apply_cas(application.id)


def test_apply_cas_after_cas_documents_keeps_status(make_application, doc_types):
    """cas_documents_required outranks cas_application_in_progress: status stays."""
    application = make_application("accepted")
    lifecycle.configure_cas_documents(application.id, [doc_types[0].id])
    application = lifecycle.apply_cas(application.id)
    assert application.status == "cas_documents_required"
    assert application.has_timestamp("cas_applied_at")


def test_submit_cas_documents(make_application, doc_types):
    application = make_application("cas_documents_required", cas_docs=[doc_types[0].id],
                                   uploaded=True)
    application = lifecycle.submit_cas_documents(application.id)
    assert application.status == "cas_documents_required"
    assert application.has_timestamp("cas_documents_submitted_at")
    with pytest.raises(AlreadyFinalized):
        lifecycle.submit_cas_documents(application.id)


def test_submit_cas_documents_requires_uploads(make_application, doc_types):
    application = make_application("cas_documents_required", cas_docs=[doc_types[0].id])
    with pytest.raises(GuardFailed) as exc_info:
        lifecycle.submit_cas_documents(application.id)
    assert exc_info.value.details["missing"][0]["document_type_id"] == doc_types[0].id


def test_visa_pipeline_to_completed(make_application, doc_types, make_file):
    application = make_application("cas_application_in_progress")
    lifecycle.upload_cas(application.id, make_file("cas.pdf"), notes="CAS 123")

    application = lifecycle.configure_visa_documents(application.id, [doc_types[2].id])
    assert application.status == "visa_documents_required"
    lifecycle.upload_stage_document(application.id, "visa", doc_types[2].id, make_file())

    application = lifecycle.submit_visa_documents(application.id)
    assert application.status == "visa_application_ready"

    application = lifecycle.apply_visa(application.id)
    assert application.status == "visa_application_in_progress"

    application = lifecycle.upload_visa(application.id, make_file("visa.pdf"), notes="Granted")
    assert application.status == "completed"
    assert application.visa_notes == "Granted"
    assert application.has_timestamp("visa_received_at")


def test_apply_visa_without_configured_set(make_application):
    application = make_application("cas_application_in_progress",
                                   stamps=STAMPS_BY_STATUS["cas_application_in_progress"]
                                   + ("cas_received_at", "visa_application_enabled_at"))
    application = lifecycle.apply_visa(application.id)
    assert application.status == "visa_application_in_progress"


def test_apply_visa_blocked_by_unsatisfied_set(make_application, doc_types):
    application = make_application("visa_documents_required", visa_docs=[doc_types[2].id])
    with pytest.raises(GuardFailed):
        lifecycle.apply_visa(application.id)


# ═════════════════════════════════════════════════════════════════════════════
# Monotonic status
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("event", sorted(LIFECYCLE_EVENTS))
def test_targets_never_rank_below_sources(event):
    rule = LIFECYCLE_EVENTS[event]
    if rule["to"] is None or rule["from"] is None:
        return
    for source in rule["from"]:
        if STATUS_ORDER[rule["to"]] < STATUS_ORDER[source]:
            # Only apply_cas has a lower-ranked target; the engine keeps status then
            assert event == "apply_cas" and source == "cas_documents_required"


def test_every_target_is_a_known_status():
    for event, rule in LIFECYCLE_EVENTS.items():
        assert rule["to"] is None or rule["to"] in STATUS_ORDER, event
        for source in rule["from"] or ():
            assert source in STATUS_ORDER, event
