"""
Tests: Timeline projector.

``project`` is a pure function of (status, timestamps, interview), so most
cases run on plain SimpleNamespace snapshots; one case checks that the
student and admin endpoints return identical steps.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.models import db, iso_utc
from app.models.application import STATUS_ORDER, TERMINAL_STATUSES
from app.services.timeline import TIMELINE_STEPS, project
from tests.conftest import STAMPS_BY_STATUS

BASE = datetime(2026, 9, 1, 9, 0, tzinfo=timezone.utc)


def _snapshot(status, stamps=None, result=None):
    names = STAMPS_BY_STATUS[status] if stamps is None else stamps
    timestamps = {name: BASE + timedelta(days=i) for i, name in enumerate(names)}
    interview = SimpleNamespace(result=result) if result else None
    return SimpleNamespace(status=status, timestamps=timestamps, interview=interview)


def _statuses(steps):
    return {s["id"]: s["status"] for s in steps}


@pytest.mark.parametrize("status", sorted(STATUS_ORDER))
def test_exactly_one_current_step_unless_terminal(status):
    result = "fail" if status == "rejected" else ("pass" if STATUS_ORDER[status] >= 8 else None)
    steps = project(_snapshot(status, result=result))
    current = [s for s in steps if s["status"] == "current"]
    expected = 0 if status in TERMINAL_STATUSES else 1
    assert len(current) == expected


def test_step_order_and_shape():
    steps = project(_snapshot("draft"))
    assert [s["id"] for s in steps] == [step[0] for step in TIMELINE_STEPS]
    assert set(steps[0]) == {"id", "title", "description", "status", "date"}
    assert steps[0]["status"] == "current"
    assert all(s["status"] == "upcoming" for s in steps[1:])
    assert all(s["date"] is None for s in steps)


def test_submitted_application():
    steps = project(_snapshot("submitted"))
    assert _statuses(steps)["submitted"] == "completed"
    assert _statuses(steps)["under_review"] == "current"
    assert steps[0]["date"] == BASE.isoformat()


def test_under_review_completes_once_status_moves_past_it():
    steps = _statuses(project(_snapshot("offer_letter_requested")))
    assert steps["under_review"] == "completed"
    assert steps["offer_letter_requested"] == "completed"
    assert steps["offer_letter_received"] == "current"


def test_interview_step_descriptions():
    scheduled = project(_snapshot("interview_scheduled"))
    assert scheduled[4]["description"] == "Interview scheduled"
    assert scheduled[4]["status"] == "current"

    passed = project(_snapshot("accepted", result="pass"))
    assert passed[4]["description"] == "Interview passed"
    assert passed[4]["status"] == "completed"
    assert passed[5]["status"] == "current"


def test_rejected_has_no_current_step():
    steps = _statuses(project(_snapshot("rejected", result="fail")))
    assert steps["interview"] == "completed"
    assert steps["cas"] == "upcoming"
    assert steps["visa"] == "upcoming"


def test_cas_step_tracks_cas_timestamps():
    in_progress = project(_snapshot("cas_application_in_progress", result="pass"))
    assert in_progress[5]["description"] == "CAS application submitted"
    assert in_progress[5]["status"] == "current"

    stamps = STAMPS_BY_STATUS["cas_application_in_progress"] + (
        "cas_received_at", "visa_application_enabled_at",
    )
    received = project(_snapshot("cas_application_in_progress", stamps=stamps, result="pass"))
    assert received[5]["status"] == "completed"
    assert received[5]["description"] == "CAS document received"
    assert received[6]["status"] == "current"
    assert received[6]["description"] == "Visa application available"


def test_completed_application():
    steps = project(_snapshot("completed", result="pass"))
    assert all(s["status"] == "completed" for s in steps)
    assert steps[6]["description"] == "Visa document received"


def test_dates_come_from_stored_timestamps_only():
    stamps = ("submitted_at", "offer_letter_requested_at")
    steps = project(_snapshot("offer_letter_requested", stamps=stamps))
    assert steps[1]["date"] is None
    assert steps[2]["date"] == (BASE + timedelta(days=1)).isoformat()
    assert steps[3]["date"] is None


def test_student_and_admin_views_agree(client, make_application):
    application = make_application("interview_requested")
    student = client.get(f"/api/v1/applications/{application.id}/timeline").get_json()
    admin = client.get(f"/api/v1/admin/applications/{application.id}/timeline").get_json()
    assert student["steps"] == admin["steps"]
    assert student["status"] == "interview_requested"
    assert "events" in admin


def test_naive_timestamps_are_reported_as_utc():
    naive = datetime(2026, 9, 1, 9, 0)
    assert iso_utc(naive) == "2026-09-01T09:00:00+00:00"
    assert iso_utc(BASE) == BASE.isoformat()
    assert iso_utc(None) is None


def test_reloaded_application_keeps_utc_offset(client, make_application):
    application = make_application("offer_letter_requested")
    db.session.expire_all()

    body = application.to_dict()
    assert body["submitted_at"].endswith("+00:00")
    assert all(value.endswith("+00:00") for value in body["timestamps"].values())

    timeline = client.get(f"/api/v1/applications/{application.id}/timeline").get_json()
    dated = [step["date"] for step in timeline["steps"] if step["date"]]
    assert dated
    assert all(value.endswith("+00:00") for value in dated)
