"""
Offer-letter email draft: post-commit generation, failure isolation and
admin edits.  The generator is replaced through ``app.extensions``.
"""

import pytest

from app.core.exceptions import ExternalServiceError, InvalidTransition, NotFoundError, ValidationError
from app.models.audit import AuditLog
from app.services import application_lifecycle as lifecycle
from app.services import email_draft_service


class FakeGenerator:
    def __init__(self, text="Dear student, your offer letter is on its way.", error=None):
        self.text = text
        self.error = error
        self.calls = []

    def generate(self, context):
        self.calls.append(context)
        if self.error:
            raise ExternalServiceError("draft_generator", self.error)
        return self.text


@pytest.fixture()
def generator(app, monkeypatch):
    fake = FakeGenerator()
    monkeypatch.setitem(app.extensions, "draft_generator", fake)
    return fake


def test_request_offer_letter_generates_draft(make_application, generator):
    application = make_application("under_review")
    application = lifecycle.request_offer_letter(application.id, generate_email=True)

    assert application.status == "offer_letter_requested"
    draft = email_draft_service.get_draft(application.id)
    assert draft.content == generator.text
    assert draft.generated_at is not None
    assert draft.edited_by_admin is False
    assert draft.last_error is None

    context = generator.calls[0]
    assert context["application_id"] == application.id
    assert context["program_name"] == "MSc Testing"
    assert context["offer_letter_requested_at"] is not None


def test_generation_skipped_unless_requested(make_application, generator):
    application = make_application("submitted")
    lifecycle.request_offer_letter(application.id)
    assert generator.calls == []
    with pytest.raises(NotFoundError):
        email_draft_service.get_draft(application.id)


def test_generator_failure_keeps_transition(make_application, generator):
    generator.error = "upstream timeout"
    application = make_application("submitted")

    application = lifecycle.request_offer_letter(application.id, generate_email=True)

    assert application.status == "offer_letter_requested"
    assert application.has_timestamp("offer_letter_requested_at")
    draft = email_draft_service.get_draft(application.id)
    assert draft.content is None
    assert "upstream timeout" in draft.last_error


def test_unconfigured_generator_records_error(make_application):
    application = make_application("submitted")
    application = lifecycle.request_offer_letter(application.id, generate_email=True)
    assert application.status == "offer_letter_requested"
    assert "not configured" in email_draft_service.get_draft(application.id).last_error


def test_regenerate_clears_last_error(make_application, generator):
    generator.error = "boom"
    application = make_application("submitted")
    lifecycle.request_offer_letter(application.id, generate_email=True)

    generator.error = None
    draft = email_draft_service.generate_draft(application.id, actor="officer")
    assert draft.last_error is None
    assert draft.content == generator.text
    assert AuditLog.query.filter_by(action="offer_letter_email.generate").count() == 1


def test_generate_before_request_is_invalid(make_application, generator):
    application = make_application("under_review")
    with pytest.raises(InvalidTransition):
        email_draft_service.generate_draft(application.id)
    assert generator.calls == []


def test_admin_edit(make_application, generator):
    application = make_application("submitted")
    lifecycle.request_offer_letter(application.id, generate_email=True)

    draft = email_draft_service.update_draft(application.id, "Edited text", actor="officer")
    assert draft.content == "Edited text"
    assert draft.edited_by_admin is True
    row = AuditLog.query.filter_by(action="offer_letter_email.update").one()
    assert row.actor == "officer"


def test_admin_edit_requires_content(make_application):
    application = make_application("offer_letter_requested")
    with pytest.raises(ValidationError):
        email_draft_service.update_draft(application.id, "   ")


def test_async_generation_runs_in_thread(app, make_application, generator, monkeypatch):
    monkeypatch.setitem(app.config, "SIDE_EFFECTS_ASYNC", True)
    application = make_application("offer_letter_requested")

    thread = email_draft_service.schedule_generation(application.id, actor="officer")
    thread.join(timeout=5)

    assert not thread.is_alive()
    assert len(generator.calls) == 1
