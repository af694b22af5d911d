"""
Document requirement sets: configuration, reconfiguration policy,
upload bookkeeping and the serialised view used by both portals.
"""

from datetime import datetime

import pytest

from app.core.exceptions import (
    AlreadyConfigured,
    GuardFailed,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from app.models import db
from app.models.document import RequiredDocumentSet, UploadedDocument
from app.services import application_lifecycle as lifecycle
from app.services import document_requirements


class TestConfigure:
    def test_items_follow_given_order_and_snapshot_names(self, make_application, doc_types):
        application = make_application("offer_letter_received")
        ids = [doc_types[2].id, doc_types[0].id]
        req_set = document_requirements.configure(application, "interview", ids,
                                                  notes="Bring originals", actor="officer")
        assert [i.document_type_id for i in req_set.items] == ids
        assert [i.document_name for i in req_set.items] == ["Bank Statement", "Passport"]
        assert all(i.is_required and not i.is_uploaded for i in req_set.items)
        assert req_set.notes == "Bring originals"
        assert req_set.configured_by == "officer"
        assert req_set.configured_at is not None

    def test_duplicate_ids_collapse(self, make_application, doc_types):
        application = make_application("offer_letter_received")
        req_set = document_requirements.configure(
            application, "interview", [doc_types[0].id, doc_types[0].id],
            optional_type_ids=[doc_types[0].id],
        )
        assert len(req_set.items) == 1
        assert req_set.items[0].is_required is True

    def test_optional_items(self, make_application, doc_types):
        application = make_application("accepted")
        req_set = document_requirements.configure(
            application, "cas", [doc_types[0].id], optional_type_ids=[doc_types[2].id],
        )
        assert [(i.document_type_id, i.is_required) for i in req_set.items] == [
            (doc_types[0].id, True), (doc_types[2].id, False),
        ]
        assert [i.document_type_id for i in req_set.missing_items()] == [doc_types[0].id]

    def test_unknown_type(self, make_application, doc_types):
        application = make_application("offer_letter_received")
        with pytest.raises(NotFoundError) as exc_info:
            document_requirements.configure(application, "interview", [doc_types[0].id, 999])
        assert exc_info.value.resource_id == 999
        assert application.requirement_set("interview") is None

    def test_empty_list(self, make_application):
        with pytest.raises(GuardFailed):
            document_requirements.configure(make_application("offer_letter_received"),
                                            "interview", [])

    def test_unknown_stage(self, make_application, doc_types):
        with pytest.raises(ValidationError):
            document_requirements.configure(make_application("accepted"), "offer",
                                            [doc_types[0].id])


class TestReconfigure:
    def test_replaces_items_and_carries_uploads(self, make_application, doc_types, make_file):
        application = make_application("interview_documents_required",
                                       interview_docs=[doc_types[0].id, doc_types[1].id])
        doc = lifecycle.upload_stage_document(application.id, "interview", doc_types[0].id,
                                              make_file())

        application = lifecycle.configure_interview_documents(
            application.id, [doc_types[0].id, doc_types[2].id],
        )
        items = {i.document_type_id: i for i in application.requirement_set("interview").items}
        assert set(items) == {doc_types[0].id, doc_types[2].id}
        assert items[doc_types[0].id].is_uploaded is True
        assert items[doc_types[0].id].uploaded_document_id == doc.id
        assert items[doc_types[2].id].is_uploaded is False

    def test_resets_configured_at(self, make_application, doc_types):
        application = make_application("interview_documents_required",
                                       interview_docs=[doc_types[0].id])
        req_set = application.requirement_set("interview")
        req_set.configured_at = datetime(2020, 1, 1)
        db.session.commit()

        application = lifecycle.configure_interview_documents(application.id, [doc_types[1].id])
        assert application.requirement_set("interview").configured_at.year > 2020
        assert RequiredDocumentSet.query.filter_by(application_id=application.id).count() == 1

    def test_disabled_by_config(self, app, make_application, doc_types, monkeypatch):
        monkeypatch.setitem(app.config, "ALLOW_DOCUMENT_RECONFIGURATION", False)
        application = make_application("cas_documents_required", cas_docs=[doc_types[0].id])
        with pytest.raises(AlreadyConfigured):
            lifecycle.configure_cas_documents(application.id, [doc_types[1].id])

        fresh = make_application("accepted", student_id="student-2")
        fresh = lifecycle.configure_cas_documents(fresh.id, [doc_types[1].id])
        assert fresh.status == "cas_documents_required"

    def test_locked_after_interview_requested(self, make_application, doc_types):
        application = make_application("interview_documents_required",
                                       interview_docs=[doc_types[0].id], uploaded=True)
        lifecycle.request_interview(application.id)
        # interview_requested is outside the configure source statuses
        with pytest.raises(InvalidTransition):
            lifecycle.configure_interview_documents(application.id, [doc_types[1].id])
        req_set = lifecycle.get_application(application.id).requirement_set("interview")
        assert [i.document_type_id for i in req_set.items] == [doc_types[0].id]

    def test_locked_after_visa_applied(self, make_application, doc_types):
        application = make_application("visa_application_in_progress")
        with pytest.raises(AlreadyConfigured):
            lifecycle.configure_visa_documents(application.id, [doc_types[0].id])


class TestBookkeeping:
    def test_mark_uploaded_is_idempotent(self, make_application, doc_types):
        application = make_application("interview_documents_required",
                                       interview_docs=[doc_types[0].id, doc_types[1].id])
        req_set = application.requirement_set("interview")

        assert req_set.mark_uploaded(doc_types[0].id, 11) == 11
        snapshot = [(i.document_type_id, i.is_uploaded, i.uploaded_document_id)
                    for i in req_set.items]
        assert req_set.mark_uploaded(doc_types[0].id, 11) == 11
        assert req_set.mark_uploaded(doc_types[0].id, 12) == 11
        assert [(i.document_type_id, i.is_uploaded, i.uploaded_document_id)
                for i in req_set.items] == snapshot
        assert not req_set.all_required_satisfied()
        db.session.rollback()

    def test_mark_uploaded_unknown_type(self, make_application, doc_types):
        application = make_application("interview_documents_required",
                                       interview_docs=[doc_types[0].id])
        with pytest.raises(NotFoundError):
            application.requirement_set("interview").mark_uploaded(doc_types[2].id, 1)


    def test_item_reference_cleared_when_document_deleted(self, make_application, doc_types):
        application = make_application("interview_documents_required",
                                       interview_docs=[doc_types[0].id], uploaded=True)
        item = application.requirement_set("interview").items[0]
        doc = db.session.get(UploadedDocument, item.uploaded_document_id)

        db.session.delete(doc)
        db.session.commit()
        db.session.expire_all()

        assert item.uploaded_document_id is None
        assert item.is_uploaded is True


class TestView:
    def test_unconfigured_placeholder(self, make_application):
        application = make_application("accepted")
        view = document_requirements.required_documents_view(application, "visa")
        assert view == {
            "application_id": application.id,
            "stage": "visa",
            "configured_at": None,
            "all_required_satisfied": False,
            "items": [],
        }

    def test_configured_view(self, make_application, doc_types):
        application = make_application("interview_documents_required",
                                       interview_docs=[doc_types[0].id], uploaded=True)
        view = document_requirements.required_documents_view(application, "interview")
        assert view["all_required_satisfied"] is True
        assert view["items"][0]["document_name"] == "Passport"
        assert view["items"][0]["is_uploaded"] is True
