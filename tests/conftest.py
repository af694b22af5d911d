"""
Shared pytest fixtures for the admissions portal test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - blob_store: LocalBlobStore rooted in tmp_path (autouse)
    - client: Flask test client (function-scoped)
    - doc_types / program: catalog rows used by most lifecycle tests
    - make_application: ORM factory placing an application at any status
    - make_file / file_payload: upload fixtures for services and the API
"""

import io

import pytest
from werkzeug.datastructures import FileStorage

from app import create_app
from app.integrations.blob_store import LocalBlobStore
from app.models import db as _db
from app.models.application import Application, Interview
from app.models.document import DocumentType, UploadedDocument
from app.models.program import Program, ProgramDocumentRequirement
from app.services import document_requirements

PDF_BYTES = b"%PDF-1.4\n% admissions test document\n"

# Timestamps an application carries once it has reached each status
# through the normal pipeline.
STAMPS_BY_STATUS = {
    "draft": (),
    "submitted": ("submitted_at",),
    "under_review": ("submitted_at",),
    "offer_letter_requested": ("submitted_at", "offer_letter_requested_at"),
    "offer_letter_received": (
        "submitted_at", "offer_letter_requested_at", "offer_letter_received_at",
    ),
}
STAMPS_BY_STATUS["interview_documents_required"] = (
    STAMPS_BY_STATUS["offer_letter_received"] + ("interview_documents_configured_at",)
)
STAMPS_BY_STATUS["interview_requested"] = (
    STAMPS_BY_STATUS["interview_documents_required"] + ("interview_requested_at",)
)
STAMPS_BY_STATUS["interview_scheduled"] = (
    STAMPS_BY_STATUS["interview_requested"] + ("interview_scheduled_at",)
)
STAMPS_BY_STATUS["accepted"] = STAMPS_BY_STATUS["interview_scheduled"] + ("interview_result_date",)
STAMPS_BY_STATUS["rejected"] = STAMPS_BY_STATUS["accepted"]
STAMPS_BY_STATUS["cas_application_in_progress"] = STAMPS_BY_STATUS["accepted"] + ("cas_applied_at",)
STAMPS_BY_STATUS["cas_documents_required"] = (
    STAMPS_BY_STATUS["accepted"] + ("cas_documents_configured_at",)
)
STAMPS_BY_STATUS["visa_documents_required"] = STAMPS_BY_STATUS["cas_application_in_progress"] + (
    "cas_received_at", "visa_application_enabled_at", "visa_documents_configured_at",
)
STAMPS_BY_STATUS["visa_application_ready"] = (
    STAMPS_BY_STATUS["visa_documents_required"] + ("visa_documents_submitted_at",)
)
STAMPS_BY_STATUS["visa_application_in_progress"] = (
    STAMPS_BY_STATUS["visa_application_ready"] + ("visa_applied_at",)
)
STAMPS_BY_STATUS["completed"] = (
    STAMPS_BY_STATUS["visa_application_in_progress"] + ("visa_received_at",)
)


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    return create_app("testing")


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture(autouse=True)
def blob_store(app, tmp_path, monkeypatch):
    """Every test writes uploads to its own directory."""
    store = LocalBlobStore(str(tmp_path / "uploads"), app.config["ALLOWED_UPLOAD_EXTENSIONS"])
    monkeypatch.setitem(app.extensions, "blob_store", store)
    return store


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Catalog fixtures ─────────────────────────────────────────────────────


@pytest.fixture()
def doc_types():
    """Three catalog entries: Passport, Transcript, Bank Statement."""
    types = [
        DocumentType(name="Passport", description="Bio-data page", is_common=True),
        DocumentType(name="Transcript", description="Official transcript", is_common=True),
        DocumentType(name="Bank Statement", description="Last 3 months", is_common=False),
    ]
    _db.session.add_all(types)
    _db.session.commit()
    return types


@pytest.fixture()
def program(doc_types):
    """Active program requiring Passport and Transcript before submit."""
    p = Program(university_name="Test University", program_name="MSc Testing",
                city="Leeds", level="postgraduate")
    _db.session.add(p)
    _db.session.flush()
    for dt in doc_types[:2]:
        _db.session.add(ProgramDocumentRequirement(program_id=p.id, document_type_id=dt.id))
    _db.session.commit()
    return p


@pytest.fixture()
def make_application(program):
    """
    Factory: create an Application at *status* with the timestamps the
    pipeline would have written (bypasses the lifecycle guards).

    ``interview_docs`` / ``cas_docs`` / ``visa_docs`` configure requirement
    sets with the given document type ids; ``uploaded`` marks all their
    items uploaded.
    """

    def _make(status="draft", *, stamps=None, student_id="student-1",
              interview_docs=None, cas_docs=None, visa_docs=None, uploaded=False,
              interview_result=None):
        application = Application(student_id=student_id, program_id=program.id, status=status)
        _db.session.add(application)
        _db.session.flush()
        for name in (STAMPS_BY_STATUS[status] if stamps is None else stamps):
            application.stamp(name)
        if application.has_timestamp("interview_scheduled_at"):
            application.interview = Interview(
                interview_date=application.timestamps["interview_scheduled_at"],
                location="Room 1",
            )
            if application.has_timestamp("interview_result_date") or interview_result:
                application.interview.result = interview_result or (
                    "fail" if status == "rejected" else "pass"
                )
        for stage, type_ids in (("interview", interview_docs), ("cas", cas_docs),
                                ("visa", visa_docs)):
            if type_ids:
                req_set = document_requirements.configure(application, stage, type_ids)
                if uploaded:
                    for type_id in type_ids:
                        doc = UploadedDocument(
                            application_id=application.id, document_type_id=type_id,
                            stage=stage, storage_ref=f"seed-{stage}-{type_id}.pdf",
                            filename="seed.pdf", original_filename="seed.pdf",
                        )
                        _db.session.add(doc)
                        _db.session.flush()
                        req_set.mark_uploaded(type_id, doc.id)
        _db.session.commit()
        return application

    return _make


# ── Upload fixtures ──────────────────────────────────────────────────────


@pytest.fixture()
def make_file():
    """Factory for a werkzeug FileStorage, as the blueprints pass to services."""

    def _make(filename="document.pdf", data=PDF_BYTES, content_type="application/pdf"):
        return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=content_type)

    return _make


@pytest.fixture()
def file_payload():
    """Factory for a multipart form body accepted by the test client."""

    def _make(filename="document.pdf", data=PDF_BYTES, **fields):
        payload = {"file": (io.BytesIO(data), filename)}
        payload.update({k: str(v) for k, v in fields.items()})
        return payload

    return _make
