"""
Application Lifecycle Service — the admissions state machine.

One function per lifecycle event.  Every event:
  1. loads the application row under a lock (``SELECT … FOR UPDATE``)
  2. evaluates the stage gate (typed error, nothing written, on denial)
  3. opens the write phase (``_write_phase``); inside it:
     stores any uploaded blob, applies the transition (status never
     backward, timestamps, payload) and writes an AuditLog row
  4. commits with the optimistic ``version`` check; a stale version on any
     flush or on commit raises ConflictError, rolls back and removes the
     blobs stored for the event
  5. fires post-commit side effects (offer-letter email draft)

Usage:
    from app.services import application_lifecycle as lifecycle

    app_ = lifecycle.submit(application_id, actor="student-42")
    app_ = lifecycle.record_interview_result(application_id, "pass", actor="admin")
"""

import logging
from contextlib import contextmanager
from datetime import datetime, timezone

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from app.core.exceptions import (
    ConflictError,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from app.integrations.blob_store import get_blob_store
from app.models import db
from app.models.application import (
    LIFECYCLE_EVENTS,
    STATUS_ORDER,
    Application,
    Interview,
)
from app.models.audit import write_audit
from app.models.document import (
    REQUIREMENT_STAGES,
    STAGE_CONFIGURED_MARKERS,
    DocumentType,
    UploadedDocument,
)
from app.models.program import Program
from app.services import document_requirements, email_draft_service
from app.services.stage_gate import (
    can_transition,
    check_stage_upload,
    check_transition,
)

logger = logging.getLogger(__name__)

CONFIGURE_EVENTS = {
    "interview": "configure_interview_documents",
    "cas": "configure_cas_documents",
    "visa": "configure_visa_documents",
}


def _utcnow():
    return datetime.now(timezone.utc)


def _allow_reconfiguration() -> bool:
    return bool(current_app.config.get("ALLOW_DOCUMENT_RECONFIGURATION", True))


# ── Loading & committing ─────────────────────────────────────────────────────


def get_application(application_id: int) -> Application:
    """Plain read; raises NotFoundError."""
    application = db.session.get(Application, application_id)
    if application is None:
        raise NotFoundError("Application", application_id)
    return application


def _load_for_update(application_id: int, expected_version: int | None = None) -> Application:
    application = db.session.execute(
        select(Application)
        .where(Application.id == application_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if application is None:
        raise NotFoundError("Application", application_id)
    if expected_version is not None and application.version != expected_version:
        raise ConflictError(
            "Application", "version", expected_version,
            message=(
                f"Application id={application_id} was modified concurrently "
                f"(expected version {expected_version}, found {application.version})"
            ),
        )
    return application


@contextmanager
def _write_phase(application_id: int, event: str):
    """
    Run the write phase of *event* and commit it.

    Yields a list that collects blob refs stored during the phase.  Any
    failure rolls the session back and removes those blobs; a lost race
    (stale ``version`` on flush or commit, duplicate timestamp row) is
    raised as ConflictError.
    """
    blob_refs = []
    try:
        yield blob_refs
        db.session.commit()
    except (StaleDataError, IntegrityError) as exc:
        _discard(blob_refs)
        logger.warning("Lost concurrent update app=%s event=%s: %s", application_id, event, exc)
        raise ConflictError(
            "Application", "version", application_id,
            message=f"Application id={application_id} was modified concurrently during '{event}'",
        ) from exc
    except Exception:
        _discard(blob_refs)
        raise


def _discard(blob_refs):
    db.session.rollback()
    store = get_blob_store()
    for ref in blob_refs:
        store.delete(ref)


def _apply(application, event, *, actor, target=None, payload=None):
    """Apply status, timestamps and audit row for *event* (no commit)."""
    rule = LIFECYCLE_EVENTS[event]
    now = _utcnow()
    old_status = application.status
    target = target or rule["to"]
    if target and STATUS_ORDER[target] >= STATUS_ORDER[old_status]:
        application.status = target

    stamped = []
    first_configure_only = set(STAGE_CONFIGURED_MARKERS.values())
    for name in rule["stamps"]:
        if name in first_configure_only and application.has_timestamp(name):
            continue
        application.stamp(name, now, actor)
        stamped.append(name)

    # Always dirty the row so the version counter moves with every event
    application.updated_at = now

    write_audit(
        entity_type="application",
        entity_id=application.id,
        action=f"application.{event}",
        actor=actor,
        diff={
            "status": {"old": old_status, "new": application.status},
            "stamped": stamped,
            "payload": payload or {},
        },
    )
    logger.info(
        "Lifecycle app=%s event=%s %s → %s by %s",
        application.id, event, old_status, application.status, actor,
    )


def _store_document(application, file, blob_refs, *, stage, actor, document_type_id=None):
    blob = get_blob_store().store(file)
    blob_refs.append(blob.ref)
    doc = UploadedDocument(
        application_id=application.id,
        document_type_id=document_type_id,
        stage=stage,
        storage_ref=blob.ref,
        filename=blob.filename,
        original_filename=blob.original_filename,
        size=blob.size,
        content_type=blob.content_type,
        uploaded_by=actor,
    )
    db.session.add(doc)
    db.session.flush()
    return doc


def _has_file(file) -> bool:
    return file is not None and bool(getattr(file, "filename", ""))


# ── Creation & initial documents ─────────────────────────────────────────────


def create_application(student_id: str, program_id: int, *, actor: str = "system") -> Application:
    """Start a draft application for *program_id*."""
    if not student_id:
        raise ValidationError("student_id is required", {"student_id": "required"})
    program = db.session.get(Program, program_id)
    if program is None:
        raise NotFoundError("Program", program_id)
    if not program.is_active:
        raise ValidationError("Program is not accepting applications", {"program_id": program_id})

    application = Application(student_id=str(student_id), program_id=program.id, status="draft")
    db.session.add(application)
    db.session.flush()
    write_audit(
        entity_type="application",
        entity_id=application.id,
        action="application.create",
        actor=actor,
        diff={"status": {"old": None, "new": "draft"}, "payload": {"program_id": program.id}},
    )
    db.session.commit()
    logger.info("Application created app=%s student=%s program=%s",
                application.id, student_id, program.id)
    return application


def required_documents(application) -> list[dict]:
    """Program checklist with the upload state of each initial document."""
    uploads = {}
    for doc in application.documents.filter_by(stage="application").order_by(UploadedDocument.id):
        uploads[doc.document_type_id] = doc
    checklist = []
    program = application.program
    for req in (program.document_requirements if program else []):
        doc = uploads.get(req.document_type_id)
        checklist.append({
            "document_type_id": req.document_type_id,
            "document_name": req.document_type.name,
            "description": req.document_type.description,
            "is_uploaded": doc is not None,
            "uploaded_document_id": doc.id if doc else None,
        })
    return checklist


def upload_application_document(application_id, document_type_id, file, *, actor="student"):
    """Upload an initial document while the application is a draft."""
    application = _load_for_update(application_id)
    if application.status != "draft":
        raise InvalidTransition("upload_application_document", application.status,
                                "initial documents can only change while in draft")
    if db.session.get(DocumentType, document_type_id) is None:
        raise NotFoundError("DocumentType", document_type_id)
    if not _has_file(file):
        raise ValidationError("A file is required", {"file": "missing"})

    with _write_phase(application_id, "upload_application_document") as blob_refs:
        doc = _store_document(application, file, blob_refs, stage="application", actor=actor,
                              document_type_id=document_type_id)
        application.updated_at = _utcnow()
        write_audit(
            entity_type="application", entity_id=application.id,
            action="application.upload_application_document", actor=actor,
            diff={"payload": {"document_id": doc.id, "document_type_id": document_type_id}},
        )
    return doc


def delete_application_document(application_id, document_id, *, actor="student"):
    """Remove an initial document; only allowed in draft."""
    application = _load_for_update(application_id)
    if application.status != "draft":
        raise InvalidTransition("delete_application_document", application.status,
                                "initial documents can only change while in draft")
    doc = db.session.get(UploadedDocument, document_id)
    if doc is None or doc.application_id != application.id or doc.stage != "application":
        raise NotFoundError("UploadedDocument", document_id)

    ref = doc.storage_ref
    with _write_phase(application_id, "delete_application_document"):
        db.session.delete(doc)
        application.updated_at = _utcnow()
        write_audit(
            entity_type="application", entity_id=application.id,
            action="application.delete_application_document", actor=actor,
            diff={"payload": {"document_id": document_id}},
        )
    get_blob_store().delete(ref)


# ── Lifecycle events ─────────────────────────────────────────────────────────


def _fire(application_id, event, *, actor, expected_version=None):
    """Gate and apply an event that only moves status and timestamps."""
    application = _load_for_update(application_id, expected_version)
    check_transition(application, event)
    with _write_phase(application_id, event):
        _apply(application, event, actor=actor)
    return application


def submit(application_id, *, personal_statement=None, additional_notes=None,
           actor="student", expected_version=None):
    application = _load_for_update(application_id, expected_version)
    check_transition(application, "submit")
    with _write_phase(application_id, "submit"):
        if personal_statement is not None:
            application.personal_statement = personal_statement
        if additional_notes is not None:
            application.additional_notes = additional_notes
        _apply(application, "submit", actor=actor)
    return application


def begin_review(application_id, *, actor="admin", expected_version=None):
    return _fire(application_id, "begin_review", actor=actor, expected_version=expected_version)


def request_offer_letter(application_id, *, generate_email=False, actor="admin",
                         expected_version=None):
    """Request the offer letter; optionally generate the email draft after commit."""
    application = _load_for_update(application_id, expected_version)
    check_transition(application, "request_offer_letter")
    with _write_phase(application_id, "request_offer_letter"):
        _apply(application, "request_offer_letter", actor=actor,
               payload={"generate_email": bool(generate_email)})

    if generate_email:
        email_draft_service.schedule_generation(application_id, actor=actor)
    return application


def upload_offer_letter(application_id, file, *, actor="admin", expected_version=None):
    application = _load_for_update(application_id, expected_version)
    check_transition(application, "upload_offer_letter", has_file=_has_file(file))
    with _write_phase(application_id, "upload_offer_letter") as blob_refs:
        doc = _store_document(application, file, blob_refs, stage="offer_letter", actor=actor)
        application.offer_letter_document_id = doc.id
        _apply(application, "upload_offer_letter", actor=actor, payload={"document_id": doc.id})
    return application


def configure_stage_documents(application_id, stage, document_type_ids, *,
                              optional_type_ids=(), notes=None, actor="admin",
                              expected_version=None):
    """(Re)configure the *stage* requirement set (interview | cas | visa)."""
    if stage not in REQUIREMENT_STAGES:
        raise ValidationError(f"Unknown stage: {stage}", {"stage": stage})
    event = CONFIGURE_EVENTS[stage]
    application = _load_for_update(application_id, expected_version)
    check_transition(
        application, event,
        document_type_ids=list(document_type_ids) + list(optional_type_ids),
        allow_reconfiguration=_allow_reconfiguration(),
    )
    with _write_phase(application_id, event):
        req_set = document_requirements.configure(
            application, stage, document_type_ids,
            optional_type_ids=optional_type_ids, notes=notes, actor=actor,
        )
        _apply(application, event, actor=actor, payload={
            "document_type_ids": [item.document_type_id for item in req_set.items],
            "notes": notes,
        })
    return application


def configure_interview_documents(application_id, document_type_ids, **kwargs):
    return configure_stage_documents(application_id, "interview", document_type_ids, **kwargs)


def configure_cas_documents(application_id, document_type_ids, **kwargs):
    return configure_stage_documents(application_id, "cas", document_type_ids, **kwargs)


def configure_visa_documents(application_id, document_type_ids, **kwargs):
    return configure_stage_documents(application_id, "visa", document_type_ids, **kwargs)


def upload_stage_document(application_id, stage, document_type_id, file, *, actor="student"):
    """
    Upload a student document against the *stage* requirement set.

    Idempotent per document type: once an item is satisfied, a further
    upload returns the existing UploadedDocument and stores nothing.
    """
    application = _load_for_update(application_id)
    req_set = check_stage_upload(application, stage, document_type_id)
    item = req_set.item_for(document_type_id)
    if item.is_uploaded:
        return db.session.get(UploadedDocument, item.uploaded_document_id)
    if not _has_file(file):
        raise ValidationError("A file is required", {"file": "missing"})

    event = f"upload_{stage}_document"
    with _write_phase(application_id, event) as blob_refs:
        doc = _store_document(application, file, blob_refs, stage=stage, actor=actor,
                              document_type_id=document_type_id)
        req_set.mark_uploaded(document_type_id, doc.id)
        application.updated_at = _utcnow()
        write_audit(
            entity_type="application", entity_id=application.id,
            action=f"application.{event}", actor=actor,
            diff={"payload": {"document_id": doc.id, "document_type_id": document_type_id}},
        )
    return doc


def request_interview(application_id, *, actor="student", expected_version=None):
    return _fire(application_id, "request_interview", actor=actor,
                 expected_version=expected_version)


def schedule_interview(application_id, interview_date, *, location=None, meeting_link=None,
                       notes=None, actor="admin", expected_version=None):
    application = _load_for_update(application_id, expected_version)
    check_transition(application, "schedule_interview", interview_date=interview_date)
    with _write_phase(application_id, "schedule_interview"):
        application.interview = Interview(
            interview_date=interview_date,
            location=location,
            meeting_link=meeting_link,
            notes=notes,
        )
        _apply(application, "schedule_interview", actor=actor, payload={
            "interview_date": interview_date.isoformat(),
            "location": location,
            "meeting_link": meeting_link,
        })
    return application


def record_interview_result(application_id, result, *, notes=None, actor="admin",
                            expected_version=None):
    """Record pass/fail once; pass → accepted, fail → rejected (terminal)."""
    application = _load_for_update(application_id, expected_version)
    check_transition(application, "record_interview_result", result=result)
    with _write_phase(application_id, "record_interview_result"):
        interview = application.interview
        interview.result = result
        interview.result_notes = notes
        interview.result_date = _utcnow()
        target = "accepted" if result == "pass" else "rejected"
        _apply(application, "record_interview_result", actor=actor, target=target,
               payload={"result": result})
    return application


def apply_cas(application_id, *, actor="student", expected_version=None):
    return _fire(application_id, "apply_cas", actor=actor, expected_version=expected_version)


def submit_cas_documents(application_id, *, actor="student", expected_version=None):
    return _fire(application_id, "submit_cas_documents", actor=actor,
                 expected_version=expected_version)


def upload_cas(application_id, file, *, notes=None, actor="admin", expected_version=None):
    """Store the CAS letter; also enables the visa stage in the same commit."""
    application = _load_for_update(application_id, expected_version)
    check_transition(application, "upload_cas", has_file=_has_file(file))
    with _write_phase(application_id, "upload_cas") as blob_refs:
        doc = _store_document(application, file, blob_refs, stage="cas_letter", actor=actor)
        application.cas_document_id = doc.id
        application.cas_notes = notes
        _apply(application, "upload_cas", actor=actor, payload={"document_id": doc.id})
    return application


def submit_visa_documents(application_id, *, actor="student", expected_version=None):
    return _fire(application_id, "submit_visa_documents", actor=actor,
                 expected_version=expected_version)


def apply_visa(application_id, *, actor="student", expected_version=None):
    return _fire(application_id, "apply_visa", actor=actor, expected_version=expected_version)


def upload_visa(application_id, file, *, notes=None, actor="admin", expected_version=None):
    application = _load_for_update(application_id, expected_version)
    check_transition(application, "upload_visa", has_file=_has_file(file))
    with _write_phase(application_id, "upload_visa") as blob_refs:
        doc = _store_document(application, file, blob_refs, stage="visa_letter", actor=actor)
        application.visa_document_id = doc.id
        application.visa_notes = notes
        _apply(application, "upload_visa", actor=actor, payload={"document_id": doc.id})
    return application


# ── Queries ──────────────────────────────────────────────────────────────────


def available_events(application) -> dict:
    """``{event: {allowed, reason, error}}`` for every lifecycle event."""
    allow = _allow_reconfiguration()
    result = {}
    for event in LIFECYCLE_EVENTS:
        params = {}
        if LIFECYCLE_EVENTS[event].get("configures"):
            params["allow_reconfiguration"] = allow
        result[event] = can_transition(application, event, **params).to_dict()
    return result


def get_document(application, document_id) -> UploadedDocument:
    doc = db.session.get(UploadedDocument, document_id)
    if doc is None or doc.application_id != application.id:
        raise NotFoundError("UploadedDocument", document_id)
    return doc


def issued_document(application, kind: str) -> UploadedDocument:
    """Admin-issued letter: ``offer_letter`` | ``cas`` | ``visa``."""
    ref = {
        "offer_letter": application.offer_letter_document_id,
        "cas": application.cas_document_id,
        "visa": application.visa_document_id,
    }.get(kind)
    if ref is None:
        raise NotFoundError(f"{kind} document for application", application.id)
    return get_document(application, ref)
