"""
Document Requirement Sets — per-stage required documents of one application.

An admin configures, for the interview, CAS and visa stages, which document
types the student must upload.  Each item is satisfied independently by
``RequiredDocumentSet.mark_uploaded``.

Reconfiguration replaces the whole item list and resets the set's
``configured_at``.  Uploads already recorded for document types that stay in
the new list are carried over.  Whether a reconfiguration is allowed at all
is decided by the stage gate before ``configure`` runs.
"""

import logging
from datetime import datetime, timezone

from sqlalchemy import select

from app.core.exceptions import GuardFailed, NotFoundError, ValidationError
from app.models import db
from app.models.document import (
    REQUIREMENT_STAGES,
    DocumentType,
    RequiredDocumentItem,
    RequiredDocumentSet,
)

logger = logging.getLogger(__name__)


def load_document_types(type_ids) -> dict:
    """Return ``{id: DocumentType}``; raises NotFoundError for the first unknown id."""
    found = {
        dt.id: dt
        for dt in db.session.execute(
            select(DocumentType).where(DocumentType.id.in_(list(type_ids)))
        ).scalars()
    }
    for type_id in type_ids:
        if type_id not in found:
            raise NotFoundError("DocumentType", type_id)
    return found


def configure(
    application,
    stage: str,
    document_type_ids,
    *,
    optional_type_ids=(),
    notes: str | None = None,
    actor: str = "system",
) -> RequiredDocumentSet:
    """
    Create or replace the *stage* requirement set of *application*.

    Args:
        document_type_ids: Required document types, in display order.
        optional_type_ids: Types listed but not required for the stage gate.

    Raises:
        ValidationError: unknown stage.
        GuardFailed: no document types given.
        NotFoundError: an id is not in the document type catalog.
    """
    if stage not in REQUIREMENT_STAGES:
        raise ValidationError(f"Unknown stage: {stage}", {"stage": stage})

    ordered = []
    for type_id in list(document_type_ids) + list(optional_type_ids):
        if type_id not in ordered:
            ordered.append(type_id)
    if not ordered:
        raise GuardFailed(f"configure_{stage}_documents", application.status,
                          "at least one document type is required")
    optional = set(optional_type_ids) - set(document_type_ids)
    types = load_document_types(ordered)

    now = datetime.now(timezone.utc)
    req_set = application.requirement_set(stage)
    carried = {}
    if req_set is None:
        req_set = RequiredDocumentSet(stage=stage)
        application.requirement_sets.append(req_set)
    else:
        carried = {
            item.document_type_id: (item.uploaded_document_id, item.uploaded_at)
            for item in req_set.items
            if item.is_uploaded
        }
        req_set.items.clear()
        # Old rows must be gone before the unique (set_id, document_type_id) inserts
        db.session.flush()
        logger.info(
            "Reconfiguring %s documents app=%s (%d upload(s) carried over)",
            stage, application.id, len(carried.keys() & set(ordered)),
        )

    req_set.configured_at = now
    req_set.configured_by = actor
    req_set.notes = notes

    for position, type_id in enumerate(ordered):
        doc_type = types[type_id]
        item = RequiredDocumentItem(
            document_type_id=type_id,
            document_name=doc_type.name,
            description=doc_type.description,
            is_required=type_id not in optional,
            position=position,
        )
        if type_id in carried:
            item.is_uploaded = True
            item.uploaded_document_id, item.uploaded_at = carried[type_id]
        req_set.items.append(item)

    db.session.flush()
    return req_set


def required_documents_view(application, stage: str) -> dict:
    """Serialised set for *stage*, or an empty, unconfigured placeholder."""
    if stage not in REQUIREMENT_STAGES:
        raise ValidationError(f"Unknown stage: {stage}", {"stage": stage})
    req_set = application.requirement_set(stage)
    if req_set is None:
        return {
            "application_id": application.id,
            "stage": stage,
            "configured_at": None,
            "all_required_satisfied": False,
            "items": [],
        }
    return req_set.to_dict()
