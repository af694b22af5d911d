"""
Document Type Catalog — Service Layer.

Admin-managed list of document types (passport, transcript, …) that
programs and requirement sets refer to by id.
"""

import logging

from sqlalchemy import func, select

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.document import DEFAULT_DOCUMENT_TYPES, DocumentType, RequiredDocumentItem
from app.models.program import ProgramDocumentRequirement

logger = logging.getLogger(__name__)


def list_types(common_only: bool = False) -> list[DocumentType]:
    """Return the catalog, common types first, then by name."""
    q = DocumentType.query
    if common_only:
        q = q.filter_by(is_common=True)
    return q.order_by(DocumentType.is_common.desc(), DocumentType.name).all()


def _name_taken(name: str, exclude_id: int | None = None) -> bool:
    stmt = select(DocumentType.id).where(func.lower(DocumentType.name) == name.lower())
    if exclude_id is not None:
        stmt = stmt.where(DocumentType.id != exclude_id)
    return db.session.execute(stmt).first() is not None


def create_type(data: dict, *, actor: str = "admin") -> DocumentType:
    """Create a catalog entry.

    Raises:
        ValidationError: missing name.
        ConflictError: name already used (case-insensitive).
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("name is required", {"name": "required"})
    if _name_taken(name):
        raise ConflictError("DocumentType", "name", name)

    doc_type = DocumentType(
        name=name,
        description=(data.get("description") or "").strip(),
        is_common=bool(data.get("is_common", False)),
    )
    db.session.add(doc_type)
    db.session.flush()
    write_audit(entity_type="document_type", entity_id=doc_type.id,
                action="document_type.create", actor=actor, diff={"name": name})
    db.session.commit()
    logger.info("DocumentType created id=%s name=%s", doc_type.id, name)
    return doc_type


def update_type(doc_type: DocumentType, data: dict, *, actor: str = "admin") -> DocumentType:
    """Update name/description/is_common.  Item snapshots keep the old name."""
    if "name" in data:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("name cannot be empty", {"name": "required"})
        if _name_taken(name, exclude_id=doc_type.id):
            raise ConflictError("DocumentType", "name", name)
        doc_type.name = name
    if "description" in data:
        doc_type.description = (data.get("description") or "").strip()
    if "is_common" in data:
        doc_type.is_common = bool(data["is_common"])
    write_audit(entity_type="document_type", entity_id=doc_type.id,
                action="document_type.update", actor=actor,
                diff={k: data[k] for k in ("name", "description", "is_common") if k in data})
    db.session.commit()
    logger.info("DocumentType updated id=%s", doc_type.id)
    return doc_type


def delete_type(doc_type: DocumentType, *, actor: str = "admin") -> None:
    """Delete a type that no requirement set or program still references.

    Raises:
        ConflictError: the type is in use.
    """
    in_sets = db.session.execute(
        select(func.count(RequiredDocumentItem.id))
        .where(RequiredDocumentItem.document_type_id == doc_type.id)
    ).scalar()
    in_programs = db.session.execute(
        select(func.count(ProgramDocumentRequirement.id))
        .where(ProgramDocumentRequirement.document_type_id == doc_type.id)
    ).scalar()
    if in_sets or in_programs:
        raise ConflictError(
            "DocumentType", "id", doc_type.id,
            message=f"DocumentType id={doc_type.id} is referenced by "
                    f"{in_sets} requirement item(s) and {in_programs} program(s)",
        )
    type_id = doc_type.id
    db.session.delete(doc_type)
    write_audit(entity_type="document_type", entity_id=type_id,
                action="document_type.delete", actor=actor)
    db.session.commit()
    logger.info("DocumentType deleted id=%s", type_id)


def seed_defaults(*, actor: str = "system") -> dict:
    """Insert the common catalog entries that are not present yet (idempotent)."""
    created, skipped = [], []
    for name, description, is_common in DEFAULT_DOCUMENT_TYPES:
        if _name_taken(name):
            skipped.append(name)
            continue
        db.session.add(DocumentType(name=name, description=description, is_common=is_common))
        created.append(name)
    if created:
        db.session.flush()
        write_audit(entity_type="document_type", entity_id="seed",
                    action="document_type.seed", actor=actor, diff={"created": created})
    db.session.commit()
    logger.info("DocumentType seed: %d created, %d skipped", len(created), len(skipped))
    return {"created": created, "skipped": skipped}
