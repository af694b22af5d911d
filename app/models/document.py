"""
Admissions Portal
Document domain models.

Models:
    - DocumentType:          catalog entry (passport, transcript, …), admin-managed
    - UploadedDocument:      blob metadata; the blob itself lives in the blob store
    - RequiredDocumentSet:   per-application, per-stage list of required document types
    - RequiredDocumentItem:  one required document type inside a set

Architecture:
    Application ──1:N──▶ UploadedDocument
    Application ──1:3──▶ RequiredDocumentSet (interview | cas | visa)
    RequiredDocumentSet ──1:N──▶ RequiredDocumentItem ──N:1──▶ DocumentType
    RequiredDocumentItem ──N:1──▶ UploadedDocument (once uploaded)
"""

from datetime import datetime, timezone

from app.core.exceptions import NotFoundError
from app.models import db, iso_utc


# ── Constants ────────────────────────────────────────────────────────────────

REQUIREMENT_STAGES = ("interview", "cas", "visa")

# Stage → timestamps that freeze the set once written.  After any of these
# is stamped, neither reconfiguration nor further stage uploads are accepted.
STAGE_LOCK_MARKERS = {
    "interview": ("interview_requested_at",),
    "cas": ("cas_documents_submitted_at", "cas_received_at"),
    "visa": ("visa_documents_submitted_at", "visa_applied_at"),
}

# Stage → timestamp stamped on first configuration
STAGE_CONFIGURED_MARKERS = {
    "interview": "interview_documents_configured_at",
    "cas": "cas_documents_configured_at",
    "visa": "visa_documents_configured_at",
}

# UploadedDocument.stage values
DOCUMENT_STAGES = {
    "application",      # initial documents required by the program
    "interview", "cas", "visa",   # student uploads against a RequiredDocumentSet
    "offer_letter", "cas_letter", "visa_letter",   # admin-issued documents
}

# Common catalog entries created by `flask seed-document-types`
DEFAULT_DOCUMENT_TYPES = [
    ("Passport", "Valid passport bio-data page", True),
    ("Academic Transcript", "Official transcript of previous studies", True),
    ("Degree Certificate", "Certificate of the highest completed qualification", True),
    ("English Language Certificate", "IELTS, TOEFL or equivalent test result", True),
    ("Curriculum Vitae", "Up-to-date CV", True),
    ("Personal Statement", "Statement of purpose for the chosen program", True),
    ("Reference Letter", "Academic or professional reference", False),
    ("Financial Evidence", "Bank statements showing tuition and maintenance funds", False),
    ("TB Test Certificate", "Tuberculosis screening result where required", False),
    ("Sponsor Letter", "Letter from a sponsor confirming financial support", False),
]


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# 1. DocumentType
# ═════════════════════════════════════════════════════════════════════════════


class DocumentType(db.Model):
    """Catalog entry. Lifecycle code treats the id as an opaque foreign key."""

    __tablename__ = "document_types"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    description = db.Column(db.Text, default="")
    is_common = db.Column(
        db.Boolean, default=False, nullable=False,
        comment="Common types are offered first in admin pickers",
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_common": self.is_common,
            "created_at": iso_utc(self.created_at),
        }

    def __repr__(self):
        return f"<DocumentType {self.id}: {self.name}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. UploadedDocument
# ═════════════════════════════════════════════════════════════════════════════


class UploadedDocument(db.Model):
    """Blob metadata. ``storage_ref`` is the reference returned by the blob store."""

    __tablename__ = "uploaded_documents"
    __table_args__ = (
        db.Index("idx_uploaded_doc_app_stage", "application_id", "stage"),
        db.CheckConstraint(
            "stage IN (" + ",".join(f"'{s}'" for s in sorted(DOCUMENT_STAGES)) + ")",
            name="ck_uploaded_doc_stage",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    document_type_id = db.Column(
        db.Integer, db.ForeignKey("document_types.id", ondelete="SET NULL"),
        nullable=True,
    )
    stage = db.Column(
        db.String(30), nullable=False, default="application",
        comment="application | interview | cas | visa | offer_letter | cas_letter | visa_letter",
    )
    storage_ref = db.Column(db.String(255), nullable=False)
    filename = db.Column(db.String(255), nullable=False)
    original_filename = db.Column(db.String(255), nullable=False)
    size = db.Column(db.Integer, default=0)
    content_type = db.Column(db.String(100), default="application/octet-stream")
    uploaded_by = db.Column(db.String(150), default="system")
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    document_type = db.relationship("DocumentType")

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "document_type_id": self.document_type_id,
            "document_type": self.document_type.name if self.document_type else None,
            "stage": self.stage,
            "filename": self.filename,
            "original_filename": self.original_filename,
            "size": self.size,
            "content_type": self.content_type,
            "uploaded_by": self.uploaded_by,
            "created_at": iso_utc(self.created_at),
        }

    def __repr__(self):
        return f"<UploadedDocument {self.id}: {self.stage}/{self.original_filename}>"


# ═════════════════════════════════════════════════════════════════════════════
# 3. RequiredDocumentSet + RequiredDocumentItem
# ═════════════════════════════════════════════════════════════════════════════


class RequiredDocumentSet(db.Model):
    """
    Documents an admin declared mandatory for one stage of one application.

    The item list is fixed once configured; reconfiguration replaces the
    whole list and resets ``configured_at`` (see document_requirements service).
    """

    __tablename__ = "required_document_sets"
    __table_args__ = (
        db.UniqueConstraint("application_id", "stage", name="uq_required_set_app_stage"),
        db.CheckConstraint(
            "stage IN ('interview','cas','visa')",
            name="ck_required_set_stage",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    stage = db.Column(db.String(20), nullable=False, comment="interview | cas | visa")
    configured_at = db.Column(db.DateTime(timezone=True), nullable=True)
    configured_by = db.Column(db.String(150), default="system")
    notes = db.Column(db.Text, nullable=True)

    items = db.relationship(
        "RequiredDocumentItem", backref="requirement_set", lazy="selectin",
        cascade="all, delete-orphan", order_by="RequiredDocumentItem.position",
    )

    # ── Requirement bookkeeping ──────────────────────────────────────────

    def item_for(self, document_type_id):
        """Return the item for *document_type_id*, or None."""
        for item in self.items:
            if item.document_type_id == document_type_id:
                return item
        return None

    def mark_uploaded(self, document_type_id, uploaded_document_id):
        """
        Record an upload against the item for *document_type_id*.

        Idempotent: an item that is already uploaded keeps its existing
        reference and that reference is returned unchanged.

        Raises:
            NotFoundError: the document type is not part of this set.
        """
        item = self.item_for(document_type_id)
        if item is None:
            raise NotFoundError(f"RequiredDocumentItem ({self.stage})", document_type_id)
        if item.is_uploaded:
            return item.uploaded_document_id
        item.is_uploaded = True
        item.uploaded_document_id = uploaded_document_id
        item.uploaded_at = _utcnow()
        return uploaded_document_id

    def all_required_satisfied(self) -> bool:
        """True iff every ``is_required`` item has been uploaded."""
        return all(item.is_uploaded for item in self.items if item.is_required)

    def missing_items(self):
        """Required items still waiting for an upload, in display order."""
        return [item for item in self.items if item.is_required and not item.is_uploaded]

    def to_dict(self):
        return {
            "id": self.id,
            "application_id": self.application_id,
            "stage": self.stage,
            "configured_at": iso_utc(self.configured_at),
            "configured_by": self.configured_by,
            "notes": self.notes,
            "all_required_satisfied": self.all_required_satisfied(),
            "items": [item.to_dict() for item in self.items],
        }

    def __repr__(self):
        return f"<RequiredDocumentSet {self.id}: app={self.application_id} stage={self.stage}>"


class RequiredDocumentItem(db.Model):
    """One required document type; ``document_name`` is snapshotted at configuration."""

    __tablename__ = "required_document_items"
    __table_args__ = (
        db.UniqueConstraint("set_id", "document_type_id", name="uq_required_item_set_type"),
    )

    id = db.Column(db.Integer, primary_key=True)
    set_id = db.Column(
        db.Integer, db.ForeignKey("required_document_sets.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    document_type_id = db.Column(
        db.Integer, db.ForeignKey("document_types.id", ondelete="RESTRICT"),
        nullable=False,
    )
    document_name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    is_required = db.Column(db.Boolean, nullable=False, default=True)
    is_uploaded = db.Column(db.Boolean, nullable=False, default=False)
    uploaded_document_id = db.Column(
        db.Integer, db.ForeignKey("uploaded_documents.id", ondelete="SET NULL"),
        nullable=True,
    )
    uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    position = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            "id": self.id,
            "document_type_id": self.document_type_id,
            "document_name": self.document_name,
            "description": self.description,
            "is_required": self.is_required,
            "is_uploaded": self.is_uploaded,
            "uploaded_document_id": self.uploaded_document_id,
            "uploaded_at": iso_utc(self.uploaded_at),
        }
