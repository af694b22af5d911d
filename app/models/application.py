"""
Admissions Portal
Application lifecycle domain models.

Models:
    - Application:            root aggregate; one student's application to one program
    - ApplicationTimestamp:   append-only event-name → instant log (audit trail of the pipeline)
    - Interview:              interview schedule + result, created by schedule_interview
    - OfferLetterEmailDraft:  generated/edited email text, opaque to the lifecycle

Architecture:
    Program ──1:N──▶ Application ──1:N──▶ ApplicationTimestamp
    Application ──1:1──▶ Interview
    Application ──1:1──▶ OfferLetterEmailDraft
    Application ──1:3──▶ RequiredDocumentSet   (app.models.document)

Lifecycle states:
    draft → submitted → under_review → offer_letter_requested → offer_letter_received
    → interview_documents_required → interview_requested → interview_scheduled
    → accepted | rejected*
    accepted → cas_application_in_progress → cas_documents_required
    → visa_documents_required → visa_application_ready → visa_application_in_progress
    → completed*
"""

from datetime import datetime, timezone

from app.core.exceptions import AlreadyFinalized
from app.models import db, iso_utc


# ── Constants ────────────────────────────────────────────────────────────────

# Rank of every status along the transition table.  Status never moves to a
# lower rank; ``rejected`` shares the rank of ``accepted`` (interview outcome).
STATUS_ORDER = {
    "draft": 0,
    "submitted": 1,
    "under_review": 2,
    "offer_letter_requested": 3,
    "offer_letter_received": 4,
    "interview_documents_required": 5,
    "interview_requested": 6,
    "interview_scheduled": 7,
    "accepted": 8,
    "rejected": 8,
    "cas_application_in_progress": 9,
    "cas_documents_required": 10,
    "visa_documents_required": 11,
    "visa_application_ready": 12,
    "visa_application_in_progress": 13,
    "completed": 14,
}

APPLICATION_STATUSES = set(STATUS_ORDER)

TERMINAL_STATUSES = {"rejected", "completed"}

TIMESTAMP_NAMES = (
    "submitted_at",
    "offer_letter_requested_at",
    "offer_letter_received_at",
    "interview_documents_configured_at",
    "interview_requested_at",
    "interview_scheduled_at",
    "interview_result_date",
    "cas_applied_at",
    "cas_documents_configured_at",
    "cas_documents_submitted_at",
    "cas_received_at",
    "visa_application_enabled_at",
    "visa_documents_configured_at",
    "visa_documents_submitted_at",
    "visa_applied_at",
    "visa_received_at",
)

INTERVIEW_RESULTS = {"pass", "fail"}


# ── Lifecycle Transition Table ───────────────────────────────────────────────
#
#   from      : statuses the event may start from; None = any non-terminal
#                status, gated by ``requires`` instead
#   requires  : timestamps that must already be set
#   once      : timestamp that must still be unset (else AlreadyFinalized)
#   to        : target status; None = status unchanged
#   stamps    : timestamps written by the event
#   configures: stage whose RequiredDocumentSet the event (re)creates
#   satisfies : stage whose required items must all be uploaded

LIFECYCLE_EVENTS = {
    "submit": {
        "from": {"draft"},
        "to": "submitted",
        "stamps": ("submitted_at",),
    },
    "begin_review": {
        "from": {"submitted"},
        "to": "under_review",
        "stamps": (),
    },
    "request_offer_letter": {
        "from": {"submitted", "under_review"},
        "to": "offer_letter_requested",
        "stamps": ("offer_letter_requested_at",),
    },
    "upload_offer_letter": {
        "from": {"offer_letter_requested"},
        "to": "offer_letter_received",
        "stamps": ("offer_letter_received_at",),
    },
    "configure_interview_documents": {
        "from": {"offer_letter_received", "interview_documents_required"},
        "to": "interview_documents_required",
        "stamps": ("interview_documents_configured_at",),
        "configures": "interview",
    },
    "request_interview": {
        "from": {"interview_documents_required"},
        "to": "interview_requested",
        "stamps": ("interview_requested_at",),
        "satisfies": "interview",
    },
    "schedule_interview": {
        "from": {"interview_requested"},
        "to": "interview_scheduled",
        "stamps": ("interview_scheduled_at",),
    },
    "record_interview_result": {
        "from": {"interview_scheduled"},
        "to": None,   # accepted | rejected, decided by the result
        "stamps": ("interview_result_date",),
    },
    "apply_cas": {
        "from": {"accepted", "cas_documents_required"},
        "once": "cas_applied_at",
        "to": "cas_application_in_progress",
        "stamps": ("cas_applied_at",),
    },
    "configure_cas_documents": {
        "from": {"accepted", "cas_application_in_progress", "cas_documents_required"},
        "to": "cas_documents_required",
        "stamps": ("cas_documents_configured_at",),
        "configures": "cas",
    },
    "submit_cas_documents": {
        "from": {"cas_documents_required"},
        "once": "cas_documents_submitted_at",
        "to": None,
        "stamps": ("cas_documents_submitted_at",),
        "satisfies": "cas",
    },
    "upload_cas": {
        "from": None,
        "requires": ("cas_applied_at",),
        "once": "cas_received_at",
        "to": None,
        "stamps": ("cas_received_at", "visa_application_enabled_at"),
    },
    "configure_visa_documents": {
        "from": None,
        "requires": ("visa_application_enabled_at",),
        "to": "visa_documents_required",
        "stamps": ("visa_documents_configured_at",),
        "configures": "visa",
    },
    "submit_visa_documents": {
        "from": {"visa_documents_required"},
        "once": "visa_documents_submitted_at",
        "to": "visa_application_ready",
        "stamps": ("visa_documents_submitted_at",),
        "satisfies": "visa",
    },
    "apply_visa": {
        "from": None,
        "requires": ("visa_application_enabled_at",),
        "once": "visa_applied_at",
        "to": "visa_application_in_progress",
        "stamps": ("visa_applied_at",),
        "satisfies": "visa",
    },
    "upload_visa": {
        "from": None,
        "requires": ("visa_applied_at",),
        "to": "completed",
        "stamps": ("visa_received_at",),
    },
}


def _utcnow():
    return datetime.now(timezone.utc)


# ═════════════════════════════════════════════════════════════════════════════
# 1. Application
# ═════════════════════════════════════════════════════════════════════════════


class Application(db.Model):
    """
    One student's application to one program.

    ``status`` is the single source of truth for pipeline position; every
    pipeline milestone is recorded once in ``timestamp_entries``.
    ``version`` is the compare-and-swap counter for concurrent events.
    """

    __tablename__ = "applications"

    id = db.Column(db.Integer, primary_key=True)
    student_id = db.Column(
        db.String(64), nullable=False, index=True,
        comment="Owner reference supplied by the identity layer",
    )
    program_id = db.Column(
        db.Integer, db.ForeignKey("programs.id", ondelete="RESTRICT"),
        nullable=False, index=True,
    )
    status = db.Column(db.String(40), nullable=False, default="draft", index=True)
    version = db.Column(db.Integer, nullable=False, default=1)

    # Student-entered text
    personal_statement = db.Column(db.Text, nullable=True)
    additional_notes = db.Column(db.Text, nullable=True)

    # Admin-issued documents (→ uploaded_documents.id)
    offer_letter_document_id = db.Column(db.Integer, nullable=True)
    cas_document_id = db.Column(db.Integer, nullable=True)
    cas_notes = db.Column(db.Text, nullable=True)
    visa_document_id = db.Column(db.Integer, nullable=True)
    visa_notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        db.CheckConstraint(
            "status IN ('draft','submitted','under_review','offer_letter_requested',"
            "'offer_letter_received','interview_documents_required','interview_requested',"
            "'interview_scheduled','accepted','rejected','cas_documents_required',"
            "'cas_application_in_progress','visa_documents_required','visa_application_ready',"
            "'visa_application_in_progress','completed')",
            name="ck_application_status",
        ),
    )

    # ── Relationships ────────────────────────────────────────────────────
    program = db.relationship("Program", backref=db.backref("applications", lazy="dynamic"))
    timestamp_entries = db.relationship(
        "ApplicationTimestamp", backref="application", lazy="selectin",
        cascade="all, delete-orphan", order_by="ApplicationTimestamp.occurred_at",
    )
    interview = db.relationship(
        "Interview", backref="application", uselist=False,
        cascade="all, delete-orphan",
    )
    offer_letter_email_draft = db.relationship(
        "OfferLetterEmailDraft", backref="application", uselist=False,
        cascade="all, delete-orphan",
    )
    requirement_sets = db.relationship(
        "RequiredDocumentSet", backref="application", lazy="selectin",
        cascade="all, delete-orphan",
    )
    documents = db.relationship(
        "UploadedDocument", backref="application", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    # ── Timestamps (append-only) ─────────────────────────────────────────

    @property
    def timestamps(self) -> dict:
        """Event name → instant for every milestone reached so far."""
        return {entry.name: entry.occurred_at for entry in self.timestamp_entries}

    def has_timestamp(self, name: str) -> bool:
        return any(entry.name == name for entry in self.timestamp_entries)

    def stamp(self, name: str, when=None, actor: str = "system"):
        """
        Record *name* once.  A timestamp is never cleared or altered.

        Raises:
            ValueError: unknown timestamp name.
            AlreadyFinalized: *name* is already set.
        """
        if name not in TIMESTAMP_NAMES:
            raise ValueError(f"Unknown timestamp: {name}")
        if self.has_timestamp(name):
            raise AlreadyFinalized(None, self.status, f"{name} is already set")
        entry = ApplicationTimestamp(name=name, occurred_at=when or _utcnow(), actor=actor)
        self.timestamp_entries.append(entry)
        return entry

    # ── Requirement sets ─────────────────────────────────────────────────

    def requirement_set(self, stage: str):
        """Return the RequiredDocumentSet for *stage*, or None if not configured."""
        for req_set in self.requirement_sets:
            if req_set.stage == stage:
                return req_set
        return None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_children=False):
        stamps = self.timestamps
        result = {
            "id": self.id,
            "student_id": self.student_id,
            "program_id": self.program_id,
            "status": self.status,
            "version": self.version,
            "personal_statement": self.personal_statement,
            "additional_notes": self.additional_notes,
            "offer_letter_document_id": self.offer_letter_document_id,
            "cas_document_id": self.cas_document_id,
            "cas_notes": self.cas_notes,
            "visa_document_id": self.visa_document_id,
            "visa_notes": self.visa_notes,
            "created_at": iso_utc(self.created_at),
            "updated_at": iso_utc(self.updated_at),
            "timestamps": {name: iso_utc(value) for name, value in stamps.items()},
        }
        # Flat copies keep the shape the portal views already read
        for name in TIMESTAMP_NAMES:
            result[name] = iso_utc(stamps.get(name))
        result["interview"] = self.interview.to_dict() if self.interview else None
        draft = self.offer_letter_email_draft
        result["offer_letter_email_generated_at"] = iso_utc(draft.generated_at) if draft else None
        if self.program is not None:
            result["program"] = self.program.to_dict()
        if include_children:
            result["requirement_sets"] = {
                req_set.stage: req_set.to_dict() for req_set in self.requirement_sets
            }
            result["documents"] = [doc.to_dict() for doc in self.documents]
        return result

    def __repr__(self):
        return f"<Application {self.id}: {self.status}>"


# ═════════════════════════════════════════════════════════════════════════════
# 2. ApplicationTimestamp
# ═════════════════════════════════════════════════════════════════════════════


class ApplicationTimestamp(db.Model):
    """One pipeline milestone.  Unique per (application, name); never updated."""

    __tablename__ = "application_timestamps"
    __table_args__ = (
        db.UniqueConstraint("application_id", "name", name="uq_application_timestamp_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    name = db.Column(db.String(60), nullable=False)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    actor = db.Column(db.String(150), default="system")

    def to_dict(self):
        return {
            "name": self.name,
            "occurred_at": iso_utc(self.occurred_at),
            "actor": self.actor,
        }


# ═════════════════════════════════════════════════════════════════════════════
# 3. Interview
# ═════════════════════════════════════════════════════════════════════════════


class Interview(db.Model):
    """Interview schedule and outcome.  Result fields are written at most once."""

    __tablename__ = "interviews"

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    interview_date = db.Column(db.DateTime(timezone=True), nullable=False)
    location = db.Column(db.String(255), nullable=True)
    meeting_link = db.Column(db.String(500), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    result = db.Column(db.String(10), nullable=True, comment="pass | fail")
    result_notes = db.Column(db.Text, nullable=True)
    result_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.CheckConstraint(
            "result IS NULL OR result IN ('pass','fail')",
            name="ck_interview_result",
        ),
    )

    def to_dict(self):
        return {
            "interview_date": iso_utc(self.interview_date),
            "location": self.location,
            "meeting_link": self.meeting_link,
            "notes": self.notes,
            "result": self.result,
            "result_notes": self.result_notes,
            "result_date": iso_utc(self.result_date),
        }


# ═════════════════════════════════════════════════════════════════════════════
# 4. OfferLetterEmailDraft
# ═════════════════════════════════════════════════════════════════════════════


class OfferLetterEmailDraft(db.Model):
    """
    Email draft produced by the external generator, editable by admins.
    Content is stored verbatim and never parsed.
    """

    __tablename__ = "offer_letter_email_drafts"

    id = db.Column(db.Integer, primary_key=True)
    application_id = db.Column(
        db.Integer, db.ForeignKey("applications.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )
    content = db.Column(db.Text, nullable=True)
    generated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    edited_by_admin = db.Column(db.Boolean, nullable=False, default=False)
    last_error = db.Column(
        db.Text, nullable=True,
        comment="Most recent generator failure; cleared by the next successful generation",
    )
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    def to_dict(self):
        return {
            "application_id": self.application_id,
            "email_content": self.content,
            "generated_at": iso_utc(self.generated_at),
            "edited_by_admin": self.edited_by_admin,
            "last_error": self.last_error,
            "updated_at": iso_utc(self.updated_at),
        }
