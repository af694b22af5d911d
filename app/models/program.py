"""
Admissions Portal
Program domain models.

Models:
    - Program:                     a university program students apply to
    - ProgramDocumentRequirement:  document types a student must upload before submitting

Architecture:
    Program ──1:N──▶ Application           (referenced, not owned)
    Program ──N:M──▶ DocumentType          (via ProgramDocumentRequirement)
"""

from datetime import datetime, timezone

from app.models import db, iso_utc


PROGRAM_LEVELS = {"foundation", "undergraduate", "postgraduate", "doctorate"}


class Program(db.Model):
    """A program in the admissions catalog."""

    __tablename__ = "programs"

    id = db.Column(db.Integer, primary_key=True)
    university_name = db.Column(db.String(200), nullable=False)
    program_name = db.Column(db.String(200), nullable=False)
    city = db.Column(db.String(100), default="")
    level = db.Column(
        db.String(30), default="undergraduate",
        comment="foundation | undergraduate | postgraduate | doctorate",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    document_requirements = db.relationship(
        "ProgramDocumentRequirement", backref="program", lazy="selectin",
        cascade="all, delete-orphan", order_by="ProgramDocumentRequirement.id",
    )

    @property
    def required_document_type_ids(self) -> list[int]:
        return [r.document_type_id for r in self.document_requirements]

    def to_dict(self, include_requirements=False):
        result = {
            "id": self.id,
            "university_name": self.university_name,
            "program_name": self.program_name,
            "city": self.city,
            "level": self.level,
            "is_active": self.is_active,
            "created_at": iso_utc(self.created_at),
        }
        if include_requirements:
            result["required_documents"] = [
                r.document_type.to_dict() for r in self.document_requirements
            ]
        return result

    def __repr__(self):
        return f"<Program {self.id}: {self.program_name} @ {self.university_name}>"


class ProgramDocumentRequirement(db.Model):
    """Initial document a student must upload before ``submit`` is allowed."""

    __tablename__ = "program_document_requirements"
    __table_args__ = (
        db.UniqueConstraint("program_id", "document_type_id", name="uq_program_doc_requirement"),
    )

    id = db.Column(db.Integer, primary_key=True)
    program_id = db.Column(
        db.Integer, db.ForeignKey("programs.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    document_type_id = db.Column(
        db.Integer, db.ForeignKey("document_types.id", ondelete="CASCADE"),
        nullable=False,
    )

    document_type = db.relationship("DocumentType", lazy="joined")
