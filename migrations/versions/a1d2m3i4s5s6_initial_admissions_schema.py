"""initial_admissions_schema

Create the admissions pipeline tables: catalog, programs, applications,
timestamps, interviews, email drafts, documents, requirement sets, audit.

Revision ID: a1d2m3i4s5s6
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "a1d2m3i4s5s6"
down_revision = None
branch_labels = None
depends_on = None


_STATUS_CHECK = (
    "status IN ('draft','submitted','under_review','offer_letter_requested',"
    "'offer_letter_received','interview_documents_required','interview_requested',"
    "'interview_scheduled','accepted','rejected','cas_documents_required',"
    "'cas_application_in_progress','visa_documents_required','visa_application_ready',"
    "'visa_application_in_progress','completed')"
)


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    if "document_types" not in existing_tables:
        op.create_table(
            "document_types",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_common", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("name"),
        )

    if "programs" not in existing_tables:
        op.create_table(
            "programs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("university_name", sa.String(length=200), nullable=False),
            sa.Column("program_name", sa.String(length=200), nullable=False),
            sa.Column("city", sa.String(length=100), nullable=True),
            sa.Column("level", sa.String(length=30), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "program_document_requirements" not in existing_tables:
        op.create_table(
            "program_document_requirements",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("program_id", sa.Integer(), nullable=False),
            sa.Column("document_type_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["document_type_id"], ["document_types.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("program_id", "document_type_id", name="uq_program_doc_requirement"),
        )
        op.create_index("ix_program_document_requirements_program_id",
                        "program_document_requirements", ["program_id"])

    if "applications" not in existing_tables:
        op.create_table(
            "applications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("student_id", sa.String(length=64), nullable=False),
            sa.Column("program_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=40), nullable=False, server_default="draft"),
            sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
            sa.Column("personal_statement", sa.Text(), nullable=True),
            sa.Column("additional_notes", sa.Text(), nullable=True),
            sa.Column("offer_letter_document_id", sa.Integer(), nullable=True),
            sa.Column("cas_document_id", sa.Integer(), nullable=True),
            sa.Column("cas_notes", sa.Text(), nullable=True),
            sa.Column("visa_document_id", sa.Integer(), nullable=True),
            sa.Column("visa_notes", sa.Text(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["program_id"], ["programs.id"], ondelete="RESTRICT"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(_STATUS_CHECK, name="ck_application_status"),
        )
        op.create_index("ix_applications_student_id", "applications", ["student_id"])
        op.create_index("ix_applications_program_id", "applications", ["program_id"])
        op.create_index("ix_applications_status", "applications", ["status"])

    if "application_timestamps" not in existing_tables:
        op.create_table(
            "application_timestamps",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=60), nullable=False),
            sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=True),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("application_id", "name", name="uq_application_timestamp_name"),
        )
        op.create_index("ix_application_timestamps_application_id",
                        "application_timestamps", ["application_id"])

    if "interviews" not in existing_tables:
        op.create_table(
            "interviews",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("interview_date", sa.DateTime(timezone=True), nullable=False),
            sa.Column("location", sa.String(length=255), nullable=True),
            sa.Column("meeting_link", sa.String(length=500), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column("result", sa.String(length=10), nullable=True),
            sa.Column("result_notes", sa.Text(), nullable=True),
            sa.Column("result_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("application_id"),
            sa.CheckConstraint("result IS NULL OR result IN ('pass','fail')",
                               name="ck_interview_result"),
        )

    if "offer_letter_email_drafts" not in existing_tables:
        op.create_table(
            "offer_letter_email_drafts",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("content", sa.Text(), nullable=True),
            sa.Column("generated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("edited_by_admin", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("last_error", sa.Text(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("application_id"),
        )

    if "uploaded_documents" not in existing_tables:
        op.create_table(
            "uploaded_documents",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("document_type_id", sa.Integer(), nullable=True),
            sa.Column("stage", sa.String(length=30), nullable=False, server_default="application"),
            sa.Column("storage_ref", sa.String(length=255), nullable=False),
            sa.Column("filename", sa.String(length=255), nullable=False),
            sa.Column("original_filename", sa.String(length=255), nullable=False),
            sa.Column("size", sa.Integer(), nullable=True),
            sa.Column("content_type", sa.String(length=100), nullable=True),
            sa.Column("uploaded_by", sa.String(length=150), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["document_type_id"], ["document_types.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.CheckConstraint(
                "stage IN ('application','cas','cas_letter','interview',"
                "'offer_letter','visa','visa_letter')",
                name="ck_uploaded_doc_stage",
            ),
        )
        op.create_index("ix_uploaded_documents_application_id",
                        "uploaded_documents", ["application_id"])
        op.create_index("idx_uploaded_doc_app_stage",
                        "uploaded_documents", ["application_id", "stage"])

    if "required_document_sets" not in existing_tables:
        op.create_table(
            "required_document_sets",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("application_id", sa.Integer(), nullable=False),
            sa.Column("stage", sa.String(length=20), nullable=False),
            sa.Column("configured_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("configured_by", sa.String(length=150), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("application_id", "stage", name="uq_required_set_app_stage"),
            sa.CheckConstraint("stage IN ('interview','cas','visa')", name="ck_required_set_stage"),
        )
        op.create_index("ix_required_document_sets_application_id",
                        "required_document_sets", ["application_id"])

    if "required_document_items" not in existing_tables:
        op.create_table(
            "required_document_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("set_id", sa.Integer(), nullable=False),
            sa.Column("document_type_id", sa.Integer(), nullable=False),
            sa.Column("document_name", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("is_uploaded", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("uploaded_document_id", sa.Integer(), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("position", sa.Integer(), nullable=False, server_default="0"),
            sa.ForeignKeyConstraint(["set_id"], ["required_document_sets.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["document_type_id"], ["document_types.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["uploaded_document_id"], ["uploaded_documents.id"],
                                    ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("set_id", "document_type_id", name="uq_required_item_set_type"),
        )
        op.create_index("ix_required_document_items_set_id",
                        "required_document_items", ["set_id"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_actor", "audit_logs", ["actor"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing_tables = set(inspector.get_table_names())

    for table in (
        "audit_logs",
        "required_document_items",
        "required_document_sets",
        "uploaded_documents",
        "offer_letter_email_drafts",
        "interviews",
        "application_timestamps",
        "applications",
        "program_document_requirements",
        "programs",
        "document_types",
    ):
        if table in existing_tables:
            op.drop_table(table)
