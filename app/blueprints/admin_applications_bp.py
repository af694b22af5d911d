"""Admin application-pipeline blueprint.

Endpoint groups:
  Listing               GET  /api/v1/admin/applications            (?status=, limit, offset)
                        GET  /api/v1/admin/applications/interview-requests
                        GET  /api/v1/admin/applications/<id>
                        GET  /api/v1/admin/applications/<id>/timeline
                        GET  /api/v1/admin/applications/<id>/audit
  Review / offer letter POST /api/v1/admin/applications/<id>/begin-review
                        POST /api/v1/admin/applications/<id>/request-offer-letter?generate_email=
                        POST /api/v1/admin/applications/<id>/upload-offer-letter
  Interview             POST /api/v1/admin/applications/<id>/configure-interview-documents
                        GET  /api/v1/admin/applications/<id>/interview-documents
                        POST /api/v1/admin/applications/<id>/schedule-interview
                        POST /api/v1/admin/applications/<id>/interview-result
  CAS                   POST /api/v1/admin/applications/<id>/configure-cas-documents
                        GET  /api/v1/admin/applications/<id>/cas-documents
                        POST /api/v1/admin/applications/<id>/upload-cas
  Visa                  POST /api/v1/admin/applications/<id>/configure-visa-documents
                        GET  /api/v1/admin/applications/<id>/visa-documents
                        POST /api/v1/admin/applications/<id>/upload-visa
  Email draft           POST /api/v1/admin/applications/<id>/generate-offer-letter-email
                        GET/PUT /api/v1/admin/applications/<id>/offer-letter-email-draft
"""

import logging

from flask import Blueprint, jsonify, request

from app.blueprints import paginate_query
from app.core.exceptions import ValidationError
from app.models.application import APPLICATION_STATUSES, Application
from app.models.audit import AuditLog
from app.services import application_lifecycle as lifecycle
from app.services import email_draft_service
from app.services.document_requirements import required_documents_view
from app.services.timeline import project
from app.utils.helpers import current_actor, expected_version, parse_datetime, parse_id_list

logger = logging.getLogger(__name__)

admin_applications_bp = Blueprint(
    "admin_applications", __name__, url_prefix="/api/v1/admin/applications",
)

_TRUTHY = ("1", "true", "yes")


def _admin():
    return current_actor("admin")


def _snapshot(application):
    return jsonify(application.to_dict(include_children=True))


# ═════════════════════════════════════════════════════════════════════════════
# Listing
# ═════════════════════════════════════════════════════════════════════════════


@admin_applications_bp.route("", methods=["GET"])
def list_applications():
    q = Application.query
    status = request.args.get("status")
    if status:
        if status not in APPLICATION_STATUSES:
            raise ValidationError(f"Unknown status: {status}", {"status": status})
        q = q.filter_by(status=status)
    program_id = request.args.get("program_id", type=int)
    if program_id:
        q = q.filter_by(program_id=program_id)
    items, total = paginate_query(q.order_by(Application.updated_at.desc()))
    return jsonify({"items": [a.to_dict() for a in items], "total": total})


@admin_applications_bp.route("/interview-requests", methods=["GET"])
def list_interview_requests():
    """Applications waiting for an interview slot."""
    items = (
        Application.query
        .filter_by(status="interview_requested")
        .order_by(Application.updated_at)
        .all()
    )
    return jsonify({"items": [a.to_dict() for a in items], "total": len(items)})


@admin_applications_bp.route("/<int:application_id>", methods=["GET"])
def get_application(application_id):
    return _snapshot(lifecycle.get_application(application_id))


@admin_applications_bp.route("/<int:application_id>/timeline", methods=["GET"])
def get_timeline(application_id):
    application = lifecycle.get_application(application_id)
    return jsonify({
        "application_id": application.id,
        "status": application.status,
        "steps": project(application),
        "events": lifecycle.available_events(application),
    })


@admin_applications_bp.route("/<int:application_id>/audit", methods=["GET"])
def get_audit(application_id):
    lifecycle.get_application(application_id)
    q = (
        AuditLog.query
        .filter_by(entity_type="application", entity_id=str(application_id))
        .order_by(AuditLog.timestamp, AuditLog.id)
    )
    items, total = paginate_query(q, default_limit=200)
    return jsonify({"items": [log.to_dict() for log in items], "total": total})


# ═════════════════════════════════════════════════════════════════════════════
# Review + offer letter
# ═════════════════════════════════════════════════════════════════════════════


@admin_applications_bp.route("/<int:application_id>/begin-review", methods=["POST"])
def begin_review(application_id):
    application = lifecycle.begin_review(
        application_id, actor=_admin(), expected_version=expected_version(),
    )
    return _snapshot(application)


@admin_applications_bp.route("/<int:application_id>/request-offer-letter", methods=["POST"])
def request_offer_letter(application_id):
    generate_email = request.args.get("generate_email", "false").lower() in _TRUTHY
    application = lifecycle.request_offer_letter(
        application_id, generate_email=generate_email,
        actor=_admin(), expected_version=expected_version(),
    )
    return _snapshot(application)


@admin_applications_bp.route("/<int:application_id>/upload-offer-letter", methods=["POST"])
def upload_offer_letter(application_id):
    application = lifecycle.upload_offer_letter(
        application_id, request.files.get("file"), actor=_admin(),
    )
    return _snapshot(application)


# ═════════════════════════════════════════════════════════════════════════════
# Stage document configuration
# ═════════════════════════════════════════════════════════════════════════════


def _configure(application_id, stage):
    data = request.get_json(silent=True) or {}
    application = lifecycle.configure_stage_documents(
        application_id, stage,
        parse_id_list(data.get("document_type_ids")),
        optional_type_ids=parse_id_list(
            data.get("optional_document_type_ids"), "optional_document_type_ids",
        ),
        notes=data.get("notes"),
        actor=_admin(),
        expected_version=expected_version(),
    )
    return _snapshot(application)


def _stage_documents(application_id, stage):
    application = lifecycle.get_application(application_id)
    return jsonify(required_documents_view(application, stage))


@admin_applications_bp.route(
    "/<int:application_id>/configure-interview-documents", methods=["POST"],
)
def configure_interview_documents(application_id):
    return _configure(application_id, "interview")


@admin_applications_bp.route("/<int:application_id>/interview-documents", methods=["GET"])
def get_interview_documents(application_id):
    return _stage_documents(application_id, "interview")


@admin_applications_bp.route("/<int:application_id>/configure-cas-documents", methods=["POST"])
def configure_cas_documents(application_id):
    return _configure(application_id, "cas")


@admin_applications_bp.route("/<int:application_id>/cas-documents", methods=["GET"])
def get_cas_documents(application_id):
    return _stage_documents(application_id, "cas")


@admin_applications_bp.route("/<int:application_id>/configure-visa-documents", methods=["POST"])
def configure_visa_documents(application_id):
    return _configure(application_id, "visa")


@admin_applications_bp.route("/<int:application_id>/visa-documents", methods=["GET"])
def get_visa_documents(application_id):
    return _stage_documents(application_id, "visa")


# ═════════════════════════════════════════════════════════════════════════════
# Interview
# ═════════════════════════════════════════════════════════════════════════════


@admin_applications_bp.route("/<int:application_id>/schedule-interview", methods=["POST"])
def schedule_interview(application_id):
    data = request.get_json(silent=True) or {}
    application = lifecycle.schedule_interview(
        application_id,
        parse_datetime(data.get("interview_date"), "interview_date"),
        location=data.get("location"),
        meeting_link=data.get("meeting_link"),
        notes=data.get("notes"),
        actor=_admin(),
        expected_version=expected_version(),
    )
    return _snapshot(application)


@admin_applications_bp.route("/<int:application_id>/interview-result", methods=["POST"])
def record_interview_result(application_id):
    data = request.get_json(silent=True) or {}
    application = lifecycle.record_interview_result(
        application_id,
        data.get("result"),
        notes=data.get("notes") or data.get("result_notes"),
        actor=_admin(),
        expected_version=expected_version(),
    )
    return _snapshot(application)


# ═════════════════════════════════════════════════════════════════════════════
# CAS + visa letters
# ═════════════════════════════════════════════════════════════════════════════


@admin_applications_bp.route("/<int:application_id>/upload-cas", methods=["POST"])
def upload_cas(application_id):
    application = lifecycle.upload_cas(
        application_id, request.files.get("file"),
        notes=request.form.get("notes"), actor=_admin(),
    )
    return _snapshot(application)


@admin_applications_bp.route("/<int:application_id>/upload-visa", methods=["POST"])
def upload_visa(application_id):
    application = lifecycle.upload_visa(
        application_id, request.files.get("file"),
        notes=request.form.get("notes"), actor=_admin(),
    )
    return _snapshot(application)


# ═════════════════════════════════════════════════════════════════════════════
# Offer-letter email draft
# ═════════════════════════════════════════════════════════════════════════════


@admin_applications_bp.route(
    "/<int:application_id>/generate-offer-letter-email", methods=["POST"],
)
def generate_offer_letter_email(application_id):
    draft = email_draft_service.generate_draft(application_id, actor=_admin())
    return jsonify(draft.to_dict())


@admin_applications_bp.route("/<int:application_id>/offer-letter-email-draft", methods=["GET"])
def get_offer_letter_email_draft(application_id):
    return jsonify(email_draft_service.get_draft(application_id).to_dict())


@admin_applications_bp.route("/<int:application_id>/offer-letter-email-draft", methods=["PUT"])
def update_offer_letter_email_draft(application_id):
    data = request.get_json(silent=True) or {}
    draft = email_draft_service.update_draft(
        application_id, data.get("email_content"), actor=_admin(),
    )
    return jsonify(draft.to_dict())
