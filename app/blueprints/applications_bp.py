"""Student-facing application blueprint.

Endpoint groups:
  Applications          GET/POST /api/v1/applications
                        GET      /api/v1/applications/<id>
  Progress              GET      /api/v1/applications/<id>/timeline
                        GET      /api/v1/applications/<id>/available-events
  Initial documents     GET      /api/v1/applications/<id>/required-documents
                        GET/POST /api/v1/applications/<id>/documents
                        DELETE   /api/v1/applications/<id>/documents/<doc_id>
                        GET      /api/v1/applications/<id>/documents/<doc_id>/download
                        POST     /api/v1/applications/<id>/submit
  Interview stage       GET      /api/v1/applications/<id>/interview-documents
                        POST     /api/v1/applications/<id>/upload-interview-document
                        POST     /api/v1/applications/<id>/request-interview
  CAS stage             POST     /api/v1/applications/<id>/apply-cas
                        GET      /api/v1/applications/<id>/cas-documents
                        POST     /api/v1/applications/<id>/upload-cas-document
                        POST     /api/v1/applications/<id>/submit-cas-documents
  Visa stage            GET      /api/v1/applications/<id>/visa-documents
                        POST     /api/v1/applications/<id>/upload-visa-document
                        POST     /api/v1/applications/<id>/submit-visa-documents
                        POST     /api/v1/applications/<id>/apply-visa
  Issued letters        GET      /api/v1/applications/<id>/download-offer-letter
                        GET      /api/v1/applications/<id>/download-cas
                        GET      /api/v1/applications/<id>/download-visa

Identity is resolved upstream; the ``X-Actor`` header only names the actor
in the audit trail.  Service layer owns all business logic and commits.
"""

import io
import logging

from flask import Blueprint, jsonify, request, send_file

from app.blueprints import paginate_query
from app.core.exceptions import ValidationError
from app.integrations.blob_store import get_blob_store
from app.models.application import APPLICATION_STATUSES, Application
from app.services import application_lifecycle as lifecycle
from app.services.document_requirements import required_documents_view
from app.services.timeline import project
from app.utils.helpers import current_actor, expected_version

logger = logging.getLogger(__name__)

applications_bp = Blueprint("applications", __name__, url_prefix="/api/v1/applications")


# ── Helpers ──────────────────────────────────────────────────────────────────


def _document_type_id():
    raw = request.form.get("document_type_id") or request.args.get("document_type_id")
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise ValidationError("document_type_id is required", {"document_type_id": raw}) from exc


def _send_document(doc):
    data = get_blob_store().fetch(doc.storage_ref)
    return send_file(
        io.BytesIO(data),
        mimetype=doc.content_type or "application/octet-stream",
        as_attachment=True,
        download_name=doc.original_filename,
    )


def _snapshot(application, status=200):
    return jsonify(application.to_dict()), status


# ═════════════════════════════════════════════════════════════════════════════
# Applications
# ═════════════════════════════════════════════════════════════════════════════


@applications_bp.route("", methods=["POST"])
def create_application():
    data = request.get_json(silent=True) or {}
    if not data.get("program_id"):
        raise ValidationError("program_id is required", {"program_id": "required"})
    application = lifecycle.create_application(
        data.get("student_id") or current_actor(default=""),
        data["program_id"],
        actor=current_actor("student"),
    )
    return _snapshot(application, 201)


@applications_bp.route("", methods=["GET"])
def list_applications():
    """List a student's applications.  ``student_id`` query param filters."""
    q = Application.query
    student_id = request.args.get("student_id")
    if student_id:
        q = q.filter_by(student_id=student_id)
    status = request.args.get("status")
    if status:
        if status not in APPLICATION_STATUSES:
            raise ValidationError(f"Unknown status: {status}", {"status": status})
        q = q.filter_by(status=status)
    items, total = paginate_query(q.order_by(Application.created_at.desc()))
    return jsonify({"items": [a.to_dict() for a in items], "total": total})


@applications_bp.route("/<int:application_id>", methods=["GET"])
def get_application(application_id):
    application = lifecycle.get_application(application_id)
    return jsonify(application.to_dict(include_children=True))


@applications_bp.route("/<int:application_id>/timeline", methods=["GET"])
def get_timeline(application_id):
    application = lifecycle.get_application(application_id)
    return jsonify({
        "application_id": application.id,
        "status": application.status,
        "steps": project(application),
    })


@applications_bp.route("/<int:application_id>/available-events", methods=["GET"])
def get_available_events(application_id):
    application = lifecycle.get_application(application_id)
    return jsonify({
        "application_id": application.id,
        "status": application.status,
        "events": lifecycle.available_events(application),
    })


# ═════════════════════════════════════════════════════════════════════════════
# Initial documents + submit
# ═════════════════════════════════════════════════════════════════════════════


@applications_bp.route("/<int:application_id>/required-documents", methods=["GET"])
def get_required_documents(application_id):
    application = lifecycle.get_application(application_id)
    checklist = lifecycle.required_documents(application)
    return jsonify({
        "application_id": application.id,
        "items": checklist,
        "all_uploaded": all(item["is_uploaded"] for item in checklist),
    })


@applications_bp.route("/<int:application_id>/documents", methods=["GET"])
def list_documents(application_id):
    application = lifecycle.get_application(application_id)
    q = application.documents
    stage = request.args.get("stage")
    if stage:
        q = q.filter_by(stage=stage)
    return jsonify({"items": [d.to_dict() for d in q.all()]})


@applications_bp.route("/<int:application_id>/documents", methods=["POST"])
def upload_document(application_id):
    doc = lifecycle.upload_application_document(
        application_id, _document_type_id(), request.files.get("file"),
        actor=current_actor("student"),
    )
    return jsonify(doc.to_dict()), 201


@applications_bp.route("/<int:application_id>/documents/<int:document_id>", methods=["DELETE"])
def delete_document(application_id, document_id):
    lifecycle.delete_application_document(
        application_id, document_id, actor=current_actor("student"),
    )
    return jsonify({"message": "Document deleted"})


@applications_bp.route(
    "/<int:application_id>/documents/<int:document_id>/download", methods=["GET"],
)
def download_document(application_id, document_id):
    application = lifecycle.get_application(application_id)
    return _send_document(lifecycle.get_document(application, document_id))


@applications_bp.route("/<int:application_id>/submit", methods=["POST"])
def submit_application(application_id):
    data = request.get_json(silent=True) or {}
    application = lifecycle.submit(
        application_id,
        personal_statement=data.get("personal_statement"),
        additional_notes=data.get("additional_notes"),
        actor=current_actor("student"),
        expected_version=expected_version(),
    )
    return _snapshot(application)


# ═════════════════════════════════════════════════════════════════════════════
# Stage documents (interview | cas | visa)
# ═════════════════════════════════════════════════════════════════════════════


def _stage_documents(application_id, stage):
    application = lifecycle.get_application(application_id)
    return jsonify(required_documents_view(application, stage))


def _upload_stage_document(application_id, stage):
    doc = lifecycle.upload_stage_document(
        application_id, stage, _document_type_id(), request.files.get("file"),
        actor=current_actor("student"),
    )
    application = lifecycle.get_application(application_id)
    return jsonify({
        "document": doc.to_dict(),
        "requirements": required_documents_view(application, stage),
    }), 201


@applications_bp.route("/<int:application_id>/interview-documents", methods=["GET"])
def get_interview_documents(application_id):
    return _stage_documents(application_id, "interview")


@applications_bp.route("/<int:application_id>/upload-interview-document", methods=["POST"])
def upload_interview_document(application_id):
    return _upload_stage_document(application_id, "interview")


@applications_bp.route("/<int:application_id>/request-interview", methods=["POST"])
def request_interview(application_id):
    application = lifecycle.request_interview(
        application_id, actor=current_actor("student"),
        expected_version=expected_version(),
    )
    return _snapshot(application)


@applications_bp.route("/<int:application_id>/apply-cas", methods=["POST"])
def apply_cas(application_id):
    application = lifecycle.apply_cas(
        application_id, actor=current_actor("student"),
        expected_version=expected_version(),
    )
    return _snapshot(application)


@applications_bp.route("/<int:application_id>/cas-documents", methods=["GET"])
def get_cas_documents(application_id):
    return _stage_documents(application_id, "cas")


@applications_bp.route("/<int:application_id>/upload-cas-document", methods=["POST"])
def upload_cas_document(application_id):
    return _upload_stage_document(application_id, "cas")


@applications_bp.route("/<int:application_id>/submit-cas-documents", methods=["POST"])
def submit_cas_documents(application_id):
    application = lifecycle.submit_cas_documents(
        application_id, actor=current_actor("student"),
        expected_version=expected_version(),
    )
    return _snapshot(application)


@applications_bp.route("/<int:application_id>/visa-documents", methods=["GET"])
def get_visa_documents(application_id):
    return _stage_documents(application_id, "visa")


@applications_bp.route("/<int:application_id>/upload-visa-document", methods=["POST"])
def upload_visa_document(application_id):
    return _upload_stage_document(application_id, "visa")


@applications_bp.route("/<int:application_id>/submit-visa-documents", methods=["POST"])
def submit_visa_documents(application_id):
    application = lifecycle.submit_visa_documents(
        application_id, actor=current_actor("student"),
        expected_version=expected_version(),
    )
    return _snapshot(application)


@applications_bp.route("/<int:application_id>/apply-visa", methods=["POST"])
def apply_visa(application_id):
    application = lifecycle.apply_visa(
        application_id, actor=current_actor("student"),
        expected_version=expected_version(),
    )
    return _snapshot(application)


# ═════════════════════════════════════════════════════════════════════════════
# Issued letters
# ═════════════════════════════════════════════════════════════════════════════


@applications_bp.route("/<int:application_id>/download-offer-letter", methods=["GET"])
def download_offer_letter(application_id):
    application = lifecycle.get_application(application_id)
    return _send_document(lifecycle.issued_document(application, "offer_letter"))


@applications_bp.route("/<int:application_id>/download-cas", methods=["GET"])
def download_cas(application_id):
    application = lifecycle.get_application(application_id)
    return _send_document(lifecycle.issued_document(application, "cas"))


@applications_bp.route("/<int:application_id>/download-visa", methods=["GET"])
def download_visa(application_id):
    application = lifecycle.get_application(application_id)
    return _send_document(lifecycle.issued_document(application, "visa"))
