"""Document type catalog blueprint.

Endpoints:
    GET    /api/v1/document-types             — list (?common_only=true)
    POST   /api/v1/document-types             — create
    PUT    /api/v1/document-types/<id>        — update
    DELETE /api/v1/document-types/<id>        — delete (409 while referenced)
    POST   /api/v1/document-types/seed        — insert the common defaults
"""

import logging

from flask import Blueprint, jsonify, request

from app.models.document import DocumentType
from app.services import document_type_service
from app.utils.helpers import current_actor, get_or_404

logger = logging.getLogger(__name__)

document_types_bp = Blueprint("document_types", __name__, url_prefix="/api/v1/document-types")


@document_types_bp.route("", methods=["GET"])
def list_document_types():
    common_only = request.args.get("common_only", "false").lower() in ("1", "true", "yes")
    types = document_type_service.list_types(common_only=common_only)
    return jsonify({"items": [t.to_dict() for t in types], "total": len(types)})


@document_types_bp.route("", methods=["POST"])
def create_document_type():
    data = request.get_json(silent=True) or {}
    doc_type = document_type_service.create_type(data, actor=current_actor("admin"))
    return jsonify(doc_type.to_dict()), 201


@document_types_bp.route("/<int:type_id>", methods=["PUT"])
def update_document_type(type_id):
    doc_type, err = get_or_404(DocumentType, type_id, "Document type")
    if err:
        return err
    data = request.get_json(silent=True) or {}
    doc_type = document_type_service.update_type(doc_type, data, actor=current_actor("admin"))
    return jsonify(doc_type.to_dict())


@document_types_bp.route("/<int:type_id>", methods=["DELETE"])
def delete_document_type(type_id):
    doc_type, err = get_or_404(DocumentType, type_id, "Document type")
    if err:
        return err
    document_type_service.delete_type(doc_type, actor=current_actor("admin"))
    return jsonify({"message": "Document type deleted"})


@document_types_bp.route("/seed", methods=["POST"])
def seed_document_types():
    result = document_type_service.seed_defaults(actor=current_actor("admin"))
    return jsonify(result), 201 if result["created"] else 200
