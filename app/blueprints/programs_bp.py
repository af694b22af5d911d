"""Program catalog blueprint.

Endpoints:
    GET  /api/v1/programs                          — list (?active_only=true)
    POST /api/v1/programs                          — create
    GET  /api/v1/programs/<id>                     — detail with required documents
    PUT  /api/v1/programs/<id>                     — update name, city, level, is_active
    DELETE /api/v1/programs/<id>                   — delete (409 while applications exist)
    GET  /api/v1/programs/<id>/requirements        — initial-document checklist
    POST /api/v1/programs/<id>/requirements        — replace the checklist
"""

import logging

from flask import Blueprint, jsonify, request

from app.models.program import Program
from app.services import program_service
from app.utils.helpers import current_actor, get_or_404, parse_id_list

logger = logging.getLogger(__name__)

programs_bp = Blueprint("programs", __name__, url_prefix="/api/v1/programs")


@programs_bp.route("", methods=["GET"])
def list_programs():
    active_only = request.args.get("active_only", "false").lower() in ("1", "true", "yes")
    programs = program_service.list_programs(active_only=active_only)
    return jsonify({"items": [p.to_dict() for p in programs], "total": len(programs)})


@programs_bp.route("", methods=["POST"])
def create_program():
    data = request.get_json(silent=True) or {}
    if "document_type_ids" in data:
        data["document_type_ids"] = parse_id_list(data["document_type_ids"])
    program = program_service.create_program(data, actor=current_actor("admin"))
    return jsonify(program.to_dict(include_requirements=True)), 201


@programs_bp.route("/<int:program_id>", methods=["GET"])
def get_program(program_id):
    program, err = get_or_404(Program, program_id)
    if err:
        return err
    return jsonify(program.to_dict(include_requirements=True))


@programs_bp.route("/<int:program_id>/requirements", methods=["GET"])
def get_requirements(program_id):
    program, err = get_or_404(Program, program_id)
    if err:
        return err
    return jsonify({
        "program_id": program.id,
        "items": [r.document_type.to_dict() for r in program.document_requirements],
    })


@programs_bp.route("/<int:program_id>/requirements", methods=["POST"])
def set_requirements(program_id):
    program, err = get_or_404(Program, program_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    program = program_service.set_requirements(
        program, parse_id_list(data.get("document_type_ids")), actor=current_actor("admin"),
    )
    return jsonify(program.to_dict(include_requirements=True))


@programs_bp.route("/<int:program_id>", methods=["PUT"])
def update_program(program_id):
    program, err = get_or_404(Program, program_id)
    if err:
        return err
    data = request.get_json(silent=True) or {}
    program = program_service.update_program(program, data, actor=current_actor("admin"))
    return jsonify(program.to_dict(include_requirements=True))


@programs_bp.route("/<int:program_id>", methods=["DELETE"])
def delete_program(program_id):
    program, err = get_or_404(Program, program_id)
    if err:
        return err
    program_service.delete_program(program, actor=current_actor("admin"))
    return jsonify({"message": "Program deleted"})
