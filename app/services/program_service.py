"""
Program Service Layer.

Programs are referenced by applications; their document requirements form
the initial-document checklist checked by ``submit``.
"""

import logging

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.audit import write_audit
from app.models.program import PROGRAM_LEVELS, Program, ProgramDocumentRequirement
from app.services.document_requirements import load_document_types

logger = logging.getLogger(__name__)


def list_programs(active_only: bool = False) -> list[Program]:
    q = Program.query
    if active_only:
        q = q.filter_by(is_active=True)
    return q.order_by(Program.university_name, Program.program_name).all()


def create_program(data: dict, *, actor: str = "admin") -> Program:
    """Create a program, optionally with its initial document requirements.

    Args:
        data: ``university_name`` and ``program_name`` required; ``city``,
              ``level``, ``is_active`` and ``document_type_ids`` optional.
    """
    errors = {}
    for field in ("university_name", "program_name"):
        if not (data.get(field) or "").strip():
            errors[field] = "required"
    level = data.get("level", "undergraduate")
    if level not in PROGRAM_LEVELS:
        errors["level"] = f"must be one of: {', '.join(sorted(PROGRAM_LEVELS))}"
    if errors:
        raise ValidationError("Invalid program", errors)

    program = Program(
        university_name=data["university_name"].strip(),
        program_name=data["program_name"].strip(),
        city=(data.get("city") or "").strip(),
        level=level,
        is_active=bool(data.get("is_active", True)),
    )
    db.session.add(program)
    db.session.flush()
    if data.get("document_type_ids"):
        _replace_requirements(program, data["document_type_ids"])
    write_audit(entity_type="program", entity_id=program.id, action="program.create",
                actor=actor, diff={"program_name": program.program_name})
    db.session.commit()
    logger.info("Program created id=%s name=%s", program.id, program.program_name)
    return program


def _replace_requirements(program: Program, type_ids) -> None:
    types = load_document_types(type_ids)
    program.document_requirements.clear()
    db.session.flush()
    for type_id in type_ids:
        program.document_requirements.append(
            ProgramDocumentRequirement(document_type_id=types[type_id].id)
        )
    db.session.flush()


def set_requirements(program: Program, type_ids, *, actor: str = "admin") -> Program:
    """Replace the initial-document checklist.  Draft applications see it at once."""
    _replace_requirements(program, type_ids)
    write_audit(entity_type="program", entity_id=program.id,
                action="program.set_requirements", actor=actor,
                diff={"document_type_ids": list(type_ids)})
    db.session.commit()
    logger.info("Program requirements set id=%s count=%d", program.id, len(type_ids))
    return program


_EDITABLE_FIELDS = ("university_name", "program_name", "city", "level", "is_active")


def update_program(program: Program, data: dict, *, actor: str = "admin") -> Program:
    """Partial update of the catalog fields; ``is_active=False`` closes admissions.

    Raises:
        ValidationError: a required name blanked or an unknown level.
    """
    errors = {}
    for field in ("university_name", "program_name"):
        if field in data and not (data.get(field) or "").strip():
            errors[field] = "required"
    if "level" in data and data["level"] not in PROGRAM_LEVELS:
        errors["level"] = f"must be one of: {', '.join(sorted(PROGRAM_LEVELS))}"
    if errors:
        raise ValidationError("Invalid program", errors)

    changes = {}
    for field in _EDITABLE_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field == "is_active":
            value = bool(value)
        elif isinstance(value, str):
            value = value.strip()
        elif value is None:
            value = ""
        if getattr(program, field) != value:
            changes[field] = {"old": getattr(program, field), "new": value}
            setattr(program, field, value)

    if changes:
        write_audit(entity_type="program", entity_id=program.id, action="program.update",
                    actor=actor, diff=changes)
    db.session.commit()
    logger.info("Program updated id=%s fields=%s", program.id, sorted(changes))
    return program


def delete_program(program: Program, *, actor: str = "admin") -> None:
    """Delete a program no application refers to.

    Raises:
        ConflictError: applications exist; deactivate the program instead.
    """
    in_use = program.applications.count()
    if in_use:
        raise ConflictError(
            "Program", "id", program.id,
            message=f"Program id={program.id} has {in_use} application(s); "
                    f"set is_active=false instead",
        )
    program_id = program.id
    db.session.delete(program)
    write_audit(entity_type="program", entity_id=program_id, action="program.delete",
                actor=actor)
    db.session.commit()
    logger.info("Program deleted id=%s", program_id)
