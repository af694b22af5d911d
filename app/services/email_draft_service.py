"""
Offer-letter email draft service.

Drafts are produced by the external generator (app.integrations.draft_generator)
and may be edited by admins.  Generation is a post-commit side effect of
``request_offer_letter``: it runs in a background thread when
SIDE_EFFECTS_ASYNC is on, inline otherwise.  A generator failure is logged
and kept in ``OfferLetterEmailDraft.last_error``; the lifecycle transition
that triggered it stands.
"""

import logging
import threading
from datetime import datetime, timezone

from flask import current_app

from app.core.exceptions import ExternalServiceError, InvalidTransition, NotFoundError, ValidationError
from app.integrations.draft_generator import DraftGenerator
from app.models import db, iso_utc
from app.models.application import Application, OfferLetterEmailDraft
from app.models.audit import write_audit

logger = logging.getLogger(__name__)

def get_generator() -> DraftGenerator:
    """App-scoped generator; tests replace ``app.extensions['draft_generator']``."""
    generator = current_app.extensions.get("draft_generator")
    if generator is None:
        generator = DraftGenerator(
            current_app.config.get("DRAFT_GENERATOR_URL"),
            timeout=current_app.config.get("DRAFT_GENERATOR_TIMEOUT", 30),
        )
        current_app.extensions["draft_generator"] = generator
    return generator


def _load(application_id) -> Application:
    application = db.session.get(Application, application_id)
    if application is None:
        raise NotFoundError("Application", application_id)
    return application


def build_context(application) -> dict:
    """Payload sent to the generator."""
    program = application.program
    stamps = application.timestamps
    requested = stamps.get("offer_letter_requested_at")
    return {
        "application_id": application.id,
        "student_id": application.student_id,
        "university_name": program.university_name if program else None,
        "program_name": program.program_name if program else None,
        "city": program.city if program else None,
        "level": program.level if program else None,
        "personal_statement": application.personal_statement,
        "additional_notes": application.additional_notes,
        "offer_letter_requested_at": iso_utc(requested),
    }


def generate_draft(application_id, *, actor="system") -> OfferLetterEmailDraft:
    """
    Generate (or regenerate) the draft synchronously.

    Raises:
        NotFoundError: unknown application.
        InvalidTransition: the offer letter has not been requested yet.
        ExternalServiceError: the generator failed (recorded in last_error).
    """
    application = _load(application_id)
    if not application.has_timestamp("offer_letter_requested_at"):
        raise InvalidTransition("generate_offer_letter_email", application.status,
                                "offer letter has not been requested")

    draft = application.offer_letter_email_draft
    if draft is None:
        draft = OfferLetterEmailDraft(application_id=application.id)
        db.session.add(draft)

    try:
        content = get_generator().generate(build_context(application))
    except ExternalServiceError as exc:
        draft.last_error = str(exc)
        db.session.commit()
        logger.warning("Offer letter email generation failed app=%s: %s", application_id, exc)
        raise

    draft.content = content
    draft.generated_at = datetime.now(timezone.utc)
    draft.edited_by_admin = False
    draft.last_error = None
    db.session.flush()
    write_audit(
        entity_type="offer_letter_email_draft", entity_id=application.id,
        action="offer_letter_email.generate", actor=actor,
        diff={"payload": {"length": len(content)}},
    )
    db.session.commit()
    logger.info("Offer letter email draft generated app=%s", application_id)
    return draft


def _run_generation(application_id, actor):
    try:
        generate_draft(application_id, actor=actor)
    except ExternalServiceError as exc:
        logger.info("Offer letter request app=%s kept; draft error recorded: %s",
                    application_id, exc)
    except Exception:
        db.session.rollback()
        logger.exception("Offer letter email side effect crashed app=%s", application_id)


def _run_in_background(app, application_id, actor):
    with app.app_context():
        _run_generation(application_id, actor)


def schedule_generation(application_id, *, actor="system"):
    """Fire draft generation after a committed ``request_offer_letter``."""
    if not current_app.config.get("SIDE_EFFECTS_ASYNC", False):
        _run_generation(application_id, actor)
        return None

    app = current_app._get_current_object()
    t = threading.Thread(
        target=_run_in_background,
        args=(app, application_id, actor),
        daemon=True,
    )
    t.start()
    return t


def get_draft(application_id) -> OfferLetterEmailDraft:
    application = _load(application_id)
    if application.offer_letter_email_draft is None:
        raise NotFoundError("OfferLetterEmailDraft", application_id)
    return application.offer_letter_email_draft


def update_draft(application_id, content, *, actor="admin") -> OfferLetterEmailDraft:
    """Store admin-edited draft text verbatim."""
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("email_content is required", {"email_content": "required"})
    application = _load(application_id)
    draft = application.offer_letter_email_draft
    if draft is None:
        draft = OfferLetterEmailDraft(application_id=application.id)
        db.session.add(draft)
    draft.content = content
    draft.edited_by_admin = True
    db.session.flush()
    write_audit(
        entity_type="offer_letter_email_draft", entity_id=application.id,
        action="offer_letter_email.update", actor=actor,
        diff={"payload": {"length": len(content)}},
    )
    db.session.commit()
    return draft
