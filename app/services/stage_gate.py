"""
Stage Gate — lifecycle precondition evaluation.

Decides whether a lifecycle event may fire against an application snapshot.
Side-effect free: reads the loaded Application (and its program checklist)
and never writes.

Check order for every event:
  1. terminal status                      → InvalidTransition
  2. once-only field already written      → AlreadyFinalized
  3. source status / prerequisite stamps  → InvalidTransition
  4. reconfiguration lock                 → AlreadyConfigured
  5. event preconditions                  → GuardFailed

Usage:
    from app.services.stage_gate import can_transition, check_transition

    gate = can_transition(application, "request_interview")
    if not gate.allowed:
        ...
    check_transition(application, "schedule_interview", interview_date=when)
"""

from dataclasses import dataclass

from sqlalchemy import select

from app.core.exceptions import (
    AlreadyConfigured,
    AlreadyFinalized,
    GuardFailed,
    InvalidTransition,
    LifecycleError,
    NotFoundError,
)
from app.models import db
from app.models.application import INTERVIEW_RESULTS, LIFECYCLE_EVENTS, TERMINAL_STATUSES
from app.models.document import STAGE_LOCK_MARKERS, UploadedDocument


@dataclass
class GateResult:
    """Outcome of a gate evaluation; ``error`` is the exception check_transition raises."""

    allowed: bool
    reason: str | None = None
    error: LifecycleError | None = None

    def to_dict(self) -> dict:
        return {
            "allowed": self.allowed,
            "reason": self.reason,
            "error": type(self.error).__name__ if self.error else None,
        }


def _deny(error_cls, event, application, reason, details=None) -> GateResult:
    error = error_cls(event, application.status, reason, details)
    return GateResult(allowed=False, reason=reason, error=error)


def _missing_details(items) -> dict:
    return {
        "missing": [
            {"document_type_id": item.document_type_id, "document_name": item.document_name}
            for item in items
        ]
    }


def missing_initial_documents(application) -> list:
    """Program-required document types with no ``application``-stage upload yet."""
    program = application.program
    if program is None:
        return []
    uploaded_ids = set(
        db.session.execute(
            select(UploadedDocument.document_type_id).where(
                UploadedDocument.application_id == application.id,
                UploadedDocument.stage == "application",
            )
        ).scalars()
    )
    return [
        req.document_type
        for req in program.document_requirements
        if req.document_type_id not in uploaded_ids
    ]


def stage_locked(application, stage: str) -> bool:
    """True once any lock marker of *stage* is stamped."""
    stamps = application.timestamps
    return any(marker in stamps for marker in STAGE_LOCK_MARKERS[stage])


def _satisfied_or_deny(event, application, stage, *, require_configured=True):
    req_set = application.requirement_set(stage)
    if req_set is None:
        if require_configured:
            return _deny(GuardFailed, event, application,
                         f"{stage} documents have not been configured")
        return None
    missing = req_set.missing_items()
    if missing:
        return _deny(
            GuardFailed, event, application,
            f"{len(missing)} required {stage} document(s) not uploaded",
            _missing_details(missing),
        )
    return None


def can_transition(application, event: str, **params) -> GateResult:
    """
    Evaluate whether *event* may fire against *application*.

    Optional params are only checked when supplied, so the gate can also be
    used for UI pre-validation without a payload:
        document_type_ids   — configure_* events (must be non-empty)
        interview_date      — schedule_interview (must be set)
        result              — record_interview_result (pass | fail)
        has_file            — upload_* events (must be True)
        allow_reconfiguration — configure_* events (default True)
    """
    rule = LIFECYCLE_EVENTS.get(event)
    if rule is None:
        return _deny(InvalidTransition, event, application, f"Unknown event: {event}")

    stamps = application.timestamps

    # 1. Terminal
    if application.status in TERMINAL_STATUSES:
        return _deny(InvalidTransition, event, application,
                     f"'{application.status}' is a terminal status")

    # 2. Once-only fields
    if event == "record_interview_result":
        interview = application.interview
        if interview is not None and interview.result is not None:
            return _deny(AlreadyFinalized, event, application,
                         "interview result has already been recorded")
    once = rule.get("once")
    if once and once in stamps:
        return _deny(AlreadyFinalized, event, application, f"{once} is already set")

    # 3. Source status and prerequisite stamps
    if rule["from"] is not None and application.status not in rule["from"]:
        return _deny(InvalidTransition, event, application,
                     f"Cannot '{event}' from status '{application.status}'")
    for required in rule.get("requires", ()):
        if required not in stamps:
            return _deny(InvalidTransition, event, application, f"{required} is not set")

    # 4. Reconfiguration lock
    stage = rule.get("configures")
    if stage:
        if stage_locked(application, stage):
            return _deny(AlreadyConfigured, event, application,
                         f"{stage} documents are locked")
        if (application.requirement_set(stage) is not None
                and not params.get("allow_reconfiguration", True)):
            return _deny(AlreadyConfigured, event, application,
                         f"{stage} documents are already configured")

    # 5. Preconditions
    if stage and "document_type_ids" in params and not params["document_type_ids"]:
        return _deny(GuardFailed, event, application,
                     "at least one document type is required")

    if "has_file" in params and not params["has_file"]:
        return _deny(GuardFailed, event, application, "a file is required")

    if event == "submit":
        missing = missing_initial_documents(application)
        if missing:
            return _deny(
                GuardFailed, event, application,
                f"{len(missing)} required initial document(s) not uploaded",
                {"missing": [{"document_type_id": dt.id, "document_name": dt.name}
                             for dt in missing]},
            )

    elif event == "schedule_interview":
        if "interview_date" in params and not params["interview_date"]:
            return _deny(GuardFailed, event, application, "interview_date is required")

    elif event == "record_interview_result":
        if "result" in params and params["result"] not in INTERVIEW_RESULTS:
            return _deny(GuardFailed, event, application,
                         "result must be one of: fail, pass")

    elif event == "apply_visa":
        denied = _satisfied_or_deny(event, application, "visa", require_configured=False)
        if denied:
            return denied

    elif rule.get("satisfies"):
        denied = _satisfied_or_deny(event, application, rule["satisfies"])
        if denied:
            return denied

    return GateResult(allowed=True)


def check_transition(application, event: str, **params) -> GateResult:
    """Like :func:`can_transition` but raises the typed error when denied."""
    gate = can_transition(application, event, **params)
    if not gate.allowed:
        raise gate.error
    return gate


def check_stage_upload(application, stage: str, document_type_id: int):
    """
    Validate a student upload against the *stage* requirement set.

    Returns the RequiredDocumentSet.

    Raises:
        InvalidTransition: terminal application or stage not configured.
        AlreadyFinalized: the stage is locked.
        NotFoundError: the document type is not part of the set.
    """
    event = f"upload_{stage}_document"
    if application.status in TERMINAL_STATUSES:
        raise InvalidTransition(event, application.status,
                                f"'{application.status}' is a terminal status")
    req_set = application.requirement_set(stage)
    if req_set is None:
        raise InvalidTransition(event, application.status,
                                f"{stage} documents have not been configured")
    if stage_locked(application, stage):
        raise AlreadyFinalized(event, application.status,
                               f"{stage} documents are locked")
    if req_set.item_for(document_type_id) is None:
        raise NotFoundError(f"RequiredDocumentItem ({stage})", document_type_id)
    return req_set
