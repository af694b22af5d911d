"""
Timeline Projector — progress steps shown to students and admins.

Pure function of the application snapshot (``status``, ``timestamps`` and the
optional ``interview``).  Both portals call ``project`` so they always show the
same progress.

Rules:
  - a step is ``completed`` when its final marker timestamp is set, or the
    status ranks strictly past the step's last status
  - the first non-completed step is ``current`` unless the status is terminal
  - every other step is ``upcoming``
  - dates are ISO-8601 strings of stored timestamps only
"""

from app.models import iso_utc
from app.models.application import STATUS_ORDER, TERMINAL_STATUSES

# (id, title, final marker, rank of the step's last status)
TIMELINE_STEPS = (
    ("submitted", "Application Submitted", "submitted_at", STATUS_ORDER["submitted"]),
    ("under_review", "Under Review", None, STATUS_ORDER["under_review"]),
    ("offer_letter_requested", "Offer Letter Requested", "offer_letter_requested_at",
     STATUS_ORDER["offer_letter_requested"]),
    ("offer_letter_received", "Offer Letter Received", "offer_letter_received_at",
     STATUS_ORDER["offer_letter_received"]),
    ("interview", "Interview", "interview_result_date", STATUS_ORDER["interview_scheduled"]),
    ("cas", "Apply for CAS", "cas_received_at", STATUS_ORDER["cas_documents_required"]),
    ("visa", "Apply for Visa", "visa_received_at", STATUS_ORDER["visa_application_in_progress"]),
)

# First stored timestamp wins
_DATE_SOURCES = {
    "submitted": ("submitted_at",),
    "under_review": (),
    "offer_letter_requested": ("offer_letter_requested_at",),
    "offer_letter_received": ("offer_letter_received_at",),
    "interview": ("interview_result_date", "interview_scheduled_at",
                  "interview_requested_at", "interview_documents_configured_at"),
    "cas": ("cas_received_at", "cas_applied_at", "cas_documents_configured_at"),
    "visa": ("visa_received_at", "visa_applied_at", "visa_application_enabled_at"),
}


def _describe(step_id, status, stamps, interview_result):
    if step_id == "submitted":
        return "Your application has been successfully submitted"
    if step_id == "under_review":
        return "University is reviewing your application"
    if step_id == "offer_letter_requested":
        return "University offer letter has been requested"
    if step_id == "offer_letter_received":
        return "Your offer letter is ready for download"
    if step_id == "interview":
        if interview_result == "pass":
            return "Interview passed"
        if interview_result == "fail":
            return "Interview failed"
        return {
            "interview_documents_required": "Upload required documents for interview",
            "interview_requested": "Interview request submitted",
            "interview_scheduled": "Interview scheduled",
        }.get(status, "Interview with admissions team")
    if step_id == "cas":
        if "cas_received_at" in stamps:
            return "CAS document received"
        if "cas_applied_at" in stamps:
            return "CAS application submitted"
        if status == "cas_documents_required":
            return "Upload required documents for CAS"
        return "Confirmation of Acceptance for Studies"
    if "visa_received_at" in stamps:
        return "Visa document received"
    if "visa_applied_at" in stamps:
        return "Visa application submitted"
    if status == "visa_documents_required":
        return "Upload required documents for visa"
    if "visa_application_enabled_at" in stamps:
        return "Visa application available"
    return "Student visa application process"


def _date(step_id, stamps):
    for name in _DATE_SOURCES[step_id]:
        value = stamps.get(name)
        if value:
            return iso_utc(value)
    return None


def project(application) -> list[dict]:
    """Return the ordered ``[{id, title, description, status, date}]`` steps."""
    status = application.status
    rank = STATUS_ORDER[status]
    stamps = application.timestamps
    interview = getattr(application, "interview", None)
    interview_result = interview.result if interview is not None else None
    terminal = status in TERMINAL_STATUSES

    steps = []
    current_assigned = False
    for step_id, title, marker, last_rank in TIMELINE_STEPS:
        if (marker and marker in stamps) or rank > last_rank:
            step_status = "completed"
        elif not terminal and not current_assigned:
            step_status = "current"
            current_assigned = True
        else:
            step_status = "upcoming"
        steps.append({
            "id": step_id,
            "title": title,
            "description": _describe(step_id, status, stamps, interview_result),
            "status": step_status,
            "date": _date(step_id, stamps),
        })
    return steps
