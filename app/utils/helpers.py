"""Shared blueprint helpers.

get_or_404:       tuple-return lookup used by the catalog blueprints
parse_datetime:   ISO-8601 → aware datetime (raises ValidationError)
parse_id_list:    JSON list of document type ids → list[int]
current_actor:    actor name for the audit trail (X-Actor header)
expected_version: optimistic-lock version from If-Match or the body
"""
import logging
from datetime import date, datetime, timezone

from flask import jsonify, request

from app.core.exceptions import ValidationError
from app.models import db

logger = logging.getLogger(__name__)


def get_or_404(model, pk, label=None):
    """Fetch a model instance by primary key or return a 404 error tuple.

    - Success: (obj, None)
    - Failure: (None, (jsonify_response, 404))

        obj, err = get_or_404(Program, pid)
        if err:
            return err
    """
    label = label or model.__name__
    obj = db.session.get(model, pk)
    if not obj:
        return None, (jsonify({"error": f"{label} not found", "code": "ERR_NOT_FOUND"}), 404)
    return obj, None


def parse_datetime(value, field="date"):
    """Parse an ISO date or datetime string to an aware UTC datetime.

    Naive values are taken as UTC.  A bare date means midnight.
    Returns None for empty input; raises ValidationError on bad input.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            raise ValidationError(
                f"Invalid {field}. Use ISO-8601 (YYYY-MM-DD or YYYY-MM-DDTHH:MM).",
                {field: str(value)},
            ) from exc
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_id_list(value, field="document_type_ids"):
    """Coerce a JSON list of ids to ints, keeping order and dropping duplicates."""
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{field} must be a list", {field: "expected list"})
    ids = []
    for raw in value:
        try:
            type_id = int(raw)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"{field} must contain integer ids", {field: raw}) from exc
        if type_id not in ids:
            ids.append(type_id)
    return ids


def current_actor(default="system"):
    """Actor name for audit rows.  Identity is resolved upstream of this service."""
    return (request.headers.get("X-Actor") or "").strip()[:150] or default


def expected_version():
    """Optimistic-lock version from ``If-Match`` or the JSON body; None if absent."""
    raw = request.headers.get("If-Match") or (request.get_json(silent=True) or {}).get("version")
    if raw in (None, ""):
        return None
    try:
        return int(str(raw).strip('"'))
    except ValueError as exc:
        raise ValidationError("version must be an integer", {"version": raw}) from exc
