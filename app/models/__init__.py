"""
Admissions Portal
Shared SQLAlchemy instance.

Every model module imports ``db`` from here so that a single metadata
object backs ``db.create_all()`` and Flask-Migrate autogeneration.
"""

from datetime import timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def iso_utc(value):
    """ISO-8601 string for a stored timestamp, or None.

    SQLite hands ``DateTime(timezone=True)`` columns back naive; those are
    UTC by construction, so the offset is restored before formatting.
    """
    if not value:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()
