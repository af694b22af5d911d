"""
Admissions Portal
Flask Application Factory.

Usage:
    from app import create_app
    app = create_app()           # defaults to "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

import click
from flask import Flask, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from app.config import config
from app.core.exceptions import (
    AlreadyConfigured,
    AlreadyFinalized,
    ConflictError,
    ExternalServiceError,
    GuardFailed,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from app.middleware.logging_config import configure_logging
from app.middleware.rate_limiter import init_rate_limits
from app.middleware.security_headers import init_security_headers
from app.middleware.timing import init_request_timing
from app.models import db
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine


@_sa_event.listens_for(_sa_engine.Engine, "connect")
def _enable_sqlite_fk(dbapi_conn, connection_record):
    """Enable foreign key enforcement for SQLite connections."""
    if "sqlite" in type(dbapi_conn).__module__:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit, applied per blueprint
    storage_uri=os.getenv("REDIS_URL") or "memory://",  # Redis in production, memory for dev
)


def _register_error_handlers(app):
    """Map the service exception hierarchy to standard JSON errors."""

    @app.errorhandler(InvalidTransition)
    def _invalid_transition(exc):
        return api_error(E.INVALID_TRANSITION, str(exc), details=exc.to_dict())

    @app.errorhandler(GuardFailed)
    def _guard_failed(exc):
        return api_error(E.GUARD_FAILED, str(exc), details=exc.to_dict())

    @app.errorhandler(AlreadyConfigured)
    def _already_configured(exc):
        return api_error(E.ALREADY_CONFIGURED, str(exc), details=exc.to_dict())

    @app.errorhandler(AlreadyFinalized)
    def _already_finalized(exc):
        return api_error(E.ALREADY_FINALIZED, str(exc), details=exc.to_dict())

    @app.errorhandler(NotFoundError)
    def _not_found_error(exc):
        return api_error(E.NOT_FOUND, str(exc))

    @app.errorhandler(ValidationError)
    def _validation_error(exc):
        return api_error(E.VALIDATION_INVALID, str(exc), details=exc.details)

    @app.errorhandler(ConflictError)
    def _conflict_error(exc):
        code = E.CONFLICT_STATE if exc.field == "version" else E.CONFLICT_DUPLICATE
        return api_error(code, str(exc), details={"resource": exc.resource, "field": exc.field})

    @app.errorhandler(ExternalServiceError)
    def _external_service_error(exc):
        logger.warning("External service failure: %s", exc)
        return api_error(E.EXTERNAL_SERVICE, str(exc), details={"service": exc.service})

    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, "Not found", details={"path": request.path})

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed", "code": "ERR_METHOD_NOT_ALLOWED"}, 405

    @app.errorhandler(413)
    def too_large(e):
        return {"error": "Request body too large", "code": "ERR_TOO_LARGE"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")


def create_app(config_name=None):
    """
    Create and configure the Flask application.

    Args:
        config_name: Configuration environment name.
                     One of: "development", "testing", "production".
                     Defaults to APP_ENV env var, or "development" if unset.

    Returns:
        Configured Flask application instance.
    """
    if config_name is None:
        config_name = os.getenv("APP_ENV", "development")

    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config[config_name])

    # ── Structured logging (must be first) ───────────────────────────────
    configure_logging(app)

    # ── Extensions ───────────────────────────────────────────────────────
    db.init_app(app)
    migrate.init_app(app, db)
    limiter.init_app(app)
    cors_origins = app.config.get("CORS_ORIGINS", "*")
    if cors_origins and cors_origins != "*":
        CORS(app, origins=[o.strip() for o in cors_origins.split(",") if o.strip()])
    else:
        CORS(app)

    # ── Security headers + request timing ────────────────────────────────
    init_security_headers(app)
    init_request_timing(app)

    # ── Request guard (Content-Type for mutating API calls) ──────────────
    @app.before_request
    def _guard_request():
        from flask import abort
        if request.method in ("POST", "PUT", "PATCH") and request.path.startswith("/api/"):
            ct = request.content_type or ""
            if request.data and "json" not in ct and "multipart/form-data" not in ct:
                abort(415, description="Content-Type must be application/json")

    # ── Import all models so Alembic can detect them ─────────────────────
    from app.models import application as _application_models  # noqa: F401
    from app.models import audit as _audit_models              # noqa: F401
    from app.models import document as _document_models        # noqa: F401
    from app.models import program as _program_models          # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    with app.app_context():
        db.create_all()
        app.logger.debug("db.create_all() completed")

    # ── Blueprints ───────────────────────────────────────────────────────
    from app.blueprints.admin_applications_bp import admin_applications_bp
    from app.blueprints.applications_bp import applications_bp
    from app.blueprints.audit_bp import audit_bp
    from app.blueprints.document_types_bp import document_types_bp
    from app.blueprints.health_bp import health_bp
    from app.blueprints.programs_bp import programs_bp

    app.register_blueprint(applications_bp)
    app.register_blueprint(admin_applications_bp)
    app.register_blueprint(document_types_bp)
    app.register_blueprint(programs_bp)
    app.register_blueprint(audit_bp)
    app.register_blueprint(health_bp)

    _register_error_handlers(app)

    # ── CLI commands ─────────────────────────────────────────────────────
    @app.cli.command("seed-document-types")
    def seed_document_types_cmd():
        """Insert the common document types that are not present yet."""
        from app.services.document_type_service import seed_defaults
        result = seed_defaults(actor="cli")
        click.echo(f"Seeded {len(result['created'])} document type(s), "
                   f"{len(result['skipped'])} already present.")

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app
