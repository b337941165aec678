"""
Agency Hub
Flask Application Factory.

Usage:
    from agencyhub import create_app
    app = create_app()           # defaults to APP_ENV or "development"
    app = create_app("testing")  # explicit config
"""

import logging
import os

from flask import Flask, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_migrate import Migrate

from agencyhub.auth import init_auth
from agencyhub.config import config
from agencyhub.middleware.logging_config import configure_logging
from agencyhub.middleware.timing import init_request_timing
from agencyhub.models import db

logger = logging.getLogger(__name__)

# ── SQLite FK enforcement (global engine event) ─────────────────────────
from sqlalchemy import event as _sa_event, engine as _sa_engine  # noqa: E402


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
    default_limits=[],                     # limits are applied per blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),  # Redis in production, memory for dev
)


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
    # Instantiated so ProductionConfig can refuse to start without DATABASE_URL / SECRET_KEY
    app.config.from_object(config[config_name]())

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

    # ── Authentication ───────────────────────────────────────────────────
    init_auth(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    # ── Request guards (JSON size + Content-Type) ────────────────────────
    @app.before_request
    def _guard_request():
        if request.method not in ("POST", "PUT", "PATCH") or not request.path.startswith("/api/"):
            return None
        ct = request.content_type or ""
        # Multipart uploads are capped by MAX_CONTENT_LENGTH instead
        if "multipart/form-data" in ct:
            return None
        max_json = app.config.get("MAX_JSON_BYTES")
        if max_json and request.content_length and request.content_length > max_json:
            return jsonify({"error": "Request body too large"}), 413
        if request.content_length and "json" not in ct:
            return jsonify({"error": "Content-Type must be application/json"}), 415
        return None

    # ── Import all models so Alembic can detect them ─────────────────────
    from agencyhub.models import user as _user_models          # noqa: F401
    from agencyhub.models import company as _company_models    # noqa: F401
    from agencyhub.models import project as _project_models    # noqa: F401
    from agencyhub.models import task as _task_models          # noqa: F401
    from agencyhub.models import invoice as _invoice_models    # noqa: F401
    from agencyhub.models import workflow as _workflow_models  # noqa: F401
    from agencyhub.models import ai as _ai_models              # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    os.makedirs(app.instance_path, exist_ok=True)
    with app.app_context():
        db.create_all()
        os.makedirs(app.config["UPLOAD_FOLDER"], exist_ok=True)

    # ── Blueprints ───────────────────────────────────────────────────────
    from agencyhub.blueprints.ai_bp import ai_bp
    from agencyhub.blueprints.company_bp import company_bp
    from agencyhub.blueprints.health_bp import files_bp, health_bp
    from agencyhub.blueprints.invoice_bp import invoice_bp
    from agencyhub.blueprints.project_bp import project_bp
    from agencyhub.blueprints.search_bp import search_bp
    from agencyhub.blueprints.task_bp import task_bp
    from agencyhub.blueprints.workflow_bp import workflow_bp

    app.register_blueprint(health_bp)
    app.register_blueprint(files_bp)
    app.register_blueprint(company_bp)
    app.register_blueprint(project_bp)
    app.register_blueprint(task_bp)
    app.register_blueprint(invoice_bp)
    app.register_blueprint(workflow_bp)
    app.register_blueprint(ai_bp)
    app.register_blueprint(search_bp)

    # ── Error handlers ───────────────────────────────────────────────────
    @app.errorhandler(404)
    def not_found(e):
        if request.path.startswith("/api/"):
            return {"error": "Not found", "path": request.path}, 404
        return e

    @app.errorhandler(405)
    def method_not_allowed(e):
        return {"error": "Method not allowed"}, 405

    @app.errorhandler(413)
    def payload_too_large(e):
        return {"error": "Request body too large"}, 413

    @app.errorhandler(429)
    def rate_limited(e):
        return {"error": "Too many requests", "retry_after": e.description}, 429

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        if request.path.startswith("/api/"):
            return {"error": "Internal server error"}, 500
        return "<h1>500 — Internal Server Error</h1>", 500

    logger.info("Agency Hub started (config=%s)", config_name)
    return app
