"""
SLAM - SLA Record Store
Flask Application Factory.

Usage:
    from slam import create_app
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

from slam.auth import init_auth
from slam.config import config
from slam.middleware.diagnostics import run_startup_diagnostics
from slam.middleware.logging_config import configure_logging
from slam.middleware.rate_limiter import init_rate_limits
from slam.middleware.timing import init_request_timing
from slam.models import db
from slam.utils.errors import E, api_error

logger = logging.getLogger(__name__)

migrate = Migrate()
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],                     # no global limit - apply per-blueprint
    storage_uri=os.getenv("REDIS_URL", "memory://"),
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

    # ── Authentication & CSRF middleware ─────────────────────────────────
    init_auth(app)

    # ── Request timing middleware ────────────────────────────────────────
    init_request_timing(app)

    app.config.setdefault("MAX_CONTENT_LENGTH", 2 * 1024 * 1024)  # 2 MB

    # ── Import all models so Alembic can detect them ─────────────────────
    from slam.models import audit as _audit_models              # noqa: F401
    from slam.models import counter as _counter_models          # noqa: F401
    from slam.models import lookup as _lookup_models            # noqa: F401
    from slam.models import relationship as _relationship_models  # noqa: F401
    from slam.models import sla as _sla_models                  # noqa: F401

    # ── Auto-create tables (CREATE IF NOT EXISTS) ────────────────────────
    if config_name != "testing":
        if config_name == "development":
            os.makedirs(app.instance_path, exist_ok=True)
        with app.app_context():
            db.create_all()
            app.logger.info("db.create_all() completed successfully")

    # ── Blueprints ───────────────────────────────────────────────────────
    from slam.blueprints.exec_bp import exec_bp
    from slam.blueprints.health_bp import health_bp

    app.register_blueprint(exec_bp)
    app.register_blueprint(health_bp)

    _register_cli(app)
    _register_error_handlers(app)

    # ── Startup diagnostics ──────────────────────────────────────────────
    run_startup_diagnostics(app)

    # ── Rate limiting (after blueprints registered) ──────────────────────
    init_rate_limits(app, limiter)

    return app


def _register_cli(app):
    @app.cli.command("seed-lookups")
    def seed_lookups_cmd():
        """Seed the default team, task and status lookup rows."""
        from slam.services.lookup_service import seed_lookups

        counts = seed_lookups()
        click.echo(f"Seeded {counts['teams']} teams, {counts['tasks']} tasks and {counts['statuses']} statuses.")

    @app.cli.command("reset-sla-counter")
    @click.option("--value", default=0, show_default=True, type=int,
                  help="Last issued number; the next id will be value + 1. 0 re-derives from the table.")
    def reset_sla_counter_cmd(value):
        """Reset the persisted SLA id counter."""
        from slam.services.id_generator import reset_sla_id_counter

        reset_sla_id_counter(value)
        click.echo(f"SLA id counter set to {value}.")

    @app.cli.command("store-diagnostics")
    def store_diagnostics_cmd():
        """Report duplicate keys, blank keys and counter drift in the SLA table."""
        from slam.services.diagnostic_service import collect_store_diagnostics

        report = collect_store_diagnostics()
        for key, value in report.items():
            click.echo(f"{key:<16} {value}")
        if not report["ok"]:
            raise SystemExit(1)


def _register_error_handlers(app):
    @app.errorhandler(404)
    def not_found(e):
        return api_error(E.NOT_FOUND, f"Not found: {request.path}")

    @app.errorhandler(405)
    def method_not_allowed(e):
        return api_error(E.INVALID_ACTION, "Method not allowed", status=405)

    @app.errorhandler(413)
    def too_large(e):
        return api_error(E.VALIDATION_INVALID, "Request body too large", status=413)

    @app.errorhandler(429)
    def rate_limited(e):
        return api_error(E.FORBIDDEN, "Too many requests", status=429, details={"retry_after": e.description})

    @app.errorhandler(500)
    def server_error(e):
        logger.error("500 error: %s", e, exc_info=True)
        return api_error(E.INTERNAL, "Internal server error")
