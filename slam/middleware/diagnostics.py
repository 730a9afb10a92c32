"""
Startup diagnostics - runs once when the Flask app starts.

Checks the database and the SLA store and logs a summary banner.
"""

import logging
import sys

from flask import Flask
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.exc import SQLAlchemyError

from slam.models import db
from slam.services.diagnostic_service import collect_store_diagnostics

logger = logging.getLogger(__name__)


def run_startup_diagnostics(app: Flask):
    """Run diagnostic checks during app startup."""
    if app.config.get("TESTING"):
        return  # skip during tests for speed

    issues: list[str] = []

    with app.app_context():
        py = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"

        # ── Database connectivity ────────────────────────────────────
        db_status = "ok"
        db_uri = str(app.config.get("SQLALCHEMY_DATABASE_URI", ""))
        db_type = "PostgreSQL" if "postgresql" in db_uri else "SQLite" if "sqlite" in db_uri else "unknown"
        try:
            db.session.execute(db.text("SELECT 1"))
        except SQLAlchemyError as exc:
            db_status = "FAILED"
            issues.append(f"Database unreachable: {exc}")

        # ── Tables / store hygiene ───────────────────────────────────
        table_count = "?"
        store_status = "not checked"
        if db_status == "ok":
            tables = sa_inspect(db.engine).get_table_names()
            table_count = len(tables)
            if "sla_master" not in tables:
                issues.append("SLA table not found - run 'flask db upgrade'")
            else:
                report = collect_store_diagnostics()
                store_status = f"{report['rows']} rows, {'clean' if report['ok'] else 'PROBLEMS'}"
                if not report["ok"]:
                    issues.append("SLA store has problems - run 'flask store-diagnostics'")
            db.session.rollback()

        # ── Flags ────────────────────────────────────────────────────
        storage = app.config.get("REDIS_URL", "memory://").split("://", 1)[0]
        auth_enabled = str(app.config.get("API_AUTH_ENABLED", "false")).lower() == "true"
        strict_versions = bool(app.config.get("REQUIRE_ROW_VERSION"))
        permissions = bool(app.config.get("ENFORCE_PERMISSIONS"))

        banner = f"""
╔══════════════════════════════════════════════════════════════╗
║  SLAM - SLA Record Store - Startup Diagnostics               ║
╠══════════════════════════════════════════════════════════════╣
║  Python      : {py:<46s}║
║  Debug       : {str(app.debug):<46s}║
║  Database    : {f'{db_type} ({db_status})':<46s}║
║  Tables      : {str(table_count):<46s}║
║  SLA store   : {store_status:<46s}║
║  Rate limits : {storage:<46s}║
║  Auth        : {'ENABLED' if auth_enabled else 'DISABLED':<46s}║
║  rowVersion  : {'REQUIRED' if strict_versions else 'optional':<46s}║
║  Permissions : {'ENFORCED' if permissions else 'not enforced':<46s}║
╚══════════════════════════════════════════════════════════════╝"""
        logger.info(banner)

        if issues:
            logger.warning("Startup issues detected:")
            for issue in issues:
                logger.warning("  ⚠ %s", issue)
        else:
            logger.info("✅ All startup checks passed")
