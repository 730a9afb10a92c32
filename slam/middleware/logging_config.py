"""
Structured logging configuration.

Every record emitted while a request is being served is stamped with the
request id and the acting user, so a service-level line such as
"SLA updated" can be joined to the access-log line for the same call.

- Development / testing: one-line readable format
- Production: one JSON object per line
- Level: LOG_LEVEL env variable
"""

import json
import logging
import os
import sys
from datetime import datetime, timezone

from flask import g, has_request_context

# ``extra=`` keys copied into JSON log lines when present
EXTRA_KEYS = (
    "request_id",
    "actor",
    "action",
    "sla_id",
    "method",
    "path",
    "status",
    "duration_ms",
    "remote_addr",
)

NOISY_LOGGERS = ("urllib3", "werkzeug", "sqlalchemy.engine", "alembic.runtime.migration")


class RequestContextFilter(logging.Filter):
    """Copy the current request id onto records that do not carry one."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "request_id", None) is None and has_request_context():
            record.request_id = getattr(g, "request_id", None)
        return True


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            "where": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        entry.update({
            key: getattr(record, key)
            for key in EXTRA_KEYS
            if getattr(record, key, None) is not None
        })
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class ReadableFormatter(logging.Formatter):
    """``12:00:01 INFO     slam.services.sla_service: SLA updated <SLA-000004> (ab12cd) [12ms]``"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def __init__(self, color: bool = True):
        super().__init__()
        self.color = color

    def _suffix(self, record):
        parts = []
        sla_id = getattr(record, "sla_id", None)
        if sla_id:
            parts.append(f"<{sla_id}>")
        request_id = getattr(record, "request_id", None)
        if request_id:
            parts.append(f"({request_id})")
        duration = getattr(record, "duration_ms", None)
        if duration is not None:
            parts.append(f"[{duration:.0f}ms]")
        return (" " + " ".join(parts)) if parts else ""

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        level = f"{record.levelname:<8}"
        if self.color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        line = f"{ts} {level} {record.name}: {record.getMessage()}{self._suffix(record)}"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _resolve_level(is_prod: bool):
    name = os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG").upper()
    return name, getattr(logging, name, logging.INFO)


def configure_logging(app):
    """
    Install a single stderr handler on the root logger.

    JSON in production, readable text otherwise (uncolored under testing
    so captured output stays clean).  Safe to call repeatedly.
    """
    is_testing = app.config.get("TESTING", False)
    is_prod = not app.config.get("DEBUG", False) and not is_testing
    level_name, level = _resolve_level(is_prod)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(JSONFormatter() if is_prod else ReadableFormatter(color=not is_testing))
    handler.addFilter(RequestContextFilter())
    handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    app.logger.setLevel(level)

    if not is_testing:
        app.logger.info("Logging configured: level=%s format=%s",
                        level_name, "JSON" if is_prod else "readable")
