"""
SLAM - SLA Record Store
Authentication and acting-identity middleware.

Provides:
    - API key authentication via X-API-Key header or ?api_key= query param
    - Acting identity resolution for audit columns and permission checks
    - Content-Type enforcement for state-changing requests

Security model:
    - /api/v1/* endpoints require a valid API key when API_AUTH_ENABLED
      is true (health probes and CORS pre-flight are always open)
    - The acting identity is whatever the trusted front end puts in
      IDENTITY_HEADER; it is not authenticated by this service

Configuration (env vars):
    API_KEYS          - comma-separated list of valid API keys
                        e.g. "key1:admin,key2:service"
    API_AUTH_ENABLED  - set to "true" to require an API key
    IDENTITY_HEADER   - header carrying the acting user's email
"""

import logging
import os

from flask import current_app, g, has_request_context, request

from slam.utils.errors import E, api_error

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def _parse_api_keys() -> dict[str, str]:
    """
    Parse API_KEYS env var into {key: label} mapping.

    Format: "key1:admin,key2:service"
    Keys without a label are labelled 'client'.
    """
    raw = os.getenv("API_KEYS", "")
    if not raw.strip():
        return {}

    keys = {}
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        if ":" in entry:
            key, label = entry.rsplit(":", 1)
            keys[key.strip()] = label.strip().lower() or "client"
        else:
            keys[entry] = "client"
    return keys


def _is_auth_enabled() -> bool:
    """Check whether API-key authentication is enabled (env var or app config)."""
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in ("false", "0", "no", "off")
    return str(current_app.config.get("API_AUTH_ENABLED", "false")).lower() not in ("false", "0", "no", "off")


def _get_api_key_from_request() -> str | None:
    """Extract API key from request header or query parameter."""
    key = request.headers.get("X-API-Key", "").strip()
    if key:
        return key
    return request.args.get("api_key", "").strip() or None


# ── Acting identity ──────────────────────────────────────────────────────────

def get_acting_user() -> str:
    """
    Identity recorded as createdBy/updatedBy and used for permission checks.

    Resolution order: IDENTITY_HEADER → HTTP basic-auth username →
    DEFAULT_ACTOR.  Outside a request
    (CLI, tests) the system actor is used.
    """
    if not has_request_context():
        return SYSTEM_ACTOR

    header = current_app.config.get("IDENTITY_HEADER", "X-User-Email")
    user = request.headers.get(header, "").strip()
    if not user and request.authorization and request.authorization.username:
        user = request.authorization.username.strip()
    if not user:
        user = current_app.config.get("DEFAULT_ACTOR", SYSTEM_ACTOR)

    return user


# ── CSRF protection for API ──────────────────────────────────────────────────

def _check_content_type():
    """
    For POST requests with a body, require Content-Type: application/json.
    HTML forms cannot send that content type, so this doubles as a
    lightweight CSRF guard.
    """
    if request.method in ("POST", "PUT", "PATCH", "DELETE"):
        ct = request.content_type or ""
        if "application/json" not in ct and request.content_length and request.content_length > 0:
            return api_error(
                E.VALIDATION_INVALID,
                "Content-Type must be application/json for state-changing requests",
                status=415,
            )
    return None


# ── before_request hook installer ────────────────────────────────────────────

def init_auth(app):
    """
    Install authentication middleware on the Flask app.

    - Attaches a before_request hook for API routes
    - Skips health probes and OPTIONS pre-flight
    """
    @app.before_request
    def _before_request_auth():
        if not request.path.startswith("/api/v1/"):
            return None
        if request.path.startswith("/api/v1/health"):
            return None
        if request.method == "OPTIONS":
            return None

        csrf_error = _check_content_type()
        if csrf_error:
            return csrf_error

        if not _is_auth_enabled():
            g.api_client = "dev-mode"
            return None

        api_key = _get_api_key_from_request()
        if not api_key:
            return api_error(E.FORBIDDEN, "Authentication required. Provide X-API-Key header.", status=401)

        api_keys = _parse_api_keys()
        if not api_keys:
            logger.error("API_KEYS env var is not configured but API_AUTH_ENABLED=true")
            return api_error(E.INTERNAL, "Server authentication not configured")

        client = api_keys.get(api_key)
        if client is None:
            logger.warning("Invalid API key attempt: %s...", api_key[:8])
            return api_error(E.FORBIDDEN, "Invalid API key", status=401)

        g.api_client = client
        return None

    logger.info("Auth middleware installed (enabled=%s)", app.config.get("API_AUTH_ENABLED"))
