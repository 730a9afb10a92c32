"""
Rate limiting configuration.

The Limiter instance is created in slam/__init__.py with no default
limits; this module applies the per-blueprint limits.

Usage:
    from slam.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

logger = logging.getLogger(__name__)


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - exec endpoint:  EXEC_RATE_LIMIT (default 300/minute)
        - health probes:  exempt

    Rate limiting is disabled in testing mode.
    """
    if app.config.get("TESTING"):
        app.logger.info("Rate limiter disabled (TESTING=True)")
        return

    exec_limit = app.config.get("EXEC_RATE_LIMIT", "300/minute")
    bp = app.blueprints.get("exec")
    if bp:
        limiter.limit(exec_limit)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured - exec: %s, health: exempt", exec_limit)
