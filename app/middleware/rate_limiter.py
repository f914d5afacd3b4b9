"""
Rate Limiting Middleware.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
limits are attached here after blueprints are registered.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits (per remote IP):
        - Auth endpoints:   LOGIN_RATE_LIMIT (default 10/minute)
        - Task mutations:   60/minute
        - Health check:     exempt

    Rate limiting is disabled when RATELIMIT_ENABLED is false (testing).
    """

    if not app.config.get("RATELIMIT_ENABLED", True):
        limiter.enabled = False
        app.logger.info("Rate limiter disabled (RATELIMIT_ENABLED=False)")
        return

    login_limit = app.config.get("LOGIN_RATE_LIMIT", "10/minute")
    bp = app.blueprints.get("auth_bp")
    if bp:
        limiter.limit(login_limit)(bp)

    bp = app.blueprints.get("task_bp")
    if bp:
        limiter.limit("60/minute", methods=["POST", "PATCH"])(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — auth: %s, task writes: 60/min", login_limit)
