"""Shared utility functions for blueprints and services.

parse_int:           lenient query-string integer
commit_or_rollback:  service-layer commit that never leaves a dirty session
"""
import logging

from sqlalchemy.exc import SQLAlchemyError

from app.models import db

logger = logging.getLogger(__name__)


def parse_int(value, default=None):
    """Parse a query-string integer; ``default`` on missing or bad input."""
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


# ── Database commit helpers ──────────────────────────────────────────────────

def commit_or_rollback():
    """Commit the session; on any database error roll back and re-raise.

    Service functions mutate, flush and then call this exactly once, so a
    new record and the status change it causes land together or not at all.
    """
    try:
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        logger.exception("Database error on commit")
        raise
