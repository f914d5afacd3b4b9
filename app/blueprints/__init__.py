"""
Stage Review Platform
HTTP blueprints and the helpers they share.
"""

from flask import request

from app.utils.helpers import parse_int


def paginate_query(query, default_limit=200, max_limit=1000):
    """Apply ``?limit=&offset=`` to a SQLAlchemy query.

    A bad or missing limit falls back to ``default_limit``; the limit is
    capped at ``max_limit`` and the offset floored at 0.

    Returns:
        (items, total) where total ignores the pagination.
    """
    total = query.count()
    limit = min(parse_int(request.args.get("limit"), default_limit), max_limit)
    offset = max(parse_int(request.args.get("offset"), 0), 0)
    return query.limit(limit).offset(offset).all(), total
