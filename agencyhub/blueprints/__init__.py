"""
Agency Hub
Helpers shared by the blueprints.
"""

from flask import jsonify, request


def _int_arg(name: str, default: int) -> int:
    try:
        return int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default


def paginate_query(query, default_limit=200, max_limit=1000):
    """Slice ``query`` by the ?limit= / ?offset= args; returns (items, total)."""
    limit = max(min(_int_arg("limit", default_limit), max_limit), 0)
    offset = max(_int_arg("offset", 0), 0)
    return query.limit(limit).offset(offset).all(), query.count()


def error_body(err: dict):
    """Unpack a service ``{"error", "status"}`` dict into a view return value."""
    return jsonify({"error": err["error"]}), err.get("status", 400)
