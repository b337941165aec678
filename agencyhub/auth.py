"""
Agency Hub
Authentication & acting-user middleware.

Provides:
    - API key authentication via X-API-Key header
    - Role-based access control (RBAC) decorator
    - Acting user resolution via X-User-Id header (assignments, note authors,
      invoice settings are all keyed by the acting user)

Configuration (env vars / app config):
    API_KEYS          — comma-separated "<key>:<role>" pairs, role is admin|editor|viewer
    API_AUTH_ENABLED  — "false" disables key checks (development/testing)
"""

import functools
import logging
import os
from typing import Optional

from flask import current_app, g, jsonify, request

from agencyhub.models import db
from agencyhub.models.user import User

logger = logging.getLogger(__name__)

# ── Roles ────────────────────────────────────────────────────────────────────

ROLES = {"admin", "editor", "viewer"}

ROLE_HIERARCHY = {
    "admin": {"admin", "editor", "viewer"},
    "editor": {"editor", "viewer"},
    "viewer": {"viewer"},
}

# Viewers may only read
_WRITE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def _parse_api_keys() -> dict[str, str]:
    """
    Parse API_KEYS env var into {key: role} mapping.

    Keys without a role default to 'viewer'.
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
            key, role = entry.rsplit(":", 1)
            role = role.strip().lower()
            if role not in ROLES:
                logger.warning("Unknown role '%s' for API key, defaulting to 'viewer'", role)
                role = "viewer"
            keys[key.strip()] = role
        else:
            keys[entry] = "viewer"
    return keys


def _is_auth_enabled() -> bool:
    """Check whether authentication is enabled (env var wins over app config)."""
    env_val = os.getenv("API_AUTH_ENABLED", "")
    if env_val:
        return env_val.lower() not in ("false", "0", "no", "off")
    return str(current_app.config.get("API_AUTH_ENABLED", "true")).lower() not in ("false", "0", "no", "off")


def _get_api_key_from_request() -> Optional[str]:
    key = request.headers.get("X-API-Key", "").strip()
    return key or None


# ── Acting user ──────────────────────────────────────────────────────────────

def current_user() -> Optional[User]:
    """Return the User named by the X-User-Id header, or None."""
    if "current_user" in g:
        return g.current_user
    user = None
    raw = request.headers.get("X-User-Id", "").strip()
    if raw:
        try:
            user = db.session.get(User, int(raw))
        except ValueError:
            logger.warning("Ignoring non-numeric X-User-Id header: %r", raw[:20])
    g.current_user = user
    g.current_user_id = user.id if user is not None else None
    return user


# ── Role decorator ───────────────────────────────────────────────────────────

def require_role(minimum_role: str):
    """
    Decorator: require a minimum role level.

    Usage:
        @require_role("admin")
        def delete_company(cid): ...

    Role hierarchy: admin > editor > viewer
    """
    def decorator(f):
        @functools.wraps(f)
        def decorated(*args, **kwargs):
            user_role = getattr(g, "current_user_role", None)
            if not user_role:
                return jsonify({"error": "Authentication required"}), 401

            allowed = ROLE_HIERARCHY.get(user_role, set())
            if minimum_role not in allowed:
                logger.warning(
                    "Access denied: role '%s' tried to access '%s'-level endpoint %s",
                    user_role, minimum_role, request.path,
                )
                return jsonify({"error": "Insufficient permissions"}), 403

            return f(*args, **kwargs)
        return decorated
    return decorator


# ── App hook installer ───────────────────────────────────────────────────────

def init_auth(app):
    """
    Install authentication middleware on the Flask app.

    - API routes (/api/...) require a valid key unless auth is disabled
    - Health routes and CORS pre-flight are always open
    """
    @app.before_request
    def _before_request_auth():
        # g outlives the request when an app context is already pushed (tests, CLI)
        g.pop("current_user", None)
        g.pop("current_user_id", None)
        g.pop("current_user_role", None)
        if not request.path.startswith("/api/"):
            return None
        if request.path.startswith("/api/v1/health") or request.method == "OPTIONS":
            return None

        if not _is_auth_enabled():
            g.current_user_role = "admin"
            g.api_key = "dev-mode"
            return None

        api_key = _get_api_key_from_request()
        if not api_key:
            return jsonify({"error": "Authentication required. Provide X-API-Key header."}), 401

        api_keys = _parse_api_keys()
        if not api_keys:
            logger.error("API_KEYS env var is not configured but API_AUTH_ENABLED=true")
            return jsonify({"error": "Server authentication not configured"}), 500

        role = api_keys.get(api_key)
        if role is None:
            logger.warning("Invalid API key attempt: %s...", api_key[:8])
            return jsonify({"error": "Invalid API key"}), 401

        if role == "viewer" and request.method in _WRITE_METHODS:
            return jsonify({"error": "Insufficient permissions"}), 403

        g.current_user_role = role
        g.api_key = api_key
        return None
