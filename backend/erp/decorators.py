# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services.authorization import ActorContext


def _header_int(name: str):
    raw = request.headers.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return int(raw.strip())
    except ValueError:
        return "invalid"


def require_actor(f):
    """
    Resolve the acting user from the request and expose it as g.actor.

    Identity is asserted by the gateway in front of this service through
    headers:
    - X-User-Id: the user id (required)
    - X-Company-Id: the company the user works for (absent for system users)
    - X-System-User: "true" for users allowed to act on every company

    Returns 401 when no user id is supplied, 400 when an id is malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = _header_int("X-User-Id")
        if user_id is None:
            return jsonify({"error": "Authentication required"}), 401

        company_id = _header_int("X-Company-Id")
        if user_id == "invalid" or company_id == "invalid":
            return jsonify({"error": "Invalid actor headers"}), 400

        is_system_user = request.headers.get("X-System-User", "false").strip().lower() == "true"

        g.actor = ActorContext(
            user_id=user_id,
            company_id=company_id,
            is_system_user=is_system_user,
        )
        return f(*args, **kwargs)

    return decorated_function
