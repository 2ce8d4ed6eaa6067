# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .actor import Actor


def require_actor(f):
    """
    Establish the acting user for a mutating request.

    Authentication happens upstream; the gateway forwards the verified
    identity in headers:
    - X-User-Id: integer user id (required)
    - X-Username: display name (optional)

    Sets g.actor. Returns 401 when the user id is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_id = (request.headers.get("X-User-Id") or "").strip()
        if not raw_id:
            return jsonify({"error": "Actor required (X-User-Id header)"}), 401
        if not raw_id.isdigit():
            return jsonify({"error": "X-User-Id must be an integer"}), 401

        g.actor = Actor(
            user_id=int(raw_id),
            username=(request.headers.get("X-Username") or "").strip() or None,
        )
        return f(*args, **kwargs)

    return decorated_function
