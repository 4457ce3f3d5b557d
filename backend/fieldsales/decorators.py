# Overview: Request decorators resolving the acting user and gating routes by capability.

from functools import wraps
from flask import request, jsonify, g

from .permissions import has_capability
from .services.registry import get_services


ACTOR_HEADER = "X-User-Id"


def require_actor(f):
    """
    Resolve the acting user from the X-User-Id header.

    Sets g.current_actor for the services' auth collaborator.
    Returns 401 if the header is missing or names no active user.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        user_id = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not user_id:
            return jsonify({"error": "Authentication required"}), 401

        auth = get_services().auth
        actor = auth.load_actor(user_id)
        if actor is None:
            return jsonify({"error": "Unknown or inactive user"}), 401

        auth.bind(actor)
        return f(*args, **kwargs)

    return decorated_function


def require_capability(capability: str):
    """Role gate; object-level checks still run inside the services."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = g.get("current_actor")
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401

            if not has_capability(actor, capability):
                return jsonify({
                    "error": "Permission denied",
                    "required_capability": capability,
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
