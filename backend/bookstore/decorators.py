# Overview: Request identity and role decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .actors import Actor, VALID_ROLES


ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_ROLE_HEADER = "X-Actor-Role"


def _is_authenticated() -> bool:
    return hasattr(g, 'actor')


def require_actor(f):
    """
    Require an upstream-authenticated identity.

    Authentication is done by the gateway in front of this service, which
    forwards the user as X-Actor-Id / X-Actor-Role. Sets:
    - g.actor: the Actor for this request

    Returns 401 if either header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
        role = (request.headers.get(ACTOR_ROLE_HEADER) or "").strip().lower()

        if not raw_id or not role:
            return jsonify({"error": "Authentication required"}), 401
        if not raw_id.isdigit() or role not in VALID_ROLES:
            return jsonify({"error": "Invalid actor identity"}), 401

        g.actor = Actor(id=int(raw_id), role=role)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require the actor to hold one of the given roles.

    Must be applied after @require_actor.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"error": "Authentication required"}), 401

            if g.actor.role not in roles:
                return jsonify({
                    "error": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
