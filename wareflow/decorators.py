# Overview: Request decorators and helpers for API routes.

from functools import wraps
from flask import request, jsonify, g, current_app

from .errors import ValidationError
from .services.scope_service import Actor


ROLE_HEADER = "X-Actor-Role"
ID_HEADER = "X-Actor-Id"


def require_actor(f):
    """
    Establish the acting party for the request.

    The identity service authenticates upstream and forwards the result as
    X-Actor-Role / X-Actor-Id headers, which are trusted verbatim.

    Sets:
    - g.actor: the Actor (role + id) every service call is scoped to

    Returns 401 if either header is missing or malformed.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        role = request.headers.get(ROLE_HEADER)
        actor_id = request.headers.get(ID_HEADER)

        if not role or not actor_id:
            return jsonify({"error": "Authentication required"}), 401

        try:
            g.actor = Actor.from_claims(role.strip().lower(), actor_id.strip())
        except ValidationError as e:
            current_app.logger.warning("Rejected actor headers: %s", e.message)
            return jsonify({"error": "Invalid actor"}), 401

        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    """Request JSON as a dict; a missing body reads as {}."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data
