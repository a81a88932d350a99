# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g


ACTOR_HEADER = "X-Actor-Id"


def require_actor(f):
    """
    Require an opaque actor identity on state-changing requests.

    Admission control happens upstream; this layer only records who acted.
    Sets g.actor_id for audit fields. Returns 401 when the header is missing.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get(ACTOR_HEADER) or "").strip()
        if not actor_id:
            return jsonify({"error": "unauthenticated", "message": f"{ACTOR_HEADER} header is required"}), 401
        g.actor_id = actor_id
        return f(*args, **kwargs)

    return decorated_function
