# Overview: Request decorators for API routes.

from functools import wraps

from flask import g, jsonify, request

from .context import build_context
from .extensions import db
from .services import session_service


def require_auth(f):
    """
    Require a bearer token and build the per-request ServiceContext.

    Sets:
    - g.actor: the verified Actor(id, role)
    - g.ctx:   ServiceContext bound to db.session and g.actor

    SECURITY: Returns 401 if:
    - No Authorization header, or not a Bearer credential
    - Token unknown, expired, idle too long or revoked
    - User account deactivated

    Role and ownership checks happen inside the services (policies.authorize).
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required"}), 401

        token = auth_header.split(" ", 1)[1].strip()

        actor = session_service.verify_token(db.session, token)
        if actor is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.actor = actor
        g.ctx = build_context(db.session, actor)

        return f(*args, **kwargs)

    return decorated_function
