# Overview: Request and capability decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .errors import PermissionDenied
from .permissions import check_capability
from .services import session_service


AUTH_COOKIE = "auth-token"


def get_request_token() -> str | None:
    """Bearer token from the Authorization header, else the auth cookie."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get(AUTH_COOKIE) or None


def require_auth(f):
    """
    Require a valid session token.

    Sets g.actor (user id + role snapshot). Returns 401 if the token is
    missing, unknown, expired or revoked, or the user was deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = get_request_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        actor = session_service.validate_session(token)
        if not actor:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_capability(capability: str):
    """
    Require a capability for read routes.

    Mutating services check their own capability; this guards the read
    paths with the same table.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401

            try:
                check_capability(actor, capability)
            except PermissionDenied as e:
                return jsonify(e.to_dict()), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
