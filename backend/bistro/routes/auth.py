# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

"""
Authentication API routes

- Login returns a bearer token (also set as the auth-token cookie)
- Logout revokes the token
- /me returns the caller and their capabilities
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, get_request_token, AUTH_COOKIE
from ..extensions import db
from ..models import User
from ..permissions import capabilities_for
from ..services import auth_service, session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body: {"username": "...", "password": "..."}
    """
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username")
        password = data.get("password")

        if not username or not password:
            return jsonify({"error": "username and password required"}), 400

        user = auth_service.authenticate(username, password)
        if not user:
            current_app.logger.info("Failed login for %r from %s", username, request.remote_addr)
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(user)

        response = jsonify({
            "user": user.to_dict(),
            "capabilities": capabilities_for(user.role),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful",
        })
        max_age = int(current_app.config.get("SESSION_TTL_HOURS", 24)) * 3600
        response.set_cookie(AUTH_COOKIE, token, max_age=max_age, httponly=True, samesite="Lax")
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """Revoke the caller's session token."""
    try:
        token = get_request_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        if not session_service.revoke_session(token):
            return jsonify({"error": "Invalid or expired token"}), 401

        response = jsonify({"message": "Logout successful"})
        response.delete_cookie(AUTH_COOKIE)
        return response, 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    user = db.session.get(User, g.actor.user_id)
    return jsonify({
        "user": user.to_dict(),
        "role": g.actor.role,
        "capabilities": capabilities_for(g.actor.role),
    }), 200
