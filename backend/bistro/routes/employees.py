# Overview: Flask API routes for staff accounts; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..errors import BistroError
from ..services import auth_service
from ..validation import parse_id, require_json_object
from . import error_response, internal_error


employees_bp = Blueprint("employees", __name__, url_prefix="/api/employees")


@employees_bp.get("")
@require_auth
def list_employees_route():
    """
    List staff accounts.

    Query params: role (optional), include_inactive=true (optional)
    """
    try:
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"
        users = auth_service.list_employees(
            g.actor,
            role=request.args.get("role"),
            active_only=not include_inactive,
        )
        return jsonify({"employees": [u.to_dict() for u in users]}), 200
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list employees")
        return internal_error()


@employees_bp.post("")
@require_auth
def register_employee_route():
    """
    Create a staff account (admin only).

    Request body: {"username", "full_name", "password", "role"}
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        user = auth_service.register_employee(
            g.actor,
            username=data.get("username"),
            full_name=data.get("full_name"),
            password=data.get("password"),
            role=data.get("role"),
        )
        return jsonify({"employee": user.to_dict()}), 201
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register employee")
        return internal_error()


@employees_bp.post("/<int:user_id>/deactivate")
@require_auth
def deactivate_employee_route(user_id: int):
    try:
        user = auth_service.set_user_active(g.actor, parse_id(user_id, "user_id"), False)
        return jsonify({"employee": user.to_dict()}), 200
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to deactivate employee")
        return internal_error()


@employees_bp.post("/<int:user_id>/activate")
@require_auth
def activate_employee_route(user_id: int):
    try:
        user = auth_service.set_user_active(g.actor, parse_id(user_id, "user_id"), True)
        return jsonify({"employee": user.to_dict()}), 200
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to activate employee")
        return internal_error()
