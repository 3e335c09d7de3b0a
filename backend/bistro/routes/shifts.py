# Overview: Flask API routes for shifts and stop-lists; parses input and returns JSON responses.

"""
Shift API Routes

- Shift lifecycle: open -> end (frozen once ended)
- Roster replacement while active
- Per-shift stop-lists for menu items and ingredients

Mutations are capability-checked by the shift service; reads by VIEW_SHIFTS.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_capability
from ..errors import BistroError
from ..services import shift_service
from ..validation import parse_id, require_json_object
from . import error_response, internal_error


shifts_bp = Blueprint("shifts", __name__, url_prefix="/api/shifts")
stop_list_bp = Blueprint("stop_list", __name__, url_prefix="/api/stop-list")


# =============================================================================
# SHIFT LIFECYCLE
# =============================================================================

@shifts_bp.post("")
@require_auth
def open_shift_route():
    """
    Open a new shift.

    Request body:
    {
        "cashier_id": 3,
        "waiter_ids": [4, 5],
        "manager_id": 2   (optional, defaults to caller)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        shift = shift_service.open_shift(
            g.actor,
            data.get("cashier_id"),
            data.get("waiter_ids"),
            manager_id=data.get("manager_id"),
        )
        return jsonify({"shift": shift.to_dict()}), 201
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to open shift")
        return internal_error()


@shifts_bp.get("")
@require_auth
@require_capability("VIEW_SHIFTS")
def list_shifts_route():
    limit = request.args.get("limit", default=50, type=int)
    shifts = shift_service.list_shifts(limit=max(1, min(limit, 500)))
    return jsonify({"shifts": [s.to_dict(include_staff=False) for s in shifts]}), 200


@shifts_bp.get("/active")
@require_auth
@require_capability("VIEW_SHIFTS")
def active_shift_route():
    shift = shift_service.get_active_shift()
    if not shift:
        return jsonify({"error": "No active shift", "code": "NO_ACTIVE_SHIFT"}), 404
    return jsonify({"shift": shift.to_dict()}), 200


@shifts_bp.get("/<int:shift_id>")
@require_auth
@require_capability("VIEW_SHIFTS")
def get_shift_route(shift_id: int):
    try:
        shift = shift_service.get_shift(shift_id)
        data = shift.to_dict()
        data["menu_stop_list"] = [e.to_dict() for e in shift.menu_stop_list]
        data["ingredient_stop_list"] = [e.to_dict() for e in shift.ingredient_stop_list]
        return jsonify({"shift": data}), 200
    except BistroError as e:
        return error_response(e)


@shifts_bp.put("/<int:shift_id>/staff")
@require_auth
def update_roster_route(shift_id: int):
    """
    Replace the roster of the active shift.

    Request body: {"cashier_id": 3, "waiter_ids": [4, 5]}
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        shift = shift_service.update_roster(
            g.actor,
            shift_id,
            data.get("cashier_id"),
            data.get("waiter_ids"),
        )
        return jsonify({"shift": shift.to_dict()}), 200
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update shift roster")
        return internal_error()


@shifts_bp.post("/<int:shift_id>/end")
@require_auth
def close_shift_route(shift_id: int):
    try:
        shift = shift_service.close_shift(g.actor, shift_id)
        return jsonify({"shift": shift.to_dict(), "message": "Shift ended"}), 200
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to end shift")
        return internal_error()


# =============================================================================
# STOP-LISTS (kind = menu | ingredient)
# =============================================================================

@stop_list_bp.get("/<kind>")
@require_auth
@require_capability("VIEW_SHIFTS")
def list_stop_list_route(kind: str):
    try:
        shift_id = request.args.get("shift_id")
        entries = shift_service.list_stop_list(
            kind,
            shift_id=parse_id(shift_id, "shift_id") if shift_id else None,
        )
        return jsonify({"entries": [e.to_dict() for e in entries]}), 200
    except BistroError as e:
        return error_response(e)


@stop_list_bp.post("/<kind>")
@require_auth
def add_to_stop_list_route(kind: str):
    """Request body: {"target_id": 7}"""
    try:
        data = require_json_object(request.get_json(silent=True))
        entry = shift_service.add_to_stop_list(g.actor, kind, data.get("target_id"))
        return jsonify({"entry": entry.to_dict()}), 201
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add stop-list entry")
        return internal_error()


@stop_list_bp.delete("/<kind>/<int:target_id>")
@require_auth
def remove_from_stop_list_route(kind: str, target_id: int):
    try:
        shift_service.remove_from_stop_list(g.actor, kind, target_id)
        return jsonify({"message": "Removed from stop-list"}), 200
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove stop-list entry")
        return internal_error()
