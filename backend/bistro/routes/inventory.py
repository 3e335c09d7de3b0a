# Overview: Flask API routes for stock operations; parses input and returns JSON responses.

"""
Stock API Routes

- Ingredient stock levels and per-ingredient ledger history
- Deliveries (stock in, price update)
- Write-offs (stock out against a reason, tied to the active shift)
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_capability
from ..errors import BistroError, ValidationError
from ..services import stock_service
from ..time_utils import parse_iso_datetime
from ..validation import decimal_to_str, parse_optional_id, require_json_object
from . import error_response, internal_error


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api")


def _date_arg(name: str):
    try:
        return parse_iso_datetime(request.args.get(name))
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime", details={"field": name})


# =============================================================================
# INGREDIENTS
# =============================================================================

@inventory_bp.get("/ingredients")
@require_auth
@require_capability("VIEW_INVENTORY")
def list_ingredients_route():
    """Query params: low_stock_below (optional decimal)"""
    try:
        low = request.args.get("low_stock_below")
        ingredients = stock_service.list_ingredients(low_stock_below=low)
        return jsonify({"ingredients": [i.to_dict() for i in ingredients]}), 200
    except BistroError as e:
        return error_response(e)
    except ArithmeticError:
        return jsonify({"error": "low_stock_below must be a number"}), 400


@inventory_bp.get("/ingredients/<int:ingredient_id>")
@require_auth
@require_capability("VIEW_INVENTORY")
def get_ingredient_route(ingredient_id: int):
    try:
        ingredient = stock_service.get_ingredient(ingredient_id)
        return jsonify({"ingredient": ingredient.to_dict()}), 200
    except BistroError as e:
        return error_response(e)


@inventory_bp.get("/ingredients/<int:ingredient_id>/history")
@require_auth
@require_capability("VIEW_INVENTORY")
def ingredient_history_route(ingredient_id: int):
    try:
        limit = request.args.get("limit", default=200, type=int)
        events = stock_service.get_ingredient_history(ingredient_id, limit=max(1, min(limit, 1000)))
        balance = stock_service.get_ledger_balance(ingredient_id)
        return jsonify({
            "ingredient_id": ingredient_id,
            "ledger_balance": decimal_to_str(balance),
            "events": [e.to_dict() for e in events],
        }), 200
    except BistroError as e:
        return error_response(e)


# =============================================================================
# DELIVERIES
# =============================================================================

@inventory_bp.get("/deliveries")
@require_auth
@require_capability("VIEW_INVENTORY")
def list_deliveries_route():
    """Query params: ingredient_id, supplier_id, start, end, limit"""
    try:
        deliveries = stock_service.list_deliveries(
            ingredient_id=parse_optional_id(request.args.get("ingredient_id"), "ingredient_id"),
            supplier_id=parse_optional_id(request.args.get("supplier_id"), "supplier_id"),
            start=_date_arg("start"),
            end=_date_arg("end"),
            limit=max(1, min(request.args.get("limit", default=200, type=int), 1000)),
        )
        return jsonify({"deliveries": [d.to_dict() for d in deliveries]}), 200
    except BistroError as e:
        return error_response(e)


@inventory_bp.post("/deliveries")
@require_auth
def record_delivery_route():
    """
    Record a delivery.

    Request body:
    {
        "ingredient_id": 1,
        "supplier_id": 1,
        "quantity": "100.000",
        "price_per_unit": "2.50"
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        delivery = stock_service.record_delivery(
            g.actor,
            data.get("ingredient_id"),
            data.get("supplier_id"),
            data.get("quantity"),
            data.get("price_per_unit"),
        )
        return jsonify({
            "delivery": delivery.to_dict(),
            "ingredient": delivery.ingredient.to_dict(),
        }), 201
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record delivery")
        return internal_error()


# =============================================================================
# WRITE-OFFS
# =============================================================================

@inventory_bp.get("/writeoffs")
@require_auth
@require_capability("VIEW_INVENTORY")
def list_write_offs_route():
    """Query params: ingredient_id, shift_id, reason, start, end, limit"""
    try:
        write_offs = stock_service.list_write_offs(
            ingredient_id=parse_optional_id(request.args.get("ingredient_id"), "ingredient_id"),
            shift_id=parse_optional_id(request.args.get("shift_id"), "shift_id"),
            reason=request.args.get("reason"),
            start=_date_arg("start"),
            end=_date_arg("end"),
            limit=max(1, min(request.args.get("limit", default=200, type=int), 1000)),
        )
        return jsonify({"write_offs": [w.to_dict() for w in write_offs]}), 200
    except BistroError as e:
        return error_response(e)


@inventory_bp.post("/writeoffs")
@require_auth
def record_write_off_route():
    """
    Record a write-off against the active shift.

    Request body:
    {
        "ingredient_id": 1,
        "quantity": "5.000",
        "reason": "SPOILAGE",      (SPOILAGE | USAGE | INVENTORY_COUNT | OTHER)
        "comment": "...",          (optional)
        "shift_id": 4              (optional, must be the active shift)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        write_off = stock_service.record_write_off(
            g.actor,
            data.get("ingredient_id"),
            data.get("quantity"),
            data.get("reason"),
            comment=data.get("comment"),
            shift_id=data.get("shift_id"),
        )
        return jsonify({
            "write_off": write_off.to_dict(),
            "ingredient": write_off.ingredient.to_dict(),
        }), 201
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record write-off")
        return internal_error()
