# Overview: Flask API routes for orders and payments; parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_capability
from ..errors import BistroError
from ..services import order_service
from ..validation import parse_optional_id, require_json_object
from . import error_response, internal_error


orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Create an order in the active shift.

    Request body:
    {
        "shift_id": 4,           (optional, must be the active shift)
        "table_number": "12",
        "waiter_id": 5,          (optional when the caller is the waiter)
        "items": [{"menu_item_id": 1, "quantity": 2}]
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        order = order_service.create_order(
            g.actor,
            data.get("shift_id"),
            data.get("table_number"),
            data.get("waiter_id"),
            data.get("items"),
        )
        return jsonify({"order": order.to_dict()}), 201
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return internal_error()


@orders_bp.get("")
@require_auth
@require_capability("VIEW_ORDERS")
def list_orders_route():
    """Query params: shift_id (defaults to active shift), status"""
    try:
        orders = order_service.list_orders_for_shift(
            shift_id=parse_optional_id(request.args.get("shift_id"), "shift_id"),
            status=request.args.get("status"),
        )
        return jsonify({"orders": [o.to_dict(include_lines=False) for o in orders]}), 200
    except BistroError as e:
        return error_response(e)


@orders_bp.get("/<int:order_id>")
@require_auth
@require_capability("VIEW_ORDERS")
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(order_id)
        return jsonify({
            "order": order.to_dict(),
            "payment_summary": order_service.get_payment_summary(order_id),
        }), 200
    except BistroError as e:
        return error_response(e)


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    try:
        order = order_service.cancel_order(g.actor, order_id)
        return jsonify({"order": order.to_dict()}), 200
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order")
        return internal_error()


@orders_bp.post("/<int:order_id>/payments")
@require_auth
def record_payment_route(order_id: int):
    """
    Record a payment.

    Request body:
    {
        "amount": "25.00",
        "payment_type": "CASH",   (CASH | CARD)
        "cashier_id": 3           (optional, defaults to caller)
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        payment = order_service.record_payment(
            g.actor,
            order_id,
            data.get("amount"),
            data.get("payment_type"),
            cashier_id=data.get("cashier_id"),
        )
        return jsonify({
            "payment": payment.to_dict(),
            "order": payment.order.to_dict(),
        }), 201
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to record payment")
        return internal_error()
