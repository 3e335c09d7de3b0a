# Overview: Flask API routes for the catalog (suppliers, ingredients, menu); parses input and returns JSON responses.

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_auth, require_capability
from ..errors import BistroError
from ..services import catalog_service
from ..validation import require_json_object
from . import error_response, internal_error


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/catalog")


@catalog_bp.get("/suppliers")
@require_auth
@require_capability("VIEW_INVENTORY")
def list_suppliers_route():
    return jsonify({"suppliers": [s.to_dict() for s in catalog_service.list_suppliers()]}), 200


@catalog_bp.post("/suppliers")
@require_auth
@require_capability("MANAGE_CATALOG")
def create_supplier_route():
    """Request body: {"name": "...", "phone": "..."}"""
    try:
        data = require_json_object(request.get_json(silent=True))
        supplier = catalog_service.create_supplier(data.get("name"), data.get("phone"))
        return jsonify({"supplier": supplier.to_dict()}), 201
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create supplier")
        return internal_error()


@catalog_bp.post("/ingredients")
@require_auth
@require_capability("MANAGE_CATALOG")
def create_ingredient_route():
    """Request body: {"name", "unit", "current_price" (optional), "in_stock" (optional)}"""
    try:
        data = require_json_object(request.get_json(silent=True))
        ingredient = catalog_service.create_ingredient(
            data.get("name"),
            data.get("unit"),
            current_price=data.get("current_price"),
            in_stock=data.get("in_stock"),
            actor_user_id=g.actor.user_id,
        )
        return jsonify({"ingredient": ingredient.to_dict()}), 201
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create ingredient")
        return internal_error()


@catalog_bp.get("/menu")
@require_auth
@require_capability("VIEW_ORDERS")
def list_menu_route():
    include_inactive = request.args.get("include_inactive", "false").lower() == "true"
    items = catalog_service.list_menu_items(active_only=not include_inactive)
    return jsonify({"menu": [i.to_dict(include_recipe=True) for i in items]}), 200


@catalog_bp.get("/menu/<int:menu_item_id>")
@require_auth
@require_capability("VIEW_ORDERS")
def get_menu_item_route(menu_item_id: int):
    try:
        item = catalog_service.get_menu_item(menu_item_id)
        return jsonify({"menu_item": item.to_dict(include_recipe=True)}), 200
    except BistroError as e:
        return error_response(e)


@catalog_bp.post("/menu")
@require_auth
@require_capability("MANAGE_CATALOG")
def create_menu_item_route():
    """
    Request body:
    {
        "name": "Tomato Soup",
        "price": "6.50",
        "category": "Soups",
        "recipe": [{"ingredient_id": 1, "quantity": "0.300"}]
    }
    """
    try:
        data = require_json_object(request.get_json(silent=True))
        item = catalog_service.create_menu_item(
            data.get("name"),
            data.get("price"),
            category=data.get("category"),
            recipe=data.get("recipe"),
        )
        return jsonify({"menu_item": item.to_dict(include_recipe=True)}), 201
    except BistroError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create menu item")
        return internal_error()
