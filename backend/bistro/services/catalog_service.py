# Overview: Service-layer operations for the catalog (suppliers, ingredients, menu).

"""
Catalog Service

WHY: Deliveries, write-offs and orders reference suppliers, ingredients and
menu items. The catalog only needs creation and lookup here; names are unique.

An ingredient created with opening stock gets an `inventory.opening_balance`
ledger event so the ingredient's ledger balance always equals in_stock.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import ValidationError, NotFound
from ..extensions import db
from ..models import Supplier, Ingredient, MenuItem, MenuItemIngredient
from ..validation import parse_price, parse_quantity, parse_text, parse_id
from .ledger_service import append_ledger_event, CATEGORY_INVENTORY


def _commit_unique(entity: str, name: str) -> None:
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError(f"{entity} '{name}' already exists")


# =============================================================================
# SUPPLIERS
# =============================================================================

def create_supplier(name: str, phone: str | None = None) -> Supplier:
    name = parse_text(name, "name", max_length=128, required=True)
    phone = parse_text(phone, "phone", max_length=32)

    if db.session.query(Supplier).filter_by(name=name).first():
        raise ValidationError(f"Supplier '{name}' already exists")

    supplier = Supplier(name=name, phone=phone)
    db.session.add(supplier)
    _commit_unique("Supplier", name)
    return supplier


def get_supplier(supplier_id: int) -> Supplier:
    supplier = db.session.get(Supplier, supplier_id)
    if not supplier:
        raise NotFound("Supplier not found", details={"supplier_id": supplier_id})
    return supplier


def list_suppliers() -> list[Supplier]:
    return db.session.query(Supplier).order_by(Supplier.name).all()


# =============================================================================
# INGREDIENTS
# =============================================================================

def create_ingredient(
    name: str,
    unit: str,
    current_price=None,
    in_stock=None,
    *,
    actor_user_id: int | None = None,
) -> Ingredient:
    """Create an ingredient, optionally with opening stock and price."""
    name = parse_text(name, "name", max_length=128, required=True)
    unit = parse_text(unit, "unit", max_length=16, required=True)
    price = parse_price(current_price, "current_price") if current_price not in (None, 0, "0") else Decimal("0")
    opening = parse_quantity(in_stock, "in_stock") if in_stock not in (None, 0, "0") else Decimal("0")

    if db.session.query(Ingredient).filter_by(name=name).first():
        raise ValidationError(f"Ingredient '{name}' already exists")

    ingredient = Ingredient(name=name, unit=unit, current_price=price, in_stock=opening)
    db.session.add(ingredient)
    db.session.flush()

    if opening > 0:
        append_ledger_event(
            event_type="inventory.opening_balance",
            event_category=CATEGORY_INVENTORY,
            entity_type="ingredient",
            entity_id=ingredient.id,
            actor_user_id=actor_user_id,
            ingredient_id=ingredient.id,
            quantity_delta=opening,
            note="Opening stock",
        )

    _commit_unique("Ingredient", name)
    return ingredient


# =============================================================================
# MENU
# =============================================================================

def create_menu_item(
    name: str,
    price,
    category: str | None = None,
    recipe: list[dict] | None = None,
) -> MenuItem:
    """
    Create a menu item with its recipe.

    recipe: [{"ingredient_id": 1, "quantity": "0.200"}, ...] per portion.
    """
    name = parse_text(name, "name", max_length=128, required=True)
    category = parse_text(category, "category", max_length=64)
    price = parse_price(price, "price")

    if db.session.query(MenuItem).filter_by(name=name).first():
        raise ValidationError(f"Menu item '{name}' already exists")

    # Validate the whole recipe before writing anything
    rows: list[tuple[int, Decimal]] = []
    for row in recipe or []:
        if not isinstance(row, dict):
            raise ValidationError("recipe rows must be objects")
        ingredient_id = parse_id(row.get("ingredient_id"), "ingredient_id")
        if any(ingredient_id == existing for existing, _ in rows):
            raise ValidationError("recipe lists the same ingredient twice")
        if not db.session.get(Ingredient, ingredient_id):
            raise NotFound("Ingredient not found", details={"ingredient_id": ingredient_id})
        rows.append((ingredient_id, parse_quantity(row.get("quantity"), "recipe.quantity")))

    item = MenuItem(name=name, price=price, category=category, is_active=True)
    db.session.add(item)
    db.session.flush()

    for ingredient_id, quantity in rows:
        db.session.add(MenuItemIngredient(
            menu_item_id=item.id,
            ingredient_id=ingredient_id,
            quantity=quantity,
        ))

    _commit_unique("Menu item", name)
    return item


def get_menu_item(menu_item_id: int) -> MenuItem:
    item = db.session.get(MenuItem, menu_item_id)
    if not item:
        raise NotFound("Menu item not found", details={"menu_item_id": menu_item_id})
    return item


def list_menu_items(active_only: bool = True) -> list[MenuItem]:
    q = db.session.query(MenuItem)
    if active_only:
        q = q.filter(MenuItem.is_active.is_(True))
    return q.order_by(MenuItem.category, MenuItem.name).all()
