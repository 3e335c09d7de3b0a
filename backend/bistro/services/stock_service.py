# Overview: Service-layer operations for ingredient stock; encapsulates business logic and database work.

"""
Bistro Stock Ledger Invariants (authoritative)

Stock model:
- Ingredient.in_stock is the shared mutable quantity. It only changes here.
- Deliveries increase it, write-offs decrease it. Orders read it, never change it.
- in_stock >= 0 at all times (service check + CHECK constraint).

Atomicity:
- A delivery/write-off record and its stock change commit together or not at all.
- The ingredient row is locked (FOR UPDATE where supported) and versioned, so
  concurrent changes to one ingredient are linearizable: the final quantity is
  initial + sum(successful deliveries) - sum(successful write-offs).
- Different ingredients never contend with each other.

Audit:
- Each change appends a LedgerEvent with quantity_delta in the same transaction.
  Per ingredient, SUM(quantity_delta) over inventory events == in_stock.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from ..errors import NotFound, InsufficientStock
from ..extensions import db
from ..models import Ingredient, Supplier, Delivery, WriteOff
from ..permissions import requires
from ..validation import (
    parse_choice,
    parse_id,
    parse_optional_id,
    parse_price,
    parse_quantity,
    parse_text,
    decimal_to_str,
)
from bistro.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event, get_ledger_balance, list_ledger_events, CATEGORY_INVENTORY
from .shift_service import require_active_shift

logger = logging.getLogger(__name__)


REASON_SPOILAGE = "SPOILAGE"
REASON_USAGE = "USAGE"
REASON_INVENTORY_COUNT = "INVENTORY_COUNT"
REASON_OTHER = "OTHER"
WRITE_OFF_REASONS = [REASON_SPOILAGE, REASON_USAGE, REASON_INVENTORY_COUNT, REASON_OTHER]


def _get_ingredient(ingredient_id: int, *, lock: bool = False) -> Ingredient:
    query = db.session.query(Ingredient).filter_by(id=ingredient_id)
    if lock:
        query = lock_for_update(query)
    ingredient = query.first()
    if ingredient is None:
        raise NotFound("Ingredient not found", details={"ingredient_id": ingredient_id})
    return ingredient


# =============================================================================
# WRITES
# =============================================================================

@requires("RECORD_DELIVERY")
def record_delivery(actor, ingredient_id, supplier_id, quantity, price_per_unit) -> Delivery:
    """
    Record incoming stock.

    In one transaction: insert the Delivery, add quantity to in_stock,
    overwrite the ingredient's current price, stamp last_delivery_at and
    append an `inventory.delivery_recorded` ledger event.

    Raises:
        InvalidQuantity / InvalidPrice: non-positive or malformed amounts
        NotFound: unknown ingredient or supplier
        ConcurrencyConflict: lost the race for the ingredient after retries
    """
    ingredient_id = parse_id(ingredient_id, "ingredient_id")
    supplier_id = parse_id(supplier_id, "supplier_id")
    quantity = parse_quantity(quantity, "quantity")
    price_per_unit = parse_price(price_per_unit, "price_per_unit")

    def _op():
        if not db.session.get(Supplier, supplier_id):
            raise NotFound("Supplier not found", details={"supplier_id": supplier_id})

        ingredient = _get_ingredient(ingredient_id, lock=True)
        now = utcnow()

        delivery = Delivery(
            ingredient_id=ingredient.id,
            supplier_id=supplier_id,
            quantity=quantity,
            price_per_unit=price_per_unit,
            delivery_date=now,
            created_by_user_id=actor.user_id,
        )
        db.session.add(delivery)

        ingredient.in_stock = Decimal(ingredient.in_stock) + quantity
        ingredient.current_price = price_per_unit
        ingredient.last_delivery_at = now
        db.session.flush()

        append_ledger_event(
            event_type="inventory.delivery_recorded",
            event_category=CATEGORY_INVENTORY,
            entity_type="delivery",
            entity_id=delivery.id,
            actor_user_id=actor.user_id,
            ingredient_id=ingredient.id,
            quantity_delta=quantity,
            occurred_at=now,
            note=f"Delivery from supplier {supplier_id} @ {decimal_to_str(price_per_unit)}",
        )

        db.session.commit()
        return delivery

    delivery = run_with_retry(_op)
    logger.info(
        "Delivery %s: ingredient %s +%s by user %s",
        delivery.id, ingredient_id, quantity, actor.user_id,
    )
    return delivery


@requires("RECORD_WRITE_OFF")
def record_write_off(actor, ingredient_id, quantity, reason, comment=None, shift_id=None) -> WriteOff:
    """
    Remove stock against a reason, attributed to the active shift.

    shift_id defaults to the active shift; when given it must be the active one.

    Raises:
        InvalidQuantity: non-positive or malformed quantity
        ValidationError: unknown reason
        NoActiveShift: no active shift, or shift_id is not the active shift
        NotFound: unknown ingredient
        InsufficientStock: quantity exceeds in_stock (stock left unchanged)
    """
    ingredient_id = parse_id(ingredient_id, "ingredient_id")
    quantity = parse_quantity(quantity, "quantity")
    reason = parse_choice(reason, "reason", WRITE_OFF_REASONS)
    comment = parse_text(comment, "comment", max_length=255)
    shift_id = parse_optional_id(shift_id, "shift_id")

    def _op():
        shift = require_active_shift(shift_id, claim=True)
        ingredient = _get_ingredient(ingredient_id, lock=True)

        available = Decimal(ingredient.in_stock)
        if quantity > available:
            raise InsufficientStock(
                f"Insufficient stock for {ingredient.name}: "
                f"requested {decimal_to_str(quantity)}, available {decimal_to_str(available)}",
                details={
                    "ingredient_id": ingredient.id,
                    "requested": decimal_to_str(quantity),
                    "available": decimal_to_str(available),
                },
            )

        now = utcnow()
        write_off = WriteOff(
            ingredient_id=ingredient.id,
            shift_id=shift.id,
            quantity=quantity,
            reason=reason,
            comment=comment,
            created_by_user_id=actor.user_id,
            created_at=now,
        )
        db.session.add(write_off)

        ingredient.in_stock = available - quantity
        db.session.flush()

        append_ledger_event(
            event_type="inventory.write_off_recorded",
            event_category=CATEGORY_INVENTORY,
            entity_type="write_off",
            entity_id=write_off.id,
            actor_user_id=actor.user_id,
            shift_id=shift.id,
            ingredient_id=ingredient.id,
            quantity_delta=-quantity,
            occurred_at=now,
            note=f"{reason}: {comment}" if comment else reason,
        )

        db.session.commit()
        return write_off

    write_off = run_with_retry(_op)
    logger.info(
        "Write-off %s: ingredient %s -%s (%s) by user %s",
        write_off.id, ingredient_id, quantity, reason, actor.user_id,
    )
    return write_off


# =============================================================================
# READS
# =============================================================================

def ensure_available(requirements: dict[int, Decimal]) -> None:
    """
    Check that every ingredient has at least the required quantity in stock.

    Read-only: nothing is reserved or decremented.
    """
    for ingredient_id, required in requirements.items():
        ingredient = _get_ingredient(ingredient_id)
        available = Decimal(ingredient.in_stock)
        if required > available:
            raise InsufficientStock(
                f"Insufficient stock for {ingredient.name}",
                details={
                    "ingredient_id": ingredient.id,
                    "required": decimal_to_str(required),
                    "available": decimal_to_str(available),
                },
            )


def get_ingredient(ingredient_id: int) -> Ingredient:
    return _get_ingredient(ingredient_id)


def list_ingredients(low_stock_below=None) -> list[Ingredient]:
    q = db.session.query(Ingredient)
    if low_stock_below is not None:
        q = q.filter(Ingredient.in_stock < Decimal(str(low_stock_below)))
    return q.order_by(Ingredient.name).all()


def list_deliveries(
    *,
    ingredient_id: int | None = None,
    supplier_id: int | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[Delivery]:
    q = db.session.query(Delivery)
    if ingredient_id is not None:
        q = q.filter(Delivery.ingredient_id == ingredient_id)
    if supplier_id is not None:
        q = q.filter(Delivery.supplier_id == supplier_id)
    if start is not None:
        q = q.filter(Delivery.delivery_date >= start)
    if end is not None:
        q = q.filter(Delivery.delivery_date <= end)
    return q.order_by(Delivery.delivery_date.desc(), Delivery.id.desc()).limit(limit).all()


def list_write_offs(
    *,
    ingredient_id: int | None = None,
    shift_id: int | None = None,
    reason: str | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    limit: int = 200,
) -> list[WriteOff]:
    q = db.session.query(WriteOff)
    if ingredient_id is not None:
        q = q.filter(WriteOff.ingredient_id == ingredient_id)
    if shift_id is not None:
        q = q.filter(WriteOff.shift_id == shift_id)
    if reason:
        q = q.filter(WriteOff.reason == parse_choice(reason, "reason", WRITE_OFF_REASONS))
    if start is not None:
        q = q.filter(WriteOff.created_at >= start)
    if end is not None:
        q = q.filter(WriteOff.created_at <= end)
    return q.order_by(WriteOff.created_at.desc(), WriteOff.id.desc()).limit(limit).all()


def get_ingredient_history(ingredient_id: int, limit: int = 200) -> list:
    """Inventory ledger events for one ingredient, newest first."""
    _get_ingredient(ingredient_id)
    return list_ledger_events(
        event_category=CATEGORY_INVENTORY,
        ingredient_id=ingredient_id,
        limit=limit,
    )
