# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order Lifecycle

WHY: Orders are the revenue side of a shift. Totals are captured once at
creation and payments reconcile against them.

STATES: OPEN -> PAID, OPEN -> CANCELLED. Both terminal. Repeating a
transition on a terminal order fails with InvalidState.

DESIGN PRINCIPLES:
- Every order belongs to the shift that was active when it was created, forever.
- Prices are snapshotted per line; catalog price changes never move a total.
- Whole-order validation: one stop-listed item rejects the entire order.
- Orders check ingredient stock but never decrement it.
- Split payments: an order becomes PAID when the sum of its payments reaches
  total_price. The excess of an overpayment is recorded as change_due.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from decimal import Decimal

from ..errors import (
    ValidationError,
    InvalidRoster,
    NotFound,
    InvalidState,
    ItemStopListed,
    InvalidQuantity,
)
from ..extensions import db
from ..models import User, MenuItem, Order, OrderItem, Payment
from ..permissions import requires, ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_WAITER
from ..validation import (
    parse_choice,
    parse_id,
    parse_optional_id,
    parse_positive_int,
    parse_price,
    parse_text,
    decimal_to_str,
    MAX_LINE_QUANTITY,
    MAX_PRICE,
    PRICE_EXP,
)
from bistro.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event, CATEGORY_ORDER
from .shift_service import (
    require_active_shift,
    is_on_roster,
    stop_listed_ids,
    STOP_LIST_MENU,
    STOP_LIST_INGREDIENT,
)
from .stock_service import ensure_available

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

STATUS_OPEN = "OPEN"
STATUS_PAID = "PAID"
STATUS_CANCELLED = "CANCELLED"
ORDER_STATUSES = [STATUS_OPEN, STATUS_PAID, STATUS_CANCELLED]

PAYMENT_CASH = "CASH"
PAYMENT_CARD = "CARD"
PAYMENT_TYPES = [PAYMENT_CASH, PAYMENT_CARD]


def _parse_lines(items) -> list[tuple[int, int]]:
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("An order needs at least one line item", details={"field": "items"})

    lines = []
    for row in items:
        if not isinstance(row, dict):
            raise ValidationError("Line items must be objects", details={"field": "items"})
        menu_item_id = parse_id(row.get("menu_item_id"), "menu_item_id")
        quantity = parse_positive_int(row.get("quantity"), "quantity", maximum=MAX_LINE_QUANTITY)
        lines.append((menu_item_id, quantity))
    return lines


def _load_order(order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query)
    order = query.first()
    if not order:
        raise NotFound("Order not found", details={"order_id": order_id})
    return order


def _require_open(order: Order, action: str) -> None:
    if order.status != STATUS_OPEN:
        raise InvalidState(
            f"Cannot {action} an order with status {order.status}",
            details={"order_id": order.id, "status": order.status},
        )


# =============================================================================
# CREATION
# =============================================================================

@requires("CREATE_ORDER")
def create_order(actor, shift_id, table_number, waiter_id, items) -> Order:
    """
    Create an OPEN order in the active shift.

    items: [{"menu_item_id": 1, "quantity": 2}, ...]

    Raises:
        ValidationError: empty items, malformed ids/quantities, blank table
        NoActiveShift: shift_id is not the active shift (or none is active)
        InvalidRoster: waiter is not an active waiter on the shift roster
        NotFound: unknown or inactive menu item
        ItemStopListed: a menu item or one of its recipe ingredients is
            stop-listed for the shift (nothing is created)
        InsufficientStock: recipe needs exceed current stock
        InvalidQuantity: a line above MAX_LINE_QUANTITY or a total above MAX_PRICE
    """
    shift_id = parse_optional_id(shift_id, "shift_id")
    table_number = parse_text(table_number, "table_number", max_length=16, required=True)
    if waiter_id is None and actor.role == ROLE_WAITER:
        waiter_id = actor.user_id
    waiter_id = parse_id(waiter_id, "waiter_id")
    lines = _parse_lines(items)

    def _op():
        shift = require_active_shift(shift_id, claim=True)

        waiter = db.session.get(User, waiter_id)
        if (
            not waiter
            or not waiter.is_active
            or waiter.role != ROLE_WAITER
            or not is_on_roster(shift, waiter.id, ROLE_WAITER)
        ):
            raise InvalidRoster(
                "Waiter is not an active waiter on this shift",
                details={"waiter_id": waiter_id, "shift_id": shift.id},
            )

        menu_items: dict[int, MenuItem] = {}
        for menu_item_id, _ in lines:
            if menu_item_id in menu_items:
                continue
            item = db.session.get(MenuItem, menu_item_id)
            if not item or not item.is_active:
                raise NotFound("Menu item not found", details={"menu_item_id": menu_item_id})
            menu_items[menu_item_id] = item

        # Whole order is rejected on the first stop-listed hit
        listed_menu = stop_listed_ids(STOP_LIST_MENU, shift.id)
        listed_ingredients = stop_listed_ids(STOP_LIST_INGREDIENT, shift.id)
        for item in menu_items.values():
            if item.id in listed_menu:
                raise ItemStopListed(
                    f"{item.name} is in the stop-list",
                    details={"menu_item_id": item.id},
                )
            for row in item.recipe:
                if row.ingredient_id in listed_ingredients:
                    raise ItemStopListed(
                        f"{item.name} needs a stop-listed ingredient",
                        details={"menu_item_id": item.id, "ingredient_id": row.ingredient_id},
                    )

        requirements: dict[int, Decimal] = defaultdict(Decimal)
        for menu_item_id, quantity in lines:
            for row in menu_items[menu_item_id].recipe:
                requirements[row.ingredient_id] += Decimal(row.quantity) * quantity
        ensure_available(requirements)

        priced = []
        total = Decimal("0")
        for menu_item_id, quantity in lines:
            unit_price = Decimal(menu_items[menu_item_id].price)
            line_total = (unit_price * quantity).quantize(PRICE_EXP)
            total += line_total
            priced.append((menu_item_id, quantity, unit_price, line_total))
        if total > MAX_PRICE:
            raise InvalidQuantity(
                f"Order total cannot exceed {MAX_PRICE}",
                details={"field": "items", "total": decimal_to_str(total)},
            )

        now = utcnow()
        order = Order(
            table_number=table_number,
            status=STATUS_OPEN,
            shift_id=shift.id,
            waiter_id=waiter.id,
            total_price=Decimal("0"),
            total_paid=Decimal("0"),
            change_due=Decimal("0"),
            created_at=now,
        )
        db.session.add(order)
        db.session.flush()

        for menu_item_id, quantity, unit_price, line_total in priced:
            db.session.add(OrderItem(
                order_id=order.id,
                menu_item_id=menu_item_id,
                quantity=quantity,
                unit_price=unit_price,
                line_total=line_total,
            ))
        order.total_price = total
        db.session.flush()

        append_ledger_event(
            event_type="order.created",
            event_category=CATEGORY_ORDER,
            entity_type="order",
            entity_id=order.id,
            actor_user_id=actor.user_id,
            shift_id=shift.id,
            order_id=order.id,
            occurred_at=now,
            note=f"Table {table_number}, total {decimal_to_str(total)}",
        )

        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Order %s created on shift %s (total %s)", order.id, order.shift_id, order.total_price)
    return order


# =============================================================================
# TRANSITIONS
# =============================================================================

@requires("CANCEL_ORDER")
def cancel_order(actor, order_id) -> Order:
    """
    OPEN -> CANCELLED. No stock or payment side effects.

    Raises:
        NotFound: unknown order
        InvalidState: order is not OPEN
    """
    order_id = parse_id(order_id, "order_id")

    def _op():
        order = _load_order(order_id, lock=True)
        _require_open(order, "cancel")

        now = utcnow()
        order.status = STATUS_CANCELLED
        order.cancelled_at = now
        order.cancelled_by_user_id = actor.user_id

        append_ledger_event(
            event_type="order.cancelled",
            event_category=CATEGORY_ORDER,
            entity_type="order",
            entity_id=order.id,
            actor_user_id=actor.user_id,
            shift_id=order.shift_id,
            order_id=order.id,
            occurred_at=now,
        )

        db.session.commit()
        return order

    order = run_with_retry(_op)
    logger.info("Order %s cancelled by user %s", order.id, actor.user_id)
    return order


@requires("RECORD_PAYMENT")
def record_payment(actor, order_id, amount, payment_type, cashier_id=None) -> Payment:
    """
    Add a payment to an OPEN order.

    When the running sum of payments reaches total_price the order becomes
    PAID: paid_at is stamped, cashier_id attached, and any excess recorded
    as change_due.

    Raises:
        InvalidPrice: amount not positive / malformed
        ValidationError: unknown payment type
        NotFound: unknown order or cashier
        InvalidState: order is not OPEN
    """
    order_id = parse_id(order_id, "order_id")
    amount = parse_price(amount, "amount")
    payment_type = parse_choice(payment_type, "payment_type", PAYMENT_TYPES)
    cashier_id = parse_id(cashier_id, "cashier_id") if cashier_id is not None else actor.user_id

    def _op():
        cashier = db.session.get(User, cashier_id)
        if not cashier or not cashier.is_active:
            raise NotFound("Cashier not found", details={"cashier_id": cashier_id})
        if cashier.role not in (ROLE_CASHIER, ROLE_MANAGER, ROLE_ADMIN):
            raise ValidationError(
                "Payments are taken by a cashier or manager",
                details={"cashier_id": cashier_id, "role": cashier.role},
            )

        order = _load_order(order_id, lock=True)
        _require_open(order, "pay")

        now = utcnow()
        payment = Payment(
            order_id=order.id,
            cashier_id=cashier.id,
            amount=amount,
            payment_type=payment_type,
            paid_at=now,
        )
        db.session.add(payment)

        total_paid = Decimal(order.total_paid) + amount
        order.total_paid = total_paid
        db.session.flush()

        append_ledger_event(
            event_type="order.payment_recorded",
            event_category=CATEGORY_ORDER,
            entity_type="payment",
            entity_id=payment.id,
            actor_user_id=actor.user_id,
            shift_id=order.shift_id,
            order_id=order.id,
            occurred_at=now,
            note=f"{payment_type} {decimal_to_str(amount)}",
        )

        total_price = Decimal(order.total_price)
        if total_paid >= total_price:
            order.status = STATUS_PAID
            order.paid_at = now
            order.cashier_id = cashier.id
            order.change_due = total_paid - total_price

            append_ledger_event(
                event_type="order.paid",
                event_category=CATEGORY_ORDER,
                entity_type="order",
                entity_id=order.id,
                actor_user_id=actor.user_id,
                shift_id=order.shift_id,
                order_id=order.id,
                occurred_at=now,
                payload=f"total_paid={decimal_to_str(total_paid)},change_due={decimal_to_str(order.change_due)}",
            )

        db.session.commit()
        return payment

    payment = run_with_retry(_op)
    logger.info(
        "Payment %s on order %s: %s %s",
        payment.id, order_id, payment_type, amount,
    )
    return payment


# =============================================================================
# QUERIES
# =============================================================================

def get_order(order_id: int) -> Order:
    return _load_order(order_id)


def list_orders_for_shift(shift_id: int | None = None, status: str | None = None) -> list[Order]:
    """
    Orders of a shift, oldest first. Defaults to the active shift.

    Raises NoActiveShift when shift_id is omitted and no shift is active.
    """
    if shift_id is None:
        shift_id = require_active_shift().id

    q = db.session.query(Order).filter(Order.shift_id == shift_id)
    if status:
        q = q.filter(Order.status == parse_choice(status, "status", ORDER_STATUSES))
    return q.order_by(Order.created_at, Order.id).all()


def get_payment_summary(order_id: int) -> dict:
    """
    Payment position of an order.

    remaining is never negative; an overpaid order shows its excess as change_due.
    """
    order = _load_order(order_id)
    total_price = Decimal(order.total_price)
    total_paid = Decimal(order.total_paid)
    remaining = max(total_price - total_paid, Decimal("0"))

    return {
        "order_id": order.id,
        "status": order.status,
        "total_price": decimal_to_str(total_price),
        "total_paid": decimal_to_str(total_paid),
        "remaining": decimal_to_str(remaining),
        "change_due": decimal_to_str(order.change_due),
        "payments": [p.to_dict() for p in order.payments],
    }
