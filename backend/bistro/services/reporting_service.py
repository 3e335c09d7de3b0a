# Overview: Read-only rollups over orders, shifts and stock movements.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import (
    Delivery,
    Ingredient,
    Order,
    OrderItem,
    Payment,
    Shift,
    ShiftStaff,
    User,
    WriteOff,
)
from ..validation import decimal_to_str, PRICE_EXP
from bistro.time_utils import parse_iso_datetime, to_utc_z
from .shift_service import get_shift

TOP_ITEMS_LIMIT = 10


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 datetimes")
    if start_dt and end_dt and start_dt > end_dt:
        raise ValidationError("start must be before end")
    return start_dt, end_dt


def _paid_orders(start_dt: datetime | None, end_dt: datetime | None):
    q = db.session.query(Order).filter(Order.status == "PAID")
    if start_dt:
        q = q.filter(Order.paid_at >= start_dt)
    if end_dt:
        q = q.filter(Order.paid_at <= end_dt)
    return q.order_by(Order.paid_at, Order.id).all()


def _payments_by_type(order_ids: list[int]) -> dict[str, str]:
    if not order_ids:
        return {}
    totals: dict[str, Decimal] = defaultdict(Decimal)
    for payment in db.session.query(Payment).filter(Payment.order_id.in_(order_ids)).all():
        totals[payment.payment_type] += Decimal(payment.amount)
    return {k: decimal_to_str(v) for k, v in sorted(totals.items())}


def sales_report(*, start: str | None = None, end: str | None = None) -> dict:
    """
    PAID orders in [start, end] by paid_at.

    Revenue counts order totals, not tendered amounts (change_due excluded).
    """
    start_dt, end_dt = _parse_range(start, end)
    orders = _paid_orders(start_dt, end_dt)
    order_ids = [o.id for o in orders]

    revenue = sum((Decimal(o.total_price) for o in orders), Decimal("0"))
    average = (revenue / len(orders)).quantize(PRICE_EXP) if orders else Decimal("0")

    by_waiter: dict[int, dict] = {}
    for order in orders:
        row = by_waiter.setdefault(order.waiter_id, {
            "waiter_id": order.waiter_id,
            "waiter_name": order.waiter.full_name if order.waiter else None,
            "orders": 0,
            "revenue": Decimal("0"),
        })
        row["orders"] += 1
        row["revenue"] += Decimal(order.total_price)

    items: dict[int, dict] = {}
    if order_ids:
        for line in db.session.query(OrderItem).filter(OrderItem.order_id.in_(order_ids)).all():
            row = items.setdefault(line.menu_item_id, {
                "menu_item_id": line.menu_item_id,
                "name": line.menu_item.name if line.menu_item else None,
                "quantity": 0,
                "revenue": Decimal("0"),
            })
            row["quantity"] += line.quantity
            row["revenue"] += Decimal(line.line_total)

    top_items = sorted(items.values(), key=lambda r: (-r["quantity"], r["menu_item_id"]))[:TOP_ITEMS_LIMIT]

    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "total_orders": len(orders),
        "revenue": decimal_to_str(revenue),
        "average_check": decimal_to_str(average),
        "payments_by_type": _payments_by_type(order_ids),
        "waiters": [
            {**row, "revenue": decimal_to_str(row["revenue"])}
            for row in sorted(by_waiter.values(), key=lambda r: r["waiter_id"])
        ],
        "top_items": [{**row, "revenue": decimal_to_str(row["revenue"])} for row in top_items],
    }


def inventory_report(*, start: str | None = None, end: str | None = None) -> dict:
    """Per ingredient: delivered and written-off quantities in the window, plus current stock."""
    start_dt, end_dt = _parse_range(start, end)

    delivered: dict[int, Decimal] = defaultdict(Decimal)
    delivery_count: dict[int, int] = defaultdict(int)
    q = db.session.query(Delivery)
    if start_dt:
        q = q.filter(Delivery.delivery_date >= start_dt)
    if end_dt:
        q = q.filter(Delivery.delivery_date <= end_dt)
    for delivery in q.all():
        delivered[delivery.ingredient_id] += Decimal(delivery.quantity)
        delivery_count[delivery.ingredient_id] += 1

    written_off: dict[int, Decimal] = defaultdict(Decimal)
    by_reason: dict[str, Decimal] = defaultdict(Decimal)
    q = db.session.query(WriteOff)
    if start_dt:
        q = q.filter(WriteOff.created_at >= start_dt)
    if end_dt:
        q = q.filter(WriteOff.created_at <= end_dt)
    for write_off in q.all():
        written_off[write_off.ingredient_id] += Decimal(write_off.quantity)
        by_reason[write_off.reason] += Decimal(write_off.quantity)

    rows = []
    stock_value = Decimal("0")
    for ingredient in db.session.query(Ingredient).order_by(Ingredient.name).all():
        value = (Decimal(ingredient.in_stock) * Decimal(ingredient.current_price)).quantize(PRICE_EXP)
        stock_value += value
        rows.append({
            "ingredient_id": ingredient.id,
            "name": ingredient.name,
            "unit": ingredient.unit,
            "in_stock": decimal_to_str(ingredient.in_stock),
            "current_price": decimal_to_str(ingredient.current_price),
            "stock_value": decimal_to_str(value),
            "deliveries": delivery_count[ingredient.id],
            "delivered": decimal_to_str(delivered[ingredient.id]),
            "written_off": decimal_to_str(written_off[ingredient.id]),
        })

    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "stock_value": decimal_to_str(stock_value),
        "written_off_by_reason": {k: decimal_to_str(v) for k, v in sorted(by_reason.items())},
        "rows": rows,
    }


def shift_summary(shift_id: int) -> dict:
    shift = get_shift(shift_id)

    status_counts = dict(
        db.session.query(Order.status, func.count(Order.id))
        .filter(Order.shift_id == shift.id)
        .group_by(Order.status)
        .all()
    )
    paid = [o for o in shift.orders if o.status == "PAID"]
    revenue = sum((Decimal(o.total_price) for o in paid), Decimal("0"))

    return {
        "shift": shift.to_dict(include_staff=True),
        "orders": {
            "OPEN": status_counts.get("OPEN", 0),
            "PAID": status_counts.get("PAID", 0),
            "CANCELLED": status_counts.get("CANCELLED", 0),
        },
        "revenue": decimal_to_str(revenue),
        "payments_by_type": _payments_by_type([o.id for o in shift.orders]),
        "write_offs": len(shift.write_offs),
        "menu_stop_list": len(shift.menu_stop_list),
        "ingredient_stop_list": len(shift.ingredient_stop_list),
    }


def staff_report(*, start: str | None = None, end: str | None = None) -> dict:
    """
    Per staff member: shifts worked (by roster, or as manager) and PAID
    revenue of orders they served or took payment for.
    """
    start_dt, end_dt = _parse_range(start, end)

    shifts_q = db.session.query(Shift)
    if start_dt:
        shifts_q = shifts_q.filter(Shift.started_at >= start_dt)
    if end_dt:
        shifts_q = shifts_q.filter(Shift.started_at <= end_dt)
    shift_ids = [s.id for s in shifts_q.all()]

    shifts_worked: dict[int, set] = defaultdict(set)
    if shift_ids:
        for member in db.session.query(ShiftStaff).filter(ShiftStaff.shift_id.in_(shift_ids)).all():
            shifts_worked[member.user_id].add(member.shift_id)
        for shift_id, manager_id in db.session.query(Shift.id, Shift.manager_id).filter(Shift.id.in_(shift_ids)).all():
            shifts_worked[manager_id].add(shift_id)

    served: dict[int, Decimal] = defaultdict(Decimal)
    served_count: dict[int, int] = defaultdict(int)
    cashed: dict[int, Decimal] = defaultdict(Decimal)
    for order in _paid_orders(start_dt, end_dt):
        served[order.waiter_id] += Decimal(order.total_price)
        served_count[order.waiter_id] += 1
        if order.cashier_id:
            cashed[order.cashier_id] += Decimal(order.total_price)

    rows = []
    for user in db.session.query(User).order_by(User.role, User.full_name).all():
        rows.append({
            "user_id": user.id,
            "full_name": user.full_name,
            "role": user.role,
            "is_active": user.is_active,
            "shifts_worked": len(shifts_worked[user.id]),
            "orders_served": served_count[user.id],
            "revenue_served": decimal_to_str(served[user.id]),
            "revenue_cashed": decimal_to_str(cashed[user.id]),
        })

    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "rows": rows,
    }
