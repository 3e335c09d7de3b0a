"""
Order lifecycle tests.

Verifies:
- Totals are captured at creation from menu prices
- Stop-listed items (or ingredients) reject the whole order
- OPEN -> PAID / CANCELLED exactly once
- Split payments and overpayment (change_due)
"""

from decimal import Decimal

import pytest

from bistro.errors import (
    InsufficientStock,
    InvalidPrice,
    InvalidQuantity,
    InvalidRoster,
    InvalidState,
    ItemStopListed,
    NoActiveShift,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from bistro.models import Ingredient, MenuItem, Order, Payment
from bistro.services import catalog_service, order_service, shift_service


def _create(actors, shift, catalog, *, items=None, waiter_id=None, actor="waiter"):
    return order_service.create_order(
        actors[actor],
        shift.id,
        "12",
        waiter_id,
        items or [
            {"menu_item_id": catalog["soup"].id, "quantity": 2},
            {"menu_item_id": catalog["chicken_rice"].id, "quantity": 1},
        ],
    )


# =============================================================================
# CREATION
# =============================================================================


class TestCreateOrder:

    def test_total_is_sum_of_lines(self, db_session, actors, staff, catalog, active_shift):
        order = _create(actors, active_shift, catalog)

        assert order.status == "OPEN"
        assert order.shift_id == active_shift.id
        assert order.waiter_id == staff["waiter"].id
        assert order.cashier_id is None
        assert Decimal(order.total_price) == Decimal("25.90")  # 2 x 6.50 + 12.90
        assert sum(Decimal(i.line_total) for i in order.items) == Decimal(order.total_price)

    def test_price_snapshot_is_insulated_from_catalog(self, db_session, actors, catalog, active_shift):
        order = _create(actors, active_shift, catalog)

        soup = db_session.get(MenuItem, catalog["soup"].id)
        soup.price = Decimal("99.00")
        db_session.commit()

        order = order_service.get_order(order.id)
        assert Decimal(order.total_price) == Decimal("25.90")
        assert Decimal(order.items[0].unit_price) == Decimal("6.50")

    def test_orders_do_not_consume_stock(self, db_session, actors, catalog, active_shift):
        _create(actors, active_shift, catalog)
        db_session.expire_all()
        assert Decimal(db_session.get(Ingredient, catalog["tomatoes"].id).in_stock) == Decimal("100")

    def test_manager_places_order_for_waiter(self, db_session, actors, staff, catalog, active_shift):
        order = _create(actors, active_shift, catalog, actor="manager", waiter_id=staff["waiter"].id)
        assert order.waiter_id == staff["waiter"].id

    def test_waiter_must_be_on_roster(self, db_session, actors, staff, catalog, active_shift):
        with pytest.raises(InvalidRoster):
            _create(actors, active_shift, catalog, actor="manager", waiter_id=staff["waiter2"].id)

    def test_requires_active_shift(self, db_session, actors, catalog, active_shift):
        shift_service.close_shift(actors["manager"], active_shift.id)
        with pytest.raises(NoActiveShift):
            _create(actors, active_shift, catalog)
        assert db_session.query(Order).count() == 0

    def test_menu_stop_list_rejects_whole_order(self, db_session, actors, catalog, active_shift):
        shift_service.add_to_stop_list(actors["manager"], "MENU", catalog["soup"].id)

        with pytest.raises(ItemStopListed):
            _create(actors, active_shift, catalog)
        assert db_session.query(Order).count() == 0

        order = _create(actors, active_shift, catalog, items=[
            {"menu_item_id": catalog["chicken_rice"].id, "quantity": 1},
        ])
        assert order.status == "OPEN"

    def test_ingredient_stop_list_rejects_dish(self, db_session, actors, catalog, active_shift):
        shift_service.add_to_stop_list(actors["manager"], "INGREDIENT", catalog["rice"].id)

        with pytest.raises(ItemStopListed) as exc_info:
            _create(actors, active_shift, catalog)
        assert exc_info.value.details["ingredient_id"] == catalog["rice"].id

    def test_insufficient_stock_for_recipe(self, db_session, actors, catalog, active_shift):
        # 0.300 kg tomatoes per soup, 100 kg in stock
        with pytest.raises(InsufficientStock):
            _create(actors, active_shift, catalog, items=[
                {"menu_item_id": catalog["soup"].id, "quantity": 334},
            ])

    @pytest.mark.parametrize("items,error", [
        ([], ValidationError),
        ([{"menu_item_id": 1, "quantity": 0}], InvalidQuantity),
        ([{"menu_item_id": 1, "quantity": 1.5}], InvalidQuantity),
        ([{"menu_item_id": 1, "quantity": 10000}], InvalidQuantity),
        ([{"menu_item_id": 1, "quantity": 10**27}], InvalidQuantity),
        (["soup"], ValidationError),
    ])
    def test_rejects_bad_items(self, db_session, actors, catalog, active_shift, items, error):
        with pytest.raises(error):
            order_service.create_order(actors["waiter"], active_shift.id, "1", None, items)

    def test_unknown_menu_item(self, db_session, actors, catalog, active_shift):
        with pytest.raises(NotFound):
            _create(actors, active_shift, catalog, items=[{"menu_item_id": 9999, "quantity": 1}])

    def test_total_above_price_cap_rejected(self, db_session, actors, catalog, active_shift):
        banquet = catalog_service.create_menu_item("Banquet", "9999999.99", category="Events")

        with pytest.raises(InvalidQuantity):
            _create(actors, active_shift, catalog, items=[{"menu_item_id": banquet.id, "quantity": 2}])
        assert db_session.query(Order).count() == 0


# =============================================================================
# CANCEL
# =============================================================================


class TestCancelOrder:

    def test_cancel_open_order(self, db_session, actors, staff, catalog, active_shift):
        order = _create(actors, active_shift, catalog)
        cancelled = order_service.cancel_order(actors["cashier"], order.id)

        assert cancelled.status == "CANCELLED"
        assert cancelled.cancelled_at is not None
        assert cancelled.cancelled_by_user_id == staff["cashier"].id

    def test_cancel_twice_fails(self, db_session, actors, catalog, active_shift):
        order = _create(actors, active_shift, catalog)
        order_service.cancel_order(actors["cashier"], order.id)
        with pytest.raises(InvalidState):
            order_service.cancel_order(actors["cashier"], order.id)

    def test_cannot_pay_cancelled(self, db_session, actors, catalog, active_shift):
        order = _create(actors, active_shift, catalog)
        order_service.cancel_order(actors["manager"], order.id)
        with pytest.raises(InvalidState):
            order_service.record_payment(actors["cashier"], order.id, "25.90", "CASH")

    def test_waiter_cannot_cancel(self, db_session, actors, catalog, active_shift):
        order = _create(actors, active_shift, catalog)
        with pytest.raises(PermissionDenied):
            order_service.cancel_order(actors["waiter"], order.id)

    def test_unknown_order(self, db_session, actors):
        with pytest.raises(NotFound):
            order_service.cancel_order(actors["cashier"], 9999)


# =============================================================================
# PAYMENTS
# =============================================================================


class TestRecordPayment:

    def test_exact_payment_marks_paid(self, db_session, actors, staff, catalog, active_shift):
        order = _create(actors, active_shift, catalog)
        order_service.record_payment(actors["cashier"], order.id, "25.90", "CARD")

        order = order_service.get_order(order.id)
        assert order.status == "PAID"
        assert order.paid_at is not None
        assert order.cashier_id == staff["cashier"].id
        assert Decimal(order.change_due) == Decimal("0")

    def test_split_payment(self, db_session, actors, catalog, active_shift):
        order = _create(actors, active_shift, catalog)

        order_service.record_payment(actors["cashier"], order.id, "10.00", "CASH")
        assert order_service.get_order(order.id).status == "OPEN"
        summary = order_service.get_payment_summary(order.id)
        assert summary["remaining"] == "15.9"

        order_service.record_payment(actors["cashier"], order.id, "15.90", "CARD")
        order = order_service.get_order(order.id)
        assert order.status == "PAID"
        assert sum(Decimal(p.amount) for p in order.payments) == Decimal(order.total_price)

    def test_overpayment_records_change(self, db_session, actors, catalog, active_shift):
        order = _create(actors, active_shift, catalog)
        order_service.record_payment(actors["cashier"], order.id, "30.00", "CASH")

        order = order_service.get_order(order.id)
        assert order.status == "PAID"
        assert Decimal(order.change_due) == Decimal("4.10")
        assert order_service.get_payment_summary(order.id)["remaining"] == "0"

    def test_paid_order_is_terminal(self, db_session, actors, catalog, active_shift):
        order = _create(actors, active_shift, catalog)
        order_service.record_payment(actors["cashier"], order.id, "25.90", "CASH")

        with pytest.raises(InvalidState):
            order_service.record_payment(actors["cashier"], order.id, "1.00", "CASH")
        with pytest.raises(InvalidState):
            order_service.cancel_order(actors["cashier"], order.id)
        assert db_session.query(Payment).filter_by(order_id=order.id).count() == 1

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", "1.234"])
    def test_rejects_bad_amount(self, db_session, actors, catalog, active_shift, amount):
        order = _create(actors, active_shift, catalog)
        with pytest.raises(InvalidPrice):
            order_service.record_payment(actors["cashier"], order.id, amount, "CASH")

    def test_rejects_unknown_payment_type(self, db_session, actors, catalog, active_shift):
        order = _create(actors, active_shift, catalog)
        with pytest.raises(ValidationError):
            order_service.record_payment(actors["cashier"], order.id, "25.90", "BITCOIN")

    def test_cashier_attached_on_payment(self, db_session, actors, staff, catalog, active_shift):
        order = _create(actors, active_shift, catalog)
        order_service.record_payment(
            actors["manager"], order.id, "25.90", "CARD", cashier_id=staff["cashier2"].id,
        )
        assert order_service.get_order(order.id).cashier_id == staff["cashier2"].id


# =============================================================================
# QUERIES
# =============================================================================


class TestListOrders:

    def test_defaults_to_active_shift(self, db_session, actors, staff, catalog, active_shift):
        first = _create(actors, active_shift, catalog)
        second = _create(actors, active_shift, catalog)
        order_service.cancel_order(actors["cashier"], second.id)

        assert [o.id for o in order_service.list_orders_for_shift()] == [first.id, second.id]
        assert [o.id for o in order_service.list_orders_for_shift(status="cancelled")] == [second.id]

        shift_service.close_shift(actors["manager"], active_shift.id)
        with pytest.raises(NoActiveShift):
            order_service.list_orders_for_shift()
        assert len(order_service.list_orders_for_shift(shift_id=active_shift.id)) == 2
