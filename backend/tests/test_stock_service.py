"""
Stock ledger tests.

Verifies:
- Deliveries add stock and overwrite the current price
- Write-offs remove stock, never below zero, and need the active shift
- Every change has a matching ledger event (balance == in_stock)
"""

from decimal import Decimal

import pytest

from bistro.errors import (
    InsufficientStock,
    InvalidPrice,
    InvalidQuantity,
    NoActiveShift,
    NotFound,
    PermissionDenied,
    ValidationError,
)
from bistro.models import Delivery, Ingredient, WriteOff
from bistro.services import shift_service, stock_service


def _stock(db_session, ingredient_id) -> Decimal:
    db_session.expire_all()
    return Decimal(db_session.get(Ingredient, ingredient_id).in_stock)


# =============================================================================
# DELIVERIES
# =============================================================================


class TestRecordDelivery:

    def test_delivery_increments_stock_and_updates_price(self, db_session, actors, catalog):
        tomatoes = catalog["tomatoes"]

        delivery = stock_service.record_delivery(
            actors["manager"], tomatoes.id, catalog["supplier"].id, "100", "2.50",
        )

        assert delivery.id is not None
        ingredient = db_session.get(Ingredient, tomatoes.id)
        assert Decimal(ingredient.in_stock) == Decimal("200")
        assert Decimal(ingredient.current_price) == Decimal("2.50")
        assert ingredient.last_delivery_at is not None

    def test_delivery_does_not_need_active_shift(self, db_session, actors, catalog):
        assert shift_service.get_active_shift() is None
        stock_service.record_delivery(actors["manager"], catalog["rice"].id, catalog["supplier"].id, "5", "1.00")
        assert _stock(db_session, catalog["rice"].id) == Decimal("205")

    @pytest.mark.parametrize("quantity", ["0", "-1", "abc", None, "1.0001"])
    def test_rejects_bad_quantity(self, db_session, actors, catalog, quantity):
        with pytest.raises(InvalidQuantity):
            stock_service.record_delivery(
                actors["manager"], catalog["rice"].id, catalog["supplier"].id, quantity, "1.00",
            )
        assert db_session.query(Delivery).count() == 0
        assert _stock(db_session, catalog["rice"].id) == Decimal("200")

    @pytest.mark.parametrize("price", ["0", "-2.50", "1.001", ""])
    def test_rejects_bad_price(self, db_session, actors, catalog, price):
        with pytest.raises(InvalidPrice):
            stock_service.record_delivery(
                actors["manager"], catalog["rice"].id, catalog["supplier"].id, "1", price,
            )
        assert db_session.query(Delivery).count() == 0

    def test_unknown_ingredient(self, db_session, actors, catalog):
        with pytest.raises(NotFound):
            stock_service.record_delivery(actors["manager"], 9999, catalog["supplier"].id, "1", "1.00")

    def test_unknown_supplier(self, db_session, actors, catalog):
        with pytest.raises(NotFound):
            stock_service.record_delivery(actors["manager"], catalog["rice"].id, 9999, "1", "1.00")

    def test_cashier_cannot_record_delivery(self, db_session, actors, catalog):
        with pytest.raises(PermissionDenied):
            stock_service.record_delivery(
                actors["cashier"], catalog["rice"].id, catalog["supplier"].id, "1", "1.00",
            )
        assert _stock(db_session, catalog["rice"].id) == Decimal("200")


# =============================================================================
# WRITE-OFFS
# =============================================================================


class TestRecordWriteOff:

    def test_write_off_decrements_stock(self, db_session, actors, catalog, active_shift):
        write_off = stock_service.record_write_off(
            actors["cashier"], catalog["chicken"].id, "1.250", "SPOILAGE", comment="smelled off",
        )

        assert write_off.shift_id == active_shift.id
        assert write_off.reason == "SPOILAGE"
        assert _stock(db_session, catalog["chicken"].id) == Decimal("48.750")

    def test_write_off_of_entire_stock_is_allowed(self, db_session, actors, catalog, active_shift):
        stock_service.record_write_off(actors["manager"], catalog["chicken"].id, "50", "INVENTORY_COUNT")
        assert _stock(db_session, catalog["chicken"].id) == Decimal("0")

    def test_exceeding_stock_fails_and_leaves_stock(self, db_session, actors, catalog, active_shift):
        with pytest.raises(InsufficientStock) as exc_info:
            stock_service.record_write_off(actors["manager"], catalog["chicken"].id, "50.001", "USAGE")

        assert exc_info.value.details["available"] == "50"
        assert _stock(db_session, catalog["chicken"].id) == Decimal("50")
        assert db_session.query(WriteOff).count() == 0

    def test_requires_active_shift(self, db_session, actors, catalog):
        with pytest.raises(NoActiveShift):
            stock_service.record_write_off(actors["manager"], catalog["rice"].id, "1", "USAGE")
        assert _stock(db_session, catalog["rice"].id) == Decimal("200")

    def test_shift_id_must_be_active_shift(self, db_session, actors, staff, catalog, active_shift):
        shift_service.close_shift(actors["manager"], active_shift.id)
        second = shift_service.open_shift(actors["manager"], staff["cashier"].id, [staff["waiter"].id])

        with pytest.raises(NoActiveShift):
            stock_service.record_write_off(
                actors["manager"], catalog["rice"].id, "1", "USAGE", shift_id=active_shift.id,
            )

        write_off = stock_service.record_write_off(
            actors["manager"], catalog["rice"].id, "1", "USAGE", shift_id=second.id,
        )
        assert write_off.shift_id == second.id

    def test_unknown_reason(self, db_session, actors, catalog, active_shift):
        with pytest.raises(ValidationError):
            stock_service.record_write_off(actors["manager"], catalog["rice"].id, "1", "THEFT")

    def test_waiter_cannot_write_off(self, db_session, actors, catalog, active_shift):
        with pytest.raises(PermissionDenied):
            stock_service.record_write_off(actors["waiter"], catalog["rice"].id, "1", "USAGE")


# =============================================================================
# LEDGER CONSISTENCY
# =============================================================================


class TestStockLedger:

    def test_tomatoes_scenario(self, db_session, actors, catalog, active_shift):
        """Opening 100, +100 delivery, -50 spoilage, -200 rejected."""
        tomatoes = catalog["tomatoes"]
        manager = actors["manager"]

        stock_service.record_delivery(manager, tomatoes.id, catalog["supplier"].id, "100", "2.5")
        ingredient = db_session.get(Ingredient, tomatoes.id)
        assert Decimal(ingredient.in_stock) == Decimal("200")
        assert Decimal(ingredient.current_price) == Decimal("2.50")

        stock_service.record_write_off(manager, tomatoes.id, "50", "SPOILAGE")
        assert _stock(db_session, tomatoes.id) == Decimal("150")

        with pytest.raises(InsufficientStock):
            stock_service.record_write_off(manager, tomatoes.id, "200", "SPOILAGE")
        assert _stock(db_session, tomatoes.id) == Decimal("150")

    def test_ledger_balance_matches_stock(self, db_session, actors, catalog, active_shift):
        rice = catalog["rice"]
        manager = actors["manager"]

        stock_service.record_delivery(manager, rice.id, catalog["supplier"].id, "12.345", "1.10")
        stock_service.record_write_off(manager, rice.id, "0.345", "USAGE")
        stock_service.record_write_off(manager, rice.id, "2", "OTHER", comment="dropped")
        with pytest.raises(InsufficientStock):
            stock_service.record_write_off(manager, rice.id, "1000", "OTHER")

        assert _stock(db_session, rice.id) == Decimal("210.000")
        assert stock_service.get_ledger_balance(rice.id) == Decimal("210.000")

    def test_history_lists_inventory_events_newest_first(self, db_session, actors, catalog, active_shift):
        rice = catalog["rice"]
        stock_service.record_delivery(actors["manager"], rice.id, catalog["supplier"].id, "10", "1.00")
        stock_service.record_write_off(actors["manager"], rice.id, "3", "USAGE")

        events = stock_service.get_ingredient_history(rice.id)
        types = [e.event_type for e in events]
        assert set(types) == {
            "inventory.opening_balance",
            "inventory.delivery_recorded",
            "inventory.write_off_recorded",
        }
        assert sum(Decimal(e.quantity_delta) for e in events) == Decimal("207")

    def test_list_filters(self, db_session, actors, catalog, active_shift):
        manager = actors["manager"]
        stock_service.record_delivery(manager, catalog["rice"].id, catalog["supplier"].id, "1", "1.00")
        stock_service.record_delivery(manager, catalog["chicken"].id, catalog["supplier"].id, "1", "8.00")
        stock_service.record_write_off(manager, catalog["rice"].id, "1", "USAGE")

        assert len(stock_service.list_deliveries()) == 2
        assert len(stock_service.list_deliveries(ingredient_id=catalog["rice"].id)) == 1
        assert len(stock_service.list_write_offs(shift_id=active_shift.id)) == 1
        assert stock_service.list_write_offs(reason="SPOILAGE") == []
        low = stock_service.list_ingredients(low_stock_below="100")
        assert [i.name for i in low] == ["Chicken"]
