"""
Shift state machine tests.

Verifies:
- Only one shift can be active
- Roster validation on open and replacement
- Ended shifts are frozen
- Stop-lists are per shift
"""

import pytest

from bistro.errors import (
    AlreadyListed,
    InvalidRoster,
    NoActiveShift,
    NotActive,
    NotFound,
    NotListed,
    PermissionDenied,
    PreconditionFailed,
)
from bistro.models import LedgerEvent, Shift, ShiftStaff, ShiftState
from bistro.services import auth_service, order_service, shift_service


# =============================================================================
# OPEN
# =============================================================================


class TestOpenShift:

    def test_open_sets_active_shift(self, db_session, actors, staff):
        shift = shift_service.open_shift(
            actors["manager"], staff["cashier"].id, [staff["waiter"].id, staff["waiter2"].id],
        )

        assert shift.is_active is True
        assert shift.ended_at is None
        assert shift.manager_id == staff["manager"].id
        assert shift_service.get_active_shift().id == shift.id
        assert shift.cashier.id == staff["cashier"].id
        assert [w.id for w in shift.waiters] == [staff["waiter"].id, staff["waiter2"].id]

    def test_second_open_fails_while_active(self, db_session, actors, staff, active_shift):
        with pytest.raises(PreconditionFailed):
            shift_service.open_shift(actors["manager2"], staff["cashier2"].id, [staff["waiter2"].id])

        assert db_session.query(Shift).count() == 1
        assert shift_service.get_active_shift().id == active_shift.id

    def test_explicit_manager(self, db_session, actors, staff):
        shift = shift_service.open_shift(
            actors["admin"], staff["cashier"].id, [staff["waiter"].id], manager_id=staff["manager2"].id,
        )
        assert shift.manager_id == staff["manager2"].id

    @pytest.mark.parametrize("cashier_key,waiter_keys", [
        (None, ["waiter"]),
        ("cashier", []),
        ("waiter", ["waiter2"]),          # cashier slot holds a waiter
        ("cashier", ["cashier2"]),        # waiter slot holds a cashier
        ("cashier", ["retired"]),         # inactive waiter
    ])
    def test_invalid_roster_creates_nothing(self, db_session, actors, staff, cashier_key, waiter_keys):
        cashier_id = staff[cashier_key].id if cashier_key else None
        waiter_ids = [staff[k].id for k in waiter_keys]

        with pytest.raises(InvalidRoster):
            shift_service.open_shift(actors["manager"], cashier_id, waiter_ids)

        assert db_session.query(Shift).count() == 0
        assert shift_service.get_active_shift() is None

    def test_unknown_waiter_is_invalid_roster(self, db_session, actors, staff):
        with pytest.raises(InvalidRoster):
            shift_service.open_shift(actors["manager"], staff["cashier"].id, [staff["waiter"].id, 9999])

    def test_manager_must_be_manager(self, db_session, actors, staff):
        with pytest.raises(InvalidRoster):
            shift_service.open_shift(
                actors["manager"], staff["cashier"].id, [staff["waiter"].id], manager_id=staff["cashier2"].id,
            )

    def test_duplicate_waiters_collapse(self, db_session, actors, staff):
        shift = shift_service.open_shift(
            actors["manager"],
            staff["cashier"].id,
            [staff["waiter2"].id, staff["waiter"].id, staff["waiter2"].id],
        )
        assert [w.id for w in shift.waiters] == [staff["waiter2"].id, staff["waiter"].id]

    def test_cashier_cannot_open(self, db_session, actors, staff):
        with pytest.raises(PermissionDenied):
            shift_service.open_shift(actors["cashier"], staff["cashier"].id, [staff["waiter"].id])

    def test_open_writes_ledger_event(self, db_session, actors, active_shift):
        event = db_session.query(LedgerEvent).filter_by(event_type="shift.opened").one()
        assert event.shift_id == active_shift.id
        assert event.actor_user_id == actors["manager"].user_id


# =============================================================================
# CLOSE
# =============================================================================


class TestCloseShift:

    def test_close_clears_active_shift(self, db_session, actors, active_shift):
        shift = shift_service.close_shift(actors["manager"], active_shift.id)

        assert shift.is_active is False
        assert shift.ended_at is not None
        assert shift_service.get_active_shift() is None

    def test_close_twice_fails(self, db_session, actors, active_shift):
        shift_service.close_shift(actors["manager"], active_shift.id)
        with pytest.raises(NotActive):
            shift_service.close_shift(actors["manager"], active_shift.id)

    def test_close_unknown_shift(self, db_session, actors, active_shift):
        with pytest.raises(NotFound):
            shift_service.close_shift(actors["manager"], 9999)

    def test_can_open_after_close(self, db_session, actors, staff, active_shift):
        shift_service.close_shift(actors["manager"], active_shift.id)
        second = shift_service.open_shift(actors["manager2"], staff["cashier2"].id, [staff["waiter2"].id])

        assert second.id != active_shift.id
        assert shift_service.get_active_shift().id == second.id
        assert [s.id for s in shift_service.list_shifts()] == [second.id, active_shift.id]

    def test_open_orders_survive_close(self, db_session, actors, staff, catalog, active_shift):
        order = order_service.create_order(
            actors["waiter"], active_shift.id, "4", None,
            [{"menu_item_id": catalog["soup"].id, "quantity": 1}],
        )

        shift_service.close_shift(actors["manager"], active_shift.id)

        assert order_service.get_order(order.id).status == "OPEN"
        event = db_session.query(LedgerEvent).filter_by(event_type="shift.closed").one()
        assert event.payload == "open_orders=1"

        # Orphaned orders stay payable
        order_service.record_payment(actors["cashier"], order.id, "6.50", "CARD")
        assert order_service.get_order(order.id).status == "PAID"


# =============================================================================
# ROSTER
# =============================================================================


class TestUpdateRoster:

    def test_replaces_roster(self, db_session, actors, staff, active_shift):
        shift = shift_service.update_roster(
            actors["manager"], active_shift.id, staff["cashier2"].id, [staff["waiter2"].id, staff["waiter"].id],
        )

        assert shift.cashier.id == staff["cashier2"].id
        assert [w.id for w in shift.waiters] == [staff["waiter2"].id, staff["waiter"].id]
        assert db_session.query(ShiftStaff).filter_by(shift_id=shift.id).count() == 3

    def test_invalid_roster_keeps_previous(self, db_session, actors, staff, active_shift):
        with pytest.raises(InvalidRoster):
            shift_service.update_roster(actors["manager"], active_shift.id, staff["cashier"].id, [])

        db_session.expire_all()
        shift = shift_service.get_shift(active_shift.id)
        assert shift.cashier.id == staff["cashier"].id
        assert [w.id for w in shift.waiters] == [staff["waiter"].id]

    def test_ended_shift_is_frozen(self, db_session, actors, staff, active_shift):
        shift_service.close_shift(actors["manager"], active_shift.id)
        with pytest.raises(NotActive):
            shift_service.update_roster(
                actors["manager"], active_shift.id, staff["cashier2"].id, [staff["waiter2"].id],
            )

    def test_unknown_shift(self, db_session, actors, staff):
        with pytest.raises(NotFound):
            shift_service.update_roster(actors["manager"], 9999, staff["cashier"].id, [staff["waiter"].id])

    def test_deactivated_manager_does_not_block_roster(self, db_session, actors, staff, active_shift):
        auth_service.set_user_active(actors["admin"], staff["manager"].id, False)

        shift = shift_service.update_roster(
            actors["manager2"], active_shift.id, staff["cashier2"].id, [staff["waiter2"].id],
        )
        assert shift.manager_id == staff["manager"].id
        assert shift.cashier.id == staff["cashier2"].id

    def test_roster_change_bumps_shift_pointer(self, db_session, actors, staff, active_shift):
        before = db_session.get(ShiftState, ShiftState.SINGLETON_ID).version_id
        shift_service.update_roster(actors["manager"], active_shift.id, staff["cashier2"].id, [staff["waiter"].id])

        db_session.expire_all()
        assert db_session.get(ShiftState, ShiftState.SINGLETON_ID).version_id == before + 1


# =============================================================================
# STOP-LISTS
# =============================================================================


class TestStopLists:

    def test_add_and_remove_menu_item(self, db_session, actors, catalog, active_shift):
        soup = catalog["soup"]

        entry = shift_service.add_to_stop_list(actors["cashier"], "menu", soup.id)
        assert entry.shift_id == active_shift.id
        assert shift_service.is_stop_listed("MENU", soup.id)
        assert [e.target_id for e in shift_service.list_stop_list("MENU")] == [soup.id]

        shift_service.remove_from_stop_list(actors["cashier"], "MENU", soup.id)
        assert not shift_service.is_stop_listed("MENU", soup.id)

    def test_duplicate_add_fails(self, db_session, actors, catalog, active_shift):
        shift_service.add_to_stop_list(actors["manager"], "INGREDIENT", catalog["rice"].id)
        with pytest.raises(AlreadyListed):
            shift_service.add_to_stop_list(actors["manager"], "INGREDIENT", catalog["rice"].id)

    def test_remove_missing_fails(self, db_session, actors, catalog, active_shift):
        with pytest.raises(NotListed):
            shift_service.remove_from_stop_list(actors["manager"], "MENU", catalog["soup"].id)

    def test_unknown_target(self, db_session, actors, catalog, active_shift):
        with pytest.raises(NotFound):
            shift_service.add_to_stop_list(actors["manager"], "MENU", 9999)

    def test_needs_active_shift(self, db_session, actors, catalog):
        with pytest.raises(NoActiveShift):
            shift_service.add_to_stop_list(actors["manager"], "MENU", catalog["soup"].id)

    def test_stop_list_does_not_carry_over(self, db_session, actors, staff, catalog, active_shift):
        shift_service.add_to_stop_list(actors["manager"], "MENU", catalog["soup"].id)
        shift_service.close_shift(actors["manager"], active_shift.id)
        shift_service.open_shift(actors["manager"], staff["cashier"].id, [staff["waiter"].id])

        assert shift_service.list_stop_list("MENU") == []
        assert len(shift_service.list_stop_list("MENU", shift_id=active_shift.id)) == 1

    def test_waiter_cannot_edit_stop_list(self, db_session, actors, catalog, active_shift):
        with pytest.raises(PermissionDenied):
            shift_service.add_to_stop_list(actors["waiter"], "MENU", catalog["soup"].id)
