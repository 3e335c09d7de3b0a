# Overview: Service-layer operations for shifts; encapsulates business logic and database work.

"""
Shift State Machine

WHY: Almost every operation is gated by "is there an active shift, and is it
this one". The active shift, its roster and its stop-lists live here.

STATES: NoActiveShift <-> Active (global), per shift ACTIVE -> ENDED.

DESIGN PRINCIPLES:
- At most one active shift. The ShiftState singleton row is the pointer; it is
  claimed (locked + version bump) before a shift is created, so two concurrent
  OpenShift calls cannot both succeed.
- Every shift-scoped write (roster, stop-list, write-off, order) claims the
  pointer in its own transaction, so it cannot commit against a shift that
  was closed after it was checked.
- Rosters are replaced wholesale (remove all, insert all) in one transaction.
- Ended shifts are frozen: roster and stop-lists are history only.
- Closing a shift does not touch its orders. OPEN orders stay OPEN.
"""

from __future__ import annotations

import logging

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ValidationError,
    InvalidRoster,
    NotFound,
    PreconditionFailed,
    NoActiveShift,
    NotActive,
    AlreadyListed,
    NotListed,
)
from ..extensions import db
from ..models import (
    User,
    Shift,
    ShiftStaff,
    ShiftState,
    MenuItem,
    Ingredient,
    MenuStopListEntry,
    IngredientStopListEntry,
    Order,
)
from ..permissions import requires, ROLE_ADMIN, ROLE_MANAGER, ROLE_CASHIER, ROLE_WAITER
from ..validation import parse_choice, parse_id, parse_id_list
from bistro.time_utils import utcnow
from .concurrency import lock_for_update, run_with_retry
from .ledger_service import append_ledger_event, CATEGORY_SHIFT

logger = logging.getLogger(__name__)


STOP_LIST_MENU = "MENU"
STOP_LIST_INGREDIENT = "INGREDIENT"
STOP_LIST_KINDS = [STOP_LIST_MENU, STOP_LIST_INGREDIENT]

# kind -> (entry model, target column, target model)
_STOP_LISTS = {
    STOP_LIST_MENU: (MenuStopListEntry, "menu_item_id", MenuItem),
    STOP_LIST_INGREDIENT: (IngredientStopListEntry, "ingredient_id", Ingredient),
}


# =============================================================================
# ACTIVE SHIFT POINTER
# =============================================================================

def ensure_shift_state() -> ShiftState:
    """
    Make sure the singleton pointer row exists (idempotent).

    Runs in its own short transaction; a concurrent creator winning the
    insert is fine.
    """
    state = db.session.get(ShiftState, ShiftState.SINGLETON_ID)
    if state is not None:
        return state

    db.session.add(ShiftState(id=ShiftState.SINGLETON_ID, active_shift_id=None))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
    return db.session.get(ShiftState, ShiftState.SINGLETON_ID)


def _lock_shift_state() -> ShiftState:
    state = lock_for_update(
        db.session.query(ShiftState).filter_by(id=ShiftState.SINGLETON_ID)
    ).populate_existing().first()
    if state is None:
        # Only reachable if ensure_shift_state() was skipped
        raise NoActiveShift("No active shift")
    return state


def _claim_shift_state(state: ShiftState) -> None:
    """
    Bump the pointer's version inside the caller's transaction.

    An OpenShift/CloseShift committed after our read makes this flush (or the
    final commit) raise StaleDataError, and run_with_retry re-runs the caller
    against the new pointer.
    """
    state.updated_at = utcnow()
    db.session.flush()


def get_active_shift() -> Shift | None:
    """Return the active shift, or None."""
    state = db.session.get(ShiftState, ShiftState.SINGLETON_ID)
    if state is None or state.active_shift_id is None:
        return None
    return db.session.get(Shift, state.active_shift_id)


def require_active_shift(shift_id: int | None = None, *, claim: bool = False) -> Shift:
    """
    Return the active shift, checking it matches shift_id when given.

    Raises NoActiveShift if there is no active shift or shift_id is not it.
    With claim=True the pointer row is locked and its version bumped, so the
    caller cannot commit against a shift that was closed in the meantime.
    Every shift-scoped mutation must claim; reads need not.
    """
    if claim:
        state = lock_for_update(
            db.session.query(ShiftState).filter_by(id=ShiftState.SINGLETON_ID)
        ).populate_existing().first()
    else:
        state = db.session.get(ShiftState, ShiftState.SINGLETON_ID)

    if state is None or state.active_shift_id is None:
        raise NoActiveShift("No active shift")

    if shift_id is not None and state.active_shift_id != shift_id:
        raise NoActiveShift(
            f"Shift {shift_id} is not the active shift",
            details={"shift_id": shift_id, "active_shift_id": state.active_shift_id},
        )

    if claim:
        _claim_shift_state(state)

    return db.session.get(Shift, state.active_shift_id)


# =============================================================================
# ROSTER
# =============================================================================

def _parse_roster(cashier_id, waiter_ids) -> tuple[int, list[int]]:
    if cashier_id is None or cashier_id == "":
        raise InvalidRoster("A cashier is required", details={"field": "cashier_id"})
    if not waiter_ids:
        raise InvalidRoster("At least one waiter is required", details={"field": "waiter_ids"})

    try:
        cashier_id = parse_id(cashier_id, "cashier_id")
        waiter_ids = parse_id_list(waiter_ids, "waiter_ids")
    except InvalidRoster:
        raise
    except ValidationError as exc:
        raise InvalidRoster(exc.message, details=exc.details)

    # Collapse duplicates, keep roster order
    unique_waiters: list[int] = []
    for waiter_id in waiter_ids:
        if waiter_id not in unique_waiters:
            unique_waiters.append(waiter_id)
    return cashier_id, unique_waiters


def _active_user(user_id: int, roles: tuple[str, ...]) -> User | None:
    user = db.session.get(User, user_id)
    if not user or not user.is_active or user.role not in roles:
        return None
    return user


def _validate_manager(manager_id: int) -> User:
    manager = _active_user(manager_id, (ROLE_MANAGER, ROLE_ADMIN))
    if manager is None:
        raise InvalidRoster(
            "Manager not found or not an active manager",
            details={"manager_id": manager_id},
        )
    return manager


def _validate_roster(cashier_id: int, waiter_ids: list[int]) -> tuple[User, list[User]]:
    """Resolve cashier and waiter ids to users, all-or-nothing."""
    cashier = _active_user(cashier_id, (ROLE_CASHIER,))
    if cashier is None:
        raise InvalidRoster(
            "Cashier not found or not an active cashier",
            details={"cashier_id": cashier_id},
        )

    waiters = []
    missing = []
    for waiter_id in waiter_ids:
        waiter = _active_user(waiter_id, (ROLE_WAITER,))
        if waiter is None:
            missing.append(waiter_id)
        else:
            waiters.append(waiter)
    if missing:
        raise InvalidRoster(
            "One or more waiters not found or not active waiters",
            details={"waiter_ids": missing},
        )

    return cashier, waiters


def _replace_staff(shift: Shift, cashier: User, waiters: list[User]) -> None:
    """Remove every roster entry, then insert the new roster (cashier first)."""
    shift.staff.clear()
    db.session.flush()

    members = [ShiftStaff(user_id=cashier.id, role_snapshot=cashier.role, position=0)]
    members.extend(
        ShiftStaff(user_id=w.id, role_snapshot=w.role, position=i)
        for i, w in enumerate(waiters, start=1)
    )
    shift.staff.extend(members)
    db.session.flush()


def is_on_roster(shift: Shift, user_id: int, role: str | None = None) -> bool:
    return any(
        m.user_id == user_id and (role is None or m.role_snapshot == role)
        for m in shift.staff
    )


# =============================================================================
# TRANSITIONS
# =============================================================================

@requires("OPEN_SHIFT")
def open_shift(actor, cashier_id, waiter_ids, manager_id=None) -> Shift:
    """
    Open a new shift (NoActiveShift -> Active).

    Raises:
        InvalidRoster: cashier missing/not a cashier, no waiters, or a waiter
            missing/not a waiter, or manager not an active manager
        PreconditionFailed: a shift is already active
    """
    cashier_id, waiter_ids = _parse_roster(cashier_id, waiter_ids)
    manager_id = parse_id(manager_id, "manager_id") if manager_id is not None else actor.user_id

    ensure_shift_state()

    def _op():
        manager = _validate_manager(manager_id)
        cashier, waiters = _validate_roster(cashier_id, waiter_ids)

        state = _lock_shift_state()
        if state.active_shift_id is not None:
            raise PreconditionFailed(
                "A shift is already active. Close it before opening a new one.",
                details={"active_shift_id": state.active_shift_id},
            )

        now = utcnow()

        # Claim the pointer first: a concurrent opener now fails its version check
        _claim_shift_state(state)

        shift = Shift(started_at=now, is_active=True, manager_id=manager.id)
        db.session.add(shift)
        try:
            db.session.flush()
        except IntegrityError:
            raise PreconditionFailed("A shift is already active. Close it before opening a new one.")

        _replace_staff(shift, cashier, waiters)
        state.active_shift_id = shift.id

        append_ledger_event(
            event_type="shift.opened",
            event_category=CATEGORY_SHIFT,
            entity_type="shift",
            entity_id=shift.id,
            actor_user_id=actor.user_id,
            shift_id=shift.id,
            occurred_at=now,
            payload=f"manager_id={manager.id},cashier_id={cashier.id},waiter_ids={[w.id for w in waiters]}",
        )

        db.session.commit()
        return shift

    shift = run_with_retry(_op)
    logger.info("Shift %s opened by user %s", shift.id, actor.user_id)
    return shift


@requires("MANAGE_ROSTER")
def update_roster(actor, shift_id, cashier_id, waiter_ids) -> Shift:
    """
    Replace the active shift's staff atomically (remove-all-then-insert).

    Raises:
        NotFound: unknown shift
        NotActive: shift is not the active one (ended shifts are frozen)
        InvalidRoster: cashier and waiter rules of open_shift
    """
    shift_id = parse_id(shift_id, "shift_id")
    cashier_id, waiter_ids = _parse_roster(cashier_id, waiter_ids)

    ensure_shift_state()

    def _op():
        state = _lock_shift_state()

        shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).populate_existing().first()
        if not shift:
            raise NotFound("Shift not found", details={"shift_id": shift_id})

        if not shift.is_active or shift.ended_at is not None or state.active_shift_id != shift.id:
            raise NotActive("Shift is not active", details={"shift_id": shift_id})

        # Manager is fixed at open; only cashier and waiters are replaced
        cashier, waiters = _validate_roster(cashier_id, waiter_ids)

        _claim_shift_state(state)

        _replace_staff(shift, cashier, waiters)

        append_ledger_event(
            event_type="shift.roster_replaced",
            event_category=CATEGORY_SHIFT,
            entity_type="shift",
            entity_id=shift.id,
            actor_user_id=actor.user_id,
            shift_id=shift.id,
            payload=f"cashier_id={cashier.id},waiter_ids={[w.id for w in waiters]}",
        )

        db.session.commit()
        return shift

    return run_with_retry(_op)


@requires("CLOSE_SHIFT")
def close_shift(actor, shift_id) -> Shift:
    """
    End the active shift (Active -> NoActiveShift).

    OPEN orders of the shift are left OPEN; they remain payable and
    cancellable. Their count is logged and recorded on the ledger event.

    Raises:
        NotFound: unknown shift
        NotActive: shift is not the active one or already ended
    """
    shift_id = parse_id(shift_id, "shift_id")

    ensure_shift_state()

    def _op():
        state = _lock_shift_state()

        shift = lock_for_update(db.session.query(Shift).filter_by(id=shift_id)).first()
        if not shift:
            raise NotFound("Shift not found", details={"shift_id": shift_id})

        if not shift.is_active or shift.ended_at is not None or state.active_shift_id != shift.id:
            raise NotActive("Shift not found or already ended", details={"shift_id": shift_id})

        now = utcnow()
        shift.ended_at = now
        shift.is_active = False
        state.active_shift_id = None

        open_orders = db.session.query(func.count(Order.id)).filter(
            Order.shift_id == shift.id,
            Order.status == "OPEN",
        ).scalar() or 0

        append_ledger_event(
            event_type="shift.closed",
            event_category=CATEGORY_SHIFT,
            entity_type="shift",
            entity_id=shift.id,
            actor_user_id=actor.user_id,
            shift_id=shift.id,
            occurred_at=now,
            payload=f"open_orders={open_orders}",
        )

        db.session.commit()
        return shift, open_orders

    shift, open_orders = run_with_retry(_op)
    if open_orders:
        logger.warning("Shift %s closed with %d open order(s) left orphaned", shift.id, open_orders)
    else:
        logger.info("Shift %s closed by user %s", shift.id, actor.user_id)
    return shift


# =============================================================================
# STOP-LISTS
# =============================================================================

@requires("MANAGE_STOP_LIST")
def add_to_stop_list(actor, kind: str, target_id):
    """
    Mark a menu item or ingredient unavailable for the active shift.

    Raises:
        NoActiveShift: no active shift
        NotFound: unknown menu item / ingredient
        AlreadyListed: (target, shift) pair already present
    """
    kind = parse_choice(kind, "kind", STOP_LIST_KINDS)
    target_id = parse_id(target_id, "target_id")
    entry_model, column, target_model = _STOP_LISTS[kind]

    def _op():
        shift = require_active_shift(claim=True)

        if not db.session.get(target_model, target_id):
            raise NotFound(f"{kind.title()} target not found", details={"target_id": target_id})

        existing = db.session.query(entry_model).filter(
            getattr(entry_model, column) == target_id,
            entry_model.shift_id == shift.id,
        ).first()
        if existing:
            raise AlreadyListed("Already in the stop-list", details={"kind": kind, "target_id": target_id})

        entry = entry_model(shift_id=shift.id, created_by_user_id=actor.user_id)
        setattr(entry, column, target_id)
        db.session.add(entry)
        try:
            db.session.flush()
        except IntegrityError:
            raise AlreadyListed("Already in the stop-list", details={"kind": kind, "target_id": target_id})

        db.session.commit()
        return entry

    return run_with_retry(_op)


@requires("MANAGE_STOP_LIST")
def remove_from_stop_list(actor, kind: str, target_id) -> None:
    """
    Raises:
        NoActiveShift: no active shift
        NotListed: target is not stop-listed in the active shift
    """
    kind = parse_choice(kind, "kind", STOP_LIST_KINDS)
    target_id = parse_id(target_id, "target_id")
    entry_model, column, _ = _STOP_LISTS[kind]

    def _op():
        shift = require_active_shift(claim=True)

        entry = db.session.query(entry_model).filter(
            getattr(entry_model, column) == target_id,
            entry_model.shift_id == shift.id,
        ).first()
        if not entry:
            raise NotListed("Not in the stop-list", details={"kind": kind, "target_id": target_id})

        db.session.delete(entry)
        db.session.commit()

    run_with_retry(_op)


def list_stop_list(kind: str, shift_id: int | None = None) -> list:
    """Stop-list entries of a shift (default: the active shift)."""
    kind = parse_choice(kind, "kind", STOP_LIST_KINDS)
    entry_model, _, _ = _STOP_LISTS[kind]

    if shift_id is None:
        shift_id = require_active_shift().id

    return db.session.query(entry_model).filter_by(shift_id=shift_id).order_by(entry_model.created_at).all()


def stop_listed_ids(kind: str, shift_id: int) -> set[int]:
    entry_model, column, _ = _STOP_LISTS[kind]
    rows = db.session.query(getattr(entry_model, column)).filter(entry_model.shift_id == shift_id).all()
    return {row[0] for row in rows}


def is_stop_listed(kind: str, target_id: int, shift_id: int | None = None) -> bool:
    """False when there is no active shift and no shift_id is given."""
    kind = parse_choice(kind, "kind", STOP_LIST_KINDS)
    if shift_id is None:
        active = get_active_shift()
        if active is None:
            return False
        shift_id = active.id
    return target_id in stop_listed_ids(kind, shift_id)


# =============================================================================
# HISTORY
# =============================================================================

def get_shift(shift_id: int) -> Shift:
    shift = db.session.get(Shift, shift_id)
    if not shift:
        raise NotFound("Shift not found", details={"shift_id": shift_id})
    return shift


def list_shifts(limit: int = 50) -> list[Shift]:
    """Shift history, newest first."""
    return db.session.query(Shift).order_by(Shift.started_at.desc(), Shift.id.desc()).limit(limit).all()
