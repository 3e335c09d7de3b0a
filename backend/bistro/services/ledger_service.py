# Overview: Service-layer operations for the audit ledger; encapsulates business logic and database work.

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func

from ..extensions import db
from ..models import LedgerEvent
"""
Bistro Ledger Invariants (authoritative)

- Append-only audit log for cross-cutting domain events.
- No domain/business logic in the ledger itself.
- Events are written inside the same DB transaction as the domain event they record.
- occurred_at is business time; created_at is system time (DB default).
- Inventory events carry quantity_delta; per ingredient, the sum of deltas
  equals Ingredient.in_stock.
"""

CATEGORY_INVENTORY = "inventory"
CATEGORY_SHIFT = "shift"
CATEGORY_ORDER = "order"


def append_ledger_event(
    *,
    event_type: str,
    event_category: str,
    entity_type: str,
    entity_id: int,
    actor_user_id: int | None = None,
    shift_id: int | None = None,
    ingredient_id: int | None = None,
    order_id: int | None = None,
    quantity_delta: Decimal | None = None,
    occurred_at: Optional[datetime] = None,
    note: Optional[str] = None,
    payload: Optional[str] = None,
) -> LedgerEvent:
    """
    Append-only ledger event.

    - No domain logic here.
    - No deletes/updates of existing events.
    - Flushes but never commits: the caller owns the transaction.
    """
    ev = LedgerEvent(
        event_type=event_type,
        event_category=event_category,
        entity_type=entity_type,
        entity_id=entity_id,
        actor_user_id=actor_user_id,
        shift_id=shift_id,
        ingredient_id=ingredient_id,
        order_id=order_id,
        quantity_delta=quantity_delta,
        occurred_at=occurred_at,  # if None, db default applies
        note=note[:255] if note else None,
        payload=payload,
    )
    db.session.add(ev)
    db.session.flush()  # ensures ev.id is assigned without committing
    return ev


def list_ledger_events(
    *,
    event_category: str | None = None,
    ingredient_id: int | None = None,
    shift_id: int | None = None,
    order_id: int | None = None,
    limit: int = 200,
) -> list[LedgerEvent]:
    q = db.session.query(LedgerEvent)
    if event_category:
        q = q.filter(LedgerEvent.event_category == event_category)
    if ingredient_id is not None:
        q = q.filter(LedgerEvent.ingredient_id == ingredient_id)
    if shift_id is not None:
        q = q.filter(LedgerEvent.shift_id == shift_id)
    if order_id is not None:
        q = q.filter(LedgerEvent.order_id == order_id)
    return q.order_by(LedgerEvent.occurred_at.desc(), LedgerEvent.id.desc()).limit(limit).all()


def get_ledger_balance(ingredient_id: int, as_of: datetime | None = None) -> Decimal:
    """Rebuild an ingredient's stock from its inventory events (inclusive as_of)."""
    q = db.session.query(
        func.coalesce(func.sum(LedgerEvent.quantity_delta), 0)
    ).filter(
        LedgerEvent.event_category == CATEGORY_INVENTORY,
        LedgerEvent.ingredient_id == ingredient_id,
    )
    if as_of is not None:
        q = q.filter(LedgerEvent.occurred_at <= as_of)
    return Decimal(str(q.scalar() or 0)).quantize(Decimal("0.001"))
