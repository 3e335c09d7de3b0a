from __future__ import annotations

from ..extensions import db
from bistro.time_utils import to_utc_z
from bistro.validation import decimal_to_str


class LedgerEvent(db.Model):
    """
    Append-only audit log of domain events (stock movements, shift and order
    transitions). Written in the same DB transaction as the change it records.

    For inventory events, quantity_delta carries the signed stock change so the
    running balance of an ingredient can be rebuilt from the log.
    """
    __tablename__ = "ledger_events"
    __table_args__ = (
        db.Index("ix_ledger_events_category_occurred", "event_category", "occurred_at"),
        db.Index("ix_ledger_events_ingredient_occurred", "ingredient_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # What happened
    event_type = db.Column(db.String(64), nullable=False, index=True)  # e.g., inventory.delivery_recorded
    event_category = db.Column(db.String(32), nullable=False, index=True)  # inventory, shift, order

    # What it refers to (generic pointer)
    entity_type = db.Column(db.String(64), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    # Actor and cross-module references
    actor_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True, index=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey("ingredients.id"), nullable=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    quantity_delta = db.Column(db.Numeric(12, 3), nullable=True)

    # Business vs system time
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Optional structured metadata (keep small; do not denormalize domain state)
    note = db.Column(db.String(255), nullable=True)
    payload = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "event_type": self.event_type,
            "event_category": self.event_category,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "actor_user_id": self.actor_user_id,
            "shift_id": self.shift_id,
            "ingredient_id": self.ingredient_id,
            "order_id": self.order_id,
            "quantity_delta": decimal_to_str(self.quantity_delta),
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
            "note": self.note,
            "payload": self.payload,
        }
