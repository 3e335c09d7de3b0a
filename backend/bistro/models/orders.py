from __future__ import annotations

from ..extensions import db
from bistro.time_utils import to_utc_z
from bistro.validation import decimal_to_str


class Order(db.Model):
    """
    Table order taken during a shift.

    LIFECYCLE (monotonic, both targets terminal):
    - OPEN -> PAID: payments reach total_price
    - OPEN -> CANCELLED: cancelled before payment

    total_price is the sum of line totals captured at creation and never
    changes afterwards. The order stays linked to the shift it was created in,
    even after that shift ends.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.Index("ix_orders_shift_status", "shift_id", "status"),
        db.CheckConstraint("total_price >= 0", name="ck_orders_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    table_number = db.Column(db.String(16), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="OPEN", index=True)

    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    waiter_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    # Amounts
    total_price = db.Column(db.Numeric(12, 2), nullable=False)
    total_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    change_due = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Timestamps
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    shift = db.relationship("Shift", backref=db.backref("orders", lazy=True))
    waiter = db.relationship("User", foreign_keys=[waiter_id])
    cashier = db.relationship("User", foreign_keys=[cashier_id])
    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id")
    payments = db.relationship("Payment", backref="order", lazy=True, order_by="Payment.id")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = True) -> dict:
        data = {
            "id": self.id,
            "table_number": self.table_number,
            "status": self.status,
            "shift_id": self.shift_id,
            "waiter_id": self.waiter_id,
            "waiter": self.waiter.to_summary() if self.waiter else None,
            "cashier_id": self.cashier_id,
            "cashier": self.cashier.to_summary() if self.cashier else None,
            "total_price": decimal_to_str(self.total_price),
            "total_paid": decimal_to_str(self.total_paid),
            "change_due": decimal_to_str(self.change_due),
            "created_at": to_utc_z(self.created_at),
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "version_id": self.version_id,
        }
        if include_lines:
            data["items"] = [i.to_dict() for i in self.items]
            data["payments"] = [p.to_dict() for p in self.payments]
        return data


class OrderItem(db.Model):
    """Order line with the menu price captured at order time."""
    __tablename__ = "order_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    line_total = db.Column(db.Numeric(12, 2), nullable=False)

    menu_item = db.relationship("MenuItem")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "menu_item_id": self.menu_item_id,
            "menu_item_name": self.menu_item.name if self.menu_item else None,
            "quantity": self.quantity,
            "unit_price": decimal_to_str(self.unit_price),
            "line_total": decimal_to_str(self.line_total),
        }


class Payment(db.Model):
    """
    Payment against an order. Append-only.

    Split payments: an order can have several; it becomes PAID once their sum
    reaches total_price.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    cashier_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_type = db.Column(db.String(16), nullable=False, index=True)

    paid_at = db.Column(db.DateTime(timezone=True), nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "cashier_id": self.cashier_id,
            "amount": decimal_to_str(self.amount),
            "payment_type": self.payment_type,
            "paid_at": to_utc_z(self.paid_at),
        }
