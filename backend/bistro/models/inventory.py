from __future__ import annotations

from ..extensions import db
from bistro.time_utils import to_utc_z
from bistro.validation import decimal_to_str


class Delivery(db.Model):
    """
    Incoming stock from a supplier. Immutable once created.

    Side effect (applied in the same transaction): ingredient.in_stock += quantity,
    ingredient.current_price = price_per_unit.
    """
    __tablename__ = "deliveries"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_deliveries_quantity_positive"),
        db.CheckConstraint("price_per_unit > 0", name="ck_deliveries_price_positive"),
        db.Index("ix_deliveries_ingredient_date", "ingredient_id", "delivery_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey("ingredients.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    price_per_unit = db.Column(db.Numeric(12, 2), nullable=False)

    delivery_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    ingredient = db.relationship("Ingredient", backref=db.backref("deliveries", lazy=True))
    supplier = db.relationship("Supplier")
    created_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ingredient_id": self.ingredient_id,
            "ingredient_name": self.ingredient.name if self.ingredient else None,
            "supplier_id": self.supplier_id,
            "supplier_name": self.supplier.name if self.supplier else None,
            "quantity": decimal_to_str(self.quantity),
            "price_per_unit": decimal_to_str(self.price_per_unit),
            "delivery_date": to_utc_z(self.delivery_date),
            "created_by_user_id": self.created_by_user_id,
        }


class WriteOff(db.Model):
    """
    Manual stock decrement against a reason category. Immutable once created.

    REASON CATEGORIES:
    - SPOILAGE: expired or damaged product
    - USAGE: consumed outside of orders (staff meals, prep loss)
    - INVENTORY_COUNT: correction after a physical count
    - OTHER: free-form, see comment
    """
    __tablename__ = "write_offs"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_write_offs_quantity_positive"),
        db.Index("ix_write_offs_ingredient_date", "ingredient_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey("ingredients.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(12, 3), nullable=False)
    reason = db.Column(db.String(32), nullable=False, index=True)
    comment = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    ingredient = db.relationship("Ingredient", backref=db.backref("write_offs", lazy=True))
    shift = db.relationship("Shift", backref=db.backref("write_offs", lazy=True))
    created_by = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ingredient_id": self.ingredient_id,
            "ingredient_name": self.ingredient.name if self.ingredient else None,
            "shift_id": self.shift_id,
            "quantity": decimal_to_str(self.quantity),
            "reason": self.reason,
            "comment": self.comment,
            "created_by_user_id": self.created_by_user_id,
            "created_by": self.created_by.full_name if self.created_by else None,
            "created_at": to_utc_z(self.created_at),
        }
