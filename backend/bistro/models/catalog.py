from __future__ import annotations

from ..extensions import db
from bistro.time_utils import to_utc_z
from bistro.validation import decimal_to_str


class Supplier(db.Model):
    __tablename__ = "suppliers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    phone = db.Column(db.String(32), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "created_at": to_utc_z(self.created_at),
        }


class Ingredient(db.Model):
    """
    Ingredient with its current stock quantity.

    WHY a stored quantity (not derived): the quantity is the shared mutable
    resource every delivery/write-off contends on. It is only ever changed by
    stock_service under a row lock plus version check, and every change is
    mirrored by a ledger event carrying the same quantity_delta.

    INVARIANT: in_stock >= 0 (CHECK constraint backs the service check).
    """
    __tablename__ = "ingredients"
    __table_args__ = (
        db.CheckConstraint("in_stock >= 0", name="ck_ingredients_in_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    unit = db.Column(db.String(16), nullable=False)

    current_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    in_stock = db.Column(db.Numeric(12, 3), nullable=False, default=0)

    last_delivery_at = db.Column(db.DateTime(timezone=True), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Ingredient id={self.id} name={self.name!r} in_stock={self.in_stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "current_price": decimal_to_str(self.current_price),
            "in_stock": decimal_to_str(self.in_stock),
            "last_delivery_at": to_utc_z(self.last_delivery_at) if self.last_delivery_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class MenuItem(db.Model):
    __tablename__ = "menu_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False, unique=True)
    category = db.Column(db.String(64), nullable=True)
    price = db.Column(db.Numeric(12, 2), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self, include_recipe: bool = False) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "price": decimal_to_str(self.price),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
        if include_recipe:
            data["ingredients"] = [r.to_dict() for r in self.recipe]
        return data


class MenuItemIngredient(db.Model):
    """Recipe row: how much of an ingredient one portion of a menu item uses."""
    __tablename__ = "menu_item_ingredients"
    __table_args__ = (
        db.UniqueConstraint("menu_item_id", "ingredient_id", name="uq_menu_item_ingredient"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False, index=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey("ingredients.id"), nullable=False, index=True)
    quantity = db.Column(db.Numeric(12, 3), nullable=False)

    menu_item = db.relationship("MenuItem", backref=db.backref("recipe", lazy=True))
    ingredient = db.relationship("Ingredient")

    def to_dict(self) -> dict:
        return {
            "ingredient_id": self.ingredient_id,
            "ingredient_name": self.ingredient.name if self.ingredient else None,
            "quantity": decimal_to_str(self.quantity),
        }
