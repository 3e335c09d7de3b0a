from __future__ import annotations

from ..extensions import db
from bistro.time_utils import to_utc_z


class Shift(db.Model):
    """
    Working shift: one manager, one cashier and at least one waiter.

    LIFECYCLE:
    - ACTIVE: is_active=True, ended_at NULL. Roster and stop-lists mutable.
    - ENDED: is_active=False, ended_at stamped. Frozen, read-only history.

    INVARIANT: at most one row has is_active=True. Enforced by the ShiftState
    pointer (locked + versioned) and backed by a partial unique index.
    """
    __tablename__ = "shifts"
    __table_args__ = (
        db.Index(
            "uq_shifts_single_active",
            "is_active",
            unique=True,
            sqlite_where=db.text("is_active = 1"),
            postgresql_where=db.text("is_active"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    started_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    ended_at = db.Column(db.DateTime(timezone=True), nullable=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    manager_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    manager = db.relationship("User", foreign_keys=[manager_id])
    staff = db.relationship(
        "ShiftStaff",
        backref="shift",
        lazy=True,
        order_by="ShiftStaff.position",
        cascade="all, delete-orphan",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def cashier(self):
        for member in self.staff:
            if member.role_snapshot == "CASHIER":
                return member.user
        return None

    @property
    def waiters(self) -> list:
        return [m.user for m in self.staff if m.role_snapshot == "WAITER"]

    def to_dict(self, include_staff: bool = True) -> dict:
        data = {
            "id": self.id,
            "started_at": to_utc_z(self.started_at),
            "ended_at": to_utc_z(self.ended_at) if self.ended_at else None,
            "is_active": self.is_active,
            "manager_id": self.manager_id,
            "manager": self.manager.to_summary() if self.manager else None,
            "version_id": self.version_id,
        }
        if include_staff:
            data["staff"] = [m.to_dict() for m in self.staff]
        return data


class ShiftStaff(db.Model):
    """Roster entry. role_snapshot is the user's role at assignment time."""
    __tablename__ = "shift_staff"
    __table_args__ = (
        db.UniqueConstraint("shift_id", "user_id", name="uq_shift_staff_user"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    role_snapshot = db.Column(db.String(16), nullable=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "role": self.role_snapshot,
            "position": self.position,
            "user": self.user.to_summary() if self.user else None,
        }


class ShiftState(db.Model):
    """
    Global "current active shift" record.

    WHY: The active-shift pointer is shared mutable state. Keeping it as one
    row (id=1) lets OpenShift/CloseShift serialize on a row lock and an
    optimistic version, the same discipline used for ingredient stock.
    """
    __tablename__ = "shift_state"

    SINGLETON_ID = 1

    id = db.Column(db.Integer, primary_key=True)
    active_shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    active_shift = db.relationship("Shift")
    __mapper_args__ = {"version_id_col": version_id}


class MenuStopListEntry(db.Model):
    __tablename__ = "menu_stop_list"
    __table_args__ = (
        db.UniqueConstraint("menu_item_id", "shift_id", name="uq_menu_stop_list_item_shift"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    menu_item_id = db.Column(db.Integer, db.ForeignKey("menu_items.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    menu_item = db.relationship("MenuItem")
    shift = db.relationship("Shift", backref=db.backref("menu_stop_list", lazy=True))

    @property
    def target_id(self) -> int:
        return self.menu_item_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": "MENU",
            "target_id": self.menu_item_id,
            "target_name": self.menu_item.name if self.menu_item else None,
            "shift_id": self.shift_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class IngredientStopListEntry(db.Model):
    __tablename__ = "ingredient_stop_list"
    __table_args__ = (
        db.UniqueConstraint("ingredient_id", "shift_id", name="uq_ingredient_stop_list_item_shift"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    ingredient_id = db.Column(db.Integer, db.ForeignKey("ingredients.id"), nullable=False, index=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id"), nullable=False, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    ingredient = db.relationship("Ingredient")
    shift = db.relationship("Shift", backref=db.backref("ingredient_stop_list", lazy=True))

    @property
    def target_id(self) -> int:
        return self.ingredient_id

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": "INGREDIENT",
            "target_id": self.ingredient_id,
            "target_name": self.ingredient.name if self.ingredient else None,
            "shift_id": self.shift_id,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
