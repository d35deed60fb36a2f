from __future__ import annotations

from ..extensions import db
from stockroll.time_utils import to_utc_z, format_plain_date

LINE_TYPE_TANK = "TANK"
LINE_TYPE_ITEM = "ITEM"


class InventoryAssignment(db.Model):
    """
    Dated snapshot of stock handed to one store/operator pairing.

    UNIQUENESS: at most one assignment per (store_assignment_id, assignment_date).
    The database constraint backs the duplicate guards in the services.

    Lines and history rows reference the assignment by id only; the full
    aggregate is assembled by AssignmentRepository.get_detail().
    """
    __tablename__ = "inventory_assignments"
    __table_args__ = (
        db.UniqueConstraint("store_assignment_id", "assignment_date", name="uq_inventory_assignments_pairing_date"),
        db.Index("ix_inventory_assignments_pairing_status", "store_assignment_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_assignment_id = db.Column(db.Integer, db.ForeignKey("store_assignments.id"), nullable=False, index=True)

    # Plain business date in the configured business timezone
    assignment_date = db.Column(db.Date, nullable=False, index=True)
    assigned_by = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="CREATED", index=True)
    auto_assignment = db.Column(db.Boolean, nullable=False, default=False)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return (
            f"<InventoryAssignment id={self.id} pairing={self.store_assignment_id} "
            f"date={format_plain_date(self.assignment_date)} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_assignment_id": self.store_assignment_id,
            "assignment_date": format_plain_date(self.assignment_date),
            "assigned_by": self.assigned_by,
            "status": self.status,
            "auto_assignment": self.auto_assignment,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AssignmentTank(db.Model):
    """
    Tank-type line of an assignment.

    assigned_* is the baseline captured at creation and never changes.
    current_* moves only through TankTransaction rows written by the
    quantity ledger. Prices are frozen at creation time.
    """
    __tablename__ = "assignment_tanks"
    __table_args__ = (
        db.UniqueConstraint("inventory_assignment_id", "tank_type_id", name="uq_assignment_tanks_assignment_type"),
        db.CheckConstraint("current_full_tanks >= 0", name="ck_assignment_tanks_current_full_nonneg"),
        db.CheckConstraint("current_empty_tanks >= 0", name="ck_assignment_tanks_current_empty_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_assignment_id = db.Column(
        db.Integer, db.ForeignKey("inventory_assignments.id"), nullable=False, index=True
    )
    tank_type_id = db.Column(db.Integer, db.ForeignKey("tank_types.id"), nullable=False)

    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sell_price_cents = db.Column(db.Integer, nullable=False, default=0)

    assigned_full_tanks = db.Column(db.Integer, nullable=False, default=0)
    assigned_empty_tanks = db.Column(db.Integer, nullable=False, default=0)
    current_full_tanks = db.Column(db.Integer, nullable=False, default=0)
    current_empty_tanks = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    line_type = LINE_TYPE_TANK

    @property
    def catalog_id(self) -> int:
        return self.tank_type_id

    def has_assigned(self) -> bool:
        return self.assigned_full_tanks > 0 or self.assigned_empty_tanks > 0

    def has_current(self) -> bool:
        return self.current_full_tanks > 0 or self.current_empty_tanks > 0

    def __repr__(self) -> str:
        return (
            f"<AssignmentTank id={self.id} assignment={self.inventory_assignment_id} "
            f"type={self.tank_type_id} full={self.current_full_tanks} empty={self.current_empty_tanks}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_type": self.line_type,
            "inventory_assignment_id": self.inventory_assignment_id,
            "tank_type_id": self.tank_type_id,
            "purchase_price_cents": self.purchase_price_cents,
            "sell_price_cents": self.sell_price_cents,
            "assigned_full_tanks": self.assigned_full_tanks,
            "assigned_empty_tanks": self.assigned_empty_tanks,
            "current_full_tanks": self.current_full_tanks,
            "current_empty_tanks": self.current_empty_tanks,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class AssignmentItem(db.Model):
    """Item line of an assignment; same rules as AssignmentTank with one scalar."""
    __tablename__ = "assignment_items"
    __table_args__ = (
        db.UniqueConstraint("inventory_assignment_id", "inventory_item_id", name="uq_assignment_items_assignment_item"),
        db.CheckConstraint("current_items >= 0", name="ck_assignment_items_current_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_assignment_id = db.Column(
        db.Integer, db.ForeignKey("inventory_assignments.id"), nullable=False, index=True
    )
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False)

    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sell_price_cents = db.Column(db.Integer, nullable=False, default=0)

    assigned_items = db.Column(db.Integer, nullable=False, default=0)
    current_items = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    line_type = LINE_TYPE_ITEM

    @property
    def catalog_id(self) -> int:
        return self.inventory_item_id

    def has_assigned(self) -> bool:
        return self.assigned_items > 0

    def has_current(self) -> bool:
        return self.current_items > 0

    def __repr__(self) -> str:
        return (
            f"<AssignmentItem id={self.id} assignment={self.inventory_assignment_id} "
            f"item={self.inventory_item_id} current={self.current_items}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "line_type": self.line_type,
            "inventory_assignment_id": self.inventory_assignment_id,
            "inventory_item_id": self.inventory_item_id,
            "purchase_price_cents": self.purchase_price_cents,
            "sell_price_cents": self.sell_price_cents,
            "assigned_items": self.assigned_items,
            "current_items": self.current_items,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryStatusHistory(db.Model):
    """
    Append-only audit of assignment status changes.

    from_status is NULL only for the creation entry.
    """
    __tablename__ = "inventory_status_history"
    __table_args__ = (
        db.Index("ix_status_history_assignment_changed", "inventory_assignment_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    inventory_assignment_id = db.Column(
        db.Integer, db.ForeignKey("inventory_assignments.id"), nullable=False, index=True
    )
    from_status = db.Column(db.String(16), nullable=True)
    to_status = db.Column(db.String(16), nullable=False)
    changed_by = db.Column(db.Integer, nullable=False, index=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    reason = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inventory_assignment_id": self.inventory_assignment_id,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "changed_by": self.changed_by,
            "changed_at": to_utc_z(self.changed_at),
            "reason": self.reason,
            "notes": self.notes,
        }


class CurrentAssignmentPointer(db.Model):
    """
    Which assignment is active for a pairing.

    One row per pairing; rewritten whenever a new assignment becomes current.
    Kept separate from store_assignments so the pairing row never has to
    reference a not-yet-created assignment.
    """
    __tablename__ = "current_assignment_pointers"

    store_assignment_id = db.Column(db.Integer, db.ForeignKey("store_assignments.id"), primary_key=True)
    inventory_assignment_id = db.Column(db.Integer, db.ForeignKey("inventory_assignments.id"), nullable=False)
    set_at = db.Column(db.DateTime(timezone=True), nullable=False)
    set_by = db.Column(db.Integer, nullable=False)

    def to_dict(self) -> dict:
        return {
            "store_assignment_id": self.store_assignment_id,
            "inventory_assignment_id": self.inventory_assignment_id,
            "set_at": to_utc_z(self.set_at),
            "set_by": self.set_by,
        }
