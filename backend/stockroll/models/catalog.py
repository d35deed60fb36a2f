from __future__ import annotations

from ..extensions import db
from stockroll.time_utils import to_utc_z


class Store(db.Model):
    """
    Physical store (or delivery point) that carries tanks and items.

    Store CRUD belongs to the catalog service; the assignment core only reads
    stores to resolve which catalog seeds a new assignment.
    """
    __tablename__ = "stores"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_stores_code"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=True, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class TankType(db.Model):
    """Gas tank type (e.g. 10 kg, 45 kg) with its current default prices."""
    __tablename__ = "tank_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    weight_kg = db.Column(db.Integer, nullable=True)

    # Authoritative storage in cents
    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sell_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<TankType id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "weight_kg": self.weight_kg,
            "purchase_price_cents": self.purchase_price_cents,
            "sell_price_cents": self.sell_price_cents,
            "is_active": self.is_active,
        }


class InventoryItem(db.Model):
    """Auxiliary item (regulators, hoses, ...) with its current default prices."""
    __tablename__ = "inventory_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)

    purchase_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sell_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def __repr__(self) -> str:
        return f"<InventoryItem id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "purchase_price_cents": self.purchase_price_cents,
            "sell_price_cents": self.sell_price_cents,
            "is_active": self.is_active,
        }


class StoreTankCatalog(db.Model):
    """Tank types a store carries."""
    __tablename__ = "store_tank_catalog"
    __table_args__ = (
        db.UniqueConstraint("store_id", "tank_type_id", name="uq_store_tank_catalog"),
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    tank_type_id = db.Column(db.Integer, db.ForeignKey("tank_types.id"), nullable=False)


class StoreItemCatalog(db.Model):
    """Inventory items a store carries."""
    __tablename__ = "store_item_catalog"
    __table_args__ = (
        db.UniqueConstraint("store_id", "inventory_item_id", name="uq_store_item_catalog"),
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    inventory_item_id = db.Column(db.Integer, db.ForeignKey("inventory_items.id"), nullable=False)


class StoreAssignment(db.Model):
    """
    Pairing reference: one operator working one store.

    Every InventoryAssignment belongs to exactly one pairing. The operator id
    comes from the identity service and is trusted as-is.
    """
    __tablename__ = "store_assignments"
    __table_args__ = (
        db.UniqueConstraint("store_id", "operator_id", name="uq_store_assignments_store_operator"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    operator_id = db.Column(db.Integer, nullable=False, index=True)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<StoreAssignment id={self.id} store_id={self.store_id} operator_id={self.operator_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "operator_id": self.operator_id,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
