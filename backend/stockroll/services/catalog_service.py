# Overview: Read-only access to the store catalog used to seed new assignment lines.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

from stockroll.errors import NotFoundError
from stockroll.models import (
    InventoryItem,
    Store,
    StoreItemCatalog,
    StoreTankCatalog,
    TankType,
)


@dataclass(frozen=True)
class CatalogEntry:
    catalog_id: int
    purchase_price_cents: int
    sell_price_cents: int


@dataclass
class StoreCatalog:
    store_id: int
    tanks: list[CatalogEntry] = field(default_factory=list)
    items: list[CatalogEntry] = field(default_factory=list)


class CatalogProvider(Protocol):
    def catalog_for_store(self, store_id: int) -> StoreCatalog: ...


class SqlCatalogProvider:
    """
    Catalog lookups against the store catalog tables.

    Consulted only when a brand-new assignment is seeded; existing lines keep
    the prices they were created with.
    """

    def __init__(self, session):
        self.session = session

    def catalog_for_store(self, store_id: int) -> StoreCatalog:
        store = self.session.query(Store).filter_by(id=store_id).first()
        if store is None:
            raise NotFoundError(f"Store {store_id} not found")

        tank_rows = (
            self.session.query(TankType)
            .join(StoreTankCatalog, StoreTankCatalog.tank_type_id == TankType.id)
            .filter(StoreTankCatalog.store_id == store_id, TankType.is_active.is_(True))
            .order_by(TankType.id.asc())
            .all()
        )
        item_rows = (
            self.session.query(InventoryItem)
            .join(StoreItemCatalog, StoreItemCatalog.inventory_item_id == InventoryItem.id)
            .filter(StoreItemCatalog.store_id == store_id, InventoryItem.is_active.is_(True))
            .order_by(InventoryItem.id.asc())
            .all()
        )

        return StoreCatalog(
            store_id=store_id,
            tanks=[
                CatalogEntry(t.id, t.purchase_price_cents or 0, t.sell_price_cents or 0)
                for t in tank_rows
            ],
            items=[
                CatalogEntry(i.id, i.purchase_price_cents or 0, i.sell_price_cents or 0)
                for i in item_rows
            ],
        )
