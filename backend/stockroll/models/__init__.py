from .catalog import Store, TankType, InventoryItem, StoreTankCatalog, StoreItemCatalog, StoreAssignment
from .assignments import (
    InventoryAssignment, AssignmentTank, AssignmentItem, InventoryStatusHistory, CurrentAssignmentPointer,
    LINE_TYPE_TANK, LINE_TYPE_ITEM,
)
from .ledger import TankTransaction, ItemTransaction

__all__ = [
    'Store', 'TankType', 'InventoryItem', 'StoreTankCatalog', 'StoreItemCatalog', 'StoreAssignment',
    'InventoryAssignment', 'AssignmentTank', 'AssignmentItem', 'InventoryStatusHistory', 'CurrentAssignmentPointer',
    'LINE_TYPE_TANK', 'LINE_TYPE_ITEM',
    'TankTransaction', 'ItemTransaction',
]
