# Overview: Persistence lookups for assignment headers, their lines and the current pointer.

"""
Assignment Repository

Assignments, lines, history rows and the current pointer are independent
tables joined by id columns. This module is the only place that resolves
those ids; nothing navigates an object graph.

The repository writes but never commits. Services wrap calls in a
UnitOfWork.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Optional

from sqlalchemy.exc import IntegrityError

from stockroll.errors import DuplicateAssignmentError, InternalError, NotFoundError
from stockroll.models import (
    AssignmentItem,
    AssignmentTank,
    CurrentAssignmentPointer,
    InventoryAssignment,
    LINE_TYPE_ITEM,
    LINE_TYPE_TANK,
    StoreAssignment,
)
from stockroll.time_utils import format_plain_date, utcnow
from .concurrency import lock_for_update


@dataclass
class AssignmentDetail:
    """Assignment header plus its tank and item lines."""
    assignment: InventoryAssignment
    tanks: list[AssignmentTank] = field(default_factory=list)
    items: list[AssignmentItem] = field(default_factory=list)

    @property
    def id(self) -> int:
        return self.assignment.id

    def tank_for(self, tank_type_id: int) -> Optional[AssignmentTank]:
        return next((t for t in self.tanks if t.tank_type_id == tank_type_id), None)

    def item_for(self, inventory_item_id: int) -> Optional[AssignmentItem]:
        return next((i for i in self.items if i.inventory_item_id == inventory_item_id), None)

    def to_dict(self) -> dict:
        data = self.assignment.to_dict()
        data["tanks"] = [t.to_dict() for t in self.tanks]
        data["items"] = [i.to_dict() for i in self.items]
        return data


class AssignmentRepository:
    def __init__(self, session):
        self.session = session

    # ------------------------------------------------------------------
    # Pairings
    # ------------------------------------------------------------------

    def get_pairing(self, store_assignment_id: int) -> StoreAssignment:
        pairing = self.session.query(StoreAssignment).filter_by(id=store_assignment_id).first()
        if pairing is None:
            raise NotFoundError(f"Store assignment {store_assignment_id} not found")
        return pairing

    # ------------------------------------------------------------------
    # Assignment headers
    # ------------------------------------------------------------------

    def get(self, assignment_id: int, *, lock: bool = False) -> Optional[InventoryAssignment]:
        query = self.session.query(InventoryAssignment).filter_by(id=assignment_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def get_or_404(self, assignment_id: int, *, lock: bool = False) -> InventoryAssignment:
        assignment = self.get(assignment_id, lock=lock)
        if assignment is None:
            raise NotFoundError(f"Inventory assignment {assignment_id} not found")
        return assignment

    def find_by_pairing_and_date(self, store_assignment_id: int, assignment_date: date) -> Optional[InventoryAssignment]:
        return (
            self.session.query(InventoryAssignment)
            .filter_by(store_assignment_id=store_assignment_id, assignment_date=assignment_date)
            .first()
        )

    def find(
        self,
        *,
        store_assignment_id: int | None = None,
        store_id: int | None = None,
        assignment_date: date | None = None,
        status: str | None = None,
        limit: int = 200,
    ) -> list[InventoryAssignment]:
        q = self.session.query(InventoryAssignment)
        if store_assignment_id is not None:
            q = q.filter(InventoryAssignment.store_assignment_id == store_assignment_id)
        if store_id is not None:
            q = q.join(StoreAssignment, StoreAssignment.id == InventoryAssignment.store_assignment_id)
            q = q.filter(StoreAssignment.store_id == store_id)
        if assignment_date is not None:
            q = q.filter(InventoryAssignment.assignment_date == assignment_date)
        if status is not None:
            q = q.filter(InventoryAssignment.status == status)

        q = q.order_by(
            InventoryAssignment.assignment_date.desc(),
            InventoryAssignment.id.desc(),
        )
        return q.limit(limit).all()

    def create(
        self,
        store_assignment_id: int,
        assignment_date: date,
        assigned_by: int,
        *,
        notes: str | None = None,
        auto_assignment: bool = False,
        status: str = "CREATED",
    ) -> InventoryAssignment:
        """
        Insert an assignment header.

        Raises:
            DuplicateAssignmentError: (pairing, date) already taken
        """
        if self.find_by_pairing_and_date(store_assignment_id, assignment_date) is not None:
            raise DuplicateAssignmentError(
                f"An inventory assignment already exists for store assignment "
                f"{store_assignment_id} on {format_plain_date(assignment_date)}"
            )

        assignment = InventoryAssignment(
            store_assignment_id=store_assignment_id,
            assignment_date=assignment_date,
            assigned_by=assigned_by,
            status=status,
            auto_assignment=auto_assignment,
            notes=notes,
        )
        self.session.add(assignment)
        try:
            self.session.flush()
        except IntegrityError as exc:
            # Lost a race against a concurrent insert for the same day
            raise DuplicateAssignmentError(
                f"An inventory assignment already exists for store assignment "
                f"{store_assignment_id} on {format_plain_date(assignment_date)}"
            ) from exc

        if assignment.id is None:
            raise InternalError("Inventory assignment insert returned no id")
        return assignment

    # ------------------------------------------------------------------
    # Lines
    # ------------------------------------------------------------------

    def tank_lines(self, assignment_id: int) -> list[AssignmentTank]:
        return (
            self.session.query(AssignmentTank)
            .filter_by(inventory_assignment_id=assignment_id)
            .order_by(AssignmentTank.id.asc())
            .all()
        )

    def item_lines(self, assignment_id: int) -> list[AssignmentItem]:
        return (
            self.session.query(AssignmentItem)
            .filter_by(inventory_assignment_id=assignment_id)
            .order_by(AssignmentItem.id.asc())
            .all()
        )

    def get_line(self, line_type: str, line_id: int, *, lock: bool = False):
        model = _line_model(line_type)
        query = self.session.query(model).filter_by(id=line_id)
        if lock:
            query = lock_for_update(query)
        line = query.first()
        if line is None:
            raise NotFoundError(f"{line_type.title()} line {line_id} not found")
        return line

    def find_line(self, assignment_id: int, line_type: str, catalog_id: int, *, lock: bool = False):
        """Resolve (assignment, catalog ref) to its line, or raise NotFoundError."""
        model = _line_model(line_type)
        if line_type == LINE_TYPE_TANK:
            query = self.session.query(model).filter_by(inventory_assignment_id=assignment_id, tank_type_id=catalog_id)
        else:
            query = self.session.query(model).filter_by(inventory_assignment_id=assignment_id, inventory_item_id=catalog_id)
        if lock:
            query = lock_for_update(query)
        line = query.first()
        if line is None:
            kind = "tank type" if line_type == LINE_TYPE_TANK else "inventory item"
            raise NotFoundError(f"No line for {kind} {catalog_id} on inventory assignment {assignment_id}")
        return line

    def create_tank_line(
        self,
        assignment_id: int,
        tank_type_id: int,
        *,
        purchase_price_cents: int,
        sell_price_cents: int,
        full_tanks: int = 0,
        empty_tanks: int = 0,
    ) -> AssignmentTank:
        line = AssignmentTank(
            inventory_assignment_id=assignment_id,
            tank_type_id=tank_type_id,
            purchase_price_cents=purchase_price_cents,
            sell_price_cents=sell_price_cents,
            assigned_full_tanks=full_tanks,
            assigned_empty_tanks=empty_tanks,
            current_full_tanks=full_tanks,
            current_empty_tanks=empty_tanks,
        )
        self.session.add(line)
        self.session.flush()
        return line

    def create_item_line(
        self,
        assignment_id: int,
        inventory_item_id: int,
        *,
        purchase_price_cents: int,
        sell_price_cents: int,
        quantity: int = 0,
    ) -> AssignmentItem:
        line = AssignmentItem(
            inventory_assignment_id=assignment_id,
            inventory_item_id=inventory_item_id,
            purchase_price_cents=purchase_price_cents,
            sell_price_cents=sell_price_cents,
            assigned_items=quantity,
            current_items=quantity,
        )
        self.session.add(line)
        self.session.flush()
        return line

    def get_detail(self, assignment_id: int) -> AssignmentDetail:
        assignment = self.get_or_404(assignment_id)
        return AssignmentDetail(
            assignment=assignment,
            tanks=self.tank_lines(assignment_id),
            items=self.item_lines(assignment_id),
        )

    # ------------------------------------------------------------------
    # Current pointer
    # ------------------------------------------------------------------

    def get_current_pointer(self, store_assignment_id: int, *, lock: bool = False) -> Optional[CurrentAssignmentPointer]:
        query = self.session.query(CurrentAssignmentPointer).filter_by(store_assignment_id=store_assignment_id)
        if lock:
            query = lock_for_update(query)
        return query.first()

    def set_current_pointer(self, store_assignment_id: int, assignment_id: int, set_by: int) -> CurrentAssignmentPointer:
        pointer = self.get_current_pointer(store_assignment_id, lock=True)
        if pointer is None:
            pointer = CurrentAssignmentPointer(store_assignment_id=store_assignment_id)
            self.session.add(pointer)

        pointer.inventory_assignment_id = assignment_id
        pointer.set_at = utcnow()
        pointer.set_by = set_by
        self.session.flush()
        return pointer


def _line_model(line_type: str):
    if line_type == LINE_TYPE_TANK:
        return AssignmentTank
    if line_type == LINE_TYPE_ITEM:
        return AssignmentItem
    raise ValueError(f"Unknown line type: {line_type}")
