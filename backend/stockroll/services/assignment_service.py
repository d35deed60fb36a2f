# Overview: Public assignment operations; composes repository, ledger, status machine and workflow.

"""
Assignment Service

The operations order/fulfillment callers and operators use:

    create_assignment           seed lines from the store catalog, set current
    create_or_get_for_today     idempotent per business day
    update_status               CONSOLIDATED from CREATED/ASSIGNED runs the
                                consolidation workflow; everything else is a
                                plain transition
    delivery_out                SALE, tanks leave full, items leave
    delivery_return             RETURN, tanks come back full or empty
    stock_adjustment            PURCHASE, signed correction to a counted value
    record_transaction          one kind-specific transaction, TRANSFER included
    consolidate_and_create_next
    current_balances            read-only, never routed

Collaborators are injected; `from_app` wires them from the Flask app's
session and config.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional

from stockroll.errors import DuplicateAssignmentError, ValidationError
from stockroll.models import LINE_TYPE_ITEM, LINE_TYPE_TANK, InventoryAssignment
from stockroll.time_utils import parse_plain_date
from .assignment_repository import AssignmentDetail, AssignmentRepository
from .catalog_service import CatalogProvider, SqlCatalogProvider
from .consolidation_service import CarriedQuantities, ConsolidationResult, ConsolidationWorkflow
from .date_service import BusinessDateResolver, DateResolver
from .ledger_service import (
    TX_PURCHASE,
    TX_RETURN,
    TX_SALE,
    BatchResult,
    LedgerOperation,
    LineBalance,
    QuantityLedger,
    TankDelta,
)
from .routing_service import AssignmentRouter
from .status_service import (
    CONSOLIDATABLE_STATUSES,
    STATUS_CONSOLIDATED,
    StatusService,
    validate_status,
)
from .transaction_processor import TransactionOutcome, TransactionProcessor, TransactionRequest
from .uow import UnitOfWork

logger = logging.getLogger(__name__)


def _positive_int(value, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value <= 0:
        raise ValidationError(f"{field_name} must be a positive integer")
    return value


def _non_negative_int(value, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool) or value < 0:
        raise ValidationError(f"{field_name} must be a non-negative integer")
    return value


def _catalog_ref(tank_type_id, inventory_item_id) -> tuple[str, int]:
    if (tank_type_id is None) == (inventory_item_id is None):
        raise ValidationError("Each line must name exactly one of tank_type_id or inventory_item_id")
    if tank_type_id is not None:
        return LINE_TYPE_TANK, tank_type_id
    return LINE_TYPE_ITEM, inventory_item_id


@dataclass(frozen=True)
class DeliveryLine:
    quantity: int
    tank_type_id: int | None = None
    inventory_item_id: int | None = None
    is_empty: bool = False
    reference_id: int | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "DeliveryLine":
        return cls(
            quantity=data.get("quantity"),
            tank_type_id=data.get("tank_type_id"),
            inventory_item_id=data.get("inventory_item_id"),
            is_empty=bool(data.get("is_empty", False)),
            reference_id=data.get("reference_id"),
        )


@dataclass(frozen=True)
class AdjustmentLine:
    current_quantity: int
    adjusted_quantity: int
    reason: str
    tank_type_id: int | None = None
    inventory_item_id: int | None = None

    @property
    def difference(self) -> int:
        return self.adjusted_quantity - self.current_quantity

    @classmethod
    def from_dict(cls, data: dict) -> "AdjustmentLine":
        return cls(
            current_quantity=data.get("current_quantity"),
            adjusted_quantity=data.get("adjusted_quantity"),
            reason=data.get("reason") or "",
            tank_type_id=data.get("tank_type_id"),
            inventory_item_id=data.get("inventory_item_id"),
        )


def _coerce(lines, cls):
    return [line if isinstance(line, cls) else cls.from_dict(line) for line in lines]


class AssignmentService:
    def __init__(
        self,
        session,
        *,
        repository: AssignmentRepository | None = None,
        catalog: CatalogProvider | None = None,
        date_resolver: DateResolver | None = None,
        ledger: QuantityLedger | None = None,
        status_service: StatusService | None = None,
        workflow: ConsolidationWorkflow | None = None,
        skip_weekends_default: bool = False,
        retry_attempts: int = 3,
        retry_backoff: float = 0.1,
    ):
        self.session = session
        self.repository = repository or AssignmentRepository(session)
        self.catalog = catalog or SqlCatalogProvider(session)
        self.date_resolver = date_resolver or BusinessDateResolver()
        self.status_service = status_service or StatusService(session)
        self.ledger = ledger or QuantityLedger(
            session,
            self.repository,
            AssignmentRouter(session, self.repository),
            retry_attempts=retry_attempts,
            retry_backoff=retry_backoff,
        )
        self.workflow = workflow or ConsolidationWorkflow(
            session,
            self.repository,
            self.status_service,
            self.date_resolver,
            skip_weekends_default=skip_weekends_default,
            retry_attempts=retry_attempts,
            retry_backoff=retry_backoff,
        )
        self.transactions = TransactionProcessor(self.ledger)

    @classmethod
    def from_app(cls, app=None, *, date_resolver: DateResolver | None = None) -> "AssignmentService":
        """Build a service bound to the app's db.session and config."""
        from flask import current_app

        from stockroll.extensions import db

        app = app or current_app
        config = app.config
        return cls(
            db.session,
            date_resolver=date_resolver or BusinessDateResolver.from_config(config),
            skip_weekends_default=bool(config.get("SKIP_WEEKENDS", False)),
            retry_attempts=int(config.get("LEDGER_RETRY_ATTEMPTS", 3)),
            retry_backoff=float(config.get("LEDGER_RETRY_BACKOFF", 0.1)),
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_assignment(
        self,
        store_assignment_id: int,
        assignment_date: date | str,
        actor_id: int,
        notes: str | None = None,
    ) -> AssignmentDetail:
        """
        Create a CREATED assignment with one zero-quantity line per catalog entry.

        Prices are copied from the catalog now and never looked up again.
        The new assignment becomes the pairing's current one.

        Raises:
            ValidationError: malformed date
            NotFoundError: pairing or store missing
            DuplicateAssignmentError: (pairing, date) already taken
        """
        try:
            assignment_date = parse_plain_date(assignment_date)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        if assignment_date is None:
            raise ValidationError("assignment_date is required")

        with UnitOfWork(self.session):
            pairing = self.repository.get_pairing(store_assignment_id)
            catalog = self.catalog.catalog_for_store(pairing.store_id)

            assignment = self.repository.create(
                store_assignment_id,
                assignment_date,
                actor_id,
                notes=notes,
                auto_assignment=False,
            )
            self.status_service.record_creation(assignment, actor_id)

            tanks = [
                self.repository.create_tank_line(
                    assignment.id,
                    entry.catalog_id,
                    purchase_price_cents=entry.purchase_price_cents,
                    sell_price_cents=entry.sell_price_cents,
                )
                for entry in catalog.tanks
            ]
            items = [
                self.repository.create_item_line(
                    assignment.id,
                    entry.catalog_id,
                    purchase_price_cents=entry.purchase_price_cents,
                    sell_price_cents=entry.sell_price_cents,
                )
                for entry in catalog.items
            ]
            self.repository.set_current_pointer(store_assignment_id, assignment.id, actor_id)
            detail = AssignmentDetail(assignment=assignment, tanks=tanks, items=items)

        logger.info(
            "Created assignment %s for store assignment %s on %s (%d tank lines, %d item lines)",
            detail.id, store_assignment_id, assignment_date.isoformat(), len(tanks), len(items),
        )
        return detail

    def create_or_get_for_today(self, store_assignment_id: int, actor_id: int) -> AssignmentDetail:
        today = self.date_resolver.current_date()
        existing = self.repository.find_by_pairing_and_date(store_assignment_id, today)
        if existing is not None:
            return self.repository.get_detail(existing.id)

        try:
            return self.create_assignment(store_assignment_id, today, actor_id, notes="Created for today's date")
        except DuplicateAssignmentError:
            # A concurrent request created it first
            existing = self.repository.find_by_pairing_and_date(store_assignment_id, today)
            if existing is None:
                raise
            return self.repository.get_detail(existing.id)

    def create_inventory_with_carried_quantities(
        self,
        store_assignment_id: int,
        assignment_date: date | str,
        actor_id: int,
        carried: CarriedQuantities,
        *,
        set_current: bool = True,
    ) -> AssignmentDetail:
        return self.workflow.create_inventory_with_carried_quantities(
            store_assignment_id, assignment_date, actor_id, carried, set_current=set_current
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def update_status(
        self,
        assignment_id: int,
        new_status: str,
        actor_id: int,
        notes: str | None = None,
    ) -> InventoryAssignment:
        validate_status(new_status)
        assignment = self.repository.get_or_404(assignment_id)

        if new_status == STATUS_CONSOLIDATED and assignment.status in CONSOLIDATABLE_STATUSES:
            return self.consolidate_and_create_next(assignment_id, actor_id).closed.assignment

        def _op():
            with UnitOfWork(self.session):
                locked = self.repository.get_or_404(assignment_id, lock=True)
                self.status_service.transition(locked, new_status, actor_id, notes=notes)
            return locked

        return self.ledger.run_with_retry(_op)

    def consolidate_and_create_next(
        self,
        assignment_id: int,
        actor_id: int,
        skip_weekends: bool | None = None,
    ) -> ConsolidationResult:
        return self.workflow.consolidate_and_create_next(assignment_id, actor_id, skip_weekends)

    # ------------------------------------------------------------------
    # Ledger operations issued by order/fulfillment callers
    # ------------------------------------------------------------------

    def delivery_out(self, assignment_id: int, actor_id: int, lines) -> BatchResult:
        """Decrement delivered stock as one atomic SALE batch."""
        operations = []
        for line in _coerce(lines, DeliveryLine):
            line_type, catalog_id = _catalog_ref(line.tank_type_id, line.inventory_item_id)
            quantity = _positive_int(line.quantity, "quantity")
            if line_type == LINE_TYPE_TANK:
                delta = TankDelta(full=-quantity)
                note = f"Delivery: {quantity} tanks"
            else:
                delta = -quantity
                note = f"Delivery: {quantity} items"
            operations.append(
                LedgerOperation(line_type, catalog_id, delta, TX_SALE, note=note, reference_id=line.reference_id)
            )
        return self.ledger.process_batch(assignment_id, operations, actor_id, atomic=True)

    def delivery_return(self, assignment_id: int, actor_id: int, lines) -> BatchResult:
        """Increment returned stock as one atomic RETURN batch."""
        operations = []
        for line in _coerce(lines, DeliveryLine):
            line_type, catalog_id = _catalog_ref(line.tank_type_id, line.inventory_item_id)
            quantity = _positive_int(line.quantity, "quantity")
            if line_type == LINE_TYPE_TANK:
                if line.is_empty:
                    delta = TankDelta(empty=quantity)
                    note = f"Return: {quantity} empty tanks"
                else:
                    delta = TankDelta(full=quantity)
                    note = f"Return: {quantity} full tanks"
            else:
                delta = quantity
                note = f"Return: {quantity} items"
            operations.append(
                LedgerOperation(line_type, catalog_id, delta, TX_RETURN, note=note, reference_id=line.reference_id)
            )
        return self.ledger.process_batch(assignment_id, operations, actor_id, atomic=True)

    def stock_adjustment(self, assignment_id: int, actor_id: int, adjustments) -> BatchResult:
        """
        Correct counted balances.

        The difference adjusted - current is applied to full tanks or items;
        zero differences write nothing.
        """
        operations = []
        for adjustment in _coerce(adjustments, AdjustmentLine):
            line_type, catalog_id = _catalog_ref(adjustment.tank_type_id, adjustment.inventory_item_id)
            _non_negative_int(adjustment.current_quantity, "current_quantity")
            _non_negative_int(adjustment.adjusted_quantity, "adjusted_quantity")
            difference = adjustment.difference
            if difference == 0:
                continue
            delta = TankDelta(full=difference) if line_type == LINE_TYPE_TANK else difference
            operations.append(
                LedgerOperation(
                    line_type, catalog_id, delta, TX_PURCHASE,
                    note=f"Stock adjustment: {adjustment.reason}",
                )
            )
        return self.ledger.process_batch(assignment_id, operations, actor_id, atomic=True)

    def record_transaction(self, request: TransactionRequest | dict) -> TransactionOutcome:
        if isinstance(request, dict):
            try:
                request = TransactionRequest(**request)
            except TypeError as exc:
                raise ValidationError(f"Malformed transaction request: {exc}") from exc
        return self.transactions.process(request)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def current_balances(self, assignment_id: int) -> list[LineBalance]:
        return self.ledger.current_balances(assignment_id)

    def find_assignments(
        self,
        *,
        store_assignment_id: int | None = None,
        store_id: int | None = None,
        assignment_date: date | str | None = None,
        status: str | None = None,
    ) -> list[InventoryAssignment]:
        if status is not None:
            validate_status(status)
        if assignment_date is not None:
            assignment_date = parse_plain_date(assignment_date)
        return self.repository.find(
            store_assignment_id=store_assignment_id,
            store_id=store_id,
            assignment_date=assignment_date,
            status=status,
        )

    def get_assignment_detail(self, assignment_id: int) -> AssignmentDetail:
        return self.repository.get_detail(assignment_id)

    def current_assignment(self, store_assignment_id: int) -> Optional[AssignmentDetail]:
        self.repository.get_pairing(store_assignment_id)
        pointer = self.repository.get_current_pointer(store_assignment_id)
        if pointer is None:
            return None
        return self.repository.get_detail(pointer.inventory_assignment_id)

    def status_history(self, assignment_id: int):
        self.repository.get_or_404(assignment_id)
        return self.status_service.history_for_assignment(assignment_id)

    def history_by_actor(self, actor_id: int, *, limit: int = 200):
        return self.status_service.history_by_actor(actor_id, limit=limit)

    def history_between(self, start_date: date | str, end_date: date | str):
        return self.status_service.history_between(parse_plain_date(start_date), parse_plain_date(end_date))

    def stale_recoveries(self):
        return self.status_service.stale_recoveries()
