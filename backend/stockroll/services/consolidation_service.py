# Overview: Closes one day's assignment and opens its successor with carried balances.

"""
Consolidation Workflow

================================================================================
ONE UNIT OF WORK:
    1. Lock and load the assignment; status must be CREATED or ASSIGNED
       (InvalidStateError otherwise).
    2. Resolve the successor date (staleness-aware, see date_service).
    3. Guard: an assignment already on (pairing, target date)
       -> DuplicateAssignmentError. Never retried.
    4. Transition the assignment to CONSOLIDATED, reason
       "automatic consolidation", notes naming both dates and the stale flag.
    5. Carry lines: keep a line when it had anything assigned OR anything
       current. Carried assigned = current = predecessor's current; tank
       full/empty carried independently; prices copied from the predecessor
       line, never from the catalog.
    6. Create the successor (CREATED, auto_assignment=True), its lines and
       its own creation history entry.
    7. Point the pairing's current pointer at the successor.

Any failure rolls back every step. The predecessor, the successor and the
pointer row commit together or not at all.
================================================================================
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date

from stockroll.errors import DuplicateAssignmentError, InvalidStateError
from stockroll.models import AssignmentItem, AssignmentTank
from stockroll.time_utils import format_plain_date, parse_plain_date
from .assignment_repository import AssignmentDetail, AssignmentRepository
from .concurrency import run_with_retry
from .date_service import BusinessDateResolver, ConsolidationDate, DateResolver
from .status_service import (
    CONSOLIDATABLE_STATUSES,
    REASON_AUTO_CONSOLIDATION,
    REASON_AUTO_CREATION,
    STALE_RECOVERY_MARKER,
    STATUS_CONSOLIDATED,
    STATUS_CREATED,
    StatusService,
)
from .uow import UnitOfWork

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CarriedTank:
    tank_type_id: int
    full_tanks: int
    empty_tanks: int
    purchase_price_cents: int
    sell_price_cents: int


@dataclass(frozen=True)
class CarriedItem:
    inventory_item_id: int
    quantity: int
    purchase_price_cents: int
    sell_price_cents: int


@dataclass
class CarriedQuantities:
    tanks: list[CarriedTank] = field(default_factory=list)
    items: list[CarriedItem] = field(default_factory=list)


@dataclass
class ConsolidationResult:
    closed: AssignmentDetail
    successor: AssignmentDetail
    dates: ConsolidationDate

    def to_dict(self) -> dict:
        return {
            "closed": self.closed.to_dict(),
            "successor": self.successor.to_dict(),
            "source_date": format_plain_date(self.dates.source_date),
            "target_date": format_plain_date(self.dates.target_date),
            "stale_recovery": self.dates.is_stale,
        }


def build_carried_quantities(tanks: list[AssignmentTank], items: list[AssignmentItem]) -> CarriedQuantities:
    """
    Select and snapshot the lines that roll forward.

    A line with nothing assigned and nothing current is dropped. A line that
    was assigned stock but sold out is still carried, with zero.
    """
    carried = CarriedQuantities()
    for line in tanks:
        if not (line.has_assigned() or line.has_current()):
            continue
        carried.tanks.append(
            CarriedTank(
                tank_type_id=line.tank_type_id,
                full_tanks=line.current_full_tanks,
                empty_tanks=line.current_empty_tanks,
                purchase_price_cents=line.purchase_price_cents,
                sell_price_cents=line.sell_price_cents,
            )
        )
    for line in items:
        if not (line.has_assigned() or line.has_current()):
            continue
        carried.items.append(
            CarriedItem(
                inventory_item_id=line.inventory_item_id,
                quantity=line.current_items,
                purchase_price_cents=line.purchase_price_cents,
                sell_price_cents=line.sell_price_cents,
            )
        )
    return carried


def consolidation_notes(dates: ConsolidationDate) -> str:
    notes = (
        f"Automatically consolidated assignment dated {format_plain_date(dates.source_date)}. "
        f"Next assignment scheduled for {format_plain_date(dates.target_date)}."
    )
    if dates.is_stale:
        notes += (
            f" | {STALE_RECOVERY_MARKER}: stale assignment "
            f"(original date {format_plain_date(dates.source_date)}, "
            f"consolidated {format_plain_date(dates.current_date)}). "
            f"Next assignment based on today so operations can resume immediately."
        )
    return notes


def creation_notes(assignment_date: date, stale_recovery: bool) -> str:
    if stale_recovery:
        return (
            f"{STALE_RECOVERY_MARKER}: assignment created for {format_plain_date(assignment_date)} "
            f"while recovering a stale workflow. Initial quantities carried from the previous consolidation."
        )
    return (
        f"Created automatically for {format_plain_date(assignment_date)} "
        f"with quantities carried from the previous consolidated assignment."
    )


class ConsolidationWorkflow:
    def __init__(
        self,
        session,
        repository: AssignmentRepository | None = None,
        status_service: StatusService | None = None,
        date_resolver: DateResolver | None = None,
        *,
        skip_weekends_default: bool = False,
        retry_attempts: int = 3,
        retry_backoff: float = 0.1,
    ):
        self.session = session
        self.repository = repository or AssignmentRepository(session)
        self.status_service = status_service or StatusService(session)
        self.date_resolver = date_resolver or BusinessDateResolver()
        self.skip_weekends_default = skip_weekends_default
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff

    def consolidate_and_create_next(
        self,
        assignment_id: int,
        actor_id: int,
        skip_weekends: bool | None = None,
    ) -> ConsolidationResult:
        """
        Close an assignment and open its successor atomically.

        Raises:
            NotFoundError: assignment missing
            InvalidStateError: assignment is not CREATED or ASSIGNED
            DuplicateAssignmentError: successor date already taken
        """
        skip = self.skip_weekends_default if skip_weekends is None else skip_weekends

        def _op():
            with UnitOfWork(self.session):
                result = self._consolidate(assignment_id, actor_id, skip)
            return result

        result = run_with_retry(
            self.session, _op, attempts=self.retry_attempts, backoff_base=self.retry_backoff
        )
        logger.info(
            "Consolidated assignment %s (%s) into %s (%s): %d tank lines, %d item lines carried%s",
            result.closed.id,
            format_plain_date(result.dates.source_date),
            result.successor.id,
            format_plain_date(result.dates.target_date),
            len(result.successor.tanks),
            len(result.successor.items),
            ", stale recovery" if result.dates.is_stale else "",
        )
        return result

    def _consolidate(self, assignment_id: int, actor_id: int, skip_weekends: bool) -> ConsolidationResult:
        assignment = self.repository.get_or_404(assignment_id, lock=True)
        if assignment.status not in CONSOLIDATABLE_STATUSES:
            raise InvalidStateError(
                f"Assignment {assignment_id} cannot be consolidated from status "
                f"'{assignment.status}'; expected one of {', '.join(sorted(CONSOLIDATABLE_STATUSES))}"
            )

        detail = self.repository.get_detail(assignment_id)
        dates = self.date_resolver.resolve_consolidation_date(assignment.assignment_date, skip_weekends)

        pairing_id = assignment.store_assignment_id
        if self.repository.find_by_pairing_and_date(pairing_id, dates.target_date) is not None:
            raise DuplicateAssignmentError(
                f"An inventory assignment already exists for store assignment {pairing_id} "
                f"on {format_plain_date(dates.target_date)}"
            )

        carried = build_carried_quantities(detail.tanks, detail.items)

        self.status_service.transition(
            assignment,
            STATUS_CONSOLIDATED,
            actor_id,
            reason=REASON_AUTO_CONSOLIDATION,
            notes=consolidation_notes(dates),
            automatic=True,
        )

        successor = self.create_inventory_with_carried_quantities(
            pairing_id,
            dates.target_date,
            actor_id,
            carried,
            stale_recovery=dates.is_stale,
        )
        self.repository.set_current_pointer(pairing_id, successor.id, actor_id)

        return ConsolidationResult(closed=detail, successor=successor, dates=dates)

    def create_inventory_with_carried_quantities(
        self,
        store_assignment_id: int,
        assignment_date: date | str,
        actor_id: int,
        carried: CarriedQuantities,
        *,
        stale_recovery: bool = False,
        set_current: bool = False,
    ) -> AssignmentDetail:
        """
        Create an auto-assigned CREATED assignment seeded from `carried`.

        Joins an enclosing unit of work when there is one; otherwise commits
        on its own. `set_current` also moves the pairing's current pointer.
        """
        assignment_date = parse_plain_date(assignment_date)

        with UnitOfWork(self.session):
            self.repository.get_pairing(store_assignment_id)
            assignment = self.repository.create(
                store_assignment_id,
                assignment_date,
                actor_id,
                notes=(
                    "Created by stale workflow recovery"
                    if stale_recovery
                    else "Created automatically from the previous day's consolidation"
                ),
                auto_assignment=True,
                status=STATUS_CREATED,
            )
            self.status_service.record_creation(
                assignment,
                actor_id,
                reason=REASON_AUTO_CREATION,
                notes=creation_notes(assignment_date, stale_recovery),
            )

            tanks = [
                self.repository.create_tank_line(
                    assignment.id,
                    tank.tank_type_id,
                    purchase_price_cents=tank.purchase_price_cents,
                    sell_price_cents=tank.sell_price_cents,
                    full_tanks=tank.full_tanks,
                    empty_tanks=tank.empty_tanks,
                )
                for tank in carried.tanks
            ]
            items = [
                self.repository.create_item_line(
                    assignment.id,
                    item.inventory_item_id,
                    purchase_price_cents=item.purchase_price_cents,
                    sell_price_cents=item.sell_price_cents,
                    quantity=item.quantity,
                )
                for item in carried.items
            ]

            if set_current:
                self.repository.set_current_pointer(store_assignment_id, assignment.id, actor_id)

            detail = AssignmentDetail(assignment=assignment, tanks=tanks, items=items)
        return detail
