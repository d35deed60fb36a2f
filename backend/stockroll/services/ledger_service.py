# Overview: Quantity ledger; the only code path that changes a line's current balance.

"""
Quantity Ledger Invariants (authoritative)

Balances:
- assigned_* is the baseline captured when the line was created and never changes.
- current_* is mutated ONLY here, and only together with an appended
  TankTransaction / ItemTransaction carrying the exact delta applied.
- For every line: current == assigned + SUM(deltas), and current >= 0.
- Tank lines track full and empty counts independently; each is checked
  on its own before anything is written.

Atomicity:
- Every public mutation runs in a UnitOfWork wrapped by run_with_retry.
- The line row is read with SELECT ... FOR UPDATE, and its version_id
  column turns a concurrent write into StaleDataError (retried).
- Batches apply operations sequentially. Atomic batches share one unit of
  work, so the first failure rolls back the whole batch. Non-atomic batches
  give each operation its own unit of work and collect failures.

Routing:
- Every mutation goes through AssignmentRouter, so a write aimed at a
  CONSOLIDATED assignment (by catalog ref or by one of its line ids) lands
  on the same catalog line of the pairing's current assignment.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Union

from sqlalchemy import func

from stockroll.errors import (
    AssignmentError,
    InsufficientQuantityError,
    InvalidStateError,
    ValidationError,
)
from stockroll.models import (
    AssignmentItem,
    AssignmentTank,
    ItemTransaction,
    LINE_TYPE_ITEM,
    LINE_TYPE_TANK,
    TankTransaction,
)
from stockroll.time_utils import utcnow
from .assignment_repository import AssignmentRepository
from .concurrency import run_with_retry
from .routing_service import AssignmentRouter
from .uow import UnitOfWork, in_unit_of_work

logger = logging.getLogger(__name__)

TX_PURCHASE = "PURCHASE"
TX_SALE = "SALE"
TX_RETURN = "RETURN"
TX_TRANSFER = "TRANSFER"
TX_ASSIGNMENT = "ASSIGNMENT"

VALID_TRANSACTION_KINDS = {TX_PURCHASE, TX_SALE, TX_RETURN, TX_TRANSFER, TX_ASSIGNMENT}
VALID_LINE_TYPES = {LINE_TYPE_TANK, LINE_TYPE_ITEM}


@dataclass(frozen=True)
class TankDelta:
    """Signed change to a tank line; full and empty move independently."""
    full: int = 0
    empty: int = 0

    def negated(self) -> "TankDelta":
        return TankDelta(-self.full, -self.empty)

    def is_zero(self) -> bool:
        return self.full == 0 and self.empty == 0

    def to_dict(self) -> dict:
        return {"full": self.full, "empty": self.empty}


Delta = Union[TankDelta, int]


@dataclass(frozen=True)
class LedgerOperation:
    """One signed batch entry addressed by catalog ref within the batch's assignment."""
    line_type: str
    catalog_id: int
    delta: Delta
    kind: str
    note: str | None = None
    reference_id: int | None = None


@dataclass
class BatchFailure:
    index: int
    operation: LedgerOperation
    error: AssignmentError

    def to_dict(self) -> dict:
        return {"index": self.index, "catalog_id": self.operation.catalog_id, **self.error.to_dict()}


@dataclass
class BatchResult:
    assignment_id: int
    applied: list = field(default_factory=list)
    failures: list[BatchFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


@dataclass(frozen=True)
class LineBalance:
    line_type: str
    line_id: int
    catalog_id: int
    assigned: dict
    current: dict

    @classmethod
    def from_line(cls, line) -> "LineBalance":
        if line.line_type == LINE_TYPE_TANK:
            assigned = {"full": line.assigned_full_tanks, "empty": line.assigned_empty_tanks}
            current = {"full": line.current_full_tanks, "empty": line.current_empty_tanks}
        else:
            assigned = {"quantity": line.assigned_items}
            current = {"quantity": line.current_items}
        return cls(line.line_type, line.id, line.catalog_id, assigned, current)

    def to_dict(self) -> dict:
        return {
            "line_type": self.line_type,
            "line_id": self.line_id,
            "catalog_id": self.catalog_id,
            "assigned": dict(self.assigned),
            "current": dict(self.current),
        }


def validate_line_type(line_type: str) -> None:
    if line_type not in VALID_LINE_TYPES:
        raise ValidationError(f"Invalid line type '{line_type}'. Must be TANK or ITEM")


def validate_transaction_kind(kind: str) -> None:
    if kind not in VALID_TRANSACTION_KINDS:
        raise ValidationError(
            f"Invalid transaction kind '{kind}'. Must be one of: {', '.join(sorted(VALID_TRANSACTION_KINDS))}"
        )


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def normalize_delta(line_type: str, delta) -> Delta:
    """Coerce a caller-supplied delta into the shape the line type stores."""
    validate_line_type(line_type)
    if line_type == LINE_TYPE_TANK:
        if isinstance(delta, dict):
            delta = TankDelta(int(delta.get("full", 0)), int(delta.get("empty", 0)))
        if not isinstance(delta, TankDelta):
            raise ValidationError("Tank deltas must specify full and empty changes")
        if not (_is_int(delta.full) and _is_int(delta.empty)):
            raise ValidationError("Tank delta quantities must be integers")
        return delta

    if not _is_int(delta):
        raise ValidationError("Item deltas must be an integer")
    return delta


def _is_zero(delta: Delta) -> bool:
    return delta.is_zero() if isinstance(delta, TankDelta) else delta == 0


def _negate(delta: Delta) -> Delta:
    return delta.negated() if isinstance(delta, TankDelta) else -delta


def _require_magnitude(delta: Delta) -> None:
    values = (delta.full, delta.empty) if isinstance(delta, TankDelta) else (delta,)
    if any(v < 0 for v in values):
        raise ValidationError("Quantities must be non-negative; the direction is set by the operation")


class QuantityLedger:
    def __init__(
        self,
        session,
        repository: AssignmentRepository | None = None,
        router: AssignmentRouter | None = None,
        *,
        retry_attempts: int = 3,
        retry_backoff: float = 0.1,
    ):
        self.session = session
        self.repository = repository or AssignmentRepository(session)
        self.router = router or AssignmentRouter(session, self.repository)
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff

    def run_with_retry(self, func):
        return run_with_retry(
            self.session, func, attempts=self.retry_attempts, backoff_base=self.retry_backoff
        )

    # ------------------------------------------------------------------
    # Primitive
    # ------------------------------------------------------------------

    def apply_delta(
        self,
        line_type: str,
        line_id: int,
        delta,
        kind: str,
        actor_id: int,
        *,
        note: str | None = None,
        reference_id: int | None = None,
    ):
        """
        Apply a signed delta to one line and append its transaction record.

        Returns the TankTransaction or ItemTransaction written.

        Raises:
            ValidationError: malformed delta, unknown kind or line type
            NotFoundError: line missing, or its assignment is closed and the
                current assignment has no line for the same catalog ref
            InsufficientQuantityError: a tracked quantity would go negative
        """
        delta = normalize_delta(line_type, delta)
        validate_transaction_kind(kind)
        if _is_zero(delta):
            raise ValidationError("Delta must change at least one quantity")

        def _op():
            with UnitOfWork(self.session):
                line = self._routed_line_by_id(line_type, line_id)
                if line_type == LINE_TYPE_TANK:
                    record = self._apply_tank(line, delta, kind, actor_id, note, reference_id)
                else:
                    record = self._apply_item(line, delta, kind, actor_id, note, reference_id)
            return record

        return self.run_with_retry(_op)

    def _routed_line_by_id(self, line_type: str, line_id: int):
        line = self.repository.get_line(line_type, line_id, lock=True)
        routed = self.router.resolve(line.inventory_assignment_id)
        if not routed.rerouted:
            return line
        return self.repository.find_line(routed.assignment_id, line_type, line.catalog_id, lock=True)

    def _apply_tank(self, line: AssignmentTank, delta: TankDelta, kind, actor_id, note, reference_id) -> TankTransaction:
        new_full = line.current_full_tanks + delta.full
        new_empty = line.current_empty_tanks + delta.empty
        if new_full < 0 or new_empty < 0:
            short = "full" if new_full < 0 else "empty"
            raise InsufficientQuantityError(
                f"Insufficient {short} tanks on line {line.id}: "
                f"have full={line.current_full_tanks} empty={line.current_empty_tanks}, "
                f"change full={delta.full} empty={delta.empty}",
                line_id=line.id,
                available={"full": line.current_full_tanks, "empty": line.current_empty_tanks},
                requested=delta.to_dict(),
            )

        record = TankTransaction(
            assignment_tank_id=line.id,
            transaction_type=kind,
            full_tanks_change=delta.full,
            empty_tanks_change=delta.empty,
            user_id=actor_id,
            transaction_date=utcnow(),
            reference_id=reference_id,
            notes=note,
        )
        self.session.add(record)
        line.current_full_tanks = new_full
        line.current_empty_tanks = new_empty
        self.session.flush()

        logger.debug(
            "%s tank line %s full%+d empty%+d -> full=%d empty=%d (actor %s, ref %s)",
            kind, line.id, delta.full, delta.empty, new_full, new_empty, actor_id, reference_id,
        )
        return record

    def _apply_item(self, line: AssignmentItem, delta: int, kind, actor_id, note, reference_id) -> ItemTransaction:
        new_quantity = line.current_items + delta
        if new_quantity < 0:
            raise InsufficientQuantityError(
                f"Insufficient items on line {line.id}: have {line.current_items}, change {delta}",
                line_id=line.id,
                available={"quantity": line.current_items},
                requested={"quantity": delta},
            )

        record = ItemTransaction(
            assignment_item_id=line.id,
            transaction_type=kind,
            item_change=delta,
            user_id=actor_id,
            transaction_date=utcnow(),
            reference_id=reference_id,
            notes=note,
        )
        self.session.add(record)
        line.current_items = new_quantity
        self.session.flush()

        logger.debug(
            "%s item line %s %+d -> %d (actor %s, ref %s)",
            kind, line.id, delta, new_quantity, actor_id, reference_id,
        )
        return record

    # ------------------------------------------------------------------
    # Sign-normalising wrappers
    # ------------------------------------------------------------------

    def increment_by_line(self, line_type, line_id, amount, kind, actor_id, *, note=None, reference_id=None):
        amount = normalize_delta(line_type, amount)
        _require_magnitude(amount)
        return self.apply_delta(line_type, line_id, amount, kind, actor_id, note=note, reference_id=reference_id)

    def decrement_by_line(self, line_type, line_id, amount, kind, actor_id, *, note=None, reference_id=None):
        amount = normalize_delta(line_type, amount)
        _require_magnitude(amount)
        return self.apply_delta(line_type, line_id, _negate(amount), kind, actor_id, note=note, reference_id=reference_id)

    def increment_by_assignment_and_catalog_ref(
        self, assignment_id, line_type, catalog_id, amount, kind, actor_id, *, note=None, reference_id=None
    ):
        def _op():
            with UnitOfWork(self.session):
                line = self._routed_line(assignment_id, line_type, catalog_id)
                record = self.increment_by_line(
                    line_type, line.id, amount, kind, actor_id, note=note, reference_id=reference_id
                )
            return record

        return self.run_with_retry(_op)

    def decrement_by_assignment_and_catalog_ref(
        self, assignment_id, line_type, catalog_id, amount, kind, actor_id, *, note=None, reference_id=None
    ):
        def _op():
            with UnitOfWork(self.session):
                line = self._routed_line(assignment_id, line_type, catalog_id)
                record = self.decrement_by_line(
                    line_type, line.id, amount, kind, actor_id, note=note, reference_id=reference_id
                )
            return record

        return self.run_with_retry(_op)

    def _routed_line(self, assignment_id: int, line_type: str, catalog_id: int):
        validate_line_type(line_type)
        target_id = self.router.resolve_id(assignment_id)
        return self.repository.find_line(target_id, line_type, catalog_id)

    # ------------------------------------------------------------------
    # Batches
    # ------------------------------------------------------------------

    def process_batch(
        self,
        assignment_id: int,
        operations: list[LedgerOperation],
        actor_id: int,
        *,
        atomic: bool = True,
    ) -> BatchResult:
        """
        Apply signed operations in order against one assignment (routed).

        atomic=True: one unit of work; the first failure propagates and
        nothing in the batch is kept.
        atomic=False: each operation commits on its own; business failures
        are collected in BatchResult.failures and later operations still run.
        """
        operations = list(operations)
        if atomic:
            return self.run_with_retry(lambda: self._process_atomic(assignment_id, operations, actor_id))
        return self._process_isolated(assignment_id, operations, actor_id)

    def _process_atomic(self, assignment_id, operations, actor_id) -> BatchResult:
        with UnitOfWork(self.session):
            target_id = self.router.resolve_id(assignment_id)
            result = BatchResult(assignment_id=target_id)
            for op in operations:
                result.applied.append(self._apply_operation(target_id, op, actor_id))

        logger.info("Applied atomic batch of %d operations to assignment %s", len(result.applied), target_id)
        return result

    def _process_isolated(self, assignment_id, operations, actor_id) -> BatchResult:
        if in_unit_of_work(self.session):
            raise InvalidStateError("Non-atomic batches cannot run inside an enclosing unit of work")

        target_id = self.router.resolve_id(assignment_id)
        result = BatchResult(assignment_id=target_id)
        for index, op in enumerate(operations):
            try:
                record = self.run_with_retry(lambda op=op: self._apply_in_own_unit(target_id, op, actor_id))
            except AssignmentError as exc:
                logger.warning(
                    "Batch operation %d on assignment %s failed (%s): %s",
                    index, target_id, exc.code, exc.message,
                )
                result.failures.append(BatchFailure(index, op, exc))
                continue
            result.applied.append(record)

        logger.info(
            "Applied non-atomic batch to assignment %s: %d applied, %d failed",
            target_id, len(result.applied), len(result.failures),
        )
        return result

    def _apply_in_own_unit(self, assignment_id, op, actor_id):
        with UnitOfWork(self.session):
            record = self._apply_operation(assignment_id, op, actor_id)
        return record

    def _apply_operation(self, assignment_id: int, op: LedgerOperation, actor_id: int):
        validate_line_type(op.line_type)
        line = self.repository.find_line(assignment_id, op.line_type, op.catalog_id)
        return self.apply_delta(
            op.line_type, line.id, op.delta, op.kind, actor_id,
            note=op.note, reference_id=op.reference_id,
        )

    # ------------------------------------------------------------------
    # Read-only projections
    # ------------------------------------------------------------------

    def current_balance(self, assignment_id: int, line_type: str, catalog_id: int) -> LineBalance:
        validate_line_type(line_type)
        line = self.repository.find_line(assignment_id, line_type, catalog_id)
        return LineBalance.from_line(line)

    def current_balances(self, assignment_id: int) -> list[LineBalance]:
        self.repository.get_or_404(assignment_id)
        lines = self.repository.tank_lines(assignment_id) + self.repository.item_lines(assignment_id)
        return [LineBalance.from_line(line) for line in lines]

    def transactions_for_line(self, line_type: str, line_id: int) -> list:
        validate_line_type(line_type)
        if line_type == LINE_TYPE_TANK:
            return (
                self.session.query(TankTransaction)
                .filter(TankTransaction.assignment_tank_id == line_id)
                .order_by(TankTransaction.id.asc())
                .all()
            )
        return (
            self.session.query(ItemTransaction)
            .filter(ItemTransaction.assignment_item_id == line_id)
            .order_by(ItemTransaction.id.asc())
            .all()
        )

    def reconcile_line(self, line_type: str, line_id: int) -> dict:
        """
        Recompute a line's balance from its baseline plus the ledger.

        Returns expected vs stored values and whether they agree.
        """
        line = self.repository.get_line(line_type, line_id)
        if line_type == LINE_TYPE_TANK:
            full_sum, empty_sum = (
                self.session.query(
                    func.coalesce(func.sum(TankTransaction.full_tanks_change), 0),
                    func.coalesce(func.sum(TankTransaction.empty_tanks_change), 0),
                )
                .filter(TankTransaction.assignment_tank_id == line_id)
                .one()
            )
            expected = {
                "full": line.assigned_full_tanks + int(full_sum),
                "empty": line.assigned_empty_tanks + int(empty_sum),
            }
            stored = {"full": line.current_full_tanks, "empty": line.current_empty_tanks}
        else:
            item_sum = (
                self.session.query(func.coalesce(func.sum(ItemTransaction.item_change), 0))
                .filter(ItemTransaction.assignment_item_id == line_id)
                .scalar()
            )
            expected = {"quantity": line.assigned_items + int(item_sum or 0)}
            stored = {"quantity": line.current_items}

        return {
            "line_type": line_type,
            "line_id": line_id,
            "expected": expected,
            "stored": stored,
            "consistent": expected == stored,
        }
