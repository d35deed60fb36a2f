# Overview: Kind-specific transaction strategies layered on the quantity ledger.

"""
Transaction Processor

Each transaction kind turns a positive quantity into the signed change the
ledger applies:

    kind        tank line                          item line
    ----------  ---------------------------------  ---------
    SALE        full -q, empty +q                  -q
    PURCHASE    full +q, empty -q                  +q
    RETURN      +q on tank_state side (required)   +q
    ASSIGNMENT  +q on tank_state side (def. full)  +q
    TRANSFER    -q on tank_state side (required),  -q, then
                then +q on the same side of the    +q on target
                target pairing's current line

A SALE hands a full tank to the customer and takes their empty back, so
both sub-quantities move. PURCHASE is the reverse exchange with a supplier.

Requests are addressed by (assignment, catalog ref) and go through the
router like every other catalog-ref ledger call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from stockroll.errors import InsufficientQuantityError, NotFoundError, ValidationError
from stockroll.models import LINE_TYPE_ITEM, LINE_TYPE_TANK
from .ledger_service import (
    TX_ASSIGNMENT,
    TX_PURCHASE,
    TX_RETURN,
    TX_SALE,
    TX_TRANSFER,
    Delta,
    QuantityLedger,
    TankDelta,
    validate_line_type,
    validate_transaction_kind,
)
from .uow import UnitOfWork

TANK_STATE_FULL = "full"
TANK_STATE_EMPTY = "empty"
TANK_STATES = {TANK_STATE_FULL, TANK_STATE_EMPTY}


@dataclass(frozen=True)
class TransactionRequest:
    kind: str
    line_type: str
    assignment_id: int
    catalog_id: int
    quantity: int
    actor_id: int
    tank_state: str | None = None
    target_store_assignment_id: int | None = None
    note: str | None = None
    reference_id: int | None = None


@dataclass
class TransactionOutcome:
    kind: str
    assignment_id: int
    changes: Delta
    records: list = field(default_factory=list)
    target_assignment_id: int | None = None


class TransactionStrategy:
    kind: str = ""
    line_types = (LINE_TYPE_TANK, LINE_TYPE_ITEM)

    def validate(self, request: TransactionRequest) -> None:
        if request.kind != self.kind:
            raise ValidationError(f"Invalid transaction kind for {self.kind} strategy: {request.kind}")
        if request.line_type not in self.line_types:
            raise ValidationError(f"{self.kind} is not supported for {request.line_type} lines")
        if not isinstance(request.quantity, int) or isinstance(request.quantity, bool) or request.quantity <= 0:
            raise ValidationError(f"{self.kind.title()} quantity must be a positive integer")
        if request.tank_state is not None and request.tank_state not in TANK_STATES:
            raise ValidationError("tank_state must be 'full' or 'empty'")

    def calculate_changes(self, request: TransactionRequest) -> Delta:
        raise NotImplementedError


class SaleStrategy(TransactionStrategy):
    kind = TX_SALE

    def calculate_changes(self, request):
        q = request.quantity
        if request.line_type == LINE_TYPE_TANK:
            return TankDelta(full=-q, empty=q)
        return -q


class PurchaseStrategy(TransactionStrategy):
    kind = TX_PURCHASE

    def calculate_changes(self, request):
        q = request.quantity
        if request.line_type == LINE_TYPE_TANK:
            return TankDelta(full=q, empty=-q)
        return q


def _on_side(tank_state: str, quantity: int) -> TankDelta:
    if tank_state == TANK_STATE_FULL:
        return TankDelta(full=quantity)
    return TankDelta(empty=quantity)


class ReturnStrategy(TransactionStrategy):
    kind = TX_RETURN

    def validate(self, request):
        super().validate(request)
        if request.line_type == LINE_TYPE_TANK and request.tank_state is None:
            raise ValidationError("tank_state is required for tank returns: 'full' or 'empty'")

    def calculate_changes(self, request):
        if request.line_type == LINE_TYPE_TANK:
            return _on_side(request.tank_state, request.quantity)
        return request.quantity


class AssignmentStrategy(TransactionStrategy):
    kind = TX_ASSIGNMENT

    def calculate_changes(self, request):
        if request.line_type == LINE_TYPE_TANK:
            return _on_side(request.tank_state or TANK_STATE_FULL, request.quantity)
        return request.quantity


class TransferStrategy(TransactionStrategy):
    """Source leg only; the processor writes the matching target leg."""
    kind = TX_TRANSFER

    def validate(self, request):
        super().validate(request)
        if request.target_store_assignment_id is None:
            raise ValidationError("target_store_assignment_id is required for transfers")
        if request.line_type == LINE_TYPE_TANK and request.tank_state is None:
            raise ValidationError("tank_state is required for tank transfers: 'full' or 'empty'")

    def calculate_changes(self, request):
        if request.line_type == LINE_TYPE_TANK:
            return _on_side(request.tank_state, request.quantity).negated()
        return -request.quantity


STRATEGIES = {
    strategy.kind: strategy
    for strategy in (SaleStrategy(), PurchaseStrategy(), ReturnStrategy(), AssignmentStrategy(), TransferStrategy())
}


def strategy_for(kind: str) -> TransactionStrategy:
    validate_transaction_kind(kind)
    return STRATEGIES[kind]


def supported_transaction_kinds(line_type: str) -> list[str]:
    validate_line_type(line_type)
    return sorted(kind for kind, s in STRATEGIES.items() if line_type in s.line_types)


def _would_go_negative(balance: dict, changes: Delta, line_type: str) -> Optional[str]:
    if line_type == LINE_TYPE_TANK:
        if balance["full"] + changes.full < 0:
            return "full"
        if balance["empty"] + changes.empty < 0:
            return "empty"
        return None
    return "quantity" if balance["quantity"] + changes < 0 else None


class TransactionProcessor:
    def __init__(self, ledger: QuantityLedger):
        self.ledger = ledger
        self.session = ledger.session
        self.repository = ledger.repository
        self.router = ledger.router

    def calculate_changes(self, request: TransactionRequest) -> Delta:
        strategy = strategy_for(request.kind)
        strategy.validate(request)
        return strategy.calculate_changes(request)

    def validate_transaction(self, request: TransactionRequest) -> Delta:
        """
        Check a request against the routed line's balance without writing.

        Returns the signed changes the request would apply.
        """
        changes = self.calculate_changes(request)
        target_id = self.router.resolve_id(request.assignment_id)
        balance = self.ledger.current_balance(target_id, request.line_type, request.catalog_id).current
        short = _would_go_negative(balance, changes, request.line_type)
        if short is not None:
            raise InsufficientQuantityError(
                f"Insufficient {short} for {request.kind} on assignment {target_id}",
                available=balance,
                requested=changes.to_dict() if isinstance(changes, TankDelta) else {"quantity": changes},
            )
        return changes

    def process(self, request: TransactionRequest) -> TransactionOutcome:
        changes = self.calculate_changes(request)

        def _op():
            with UnitOfWork(self.session):
                outcome = self._execute(request, changes)
            return outcome

        return self.ledger.run_with_retry(_op)

    def process_many(self, requests: list[TransactionRequest]) -> list[TransactionOutcome]:
        """Run several requests in order as one all-or-nothing unit of work."""
        requests = list(requests)
        planned = [(r, self.calculate_changes(r)) for r in requests]

        def _op():
            with UnitOfWork(self.session):
                outcomes = [self._execute(r, c) for r, c in planned]
            return outcomes

        return self.ledger.run_with_retry(_op)

    def _execute(self, request: TransactionRequest, changes: Delta) -> TransactionOutcome:
        source_id = self.router.resolve_id(request.assignment_id)
        source_line = self.repository.find_line(source_id, request.line_type, request.catalog_id)
        outcome = TransactionOutcome(kind=request.kind, assignment_id=source_id, changes=changes)
        outcome.records.append(
            self.ledger.apply_delta(
                request.line_type, source_line.id, changes, request.kind, request.actor_id,
                note=request.note, reference_id=request.reference_id,
            )
        )

        if request.kind == TX_TRANSFER:
            target_line = self._transfer_target_line(request, source_id)
            outcome.target_assignment_id = target_line.inventory_assignment_id
            outcome.records.append(
                self.ledger.apply_delta(
                    request.line_type, target_line.id,
                    changes.negated() if isinstance(changes, TankDelta) else -changes,
                    TX_TRANSFER, request.actor_id,
                    note=request.note, reference_id=request.reference_id,
                )
            )
        return outcome

    def _transfer_target_line(self, request: TransactionRequest, source_id: int):
        pointer = self.repository.get_current_pointer(request.target_store_assignment_id)
        if pointer is None:
            raise NotFoundError(
                f"No active assignment for target store assignment {request.target_store_assignment_id}"
            )
        if pointer.inventory_assignment_id == source_id:
            raise ValidationError("Transfer source and target must be different assignments")
        return self.repository.find_line(pointer.inventory_assignment_id, request.line_type, request.catalog_id)

    def supported_transaction_kinds(self, line_type: str) -> list[str]:
        return supported_transaction_kinds(line_type)
