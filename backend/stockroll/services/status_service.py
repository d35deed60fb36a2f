# Overview: Assignment status state machine and its append-only audit trail.

"""
Assignment Status State Machine

================================================================================
STATE MACHINE:
    CREATED -> ASSIGNED -> CONSOLIDATED -> VALIDATED
                               |   ^          |
                               v   |          v
                             OBSERVED <-------+

    CREATED:      Assignment exists, lines seeded, day not started
    ASSIGNED:     Operator confirmed the stock, day in progress
    CONSOLIDATED: Day closed, balances carried to the successor
    VALIDATED:    Supervisor approved the closed day
    OBSERVED:     Flagged for review; may return to CONSOLIDATED for rework

ALLOWED EDGES (anything else is an InvalidTransitionError):
    CREATED      -> ASSIGNED
    ASSIGNED     -> CONSOLIDATED
    CONSOLIDATED -> VALIDATED | OBSERVED | ASSIGNED (administrative reopen)
    OBSERVED     -> VALIDATED | CONSOLIDATED (rework loop)
    VALIDATED    -> OBSERVED (administrative flag after approval)

CREATED is only reachable through creation (from_status = NULL).
The consolidation workflow additionally closes CREATED assignments
directly (CREATED -> CONSOLIDATED), flagged as automatic.

Every successful transition appends exactly one InventoryStatusHistory row.
================================================================================
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta
from typing import Literal

from sqlalchemy import or_

from stockroll.errors import InvalidTransitionError, ValidationError
from stockroll.models import InventoryAssignment, InventoryStatusHistory
from stockroll.time_utils import utcnow

logger = logging.getLogger(__name__)

STATUS_CREATED = "CREATED"
STATUS_ASSIGNED = "ASSIGNED"
STATUS_CONSOLIDATED = "CONSOLIDATED"
STATUS_VALIDATED = "VALIDATED"
STATUS_OBSERVED = "OBSERVED"

VALID_STATUSES = {
    STATUS_CREATED,
    STATUS_ASSIGNED,
    STATUS_CONSOLIDATED,
    STATUS_VALIDATED,
    STATUS_OBSERVED,
}
AssignmentStatus = Literal["CREATED", "ASSIGNED", "CONSOLIDATED", "VALIDATED", "OBSERVED"]

ALLOWED_TRANSITIONS = {
    (STATUS_CREATED, STATUS_ASSIGNED),
    (STATUS_ASSIGNED, STATUS_CONSOLIDATED),
    (STATUS_CONSOLIDATED, STATUS_VALIDATED),
    (STATUS_CONSOLIDATED, STATUS_OBSERVED),
    (STATUS_OBSERVED, STATUS_VALIDATED),
    (STATUS_OBSERVED, STATUS_CONSOLIDATED),
    (STATUS_CONSOLIDATED, STATUS_ASSIGNED),
    (STATUS_VALIDATED, STATUS_OBSERVED),
}

# Statuses the consolidation workflow accepts as its starting point
CONSOLIDATABLE_STATUSES = {STATUS_CREATED, STATUS_ASSIGNED}

STALE_RECOVERY_MARKER = "STALE RECOVERY"

REASON_CREATED = "Assignment created"
REASON_MANUAL = "Manual status update"
REASON_AUTO_CONSOLIDATION = "automatic consolidation"
REASON_AUTO_CREATION = "automatic creation"

_TRANSITION_NOTES = {
    (None, STATUS_CREATED): "Assignment created with initial quantities",
    (STATUS_CREATED, STATUS_ASSIGNED): "Stock handed over for the day's operations",
    (STATUS_ASSIGNED, STATUS_CONSOLIDATED): "Daily cycle closed",
    (STATUS_CREATED, STATUS_CONSOLIDATED): "Closed directly from creation",
    (STATUS_CONSOLIDATED, STATUS_VALIDATED): "Closed day approved by supervisor",
    (STATUS_CONSOLIDATED, STATUS_OBSERVED): "Closed day flagged for review",
    (STATUS_OBSERVED, STATUS_VALIDATED): "Observation resolved and approved",
    (STATUS_OBSERVED, STATUS_CONSOLIDATED): "Returned to consolidated for rework",
    (STATUS_CONSOLIDATED, STATUS_ASSIGNED): "Consolidation reopened for adjustments",
    (STATUS_VALIDATED, STATUS_OBSERVED): "Approved day flagged after validation",
}


def validate_status(status: str) -> None:
    """Raise ValidationError unless status is one of VALID_STATUSES."""
    if status not in VALID_STATUSES:
        raise ValidationError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str, *, automatic: bool = False) -> bool:
    """
    Check an edge against the transition table.

    Same-state requests are not transitions and are rejected. `automatic`
    additionally admits the consolidation workflow's own entry edges.
    """
    validate_status(from_status)
    validate_status(to_status)

    if (from_status, to_status) in ALLOWED_TRANSITIONS:
        return True

    return automatic and to_status == STATUS_CONSOLIDATED and from_status in CONSOLIDATABLE_STATUSES


def describe_transition(from_status: str | None, to_status: str) -> str:
    return _TRANSITION_NOTES.get(
        (from_status, to_status),
        f"Status changed from {from_status or 'initial'} to {to_status}",
    )


class StatusService:
    """
    Validates and records lifecycle transitions.

    Writes only; never commits. Callers run it inside their unit of work so
    the status change and its history row land together.
    """

    def __init__(self, session):
        self.session = session

    def record_creation(
        self,
        assignment: InventoryAssignment,
        actor_id: int,
        *,
        reason: str = REASON_CREATED,
        notes: str | None = None,
    ) -> InventoryStatusHistory:
        """Append the implicit NULL -> <initial status> entry for a new assignment."""
        return self._append(
            assignment.id,
            None,
            assignment.status,
            actor_id,
            reason,
            notes or describe_transition(None, assignment.status),
        )

    def transition(
        self,
        assignment: InventoryAssignment,
        to_status: str,
        actor_id: int,
        *,
        reason: str = REASON_MANUAL,
        notes: str | None = None,
        automatic: bool = False,
    ) -> InventoryStatusHistory:
        """
        Move an assignment along one edge and append its history entry.

        Raises:
            ValidationError: unknown status value
            InvalidTransitionError: edge not in the table
        """
        from_status = assignment.status
        if not can_transition(from_status, to_status, automatic=automatic):
            raise InvalidTransitionError(
                f"Cannot move assignment {assignment.id} from '{from_status}' to '{to_status}'",
                from_status=from_status,
                to_status=to_status,
            )

        assignment.status = to_status
        assignment.updated_at = utcnow()

        entry = self._append(
            assignment.id,
            from_status,
            to_status,
            actor_id,
            reason,
            notes or describe_transition(from_status, to_status),
        )
        logger.info(
            "Assignment %s status %s -> %s by actor %s (%s)",
            assignment.id, from_status, to_status, actor_id, reason,
        )
        return entry

    def _append(self, assignment_id, from_status, to_status, actor_id, reason, notes) -> InventoryStatusHistory:
        entry = InventoryStatusHistory(
            inventory_assignment_id=assignment_id,
            from_status=from_status,
            to_status=to_status,
            changed_by=actor_id,
            changed_at=utcnow(),
            reason=reason,
            notes=notes,
        )
        self.session.add(entry)
        self.session.flush()
        return entry

    # ------------------------------------------------------------------
    # History queries
    # ------------------------------------------------------------------

    def history_for_assignment(self, assignment_id: int) -> list[InventoryStatusHistory]:
        return (
            self.session.query(InventoryStatusHistory)
            .filter(InventoryStatusHistory.inventory_assignment_id == assignment_id)
            .order_by(InventoryStatusHistory.changed_at.desc(), InventoryStatusHistory.id.desc())
            .all()
        )

    def history_by_actor(self, actor_id: int, *, limit: int = 200) -> list[InventoryStatusHistory]:
        return (
            self.session.query(InventoryStatusHistory)
            .filter(InventoryStatusHistory.changed_by == actor_id)
            .order_by(InventoryStatusHistory.changed_at.desc(), InventoryStatusHistory.id.desc())
            .limit(limit)
            .all()
        )

    def history_between(self, start_date: date, end_date: date) -> list[InventoryStatusHistory]:
        """Entries changed on or between the two dates (inclusive, whole days)."""
        start = datetime.combine(start_date, time.min)
        end = datetime.combine(end_date + timedelta(days=1), time.min)
        return (
            self.session.query(InventoryStatusHistory)
            .filter(
                InventoryStatusHistory.changed_at >= start,
                InventoryStatusHistory.changed_at < end,
            )
            .order_by(InventoryStatusHistory.changed_at.desc(), InventoryStatusHistory.id.desc())
            .all()
        )

    def stale_recoveries(self) -> list[InventoryStatusHistory]:
        """Consolidation and creation entries written by a stale-recovery run."""
        return (
            self.session.query(InventoryStatusHistory)
            .filter(
                or_(
                    InventoryStatusHistory.reason == REASON_AUTO_CONSOLIDATION,
                    InventoryStatusHistory.reason == REASON_AUTO_CREATION,
                ),
                InventoryStatusHistory.notes.contains(STALE_RECOVERY_MARKER),
            )
            .order_by(InventoryStatusHistory.changed_at.desc(), InventoryStatusHistory.id.desc())
            .all()
        )
