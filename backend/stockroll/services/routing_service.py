# Overview: Redirects ledger mutations aimed at a closed assignment to the pairing's active one.

from __future__ import annotations

import logging
from dataclasses import dataclass

from stockroll.errors import NotFoundError
from .assignment_repository import AssignmentRepository
from .status_service import STATUS_CONSOLIDATED

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoutedAssignment:
    requested_id: int
    assignment_id: int

    @property
    def rerouted(self) -> bool:
        return self.requested_id != self.assignment_id


class AssignmentRouter:
    """
    Auto-routing for ledger mutations.

    A CONSOLIDATED assignment is frozen: every mutation addressed to it is
    applied to whatever the current pointer of its pairing says is active.
    Any other status is used as-is. Read-only projections do not route.
    """

    def __init__(self, session, repository: AssignmentRepository | None = None):
        self.session = session
        self.repository = repository or AssignmentRepository(session)

    def resolve(self, assignment_id: int) -> RoutedAssignment:
        """
        Raises:
            NotFoundError: assignment missing, or closed with no active successor
        """
        assignment = self.repository.get_or_404(assignment_id)
        if assignment.status != STATUS_CONSOLIDATED:
            return RoutedAssignment(assignment_id, assignment_id)

        pointer = self.repository.get_current_pointer(assignment.store_assignment_id)
        if pointer is None or pointer.inventory_assignment_id == assignment_id:
            raise NotFoundError(
                f"No active assignment for store assignment {assignment.store_assignment_id}; "
                f"the requested assignment {assignment_id} is closed"
            )

        logger.info(
            "Auto-routing ledger operation from consolidated assignment %s to current assignment %s (pairing %s)",
            assignment_id, pointer.inventory_assignment_id, assignment.store_assignment_id,
        )
        return RoutedAssignment(assignment_id, pointer.inventory_assignment_id)

    def resolve_id(self, assignment_id: int) -> int:
        return self.resolve(assignment_id).assignment_id
