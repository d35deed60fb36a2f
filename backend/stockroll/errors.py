# Overview: Domain error taxonomy shared by repositories, ledger and workflows.

from __future__ import annotations


class AssignmentError(Exception):
    """
    Base class for every failure surfaced by the assignment core.

    Each subclass carries the HTTP-style status a caller would map it to.
    None of these are retried automatically; the enclosing unit of work is
    rolled back and the error propagates unchanged.
    """
    status_code = 400
    code = "ASSIGNMENT_ERROR"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class ValidationError(AssignmentError, ValueError):
    """400-level input problem (bad quantity, malformed line, unknown kind)."""
    code = "VALIDATION_ERROR"


class NotFoundError(AssignmentError):
    """Assignment, line, pairing or catalog reference missing."""
    status_code = 404
    code = "NOT_FOUND"


class InvalidTransitionError(AssignmentError):
    """Status edge not in the allowed transition table."""
    status_code = 409
    code = "INVALID_TRANSITION"

    def __init__(self, message: str, *, from_status: str | None = None, to_status: str | None = None):
        super().__init__(message)
        self.from_status = from_status
        self.to_status = to_status

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["from_status"] = self.from_status
        data["to_status"] = self.to_status
        return data


class InvalidStateError(AssignmentError):
    """Operation precondition on the assignment status is not met."""
    status_code = 409
    code = "INVALID_STATE"


class DuplicateAssignmentError(AssignmentError):
    """An assignment already exists for the pairing and date."""
    status_code = 409
    code = "DUPLICATE_ASSIGNMENT"


class InsufficientQuantityError(AssignmentError):
    """A ledger delta would drive a balance below zero."""
    status_code = 409
    code = "INSUFFICIENT_QUANTITY"

    def __init__(self, message: str, *, line_id: int | None = None, available: dict | None = None, requested: dict | None = None):
        super().__init__(message)
        self.line_id = line_id
        self.available = available or {}
        self.requested = requested or {}

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["line_id"] = self.line_id
        data["available"] = self.available
        data["requested"] = self.requested
        return data


class InternalError(AssignmentError):
    """A storage write unexpectedly produced no result."""
    status_code = 500
    code = "INTERNAL_ERROR"
