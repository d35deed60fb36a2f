# Overview: Unit of work; one atomic commit/rollback boundary per service operation.

"""
Unit of Work for the assignment core.

Semantics:
    * no exception -> commit (outermost unit only)
    * exception    -> rollback (outermost unit only), exception propagates
    * nested units join the enclosing one and never commit on their own,
      so a ledger call made inside a batch or a consolidation becomes part
      of that larger transaction.

Usage:
    with UnitOfWork(session):
        ...

The session is injected by the caller (services receive it in their
constructor), never looked up from a global.
"""

from __future__ import annotations

from contextlib import AbstractContextManager

_DEPTH_KEY = "stockroll.uow_depth"


def in_unit_of_work(session) -> bool:
    """True when an enclosing UnitOfWork is active on this session."""
    return _get_depth(session) > 0


def _get_depth(session) -> int:
    return int(session.info.get(_DEPTH_KEY, 0))


def _set_depth(session, depth: int) -> None:
    if depth <= 0:
        session.info.pop(_DEPTH_KEY, None)
    else:
        session.info[_DEPTH_KEY] = depth


class UnitOfWork(AbstractContextManager):
    def __init__(self, session) -> None:
        self.session = session
        self._outermost = False

    def __enter__(self) -> "UnitOfWork":
        depth = _get_depth(self.session)
        self._outermost = depth == 0
        _set_depth(self.session, depth + 1)
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        _set_depth(self.session, _get_depth(self.session) - 1)
        if not self._outermost:
            return False

        if exc_type:
            self.session.rollback()
        else:
            try:
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise
        # False -> exception keeps propagating
        return False
