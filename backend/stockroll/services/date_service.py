# Overview: Business-calendar date resolution for assignment roll-over.

"""
Date Resolver

All assignment dates are plain calendar dates in one fixed business zone.
Nothing here converts through UTC midnight: "today" is computed as the
wall-clock date in the business zone, and arithmetic is done on `date`
objects only.

STALENESS:
    days_difference = |current_date - assignment_date|
    days_difference >  stale_after_days -> base = current_date
    otherwise                          -> base = assignment_date
    target = next_business_date(base, skip_weekends)

So a backlog of missed consolidations resumes from today instead of
cascading through every skipped day.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Callable, Optional, Protocol
from zoneinfo import ZoneInfo

from stockroll.time_utils import parse_plain_date

SATURDAY = 5
SUNDAY = 6


class DateResolver(Protocol):
    def current_date(self) -> date: ...

    def next_business_date(self, value: date, skip_weekends: bool = False) -> date: ...

    def days_difference(self, first: date, second: date) -> int: ...

    def is_stale(self, assignment_date: date, current: Optional[date] = None) -> bool: ...

    def resolve_consolidation_date(self, assignment_date: date, skip_weekends: bool = False) -> "ConsolidationDate": ...


@dataclass(frozen=True)
class ConsolidationDate:
    """Outcome of the staleness-aware base-date selection."""
    source_date: date
    current_date: date
    base_date: date
    target_date: date
    is_stale: bool


def is_weekend(value: date) -> bool:
    return value.weekday() in (SATURDAY, SUNDAY)


class BusinessDateResolver:
    """
    Calendar arithmetic in the configured business timezone.

    `today_provider` overrides the wall clock (tests, backfills).
    """

    def __init__(
        self,
        timezone_name: str = "America/Bogota",
        *,
        stale_after_days: int = 1,
        today_provider: Optional[Callable[[], date]] = None,
    ):
        self.timezone = ZoneInfo(timezone_name)
        self.stale_after_days = stale_after_days
        self._today_provider = today_provider

    @classmethod
    def from_config(cls, config, **kwargs) -> "BusinessDateResolver":
        return cls(
            config.get("BUSINESS_TIMEZONE", "America/Bogota"),
            stale_after_days=int(config.get("STALE_AFTER_DAYS", 1)),
            **kwargs,
        )

    def current_date(self) -> date:
        if self._today_provider is not None:
            return self._today_provider()
        return datetime.now(self.timezone).date()

    def next_business_date(self, value: date | str, skip_weekends: bool = False) -> date:
        """One calendar day later; with skip_weekends, keep going past Sat/Sun."""
        current = parse_plain_date(value)
        nxt = current + timedelta(days=1)
        if skip_weekends:
            while is_weekend(nxt):
                nxt += timedelta(days=1)
        return nxt

    def days_difference(self, first: date | str, second: date | str) -> int:
        return abs((parse_plain_date(second) - parse_plain_date(first)).days)

    def is_stale(self, assignment_date: date | str, current: Optional[date] = None) -> bool:
        today = current or self.current_date()
        return self.days_difference(assignment_date, today) > self.stale_after_days

    def resolve_consolidation_date(self, assignment_date: date | str, skip_weekends: bool = False) -> ConsolidationDate:
        source = parse_plain_date(assignment_date)
        today = self.current_date()
        stale = self.is_stale(source, today)
        base = today if stale else source
        return ConsolidationDate(
            source_date=source,
            current_date=today,
            base_date=base,
            target_date=self.next_business_date(base, skip_weekends),
            is_stale=stale,
        )
