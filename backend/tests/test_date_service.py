from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from stockroll.services.date_service import BusinessDateResolver, is_weekend
from stockroll.time_utils import format_plain_date, parse_plain_date

TODAY = date(2026, 3, 4)  # Wednesday


def _resolver(today=TODAY, **kwargs):
    return BusinessDateResolver("America/Bogota", today_provider=lambda: today, **kwargs)


def test_next_business_date_adds_one_calendar_day():
    assert _resolver().next_business_date(date(2026, 3, 4)) == date(2026, 3, 5)


def test_next_business_date_keeps_weekends_by_default():
    # Friday -> Saturday
    assert _resolver().next_business_date(date(2026, 3, 6)) == date(2026, 3, 7)


@pytest.mark.parametrize("start", [date(2026, 3, 6), date(2026, 3, 7), date(2026, 3, 8)])
def test_next_business_date_skips_to_monday(start):
    assert _resolver().next_business_date(start, skip_weekends=True) == date(2026, 3, 9)


def test_next_business_date_accepts_plain_string_across_month_end():
    assert _resolver().next_business_date("2026-02-28") == date(2026, 3, 1)


def test_parse_plain_date_rejects_datetime_strings():
    with pytest.raises(ValueError):
        parse_plain_date("2026-03-04T23:00:00Z")


def test_format_plain_date_round_trips():
    assert format_plain_date(parse_plain_date("2026-03-04")) == "2026-03-04"


def test_is_weekend():
    assert is_weekend(date(2026, 3, 7))
    assert is_weekend(date(2026, 3, 8))
    assert not is_weekend(date(2026, 3, 9))


def test_days_difference_is_absolute():
    r = _resolver()
    assert r.days_difference(date(2026, 3, 1), date(2026, 3, 4)) == 3
    assert r.days_difference(date(2026, 3, 4), date(2026, 3, 1)) == 3


def test_one_day_behind_is_not_stale():
    r = _resolver()
    assert not r.is_stale(date(2026, 3, 3))
    assert not r.is_stale(TODAY)


def test_two_days_behind_is_stale():
    assert _resolver().is_stale(date(2026, 3, 2))


def test_consolidation_date_uses_assignment_date_when_fresh():
    result = _resolver().resolve_consolidation_date(date(2026, 3, 3))
    assert not result.is_stale
    assert result.base_date == date(2026, 3, 3)
    assert result.target_date == date(2026, 3, 4)


def test_consolidation_date_recovers_from_today_when_stale():
    result = _resolver().resolve_consolidation_date(date(2026, 2, 27))
    assert result.is_stale
    assert result.source_date == date(2026, 2, 27)
    assert result.base_date == TODAY
    assert result.target_date == date(2026, 3, 5)


def test_stale_recovery_on_friday_with_weekend_skip_lands_on_monday():
    result = _resolver(today=date(2026, 3, 6)).resolve_consolidation_date(date(2026, 3, 1), skip_weekends=True)
    assert result.target_date == date(2026, 3, 9)


def test_stale_threshold_is_configurable():
    r = _resolver(stale_after_days=3)
    assert not r.is_stale(date(2026, 3, 1))
    assert r.is_stale(date(2026, 2, 28))


def test_current_date_uses_business_zone_not_utc():
    # 03:00 UTC on the 5th is still the evening of the 4th in Bogota (UTC-5)
    instant = datetime(2026, 3, 5, 3, 0, tzinfo=timezone.utc)
    assert instant.astimezone(ZoneInfo("America/Bogota")).date() == date(2026, 3, 4)

    r = BusinessDateResolver("America/Bogota")
    assert r.current_date() == datetime.now(ZoneInfo("America/Bogota")).date()


def test_from_config_reads_zone_and_threshold():
    r = BusinessDateResolver.from_config({"BUSINESS_TIMEZONE": "UTC", "STALE_AFTER_DAYS": 2})
    assert r.timezone == ZoneInfo("UTC")
    assert r.stale_after_days == 2
