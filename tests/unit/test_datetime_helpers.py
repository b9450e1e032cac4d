"""Unit tests for calendar normalization (progress_engine/utils/datetime_helpers.py)"""
import pytest
from datetime import date, datetime, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from progress_engine.exceptions import ValidationError
from progress_engine.utils import datetime_helpers
from progress_engine.utils.datetime_helpers import (
    CalendarPolicy,
    normalize,
    parse_date,
    today,
    week_bounds,
    week_start_for,
)


# ============================================================================
# normalize
# ============================================================================

def test_normalize_aware_utc_datetime():
    """UTC timestamps truncate to their UTC day"""
    assert normalize(datetime(2025, 3, 12, 23, 59, tzinfo=timezone.utc)) == date(2025, 3, 12)


def test_normalize_naive_datetime_is_utc():
    """Naive datetimes are interpreted as UTC"""
    stockholm = CalendarPolicy("Europe/Stockholm")
    # 23:30 UTC is 00:30 the next day in Stockholm (CET, UTC+1)
    assert normalize(datetime(2025, 1, 10, 23, 30), stockholm) == date(2025, 1, 11)


def test_normalize_converts_into_policy_timezone():
    """Aware timestamps are converted before truncation"""
    new_york = CalendarPolicy("America/New_York")
    ts = datetime(2025, 3, 12, 2, 0, tzinfo=timezone.utc)  # 22:00 the previous evening in New York

    assert normalize(ts, new_york) == date(2025, 3, 11)
    assert normalize(ts) == date(2025, 3, 12)


def test_normalize_date_passes_through():
    """A calendar date is already normalized"""
    assert normalize(date(2025, 3, 12)) == date(2025, 3, 12)


def test_normalize_is_deterministic_across_offsets():
    """The same instant in different offsets maps to the same day"""
    instant = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)
    tokyo = instant.astimezone(ZoneInfo("Asia/Tokyo"))
    los_angeles = instant.astimezone(ZoneInfo("America/Los_Angeles"))

    assert normalize(instant) == normalize(tokyo) == normalize(los_angeles)


# ============================================================================
# policy and today
# ============================================================================

def test_today_uses_policy():
    """today() truncates 'now' under the policy"""
    now = datetime(2025, 3, 12, 23, 30, tzinfo=timezone.utc)

    assert today(now=now) == date(2025, 3, 12)
    assert today(CalendarPolicy("Asia/Tokyo"), now=now) == date(2025, 3, 13)


def test_set_policy_changes_default():
    """The process-wide policy is used when none is passed"""
    datetime_helpers.set_policy(CalendarPolicy("Asia/Tokyo"))

    assert datetime_helpers.get_policy().timezone_name == "Asia/Tokyo"
    assert normalize(datetime(2025, 3, 12, 20, 0, tzinfo=timezone.utc)) == date(2025, 3, 13)


def test_unknown_timezone_rejected():
    """An invalid policy cannot be constructed"""
    with pytest.raises(ZoneInfoNotFoundError):
        CalendarPolicy("Mars/Olympus_Mons")


# ============================================================================
# parse_date
# ============================================================================

def test_parse_date_iso_string():
    assert parse_date("2025-03-12") == date(2025, 3, 12)


def test_parse_date_date_object():
    assert parse_date(date(2025, 3, 12)) == date(2025, 3, 12)


@pytest.mark.parametrize("value", ["12/03/2025", "2025-13-01", "", "yesterday"])
def test_parse_date_malformed(value):
    """Malformed strings raise ValidationError"""
    with pytest.raises(ValidationError) as exc_info:
        parse_date(value, "checkin_date")
    assert exc_info.value.field == "checkin_date"


def test_parse_date_rejects_timestamps():
    """Timestamps must go through normalize, not parse_date"""
    with pytest.raises(ValidationError):
        parse_date(datetime(2025, 3, 12, 9, 0, tzinfo=timezone.utc))


# ============================================================================
# weeks
# ============================================================================

def test_week_start_for_every_weekday():
    """Every day of an ISO week maps to its Monday"""
    monday = date(2025, 3, 10)
    for offset in range(7):
        assert week_start_for(monday + timedelta(days=offset)) == monday


def test_week_start_for_crosses_year_boundary():
    assert week_start_for(date(2025, 1, 1)) == date(2024, 12, 30)


def test_week_bounds():
    assert week_bounds(date(2025, 3, 10)) == (date(2025, 3, 10), date(2025, 3, 16))
