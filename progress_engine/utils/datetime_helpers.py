"""
Calendar Normalization Utilities

Every activity date in the engine is derived here, through one policy, so that
streak and dedup math agree on where a day starts and ends.

CRITICAL RULES:
- There is exactly one calendar policy (ENGINE_TIMEZONE); call sites never pick their own
- Naive datetimes are interpreted as UTC
- A date passes through normalization unchanged
- Weeks start on Monday (ISO), independent of locale
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, date, timedelta, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo

from progress_engine import config
from progress_engine.exceptions import ValidationError

logger = logging.getLogger(__name__)

UTC = ZoneInfo("UTC")


@dataclass(frozen=True)
class CalendarPolicy:
    """
    Single timezone in which timestamps are truncated to calendar days

    Args:
        timezone_name: IANA timezone name (e.g. "UTC", "Europe/Stockholm")
    """
    timezone_name: str = "UTC"
    tz: ZoneInfo = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "tz", ZoneInfo(self.timezone_name))

    def normalize(self, value: Union[datetime, date]) -> date:
        """Truncate a timestamp to its calendar day under this policy"""
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=UTC)
            return value.astimezone(self.tz).date()
        return value

    def today(self, now: Optional[datetime] = None) -> date:
        """Today's calendar day under this policy"""
        return self.normalize(now or datetime.now(timezone.utc))


_default_policy: Optional[CalendarPolicy] = None


def get_policy() -> CalendarPolicy:
    """
    Get the process-wide calendar policy (built lazily from ENGINE_TIMEZONE)

    Returns:
        CalendarPolicy shared by every engine component
    """
    global _default_policy
    if _default_policy is None:
        _default_policy = CalendarPolicy(config.ENGINE_TIMEZONE)
        logger.info(f"Calendar policy initialized: {_default_policy.timezone_name}")
    return _default_policy


def set_policy(policy: CalendarPolicy) -> None:
    """Replace the process-wide calendar policy (startup wiring and tests)"""
    global _default_policy
    _default_policy = policy
    logger.info(f"Calendar policy set to {policy.timezone_name}")


def normalize(value: Union[datetime, date], policy: Optional[CalendarPolicy] = None) -> date:
    """
    Convert a timestamp into its canonical activity date

    Args:
        value: Aware or naive datetime, or an already-normalized date
        policy: Calendar policy (defaults to the process-wide policy)

    Returns:
        Calendar day key
    """
    return (policy or get_policy()).normalize(value)


def today(policy: Optional[CalendarPolicy] = None, now: Optional[datetime] = None) -> date:
    """
    Get today's activity date

    Args:
        policy: Calendar policy (defaults to the process-wide policy)
        now: Current instant (defaults to the wall clock)

    Returns:
        Today's calendar day under the policy
    """
    return (policy or get_policy()).today(now)


def now_utc() -> datetime:
    """
    Get current datetime in UTC (timezone-aware)

    Returns:
        Current datetime in UTC with timezone info
    """
    return datetime.now(UTC)


def parse_date(value: Union[str, date], field_name: str = "date") -> date:
    """
    Parse a calendar day supplied at the engine boundary

    Supports:
    - date objects (datetimes are rejected; normalize them instead)
    - YYYY-MM-DD strings

    Raises:
        ValidationError: If value is not a date or an ISO date string
    """
    if isinstance(value, datetime):
        raise ValidationError(
            "Expected a calendar date, got a timestamp",
            field=field_name,
            value=value.isoformat()
        )
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return datetime.strptime(value, "%Y-%m-%d").date()
        except ValueError as e:
            raise ValidationError(
                f"Invalid date format '{value}'. Expected YYYY-MM-DD",
                field=field_name,
                value=value
            ) from e
    raise ValidationError(
        f"Invalid date format '{value}'. Expected YYYY-MM-DD",
        field=field_name,
        value=value
    )


def week_start_for(day: date) -> date:
    """
    Get the Monday that starts the ISO week containing day

    Args:
        day: Any calendar date

    Returns:
        Monday of the same ISO week
    """
    return day - timedelta(days=day.weekday())


def week_bounds(week_start: date) -> tuple[date, date]:
    """Inclusive [Monday, Sunday] window for a week start"""
    return week_start, week_start + timedelta(days=6)
