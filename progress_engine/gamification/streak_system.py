"""
Consecutive-Day Streak Calculation

Streaks are computed on read from the full set of activity dates for one
(user, activity type); nothing about a streak is stored, so out-of-order
and retried writes cannot corrupt it.

Rules:
- current: anchored at today if active today, else yesterday, else 0,
  then extended backwards one day at a time
- longest: longest run of consecutive days anywhere in the history
- longest >= current always holds
- Dates after today (clock skew) never anchor current, but count toward longest
"""

from typing import Dict, Iterable, List, Optional
from datetime import date, timedelta
import logging

from progress_engine.db import queries
from progress_engine.exceptions import ValidationError
from progress_engine.models.activity import ActivityType
from progress_engine.models.gamification import StreakState
from progress_engine.utils.datetime_helpers import normalize, today as policy_today

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def calculate_streak(dates: Iterable[date], today: date) -> StreakState:
    """
    Calculate current and longest streak from activity dates

    Args:
        dates: Calendar days with activity, in any order, duplicates allowed
        today: Today's calendar day under the engine's policy

    Returns:
        StreakState(current, longest)
    """
    unique_dates = set(dates)
    if not unique_dates:
        return StreakState(current=0, longest=0)

    if today in unique_dates:
        anchor = today
    elif today - ONE_DAY in unique_dates:
        anchor = today - ONE_DAY
    else:
        anchor = None

    current = 0
    if anchor is not None:
        expected = anchor
        while expected in unique_dates:
            current += 1
            expected -= ONE_DAY

    longest = 0
    run = 0
    previous: Optional[date] = None
    for day in sorted(unique_dates):
        if previous is not None and day - previous == ONE_DAY:
            run += 1
        else:
            run = 1
        longest = max(longest, run)
        previous = day

    return StreakState(current=current, longest=max(longest, current))


async def get_activity_dates(user_id: str, activity_type: ActivityType) -> List[date]:
    """
    Load the authoritative calendar days for one activity type

    Timestamped events are normalized through the calendar policy here;
    the other sources already store calendar days.
    """
    if activity_type in (ActivityType.MOOD_LOG, ActivityType.JOURNAL_ENTRY):
        timestamps = await queries.get_activity_timestamps(user_id, activity_type.value)
        return [normalize(ts) for ts in timestamps]
    if activity_type == ActivityType.HABIT_COMPLETION:
        return await queries.get_completed_habit_dates(user_id)
    if activity_type == ActivityType.MICRO_SESSION:
        return await queries.get_completed_micro_session_dates(user_id)
    if activity_type == ActivityType.CHALLENGE_CHECKIN:
        return await queries.get_completed_checkin_dates(user_id)
    raise ValidationError(
        f"Unsupported activity type: {activity_type}",
        field="activity_type",
        value=activity_type,
        user_id=user_id
    )


async def get_streak(
    user_id: str,
    activity_type: ActivityType,
    *,
    today: Optional[date] = None
) -> StreakState:
    """
    Get user's streak for one activity type

    Args:
        user_id: User ID
        activity_type: Which activity to compute the streak for
        today: Override for today's date (defaults to the calendar policy's today)

    Returns:
        StreakState(current, longest)
    """
    dates = await get_activity_dates(user_id, activity_type)
    streak = calculate_streak(dates, today or policy_today())
    logger.debug(
        f"Streak for user {user_id} ({activity_type.value}): "
        f"current={streak.current}, longest={streak.longest}"
    )
    return streak


async def get_all_streaks(user_id: str, *, today: Optional[date] = None) -> Dict[ActivityType, StreakState]:
    """
    Get user's streaks for every activity type

    Returns:
        {ActivityType: StreakState}
    """
    today = today or policy_today()
    return {
        activity_type: await get_streak(user_id, activity_type, today=today)
        for activity_type in ActivityType
    }
