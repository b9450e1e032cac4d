"""
Weekly Scorecard Aggregation

A scorecard summarizes one Monday-anchored week: means of the daily
metrics that were actually logged, plus completed habits and journal
entries. Scorecards are projections; aggregating again overwrites the
stored row with the same values when no new data arrived.
"""

from datetime import date, datetime, time, timedelta
from typing import List, Optional
import logging

from progress_engine.db import queries
from progress_engine.exceptions import ValidationError
from progress_engine.models.activity import ActivityType
from progress_engine.models.scorecard import WeeklyScorecard
from progress_engine.observability.metrics import scorecard_aggregation_duration_seconds
from progress_engine.utils.datetime_helpers import UTC, normalize, week_bounds

logger = logging.getLogger(__name__)

SCORECARD_HISTORY_MAX_LIMIT = 100

# daily_metrics column -> scorecard field
AVERAGED_METRICS = {
    "mood_score": "avg_mood",
    "energy_score": "avg_energy",
    "stress_score": "avg_stress",
    "sleep_hours": "avg_sleep_hours",
    "sleep_quality": "avg_sleep_quality",
}


def mean_of_present(values: List[Optional[float]]) -> Optional[float]:
    """Mean over non-null values; None when every value is null"""
    present = [float(v) for v in values if v is not None]
    if not present:
        return None
    return sum(present) / len(present)


def _require_monday(week_start: date, user_id: Optional[str] = None) -> None:
    if week_start.weekday() != 0:
        raise ValidationError(
            f"Week start {week_start.isoformat()} is not a Monday",
            field="week_start",
            value=week_start.isoformat(),
            user_id=user_id
        )


async def _count_journal_entries(user_id: str, start: date, end: date) -> int:
    # Fetch a padded UTC window, then keep entries whose policy date falls in the week
    since = datetime.combine(start - timedelta(days=1), time.min, tzinfo=UTC)
    until = datetime.combine(end + timedelta(days=2), time.min, tzinfo=UTC)
    timestamps = await queries.get_activity_timestamps(
        user_id, ActivityType.JOURNAL_ENTRY.value, since=since, until=until
    )
    return sum(1 for ts in timestamps if start <= normalize(ts) <= end)


async def aggregate(user_id: str, week_start: date) -> WeeklyScorecard:
    """
    Compute and store the scorecard for one week

    Args:
        user_id: User ID
        week_start: Monday that starts the week

    Returns:
        Stored WeeklyScorecard

    Raises:
        ValidationError: If week_start is not a Monday
    """
    _require_monday(week_start, user_id)
    start, end = week_bounds(week_start)

    with scorecard_aggregation_duration_seconds.time():
        metrics = await queries.get_daily_metrics_between(user_id, start, end)
        habits_completed = await queries.count_completed_habits(user_id, start, end)
        journal_entries = await _count_journal_entries(user_id, start, end)

        scorecard = WeeklyScorecard(
            user_id=user_id,
            week_start=week_start,
            total_habits_completed=habits_completed,
            total_journal_entries=journal_entries,
            **{
                field_name: mean_of_present([row.get(column) for row in metrics])
                for column, field_name in AVERAGED_METRICS.items()
            }
        )

        row = await queries.upsert_weekly_scorecard(scorecard.model_dump())

    logger.info(
        f"Weekly scorecard for user {user_id}, week of {week_start.isoformat()}: "
        f"{len(metrics)} check-ins, {habits_completed} habits, {journal_entries} journal entries"
    )
    return WeeklyScorecard(**row)


async def get_weekly_scorecard(user_id: str, week_start: date) -> Optional[WeeklyScorecard]:
    """Get the stored scorecard for one week without recomputing it"""
    _require_monday(week_start, user_id)
    row = await queries.get_weekly_scorecard(user_id, week_start)
    return WeeklyScorecard(**row) if row else None


async def get_user_scorecards(user_id: str, limit: int = 12) -> List[WeeklyScorecard]:
    """
    Get user's stored scorecards, most recent week first

    Args:
        user_id: User ID
        limit: Number of weeks (clamped to 1-100)
    """
    limit = max(1, min(limit, SCORECARD_HISTORY_MAX_LIMIT))
    rows = await queries.get_user_scorecards(user_id, limit)
    return [WeeklyScorecard(**row) for row in rows]
