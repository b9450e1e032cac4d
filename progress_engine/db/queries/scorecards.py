"""Weekly scorecard database queries"""
import logging
from typing import Optional
from datetime import date
from progress_engine.db.connection import db, storage_errors

logger = logging.getLogger(__name__)

SCORECARD_COLUMNS = (
    "user_id, week_start, avg_mood, avg_energy, avg_stress, avg_sleep_hours, "
    "avg_sleep_quality, total_habits_completed, total_journal_entries"
)


async def upsert_weekly_scorecard(scorecard: dict) -> dict:
    """
    Store a computed scorecard, replacing any earlier computation for the week

    Returns:
        Stored row
    """
    user_id = scorecard['user_id']
    week_start = scorecard['week_start']
    async with storage_errors("upsert_weekly_scorecard", user_id=user_id, entity="weekly_scorecards", key=str(week_start)):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    INSERT INTO weekly_scorecards
                        (user_id, week_start, avg_mood, avg_energy, avg_stress, avg_sleep_hours,
                         avg_sleep_quality, total_habits_completed, total_journal_entries)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, week_start)
                    DO UPDATE SET avg_mood = EXCLUDED.avg_mood,
                                  avg_energy = EXCLUDED.avg_energy,
                                  avg_stress = EXCLUDED.avg_stress,
                                  avg_sleep_hours = EXCLUDED.avg_sleep_hours,
                                  avg_sleep_quality = EXCLUDED.avg_sleep_quality,
                                  total_habits_completed = EXCLUDED.total_habits_completed,
                                  total_journal_entries = EXCLUDED.total_journal_entries,
                                  computed_at = CURRENT_TIMESTAMP
                    RETURNING {SCORECARD_COLUMNS}
                    """,
                    (
                        user_id,
                        week_start,
                        scorecard.get('avg_mood'),
                        scorecard.get('avg_energy'),
                        scorecard.get('avg_stress'),
                        scorecard.get('avg_sleep_hours'),
                        scorecard.get('avg_sleep_quality'),
                        scorecard.get('total_habits_completed', 0),
                        scorecard.get('total_journal_entries', 0),
                    )
                )
                row = await cur.fetchone()
                await conn.commit()
                return dict(row)


async def get_weekly_scorecard(user_id: str, week_start: date) -> Optional[dict]:
    """Get the stored scorecard for one week"""
    async with storage_errors("get_weekly_scorecard", user_id=user_id, entity="weekly_scorecards", key=str(week_start)):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {SCORECARD_COLUMNS}
                    FROM weekly_scorecards
                    WHERE user_id = %s AND week_start = %s
                    """,
                    (user_id, week_start)
                )
                row = await cur.fetchone()
                return dict(row) if row else None


async def get_user_scorecards(user_id: str, limit: int = 12) -> list[dict]:
    """
    Get the user's most recent scorecards

    Returns:
        Rows ordered by week_start DESC
    """
    async with storage_errors("get_user_scorecards", user_id=user_id, entity="weekly_scorecards", key=user_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {SCORECARD_COLUMNS}
                    FROM weekly_scorecards
                    WHERE user_id = %s
                    ORDER BY week_start DESC
                    LIMIT %s
                    """,
                    (user_id, limit)
                )
                rows = await cur.fetchall()
                return [dict(row) for row in rows]
