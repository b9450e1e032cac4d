"""Activity fact database queries"""
import logging
from typing import Optional, Any
from datetime import datetime, date
from psycopg.types.json import Jsonb
from progress_engine.db.connection import db, storage_errors

logger = logging.getLogger(__name__)

ACTIVITY_EVENT_COLUMNS = "id::text AS id, user_id, activity_type, occurred_at, payload, event_key"
DAILY_METRICS_COLUMNS = (
    "id::text AS id, user_id, date, mood_score, energy_score, stress_score, "
    "sleep_hours, sleep_quality, notes"
)
MICRO_SESSION_COLUMNS = (
    "user_id, date, duration_seconds, target_duration_seconds, completed, session_type, notes"
)


# ==========================================
# Timestamped events (mood, journal)
# ==========================================

async def insert_activity_event(
    user_id: str,
    activity_type: str,
    occurred_at: datetime,
    payload: dict[str, Any],
    event_key: Optional[str] = None
) -> tuple[dict, bool]:
    """
    Insert an immutable activity event

    A retried write carrying the same event_key returns the stored row
    instead of creating a second fact.

    Returns:
        (row, created)
    """
    async with storage_errors("insert_activity_event", user_id=user_id, entity="activity_events", key=event_key):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    INSERT INTO activity_events (user_id, activity_type, occurred_at, payload, event_key)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, event_key) WHERE event_key IS NOT NULL DO NOTHING
                    RETURNING {ACTIVITY_EVENT_COLUMNS}
                    """,
                    (user_id, activity_type, occurred_at, Jsonb(payload), event_key)
                )
                row = await cur.fetchone()
                created = row is not None

                if not created:
                    await cur.execute(
                        f"""
                        SELECT {ACTIVITY_EVENT_COLUMNS}
                        FROM activity_events
                        WHERE user_id = %s AND event_key = %s
                        """,
                        (user_id, event_key)
                    )
                    row = await cur.fetchone()
                    logger.info(f"Duplicate activity event {event_key} for user {user_id} ignored")

                await conn.commit()
                return dict(row), created


async def get_activity_timestamps(
    user_id: str,
    activity_type: str,
    since: Optional[datetime] = None,
    until: Optional[datetime] = None
) -> list[datetime]:
    """
    Get occurred_at of every event of one type, optionally inside [since, until)
    """
    async with storage_errors("get_activity_timestamps", user_id=user_id, entity="activity_events", key=activity_type):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT occurred_at
                    FROM activity_events
                    WHERE user_id = %s
                      AND activity_type = %s
                      AND (%s::timestamptz IS NULL OR occurred_at >= %s)
                      AND (%s::timestamptz IS NULL OR occurred_at < %s)
                    ORDER BY occurred_at DESC
                    """,
                    (user_id, activity_type, since, since, until, until)
                )
                rows = await cur.fetchall()
                return [row['occurred_at'] for row in rows]


async def count_activity_events(user_id: str, activity_type: str) -> int:
    """Count every stored event of one type"""
    async with storage_errors("count_activity_events", user_id=user_id, entity="activity_events", key=activity_type):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT COUNT(*) AS count
                    FROM activity_events
                    WHERE user_id = %s AND activity_type = %s
                    """,
                    (user_id, activity_type)
                )
                row = await cur.fetchone()
                return row['count'] if row else 0


# ==========================================
# Habit completions
# ==========================================

async def upsert_habit_completion(habit_id: str, user_id: str, completion_date: date, completed: bool) -> dict:
    """
    Set the completion flag of one habit on one day

    Returns:
        Stored row
    """
    async with storage_errors("upsert_habit_completion", user_id=user_id, entity="habit_completions", key=f"{habit_id}:{completion_date}"):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO habit_completions (habit_id, user_id, date, completed)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (user_id, habit_id, date)
                    DO UPDATE SET completed = EXCLUDED.completed, updated_at = CURRENT_TIMESTAMP
                    RETURNING habit_id, user_id, date, completed
                    """,
                    (habit_id, user_id, completion_date, completed)
                )
                row = await cur.fetchone()
                await conn.commit()
                return dict(row)


async def get_completed_habit_dates(user_id: str) -> list[date]:
    """Distinct days on which the user completed at least one habit"""
    async with storage_errors("get_completed_habit_dates", user_id=user_id, entity="habit_completions", key=user_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT DISTINCT date
                    FROM habit_completions
                    WHERE user_id = %s AND completed
                    ORDER BY date DESC
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()
                return [row['date'] for row in rows]


async def count_completed_habits(
    user_id: str,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None
) -> int:
    """Count completed habit rows, optionally inside an inclusive date window"""
    async with storage_errors("count_completed_habits", user_id=user_id, entity="habit_completions", key=user_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT COUNT(*) AS count
                    FROM habit_completions
                    WHERE user_id = %s
                      AND completed
                      AND (%s::date IS NULL OR date >= %s)
                      AND (%s::date IS NULL OR date <= %s)
                    """,
                    (user_id, start_date, start_date, end_date, end_date)
                )
                row = await cur.fetchone()
                return row['count'] if row else 0


# ==========================================
# Micro-sessions
# ==========================================

async def upsert_micro_session(
    user_id: str,
    session_date: date,
    duration_seconds: int,
    completed: bool,
    notes: Optional[str] = None
) -> dict:
    """
    Create or update the user's micro-session for one day

    Returns:
        Stored row
    """
    async with storage_errors("upsert_micro_session", user_id=user_id, entity="micro_sessions", key=str(session_date)):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    INSERT INTO micro_sessions (user_id, date, duration_seconds, completed, notes)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, date)
                    DO UPDATE SET duration_seconds = EXCLUDED.duration_seconds,
                                  completed = EXCLUDED.completed,
                                  notes = COALESCE(EXCLUDED.notes, micro_sessions.notes)
                    RETURNING {MICRO_SESSION_COLUMNS}
                    """,
                    (user_id, session_date, duration_seconds, completed, notes)
                )
                row = await cur.fetchone()
                await conn.commit()
                return dict(row)


async def get_completed_micro_session_dates(user_id: str) -> list[date]:
    """Days with a completed micro-session"""
    async with storage_errors("get_completed_micro_session_dates", user_id=user_id, entity="micro_sessions", key=user_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT date
                    FROM micro_sessions
                    WHERE user_id = %s AND completed
                    ORDER BY date DESC
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()
                return [row['date'] for row in rows]


# ==========================================
# Daily metrics
# ==========================================

async def upsert_daily_metrics(user_id: str, metrics_date: date, values: dict[str, Any]) -> dict:
    """
    Create or update the user's daily metrics for one day

    Fields submitted as None keep their stored value.

    Returns:
        Stored row
    """
    async with storage_errors("upsert_daily_metrics", user_id=user_id, entity="daily_metrics", key=str(metrics_date)):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    INSERT INTO daily_metrics
                        (user_id, date, mood_score, energy_score, stress_score, sleep_hours, sleep_quality, notes)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, date)
                    DO UPDATE SET mood_score = COALESCE(EXCLUDED.mood_score, daily_metrics.mood_score),
                                  energy_score = COALESCE(EXCLUDED.energy_score, daily_metrics.energy_score),
                                  stress_score = COALESCE(EXCLUDED.stress_score, daily_metrics.stress_score),
                                  sleep_hours = COALESCE(EXCLUDED.sleep_hours, daily_metrics.sleep_hours),
                                  sleep_quality = COALESCE(EXCLUDED.sleep_quality, daily_metrics.sleep_quality),
                                  notes = COALESCE(EXCLUDED.notes, daily_metrics.notes),
                                  updated_at = CURRENT_TIMESTAMP
                    RETURNING {DAILY_METRICS_COLUMNS}
                    """,
                    (
                        user_id,
                        metrics_date,
                        values.get('mood_score'),
                        values.get('energy_score'),
                        values.get('stress_score'),
                        values.get('sleep_hours'),
                        values.get('sleep_quality'),
                        values.get('notes'),
                    )
                )
                row = await cur.fetchone()
                await conn.commit()
                return dict(row)


async def get_daily_metrics_between(user_id: str, start_date: date, end_date: date) -> list[dict]:
    """
    Get daily metrics inside an inclusive date window

    Returns:
        Rows ordered by date ASC
    """
    async with storage_errors("get_daily_metrics_between", user_id=user_id, entity="daily_metrics", key=f"{start_date}:{end_date}"):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {DAILY_METRICS_COLUMNS}
                    FROM daily_metrics
                    WHERE user_id = %s AND date BETWEEN %s AND %s
                    ORDER BY date ASC
                    """,
                    (user_id, start_date, end_date)
                )
                rows = await cur.fetchall()
                return [dict(row) for row in rows]
