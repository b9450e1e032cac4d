"""Challenge participation database queries"""
import logging
from typing import Callable, Optional
from datetime import date
from progress_engine.db.connection import db, storage_errors

logger = logging.getLogger(__name__)

CHALLENGE_COLUMNS = "id, title, duration_days, start_date, end_date, is_active"
PARTICIPANT_COLUMNS = (
    "id::text AS id, challenge_id, user_id, current_streak, best_streak, "
    "total_completions, last_completed_date, status, joined_at"
)
CHECKIN_COLUMNS = "id::text AS id, participant_id::text AS participant_id, date, completed, counted, notes"


async def get_challenge(challenge_id: str) -> Optional[dict]:
    """Get a challenge by ID"""
    async with storage_errors("get_challenge", entity="challenges", key=challenge_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"SELECT {CHALLENGE_COLUMNS} FROM challenges WHERE id = %s",
                    (challenge_id,)
                )
                row = await cur.fetchone()
                return dict(row) if row else None


async def get_participant(participant_id: str) -> Optional[dict]:
    """Get a participant by ID"""
    async with storage_errors("get_participant", entity="challenge_participants", key=participant_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"SELECT {PARTICIPANT_COLUMNS} FROM challenge_participants WHERE id = %s",
                    (participant_id,)
                )
                row = await cur.fetchone()
                return dict(row) if row else None


async def upsert_participant(challenge_id: str, user_id: str) -> dict:
    """
    Join a challenge, or re-activate an existing participation

    Counters survive leaving and re-joining.

    Returns:
        Participant row
    """
    async with storage_errors("upsert_participant", user_id=user_id, entity="challenge_participants", key=challenge_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    INSERT INTO challenge_participants (challenge_id, user_id)
                    VALUES (%s, %s)
                    ON CONFLICT (challenge_id, user_id)
                    DO UPDATE SET status = 'active'
                    RETURNING {PARTICIPANT_COLUMNS}
                    """,
                    (challenge_id, user_id)
                )
                row = await cur.fetchone()
                await conn.commit()
                return dict(row)


async def update_participant_status(challenge_id: str, user_id: str, status: str) -> Optional[dict]:
    """
    Set the lifecycle status of a participation

    Returns:
        Updated row, or None when the user never joined
    """
    async with storage_errors("update_participant_status", user_id=user_id, entity="challenge_participants", key=challenge_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    UPDATE challenge_participants
                    SET status = %s
                    WHERE challenge_id = %s AND user_id = %s
                    RETURNING {PARTICIPANT_COLUMNS}
                    """,
                    (status, challenge_id, user_id)
                )
                row = await cur.fetchone()
                await conn.commit()
                return dict(row) if row else None


async def apply_challenge_checkin(
    participant_id: str,
    checkin_date: date,
    completed: bool,
    notes: Optional[str],
    next_counters: Callable[[dict, bool, date], Optional[dict]],
    lock_timeout_ms: int
) -> Optional[dict]:
    """
    Upsert a check-in and update the participant counters under a row lock

    The participant row is locked with SELECT ... FOR UPDATE so concurrent
    check-ins for the same participant serialize. A day is counted at most
    once, tracked by the check-in's counted flag.

    Args:
        participant_id: Participant ID
        checkin_date: Normalized calendar day
        completed: Completion flag for the day
        notes: Optional notes (kept when omitted on re-submit)
        next_counters: Maps (participant, newly_completed, date) to the new
            counter values, or None when they are unchanged. May raise to
            reject the check-in.
        lock_timeout_ms: How long to wait for the participant lock

    Returns:
        {
            'checkin': dict,
            'participant': dict,
            'newly_completed': bool
        }
        or None when the participant does not exist
    """
    async with storage_errors("challenge_checkin", entity="challenge_participants", key=participant_id):
        async with db.transaction() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "SELECT set_config('lock_timeout', %s, true)",
                    (f"{lock_timeout_ms}ms",)
                )
                await cur.execute(
                    f"""
                    SELECT {PARTICIPANT_COLUMNS}
                    FROM challenge_participants
                    WHERE id = %s
                    FOR UPDATE
                    """,
                    (participant_id,)
                )
                participant = await cur.fetchone()
                if participant is None:
                    return None

                await cur.execute(
                    f"""
                    SELECT {CHECKIN_COLUMNS}
                    FROM challenge_checkins
                    WHERE participant_id = %s AND date = %s
                    """,
                    (participant_id, checkin_date)
                )
                prior = await cur.fetchone()
                already_counted = bool(prior and prior['counted'])
                newly_completed = completed and not already_counted

                counters = next_counters(dict(participant), newly_completed, checkin_date)

                await cur.execute(
                    f"""
                    INSERT INTO challenge_checkins (participant_id, date, completed, counted, notes)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (participant_id, date)
                    DO UPDATE SET completed = EXCLUDED.completed,
                                  counted = challenge_checkins.counted OR EXCLUDED.counted,
                                  notes = COALESCE(EXCLUDED.notes, challenge_checkins.notes)
                    RETURNING {CHECKIN_COLUMNS}
                    """,
                    (participant_id, checkin_date, completed, newly_completed, notes)
                )
                checkin = await cur.fetchone()

                if counters is not None:
                    await cur.execute(
                        f"""
                        UPDATE challenge_participants
                        SET current_streak = %s,
                            best_streak = %s,
                            total_completions = %s,
                            last_completed_date = %s
                        WHERE id = %s
                        RETURNING {PARTICIPANT_COLUMNS}
                        """,
                        (
                            counters['current_streak'],
                            counters['best_streak'],
                            counters['total_completions'],
                            counters['last_completed_date'],
                            participant_id,
                        )
                    )
                    participant = await cur.fetchone()

                return {
                    'checkin': dict(checkin),
                    'participant': dict(participant),
                    'newly_completed': newly_completed,
                }


async def get_challenge_participants_ranked(challenge_id: str) -> list[dict]:
    """
    Get participants in leaderboard order

    Ties on total_completions go to the earlier joiner, then the lower id.
    """
    async with storage_errors("get_challenge_participants_ranked", entity="challenge_participants", key=challenge_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {PARTICIPANT_COLUMNS}
                    FROM challenge_participants
                    WHERE challenge_id = %s
                    ORDER BY total_completions DESC, joined_at ASC, id ASC
                    """,
                    (challenge_id,)
                )
                rows = await cur.fetchall()
                return [dict(row) for row in rows]


async def get_user_participations(user_id: str) -> list[dict]:
    """
    Get every challenge the user has joined

    Returns:
        List of {'challenge': dict, 'participant': dict}, newest first
    """
    async with storage_errors("get_user_participations", user_id=user_id, entity="challenge_participants", key=user_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT p.id::text AS id, p.challenge_id, p.user_id, p.current_streak, p.best_streak,
                           p.total_completions, p.last_completed_date, p.status, p.joined_at,
                           c.title, c.duration_days, c.start_date, c.end_date, c.is_active
                    FROM challenge_participants p
                    JOIN challenges c ON c.id = p.challenge_id
                    WHERE p.user_id = %s
                    ORDER BY p.joined_at DESC
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()
                return [
                    {
                        'challenge': {
                            'id': row['challenge_id'],
                            'title': row['title'],
                            'duration_days': row['duration_days'],
                            'start_date': row['start_date'],
                            'end_date': row['end_date'],
                            'is_active': row['is_active'],
                        },
                        'participant': {
                            key: row[key]
                            for key in (
                                'id', 'challenge_id', 'user_id', 'current_streak', 'best_streak',
                                'total_completions', 'last_completed_date', 'status', 'joined_at'
                            )
                        },
                    }
                    for row in rows
                ]


async def get_completed_checkin_dates(user_id: str) -> list[date]:
    """Days with a completed check-in in any of the user's challenges"""
    async with storage_errors("get_completed_checkin_dates", user_id=user_id, entity="challenge_checkins", key=user_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT DISTINCT ch.date
                    FROM challenge_checkins ch
                    JOIN challenge_participants p ON p.id = ch.participant_id
                    WHERE p.user_id = %s AND ch.completed
                    ORDER BY ch.date DESC
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()
                return [row['date'] for row in rows]
