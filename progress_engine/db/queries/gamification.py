"""Gamification database queries"""
import logging
from typing import Callable, Optional
from progress_engine.db.connection import db, storage_errors

logger = logging.getLogger(__name__)

PROFILE_COLUMNS = "user_id, total_xp, current_level, xp_to_next_level, updated_at"
TRANSACTION_COLUMNS = "id::text AS id, user_id, amount, source, source_id, description, created_at"


# ==========================================
# XP System Functions
# ==========================================

async def get_user_gamification(user_id: str) -> Optional[dict]:
    """
    Get the user's XP profile without creating one

    Returns:
        {
            'user_id': str,
            'total_xp': int,
            'current_level': int,
            'xp_to_next_level': int,
            'updated_at': datetime
        }
        or None when the user has never been awarded XP
    """
    async with storage_errors("get_user_gamification", user_id=user_id, entity="user_gamification", key=user_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {PROFILE_COLUMNS}
                    FROM user_gamification
                    WHERE user_id = %s
                    """,
                    (user_id,)
                )
                row = await cur.fetchone()
                return dict(row) if row else None


async def award_xp_transaction(
    user_id: str,
    amount: int,
    source: str,
    source_id: Optional[str],
    description: Optional[str],
    level_for: Callable[[int], tuple[int, int]]
) -> dict:
    """
    Append an XP transaction and apply it to the profile in one transaction

    The ledger row, the total_xp increment and the level fields commit
    together or not at all. When (source, source_id) was already awarded to
    the user nothing is written and the stored transaction is returned.

    Args:
        user_id: User ID
        amount: Positive XP amount
        source: Activity type that earned the XP
        source_id: Optional ID of the source fact, unique per (user, source)
        description: Human-readable reason
        level_for: Maps a total XP to (level, xp_to_next_level)

    Returns:
        {
            'transaction': dict,
            'profile': dict,
            'applied': bool,
            'previous_level': int
        }
    """
    async with storage_errors("award_xp", user_id=user_id, entity="user_gamification", key=user_id):
        async with db.transaction() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    INSERT INTO xp_transactions (user_id, amount, source, source_id, description)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (user_id, source, source_id) WHERE source_id IS NOT NULL DO NOTHING
                    RETURNING {TRANSACTION_COLUMNS}
                    """,
                    (user_id, amount, source, source_id, description)
                )
                transaction = await cur.fetchone()

                if transaction is None:
                    await cur.execute(
                        f"""
                        SELECT {TRANSACTION_COLUMNS}
                        FROM xp_transactions
                        WHERE user_id = %s AND source = %s AND source_id = %s
                        """,
                        (user_id, source, source_id)
                    )
                    transaction = await cur.fetchone()
                    await cur.execute(
                        f"SELECT {PROFILE_COLUMNS} FROM user_gamification WHERE user_id = %s",
                        (user_id,)
                    )
                    profile = await cur.fetchone()
                    logger.info(f"XP for {source}:{source_id} already awarded to user {user_id}")
                    return {
                        'transaction': dict(transaction),
                        'profile': dict(profile) if profile else None,
                        'applied': False,
                        'previous_level': profile['current_level'] if profile else 1,
                    }

                # Row lock on the profile is held from here until commit
                await cur.execute(
                    """
                    INSERT INTO user_gamification (user_id, total_xp)
                    VALUES (%s, %s)
                    ON CONFLICT (user_id)
                    DO UPDATE SET total_xp = user_gamification.total_xp + EXCLUDED.total_xp,
                                  updated_at = CURRENT_TIMESTAMP
                    RETURNING total_xp, current_level
                    """,
                    (user_id, amount)
                )
                incremented = await cur.fetchone()

                level, xp_to_next = level_for(incremented['total_xp'])
                await cur.execute(
                    f"""
                    UPDATE user_gamification
                    SET current_level = %s,
                        xp_to_next_level = %s
                    WHERE user_id = %s
                    RETURNING {PROFILE_COLUMNS}
                    """,
                    (level, xp_to_next, user_id)
                )
                profile = await cur.fetchone()

                return {
                    'transaction': dict(transaction),
                    'profile': dict(profile),
                    'applied': True,
                    'previous_level': incremented['current_level'],
                }


async def has_xp_transaction(user_id: str, source: str, source_id: str) -> bool:
    """Check whether (source, source_id) has already been awarded to the user"""
    async with storage_errors("has_xp_transaction", user_id=user_id, entity="xp_transactions", key=f"{source}:{source_id}"):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT 1
                    FROM xp_transactions
                    WHERE user_id = %s AND source = %s AND source_id = %s
                    """,
                    (user_id, source, source_id)
                )
                return await cur.fetchone() is not None


async def get_xp_transactions(user_id: str, limit: int = 50) -> list[dict]:
    """
    Get recent XP transactions for user

    Args:
        user_id: User ID
        limit: Maximum number of transactions to return

    Returns:
        List of transactions ordered by created_at DESC
    """
    async with storage_errors("get_xp_transactions", user_id=user_id, entity="xp_transactions", key=user_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    f"""
                    SELECT {TRANSACTION_COLUMNS}
                    FROM xp_transactions
                    WHERE user_id = %s
                    ORDER BY created_at DESC, id
                    LIMIT %s
                    """,
                    (user_id, limit)
                )
                rows = await cur.fetchall()
                return [dict(row) for row in rows]


async def rebuild_user_gamification(user_id: str, level_for: Callable[[int], tuple[int, int]]) -> Optional[dict]:
    """
    Recompute the profile from the ledger

    Returns:
        Rebuilt profile, or None when the user has no transactions
    """
    async with storage_errors("rebuild_user_gamification", user_id=user_id, entity="user_gamification", key=user_id):
        async with db.transaction() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT COALESCE(SUM(amount), 0) AS total_xp, COUNT(*) AS transactions
                    FROM xp_transactions
                    WHERE user_id = %s
                    """,
                    (user_id,)
                )
                ledger = await cur.fetchone()
                if not ledger['transactions']:
                    return None

                total_xp = int(ledger['total_xp'])
                level, xp_to_next = level_for(total_xp)
                await cur.execute(
                    f"""
                    INSERT INTO user_gamification (user_id, total_xp, current_level, xp_to_next_level)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (user_id)
                    DO UPDATE SET total_xp = EXCLUDED.total_xp,
                                  current_level = EXCLUDED.current_level,
                                  xp_to_next_level = EXCLUDED.xp_to_next_level,
                                  updated_at = CURRENT_TIMESTAMP
                    RETURNING {PROFILE_COLUMNS}
                    """,
                    (user_id, total_xp, level, xp_to_next)
                )
                row = await cur.fetchone()
                logger.info(f"Rebuilt XP profile for user {user_id}: {total_xp} XP, level {level}")
                return dict(row)


# ==========================================
# Achievement Functions
# ==========================================

async def insert_user_achievement(user_id: str, achievement_id: str) -> bool:
    """
    Record an earned achievement

    Returns:
        True if newly awarded, False if the user already had it
    """
    async with storage_errors("insert_user_achievement", user_id=user_id, entity="user_achievements", key=achievement_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO user_achievements (user_id, achievement_id)
                    VALUES (%s, %s)
                    ON CONFLICT (user_id, achievement_id) DO NOTHING
                    RETURNING achievement_id
                    """,
                    (user_id, achievement_id)
                )
                row = await cur.fetchone()
                await conn.commit()
                return row is not None


async def get_user_achievements(user_id: str) -> list[dict]:
    """
    Get all achievements earned by user

    Returns:
        List of {'user_id', 'achievement_id', 'earned_at'} ordered by earned_at
    """
    async with storage_errors("get_user_achievements", user_id=user_id, entity="user_achievements", key=user_id):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT user_id, achievement_id, earned_at
                    FROM user_achievements
                    WHERE user_id = %s
                    ORDER BY earned_at ASC, achievement_id
                    """,
                    (user_id,)
                )
                rows = await cur.fetchall()
                return [dict(row) for row in rows]
