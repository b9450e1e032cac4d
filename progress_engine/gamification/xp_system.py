"""
XP and Leveling System

Manages the append-only XP ledger and the level projection derived from it.

Leveling Curve:
- Level N costs 100 * N XP to complete (level 1: 100, level 2: 200, ...)
- Level fields are a pure function of total XP

XP Award Rules:
- Daily check-in (metrics submission): DAILY_CHECKIN_XP, once per metrics row
- Challenge check-in (newly completed day): CHALLENGE_CHECKIN_XP, once per check-in
"""

from typing import List, Optional
import logging

from progress_engine.db import queries
from progress_engine.exceptions import ValidationError
from progress_engine.models.gamification import (
    GamificationProfile,
    LevelInfo,
    XpAward,
    XpTransaction,
)
from progress_engine.observability.metrics import (
    gamification_level_ups_total,
    gamification_xp_awarded_total,
    gamification_xp_duplicate_awards_total,
)

logger = logging.getLogger(__name__)

XP_PER_LEVEL_STEP = 100
XP_HISTORY_MAX_LIMIT = 100


def calculate_level_from_xp(total_xp: int) -> LevelInfo:
    """
    Calculate level from total XP

    Walks forward from level 1, paying 100 * level for each completed level.

    Examples:
        0 XP   -> level 1, 100 to next
        150 XP -> level 2, 150 to next
        300 XP -> level 3, 300 to next

    Raises:
        ValidationError: If total_xp is negative
    """
    if total_xp < 0:
        raise ValidationError("Total XP cannot be negative", field="total_xp", value=total_xp)

    level = 1
    xp_remaining = total_xp

    while xp_remaining >= XP_PER_LEVEL_STEP * level:
        xp_remaining -= XP_PER_LEVEL_STEP * level
        level += 1

    return LevelInfo(
        level=level,
        xp_to_next_level=XP_PER_LEVEL_STEP * level - xp_remaining,
        xp_in_current_level=xp_remaining,
    )


def _level_fields(total_xp: int) -> tuple[int, int]:
    info = calculate_level_from_xp(total_xp)
    return info.level, info.xp_to_next_level


def _profile_from_row(user_id: str, row: Optional[dict]) -> GamificationProfile:
    if row is None:
        return GamificationProfile(user_id=user_id)
    return GamificationProfile(**row)


async def award_xp(
    user_id: str,
    amount: int,
    source: str,
    source_id: Optional[str] = None,
    description: Optional[str] = None
) -> XpAward:
    """
    Award XP to user and recompute their level

    The ledger row and the profile update commit together. Awarding the
    same (source, source_id) twice is a no-op that returns the original
    transaction with applied=False.

    Args:
        user_id: User ID
        amount: Amount of XP to award (must be positive)
        source: Activity that earned the XP (daily_checkin, challenge_checkin, ...)
        source_id: ID of the source fact, used as the idempotency key
        description: Human-readable reason

    Returns:
        XpAward with the transaction, the updated profile and whether a level was gained

    Raises:
        ValidationError: If amount is not positive or source is empty
    """
    if amount <= 0:
        raise ValidationError("XP amount must be positive", field="amount", value=amount, user_id=user_id)
    if not source:
        raise ValidationError("XP source is required", field="source", value=source, user_id=user_id)

    result = await queries.award_xp_transaction(
        user_id,
        amount,
        source,
        source_id,
        description,
        level_for=_level_fields
    )

    transaction = XpTransaction(**result["transaction"])
    profile = _profile_from_row(user_id, result["profile"])

    if not result["applied"]:
        gamification_xp_duplicate_awards_total.labels(source=source).inc()
        return XpAward(transaction=transaction, profile=profile, applied=False, leveled_up=False)

    leveled_up = profile.current_level > result["previous_level"]

    gamification_xp_awarded_total.labels(source=source).inc(amount)
    logger.info(
        f"Awarded {amount} XP to user {user_id} for {source}. "
        f"Total: {profile.total_xp} XP, Level: {profile.current_level}"
    )

    if leveled_up:
        gamification_level_ups_total.inc()
        logger.info(f"User {user_id} leveled up from {result['previous_level']} to {profile.current_level}!")

    return XpAward(transaction=transaction, profile=profile, applied=True, leveled_up=leveled_up)


async def has_awarded(user_id: str, source: str, source_id: str) -> bool:
    """Check whether (source, source_id) already earned this user XP"""
    return await queries.has_xp_transaction(user_id, source, source_id)


async def get_gamification_profile(user_id: str) -> GamificationProfile:
    """
    Get user's current XP and level

    A user who has never earned XP gets an unsaved level-1 profile.
    """
    row = await queries.get_user_gamification(user_id)
    return _profile_from_row(user_id, row)


async def get_xp_history(user_id: str, limit: int = 50) -> List[XpTransaction]:
    """
    Get user's recent XP transactions, newest first

    Args:
        user_id: User ID
        limit: Number of transactions (clamped to 1-100)
    """
    limit = max(1, min(limit, XP_HISTORY_MAX_LIMIT))
    rows = await queries.get_xp_transactions(user_id, limit)
    return [XpTransaction(**row) for row in rows]


async def rebuild_profile(user_id: str) -> GamificationProfile:
    """
    Recompute the cached profile from the ledger

    The ledger is authoritative; use this after restoring or editing
    transactions by hand.
    """
    row = await queries.rebuild_user_gamification(user_id, level_for=_level_fields)
    return _profile_from_row(user_id, row)
