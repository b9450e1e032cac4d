"""
Daily Markers

Per-day flags and small cached payloads ("reminder already sent today",
"today's journal prompts") kept in storage so every process sees the same
state. Each marker is keyed by (scope, day, key) and expires explicitly.
"""

from datetime import date, datetime, timedelta
from typing import Any, Optional
import logging

from progress_engine import config
from progress_engine.db import queries
from progress_engine.utils.datetime_helpers import now_utc, today

logger = logging.getLogger(__name__)

# Known scopes
SENT_REMINDERS = "sent_reminders"
JOURNAL_PROMPTS = "journal_prompts"


def _expiry(ttl: Optional[timedelta]) -> datetime:
    return now_utc() + (ttl or timedelta(hours=config.DAILY_MARKER_TTL_HOURS))


async def mark_once(
    scope: str,
    key: str,
    *,
    day: Optional[date] = None,
    ttl: Optional[timedelta] = None
) -> bool:
    """
    Claim a marker for the day

    Returns:
        True only for the first caller; concurrent and later callers get False
    """
    day = day or today()
    claimed = await queries.claim_marker(scope, day, key, _expiry(ttl))
    if claimed:
        logger.debug(f"Marker {scope}/{day.isoformat()}/{key} claimed")
    return claimed


async def put(
    scope: str,
    key: str,
    payload: dict[str, Any],
    *,
    day: Optional[date] = None,
    ttl: Optional[timedelta] = None
) -> None:
    """Store a payload for the day, replacing any earlier one"""
    await queries.put_marker(scope, day or today(), key, payload, _expiry(ttl))


async def get(scope: str, key: str, *, day: Optional[date] = None) -> Optional[dict[str, Any]]:
    """Get the day's payload; expired markers read as absent"""
    row = await queries.get_marker(scope, day or today(), key)
    if row is None:
        return None
    return row['payload']


async def purge_expired(now: Optional[datetime] = None) -> int:
    """
    Delete expired markers

    Returns:
        Number of markers deleted
    """
    deleted = await queries.delete_expired_markers(now or now_utc())
    if deleted:
        logger.info(f"Purged {deleted} expired daily markers")
    return deleted
