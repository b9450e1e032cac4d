"""Daily marker database queries"""
import logging
from typing import Optional, Any
from datetime import date, datetime
from psycopg.types.json import Jsonb
from progress_engine.db.connection import db, storage_errors

logger = logging.getLogger(__name__)


async def claim_marker(
    scope: str,
    day: date,
    key: str,
    expires_at: datetime,
    payload: Optional[dict[str, Any]] = None
) -> bool:
    """
    Atomically create a marker unless a live one exists

    An expired marker is taken over as if it were absent.

    Returns:
        True for the caller that created the marker
    """
    async with storage_errors("claim_marker", entity="daily_markers", key=f"{scope}:{day}:{key}"):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO daily_markers (scope, day, key, payload, expires_at)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (scope, day, key)
                    DO UPDATE SET payload = EXCLUDED.payload,
                                  expires_at = EXCLUDED.expires_at,
                                  created_at = CURRENT_TIMESTAMP
                    WHERE daily_markers.expires_at <= CURRENT_TIMESTAMP
                    RETURNING key
                    """,
                    (scope, day, key, Jsonb(payload) if payload is not None else None, expires_at)
                )
                row = await cur.fetchone()
                await conn.commit()
                return row is not None


async def put_marker(
    scope: str,
    day: date,
    key: str,
    payload: dict[str, Any],
    expires_at: datetime
) -> None:
    """Create or overwrite a marker"""
    async with storage_errors("put_marker", entity="daily_markers", key=f"{scope}:{day}:{key}"):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    INSERT INTO daily_markers (scope, day, key, payload, expires_at)
                    VALUES (%s, %s, %s, %s, %s)
                    ON CONFLICT (scope, day, key)
                    DO UPDATE SET payload = EXCLUDED.payload,
                                  expires_at = EXCLUDED.expires_at
                    """,
                    (scope, day, key, Jsonb(payload), expires_at)
                )
                await conn.commit()


async def get_marker(scope: str, day: date, key: str) -> Optional[dict]:
    """
    Get a live marker

    Returns:
        {'payload': dict | None, 'expires_at': datetime} or None when absent or expired
    """
    async with storage_errors("get_marker", entity="daily_markers", key=f"{scope}:{day}:{key}"):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    """
                    SELECT payload, expires_at
                    FROM daily_markers
                    WHERE scope = %s AND day = %s AND key = %s
                      AND expires_at > CURRENT_TIMESTAMP
                    """,
                    (scope, day, key)
                )
                row = await cur.fetchone()
                return dict(row) if row else None


async def delete_expired_markers(now: datetime) -> int:
    """
    Delete markers whose expiry has passed

    Returns:
        Number of markers deleted
    """
    async with storage_errors("delete_expired_markers", entity="daily_markers", key=now.isoformat()):
        async with db.connection() as conn:
            async with conn.cursor() as cur:
                await cur.execute(
                    "DELETE FROM daily_markers WHERE expires_at <= %s",
                    (now,)
                )
                deleted = cur.rowcount
                await conn.commit()
                return deleted
