"""Database connection management"""
import logging
from contextlib import asynccontextmanager
from importlib import resources
from typing import Any, AsyncGenerator, Optional
import psycopg
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool
from progress_engine.config import DATABASE_URL, DB_POOL_MIN_SIZE, DB_POOL_MAX_SIZE
from progress_engine.exceptions import wrap_external_exception
from progress_engine.observability.metrics import errors_total

logger = logging.getLogger(__name__)


@asynccontextmanager
async def storage_errors(operation: str, user_id: Optional[str] = None, **context: Any) -> AsyncGenerator[None, None]:
    """
    Re-raise psycopg errors as engine errors carrying the entity and key

    Example:
        async with storage_errors("award_xp", user_id=user_id, entity="user_gamification", key=user_id):
            ...
    """
    try:
        yield
    except psycopg.Error as e:
        wrapped = wrap_external_exception(e, operation=operation, user_id=user_id, context=context)
        errors_total.labels(error_type=type(wrapped).__name__, component="storage").inc()
        raise wrapped from e


class Database:
    """Database connection pool manager"""

    def __init__(self, connection_string: str = DATABASE_URL):
        self.connection_string = connection_string
        self._pool: Optional[AsyncConnectionPool] = None

    async def init_pool(self) -> None:
        """Initialize connection pool"""
        logger.info("Initializing database connection pool")
        self._pool = AsyncConnectionPool(
            self.connection_string,
            min_size=DB_POOL_MIN_SIZE,
            max_size=DB_POOL_MAX_SIZE,
            open=False
        )
        await self._pool.open()

    async def close_pool(self) -> None:
        """Close connection pool"""
        if self._pool:
            logger.info("Closing database connection pool")
            await self._pool.close()
            self._pool = None

    @asynccontextmanager
    async def connection(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Get database connection from pool"""
        if not self._pool:
            raise RuntimeError("Database pool not initialized")

        async with self._pool.connection() as conn:
            conn.row_factory = dict_row
            yield conn

    async def apply_schema(self) -> None:
        """Create missing tables and indexes from the bundled schema.sql"""
        schema = resources.files("progress_engine.db").joinpath("schema.sql").read_text()
        logger.info("Applying database schema")
        async with self.connection() as conn:
            await conn.execute(schema)
            await conn.commit()

    @asynccontextmanager
    async def transaction(self) -> AsyncGenerator[psycopg.AsyncConnection, None]:
        """Get a connection whose statements commit or roll back together"""
        async with self.connection() as conn:
            async with conn.transaction():
                yield conn


# Global database instance
db = Database()
