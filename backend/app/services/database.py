"""
Document store connection management.

All database access goes through ConnectionManager.acquire(). The manager
connects lazily, once: if the first attempt fails, every later call in the
process short-circuits to StoreUnavailable instead of retrying, so a store
outage costs one connect timeout rather than one per request.
"""

import asyncio
import json
from contextlib import asynccontextmanager
from enum import Enum
from typing import Optional

import asyncpg

from app.models.config import DatabaseConfig
from app.utils.config_loader import get_config
from app.utils.logger import get_logger

logger = get_logger()

SCHEMA = """
CREATE TABLE IF NOT EXISTS conversations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT NOT NULL,
    model TEXT NOT NULL,
    messages JSONB NOT NULL DEFAULT '[]'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
CREATE INDEX IF NOT EXISTS conversations_user_updated_idx
    ON conversations (user_id, updated_at DESC);

CREATE TABLE IF NOT EXISTS files (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    file_name TEXT NOT NULL,
    original_name TEXT NOT NULL,
    file_type TEXT NOT NULL,
    file_size BIGINT NOT NULL,
    source_url TEXT NOT NULL,
    cdn_url TEXT,
    extracted_text TEXT,
    summary TEXT,
    processing_status TEXT NOT NULL,
    error_message TEXT,
    metadata JSONB NOT NULL DEFAULT '{}'::jsonb,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""


# A malformed DSN surfaces as InterfaceError or ValueError, not PostgresError
CONNECT_ERRORS = (
    OSError,
    ValueError,
    asyncio.TimeoutError,
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
)


class StoreUnavailable(Exception):
    """The document store could not be reached"""


class ConnectionState(str, Enum):
    UNATTEMPTED = "unattempted"
    CONNECTED = "connected"
    FAILED = "failed"


async def _init_connection(conn: asyncpg.Connection) -> None:
    """Decode JSON/JSONB columns to Python objects"""
    for type_name in ("json", "jsonb"):
        await conn.set_type_codec(
            type_name,
            encoder=json.dumps,
            decoder=json.loads,
            schema="pg_catalog",
        )


class ConnectionManager:
    """Owns the shared connection pool and its connect-once lifecycle"""

    def __init__(self, config: DatabaseConfig):
        self.config = config
        self.state = ConnectionState.UNATTEMPTED
        self.error: Optional[str] = None
        self._pool: Optional[asyncpg.Pool] = None
        self._lock = asyncio.Lock()

    @property
    def offline(self) -> bool:
        return self.state == ConnectionState.FAILED

    async def connect(self) -> Optional[asyncpg.Pool]:
        """Return the pool, connecting on first use; None once a connect has failed"""
        if self.state == ConnectionState.CONNECTED:
            return self._pool
        if self.state == ConnectionState.FAILED:
            logger.debug("Document store marked offline, skipping connect")
            return None

        async with self._lock:
            # Another request may have finished the attempt while we waited
            if self.state != ConnectionState.UNATTEMPTED:
                return self._pool

            if not self.config.url:
                self._mark_failed("no database URL configured")
                return None

            try:
                logger.info("Connecting to document store...")
                pool = await asyncio.wait_for(
                    asyncpg.create_pool(
                        dsn=self.config.url,
                        min_size=self.config.min_pool_size,
                        max_size=self.config.max_pool_size,
                        command_timeout=self.config.command_timeout,
                        timeout=self.config.connect_timeout,
                        init=_init_connection,
                    ),
                    timeout=self.config.connect_timeout,
                )
            except CONNECT_ERRORS as e:
                self._mark_failed(str(e) or e.__class__.__name__)
                return None

            try:
                async with pool.acquire() as conn:
                    await conn.execute(SCHEMA)
            except CONNECT_ERRORS as e:
                await pool.close()
                self._mark_failed(str(e) or e.__class__.__name__)
                return None

            self._pool = pool
            self.state = ConnectionState.CONNECTED
            logger.info("Document store connected")
            return pool

    def _mark_failed(self, reason: str) -> None:
        self.state = ConnectionState.FAILED
        self.error = reason
        logger.error(f"Document store connection failed, running offline: {reason}")

    @asynccontextmanager
    async def acquire(self):
        """
        Acquire a connection inside a transaction.

        Usage:
            async with manager.acquire() as conn:
                row = await conn.fetchrow("SELECT * FROM files WHERE id = $1", file_id)

        Raises:
            StoreUnavailable: if the store is (or has been found to be) unreachable
        """
        pool = await self.connect()
        if pool is None:
            raise StoreUnavailable(self.error or "document store offline")

        try:
            async with pool.acquire() as conn:
                async with conn.transaction():
                    yield conn
        except (OSError, asyncpg.InterfaceError) as e:
            logger.error(f"Document store connection lost: {e}")
            raise StoreUnavailable(str(e)) from e

    async def reset(self) -> None:
        """Forget a failed attempt so the next call tries again"""
        await self.close()
        self.state = ConnectionState.UNATTEMPTED
        self.error = None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None


# Global instance
_connection_manager: Optional[ConnectionManager] = None


def get_connection_manager() -> ConnectionManager:
    """Get the process-wide connection manager"""
    global _connection_manager
    if _connection_manager is None:
        _connection_manager = ConnectionManager(DatabaseConfig.from_loader(get_config()))
    return _connection_manager
