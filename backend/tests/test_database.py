"""
Tests for the connection manager's connect-once lifecycle.
"""

from contextlib import asynccontextmanager

import asyncpg
import pytest

from app.models.config import DatabaseConfig
from app.services.database import ConnectionManager, ConnectionState, StoreUnavailable


class FakeConnection:

    def __init__(self):
        self.executed = []
        self.error = None

    async def execute(self, query, *args):
        self.executed.append(query)
        if self.error is not None:
            raise self.error
        return "OK"

    @asynccontextmanager
    async def transaction(self):
        yield


class FakePool:

    def __init__(self):
        self.conn = FakeConnection()
        self.closed = False

    @asynccontextmanager
    async def acquire(self):
        yield self.conn

    async def close(self):
        self.closed = True


class CreatePoolCalls(list):
    """Records create_pool calls; `outcome` is the pool to return or the error to raise"""
    outcome = None


@pytest.fixture
def create_pool_calls(monkeypatch):
    calls = CreatePoolCalls()

    async def fake_create_pool(**kwargs):
        calls.append(kwargs)
        if isinstance(calls.outcome, Exception):
            raise calls.outcome
        return calls.outcome

    monkeypatch.setattr(asyncpg, "create_pool", fake_create_pool)
    return calls


def manager(url: str = "postgresql://localhost/test") -> ConnectionManager:
    return ConnectionManager(DatabaseConfig(url=url, connect_timeout=0.5))


class TestConnectionManager:

    async def test_starts_unattempted(self):
        assert manager().state == ConnectionState.UNATTEMPTED

    async def test_missing_url_fails_without_connecting(self, create_pool_calls):
        m = manager(url="")

        assert await m.connect() is None
        assert m.state == ConnectionState.FAILED
        assert m.offline
        assert create_pool_calls == []

    async def test_failure_is_memoized(self, create_pool_calls):
        create_pool_calls.outcome = OSError("connection refused")
        m = manager()

        for _ in range(3):
            with pytest.raises(StoreUnavailable):
                async with m.acquire():
                    pass

        assert len(create_pool_calls) == 1
        assert m.state == ConnectionState.FAILED
        assert "connection refused" in m.error

    @pytest.mark.parametrize("error", [
        asyncpg.exceptions.ClientConfigurationError("invalid DSN"),
        ValueError("invalid literal for int() with base 10: 'notaport'"),
    ])
    async def test_bad_dsn_marks_store_offline(self, create_pool_calls, error):
        create_pool_calls.outcome = error
        m = manager(url="postgresql://localhost:notaport/test")

        for _ in range(2):
            with pytest.raises(StoreUnavailable):
                async with m.acquire():
                    pass

        assert len(create_pool_calls) == 1
        assert m.state == ConnectionState.FAILED

    async def test_schema_failure_closes_pool(self, create_pool_calls):
        pool = FakePool()
        pool.conn.error = ConnectionResetError("server closed the connection")
        create_pool_calls.outcome = pool
        m = manager()

        assert await m.connect() is None

        assert pool.closed
        assert m.state == ConnectionState.FAILED

    async def test_connect_creates_schema_once(self, create_pool_calls):
        pool = FakePool()
        create_pool_calls.outcome = pool
        m = manager()

        async with m.acquire() as conn:
            assert conn is pool.conn
        async with m.acquire():
            pass

        assert len(create_pool_calls) == 1
        assert m.state == ConnectionState.CONNECTED
        assert any("CREATE TABLE IF NOT EXISTS conversations" in q for q in pool.conn.executed)

    async def test_connect_passes_short_timeout(self, create_pool_calls):
        create_pool_calls.outcome = FakePool()

        await manager().connect()

        assert create_pool_calls[0]["timeout"] == 0.5
        assert create_pool_calls[0]["dsn"] == "postgresql://localhost/test"

    async def test_reset_allows_a_new_attempt(self, create_pool_calls):
        create_pool_calls.outcome = OSError("down")
        m = manager()
        await m.connect()

        create_pool_calls.outcome = FakePool()
        await m.reset()
        pool = await m.connect()

        assert pool is create_pool_calls.outcome
        assert m.state == ConnectionState.CONNECTED
        assert len(create_pool_calls) == 2

    async def test_close_releases_pool(self, create_pool_calls):
        pool = FakePool()
        create_pool_calls.outcome = pool
        m = manager()
        await m.connect()

        await m.close()

        assert pool.closed

    async def test_lost_connection_raises_store_unavailable(self, create_pool_calls):
        create_pool_calls.outcome = FakePool()
        m = manager()

        with pytest.raises(StoreUnavailable):
            async with m.acquire():
                raise ConnectionResetError("server closed the connection")
