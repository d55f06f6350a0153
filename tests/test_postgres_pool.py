from unittest.mock import AsyncMock, MagicMock

import pytest

from app.services.postgres import PostgresPool


@pytest.mark.asyncio
async def test_postgres_pool_is_created_once_and_pings(monkeypatch):
    connection_mock = AsyncMock()

    class DummyAcquire:
        async def __aenter__(self):
            return connection_mock

        async def __aexit__(self, exc_type, exc, tb):
            return False

    pool_mock = MagicMock()
    pool_mock.acquire.return_value = DummyAcquire()
    pool_mock.close = AsyncMock()
    created: list[dict] = []

    async def create_pool(**kwargs):
        created.append(kwargs)
        return pool_mock

    monkeypatch.setattr("app.services.postgres.asyncpg.create_pool", create_pool)

    postgres = PostgresPool("postgresql://test", max_size=4, command_timeout=2.0)
    assert await postgres.get_pool() is await postgres.get_pool()
    assert await postgres.ping(timeout=1.0) is True

    assert len(created) == 1
    assert created[0]["max_size"] == 4
    assert created[0]["command_timeout"] == 2.0
    connection_mock.execute.assert_awaited_with("SELECT 1", timeout=1.0)
    await postgres.close()
    pool_mock.close.assert_awaited()
