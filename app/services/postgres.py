from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

import asyncpg


@dataclass(slots=True)
class PostgresPool:
    """Process-wide holder of the asyncpg pool shared by every request."""

    dsn: str
    min_size: int = 1
    max_size: int = 10
    command_timeout: float | None = None
    _pool: asyncpg.Pool | None = None
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    async def get_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            async with self._lock:
                if self._pool is None:
                    self._pool = await asyncpg.create_pool(
                        dsn=self.dsn,
                        min_size=self.min_size,
                        max_size=self.max_size,
                        command_timeout=self.command_timeout,
                    )
        return self._pool

    async def ping(self, timeout: float | None = None) -> bool:
        pool = await self.get_pool()
        async with pool.acquire(timeout=timeout) as connection:
            await connection.execute("SELECT 1", timeout=timeout)
        return True

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
