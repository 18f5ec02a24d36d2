"""Key/value storage backends.

Provides a pluggable backend system with in-memory, SQL and Redis
implementations. The quota ledger persists its usage log through one of
these backends. The SQL backend on a local SQLite file is the default;
Redis suits deployments that share a budget across processes.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
import asyncio
import time

import redis.asyncio as aioredis
from sqlalchemy import Column, Float, LargeBinary, MetaData, String, Table, delete, select
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

_metadata = MetaData()

kv_store = Table(
    "kv_store",
    _metadata,
    Column("key", String(255), primary_key=True),
    Column("value", LargeBinary, nullable=False),
    Column("expires_at", Float, nullable=True),
)


@dataclass
class _CacheEntry:
    """Internal cache entry with TTL tracking."""

    value: bytes
    expires_at: float | None = None

    def is_expired(self) -> bool:
        """Check if the entry has expired."""
        if self.expires_at is None:
            return False
        return time.time() > self.expires_at


class CacheBackend(ABC):
    """Abstract base class for key/value backends.

    All implementations must inherit from this class and implement
    the abstract methods.
    """

    @abstractmethod
    async def get(self, key: str) -> bytes | None:
        """Retrieve a value.

        Args:
            key: The key to look up.

        Returns:
            The stored value as bytes, or None if not found or expired.
        """

    @abstractmethod
    async def set(self, key: str, value: bytes, ttl: int) -> None:
        """Store a value.

        Args:
            key: The key.
            value: The value to store (as bytes).
            ttl: Time-to-live in seconds (0 stores without expiry).
        """

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove a value.

        Args:
            key: The key to remove.
        """

    @abstractmethod
    async def clear(self) -> None:
        """Clear all entries."""

    async def close(self) -> None:
        """Release any connection held by the backend."""


class InMemoryCache(CacheBackend):
    """In-memory backend with TTL support.

    Data is lost when the process restarts, so this backend only suits
    tests and single-shot tools.
    """

    def __init__(self) -> None:
        self._data: dict[str, _CacheEntry] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> bytes | None:
        async with self._lock:
            entry = self._data.get(key)
            if entry is None:
                return None
            if entry.is_expired():
                del self._data[key]
                return None
            return entry.value

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        async with self._lock:
            expires_at = time.time() + ttl if ttl > 0 else None
            self._data[key] = _CacheEntry(value=value, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def clear(self) -> None:
        async with self._lock:
            self._data.clear()


class SQLCache(CacheBackend):
    """SQLAlchemy-backed backend, durable across restarts.

    The table is created on first use. Expired rows are deleted by the
    read that finds them.

    Example:
        >>> store = SQLCache("sqlite+aiosqlite:///routegate_usage.db")
        >>> await store.set("key", b"value", ttl=300)
    """

    def __init__(self, database_url: str) -> None:
        """Initialize the SQL backend.

        Args:
            database_url: Async SQLAlchemy URL (e.g., "sqlite+aiosqlite:///usage.db")
        """
        self._database_url = database_url
        self._engine: AsyncEngine | None = None
        self._lock = asyncio.Lock()

    async def _get_engine(self) -> AsyncEngine:
        """Get or create the engine, creating the table on first use."""
        async with self._lock:
            if self._engine is None:
                engine = create_async_engine(self._database_url, future=True)
                async with engine.begin() as conn:
                    await conn.run_sync(_metadata.create_all)
                self._engine = engine
        return self._engine

    async def get(self, key: str) -> bytes | None:
        engine = await self._get_engine()
        async with engine.begin() as conn:
            row = (
                await conn.execute(
                    select(kv_store.c.value, kv_store.c.expires_at).where(kv_store.c.key == key)
                )
            ).first()
            if row is None:
                return None
            if row.expires_at is not None and time.time() > row.expires_at:
                await conn.execute(delete(kv_store).where(kv_store.c.key == key))
                return None
            return row.value

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        engine = await self._get_engine()
        expires_at = time.time() + ttl if ttl > 0 else None
        async with engine.begin() as conn:
            await conn.execute(delete(kv_store).where(kv_store.c.key == key))
            await conn.execute(
                kv_store.insert().values(key=key, value=value, expires_at=expires_at)
            )

    async def delete(self, key: str) -> None:
        engine = await self._get_engine()
        async with engine.begin() as conn:
            await conn.execute(delete(kv_store).where(kv_store.c.key == key))

    async def clear(self) -> None:
        engine = await self._get_engine()
        async with engine.begin() as conn:
            await conn.execute(delete(kv_store))

    async def close(self) -> None:
        """Dispose of the engine and its connection pool."""
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None


class RedisCache(CacheBackend):
    """Redis-based backend.

    Example:
        >>> store = RedisCache("redis://localhost:6379/0")
        >>> await store.set("key", b"value", ttl=300)
    """

    def __init__(self, redis_url: str) -> None:
        """Initialize the Redis backend.

        Args:
            redis_url: Redis connection URL (e.g., "redis://localhost:6379/0")
        """
        self._redis_url = redis_url
        self._redis: aioredis.Redis | None = None

    async def _get_client(self) -> aioredis.Redis:
        """Get or create the Redis client connection."""
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url)
        return self._redis

    async def get(self, key: str) -> bytes | None:
        client = await self._get_client()
        return await client.get(key)

    async def set(self, key: str, value: bytes, ttl: int) -> None:
        client = await self._get_client()
        if ttl > 0:
            await client.setex(key, ttl, value)
        else:
            await client.set(key, value)

    async def delete(self, key: str) -> None:
        client = await self._get_client()
        await client.delete(key)

    async def clear(self) -> None:
        """Clear all entries.

        WARNING: This uses FLUSHDB which clears the entire Redis database.
        Be careful when using a shared Redis instance.
        """
        client = await self._get_client()
        await client.flushdb()

    async def close(self) -> None:
        """Close the Redis connection."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


def create_cache_backend(
    backend: str = "sql",
    redis_url: str | None = None,
    database_url: str | None = None,
) -> CacheBackend:
    """Create a storage backend by name.

    Args:
        backend: "sql", "redis" or "memory"
        redis_url: Redis connection URL, required for the redis backend
        database_url: SQLAlchemy async URL, required for the sql backend

    Returns:
        A new CacheBackend instance

    Raises:
        ValueError: If the backend name is unknown or its URL is missing
    """
    if backend == "memory":
        return InMemoryCache()
    if backend == "sql":
        if not database_url:
            raise ValueError("database_url is required for the sql backend")
        return SQLCache(database_url)
    if backend == "redis":
        if not redis_url:
            raise ValueError("redis_url is required for the redis backend")
        return RedisCache(redis_url)
    raise ValueError(f"Unknown cache backend: {backend}")
