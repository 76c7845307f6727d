"""TTL key/value storage backing sessions and rate-limit windows.

Two implementations of the KeyValueStore protocol:
- MemoryKeyValueStore: process-local dict, injectable clock
- SqlKeyValueStore: durable, kv_entries table through SQLAlchemy
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from issuedesk.db.models import KVEntry

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(UTC)


class KeyValueStore(Protocol):
    """Async string store with per-key expiry."""

    async def get(self, key: str) -> str | None: ...

    async def put(self, key: str, value: str, ttl: timedelta | None = None) -> None: ...

    async def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """In-memory store; entries vanish once their TTL passes."""

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or _utcnow
        self._data: dict[str, tuple[str, datetime | None]] = {}

    async def get(self, key: str) -> str | None:
        item = self._data.get(key)
        if item is None:
            return None
        value, expires_at = item
        if expires_at is not None and expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)


class SqlKeyValueStore:
    """Durable store over the kv_entries table.

    Each call runs in its own short transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        clock: Clock | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock or _utcnow

    async def get(self, key: str) -> str | None:
        async with self._session_factory() as session:
            entry = await session.get(KVEntry, key)
            if entry is None:
                return None
            if entry.expires_at is not None and entry.expires_at <= self._clock():
                await session.delete(entry)
                await session.commit()
                return None
            return entry.value

    async def put(self, key: str, value: str, ttl: timedelta | None = None) -> None:
        expires_at = self._clock() + ttl if ttl is not None else None
        async with self._session_factory() as session:
            entry = await session.get(KVEntry, key)
            if entry is None:
                session.add(KVEntry(key=key, value=value, expires_at=expires_at))
            else:
                entry.value = value
                entry.expires_at = expires_at
            await session.commit()

    async def delete(self, key: str) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(KVEntry).where(KVEntry.key == key))
            await session.commit()

    async def purge_expired(self) -> int:
        """Delete expired entries.

        Returns:
            Number of entries removed
        """
        async with self._session_factory() as session:
            stmt = select(KVEntry.key).where(
                KVEntry.expires_at.is_not(None), KVEntry.expires_at <= self._clock()
            )
            keys = list((await session.execute(stmt)).scalars().all())
            if keys:
                await session.execute(delete(KVEntry).where(KVEntry.key.in_(keys)))
                await session.commit()
            return len(keys)
