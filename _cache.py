"""Bounded in-memory TTL cache for short-lived login state.

Backs the phone-code store and the per-phone request cooldowns.  Nothing
here survives a restart.
"""

from __future__ import annotations

import asyncio
import time
from collections import OrderedDict
from typing import NamedTuple

from _constants import MAX_PENDING_CODES, PHONE_CODE_TTL

__all__ = ["TTLCache"]


class _Entry[T](NamedTuple):
    value: T
    expires_at: float


class TTLCache[T]:
    """Per-key expiry on :func:`time.monotonic`, least-recently-used eviction.

    The underscore methods assume the caller serializes access; request
    handlers go through the ``a``-prefixed coroutines, which take the lock.
    """

    __slots__ = ("_entries", "_lock", "_maxsize", "_ttl")

    def __init__(self, maxsize: int = MAX_PENDING_CODES, ttl: float = PHONE_CODE_TTL) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        if ttl <= 0:
            raise ValueError("ttl must be > 0")
        self._maxsize = maxsize
        self._ttl = ttl
        self._entries: OrderedDict[str, _Entry[T]] = OrderedDict()
        self._lock = asyncio.Lock()

    @property
    def ttl(self) -> float:
        return self._ttl

    # -- unlocked primitives --------------------------------------------------

    def _live_entry(self, key: str) -> _Entry[T] | None:
        """Return the entry for *key*, dropping it first if it has lapsed."""
        entry = self._entries.get(key)
        if entry is not None and time.monotonic() >= entry.expires_at:
            del self._entries[key]
            return None
        return entry

    def _get(self, key: str) -> T | None:
        entry = self._live_entry(key)
        if entry is None:
            return None
        self._entries.move_to_end(key)
        return entry.value

    def _put(self, key: str, value: T) -> None:
        """Store *value* with a full TTL, evicting the stalest key when full."""
        expires_at = time.monotonic() + self._ttl
        self._entries.pop(key, None)
        while len(self._entries) >= self._maxsize:
            self._entries.popitem(last=False)
        self._entries[key] = _Entry(value, expires_at)

    def _replace(self, key: str, value: T) -> bool:
        entry = self._live_entry(key)
        if entry is None:
            return False
        self._entries[key] = entry._replace(value=value)
        return True

    def _pop(self, key: str) -> T | None:
        entry = self._live_entry(key)
        if entry is None:
            return None
        del self._entries[key]
        return entry.value

    def _remaining(self, key: str) -> float:
        """Seconds left on *key*, ``0.0`` if it is absent."""
        entry = self._live_entry(key)
        if entry is None:
            return 0.0
        return max(0.0, entry.expires_at - time.monotonic())

    # -- locked coroutines ----------------------------------------------------

    async def aget(self, key: str) -> T | None:
        async with self._lock:
            return self._get(key)

    async def aput(self, key: str, value: T) -> None:
        async with self._lock:
            self._put(key, value)

    async def areplace(self, key: str, value: T) -> bool:
        """Swap the value of a live entry without extending its lifetime."""
        async with self._lock:
            return self._replace(key, value)

    async def apop(self, key: str) -> T | None:
        async with self._lock:
            return self._pop(key)

    async def aremaining(self, key: str) -> float:
        async with self._lock:
            return self._remaining(key)

    async def aclear(self) -> None:
        async with self._lock:
            self._entries.clear()

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        now = time.monotonic()
        return sum(1 for entry in self._entries.values() if entry.expires_at > now)
