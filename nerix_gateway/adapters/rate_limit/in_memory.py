"""In-memory windowed counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: uses a lock around shared state, and never awaits while
  holding it, so increments stay atomic under concurrent coroutines too.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from typing import Callable

from nerix_gateway.adapters.rate_limit.base import AbstractCounterStore, CounterEntry


@dataclass
class _WindowState:
    count: int
    reset_at: float


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store keeping one window per key in a dict.

    A window opens on the first hit for a key and lasts ``window_seconds``;
    the next hit after it expires starts a fresh window at count 1.

    Important:
        This store is per-process only. If the API runs with multiple workers
        (e.g., multiple Uvicorn/Gunicorn workers), each worker will enforce its
        own independent limits. Use the Redis store for shared counters.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        sweep_every: int = 1024,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source function returning UNIX time in seconds.
            sweep_every: Purge expired keys after this many increments.

        Raises:
            ValueError: If sweep_every is invalid.
        """
        if sweep_every < 1:
            raise ValueError("sweep_every must be >= 1")

        self._clock = clock
        self._sweep_every = sweep_every
        self._lock = threading.RLock()
        self._state_by_key: dict[str, _WindowState] = {}
        self._ops_since_sweep = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._state_by_key)

    async def increment(self, key: str, window_seconds: int) -> CounterEntry:
        if not key:
            raise ValueError("key must be a non-empty string")
        if window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")

        now = self._clock()
        with self._lock:
            state = self._state_by_key.get(key)
            if state is None or state.reset_at <= now:
                state = _WindowState(count=0, reset_at=now + window_seconds)
                self._state_by_key[key] = state
            state.count += 1
            entry = CounterEntry(count=state.count, reset_at=state.reset_at)

            self._ops_since_sweep += 1
            if self._ops_since_sweep >= self._sweep_every:
                self._sweep_expired_locked(now)

        return entry

    async def get(self, key: str) -> CounterEntry | None:
        now = self._clock()
        with self._lock:
            state = self._state_by_key.get(key)
            if state is None or state.reset_at <= now:
                return None
            return CounterEntry(count=state.count, reset_at=state.reset_at)

    async def reset(self, key: str) -> None:
        with self._lock:
            self._state_by_key.pop(key, None)

    async def ping(self) -> bool:
        return True

    def _sweep_expired_locked(self, now: float) -> None:
        expired = [k for k, s in self._state_by_key.items() if s.reset_at <= now]
        for key in expired:
            del self._state_by_key[key]
        self._ops_since_sweep = 0
