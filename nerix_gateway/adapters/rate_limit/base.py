"""Counter store interfaces.

The rate-limit evaluator depends on this abstraction (not the concrete
implementation) so the storage backend can be swapped (memory, Redis)
without touching the HTTP layer.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class CounterEntry:
    """Snapshot of a counter after an operation.

    Attributes:
        count: Number of hits recorded in the current window.
        reset_at: UNIX epoch seconds (float) when the window expires.
    """

    count: int
    reset_at: float


class AbstractCounterStore(ABC):
    """Interface for per-key windowed counters.

    Implementations must make ``increment`` atomic per key: two concurrent
    callers always observe two distinct post-increment counts.
    """

    @abstractmethod
    async def increment(self, key: str, window_seconds: int) -> CounterEntry:
        """Add one hit to ``key``, opening a new window when none is active.

        Args:
            key: Fully-qualified counter key (prefix, tier and client).
            window_seconds: Lifetime of the window started by the first hit.

        Returns:
            CounterEntry with the post-increment count and window reset time.

        Raises:
            CounterStoreError: If the backend cannot be reached.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, key: str) -> CounterEntry | None:
        """Return the active counter for ``key`` or None when expired/absent."""
        raise NotImplementedError

    @abstractmethod
    async def reset(self, key: str) -> None:
        """Drop the counter for ``key``."""
        raise NotImplementedError

    @abstractmethod
    async def ping(self) -> bool:
        """Return True when the backend is reachable."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
        return None
