"""Factory for counter store backends."""

from __future__ import annotations

import logging

from nerix_gateway.adapters.rate_limit.base import AbstractCounterStore
from nerix_gateway.adapters.rate_limit.in_memory import InMemoryCounterStore
from nerix_gateway.adapters.rate_limit.redis_store import RedisCounterStore
from nerix_gateway.core.config import RateLimitSettings, settings
from nerix_gateway.core.errors import ErrorCode, ValidationAppError

logger = logging.getLogger(__name__)


def create_counter_store(config: RateLimitSettings | None = None) -> AbstractCounterStore:
    """Create a counter store for the configured backend.

    Args:
        config: Rate limit settings; defaults to the global settings.

    Returns:
        A ready-to-use counter store.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = config or settings.rate_limit
    backend = cfg.backend.lower().strip()

    if backend == "memory":
        store: AbstractCounterStore = InMemoryCounterStore()
    elif backend == "redis":
        store = RedisCounterStore.from_url(
            cfg.redis_url,
            timeout_seconds=cfg.store_timeout_seconds,
        )
    else:
        raise ValidationAppError(
            code=ErrorCode.VALIDATION_ERROR.value,
            message=f"Unsupported rate limit backend: {cfg.backend}",
            details={"hint": "Set RATE_LIMIT_BACKEND to 'memory' or 'redis'"},
        )

    logger.info("rate_limit.store_created", extra={"backend": backend})
    return store
