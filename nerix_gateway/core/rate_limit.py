"""Rule-based rate limiting for API routes.

This module resolves which limiter tier applies to a request and evaluates
it against a shared counter store.

Design goals:
- Ordered rule table: the first rule matching path and method wins; requests
  matching no rule fall back to the default tier.
- Swap-friendly: counters live behind AbstractCounterStore (memory or Redis).
- Explicit failure policy: store errors and timeouts either admit the
  request (fail-open, default) or reject it (fail-closed).
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import re
import time
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Sequence

from fastapi import Request

from nerix_gateway.adapters.rate_limit.base import AbstractCounterStore
from nerix_gateway.adapters.rate_limit.factory import create_counter_store
from nerix_gateway.core.config import RateLimitSettings, parse_csv, settings
from nerix_gateway.core.errors import (
    CounterStoreError,
    ErrorCode,
    RateLimitUnavailableError,
)

logger = logging.getLogger(__name__)


RESTRICTIVE = "restrictive"
MODERATE = "moderate"
GENEROUS = "generous"

DEFAULT_TIER = MODERATE


@dataclass(frozen=True)
class LimiterTier:
    """Named quota policy: at most ``limit`` requests per ``window_seconds``."""

    name: str
    limit: int
    window_seconds: int

    def __post_init__(self) -> None:
        if self.limit < 1:
            raise ValueError("limit must be >= 1")
        if self.window_seconds < 1:
            raise ValueError("window_seconds must be >= 1")


@dataclass(frozen=True)
class RateLimitRule:
    """Maps a path pattern and optional method set to a tier name."""

    pattern: re.Pattern[str]
    tier: str
    methods: frozenset[str] | None = None

    @classmethod
    def build(cls, pattern: str, tier: str, methods: Iterable[str] | None = None) -> "RateLimitRule":
        return cls(
            pattern=re.compile(pattern),
            tier=tier,
            methods=frozenset(m.upper() for m in methods) if methods is not None else None,
        )

    def matches(self, path: str, method: str) -> bool:
        if self.methods is not None and method.upper() not in self.methods:
            return False
        return self.pattern.search(path) is not None


@dataclass(frozen=True)
class RateLimitResult:
    """Result of evaluating one request.

    Attributes:
        allowed: Whether the request may proceed.
        limit: Max requests per window for the matched tier.
        remaining: Requests left in the current window (never negative).
        reset_at: UNIX epoch seconds when the current window resets.
        retry_after_seconds: Suggested wait in seconds when blocked.
        tier: Name of the tier that was applied.
    """

    allowed: bool
    limit: int
    remaining: int
    reset_at: int
    retry_after_seconds: int | None
    tier: str


# Ordered from most to least specific; earlier entries take priority.
RATE_LIMIT_RULES: tuple[RateLimitRule, ...] = (
    # High frequency, low cost reads
    RateLimitRule.build(r"^/api/games$", MODERATE, ["GET"]),
    RateLimitRule.build(r"^/api/games/[^/]+$", MODERATE, ["GET"]),
    RateLimitRule.build(r"^/api/games/[^/]+/messages$", GENEROUS, ["GET"]),
    RateLimitRule.build(r"^/api/profile", MODERATE, ["GET"]),
    # Low frequency reads
    RateLimitRule.build(r"^/api/airdrop$", MODERATE, ["GET"]),
    # Monitoring and health
    RateLimitRule.build(r"^/api/system-status$", GENEROUS, ["GET"]),
    RateLimitRule.build(r"^/api/support$", GENEROUS, ["GET"]),
    # Form submissions
    RateLimitRule.build(r"^/api/support$", RESTRICTIVE, ["POST"]),
)


def build_tiers(config: RateLimitSettings) -> dict[str, LimiterTier]:
    """Build the tier table from configuration."""

    return {
        RESTRICTIVE: LimiterTier(RESTRICTIVE, config.restrictive_requests, config.restrictive_window_seconds),
        MODERATE: LimiterTier(MODERATE, config.moderate_requests, config.moderate_window_seconds),
        GENEROUS: LimiterTier(GENEROUS, config.generous_requests, config.generous_window_seconds),
    }


class RateLimitEvaluator:
    """Matches requests to tiers and consumes budget from the counter store.

    Args:
        store: Counter store shared by all tiers.
        tiers: Tier table keyed by name.
        rules: Ordered rule table.
        default_tier: Tier name applied when no rule matches.
        exempt_patterns: Regexes for paths that are never limited.
        key_prefix: Namespace prepended to counter keys.
        store_timeout_seconds: Upper bound for one store call.
        fail_open: Admit requests when the store is unavailable.
        clock: Time source returning UNIX seconds.

    Raises:
        ValueError: If a rule or the default refers to an unknown tier.
    """

    def __init__(
        self,
        *,
        store: AbstractCounterStore,
        tiers: Mapping[str, LimiterTier],
        rules: Sequence[RateLimitRule] = RATE_LIMIT_RULES,
        default_tier: str = DEFAULT_TIER,
        exempt_patterns: Iterable[str] = (),
        key_prefix: str = "nerix:ratelimit",
        store_timeout_seconds: float = 0.5,
        fail_open: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        unknown = {rule.tier for rule in rules if rule.tier not in tiers}
        if default_tier not in tiers:
            unknown.add(default_tier)
        if unknown:
            raise ValueError(f"unknown limiter tier(s): {', '.join(sorted(unknown))}")

        self.store = store
        self._tiers = dict(tiers)
        self._rules = tuple(rules)
        self._default_tier = default_tier
        self._exempt = tuple(re.compile(p) for p in exempt_patterns)
        self._key_prefix = key_prefix
        self._timeout = store_timeout_seconds
        self._fail_open = fail_open
        self._clock = clock

    def is_exempt(self, path: str) -> bool:
        return any(p.search(path) for p in self._exempt)

    def match(self, path: str, method: str) -> LimiterTier:
        """Return the tier of the first rule matching path and method.

        Falls back to the default tier when nothing matches.
        """
        for rule in self._rules:
            if rule.matches(path, method):
                return self._tiers[rule.tier]
        return self._tiers[self._default_tier]

    def build_key(self, tier: LimiterTier, identity: str) -> str:
        return f"{self._key_prefix}:{tier.name}:{identity}"

    async def evaluate(self, tier: LimiterTier, identity: str) -> RateLimitResult:
        """Consume one unit of ``tier`` budget for ``identity``.

        Raises:
            RateLimitUnavailableError: If the store is unavailable and the
                evaluator fails closed.
        """
        key = self.build_key(tier, identity)
        try:
            entry = await asyncio.wait_for(
                self.store.increment(key, tier.window_seconds),
                timeout=self._timeout,
            )
        except (CounterStoreError, asyncio.TimeoutError) as exc:
            return self._handle_store_failure(tier, exc)

        now = self._clock()
        reset_at = int(math.ceil(entry.reset_at))
        if entry.count <= tier.limit:
            return RateLimitResult(
                allowed=True,
                limit=tier.limit,
                remaining=tier.limit - entry.count,
                reset_at=reset_at,
                retry_after_seconds=None,
                tier=tier.name,
            )

        retry_after = max(1, int(math.ceil(entry.reset_at - now)))
        return RateLimitResult(
            allowed=False,
            limit=tier.limit,
            remaining=0,
            reset_at=reset_at,
            retry_after_seconds=min(retry_after, tier.window_seconds),
            tier=tier.name,
        )

    async def check(self, path: str, method: str, identity: str) -> RateLimitResult:
        """Resolve the tier for the request and evaluate it."""
        return await self.evaluate(self.match(path, method), identity)

    def _handle_store_failure(self, tier: LimiterTier, exc: Exception) -> RateLimitResult:
        logger.error(
            "rate_limit.store_unavailable",
            extra={
                "tier": tier.name,
                "error_type": type(exc).__name__,
                "fail_open": self._fail_open,
            },
        )
        if not self._fail_open:
            raise RateLimitUnavailableError(
                code=ErrorCode.RATE_LIMIT_UNAVAILABLE.value,
                message="Rate limiting is temporarily unavailable. Try again later.",
                details={"tier": tier.name},
            ) from exc

        return RateLimitResult(
            allowed=True,
            limit=tier.limit,
            remaining=tier.limit,
            reset_at=int(math.ceil(self._clock() + tier.window_seconds)),
            retry_after_seconds=None,
            tier=tier.name,
        )


_evaluator: RateLimitEvaluator | None = None
_evaluator_config: RateLimitSettings | None = None


def get_rate_limit_evaluator() -> RateLimitEvaluator:
    """Return a process-wide evaluator instance.

    The instance is cached in-module to preserve counter state across
    requests. If configuration changes (primarily in tests), it is rebuilt.
    """

    global _evaluator, _evaluator_config

    config = settings.rate_limit
    if _evaluator is None or _evaluator_config != config:
        _evaluator = RateLimitEvaluator(
            store=create_counter_store(config),
            tiers=build_tiers(config),
            exempt_patterns=parse_csv(config.exempt_patterns),
            key_prefix=config.key_prefix,
            store_timeout_seconds=config.store_timeout_seconds,
            fail_open=config.fail_open,
        )
        _evaluator_config = config.model_copy()

    return _evaluator


def reset_rate_limit_evaluator() -> None:
    """Drop the cached evaluator so the next call rebuilds it."""

    global _evaluator, _evaluator_config
    _evaluator = None
    _evaluator_config = None


async def close_rate_limit_evaluator() -> None:
    """Close the cached evaluator's store (if any) and drop it."""

    if _evaluator is not None:
        await _evaluator.store.close()
    reset_rate_limit_evaluator()


def client_identity(request: Request) -> str:
    """Build the caller identity used in counter keys.

    Only API keys listed in ``RATE_LIMIT_API_KEYS`` get their own bucket;
    any other key is ignored so callers cannot mint fresh buckets by
    rotating it. Keys are hashed so raw secrets never reach the store. The
    client address honours proxy headers first.
    """

    api_key = request.headers.get("X-API-Key")
    if api_key and api_key in parse_csv(settings.rate_limit.api_keys):
        return f"api_key:{hash_identity(api_key)}"
    return f"ip:{client_ip(request)}"


def client_ip(request: Request) -> str:
    """Resolve the caller address, preferring proxy headers."""

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()

    return request.client.host if request.client else "unknown"


def hash_identity(value: str) -> str:
    """Hash an identity for keys and logs without exposing secrets."""
    return hashlib.sha256(value.encode()).hexdigest()[:16]
