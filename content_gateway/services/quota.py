"""
Quota Counter - Fixed Window Rate Limiting

This module implements per-identity rate limiting backed by a shared Redis
counter store.

Algorithm (fixed window counter):
- INCR ratelimit:<identity>
- when the post-increment value is 1, EXPIRE the key for the window length
- a value above the limit denies the request with retry_after = window

Concurrent requests from the same identity are serialized by Redis INCR; no
local locking is used. A client can burst up to twice the limit across a
window boundary, which the fixed window design accepts.

When no counter store is configured every request is allowed. When a
configured store fails, the fail_open policy decides: allow the request
(degraded) or raise QuotaStoreUnavailableError.

Pattern: Strategy pattern - QuotaCounter interface
Reference: GUIDELINES pp. 2153 - external state stores (Redis) for distributed limits
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from redis.asyncio import Redis
from redis.exceptions import RedisError

from content_gateway.core.config import Settings
from content_gateway.core.exceptions import QuotaStoreUnavailableError
from content_gateway.observability.logging import get_logger

logger = get_logger(__name__)

DEFAULT_LIMIT = 10
DEFAULT_WINDOW_SECONDS = 60
DEFAULT_KEY_PREFIX = "ratelimit:"

# Keeps a hung counter store from holding requests indefinitely
REDIS_SOCKET_TIMEOUT_SECONDS = 2.0


# =============================================================================
# Quota Decision
# =============================================================================


@dataclass(frozen=True)
class QuotaDecision:
    """
    Result of a quota check.

    Attributes:
        allowed: Whether the request may proceed
        limit: Requests allowed per window
        count: Post-increment counter value (0 when the store was bypassed)
        retry_after: Seconds to wait before retrying (denied requests only)
        degraded: True when the store was unavailable and the check was skipped
    """

    allowed: bool
    limit: int
    count: int
    retry_after: Optional[int] = None
    degraded: bool = False

    @property
    def remaining(self) -> int:
        return max(self.limit - self.count, 0)


# =============================================================================
# Quota Counter Interface
# =============================================================================


class QuotaCounter(ABC):
    """Abstract interface for per-identity quota enforcement."""

    @abstractmethod
    async def check(self, identity: str) -> QuotaDecision:
        """
        Count one request for identity and decide whether it may proceed.

        Args:
            identity: Resolved caller identity

        Returns:
            QuotaDecision

        Raises:
            QuotaStoreUnavailableError: store is down and the counter fails closed
        """

    async def aclose(self) -> None:
        """Release any held resources."""
        return None


# =============================================================================
# Redis Fixed Window Implementation
# =============================================================================


class FixedWindowQuotaCounter(QuotaCounter):
    """
    Fixed window counter stored in Redis.

    Example:
        >>> counter = FixedWindowQuotaCounter(redis_client, limit=10, window_seconds=60)
        >>> decision = await counter.check("user_123")
        >>> decision.allowed
        True
    """

    def __init__(
        self,
        redis_client: Optional[Redis],
        limit: int = DEFAULT_LIMIT,
        window_seconds: int = DEFAULT_WINDOW_SECONDS,
        fail_open: bool = True,
        key_prefix: str = DEFAULT_KEY_PREFIX,
    ) -> None:
        """
        Initialize the counter.

        Args:
            redis_client: Async Redis client, or None when no store is configured
            limit: Requests allowed per identity per window
            window_seconds: Window length, also the Retry-After hint
            fail_open: Allow requests when the store is unavailable
            key_prefix: Prefix for counter keys
        """
        self._redis = redis_client
        self.limit = limit
        self.window_seconds = window_seconds
        self.fail_open = fail_open
        self._key_prefix = key_prefix

    @property
    def enabled(self) -> bool:
        return self._redis is not None

    def make_key(self, identity: str) -> str:
        return f"{self._key_prefix}{identity}"

    async def check(self, identity: str) -> QuotaDecision:
        if self._redis is None:
            # Rate limiting is disabled outright when no store is configured
            return QuotaDecision(allowed=True, limit=self.limit, count=0, degraded=True)

        key = self.make_key(identity)
        try:
            count = int(await self._redis.incr(key))
            if count == 1:
                await self._redis.expire(key, self.window_seconds)
            elif count > self.limit:
                await self._restore_missing_expiry(key)
        except RedisError as e:
            return self._store_unavailable(identity, f"{type(e).__name__}: {e}")

        if count > self.limit:
            return QuotaDecision(
                allowed=False,
                limit=self.limit,
                count=count,
                retry_after=self.window_seconds,
            )

        return QuotaDecision(allowed=True, limit=self.limit, count=count)

    async def _restore_missing_expiry(self, key: str) -> None:
        """
        Re-arm the window for a key that lost its TTL.

        An EXPIRE that failed after the first INCR leaves a key that would
        otherwise block its identity forever.
        """
        if await self._redis.ttl(key) == -1:
            logger.warning("quota key had no expiry, restoring window", key=key)
            await self._redis.expire(key, self.window_seconds)

    def _store_unavailable(self, identity: str, reason: str) -> QuotaDecision:
        if not self.fail_open:
            logger.error("quota store unavailable, failing closed", identity=identity, reason=reason)
            raise QuotaStoreUnavailableError()

        logger.warning("quota store unavailable, failing open", identity=identity, reason=reason)
        return QuotaDecision(allowed=True, limit=self.limit, count=0, degraded=True)

    async def aclose(self) -> None:
        if self._redis is not None:
            await self._redis.aclose()


# =============================================================================
# Factory
# =============================================================================


def create_redis_client(url: str) -> Optional[Redis]:
    """
    Build an async Redis client, or None when the URL is missing or invalid.

    No connection is attempted here; connectivity problems surface as
    RedisError on first use and are handled by the fail-open policy.
    """
    if not url:
        return None
    try:
        return Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
            socket_connect_timeout=REDIS_SOCKET_TIMEOUT_SECONDS,
        )
    except ValueError as e:
        logger.warning("invalid redis url, rate limiting disabled", error=str(e))
        return None


def create_quota_counter(settings: Settings) -> FixedWindowQuotaCounter:
    """Build the quota counter from settings."""
    return FixedWindowQuotaCounter(
        redis_client=create_redis_client(settings.redis_url.get_secret_value()),
        limit=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
        fail_open=settings.rate_limit_fail_open,
    )
