"""Per-provider request pacing with bounded, linearly backed-off retries.

Every outbound provider call goes through a single RateLimiter instance that
is handed to each client. Pacing is a fixed minimum gap between attempts to
the same provider, not a token bucket.
"""

import asyncio
import time
from typing import Awaitable, Callable, Mapping, TypeVar

import httpx
from loguru import logger
from pydantic import BaseModel, Field

from placeflow.core.exceptions import (
    ConfigurationError,
    ProviderError,
    TransientProviderError,
)

T = TypeVar("T")

RETRYABLE_ERRORS = (TransientProviderError, httpx.HTTPError)


class ProviderPolicy(BaseModel):
    """Pacing and retry settings for one provider."""

    delay_seconds: float = Field(default=1.0, ge=0)
    max_retries: int = Field(default=2, ge=0)


class RateLimiter:
    """Paces and retries calls per provider.

    Usage:
        limiter = RateLimiter({"serp": ProviderPolicy(delay_seconds=1.0)})
        data = await limiter.call("serp", lambda: client.fetch(...))
    """

    def __init__(
        self,
        policies: Mapping[str, ProviderPolicy],
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._policies = dict(policies)
        self._clock = clock
        self._sleep = sleep
        self._last_call: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._attempts: dict[str, int] = {}

    def policy(self, provider: str) -> ProviderPolicy:
        try:
            return self._policies[provider]
        except KeyError:
            raise ConfigurationError(
                f"No rate limit policy configured for provider '{provider}'"
            ) from None

    def attempts(self, provider: str) -> int:
        """Number of attempts issued to a provider so far."""
        return self._attempts.get(provider, 0)

    async def _pace(self, provider: str, policy: ProviderPolicy) -> None:
        last = self._last_call.get(provider)
        if last is not None:
            wait = policy.delay_seconds - (self._clock() - last)
            if wait > 0:
                await self._sleep(wait)
        self._last_call[provider] = self._clock()
        self._attempts[provider] = self._attempts.get(provider, 0) + 1

    async def call(self, provider: str, request: Callable[[], Awaitable[T]]) -> T:
        """Issue ``request()`` under the provider's pacing and retry policy.

        Retries on TransientProviderError and httpx transport/status errors,
        sleeping ``delay_seconds * attempt`` between attempts. Anything else
        propagates immediately.

        Raises:
            ProviderError: when all attempts failed.
        """
        policy = self.policy(provider)
        lock = self._locks.setdefault(provider, asyncio.Lock())
        total_attempts = policy.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(1, total_attempts + 1):
            async with lock:
                await self._pace(provider, policy)
            try:
                return await request()
            except RETRYABLE_ERRORS as e:
                last_error = e
                if attempt < total_attempts:
                    backoff = policy.delay_seconds * attempt
                    logger.warning(
                        f"[{provider}] Attempt {attempt}/{total_attempts} failed: {e}. "
                        f"Retrying in {backoff:.1f}s..."
                    )
                    await self._sleep(backoff)

        logger.error(f"[{provider}] All {total_attempts} attempts failed: {last_error}")
        raise ProviderError(
            provider, str(last_error), attempts=total_attempts
        ) from last_error
