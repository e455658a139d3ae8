"""Per-provider rate limiting for generation provider calls.

Each provider name gets a token bucket (``max_rps`` average, ``burst``
capacity) and a concurrency semaphore. Buckets and semaphores belong to a
``RateLimiter`` instance; nothing is shared at module level.

Usage::

    limiter = RateLimiter({"openai": ProviderLimits(max_rps=5, burst=10, concurrency=4)})

    await limiter.take("openai")
    async with limiter.slot("openai"):
        response = await client.post(...)

    # or both at once
    result = await limiter.run("openai", lambda: call_provider())
"""

import asyncio
import contextlib
import math
import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ProviderLimits(BaseModel):
    max_rps: float = Field(default=5.0, gt=0)
    burst: float = Field(default=10.0, ge=1)
    concurrency: int = Field(default=4, ge=1)
    disabled: bool = False


class TokenBucket:
    """Token bucket allowing ``max_rps`` calls per second with ``burst`` headroom.

    Starts full. ``take()`` waits until a token is available, sleeping at
    least 5ms between checks.
    """

    def __init__(
        self,
        max_rps: float,
        burst: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_rps <= 0:
            raise ValueError("max_rps must be > 0")
        self.capacity = burst
        self._tokens: float = burst
        self._refill_per_ms = max_rps / 1000
        self._clock = clock
        self._sleep = sleep
        self._last_refill = clock()

    @property
    def tokens(self) -> float:
        self._refill()
        return self._tokens

    def _refill(self) -> None:
        now = self._clock()
        elapsed_ms = (now - self._last_refill) * 1000
        if elapsed_ms > 0:
            self._tokens = min(self.capacity, self._tokens + elapsed_ms * self._refill_per_ms)
            self._last_refill = now

    async def take(self) -> None:
        while True:
            self._refill()
            if self._tokens >= 1:
                self._tokens -= 1
                return
            wait_ms = max(5, math.ceil((1 - self._tokens) / self._refill_per_ms))
            await self._sleep(wait_ms / 1000)


class RateLimiter:
    """Token buckets and concurrency limits keyed by provider name.

    Providers without an entry in ``limits`` use ``ProviderLimits()``
    defaults. A provider marked ``disabled`` is never throttled.
    """

    def __init__(
        self,
        limits: Mapping[str, ProviderLimits | Mapping[str, Any]] | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._limits = {
            name: ProviderLimits.model_validate(value)
            for name, value in (limits or {}).items()
        }
        self._clock = clock
        self._sleep = sleep
        self._buckets: dict[str, TokenBucket] = {}
        self._semaphores: dict[str, asyncio.Semaphore] = {}

    def limits_for(self, name: str) -> ProviderLimits:
        return self._limits.get(name) or ProviderLimits()

    def bucket(self, name: str) -> TokenBucket:
        bucket = self._buckets.get(name)
        if bucket is None:
            limits = self.limits_for(name)
            bucket = self._buckets[name] = TokenBucket(
                limits.max_rps, limits.burst, clock=self._clock, sleep=self._sleep
            )
        return bucket

    def _semaphore(self, name: str) -> asyncio.Semaphore:
        sem = self._semaphores.get(name)
        if sem is None:
            sem = self._semaphores[name] = asyncio.Semaphore(
                self.limits_for(name).concurrency
            )
        return sem

    async def take(self, name: str) -> None:
        """Wait for one request token for ``name``."""
        if self.limits_for(name).disabled:
            return
        await self.bucket(name).take()

    @contextlib.asynccontextmanager
    async def slot(self, name: str) -> AsyncIterator[None]:
        """Hold one of the provider's concurrent-call slots."""
        if self.limits_for(name).disabled:
            yield
            return
        async with self._semaphore(name):
            yield

    async def run(self, name: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` after taking a token, inside a concurrency slot."""
        await self.take(name)
        async with self.slot(name):
            return await fn()
