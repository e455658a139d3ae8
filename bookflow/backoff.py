"""Backoff policy for calls to upstream generation providers.

``compute_delay`` is the single rule every provider-calling stage applies
before retrying: a server-supplied ``Retry-After`` hint wins over the
caller's own backoff. ``compute_backoff_ms`` produces that default backoff.
"""

import asyncio
import datetime
import email.utils
import logging
import math
import random
from collections.abc import Awaitable, Callable
from typing import TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _parse_http_date(value: str) -> datetime.datetime | None:
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=datetime.timezone.utc)
    return parsed


def compute_delay(
    retry_after: str | None,
    default_ms: int,
    now: datetime.datetime | None = None,
) -> int:
    """Milliseconds to wait before retrying an upstream call.

    Args:
        retry_after: Raw ``Retry-After`` header value, if any. Either a
            non-negative integer count of seconds or an HTTP-date.
        default_ms: Delay used when the header is absent or unparsable.
        now: Reference time for HTTP-date hints (defaults to current UTC).

    Returns:
        ``seconds * 1000`` for a seconds hint, the time until the date
        (never negative) for a date hint, ``default_ms`` otherwise.
    """
    if not retry_after:
        return default_ms
    value = retry_after.strip()
    if value.isascii() and value.isdigit():
        return int(value) * 1000

    at = _parse_http_date(value)
    if at is None:
        return default_ms
    now = now or datetime.datetime.now(datetime.timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    delta_ms = (at - now).total_seconds() * 1000
    return max(0, int(delta_ms))


class RetryPolicy(BaseModel):
    max_attempts: int = Field(default=3, ge=1)
    base_ms: int = Field(default=1000, ge=0)
    factor: float = Field(default=1.8, gt=0)
    max_exponent: int = Field(default=6, ge=1)
    max_backoff_ms: int | None = None
    jitter: bool = True


def compute_backoff_ms(
    attempt: int,
    base_ms: int,
    jitter: bool = True,
    max_backoff_ms: int | None = None,
    rand: Callable[[], float] = random.random,
    factor: float = 1.8,
    max_exponent: int = 6,
) -> int:
    """Exponential backoff (exponent capped at ``max_exponent``) with up to 1s jitter."""
    exponent = max(1, min(max_exponent, attempt))
    ms = math.floor(base_ms * factor ** (exponent - 1))
    if max_backoff_ms is not None:
        ms = min(ms, max_backoff_ms)
    if jitter:
        spread = min(ms, 1000)
        ms += math.floor(rand() * spread)
    return ms


async def retry(
    fn: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Run ``fn`` until it succeeds or ``policy.max_attempts`` is exhausted."""
    max_backoff = policy.max_backoff_ms or policy.base_ms * 8
    backoff = policy.base_ms
    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            attempt += 1
            if attempt >= policy.max_attempts:
                raise
            delay = compute_backoff_ms(
                attempt,
                backoff,
                jitter=policy.jitter,
                max_backoff_ms=max_backoff,
                factor=policy.factor,
                max_exponent=policy.max_exponent,
            )
            logger.warning(
                f"Attempt {attempt}/{policy.max_attempts} failed ({e}); "
                f"retrying in {delay}ms"
            )
            await sleep(delay / 1000)
            backoff = min(max_backoff, math.floor(backoff * policy.factor))
