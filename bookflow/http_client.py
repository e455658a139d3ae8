"""HTTP calls to text/image generation providers with retry.

Every provider-calling stage goes through ``fetch_with_retry`` so that
``Retry-After`` hints on 429/5xx responses are always honoured.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from bookflow.backoff import compute_backoff_ms, compute_delay
from bookflow.ratelimit import RateLimiter

logger = logging.getLogger(__name__)

OnRetry = Callable[[int, int, int | None], Awaitable[None] | None]


def _is_retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


async def fetch_with_retry(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    *,
    max_attempts: int = 3,
    timeout: float = 60.0,
    idempotency_key: str | None = None,
    on_retry: OnRetry | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    headers: dict[str, str] | None = None,
    limiter: RateLimiter | None = None,
    provider: str = "default",
    **request_kwargs: Any,
) -> httpx.Response:
    """Send a request, retrying on 429/5xx responses and transport errors.

    Args:
        client: Shared ``httpx.AsyncClient``.
        method: HTTP method.
        url: Absolute URL or path relative to the client's base URL.
        max_attempts: Total attempts including the first one.
        timeout: Per-attempt timeout in seconds.
        idempotency_key: Sent as ``Idempotency-Key`` on every attempt.
        on_retry: Called with ``(attempt, delay_ms, status_code)`` before
            each wait; ``status_code`` is None for transport errors.
        sleep: Awaitable sleep, injectable for tests.
        headers: Extra request headers.
        limiter: Optional ``RateLimiter``; every attempt takes a token for
            ``provider`` and holds one of its concurrency slots.
        provider: Provider name used with ``limiter``.
        **request_kwargs: Passed through to ``client.request``.

    Returns:
        The first successful response, or the last non-retryable/final one.

    Raises:
        httpx.TransportError: When the final attempt fails at transport level.
    """
    attempts = max(1, max_attempts)
    request_headers = dict(headers or {})
    if idempotency_key:
        request_headers["Idempotency-Key"] = idempotency_key

    attempt = 0
    while True:
        attempt += 1
        try:
            response = await _send(
                client,
                method,
                url,
                limiter,
                provider,
                headers=request_headers,
                timeout=timeout,
                **request_kwargs,
            )
        except httpx.TransportError as e:
            if attempt >= attempts:
                raise
            delay_ms = compute_backoff_ms(attempt, 800)
            logger.warning(
                f"{method} {url} failed with {type(e).__name__} "
                f"(attempt {attempt}/{attempts}); retrying in {delay_ms}ms"
            )
            await _notify(on_retry, attempt, delay_ms, None)
            await sleep(delay_ms / 1000)
            continue

        if response.is_success:
            return response
        if _is_retryable_status(response.status_code) and attempt < attempts:
            delay_ms = compute_delay(
                response.headers.get("retry-after"),
                compute_backoff_ms(attempt, 1000),
            )
            logger.warning(
                f"{method} {url} returned {response.status_code} "
                f"(attempt {attempt}/{attempts}); retrying in {delay_ms}ms"
            )
            await response.aclose()
            await _notify(on_retry, attempt, delay_ms, response.status_code)
            await sleep(delay_ms / 1000)
            continue
        return response


async def _notify(
    on_retry: OnRetry | None, attempt: int, delay_ms: int, status: int | None
) -> None:
    if on_retry is None:
        return
    result = on_retry(attempt, delay_ms, status)
    if asyncio.iscoroutine(result):
        await result


async def _send(
    client: httpx.AsyncClient,
    method: str,
    url: str,
    limiter: RateLimiter | None,
    provider: str,
    **kwargs: Any,
) -> httpx.Response:
    if limiter is None:
        return await client.request(method, url, **kwargs)
    await limiter.take(provider)
    async with limiter.slot(provider):
        return await client.request(method, url, **kwargs)
