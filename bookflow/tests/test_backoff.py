"""
Unit tests for bookflow.backoff module.
"""
import datetime

import pytest

from bookflow.backoff import RetryPolicy, compute_backoff_ms, compute_delay, retry


class TestComputeDelay:
    """Tests for compute_delay (Retry-After handling)."""

    def test_seconds_header(self):
        """Test that an integer header is read as seconds."""
        assert compute_delay("2", 1000) == 2000

    def test_zero_seconds(self):
        assert compute_delay("0", 1000) == 0

    def test_seconds_with_whitespace(self):
        assert compute_delay(" 3 ", 1000) == 3000

    def test_http_date_in_future(self):
        """Test that an HTTP-date 1.5s ahead yields a delay in (500, 1500]."""
        now = datetime.datetime(
            2026, 3, 1, 12, 0, 0, 500_000, tzinfo=datetime.timezone.utc
        )
        ms = compute_delay("Sun, 01 Mar 2026 12:00:02 GMT", 1000, now=now)
        assert 500 < ms <= 1500
        assert ms == 1500

    def test_naive_now_is_treated_as_utc(self):
        now = datetime.datetime(2026, 3, 1, 12, 0, 0)
        assert compute_delay("Sun, 01 Mar 2026 12:00:05 GMT", 1000, now=now) == 5000

    def test_http_date_with_fixed_now(self):
        now = datetime.datetime(2026, 3, 1, 12, 0, 0, tzinfo=datetime.timezone.utc)
        header = "Sun, 01 Mar 2026 12:00:05 GMT"
        assert compute_delay(header, 1000, now=now) == 5000

    def test_http_date_in_past_is_zero(self):
        """Test that a past HTTP-date never produces a negative delay."""
        assert compute_delay("Wed, 21 Oct 2015 07:28:00 GMT", 1000) == 0

    @pytest.mark.parametrize("header", ["blah", "-1", "1.5", "", None, "١٢"])
    def test_unparsable_falls_back(self, header):
        """Test that absent or unparsable headers return the default unchanged."""
        assert compute_delay(header, 1200) == 1200


class TestComputeBackoffMs:
    """Tests for compute_backoff_ms."""

    def test_first_attempt_is_base(self):
        assert compute_backoff_ms(1, 1000, jitter=False) == 1000

    def test_grows_by_factor(self):
        assert compute_backoff_ms(2, 1000, jitter=False) == 1800

    def test_exponent_is_capped(self):
        assert compute_backoff_ms(6, 1000, jitter=False) == compute_backoff_ms(
            20, 1000, jitter=False
        )

    def test_attempt_below_one_treated_as_one(self):
        assert compute_backoff_ms(0, 800, jitter=False) == 800

    def test_max_backoff_cap(self):
        assert compute_backoff_ms(5, 1000, jitter=False, max_backoff_ms=2500) == 2500

    def test_custom_factor_and_exponent_cap(self):
        assert compute_backoff_ms(2, 1000, jitter=False, factor=2) == 2000
        assert (
            compute_backoff_ms(5, 1000, jitter=False, factor=2, max_exponent=2)
            == 2000
        )

    def test_jitter_bounded_by_one_second(self):
        assert compute_backoff_ms(1, 1000, rand=lambda: 0.5) == 1500
        assert compute_backoff_ms(3, 1000, rand=lambda: 0.999) < 3240 + 1000


class TestRetry:
    """Tests for the generic retry loop."""

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        calls = []
        sleeps = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RuntimeError("transient")
            return "ok"

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        policy = RetryPolicy(max_attempts=3, base_ms=10, jitter=False)
        assert await retry(flaky, policy, sleep=fake_sleep) == "ok"
        assert len(calls) == 3
        assert sleeps == [0.01, 0.032]

    @pytest.mark.asyncio
    async def test_raises_after_last_attempt(self):
        calls = []

        async def always_fails():
            calls.append(1)
            raise RuntimeError("down")

        async def fake_sleep(seconds):
            pass

        with pytest.raises(RuntimeError, match="down"):
            await retry(always_fails, RetryPolicy(max_attempts=2), sleep=fake_sleep)
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_policy_factor_drives_delays(self):
        calls = []
        sleeps = []

        async def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise RuntimeError("transient")
            return "ok"

        async def fake_sleep(seconds):
            sleeps.append(seconds)

        policy = RetryPolicy(max_attempts=3, base_ms=10, factor=2, jitter=False)
        assert await retry(flaky, policy, sleep=fake_sleep) == "ok"
        assert sleeps == [0.01, 0.04]

    def test_policy_defaults(self):
        policy = RetryPolicy()
        assert policy.factor == 1.8
        assert policy.max_exponent == 6
