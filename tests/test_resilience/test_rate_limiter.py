"""Tests for the token bucket rate limiter."""

import asyncio

import pytest

from resilient_ingest.resilience.rate_limiter import TokenBucket


@pytest.fixture
def bucket(fake_clock) -> TokenBucket:
    """60 requests per minute: capacity 60, one token per second."""
    return TokenBucket(60, clock=fake_clock, sleep=fake_clock.sleep)


class TestTokenBucket:
    """Tests for TokenBucket."""

    def test_rejects_non_positive_rate(self):
        with pytest.raises(ValueError):
            TokenBucket(0)

    def test_starts_full(self, bucket):
        assert bucket.available_tokens == 60.0
        assert bucket.refill_rate == 1.0

    @pytest.mark.asyncio
    async def test_burst_up_to_capacity_without_waiting(self, bucket, fake_clock):
        """A full bucket serves capacity acquires immediately."""
        waits = [await bucket.acquire() for _ in range(60)]

        assert waits == [0.0] * 60
        assert fake_clock.sleeps == []
        assert bucket.available_tokens == pytest.approx(0.0)

    @pytest.mark.asyncio
    async def test_waits_for_refill_when_empty(self, bucket, fake_clock):
        """An empty bucket suspends the caller until one token has refilled."""
        for _ in range(60):
            await bucket.acquire()

        waited = await bucket.acquire()

        assert waited == pytest.approx(1.0)
        assert fake_clock.sleeps == [pytest.approx(1.0)]
        assert bucket.available_tokens >= 0.0

    @pytest.mark.asyncio
    async def test_refill_never_exceeds_capacity(self, bucket, fake_clock):
        await bucket.acquire()
        fake_clock.advance(3600)
        assert bucket.available_tokens == 60.0

    @pytest.mark.asyncio
    async def test_acquires_bounded_by_capacity_plus_refill(self, fake_clock):
        """Over T seconds at most capacity + T * rate acquires complete."""
        bucket = TokenBucket(6, clock=fake_clock, sleep=fake_clock.sleep)  # 0.1/s
        start = fake_clock()

        for _ in range(20):
            await bucket.acquire()
            assert 0.0 <= bucket.available_tokens <= bucket.capacity

        elapsed = fake_clock() - start
        assert 20 <= bucket.capacity + elapsed * bucket.refill_rate + 1e-6

    @pytest.mark.asyncio
    async def test_concurrent_acquires_are_serialized(self, fake_clock):
        """Concurrent callers never drive the bucket negative."""
        bucket = TokenBucket(2, clock=fake_clock, sleep=fake_clock.sleep)

        waits = await asyncio.gather(*(bucket.acquire() for _ in range(5)))

        assert waits.count(0.0) == 2
        assert sum(1 for w in waits if w > 0) == 3
        assert bucket.available_tokens >= 0.0

    @pytest.mark.asyncio
    async def test_cancelled_waiter_consumes_no_token(self):
        """Cancelling a waiting caller leaves the bucket state consistent."""
        bucket = TokenBucket(60)  # real clock and sleep
        for _ in range(60):
            await bucket.acquire()

        task = asyncio.create_task(bucket.acquire())
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert 0.0 <= bucket.available_tokens < 1.0

    def test_status(self, bucket):
        status = bucket.status()
        assert status == {"capacity": 60.0, "refill_per_second": 1.0, "available": 60.0}
