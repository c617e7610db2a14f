"""
Tests for request spacing and rate-limit backoff.
"""
import asyncio

import pytest

from jobdance.infrastructure.errors import ProviderError, RateLimitError
from jobdance.infrastructure.llm.request_queue import RequestQueue, get_default_queue, retry_with_backoff


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def queue(clock):
    return RequestQueue(clock=clock, base_delay=1.0, max_delay=3.0, multiplier=1.5, growth_after=2)


async def throttled():
    raise RateLimitError("429 Too Many Requests", status_code=429)


async def succeed():
    return "ok"


# =============================================================================
# Spacing
# =============================================================================


class TestSpacing:
    """Dispatches are spaced and the spacing adapts to throttling."""

    @pytest.mark.asyncio
    async def test_first_request_is_not_delayed(self, queue, clock):
        assert await queue.submit(succeed) == "ok"
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_consecutive_requests_are_spaced(self, queue, clock):
        await queue.submit(succeed)
        await queue.submit(succeed)
        assert clock.sleeps == [pytest.approx(1.0)]

    @pytest.mark.asyncio
    async def test_spacing_grows_after_second_consecutive_throttle(self, queue, clock):
        spacings = []
        for _ in range(3):
            with pytest.raises(RateLimitError):
                await queue.submit(throttled)
            spacings.append(queue.current_spacing)

        assert spacings[0] == pytest.approx(1.5)
        assert spacings[1] == pytest.approx(1.5)
        assert spacings[2] > spacings[1]

        await queue.submit(succeed)

        # Gaps actually waited before the 2nd, 3rd and 4th dispatch
        assert clock.sleeps == [pytest.approx(1.5), pytest.approx(1.5), pytest.approx(2.25)]
        assert clock.sleeps[2] > clock.sleeps[1]
        assert queue.current_spacing <= spacings[2]
        assert queue.consecutive_throttles == 0

    @pytest.mark.asyncio
    async def test_success_decays_toward_baseline(self, queue):
        for _ in range(4):
            with pytest.raises(RateLimitError):
                await queue.submit(throttled)
        grown = queue.min_delay
        assert grown > 1.0

        previous = grown
        for _ in range(5):
            await queue.submit(succeed)
            assert queue.min_delay <= previous
            previous = queue.min_delay
        assert queue.min_delay == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_base_spacing_is_capped(self, queue):
        for _ in range(10):
            with pytest.raises(RateLimitError):
                await queue.submit(throttled)
        assert queue.min_delay == pytest.approx(3.0)

    @pytest.mark.asyncio
    async def test_other_errors_do_not_count_as_throttles(self, queue):
        async def broken():
            raise ProviderError("500")

        with pytest.raises(ProviderError):
            await queue.submit(broken)
        assert queue.consecutive_throttles == 0

    @pytest.mark.asyncio
    async def test_requests_run_one_at_a_time(self, queue):
        order = []

        def make(name):
            async def operation():
                order.append(f"start {name}")
                await asyncio.sleep(0)
                await asyncio.sleep(0)
                order.append(f"end {name}")
            return operation

        await asyncio.gather(queue.submit(make("a")), queue.submit(make("b")))
        assert order == ["start a", "end a", "start b", "end b"]

    def test_default_queue_is_shared(self):
        assert get_default_queue() is get_default_queue()


# =============================================================================
# Backoff
# =============================================================================


class TestRetryWithBackoff:
    """Only rate-limit errors are retried, with exponential waits."""

    @pytest.mark.asyncio
    async def test_retries_rate_limits_then_succeeds(self, clock):
        calls = []

        async def operation():
            calls.append(1)
            if len(calls) < 3:
                raise RateLimitError("throttled")
            return "done"

        result = await retry_with_backoff(operation, max_retries=3, base_delay=1.0, jitter=0.0, clock=clock)

        assert result == "done"
        assert len(calls) == 3
        assert clock.sleeps == [pytest.approx(1.0), pytest.approx(2.0)]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, clock):
        calls = []

        async def operation():
            calls.append(1)
            raise RateLimitError("throttled")

        with pytest.raises(RateLimitError):
            await retry_with_backoff(operation, max_retries=3, base_delay=0.5, jitter=0.0, clock=clock)

        assert len(calls) == 4
        assert clock.sleeps == [pytest.approx(0.5), pytest.approx(1.0), pytest.approx(2.0)]

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self, clock):
        calls = []

        async def operation():
            calls.append(1)
            raise ProviderError("bad request", status_code=400)

        with pytest.raises(ProviderError):
            await retry_with_backoff(operation, max_retries=3, clock=clock)

        assert len(calls) == 1
        assert clock.sleeps == []

    @pytest.mark.asyncio
    async def test_jitter_is_bounded(self, clock):
        async def operation():
            raise RateLimitError("throttled")

        with pytest.raises(RateLimitError):
            await retry_with_backoff(operation, max_retries=1, base_delay=1.0, jitter=0.5, clock=clock)

        assert 1.0 <= clock.sleeps[0] <= 1.5
