"""
Single-lane request queue with adaptive spacing, plus rate-limit backoff.

Every call to the chat and speech-synthesis providers goes through one
RequestQueue, so at most one provider request is in flight and consecutive
dispatches are at least ``current_spacing`` seconds apart. Spacing grows
while the provider keeps throttling and decays back after successes.
"""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from ..errors import RateLimitError
from ...config import (
    QUEUE_BASE_DELAY_SECONDS, QUEUE_MAX_DELAY_SECONDS, THROTTLE_MULTIPLIER,
    THROTTLE_GROWTH_AFTER, MAX_RETRIES, CHAT_BACKOFF_BASE_SECONDS, BACKOFF_JITTER_SECONDS,
)
from ...utils.clock import Clock, LoopClock

logger = logging.getLogger("request_queue")

T = TypeVar("T")


class RequestQueue:
    """Serializes provider calls and spaces them out."""

    def __init__(self,
                 clock: Optional[Clock] = None,
                 base_delay: float = QUEUE_BASE_DELAY_SECONDS,
                 max_delay: float = QUEUE_MAX_DELAY_SECONDS,
                 multiplier: float = THROTTLE_MULTIPLIER,
                 growth_after: int = THROTTLE_GROWTH_AFTER):
        self.clock = clock or LoopClock()
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.growth_after = growth_after
        self.min_delay = base_delay
        self.consecutive_throttles = 0
        self.last_dispatch: Optional[float] = None
        self._lane = asyncio.Lock()

    @property
    def current_spacing(self) -> float:
        """Minimum gap before the next dispatch."""
        if self.consecutive_throttles > 0:
            return self.min_delay * self.multiplier
        return self.min_delay

    async def submit(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run operation once it reaches the head of the lane."""
        async with self._lane:
            if self.last_dispatch is not None:
                wait = self.last_dispatch + self.current_spacing - self.clock.now()
                if wait > 0:
                    logger.debug("Spacing next request by %.2fs", wait)
                    await self.clock.sleep(wait)

            self.last_dispatch = self.clock.now()
            try:
                result = await operation()
            except RateLimitError:
                self.record_throttle()
                raise
            self.record_success()
            return result

    def record_throttle(self):
        self.consecutive_throttles += 1
        if self.consecutive_throttles > self.growth_after:
            self.min_delay = min(self.max_delay, self.min_delay * self.multiplier)
        logger.warning(
            "Provider throttled (%d in a row), spacing now %.2fs",
            self.consecutive_throttles, self.current_spacing,
        )

    def record_success(self):
        self.consecutive_throttles = 0
        if self.min_delay > self.base_delay:
            self.min_delay = max(self.base_delay, self.min_delay / self.multiplier)
            logger.debug("Spacing decayed to %.2fs", self.min_delay)


async def retry_with_backoff(operation: Callable[[], Awaitable[T]],
                             max_retries: int = MAX_RETRIES,
                             base_delay: float = CHAT_BACKOFF_BASE_SECONDS,
                             jitter: float = BACKOFF_JITTER_SECONDS,
                             clock: Optional[Clock] = None) -> T:
    """
    Retry operation on RateLimitError with exponential backoff and jitter.

    The n-th retry waits ``base_delay * 2**(n-1) + uniform(0, jitter)``.
    Any other exception propagates on the first attempt.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_retries + 1),
        wait=wait_exponential(multiplier=base_delay) + wait_random(0, jitter),
        retry=retry_if_exception_type(RateLimitError),
        sleep=(clock or LoopClock()).sleep,
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    return await retrying(operation)


_default_queue: Optional[RequestQueue] = None


def get_default_queue() -> RequestQueue:
    """Process-wide queue shared by every gateway that is not given its own."""
    global _default_queue
    if _default_queue is None:
        _default_queue = RequestQueue()
    return _default_queue
