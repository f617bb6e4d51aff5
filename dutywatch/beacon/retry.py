"""Bounded retry for beacon lookups that may not be ready yet."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, TypeVar

from .exceptions import BeaconAPIError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Retry an async call a fixed number of times.

    ``max_retries`` counts retries after the first attempt. The delay before
    retry ``n`` (1-based) is ``delay * backoff ** (n - 1)``. Only exceptions
    listed in ``retry_on`` are retried; anything else propagates at once.
    """

    max_retries: int = 3
    delay: float = 3.0
    backoff: float = 1.0
    retry_on: tuple[type[BaseException], ...] = (BeaconAPIError,)

    def delay_for(self, retry: int) -> float:
        return self.delay * self.backoff ** (retry - 1)

    async def run(self, fn: Callable[[], Awaitable[T]], description: str = "call") -> T:
        retry = 0
        while True:
            try:
                return await fn()
            except self.retry_on as e:
                if retry >= self.max_retries:
                    logger.error(f"{description} failed after {retry} retries: {e}")
                    raise
                retry += 1
                wait = self.delay_for(retry)
                logger.info(f"{description} not ready ({e}), retry {retry}/{self.max_retries} in {wait:.1f}s")
                await asyncio.sleep(wait)
