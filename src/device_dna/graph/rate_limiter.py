from __future__ import annotations

import asyncio
import random
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Awaitable, Callable

from device_dna.utils import get_logger


_logger = get_logger(__name__)

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[None]]


def parse_retry_after(value: str | None, *, now: datetime | None = None) -> float | None:
    """Seconds to wait from a ``Retry-After`` header (delta seconds or HTTP date)."""

    if not value:
        return None
    text = value.strip()
    try:
        return max(0.0, float(text))
    except ValueError:
        pass
    try:
        moment = parsedate_to_datetime(text)
    except (TypeError, ValueError):
        _logger.debug("Ignoring unparseable Retry-After header", header=value)
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    reference = now or datetime.now(timezone.utc)
    return max(0.0, (moment - reference).total_seconds())


@dataclass(slots=True)
class RetryPolicy:
    """How often and how long to back off on throttling and transient failures.

    ``attempt`` is 1-based: the first retry follows attempt 1.
    """

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 32.0

    def should_retry(self, *, attempt: int, status_code: int | None) -> bool:
        """``status_code`` is ``None`` for transport failures (timeouts, resets)."""

        if attempt > self.max_retries:
            _logger.warning("Retry budget spent", attempt=attempt, status_code=status_code)
            return False
        return status_code is None or status_code in RETRYABLE_STATUS_CODES

    def delay_for(self, *, attempt: int, retry_after: str | None = None) -> float:
        requested = parse_retry_after(retry_after)
        if requested is not None:
            return min(requested, self.max_delay)
        backoff = self.base_delay * 2 ** max(0, attempt - 1)
        return min(backoff * random.uniform(0.8, 1.2), self.max_delay)


class RequestThrottle:
    """Keep at most ``limit`` requests inside any rolling ``window`` seconds.

    Intune's Graph endpoints throttle per tenant and app; staying under the
    budget avoids most 429 responses on large tenants.
    """

    def __init__(
        self,
        limit: int = 1000,
        window: float = 20.0,
        *,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._sleep = sleep
        self._sent: deque[float] = deque()
        self.throttled = 0

    def available(self) -> bool:
        self._expire()
        return len(self._sent) < self.limit

    def wait_time(self) -> float:
        self._expire()
        if len(self._sent) < self.limit:
            return 0.0
        return max(0.05, self._sent[0] + self.window - self._clock())

    async def acquire(self) -> None:
        while not self.available():
            delay = self.wait_time()
            _logger.debug("Request budget exhausted, pausing", delay=round(delay, 2))
            await self._sleep(delay)
        self._sent.append(self._clock())

    def note_throttled(self) -> None:
        self.throttled += 1
        _logger.warning("Microsoft Graph throttled a request", total=self.throttled)

    def _expire(self) -> None:
        cutoff = self._clock() - self.window
        while self._sent and self._sent[0] <= cutoff:
            self._sent.popleft()


__all__ = [
    "RETRYABLE_STATUS_CODES",
    "RequestThrottle",
    "RetryPolicy",
    "parse_retry_after",
]
