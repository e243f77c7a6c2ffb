"""Bounded retry with exponential backoff for transient storage errors."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, TypeVar

from themestore.errors import BlobNotFoundError, BlobStoreError

logger = logging.getLogger("themestore.retry")

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How often and how patiently to retry a failing call.

    max_attempts counts the initial call. Delays double from base_delay_s up
    to max_delay_s, spread by +/- jitter as a fraction of the delay.
    """

    max_attempts: int = 3
    base_delay_s: float = 0.25
    max_delay_s: float = 4.0
    jitter: float = 0.15

    def compute_delay(self, attempt: int) -> float:
        """Delay before retry number attempt (1 = first retry)."""
        delay = min(self.max_delay_s, self.base_delay_s * (2 ** (attempt - 1)))
        if self.jitter > 0:
            spread = delay * self.jitter
            delay = max(0.0, delay + random.uniform(-spread, spread))
        return delay


NO_RETRY = RetryPolicy(max_attempts=1)


def call_with_retry(
    func: Callable[[], T],
    policy: RetryPolicy,
    *,
    description: str = "",
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call func, retrying BlobStoreError (except not-found) per policy."""
    attempt = 1
    while True:
        try:
            return func()
        except BlobNotFoundError:
            raise
        except BlobStoreError as exc:
            if attempt >= policy.max_attempts:
                raise
            delay = policy.compute_delay(attempt)
            logger.warning(
                "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                description or "storage call",
                attempt,
                policy.max_attempts,
                delay,
                exc.message,
            )
            sleep(delay)
            attempt += 1
