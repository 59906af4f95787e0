"""Bounded retry with exponential backoff for transient transport failures."""

from __future__ import annotations

import logging
import random
import time
from typing import TYPE_CHECKING, TypeVar

from pydantic import BaseModel, Field

from fleet_hardener.core.transport import ConnectivityError

if TYPE_CHECKING:
    from collections.abc import Callable

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RetryPolicy(BaseModel):
    """Retry policy configuration."""

    max_retries: int = Field(default=3, ge=0)
    base_delay: float = Field(default=1.0, ge=0)  # seconds
    max_delay: float = Field(default=30.0, ge=0)  # seconds
    exponential_base: float = Field(default=2.0, ge=1)
    jitter: bool = True

    def delay(self, attempt: int) -> float:
        """Delay before retry number *attempt* (0-based)."""
        delay = min(self.base_delay * (self.exponential_base**attempt), self.max_delay)
        if self.jitter:
            delay *= 0.5 + random.random() * 0.5  # noqa: S311
        return delay


def is_retryable(exc: BaseException) -> bool:
    """Only connectivity failures are transient; auth and command errors are final."""
    return isinstance(exc, ConnectivityError)


def call_with_retry(
    fn: Callable[[], T],
    policy: RetryPolicy,
    *,
    describe: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call *fn*, retrying transient failures.

    The last exception propagates once retries are exhausted.
    """
    attempt = 0
    while True:
        try:
            return fn()
        except Exception as exc:
            if not is_retryable(exc) or attempt >= policy.max_retries:
                raise
            delay = policy.delay(attempt)
            logger.warning(
                "%s failed (attempt %d/%d): %s; retrying in %.1fs",
                describe,
                attempt + 1,
                policy.max_retries + 1,
                exc,
                delay,
            )
            sleep(delay)
            attempt += 1
