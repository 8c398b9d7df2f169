"""Retrying activity invoker: the single choke point for every external call."""

from __future__ import annotations

import asyncio
import random
import re
from dataclasses import dataclass, field
from typing import Awaitable, Callable, TypeVar

import httpx
from loguru import logger

from inboxflow.domain.errors import NonRetryableError

T = TypeVar("T")

RETRYABLE_MARKERS = ("rate limit", "timeout", "network", "econnreset")
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503})
# Status codes quoted in a message only count as whole numbers ("limit 5000" is not a 500)
RETRYABLE_STATUS_PATTERN = re.compile(r"\b(?:" + "|".join(str(c) for c in sorted(RETRYABLE_STATUS_CODES)) + r")\b")
JITTER_RATIO = 0.25


def is_retryable_error(error: BaseException) -> bool:
    """Classify an activity failure as transient or fatal."""
    if isinstance(error, NonRetryableError):
        return False
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException, httpx.NetworkError)):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    message = str(error).lower()
    if any(marker in message for marker in RETRYABLE_MARKERS):
        return True
    return RETRYABLE_STATUS_PATTERN.search(message) is not None


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings bound to one call site."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    timeout: float | None = 30.0
    retryable: Callable[[BaseException], bool] = field(default=is_retryable_error, compare=False)

    def backoff(self, attempt: int) -> float:
        """Delay before retrying after the given zero-based attempt, without jitter."""
        return min(self.base_delay * (2**attempt), self.max_delay)


# Call-site policies
FETCH_POLICY = RetryPolicy(max_retries=3)
LOOKUP_POLICY = RetryPolicy(max_retries=2)
STORE_POLICY = RetryPolicy(max_retries=3)
SIDE_EFFECT_POLICY = RetryPolicy(max_retries=2)
ALERT_POLICY = RetryPolicy(max_retries=3)
AUDIT_POLICY = RetryPolicy(max_retries=2)
CLASSIFY_POLICY = RetryPolicy(max_retries=2, timeout=60.0)
GENERATE_POLICY = RetryPolicy(max_retries=2, base_delay=5.0, max_delay=30.0, timeout=120.0)


class RetryingActivityInvoker:
    """Run an async activity with classified retries, exponential backoff and jitter.

    Args:
        sleep: Awaitable sleep used between attempts. The workflow host passes
            its own durable sleep; tests pass a recorder.
        rng: Source of uniform random numbers in [0, 1) for jitter.
    """

    def __init__(
        self,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        self._sleep = sleep
        self._rng = rng

    def delay_for(self, policy: RetryPolicy, attempt: int) -> float:
        """Backoff for ``attempt`` plus up to 25% jitter."""
        delay = policy.backoff(attempt)
        return delay + delay * self._rng() * JITTER_RATIO

    async def invoke(
        self,
        op: Callable[[], Awaitable[T]],
        name: str,
        policy: RetryPolicy | None = None,
    ) -> T:
        """Invoke ``op`` until it succeeds, fails fatally or runs out of attempts."""
        policy = policy or RetryPolicy()
        attempts = policy.max_retries + 1

        for attempt in range(attempts):
            try:
                if policy.timeout is None:
                    return await op()
                return await asyncio.wait_for(op(), timeout=policy.timeout)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if not policy.retryable(e) or attempt >= policy.max_retries:
                    if attempt > 0:
                        logger.error(f"{name} failed after {attempt + 1} attempts: {e!r}")
                    raise

                delay = self.delay_for(policy, attempt)
                logger.warning(
                    f"{name} failed (attempt {attempt + 1}/{attempts}), "
                    f"retrying in {delay:.2f}s: {e!r}"
                )
                await self._sleep(delay)

        raise RuntimeError(f"{name} exhausted {attempts} attempts")  # pragma: no cover
