"""Bounded retry and polling shared by every waiting phase.

Deploy retries, propagation polling, approval polling and per-step settle
waits all go through :class:`Clock`, whose ``sleep`` returns early once the
attempt has been cancelled.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from cutover.errors import AttemptCancelledError

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Clock:
    """Monotonic clock with a cancellable sleep."""

    def __init__(self) -> None:
        self._cancel = threading.Event()

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            self._cancel.wait(seconds)

    def cancel(self) -> None:
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def check_cancelled(self, where: str) -> None:
        """Raise if cancellation was requested; called at phase boundaries."""
        if self._cancel.is_set():
            raise AttemptCancelledError(f"Attempt cancelled before {where}")


@dataclass
class RetryPolicy:
    """How often and how long to retry.

    ``backoff`` of 1.0 gives a fixed interval; 2.0 doubles the delay after
    every failed attempt, capped at ``max_interval_seconds``.
    """

    max_attempts: int = 3
    interval_seconds: float = 1.0
    backoff: float = 1.0
    max_interval_seconds: float = 30.0
    timeout_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")

    def delay(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt."""
        return min(self.interval_seconds * (self.backoff ** (attempt - 1)), self.max_interval_seconds)


@dataclass
class PollResult:
    """Outcome of :func:`poll_until`."""

    ok: bool
    attempts: int
    elapsed: float
    value: Any = None


def retry_call(
    fn: Callable[[], T],
    policy: RetryPolicy,
    clock: Clock,
    retry_on: tuple[type[BaseException], ...] = (Exception,),
    describe: str = "operation",
) -> tuple[T, int]:
    """Call ``fn`` until it succeeds, retrying only on ``retry_on`` errors.

    Returns:
        Tuple of (result, number of attempts made).

    Raises:
        The last exception once attempts or the timeout are exhausted, or
        immediately for exceptions not listed in ``retry_on``.
    """
    start = clock.now()
    attempt = 0
    while True:
        attempt += 1
        try:
            return fn(), attempt
        except retry_on as exc:
            elapsed = clock.now() - start
            out_of_time = policy.timeout_seconds is not None and elapsed >= policy.timeout_seconds
            if attempt >= policy.max_attempts or out_of_time:
                logger.error("%s failed after %d attempts: %s", describe, attempt, exc)
                raise
            wait = policy.delay(attempt)
            logger.warning(
                "%s attempt %d/%d failed: %s; retrying in %.1fs",
                describe, attempt, policy.max_attempts, exc, wait,
            )
            clock.sleep(wait)
            clock.check_cancelled(describe)


def poll_until(
    probe: Callable[[], Any],
    policy: RetryPolicy,
    clock: Clock,
    describe: str = "poll",
) -> PollResult:
    """Poll ``probe`` until it returns a truthy value.

    Probe exceptions count as a negative result. Stops after
    ``policy.max_attempts`` probes or once ``policy.timeout_seconds`` has
    elapsed, whichever comes first.
    """
    start = clock.now()
    attempt = 0
    while True:
        clock.check_cancelled(describe)
        attempt += 1
        try:
            value = probe()
        except Exception:
            logger.debug("%s probe raised", describe, exc_info=True)
            value = None
        elapsed = clock.now() - start
        if value:
            return PollResult(ok=True, attempts=attempt, elapsed=elapsed, value=value)

        if attempt >= policy.max_attempts:
            break
        if policy.timeout_seconds is not None and elapsed >= policy.timeout_seconds:
            break
        logger.info("%s pending (attempt %d/%d)", describe, attempt, policy.max_attempts)
        clock.sleep(policy.delay(attempt))

    return PollResult(ok=False, attempts=attempt, elapsed=clock.now() - start)
