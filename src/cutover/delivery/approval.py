"""Human-in-the-loop checkpoint before any traffic moves."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from cutover.models import ApprovalState
from cutover.retry import RetryPolicy, poll_until

if TYPE_CHECKING:
    from cutover.backends.base import ApprovalChannel
    from cutover.retry import Clock

logger = logging.getLogger(__name__)


class ApprovalGate:
    """Opens an approval request and polls the channel for a decision.

    Denial and timeout are both returned to the caller, which treats them
    identically: abort with no traffic moved.
    """

    def __init__(self, channel: ApprovalChannel, clock: Clock, interval: float = 10.0) -> None:
        self.channel = channel
        self.clock = clock
        self.interval = interval

    def await_approval(
        self,
        attempt_id: str,
        timeout: float,
        target_id: str = "",
        details: dict[str, Any] | None = None,
    ) -> ApprovalState:
        """Block until the attempt is approved, denied, or ``timeout`` passes."""
        self.channel.request(attempt_id, target_id, details or {})
        logger.info(
            "Waiting up to %.0fs for approval of attempt %s (target %s)",
            timeout, attempt_id, target_id,
        )
        max_polls = int(timeout / self.interval) + 1 if self.interval > 0 else 1
        policy = RetryPolicy(
            max_attempts=max_polls,
            interval_seconds=self.interval,
            max_interval_seconds=max(self.interval, 0.0),
            timeout_seconds=timeout,
        )
        result = poll_until(
            lambda: self.channel.poll(attempt_id),
            policy,
            self.clock,
            describe=f"approval of {attempt_id}",
        )
        if not result.ok:
            logger.warning("Approval of attempt %s timed out after %.0fs", attempt_id, result.elapsed)
            return ApprovalState.TIMED_OUT

        state: ApprovalState = result.value
        if state is ApprovalState.APPROVED:
            logger.info("Attempt %s approved", attempt_id)
        else:
            logger.warning("Attempt %s denied", attempt_id)
        return state
