"""Wait until a freshly deployed slot is observably servable."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cutover.errors import PropagationTimeoutError
from cutover.retry import RetryPolicy, poll_until

if TYPE_CHECKING:
    from cutover.backends.base import SlotBackend
    from cutover.models import DeploymentTarget, Slot
    from cutover.retry import Clock

logger = logging.getLogger(__name__)


class PropagationWaiter:
    def __init__(
        self,
        backend: SlotBackend,
        clock: Clock,
        readiness_path: str = "index.html",
        max_retries: int = 20,
    ) -> None:
        self.backend = backend
        self.clock = clock
        self.readiness_path = readiness_path
        self.max_retries = max_retries

    def await_ready(
        self,
        target: DeploymentTarget,
        inactive_slot: Slot,
        timeout: float,
        interval: float,
    ) -> bool:
        """Poll the readiness path until it is served.

        Raises:
            PropagationTimeoutError: When ``max_retries`` probes or ``timeout``
                seconds pass without a successful probe.
        """
        policy = RetryPolicy(
            max_attempts=self.max_retries,
            interval_seconds=interval,
            max_interval_seconds=max(interval, 0.0),
            timeout_seconds=timeout,
        )
        result = poll_until(
            lambda: self.backend.probe(target, inactive_slot.slot_id, self.readiness_path),
            policy,
            self.clock,
            describe=f"propagation of {target.target_id}/{inactive_slot.slot_id}",
        )
        if not result.ok:
            raise PropagationTimeoutError(inactive_slot.slot_id, result.attempts, result.elapsed)
        logger.info(
            "Slot %s ready after %d probe(s) (%.1fs)",
            inactive_slot.slot_id, result.attempts, result.elapsed,
        )
        return True
