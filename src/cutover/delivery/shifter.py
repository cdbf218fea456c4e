"""Incremental traffic shift with a health checkpoint at every step."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from cutover.config import validate_steps
from cutover.errors import AttemptCancelledError, HealthCheckFailedError
from cutover.models import SlotStatus

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from cutover.backends.base import SlotBackend
    from cutover.delivery.health import HealthVerifier
    from cutover.delivery.rollback import RollbackController
    from cutover.models import DeploymentAttempt, DeploymentTarget, HealthSample
    from cutover.retry import Clock

logger = logging.getLogger(__name__)

DEFAULT_STEPS = (0, 25, 50, 75, 100)


@dataclass
class ShiftResult:
    succeeded: bool = False
    attempted_steps: list[int] = field(default_factory=list)
    completed_steps: list[int] = field(default_factory=list)
    failed_step: int | None = None
    samples: list[HealthSample] = field(default_factory=list)
    error: BaseException | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "attempted_steps": self.attempted_steps,
            "completed_steps": self.completed_steps,
            "failed_step": self.failed_step,
            "error": str(self.error) if self.error else "",
        }


class TrafficShifter:
    """Moves traffic from the old slot to the new one step by step.

    Each step writes the complete weight pair in one call, waits for the
    settle interval, then samples every slot that carries traffic. A failed
    checkpoint triggers the rollback controller immediately; later steps are
    never attempted.
    """

    def __init__(
        self,
        backend: SlotBackend,
        verifier: HealthVerifier,
        rollback: RollbackController,
        clock: Clock,
        settle_seconds: float = 60.0,
        on_sample: Callable[[HealthSample], None] | None = None,
    ) -> None:
        self.backend = backend
        self.verifier = verifier
        self.rollback = rollback
        self.clock = clock
        self.settle_seconds = settle_seconds
        self.on_sample = on_sample

    def _abort(
        self,
        target: DeploymentTarget,
        attempt: DeploymentAttempt,
        result: ShiftResult,
        step: int | None,
        error: BaseException,
    ) -> ShiftResult:
        result.failed_step = step
        result.error = error
        logger.error(
            "Shift of %s aborted at step %s: %s", target.target_id, step, error,
            extra={"event": "shift_aborted", "attempt_id": attempt.attempt_id},
        )
        attempt.record_event("shift_aborted", {"step": step, "error": str(error)})
        self.rollback.rollback(target, attempt, error)
        return result

    def shift_traffic(
        self,
        target: DeploymentTarget,
        attempt: DeploymentAttempt,
        steps: Sequence[int] = DEFAULT_STEPS,
    ) -> ShiftResult:
        """Shift ``attempt.from_slot`` -> ``attempt.to_slot`` through ``steps``.

        Args:
            target: The deployment target.
            attempt: The running attempt; its from/to slots are shifted and
                every weight write and health sample is recorded on it.
            steps: Strictly increasing weights for the new slot, ending at 100.

        Returns:
            A :class:`ShiftResult`. When it did not succeed the rollback
            controller has already run.
        """
        plan = validate_steps(list(steps))
        from_slot = attempt.from_slot
        to_slot = attempt.to_slot
        result = ShiftResult()

        try:
            self.backend.set_enabled(target, to_slot.slot_id, True)
            to_slot.enabled = True
        except Exception as exc:
            return self._abort(target, attempt, result, None, exc)
        to_slot.status = SlotStatus.VERIFYING

        for step in plan:
            try:
                self.clock.check_cancelled(f"traffic step {step}")
            except AttemptCancelledError as exc:
                return self._abort(target, attempt, result, step, exc)

            result.attempted_steps.append(step)
            weights = {to_slot.slot_id: step, from_slot.slot_id: 100 - step}
            try:
                self.backend.set_traffic(target, weights)
            except Exception as exc:
                return self._abort(target, attempt, result, step, exc)
            attempt.record_weights(100 - step, step)
            attempt.record_event("traffic_shifted", {"weights": weights})
            logger.info(
                "Traffic on %s: %s=%d%% %s=%d%%",
                target.target_id, from_slot.slot_id, 100 - step, to_slot.slot_id, step,
                extra={"event": "traffic_shifted", "attempt_id": attempt.attempt_id, "weights": weights},
            )

            # Cancellation only shortens the settle wait; the verdict for a
            # written step is always evaluated.
            self.clock.sleep(self.settle_seconds)

            exposed = [s for s in (to_slot, from_slot) if s.traffic_weight > 0]
            failures: list[str] = []
            for slot in exposed:
                sample = self.verifier.check(target, slot, slot.traffic_weight)
                attempt.record_sample(sample)
                result.samples.append(sample)
                if self.on_sample is not None:
                    self.on_sample(sample)
                failures.extend(f"{slot.slot_id}: {f}" for f in sample.failures)

            if failures:
                return self._abort(target, attempt, result, step, HealthCheckFailedError(step, failures))
            result.completed_steps.append(step)

        result.succeeded = True
        return result
