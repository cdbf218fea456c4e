"""Revert traffic to the last known-good slot."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cutover.errors import CutoverError, StaleRecordError
from cutover.models import Outcome, Phase, SlotStatus, TargetRecord

if TYPE_CHECKING:
    from cutover.backends.base import SlotBackend
    from cutover.models import DeploymentAttempt, DeploymentTarget
    from cutover.state.lease import LeaseManager
    from cutover.state.store import TargetStore

logger = logging.getLogger(__name__)


class RollbackController:
    """Restores the original active slot to full traffic.

    The newly deployed artifact is left on the inactive slot for inspection
    or a later retry. Calling :meth:`rollback` again on an attempt that has
    already been rolled back does nothing.
    """

    def __init__(
        self,
        backend: SlotBackend,
        store: TargetStore,
        leases: LeaseManager | None = None,
    ) -> None:
        self.backend = backend
        self.store = store
        self.leases = leases
        self.invocations = 0

    def _restored(self, target: DeploymentTarget, attempt: DeploymentAttempt) -> bool:
        slots = self.backend.read_slots(target)
        original = slots[attempt.from_slot.slot_id]
        new = slots[attempt.to_slot.slot_id]
        return original.live and new.traffic_weight == 0

    def rollback(
        self,
        target: DeploymentTarget,
        attempt: DeploymentAttempt,
        cause: BaseException | None = None,
    ) -> None:
        """Restore ``from = 100, to = 0`` and mark the attempt terminal.

        The attempt ends ``RolledBack`` when traffic had reached the new slot
        and ``Failed`` otherwise. If the restore itself fails the attempt ends
        ``Failed``, the target record is flagged for operator intervention and
        the lease is left to expire.
        """
        self.invocations += 1
        from_id = attempt.from_slot.slot_id
        to_id = attempt.to_slot.slot_id

        if attempt.terminal:
            if attempt.outcome is Outcome.SUCCEEDED:
                raise CutoverError(f"Attempt {attempt.attempt_id} was finalized; nothing to roll back")
            if self._restored(target, attempt):
                logger.info("Attempt %s already rolled back; nothing to do", attempt.attempt_id)
                return
            logger.warning("Attempt %s is terminal but traffic is not restored; restoring", attempt.attempt_id)
            self.backend.set_traffic(target, {from_id: 100, to_id: 0})
            self.backend.set_enabled(target, from_id, True)
            return

        attempt.current_phase = Phase.ROLLING_BACK
        attempt.to_slot.status = SlotStatus.ROLLING_BACK
        attempt.record_event("rollback_started", {"cause": str(cause) if cause else ""})
        logger.warning(
            "Rolling back %s: restoring %s to 100%% (cause: %s)",
            attempt.target_id, from_id, cause,
            extra={"event": "rollback_started", "attempt_id": attempt.attempt_id},
        )

        try:
            self.backend.set_traffic(target, {from_id: 100, to_id: 0})
            attempt.record_weights(100, 0)
            self.backend.set_enabled(target, from_id, True)
        except Exception as exc:
            logger.error(
                "Rollback of attempt %s failed; operator intervention required: %s",
                attempt.attempt_id, exc,
                extra={"event": "rollback_failed", "attempt_id": attempt.attempt_id},
            )
            attempt.record_event("rollback_failed", {"error": str(exc)})
            attempt.to_slot.status = SlotStatus.FAILED
            self._write_record(target, attempt, Outcome.FAILED, needs_operator=True)
            attempt.finish(Outcome.FAILED, cause or exc)
            return

        attempt.from_slot.enabled = True
        attempt.from_slot.status = SlotStatus.ACTIVE
        attempt.to_slot.status = SlotStatus.IDLE
        outcome = Outcome.ROLLED_BACK if attempt.traffic_moved else Outcome.FAILED
        self._write_record(target, attempt, outcome, needs_operator=False)
        attempt.record_event("rollback_completed", {"outcome": outcome.value})
        attempt.finish(outcome, cause)
        logger.info(
            "Rollback of %s complete: %s serving 100%%",
            attempt.target_id, from_id,
            extra={"event": "rollback_completed", "attempt_id": attempt.attempt_id},
        )
        if self.leases is not None:
            self.leases.release(attempt.target_id, attempt.attempt_id)

    def _write_record(
        self,
        target: DeploymentTarget,
        attempt: DeploymentAttempt,
        outcome: Outcome,
        needs_operator: bool,
    ) -> None:
        record = TargetRecord(
            target_id=target.target_id,
            active_slot_id=attempt.from_slot.slot_id,
            last_attempt_id=attempt.attempt_id,
            last_attempt_outcome=outcome,
            needs_operator=needs_operator,
        )
        try:
            self.store.save(record, attempt.record_version)
        except StaleRecordError as exc:
            logger.error("Could not persist rollback of %s: %s", attempt.attempt_id, exc)
            attempt.record_event("record_conflict", {"error": str(exc)})
        except Exception as exc:
            # The record still names the original slot, which is what traffic was restored to.
            logger.exception(
                "Could not write target record for %s after rollback",
                attempt.attempt_id,
                extra={"event": "record_write_failed", "attempt_id": attempt.attempt_id},
            )
            attempt.record_event("record_write_failed", {"error": f"{type(exc).__name__}: {exc}"})
