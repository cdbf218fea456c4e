"""Commit the new slot as canonical active once cutover completes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cutover.errors import FinalizeError
from cutover.models import Outcome, Phase, SlotStatus, TargetRecord

if TYPE_CHECKING:
    from cutover.backends.base import SlotBackend
    from cutover.models import DeploymentAttempt, DeploymentTarget
    from cutover.state.lease import LeaseManager
    from cutover.state.store import TargetStore

logger = logging.getLogger(__name__)


class SwapFinalizer:
    """Persists the swap; the former active slot stays enabled at weight 0
    so it becomes the target of the next deployment."""

    def __init__(
        self,
        backend: SlotBackend,
        store: TargetStore,
        leases: LeaseManager | None = None,
    ) -> None:
        self.backend = backend
        self.store = store
        self.leases = leases

    def finalize(self, target: DeploymentTarget, attempt: DeploymentAttempt) -> None:
        """Record ``to_slot`` as active and mark the attempt ``Succeeded``.

        Raises:
            FinalizeError: If the new slot is not at full weight, its last
                sample at weight 100 did not pass, or the routing layer no
                longer serves the new slot alone. Nothing is written.
        """
        final = attempt.final_sample
        if final is None or not final.passed:
            raise FinalizeError(f"Attempt {attempt.attempt_id} has no passing health sample at weight 100")
        if not attempt.weight_history or attempt.weight_history[-1] != (0, 100):
            raise FinalizeError(f"Attempt {attempt.attempt_id} has not shifted all traffic")

        slots = self.backend.read_slots(target)
        new = slots.get(attempt.to_slot.slot_id)
        old = slots.get(attempt.from_slot.slot_id)
        if new is None or old is None or not new.live or old.traffic_weight != 0:
            raise FinalizeError(
                f"Routing for {target.target_id} drifted before finalize: "
                + ", ".join(f"{s.slot_id}={s.traffic_weight}" for s in slots.values())
            )

        attempt.current_phase = Phase.FINALIZING
        attempt.record_event("finalize_started")
        record = TargetRecord(
            target_id=target.target_id,
            active_slot_id=attempt.to_slot.slot_id,
            last_attempt_id=attempt.attempt_id,
            last_attempt_outcome=Outcome.SUCCEEDED,
        )
        written = self.store.save(record, attempt.record_version)

        attempt.to_slot.status = SlotStatus.ACTIVE
        attempt.from_slot.status = SlotStatus.IDLE
        attempt.record_event("finalized", {"record_version": written.version})
        attempt.finish(Outcome.SUCCEEDED)
        logger.info(
            "Cutover of %s complete: %s is active with %s",
            target.target_id, attempt.to_slot.slot_id, attempt.artifact_version,
            extra={"event": "finalized", "attempt_id": attempt.attempt_id},
        )
        if self.leases is not None:
            self.leases.release(attempt.target_id, attempt.attempt_id)
