"""Determine which of a target's two slots is live."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from cutover.errors import AmbiguousStateError, OperatorInterventionError
from cutover.models import SlotStatus

if TYPE_CHECKING:
    from cutover.backends.base import SlotBackend
    from cutover.models import DeploymentTarget, Slot
    from cutover.state.store import TargetStore

logger = logging.getLogger(__name__)


class SlotResolver:
    """Resolves (active, inactive) from the backing resources.

    The resolver never guesses: anything other than one enabled slot at
    weight 100 and the other at weight 0 is reported as ambiguous.
    """

    def __init__(self, backend: SlotBackend, store: TargetStore | None = None) -> None:
        self.backend = backend
        self.store = store

    def resolve(self, target: DeploymentTarget) -> tuple[Slot, Slot]:
        """Return ``(active, inactive)`` for ``target``.

        Raises:
            AmbiguousStateError: If zero or two slots look live, if traffic is
                split (another attempt mid-shift), or if the persisted record
                disagrees with the backend.
            OperatorInterventionError: If the last rollback on this target
                could not restore traffic.
        """
        record = self.store.load(target.target_id) if self.store is not None else None
        if record is not None and record.needs_operator:
            raise OperatorInterventionError(
                target.target_id,
                f"rollback of attempt '{record.last_attempt_id}' did not complete",
            )

        slots = self.backend.read_slots(target)
        live = [s for s in slots.values() if s.live]
        if not live:
            raise AmbiguousStateError(target.target_id, "no slot is enabled at weight 100")
        if len(live) > 1:
            raise AmbiguousStateError(target.target_id, "both slots are enabled at weight 100")

        active = live[0]
        inactive = slots[target.other(active.slot_id)]
        if inactive.traffic_weight != 0:
            raise AmbiguousStateError(
                target.target_id,
                f"slot '{inactive.slot_id}' carries {inactive.traffic_weight}% of traffic; "
                "a shift may be in progress",
            )

        if record is not None and record.active_slot_id != active.slot_id:
            raise AmbiguousStateError(
                target.target_id,
                f"record names '{record.active_slot_id}' active but traffic is on "
                f"'{active.slot_id}'",
            )

        logger.info(
            "Resolved %s: active=%s inactive=%s",
            target.target_id, active.slot_id, inactive.slot_id,
        )
        return (
            active.model_copy(update={"status": SlotStatus.ACTIVE}),
            inactive.model_copy(update={"status": SlotStatus.IDLE}),
        )
