"""In-memory backends for tests and dry runs."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Any

from cutover.backends.base import (
    ApprovalChannel,
    MetricsSource,
    SlotBackend,
    UploadItem,
    check_weights,
)
from cutover.models import ApprovalState, DeploymentTarget, Slot

if TYPE_CHECKING:
    from collections.abc import Callable


class InMemorySlotBackend(SlotBackend):
    """Keeps slot state in a dict and records every traffic write.

    Failures can be injected per operation by queueing exceptions in
    ``upload_errors``, ``traffic_errors`` or ``enable_errors``; each queued
    exception is raised once, in order.
    """

    def __init__(self, ready_after: int = 1) -> None:
        self._slots: dict[str, dict[str, Slot]] = {}
        self._lock = threading.Lock()
        self.ready_after = ready_after
        self.uploads: dict[tuple[str, str], list[UploadItem]] = {}
        self.traffic_log: list[dict[str, int]] = []
        self.probe_count: dict[tuple[str, str], int] = {}
        self.upload_errors: list[Exception] = []
        self.traffic_errors: list[Exception] = []
        self.enable_errors: list[Exception] = []
        self.upload_calls = 0

    def add_target(self, target: DeploymentTarget, active: str) -> None:
        """Register a target at rest with ``active`` serving all traffic."""
        slots = {}
        for slot_id, resource in target.slots.items():
            live = slot_id == active
            slots[slot_id] = Slot(
                slot_id=slot_id,
                backing_resource_id=resource,
                traffic_weight=100 if live else 0,
                enabled=live,
            )
        self._slots[target.target_id] = slots

    def force(self, target: DeploymentTarget, slot_id: str, **fields: Any) -> None:
        """Overwrite slot fields directly, bypassing validation."""
        slot = self._slots[target.target_id][slot_id]
        self._slots[target.target_id][slot_id] = slot.model_copy(update=fields)

    def read_slots(self, target: DeploymentTarget) -> dict[str, Slot]:
        with self._lock:
            return {sid: s.model_copy() for sid, s in self._slots[target.target_id].items()}

    def set_traffic(self, target: DeploymentTarget, weights: dict[str, int]) -> None:
        check_weights(target, weights)
        if self.traffic_errors:
            raise self.traffic_errors.pop(0)
        with self._lock:
            slots = self._slots[target.target_id]
            for slot_id, weight in weights.items():
                slots[slot_id] = slots[slot_id].model_copy(update={"traffic_weight": weight})
            self.traffic_log.append(dict(weights))

    def set_enabled(self, target: DeploymentTarget, slot_id: str, enabled: bool) -> None:
        if self.enable_errors:
            raise self.enable_errors.pop(0)
        with self._lock:
            slots = self._slots[target.target_id]
            slots[slot_id] = slots[slot_id].model_copy(update={"enabled": enabled})

    def upload(
        self,
        target: DeploymentTarget,
        slot_id: str,
        items: list[UploadItem],
        version: str,
    ) -> None:
        self.upload_calls += 1
        if self.upload_errors:
            raise self.upload_errors.pop(0)
        with self._lock:
            self.uploads[(target.target_id, slot_id)] = list(items)
            slots = self._slots[target.target_id]
            slots[slot_id] = slots[slot_id].model_copy(update={"last_artifact_version": version})

    def probe(self, target: DeploymentTarget, slot_id: str, path: str) -> bool:
        key = (target.target_id, slot_id)
        self.probe_count[key] = self.probe_count.get(key, 0) + 1
        if key not in self.uploads:
            return False
        if not any(item.key == path for item in self.uploads[key]):
            return False
        return self.probe_count[key] >= self.ready_after


class InMemoryMetricsSource(MetricsSource):
    """Static metric values per slot, optionally computed by a callback.

    ``override`` receives ``(target, slot_id, metric)`` and may return a value;
    returning ``...`` falls through to the static table.
    """

    def __init__(
        self,
        values: dict[str, dict[str, float | None]] | None = None,
        override: Callable[[DeploymentTarget, str, str], Any] | None = None,
    ) -> None:
        self.values: dict[str, dict[str, float | None]] = values or {}
        self.override = override
        self.queries: list[tuple[str, str, int]] = []
        self._lock = threading.Lock()

    def set(self, slot_id: str, metric: str, value: float | None) -> None:
        self.values.setdefault(slot_id, {})[metric] = value

    def query(
        self,
        target: DeploymentTarget,
        slot_id: str,
        metric: str,
        window_seconds: int,
    ) -> float | None:
        with self._lock:
            self.queries.append((slot_id, metric, window_seconds))
        if self.override is not None:
            value = self.override(target, slot_id, metric)
            if value is not ...:
                return value
        return self.values.get(slot_id, {}).get(metric)


class InMemoryApprovalChannel(ApprovalChannel):
    """Approval decisions held in memory.

    ``auto`` decides every new request immediately (True approves, False
    denies); ``None`` leaves requests pending until :meth:`decide` is called.
    """

    def __init__(self, auto: bool | None = None) -> None:
        self.auto = auto
        self.requests: dict[str, dict[str, Any]] = {}
        self.decisions: dict[str, dict[str, Any]] = {}

    def request(self, attempt_id: str, target_id: str, details: dict[str, Any]) -> None:
        self.requests[attempt_id] = {
            "attempt_id": attempt_id,
            "target_id": target_id,
            "requested_at": time.time(),
            **details,
        }
        if self.auto is not None:
            self.decide(attempt_id, self.auto, reviewer="auto")

    def poll(self, attempt_id: str) -> ApprovalState | None:
        decision = self.decisions.get(attempt_id)
        if decision is None:
            return None
        return ApprovalState.APPROVED if decision["approved"] else ApprovalState.DENIED

    def decide(self, attempt_id: str, approved: bool, reviewer: str = "", comment: str = "") -> None:
        self.decisions[attempt_id] = {
            "approved": approved,
            "reviewer": reviewer,
            "comment": comment,
            "decided_at": time.time(),
        }

    def pending(self) -> list[dict[str, Any]]:
        return [r for aid, r in self.requests.items() if aid not in self.decisions]
