"""Interfaces to the external collaborators the orchestrator drives.

The orchestrator never talks to a cloud API directly; it only deploys
artifacts into a slot, reads metrics for a slot and sets traffic weights
through these interfaces.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from cutover.models import ApprovalState, DeploymentTarget, Slot

ERROR_RATE = "error_rate"
LATENCY_P95 = "latency_p95"
LATENCY_P99 = "latency_p99"
CACHE_HIT_RATE = "cache_hit_rate"

ALL_METRICS = (ERROR_RATE, LATENCY_P95, LATENCY_P99, CACHE_HIT_RATE)


@dataclass(frozen=True)
class UploadItem:
    """A single file to push into a slot."""

    key: str
    source: Path
    cache_control: str


def check_weights(target: DeploymentTarget, weights: dict[str, int]) -> None:
    """Validate a complete traffic assignment for a target.

    Raises:
        ValueError: If slots are missing, a weight is outside 0..100, or the
            weights do not add up to 100.
    """
    if set(weights) != set(target.slot_ids):
        raise ValueError(f"weights must name exactly {target.slot_ids}, got {sorted(weights)}")
    for slot_id, weight in weights.items():
        if not 0 <= weight <= 100:
            raise ValueError(f"weight for {slot_id} outside 0..100: {weight}")
    if sum(weights.values()) != 100:
        raise ValueError(f"weights must sum to 100: {weights}")


class SlotBackend(ABC):
    """Reads and writes slot state for the backing resources of a target."""

    @abstractmethod
    def read_slots(self, target: DeploymentTarget) -> dict[str, Slot]:
        """Return the current state of both slots keyed by slot id."""

    @abstractmethod
    def set_traffic(self, target: DeploymentTarget, weights: dict[str, int]) -> None:
        """Atomically apply a complete weight assignment (summing to 100)."""

    @abstractmethod
    def set_enabled(self, target: DeploymentTarget, slot_id: str, enabled: bool) -> None:
        """Enable or disable a slot's backing resource."""

    @abstractmethod
    def upload(
        self,
        target: DeploymentTarget,
        slot_id: str,
        items: list[UploadItem],
        version: str,
    ) -> None:
        """Upload artifact files into a slot's backing store.

        Implementations raise :class:`~cutover.errors.RetryableDeployError` for
        throttling/transient failures and :class:`~cutover.errors.FatalDeployError`
        for authorization or content failures.
        """

    @abstractmethod
    def probe(self, target: DeploymentTarget, slot_id: str, path: str) -> bool:
        """Return True when ``path`` is servable from the slot."""


class MetricsSource(ABC):
    """Observability backend queried over a trailing window."""

    @abstractmethod
    def query(
        self,
        target: DeploymentTarget,
        slot_id: str,
        metric: str,
        window_seconds: int,
    ) -> float | None:
        """Return the aggregated metric value, or None when there is no data."""


class ApprovalChannel(ABC):
    """Request/response contract for human approval, independent of transport."""

    @abstractmethod
    def request(self, attempt_id: str, target_id: str, details: dict[str, Any]) -> None:
        """Open an approval request for an attempt."""

    @abstractmethod
    def poll(self, attempt_id: str) -> ApprovalState | None:
        """Return APPROVED or DENIED once decided, None while pending."""

    @abstractmethod
    def decide(self, attempt_id: str, approved: bool, reviewer: str = "", comment: str = "") -> None:
        """Record a reviewer's decision."""

    @abstractmethod
    def pending(self) -> list[dict[str, Any]]:
        """List approval requests still awaiting a decision."""
