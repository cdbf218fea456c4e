"""Data model for targets, slots and deployment attempts."""

from __future__ import annotations

import time
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from cutover.errors import AttemptFrozenError


class SlotStatus(str, Enum):
    """Lifecycle status of a single slot as seen by an attempt."""

    IDLE = "idle"
    DEPLOYING = "deploying"
    VERIFYING = "verifying"
    ACTIVE = "active"
    ROLLING_BACK = "rolling_back"
    FAILED = "failed"


class Phase(str, Enum):
    """Orchestrator state machine phases."""

    IDLE = "idle"
    DEPLOYING = "deploying"
    AWAITING_PROPAGATION = "awaiting_propagation"
    AWAITING_APPROVAL = "awaiting_approval"
    SHIFTING = "shifting"
    FINALIZING = "finalizing"
    ROLLING_BACK = "rolling_back"


class ApprovalState(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    TIMED_OUT = "timed_out"
    NOT_REQUIRED = "not_required"


class Outcome(str, Enum):
    """Final (or current) outcome of a deployment attempt."""

    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self is not Outcome.IN_PROGRESS


class DeploymentTarget(BaseModel):
    """A logical resource family owning exactly two slots."""

    kind: str
    environment: str
    slots: dict[str, str] = Field(
        default_factory=lambda: {"blue": "", "green": ""},
        description="slot_id -> backing resource id",
    )
    require_approval: bool = True

    @field_validator("slots")
    @classmethod
    def _exactly_two(cls, value: dict[str, str]) -> dict[str, str]:
        if len(value) != 2:
            raise ValueError(f"a target owns exactly two slots, got {sorted(value)}")
        return value

    @property
    def target_id(self) -> str:
        return f"{self.kind}-{self.environment}"

    @property
    def slot_ids(self) -> list[str]:
        return list(self.slots)

    def other(self, slot_id: str) -> str:
        """Return the id of the slot that is not ``slot_id``."""
        if slot_id not in self.slots:
            raise KeyError(slot_id)
        return next(s for s in self.slots if s != slot_id)


class Slot(BaseModel):
    """One of the two parallel environments backing a target."""

    slot_id: str
    backing_resource_id: str = ""
    traffic_weight: int = Field(default=0, ge=0, le=100)
    enabled: bool = False
    last_artifact_version: str = ""
    status: SlotStatus = SlotStatus.IDLE

    @property
    def live(self) -> bool:
        return self.enabled and self.traffic_weight == 100


class HealthSample(BaseModel):
    """Point-in-time health measurement of one slot."""

    timestamp: float = Field(default_factory=time.time)
    slot_id: str
    weight: int = 0
    error_rate: float | None = None
    latency_p95: float | None = None
    latency_p99: float | None = None
    cache_hit_rate: float | None = None
    passed: bool = False
    failures: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


class AttemptEvent(BaseModel):
    """A phase transition or notable occurrence during an attempt."""

    event_type: str
    phase: Phase
    timestamp: float = Field(default_factory=time.time)
    details: dict[str, Any] = Field(default_factory=dict)


class DeploymentAttempt(BaseModel):
    """A single invocation of the orchestrator against one target.

    Once ``outcome`` is terminal the attempt is frozen; any further mutation
    raises :class:`AttemptFrozenError`.
    """

    attempt_id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    target_id: str
    from_slot: Slot
    to_slot: Slot
    artifact_version: str
    record_version: int | None = None  # TargetRecord version read at resolve time
    started_at: float = Field(default_factory=time.time)
    completed_at: float | None = None
    current_phase: Phase = Phase.IDLE
    approval_state: ApprovalState = ApprovalState.PENDING
    health_history: list[HealthSample] = Field(default_factory=list)
    weight_history: list[tuple[int, int]] = Field(default_factory=list)
    outcome: Outcome = Outcome.IN_PROGRESS
    error: str = ""
    error_type: str = ""
    events: list[AttemptEvent] = Field(default_factory=list)

    def __setattr__(self, name: str, value: Any) -> None:
        if self.outcome.terminal:
            raise AttemptFrozenError(f"Attempt {self.attempt_id} is {self.outcome.value}")
        super().__setattr__(name, value)

    @property
    def terminal(self) -> bool:
        return self.outcome.terminal

    @property
    def max_shifted_weight(self) -> int:
        """Highest weight ever written to the new slot."""
        return max((to_w for _from_w, to_w in self.weight_history), default=0)

    @property
    def traffic_moved(self) -> bool:
        return self.max_shifted_weight > 0

    @property
    def final_sample(self) -> HealthSample | None:
        """Most recent sample of the new slot taken at full weight."""
        for sample in reversed(self.health_history):
            if sample.slot_id == self.to_slot.slot_id and sample.weight == 100:
                return sample
        return None

    def _ensure_mutable(self) -> None:
        if self.outcome.terminal:
            raise AttemptFrozenError(f"Attempt {self.attempt_id} is {self.outcome.value}")

    def record_event(self, event_type: str, details: dict[str, Any] | None = None) -> AttemptEvent:
        self._ensure_mutable()
        event = AttemptEvent(event_type=event_type, phase=self.current_phase, details=details or {})
        self.events.append(event)
        return event

    def record_weights(self, from_weight: int, to_weight: int) -> None:
        self._ensure_mutable()
        self.weight_history.append((from_weight, to_weight))
        self.from_slot.traffic_weight = from_weight
        self.to_slot.traffic_weight = to_weight

    def record_sample(self, sample: HealthSample) -> None:
        self._ensure_mutable()
        self.health_history.append(sample)

    def finish(self, outcome: Outcome, error: BaseException | None = None) -> None:
        """Move the attempt to a terminal outcome and freeze it."""
        if not outcome.terminal:
            raise ValueError("finish() requires a terminal outcome")
        self._ensure_mutable()
        if error is not None:
            self.error = str(error)
            self.error_type = type(error).__name__
        self.completed_at = time.time()
        self.current_phase = Phase.IDLE
        self.outcome = outcome

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class TargetRecord(BaseModel):
    """The single persisted record per target."""

    target_id: str
    active_slot_id: str
    last_attempt_id: str | None = None
    last_attempt_outcome: Outcome | None = None
    needs_operator: bool = False
    version: int = 0
    updated_at: float = Field(default_factory=time.time)
