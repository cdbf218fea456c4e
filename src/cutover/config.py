"""Deployment configuration as code.

Loaded from YAML and validated with pydantic::

    config = CutoverConfig.from_yaml("cutover.yaml")
    target = config.target("cdn", "production")
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from cutover.errors import ConfigError, InvalidStepsError
from cutover.models import DeploymentTarget
from cutover.retry import RetryPolicy

STATE_DIR_ENV = "CUTOVER_STATE_DIR"

LONG_CACHE_CONTROL = "public, max-age=31536000, immutable"
NO_CACHE_CONTROL = "no-cache"


def validate_steps(steps: list[int]) -> list[int]:
    """Check that a step plan is strictly increasing, within 0..100, ending at 100."""
    if not steps:
        raise InvalidStepsError("step plan is empty")
    for step in steps:
        if not 0 <= step <= 100:
            raise InvalidStepsError(f"step {step} outside 0..100")
    for prev, cur in zip(steps, steps[1:]):
        if cur <= prev:
            raise InvalidStepsError(f"steps must be strictly increasing: {steps}")
    if steps[-1] != 100:
        raise InvalidStepsError(f"step plan must end at 100: {steps}")
    return list(steps)


class SlotConfig(BaseModel):
    backing_resource_id: str = ""


class DeployConfig(BaseModel):
    """Upload retry behaviour."""

    max_attempts: int = Field(default=3, ge=1)
    base_delay_seconds: float = Field(default=1.0, ge=0)
    max_delay_seconds: float = Field(default=30.0, ge=0)

    def policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            interval_seconds=self.base_delay_seconds,
            backoff=2.0,
            max_interval_seconds=self.max_delay_seconds,
        )


class PropagationConfig(BaseModel):
    interval_seconds: float = Field(default=30.0, ge=0)
    max_retries: int = Field(default=20, ge=1)
    timeout_seconds: float = Field(default=600.0, gt=0)


class ApprovalConfig(BaseModel):
    interval_seconds: float = Field(default=10.0, ge=0)
    timeout_seconds: float = Field(default=3600.0, gt=0)


class HealthConfig(BaseModel):
    """Health gate thresholds.

    Error rate and latency are hard gates; cache-hit-rate is a soft gate.
    """

    window_seconds: int = Field(default=300, gt=0)
    max_error_rate: float = Field(default=0.01, ge=0, le=1)
    max_latency_p95_ms: float = Field(default=1000.0, gt=0)
    max_latency_p99_ms: float | None = Field(default=None, gt=0)
    min_cache_hit_rate: float | None = Field(default=0.8, ge=0, le=1)
    fail_on_missing_data: bool = True


class ShiftConfig(BaseModel):
    steps: list[int] = Field(default_factory=lambda: [0, 25, 50, 75, 100])
    settle_seconds: float = Field(default=60.0, ge=0)

    @field_validator("steps")
    @classmethod
    def _check_steps(cls, value: list[int]) -> list[int]:
        try:
            return validate_steps(value)
        except InvalidStepsError as exc:
            raise ValueError(str(exc)) from exc


class LeaseConfig(BaseModel):
    ttl_seconds: float = Field(default=7200.0, gt=0)


class TargetConfig(BaseModel):
    """Per target-kind settings."""

    slots: dict[str, SlotConfig] = Field(
        default_factory=lambda: {"blue": SlotConfig(), "green": SlotConfig()}
    )
    entry_points: list[str] = Field(default_factory=lambda: ["*.html", "*.json"])
    required_entry_point: str | None = "index.html"
    readiness_path: str = "index.html"
    health: HealthConfig | None = None
    shift: ShiftConfig | None = None


class EnvironmentConfig(BaseModel):
    require_approval: bool = True


class CutoverConfig(BaseModel):
    """Top-level configuration."""

    state_dir: str = ".cutover"
    targets: dict[str, TargetConfig] = Field(default_factory=dict)
    environments: dict[str, EnvironmentConfig] = Field(
        default_factory=lambda: {
            "production": EnvironmentConfig(require_approval=True),
            "staging": EnvironmentConfig(require_approval=False),
        }
    )
    deploy: DeployConfig = Field(default_factory=DeployConfig)
    propagation: PropagationConfig = Field(default_factory=PropagationConfig)
    approval: ApprovalConfig = Field(default_factory=ApprovalConfig)
    health: HealthConfig = Field(default_factory=HealthConfig)
    shift: ShiftConfig = Field(default_factory=ShiftConfig)
    lease: LeaseConfig = Field(default_factory=LeaseConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CutoverConfig:
        try:
            config = cls.model_validate(data)
        except ValidationError as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc
        override = os.environ.get(STATE_DIR_ENV)
        if override:
            config.state_dir = override
        return config

    @classmethod
    def from_yaml(cls, path: str | Path) -> CutoverConfig:
        """Load configuration from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Configuration file not found: {path}")
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {path}")
        return cls.from_dict(data)

    def to_yaml(self, path: str | Path) -> None:
        Path(path).write_text(
            yaml.dump(self.model_dump(mode="json", exclude_none=True), default_flow_style=False, sort_keys=False),
            encoding="utf-8",
        )

    def target_config(self, kind: str) -> TargetConfig:
        if kind not in self.targets:
            raise ConfigError(f"Unknown target kind '{kind}' (known: {sorted(self.targets)})")
        return self.targets[kind]

    def target(self, kind: str, environment: str) -> DeploymentTarget:
        """Build the :class:`DeploymentTarget` for a kind/environment pair."""
        tc = self.target_config(kind)
        if environment not in self.environments:
            raise ConfigError(
                f"Unknown environment '{environment}' (known: {sorted(self.environments)})"
            )
        try:
            return DeploymentTarget(
                kind=kind,
                environment=environment,
                slots={sid: s.backing_resource_id for sid, s in tc.slots.items()},
                require_approval=self.environments[environment].require_approval,
            )
        except ValidationError as exc:
            raise ConfigError(f"Invalid target '{kind}': {exc}") from exc

    def health_for(self, kind: str) -> HealthConfig:
        tc = self.targets.get(kind)
        return tc.health if tc is not None and tc.health is not None else self.health

    def shift_for(self, kind: str) -> ShiftConfig:
        tc = self.targets.get(kind)
        return tc.shift if tc is not None and tc.shift is not None else self.shift
