"""Shared fixtures: an in-memory target, healthy metrics and a fake clock."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from cutover.backends import InMemoryApprovalChannel, InMemoryMetricsSource, InMemorySlotBackend
from cutover.config import STATE_DIR_ENV, CutoverConfig
from cutover.delivery import ArtifactRef, BlueGreenOrchestrator
from cutover.models import DeploymentTarget
from cutover.retry import Clock
from cutover.state import StateDir

HEALTHY = {
    "error_rate": 0.001,
    "latency_p95": 220.0,
    "latency_p99": 480.0,
    "cache_hit_rate": 0.93,
}


class FakeClock(Clock):
    """Clock whose sleeps advance virtual time instantly.

    ``on_sleep`` is called after every sleep with the clock itself, letting
    tests act at a precise point in a wait (approve, cancel, break things).
    """

    def __init__(self, start: float = 1000.0) -> None:
        super().__init__()
        self.t = start
        self.sleeps: list[float] = []
        self.on_sleep: Callable[[FakeClock], None] | None = None

    def now(self) -> float:
        return self.t

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if not self.cancelled:
            self.t += max(seconds, 0.0)
        if self.on_sleep is not None:
            self.on_sleep(self)


def make_config(**overrides: Any) -> CutoverConfig:
    data: dict[str, Any] = {
        "targets": {
            "cdn": {
                "slots": {
                    "blue": {"backing_resource_id": "dist-blue"},
                    "green": {"backing_resource_id": "dist-green"},
                },
            },
        },
    }
    data.update(overrides)
    return CutoverConfig.from_dict(data)


@pytest.fixture(autouse=True)
def _no_state_dir_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(STATE_DIR_ENV, raising=False)


@pytest.fixture(autouse=True)
def _reset_cutover_logger() -> Iterator[None]:
    # the CLI installs its own handler and stops propagation; undo for caplog
    yield
    log = logging.getLogger("cutover")
    log.handlers.clear()
    log.propagate = True
    log.setLevel(logging.NOTSET)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def config() -> CutoverConfig:
    return make_config()


@pytest.fixture()
def target(config: CutoverConfig) -> DeploymentTarget:
    return config.target("cdn", "production")


@pytest.fixture()
def backend(target: DeploymentTarget) -> InMemorySlotBackend:
    b = InMemorySlotBackend()
    b.add_target(target, active="blue")
    return b


@pytest.fixture()
def metrics() -> InMemoryMetricsSource:
    return InMemoryMetricsSource({"blue": dict(HEALTHY), "green": dict(HEALTHY)})


@pytest.fixture()
def approvals() -> InMemoryApprovalChannel:
    return InMemoryApprovalChannel(auto=True)


@pytest.fixture()
def state(tmp_path: Path) -> StateDir:
    return StateDir.open(tmp_path / "state")


@pytest.fixture()
def artifact(tmp_path: Path) -> ArtifactRef:
    root = tmp_path / "dist"
    (root / "assets").mkdir(parents=True)
    (root / "index.html").write_text("<html>v2</html>")
    (root / "manifest.json").write_text("{}")
    (root / "assets" / "app.3f2a9c.js").write_text("console.log('v2')")
    return ArtifactRef(root, "v2")


@pytest.fixture()
def orchestrator(
    config: CutoverConfig,
    backend: InMemorySlotBackend,
    metrics: InMemoryMetricsSource,
    approvals: InMemoryApprovalChannel,
    state: StateDir,
    clock: FakeClock,
) -> BlueGreenOrchestrator:
    return BlueGreenOrchestrator(config, backend, metrics, approvals, state, clock=clock)
