"""cutover: zero-downtime blue/green deployment orchestration.

A deployment target (a CDN distribution, an API-gateway stage set, a
workload) owns two parallel slots. Exactly one is live. cutover pushes a
new artifact into the other slot, waits for it to become servable, asks a
human for approval where the environment requires it, then moves traffic
across in steps while checking health. Any failed checkpoint restores the
original slot to full traffic.

Core concepts
-------------
* **Slot**: one of the two environments. The live slot is enabled at
  traffic weight 100; the other sits at weight 0.

* **Attempt**: one invocation of the orchestrator against a target. An
  attempt ends ``succeeded``, ``rolled_back`` or ``failed`` and is then
  archived and frozen.

* **Target record**: the persisted canonical active slot per target,
  written only when an attempt finalizes or rolls back.

Quick start::

    from cutover import BlueGreenOrchestrator, CutoverConfig, StateDir
    from cutover.backends import FileApprovalChannel, FileMetricsSource, LocalSlotBackend
    from cutover.delivery import ArtifactRef

    config = CutoverConfig.from_yaml("cutover.yaml")
    target = config.target("cdn", "staging")
    state = StateDir.open(config.state_dir)
    orchestrator = BlueGreenOrchestrator(
        config,
        LocalSlotBackend("routing"),
        FileMetricsSource("routing"),
        FileApprovalChannel(state.approvals_dir),
        state,
    )
    report = orchestrator.run(target, ArtifactRef("dist", "v42"))
"""

from cutover.config import CutoverConfig
from cutover.delivery.orchestrator import BlueGreenOrchestrator, DeploymentReport
from cutover.errors import CutoverError
from cutover.models import DeploymentAttempt, DeploymentTarget, Outcome, Slot
from cutover.state import StateDir

__all__ = [
    "BlueGreenOrchestrator",
    "CutoverConfig",
    "CutoverError",
    "DeploymentAttempt",
    "DeploymentReport",
    "DeploymentTarget",
    "Outcome",
    "Slot",
    "StateDir",
]

__version__ = "0.1.0"
