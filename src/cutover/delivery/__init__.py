"""Blue/green cutover components and the orchestrator that sequences them."""

from cutover.delivery.approval import ApprovalGate
from cutover.delivery.deployer import ArtifactDeployer, ArtifactRef, DeploymentResult
from cutover.delivery.finalizer import SwapFinalizer
from cutover.delivery.health import HealthVerifier
from cutover.delivery.orchestrator import (
    EXIT_FAILED,
    EXIT_ROLLED_BACK,
    EXIT_SUCCESS,
    BlueGreenOrchestrator,
    DeploymentReport,
)
from cutover.delivery.propagation import PropagationWaiter
from cutover.delivery.rollback import RollbackController
from cutover.delivery.shifter import DEFAULT_STEPS, ShiftResult, TrafficShifter
from cutover.delivery.slots import SlotResolver

__all__ = [
    "DEFAULT_STEPS",
    "EXIT_FAILED",
    "EXIT_ROLLED_BACK",
    "EXIT_SUCCESS",
    "ApprovalGate",
    "ArtifactDeployer",
    "ArtifactRef",
    "BlueGreenOrchestrator",
    "DeploymentReport",
    "DeploymentResult",
    "HealthVerifier",
    "PropagationWaiter",
    "RollbackController",
    "ShiftResult",
    "SlotResolver",
    "SwapFinalizer",
    "TrafficShifter",
]
