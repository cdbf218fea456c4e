"""Blue/green cutover orchestration.

Runs the deploy -> propagate -> approve -> shift -> finalize lifecycle for one
target, rolling back on any failure once traffic has started to move.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from cutover.delivery.approval import ApprovalGate
from cutover.delivery.deployer import ArtifactDeployer
from cutover.delivery.finalizer import SwapFinalizer
from cutover.delivery.health import HealthVerifier
from cutover.delivery.propagation import PropagationWaiter
from cutover.delivery.rollback import RollbackController
from cutover.delivery.shifter import TrafficShifter
from cutover.delivery.slots import SlotResolver
from cutover.errors import (
    AmbiguousStateError,
    ApprovalDeniedError,
    ApprovalTimeoutError,
    CutoverError,
)
from cutover.models import ApprovalState, DeploymentAttempt, Outcome, Phase, SlotStatus
from cutover.retry import Clock
from cutover.tracing import (
    end_span,
    get_tracer,
    record_health_sample,
    start_attempt_span,
    start_phase_span,
)

if TYPE_CHECKING:
    from opentelemetry.trace import Span, Tracer

    from cutover.backends.base import ApprovalChannel, MetricsSource, SlotBackend
    from cutover.config import CutoverConfig
    from cutover.delivery.deployer import ArtifactRef
    from cutover.models import DeploymentTarget
    from cutover.state import StateDir

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILED = 1
EXIT_ROLLED_BACK = 2


@dataclass
class DeploymentReport:
    """Machine-readable result of one ``deploy`` invocation."""

    target_id: str
    exit_code: int
    status: str
    attempt: DeploymentAttempt | None = None
    error: str = ""
    error_type: str = ""

    @classmethod
    def from_attempt(cls, attempt: DeploymentAttempt) -> DeploymentReport:
        if attempt.outcome is Outcome.SUCCEEDED:
            code = EXIT_SUCCESS
        elif attempt.outcome is Outcome.ROLLED_BACK or attempt.traffic_moved:
            code = EXIT_ROLLED_BACK
        else:
            code = EXIT_FAILED
        return cls(
            target_id=attempt.target_id,
            exit_code=code,
            status=attempt.outcome.value,
            attempt=attempt,
            error=attempt.error,
            error_type=attempt.error_type,
        )

    @classmethod
    def rejected(cls, target_id: str, error: BaseException) -> DeploymentReport:
        return cls(
            target_id=target_id,
            exit_code=EXIT_FAILED,
            status="rejected",
            error=str(error),
            error_type=type(error).__name__,
        )

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "target_id": self.target_id,
            "status": self.status,
            "exit_code": self.exit_code,
            "error": self.error,
            "error_type": self.error_type,
        }
        if self.attempt is not None:
            a = self.attempt
            data.update({
                "attempt_id": a.attempt_id,
                "artifact_version": a.artifact_version,
                "from_slot": a.from_slot.slot_id,
                "to_slot": a.to_slot.slot_id,
                "approval_state": a.approval_state.value,
                "max_shifted_weight": a.max_shifted_weight,
                "health_samples": len(a.health_history),
            })
        return data


class BlueGreenOrchestrator:
    """Coordinates a zero-downtime cutover between two slots.

    Failures before the first traffic write abort cleanly with nothing to
    undo. Failures at or after it always go through the rollback controller,
    including unexpected exceptions.
    """

    def __init__(
        self,
        config: CutoverConfig,
        backend: SlotBackend,
        metrics: MetricsSource,
        approvals: ApprovalChannel,
        state: StateDir,
        clock: Clock | None = None,
        tracer: Tracer | None = None,
    ) -> None:
        self.config = config
        self.backend = backend
        self.metrics = metrics
        self.approvals = approvals
        self.state = state
        self.clock = clock or Clock()
        self.tracer = tracer or get_tracer("cutover")
        self.resolver = SlotResolver(backend, state.targets)
        self.rollback_controller = RollbackController(backend, state.targets, state.leases)
        self.finalizer = SwapFinalizer(backend, state.targets, state.leases)
        self._phase_span: Span | None = None

    def cancel(self) -> None:
        """Request cancellation; honoured at the next phase or step boundary."""
        logger.warning("Cancellation requested")
        self.clock.cancel()

    # -- helpers ------------------------------------------------------------

    def _transition(self, attempt: DeploymentAttempt, phase: Phase, root: Span) -> None:
        self.clock.check_cancelled(phase.value)
        previous = attempt.current_phase
        attempt.current_phase = phase
        attempt.record_event("phase", {"from": previous.value, "to": phase.value})
        logger.info(
            "Attempt %s on %s: %s -> %s",
            attempt.attempt_id, attempt.target_id, previous.value, phase.value,
            extra={"event": "phase_transition", "attempt_id": attempt.attempt_id, "phase": phase.value},
        )
        if self._phase_span is not None:
            end_span(self._phase_span)
        self._phase_span = start_phase_span(self.tracer, root, phase.value)

    def _on_sample(self, sample: Any) -> None:
        if self._phase_span is not None:
            record_health_sample(self._phase_span, sample)

    def _build_components(self, target: DeploymentTarget) -> tuple[
        ArtifactDeployer, PropagationWaiter, ApprovalGate, TrafficShifter
    ]:
        tc = self.config.target_config(target.kind)
        deployer = ArtifactDeployer(
            self.backend,
            self.config.deploy.policy(),
            self.clock,
            entry_points=tc.entry_points,
            required_entry_point=tc.required_entry_point,
        )
        waiter = PropagationWaiter(
            self.backend,
            self.clock,
            readiness_path=tc.readiness_path,
            max_retries=self.config.propagation.max_retries,
        )
        gate = ApprovalGate(self.approvals, self.clock, interval=self.config.approval.interval_seconds)
        shifter = TrafficShifter(
            self.backend,
            HealthVerifier(self.metrics, self.config.health_for(target.kind)),
            self.rollback_controller,
            self.clock,
            settle_seconds=self.config.shift_for(target.kind).settle_seconds,
            on_sample=self._on_sample,
        )
        return deployer, waiter, gate, shifter

    # -- main flow ----------------------------------------------------------

    def run(self, target: DeploymentTarget, artifact: ArtifactRef) -> DeploymentReport:
        """Execute one deployment attempt against ``target``."""
        attempt_id = uuid.uuid4().hex[:12]
        try:
            self.state.leases.acquire(target.target_id, attempt_id)
        except AmbiguousStateError as exc:
            logger.error("Deploy to %s rejected: %s", target.target_id, exc)
            return DeploymentReport.rejected(target.target_id, exc)

        try:
            active, inactive = self.resolver.resolve(target)
            record = self.state.targets.load(target.target_id)
        except Exception as exc:
            logger.error("Deploy to %s rejected: %s", target.target_id, exc)
            self.state.leases.release(target.target_id, attempt_id)
            return DeploymentReport.rejected(target.target_id, exc)

        attempt = DeploymentAttempt(
            attempt_id=attempt_id,
            target_id=target.target_id,
            from_slot=active,
            to_slot=inactive,
            artifact_version=artifact.version,
            record_version=record.version if record is not None else None,
        )
        attempt.record_event("attempt_started", {"artifact_version": artifact.version})
        root = start_attempt_span(self.tracer, attempt)
        error: BaseException | None = None
        try:
            self._execute(target, artifact, attempt, root)
        except Exception as exc:
            error = exc
            try:
                self._handle_failure(target, attempt, exc)
            except Exception:
                logger.exception(
                    "Failure handling for attempt %s raised; marking it failed",
                    attempt.attempt_id,
                    extra={"event": "failure_handling_failed", "attempt_id": attempt.attempt_id},
                )
                if not attempt.terminal:
                    attempt.record_event("failure_handling_failed", {"error": str(exc)})
                    attempt.finish(Outcome.FAILED, exc)
                # Traffic that moved may still be on the new slot; keep the lease until its TTL.
                if not attempt.traffic_moved:
                    self.state.leases.release(target.target_id, attempt.attempt_id)
        finally:
            if self._phase_span is not None:
                end_span(self._phase_span)
                self._phase_span = None
            if error is None and attempt.outcome is not Outcome.SUCCEEDED:
                error = CutoverError(attempt.error or f"attempt ended {attempt.outcome.value}")
            end_span(root, error, attempt.outcome.value)
            try:
                self.state.attempts.save(attempt)
            except OSError as exc:
                logger.error("Could not archive attempt %s: %s", attempt.attempt_id, exc)

        report = DeploymentReport.from_attempt(attempt)
        logger.info(
            "Attempt %s finished: %s (exit %d)",
            attempt.attempt_id, report.status, report.exit_code,
            extra={"event": "attempt_finished", "attempt_id": attempt.attempt_id, "outcome": report.status},
        )
        return report

    def _execute(
        self,
        target: DeploymentTarget,
        artifact: ArtifactRef,
        attempt: DeploymentAttempt,
        root: Span,
    ) -> None:
        deployer, waiter, gate, shifter = self._build_components(target)

        self._transition(attempt, Phase.DEPLOYING, root)
        attempt.to_slot.status = SlotStatus.DEPLOYING
        result = deployer.deploy(target, attempt.to_slot, artifact)
        attempt.record_event("deployed", result.to_dict())

        self._transition(attempt, Phase.AWAITING_PROPAGATION, root)
        attempt.to_slot.status = SlotStatus.VERIFYING
        waiter.await_ready(
            target,
            attempt.to_slot,
            timeout=self.config.propagation.timeout_seconds,
            interval=self.config.propagation.interval_seconds,
        )

        self._transition(attempt, Phase.AWAITING_APPROVAL, root)
        if target.require_approval:
            decision = gate.await_approval(
                attempt.attempt_id,
                timeout=self.config.approval.timeout_seconds,
                target_id=target.target_id,
                details={
                    "artifact_version": artifact.version,
                    "from_slot": attempt.from_slot.slot_id,
                    "to_slot": attempt.to_slot.slot_id,
                },
            )
            attempt.approval_state = decision
            attempt.record_event("approval", {"state": decision.value})
            if decision is ApprovalState.DENIED:
                raise ApprovalDeniedError(f"Attempt {attempt.attempt_id} was denied")
            if decision is ApprovalState.TIMED_OUT:
                raise ApprovalTimeoutError(
                    f"No approval for attempt {attempt.attempt_id} within "
                    f"{self.config.approval.timeout_seconds:.0f}s"
                )
        else:
            attempt.approval_state = ApprovalState.NOT_REQUIRED

        self._transition(attempt, Phase.SHIFTING, root)
        shift = shifter.shift_traffic(target, attempt, self.config.shift_for(target.kind).steps)
        if not shift.succeeded:
            return

        self._transition(attempt, Phase.FINALIZING, root)
        self.finalizer.finalize(target, attempt)

    def _handle_failure(
        self,
        target: DeploymentTarget,
        attempt: DeploymentAttempt,
        exc: Exception,
    ) -> None:
        if attempt.terminal:
            logger.error("Attempt %s failed after reaching %s: %s", attempt.attempt_id, attempt.outcome.value, exc)
            return

        shifting = attempt.current_phase in (Phase.SHIFTING, Phase.FINALIZING) or attempt.traffic_moved
        if shifting:
            if not isinstance(exc, CutoverError):
                logger.exception("Unexpected error during %s; forcing rollback", attempt.current_phase.value)
            self.rollback_controller.rollback(target, attempt, exc)
            return

        if isinstance(exc, CutoverError):
            logger.error(
                "Attempt %s aborted during %s before any traffic moved: %s",
                attempt.attempt_id, attempt.current_phase.value, exc,
                extra={"event": "attempt_aborted", "attempt_id": attempt.attempt_id},
            )
        else:
            logger.exception("Unexpected error during %s; no traffic moved", attempt.current_phase.value)
        attempt.to_slot.status = SlotStatus.FAILED
        attempt.record_event("aborted", {"error": str(exc), "error_type": type(exc).__name__})
        attempt.finish(Outcome.FAILED, exc)
        self.state.leases.release(target.target_id, attempt.attempt_id)
