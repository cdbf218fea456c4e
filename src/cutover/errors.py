"""Error taxonomy for blue/green cutovers.

Errors raised before any traffic weight has been written abort the attempt
cleanly. Errors raised at or after the first traffic write always go through
the rollback path.
"""

from __future__ import annotations


class CutoverError(Exception):
    """Base class for every error raised by cutover."""


class ConfigError(CutoverError):
    """Raised when the configuration file is missing or invalid."""


class AmbiguousStateError(CutoverError):
    """Raised when the active slot of a target cannot be determined.

    Requires manual operator correction; never auto-resolved.
    """

    def __init__(self, target_id: str, reason: str) -> None:
        self.target_id = target_id
        self.reason = reason
        super().__init__(f"Ambiguous slot state for target '{target_id}': {reason}")


class AttemptInProgressError(AmbiguousStateError):
    """Raised when another attempt holds the lease on a target."""

    def __init__(self, target_id: str, holder: str, expires_at: float) -> None:
        self.holder = holder
        self.expires_at = expires_at
        super().__init__(target_id, f"attempt '{holder}' is already in progress")


class OperatorInterventionError(AmbiguousStateError):
    """Raised when a previous rollback could not restore the target."""


class StaleRecordError(CutoverError):
    """Raised when a target record was modified by someone else."""

    def __init__(self, target_id: str, expected: int, actual: int) -> None:
        self.target_id = target_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Target record '{target_id}' changed underneath us "
            f"(expected version {expected}, found {actual})"
        )


class DeployError(CutoverError):
    """Raised when an artifact cannot be pushed into a slot."""


class RetryableDeployError(DeployError):
    """Throttling or transient network failure; safe to retry."""


class FatalDeployError(DeployError):
    """Authorization failure or malformed artifact; never retried."""


class PropagationTimeoutError(CutoverError):
    """Raised when a deployed slot never became observably ready."""

    def __init__(self, slot_id: str, attempts: int, elapsed: float) -> None:
        self.slot_id = slot_id
        self.attempts = attempts
        self.elapsed = elapsed
        super().__init__(
            f"Slot '{slot_id}' not ready after {attempts} probes ({elapsed:.1f}s)"
        )


class ApprovalDeniedError(CutoverError):
    """Raised when a reviewer denied the attempt."""


class ApprovalTimeoutError(CutoverError):
    """Raised when no approval arrived before the timeout."""


class HealthCheckFailedError(CutoverError):
    """Raised when a health gate blocked a traffic step."""

    def __init__(self, step: int, failures: list[str]) -> None:
        self.step = step
        self.failures = failures
        super().__init__(f"Health check failed at weight {step}: {'; '.join(failures)}")


class InvalidStepsError(CutoverError):
    """Raised when a traffic step plan is not strictly increasing up to 100."""


class FinalizeError(CutoverError):
    """Raised when finalization is attempted without a passing 100% sample."""


class AttemptCancelledError(CutoverError):
    """Raised at a phase boundary after cancellation was requested."""


class AttemptFrozenError(CutoverError):
    """Raised when mutating an attempt that already reached a terminal outcome."""
