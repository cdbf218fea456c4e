"""Helpers that create properly attributed deployment spans.

Callers get spans with the :mod:`cutover.tracing.conventions` attributes
already set, so attribute keys live in one place.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from opentelemetry.trace import Span, Status, StatusCode, Tracer

from cutover.tracing.conventions import (
    ATTEMPT_SPAN,
    DEPLOYMENT_ARTIFACT_VERSION,
    DEPLOYMENT_ATTEMPT_ID,
    DEPLOYMENT_FROM_SLOT,
    DEPLOYMENT_OUTCOME,
    DEPLOYMENT_PHASE,
    DEPLOYMENT_TARGET,
    DEPLOYMENT_TO_SLOT,
    DEPLOYMENT_WEIGHT,
    HEALTH_CACHE_HIT_RATE,
    HEALTH_ERROR_RATE,
    HEALTH_LATENCY_P95,
    HEALTH_PASSED,
    HEALTH_SAMPLE_EVENT,
    HEALTH_SLOT,
    PHASE_SPAN_PREFIX,
)

if TYPE_CHECKING:
    from cutover.models import DeploymentAttempt, HealthSample


def get_tracer(name: str = "cutover") -> Tracer:
    """Return a tracer from the globally configured provider (no-op if none)."""
    return trace.get_tracer(name)


def start_attempt_span(tracer: Tracer, attempt: DeploymentAttempt, **kwargs: Any) -> Span:
    """Start the root span of a deployment attempt.

    Args:
        tracer: OpenTelemetry tracer instance.
        attempt: The attempt being executed.
        **kwargs: Extra attributes to set on the span.

    Returns:
        A started ``Span`` with the attempt's identifying attributes.
    """
    span = tracer.start_span(ATTEMPT_SPAN)
    span.set_attribute(DEPLOYMENT_ATTEMPT_ID, attempt.attempt_id)
    span.set_attribute(DEPLOYMENT_TARGET, attempt.target_id)
    span.set_attribute(DEPLOYMENT_ARTIFACT_VERSION, attempt.artifact_version)
    span.set_attribute(DEPLOYMENT_FROM_SLOT, attempt.from_slot.slot_id)
    span.set_attribute(DEPLOYMENT_TO_SLOT, attempt.to_slot.slot_id)
    for key, value in kwargs.items():
        span.set_attribute(key, value)
    return span


def start_phase_span(tracer: Tracer, parent: Span, phase: str) -> Span:
    """Start a child span for one orchestrator phase."""
    ctx = trace.set_span_in_context(parent)
    span = tracer.start_span(f"{PHASE_SPAN_PREFIX}{phase}", context=ctx)
    span.set_attribute(DEPLOYMENT_PHASE, phase)
    return span


def record_health_sample(span: Span, sample: HealthSample) -> None:
    """Attach a health sample to a span as an event."""
    attributes: dict[str, Any] = {
        HEALTH_SLOT: sample.slot_id,
        DEPLOYMENT_WEIGHT: sample.weight,
        HEALTH_PASSED: sample.passed,
    }
    if sample.error_rate is not None:
        attributes[HEALTH_ERROR_RATE] = sample.error_rate
    if sample.latency_p95 is not None:
        attributes[HEALTH_LATENCY_P95] = sample.latency_p95
    if sample.cache_hit_rate is not None:
        attributes[HEALTH_CACHE_HIT_RATE] = sample.cache_hit_rate
    span.add_event(HEALTH_SAMPLE_EVENT, attributes=attributes)


def end_span(span: Span, error: BaseException | None = None, outcome: str | None = None) -> None:
    """Set status (and outcome, when given) and end the span."""
    if outcome is not None:
        span.set_attribute(DEPLOYMENT_OUTCOME, outcome)
    if error is not None:
        span.record_exception(error)
        span.set_status(Status(StatusCode.ERROR, str(error)))
    else:
        span.set_status(Status(StatusCode.OK))
    span.end()
