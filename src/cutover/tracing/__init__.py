"""OpenTelemetry instrumentation for deployment attempts."""

from cutover.tracing.exporters import configure_tracing, deployment_resource
from cutover.tracing.spans import (
    end_span,
    get_tracer,
    record_health_sample,
    start_attempt_span,
    start_phase_span,
)

__all__ = [
    "configure_tracing",
    "deployment_resource",
    "end_span",
    "get_tracer",
    "record_health_sample",
    "start_attempt_span",
    "start_phase_span",
]
