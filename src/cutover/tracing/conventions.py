"""OpenTelemetry attribute names for deployment spans.

Follows a ``deployment.*`` namespace for all custom attributes.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Attributes
# ---------------------------------------------------------------------------

DEPLOYMENT_TARGET = "deployment.target"
DEPLOYMENT_ATTEMPT_ID = "deployment.attempt.id"
DEPLOYMENT_ARTIFACT_VERSION = "deployment.artifact.version"
DEPLOYMENT_FROM_SLOT = "deployment.slot.from"
DEPLOYMENT_TO_SLOT = "deployment.slot.to"
DEPLOYMENT_PHASE = "deployment.phase"
DEPLOYMENT_OUTCOME = "deployment.outcome"
DEPLOYMENT_WEIGHT = "deployment.traffic.weight"
HEALTH_SLOT = "deployment.health.slot"
HEALTH_PASSED = "deployment.health.passed"
HEALTH_ERROR_RATE = "deployment.health.error_rate"
HEALTH_LATENCY_P95 = "deployment.health.latency_p95_ms"
HEALTH_CACHE_HIT_RATE = "deployment.health.cache_hit_rate"

# ---------------------------------------------------------------------------
# Span names
# ---------------------------------------------------------------------------

ATTEMPT_SPAN = "cutover.attempt"
PHASE_SPAN_PREFIX = "cutover.phase:"
HEALTH_SAMPLE_EVENT = "health_sample"

# ---------------------------------------------------------------------------
# Resource attributes
# ---------------------------------------------------------------------------

RESOURCE_ENVIRONMENT = "deployment.environment"
RESOURCE_TARGET_KIND = "deployment.target.kind"
