"""Tracer providers for a single ``cutover deploy`` run.

The CLI is a short-lived process, so whatever provider it builds must be shut
down before exit to flush spans still queued in the batch processor.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING

from opentelemetry.sdk.resources import SERVICE_NAME, SERVICE_VERSION, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import (
    BatchSpanProcessor,
    ConsoleSpanExporter,
    SimpleSpanProcessor,
)

from cutover.tracing.conventions import RESOURCE_ENVIRONMENT, RESOURCE_TARGET_KIND

if TYPE_CHECKING:
    from collections.abc import Mapping


def deployment_resource(
    environment: str | None = None,
    target_kind: str | None = None,
    service_name: str = "cutover",
) -> Resource:
    """Resource identifying which environment and target kind a run deploys to."""
    from cutover import __version__

    attributes: dict[str, str] = {SERVICE_NAME: service_name, SERVICE_VERSION: __version__}
    if environment:
        attributes[RESOURCE_ENVIRONMENT] = environment
    if target_kind:
        attributes[RESOURCE_TARGET_KIND] = target_kind
    return Resource.create(attributes)


def configure_tracing(
    endpoint: str | None = None,
    console: bool = False,
    environment: str | None = None,
    target_kind: str | None = None,
    headers: Mapping[str, str] | None = None,
) -> TracerProvider | None:
    """Build a provider exporting to OTLP/HTTP, the console, or both.

    Returns ``None`` when neither sink is requested, leaving the no-op
    global provider in place.

    Args:
        endpoint: Collector HTTP endpoint, e.g. ``http://collector:4318/v1/traces``.
        console: Also print finished spans to stderr. Stdout carries the
            JSON report and is left alone.
        environment: Recorded as ``deployment.environment`` on the resource.
        target_kind: Recorded as ``deployment.target.kind`` on the resource.
        headers: Extra OTLP headers. When omitted the exporter falls back to
            ``OTEL_EXPORTER_OTLP_HEADERS``.

    Raises:
        ImportError: If ``endpoint`` is given and
            ``opentelemetry-exporter-otlp-proto-http`` is not installed.
    """
    if not endpoint and not console:
        return None
    provider = TracerProvider(resource=deployment_resource(environment, target_kind))
    if endpoint:
        from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
            OTLPSpanExporter,
        )

        exporter = OTLPSpanExporter(endpoint=endpoint, headers=dict(headers) if headers else None)
        provider.add_span_processor(BatchSpanProcessor(exporter))
    if console:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter(out=sys.stderr)))
    return provider
