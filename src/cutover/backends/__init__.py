"""Collaborator interfaces and bundled backends."""

from cutover.backends.base import (
    ALL_METRICS,
    CACHE_HIT_RATE,
    ERROR_RATE,
    LATENCY_P95,
    LATENCY_P99,
    ApprovalChannel,
    MetricsSource,
    SlotBackend,
    UploadItem,
    check_weights,
)
from cutover.backends.local import FileApprovalChannel, FileMetricsSource, LocalSlotBackend
from cutover.backends.memory import (
    InMemoryApprovalChannel,
    InMemoryMetricsSource,
    InMemorySlotBackend,
)

__all__ = [
    "ALL_METRICS",
    "CACHE_HIT_RATE",
    "ERROR_RATE",
    "LATENCY_P95",
    "LATENCY_P99",
    "ApprovalChannel",
    "FileApprovalChannel",
    "FileMetricsSource",
    "InMemoryApprovalChannel",
    "InMemoryMetricsSource",
    "InMemorySlotBackend",
    "LocalSlotBackend",
    "MetricsSource",
    "SlotBackend",
    "UploadItem",
    "check_weights",
]
