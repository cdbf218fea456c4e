"""Evaluate slot health from trailing-window metrics.

Error rate and latency are hard gates that block promotion. Cache-hit-rate
is a soft gate: a low value is recorded as a warning and logged, but never
fails a sample.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

from cutover.backends.base import ALL_METRICS, CACHE_HIT_RATE, ERROR_RATE, LATENCY_P95, LATENCY_P99
from cutover.models import HealthSample

if TYPE_CHECKING:
    from cutover.backends.base import MetricsSource
    from cutover.config import HealthConfig
    from cutover.models import DeploymentTarget, Slot

logger = logging.getLogger(__name__)


class HealthVerifier:
    def __init__(self, metrics: MetricsSource, config: HealthConfig, max_workers: int = 4) -> None:
        self.metrics = metrics
        self.config = config
        self.max_workers = max_workers

    def _query(self, target: DeploymentTarget, slot_id: str, metric: str) -> float | None:
        try:
            return self.metrics.query(target, slot_id, metric, self.config.window_seconds)
        except Exception as exc:
            logger.warning("Metric query %s for %s/%s failed: %s", metric, target.target_id, slot_id, exc)
            return None

    def _gate(
        self,
        name: str,
        value: float | None,
        limit: float,
        failures: list[str],
    ) -> None:
        if value is None:
            if self.config.fail_on_missing_data:
                failures.append(f"{name}: no data")
            return
        if value >= limit:
            failures.append(f"{name} {value:g} >= {limit:g}")

    def check(self, target: DeploymentTarget, slot: Slot, weight: int | None = None) -> HealthSample:
        """Sample the slot's metrics and return a pass/fail verdict.

        The metric queries run concurrently; the verdict is computed once all
        of them have returned.
        """
        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {m: pool.submit(self._query, target, slot.slot_id, m) for m in ALL_METRICS}
            values = {m: f.result() for m, f in futures.items()}

        failures: list[str] = []
        warnings: list[str] = []
        self._gate("error_rate", values[ERROR_RATE], self.config.max_error_rate, failures)
        self._gate("latency_p95", values[LATENCY_P95], self.config.max_latency_p95_ms, failures)
        if self.config.max_latency_p99_ms is not None:
            self._gate("latency_p99", values[LATENCY_P99], self.config.max_latency_p99_ms, failures)

        hit_rate = values[CACHE_HIT_RATE]
        if self.config.min_cache_hit_rate is not None and hit_rate is not None:
            if hit_rate < self.config.min_cache_hit_rate:
                warnings.append(f"cache_hit_rate {hit_rate:g} < {self.config.min_cache_hit_rate:g}")

        sample = HealthSample(
            slot_id=slot.slot_id,
            weight=slot.traffic_weight if weight is None else weight,
            error_rate=values[ERROR_RATE],
            latency_p95=values[LATENCY_P95],
            latency_p99=values[LATENCY_P99],
            cache_hit_rate=hit_rate,
            passed=not failures,
            failures=failures,
            warnings=warnings,
        )
        for warning in warnings:
            logger.warning("Soft gate on %s/%s: %s", target.target_id, slot.slot_id, warning)
        logger.info(
            "Health sample %s/%s@%d%%: passed=%s error_rate=%s p95=%s p99=%s cache_hit=%s",
            target.target_id, slot.slot_id, sample.weight, sample.passed,
            sample.error_rate, sample.latency_p95, sample.latency_p99, sample.cache_hit_rate,
            extra={"event": "health_sample", "sample": sample.model_dump(mode="json")},
        )
        return sample
