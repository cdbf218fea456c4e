"""Persisted per-target record with optimistic concurrency."""

from __future__ import annotations

import logging
import threading
import time
from pathlib import Path

from cutover.backends.local import atomic_write_yaml, read_yaml
from cutover.errors import StaleRecordError
from cutover.models import TargetRecord

logger = logging.getLogger(__name__)


class TargetStore:
    """One YAML document per target under ``<directory>/<target_id>.yaml``.

    Every save bumps ``version``; callers pass the version they read and the
    save is rejected with :class:`StaleRecordError` if it changed meanwhile.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = threading.Lock()

    def path(self, target_id: str) -> Path:
        return self.directory / f"{target_id}.yaml"

    def load(self, target_id: str) -> TargetRecord | None:
        path = self.path(target_id)
        if not path.exists():
            return None
        return TargetRecord.model_validate(read_yaml(path))

    def save(self, record: TargetRecord, expected_version: int | None) -> TargetRecord:
        """Write ``record`` if the stored version still equals ``expected_version``.

        Args:
            record: The record to persist. Its own ``version`` is ignored.
            expected_version: Version read before modifying, or None to create.

        Returns:
            The record as written, with the new version.
        """
        with self._lock:
            current = self.load(record.target_id)
            actual = current.version if current is not None else None
            if actual != expected_version:
                raise StaleRecordError(
                    record.target_id,
                    -1 if expected_version is None else expected_version,
                    -1 if actual is None else actual,
                )
            written = record.model_copy(update={
                "version": (actual or 0) + 1,
                "updated_at": time.time(),
            })
            atomic_write_yaml(self.path(record.target_id), written.model_dump(mode="json"))
        logger.debug("Saved target record %s v%d", written.target_id, written.version)
        return written

    def ensure(self, target_id: str, active_slot_id: str) -> TargetRecord:
        """Return the stored record, creating it if the target is new."""
        existing = self.load(target_id)
        if existing is not None:
            return existing
        logger.info("Creating target record %s (active=%s)", target_id, active_slot_id)
        return self.save(TargetRecord(target_id=target_id, active_slot_id=active_slot_id), None)
