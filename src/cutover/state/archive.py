"""Archive of deployment attempts for forensic replay."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from cutover.backends.local import atomic_write_text
from cutover.errors import AttemptFrozenError
from cutover.models import DeploymentAttempt


class AttemptArchive:
    """Stores each attempt as ``<attempt_id>.json``.

    A terminal attempt is never overwritten.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, attempt_id: str) -> Path:
        return self.directory / f"{attempt_id}.json"

    def save(self, attempt: DeploymentAttempt) -> Path:
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self._path(attempt.attempt_id)
        existing = self.load(attempt.attempt_id)
        if existing is not None and existing.terminal:
            raise AttemptFrozenError(f"Attempt {attempt.attempt_id} already archived as {existing.outcome.value}")
        atomic_write_text(path, json.dumps(attempt.to_dict(), indent=2))
        return path

    def load(self, attempt_id: str) -> DeploymentAttempt | None:
        path = self._path(attempt_id)
        if not path.exists():
            return None
        with open(path, encoding="utf-8") as f:
            return DeploymentAttempt.model_validate(json.load(f))

    def list_attempts(self, target_id: str | None = None, limit: int = 20) -> list[dict[str, Any]]:
        """Summaries of archived attempts, newest first."""
        if not self.directory.exists():
            return []
        rows: list[dict[str, Any]] = []
        for path in self.directory.glob("*.json"):
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
            if target_id and data.get("target_id") != target_id:
                continue
            rows.append({
                "attempt_id": data["attempt_id"],
                "target_id": data["target_id"],
                "artifact_version": data.get("artifact_version"),
                "from_slot": data["from_slot"]["slot_id"],
                "to_slot": data["to_slot"]["slot_id"],
                "outcome": data.get("outcome"),
                "started_at": data.get("started_at"),
                "completed_at": data.get("completed_at"),
                "error": data.get("error", ""),
            })
        rows.sort(key=lambda r: r["started_at"] or 0, reverse=True)
        return rows[:limit]
