"""Filesystem-backed collaborators used by the CLI.

Layout under ``root``::

    <target_id>/traffic.yaml           weights, enabled flags, artifact versions
    <target_id>/slots/<slot_id>/...    uploaded artifact files
    <target_id>/slots/<slot_id>.manifest.yaml   key -> cache-control
    <target_id>/metrics/<slot_id>.yaml  metric name -> value
"""

from __future__ import annotations

import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Any

import yaml

from cutover.backends.base import (
    ApprovalChannel,
    MetricsSource,
    SlotBackend,
    UploadItem,
    check_weights,
)
from cutover.errors import FatalDeployError, RetryableDeployError
from cutover.models import ApprovalState, DeploymentTarget, Slot

LEGACY_SENTINEL = "approve_deployment"


def atomic_write_text(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` via a temp file and rename.

    Readers see either the previous content or the new content, never a
    truncated file.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise


def atomic_write_yaml(path: Path, data: Any) -> None:
    atomic_write_text(path, yaml.safe_dump(data, default_flow_style=False, sort_keys=True))


def read_yaml(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f)


class LocalSlotBackend(SlotBackend):
    """Slots as directories, traffic routing as a YAML document."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def _target_dir(self, target: DeploymentTarget) -> Path:
        return self.root / target.target_id

    def _traffic_path(self, target: DeploymentTarget) -> Path:
        return self._target_dir(target) / "traffic.yaml"

    def _load(self, target: DeploymentTarget) -> dict[str, Any]:
        path = self._traffic_path(target)
        if not path.exists():
            raise FileNotFoundError(f"Target '{target.target_id}' not initialised at {path}")
        return read_yaml(path) or {}

    def init_target(self, target: DeploymentTarget, active: str) -> None:
        """Create the routing document with ``active`` serving all traffic."""
        if active not in target.slots:
            raise KeyError(active)
        path = self._traffic_path(target)
        if path.exists():
            raise FileExistsError(f"Target '{target.target_id}' already initialised")
        atomic_write_yaml(path, {
            "weights": {sid: (100 if sid == active else 0) for sid in target.slot_ids},
            "enabled": {sid: sid == active for sid in target.slot_ids},
            "versions": {sid: "" for sid in target.slot_ids},
        })

    def read_slots(self, target: DeploymentTarget) -> dict[str, Slot]:
        doc = self._load(target)
        return {
            sid: Slot(
                slot_id=sid,
                backing_resource_id=resource,
                traffic_weight=int(doc.get("weights", {}).get(sid, 0)),
                enabled=bool(doc.get("enabled", {}).get(sid, False)),
                last_artifact_version=str(doc.get("versions", {}).get(sid, "") or ""),
            )
            for sid, resource in target.slots.items()
        }

    def set_traffic(self, target: DeploymentTarget, weights: dict[str, int]) -> None:
        check_weights(target, weights)
        doc = self._load(target)
        doc["weights"] = dict(weights)
        atomic_write_yaml(self._traffic_path(target), doc)

    def set_enabled(self, target: DeploymentTarget, slot_id: str, enabled: bool) -> None:
        doc = self._load(target)
        doc.setdefault("enabled", {})[slot_id] = enabled
        atomic_write_yaml(self._traffic_path(target), doc)

    def upload(
        self,
        target: DeploymentTarget,
        slot_id: str,
        items: list[UploadItem],
        version: str,
    ) -> None:
        slot_dir = self._target_dir(target) / "slots" / slot_id
        try:
            if slot_dir.exists():
                shutil.rmtree(slot_dir)
            for item in items:
                dest = slot_dir / item.key
                dest.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(item.source, dest)
        except PermissionError as exc:
            raise FatalDeployError(f"Permission denied writing slot {slot_id}: {exc}") from exc
        except OSError as exc:
            raise RetryableDeployError(f"I/O error writing slot {slot_id}: {exc}") from exc

        atomic_write_yaml(
            self._target_dir(target) / "slots" / f"{slot_id}.manifest.yaml",
            {"version": version, "files": {item.key: item.cache_control for item in items}},
        )
        doc = self._load(target)
        doc.setdefault("versions", {})[slot_id] = version
        atomic_write_yaml(self._traffic_path(target), doc)

    def probe(self, target: DeploymentTarget, slot_id: str, path: str) -> bool:
        return (self._target_dir(target) / "slots" / slot_id / path).is_file()


class FileMetricsSource(MetricsSource):
    """Reads metric snapshots exported by an external collector."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def query(
        self,
        target: DeploymentTarget,
        slot_id: str,
        metric: str,
        window_seconds: int,
    ) -> float | None:
        path = self.root / target.target_id / "metrics" / f"{slot_id}.yaml"
        if not path.exists():
            return None
        value = (read_yaml(path) or {}).get(metric)
        return None if value is None else float(value)


class FileApprovalChannel(ApprovalChannel):
    """Approval requests and decisions as marker files in a directory.

    A reviewer approves by writing ``<attempt_id>.approved`` (or denies with
    ``<attempt_id>.denied``). A bare ``approve_deployment`` file approves the
    next polled attempt and is consumed.
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)

    def _path(self, attempt_id: str, suffix: str) -> Path:
        return self.directory / f"{attempt_id}.{suffix}"

    def request(self, attempt_id: str, target_id: str, details: dict[str, Any]) -> None:
        atomic_write_yaml(self._path(attempt_id, "request.yaml"), {
            "attempt_id": attempt_id,
            "target_id": target_id,
            "requested_at": time.time(),
            **details,
        })

    def poll(self, attempt_id: str) -> ApprovalState | None:
        decided = self.decision_for(attempt_id)
        if decided is not None:
            return decided
        sentinel = self.directory / LEGACY_SENTINEL
        if sentinel.exists():
            sentinel.unlink(missing_ok=True)
            self.decide(attempt_id, True, reviewer=LEGACY_SENTINEL)
            return ApprovalState.APPROVED
        return None

    def request_for(self, attempt_id: str) -> dict[str, Any] | None:
        path = self._path(attempt_id, "request.yaml")
        return (read_yaml(path) or {}) if path.exists() else None

    def decision_for(self, attempt_id: str) -> ApprovalState | None:
        """Recorded decision for an attempt, ignoring the legacy sentinel."""
        if self._path(attempt_id, "denied").exists():
            return ApprovalState.DENIED
        if self._path(attempt_id, "approved").exists():
            return ApprovalState.APPROVED
        return None

    def decide(self, attempt_id: str, approved: bool, reviewer: str = "", comment: str = "") -> None:
        suffix = "approved" if approved else "denied"
        atomic_write_yaml(self._path(attempt_id, suffix), {
            "reviewer": reviewer,
            "comment": comment,
            "decided_at": time.time(),
        })

    def pending(self) -> list[dict[str, Any]]:
        if not self.directory.exists():
            return []
        out: list[dict[str, Any]] = []
        for path in sorted(self.directory.glob("*.request.yaml")):
            attempt_id = path.name[: -len(".request.yaml")]
            if self._path(attempt_id, "approved").exists() or self._path(attempt_id, "denied").exists():
                continue
            out.append(read_yaml(path) or {"attempt_id": attempt_id})
        return out
