"""Persisted state: target records, leases and the attempt archive."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from cutover.state.archive import AttemptArchive
from cutover.state.lease import Lease, LeaseManager
from cutover.state.store import TargetStore


@dataclass
class StateDir:
    """The standard layout of a cutover state directory."""

    targets: TargetStore
    leases: LeaseManager
    attempts: AttemptArchive
    approvals_dir: Path

    @classmethod
    def open(cls, root: str | Path, lease_ttl_seconds: float = 7200.0) -> StateDir:
        root = Path(root)
        return cls(
            targets=TargetStore(root / "targets"),
            leases=LeaseManager(root / "leases", ttl_seconds=lease_ttl_seconds),
            attempts=AttemptArchive(root / "attempts"),
            approvals_dir=root / "approvals",
        )

    def target_status(self, target_id: str, recent: int = 5) -> dict[str, Any] | None:
        """Summarise a target's record, current lease and recent attempts.

        Returns None when the target has never been deployed or initialised.
        """
        record = self.targets.load(target_id)
        if record is None:
            return None
        lease = self.leases.current(target_id)
        return {
            "target_id": target_id,
            "record": record.model_dump(mode="json"),
            "lease": asdict(lease) if lease is not None else None,
            "recent_attempts": self.attempts.list_attempts(target_id, limit=recent),
        }


__all__ = [
    "AttemptArchive",
    "Lease",
    "LeaseManager",
    "StateDir",
    "TargetStore",
]
