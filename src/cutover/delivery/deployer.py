"""Push a new artifact into the inactive slot."""

from __future__ import annotations

import fnmatch
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from cutover.backends.base import UploadItem
from cutover.config import LONG_CACHE_CONTROL, NO_CACHE_CONTROL
from cutover.errors import DeployError, FatalDeployError, RetryableDeployError
from cutover.retry import retry_call

if TYPE_CHECKING:
    from collections.abc import Sequence

    from cutover.backends.base import SlotBackend
    from cutover.models import DeploymentTarget, Slot
    from cutover.retry import Clock, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass
class ArtifactRef:
    """A built artifact: a directory tree plus its version label."""

    path: Path
    version: str

    def __post_init__(self) -> None:
        self.path = Path(self.path)


@dataclass
class DeploymentResult:
    slot_id: str
    artifact_version: str
    attempts: int = 1
    long_cache: list[str] = field(default_factory=list)
    no_cache: list[str] = field(default_factory=list)

    @property
    def files_uploaded(self) -> int:
        return len(self.long_cache) + len(self.no_cache)

    def to_dict(self) -> dict[str, Any]:
        return {
            "slot_id": self.slot_id,
            "artifact_version": self.artifact_version,
            "attempts": self.attempts,
            "files_uploaded": self.files_uploaded,
            "no_cache": list(self.no_cache),
        }


class ArtifactDeployer:
    """Uploads artifacts with cache headers suited to a cutover.

    Entry-point documents (by default ``*.html`` and ``*.json``) are uploaded
    with ``no-cache`` so clients pick up the new entry point as soon as
    traffic flips; everything else is treated as fingerprinted and cached for
    a year.
    """

    def __init__(
        self,
        backend: SlotBackend,
        policy: RetryPolicy,
        clock: Clock,
        entry_points: Sequence[str] = ("*.html", "*.json"),
        required_entry_point: str | None = "index.html",
    ) -> None:
        self.backend = backend
        self.policy = policy
        self.clock = clock
        self.entry_points = list(entry_points)
        self.required_entry_point = required_entry_point

    def is_entry_point(self, key: str) -> bool:
        return any(fnmatch.fnmatch(key, pattern) for pattern in self.entry_points)

    def plan(self, artifact: ArtifactRef) -> list[UploadItem]:
        """Build the upload plan for an artifact directory.

        Raises:
            FatalDeployError: If the artifact is missing, empty, or lacks the
                required entry point.
        """
        root = artifact.path
        if not root.is_dir():
            raise FatalDeployError(f"Artifact directory not found: {root}")

        items: list[UploadItem] = []
        for path in sorted(p for p in root.rglob("*") if p.is_file()):
            key = path.relative_to(root).as_posix()
            cache = NO_CACHE_CONTROL if self.is_entry_point(key) else LONG_CACHE_CONTROL
            items.append(UploadItem(key=key, source=path, cache_control=cache))

        if not items:
            raise FatalDeployError(f"Artifact directory is empty: {root}")
        if self.required_entry_point and not any(i.key == self.required_entry_point for i in items):
            raise FatalDeployError(
                f"Artifact {artifact.version} is missing entry point '{self.required_entry_point}'"
            )
        return items

    def deploy(self, target: DeploymentTarget, inactive_slot: Slot, artifact: ArtifactRef) -> DeploymentResult:
        """Upload ``artifact`` into ``inactive_slot``.

        Retryable backend errors are retried with exponential backoff up to
        the policy's attempt limit. Fatal errors, and exceptions the backend
        does not classify, abort immediately.
        """
        items = self.plan(artifact)
        logger.info(
            "Deploying %s to %s/%s (%d files)",
            artifact.version, target.target_id, inactive_slot.slot_id, len(items),
        )

        def _upload() -> None:
            try:
                self.backend.upload(target, inactive_slot.slot_id, items, artifact.version)
            except DeployError:
                raise
            except Exception as exc:
                raise FatalDeployError(f"Unclassified upload failure: {exc}") from exc

        _, attempts = retry_call(
            _upload,
            self.policy,
            self.clock,
            retry_on=(RetryableDeployError,),
            describe=f"upload to {target.target_id}/{inactive_slot.slot_id}",
        )
        inactive_slot.last_artifact_version = artifact.version
        result = DeploymentResult(
            slot_id=inactive_slot.slot_id,
            artifact_version=artifact.version,
            attempts=attempts,
            long_cache=[i.key for i in items if i.cache_control == LONG_CACHE_CONTROL],
            no_cache=[i.key for i in items if i.cache_control == NO_CACHE_CONTROL],
        )
        logger.info(
            "Deployed %s to %s after %d attempt(s)",
            artifact.version, inactive_slot.slot_id, attempts,
        )
        return result
