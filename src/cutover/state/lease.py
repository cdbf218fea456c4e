"""Target-scoped exclusive lease with a TTL."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import yaml

from cutover.backends.local import atomic_write_yaml, read_yaml
from cutover.errors import AttemptInProgressError

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)

UNKNOWN_HOLDER = "unknown"


@dataclass
class Lease:
    target_id: str
    holder: str
    acquired_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at


class LeaseManager:
    """Leases stored as ``<directory>/<target_id>.lease`` files.

    A free lease is claimed with exclusive file creation, so two processes
    racing for the same target cannot both win. Replacing an expired lease
    and releasing a held one both happen under a per-target guard file, and
    the lease file itself is only ever swapped by rename, never removed and
    recreated by a takeover.

    A lease file that exists but cannot be parsed (for example one whose
    writer has created it but not yet filled it in) counts as held until its
    modification time plus the TTL.
    """

    def __init__(
        self,
        directory: str | Path,
        ttl_seconds: float = 7200.0,
        now: Callable[[], float] = time.time,
        guard_attempts: int = 50,
        guard_interval: float = 0.01,
    ) -> None:
        self.directory = Path(directory)
        self.ttl_seconds = ttl_seconds
        self._now = now
        self.guard_attempts = guard_attempts
        self.guard_interval = guard_interval

    def path(self, target_id: str) -> Path:
        return self.directory / f"{target_id}.lease"

    def _guard_path(self, target_id: str) -> Path:
        return self.directory / f"{target_id}.lease.guard"

    def current(self, target_id: str) -> Lease | None:
        path = self.path(target_id)
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return None
        try:
            data = read_yaml(path)
        except FileNotFoundError:
            return None
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Unreadable lease file %s: %s", path, exc)
            data = None
        if isinstance(data, dict):
            try:
                return Lease(**data)
            except TypeError:
                logger.warning("Malformed lease file %s", path)
        return Lease(target_id, UNKNOWN_HOLDER, mtime, mtime + self.ttl_seconds)

    @contextmanager
    def _guard(self, target_id: str, wait: bool) -> Iterator[bool]:
        """Hold the per-target guard file; yields False if it stays busy."""
        path = self._guard_path(target_id)
        remaining = self.guard_attempts if wait else 1
        while True:
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                if self._guard_abandoned(path):
                    continue
                remaining -= 1
                if remaining <= 0:
                    yield False
                    return
                time.sleep(self.guard_interval)
                continue
            break
        os.close(fd)
        try:
            yield True
        finally:
            path.unlink(missing_ok=True)

    def _guard_abandoned(self, path: Path) -> bool:
        # A guard is held for milliseconds; one older than the TTL belongs to a dead process.
        try:
            age = self._now() - path.stat().st_mtime
        except FileNotFoundError:
            return True
        if age < self.ttl_seconds:
            return False
        logger.warning("Removing abandoned lease guard %s", path)
        path.unlink(missing_ok=True)
        return True

    def acquire(self, target_id: str, holder: str) -> Lease:
        """Take the lease for ``target_id`` or raise AttemptInProgressError."""
        self.directory.mkdir(parents=True, exist_ok=True)
        path = self.path(target_id)
        for _ in range(2):
            now = self._now()
            lease = Lease(target_id, holder, now, now + self.ttl_seconds)
            try:
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                existing = self.current(target_id)
                if existing is None:
                    continue
                if not existing.expired(now):
                    raise AttemptInProgressError(target_id, existing.holder, existing.expires_at) from None
                return self._take_over(target_id, holder, existing)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                yaml.safe_dump(asdict(lease), f)
            logger.info("Lease on %s acquired by %s", target_id, holder)
            return lease
        existing = self.current(target_id)
        raise AttemptInProgressError(
            target_id,
            existing.holder if existing else UNKNOWN_HOLDER,
            existing.expires_at if existing else 0.0,
        )

    def _take_over(self, target_id: str, holder: str, stale: Lease) -> Lease:
        with self._guard(target_id, wait=False) as held:
            if not held:
                raise AttemptInProgressError(target_id, stale.holder, stale.expires_at)
            now = self._now()
            existing = self.current(target_id)
            if existing is not None and not existing.expired(now):
                raise AttemptInProgressError(target_id, existing.holder, existing.expires_at)
            logger.warning(
                "Taking over expired lease on %s (holder=%s)",
                target_id, existing.holder if existing else stale.holder,
            )
            lease = Lease(target_id, holder, now, now + self.ttl_seconds)
            atomic_write_yaml(self.path(target_id), asdict(lease))
        confirmed = self.current(target_id)
        if confirmed is None or confirmed.holder != holder:
            raise AttemptInProgressError(
                target_id,
                confirmed.holder if confirmed else UNKNOWN_HOLDER,
                confirmed.expires_at if confirmed else 0.0,
            )
        logger.info("Lease on %s acquired by %s", target_id, holder)
        return lease

    def release(self, target_id: str, holder: str) -> bool:
        """Release the lease if ``holder`` still owns it."""
        with self._guard(target_id, wait=True) as held:
            if not held:
                logger.warning("Lease guard on %s stayed busy; %s did not release", target_id, holder)
                return False
            existing = self.current(target_id)
            if existing is None or existing.holder != holder:
                return False
            self.path(target_id).unlink(missing_ok=True)
        logger.info("Lease on %s released by %s", target_id, holder)
        return True
