"""Tests for the target record store, leases and attempt archive."""

import os
import time

import pytest
import yaml

from cutover.errors import AttemptFrozenError, AttemptInProgressError, StaleRecordError
from cutover.models import DeploymentAttempt, Outcome, Slot, TargetRecord
from cutover.state import AttemptArchive, LeaseManager, StateDir, TargetStore


class TestTargetStore:
    def test_create_and_load(self, tmp_path) -> None:
        store = TargetStore(tmp_path)
        written = store.save(TargetRecord(target_id="cdn-production", active_slot_id="blue"), None)
        assert written.version == 1
        loaded = store.load("cdn-production")
        assert loaded is not None
        assert loaded.active_slot_id == "blue"
        assert loaded.version == 1

    def test_missing_record(self, tmp_path) -> None:
        assert TargetStore(tmp_path).load("cdn-production") is None

    def test_optimistic_concurrency(self, tmp_path) -> None:
        store = TargetStore(tmp_path)
        store.save(TargetRecord(target_id="t", active_slot_id="blue"), None)
        store.save(TargetRecord(target_id="t", active_slot_id="green"), 1)
        with pytest.raises(StaleRecordError) as exc_info:
            store.save(TargetRecord(target_id="t", active_slot_id="blue"), 1)
        assert exc_info.value.expected == 1
        assert exc_info.value.actual == 2
        assert store.load("t").active_slot_id == "green"

    def test_create_conflicts_with_existing(self, tmp_path) -> None:
        store = TargetStore(tmp_path)
        store.save(TargetRecord(target_id="t", active_slot_id="blue"), None)
        with pytest.raises(StaleRecordError):
            store.save(TargetRecord(target_id="t", active_slot_id="green"), None)

    def test_atomic_write_leaves_no_temp_files(self, tmp_path) -> None:
        store = TargetStore(tmp_path)
        store.save(TargetRecord(target_id="t", active_slot_id="blue"), None)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["t.yaml"]

    def test_ensure_is_idempotent(self, tmp_path) -> None:
        store = TargetStore(tmp_path)
        first = store.ensure("t", "blue")
        second = store.ensure("t", "green")
        assert first.version == second.version == 1
        assert second.active_slot_id == "blue"


class TestLeaseManager:
    def test_acquire_and_release(self, tmp_path) -> None:
        leases = LeaseManager(tmp_path)
        lease = leases.acquire("t", "attempt-1")
        assert lease.holder == "attempt-1"
        assert leases.current("t").holder == "attempt-1"
        assert leases.release("t", "attempt-1")
        assert leases.current("t") is None

    def test_second_holder_rejected(self, tmp_path) -> None:
        leases = LeaseManager(tmp_path)
        leases.acquire("t", "attempt-1")
        with pytest.raises(AttemptInProgressError) as exc_info:
            leases.acquire("t", "attempt-2")
        assert exc_info.value.holder == "attempt-1"

    def test_release_by_other_holder_is_ignored(self, tmp_path) -> None:
        leases = LeaseManager(tmp_path)
        leases.acquire("t", "attempt-1")
        assert not leases.release("t", "attempt-2")
        assert leases.current("t").holder == "attempt-1"

    def test_expired_lease_is_taken_over(self, tmp_path) -> None:
        now = [1000.0]
        leases = LeaseManager(tmp_path, ttl_seconds=60, now=lambda: now[0])
        leases.acquire("t", "attempt-1")
        now[0] += 61
        lease = leases.acquire("t", "attempt-2")
        assert lease.holder == "attempt-2"
        assert lease.expires_at == now[0] + 60

    def test_empty_lease_file_counts_as_held(self, tmp_path) -> None:
        leases = LeaseManager(tmp_path)
        leases.path("t").touch()
        with pytest.raises(AttemptInProgressError) as exc_info:
            leases.acquire("t", "attempt-2")
        assert exc_info.value.holder == "unknown"
        assert leases.path("t").read_text() == ""

    def test_unreadable_lease_file_counts_as_held(self, tmp_path) -> None:
        leases = LeaseManager(tmp_path)
        leases.path("t").write_text("holder: [unterminated\n")
        with pytest.raises(AttemptInProgressError):
            leases.acquire("t", "attempt-2")

    def test_empty_lease_file_expires_after_ttl(self, tmp_path) -> None:
        leases = LeaseManager(tmp_path, ttl_seconds=60)
        path = leases.path("t")
        path.touch()
        old = time.time() - 120
        os.utime(path, (old, old))
        lease = leases.acquire("t", "attempt-2")
        assert lease.holder == "attempt-2"
        assert yaml.safe_load(path.read_text())["holder"] == "attempt-2"

    def test_takeover_rechecks_under_guard(self, tmp_path, monkeypatch) -> None:
        """A racer that saw the expired lease must not replace a fresh one written since."""
        now = [1000.0]
        leases = LeaseManager(tmp_path, ttl_seconds=60, now=lambda: now[0])
        leases.acquire("t", "attempt-1")
        stale = leases.current("t")
        now[0] += 61
        leases.acquire("t", "attempt-2")

        real_current = leases.current
        seen = []

        def first_read_is_stale(target_id):
            if not seen:
                seen.append(target_id)
                return stale
            return real_current(target_id)

        monkeypatch.setattr(leases, "current", first_read_is_stale)
        with pytest.raises(AttemptInProgressError) as exc_info:
            leases.acquire("t", "attempt-3")
        assert exc_info.value.holder == "attempt-2"
        assert real_current("t").holder == "attempt-2"

    def test_takeover_refused_while_guard_held(self, tmp_path) -> None:
        now = [1000.0]
        leases = LeaseManager(tmp_path, ttl_seconds=60, now=lambda: now[0])
        leases.acquire("t", "attempt-1")
        now[0] += 61
        (tmp_path / "t.lease.guard").touch()
        with pytest.raises(AttemptInProgressError):
            leases.acquire("t", "attempt-2")
        assert leases.current("t").holder == "attempt-1"

    def test_takeover_leaves_no_temp_files(self, tmp_path) -> None:
        now = [1000.0]
        leases = LeaseManager(tmp_path, ttl_seconds=60, now=lambda: now[0])
        leases.acquire("t", "attempt-1")
        now[0] += 61
        leases.acquire("t", "attempt-2")
        assert sorted(p.name for p in tmp_path.iterdir()) == ["t.lease"]

    def test_leases_are_per_target(self, tmp_path) -> None:
        leases = LeaseManager(tmp_path)
        leases.acquire("cdn-production", "a")
        leases.acquire("api-production", "b")
        assert leases.current("cdn-production").holder == "a"
        assert leases.current("api-production").holder == "b"


def _attempt(target_id: str = "t", version: str = "v2") -> DeploymentAttempt:
    return DeploymentAttempt(
        target_id=target_id,
        from_slot=Slot(slot_id="blue", traffic_weight=100, enabled=True),
        to_slot=Slot(slot_id="green"),
        artifact_version=version,
    )


class TestAttemptArchive:
    def test_save_and_load(self, tmp_path) -> None:
        archive = AttemptArchive(tmp_path)
        a = _attempt()
        a.record_weights(75, 25)
        archive.save(a)
        loaded = archive.load(a.attempt_id)
        assert loaded is not None
        assert loaded.weight_history == [(75, 25)]

    def test_terminal_attempt_is_never_overwritten(self, tmp_path) -> None:
        archive = AttemptArchive(tmp_path)
        a = _attempt()
        a.finish(Outcome.FAILED)
        archive.save(a)
        with pytest.raises(AttemptFrozenError):
            archive.save(a)

    def test_list_newest_first_filtered_by_target(self, tmp_path) -> None:
        archive = AttemptArchive(tmp_path)
        old = _attempt(version="v1")
        old.started_at = 100.0
        new = _attempt(version="v2")
        new.started_at = 200.0
        other = _attempt(target_id="other")
        for a in (old, new, other):
            archive.save(a)
        rows = archive.list_attempts("t")
        assert [r["artifact_version"] for r in rows] == ["v2", "v1"]
        assert rows[0]["from_slot"] == "blue"
        assert len(archive.list_attempts("t", limit=1)) == 1

    def test_interrupted_save_keeps_previous_snapshot(self, tmp_path, monkeypatch) -> None:
        archive = AttemptArchive(tmp_path)
        a = _attempt()
        archive.save(a)
        a.record_weights(75, 25)

        def fail_replace(src, dst):
            raise OSError("disk full")

        monkeypatch.setattr("cutover.backends.local.os.replace", fail_replace)
        with pytest.raises(OSError):
            archive.save(a)
        monkeypatch.undo()

        loaded = archive.load(a.attempt_id)
        assert loaded is not None
        assert loaded.weight_history == []
        assert [p.name for p in tmp_path.iterdir()] == [f"{a.attempt_id}.json"]


class TestStateDir:
    def test_layout(self, tmp_path) -> None:
        state = StateDir.open(tmp_path)
        assert state.targets.directory == tmp_path / "targets"
        assert state.leases.directory == tmp_path / "leases"
        assert state.attempts.directory == tmp_path / "attempts"
        assert state.approvals_dir == tmp_path / "approvals"

    def test_target_status(self, tmp_path) -> None:
        state = StateDir.open(tmp_path)
        assert state.target_status("t") is None
        state.targets.ensure("t", "blue")
        state.leases.acquire("t", "attempt-1")
        state.attempts.save(_attempt())
        status = state.target_status("t")
        assert status["record"]["active_slot_id"] == "blue"
        assert status["lease"]["holder"] == "attempt-1"
        assert len(status["recent_attempts"]) == 1
