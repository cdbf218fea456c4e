"""Tests for artifact upload planning and retrying deploys."""

import pytest

from cutover.config import LONG_CACHE_CONTROL, NO_CACHE_CONTROL
from cutover.delivery.deployer import ArtifactDeployer, ArtifactRef
from cutover.errors import FatalDeployError, RetryableDeployError
from cutover.retry import RetryPolicy


def _deployer(backend, clock, **kwargs) -> ArtifactDeployer:
    policy = RetryPolicy(max_attempts=3, interval_seconds=1.0, backoff=2.0)
    return ArtifactDeployer(backend, policy, clock, **kwargs)


class TestPlan:
    def test_entry_points_are_not_cached(self, backend, clock, artifact) -> None:
        items = {i.key: i.cache_control for i in _deployer(backend, clock).plan(artifact)}
        assert items == {
            "assets/app.3f2a9c.js": LONG_CACHE_CONTROL,
            "index.html": NO_CACHE_CONTROL,
            "manifest.json": NO_CACHE_CONTROL,
        }

    def test_custom_entry_point_patterns(self, backend, clock, artifact) -> None:
        d = _deployer(backend, clock, entry_points=["index.html"])
        items = {i.key: i.cache_control for i in d.plan(artifact)}
        assert items["manifest.json"] == LONG_CACHE_CONTROL

    def test_missing_directory(self, backend, clock, tmp_path) -> None:
        with pytest.raises(FatalDeployError, match="not found"):
            _deployer(backend, clock).plan(ArtifactRef(tmp_path / "nope", "v2"))

    def test_empty_directory(self, backend, clock, tmp_path) -> None:
        (tmp_path / "empty").mkdir()
        with pytest.raises(FatalDeployError, match="empty"):
            _deployer(backend, clock).plan(ArtifactRef(tmp_path / "empty", "v2"))

    def test_missing_required_entry_point(self, backend, clock, artifact) -> None:
        (artifact.path / "index.html").unlink()
        with pytest.raises(FatalDeployError, match="index.html"):
            _deployer(backend, clock).plan(artifact)


class TestDeploy:
    def test_uploads_into_inactive_slot(self, backend, clock, target, artifact) -> None:
        slot = backend.read_slots(target)["green"]
        result = _deployer(backend, clock).deploy(target, slot, artifact)
        assert result.slot_id == "green"
        assert result.files_uploaded == 3
        assert result.attempts == 1
        assert sorted(result.no_cache) == ["index.html", "manifest.json"]
        assert slot.last_artifact_version == "v2"
        assert (target.target_id, "green") in backend.uploads
        assert (target.target_id, "blue") not in backend.uploads
        # the live slot keeps serving untouched
        assert backend.read_slots(target)["blue"].traffic_weight == 100

    def test_retries_transient_errors_with_backoff(self, backend, clock, target, artifact) -> None:
        backend.upload_errors = [RetryableDeployError("throttled"), RetryableDeployError("throttled")]
        slot = backend.read_slots(target)["green"]
        result = _deployer(backend, clock).deploy(target, slot, artifact)
        assert result.attempts == 3
        assert clock.sleeps == [1.0, 2.0]

    def test_fatal_error_is_not_retried(self, backend, clock, target, artifact) -> None:
        backend.upload_errors = [FatalDeployError("access denied")]
        slot = backend.read_slots(target)["green"]
        with pytest.raises(FatalDeployError):
            _deployer(backend, clock).deploy(target, slot, artifact)
        assert backend.upload_calls == 1

    def test_retries_exhausted(self, backend, clock, target, artifact) -> None:
        backend.upload_errors = [RetryableDeployError("throttled")] * 3
        slot = backend.read_slots(target)["green"]
        with pytest.raises(RetryableDeployError):
            _deployer(backend, clock).deploy(target, slot, artifact)
        assert backend.upload_calls == 3

    def test_unclassified_error_is_fatal(self, backend, clock, target, artifact) -> None:
        backend.upload_errors = [ValueError("bad checksum")]
        slot = backend.read_slots(target)["green"]
        with pytest.raises(FatalDeployError, match="bad checksum"):
            _deployer(backend, clock).deploy(target, slot, artifact)
        assert backend.upload_calls == 1
