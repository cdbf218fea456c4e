"""Tests for the cutover REST API."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from cutover.api import create_app
from cutover.backends.local import FileApprovalChannel
from cutover.models import DeploymentAttempt, Outcome, Slot
from cutover.state import StateDir


@pytest.fixture()
def state_root(tmp_path):
    return tmp_path / "state"


@pytest.fixture()
def client(state_root):
    with TestClient(create_app(state_root)) as c:
        yield c


@pytest.fixture()
def channel(state_root) -> FileApprovalChannel:
    return FileApprovalChannel(StateDir.open(state_root).approvals_dir)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class TestHealth:
    def test_health(self, client) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["version"] == "0.1.0"
        assert body["uptime_seconds"] >= 0

    def test_state_dir_from_env(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setenv("CUTOVER_STATE_DIR", str(tmp_path / "from-env"))
        app = create_app()
        assert app.state.cutover.approvals_dir == tmp_path / "from-env" / "approvals"


# ---------------------------------------------------------------------------
# Targets & attempts
# ---------------------------------------------------------------------------


class TestTargets:
    def test_unknown_target(self, client) -> None:
        assert client.get("/targets/cdn-production").status_code == 404

    def test_target_status(self, client, state_root) -> None:
        state = StateDir.open(state_root)
        state.targets.ensure("cdn-production", "blue")
        state.leases.acquire("cdn-production", "abc123")
        body = client.get("/targets/cdn-production").json()
        assert body["record"]["active_slot_id"] == "blue"
        assert body["lease"]["holder"] == "abc123"
        assert body["recent_attempts"] == []


class TestAttempts:
    def test_unknown_attempt(self, client) -> None:
        assert client.get("/attempts/nope").status_code == 404

    def test_archived_attempt(self, client, state_root) -> None:
        attempt = DeploymentAttempt(
            target_id="cdn-production",
            from_slot=Slot(slot_id="blue", traffic_weight=100, enabled=True),
            to_slot=Slot(slot_id="green"),
            artifact_version="v2",
        )
        attempt.finish(Outcome.FAILED, RuntimeError("upload refused"))
        StateDir.open(state_root).attempts.save(attempt)
        body = client.get(f"/attempts/{attempt.attempt_id}").json()
        assert body["outcome"] == "failed"
        assert body["error"] == "upload refused"
        assert body["to_slot"]["slot_id"] == "green"


# ---------------------------------------------------------------------------
# Approvals
# ---------------------------------------------------------------------------


class TestApprovals:
    def test_pending_empty(self, client) -> None:
        assert client.get("/approvals/pending").json() == {"approvals": [], "count": 0}

    def test_pending_lists_requests(self, client, channel) -> None:
        channel.request("a1", "cdn-production", {"artifact_version": "v2"})
        body = client.get("/approvals/pending").json()
        assert body["count"] == 1
        assert body["approvals"][0]["artifact_version"] == "v2"

    def test_approve(self, client, channel) -> None:
        channel.request("a1", "cdn-production", {})
        resp = client.post("/approvals/a1", json={"approved": True, "reviewer": "alice"})
        assert resp.status_code == 200
        assert resp.json() == {
            "attempt_id": "a1",
            "target_id": "cdn-production",
            "decision": "approved",
            "reviewer": "alice",
        }
        assert channel.poll("a1").value == "approved"

    def test_deny(self, client, channel) -> None:
        channel.request("a1", "cdn-production", {})
        resp = client.post("/approvals/a1", json={"approved": False, "comment": "wrong build"})
        assert resp.json()["decision"] == "denied"
        assert channel.poll("a1").value == "denied"

    def test_unknown_attempt(self, client) -> None:
        resp = client.post("/approvals/missing", json={"approved": True})
        assert resp.status_code == 404

    def test_already_decided(self, client, channel) -> None:
        channel.request("a1", "cdn-production", {})
        channel.decide("a1", False)
        resp = client.post("/approvals/a1", json={"approved": True})
        assert resp.status_code == 409
        assert channel.decision_for("a1").value == "denied"

    def test_sentinel_not_consumed_by_api(self, client, channel) -> None:
        channel.request("a1", "cdn-production", {})
        channel.directory.mkdir(parents=True, exist_ok=True)
        (channel.directory / "approve_deployment").touch()
        assert client.post("/approvals/a1", json={"approved": False}).status_code == 200
        assert (channel.directory / "approve_deployment").exists()

    def test_invalid_body(self, client, channel) -> None:
        channel.request("a1", "cdn-production", {})
        assert client.post("/approvals/a1", json={"reviewer": "alice"}).status_code == 422
