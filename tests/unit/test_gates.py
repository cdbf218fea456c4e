"""Tests for the propagation waiter and the approval gate."""

import pytest

from cutover.backends import FileApprovalChannel, InMemoryApprovalChannel, UploadItem
from cutover.delivery.approval import ApprovalGate
from cutover.delivery.propagation import PropagationWaiter
from cutover.errors import AttemptCancelledError, PropagationTimeoutError
from cutover.models import ApprovalState


def _upload_index(backend, target, tmp_path) -> None:
    src = tmp_path / "index.html"
    src.write_text("<html/>")
    backend.upload(target, "green", [UploadItem("index.html", src, "no-cache")], "v2")


class TestPropagationWaiter:
    def test_ready_after_a_few_probes(self, backend, clock, target, tmp_path) -> None:
        backend.ready_after = 3
        _upload_index(backend, target, tmp_path)
        slot = backend.read_slots(target)["green"]
        waiter = PropagationWaiter(backend, clock, readiness_path="index.html")
        assert waiter.await_ready(target, slot, timeout=600, interval=30)
        assert clock.sleeps == [30, 30]

    def test_times_out_after_max_retries(self, backend, clock, target) -> None:
        slot = backend.read_slots(target)["green"]
        waiter = PropagationWaiter(backend, clock, max_retries=20)
        with pytest.raises(PropagationTimeoutError) as exc_info:
            waiter.await_ready(target, slot, timeout=3600, interval=30)
        assert exc_info.value.attempts == 20
        assert exc_info.value.slot_id == "green"

    def test_times_out_at_deadline(self, backend, clock, target) -> None:
        slot = backend.read_slots(target)["green"]
        waiter = PropagationWaiter(backend, clock, max_retries=100)
        with pytest.raises(PropagationTimeoutError) as exc_info:
            waiter.await_ready(target, slot, timeout=90, interval=30)
        assert exc_info.value.attempts == 4

    def test_cancelled_wait(self, backend, clock, target) -> None:
        slot = backend.read_slots(target)["green"]
        clock.on_sleep = lambda c: c.cancel()
        with pytest.raises(AttemptCancelledError):
            PropagationWaiter(backend, clock).await_ready(target, slot, timeout=600, interval=30)


class TestApprovalGate:
    def test_approved(self, clock) -> None:
        channel = InMemoryApprovalChannel(auto=True)
        state = ApprovalGate(channel, clock).await_approval("a1", timeout=3600, target_id="cdn-production")
        assert state is ApprovalState.APPROVED
        assert channel.requests["a1"]["target_id"] == "cdn-production"

    def test_denied(self, clock) -> None:
        state = ApprovalGate(InMemoryApprovalChannel(auto=False), clock).await_approval("a1", timeout=3600)
        assert state is ApprovalState.DENIED

    def test_decision_arrives_while_waiting(self, clock) -> None:
        channel = InMemoryApprovalChannel()

        def approve_on_third_poll(c) -> None:
            if len(c.sleeps) == 2:
                channel.decide("a1", True, reviewer="alice")

        clock.on_sleep = approve_on_third_poll
        state = ApprovalGate(channel, clock, interval=10).await_approval("a1", timeout=3600)
        assert state is ApprovalState.APPROVED
        assert clock.sleeps == [10, 10]

    def test_timeout(self, clock) -> None:
        state = ApprovalGate(InMemoryApprovalChannel(), clock, interval=10).await_approval("a1", timeout=60)
        assert state is ApprovalState.TIMED_OUT
        assert sum(clock.sleeps) == 60

    def test_file_channel_decision(self, clock, tmp_path) -> None:
        channel = FileApprovalChannel(tmp_path)
        clock.on_sleep = lambda c: channel.decide("a1", False, reviewer="bob", comment="wrong build")
        state = ApprovalGate(channel, clock, interval=10).await_approval("a1", timeout=600)
        assert state is ApprovalState.DENIED

    def test_legacy_sentinel_is_consumed(self, clock, tmp_path) -> None:
        channel = FileApprovalChannel(tmp_path)
        tmp_path.mkdir(exist_ok=True)
        (tmp_path / "approve_deployment").touch()
        state = ApprovalGate(channel, clock).await_approval("a1", timeout=600)
        assert state is ApprovalState.APPROVED
        assert not (tmp_path / "approve_deployment").exists()
        assert (tmp_path / "a1.approved").exists()
