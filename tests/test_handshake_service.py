"""
Unit tests for the pairing handshake and the session store.
"""

import json
import time
from unittest.mock import MagicMock

import pytest

from core.exceptions import PreconditionFailedError
from models.print_job import JobStatus
from models.profile import Role
from services.handshake_service import HandshakeService, HandshakeState
from services.payment_service import PaymentPhase, PaymentService, SimulatedPaymentGateway
from services.session_store import CONNECTED_KEY, SHOP_ID_KEY, SessionStore


@pytest.fixture
def store():
    return SessionStore()


@pytest.fixture
def decoder():
    return MagicMock()


@pytest.fixture
def handshake(machine, store, decoder):
    return HandshakeService(machine, store, confirm_seconds=0, decoder=decoder)


def _scanning(handshake):
    handshake.request_permission()
    handshake.permission_granted()
    return handshake


class TestScanning:

    def test_match_binds_session(self, handshake, store, decoder):
        _scanning(handshake)
        decoder.start.assert_called_once()

        matched = handshake.feed("visit SHOP-AB12CD today")

        assert matched == "SHOP-AB12CD"
        assert handshake.state is HandshakeState.BOUND
        assert handshake.bound_shop_id == "SHOP-AB12CD"
        assert store.get(CONNECTED_KEY) is True
        assert store.get(SHOP_ID_KEY) == "SHOP-AB12CD"
        decoder.stop.assert_called()

    def test_short_code_ignored(self, handshake):
        _scanning(handshake)

        assert handshake.feed("SHOP-1") is None
        assert handshake.state is HandshakeState.SCANNING
        assert handshake.bound_shop_id is None

    def test_frames_ignored_outside_scanning(self, handshake):
        assert handshake.feed("SHOP-AB12CD") is None
        assert handshake.state is HandshakeState.IDLE

    def test_first_match_wins(self, handshake):
        _scanning(handshake)
        handshake.feed("SHOP-AB12CD")
        assert handshake.feed("SHOP-ZZZZZZ") is None
        assert handshake.bound_shop_id == "SHOP-AB12CD"

    def test_match_ignored_during_payment_commit(self, handshake, machine, submit):
        job = submit()
        machine.begin_payment_commit(job.job_id)
        _scanning(handshake)

        assert handshake.feed("SHOP-ZZZZZZ") is None
        assert handshake.state is HandshakeState.SCANNING
        assert machine.active_job == job

    def test_confirmation_hold_uses_timer(self, machine, store, decoder):
        timer = MagicMock()
        timer_factory = MagicMock(return_value=timer)
        handshake = HandshakeService(machine, store, confirm_seconds=2.0, decoder=decoder,
                                     timer_factory=timer_factory)
        _scanning(handshake)

        handshake.feed("SHOP-AB12CD")

        assert handshake.state is HandshakeState.CONFIRMING
        assert timer_factory.call_args.args[0] == 2.0
        timer.start.assert_called_once()
        with pytest.raises(PreconditionFailedError):
            handshake.cancel()

        # Fire the timer by hand
        callback = timer_factory.call_args.args[1]
        callback(*timer_factory.call_args.kwargs["args"])
        assert handshake.state is HandshakeState.BOUND


class TestPermission:

    def test_denied_then_retry(self, handshake, decoder):
        handshake.request_permission()
        status = handshake.permission_denied("blocked in browser settings")

        assert status.state is HandshakeState.DENIED
        assert status.message == "blocked in browser settings"
        decoder.start.assert_not_called()

        assert handshake.retry().state is HandshakeState.AWAITING_PERMISSION

    def test_camera_failure_while_scanning(self, handshake):
        _scanning(handshake)
        assert handshake.camera_failed().state is HandshakeState.DENIED

    def test_grant_requires_request(self, handshake):
        with pytest.raises(PreconditionFailedError):
            handshake.permission_granted()

    def test_retry_requires_denied(self, handshake):
        with pytest.raises(PreconditionFailedError):
            handshake.retry()

    def test_cancel_returns_to_idle(self, handshake, decoder):
        _scanning(handshake)
        assert handshake.cancel().state is HandshakeState.IDLE
        decoder.stop.assert_called()


class TestRebinding:

    def test_repair_discards_job_for_other_shop(self, handshake, machine, submit):
        _scanning(handshake).feed("SHOP-AB12CD")
        submit()

        _scanning(handshake).feed("SHOP-ZZZZZZ")

        assert handshake.bound_shop_id == "SHOP-ZZZZZZ"
        assert machine.active_job is None
        assert machine.snapshot().history_count == 0

    def test_repair_same_shop_keeps_job(self, handshake, machine, submit):
        _scanning(handshake).feed("SHOP-AB12CD")
        job = submit()

        _scanning(handshake).feed("SHOP-AB12CD")

        assert machine.active_job == job

    def test_cancel_rescan_keeps_binding(self, handshake):
        _scanning(handshake).feed("SHOP-AB12CD")
        _scanning(handshake)

        assert handshake.cancel().state is HandshakeState.BOUND
        assert handshake.bound_shop_id == "SHOP-AB12CD"

    def test_repair_refused_while_payment_commits(self, machine, store, decoder, submit):
        timer = MagicMock()
        timer_factory = MagicMock(return_value=timer)
        handshake = HandshakeService(machine, store, confirm_seconds=2.0, decoder=decoder,
                                     timer_factory=timer_factory)
        _scanning(handshake).feed("SHOP-AB12CD")
        timer_factory.call_args.args[1](*timer_factory.call_args.kwargs["args"])
        job = submit()

        _scanning(handshake).feed("SHOP-ZZZZZZ")
        # Payment reaches SUCCESS during the confirmation hold
        machine.begin_payment_commit(job.job_id)
        decoder.start.reset_mock()
        timer_factory.call_args.args[1](*timer_factory.call_args.kwargs["args"])

        status = handshake.status()
        assert status.state is HandshakeState.SCANNING
        assert status.bound_shop_id == "SHOP-AB12CD"
        assert status.pending_shop_id is None
        assert "payment" in status.message
        decoder.start.assert_called_once()
        assert store.get(SHOP_ID_KEY) == "SHOP-AB12CD"
        assert machine.active_job == job

    def test_paid_job_survives_repair_hold(self, machine, store, decoder, submit):
        handshake = HandshakeService(machine, store, confirm_seconds=0.5, decoder=decoder)
        _scanning(handshake).feed("SHOP-AB12CD")
        handshake.wait_for_commit(timeout=5)
        job = submit()

        payments = PaymentService(machine, SimulatedPaymentGateway(0, 0), confirm_seconds=1.0)
        try:
            assert _scanning(handshake).feed("SHOP-ZZZZZZ") == "SHOP-ZZZZZZ"
            payments.start(job.job_id)
            deadline = time.monotonic() + 5
            while payments.status(job.job_id).phase is not PaymentPhase.SUCCESS:
                assert time.monotonic() < deadline
                time.sleep(0.01)

            assert handshake.wait_for_commit(timeout=5).state is HandshakeState.SCANNING
            assert payments.wait(job.job_id, timeout=5).phase is PaymentPhase.COMPLETED
        finally:
            payments.shutdown(timeout_per_thread=1.0)

        assert handshake.bound_shop_id == "SHOP-AB12CD"
        assert machine.active_job.job_id == job.job_id
        assert machine.active_job.status is JobStatus.IN_QUEUE

    def test_disconnect_clears_store(self, handshake, store):
        _scanning(handshake).feed("SHOP-AB12CD")

        status = handshake.disconnect()

        assert status.state is HandshakeState.IDLE
        assert status.bound_shop_id is None
        assert store.get(CONNECTED_KEY) is None
        assert store.get(SHOP_ID_KEY) is None

    def test_disconnect_keeps_active_job_until_rebind(self, handshake, machine, submit):
        _scanning(handshake).feed("SHOP-AB12CD")
        job = submit()
        handshake.disconnect()
        assert machine.active_job == job


class TestRestore:

    def test_restores_binding(self, machine, decoder):
        store = SessionStore()
        store.set(CONNECTED_KEY, True)
        store.set(SHOP_ID_KEY, "SHOP-AB12CD")

        handshake = HandshakeService(machine, store, decoder=decoder)

        assert handshake.state is HandshakeState.BOUND
        assert handshake.bound_shop_id == "SHOP-AB12CD"

    def test_invalid_stored_id_ignored(self, machine, decoder):
        store = SessionStore()
        store.set(CONNECTED_KEY, True)
        store.set(SHOP_ID_KEY, "SHOP-1")

        handshake = HandshakeService(machine, store, decoder=decoder)

        assert handshake.state is HandshakeState.IDLE


class TestSessionStore:

    def test_missing_key_is_default(self):
        store = SessionStore()
        assert store.get("role") is None
        assert store.get("role", "CUSTOMER") == "CUSTOMER"
        store.delete("role")

    def test_persists_to_file(self, tmp_path):
        path = tmp_path / "session.json"
        store = SessionStore(path)
        store.set(CONNECTED_KEY, True)
        store.set(SHOP_ID_KEY, "SHOP-AB12CD")

        reopened = SessionStore(path)
        assert reopened.get(SHOP_ID_KEY) == "SHOP-AB12CD"
        assert json.loads(path.read_text())[CONNECTED_KEY] is True

    def test_delete_persists(self, tmp_path):
        path = tmp_path / "session.json"
        store = SessionStore(path)
        store.set("role", "OPERATOR")
        store.delete("role")

        assert SessionStore(path).get("role") is None

    def test_corrupt_file_starts_empty(self, tmp_path):
        path = tmp_path / "session.json"
        path.write_text("{not json")

        assert SessionStore(path).snapshot() == {}


class TestPairedSubmission:

    def test_bound_customer_completes_lifecycle(self, handshake, machine):
        """Pairing, then the full job lifecycle against the bound shop."""
        _scanning(handshake).feed("SHOP-AB12CD")
        job = machine.submit(Role.CUSTOMER, handshake.bound_shop_id, "lab.pdf", 4, True, False)
        machine.complete_payment(job.job_id, succeeded=True)
        machine.advance(Role.OPERATOR, job.job_id, JobStatus.READY)
        snapshot = machine.advance(Role.OPERATOR, job.job_id, JobStatus.COLLECTED)

        assert snapshot.history[0].cost == 40
