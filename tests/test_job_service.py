"""
Unit tests for the job lifecycle machine.

Covers the transition table, role gating, idempotent requests, payment
completion, withdrawal, archiving and shop commands.
"""

import threading
from unittest.mock import MagicMock

import pytest

from core.exceptions import (
    InvalidTransitionError,
    PaymentDeclinedError,
    PreconditionFailedError,
    ShopUnavailableError,
    ValidationError,
)
from models.print_job import JobStatus
from models.profile import Role
from models.shop import RateTable
from modules.location import LocationResult
from services.job_service import TRANSITIONS, JobLifecycleMachine, is_valid_transition


def _pay(machine, job):
    machine.complete_payment(job.job_id, succeeded=True)
    return machine.active_job


def _to(machine, job, *statuses):
    for status in statuses:
        machine.advance(Role.OPERATOR, job.job_id, status)
    return machine.active_job


class TestTransitionTable:

    def test_allowed_pairs(self):
        assert is_valid_transition(JobStatus.IN_QUEUE, JobStatus.PRINTING)
        assert is_valid_transition(JobStatus.IN_QUEUE, JobStatus.READY)
        assert is_valid_transition(JobStatus.PRINTING, JobStatus.READY)
        assert is_valid_transition(JobStatus.READY, JobStatus.COLLECTED)

    def test_no_backward_or_skipping_pairs(self):
        assert not is_valid_transition(JobStatus.READY, JobStatus.PRINTING)
        assert not is_valid_transition(JobStatus.PENDING_PAYMENT, JobStatus.READY)
        assert not is_valid_transition(JobStatus.IN_QUEUE, JobStatus.COLLECTED)
        assert not is_valid_transition(JobStatus.COLLECTED, JobStatus.READY)

    def test_only_payment_edge_belongs_to_customer(self):
        customer_edges = [pair for pair, role in TRANSITIONS.items() if role is Role.CUSTOMER]
        assert customer_edges == [(JobStatus.PENDING_PAYMENT, JobStatus.IN_QUEUE)]


class TestSubmit:

    def test_creates_pending_job_with_frozen_cost(self, machine, submit):
        before = machine.snapshot().version
        job = submit()

        assert job.status is JobStatus.PENDING_PAYMENT
        assert job.cost == 45
        assert job.expected_minutes == 8
        assert machine.active_job == job
        assert machine.snapshot().version == before + 1

    def test_requires_binding(self, machine):
        with pytest.raises(ShopUnavailableError):
            machine.submit(Role.CUSTOMER, None, "notes.pdf", 3, False, False)

    def test_rejects_other_shop(self, machine):
        with pytest.raises(ShopUnavailableError):
            machine.submit(Role.CUSTOMER, "SHOP-ZZZZZZ", "notes.pdf", 3, False, False)

    def test_rejects_paused_shop(self, machine, submit):
        machine.set_paused(Role.OPERATOR, True)
        with pytest.raises(ShopUnavailableError):
            submit()
        assert machine.active_job is None

    def test_rejects_unconfigured_shop(self, shop, dispatcher):
        machine = JobLifecycleMachine(shop.with_changes(is_configured=False), dispatcher=dispatcher)
        with pytest.raises(ShopUnavailableError):
            machine.submit(Role.CUSTOMER, shop.shop_id, "notes.pdf", 3, False, False)

    def test_operator_cannot_submit(self, machine, shop):
        with pytest.raises(InvalidTransitionError):
            machine.submit(Role.OPERATOR, shop.shop_id, "notes.pdf", 3, False, False)

    @pytest.mark.parametrize("page_count", [0, -2, 1.5, True])
    def test_rejects_bad_page_count(self, submit, page_count):
        with pytest.raises(ValidationError):
            submit(page_count=page_count)

    def test_rejects_missing_file(self, submit):
        with pytest.raises(ValidationError):
            submit(file_name="")

    def test_second_submission_while_printing_rejected(self, machine, submit):
        job = submit()
        _pay(machine, job)
        printing = _to(machine, job, JobStatus.PRINTING)
        before = machine.snapshot()

        with pytest.raises(PreconditionFailedError):
            submit(file_name="other.pdf")

        assert machine.snapshot() is before
        assert machine.active_job == printing


class TestPayment:

    def test_success_enters_queue_with_fresh_baseline(self, machine, submit):
        job = submit()
        queued = _pay(machine, job)

        assert queued.status is JobStatus.IN_QUEUE
        assert queued.timestamp > job.timestamp
        # 5 handling + ceil(8 sheets / 20 ppm)
        assert queued.expected_minutes == 6
        assert queued.cost == job.cost

    def test_failure_leaves_state_unchanged(self, machine, submit):
        job = submit()
        before = machine.snapshot()

        with pytest.raises(PaymentDeclinedError):
            machine.complete_payment(job.job_id, succeeded=False)

        assert machine.snapshot() is before
        assert machine.active_job.status is JobStatus.PENDING_PAYMENT

    def test_repeated_success_is_noop(self, machine, submit):
        job = submit()
        _pay(machine, job)
        before = machine.snapshot()

        assert machine.complete_payment(job.job_id, succeeded=True) is before

    def test_unknown_job_rejected(self, machine, submit):
        submit()
        with pytest.raises(InvalidTransitionError):
            machine.complete_payment("JOB-NOPE", succeeded=True)

    def test_commit_blocks_withdraw(self, machine, submit):
        job = submit()
        machine.begin_payment_commit(job.job_id)
        assert machine.is_payment_committing(job.job_id)

        with pytest.raises(InvalidTransitionError):
            machine.withdraw(Role.CUSTOMER, job.job_id)

        _pay(machine, job)
        assert not machine.is_payment_committing()

    def test_payment_edge_not_reachable_by_advance(self, machine, submit):
        job = submit()
        for role in (Role.CUSTOMER, Role.OPERATOR):
            with pytest.raises(InvalidTransitionError):
                machine.advance(role, job.job_id, JobStatus.IN_QUEUE)
        assert machine.active_job.status is JobStatus.PENDING_PAYMENT


class TestAdvance:

    def test_valid_transition_changes_only_status(self, machine, submit):
        queued = _pay(machine, submit())
        printing = _to(machine, queued, JobStatus.PRINTING)

        assert printing.status is JobStatus.PRINTING
        assert printing == queued.advance(JobStatus.PRINTING)

    @pytest.mark.parametrize("target", [JobStatus.COLLECTED, JobStatus.PENDING_PAYMENT])
    def test_invalid_transition_leaves_snapshot(self, machine, submit, target):
        queued = _pay(machine, submit())
        before = machine.snapshot()

        with pytest.raises(InvalidTransitionError) as exc_info:
            machine.advance(Role.OPERATOR, queued.job_id, target)

        assert machine.snapshot() is before
        assert exc_info.value.current == "IN_QUEUE"
        assert exc_info.value.requested == target.value

    def test_customer_cannot_advance(self, machine, submit):
        queued = _pay(machine, submit())
        with pytest.raises(InvalidTransitionError):
            machine.advance(Role.CUSTOMER, queued.job_id, JobStatus.PRINTING)
        assert machine.active_job.status is JobStatus.IN_QUEUE

    def test_ready_fires_once(self, machine, submit, dispatcher):
        """Asking for READY twice notifies once."""
        queued = _pay(machine, submit())
        dispatcher.reset_mock()

        machine.advance(Role.OPERATOR, queued.job_id, JobStatus.READY)
        version = machine.snapshot().version
        machine.advance(Role.OPERATOR, queued.job_id, JobStatus.READY)

        assert dispatcher.dispatch.call_count == 1
        previous, job = dispatcher.dispatch.call_args.args
        assert previous is JobStatus.IN_QUEUE
        assert job.status is JobStatus.READY
        assert machine.snapshot().version == version

    def test_dispatch_failure_does_not_undo_commit(self, machine, submit, dispatcher):
        queued = _pay(machine, submit())
        dispatcher.dispatch.side_effect = RuntimeError("speaker unplugged")

        machine.advance(Role.OPERATOR, queued.job_id, JobStatus.READY)

        assert machine.active_job.status is JobStatus.READY

    def test_not_active_job(self, machine, submit):
        _pay(machine, submit())
        with pytest.raises(InvalidTransitionError):
            machine.advance(Role.OPERATOR, "JOB-OTHER", JobStatus.PRINTING)


class TestCollect:

    def test_collected_job_moves_to_archive(self, machine, submit):
        job = submit(file_name="thesis.pdf")
        ready = _to(machine, _pay(machine, job), JobStatus.PRINTING, JobStatus.READY)

        snapshot = machine.advance(Role.OPERATOR, ready.job_id, JobStatus.COLLECTED)

        assert snapshot.active_job is None
        assert snapshot.history[0].job_id == job.job_id
        assert snapshot.history[0].file_name == "thesis.pdf"
        assert snapshot.history[0].cost == job.cost
        assert snapshot.history[0].status is JobStatus.COLLECTED

    def test_archive_only_grows(self, machine, submit):
        counts = []
        for index in range(3):
            job = submit(file_name=f"doc{index}.pdf", page_count=index + 1)
            _to(machine, _pay(machine, job), JobStatus.READY, JobStatus.COLLECTED)
            counts.append(machine.snapshot().history_count)

        assert counts == [1, 2, 3]
        assert [j.file_name for j in machine.snapshot().history] == [
            "doc2.pdf", "doc1.pdf", "doc0.pdf",
        ]
        assert machine.snapshot().history_revenue == 3 + 6 + 9

    def test_collected_is_terminal(self, machine, submit):
        job = submit()
        _to(machine, _pay(machine, job), JobStatus.READY, JobStatus.COLLECTED)
        with pytest.raises(InvalidTransitionError):
            machine.advance(Role.OPERATOR, job.job_id, JobStatus.READY)


class TestWithdraw:

    def test_withdraw_unpaid_job(self, machine, submit):
        job = submit()
        snapshot = machine.withdraw(Role.CUSTOMER, job.job_id)
        assert snapshot.active_job is None
        assert snapshot.history_count == 0

    def test_withdraw_paid_job_rejected(self, machine, submit):
        job = submit()
        _pay(machine, job)
        with pytest.raises(InvalidTransitionError):
            machine.withdraw(Role.CUSTOMER, job.job_id)

    def test_operator_cannot_withdraw(self, machine, submit):
        job = submit()
        with pytest.raises(InvalidTransitionError):
            machine.withdraw(Role.OPERATOR, job.job_id)


class TestShopCommands:

    def test_rate_edit_does_not_reprice(self, machine, submit):
        job = submit()
        machine.update_rates(Role.OPERATOR, RateTable(bw_ss=5, bw_ds=6, color_ss=20, color_ds=30))
        assert machine.active_job.cost == job.cost
        assert machine.shop.rates.bw_ds == 6

    def test_customer_cannot_edit_rates(self, machine, rates):
        with pytest.raises(InvalidTransitionError):
            machine.update_rates(Role.CUSTOMER, rates)

    def test_pause_keeps_active_job(self, machine, submit):
        job = submit()
        machine.set_paused(Role.OPERATOR, True)
        assert machine.shop.is_paused
        assert machine.active_job == job

    def test_pause_unchanged_is_noop(self, machine):
        version = machine.snapshot().version
        machine.set_paused(Role.OPERATOR, False)
        assert machine.snapshot().version == version

    def test_configure_once(self, shop, rates):
        machine = JobLifecycleMachine(shop.with_changes(is_configured=False, name="", location=""))
        configured = machine.configure_shop(
            Role.OPERATOR, "Print Hub", "Library", printer_count=2, ppm=30, rates=rates
        )
        assert configured.is_configured
        assert configured.printer_count == 2

        with pytest.raises(PreconditionFailedError):
            machine.configure_shop(Role.OPERATOR, "Again", "Library", 1, 20, rates)

    def test_configure_requires_name(self, shop, rates):
        machine = JobLifecycleMachine(shop.with_changes(is_configured=False))
        with pytest.raises(ValidationError):
            machine.configure_shop(Role.OPERATOR, "", "Library", 1, 20, rates)

    def test_apply_location(self, machine):
        result = LocationResult(
            address="Central Library, Campus Road",
            maps_url="https://www.openstreetmap.org/?mlat=1.0&mlon=2.0#map=18/1.0/2.0",
            latitude=1.0,
            longitude=2.0,
        )
        shop = machine.apply_location(Role.OPERATOR, result)
        assert shop.address == result.address
        assert shop.maps_url == result.maps_url


class TestRebind:

    def test_discard_job_for_other_shop(self, machine, submit):
        job = submit()
        discarded = machine.discard_for_rebind("SHOP-ZZZZZZ")
        assert discarded == job
        assert machine.active_job is None
        assert machine.snapshot().history_count == 0

    def test_keep_job_for_same_shop(self, machine, submit, shop):
        job = submit()
        assert machine.discard_for_rebind(shop.shop_id) is None
        assert machine.active_job == job

    def test_no_job(self, machine):
        assert machine.discard_for_rebind("SHOP-ZZZZZZ") is None

    def test_refused_while_payment_commits(self, machine, submit):
        job = submit()
        machine.begin_payment_commit(job.job_id)

        with pytest.raises(PreconditionFailedError):
            machine.discard_for_rebind("SHOP-ZZZZZZ")

        assert machine.active_job == job
        assert machine.is_payment_committing()
        snapshot = machine.complete_payment(job.job_id, succeeded=True)
        assert snapshot.active_job.status is JobStatus.IN_QUEUE


class TestConcurrency:

    def test_concurrent_ready_requests_dispatch_once(self, shop):
        dispatcher = MagicMock()
        machine = JobLifecycleMachine(shop, dispatcher=dispatcher)
        job = machine.submit(Role.CUSTOMER, shop.shop_id, "notes.pdf", 2, False, False)
        machine.complete_payment(job.job_id, succeeded=True)
        dispatcher.reset_mock()

        barrier = threading.Barrier(8)

        def worker():
            barrier.wait()
            machine.advance(Role.OPERATOR, job.job_id, JobStatus.READY)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=5)

        assert dispatcher.dispatch.call_count == 1
