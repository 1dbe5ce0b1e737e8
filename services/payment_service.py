"""
Payment service with thread-per-payment architecture.

Payment is a suspending operation: the customer starts it, the view polls
its phase, and when it finishes the payment thread re-enters the lifecycle
machine exactly once with the result. The machine never knows how the
payment was made or how long it took.

Phases:
    PROCESSING -> VERIFYING -> SUCCESS -> COMPLETED
                            \\-> FAILED
    PROCESSING/VERIFYING -> CANCELLED   (customer closed the payment sheet)

Cancellation:
    - Allowed while PROCESSING or VERIFYING
    - Refused once SUCCESS is reached: the commit has started and always
      runs to completion

Thread Safety:
    - One daemon thread per payment, named "Pay-<job_id>"
    - PaymentAttempt records are immutable; the service swaps them under
      its own lock
    - The service lock is always taken before the machine's lock

Usage:
    payments = PaymentService(machine, SimulatedPaymentGateway(1.5, 2.0))
    payments.start(job_id, app_id="gpay")
    payments.status(job_id)      # poll
    payments.cancel(job_id)      # sheet closed
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from core.exceptions import (
    InvalidTransitionError,
    PaymentDeclinedError,
    PreconditionFailedError,
)
from logging_config import get_logger, get_job_logger, set_thread_name
from models.print_job import JobStatus, PrintJob, utc_now
from services.job_service import JobLifecycleMachine


# Module logger
logger = get_logger(__name__)


class PaymentPhase(Enum):
    """
    Phase of one payment attempt.

    Lifecycle:
        PROCESSING -> VERIFYING -> SUCCESS -> COMPLETED
        (FAILED or CANCELLED end an attempt early)
    """

    PROCESSING = "PROCESSING"
    """Handed off to the payment app."""

    VERIFYING = "VERIFYING"
    """Waiting for the gateway to confirm."""

    SUCCESS = "SUCCESS"
    """Confirmed; the commit into the queue has started."""

    COMPLETED = "COMPLETED"
    """Job is in the queue."""

    FAILED = "FAILED"
    """Gateway reported failure; the job stays unpaid."""

    CANCELLED = "CANCELLED"
    """Customer closed the payment sheet before confirmation."""

    @property
    def is_finished(self) -> bool:
        return self in (PaymentPhase.COMPLETED, PaymentPhase.FAILED, PaymentPhase.CANCELLED)

    @property
    def is_cancellable(self) -> bool:
        return self in (PaymentPhase.PROCESSING, PaymentPhase.VERIFYING)


@dataclass(frozen=True)
class PaymentAttempt:
    """Status of one payment, as shown to the customer."""

    job_id: str
    """Job being paid for."""

    app_id: str
    """Payment app the customer picked."""

    phase: PaymentPhase
    """Current phase."""

    amount: float
    """Amount charged (the job's frozen cost)."""

    started_at: datetime = field(default_factory=utc_now)
    """When the attempt began."""

    message: str = ""
    """Failure reason, if any."""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "app_id": self.app_id,
            "phase": self.phase.value,
            "amount": self.amount,
            "started_at": self.started_at.isoformat(),
            "finished": self.phase.is_finished,
            "cancellable": self.phase.is_cancellable,
            "message": self.message,
        }


class PaymentGateway(Protocol):
    def authorize(
        self,
        job: PrintJob,
        app_id: str,
        cancel_event: threading.Event,
        on_phase: Callable[[PaymentPhase], None],
    ) -> bool:
        """Return True when the payment went through. Must honour cancel_event."""
        ...


class SimulatedPaymentGateway:
    """
    Timed stand-in for a real gateway.

    Waits in PROCESSING, then in VERIFYING, then reports ``succeed``.
    Both waits end early when the attempt is cancelled.
    """

    def __init__(self, processing_seconds: float = 1.5, verifying_seconds: float = 2.0,
                 succeed: bool = True):
        self.processing_seconds = processing_seconds
        self.verifying_seconds = verifying_seconds
        self.succeed = succeed

    def authorize(self, job, app_id, cancel_event, on_phase) -> bool:
        on_phase(PaymentPhase.PROCESSING)
        if cancel_event.wait(self.processing_seconds):
            return False
        on_phase(PaymentPhase.VERIFYING)
        if cancel_event.wait(self.verifying_seconds):
            return False
        return self.succeed


class PaymentService:
    """
    Runs payments in background threads and feeds the result to the machine.

    Attributes:
        confirm_seconds: Hold on SUCCESS before the job enters the queue
    """

    def __init__(
        self,
        machine: JobLifecycleMachine,
        gateway: Optional[PaymentGateway] = None,
        confirm_seconds: float = 2.5,
    ):
        self._machine = machine
        self._gateway = gateway or SimulatedPaymentGateway()
        self.confirm_seconds = confirm_seconds

        self._attempts: Dict[str, PaymentAttempt] = {}
        self._cancel_events: Dict[str, threading.Event] = {}
        self._threads: Dict[str, threading.Thread] = {}
        self._lock = threading.Lock()

        logger.info("PaymentService initialized")

    def start(self, job_id: str, app_id: str = "upi") -> PaymentAttempt:
        """
        Begin paying for the active job.

        Raises:
            InvalidTransitionError: Job is not the active unpaid job
            PreconditionFailedError: A payment for this job is already running
        """
        job = self._machine.active_job
        if job is None or job.job_id != job_id:
            raise InvalidTransitionError(f"Job {job_id} is not the active job", job_id=job_id)
        if job.status is not JobStatus.PENDING_PAYMENT:
            raise InvalidTransitionError(
                "Job is not awaiting payment",
                job_id=job_id,
                current=job.status.value,
                requested=JobStatus.IN_QUEUE.value,
            )

        with self._lock:
            current = self._attempts.get(job_id)
            if current is not None and not current.phase.is_finished:
                raise PreconditionFailedError(
                    "Payment already in progress", {"job_id": job_id, "phase": current.phase.value}
                )

            attempt = PaymentAttempt(
                job_id=job_id, app_id=app_id, phase=PaymentPhase.PROCESSING, amount=job.cost
            )
            cancel_event = threading.Event()
            thread = threading.Thread(
                target=self._payment_thread_main,
                args=(job, app_id, cancel_event),
                name=f"Pay-{job_id}",
                daemon=True,
            )
            self._prune_finished_locked(job_id)
            self._attempts[job_id] = attempt
            self._cancel_events[job_id] = cancel_event
            self._threads[job_id] = thread

        logger.info(f"Starting payment of {job.cost} for {job_id} via {app_id}")
        thread.start()
        return attempt

    def status(self, job_id: str) -> Optional[PaymentAttempt]:
        with self._lock:
            return self._attempts.get(job_id)

    def cancel(self, job_id: str) -> PaymentAttempt:
        """
        Abandon a payment that has not been confirmed yet.

        Raises:
            PreconditionFailedError: No attempt, or the commit has started
        """
        with self._lock:
            attempt = self._attempts.get(job_id)
            if attempt is None:
                raise PreconditionFailedError("No payment in progress", {"job_id": job_id})
            if attempt.phase.is_finished:
                return attempt
            if not attempt.phase.is_cancellable:
                raise PreconditionFailedError(
                    "Payment is already being committed",
                    {"job_id": job_id, "phase": attempt.phase.value},
                )
            self._cancel_events[job_id].set()
            attempt = self._set_phase_locked(job_id, PaymentPhase.CANCELLED)

        logger.info(f"Payment for {job_id} cancelled")
        return attempt

    def wait(self, job_id: str, timeout: Optional[float] = None) -> Optional[PaymentAttempt]:
        """Block until the payment thread for ``job_id`` exits."""
        with self._lock:
            thread = self._threads.get(job_id)
        if thread is not None:
            thread.join(timeout=timeout)
        return self.status(job_id)

    def shutdown(self, timeout_per_thread: float = 5.0) -> None:
        """Cancel what can be cancelled and wait for every payment thread."""
        with self._lock:
            active = list(self._threads.items())
            for job_id, attempt in self._attempts.items():
                if attempt.phase.is_cancellable:
                    self._cancel_events[job_id].set()

        for job_id, thread in active:
            if thread.is_alive():
                thread.join(timeout=timeout_per_thread)
                if thread.is_alive():
                    logger.warning(f"Payment thread {job_id} did not finish in time")

        logger.info("Payment service shutdown complete")

    # =========================================================================
    # THREAD MAIN
    # =========================================================================

    def _payment_thread_main(self, job: PrintJob, app_id: str, cancel_event: threading.Event) -> None:
        set_thread_name(f"Pay-{job.job_id}")
        job_logger = get_job_logger(job.job_id)

        try:
            succeeded = self._gateway.authorize(
                job, app_id, cancel_event, lambda phase: self._gateway_phase(job.job_id, phase)
            )
        except Exception as e:
            job_logger.error(f"Payment gateway error: {e}")
            succeeded = False

        with self._lock:
            if cancel_event.is_set():
                job_logger.info("Payment thread exiting after cancel")
                self._release_thread_locked(job.job_id)
                return

            if not succeeded:
                self._finish_failed_locked(job.job_id, job_logger)
                return

            try:
                self._machine.begin_payment_commit(job.job_id)
            except InvalidTransitionError as e:
                job_logger.warning(f"Payment confirmed but job can no longer be paid: {e}")
                self._set_phase_locked(job.job_id, PaymentPhase.FAILED, str(e.message))
                self._release_thread_locked(job.job_id)
                return
            self._set_phase_locked(job.job_id, PaymentPhase.SUCCESS)

        # Commit: not cancellable from here on
        if self.confirm_seconds > 0:
            time.sleep(self.confirm_seconds)
        try:
            self._machine.complete_payment(job.job_id, succeeded=True)
            phase, message = PaymentPhase.COMPLETED, ""
            job_logger.info("Payment committed; job is in the queue")
        except InvalidTransitionError as e:
            phase, message = PaymentPhase.FAILED, e.message
            job_logger.error(f"Payment commit found no job to queue: {e}")

        with self._lock:
            self._set_phase_locked(job.job_id, phase, message)
            self._release_thread_locked(job.job_id)

    def _finish_failed_locked(self, job_id: str, job_logger) -> None:
        message = "Payment was not completed"
        try:
            self._machine.complete_payment(job_id, succeeded=False)
        except PaymentDeclinedError as e:
            message = e.message
        except InvalidTransitionError as e:
            message = e.message
        job_logger.info(f"Payment failed: {message}")
        self._set_phase_locked(job_id, PaymentPhase.FAILED, message)
        self._release_thread_locked(job_id)

    def _release_thread_locked(self, job_id: str) -> None:
        # A retry may already have registered a newer thread for this job
        if self._threads.get(job_id) is threading.current_thread():
            del self._threads[job_id]

    def _prune_finished_locked(self, keep_job_id: str) -> None:
        stale = [job_id for job_id, attempt in self._attempts.items()
                 if job_id != keep_job_id and attempt.phase.is_finished
                 and job_id not in self._threads]
        for job_id in stale:
            del self._attempts[job_id]
            self._cancel_events.pop(job_id, None)
        if stale:
            logger.debug(f"Pruned {len(stale)} finished payment attempt(s)")

    def _gateway_phase(self, job_id: str, phase: PaymentPhase) -> None:
        with self._lock:
            attempt = self._attempts.get(job_id)
            if attempt is None or not attempt.phase.is_cancellable:
                return
            self._set_phase_locked(job_id, phase)

    def _set_phase_locked(self, job_id: str, phase: PaymentPhase, message: str = "") -> PaymentAttempt:
        attempt = replace(self._attempts[job_id], phase=phase, message=message)
        self._attempts[job_id] = attempt
        return attempt
