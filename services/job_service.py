"""
Job lifecycle machine.

Owns the shop record, the single active job and the history archive, and is
the ONLY place any of them change. Role views send commands and read the
published StateSnapshot; they never write fields directly.

Transition table:
    (none)          -> PENDING_PAYMENT  customer  submit(); cost frozen
    PENDING_PAYMENT -> IN_QUEUE         customer  complete_payment(); ETA restarts
    IN_QUEUE        -> PRINTING         operator  advance()
    IN_QUEUE        -> READY            operator  advance(); ready alerts fire
    PRINTING        -> READY            operator  advance(); ready alerts fire
    READY           -> COLLECTED        operator  advance(); archived, slot cleared

Rules:
    - Anything outside the table raises InvalidTransitionError, state unchanged
    - Requesting the current status is a no-op: no effects, no new version
    - Every command applies fully or not at all

Thread Safety:
    - All commands run under one RLock (single mutation point)
    - Snapshots are immutable and replaced atomically
    - Transition effects run after the commit, outside the lock; only the
      thread that committed a transition dispatches its effects, so each
      transition fires its effects exactly once

Usage:
    machine = JobLifecycleMachine(shop, dispatcher=dispatcher)

    job = machine.submit(Role.CUSTOMER, bound_shop_id, "notes.pdf", 15,
                         is_color=False, is_double_sided=True)
    machine.complete_payment(job.job_id, succeeded=True)
    machine.advance(Role.OPERATOR, job.job_id, JobStatus.READY)

    snapshot = machine.snapshot()
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, Optional, Set, Tuple

from core.exceptions import (
    InvalidTransitionError,
    PaymentDeclinedError,
    PreconditionFailedError,
    ShopUnavailableError,
    ValidationError,
)
from logging_config import get_logger, get_job_logger
from models.print_job import JobStatus, PrintJob, new_job_id, utc_now
from models.profile import Role
from models.shop import RateTable, Shop
from models.snapshot import StateSnapshot
from modules import pricing
from modules.estimator import ReadyTimeEstimator
from modules.location import LocationResult
from services.history import HistoryArchive
from services.notification_service import NotificationDispatcher


# Module logger
logger = get_logger(__name__)


# Allowed transitions and the role that may request each.
# The payment edge is only reachable through complete_payment().
TRANSITIONS: Dict[Tuple[JobStatus, JobStatus], Role] = {
    (JobStatus.PENDING_PAYMENT, JobStatus.IN_QUEUE): Role.CUSTOMER,
    (JobStatus.IN_QUEUE, JobStatus.PRINTING): Role.OPERATOR,
    (JobStatus.IN_QUEUE, JobStatus.READY): Role.OPERATOR,
    (JobStatus.PRINTING, JobStatus.READY): Role.OPERATOR,
    (JobStatus.READY, JobStatus.COLLECTED): Role.OPERATOR,
}

PAYMENT_TRANSITION = (JobStatus.PENDING_PAYMENT, JobStatus.IN_QUEUE)


def is_valid_transition(current: JobStatus, requested: JobStatus) -> bool:
    """Return True if current -> requested is in the table."""
    return (current, requested) in TRANSITIONS


class JobLifecycleMachine:
    """
    Single authoritative store for the shop, the active job and the archive.

    Attributes:
        archive: HistoryArchive of collected jobs
        estimator: ReadyTimeEstimator used for expected minutes
    """

    def __init__(
        self,
        shop: Shop,
        dispatcher: Optional[NotificationDispatcher] = None,
        archive: Optional[HistoryArchive] = None,
        estimator: Optional[ReadyTimeEstimator] = None,
        clock: Callable = utc_now,
    ):
        self._lock = threading.RLock()
        self._shop = shop
        self._active: Optional[PrintJob] = None
        self._dispatcher = dispatcher or NotificationDispatcher()
        self.archive = archive or HistoryArchive()
        self.estimator = estimator or ReadyTimeEstimator()
        self._clock = clock

        # Jobs whose payment commit has started and can no longer be withdrawn
        self._committing_payments: Set[str] = set()

        self._version = 0
        self._snapshot = self._build_snapshot()

        logger.info(f"Lifecycle machine ready for shop {shop.shop_id}")

    # =========================================================================
    # READ SIDE
    # =========================================================================

    def snapshot(self) -> StateSnapshot:
        """Current published state. Safe to call from any thread."""
        return self._snapshot

    @property
    def shop(self) -> Shop:
        return self._snapshot.shop

    @property
    def active_job(self) -> Optional[PrintJob]:
        return self._snapshot.active_job

    def is_payment_committing(self, job_id: Optional[str] = None) -> bool:
        with self._lock:
            if job_id is None:
                return bool(self._committing_payments)
            return job_id in self._committing_payments

    # =========================================================================
    # CUSTOMER COMMANDS
    # =========================================================================

    def submit(
        self,
        role: Role,
        shop_id: Optional[str],
        file_name: str,
        page_count: int,
        is_color: bool,
        is_double_sided: bool,
    ) -> PrintJob:
        """
        Create the active job in PENDING_PAYMENT with its cost frozen.

        Args:
            role: Caller role (must be customer)
            shop_id: Shop the customer session is bound to (None if unbound)
            file_name: Document name shown to both roles
            page_count: Pages to print (>= 1)
            is_color: Color or monochrome
            is_double_sided: Duplex or single-sided

        Returns:
            The new job

        Raises:
            InvalidTransitionError: Caller is not a customer
            ShopUnavailableError: Not bound, bound elsewhere, unconfigured or paused
            PreconditionFailedError: Another job is still active
            ValidationError: Bad file name or page count
        """
        self._require_role(role, Role.CUSTOMER, "Submitting a job")
        if not file_name:
            raise ValidationError("file_name", "A file is required")
        if isinstance(page_count, bool) or not isinstance(page_count, int) or page_count < 1:
            raise ValidationError("page_count", "Page count must be a positive integer")

        with self._lock:
            shop = self._shop
            if not shop_id:
                raise ShopUnavailableError(shop.shop_id, "customer is not connected to a shop")
            if shop_id != shop.shop_id:
                raise ShopUnavailableError(shop_id, "unknown shop")
            if not shop.is_configured:
                raise ShopUnavailableError(shop.shop_id, "shop setup is not finished")
            if shop.is_paused:
                raise ShopUnavailableError(shop.shop_id, "shop has paused requests")
            if self._active is not None:
                raise PreconditionFailedError(
                    "Another job is still in progress",
                    {"active_job_id": self._active.job_id, "status": self._active.status.value},
                )

            job = PrintJob(
                job_id=new_job_id(),
                shop_id=shop.shop_id,
                file_name=file_name,
                page_count=page_count,
                is_color=bool(is_color),
                is_double_sided=bool(is_double_sided),
                status=JobStatus.PENDING_PAYMENT,
                timestamp=self._clock(),
                expected_minutes=self.estimator.for_submission(),
                cost=pricing.cost(shop.rates, bool(is_color), bool(is_double_sided), page_count),
            )
            self._active = job
            self._publish()

        get_job_logger(job.job_id).info(
            f"Submitted '{job.file_name}' ({job.page_count} pages, "
            f"{'color' if job.is_color else 'mono'}, "
            f"{'double' if job.is_double_sided else 'single'}-sided) cost={job.cost}"
        )
        return job

    def begin_payment_commit(self, job_id: str) -> None:
        """
        Mark the job's payment as committing.

        From here on the job cannot be withdrawn; the payment completion
        that follows always runs.

        Raises:
            InvalidTransitionError: Job is not the active job awaiting payment
        """
        with self._lock:
            job = self._require_active(job_id, JobStatus.IN_QUEUE)
            if job.status is not JobStatus.PENDING_PAYMENT:
                raise InvalidTransitionError(
                    "Job is not awaiting payment",
                    job_id=job_id,
                    current=job.status.value,
                    requested=JobStatus.IN_QUEUE.value,
                )
            self._committing_payments.add(job_id)
        logger.debug(f"Payment commit started for {job_id}")

    def complete_payment(self, job_id: str, succeeded: bool) -> StateSnapshot:
        """
        Consume the payment completion event.

        On success moves the job into the queue and restarts the ready-time
        baseline. A repeated success for a job already past payment is a
        no-op.

        Raises:
            PaymentDeclinedError: The payment did not succeed (state unchanged)
            InvalidTransitionError: Job is not the active job
        """
        with self._lock:
            self._committing_payments.discard(job_id)
            job = self._require_active(job_id, JobStatus.IN_QUEUE)

            if not succeeded:
                logger.info(f"Payment for {job_id} did not succeed")
                raise PaymentDeclinedError(job_id)

            if job.status is not JobStatus.PENDING_PAYMENT:
                if job.status is JobStatus.IN_QUEUE:
                    return self._snapshot
                raise InvalidTransitionError(
                    f"Cannot move job from {job.status.value} to {JobStatus.IN_QUEUE.value}",
                    job_id=job_id,
                    current=job.status.value,
                    requested=JobStatus.IN_QUEUE.value,
                )

            queued = job.requeue(
                now=self._clock(),
                expected_minutes=self.estimator.for_queue(
                    self._shop, job.page_count, job.is_double_sided
                ),
            )
            self._active = queued
            snapshot = self._publish()

        get_job_logger(job_id).info(
            f"{JobStatus.PENDING_PAYMENT.value} -> {JobStatus.IN_QUEUE.value} "
            f"(ready in {queued.expected_minutes} min)"
        )
        self._dispatch(JobStatus.PENDING_PAYMENT, queued)
        return snapshot

    def withdraw(self, role: Role, job_id: str) -> StateSnapshot:
        """
        Drop an unpaid job so the customer can change options.

        Raises:
            InvalidTransitionError: Not a customer, not the active job, already
                paid, or payment commit already started
        """
        self._require_role(role, Role.CUSTOMER, "Withdrawing a job")
        with self._lock:
            job = self._require_active(job_id, None)
            if job.status is not JobStatus.PENDING_PAYMENT:
                raise InvalidTransitionError(
                    "Only unpaid jobs can be withdrawn",
                    job_id=job_id,
                    current=job.status.value,
                )
            if job_id in self._committing_payments:
                raise InvalidTransitionError(
                    "Payment is already being committed",
                    job_id=job_id,
                    current=job.status.value,
                )
            self._active = None
            snapshot = self._publish()

        get_job_logger(job_id).info("Withdrawn before payment")
        return snapshot

    # =========================================================================
    # OPERATOR COMMANDS
    # =========================================================================

    def advance(self, role: Role, job_id: str, status: JobStatus) -> StateSnapshot:
        """
        Move the active job to ``status``.

        Args:
            role: Caller role
            job_id: Must be the active job
            status: Requested status

        Returns:
            The snapshot after the command (unchanged for a no-op)

        Raises:
            InvalidTransitionError: Pair not in the table, wrong role, or not
                the active job
        """
        with self._lock:
            job = self._require_active(job_id, status)
            current = job.status

            if status is current:
                logger.debug(f"{job_id} already {current.value}; nothing to do")
                return self._snapshot

            required = TRANSITIONS.get((current, status))
            if required is None:
                raise InvalidTransitionError(
                    f"Cannot move job from {current.value} to {status.value}",
                    job_id=job_id,
                    current=current.value,
                    requested=status.value,
                )
            if (current, status) == PAYMENT_TRANSITION:
                raise InvalidTransitionError(
                    "Jobs enter the queue only through payment completion",
                    job_id=job_id,
                    current=current.value,
                    requested=status.value,
                )
            if role is not required:
                raise InvalidTransitionError(
                    f"{current.value} -> {status.value} requires the {required.value} role",
                    job_id=job_id,
                    current=current.value,
                    requested=status.value,
                )

            updated = job.advance(status)
            if status is JobStatus.COLLECTED:
                self.archive.append(updated)
                self._active = None
            else:
                self._active = updated
            snapshot = self._publish()

        get_job_logger(job_id).info(f"{current.value} -> {status.value}")
        self._dispatch(current, updated)
        return snapshot

    def configure_shop(
        self,
        role: Role,
        name: str,
        location: str,
        printer_count: int,
        ppm: int,
        rates: RateTable,
    ) -> Shop:
        """
        Finish the one-time shop setup.

        Raises:
            PreconditionFailedError: Shop is already configured
            ValidationError: Missing name/location or out-of-range values
        """
        self._require_role(role, Role.OPERATOR, "Shop setup")
        if not name:
            raise ValidationError("name", "Shop name is required")
        if not location:
            raise ValidationError("location", "Shop location is required")

        with self._lock:
            if self._shop.is_configured:
                raise PreconditionFailedError(
                    "Shop is already configured", {"shop_id": self._shop.shop_id}
                )
            self._shop = self._shop.with_changes(
                name=name,
                location=location,
                printer_count=printer_count,
                ppm=ppm,
                rates=rates,
                is_configured=True,
            )
            self._publish()
            shop = self._shop

        logger.info(f"Shop {shop.shop_id} configured as '{shop.name}' at '{shop.location}'")
        return shop

    def update_rates(self, role: Role, rates: RateTable) -> Shop:
        """Replace the rate table. Jobs already submitted keep their cost."""
        self._require_role(role, Role.OPERATOR, "Editing rates")
        with self._lock:
            self._shop = self._shop.with_changes(rates=rates)
            self._publish()
            shop = self._shop
        logger.info(f"Rates updated: {rates.to_dict()}")
        return shop

    def set_paused(self, role: Role, paused: bool) -> Shop:
        """Pause or resume new submissions. The active job is unaffected."""
        self._require_role(role, Role.OPERATOR, "Pausing the shop")
        with self._lock:
            if self._shop.is_paused == bool(paused):
                return self._shop
            self._shop = self._shop.with_changes(is_paused=bool(paused))
            self._publish()
            shop = self._shop
        logger.info(f"Shop {shop.shop_id} {'paused' if shop.is_paused else 'accepting jobs'}")
        return shop

    def apply_location(self, role: Role, result: LocationResult) -> Shop:
        """Store a resolved address and map link on the shop."""
        self._require_role(role, Role.OPERATOR, "Updating the shop location")
        with self._lock:
            self._shop = self._shop.with_changes(address=result.address, maps_url=result.maps_url)
            self._publish()
            return self._shop

    # =========================================================================
    # PAIRING SUPPORT
    # =========================================================================

    def discard_for_rebind(self, new_shop_id: str) -> Optional[PrintJob]:
        """
        Drop the active job if it belongs to a shop other than ``new_shop_id``.

        Used when the customer pairs with another shop. The job is not
        archived.

        Returns:
            The discarded job, or None

        Raises:
            PreconditionFailedError: The job's payment is being committed
        """
        with self._lock:
            job = self._active
            if job is None or job.shop_id == new_shop_id:
                return None
            if job.job_id in self._committing_payments:
                raise PreconditionFailedError(
                    "Cannot change shop while a payment is being committed",
                    {"job_id": job.job_id, "shop_id": job.shop_id},
                )
            self._active = None
            self._publish()
        get_job_logger(job.job_id).warning(f"Discarded in {job.status.value} after re-pairing")
        return job

    # =========================================================================
    # INTERNALS
    # =========================================================================

    @staticmethod
    def _require_role(role: Role, required: Role, action: str) -> None:
        if role is not required:
            raise InvalidTransitionError(f"{action} requires the {required.value} role")

    def _require_active(self, job_id: str, requested: Optional[JobStatus]) -> PrintJob:
        job = self._active
        if job is None or job.job_id != job_id:
            raise InvalidTransitionError(
                f"Job {job_id} is not the active job",
                job_id=job_id,
                requested=requested.value if requested else None,
            )
        return job

    def _build_snapshot(self) -> StateSnapshot:
        return StateSnapshot(
            version=self._version,
            shop=self._shop,
            active_job=self._active,
            history=self.archive.entries(),
        )

    def _publish(self) -> StateSnapshot:
        self._version += 1
        self._snapshot = self._build_snapshot()
        return self._snapshot

    def _dispatch(self, previous: JobStatus, job: PrintJob) -> None:
        try:
            self._dispatcher.dispatch(previous, job)
        except Exception:
            # The commit has already happened; effects never undo it
            logger.exception(f"Effect dispatch failed for {job.job_id}")
