"""
Print job data models.

A PrintJob is the customer's single in-flight job. It moves through
JobStatus one step at a time; every step produces a new immutable instance,
so a snapshot handed to a view can never change underneath it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict
from uuid import uuid4


class JobStatus(Enum):
    """
    Status of the active print job.

    Lifecycle:
        PENDING_PAYMENT -> IN_QUEUE -> PRINTING -> READY -> COLLECTED
        (IN_QUEUE may also go straight to READY)
    """

    PENDING_PAYMENT = "PENDING_PAYMENT"
    """Submitted and priced, waiting for the customer to pay."""

    IN_QUEUE = "IN_QUEUE"
    """Paid, waiting for the operator to start printing."""

    PRINTING = "PRINTING"
    """Operator is printing the job."""

    READY = "READY"
    """Printed and waiting for pickup."""

    COLLECTED = "COLLECTED"
    """Picked up. Terminal; the job now lives in the history archive."""

    @property
    def is_terminal(self) -> bool:
        return self is JobStatus.COLLECTED

    @property
    def label(self) -> str:
        """Human-readable status ("IN QUEUE")."""
        return self.value.replace("_", " ")


def new_job_id() -> str:
    """Job identifiers are shown on receipts as JOB-XXXXXXXX."""
    return f"JOB-{uuid4().hex[:8].upper()}"


@dataclass(frozen=True)
class PrintJob:
    """
    A customer's print job.

    The cost is fixed at submission and never recomputed, even if the shop
    edits its rate table while the job is in flight.
    """

    job_id: str
    """Unique job identifier."""

    shop_id: str
    """Shop the job was submitted to."""

    file_name: str
    """Uploaded document name."""

    page_count: int
    """Pages in the document."""

    is_color: bool
    """Color (True) or monochrome (False)."""

    is_double_sided: bool
    """Duplex (True) or single-sided (False)."""

    status: JobStatus
    """Current lifecycle status."""

    timestamp: datetime
    """Baseline for the ready estimate. Reset when the job enters the queue."""

    expected_minutes: int
    """Minutes from ``timestamp`` until the job is expected to be ready."""

    cost: float
    """Price frozen at submission."""

    @property
    def estimated_ready_at(self) -> datetime:
        """Derived on every read, never stored."""
        return self.timestamp + timedelta(minutes=self.expected_minutes)

    @property
    def is_active(self) -> bool:
        return not self.status.is_terminal

    def advance(self, status: JobStatus) -> "PrintJob":
        """Return a copy in ``status``; all other fields unchanged."""
        return replace(self, status=status)

    def requeue(self, now: datetime, expected_minutes: int) -> "PrintJob":
        """Return a copy in IN_QUEUE with a fresh ready-time baseline."""
        return replace(
            self,
            status=JobStatus.IN_QUEUE,
            timestamp=now,
            expected_minutes=expected_minutes,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "shop_id": self.shop_id,
            "file_name": self.file_name,
            "page_count": self.page_count,
            "is_color": self.is_color,
            "is_double_sided": self.is_double_sided,
            "status": self.status.value,
            "status_label": self.status.label,
            "timestamp": self.timestamp.isoformat(),
            "expected_minutes": self.expected_minutes,
            "estimated_ready_at": self.estimated_ready_at.isoformat(),
            "cost": self.cost,
        }


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
