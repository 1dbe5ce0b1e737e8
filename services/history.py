"""
Archive of collected jobs.

Append-only and most-recent-first. Aggregates are folded over the entries
on every call, so they can never drift from the list.
"""

from __future__ import annotations

from collections import deque
from typing import Deque, Iterator, Tuple

from models.print_job import JobStatus, PrintJob


class HistoryArchive:
    """
    Collected jobs, newest first.

    The only mutation is append(). The lifecycle machine appends under its
    own lock; readers take entries() which returns an immutable tuple.
    """

    def __init__(self) -> None:
        self._entries: Deque[PrintJob] = deque()

    def append(self, job: PrintJob) -> None:
        """
        Record a collected job at the front of the archive.

        Raises:
            ValueError: If the job has not reached COLLECTED
        """
        if job.status is not JobStatus.COLLECTED:
            raise ValueError(f"Only collected jobs are archived, got {job.status.value}")
        self._entries.appendleft(job)

    def entries(self) -> Tuple[PrintJob, ...]:
        return tuple(self._entries)

    def count(self) -> int:
        return len(self._entries)

    def total_cost(self) -> float:
        return sum(job.cost for job in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[PrintJob]:
        return iter(tuple(self._entries))
