"""Ready-time estimates for print jobs."""

from __future__ import annotations

import math

from config import Config
from models.shop import Shop


class ReadyTimeEstimator:
    """Produces the expected-minutes offset stored on a job."""

    def __init__(
        self,
        submitted_minutes: int | None = None,
        handling_minutes: int | None = None,
    ) -> None:
        self.submitted_minutes = (
            Config.SUBMITTED_EXPECTED_MINUTES if submitted_minutes is None else submitted_minutes
        )
        self.handling_minutes = (
            Config.QUEUE_HANDLING_MINUTES if handling_minutes is None else handling_minutes
        )

    @staticmethod
    def sheets_for(page_count: int, is_double_sided: bool) -> int:
        if is_double_sided:
            return math.ceil(page_count / 2)
        return page_count

    def for_submission(self) -> int:
        """Flat estimate shown before payment; the queue is not known yet."""
        return self.submitted_minutes

    def for_queue(self, shop: Shop, page_count: int, is_double_sided: bool) -> int:
        """
        Estimate once the job is paid and queued.

        minutes = handling + ceil(sheets / (ppm * printers))
        """
        sheets = self.sheets_for(page_count, is_double_sided)
        throughput = shop.ppm * shop.printer_count
        print_minutes = math.ceil(sheets / throughput) if sheets else 0
        return self.handling_minutes + print_minutes
