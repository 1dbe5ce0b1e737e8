"""
Published state snapshot.

The lifecycle machine publishes one StateSnapshot after every committed
command. Both role views read the same snapshot; neither holds a copy of
its own.

Thread Safety:
    - StateSnapshot is a frozen dataclass holding frozen records
    - New snapshots replace old ones atomically
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from models.print_job import PrintJob
from models.shop import Shop


@dataclass(frozen=True)
class StateSnapshot:
    """Point-in-time view of the shop, the active job and the archive."""

    version: int
    """Increases by one on every committed change. No-ops keep it."""

    shop: Shop
    """The paired shop."""

    active_job: Optional[PrintJob]
    """The single non-terminal job, if any."""

    history: Tuple[PrintJob, ...]
    """Collected jobs, most recent first."""

    @property
    def history_count(self) -> int:
        return len(self.history)

    @property
    def history_revenue(self) -> float:
        return sum(job.cost for job in self.history)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "shop": self.shop.to_dict(),
            "active_job": self.active_job.to_dict() if self.active_job else None,
            "history": [job.to_dict() for job in self.history],
            "history_count": self.history_count,
            "history_revenue": self.history_revenue,
        }
