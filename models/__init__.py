"""
Data models for PickIT.

This module contains immutable dataclasses for:
- Shop / RateTable: The paired shop and its per-page prices
- PrintJob / JobStatus: The single active job and its lifecycle status
- UserProfile / Role: Onboarding identity and the active view
- StateSnapshot: What the lifecycle machine publishes after each commit

All dataclasses are frozen so a snapshot handed to a view or a worker
thread can never change underneath it.
"""

from .shop import Shop, RateTable, RATE_KEYS
from .print_job import PrintJob, JobStatus
from .profile import Role, UserProfile
from .snapshot import StateSnapshot

__all__ = [
    # Shop models
    "Shop",
    "RateTable",
    "RATE_KEYS",
    # Job models
    "PrintJob",
    "JobStatus",
    # Session models
    "Role",
    "UserProfile",
    # Published state
    "StateSnapshot",
]
