"""
Services layer for PickIT.

This module contains the business logic services:
- JobLifecycleMachine: Single owner of the shop, active job and archive
- PaymentService: Payment threads that feed results to the machine
- HandshakeService: Shop pairing (scan, confirm, bind)
- NotificationDispatcher: Ready alerts fired after a committed transition
- HistoryArchive: Collected jobs, most recent first
- SessionStore: Persisted role, profile and shop binding

Thread Model:
    Main Thread (Flask)
    ├── PaymentService threads (one per payment)
    └── HandshakeService timer (confirmation hold)

Every thread changes state only through the lifecycle machine.
"""

from .history import HistoryArchive
from .session_store import SessionStore
from .notification_service import NotificationDispatcher, NotificationOutbox
from .job_service import JobLifecycleMachine
from .payment_service import PaymentService
from .handshake_service import HandshakeService

__all__ = [
    "HistoryArchive",
    "SessionStore",
    "NotificationDispatcher",
    "NotificationOutbox",
    "JobLifecycleMachine",
    "PaymentService",
    "HandshakeService",
]
