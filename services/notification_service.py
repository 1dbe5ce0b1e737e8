"""
Notification dispatcher for job transitions.

Side effects are looked up in an explicit transition-effect table and run
AFTER the lifecycle machine has committed the new state. Each effect runs
in its own failure boundary: a broken audio backend cannot stop the system
notification, and neither can undo or block the transition.

Effects:
    - ChimeEffect: two-tone "ready" cue (C6 then E6)
    - SystemNotificationEffect: "Order Ready" alert naming the file,
      only when notification permission has been granted

The browser is the real audio/notification device, so the default backends
write into a NotificationOutbox that the customer view polls.

Usage:
    outbox = NotificationOutbox(maxlen=20)
    dispatcher = build_ready_dispatcher(
        audio=OutboxAudioBackend(outbox),
        notifier=OutboxNotificationBackend(outbox),
        permission=lambda: NotificationPermission.GRANTED,
    )
    dispatcher.dispatch(previous_status, committed_job)
"""

from __future__ import annotations

import itertools
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Protocol, Tuple

from core.exceptions import SideEffectError
from logging_config import get_logger
from models.print_job import JobStatus, PrintJob, utc_now


logger = get_logger(__name__)


# =============================================================================
# READY CUE
# =============================================================================

@dataclass(frozen=True)
class Tone:
    """One oscillator note of an audio cue."""

    frequency_hz: float
    start_s: float
    duration_s: float
    waveform: str = "sine"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "frequency_hz": self.frequency_hz,
            "start_s": self.start_s,
            "duration_s": self.duration_s,
            "waveform": self.waveform,
        }


READY_CHIME: Tuple[Tone, ...] = (
    Tone(1046.50, 0.0, 0.4),  # C6
    Tone(1318.51, 0.1, 0.6),  # E6
)
CHIME_PEAK_GAIN = 0.15

READY_TITLE = "Order Ready"
READY_BODY = 'Your document "{file_name}" is ready for pickup!'


class NotificationPermission(Enum):
    """Platform notification permission, as reported by the customer's browser."""

    DEFAULT = "default"
    """Not asked yet."""

    GRANTED = "granted"
    """System notifications may be raised."""

    DENIED = "denied"
    """Refused; only the in-app chime plays."""

    @classmethod
    def parse(cls, value: Any) -> "NotificationPermission":
        try:
            return cls(str(value or "").strip().lower())
        except ValueError:
            return cls.DEFAULT


# =============================================================================
# OUTBOX
# =============================================================================

@dataclass(frozen=True)
class OutboxEntry:
    """One alert waiting for the customer view to play or display it."""

    seq: int
    kind: str
    job_id: str
    payload: Dict[str, Any]
    created_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "seq": self.seq,
            "kind": self.kind,
            "job_id": self.job_id,
            "payload": self.payload,
            "created_at": self.created_at.isoformat(),
        }


class NotificationOutbox:
    """
    Bounded, thread-safe list of delivered alerts.

    Readers pass the last sequence number they saw and get everything newer.
    """

    def __init__(self, maxlen: int = 20):
        self._entries: Deque[OutboxEntry] = deque(maxlen=maxlen)
        self._seq = itertools.count(1)
        self._lock = threading.Lock()

    def put(self, kind: str, job_id: str, payload: Dict[str, Any]) -> OutboxEntry:
        with self._lock:
            entry = OutboxEntry(seq=next(self._seq), kind=kind, job_id=job_id, payload=payload)
            self._entries.append(entry)
            return entry

    def since(self, after_seq: int = 0) -> List[OutboxEntry]:
        with self._lock:
            return [entry for entry in self._entries if entry.seq > after_seq]

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


# =============================================================================
# BACKENDS
# =============================================================================

class AudioBackend(Protocol):
    def play(self, job_id: str, tones: Tuple[Tone, ...], peak_gain: float) -> None: ...


class NotificationBackend(Protocol):
    def notify(self, job_id: str, title: str, body: str) -> None: ...


class OutboxAudioBackend:
    """Queues the cue for the customer's browser to synthesize."""

    def __init__(self, outbox: NotificationOutbox):
        self._outbox = outbox

    def play(self, job_id: str, tones: Tuple[Tone, ...], peak_gain: float) -> None:
        self._outbox.put(
            "chime",
            job_id,
            {"tones": [tone.to_dict() for tone in tones], "peak_gain": peak_gain},
        )


class OutboxNotificationBackend:
    """Queues a system notification for the customer's browser to raise."""

    def __init__(self, outbox: NotificationOutbox):
        self._outbox = outbox

    def notify(self, job_id: str, title: str, body: str) -> None:
        self._outbox.put("notification", job_id, {"title": title, "body": body})


# =============================================================================
# EFFECTS
# =============================================================================

Effect = Callable[[PrintJob], None]


class ChimeEffect:
    """Plays the two-tone ready cue."""

    name = "chime"

    def __init__(self, audio: AudioBackend):
        self._audio = audio

    def __call__(self, job: PrintJob) -> None:
        self._audio.play(job.job_id, READY_CHIME, CHIME_PEAK_GAIN)


class SystemNotificationEffect:
    """Raises "Order Ready" when the platform allows it; silently skips otherwise."""

    name = "system_notification"

    def __init__(self, notifier: NotificationBackend, permission: Callable[[], NotificationPermission]):
        self._notifier = notifier
        self._permission = permission

    def __call__(self, job: PrintJob) -> None:
        if self._permission() is not NotificationPermission.GRANTED:
            logger.debug(f"Notification permission not granted, skipping alert for {job.job_id}")
            return
        self._notifier.notify(job.job_id, READY_TITLE, READY_BODY.format(file_name=job.file_name))


# =============================================================================
# DISPATCHER
# =============================================================================

Transition = Tuple[Optional[JobStatus], JobStatus]


class NotificationDispatcher:
    """
    Runs the effects registered for a committed transition.

    The table is keyed by (from_status, to_status). A transition with no
    entry fires nothing.
    """

    def __init__(self, table: Optional[Dict[Transition, List[Effect]]] = None):
        self._table: Dict[Transition, List[Effect]] = {}
        for transition, effects in (table or {}).items():
            self.register(transition, effects)

    def register(self, transition: Transition, effects: Iterable[Effect]) -> None:
        self._table.setdefault(transition, []).extend(effects)

    def effects_for(self, transition: Transition) -> List[Effect]:
        return list(self._table.get(transition, ()))

    def dispatch(self, previous: Optional[JobStatus], job: PrintJob) -> int:
        """
        Fire every effect for ``previous -> job.status``.

        Returns:
            Number of effects that completed without error
        """
        completed = 0
        for effect in self.effects_for((previous, job.status)):
            name = getattr(effect, "name", getattr(effect, "__name__", repr(effect)))
            try:
                effect(job)
                completed += 1
            except Exception as exc:
                error = SideEffectError(name, str(exc))
                logger.warning(f"{error} (job {job.job_id})", exc_info=True)
        return completed


def build_ready_dispatcher(
    audio: AudioBackend,
    notifier: NotificationBackend,
    permission: Callable[[], NotificationPermission],
) -> NotificationDispatcher:
    """Dispatcher with the chime and system notification on every path into READY."""
    effects: List[Effect] = [ChimeEffect(audio), SystemNotificationEffect(notifier, permission)]
    return NotificationDispatcher({
        (JobStatus.IN_QUEUE, JobStatus.READY): effects,
        (JobStatus.PRINTING, JobStatus.READY): effects,
    })
