"""
Shop pairing handshake.

Binds the customer session to one shop by scanning the shop's code.

States:
    IDLE -> AWAITING_PERMISSION -> SCANNING -> CONFIRMING -> BOUND
    AWAITING_PERMISSION | SCANNING -> DENIED -> (retry) AWAITING_PERMISSION

The camera decoder runs in the customer's browser and posts one candidate
string per decoded frame. The first candidate holding a shop identifier
wins; everything else is ignored. After a match the decoder is stopped, the
view shows a short confirmation, and then the binding is committed and
persisted. A commit cannot be cancelled once the match is accepted.

Thread Safety:
    - All state changes happen under the service lock
    - The confirmation hold runs on a threading.Timer named "Pair-<shop>"
    - Lock order: handshake lock, then the machine's lock
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from core.exceptions import PreconditionFailedError
from logging_config import get_logger, set_thread_name
from modules.shop_id import extract_shop_id, is_shop_id
from services.job_service import JobLifecycleMachine
from services.session_store import CONNECTED_KEY, SHOP_ID_KEY, SessionStore


# Module logger
logger = get_logger(__name__)


class HandshakeState(Enum):
    """Pairing progress for the customer session."""

    IDLE = "IDLE"
    """Not paired, not scanning."""

    AWAITING_PERMISSION = "AWAITING_PERMISSION"
    """Asked the device for camera access."""

    SCANNING = "SCANNING"
    """Decoder is running; frames are being checked."""

    CONFIRMING = "CONFIRMING"
    """A shop code matched; showing confirmation before committing."""

    BOUND = "BOUND"
    """Session is paired with a shop."""

    DENIED = "DENIED"
    """Camera unavailable or refused; the customer may retry."""


class DecoderControl(Protocol):
    def start(self) -> None: ...

    def stop(self) -> None: ...


class RemoteDecoder:
    """
    Tracks whether the browser-side decoder should be running.

    The customer view reads ``running`` from the pairing state and starts or
    stops its camera to match.
    """

    def __init__(self) -> None:
        self.running = False

    def start(self) -> None:
        self.running = True

    def stop(self) -> None:
        self.running = False


@dataclass(frozen=True)
class HandshakeStatus:
    """Read-only view of the handshake for the customer view."""

    state: HandshakeState
    bound_shop_id: Optional[str]
    pending_shop_id: Optional[str]
    decoder_running: bool
    message: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "bound_shop_id": self.bound_shop_id,
            "pending_shop_id": self.pending_shop_id,
            "decoder_running": self.decoder_running,
            "message": self.message,
        }


class HandshakeService:
    """
    Pairing state machine for the customer session.

    Attributes:
        confirm_seconds: Confirmation hold between match and commit
    """

    def __init__(
        self,
        machine: JobLifecycleMachine,
        store: SessionStore,
        confirm_seconds: float = 2.0,
        decoder: Optional[DecoderControl] = None,
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self._machine = machine
        self._store = store
        self.confirm_seconds = confirm_seconds
        self._decoder = decoder or RemoteDecoder()
        self._timer_factory = timer_factory

        self._lock = threading.RLock()
        self._state = HandshakeState.IDLE
        self._bound_shop_id: Optional[str] = None
        self._pending_shop_id: Optional[str] = None
        self._message = ""
        self._timer: Optional[threading.Timer] = None

        self._restore()

    # =========================================================================
    # READ SIDE
    # =========================================================================

    @property
    def state(self) -> HandshakeState:
        return self._state

    @property
    def bound_shop_id(self) -> Optional[str]:
        return self._bound_shop_id

    def status(self) -> HandshakeStatus:
        with self._lock:
            return HandshakeStatus(
                state=self._state,
                bound_shop_id=self._bound_shop_id,
                pending_shop_id=self._pending_shop_id,
                decoder_running=bool(getattr(self._decoder, "running", False)),
                message=self._message,
            )

    # =========================================================================
    # PERMISSION
    # =========================================================================

    def request_permission(self) -> HandshakeStatus:
        """Start a scan. Also used by a paired customer to switch shops."""
        with self._lock:
            self._require_state(
                HandshakeState.IDLE, HandshakeState.BOUND, action="start scanning"
            )
            self._enter(HandshakeState.AWAITING_PERMISSION)
        return self.status()

    def permission_granted(self) -> HandshakeStatus:
        with self._lock:
            self._require_state(HandshakeState.AWAITING_PERMISSION, action="start the camera")
            self._decoder.start()
            self._enter(HandshakeState.SCANNING)
        return self.status()

    def permission_denied(self, reason: str = "Camera permission denied") -> HandshakeStatus:
        """Camera refused before scanning started."""
        with self._lock:
            self._require_state(HandshakeState.AWAITING_PERMISSION, action="record a refusal")
            self._deny(reason)
        return self.status()

    def camera_failed(self, reason: str = "Camera stopped unexpectedly") -> HandshakeStatus:
        """Camera or decoder died while scanning."""
        with self._lock:
            self._require_state(
                HandshakeState.AWAITING_PERMISSION, HandshakeState.SCANNING,
                action="record a camera failure",
            )
            self._deny(reason)
        return self.status()

    def retry(self) -> HandshakeStatus:
        with self._lock:
            self._require_state(HandshakeState.DENIED, action="retry")
            self._enter(HandshakeState.AWAITING_PERMISSION)
        return self.status()

    def cancel(self) -> HandshakeStatus:
        """
        Leave the scan flow (navigation away).

        Returns to BOUND if the session was already paired, else IDLE.

        Raises:
            PreconditionFailedError: A match is already being committed
        """
        with self._lock:
            if self._state is HandshakeState.CONFIRMING:
                raise PreconditionFailedError(
                    "Pairing is already being committed",
                    {"shop_id": self._pending_shop_id},
                )
            if self._state in (HandshakeState.AWAITING_PERMISSION,
                               HandshakeState.SCANNING, HandshakeState.DENIED):
                self._decoder.stop()
                self._enter(HandshakeState.BOUND if self._bound_shop_id else HandshakeState.IDLE)
        return self.status()

    # =========================================================================
    # SCANNING
    # =========================================================================

    def feed(self, candidate: Optional[str]) -> Optional[str]:
        """
        Check one decoded frame.

        Returns:
            The matched shop identifier, or None if the frame was ignored
        """
        with self._lock:
            if self._state is not HandshakeState.SCANNING:
                logger.debug(f"Ignoring frame in state {self._state.value}")
                return None

            shop_id = extract_shop_id(candidate)
            if shop_id is None:
                return None

            if self._machine.is_payment_committing():
                logger.warning(f"Ignoring {shop_id}: a payment is being committed")
                return None

            logger.info(f"Scanned shop code {shop_id}")
            self._decoder.stop()
            self._pending_shop_id = shop_id
            self._enter(HandshakeState.CONFIRMING)

            if self.confirm_seconds <= 0:
                return shop_id if self._commit(shop_id) else None
            else:
                self._timer = self._timer_factory(self.confirm_seconds, self._commit_from_timer,
                                                  args=(shop_id,))
                self._timer.name = f"Pair-{shop_id}"
                self._timer.daemon = True
                self._timer.start()
            return shop_id

    def disconnect(self) -> HandshakeStatus:
        """Forget the paired shop ("change shop")."""
        with self._lock:
            if self._state is HandshakeState.CONFIRMING:
                raise PreconditionFailedError(
                    "Pairing is already being committed",
                    {"shop_id": self._pending_shop_id},
                )
            previous = self._bound_shop_id
            self._decoder.stop()
            self._bound_shop_id = None
            self._store.delete(CONNECTED_KEY)
            self._store.delete(SHOP_ID_KEY)
            self._enter(HandshakeState.IDLE)
        if previous:
            logger.info(f"Disconnected from {previous}")
        return self.status()

    def wait_for_commit(self, timeout: Optional[float] = None) -> HandshakeStatus:
        """Block until a pending confirmation hold has committed."""
        timer = self._timer
        if timer is not None:
            timer.join(timeout=timeout)
        return self.status()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _commit_from_timer(self, shop_id: str) -> None:
        set_thread_name(f"Pair-{shop_id}")
        with self._lock:
            self._commit(shop_id)

    def _commit(self, shop_id: str) -> bool:
        previous = self._bound_shop_id
        self._pending_shop_id = None
        self._timer = None

        try:
            discarded = self._machine.discard_for_rebind(shop_id)
        except PreconditionFailedError as e:
            logger.warning(f"Not pairing with {shop_id}: {e.message}")
            self._decoder.start()
            self._enter(HandshakeState.SCANNING,
                        "A payment is being completed. Scan again once it finishes.")
            return False
        if discarded is not None:
            logger.warning(f"Discarded job {discarded.job_id} left at {discarded.shop_id}")

        self._bound_shop_id = shop_id
        self._store.set(CONNECTED_KEY, True)
        self._store.set(SHOP_ID_KEY, shop_id)
        self._enter(HandshakeState.BOUND)

        if previous and previous != shop_id:
            logger.info(f"Re-paired from {previous} to {shop_id}")
        else:
            logger.info(f"Paired with {shop_id}")
        return True

    def _restore(self) -> None:
        connected = self._store.get(CONNECTED_KEY)
        shop_id = self._store.get(SHOP_ID_KEY)
        if connected is True and is_shop_id(shop_id):
            self._bound_shop_id = shop_id
            self._state = HandshakeState.BOUND
            logger.info(f"Restored pairing with {shop_id}")
        elif connected:
            logger.warning(f"Ignoring stored pairing with invalid shop id {shop_id!r}")

    def _deny(self, reason: str) -> None:
        self._decoder.stop()
        self._enter(HandshakeState.DENIED, reason)
        logger.warning(f"Pairing denied: {reason}")

    def _enter(self, state: HandshakeState, message: str = "") -> None:
        logger.debug(f"Handshake {self._state.value} -> {state.value}")
        self._state = state
        self._message = message

    def _require_state(self, *allowed: HandshakeState, action: str) -> None:
        if self._state not in allowed:
            raise PreconditionFailedError(
                f"Cannot {action} while {self._state.value}",
                {"state": self._state.value, "allowed": [s.value for s in allowed]},
            )
