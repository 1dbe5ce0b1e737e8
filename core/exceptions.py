"""
Custom exceptions for PickIT.

Exception Hierarchy:
    PickItError (base)
    ├── InvalidTransitionError     - Status change absent from the lifecycle table
    ├── PreconditionFailedError    - Command rejected before any mutation
    │   └── ShopUnavailableError   - Shop not configured, paused, or not bound
    ├── ValidationError            - Malformed command input
    ├── ExternalCollaboratorError  - Camera, payment or lookup failure (graceful)
    │   ├── CameraPermissionError
    │   ├── LocationLookupError
    │   └── PaymentDeclinedError
    └── SideEffectError            - Best-effort effect failure (logged, swallowed)

Usage:
    Lifecycle errors (InvalidTransitionError, PreconditionFailedError) are
    raised BEFORE any state is mutated, so catching them never requires a
    rollback. External collaborator errors only affect the collaborating
    feature. SideEffectError never reaches a caller.
"""

from typing import Optional, Dict, Any


class PickItError(Exception):
    """
    Base exception for all PickIT errors.

    All custom exceptions inherit from this class, allowing callers to catch
    all application-specific errors with a single except clause if needed.
    """

    http_status = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional context for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message

    def to_dict(self) -> Dict[str, Any]:
        """JSON body used by the Flask error handlers."""
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


# =============================================================================
# LIFECYCLE ERRORS - Command rejected, state unchanged
# =============================================================================

class InvalidTransitionError(PickItError):
    """
    A status change that the lifecycle table does not allow.

    Raised for unknown (from, to) pairs, for a caller role that may not
    perform the transition, and for commands that target a job which is
    not the active job.
    """

    http_status = 409

    def __init__(
        self,
        message: str,
        job_id: Optional[str] = None,
        current: Optional[str] = None,
        requested: Optional[str] = None,
    ):
        details: Dict[str, Any] = {}
        if job_id:
            details["job_id"] = job_id
        if current:
            details["current"] = current
        if requested:
            details["requested"] = requested
        super().__init__(message, details)
        self.job_id = job_id
        self.current = current
        self.requested = requested


class PreconditionFailedError(PickItError):
    """
    A command whose preconditions do not hold.

    Typical causes:
    - Submitting while another job is still active
    - Configuring a shop that is already configured
    """

    http_status = 409


class ShopUnavailableError(PreconditionFailedError):
    """The shop cannot take submissions right now."""

    def __init__(self, shop_id: str, reason: str):
        message = f"Shop {shop_id} is not accepting jobs: {reason}"
        super().__init__(message, {"shop_id": shop_id, "reason": reason})
        self.shop_id = shop_id
        self.reason = reason


class ValidationError(PickItError):
    """Command input is missing or out of range."""

    http_status = 400

    def __init__(self, field: str, message: str):
        super().__init__(message, {"field": field})
        self.field = field


# =============================================================================
# EXTERNAL COLLABORATOR ERRORS - Feature degrades, lifecycle untouched
# =============================================================================

class ExternalCollaboratorError(PickItError):
    """
    Base class for failures of collaborators outside the lifecycle.

    These never corrupt or block the job lifecycle. The collaborating
    feature falls back (handshake to a retry state, location lookup to
    manual input, payment to a failed attempt the customer can retry).
    """

    http_status = 502


class CameraPermissionError(ExternalCollaboratorError):
    """The customer's device refused or lost camera access."""

    http_status = 403

    def __init__(self, reason: str = "Camera permission denied"):
        super().__init__(reason, {"resolution": "Allow camera access and retry the scan"})


class LocationLookupError(ExternalCollaboratorError):
    """
    The geocoding service could not resolve the shop location.

    The operator keeps the manually entered location.
    """

    def __init__(self, query: str, reason: str):
        message = f"Location lookup failed for '{query}': {reason}"
        super().__init__(message, {"query": query, "resolution": "Keep the manual location"})
        self.query = query


class PaymentDeclinedError(ExternalCollaboratorError):
    """The payment gateway reported a failed attempt."""

    http_status = 402

    def __init__(self, job_id: str, reason: str = "Payment was not completed"):
        super().__init__(reason, {"job_id": job_id})
        self.job_id = job_id


# =============================================================================
# BEST-EFFORT ERRORS - Logged and ignored, never surfaced
# =============================================================================

class SideEffectError(PickItError):
    """
    A transition side effect (chime, system notification) failed.

    Effects run after the state commit. Their failures are logged and
    swallowed by the dispatcher and are never rolled back.
    """

    def __init__(self, effect: str, reason: str):
        super().__init__(f"Effect '{effect}' failed: {reason}", {"effect": effect})
        self.effect = effect
