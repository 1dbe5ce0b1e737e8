"""
Shared helpers for route handlers.

Services live in app.config (set up by create_app); these accessors keep
the lookups in one place.
"""

from typing import Any, Dict

from flask import current_app, request

from core.exceptions import ValidationError


def machine():
    """The JobLifecycleMachine."""
    return current_app.config["LIFECYCLE_MACHINE"]


def payments():
    """The PaymentService."""
    return current_app.config["PAYMENT_SERVICE"]


def handshake():
    """The HandshakeService."""
    return current_app.config["HANDSHAKE_SERVICE"]


def session_store():
    """The SessionStore."""
    return current_app.config["SESSION_STORE"]


def outbox():
    """The NotificationOutbox."""
    return current_app.config["NOTIFICATION_OUTBOX"]


def json_body() -> Dict[str, Any]:
    """Request JSON, or form fields for multipart posts."""
    data = request.get_json(silent=True)
    if isinstance(data, dict):
        return data
    return request.form.to_dict()


def parse_bool(value: Any, field: str, default: bool = False) -> bool:
    """Accept JSON booleans and the usual form spellings."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValidationError(field, f"'{field}' must be a boolean")


def parse_int(value: Any, field: str) -> int:
    if isinstance(value, bool):
        raise ValidationError(field, f"'{field}' must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(field, f"'{field}' must be an integer") from None


def parse_float(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(field, f"'{field}' must be a number")
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ValidationError(field, f"'{field}' must be a number") from None
