"""
Core module for PickIT.

Contains fundamental infrastructure components:
- exceptions: Custom exception hierarchy
"""

from .exceptions import (
    PickItError,
    InvalidTransitionError,
    PreconditionFailedError,
    ShopUnavailableError,
    ValidationError,
    ExternalCollaboratorError,
    CameraPermissionError,
    LocationLookupError,
    PaymentDeclinedError,
    SideEffectError,
)

__all__ = [
    "PickItError",
    "InvalidTransitionError",
    "PreconditionFailedError",
    "ShopUnavailableError",
    "ValidationError",
    "ExternalCollaboratorError",
    "CameraPermissionError",
    "LocationLookupError",
    "PaymentDeclinedError",
    "SideEffectError",
]
