"""
User profile and role models.

The role decides which lifecycle commands a caller may issue. Profiles are
collected once by the onboarding flow and persisted in the session store.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional

from core.exceptions import ValidationError


class Role(Enum):
    """Who is driving the session."""

    CUSTOMER = "CUSTOMER"
    """Submits and pays for jobs, tracks readiness."""

    OPERATOR = "OPERATOR"
    """Runs the shop: setup, rates, pause, status advances."""

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """
        Parse a role name, case-insensitively.

        STUDENT and OWNER are accepted as aliases for the customer and
        operator roles.
        """
        aliases = {"STUDENT": cls.CUSTOMER, "OWNER": cls.OPERATOR}
        name = str(value or "").strip().upper()
        if name in aliases:
            return aliases[name]
        try:
            return cls(name)
        except ValueError:
            raise ValidationError("role", f"Unknown role: {value!r}") from None

    def toggled(self) -> "Role":
        return Role.OPERATOR if self is Role.CUSTOMER else Role.CUSTOMER


@dataclass(frozen=True)
class UserProfile:
    """Identity captured during onboarding."""

    name: str
    """Display name (required)."""

    contact: str
    """Phone number or email (required)."""

    photo_url: Optional[str] = None
    """Optional avatar."""

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ValidationError("name", "Name is required")
        if not self.contact or not self.contact.strip():
            raise ValidationError("contact", "Contact is required")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UserProfile":
        return cls(
            name=data.get("name", ""),
            contact=data.get("contact", ""),
            photo_url=data.get("photo_url") or None,
        )
