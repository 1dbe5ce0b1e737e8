"""
Shop data models.

A Shop is the single print shop the session is paired with. It is owned by
the job lifecycle machine; views only ever see it inside a StateSnapshot.

Thread Safety:
    - RateTable and Shop are frozen dataclasses (immutable)
    - Edits produce a new instance via dataclasses.replace()
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from core.exceptions import ValidationError
from modules.shop_id import generate_shop_id


RATE_KEYS = ("bw_ss", "bw_ds", "color_ss", "color_ds")


@dataclass(frozen=True)
class RateTable:
    """
    Per-page prices keyed by color mode and sides.

    All four rates are non-negative. Edits apply to future submissions only.
    """

    bw_ss: float
    """Monochrome, single-sided."""

    bw_ds: float
    """Monochrome, double-sided."""

    color_ss: float
    """Color, single-sided."""

    color_ds: float
    """Color, double-sided."""

    def __post_init__(self) -> None:
        for key in RATE_KEYS:
            value = getattr(self, key)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValidationError(key, f"Rate '{key}' must be a number")
            if value < 0:
                raise ValidationError(key, f"Rate '{key}' must not be negative")

    def rate_for(self, is_color: bool, is_double_sided: bool) -> float:
        """Select the rate for one cell of the 2x2 table."""
        if is_color:
            return self.color_ds if is_double_sided else self.color_ss
        return self.bw_ds if is_double_sided else self.bw_ss

    def to_dict(self) -> Dict[str, float]:
        return {key: getattr(self, key) for key in RATE_KEYS}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RateTable":
        """
        Build a rate table from a mapping holding all four keys.

        Raises:
            ValidationError: If a key is missing or a value is invalid
        """
        missing = [key for key in RATE_KEYS if key not in data]
        if missing:
            raise ValidationError(missing[0], f"Missing rate '{missing[0]}'")
        return cls(**{key: data[key] for key in RATE_KEYS})


@dataclass(frozen=True)
class Shop:
    """
    The paired print shop.

    Lifecycle:
        1. Created with a generated identifier and default settings
        2. Configured exactly once through the setup flow
        3. Rates and the pause flag change afterwards (operator only)
    """

    shop_id: str
    """Identifier shown as the shop's QR code (SHOP-XXXXXX)."""

    rates: RateTable
    """Current rate table."""

    name: str = ""
    """Display name."""

    location: str = ""
    """Free-text location entered by the operator."""

    printer_count: int = 1
    """Number of printers (>= 1)."""

    ppm: int = 20
    """Rated pages per minute of one printer (> 0)."""

    address: Optional[str] = None
    """Geocoded address, only ever set from a location lookup result."""

    maps_url: Optional[str] = None
    """Map link, only ever set from a location lookup result."""

    is_paused: bool = False
    """Operator has paused new submissions."""

    is_configured: bool = False
    """Setup flow has been completed."""

    def __post_init__(self) -> None:
        if isinstance(self.printer_count, bool) or not isinstance(self.printer_count, int) \
                or self.printer_count < 1:
            raise ValidationError("printer_count", "Printer count must be at least 1")
        if isinstance(self.ppm, bool) or not isinstance(self.ppm, (int, float)) or self.ppm <= 0:
            raise ValidationError("ppm", "Pages per minute must be greater than 0")

    @classmethod
    def create(
        cls,
        rates: RateTable,
        printer_count: int = 1,
        ppm: int = 20,
        shop_id: Optional[str] = None,
    ) -> "Shop":
        """Create an unconfigured shop with a fresh identifier."""
        return cls(
            shop_id=shop_id or generate_shop_id(),
            rates=rates,
            printer_count=printer_count,
            ppm=ppm,
        )

    @property
    def accepting_jobs(self) -> bool:
        """A shop takes submissions only when configured and not paused."""
        return self.is_configured and not self.is_paused

    def with_changes(self, **changes: Any) -> "Shop":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "shop_id": self.shop_id,
            "name": self.name,
            "location": self.location,
            "address": self.address,
            "maps_url": self.maps_url,
            "printer_count": self.printer_count,
            "ppm": self.ppm,
            "rates": self.rates.to_dict(),
            "is_paused": self.is_paused,
            "is_configured": self.is_configured,
            "accepting_jobs": self.accepting_jobs,
        }
