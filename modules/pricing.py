"""Per-job pricing from a shop rate table."""

from __future__ import annotations

from models.shop import RateTable


def cost(rates: RateTable, is_color: bool, is_double_sided: bool, page_count: int) -> float:
    """
    Price a job: one 2x2 rate lookup times the page count.

    Pure; the result is never negative and zero pages cost zero.

    Raises:
        ValueError: If page_count is negative or not an integer
    """
    if isinstance(page_count, bool) or not isinstance(page_count, int):
        raise ValueError(f"page_count must be an integer, got {page_count!r}")
    if page_count < 0:
        raise ValueError(f"page_count must not be negative, got {page_count}")

    rate = rates.rate_for(is_color, is_double_sided)
    return max(0.0, rate * page_count)


def quote(rates: RateTable, is_color: bool, is_double_sided: bool, page_count: int) -> dict:
    """Price breakdown for the customer's options screen."""
    return {
        "rate": rates.rate_for(is_color, is_double_sided),
        "page_count": page_count,
        "is_color": is_color,
        "is_double_sided": is_double_sided,
        "cost": cost(rates, is_color, is_double_sided, page_count),
    }
