"""Helper modules for the PickIT application."""

__all__ = [
    "estimator",
    "location",
    "pdf_analyzer",
    "pricing",
    "sanitize",
    "shop_id",
]
