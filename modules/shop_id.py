"""
Shop identifier grammar.

One grammar serves both sides of pairing: the operator's shop is created
with an identifier from generate_shop_id(), and the customer's scanner
accepts exactly the identifiers that grammar produces.

    SHOP-XXXXXX   (X in A-Z or 0-9)
"""

from __future__ import annotations

import re
import secrets
import string
from typing import Optional

SHOP_ID_PREFIX = "SHOP-"
SHOP_ID_SUFFIX_LENGTH = 6
SHOP_ID_ALPHABET = string.ascii_uppercase + string.digits

SHOP_ID_PATTERN = re.compile(r"SHOP-[A-Z0-9]{6}")


def generate_shop_id() -> str:
    """Generate a fresh shop identifier, e.g. ``SHOP-K3Q9ZT``."""
    suffix = "".join(secrets.choice(SHOP_ID_ALPHABET) for _ in range(SHOP_ID_SUFFIX_LENGTH))
    return f"{SHOP_ID_PREFIX}{suffix}"


def extract_shop_id(text: Optional[str]) -> Optional[str]:
    """
    Pull the first shop identifier out of decoded scanner text.

    The decoder may hand back a URL or a sentence around the code
    ("visit SHOP-AB12CD today"); anything without a full identifier
    ("SHOP-1") yields None.
    """
    if not text:
        return None
    match = SHOP_ID_PATTERN.search(text)
    return match.group(0) if match else None


def is_shop_id(value: Optional[str]) -> bool:
    """True if ``value`` is exactly one identifier and nothing else."""
    return bool(value) and SHOP_ID_PATTERN.fullmatch(value) is not None
