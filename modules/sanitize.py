"""Cleaning of user-provided text before it is stored or echoed back."""

from __future__ import annotations

from typing import Optional

import bleach
from werkzeug.utils import secure_filename


MAX_FILENAME_LENGTH = 255
MAX_TEXT_LENGTH = 200


def sanitize_text(text: Optional[str], max_length: Optional[int] = MAX_TEXT_LENGTH) -> str:
    """
    Strip whitespace and all HTML, then truncate.

    Args:
        text: Raw input text
        max_length: Maximum length to keep (None keeps everything)

    Returns:
        Text safe for storage and display
    """
    if not text:
        return ""

    text = bleach.clean(str(text).strip(), tags=[], strip=True)

    if max_length and len(text) > max_length:
        text = text[:max_length]

    return text


def sanitize_filename(filename: Optional[str]) -> str:
    """File names are shown back to the customer and in alerts."""
    cleaned = secure_filename(sanitize_text(filename, MAX_FILENAME_LENGTH))
    return cleaned[:MAX_FILENAME_LENGTH]
