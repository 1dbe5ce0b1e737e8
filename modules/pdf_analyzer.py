"""Page counting for uploaded documents."""

from __future__ import annotations

from pathlib import Path
from typing import Any, BinaryIO, Dict

from pypdf import PdfReader
from pypdf.errors import PdfReadError

from core.exceptions import ValidationError


class PDFAnalyzer:
    """Extract the page count a job is priced on."""

    def analyze(self, source: str | Path | BinaryIO) -> Dict[str, Any]:
        """
        Read a PDF from a path or an open binary stream.

        Raises:
            ValidationError: If the document cannot be parsed or has no pages
        """
        try:
            reader = PdfReader(source if not isinstance(source, Path) else str(source))
            pages = len(reader.pages)
        except (PdfReadError, ValueError, OSError) as exc:
            raise ValidationError("file", f"Could not read PDF: {exc}") from exc

        if pages < 1:
            raise ValidationError("file", "PDF has no pages")

        info: Dict[str, Any] = {"pages": pages, "page_dimensions": []}
        page = reader.pages[0]
        info["page_dimensions"].append({
            "width_in": round(float(page.mediabox.width) / 72, 2),
            "height_in": round(float(page.mediabox.height) / 72, 2),
        })
        return info
