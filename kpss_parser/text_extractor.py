"""
PDF Text Extractor
==================
Flattens a PDF bulletin into a single string using PyMuPDF (fitz).

Pages are read in ascending order. Within a page, text spans are emitted in
content-stream order (which may differ from visual order on multi-column
layouts) and joined by single spaces; each page ends with a newline. The end
of every text line contributes an empty item, so line breaks surface as a
double space in the output.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import pymupdf as fitz  # PyMuPDF

from .errors import DocumentParseError

logger = logging.getLogger(__name__)


class PdfTextExtractor:
    """
    Turns a PDF byte buffer into flat text.

    The column and row structure of the source is lost; downstream parsers
    recover records from vocabulary anchors instead.
    """

    def page_count(self, data: bytes, filename: Optional[str] = None) -> int:
        """Get total number of pages in the PDF."""
        with self._open(data, filename) as doc:
            return doc.page_count

    def extract_file(self, pdf_path: str) -> str:
        """Read a PDF from disk and extract its text."""
        path = Path(pdf_path)
        if not path.exists():
            raise FileNotFoundError(f"PDF not found: {pdf_path}")
        return self.extract(path.read_bytes(), filename=path.name)

    def extract(
        self,
        data: bytes,
        filename: Optional[str] = None,
        progress_callback: Optional[callable] = None,
    ) -> str:
        """
        Extract the text of every page.

        Args:
            data: Raw PDF bytes.
            filename: Used only in error messages and logs.
            progress_callback: Optional callable(current_page, total_pages).

        Returns:
            Page texts concatenated, each terminated by a newline.

        Raises:
            DocumentParseError: If the buffer is not a readable PDF.
        """
        parts: list[str] = []

        with self._open(data, filename) as doc:
            total_pages = doc.page_count
            logger.debug(f"Extracting text from {filename or '<buffer>'} ({total_pages} pages)")

            for page_idx in range(total_pages):
                try:
                    page_dict = doc[page_idx].get_text(
                        "dict", flags=fitz.TEXT_PRESERVE_WHITESPACE
                    )
                except (RuntimeError, ValueError) as e:
                    raise DocumentParseError(
                        f"cannot read page {page_idx + 1}: {e}", filename
                    ) from e

                parts.append(" ".join(self._page_items(page_dict)))
                parts.append("\n")

                if progress_callback:
                    progress_callback(page_idx + 1, total_pages)

        return "".join(parts)

    def _open(self, data: bytes, filename: Optional[str]) -> fitz.Document:
        if not data:
            raise DocumentParseError("empty document", filename)
        try:
            doc = fitz.open(stream=data, filetype="pdf")
        except (RuntimeError, ValueError) as e:
            raise DocumentParseError(f"not a readable PDF ({e})", filename) from e

        if doc.needs_pass:
            doc.close()
            raise DocumentParseError("document is encrypted", filename)
        if doc.page_count == 0:
            doc.close()
            raise DocumentParseError("document has no pages", filename)
        return doc

    def _page_items(self, page_dict: dict) -> list[str]:
        """Span texts in stream order, with an empty item closing each line."""
        items: list[str] = []
        for block in page_dict.get("blocks", []):
            if block.get("type") != 0:  # images
                continue
            for line in block.get("lines", []):
                for span in line.get("spans", []):
                    items.append(span.get("text", ""))
                items.append("")
        return items
