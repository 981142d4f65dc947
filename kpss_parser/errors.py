"""
Error Taxonomy
==============
Exceptions raised by the extraction pipeline.

Failures are contained to the smallest unit that produced them: a
DocumentParseError only fails its own file, and rejected position segments
are counted rather than raised.
"""

from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base class for all pipeline errors."""


class DocumentParseError(PipelineError):
    """The PDF buffer could not be decoded."""

    def __init__(self, message: str, filename: Optional[str] = None):
        self.filename = filename
        if filename:
            message = f"{filename}: {message}"
        super().__init__(message)


class FetchError(PipelineError):
    """A bulletin page or PDF could not be retrieved from the publisher."""
