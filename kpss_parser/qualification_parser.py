"""
Qualification Parser
====================
Recovers (code, description) records from the flat text of a qualification
bulletin.

PDF extraction leaves single spaces inside a description but wider gaps
between columns and lines, so the text is split on runs of two or more
whitespace characters. A token starting with a 4-digit code opens a record;
following tokens are appended to its description until the next code.

A description fragment that itself begins with four digits is read as a new
record. The bulletins carry no structural marker that could tell the two
apart.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from pydantic import ValidationError

from .models import EducationLevel, Qualification

logger = logging.getLogger(__name__)

TOKEN_SPLIT_PATTERN = re.compile(r"\s{2,}")

# Matches "3249 Bilgisayar Programcılığı", "6225"
CODE_START_PATTERN = re.compile(r"^(\d{4})(?!\d)\s*(.*)", re.DOTALL)

NUMERIC_PATTERN = re.compile(r"^\d+$")

MIN_FRAGMENT_LENGTH = 3


class QualificationParser:
    """
    Accumulates description fragments under the most recent code.

    Duplicate codes are kept; deduplication is the merger's job.
    """

    def __init__(self):
        self.current_code: Optional[str] = None
        self.fragments: list[str] = []
        self.records: list[Qualification] = []
        self.education_level: Optional[EducationLevel] = None

    def reset(self):
        """Reset for a fresh parsing run."""
        self.current_code = None
        self.fragments = []
        self.records = []
        self.education_level = None

    def parse(self, text: str, education_level: EducationLevel) -> list[Qualification]:
        """Parse bulletin text into qualification records, in source order."""
        self.reset()
        self.education_level = EducationLevel(education_level)

        for token in TOKEN_SPLIT_PATTERN.split(text):
            self._process_token(token.strip())

        self._flush()
        logger.debug(
            f"Parsed {len(self.records)} qualifications "
            f"({self.education_level.value})"
        )
        return self.records

    def _process_token(self, token: str):
        if not token:
            return

        code_match = CODE_START_PATTERN.match(token)
        if code_match:
            self._flush()
            self.current_code = code_match.group(1)
            first = code_match.group(2).strip()
            self.fragments = [first] if first else []
            return

        if self.current_code is None:
            return

        # Stray page numbers and column counters
        if NUMERIC_PATTERN.match(token):
            return

        if len(token) >= MIN_FRAGMENT_LENGTH:
            self.fragments.append(token)

    def _flush(self):
        """Emit the pending record if it has both a code and a description."""
        if self.current_code and self.fragments:
            description = " ".join(" ".join(self.fragments).split())
            try:
                self.records.append(Qualification(
                    code=self.current_code,
                    description=description,
                    education_level=self.education_level,
                ))
            except ValidationError as e:
                logger.debug(f"Dropped qualification {self.current_code}: {e}")
        self.current_code = None
        self.fragments = []
