"""
Position Parser
===============
Recovers job-position records from the flat text of a position table
bulletin.

Column alignment does not survive PDF text extraction, so both phases anchor
on fixed vocabularies and code shapes instead of positions:

    1. Segmentation: every "9-digit listing code + 5-digit secondary code"
       pair opens a segment that runs to the next pair.
    2. Field extraction: the employment type bounds the institution, the
       first province name bounds the title, and the text after the province
       holds the quota and the qualification codes.

A segment missing its institution, title or city is dropped whole. Partial
records are never emitted.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from pydantic import ValidationError

from .models import EducationLevel, Position
from .vocabulary import DEFAULT_VOCABULARY, Vocabulary, normalize

logger = logging.getLogger(__name__)

# ─── Patterns ─────────────────────────────────────────────────────────────────

# Library noise such as "Warning: TT: undefined function: 32"
WARNING_PATTERN = re.compile(r"Warning:[^\n]*(?:\n|$)")

WHITESPACE_PATTERN = re.compile(r"\s+")

# Listing code (first digit = table origin) followed by the 5-digit secondary code
CODE_PAIR_PATTERN = re.compile(r"(?<!\d)([123]\d{8})\s+(\d{5})\s+")

SEGMENT_HEAD_PATTERN = re.compile(r"^([123]\d{8})\s+(\d{5})\s+(.*)$", re.DOTALL)

# Leading digit 2-7 separates qualification codes from 1-3 prefixed listing codes
QUALIFICATION_CODE_PATTERN = re.compile(r"\b([234567]\d{3})\b")

QUOTA_PATTERN = re.compile(r"(?<!\d)(\d{1,3})\s+[234567]\d{3}\b")

DEFAULT_QUOTA = 1


class RejectReason:
    """Why a candidate segment produced no record."""
    NO_CODE_PAIR = "no_code_pair"
    NO_INSTITUTION = "no_institution"
    NO_CITY = "no_city"
    INVALID_RECORD = "invalid_record"


@dataclass
class PositionParseResult:
    """Positions recovered from one bulletin plus segmentation counters."""

    positions: list[Position] = field(default_factory=list)
    segments_found: int = 0
    rejection_reasons: Counter = field(default_factory=Counter)

    @property
    def segments_rejected(self) -> int:
        return sum(self.rejection_reasons.values())


class PositionParser:
    """Segments position-table text and extracts one record per segment."""

    def __init__(self, vocabulary: Optional[Vocabulary] = None):
        self.vocabulary = vocabulary or DEFAULT_VOCABULARY

    def parse(self, text: str, education_level: EducationLevel) -> list[Position]:
        return self.parse_with_stats(text, education_level).positions

    def parse_with_stats(
        self, text: str, education_level: EducationLevel
    ) -> PositionParseResult:
        """
        Parse bulletin text into positions.

        Args:
            text: Flat text of a position bulletin.
            education_level: Level of the source file; copied onto each record.

        Returns:
            PositionParseResult with the positions in source order and
            a tally of rejected segments by reason.
        """
        level = EducationLevel(education_level)
        result = PositionParseResult()

        for segment in self.segment(text):
            result.segments_found += 1
            position, reason = self._parse_segment(segment, level)
            if position is None:
                result.rejection_reasons[reason] += 1
                logger.debug(f"Rejected segment ({reason}): {segment[:80]!r}")
                continue
            result.positions.append(position)

        logger.debug(
            f"{level.value}: {len(result.positions)} positions from "
            f"{result.segments_found} segments, {result.segments_rejected} rejected"
        )
        return result

    # ─── Phase 1: Segmentation ───────────────────────────────────────────

    def clean(self, text: str) -> str:
        """Strip library warnings and collapse whitespace runs."""
        text = WARNING_PATTERN.sub(" ", normalize(text))
        return WHITESPACE_PATTERN.sub(" ", text).strip()

    def segment(self, text: str) -> list[str]:
        """Split cleaned text at every listing-code pair."""
        cleaned = self.clean(text)
        starts = [m.start() for m in CODE_PAIR_PATTERN.finditer(cleaned)]
        ends = starts[1:] + [len(cleaned)]
        return [cleaned[s:e].strip() for s, e in zip(starts, ends)]

    # ─── Phase 2: Field Extraction ───────────────────────────────────────

    def _parse_segment(
        self, segment: str, level: EducationLevel
    ) -> tuple[Optional[Position], Optional[str]]:
        head = SEGMENT_HEAD_PATTERN.match(segment)
        if not head:
            return None, RejectReason.NO_CODE_PAIR

        osym_code = head.group(1)
        rest = head.group(3).strip()

        bounded = self._split_institution(rest)
        if bounded is None:
            return None, RejectReason.NO_INSTITUTION
        institution, after_institution = bounded

        city_match = self._find_city(after_institution)
        if city_match is None:
            return None, RejectReason.NO_CITY

        title = after_institution[:city_match.start()].strip()
        after_city = after_institution[city_match.end():]

        try:
            position = Position(
                osym_code=osym_code,
                institution=institution,
                title=title,
                city=city_match.group(0),
                quota=self._extract_quota(after_city),
                qualification_codes=self._extract_codes(after_city),
                education_level=level,
            )
        except ValidationError as e:
            logger.debug(f"Invalid position {osym_code}: {e}")
            return None, RejectReason.INVALID_RECORD

        return position, None

    def _split_institution(self, rest: str) -> Optional[tuple[str, str]]:
        """
        Return (institution, remainder), bounded by the employment type.

        Employment types are tried in vocabulary order. Listings that print
        no employment type fall back to the last institution-suffix word
        that still leaves a province after it.
        """
        for _, pattern in self.vocabulary.employment_patterns:
            for match in pattern.finditer(rest):
                if match.start() > 0:
                    institution = rest[:match.start()].strip()
                    return institution, rest[match.end():].strip()

        suffix_pattern = self.vocabulary.suffix_pattern
        if suffix_pattern is None:
            return None

        for match in reversed(list(suffix_pattern.finditer(rest))):
            remainder = rest[match.end():].strip()
            if self._find_city(remainder) is not None:
                return rest[:match.end()].strip(), remainder

        return None

    def _find_city(self, text: str) -> Optional[re.Match]:
        """Earliest whole-word province name with a non-empty title before it."""
        for match in self.vocabulary.city_pattern.finditer(text):
            if text[:match.start()].strip():
                return match
        return None

    def _extract_codes(self, text: str) -> list[str]:
        return list(dict.fromkeys(QUALIFICATION_CODE_PATTERN.findall(text)))

    def _extract_quota(self, text: str) -> int:
        match = QUOTA_PATTERN.search(text)
        if not match:
            return DEFAULT_QUOTA
        quota = int(match.group(1))
        return quota if quota > 0 else DEFAULT_QUOTA
