"""
Validation Engine
=================
Post-merge checks over the two output collections.

After each run, generates a report:
    - Totals and counts per education level
    - Duplicate qualification codes (must be zero after merge)
    - Duplicate osymCodes (tolerated, surfaced for the storage layer)
    - Malformed osymCodes, cities outside the vocabulary, empty fields
    - Qualification codes referenced by positions but never defined
    - Positions accepting any program (generic codes)

Never raises; bulletin-format drift shows up here as counts.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Optional

from .models import Position, Qualification, ValidationReport, is_osym_code
from .vocabulary import DEFAULT_VOCABULARY, Vocabulary

logger = logging.getLogger(__name__)


class ValidationEngine:
    """
    Validates merged records and produces a ValidationReport.
    """

    def __init__(self, vocabulary: Optional[Vocabulary] = None):
        self.vocabulary = vocabulary or DEFAULT_VOCABULARY

    def validate(
        self,
        qualifications: list[Qualification],
        positions: list[Position],
    ) -> ValidationReport:
        """
        Run full validation on the merged collections.

        Args:
            qualifications: Deduplicated qualification records.
            positions: All position records of the run.

        Returns:
            ValidationReport with all detected issues.
        """
        report = ValidationReport(
            total_qualifications=len(qualifications),
            total_positions=len(positions),
        )

        if not qualifications and not positions:
            logger.warning("No records to validate")
            return report

        report.qualifications_by_level = dict(Counter(
            q.education_level.value for q in qualifications
        ))
        report.positions_by_level = dict(Counter(
            p.education_level.value for p in positions
        ))

        code_counts = Counter(q.code for q in qualifications)
        report.duplicate_qualification_codes = sorted(
            code for code, count in code_counts.items() if count > 1
        )

        osym_counts = Counter(p.osym_code for p in positions)
        report.duplicate_osym_codes = sorted(
            code for code, count in osym_counts.items() if count > 1
        )

        known_codes = set(code_counts)
        unresolved: set[str] = set()

        for p in positions:
            if not is_osym_code(p.osym_code):
                report.malformed_osym_codes.append(p.osym_code)

            if not self.vocabulary.is_city(p.city):
                report.invalid_cities.append(p.osym_code)

            if not (p.institution.strip() and p.title.strip() and p.city.strip()):
                report.incomplete_positions.append(p.osym_code)

            missing = [c for c in p.qualification_codes if c not in known_codes]
            if missing:
                report.positions_with_unresolved_codes += 1
                unresolved.update(missing)

            if p.accepts_any_program:
                report.generic_code_positions += 1

        report.unresolved_codes = sorted(unresolved)

        self._log_summary(report)
        return report

    def _log_summary(self, report: ValidationReport):
        logger.info("=" * 60)
        logger.info("VALIDATION REPORT")
        logger.info("=" * 60)
        logger.info(f"Qualifications: {report.total_qualifications}")
        for level, count in sorted(report.qualifications_by_level.items()):
            logger.info(f"  • {level}: {count}")
        logger.info(f"Positions: {report.total_positions}")
        for level, count in sorted(report.positions_by_level.items()):
            logger.info(f"  • {level}: {count}")
        logger.info(
            f"Duplicate osymCodes: {len(report.duplicate_osym_codes)}"
        )
        logger.info(
            f"Unresolved qualification codes: {len(report.unresolved_codes)} "
            f"(resolution rate {report.resolution_rate}%)"
        )
        logger.info(
            f"Positions accepting any program: {report.generic_code_positions}"
        )
        if not report.is_clean:
            logger.warning(
                f"Invariant violations: "
                f"{len(report.duplicate_qualification_codes)} duplicate codes, "
                f"{len(report.malformed_osym_codes)} malformed osymCodes, "
                f"{len(report.invalid_cities)} invalid cities, "
                f"{len(report.incomplete_positions)} incomplete positions"
            )
        logger.info("=" * 60)
