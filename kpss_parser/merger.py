"""
Record Merger
=============
Folds the per-file record lists of a run into the final two collections.

Qualifications are deduplicated by code under an explicit MergePolicy;
every duplicate whose description differs is logged and returned as a
RecordConflict. Positions are concatenated as-is: ``osymCode`` uniqueness
is left to the storage layer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable

from .models import MergePolicy, Position, Qualification, RecordConflict

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    qualifications: list[Qualification] = field(default_factory=list)
    positions: list[Position] = field(default_factory=list)
    conflicts: list[RecordConflict] = field(default_factory=list)


class RecordMerger:
    """
    Deterministic fold over the accumulated record lists.

    Batches must be passed in source-file order; with FIRST_WINS the
    earliest file defines a code, with LAST_WINS the latest one does. The
    output keeps codes in order of first appearance under either policy.
    """

    def __init__(self, policy: MergePolicy = MergePolicy.FIRST_WINS):
        self.policy = MergePolicy(policy)

    def merge(
        self,
        qualification_batches: Iterable[list[Qualification]],
        position_batches: Iterable[list[Position]] = (),
    ) -> MergeResult:
        result = MergeResult()
        by_code: dict[str, Qualification] = {}

        for batch in qualification_batches:
            for qualification in batch:
                existing = by_code.get(qualification.code)
                if existing is None:
                    by_code[qualification.code] = qualification
                    continue
                if existing == qualification:
                    continue

                kept, discarded = existing, qualification
                if self.policy == MergePolicy.LAST_WINS:
                    kept, discarded = qualification, existing
                    by_code[qualification.code] = qualification

                if kept.description != discarded.description:
                    result.conflicts.append(RecordConflict(
                        code=qualification.code,
                        kept_description=kept.description,
                        discarded_description=discarded.description,
                        kept_level=kept.education_level,
                        discarded_level=discarded.education_level,
                    ))
                    logger.warning(
                        f"Qualification {qualification.code} defined twice "
                        f"({existing.education_level.value} vs "
                        f"{qualification.education_level.value}); keeping "
                        f"{kept.education_level.value} ({self.policy.value}-wins)"
                    )

        result.qualifications = list(by_code.values())

        for batch in position_batches:
            result.positions.extend(batch)

        logger.info(
            f"Merged {len(result.qualifications)} unique qualifications, "
            f"{len(result.positions)} positions, {len(result.conflicts)} conflicts"
        )
        return result
