"""
Data Models
===========
Pydantic models for the structured output of a pipeline run.

The two record types (Qualification, Position) are the contract handed to
the storage/search layer. Both are frozen and serialize, via ``to_record()``,
to the camelCase keys the consumers expect.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

OSYM_CODE_PATTERN = r"^[123]\d{8}$"

# "Any program at this level" codes
GENERIC_QUALIFICATION_CODES = frozenset({"2001", "3001", "4001"})


# ─── Enums ────────────────────────────────────────────────────────────────────


class EducationLevel(str, Enum):
    """Education tier a bulletin (and every record parsed from it) belongs to."""
    SECONDARY = "Ortaöğretim"
    ASSOCIATE = "Önlisans"
    BACHELOR = "Lisans"
    SPECIAL = "Special"


class BulletinType(str, Enum):
    """Kind of bulletin a source file holds."""
    UNCLASSIFIED = "unclassified"
    QUALIFICATION = "qualification"
    POSITION = "position"


class FileStatus(str, Enum):
    """Outcome of processing one source file."""
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"
    TIMEOUT = "timeout"


class MergePolicy(str, Enum):
    """Which occurrence of a duplicate qualification code survives the merge."""
    FIRST_WINS = "first"
    LAST_WINS = "last"


# ─── Record Models ────────────────────────────────────────────────────────────


class Qualification(BaseModel):
    """A requirement code a position may demand."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    code: str = Field(pattern=r"^\d+$")
    description: str = Field(min_length=1)
    education_level: EducationLevel = Field(alias="educationLevel")

    @property
    def is_generic(self) -> bool:
        return self.code in GENERIC_QUALIFICATION_CODES

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


class Position(BaseModel):
    """
    A job opening recovered from a position bulletin.

    ``qualification_codes`` is a denormalized foreign-key list into the
    qualification table; consumers resolve it themselves.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    osym_code: str = Field(alias="osymCode", pattern=OSYM_CODE_PATTERN)
    institution: str = Field(min_length=1)
    title: str = Field(min_length=1)
    city: str = Field(min_length=1)
    quota: int = Field(default=1, ge=1)
    qualification_codes: list[str] = Field(
        default_factory=list, alias="qualificationCodes"
    )
    education_level: EducationLevel = Field(alias="educationLevel")

    @field_validator("institution", "title", "city")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("must not be blank")
        return value

    @field_validator("qualification_codes")
    @classmethod
    def _ordered_unique(cls, codes: list[str]) -> list[str]:
        return list(dict.fromkeys(codes))

    @property
    def accepts_any_program(self) -> bool:
        return any(c in GENERIC_QUALIFICATION_CODES for c in self.qualification_codes)

    def to_record(self) -> dict:
        return self.model_dump(by_alias=True, mode="json")


# ─── Classification ───────────────────────────────────────────────────────────


class Classification(BaseModel):
    """Result of matching a filename against the bulletin rule table."""
    model_config = ConfigDict(frozen=True)

    bulletin_type: BulletinType = BulletinType.UNCLASSIFIED
    education_level: Optional[EducationLevel] = None

    @property
    def is_classified(self) -> bool:
        return self.bulletin_type != BulletinType.UNCLASSIFIED


UNCLASSIFIED = Classification()


# ─── Run Reporting ────────────────────────────────────────────────────────────


class RecordConflict(BaseModel):
    """Two source files defined the same qualification code differently."""
    code: str
    kept_description: str
    discarded_description: str
    kept_level: EducationLevel
    discarded_level: EducationLevel


class FileReport(BaseModel):
    """Per-file outcome of a pipeline run."""
    filename: str
    bulletin_type: BulletinType = BulletinType.UNCLASSIFIED
    education_level: Optional[EducationLevel] = None
    status: FileStatus = FileStatus.OK
    records: int = 0
    segments_found: int = 0
    segments_rejected: int = 0
    rejection_reasons: dict[str, int] = Field(default_factory=dict)
    error: Optional[str] = None
    sha256: str = ""
    elapsed_seconds: float = 0.0


class ValidationReport(BaseModel):
    """Post-merge invariant checks over the two output collections."""
    total_qualifications: int = 0
    total_positions: int = 0
    qualifications_by_level: dict[str, int] = Field(default_factory=dict)
    positions_by_level: dict[str, int] = Field(default_factory=dict)
    duplicate_qualification_codes: list[str] = Field(default_factory=list)
    duplicate_osym_codes: list[str] = Field(default_factory=list)
    malformed_osym_codes: list[str] = Field(default_factory=list)
    invalid_cities: list[str] = Field(default_factory=list)
    incomplete_positions: list[str] = Field(default_factory=list)
    unresolved_codes: list[str] = Field(default_factory=list)
    positions_with_unresolved_codes: int = 0
    generic_code_positions: int = 0

    @computed_field
    @property
    def is_clean(self) -> bool:
        return not (
            self.duplicate_qualification_codes
            or self.malformed_osym_codes
            or self.invalid_cities
            or self.incomplete_positions
        )

    @computed_field
    @property
    def resolution_rate(self) -> float:
        if self.total_positions == 0:
            return 0.0
        resolved = self.total_positions - self.positions_with_unresolved_codes
        return round(resolved / self.total_positions * 100, 2)


class Snapshot(BaseModel):
    """
    Immutable result of one pipeline run.

    Built once and read many times; a refresh produces a new Snapshot
    rather than mutating this one.
    """
    model_config = ConfigDict(frozen=True)

    qualifications: list[Qualification] = Field(default_factory=list)
    positions: list[Position] = Field(default_factory=list)
    files: list[FileReport] = Field(default_factory=list)
    conflicts: list[RecordConflict] = Field(default_factory=list)
    validation: ValidationReport = Field(default_factory=ValidationReport)
    parser_version: str = "1.0.0"
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )

    def qualification_records(self) -> list[dict]:
        return [q.to_record() for q in self.qualifications]

    def position_records(self) -> list[dict]:
        return [p.to_record() for p in self.positions]

    def summary(self) -> dict:
        """Counts per education level plus per-file status, for operators."""
        return {
            "qualifications": len(self.qualifications),
            "positions": len(self.positions),
            "qualifications_by_level": dict(self.validation.qualifications_by_level),
            "positions_by_level": dict(self.validation.positions_by_level),
            "files": {f.filename: f.status.value for f in self.files},
            "conflicts": len(self.conflicts),
        }


def is_osym_code(value: str) -> bool:
    return re.match(OSYM_CODE_PATTERN, value) is not None
