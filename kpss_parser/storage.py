"""
Filesystem Storage
==================
Writes and reads the artifacts of a pipeline run.

Directory Layout:
    parsed_data/
    ├── qualifications.json   # contract artifact
    ├── positions.json        # contract artifact
    ├── run_report.json       # file reports, conflicts, validation (optional)
    └── .update-state.json    # last fetched guide + source file hashes
"""

from __future__ import annotations

import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError

from .models import Position, Qualification, Snapshot

logger = logging.getLogger(__name__)

QUALIFICATIONS_FILE = "qualifications.json"
POSITIONS_FILE = "positions.json"
REPORT_FILE = "run_report.json"
STATE_FILE = ".update-state.json"


# ─── Snapshot Artifacts ───────────────────────────────────────────────────────


def save_snapshot(
    snapshot: Snapshot,
    output_dir: str,
    save_report: bool = True,
) -> list[Path]:
    """
    Write the two contract artifacts (and optionally the run report).
    Returns the written paths.
    """
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    written = [
        _write_json(snapshot.qualification_records(), out / QUALIFICATIONS_FILE),
        _write_json(snapshot.position_records(), out / POSITIONS_FILE),
    ]

    if save_report:
        report = snapshot.model_dump(
            mode="json", exclude={"qualifications", "positions"}
        )
        written.append(_write_json(report, out / REPORT_FILE))

    logger.info(f"Output saved to: {out}")
    return written


def load_snapshot(output_dir: str) -> Snapshot:
    """
    Read previously written artifacts back into a Snapshot.

    Raises:
        FileNotFoundError: If either contract artifact is missing.
        ValueError: If an artifact does not hold valid records.
    """
    out = Path(output_dir)
    qual_path = out / QUALIFICATIONS_FILE
    pos_path = out / POSITIONS_FILE

    for path in (qual_path, pos_path):
        if not path.exists():
            raise FileNotFoundError(f"Artifact not found: {path}")

    try:
        qualifications = [
            Qualification.model_validate(r) for r in _read_json(qual_path)
        ]
        positions = [Position.model_validate(r) for r in _read_json(pos_path)]
    except ValidationError as e:
        raise ValueError(f"Invalid records in {out}: {e}") from e

    extra: dict = {}
    report_path = out / REPORT_FILE
    if report_path.exists():
        report = _read_json(report_path)
        extra = {
            k: report[k]
            for k in ("files", "conflicts", "validation", "parser_version", "created_at")
            if k in report
        }

    return Snapshot(qualifications=qualifications, positions=positions, **extra)


# ─── Update State ─────────────────────────────────────────────────────────────


class UpdateState(BaseModel):
    """What the last fetch saw: guide URL and a hash per source file."""
    last_update: str = ""
    last_guide_url: str = ""
    file_hashes: dict[str, str] = Field(default_factory=dict)

    def touch(self, guide_url: str, file_hashes: dict[str, str]) -> "UpdateState":
        return UpdateState(
            last_update=datetime.now(timezone.utc).isoformat(),
            last_guide_url=guide_url,
            file_hashes=dict(file_hashes),
        )


def load_state(output_dir: str) -> UpdateState:
    """Load the update state; a missing or corrupt file yields a fresh state."""
    path = Path(output_dir) / STATE_FILE
    if not path.exists():
        return UpdateState()
    try:
        return UpdateState.model_validate(_read_json(path))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Ignoring unreadable state file {path}: {e}")
        return UpdateState()


def save_state(state: UpdateState, output_dir: str) -> Path:
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    return _write_json(state.model_dump(), out / STATE_FILE)


def changed_files(old: dict[str, str], new: dict[str, str]) -> list[str]:
    """Names whose hash differs from (or is absent in) the previous state."""
    return sorted(name for name, digest in new.items() if old.get(name) != digest)


def compute_hash(data: bytes) -> str:
    """SHA-256 of a source buffer."""
    return hashlib.sha256(data).hexdigest()


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _write_json(data, filepath: Path) -> Path:
    with open(filepath, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=str)
    logger.debug(f"Saved JSON: {filepath}")
    return filepath


def _read_json(filepath: Path):
    with open(filepath, "r", encoding="utf-8") as f:
        return json.load(f)


def read_pdf_directory(directory: str) -> list[tuple[str, bytes]]:
    """All PDFs of a directory as (filename, bytes), sorted by name."""
    return [
        (path.name, path.read_bytes())
        for path in sorted(Path(directory).glob("*.pdf"))
    ]


def sanitize_filename(name: str) -> Optional[str]:
    """Reduce an uploaded or remote filename to a safe basename."""
    base = Path(name.replace("\\", "/")).name
    clean = "".join(c if c.isalnum() or c in "-_.()" else "_" for c in base)
    return clean[:200] or None
