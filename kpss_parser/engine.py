"""
Pipeline Engine
===============
Main orchestrator that combines classification, text extraction, parsing,
merging and validation into a complete bulletin ingestion run.

Usage:
    engine = ParserEngine(config)
    snapshot = engine.run_directory("attached_assets")
    # snapshot.qualifications / snapshot.positions are the two outputs

Architecture:
    filename → FileClassifier → PdfTextExtractor →
    {QualificationParser | PositionParser} → RecordMerger →
    ValidationEngine → Snapshot (JSON)

Each file is processed independently on a worker thread and merged in input
order, so the output does not depend on completion order. A file that
fails, is unclassified or exceeds ``file_timeout`` is reported and left out;
the run always completes.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, Optional

from . import __version__
from . import storage
from .classifier import FileClassifier
from .errors import DocumentParseError
from .merger import RecordMerger
from .models import (
    BulletinType,
    EducationLevel,
    FileReport,
    FileStatus,
    MergePolicy,
    Position,
    Qualification,
    Snapshot,
)
from .position_parser import PositionParser
from .qualification_parser import QualificationParser
from .text_extractor import PdfTextExtractor
from .validator import ValidationEngine
from .vocabulary import DEFAULT_VOCABULARY, Vocabulary

logger = logging.getLogger(__name__)

LOG_FORMAT = "[%(asctime)s] %(levelname)-8s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_POLL_INTERVAL = 0.1


@dataclass
class ParserConfig:
    """Configuration for the pipeline engine."""

    # Output settings
    output_dir: str = "parsed_data"
    save_output: bool = True
    save_report: bool = True

    # Processing
    workers: int = 4
    file_timeout: Optional[float] = 120.0
    merge_policy: MergePolicy = MergePolicy.FIRST_WINS

    # Vocabulary override (JSON file)
    vocabulary_file: Optional[str] = None

    # Logging
    log_level: str = "INFO"
    log_file: Optional[str] = None


@dataclass
class FileOutcome:
    """Everything one source file contributed to a run."""

    report: FileReport
    qualifications: list[Qualification] = field(default_factory=list)
    positions: list[Position] = field(default_factory=list)


class ParserEngine:
    """
    Main bulletin ingestion engine.

    Orchestrates the full pipeline:
        1. Classification (filename → bulletin type + level)
        2. Text extraction (PDF → flat text)
        3. Parsing (qualification or position records)
        4. Merging (code deduplication)
        5. Validation and output

    Parsers are created per file, so concurrent files share no state.
    """

    def __init__(
        self,
        config: Optional[ParserConfig] = None,
        vocabulary: Optional[Vocabulary] = None,
        classifier: Optional[FileClassifier] = None,
    ):
        self.config = config or ParserConfig()
        self._setup_logging()

        if vocabulary is None and self.config.vocabulary_file:
            vocabulary = Vocabulary.from_file(self.config.vocabulary_file)
        self.vocabulary = vocabulary or DEFAULT_VOCABULARY

        self.classifier = classifier or FileClassifier()
        self.extractor = PdfTextExtractor()

    def _setup_logging(self):
        """Configure logging based on config."""
        log_level = getattr(logging, self.config.log_level.upper(), logging.INFO)

        package_logger = logging.getLogger("kpss_parser")
        package_logger.setLevel(log_level)

        formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

        # Console handler, unless the host application already logs to one
        root_handled = bool(logging.getLogger().handlers)
        if not root_handled and not any(
            isinstance(h, logging.StreamHandler) and not isinstance(h, logging.FileHandler)
            for h in package_logger.handlers
        ):
            console = logging.StreamHandler()
            console.setFormatter(formatter)
            package_logger.addHandler(console)

        for handler in package_logger.handlers:
            handler.setLevel(log_level)

        # File handler
        if self.config.log_file:
            log_path = Path(self.config.log_file)
            already = any(
                isinstance(h, logging.FileHandler)
                and Path(h.baseFilename) == log_path.resolve()
                for h in package_logger.handlers
            )
            if not already:
                log_path.parent.mkdir(parents=True, exist_ok=True)
                file_handler = logging.FileHandler(log_path, encoding="utf-8")
                file_handler.setLevel(log_level)
                file_handler.setFormatter(formatter)
                package_logger.addHandler(file_handler)

    # ─── Single File ─────────────────────────────────────────────────────

    def process_file(self, filename: str, data: bytes) -> FileOutcome:
        """
        Classify, extract and parse one source file.

        Never raises for document problems: an unreadable PDF comes back as
        a FAILED report, an unrecognised name as SKIPPED.
        """
        start = time.monotonic()
        report = FileReport(filename=filename, sha256=storage.compute_hash(data))
        outcome = FileOutcome(report=report)

        classification = self.classifier.classify(filename)
        if not classification.is_classified:
            report.status = FileStatus.SKIPPED
            logger.warning(f"Skipping {filename}: matches no known bulletin pattern")
            return outcome

        report.bulletin_type = classification.bulletin_type
        report.education_level = classification.education_level

        try:
            text = self.extractor.extract(data, filename=filename)
        except DocumentParseError as e:
            report.status = FileStatus.FAILED
            report.error = str(e)
            report.elapsed_seconds = round(time.monotonic() - start, 3)
            logger.warning(f"Failed to read {filename}: {e}")
            return outcome

        self._parse_text(text, classification.bulletin_type,
                         classification.education_level, outcome)

        report.elapsed_seconds = round(time.monotonic() - start, 3)
        logger.info(
            f"{filename}: {report.records} {report.bulletin_type.value} records "
            f"({report.education_level.value}) in {report.elapsed_seconds:.2f}s"
        )
        return outcome

    def parse_text(
        self,
        text: str,
        bulletin_type: BulletinType,
        education_level: EducationLevel,
        filename: str = "<text>",
    ) -> FileOutcome:
        """Parse already-extracted text as a bulletin of the given kind."""
        outcome = FileOutcome(report=FileReport(
            filename=filename,
            bulletin_type=bulletin_type,
            education_level=education_level,
        ))
        self._parse_text(text, BulletinType(bulletin_type),
                         EducationLevel(education_level), outcome)
        return outcome

    def _parse_text(
        self,
        text: str,
        bulletin_type: BulletinType,
        education_level: EducationLevel,
        outcome: FileOutcome,
    ):
        report = outcome.report
        if bulletin_type == BulletinType.QUALIFICATION:
            outcome.qualifications = QualificationParser().parse(text, education_level)
            report.records = len(outcome.qualifications)
        elif bulletin_type == BulletinType.POSITION:
            result = PositionParser(self.vocabulary).parse_with_stats(text, education_level)
            outcome.positions = result.positions
            report.records = len(result.positions)
            report.segments_found = result.segments_found
            report.segments_rejected = result.segments_rejected
            report.rejection_reasons = dict(result.rejection_reasons)
            if result.segments_rejected:
                logger.info(
                    f"{report.filename}: {result.segments_found} segments, "
                    f"{result.segments_rejected} rejected {dict(result.rejection_reasons)}"
                )
        else:
            raise ValueError(f"Cannot parse bulletin type: {bulletin_type}")

    # ─── Batch Runs ──────────────────────────────────────────────────────

    def run_directory(self, directory: str) -> Snapshot:
        """Run the pipeline over every PDF in a directory (sorted by name)."""
        if not Path(directory).is_dir():
            raise FileNotFoundError(f"Directory not found: {directory}")
        return self.run(storage.read_pdf_directory(directory))

    def run(
        self,
        sources: Iterable[tuple[str, bytes]],
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> Snapshot:
        """
        Run the full pipeline over (filename, pdf bytes) pairs.

        Args:
            sources: Source files in the order their records should merge.
            progress_callback: Optional callable(files_done, total_files,
                filename), called as each file finishes or times out.

        Returns:
            A new Snapshot. Saved to ``config.output_dir`` when
            ``config.save_output`` is set.
        """
        sources = list(sources)
        start_time = time.time()
        logger.info(f"Starting run over {len(sources)} files")

        outcomes = self._process_all(sources, progress_callback)

        merger = RecordMerger(self.config.merge_policy)
        merged = merger.merge(
            [o.qualifications for o in outcomes],
            [o.positions for o in outcomes],
        )

        validation = ValidationEngine(self.vocabulary).validate(
            merged.qualifications, merged.positions
        )

        snapshot = Snapshot(
            qualifications=merged.qualifications,
            positions=merged.positions,
            files=[o.report for o in outcomes],
            conflicts=merged.conflicts,
            validation=validation,
            parser_version=__version__,
        )

        elapsed = time.time() - start_time
        failed = sum(1 for o in outcomes if o.report.status != FileStatus.OK)
        logger.info(
            f"Run complete in {elapsed:.2f}s: "
            f"{len(snapshot.qualifications)} qualifications, "
            f"{len(snapshot.positions)} positions, {failed} files not processed"
        )

        if self.config.save_output:
            storage.save_snapshot(
                snapshot, self.config.output_dir, save_report=self.config.save_report
            )

        return snapshot

    def _process_all(
        self,
        sources: list[tuple[str, bytes]],
        progress_callback: Optional[Callable[[int, int, str], None]] = None,
    ) -> list[FileOutcome]:
        """
        Fan files out over worker threads, fan results back in input order.

        Workers are daemon threads: a file that overruns ``file_timeout`` is
        reported and its thread abandoned, and an abandoned thread never
        keeps the interpreter alive.
        """
        if not sources:
            return []

        workers = max(1, min(self.config.workers, len(sources)))
        timeout = self.config.file_timeout
        results: queue.Queue = queue.Queue()
        waiting = deque(range(len(sources)))
        running: dict[int, float] = {}
        outcomes: dict[int, FileOutcome] = {}

        def task(index: int, filename: str, data: bytes):
            try:
                results.put((index, self.process_file(filename, data), None))
            except Exception as e:
                results.put((index, None, e))

        def finish(index: int, outcome: FileOutcome):
            running.pop(index, None)
            outcomes[index] = outcome
            if progress_callback:
                progress_callback(len(outcomes), len(sources), sources[index][0])

        while len(outcomes) < len(sources):
            while waiting and len(running) < workers:
                index = waiting.popleft()
                filename, data = sources[index]
                running[index] = time.monotonic()
                threading.Thread(
                    target=task,
                    args=(index, filename, data),
                    name=f"kpss-parse-{index}",
                    daemon=True,
                ).start()

            try:
                index, outcome, error = results.get(timeout=_POLL_INTERVAL)
            except queue.Empty:
                pass
            else:
                # Late results from abandoned threads are dropped
                if index in running:
                    if error is not None:
                        outcome = self._failed(sources[index], error)
                    finish(index, outcome)

            if timeout is None:
                continue

            now = time.monotonic()
            for index, begun in list(running.items()):
                if now - begun > timeout:
                    finish(index, self._timed_out(sources[index], timeout))

        return [outcomes[i] for i in range(len(sources))]

    def _failed(self, source: tuple[str, bytes], error: Exception) -> FileOutcome:
        filename, data = source
        logger.error(f"Unexpected error processing {filename}", exc_info=error)
        report = FileReport(
            filename=filename,
            status=FileStatus.FAILED,
            error=f"{type(error).__name__}: {error}",
            sha256=storage.compute_hash(data),
        )
        return FileOutcome(report=report)

    def _timed_out(self, source: tuple[str, bytes], timeout: float) -> FileOutcome:
        filename, data = source
        logger.warning(f"Giving up on {filename}: no result after {timeout:.0f}s")
        classification = self.classifier.classify(filename)
        report = FileReport(
            filename=filename,
            bulletin_type=classification.bulletin_type,
            education_level=classification.education_level,
            status=FileStatus.TIMEOUT,
            error=f"timed out after {timeout}s",
            sha256=storage.compute_hash(data),
            elapsed_seconds=timeout,
        )
        return FileOutcome(report=report)


def parse_sources(
    sources: Iterable[tuple[str, bytes]],
    config: Optional[ParserConfig] = None,
) -> Snapshot:
    """One-shot helper: run the pipeline without writing artifacts."""
    config = config or ParserConfig(save_output=False)
    return ParserEngine(config).run(sources)
