"""
CLI Interface
=============
Command-line interface for the KPSS bulletin pipeline.

Usage:
    python -m kpss_parser.cli run <directory> [options]
    python -m kpss_parser.cli parse <pdf_path> [options]
    python -m kpss_parser.cli classify <filename>...
    python -m kpss_parser.cli fetch [--check]
    python -m kpss_parser.cli validate <output_dir>
    python -m kpss_parser.cli info <pdf_path>
    python -m kpss_parser.cli serve [options]
"""

from __future__ import annotations

import json
import os
import sys

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from . import __version__
from . import storage
from .classifier import FileClassifier
from .engine import ParserConfig, ParserEngine
from .errors import DocumentParseError, FetchError
from .models import BulletinType, EducationLevel, FileStatus, MergePolicy, Snapshot
from .validator import ValidationEngine

console = Console()

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def _pipeline_options(func):
    """Options shared by every command that runs the pipeline."""
    options = [
        click.option("--output", "-o", default="parsed_data",
                     help="Output directory for the JSON artifacts"),
        click.option("--workers", "-j", default=4, type=int,
                     help="Number of files processed in parallel"),
        click.option("--timeout", "file_timeout", default=120.0, type=float,
                     help="Per-file timeout in seconds"),
        click.option("--merge-policy", default=MergePolicy.FIRST_WINS.value,
                     type=click.Choice([p.value for p in MergePolicy]),
                     help="Which definition wins for a duplicated qualification code"),
        click.option("--vocabulary", "vocabulary_file", default=None,
                     type=click.Path(exists=True, dir_okay=False),
                     help="JSON file overriding cities / employment types / suffixes"),
        click.option("--log-level", default="INFO", type=click.Choice(LOG_LEVELS),
                     help="Logging level"),
        click.option("--log-file", default=None, help="Path to log file"),
        click.option("--no-report", is_flag=True, default=False,
                     help="Skip writing run_report.json"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def _build_config(
    output: str,
    workers: int,
    file_timeout: float,
    merge_policy: str,
    vocabulary_file: str,
    log_level: str,
    log_file: str,
    no_report: bool,
) -> ParserConfig:
    return ParserConfig(
        output_dir=output,
        workers=workers,
        file_timeout=file_timeout if file_timeout > 0 else None,
        merge_policy=MergePolicy(merge_policy),
        vocabulary_file=vocabulary_file,
        log_level=log_level,
        log_file=log_file,
        save_report=not no_report,
    )


@click.group()
@click.version_option(version=__version__, prog_name="kpss-parser")
def cli():
    """KPSS Bulletin Parser — qualification and position extractor."""
    pass


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False))
@_pipeline_options
def run(directory: str, **options):
    """Run the full pipeline over every PDF in a directory."""

    config = _build_config(**options)
    sources = storage.read_pdf_directory(directory)

    if not sources:
        console.print(f"[yellow]No PDF files found in: {directory}[/]")
        return

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]KPSS Bulletin Parser v{__version__}[/]\n"
            f"[dim]Found {len(sources)} PDFs in: {directory}[/]",
            border_style="cyan",
        )
    )
    console.print()

    try:
        engine = ParserEngine(config)
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Parsing bulletins...", total=len(sources))

            def on_file(done: int, total: int, filename: str):
                progress.update(task, completed=done, description=f"Parsed: {filename}")

            snapshot = engine.run(sources, progress_callback=on_file)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    _display_run_summary(snapshot)
    console.print(f"[dim]Artifacts written to: {config.output_dir}[/]")
    console.print()


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--type", "bulletin_type",
    default=None,
    type=click.Choice([BulletinType.QUALIFICATION.value, BulletinType.POSITION.value]),
    help="Bulletin type (defaults to the filename classification)",
)
@click.option(
    "--level", "education_level",
    default=None,
    type=click.Choice([lvl.value for lvl in EducationLevel]),
    help="Education level (defaults to the filename classification)",
)
@click.option(
    "--vocabulary", "vocabulary_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON vocabulary override",
)
@click.option("--log-level", default="INFO", type=click.Choice(LOG_LEVELS),
              help="Logging level")
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only the JSON records to stdout (for programmatic use)",
)
def parse(
    pdf_path: str,
    bulletin_type: str,
    education_level: str,
    vocabulary_file: str,
    log_level: str,
    json_output: bool,
):
    """Parse a single bulletin PDF without writing artifacts."""

    if json_output:
        # Suppress console output for JSON mode
        log_level = "ERROR"

    config = ParserConfig(
        save_output=False,
        vocabulary_file=vocabulary_file,
        log_level=log_level,
    )
    engine = ParserEngine(config)
    filename = os.path.basename(pdf_path)

    classification = engine.classifier.classify(filename)
    bulletin_type = bulletin_type or classification.bulletin_type.value
    education_level = education_level or (
        classification.education_level.value if classification.education_level else None
    )

    if bulletin_type == BulletinType.UNCLASSIFIED.value or education_level is None:
        console.print(
            f"[red]Error:[/] cannot classify {filename}; pass --type and --level"
        )
        sys.exit(1)

    try:
        text = engine.extractor.extract_file(pdf_path)
    except (FileNotFoundError, DocumentParseError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    outcome = engine.parse_text(
        text, BulletinType(bulletin_type), EducationLevel(education_level), filename
    )
    records = [r.to_record() for r in outcome.qualifications + outcome.positions]

    if json_output:
        # Output clean JSON to stdout
        print(json.dumps(records, indent=2, ensure_ascii=False))
        return

    report = outcome.report
    table = Table(title=f"Parse Result: {filename}", border_style="cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value")
    table.add_row("Type", bulletin_type)
    table.add_row("Level", education_level)
    table.add_row("Records", str(report.records))
    if bulletin_type == BulletinType.POSITION.value:
        table.add_row("Segments", str(report.segments_found))
        table.add_row("Rejected", str(report.segments_rejected))
        for reason, count in sorted(report.rejection_reasons.items()):
            table.add_row(f"  {reason}", str(count))
    console.print()
    console.print(table)
    console.print()


@cli.command()
@click.argument("filenames", nargs=-1, required=True)
def classify(filenames: tuple[str, ...]):
    """Show how bulletin filenames are classified."""

    classifier = FileClassifier()

    table = Table(title="Classification", border_style="cyan")
    table.add_column("Filename", style="bold")
    table.add_column("Type")
    table.add_column("Level")

    for name in filenames:
        result = classifier.classify(os.path.basename(name))
        if result.is_classified:
            table.add_row(name, result.bulletin_type.value, result.education_level.value)
        else:
            table.add_row(name, "[yellow]unclassified[/]", "-")

    console.print(table)


@cli.command()
@click.option(
    "--check",
    is_flag=True,
    default=False,
    help="Only report whether a newer guide or changed bulletins exist",
)
@click.option("--guide-url", default=None, help="Guide page to fetch (skips discovery)")
@_pipeline_options
def fetch(check: bool, guide_url: str, **options):
    """Download the latest bulletins from ÖSYM and run the pipeline."""
    from .fetcher import BulletinFetcher

    config = _build_config(**options)
    fetcher = BulletinFetcher()
    state = storage.load_state(config.output_dir)

    try:
        guide_url = guide_url or fetcher.find_latest_guide()
        if check:
            if guide_url != state.last_guide_url:
                console.print(f"[green]New guide available:[/] {guide_url}")
            else:
                console.print(f"[dim]Up to date ({state.last_update or 'never'})[/]")
            return

        result = fetcher.fetch_bulletins(guide_url)
    except FetchError as e:
        console.print(f"[red]Fetch failed:[/] {e}")
        sys.exit(1)

    for name, error in result.failures:
        console.print(f"[red]✗[/] {name}: {error}")

    if not result.files:
        console.print("[yellow]No bulletins downloaded[/]")
        sys.exit(1)

    hashes = {name: storage.compute_hash(data) for name, data in result.files}
    changed = storage.changed_files(state.file_hashes, hashes)
    if not changed and guide_url == state.last_guide_url:
        console.print("[dim]Bulletins unchanged since last run; nothing to do[/]")
        return

    console.print(f"[cyan]{len(changed)} changed bulletins[/]")
    snapshot = ParserEngine(config).run(result.files)
    storage.save_state(state.touch(guide_url, hashes), config.output_dir)
    _display_run_summary(snapshot)


@cli.command()
@click.argument("output_dir", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--vocabulary", "vocabulary_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON vocabulary override",
)
def validate(output_dir: str, vocabulary_file: str):
    """Re-validate previously written artifacts."""
    from .vocabulary import DEFAULT_VOCABULARY, Vocabulary

    try:
        snapshot = storage.load_snapshot(output_dir)
    except (FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    vocabulary = Vocabulary.from_file(vocabulary_file) if vocabulary_file else DEFAULT_VOCABULARY
    report = ValidationEngine(vocabulary).validate(snapshot.qualifications, snapshot.positions)

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Validation Report[/]\n"
            f"[dim]Directory: {output_dir}[/]",
            border_style="cyan",
        )
    )
    _display_validation_table(report.model_dump())

    if not report.is_clean:
        sys.exit(2)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
@_pipeline_options
def serve(host: str, port: int, debug: bool, **options):
    """Start the HTTP service over the artifacts in --output."""
    from .server import run_server

    config = _build_config(**options)

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]KPSS Parser Service[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug, config=config)


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
def info(pdf_path: str):
    """Display PDF file information and its classification."""

    import pymupdf as fitz

    filename = os.path.basename(pdf_path)
    classification = FileClassifier().classify(filename)

    try:
        doc = fitz.open(pdf_path)
    except (RuntimeError, ValueError) as e:
        console.print(f"[red]Error:[/] cannot open {filename}: {e}")
        sys.exit(1)

    console.print()
    table = Table(title="PDF Information", border_style="cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value")

    table.add_row("File", filename)
    table.add_row("Pages", str(doc.page_count))
    table.add_row(
        "File Size",
        f"{os.path.getsize(pdf_path) / 1024 / 1024:.2f} MB",
    )
    table.add_row("Type", classification.bulletin_type.value)
    table.add_row(
        "Level",
        classification.education_level.value if classification.education_level else "-",
    )

    metadata = doc.metadata or {}
    for key in ["title", "author", "creator", "producer"]:
        val = metadata.get(key, "")
        if val:
            table.add_row(key.title(), val)

    doc.close()
    console.print(table)
    console.print()


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_run_summary(snapshot: Snapshot):
    """Per-file status, then record counts per education level."""
    console.print()

    files = Table(title="Files", border_style="cyan")
    files.add_column("File", style="bold")
    files.add_column("Type")
    files.add_column("Level")
    files.add_column("Records", justify="right")
    files.add_column("Status", justify="center")

    status_style = {
        FileStatus.OK: "[green]✓[/]",
        FileStatus.SKIPPED: "[yellow]skipped[/]",
        FileStatus.FAILED: "[red]✗ FAILED[/]",
        FileStatus.TIMEOUT: "[red]✗ TIMEOUT[/]",
    }

    for report in snapshot.files:
        files.add_row(
            report.filename,
            report.bulletin_type.value,
            report.education_level.value if report.education_level else "-",
            str(report.records) if report.status == FileStatus.OK else "-",
            status_style[report.status],
        )

    console.print(files)
    console.print()

    validation = snapshot.validation
    levels = Table(title="Records per Education Level", border_style="green")
    levels.add_column("Level", style="bold")
    levels.add_column("Qualifications", justify="right")
    levels.add_column("Positions", justify="right")

    for level in EducationLevel:
        levels.add_row(
            level.value,
            str(validation.qualifications_by_level.get(level.value, 0)),
            str(validation.positions_by_level.get(level.value, 0)),
        )
    levels.add_row(
        "[bold]Total[/]",
        str(len(snapshot.qualifications)),
        str(len(snapshot.positions)),
    )

    console.print(levels)
    console.print()

    not_ok = sum(1 for f in snapshot.files if f.status != FileStatus.OK)
    console.print(
        f"[bold]Total:[/] {len(snapshot.qualifications)} qualifications and "
        f"{len(snapshot.positions)} positions from {len(snapshot.files)} PDFs, "
        f"{len(snapshot.conflicts)} conflicts, {not_ok} files not processed"
    )
    console.print()


def _display_validation_table(validation: dict):
    """Display validation report as a rich table."""
    table = Table(title="Validation Report", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    # Status icons
    def status_icon(count, threshold=0):
        if count <= threshold:
            return "[green]✓[/]"
        return "[red]✗[/]"

    table.add_row(
        "Qualifications",
        str(validation.get("total_qualifications", 0)),
        "[green]✓[/]" if validation.get("total_qualifications", 0) > 0 else "[yellow]⚠[/]",
    )
    table.add_row(
        "Positions",
        str(validation.get("total_positions", 0)),
        "[green]✓[/]" if validation.get("total_positions", 0) > 0 else "[yellow]⚠[/]",
    )

    for label, key in [
        ("Duplicate Qualification Codes", "duplicate_qualification_codes"),
        ("Malformed osymCodes", "malformed_osym_codes"),
        ("Invalid Cities", "invalid_cities"),
        ("Incomplete Positions", "incomplete_positions"),
    ]:
        count = len(validation.get(key, []))
        table.add_row(label, str(count), status_icon(count))

    dupes = len(validation.get("duplicate_osym_codes", []))
    table.add_row(
        "Duplicate osymCodes",
        str(dupes),
        "[green]✓[/]" if dupes == 0 else "[yellow]⚠[/]",
    )

    rate = validation.get("resolution_rate", 0)
    table.add_row(
        "Unresolved Qualification Codes",
        f"{len(validation.get('unresolved_codes', []))} ({rate}% resolved)",
        "[green]✓[/]" if rate >= 90 else "[yellow]⚠[/]",
    )
    table.add_row(
        "Positions Accepting Any Program",
        str(validation.get("generic_code_positions", 0)),
        "[dim]-[/]",
    )

    console.print(table)
    console.print()


# ─── Entry point (for python -m kpss_parser.cli) ──────────────────────────────


if __name__ == "__main__":
    cli()
