"""Command-line interface."""

import logging
import sys
from pathlib import Path

import click

from ..config.settings import DedupConfig, load_config
from ..core.errors import StoreError
from ..core.index import InMemoryFingerprintIndex, SqliteFingerprintIndex
from ..core.models import ErrorKind, Resolution, RunReport
from ..core.pipeline import DedupPipeline

EXIT_FATAL = 1
EXIT_DATA_LOSS = 3

logger = logging.getLogger(__name__)


def format_size(bytes_count: int) -> str:
    """Format bytes as human-readable size."""
    size = float(bytes_count)
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if size < 1024.0:
            return f"{size:.1f} {unit}"
        size /= 1024.0
    return f"{size:.1f} PB"


def configure_logging(settings: DedupConfig) -> None:
    """Route core progress events to stderr, or to the configured log file."""
    kwargs = {
        "level": getattr(logging, settings.log_level),
        "format": "%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
        "force": True,
    }
    if settings.log_file:
        kwargs["filename"] = settings.log_file
    else:
        kwargs["stream"] = sys.stderr
    logging.basicConfig(**kwargs)


def index_sidecars(index_path: Path) -> list[Path]:
    """The database file and the journal files SQLite keeps next to it."""
    index_path = index_path.resolve()
    return [index_path] + [
        index_path.with_name(index_path.name + suffix)
        for suffix in ("-wal", "-shm", "-journal")
    ]


def display_report(report: RunReport, dry_run: bool) -> None:
    """Display summary statistics and every non-fatal error."""
    summary = report.summary()
    click.echo()
    click.echo("=" * 60)
    click.echo("DRY RUN SUMMARY" if dry_run else "SUMMARY")
    click.echo("=" * 60)
    click.echo(f"Directories scanned: {summary['directories_scanned']}")
    click.echo(f"Files found: {summary['files_found']}")
    click.echo(f"Files hashed: {summary['files_hashed']}")
    click.echo(f"New canonical files: {summary[Resolution.CANONICAL.value]}")
    click.echo(f"Already canonical: {summary[Resolution.ALREADY_CANONICAL.value]}")
    if dry_run:
        click.echo(f"Duplicates that would be linked: {summary[Resolution.WOULD_LINK.value]}")
    else:
        click.echo(f"Duplicates linked: {summary[Resolution.LINKED.value]}")
        click.echo(f"Space reclaimed: {format_size(summary['bytes_reclaimed'])}")
    if summary[Resolution.RECLAIMED.value]:
        click.echo(f"Stale canonicals replaced: {summary[Resolution.RECLAIMED.value]}")
    if summary[Resolution.SKIPPED.value]:
        click.echo(f"Skipped (changed during run): {summary[Resolution.SKIPPED.value]}")

    if report.cancelled:
        click.echo(click.style("Run was cancelled before completion", fg="yellow"))

    if not report.errors:
        return

    click.echo()
    click.echo(f"Errors: {len(report.errors)}")
    for kind in (ErrorKind.TRAVERSAL, ErrorKind.IO, ErrorKind.STORE, ErrorKind.INTERNAL):
        for event in report.errors_of(kind):
            click.echo(f"  [{kind.value.upper()}] {event.path}: {event.message}")

    lost = report.errors_of(ErrorKind.PARTIAL_DUPLICATE)
    if lost:
        click.echo()
        click.echo(
            click.style(
                f"DATA LOSS: {len(lost)} duplicate(s) were deleted but not linked",
                fg="red",
                bold=True,
            ),
            err=True,
        )
        for event in lost:
            click.echo(click.style(f"  ✗ {event.path}: {event.message}", fg="red"), err=True)


@click.command()
@click.argument(
    "root",
    type=click.Path(exists=True, file_okay=False, dir_okay=True, path_type=Path),
)
@click.option(
    "--index",
    "-i",
    "index_path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Fingerprint index database (default: file_hashes.db)",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Custom configuration file",
)
@click.option("--hash-workers", type=click.IntRange(min=1), help="Number of hashing workers")
@click.option("--resolve-workers", type=click.IntRange(min=1), help="Number of resolver workers")
@click.option(
    "--relative-links", is_flag=True, help="Point symlinks at a path relative to the link"
)
@click.option(
    "--no-atomic",
    is_flag=True,
    help="Delete then link instead of renaming a new link over the duplicate",
)
@click.option(
    "--prune-stale",
    is_flag=True,
    help="Drop index entries whose canonical file no longer exists before scanning",
)
@click.option(
    "--dry-run", is_flag=True, help="Show what would be done without making changes"
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def main(
    root: Path,
    index_path: Path | None,
    config: Path | None,
    hash_workers: int | None,
    resolve_workers: int | None,
    relative_links: bool,
    no_atomic: bool,
    prune_stale: bool,
    dry_run: bool,
    verbose: bool,
):
    """Replace duplicate files under ROOT with symlinks to one canonical copy.

    ROOT: Directory tree to deduplicate

    Fingerprints are remembered in the index database, so files seen in
    earlier runs are recognized as canonical copies.
    """
    settings = load_config(config)

    # Apply CLI overrides
    if index_path is not None:
        settings.index.path = str(index_path)
    if hash_workers is not None:
        settings.pipeline.hash_workers = hash_workers
    if resolve_workers is not None:
        settings.pipeline.resolve_workers = resolve_workers
    if relative_links:
        settings.linking.style = "relative"
    if no_atomic:
        settings.linking.atomic_replace = False
    if dry_run:
        settings.dry_run = True
    if verbose:
        settings.log_level = "DEBUG"

    configure_logging(settings)

    root = root.resolve()
    db_path = Path(settings.index.path).expanduser()

    if settings.dry_run:
        click.echo("DRY RUN MODE - No changes will be made")
    click.echo(f"Scanning: {root}")
    click.echo(f"Index: {db_path}")

    try:
        store = SqliteFingerprintIndex.open(
            db_path,
            synchronous=settings.index.synchronous,
            timeout=settings.index.timeout,
        )
    except StoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(EXIT_FATAL)

    with store:
        try:
            if prune_stale and not settings.dry_run:
                pruned = store.prune_missing()
                click.echo(f"Pruned {pruned} stale index entr{'y' if pruned == 1 else 'ies'}")
            if settings.dry_run:
                index = InMemoryFingerprintIndex(dict(store.entries()))
            else:
                index = store
        except StoreError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(EXIT_FATAL)

        pipeline = DedupPipeline.from_config(
            index, settings, exclude=index_sidecars(db_path)
        )
        try:
            report = pipeline.run(root)
        except KeyboardInterrupt:
            click.echo("\nInterrupted, stopping workers...", err=True)
            report = pipeline.report
            report.cancelled = True

    display_report(report, settings.dry_run)

    if report.has_data_loss:
        sys.exit(EXIT_DATA_LOSS)


if __name__ == "__main__":
    main()
