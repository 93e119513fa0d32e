"""
Upload Mover CLI Application - Built with Click.

Commands:
- run: move every pending upload to its storage bucket
- region: resolve storage bucket names to regions
- requeue: reset files to Imported so the next run retries them
"""

import asyncio
import dataclasses
import sys

import click
from rich.console import Console
from rich.table import Table

from upload_mover import __version__
from upload_mover.core.config import MoverConfig
from upload_mover.core.errors import BatchPartialFailureError, MoverError
from upload_mover.monitoring.logging import setup_mover_logging
from upload_mover.monitoring.metrics import start_metrics_server
from upload_mover.mover import requeue, run_mover
from upload_mover.transfer.regions import region_short_code, resolve_region
from upload_mover.types import MigrationStats

console = Console()


# ============================================================================
# CLI Group
# ============================================================================


class OrderedGroup(click.Group):
    """Click Group that lists commands in the order they were added."""

    def list_commands(self, ctx):
        return list(self.commands.keys())


@click.group(cls=OrderedGroup)
@click.version_option(version=__version__, prog_name="upload-mover")
def cli():
    """
    Upload Mover - moves staged uploads to permanent storage.

    \b
    Configuration is read from the environment (and a local .env file):
      MANIFEST_TABLE, MANIFEST_FILE_TABLE, UPLOAD_BUCKET, STORAGE_BUCKET,
      RDS_PROXY_ENDPOINT, POSTGRES_USER, FILE_MOVE_TIMEOUT, ...
    """


def _load_config(**overrides) -> MoverConfig:
    try:
        config = MoverConfig.from_env()
        overrides = {k: v for k, v in overrides.items() if v is not None}
        return dataclasses.replace(config, **overrides) if overrides else config
    except (MoverError, ValueError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        sys.exit(1)


# ============================================================================
# upload-mover run
# ============================================================================


@cli.command("run")
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Concurrent file workers")
@click.option(
    "--timeout",
    "timeout_minutes",
    type=click.IntRange(min=1),
    default=None,
    help="Per-file copy timeout in minutes",
)
@click.option("--keep-source", is_flag=True, help="Do not delete staged objects after the move")
def run_cmd(workers: int | None, timeout_minutes: int | None, keep_source: bool):
    """Move every pending upload once."""
    config = _load_config(
        workers=workers,
        file_move_timeout_minutes=timeout_minutes,
        delete_source=False if keep_source else None,
    )
    setup_mover_logging(config.log_level, config.log_json)
    start_metrics_server(config.metrics_port)

    try:
        stats = asyncio.run(run_mover(config))
    except MoverError as e:
        console.print(f"[red]Mover failed ({e.kind.value}):[/red] {e}")
        sys.exit(1)

    _print_stats(stats)
    sys.exit(0 if stats.failed == 0 else 2)


def _print_stats(stats: MigrationStats) -> None:
    table = Table(title="Migration Run")
    table.add_column("Outcome", style="cyan")
    table.add_column("Files", justify="right")
    table.add_row("Moved", f"[green]{stats.moved}[/green]")
    table.add_row("Failed", f"[red]{stats.failed}[/red]" if stats.failed else "0")
    table.add_row("Skipped", str(stats.skipped))
    table.add_row("Total", str(stats.total))
    console.print(table)


# ============================================================================
# upload-mover region
# ============================================================================


@cli.command("region")
@click.argument("buckets", nargs=-1, required=True)
def region_cmd(buckets: tuple[str, ...]):
    """Show the region each storage bucket resolves to."""
    table = Table(title="Bucket Regions")
    table.add_column("Bucket", style="cyan")
    table.add_column("Code")
    table.add_column("Region", style="green")
    table.add_column("Name")

    unresolved = 0
    for bucket in buckets:
        region, found = resolve_region(bucket)
        if found:
            table.add_row(bucket, region_short_code(bucket), region.region_code, region.full_name)
        else:
            unresolved += 1
            table.add_row(bucket, region_short_code(bucket), "[red]unresolvable[/red]", "")

    console.print(table)
    sys.exit(1 if unresolved else 0)


# ============================================================================
# upload-mover requeue
# ============================================================================


@cli.command("requeue")
@click.argument("manifest_id")
@click.argument("upload_ids", nargs=-1, required=True)
def requeue_cmd(manifest_id: str, upload_ids: tuple[str, ...]):
    """Mark files of a manifest Imported so the next run moves them."""
    config = _load_config()
    setup_mover_logging(config.log_level, config.log_json)

    try:
        result, missing = asyncio.run(requeue(config, manifest_id, upload_ids))
    except BatchPartialFailureError as e:
        console.print(f"[red]{e.message}:[/red]")
        for upload_id in e.failed_files:
            console.print(f"  - {upload_id}")
        sys.exit(1)
    except MoverError as e:
        console.print(f"[red]Requeue failed:[/red] {e}")
        sys.exit(1)

    console.print(f"[green]Requeued {result.updated} files of manifest {manifest_id}[/green]")
    for upload_id in missing:
        console.print(f"[yellow]Not found:[/yellow] {upload_id}")
    sys.exit(1 if missing else 0)
