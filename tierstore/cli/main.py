"""Main CLI entry point and application setup."""

import asyncio
import logging
import sys
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from pathlib import Path
from typing import Any

import click
from click.exceptions import Exit
from rich.console import Console

from tierstore import __version__
from tierstore.cli.output import (
    print_bar_chart,
    print_error,
    print_info,
    print_list,
    print_success,
    print_table,
)
from tierstore.config import PROFILES, StorageConfig, load_config
from tierstore.exceptions import SerializationError, StorageError
from tierstore.formats import FORMATS, dump_data, format_for_path, load_data
from tierstore.storage import TieredStorage


@dataclass
class Context:
    """CLI context that holds shared resources."""

    config: StorageConfig
    console: Console
    debug: bool = False

    def open_storage(self) -> TieredStorage:
        return TieredStorage(self.config)


def setup_logging(
    verbose: bool = False, quiet: bool = False, debug: bool = False
) -> None:
    """Configure logging based on CLI flags."""
    if quiet:
        level = logging.ERROR
    elif verbose or debug:
        level = logging.DEBUG
    else:
        level = logging.WARNING

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
        if not debug
        else "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_console(no_color: bool = False, width: int | None = None) -> Console:
    """Create Rich console with appropriate settings."""
    return Console(
        no_color=no_color,
        width=width or 120,
        highlight=not no_color,
        color_system=None if no_color else "auto",
    )


def type_label(value: Any) -> str:
    """Coarse type name used by ``visualize``."""
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if value is None:
        return "null"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, (set, frozenset)):
        return "set"
    if isinstance(value, (datetime, date)):
        return "date"
    if isinstance(value, bytes):
        return "binary"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


async def _with_storage(ctx: click.Context, action):
    async with ctx.obj.open_storage() as storage:
        return await action(storage)


def run(ctx: click.Context, action) -> Any:
    """Run a coroutine function against a freshly opened storage instance."""
    return asyncio.run(_with_storage(ctx, action))


class TierStoreGroup(click.Group):
    """Custom group that turns storage errors into exit code 1."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except KeyboardInterrupt:
            click.echo("Interrupted", err=True)
            ctx.exit(130)
        except (click.ClickException, click.Abort, Exit, SystemExit):
            raise
        except StorageError as e:
            debug = getattr(ctx.obj, "debug", False) if ctx.obj else False
            if debug:
                raise
            print_error(str(e))
            ctx.exit(1)


@click.group(cls=TierStoreGroup)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-error output")
@click.option("--no-color", is_flag=True, help="Disable colored output")
@click.option("--debug", is_flag=True, help="Enable debug mode with full tracebacks")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--data-dir",
    "-d",
    type=click.Path(path_type=Path),
    help="Override data directory location",
)
@click.option("--namespace", "-n", help="Key-space namespace to operate on")
@click.option("--profile", type=click.Choice(sorted(PROFILES)), help="Storage profile")
@click.version_option(
    version=__version__, prog_name="tierstore", message="tierstore version %(version)s"
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    no_color: bool,
    debug: bool,
    config_path: Path | None,
    data_dir: Path | None,
    namespace: str | None,
    profile: str | None,
) -> None:
    """Inspect, export, import and benchmark tiered storage."""
    setup_logging(verbose=verbose, quiet=quiet, debug=debug)

    overrides: dict[str, Any] = {}
    if data_dir:
        overrides["data_dir"] = str(data_dir)
    if namespace is not None:
        overrides["namespace"] = namespace
    if profile:
        overrides["profile"] = profile
    if debug:
        overrides["debug"] = True

    try:
        config = load_config(config_path, **overrides)
    except ValueError as e:
        if debug:
            raise
        print_error(f"Error loading configuration: {e}")
        ctx.exit(1)

    ctx.obj = Context(config=config, console=create_console(no_color=no_color), debug=debug)


@cli.command()
@click.pass_context
def inspect(ctx: click.Context) -> None:
    """Show storage statistics and keys."""
    console = ctx.obj.console

    async def collect(storage: TieredStorage):
        return await storage.keys(), await storage.get_statistics(), storage.get_metrics()

    keys, stats, metrics = run(ctx, collect)

    rows = [
        ["Namespace", ctx.obj.config.namespace or "(default)"],
        ["Storage layer", stats["backend"]],
        ["Total keys", stats["entries"]],
    ]
    if "rows" in stats:
        rows.append(["Stored rows (incl. expired)", stats["rows"]])
    if "size_bytes" in stats:
        rows.append(["Database size", f"{stats['size_bytes']} bytes"])
    if "memory_bytes" in stats:
        rows.append(["Memory usage", f"{stats['memory_bytes']} bytes"])
    rows += [
        ["Cache hits / misses", f"{stats['cache']['hits']} / {stats['cache']['misses']}"],
        ["Read operations", metrics.reads],
        ["Write operations", metrics.writes],
        ["Average read latency", f"{metrics.avg_read_latency:.2f}ms"],
        ["Average write latency", f"{metrics.avg_write_latency:.2f}ms"],
    ]

    console.print("\n🔍 [bold]Storage Inspector[/bold]\n")
    print_table(console, ["Property", "Value"], rows)
    if keys:
        console.print("\n📋 [bold]Keys[/bold]")
        print_list(console, keys)


@cli.command()
@click.pass_context
def purge(ctx: click.Context) -> None:
    """Remove expired entries from the active backend."""
    removed = run(ctx, lambda storage: storage.purge_expired())
    print_success(ctx.obj.console, f"Purged {removed} expired entries")


@cli.command(name="export")
@click.argument("output", type=click.Path(path_type=Path), default="storage-export.json")
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(FORMATS),
    help="Export format (default: from file suffix, else json)",
)
@click.pass_context
def export_command(ctx: click.Context, output: Path, fmt: str | None) -> None:
    """Export all data to FILE (default: storage-export.json)."""
    fmt = fmt or format_for_path(str(output))
    data = run(ctx, lambda storage: storage.export_all())
    rendered = dump_data(data, fmt)
    if isinstance(rendered, bytes):
        output.write_bytes(rendered)
    else:
        output.write_text(rendered, encoding="utf-8")
    print_success(ctx.obj.console, f"Exported {len(data)} items to {output}")


@cli.command(name="import")
@click.argument("input_file", metavar="FILE", type=click.Path(path_type=Path), required=False)
@click.option(
    "--format",
    "-f",
    "fmt",
    type=click.Choice(FORMATS),
    help="Import format (default: from file suffix, else json)",
)
@click.pass_context
def import_command(ctx: click.Context, input_file: Path | None, fmt: str | None) -> None:
    """Import data from FILE."""
    if input_file is None or not input_file.is_file():
        print_error("Please provide a valid input file")
        ctx.exit(1)

    fmt = fmt or format_for_path(str(input_file))
    try:
        if fmt == "msgpack":
            raw = input_file.read_bytes()
        else:
            raw = input_file.read_text(encoding="utf-8")
        data = load_data(raw, fmt)
    except (SerializationError, UnicodeDecodeError) as e:
        print_error(f"Invalid import file {input_file}: {e}")
        ctx.exit(1)

    count = run(ctx, lambda storage: storage.import_all(data))
    print_success(ctx.obj.console, f"Imported {count} items from {input_file}")


@cli.command()
@click.pass_context
def visualize(ctx: click.Context) -> None:
    """Show data type distribution."""
    console = ctx.obj.console
    data = run(ctx, lambda storage: storage.export_all())

    console.print("\n📊 [bold]Storage Visualization[/bold]\n")
    if not data:
        print_info(console, "Storage is empty")
        return
    counts = Counter(type_label(value) for value in data.values())
    print_bar_chart(console, dict(counts), title="Data types")


@cli.command()
@click.option(
    "--iterations", "-n", type=click.IntRange(min=1), default=1000, show_default=True
)
@click.option("--keep", is_flag=True, help="Keep the benchmark keys afterwards")
@click.pass_context
def benchmark(ctx: click.Context, iterations: int, keep: bool) -> None:
    """Time sequential writes and reads."""
    console = ctx.obj.console
    result = run(ctx, lambda storage: storage.benchmark(iterations, cleanup=not keep))

    print_table(
        console,
        ["Operation", "Total (ms)", "Average (ms)"],
        [
            ["write", f"{result.write.total:.2f}", f"{result.write.avg:.4f}"],
            ["read", f"{result.read.total:.2f}", f"{result.read.avg:.4f}"],
        ],
        title=f"Benchmark ({result.iterations} iterations)",
    )


@cli.command(name="help")
@click.pass_context
def help_command(ctx: click.Context) -> None:
    """Show this help message."""
    click.echo(ctx.parent.get_help() if ctx.parent else ctx.get_help())


def main() -> None:
    """Main entry point for the CLI application."""
    try:
        cli()
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
