"""partfile CLI entry point."""

import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import Config, ensure_config_file
from .errors import PartfileError
from .logging import init_logger
from .writer import ConcurrentFileWriter

console = Console()

EXIT_ERROR = 1
EXIT_CONTENDED = 3


def _parse_meta(items) -> dict:
    metadata = {}
    for item in items:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--meta")
        metadata[key] = value
    return metadata


def _fail(error: Exception) -> None:
    """Report an error raised by an operation and exit. Call from an except block."""
    config = click.get_current_context().find_object(Config)
    if config is not None and config.debug:
        console.print_exception()
    console.print(f"[red]Error: {escape(str(error))}[/]")
    sys.exit(EXIT_ERROR)


@click.group()
@click.option("--debug", "-d", is_flag=True, help="Enable debug mode")
@click.version_option(version=__version__)
@click.pass_context
def main(ctx: click.Context, debug: bool):
    """partfile - assemble one file from concurrent chunk writers."""
    config = Config.load()
    if debug:
        config.debug = True

    errors = config.validate()
    if errors:
        for error in errors:
            console.print(f"[red]Error: {escape(str(error))}[/]")
        sys.exit(EXIT_ERROR)

    if config.log_enabled:
        init_logger(config.log_dir_path)
    ctx.obj = config


@main.command()
@click.argument("target", type=click.Path(path_type=Path))
@click.option("--meta", "-m", multiple=True, help="Placeholder metadata as KEY=VALUE")
@click.pass_obj
def create(config: Config, target: Path, meta):
    """Start a new logical file at TARGET."""
    writer = ConcurrentFileWriter(target, config)
    try:
        created = writer.create(_parse_meta(meta))
    except (PartfileError, OSError) as e:
        _fail(e)
    if not created:
        console.print(f"[yellow]{escape(str(target))} already exists[/]")
        sys.exit(EXIT_ERROR)
    console.print(f"[green]Created[/] {escape(str(target))} [dim](working dir: {escape(str(writer.work_dir))})[/]")


@main.command()
@click.argument("target", type=click.Path(path_type=Path))
@click.argument("offset", type=click.IntRange(min=0))
@click.argument("source", type=click.File("rb"))
@click.option("--skip", type=click.IntRange(min=0), default=0, help="Bytes to skip in SOURCE first")
@click.option("--limit", type=click.IntRange(min=0), default=None, help="Maximum bytes to copy")
@click.pass_obj
def write(config: Config, target: Path, offset: int, source, skip: int, limit):
    """Copy SOURCE (or - for stdin) into the chunk at OFFSET."""
    writer = ConcurrentFileWriter(target, config)
    try:
        if skip:
            source.seek(skip)
        chunk = writer.write_from(offset, source, limit)
    except (PartfileError, OSError) as e:
        _fail(e)
    console.print(f"Wrote {chunk.size:,} bytes at offset {chunk.offset:,}")


@main.command()
@click.argument("target", type=click.Path(path_type=Path))
@click.pass_obj
def chunks(config: Config, target: Path):
    """List committed chunks of TARGET."""
    writer = ConcurrentFileWriter(target, config)
    try:
        committed = writer.list_chunks()
    except PartfileError as e:
        _fail(e)

    table = Table(title=str(target))
    table.add_column("Offset", justify="right")
    table.add_column("Size", justify="right")
    table.add_column("End", justify="right")
    for chunk in committed:
        table.add_row(str(chunk.offset), str(chunk.size), str(chunk.end))
    console.print(table)


@main.command()
@click.argument("target", type=click.Path(path_type=Path))
@click.option("--total", type=click.IntRange(min=0), default=None, help="Expected file size")
@click.pass_obj
def missing(config: Config, target: Path, total):
    """Show byte ranges of TARGET that no chunk covers."""
    writer = ConcurrentFileWriter(target, config)
    try:
        ranges = writer.missing_ranges(total_size=total)
    except PartfileError as e:
        _fail(e)

    if not ranges:
        console.print("[green]Complete[/]")
        return
    for gap in ranges:
        console.print(f"[yellow]missing[/] offset={gap.offset} size={gap.size}")
    sys.exit(EXIT_ERROR)


@main.command()
@click.argument("target", type=click.Path(path_type=Path))
@click.option("--expected-size", type=click.IntRange(min=0), default=None, help="Required final size")
@click.pass_obj
def finalize(config: Config, target: Path, expected_size):
    """Assemble the chunks of TARGET into the final file."""
    writer = ConcurrentFileWriter(target, config)
    try:
        done = writer.finalize(expected_size)
    except PartfileError as e:
        _fail(e)
    if not done:
        console.print("[yellow]Another finalize is in progress, try again later[/]")
        sys.exit(EXIT_CONTENDED)
    console.print(f"[green]Finalized[/] {escape(str(target))}")


@main.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("target", type=click.Path(path_type=Path))
@click.option("--chunk-size", type=click.IntRange(min=1), default=None, help="Bytes per chunk")
@click.option("--workers", "-w", type=click.IntRange(min=1), default=None, help="Parallel writers")
@click.pass_obj
def split(config: Config, source: Path, target: Path, chunk_size, workers):
    """Copy SOURCE to TARGET through parallel chunk writers."""
    chunk_size = chunk_size or config.chunk_size
    workers = workers or config.workers
    total = source.stat().st_size

    writer = ConcurrentFileWriter(target, config)
    try:
        if not writer.create({"source": str(source), "size": total}):
            console.print(f"[yellow]{escape(str(target))} already exists[/]")
            sys.exit(EXIT_ERROR)

        def copy_block(offset: int):
            with open(source, "rb") as f:
                f.seek(offset)
                return writer.write_from(offset, f, chunk_size)

        with ThreadPoolExecutor(max_workers=workers) as pool:
            written = list(pool.map(copy_block, range(0, total, chunk_size)))

        if not writer.finalize(expected_size=total):
            console.print("[yellow]Another finalize is in progress, try again later[/]")
            sys.exit(EXIT_CONTENDED)
    except (PartfileError, OSError) as e:
        _fail(e)

    console.print(f"[green]Copied[/] {total:,} bytes in {len(written)} chunks to {escape(str(target))}")


@main.command()
@click.argument("target", type=click.Path(path_type=Path))
@click.pass_obj
def cleanup(config: Config, target: Path):
    """Discard the working directory of TARGET."""
    writer = ConcurrentFileWriter(target, config)
    try:
        removed = writer.cleanup()
    except OSError as e:
        _fail(e)
    if removed:
        console.print(f"Removed {escape(str(writer.work_dir))}")
    else:
        console.print(f"[dim]Nothing to remove for {escape(str(target))}[/]")


@main.command("config")
@click.option("--init", "init_file", is_flag=True, help="Write a template global config file")
@click.pass_obj
def show_config(config: Config, init_file: bool):
    """Show the effective configuration."""
    if init_file:
        console.print(f"Config file: {ensure_config_file()}")
    table = Table(title="partfile configuration")
    table.add_column("Setting")
    table.add_column("Value")
    for name, value in vars(config).items():
        table.add_row(name, repr(value))
    console.print(table)


if __name__ == "__main__":
    main()
