"""
Command-line interface for sandboxfs.

Every command runs through the same SandboxFileSystem an embedding
server would use, so path validation applies exactly as it does there.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.syntax import Syntax
from rich.table import Table

from sandboxfs import __version__
from sandboxfs.filesystem.config import FileSystemAccessConfig
from sandboxfs.filesystem.exceptions import FileSystemError, PatchWriteError
from sandboxfs.filesystem.reader import format_size
from sandboxfs.filesystem.sandbox import SandboxFileSystem

# Load environment variables
load_dotenv()

console = Console()
logger = logging.getLogger(__name__)


def setup_logging(verbose: bool = False) -> None:
    """Setup rich logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _run(coro):
    """Run a coroutine, reporting filesystem errors instead of tracebacks."""
    try:
        return asyncio.run(coro)
    except PatchWriteError as e:
        console.print(Syntax(e.diff, "markdown"))
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)
    except (FileSystemError, OSError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        sys.exit(1)


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--allow",
    "-a",
    "allow",
    multiple=True,
    type=click.Path(file_okay=False, path_type=Path),
    help="Allowed directory (repeatable; overrides the config file)",
)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Configuration file (YAML or JSON)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx: click.Context, allow: tuple[Path, ...], config_file: Optional[Path], verbose: bool):
    """sandboxfs - sandboxed file access for automated clients."""
    setup_logging(verbose)

    config = FileSystemAccessConfig.from_file(config_file) if config_file else FileSystemAccessConfig()
    if allow:
        config = config.with_overrides(allowed_directories=list(allow))
    if not config.allowed_directories:
        logger.warning("No allowed directories configured; every path will be denied")

    ctx.obj = SandboxFileSystem(config)


@cli.command()
@click.argument("path")
@click.pass_obj
def validate(fs: SandboxFileSystem, path: str):
    """Check that PATH is inside the sandbox and print its resolved form."""
    console.print(_run(fs.validate(path)))


@cli.command()
@click.argument("path")
@click.pass_obj
def info(fs: SandboxFileSystem, path: str):
    """Show size, timestamps and permissions of PATH."""
    file_info = _run(fs.read_stats(path))

    table = Table(title=path, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("size", f"{file_info.size} ({format_size(file_info.size)})")
    for name in ("created", "modified", "accessed"):
        table.add_row(name, getattr(file_info, name).isoformat())
    table.add_row("is_directory", str(file_info.is_directory))
    table.add_row("is_file", str(file_info.is_file))
    table.add_row("permissions", file_info.permissions)
    console.print(table)


@cli.command()
@click.argument("path")
@click.option("--lines", "-n", type=int, default=10, help="Number of lines")
@click.pass_obj
def head(fs: SandboxFileSystem, path: str, lines: int):
    """Print the first lines of PATH."""
    click.echo(_run(fs.head(path, lines)))


@cli.command()
@click.argument("path")
@click.option("--lines", "-n", type=int, default=10, help="Number of lines")
@click.pass_obj
def tail(fs: SandboxFileSystem, path: str, lines: int):
    """Print the last lines of PATH."""
    click.echo(_run(fs.tail(path, lines)))


@cli.command()
@click.argument("root")
@click.argument("pattern")
@click.option("--exclude", "-x", multiple=True, help="Glob to exclude (repeatable)")
@click.pass_obj
def search(fs: SandboxFileSystem, root: str, pattern: str, exclude: tuple[str, ...]):
    """
    Find paths under ROOT matching the glob PATTERN.

    Examples:

        sandboxfs -a ~/src search ~/src '**/*.py' -x '**/.venv/**'
    """
    outcome = _run(fs.search(root, pattern, list(exclude)))
    for path in outcome.paths:
        click.echo(path)
    console.print(f"[dim]{len(outcome.paths)} result(s) via {outcome.backend.value}[/dim]")


@cli.command()
@click.argument("path")
@click.argument("pattern")
@click.option("--ignore-case", "-i", is_flag=True, help="Case-insensitive search")
@click.option("--fixed-strings", "-F", is_flag=True, help="Treat PATTERN as literal text")
@click.option("--invert-match", is_flag=True, help="Show non-matching lines")
@click.option("--context", "-C", type=int, default=0, help="Context lines around matches")
@click.option("--glob", "-g", "file_pattern", default="*", help="Only search files matching this glob")
@click.option("--exclude", "-x", multiple=True, help="Glob to exclude (repeatable)")
@click.option("--max-results", "-m", type=int, default=None, help="Maximum matches over all files")
@click.option("--no-line-numbers", is_flag=True, help="Omit line numbers from the report")
@click.pass_obj
def grep(
    fs: SandboxFileSystem,
    path: str,
    pattern: str,
    ignore_case: bool,
    fixed_strings: bool,
    invert_match: bool,
    context: int,
    file_pattern: str,
    exclude: tuple[str, ...],
    max_results: Optional[int],
    no_line_numbers: bool,
):
    """Search the contents of files under PATH."""
    reports = _run(
        fs.search_content(
            {
                "search_path": path,
                "pattern": pattern,
                "ignore_case": ignore_case,
                "fixed_strings": fixed_strings,
                "invert_match": invert_match,
                "context": context,
                "file_pattern": file_pattern,
                "exclude_patterns": list(exclude),
                "max_results": max_results,
                "include_line_numbers": not no_line_numbers,
            }
        )
    )
    if not reports:
        console.print("[yellow]No matches found.[/yellow]")
        return
    click.echo("\n\n".join(report.format(not no_line_numbers) for report in reports))


@cli.command()
@click.argument("path")
@click.option("--old", "old_text", required=True, help="Text to replace")
@click.option("--new", "new_text", required=True, help="Replacement text")
@click.option("--dry-run", is_flag=True, help="Only show the diff")
@click.pass_obj
def edit(fs: SandboxFileSystem, path: str, old_text: str, new_text: str, dry_run: bool):
    """Replace OLD with NEW in PATH and show the diff."""
    result = _run(fs.apply_patch(path, [{"old_text": old_text, "new_text": new_text}], dry_run))

    console.print(Syntax(result.diff, "markdown"))
    if result.written:
        console.print(f"[green]Updated {path}[/green]")
    else:
        console.print("[yellow]Dry run, file not modified.[/yellow]")


@cli.command()
@click.argument("uris", nargs=-1)
@click.pass_obj
def roots(fs: SandboxFileSystem, uris: tuple[str, ...]):
    """
    Show the allowed directories, or replace them with URIS.

    URIS may be file:// URIs or plain paths; invalid ones are skipped.
    """
    if uris:
        directories = _run(fs.update_roots(uris))
    else:
        directories = fs.list_allowed_directories()

    for directory in directories:
        click.echo(directory)


if __name__ == "__main__":
    cli()
