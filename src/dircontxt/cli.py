from __future__ import annotations

import time
from pathlib import Path

import typer
from rich.console import Console
from rich.markup import escape
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table
from rich.text import Text

from . import __version__
from .config import load_app_config
from .errors import DircontxtError
from .log import flush_logging, setup_logging
from .models import ChangeType
from .snapshot import SnapshotResult, take_snapshot
from .text_utils import normalize_text

app = typer.Typer(
    help="Capture a directory as a versioned archive plus an LLM-readable text snapshot",
    add_completion=False,
)
console = Console()


class ScanProgressReporter:
    def __init__(self, progress: Progress, task_id: int, root_label: str) -> None:
        self.progress = progress
        self.task_id = task_id
        self.root_label = root_label
        self.last_rendered = 0.0

    def update(self, relpath: str, dirs_scanned: int, files_seen: int) -> None:
        now = time.monotonic()
        if (now - self.last_rendered) < 0.12:
            return
        label = f"{self.root_label}/{relpath}" if relpath else self.root_label
        self.progress.update(
            self.task_id,
            description=f"{escape(normalize_text(label))}  dirs={dirs_scanned} files={files_seen}",
        )
        self.last_rendered = now


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"dircontxt v{__version__}")
        raise typer.Exit()


def _print_summary(result: SnapshotResult) -> None:
    console.print()
    console.print(f"Version: {result.version}")
    console.print(f"Files captured: {result.files} ({result.content_bytes} bytes)")
    if result.scan_errors:
        console.print(f"[yellow]Skipped unreadable entries:[/yellow] {len(result.scan_errors)}")

    report = result.report
    if report is not None:
        if not report.has_changes:
            console.print(f"No changes since {result.previous_version}.")
        else:
            table = Table(title=f"Changes since {result.previous_version}")
            table.add_column("Change")
            table.add_column("Type")
            table.add_column("Path")
            styles = {
                ChangeType.ADDED: "green",
                ChangeType.REMOVED: "red",
                ChangeType.MODIFIED: "yellow",
            }
            for entry in report.entries:
                table.add_row(
                    f"[{styles[entry.change]}]{entry.change.value}[/]",
                    entry.node_type.label,
                    Text(normalize_text(entry.relpath)),
                )
            console.print(table)

    if result.copied_to_clipboard:
        console.print("Snapshot copied to the clipboard.")
    for path in result.written:
        console.print(f"Wrote {path}")


@app.command()
def main(
    target: Path = typer.Argument(..., help="Directory to snapshot"),
    clipboard: bool = typer.Option(
        False,
        "--clipboard",
        "-c",
        help="Copy the context to the clipboard instead of writing files. Leaves no files behind.",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version information and exit.",
    ),
) -> None:
    """Create a versioned context snapshot of TARGET.

    Behavior is controlled by ~/.config/dircontxt/config.toml.
    """
    setup_logging(verbose)
    try:
        config = load_app_config()
        with Progress(
            SpinnerColumn(),
            TextColumn("{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            task_id = progress.add_task("Preparing scan...", total=None)
            reporter = ScanProgressReporter(progress, task_id, target.name or str(target))
            try:
                result = take_snapshot(
                    target,
                    clipboard=clipboard,
                    config=config,
                    progress_cb=reporter.update,
                )
            except (DircontxtError, OSError) as exc:
                progress.stop()
                console.print(f"[red]Snapshot failed:[/red] {exc}")
                raise typer.Exit(1)
        _print_summary(result)
    finally:
        flush_logging()


if __name__ == "__main__":
    app()
