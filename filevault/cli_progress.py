"""Console rendering and progress helpers for the filevault CLI."""
from __future__ import annotations

import html
import re
import time
from typing import Any, Dict, Optional

from rich.console import Console
from rich.live import Live
from rich.markup import escape
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)
from rich.table import Table

from .models import (
    FilePage,
    FileText,
    RateLimitAdvisory,
    SearchPage,
    TextAvailability,
    UploadProgress,
    UploadState,
)
from .orchestrator.models import UploadTask

console = Console()

_MARK_SPLIT = re.compile(r"(</?mark>)")


def _echo(message: str) -> None:
    console.print(message)


def _human_size(value: int) -> str:
    size = float(max(value, 0))
    units = ["B", "KB", "MB", "GB", "TB"]
    unit_idx = 0
    while size >= 1024.0 and unit_idx < len(units) - 1:
        size /= 1024.0
        unit_idx += 1
    if unit_idx == 0:
        return f"{int(size)} {units[unit_idx]}"
    return f"{size:.2f} {units[unit_idx]}"


def snippet_markup(snippet: str) -> str:
    """Turn a sanitized ``<mark>`` snippet into rich markup."""
    parts = []
    for piece in _MARK_SPLIT.split(snippet):
        if piece == "<mark>":
            parts.append("[bold black on yellow]")
        elif piece == "</mark>":
            parts.append("[/bold black on yellow]")
        elif piece:
            parts.append(escape(html.unescape(piece)))
    return "".join(parts)


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, escape(rendered))

    panel = Panel(
        table,
        title="[bold green]filevault[/bold green]",
        subtitle="[dim]filevault CLI[/dim]",
        border_style="blue",
    )
    console.print(panel)


def render_rate_limit(advisory: RateLimitAdvisory) -> None:
    """Advisory panel for a 429 response. Nothing is retried automatically."""
    wait = advisory.remaining()
    request = f"\n[dim]request id: {escape(advisory.request_id)}[/dim]" if advisory.request_id else ""
    console.print(
        Panel(
            f"Too many requests. Try again in [bold]{wait}s[/bold].{request}",
            title="[bold yellow]Rate limited[/bold yellow]",
            border_style="yellow",
        )
    )


def render_session_expired() -> None:
    _echo("[yellow]Your session has expired.[/yellow] Run [bold]filevault login[/bold] to sign in again.")


def render_file_page(page: FilePage) -> None:
    table = Table(title=f"Files (page {page.current_page + 1}/{max(page.total_pages, 1)})")
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("Name", style="white")
    table.add_column("Size", justify="right")
    table.add_column("Type", style="dim")
    table.add_column("Uploaded", style="dim")

    for file_ref in page.files:
        table.add_row(
            str(file_ref.id),
            escape(file_ref.display_name),
            _human_size(file_ref.size_bytes),
            file_ref.media_type,
            file_ref.created_at or "-",
        )
    console.print(table)
    _echo(f"[dim]{page.total_elements} files total[/dim]")


def render_search_page(query: str, page: SearchPage, page_number: int) -> None:
    if not page.results:
        _echo(f"No results for [bold]{escape(query)}[/bold]")
        return

    table = Table(title=f"Results for {escape(query)!r} (page {page_number})", show_lines=True)
    table.add_column("ID", justify="right", style="cyan")
    table.add_column("File", style="white")
    table.add_column("Snippet")
    table.add_column("Rank", justify="right", style="dim")

    for result in page.results:
        table.add_row(
            str(result.file_id),
            escape(result.filename),
            snippet_markup(result.snippet),
            f"{result.rank:.3f}",
        )
    console.print(table)
    if page.has_more:
        _echo("[dim]More results available (use --pages to fetch more)[/dim]")


def render_text_availability(file_id: int, availability: TextAvailability) -> None:
    if availability.has_text:
        _echo(f"File {file_id}: [green]text available[/green] ({availability.text_length} chars)")
    else:
        _echo(f"File {file_id}: [yellow]no extracted text[/yellow]")


def render_file_text(file_text: FileText) -> None:
    details = []
    if file_text.ocr_confidence is not None:
        details.append(f"OCR confidence {file_text.ocr_confidence:.0%}")
    if file_text.model_version:
        details.append(f"model {file_text.model_version}")
    console.print(
        Panel(
            escape(file_text.text) or "[dim](empty)[/dim]",
            title=f"[bold]{escape(file_text.filename)}[/bold]",
            subtitle=f"[dim]{', '.join(details)}[/dim]" if details else None,
            border_style="blue",
        )
    )


class TransferProgressBar:
    """Single byte-count progress bar, used for downloads."""

    def __init__(self, label: str):
        self.label = label
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[filename]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            DownloadColumn(),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            expand=False,
            console=console,
        )
        self._task_id: Optional[TaskID] = None

    def __enter__(self):
        self._progress.start()
        self._task_id = self._progress.add_task("transfer", filename=self.label[:60], total=None)
        return self

    def __exit__(self, *args):
        self._progress.stop()

    def update(self, progress: UploadProgress) -> None:
        if self._task_id is None:
            return
        self._progress.update(self._task_id, completed=progress.bytes_sent, total=progress.total_bytes)


class UploadProgressDisplay:
    """Event-based console display for concurrent uploads."""

    def __init__(self):
        self._active_tasks: Dict[str, TaskID] = {}
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold green]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=42),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[dim]{task.fields[size]}"),
            expand=False,
            console=console,
        )
        self._live: Optional[Live] = None

    def _emit_timeline(self, status: str, name: str, size_bytes: Optional[int] = None, error: Optional[str] = None) -> None:
        stamp = time.strftime("%H:%M:%S")
        size_label = f" {_human_size(size_bytes)}" if size_bytes and size_bytes > 0 else ""
        error_label = f" cause={escape(error)}" if error else ""
        palette = {
            "DONE": "green",
            "FAIL": "red",
            "STOP": "yellow",
            "SKIP": "blue",
        }
        color = palette.get(status, "white")
        _echo(
            f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] "
            f"file: {escape(name)}{size_label}{error_label}"
        )

    def _start_live(self) -> None:
        if self._live is not None:
            return
        self._live = Live(
            self._progress,
            console=console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()

    def _stop_live(self) -> None:
        if self._live is None:
            return
        self._live.stop()
        self._live = None

    def on_task_added(self, task: UploadTask) -> None:
        self._start_live()
        self._active_tasks[task.id] = self._progress.add_task(
            "upload",
            label=task.name[:60],
            size=_human_size(task.source.size),
            total=100,
        )

    def on_task_progress(self, task: UploadTask) -> None:
        task_id = self._active_tasks.get(task.id)
        if task_id is not None:
            self._progress.update(task_id, completed=task.progress)

    def on_task_finished(self, task: UploadTask) -> None:
        task_id = self._active_tasks.pop(task.id, None)
        if task_id is not None:
            self._progress.remove_task(task_id)

        if task.state is UploadState.SUCCESS:
            self._emit_timeline("DONE", task.name, size_bytes=task.source.size)
        elif task.state is UploadState.CANCELLED:
            self._emit_timeline("STOP", task.name)
        else:
            kind = task.error_kind.value if task.error_kind else "unknown"
            self._emit_timeline("FAIL", task.name, error=f"{kind}: {task.error_message}")

    def on_rejected(self, name: str, reason: str) -> None:
        self._emit_timeline("FAIL", name, error=reason)

    def on_skipped(self, name: str) -> None:
        self._emit_timeline("SKIP", name)

    def on_finish(self, summary: Dict[str, int]) -> None:
        self._stop_live()
        _echo(
            f"[bold]Finished[/bold] uploaded={summary.get('success', 0)} "
            f"failed={summary.get('error', 0)} cancelled={summary.get('cancelled', 0)}"
        )
