import logging
import threading
import time
from datetime import datetime
from typing import List, Optional
from rich.live import Live
from rich.console import Console, Group, RenderableType
from rich.panel import Panel
from rich.table import Table
from rich.progress_bar import ProgressBar
from rich.text import Text
from mbc.domain.models import RunResult, SizeEstimate, FileStatus, round_half_up
from mbc.ui.state import UIState

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    "pending": ("·", "dim"),
    "active": ("▶", "cyan"),
    "done": ("✓", "green"),
    "fallback": ("↺", "yellow"),
    "failed": ("✗", "red"),
}


def format_size(size: float) -> str:
    """Format size: 123B, 1.2KB, 45.1MB, 3.2GB."""
    if size == 0:
        return "0B"
    units = ['B', 'KB', 'MB', 'GB', 'TB']
    idx = 0
    val = float(size)
    while val >= 1024.0 and idx < len(units) - 1:
        val /= 1024.0
        idx += 1
    if idx == 0:
        return f"{int(val)}B"
    if idx == 1:
        return f"{val:.1f}KB"
    return f"{val:.2f}{units[idx]}"


def format_time(seconds: Optional[float]) -> str:
    """Format time: 59s, 01m 01s, 1h 01m."""
    if seconds is None:
        return "--:--"
    if seconds < 60:
        return f"{int(seconds)}s"
    if seconds < 3600:
        return f"{int(seconds // 60):02d}m {int(seconds % 60):02d}s"
    return f"{int(seconds // 3600)}h {int((seconds % 3600) // 60):02d}m"


def render_estimates(estimates: List[SizeEstimate], title: str = "ESTIMATE") -> Table:
    table = Table(title=title, title_style="bold cyan", expand=False)
    table.add_column("File", overflow="fold")
    table.add_column("Original", justify="right")
    table.add_column("Estimated", justify="right")
    table.add_column("Reduction", justify="right")
    total_original = 0
    total_estimated = 0.0
    for est in estimates:
        total_original += est.original_bytes
        total_estimated += est.estimated_bytes
        table.add_row(
            est.name,
            format_size(est.original_bytes),
            format_size(est.estimated_bytes),
            f"~{round_half_up(est.estimated_reduction_percent)}%",
        )
    if len(estimates) > 1:
        overall = round_half_up((1 - total_estimated / total_original) * 100) if total_original else 0
        table.add_section()
        table.add_row(
            Text("Total", style="bold"),
            format_size(total_original),
            format_size(total_estimated),
            f"~{overall}%",
        )
    return table


def render_report(result: RunResult) -> Table:
    """Before/after table for a finished run."""
    table = Table(title=f"RESULT: {result.file_name}", title_style="bold green")
    table.add_column("File", overflow="fold")
    table.add_column("Output", overflow="fold")
    table.add_column("Before", justify="right")
    table.add_column("After", justify="right")
    table.add_column("Status")
    for report in result.files:
        status = Text("kept original", style="yellow") if report.status == FileStatus.FALLBACK else Text("ok", style="green")
        table.add_row(
            report.name, report.output_name,
            format_size(report.original_bytes), format_size(report.new_bytes), status,
        )
    table.add_section()
    table.add_row(
        Text("Download", style="bold"), result.file_name,
        format_size(result.original_total_bytes), format_size(result.new_total_bytes),
        f"{result.reduction_percent}% smaller",
    )
    return table


class Dashboard:
    """Live progress view driven entirely by UIState."""

    def __init__(self, state: UIState, console: Optional[Console] = None, max_rows: int = 12):
        self.state = state
        self.console = console or Console()
        self.max_rows = max_rows
        self._live: Optional[Live] = None
        self._refresh_thread: Optional[threading.Thread] = None
        self._stop_refresh = threading.Event()
        self._ui_lock = threading.Lock()

    def _generate_progress(self) -> Panel:
        with self.state._lock:
            elapsed_str = "--:--"
            if self.state.processing_start_time:
                elapsed = (datetime.now() - self.state.processing_start_time).total_seconds()
                elapsed_str = format_time(elapsed)
            done = self.state.completed_count + self.state.fallback_count + self.state.failed_count
            header = f"Done: {done}/{self.state.total_files}"
            if self.state.fallback_count:
                header += f" • Kept original: {self.state.fallback_count}"
            bar = ProgressBar(total=100, completed=self.state.progress_percent, width=None)
            bar_grid = Table.grid(padding=(0, 1))
            bar_grid.add_row(bar, f"{self.state.progress_percent}%", "•", elapsed_str)
            status = Text(self.state.status_message or self.state.run_state.value, style="dim")
            content = Group(header, bar_grid, status)
        return Panel(content, title="PROGRESS", border_style="cyan")

    def _generate_files(self) -> Panel:
        table = Table.grid(padding=(0, 1))
        table.add_column(width=2)
        table.add_column(ratio=1, overflow="ellipsis", no_wrap=True)
        table.add_column(justify="right")
        with self.state._lock:
            rows = sorted(self.state.rows.items())
            hidden = max(0, len(rows) - self.max_rows)
            for _, row in rows[-self.max_rows:]:
                icon, style = STATUS_STYLES.get(row.status, ("?", ""))
                if row.new_bytes is not None:
                    sizes = f"{format_size(row.original_bytes)} → {format_size(row.new_bytes)}"
                else:
                    sizes = format_size(row.original_bytes)
                table.add_row(Text(icon, style=style), Text(row.name, style=style), sizes)
        title = "FILES" if not hidden else f"FILES (+{hidden} earlier)"
        return Panel(table, title=title, border_style="blue")

    def _generate_messages(self) -> RenderableType:
        with self.state._lock:
            lines = [f"{ts.strftime('%H:%M:%S')} {msg}" for ts, msg in self.state.messages]
        if not lines:
            return Text("")
        return Panel(Text("\n".join(lines)), title="ACTIVITY", border_style="magenta")

    def create_display(self) -> RenderableType:
        return Group(self._generate_progress(), self._generate_files(), self._generate_messages())

    def _refresh_loop(self):
        while not self._stop_refresh.is_set():
            if self._live:
                try:
                    display = self.create_display()
                    with self._ui_lock:
                        self._live.update(display)
                except Exception as e:
                    logger.debug(f"Dashboard refresh failed: {e}")
            time.sleep(0.25)

    def start(self):
        self._live = Live(self.create_display(), console=self.console, refresh_per_second=4)
        self._live.start()
        self._stop_refresh.clear()
        self._refresh_thread = threading.Thread(target=self._refresh_loop, daemon=True)
        self._refresh_thread.start()
        return self

    def stop(self):
        self._stop_refresh.set()
        if self._refresh_thread:
            self._refresh_thread.join(timeout=1.0)
        if self._live:
            # Final update so the finished state stays on screen
            with self._ui_lock:
                self._live.update(self.create_display())
            self._live.stop()
            self._live = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
