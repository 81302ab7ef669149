from __future__ import annotations

from typing import Any, Dict, Optional, Sequence

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

_FETCH_LABELS = {
    "resource_instances": "Resource instances",
    "users": "Users",
}


class FetchProgress:
    """
    Transient spinner with one line per paginated collection, e.g.
    "Resource instances  page 3  250 items".
    """

    def __init__(self, *, enabled: bool, console: Optional[Console] = None) -> None:
        self._enabled = bool(enabled)
        self._console = console or Console(stderr=True)
        self._progress: Optional[Progress] = None
        self._tasks: Dict[str, Any] = {}
        self._items: Dict[str, int] = {}
        self._started = False
        if self._enabled:
            self._progress = Progress(
                SpinnerColumn(),
                TextColumn("{task.description}"),
                TextColumn("{task.fields[detail]}", justify="left"),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )

    def __enter__(self) -> FetchProgress:
        if self._enabled and self._progress and not self._started:
            self._progress.start()
            self._started = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._enabled and self._progress and self._started:
            self._progress.stop()
            self._started = False

    def items_seen(self, what: str) -> int:
        return self._items.get(what, 0)

    def on_page(self, what: str, page: int, count: int) -> None:
        self._items[what] = self._items.get(what, 0) + count
        if not self._enabled or not self._progress:
            return
        detail = f"page {page}  {self._items[what]} items"
        task = self._tasks.get(what)
        if task is None:
            self._tasks[what] = self._progress.add_task(_FETCH_LABELS.get(what, what), total=None, detail=detail)
        else:
            self._progress.update(task, detail=detail)


def render_users_table(
    rows: Sequence[Dict[str, str]],
    *,
    headers: Sequence[str],
    caption: Optional[str] = None,
    console: Optional[Console] = None,
) -> None:
    table = Table(show_header=True, header_style="bold #89CFF0", caption=caption, show_lines=True)
    for header in headers:
        table.add_column(header)
    for row in rows:
        table.add_row(*[row.get(h, "") for h in headers])
    (console or Console()).print(table)


def render_graph_summary(
    *,
    status: str,
    metrics: Dict[str, Any],
    output: str,
    console: Optional[Console] = None,
) -> None:
    table = Table(title="Graph Summary", show_header=True, header_style="bold")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Status", status)
    table.add_row("Project", str(metrics.get("project", "")))
    table.add_row("Environment", str(metrics.get("environment", "")))
    table.add_row("Resource instances", str(metrics.get("resource_instances", 0)))
    table.add_row("Users", str(metrics.get("users", 0)))
    table.add_row("Relationships", str(metrics.get("relationships", 0)))
    table.add_row("Unresolved references", str(metrics.get("unresolved_references", 0)))
    table.add_row("Nodes", str(metrics.get("nodes", 0)))
    table.add_row("Edges", str(metrics.get("edges", 0)))
    table.add_row("Output", output)
    (console or Console()).print(table)
