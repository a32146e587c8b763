from __future__ import annotations

from typing import Any, Optional, Sequence

from rich.console import Console
from rich.progress import BarColumn, Progress, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from ..normalize.schema import Section, SectionStatus

STATUS_STYLES = {
    SectionStatus.OK: "green",
    SectionStatus.EMPTY: "yellow",
    SectionStatus.FAILED: "bold red",
}


class RunProgress:
    def __init__(self, *, enabled: bool, total: int, console: Optional[Console] = None) -> None:
        self._enabled = bool(enabled)
        self._console = console or Console()
        self._progress: Optional[Progress] = None
        self._task: Optional[int] = None
        self._started = False
        self._total = total
        if self._enabled:
            self._progress = Progress(
                TextColumn("{task.description}"),
                BarColumn(),
                TaskProgressColumn(),
                TextColumn("{task.fields[section]}", justify="left"),
                TimeElapsedColumn(),
                console=self._console,
                transient=True,
            )

    def __enter__(self) -> RunProgress:
        if self._enabled and self._progress and not self._started:
            self._progress.start()
            self._task = self._progress.add_task("Collecting", total=self._total, section="")
            self._started = True
        return self

    def __exit__(self, exc_type: Any, exc: Any, exc_tb: Any) -> None:
        if self._enabled and self._progress and self._started:
            self._progress.stop()
            self._started = False

    @property
    def enabled(self) -> bool:
        return self._enabled

    def section_done(self, section: Section) -> None:
        if not self._enabled or not self._progress or self._task is None:
            return
        self._progress.update(self._task, advance=1, section=f"{section.title} [{section.status.value}]")


def render_run_summary_table(
    *,
    enabled: bool,
    sections: Sequence[Section],
    sink: str,
    fallback_reason: Optional[str],
    outdir: str,
    console: Optional[Console] = None,
) -> None:
    if not enabled:
        return
    table = Table(title="Run Summary", show_header=True, header_style="bold")
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Section", style="white")
    table.add_column("Status")
    table.add_column("Records", justify="right")
    table.add_column("Note", style="dim")
    for s in sections:
        style = STATUS_STYLES.get(s.status, "white")
        table.add_row(
            str(s.ordinal),
            s.title,
            f"[{style}]{s.status.value}[/{style}]",
            str(len(s.records)),
            s.note or "",
        )
    table.caption = f"Export: {sink}" + (f" (fallback: {fallback_reason})" if fallback_reason else "") + f" | {outdir}"
    (console or Console()).print(table)
