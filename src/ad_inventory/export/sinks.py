"""
Tabular export with graceful degradation.

The workbook sink is preferred. When openpyxl is missing, or the workbook
cannot be written, every dataset is written as its own delimited file instead.
Both sinks receive the same Dataset objects.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple

from ..logging import get_logger
from ..normalize.schema import Dataset, OutputPaths
from ..util.errors import ConfigError, ExportError
from .csv import write_dataset_csv
from .xlsx import SpreadsheetNotAvailable, is_spreadsheet_available, write_workbook

LOG = get_logger(__name__)

EXPORT_MODES = ("auto", "csv")


class ExportSink(Protocol):
    name: str

    def write(self, datasets: Sequence[Dataset], paths: OutputPaths) -> List[Path]:
        ...


class WorkbookSink:
    name = "xlsx"

    def write(self, datasets: Sequence[Dataset], paths: OutputPaths) -> List[Path]:
        return [write_workbook(datasets, paths.workbook)]


class DelimitedSink:
    name = "csv"

    def write(self, datasets: Sequence[Dataset], paths: OutputPaths) -> List[Path]:
        return [write_dataset_csv(ds, paths.dataset_csv(ds.name)) for ds in datasets]


@dataclass(frozen=True)
class ExportResult:
    sink: str
    paths: Tuple[Path, ...]
    fallback_reason: Optional[str] = None


def select_sink(mode: str = "auto") -> Tuple[ExportSink, Optional[str]]:
    """
    Decide once per run which sink to use. Returns the sink and, when the
    delimited sink was chosen by degradation rather than request, the reason.
    """
    if mode not in EXPORT_MODES:
        raise ConfigError(f"Unsupported export format: {mode}")
    if mode == "csv":
        return DelimitedSink(), None
    if is_spreadsheet_available():
        return WorkbookSink(), None
    return DelimitedSink(), "openpyxl is not installed"


def export_datasets(datasets: Sequence[Dataset], paths: OutputPaths, *, mode: str = "auto") -> ExportResult:
    sink, reason = select_sink(mode)
    LOG.info(
        "Selected export sink",
        extra={"step": "export", "phase": "start", "sink": sink.name, "fallback_reason": reason},
    )
    if isinstance(sink, WorkbookSink):
        try:
            written = sink.write(datasets, paths)
            return ExportResult(sink=sink.name, paths=tuple(written))
        except (SpreadsheetNotAvailable, OSError, ValueError) as e:
            reason = f"workbook export failed: {e}"
            LOG.warning(
                "Workbook export failed; falling back to delimited files",
                extra={"step": "export", "phase": "warning", "error": str(e)},
            )
            if paths.workbook.exists():
                paths.workbook.unlink()
            sink = DelimitedSink()
    try:
        written = sink.write(datasets, paths)
    except OSError as e:
        raise ExportError(f"Delimited export failed: {e}") from e
    return ExportResult(sink=sink.name, paths=tuple(written), fallback_reason=reason)
