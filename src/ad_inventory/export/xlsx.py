from __future__ import annotations

from pathlib import Path
from typing import Any, Sequence

from ..normalize.schema import Dataset

MAX_SHEET_NAME = 31
MAX_COLUMN_WIDTH = 100


class SpreadsheetNotAvailable(RuntimeError):
    pass


def _require_openpyxl() -> Any:
    try:
        import openpyxl  # type: ignore
    except Exception as e:
        raise SpreadsheetNotAvailable(
            "openpyxl is required for workbook export. Install with: pip install openpyxl"
        ) from e
    return openpyxl


def is_spreadsheet_available() -> bool:
    try:
        _require_openpyxl()
    except SpreadsheetNotAvailable:
        return False
    return True


def write_workbook(datasets: Sequence[Dataset], path: Path) -> Path:
    """
    Write every dataset to its own worksheet of a single workbook. Sheets are
    created even for empty datasets so the layout does not depend on the data.
    """
    openpyxl = _require_openpyxl()
    from openpyxl.styles import Font, PatternFill
    from openpyxl.utils import get_column_letter

    path.parent.mkdir(parents=True, exist_ok=True)
    header_font = Font(bold=True, color="FFFFFF")
    header_fill = PatternFill(start_color="1D4F91", end_color="1D4F91", fill_type="solid")

    wb = openpyxl.Workbook()
    wb.remove(wb.active)
    for dataset in datasets:
        ws = wb.create_sheet(dataset.name[:MAX_SHEET_NAME])
        ws.append(list(dataset.fields))
        for cell in ws[1]:
            cell.font = header_font
            cell.fill = header_fill
        for row in dataset.rows:
            ws.append([row.get(field, "") for field in dataset.fields])

        for col_idx, field in enumerate(dataset.fields, start=1):
            longest = max([len(field)] + [len(str(row.get(field, ""))) for row in dataset.rows])
            ws.column_dimensions[get_column_letter(col_idx)].width = min(longest + 2, MAX_COLUMN_WIDTH)
        ws.freeze_panes = "A2"
        ws.auto_filter.ref = ws.dimensions

    wb.save(path)
    return path
