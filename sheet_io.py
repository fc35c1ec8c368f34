import logging
import os
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path

import pandas as pd
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Border, Font, Side
from openpyxl.utils import get_column_letter

logger = logging.getLogger(__name__)

# ---------------- CONFIG ----------------
COLUMN_COUNT = 8
COLUMN_WIDTH = 25
SHEET_NAME = "Expired Orders"

SOURCE_DATE_FORMAT = "%d-%m-%Y"               # 05-03-1980
SOURCE_TIMESTAMP_FORMAT = "%b %d %Y %I:%M%p"  # Dec 15 2018 10:30AM

HEADER_FONT = Font(name="Arial", size=11, bold=True)
DATA_FONT = Font(name="Arial", size=10)
THIN = Side(style="thin")
CELL_BORDER = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)
# ----------------------------------------


# ------------------ Reading ------------------
def cell_text(value) -> str:
    """Render a source cell the way the exporting system displays it."""
    if value is None or (not isinstance(value, str) and pd.isna(value)):
        return ""
    if isinstance(value, datetime):
        if value.hour == value.minute == value.second == 0:
            return value.strftime(SOURCE_DATE_FORMAT)
        hour = value.hour % 12 or 12
        return f"{value:%b} {value.day} {value.year} {hour}:{value:%M%p}"
    if isinstance(value, date):
        return value.strftime(SOURCE_DATE_FORMAT)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass
class SourceSheet:
    """First sheet of the source report, every cell already rendered to text."""

    rows: list = field(default_factory=list)
    column_count: int = COLUMN_COUNT

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def cell(self, row: int, col: int) -> str:
        # missing rows and short rows read as blank cells
        if row >= len(self.rows) or col >= len(self.rows[row]):
            return ""
        return self.rows[row][col]

    def row(self, row: int) -> list:
        return [self.cell(row, col) for col in range(self.column_count)]


def _engine_for(path: Path) -> str:
    if path.suffix.lower() in {".xls", ".xlt"}:
        return "xlrd"
    return "openpyxl"


def read_source_sheet(path: Path, column_count: int = COLUMN_COUNT) -> SourceSheet:
    path = Path(path)
    with pd.ExcelFile(path, engine=_engine_for(path)) as xls:
        sheet_name = xls.sheet_names[0]
        df = xls.parse(sheet_name, header=None, dtype=object, keep_default_na=False)

    rows = [[cell_text(v) for v in values] for values in df.itertuples(index=False, name=None)]
    logger.debug("Read %d rows from %s!%s", len(rows), path.name, sheet_name)
    return SourceSheet(rows=rows, column_count=column_count)


# ------------------ Formatting helpers ------------------
def set_column_widths(ws, max_col=COLUMN_COUNT, width=COLUMN_WIDTH):
    for col_idx in range(1, max_col + 1):
        ws.column_dimensions[get_column_letter(col_idx)].width = width


def format_sheet(ws, n_rows, max_col=COLUMN_COUNT, freeze_cell="A2"):
    """Bold bordered header row, plain bordered data rows, fixed widths."""
    for row in ws.iter_rows(min_row=1, max_row=n_rows, max_col=max_col):
        for cell in row:
            cell.font = HEADER_FONT if cell.row == 1 else DATA_FONT
            cell.border = CELL_BORDER
            # text that looks like a formula stays text
            if isinstance(cell.value, str) and cell.value.startswith("="):
                cell.data_type = "s"

    ws.freeze_panes = freeze_cell
    set_column_widths(ws, max_col=max_col)


# ------------------ Writing ------------------
def clean_cell(value):
    """Drop control characters that cannot be stored in a worksheet."""
    if not isinstance(value, str):
        return value
    cleaned = ILLEGAL_CHARACTERS_RE.sub("", value)
    if cleaned != value:
        logger.debug("Dropped illegal characters from cell %r", value)
    return cleaned


def write_sheet(out_path: Path, rows: list, sheet_name: str = SHEET_NAME) -> Path:
    """Write rows (first row is the header) to a new workbook at out_path.

    The workbook is saved under a temporary name and moved into place only
    once complete, so a failed run leaves nothing behind.
    """
    out_path = Path(out_path)
    tmp_path = out_path.with_name(f"~{out_path.stem}.partial{out_path.suffix}")
    df = pd.DataFrame([[clean_cell(v) for v in row] for row in rows])

    try:
        with pd.ExcelWriter(tmp_path, engine="openpyxl") as writer:
            df.to_excel(writer, sheet_name=sheet_name, index=False, header=False)
            format_sheet(writer.sheets[sheet_name], n_rows=len(rows))
        os.replace(tmp_path, out_path)
    finally:
        tmp_path.unlink(missing_ok=True)

    return out_path
