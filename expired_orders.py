"""
Filter an expired orders report down to the month after the run date.

Rows are regrouped under their practice, DOBs are reformatted, and the result
is written to ExpiredOrders_<MONTH>_<YEAR>.xlsx in the target directory.

    expired-orders 18-11-2018 C:\\temp\\CareEvolveReport.xls C:\\customercare\\reports
"""
import argparse
import logging
import sys
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, NamedTuple, Optional

import pandas as pd

from sheet_io import (
    COLUMN_COUNT,
    SOURCE_DATE_FORMAT,
    SOURCE_TIMESTAMP_FORMAT,
    SourceSheet,
    read_source_sheet,
    write_sheet,
)

logger = logging.getLogger(__name__)

# ---------------- CONFIG ----------------
PRACTICE_INDEX = 0
DOB_INDEX = 2
EXPIRE_DATE_INDEX = 5
HEADER_ROW = 1          # column headings
FIRST_DATA_ROW = 2

RUN_DATE_FORMAT = SOURCE_DATE_FORMAT      # 18-11-2018
DOB_FORMAT = SOURCE_DATE_FORMAT           # 05-03-1980
EXPIRED_FORMAT = SOURCE_TIMESTAMP_FORMAT  # Dec 15 2018 10:30AM
TARGET_FORMAT = "%b %d, %Y"               # Mar 05, 1980

OUTPUT_PREFIX = "ExpiredOrders"
OUTPUT_SUFFIX = ".xlsx"

# practice for data rows that appear before any practice row
NO_PRACTICE = ""
# ----------------------------------------


# ------------------ Date window ------------------
class DateWindow(NamedTuple):
    start: pd.Timestamp
    end: pd.Timestamp

    def contains(self, ts) -> bool:
        # both bounds exclusive
        return self.start < ts < self.end


def compute_window(run_date: date) -> DateWindow:
    """Calendar month following the run date's month, as [start, end)."""
    start = pd.Timestamp(run_date).normalize() + pd.offsets.MonthBegin(1)
    end = start + pd.offsets.MonthBegin(1)
    return DateWindow(start, end)


# ------------------ Filtering & grouping ------------------
def should_keep(expiration_text, window: DateWindow, log: logging.Logger = logger) -> bool:
    """
    Keep a row when its expiration falls inside the window.
    Rows with no expiration, or one that does not parse, are always kept.
    """
    if expiration_text is None or pd.isna(expiration_text) or str(expiration_text) == "":
        return True

    text = str(expiration_text).replace("  ", " ")
    expires = pd.to_datetime(text, format=EXPIRED_FORMAT, errors="coerce")
    if pd.isna(expires):
        log.debug("Ignoring unparseable expiration date %r", expiration_text)
        return True

    return window.contains(expires)


def iter_tagged_rows(sheet: SourceSheet) -> Iterator[tuple[Optional[str], Optional[list]]]:
    """
    Walk the data region once, carrying the current practice along.

    Yields (practice, None) for a practice row and (practice, row) for a data
    row. practice is None for data rows seen before the first practice row.
    """
    current = None
    for r in range(FIRST_DATA_ROW, sheet.row_count):
        practice = sheet.cell(r, PRACTICE_INDEX)
        if practice:
            current = practice
            yield practice, None
            continue
        yield current, sheet.row(r)


def extract_groups(sheet: SourceSheet, window: DateWindow, log: logging.Logger = logger) -> dict:
    """Practice name -> kept rows, both in the order first seen in the sheet."""
    groups: dict[str, list] = {}

    for practice, row in iter_tagged_rows(sheet):
        if practice is None:
            if NO_PRACTICE not in groups:
                log.warning("Data rows found before any practice row; grouping them under a blank practice")
            practice = NO_PRACTICE

        members = groups.setdefault(practice, [])
        if row is not None and should_keep(row[EXPIRE_DATE_INDEX], window, log=log):
            members.append(row)

    return groups


# ------------------ Report layout ------------------
def format_dob(text, log: logging.Logger = logger) -> str:
    """05-03-1980 -> Mar 05, 1980. Blank or unparseable values give ""."""
    dob = "" if text is None else str(text).strip()
    if not dob:
        return ""

    parsed = pd.to_datetime(dob, format=DOB_FORMAT, errors="coerce")
    if pd.isna(parsed):
        log.debug("Ignoring unparseable DOB %r", text)
        return ""
    return parsed.strftime(TARGET_FORMAT)


def build_report_rows(groups: dict, headings: list, log: logging.Logger = logger) -> list:
    """
    Creates the output rows:
    - Column headings
    - For each practice with kept rows, a practice row
    - Then its patients, DOB reformatted
    Practices with nothing kept are left out entirely.
    """
    rows = [list(headings)]

    for practice, members in groups.items():
        if not members:
            continue

        rows.append([practice] + [""] * (COLUMN_COUNT - 1))

        for member in members:
            out = list(member)
            out[DOB_INDEX] = format_dob(member[DOB_INDEX], log=log)
            rows.append(out)

    return rows


def output_path(target_dir: Path, window: DateWindow) -> Path:
    month = window.start.month_name().upper()
    return Path(target_dir) / f"{OUTPUT_PREFIX}_{month}_{window.start.year}{OUTPUT_SUFFIX}"


def write_report(destination: Path, groups: dict, headings: list, log: logging.Logger = logger) -> Path:
    rows = build_report_rows(groups, headings, log=log)
    write_sheet(destination, rows)
    log.info("Formatted Excel file saved to %s", destination)
    return destination


# ------------------ Run ------------------
def parse_run_date(text: str) -> date:
    return datetime.strptime(text.strip(), RUN_DATE_FORMAT).date()


def format_report(run_date: date, report_path: Path, target_dir: Path, log: logging.Logger = logger) -> Path:
    report_path = Path(report_path)
    target_dir = Path(target_dir)

    if not report_path.exists():
        raise FileNotFoundError(f"Report not found: {report_path}")
    if not target_dir.is_dir():
        raise NotADirectoryError(f"Target directory not found: {target_dir}")

    window = compute_window(run_date)
    sheet = read_source_sheet(report_path)
    groups = extract_groups(sheet, window, log=log)

    kept = sum(len(members) for members in groups.values())
    log.info(
        "Kept %d rows across %d practices expiring between %s and %s",
        kept,
        sum(1 for members in groups.values() if members),
        window.start.date(),
        window.end.date(),
    )

    return write_report(output_path(target_dir, window), groups, sheet.row(HEADER_ROW), log=log)


def main(argv: Optional[list] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Filter an expired orders report to the month after the run date, grouped by practice"
    )
    parser.add_argument("run_date", help="Run date in DD-MM-YYYY format; the report covers the following month")
    parser.add_argument("report_path", type=Path, help="Expired orders report exported from CareEvolve")
    parser.add_argument("target_dir", type=Path, help="Directory for the formatted spreadsheet")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging verbosity (default: INFO)",
    )
    parser.add_argument(
        "--strict-exit",
        action="store_true",
        help="Exit with status 1 when formatting fails (default always exits 0)",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level), format="%(asctime)s %(levelname)s %(message)s")

    try:
        run_date = parse_run_date(args.run_date)
        logger.info("Formatting %s for run date: %s", args.report_path, run_date.strftime(TARGET_FORMAT))
        format_report(run_date, args.report_path, args.target_dir)
        logger.info("Formatting complete.")
    except Exception:
        logger.exception("Error running the expired orders formatter.")
        return 1 if args.strict_exit else 0

    return 0


if __name__ == "__main__":
    sys.exit(main())
