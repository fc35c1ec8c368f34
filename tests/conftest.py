from pathlib import Path

import pytest
from openpyxl import Workbook

HEADINGS = ["Practice", "Patient", "DOB", "Order ID", "Test", "Expiration Date", "Physician", "Status"]


def data_row(patient, dob="05-03-1980", expires="Dec 15 2018 10:30AM"):
    return ["", patient, dob, f"ORD-{patient}", "AlloMap", expires, "Dr. Reyes", "Expired"]


@pytest.fixture
def make_report(tmp_path):
    """Write a source report: title row, headings row, then the given rows."""

    def _make(rows, name="CareEvolveReport.xlsx"):
        wb = Workbook()
        ws = wb.active
        ws.title = "Report"
        ws.append(["Expired Orders Report"])
        ws.append(HEADINGS)
        for row in rows:
            ws.append(row)
        path = tmp_path / name
        wb.save(path)
        return path

    return _make


@pytest.fixture
def xls_report():
    """Legacy BIFF .xls export: PracticeA with one December and one November order."""
    return Path(__file__).parent / "data" / "expired_orders_biff4.xls"
