from __future__ import annotations

import io
import os
import tempfile
import unittest
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path
from unittest import mock

from openpyxl import load_workbook

from call_billing.filters import DateWindow
from call_billing.report import Sheet
from call_billing.workbook import STAMP_ENV_VAR, report_filename, sheet_set_bytes, write_sheet_set


NOW = datetime(2025, 10, 1, 12, 30, 45, tzinfo=timezone.utc)


def sample_sheets():
    return [
        Sheet("Customer Info", ["Customer", "Phone Number"], [{"Customer": "Acme", "Phone Number": "8005551234"}]),
        Sheet(
            "Billing Details",
            ["Customer", "Duration (Seconds)", "Rate ($)"],
            [{"Customer": "Acme", "Duration (Seconds)": 180, "Rate ($)": Decimal("0.11")}],
        ),
    ]


class ReportFilenameTests(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch.dict(os.environ)
        patcher.start()
        self.addCleanup(patcher.stop)
        os.environ.pop(STAMP_ENV_VAR, None)

    def test_date_stamp(self):
        self.assertEqual(report_filename("Toll_Free_Analysis", "date", now=NOW), "Toll_Free_Analysis_2025-10-01.xlsx")

    def test_iso_stamp_with_window(self):
        window = DateWindow(start=date(2025, 10, 1), end=date(2025, 10, 3))
        self.assertEqual(
            report_filename("processed_data", "iso", window, now=NOW),
            "processed_data_2025-10-01_to_2025-10-03_2025-10-01T12-30-45.xlsx",
        )

    def test_open_window_uses_placeholders(self):
        window = DateWindow(end=date(2025, 10, 3))
        self.assertEqual(
            report_filename("comparison_result", "iso", window, now=NOW),
            "comparison_result_start_to_2025-10-03_2025-10-01T12-30-45.xlsx",
        )

    def test_env_override(self):
        os.environ[STAMP_ENV_VAR] = "FIXED"
        self.assertEqual(report_filename("processed_data", "iso", now=NOW), "processed_data_FIXED.xlsx")


class WriteSheetSetTests(unittest.TestCase):
    def test_sheets_headers_and_values(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_sheet_set(sample_sheets(), Path(tmpdir) / "out" / "report.xlsx")
            wb = load_workbook(path)
            self.assertEqual(wb.sheetnames, ["Customer Info", "Billing Details"])

            info = wb["Customer Info"]
            self.assertEqual([cell.value for cell in info[1]], ["Customer", "Phone Number"])
            self.assertEqual(info["B2"].value, "8005551234")
            self.assertTrue(info["A1"].font.bold)
            self.assertEqual(info.freeze_panes, "A2")

            details = wb["Billing Details"]
            self.assertEqual(details["B2"].value, 180)
            self.assertAlmostEqual(details["C2"].value, 0.11)
            self.assertEqual(details["C2"].number_format, "0.00")

    def test_headers_written_for_empty_sheet(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = write_sheet_set([Sheet("Processed Data", ["ani", "duration"], [])], Path(tmpdir) / "r.xlsx")
            ws = load_workbook(path)["Processed Data"]
            self.assertEqual(ws.max_row, 1)
            self.assertEqual([cell.value for cell in ws[1]], ["ani", "duration"])

    def test_nothing_to_write(self):
        with self.assertRaises(ValueError):
            sheet_set_bytes([])

    def test_bytes_round_trip_to_same_cells(self):
        wb = load_workbook(io.BytesIO(sheet_set_bytes(sample_sheets())))
        self.assertEqual(wb["Billing Details"]["A2"].value, "Acme")


if __name__ == "__main__":
    unittest.main()
