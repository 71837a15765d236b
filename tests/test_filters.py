from __future__ import annotations

import unittest
from datetime import date, datetime

from call_billing.errors import OptionsError
from call_billing.fields import ColumnMap
from call_billing.filters import DateRangeFilter, DateWindow, RecordFilter, ResponseCodeFilter, build_record_filter


CALL_COLUMNS = ColumnMap("calls", {"response": "Response", "call_time": "Call Time"})


class DateWindowTests(unittest.TestCase):
    def test_needs_at_least_one_bound(self):
        with self.assertRaises(OptionsError) as ctx:
            DateWindow.from_strings(None, "")
        self.assertEqual(str(ctx.exception), "Please select at least a start date or end date for filtering")

    def test_start_after_end_is_rejected(self):
        with self.assertRaises(OptionsError) as ctx:
            DateWindow.from_strings("2025-10-02", "2025-10-01")
        self.assertEqual(str(ctx.exception), "Start date cannot be after end date")

    def test_bad_iso_date(self):
        with self.assertRaises(OptionsError):
            DateWindow.from_strings("10/01/2025", None)

    def test_bounds_cover_whole_days(self):
        window = DateWindow.from_strings("2025-10-01", "2025-10-01")
        self.assertTrue(window.contains(datetime(2025, 10, 1, 0, 0)))
        self.assertTrue(window.contains(datetime(2025, 10, 1, 23, 59, 59)))
        self.assertFalse(window.contains(datetime(2025, 10, 2, 0, 0)))
        self.assertFalse(window.contains(datetime(2025, 9, 30, 23, 59, 59)))
        self.assertFalse(window.contains(None))

    def test_open_ended_windows(self):
        after = DateWindow(start=date(2025, 1, 1))
        self.assertTrue(after.contains(datetime(2030, 1, 1)))
        self.assertFalse(after.contains(datetime(2024, 12, 31, 23, 59)))
        self.assertEqual(after.filename_infix(), "_2025-01-01_to_end")
        self.assertEqual(DateWindow(end=date(2025, 2, 1)).filename_infix(), "_start_to_2025-02-01")


class PredicateTests(unittest.TestCase):
    def test_response_code_compares_text(self):
        predicate = ResponseCodeFilter("200")
        self.assertTrue(predicate({"Response": "200"}, CALL_COLUMNS))
        self.assertTrue(predicate({"Response": 200.0}, CALL_COLUMNS))
        self.assertFalse(predicate({"Response": "404"}, CALL_COLUMNS))
        self.assertFalse(predicate({"Response": None}, CALL_COLUMNS))

    def test_date_range_scenario(self):
        predicate = DateRangeFilter(DateWindow.from_strings("2025-10-01", "2025-10-01"))
        self.assertFalse(predicate({"Call Time": "10/02/2025 10:00"}, CALL_COLUMNS))
        self.assertTrue(predicate({"Call Time": "10-01-2025 23:59:59"}, CALL_COLUMNS))
        self.assertFalse(predicate({"Call Time": "not a date"}, CALL_COLUMNS))

    def test_composition_reports_first_rejecting_predicate(self):
        record_filter = build_record_filter(
            response_code="200",
            date_window=DateWindow.from_strings("2025-10-01", None),
        )
        self.assertEqual(record_filter.rejected_by({"Response": "500", "Call Time": "1/1/2020"}, CALL_COLUMNS), "response_code")
        self.assertEqual(record_filter.rejected_by({"Response": "200", "Call Time": "1/1/2020"}, CALL_COLUMNS), "date_range")
        self.assertTrue(record_filter.accepts({"Response": "200", "Call Time": "10/5/2025"}, CALL_COLUMNS))

    def test_empty_filter_accepts_everything(self):
        self.assertTrue(RecordFilter().accepts({}, CALL_COLUMNS))
        self.assertEqual(build_record_filter().predicates, [])


if __name__ == "__main__":
    unittest.main()
