from __future__ import annotations

import unittest

from call_billing.errors import SchemaError
from call_billing.fields import ColumnMap, dataset_columns, resolve_field, resolve_schema


class ResolveFieldTests(unittest.TestCase):
    def test_substring_match_is_case_and_space_insensitive(self):
        columns = ["Call  ID", "Called Number", "Response Code", "Call Duration (sec)"]
        self.assertEqual(resolve_field(columns, "destination"), "Called Number")
        self.assertEqual(resolve_field(columns, "response"), "Response Code")
        self.assertEqual(resolve_field(columns, "duration"), "Call Duration (sec)")

    def test_first_column_in_dataset_order_wins(self):
        columns = ["Customer Name", "Account Name"]
        self.assertEqual(resolve_field(columns, "customer"), "Customer Name")
        self.assertEqual(resolve_field(["Account Name", "Customer"], "customer"), "Account Name")

    def test_short_alias_needs_a_whole_token(self):
        self.assertIsNone(resolve_field(["Organization", "Company"], "ani"))
        self.assertEqual(resolve_field(["Organization", "Caller ANI"], "ani"), "Caller ANI")
        self.assertEqual(resolve_field(["ani_number"], "ani"), "ani_number")

    def test_amount_aliases(self):
        self.assertEqual(resolve_field(["Total Amount"], "total_amount"), "Total Amount")
        self.assertEqual(resolve_field(["amount_usd"], "total_amount"), "amount_usd")

    def test_unresolved_field(self):
        self.assertIsNone(resolve_field(["a", "b"], "phone"))


class ResolveSchemaTests(unittest.TestCase):
    def test_every_missing_field_is_reported_at_once(self):
        with self.assertRaises(SchemaError) as ctx:
            resolve_schema(["Destination"], ["destination", "response", "duration"], dataset="calls", file_name="calls.csv")
        self.assertEqual(ctx.exception.missing, ["response", "duration"])
        self.assertEqual(
            str(ctx.exception),
            'File "calls.csv" is missing required columns: response, duration',
        )

    def test_message_without_file_name(self):
        with self.assertRaises(SchemaError) as ctx:
            resolve_schema([], ["phone"], dataset="roster")
        self.assertEqual(str(ctx.exception), "The roster dataset is missing required columns: phone")

    def test_optional_fields_are_mapped_when_present(self):
        columns = resolve_schema(["Phone Number", "Customer", "Call Time"], ["phone"], ["call_time", "domain"], dataset="roster")
        self.assertEqual(columns.label("phone"), "Phone Number")
        self.assertIn("call_time", columns)
        self.assertNotIn("domain", columns)

    def test_column_map_lookup(self):
        columns = ColumnMap("calls", {"duration": "Dur"})
        self.assertEqual(columns.get({"Dur": "60"}, "duration"), "60")
        self.assertIsNone(columns.get({"Dur": "60"}, "ani"))

    def test_dataset_columns_keeps_first_seen_order(self):
        records = [{"b": 1, "a": 2}, {"a": 3, "c": 4}]
        self.assertEqual(dataset_columns(records), ["b", "a", "c"])


if __name__ == "__main__":
    unittest.main()
