from __future__ import annotations

import unittest
from decimal import Decimal

from call_billing.aggregate import AggregateBucket, KeySpec, aggregate
from call_billing.fields import ColumnMap
from call_billing.normalize import normalize_phone_key, normalize_tollfree_key
from call_billing.reconcile import (
    BillingRow,
    ReconcileMode,
    RosterEntry,
    Tariff,
    build_roster,
    entries_from_buckets,
    reconcile,
    regroup_by_label,
)


ROSTER_COLUMNS = ColumnMap("roster", {"phone": "Phone", "customer": "Customer"})
CLIENT_COLUMNS = ColumnMap("roster", {"phone": "Phone Number", "domain": "Domain", "enable": "Enable"})


def bucket(key, seconds=0, amount="0", count=1):
    return AggregateBucket(key, sum_duration=seconds, sum_amount=Decimal(amount), count=count)


class BuildRosterTests(unittest.TestCase):
    def test_first_occurrence_wins_and_dash_drops(self):
        records = [
            {"Phone": "8005551234", "Customer": "Acme"},
            {"Phone": "18005551234", "Customer": "Acme Again"},
            {"Phone": "8775550000", "Customer": " - "},
            {"Phone": "8885550000", "Customer": ""},
            {"Phone": "2125551234", "Customer": "Local"},
        ]
        result = build_roster(records, ROSTER_COLUMNS, KeySpec("phone", normalize_tollfree_key), "customer")
        self.assertEqual(
            [(entry.key, entry.label) for entry in result.entries],
            [("8005551234", "Acme"), ("8885550000", "Unknown")],
        )
        self.assertEqual(result.entries[0].row_number, 2)
        self.assertEqual(
            result.as_dict(),
            {
                "roster_rows": 5,
                "roster_entries": 2,
                "roster_invalid_key": 1,
                "skipped_dash": 1,
                "roster_blank_label": 0,
                "roster_disabled": 0,
                "roster_duplicates": 1,
            },
        )

    def test_dash_entry_does_not_claim_its_key(self):
        records = [
            {"Phone": "8005551234", "Customer": "-"},
            {"Phone": "8005551234", "Customer": "Acme"},
        ]
        result = build_roster(records, ROSTER_COLUMNS, KeySpec("phone", normalize_tollfree_key), "customer")
        self.assertEqual([entry.label for entry in result.entries], ["Acme"])

    def test_disabled_and_blank_rows_are_skipped_before_dedup(self):
        records = [
            {"Phone Number": "2125551234", "Domain": "a.example", "Enable": "no"},
            {"Phone Number": "2125551234", "Domain": "b.example", "Enable": "yes"},
            {"Phone Number": "3105550000", "Domain": "", "Enable": "yes"},
            {"Phone Number": "4155550000", "Domain": "c.example", "Enable": "TRUE"},
        ]
        result = build_roster(
            records,
            CLIENT_COLUMNS,
            KeySpec("phone", normalize_phone_key),
            "domain",
            require_enabled=True,
            skip_blank_labels=True,
        )
        self.assertEqual([entry.label for entry in result.entries], ["b.example", "c.example"])
        self.assertEqual((result.disabled, result.blank_label, result.duplicates), (1, 1, 0))


class ReconcileTests(unittest.TestCase):
    def test_matched_mode_drops_both_kinds_of_orphans(self):
        buckets = {"8005551234": bucket("8005551234", 180), "8665550000": bucket("8665550000", 30)}
        entries = [RosterEntry("8775550000", "Zed"), RosterEntry("8005551234", "Acme")]
        result = reconcile(buckets, entries)
        self.assertEqual([(row.label, row.key, row.duration_seconds) for row in result.rows], [("Acme", "8005551234", 180)])
        self.assertEqual(result.as_dict(), {"matched": 1, "unmatched_roster": 1, "unmatched_buckets": 1})
        self.assertEqual(result.unmatched_keys, ["8665550000"])

    def test_all_reference_mode_keeps_idle_entries(self):
        buckets = {"8005551234": bucket("8005551234", 180)}
        entries = [RosterEntry("8775550000", "Zed"), RosterEntry("8005551234", "Acme")]
        result = reconcile(buckets, entries, mode=ReconcileMode.ALL_REFERENCE)
        self.assertEqual([(row.label, row.duration_seconds, row.record_count) for row in result.rows], [("Acme", 180, 1), ("Zed", 0, 0)])

    def test_sort_is_stable_and_ordinal(self):
        buckets = {key: bucket(key) for key in ["2125550001", "2125550002", "2125550003"]}
        entries = [
            RosterEntry("2125550001", "beta"),
            RosterEntry("2125550002", "Beta"),
            RosterEntry("2125550003", "beta"),
        ]
        result = reconcile(buckets, entries)
        self.assertEqual([row.key for row in result.rows], ["2125550002", "2125550001", "2125550003"])

    def test_aggregate_to_aggregate_join(self):
        columns = ColumnMap("calls", {"ani": "ANI", "duration": "Duration", "total_amount": "Amount"})
        key_fn = KeySpec("ani", normalize_phone_key)
        left = aggregate([{"ANI": "2125551234", "Duration": "60", "Amount": "1"}], key_fn, None, columns)
        right = aggregate(
            [{"ANI": "12125551234", "Duration": "5", "Amount": "0"}, {"ANI": "3105550000", "Duration": "5", "Amount": "0"}],
            key_fn,
            None,
            columns,
        )
        result = reconcile(left.buckets, entries_from_buckets(right))
        self.assertEqual([(row.label, row.duration_seconds) for row in result.rows], [("2125551234", 60)])
        self.assertEqual(result.unmatched_reference, 1)


class BillingRowTests(unittest.TestCase):
    def test_derived_values_keep_full_precision(self):
        row = BillingRow("Acme", "8005551234", duration_seconds=180, amount=Decimal("200.00"))
        self.assertEqual(row.duration_minutes, Decimal(3))
        self.assertEqual(row.rate, Decimal("0.105"))
        self.assertEqual(row.amount_with_surcharge, Decimal("260.0000"))

    def test_custom_tariff(self):
        row = BillingRow("Acme", None, duration_seconds=120, amount=Decimal(10), tariff=Tariff(Decimal("0.5"), Decimal("2")))
        self.assertEqual(row.rate, Decimal("1.0"))
        self.assertEqual(row.amount_with_surcharge, Decimal(20))

    def test_regroup_by_label_sums_in_first_seen_order(self):
        rows = [
            BillingRow("Acme", "8005551234", 60, Decimal("1.50"), 1),
            BillingRow("Bolt", "8665550000", 30, Decimal("2"), 2),
            BillingRow("Acme", "8775550000", 90, Decimal("0.50"), 3),
        ]
        grouped = regroup_by_label(rows)
        self.assertEqual(
            [(row.label, row.key, row.duration_seconds, row.amount, row.record_count) for row in grouped],
            [("Acme", None, 150, Decimal("2.00"), 4), ("Bolt", None, 30, Decimal("2"), 2)],
        )
        self.assertEqual(rows[0].duration_seconds, 60)


if __name__ == "__main__":
    unittest.main()
