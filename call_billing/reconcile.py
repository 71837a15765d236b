"""
Roster building and key-equality joins between aggregates and reference data.

The roster is deduplicated first-occurrence-wins. Joins iterate the reference
side in its own order, so the same inputs always give the same rows; the
result is then stably sorted by display label using plain code-point order.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

from call_billing.aggregate import FIRST_DATA_ROW, AggregateBucket, AggregationResult, KeySpec
from call_billing.fields import ColumnMap
from call_billing.normalize import is_blank, normalize_display_label, normalize_flag

UNIT_RATE = Decimal("0.035")
SURCHARGE_FACTOR = Decimal("1.30")
SECONDS_PER_MINUTE = Decimal(60)


class ReconcileMode(str, enum.Enum):
    # only roster entries with activity produce rows
    MATCHED = "matched"
    # every roster entry produces a row, zero totals when there was no activity
    ALL_REFERENCE = "all-reference"


@dataclass(frozen=True)
class Tariff:
    unit_rate: Decimal = UNIT_RATE
    surcharge_factor: Decimal = SURCHARGE_FACTOR


DEFAULT_TARIFF = Tariff()


@dataclass(frozen=True)
class RosterEntry:
    key: str
    label: str
    enabled: bool = True
    row_number: int = 0


@dataclass
class RosterResult:
    entries: list[RosterEntry]
    rows: int = 0
    invalid_key: int = 0
    skipped_dash: int = 0
    blank_label: int = 0
    disabled: int = 0
    duplicates: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "roster_rows": self.rows,
            "roster_entries": len(self.entries),
            "roster_invalid_key": self.invalid_key,
            "skipped_dash": self.skipped_dash,
            "roster_blank_label": self.blank_label,
            "roster_disabled": self.disabled,
            "roster_duplicates": self.duplicates,
        }


@dataclass
class BillingRow:
    label: str
    key: str | None
    duration_seconds: int = 0
    amount: Decimal = Decimal(0)
    record_count: int = 0
    tariff: Tariff = DEFAULT_TARIFF

    @property
    def duration_minutes(self) -> Decimal:
        return Decimal(self.duration_seconds) / SECONDS_PER_MINUTE

    @property
    def rate(self) -> Decimal:
        return self.duration_minutes * self.tariff.unit_rate

    @property
    def amount_with_surcharge(self) -> Decimal:
        return self.amount * self.tariff.surcharge_factor


@dataclass
class ReconcileResult:
    rows: list[BillingRow]
    matched: int = 0
    unmatched_reference: int = 0
    unmatched_buckets: int = 0
    unmatched_keys: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, int]:
        return {
            "matched": self.matched,
            "unmatched_roster": self.unmatched_reference,
            "unmatched_buckets": self.unmatched_buckets,
        }


def build_roster(
    records: Iterable[Mapping[str, Any]],
    columns: ColumnMap,
    key_fn: KeySpec,
    label_field: str,
    *,
    require_enabled: bool = False,
    skip_blank_labels: bool = False,
) -> RosterResult:
    """
    Build deduplicated roster entries from reference rows.

    A label that is exactly "-" after trimming drops the row outright. With
    require_enabled, rows whose "enable" flag is not truthy are ignored before
    deduplication, so a disabled duplicate never shadows an enabled one.
    """
    result = RosterResult(entries=[])
    seen: set[str] = set()

    for row_number, record in enumerate(records, start=FIRST_DATA_ROW):
        result.rows += 1
        key = key_fn(record, columns)
        if key is None:
            result.invalid_key += 1
            continue

        raw_label = columns.get(record, label_field)
        label = normalize_display_label(raw_label, exclude_dash=True)
        if label is None:
            result.skipped_dash += 1
            continue
        if skip_blank_labels and is_blank(raw_label):
            result.blank_label += 1
            continue

        enabled = normalize_flag(columns.get(record, "enable")) if "enable" in columns else True
        if require_enabled and not enabled:
            result.disabled += 1
            continue

        if key in seen:
            result.duplicates += 1
            continue
        seen.add(key)
        result.entries.append(RosterEntry(key=key, label=label, enabled=enabled, row_number=row_number))

    return result


def entries_from_buckets(aggregation: AggregationResult) -> list[RosterEntry]:
    """Reference entries for an aggregate-to-aggregate join, labelled by key."""
    return [RosterEntry(key=bucket.key, label=bucket.key) for bucket in aggregation.sorted_buckets()]


def _row_from_bucket(entry: RosterEntry, bucket: AggregateBucket | None, tariff: Tariff) -> BillingRow:
    if bucket is None:
        return BillingRow(label=entry.label, key=entry.key, tariff=tariff)
    return BillingRow(
        label=entry.label,
        key=entry.key,
        duration_seconds=bucket.sum_duration,
        amount=bucket.sum_amount,
        record_count=bucket.count,
        tariff=tariff,
    )


def reconcile(
    buckets: Mapping[str, AggregateBucket],
    entries: Sequence[RosterEntry],
    *,
    mode: ReconcileMode = ReconcileMode.MATCHED,
    tariff: Tariff = DEFAULT_TARIFF,
) -> ReconcileResult:
    """
    Join buckets to reference entries on canonical key.

    Buckets whose key never appears among the entries are dropped and only
    counted. Entries without a bucket produce a row only in ALL_REFERENCE mode.
    """
    rows: list[BillingRow] = []
    result = ReconcileResult(rows=rows)
    referenced: set[str] = set()

    for entry in entries:
        referenced.add(entry.key)
        bucket = buckets.get(entry.key)
        if bucket is None:
            result.unmatched_reference += 1
            if mode is ReconcileMode.ALL_REFERENCE:
                rows.append(_row_from_bucket(entry, None, tariff))
            continue
        result.matched += 1
        rows.append(_row_from_bucket(entry, bucket, tariff))

    result.unmatched_keys = sorted(key for key in buckets if key not in referenced)
    result.unmatched_buckets = len(result.unmatched_keys)
    rows.sort(key=lambda row: row.label)
    return result


def regroup_by_label(rows: Iterable[BillingRow]) -> list[BillingRow]:
    """Sum rows sharing a display label; labels keep their first-seen order."""
    grouped: dict[str, BillingRow] = {}
    for row in rows:
        existing = grouped.get(row.label)
        if existing is None:
            grouped[row.label] = BillingRow(
                label=row.label,
                key=None,
                duration_seconds=row.duration_seconds,
                amount=row.amount,
                record_count=row.record_count,
                tariff=row.tariff,
            )
            continue
        existing.duration_seconds += row.duration_seconds
        existing.amount += row.amount
        existing.record_count += row.record_count
    return list(grouped.values())
