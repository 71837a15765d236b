"""Group qualifying call records by canonical key and accumulate totals."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping

from call_billing.errors import ValueNormalizationWarning
from call_billing.fields import ColumnMap
from call_billing.filters import RecordFilter
from call_billing.normalize import is_blank, parse_amount, parse_call_timestamp, parse_duration

WARNING_SAMPLE_LIMIT = 10

# Header occupies row 1 of every source file.
FIRST_DATA_ROW = 2


@dataclass(frozen=True)
class KeySpec:
    """Derives a canonical key from one resolved field of a record."""

    field: str
    normalizer: Callable[[Any], str | None]

    def __call__(self, record: Mapping[str, Any], columns: ColumnMap) -> str | None:
        return self.normalizer(columns.get(record, self.field))


@dataclass
class AggregateBucket:
    key: str
    sum_duration: int = 0
    sum_amount: Decimal = Decimal(0)
    count: int = 0

    def add(self, duration: int, amount: Decimal) -> None:
        self.sum_duration += duration
        self.sum_amount += amount
        self.count += 1


@dataclass
class AggregationStats:
    scanned: int = 0
    filtered_out: int = 0
    invalid_key: int = 0
    accepted: int = 0
    rejected_by: Counter = field(default_factory=Counter)
    normalization_counts: Counter = field(default_factory=Counter)
    warning_samples: list[ValueNormalizationWarning] = field(default_factory=list)

    def record_warning(self, warning: ValueNormalizationWarning) -> None:
        self.normalization_counts[warning.kind] += 1
        if len(self.warning_samples) < WARNING_SAMPLE_LIMIT:
            self.warning_samples.append(warning)

    def as_dict(self) -> dict[str, Any]:
        return {
            "records_scanned": self.scanned,
            "filtered_out": self.filtered_out,
            "invalid_key": self.invalid_key,
            "accepted": self.accepted,
            "rejected_by": dict(sorted(self.rejected_by.items())),
            "normalization_warnings": dict(sorted(self.normalization_counts.items())),
        }


@dataclass
class AggregationResult:
    buckets: dict[str, AggregateBucket]
    stats: AggregationStats

    def sorted_buckets(self) -> list[AggregateBucket]:
        return [self.buckets[key] for key in sorted(self.buckets)]


def aggregate(
    records: Iterable[Mapping[str, Any]],
    key_fn: KeySpec,
    record_filter: RecordFilter | None,
    columns: ColumnMap,
    *,
    into: AggregationResult | None = None,
) -> AggregationResult:
    """
    Fold records into buckets keyed by key_fn.

    Rejected records and records without a valid key are skipped and only
    counted. Bucket contents do not depend on record order, so several
    datasets can be folded into one result by passing it back as `into`.
    """
    result = into if into is not None else AggregationResult(buckets={}, stats=AggregationStats())
    buckets = result.buckets
    stats = result.stats

    for row_number, record in enumerate(records, start=FIRST_DATA_ROW):
        stats.scanned += 1

        if record_filter is not None:
            rejected = record_filter.rejected_by(record, columns)
            if rejected is not None:
                stats.filtered_out += 1
                stats.rejected_by[rejected] += 1
                if rejected == "date_range":
                    _check_timestamp(record, columns, stats, row_number)
                continue

        key = key_fn(record, columns)
        if key is None:
            stats.invalid_key += 1
            raw_key = columns.get(record, key_fn.field)
            if not is_blank(raw_key):
                stats.record_warning(
                    ValueNormalizationWarning("invalid_key", key_fn.field, raw_key, row_number)
                )
            continue

        raw_duration = columns.get(record, "duration")
        duration = parse_duration(raw_duration)
        if duration is None:
            stats.record_warning(
                ValueNormalizationWarning("bad_duration", "duration", raw_duration, row_number)
            )
            duration = 0

        raw_amount = columns.get(record, "total_amount")
        amount = parse_amount(raw_amount)
        if amount is None:
            stats.record_warning(
                ValueNormalizationWarning("bad_amount", "total_amount", raw_amount, row_number)
            )
            amount = Decimal(0)

        bucket = buckets.get(key)
        if bucket is None:
            bucket = buckets[key] = AggregateBucket(key)
        bucket.add(duration, amount)
        stats.accepted += 1

    return result


def _check_timestamp(
    record: Mapping[str, Any],
    columns: ColumnMap,
    stats: AggregationStats,
    row_number: int,
) -> None:
    raw_time = columns.get(record, "call_time")
    if not is_blank(raw_time) and parse_call_timestamp(raw_time) is None:
        stats.record_warning(ValueNormalizationWarning("bad_date", "call_time", raw_time, row_number))
