"""
The three billing flows, each a pure function of already-loaded datasets.

    tollfree  call log + customer roster  -> 3-sheet toll-free billing report
    ani       one or more call logs       -> per-ANI totals with surcharge
    compare   client roster + call log    -> per-domain totals with surcharge

All schema and dataset checks run before any aggregation, and every failure
is raised as a BillingError; nothing here touches the filesystem.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Sequence

from call_billing.aggregate import AggregationResult, AggregationStats, KeySpec, aggregate
from call_billing.config import RunOptions
from call_billing.errors import EmptyDatasetError, NoMatchError
from call_billing.fields import ColumnMap, dataset_columns, resolve_schema
from call_billing.filters import DateWindow, build_record_filter
from call_billing.normalize import normalize_phone_key, normalize_tollfree_key
from call_billing.reconcile import build_roster, reconcile, regroup_by_label
from call_billing.report import (
    ANI_SUMMARY_VIEW,
    BILLING_DETAILS_VIEW,
    CUSTOMER_INFO_VIEW,
    DOMAIN_COMPARISON_VIEW,
    DURATION_SUMMARY_VIEW,
    SheetSet,
    assemble,
    bucket_row,
)

TOLLFREE_CALL_FIELDS = ("destination", "response", "duration")
TOLLFREE_ROSTER_FIELDS = ("phone", "customer")
ANI_CALL_FIELDS = ("ani", "duration", "total_amount")
COMPARE_ROSTER_FIELDS = ("phone", "domain", "enable")

DATE_STAMP = "date"
ISO_STAMP = "iso"


@dataclass
class Dataset:
    """Rows from one source file plus whatever the loader noticed."""

    name: str
    records: list[dict[str, Any]]
    columns: list[str] | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def column_labels(self) -> list[str]:
        if self.columns is not None:
            return list(self.columns)
        return dataset_columns(self.records)


@dataclass
class RunResult:
    flow: str
    sheets: SheetSet
    metrics: dict[str, Any]
    warnings: list[str]
    file_prefix: str
    stamp_style: str
    date_window: DateWindow | None = None

    def sheet(self, name: str):
        for sheet in self.sheets:
            if sheet.name == name:
                return sheet
        raise KeyError(name)


def _require_rows(dataset: Dataset, message: str, kind: str) -> None:
    if not dataset.records:
        raise EmptyDatasetError(message, dataset=kind)


def _call_fields(base: Sequence[str], options: RunOptions) -> list[str]:
    fields = list(base)
    if options.date_window is not None:
        fields.append("call_time")
    return fields


def _resolve(dataset: Dataset, required: Sequence[str], kind: str) -> ColumnMap:
    return resolve_schema(dataset.column_labels, required, dataset=kind, file_name=dataset.name)


def _collect_warnings(datasets: Sequence[Dataset], aggregation: AggregationResult) -> list[str]:
    warnings: list[str] = []
    for dataset in datasets:
        warnings.extend(f"{dataset.name}: {warning}" for warning in dataset.warnings)
    warnings.extend(str(warning) for warning in aggregation.stats.warning_samples)
    return warnings


def run_tollfree_billing(calls: Dataset, roster: Dataset, options: RunOptions | None = None) -> RunResult:
    options = options or RunOptions()
    _require_rows(calls, "Call data file is empty", "calls")
    _require_rows(roster, "Customer file is empty", "roster")
    call_columns = _resolve(calls, _call_fields(TOLLFREE_CALL_FIELDS, options), "calls")
    roster_columns = _resolve(roster, TOLLFREE_ROSTER_FIELDS, "roster")

    record_filter = build_record_filter(response_code=options.response_code, date_window=options.date_window)
    aggregation = aggregate(calls.records, KeySpec("destination", normalize_tollfree_key), record_filter, call_columns)
    roster_result = build_roster(roster.records, roster_columns, KeySpec("phone", normalize_tollfree_key), "customer")
    reconciled = reconcile(
        aggregation.buckets,
        roster_result.entries,
        mode=options.reconcile_mode,
        tariff=options.tariff,
    )
    if reconciled.matched == 0:
        raise NoMatchError("No matching phone numbers found between the call data and customer files")

    by_customer = regroup_by_label(reconciled.rows)
    sheets = assemble(
        [
            (CUSTOMER_INFO_VIEW, reconciled.rows),
            (DURATION_SUMMARY_VIEW, reconciled.rows),
            (BILLING_DETAILS_VIEW, by_customer),
        ]
    )
    metrics = {
        **aggregation.stats.as_dict(),
        "buckets": len(aggregation.buckets),
        **roster_result.as_dict(),
        **reconciled.as_dict(),
        "report_rows": len(reconciled.rows),
        "unique_customers": len(by_customer),
    }
    return RunResult(
        flow="tollfree",
        sheets=sheets,
        metrics=metrics,
        warnings=_collect_warnings([calls, roster], aggregation),
        file_prefix="Toll_Free_Analysis",
        stamp_style=DATE_STAMP,
        date_window=options.date_window,
    )


def run_ani_aggregation(datasets: Sequence[Dataset], options: RunOptions | None = None) -> RunResult:
    options = options or RunOptions()
    usable = [dataset for dataset in datasets if dataset.records]
    if not usable:
        raise EmptyDatasetError("No valid data found in any of the uploaded files", dataset="calls")

    required = _call_fields(ANI_CALL_FIELDS, options)
    column_maps = [_resolve(dataset, required, "calls") for dataset in usable]

    record_filter = build_record_filter(date_window=options.date_window)
    key_fn = KeySpec("ani", normalize_phone_key)
    aggregation = AggregationResult(buckets={}, stats=AggregationStats())
    for dataset, columns in zip(usable, column_maps):
        aggregate(dataset.records, key_fn, record_filter, columns, into=aggregation)

    if not aggregation.buckets:
        raise NoMatchError("No records found matching the specified criteria")

    rows = [bucket_row(bucket, options.tariff) for bucket in aggregation.sorted_buckets()]
    sheets = assemble([(ANI_SUMMARY_VIEW, rows)])
    skipped = [dataset.name for dataset in datasets if not dataset.records]
    warnings = [f"{name}: file has no data rows and was skipped" for name in skipped]
    warnings.extend(_collect_warnings(usable, aggregation))
    metrics = {
        **aggregation.stats.as_dict(),
        "files_processed": len(usable),
        "files_skipped": len(skipped),
        "buckets": len(aggregation.buckets),
        "report_rows": len(rows),
    }
    return RunResult(
        flow="ani",
        sheets=sheets,
        metrics=metrics,
        warnings=warnings,
        file_prefix="processed_data",
        stamp_style=ISO_STAMP,
        date_window=options.date_window,
    )


def run_domain_comparison(roster: Dataset, calls: Dataset, options: RunOptions | None = None) -> RunResult:
    options = options or RunOptions()
    _require_rows(roster, "Client list file is empty", "roster")
    _require_rows(calls, "Call data file is empty", "calls")
    roster_columns = _resolve(roster, COMPARE_ROSTER_FIELDS, "roster")
    call_columns = _resolve(calls, _call_fields(ANI_CALL_FIELDS, options), "calls")

    roster_result = build_roster(
        roster.records,
        roster_columns,
        KeySpec("phone", normalize_phone_key),
        "domain",
        require_enabled=True,
        skip_blank_labels=True,
    )
    if not roster_result.entries:
        raise EmptyDatasetError("No enabled phone numbers found in client list", dataset="roster")

    record_filter = build_record_filter(date_window=options.date_window)
    aggregation = aggregate(calls.records, KeySpec("ani", normalize_phone_key), record_filter, call_columns)
    reconciled = reconcile(
        aggregation.buckets,
        roster_result.entries,
        mode=options.reconcile_mode,
        tariff=options.tariff,
    )
    if reconciled.matched == 0:
        raise NoMatchError("No matching phone numbers found between the two files")
    by_domain = regroup_by_label(reconciled.rows)

    sheets = assemble([(DOMAIN_COMPARISON_VIEW, by_domain)])
    metrics = {
        **aggregation.stats.as_dict(),
        "buckets": len(aggregation.buckets),
        **roster_result.as_dict(),
        **reconciled.as_dict(),
        "report_rows": len(by_domain),
    }
    return RunResult(
        flow="compare",
        sheets=sheets,
        metrics=metrics,
        warnings=_collect_warnings([roster, calls], aggregation),
        file_prefix="comparison_result",
        stamp_style=ISO_STAMP,
        date_window=options.date_window,
    )
