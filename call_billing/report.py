"""
Report views: fixed, ordered column projections of billing rows.

Rounding happens here and only here. Money-like columns are quantised to two
places (half-up) from the full-precision values carried by BillingRow.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Iterable, Sequence

from call_billing.aggregate import AggregateBucket
from call_billing.reconcile import BillingRow, Tariff

TWO_PLACES = Decimal("0.01")

TEXT = "text"
INTEGER = "integer"
MONEY = "money"


def round_money(value: Any) -> Decimal:
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def _render(value: Any, kind: str) -> Any:
    if kind == MONEY:
        return round_money(value)
    if kind == INTEGER:
        return int(value)
    return value


@dataclass(frozen=True)
class Column:
    name: str
    accessor: Callable[[Any], Any]
    kind: str = TEXT


@dataclass(frozen=True)
class View:
    sheet_name: str
    columns: tuple[Column, ...]

    @property
    def headers(self) -> list[str]:
        return [column.name for column in self.columns]

    def project(self, rows: Iterable[Any]) -> list[dict[str, Any]]:
        return [
            {column.name: _render(column.accessor(row), column.kind) for column in self.columns}
            for row in rows
        ]


@dataclass
class Sheet:
    name: str
    headers: list[str]
    rows: list[dict[str, Any]]


SheetSet = list[Sheet]


def assemble(views: Sequence[tuple[View, Iterable[Any]]]) -> SheetSet:
    return [Sheet(name=view.sheet_name, headers=view.headers, rows=view.project(rows)) for view, rows in views]


def bucket_row(bucket: AggregateBucket, tariff: Tariff) -> BillingRow:
    """Billing row for an unreconciled aggregate, labelled by its key."""
    return BillingRow(
        label=bucket.key,
        key=bucket.key,
        duration_seconds=bucket.sum_duration,
        amount=bucket.sum_amount,
        record_count=bucket.count,
        tariff=tariff,
    )


# ── Toll-free billing ────────────────────────────────────────────────────────

CUSTOMER_INFO_VIEW = View(
    "Customer Info",
    (
        Column("Customer", lambda row: row.label),
        Column("Phone Number", lambda row: row.key),
    ),
)

DURATION_SUMMARY_VIEW = View(
    "Duration Summary",
    (
        Column("Total Duration (Seconds)", lambda row: row.duration_seconds, INTEGER),
        Column("Customer", lambda row: row.label),
        Column("Phone Number", lambda row: row.key),
    ),
)

BILLING_DETAILS_VIEW = View(
    "Billing Details",
    (
        Column("Customer", lambda row: row.label),
        Column("Duration (Seconds)", lambda row: row.duration_seconds, INTEGER),
        Column("Duration (Minutes)", lambda row: row.duration_minutes, MONEY),
        Column("Rate ($)", lambda row: row.rate, MONEY),
    ),
)

# ── ANI aggregation ──────────────────────────────────────────────────────────

ANI_SUMMARY_VIEW = View(
    "Processed Data",
    (
        Column("ani", lambda row: row.key),
        Column("duration", lambda row: row.duration_seconds, MONEY),
        Column("total_amount", lambda row: row.amount, MONEY),
        Column("Amount with Interest (30%)", lambda row: row.amount_with_surcharge, MONEY),
        Column("Number of Records", lambda row: row.record_count, INTEGER),
    ),
)

# ── Domain comparison ────────────────────────────────────────────────────────

DOMAIN_COMPARISON_VIEW = View(
    "Comparison Result",
    (
        Column("ANI", lambda row: row.label),
        Column("Total Duration (Minutes)", lambda row: row.duration_minutes, MONEY),
        Column("Total Amount", lambda row: row.amount, MONEY),
        Column("Amount with Interest (30%)", lambda row: row.amount_with_surcharge, MONEY),
        Column("Number of Records", lambda row: row.record_count, INTEGER),
    ),
)
