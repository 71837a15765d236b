"""Record predicates deciding which call rows qualify for aggregation."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Mapping, Protocol

from call_billing.errors import OptionsError
from call_billing.fields import ColumnMap
from call_billing.normalize import cell_text, parse_call_timestamp

END_OF_DAY = time(23, 59, 59, 999000)


def _parse_bound(value: Any, name: str) -> date | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError:
        raise OptionsError(f"Invalid {name} date {value!r}; expected YYYY-MM-DD") from None


@dataclass(frozen=True)
class DateWindow:
    """Inclusive calendar-date bounds; either side may be open."""

    start: date | None = None
    end: date | None = None

    @classmethod
    def from_strings(cls, start: Any = None, end: Any = None) -> "DateWindow":
        window = cls(_parse_bound(start, "start"), _parse_bound(end, "end"))
        if window.start is None and window.end is None:
            raise OptionsError("Please select at least a start date or end date for filtering")
        if window.start and window.end and window.start > window.end:
            raise OptionsError("Start date cannot be after end date")
        return window

    @property
    def lower(self) -> datetime | None:
        return datetime.combine(self.start, time.min) if self.start else None

    @property
    def upper(self) -> datetime | None:
        return datetime.combine(self.end, END_OF_DAY) if self.end else None

    def contains(self, moment: datetime | None) -> bool:
        if moment is None:
            return False
        if self.lower is not None and moment < self.lower:
            return False
        if self.upper is not None and moment > self.upper:
            return False
        return True

    def filename_infix(self) -> str:
        start = self.start.isoformat() if self.start else "start"
        end = self.end.isoformat() if self.end else "end"
        return f"_{start}_to_{end}"


class Predicate(Protocol):
    name: str

    def __call__(self, record: Mapping[str, Any], columns: ColumnMap) -> bool: ...


@dataclass
class ResponseCodeFilter:
    code: str = "200"
    name: str = "response_code"

    def __call__(self, record: Mapping[str, Any], columns: ColumnMap) -> bool:
        return cell_text(columns.get(record, "response")) == self.code


@dataclass
class DateRangeFilter:
    window: DateWindow
    name: str = "date_range"

    def __call__(self, record: Mapping[str, Any], columns: ColumnMap) -> bool:
        return self.window.contains(parse_call_timestamp(columns.get(record, "call_time")))


@dataclass
class RecordFilter:
    """AND-composition of predicates. With no predicates every record passes."""

    predicates: list[Predicate] = field(default_factory=list)

    def accepts(self, record: Mapping[str, Any], columns: ColumnMap) -> bool:
        return self.rejected_by(record, columns) is None

    def rejected_by(self, record: Mapping[str, Any], columns: ColumnMap) -> str | None:
        for predicate in self.predicates:
            if not predicate(record, columns):
                return predicate.name
        return None


def build_record_filter(
    *,
    response_code: str | None = None,
    date_window: DateWindow | None = None,
) -> RecordFilter:
    predicates: list[Predicate] = []
    if response_code is not None:
        predicates.append(ResponseCodeFilter(response_code))
    if date_window is not None:
        predicates.append(DateRangeFilter(date_window))
    return RecordFilter(predicates)
