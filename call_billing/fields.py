"""
Column resolution for loosely named input headers.

Each canonical field has an ordered list of alias substrings. A dataset's
headers are resolved once, before any row is read; the first header (in the
dataset's own column order) whose normalised form contains an alias wins.
Short aliases such as "ani" must match a whole header token so that
"Organization" is never mistaken for an ANI column.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from call_billing.errors import SchemaError

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "destination": ("destination", "called"),
    "response": ("response",),
    "duration": ("duration",),
    "phone": ("phone",),
    "customer": ("customer", "name"),
    "ani": ("ani",),
    "total_amount": ("total_amount", "total amount", "amount"),
    "call_time": ("call_time", "call time"),
    "domain": ("domain",),
    "enable": ("enable",),
}

SHORT_ALIAS_LENGTH = 3
TOKEN_SPLIT_RE = re.compile(r"[^a-z0-9]+")


def _normalise_header_for_match(value: Any) -> str:
    return " ".join(str(value or "").strip().lower().split())


def _header_tokens(normalised: str) -> set[str]:
    return {token for token in TOKEN_SPLIT_RE.split(normalised) if token}


def _alias_matches(alias: str, normalised: str) -> bool:
    if len(alias) <= SHORT_ALIAS_LENGTH:
        return alias in _header_tokens(normalised)
    return alias in normalised


def resolve_field(columns: Iterable[Any], field_name: str) -> str | None:
    """Return the first column label matching field_name's aliases, or None."""
    aliases = FIELD_ALIASES[field_name]
    for column in columns:
        normalised = _normalise_header_for_match(column)
        if any(_alias_matches(alias, normalised) for alias in aliases):
            return column
    return None


@dataclass
class ColumnMap:
    """Canonical field -> original column label for one dataset."""

    dataset: str
    labels: dict[str, str] = field(default_factory=dict)

    def __contains__(self, field_name: str) -> bool:
        return field_name in self.labels

    def label(self, field_name: str) -> str | None:
        return self.labels.get(field_name)

    def get(self, record: Mapping[str, Any], field_name: str) -> Any:
        label = self.labels.get(field_name)
        if label is None:
            return None
        return record.get(label)


def dataset_columns(records: list[Mapping[str, Any]]) -> list[str]:
    """Column labels in first-seen order across all records."""
    seen: dict[str, None] = {}
    for record in records:
        for key in record:
            seen.setdefault(key, None)
    return list(seen)


def resolve_schema(
    columns: Iterable[Any],
    required: Iterable[str],
    optional: Iterable[str] = (),
    *,
    dataset: str,
    file_name: str | None = None,
) -> ColumnMap:
    """
    Resolve every required and optional field up front.

    Raises SchemaError naming every unresolved required field at once.
    """
    columns = list(columns)
    column_map = ColumnMap(dataset=dataset)
    missing: list[str] = []
    for field_name in required:
        label = resolve_field(columns, field_name)
        if label is None:
            missing.append(field_name)
        else:
            column_map.labels[field_name] = label
    if missing:
        raise SchemaError(missing, dataset=dataset, file_name=file_name)

    for field_name in optional:
        label = resolve_field(columns, field_name)
        if label is not None:
            column_map.labels[field_name] = label
    return column_map
