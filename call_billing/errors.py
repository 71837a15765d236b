"""
Error taxonomy for billing runs.

Dataset- and schema-level problems abort the whole run with one message the
host shows verbatim. Cell-level problems never raise; they are recorded as
ValueNormalizationWarning entries and tallied in the run summary.
"""

from __future__ import annotations

from typing import Any


class BillingError(Exception):
    """Base class for every fatal, user-facing run failure."""


class SchemaError(BillingError):
    def __init__(self, missing: list[str], *, dataset: str, file_name: str | None = None) -> None:
        self.missing = list(missing)
        self.dataset = dataset
        self.file_name = file_name
        source = f'File "{file_name}"' if file_name else f"The {dataset} dataset"
        super().__init__(
            f"{source} is missing required columns: {', '.join(self.missing)}"
        )


class EmptyDatasetError(BillingError):
    def __init__(self, message: str, *, dataset: str) -> None:
        self.dataset = dataset
        super().__init__(message)


class NoMatchError(BillingError):
    pass


class OptionsError(BillingError, ValueError):
    pass


class ValueNormalizationWarning(UserWarning):
    """A single cell that failed to normalize; the record was zeroed or skipped."""

    def __init__(self, kind: str, field: str, value: Any, row_number: int) -> None:
        self.kind = kind
        self.field = field
        self.value = value
        self.row_number = row_number
        super().__init__(f"row {row_number}: {kind} in {field} ({value!r})")
