"""Run options and the JSON config file that can override them."""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Mapping

from call_billing.errors import OptionsError
from call_billing.filters import DateWindow
from call_billing.reconcile import SURCHARGE_FACTOR, UNIT_RATE, ReconcileMode, Tariff

CONFIG_KEYS = {
    "unit_rate",
    "surcharge_factor",
    "response_code",
    "reconcile_mode",
    "start_date",
    "end_date",
    "sheet_name",
}

STARTER_CONFIG = {
    "unit_rate": str(UNIT_RATE),
    "surcharge_factor": str(SURCHARGE_FACTOR),
    "response_code": "200",
    "reconcile_mode": ReconcileMode.MATCHED.value,
    "start_date": None,
    "end_date": None,
    "sheet_name": None,
}


def _decimal_option(value: Any, name: str) -> Decimal:
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise OptionsError(f"{name} must be a number, got {value!r}") from None
    if not result.is_finite() or result < 0:
        raise OptionsError(f"{name} must be a non-negative number, got {value!r}")
    return result


def _mode_option(value: Any) -> ReconcileMode:
    try:
        return ReconcileMode(str(value))
    except ValueError:
        choices = ", ".join(mode.value for mode in ReconcileMode)
        raise OptionsError(f"reconcile_mode must be one of: {choices}") from None


@dataclass
class RunOptions:
    unit_rate: Decimal = UNIT_RATE
    surcharge_factor: Decimal = SURCHARGE_FACTOR
    response_code: str = "200"
    reconcile_mode: ReconcileMode = ReconcileMode.MATCHED
    date_window: DateWindow | None = None
    sheet_name: str | None = None

    @property
    def tariff(self) -> Tariff:
        return Tariff(unit_rate=self.unit_rate, surcharge_factor=self.surcharge_factor)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "RunOptions":
        unknown = sorted(set(payload) - CONFIG_KEYS)
        if unknown:
            raise OptionsError(f"Unknown config keys: {', '.join(unknown)}")

        options = cls()
        if payload.get("unit_rate") is not None:
            options.unit_rate = _decimal_option(payload["unit_rate"], "unit_rate")
        if payload.get("surcharge_factor") is not None:
            options.surcharge_factor = _decimal_option(payload["surcharge_factor"], "surcharge_factor")
        if payload.get("response_code") is not None:
            options.response_code = str(payload["response_code"]).strip()
        if payload.get("reconcile_mode") is not None:
            options.reconcile_mode = _mode_option(payload["reconcile_mode"])
        if payload.get("start_date") or payload.get("end_date"):
            options.date_window = DateWindow.from_strings(payload.get("start_date"), payload.get("end_date"))
        if payload.get("sheet_name"):
            options.sheet_name = str(payload["sheet_name"])
        return options


def load_config(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise OptionsError(f"Config not found: {path}")
    if path.suffix.lower() != ".json":
        raise OptionsError("Config must be a .json file")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise OptionsError(f"Could not read config: {exc}") from exc
    if not isinstance(payload, dict):
        raise OptionsError("Config root must be a JSON object.")
    return payload
