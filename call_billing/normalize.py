"""
Cell normalizers for call-detail and roster data.

Every function here is pure and total: bad input never raises, it comes back
as None (for the parse_* helpers), zero, or the "Unknown" label. Callers
decide whether an invalid value excludes the record.
"""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

TOLL_FREE_PREFIXES = frozenset({"800", "811", "822", "833", "844", "855", "866", "877", "888", "899"})

UNKNOWN_LABEL = "Unknown"
DASH_PLACEHOLDER = "-"

ENABLED_VALUES = {"yes", "y", "true", "1", "enabled", "enable", "on"}

NON_DIGIT_RE = re.compile(r"\D")
INTEGRAL_FLOAT_RE = re.compile(r"^\d+\.0+$")
INTEGER_RE = re.compile(r"^\d+$")
DECIMAL_RE = re.compile(r"^\d+\.\d+$")
CLOCK_FIELD_RE = re.compile(r"^\d+$")
CLOCK_LAST_FIELD_RE = re.compile(r"^\d+(?:\.\d+)?$")
US_DATE_RE = re.compile(r"^(\d{1,2})([/-])(\d{1,2})\2(\d{2}|\d{4})$")
ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
TIME_RE = re.compile(r"^(\d{1,2})(?::(\d{1,2}))?(?::(\d{1,2})(?:\.\d+)?)?$")
AMOUNT_STRIP_RE = re.compile(r"[\s,$]")


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return isinstance(value, str) and not value.strip()


def cell_text(value: Any) -> str:
    """Render a cell as text; integral floats lose their trailing '.0'."""
    if is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    if INTEGRAL_FLOAT_RE.match(text):
        return text.split(".", 1)[0]
    return text


# ── Keys ──────────────────────────────────────────────────────────────────────

def normalize_phone_key(raw: Any) -> str | None:
    if isinstance(raw, bool):
        return None
    digits = NON_DIGIT_RE.sub("", cell_text(raw))
    if len(digits) == 11 and digits.startswith("1"):
        digits = digits[1:]
    if len(digits) != 10:
        return None
    return digits


def normalize_tollfree_key(raw: Any) -> str | None:
    key = normalize_phone_key(raw)
    if key is None or key[:3] not in TOLL_FREE_PREFIXES:
        return None
    return key


# ── Durations ─────────────────────────────────────────────────────────────────

def _clock_seconds(text: str) -> int | None:
    parts = [part.strip() for part in text.split(":")]
    if len(parts) not in (2, 3):
        return None
    if not all(CLOCK_FIELD_RE.match(part) for part in parts[:-1]):
        return None
    if not CLOCK_LAST_FIELD_RE.match(parts[-1]):
        return None
    seconds = int(float(parts[-1]))
    if len(parts) == 2:
        return int(parts[0]) * 60 + seconds
    return int(parts[0]) * 3600 + int(parts[1]) * 60 + seconds


def parse_duration(raw: Any) -> int | None:
    """
    Return whole seconds, 0 for a blank cell, or None when a non-blank value
    has no recognised shape.

    Accepted: native numbers, "45", "45.0", "MM:SS", "HH:MM:SS".
    Fractional seconds are truncated.
    """
    if is_blank(raw):
        return 0
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float, Decimal)):
        if isinstance(raw, float) and not math.isfinite(raw):
            return None
        if isinstance(raw, Decimal) and not raw.is_finite():
            return None
        if raw < 0:
            return None
        return int(raw)

    text = str(raw).strip()
    if INTEGER_RE.match(text):
        return int(text)
    if DECIMAL_RE.match(text):
        return int(float(text))
    if ":" in text:
        return _clock_seconds(text)
    return None


def normalize_duration(raw: Any) -> int:
    return parse_duration(raw) or 0


# ── Amounts ───────────────────────────────────────────────────────────────────

def parse_amount(raw: Any) -> Decimal | None:
    """Decimal amount, Decimal(0) for a blank cell, None when unparseable."""
    if is_blank(raw):
        return Decimal(0)
    if isinstance(raw, bool):
        return None
    if isinstance(raw, Decimal):
        return raw if raw.is_finite() else None
    if isinstance(raw, int):
        return Decimal(raw)
    if isinstance(raw, float):
        return Decimal(repr(raw)) if math.isfinite(raw) else None

    text = AMOUNT_STRIP_RE.sub("", str(raw))
    try:
        value = Decimal(text)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None


def normalize_amount(raw: Any) -> Decimal:
    value = parse_amount(raw)
    return Decimal(0) if value is None else value


# ── Labels and flags ──────────────────────────────────────────────────────────

def normalize_display_label(raw: Any, *, exclude_dash: bool = False) -> str | None:
    """
    Trimmed display label. Empty, "-" and "Unknown" collapse to "Unknown".

    With exclude_dash=True a bare "-" returns None, meaning the caller should
    drop the whole record rather than relabel it.
    """
    text = "" if is_blank(raw) else str(raw).strip()
    if text == DASH_PLACEHOLDER and exclude_dash:
        return None
    if text in ("", DASH_PLACEHOLDER, UNKNOWN_LABEL):
        return UNKNOWN_LABEL
    return text


def normalize_flag(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    return cell_text(raw).lower() in ENABLED_VALUES


# ── Timestamps ────────────────────────────────────────────────────────────────

def _parse_time(parts: list[str]) -> tuple[int, int, int] | None:
    if not parts:
        return 0, 0, 0
    m = TIME_RE.match(parts[0])
    if not m:
        return None
    hours = int(m.group(1))
    minutes = int(m.group(2) or 0)
    seconds = int(m.group(3) or 0)
    if len(parts) > 1:
        meridiem = parts[1].upper()
        if meridiem not in ("AM", "PM") or not 1 <= hours <= 12:
            return None
        hours = hours % 12 + (12 if meridiem == "PM" else 0)
    return hours, minutes, seconds


def parse_call_timestamp(raw: Any) -> datetime | None:
    """
    Parse a call time, month first: "M/D/YYYY[ H:M:S]" or "M-D-YYYY[ H:M:S]".

    Two-digit years are read as 20YY, a missing time is midnight. Year-first
    ISO strings and native datetimes (spreadsheet cells) are accepted too.
    Anything else is None.
    """
    if isinstance(raw, datetime):
        return raw.replace(tzinfo=None)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day)
    if is_blank(raw) or not isinstance(raw, str):
        return None

    parts = raw.strip().replace("T", " ").split()
    if not parts or len(parts) > 3:
        return None

    m = US_DATE_RE.match(parts[0])
    if m:
        month, day, year = int(m.group(1)), int(m.group(3)), int(m.group(4))
        if year < 100:
            year += 2000
    else:
        m = ISO_DATE_RE.match(parts[0])
        if not m:
            return None
        year, month, day = int(m.group(1)), int(m.group(2)), int(m.group(3))

    clock = _parse_time(parts[1:])
    if clock is None:
        return None
    try:
        return datetime(year, month, day, *clock)
    except ValueError:
        return None
