"""
loader.py: file reader for call logs and rosters

Supports: .csv .tsv .txt .xlsx .xlsm .xls .ods .json .jsonl

Public API:
    result  = load_file("path/to/calls.csv")
    df      = result["dataframe"]
    dataset = read_dataset("path/to/calls.xlsx")   # rows as ordered dicts

Result dict keys:
    dataframe         pandas DataFrame, every cell as str (blank = NaN)
    detected_format   "csv", "xlsx", "json", etc.
    detected_encoding encoding name for text files; None for workbooks
    delimiter         delimiter char for delimited text; None otherwise
    sheet_name        sheet that was read for workbooks; None otherwise
    sheet_names       all sheet names for workbooks; None otherwise
    warnings          list of warning strings
"""

from __future__ import annotations

import csv
import io
import json as _json
from collections import Counter
from pathlib import Path
from typing import Any, Optional

import chardet
import pandas as pd

from call_billing.pipeline import Dataset

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS     = {".csv", ".tsv", ".txt"}
WORKBOOK_FORMATS = {".xlsx", ".xlsm", ".xls", ".ods"}
JSON_FORMATS     = {".json", ".jsonl"}
ALL_FORMATS      = TEXT_FORMATS | WORKBOOK_FORMATS | JSON_FORMATS

DELIMITER_CANDIDATES = [",", ";", "\t", "|"]


# ══════════════════════════════════════════════════════════════════════════════
# TEXT DECODING
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    detected = chardet.detect(raw).get("encoding")
    return detected or "utf-8"


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line: UTF-8, then the detected encoding, then latin-1,
    finally CP1252 with replacement. Embedded null bytes are dropped.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    csv.Sniffer first; otherwise score each candidate by how consistently it
    splits rows into the same number of fields.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters="".join(DELIMITER_CANDIDATES)).delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    for delim in DELIMITER_CANDIDATES:
        rows = [
            row
            for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if len(rows) < 2:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        if mode_width == 1:
            continue
        score = mode_width * 2.0 + (mode_count / len(rows)) * mode_width
        if len(rows[0]) == mode_width:
            score += 1.0
        if score > best_score:
            best_score = score
            best_delim = delim
    return best_delim


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(path: Path, suffix: str) -> dict:
    """Load .csv, .tsv, or .txt into a DataFrame of strings."""
    raw  = path.read_bytes()
    enc  = _detect_encoding(raw)
    text = _read_text_safely(raw, enc)

    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    if suffix == ".txt" and not any(delimiter in line for line in text.splitlines()[:2]):
        raise ValueError(".txt file does not appear to contain delimited/tabular data")

    sep = r"\|" if delimiter == "|" else delimiter
    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            na_values=[""],
            on_bad_lines="skip",
            sep=sep,
            engine="python",
        )
    except pd.errors.EmptyDataError:
        df = pd.DataFrame()
    except Exception as exc:
        raise ValueError(f"Could not parse {suffix} file: {exc}") from exc

    return {
        "dataframe":         df,
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": enc,
        "delimiter":         delimiter,
        "sheet_name":        None,
        "sheet_names":       None,
        "warnings":          [],
    }


def _workbook_engine(suffix: str) -> Optional[str]:
    # .xls and .ods need optional readers; give a clear error when missing.
    if suffix == ".xls":
        try:
            import xlrd  # noqa: F401
        except ImportError:
            raise ImportError(".xls files require xlrd (pip install xlrd)")
        return "xlrd"
    if suffix == ".ods":
        try:
            import odf  # noqa: F401
        except ImportError:
            raise ImportError(".ods files require odfpy (pip install odfpy)")
        return "odf"
    return "openpyxl"


def _load_workbook(path: Path, suffix: str, sheet_name: Optional[str] = None) -> dict:
    """
    Load one sheet of a workbook.

    Without sheet_name the first sheet is used and any others are reported
    in the warnings.
    """
    engine = _workbook_engine(suffix)
    warnings: list[str] = []

    try:
        with pd.ExcelFile(path, engine=engine) as xf:
            all_sheets = list(xf.sheet_names)
    except Exception as exc:
        raise ValueError(f"Could not open workbook: {exc}") from exc

    if sheet_name is not None and sheet_name not in all_sheets:
        raise ValueError(f"Sheet '{sheet_name}' not found. Available: {all_sheets}")
    chosen = sheet_name if sheet_name is not None else all_sheets[0]

    try:
        df = pd.read_excel(path, sheet_name=chosen, dtype=str, engine=engine)
    except Exception as exc:
        raise ValueError(f"Could not load sheet '{chosen}': {exc}") from exc

    if sheet_name is None and len(all_sheets) > 1:
        others = [name for name in all_sheets if name != chosen]
        warnings.append(
            f"Multiple sheets found ({len(all_sheets)} total); used '{chosen}'. Ignored: {others}"
        )

    return {
        "dataframe":         df,
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": None,
        "delimiter":         None,
        "sheet_name":        chosen,
        "sheet_names":       all_sheets,
        "warnings":          warnings,
    }


def _load_json(path: Path, suffix: str) -> dict:
    """
    Load a .json array of objects, or .jsonl with one object per line.

    Unparseable .jsonl lines are skipped with a warning.
    """
    raw  = path.read_bytes()
    enc  = _detect_encoding(raw)
    text = raw.decode(enc, errors="replace")
    warnings: list[str] = []

    if suffix == ".jsonl":
        records = []
        bad_lines = []
        for line_num, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                records.append(_json.loads(line))
            except _json.JSONDecodeError:
                bad_lines.append(line_num)
        if bad_lines:
            warnings.append(f"{len(bad_lines)} lines could not be parsed (first: line {bad_lines[0]})")
    else:
        try:
            records = _json.loads(text)
        except _json.JSONDecodeError as exc:
            raise ValueError(f"Invalid JSON: {exc}") from exc
        if not isinstance(records, list):
            raise ValueError(f"JSON root must be an array of objects, got {type(records).__name__}")

    if not all(isinstance(item, dict) for item in records):
        raise ValueError("JSON rows must be objects")

    df = pd.DataFrame.from_records(records).astype(object) if records else pd.DataFrame()
    return {
        "dataframe":         df,
        "detected_format":   suffix.lstrip("."),
        "detected_encoding": enc,
        "delimiter":         None,
        "sheet_name":        None,
        "sheet_names":       None,
        "warnings":          warnings,
    }


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

def load_file(path: "str | Path", sheet_name: Optional[str] = None) -> dict:
    """
    Load any supported file into a pandas DataFrame.

    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the format is unsupported or unreadable.
        ImportError        if a required optional reader is missing.
    """
    path   = Path(path)
    suffix = path.suffix.lower()

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

    if suffix in TEXT_FORMATS:
        return _load_text(path, suffix)
    if suffix in WORKBOOK_FORMATS:
        return _load_workbook(path, suffix, sheet_name)
    return _load_json(path, suffix)


def _cell(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        return value
    return value


def dataframe_records(df: pd.DataFrame) -> list[dict[str, Any]]:
    """Rows as dicts in column order; blank cells are None, blank rows dropped."""
    columns = [str(column) for column in df.columns]
    records: list[dict[str, Any]] = []
    for values in df.itertuples(index=False, name=None):
        record = {column: _cell(value) for column, value in zip(columns, values)}
        if all(value is None or (isinstance(value, str) and not value.strip()) for value in record.values()):
            continue
        records.append(record)
    return records


def read_dataset(path: "str | Path", sheet_name: Optional[str] = None) -> Dataset:
    path = Path(path)
    loaded = load_file(path, sheet_name=sheet_name)
    df = loaded["dataframe"]
    return Dataset(
        name=path.name,
        records=dataframe_records(df),
        columns=[str(column) for column in df.columns],
        warnings=list(loaded["warnings"]),
    )
