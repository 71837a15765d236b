#!/usr/bin/env python3
from __future__ import annotations

import sys
import tempfile
from datetime import date
from pathlib import Path
from typing import Any, Optional

import pandas as pd
import streamlit as st

ROOT = Path(__file__).resolve().parent.parent
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from call_billing.config import RunOptions  # noqa: E402
from call_billing.errors import BillingError  # noqa: E402
from call_billing.filters import DateWindow  # noqa: E402
from call_billing.loader import ALL_FORMATS, read_dataset  # noqa: E402
from call_billing.pipeline import Dataset, RunResult, run_ani_aggregation, run_domain_comparison, run_tollfree_billing  # noqa: E402
from call_billing.reconcile import ReconcileMode  # noqa: E402
from call_billing.workbook import report_filename, sheet_set_bytes  # noqa: E402

UPLOAD_TYPES = [ext.lstrip(".") for ext in sorted(ALL_FORMATS)]
XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
PREVIEW_ROWS = 5

MODES = {
    "Toll-Free Analysis": "tollfree",
    "ANI Processing": "ani",
    "Domain Comparison": "compare",
}


def ensure_state() -> None:
    st.session_state.setdefault("result", None)
    st.session_state.setdefault("download_bytes", None)
    st.session_state.setdefault("download_name", None)
    st.session_state.setdefault("error", None)


def reset_outcome() -> None:
    st.session_state["result"] = None
    st.session_state["download_bytes"] = None
    st.session_state["download_name"] = None
    st.session_state["error"] = None


def upload_to_dataset(upload, workdir: Path) -> Dataset:
    path = workdir / Path(upload.name).name
    path.write_bytes(upload.getvalue())
    return read_dataset(path)


def run_flow(flow: str, uploads: dict[str, Any], options: RunOptions) -> RunResult:
    with tempfile.TemporaryDirectory(prefix="call_billing_upload_") as tmp:
        workdir = Path(tmp)
        if flow == "tollfree":
            return run_tollfree_billing(
                upload_to_dataset(uploads["calls"], workdir),
                upload_to_dataset(uploads["roster"], workdir),
                options,
            )
        if flow == "ani":
            datasets = []
            for index, upload in enumerate(uploads["files"]):
                subdir = workdir / str(index)
                subdir.mkdir()
                datasets.append(upload_to_dataset(upload, subdir))
            return run_ani_aggregation(datasets, options)
        return run_domain_comparison(
            upload_to_dataset(uploads["roster"], workdir),
            upload_to_dataset(uploads["calls"], workdir),
            options,
        )


def date_window_input(flow: str) -> Optional[tuple[Optional[date], Optional[date]]]:
    if not st.checkbox("Filter by call date", key=f"filter_{flow}"):
        return None
    left, right = st.columns(2)
    start: Optional[date] = left.date_input("Start date", value=None, key=f"start_{flow}")
    end: Optional[date] = right.date_input("End date", value=None, key=f"end_{flow}")
    return start, end


def render_result(result: RunResult) -> None:
    metrics = result.metrics
    cols = st.columns(4)
    cols[0].metric("Records scanned", metrics.get("records_scanned", 0))
    cols[1].metric("Accepted", metrics.get("accepted", 0))
    cols[2].metric("Filtered out", metrics.get("filtered_out", 0))
    cols[3].metric("Report rows", metrics.get("report_rows", 0))
    if "matched" in metrics:
        st.caption(
            f"Matched {metrics['matched']} numbers; "
            f"{metrics.get('unmatched_roster', 0)} roster numbers and "
            f"{metrics.get('unmatched_buckets', 0)} call numbers had no counterpart."
        )
    if result.warnings:
        with st.expander(f"Warnings ({len(result.warnings)})"):
            st.warning("\n".join(f"- {warning}" for warning in result.warnings))

    for sheet in result.sheets:
        st.markdown(f"**{sheet.name}** ({len(sheet.rows)} rows)")
        preview = pd.DataFrame(sheet.rows[:PREVIEW_ROWS], columns=sheet.headers)
        st.dataframe(preview, width="stretch", hide_index=True)

    st.download_button(
        "Download report",
        data=st.session_state["download_bytes"],
        file_name=st.session_state["download_name"],
        mime=XLSX_MIME,
        width="stretch",
        key=f"download_{result.flow}",
    )


def main() -> None:
    st.set_page_config(page_title="call-billing", page_icon="📞", layout="wide", initial_sidebar_state="collapsed")
    ensure_state()

    st.title("call-billing")
    st.caption("Upload call data and a roster, and get a billing workbook.")

    label = st.radio("Report", options=list(MODES), horizontal=True, key="mode_input", on_change=reset_outcome)
    flow = MODES[label]

    uploads: dict[str, Any] = {}
    if flow == "ani":
        uploads["files"] = st.file_uploader(
            "Call data files (ani, duration, total_amount)",
            type=UPLOAD_TYPES,
            accept_multiple_files=True,
            key="ani_files",
        ) or []
        ready = bool(uploads["files"])
    else:
        left, right = st.columns(2)
        if flow == "tollfree":
            uploads["calls"] = left.file_uploader("Call data (destination, response, duration)", type=UPLOAD_TYPES, key="tf_calls")
            uploads["roster"] = right.file_uploader("Customers (phone, customer)", type=UPLOAD_TYPES, key="tf_roster")
        else:
            uploads["roster"] = left.file_uploader("Client list (phone, domain, enable)", type=UPLOAD_TYPES, key="cmp_roster")
            uploads["calls"] = right.file_uploader("Call data (ani, duration, total_amount)", type=UPLOAD_TYPES, key="cmp_calls")
        ready = uploads["calls"] is not None and uploads["roster"] is not None

    mode = st.radio(
        "Reconcile",
        options=[item.value for item in ReconcileMode],
        horizontal=True,
        key=f"reconcile_{flow}",
        disabled=flow == "ani",
    )

    bounds = date_window_input(flow)

    if st.button("Run", type="primary", width="stretch", disabled=not ready):
        reset_outcome()
        try:
            window = DateWindow.from_strings(*bounds) if bounds is not None else None
            options = RunOptions(reconcile_mode=ReconcileMode(mode), date_window=window)
            with st.spinner("Processing..."):
                result = run_flow(flow, uploads, options)
                st.session_state["download_bytes"] = sheet_set_bytes(result.sheets)
                st.session_state["download_name"] = report_filename(result.file_prefix, result.stamp_style, result.date_window)
                st.session_state["result"] = result
        except (BillingError, ValueError, ImportError) as exc:
            st.session_state["error"] = str(exc)

    if st.session_state["error"]:
        st.error(st.session_state["error"])
    result = st.session_state["result"]
    if result is not None and result.flow == flow:
        render_result(result)
    elif not ready:
        st.info("Supported here: " + " ".join(f".{ext}" for ext in UPLOAD_TYPES))


if __name__ == "__main__":
    main()
