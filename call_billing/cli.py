from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

from call_billing import __version__ as TOOL_VERSION
from call_billing.config import STARTER_CONFIG, RunOptions, load_config
from call_billing.contracts import build_run_summary
from call_billing.errors import EmptyDatasetError, NoMatchError, OptionsError, SchemaError
from call_billing.loader import ALL_FORMATS, read_dataset
from call_billing.pipeline import Dataset, RunResult, run_ani_aggregation, run_domain_comparison, run_tollfree_billing
from call_billing.reconcile import ReconcileMode
from call_billing.workbook import report_filename, write_sheet_set


EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_SCHEMA_ERROR = 3
EXIT_EMPTY_DATASET = 4
EXIT_NO_MATCH = 5

DEFAULT_CONFIG_PATH = "call-billing.json"


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class CallBillingArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(payload))


def safe_output_path(explicit: Path | None, default_path: Path) -> Path:
    path = explicit or default_path
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, SchemaError):
        return EXIT_SCHEMA_ERROR
    if isinstance(exc, EmptyDatasetError):
        return EXIT_EMPTY_DATASET
    if isinstance(exc, NoMatchError):
        return EXIT_NO_MATCH
    if isinstance(exc, OptionsError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError)):
        return EXIT_PARSE_FAILED
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, ValueError):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def check_input(path: Path) -> Path:
    if not path.exists():
        raise CliError(f"File not found: {path}", EXIT_COMMAND_ERROR)
    suffix = path.suffix.lower()
    if suffix not in ALL_FORMATS:
        raise CliError(
            f"Unsupported file type '{suffix or '[missing extension]'}'. "
            f"Supported: {', '.join(sorted(ALL_FORMATS))}",
            EXIT_COMMAND_ERROR,
        )
    return path


def build_options(args: argparse.Namespace) -> RunOptions:
    """Config file first, then any flag given on the command line wins."""
    payload: dict[str, Any] = {}
    if args.config:
        payload.update(load_config(Path(args.config)))
    overrides = {
        "unit_rate": getattr(args, "unit_rate", None),
        "surcharge_factor": getattr(args, "surcharge_factor", None),
        "response_code": getattr(args, "response_code", None),
        "reconcile_mode": getattr(args, "reconcile_mode", None),
        "sheet_name": args.sheet_name,
        "start_date": args.start,
        "end_date": args.end,
    }
    payload.update({key: value for key, value in overrides.items() if value is not None})
    return RunOptions.from_mapping(payload)


def load_inputs(paths: list[Path], options: RunOptions) -> list[Dataset]:
    return [read_dataset(path, sheet_name=options.sheet_name) for path in paths]


def determine_output_path(args: argparse.Namespace, result: RunResult) -> Path:
    if args.output:
        return safe_output_path(Path(args.output), Path(args.output))
    out_dir = Path(args.out_dir) if args.out_dir else Path.cwd()
    name = report_filename(result.file_prefix, result.stamp_style, result.date_window)
    return safe_output_path(None, out_dir / name)


def render_run_text(summary: dict[str, Any]) -> str:
    metrics = summary.get("metrics", {})
    lines = [
        f"call-billing {summary['flow']}",
        f"Inputs: {', '.join(summary.get('input_files', []))}",
        f"Output: {summary.get('output_file') or '[none]'}",
        f"Records scanned: {metrics.get('records_scanned', 0)}",
        f"Accepted: {metrics.get('accepted', 0)}",
        f"Filtered out: {metrics.get('filtered_out', 0)}",
        f"Invalid keys: {metrics.get('invalid_key', 0)}",
        f"Report rows: {metrics.get('report_rows', 0)}",
    ]
    if "matched" in metrics:
        lines.append(
            f"Matched: {metrics['matched']} "
            f"(unmatched roster: {metrics.get('unmatched_roster', 0)}, "
            f"unmatched calls: {metrics.get('unmatched_buckets', 0)})"
        )
    warnings = summary.get("warnings", [])
    if warnings:
        lines.append(f"Warnings ({len(warnings)}):")
        lines.extend(f"- {warning}" for warning in warnings)
    return "\n".join(lines) + "\n"


def finish_run(args: argparse.Namespace, result: RunResult, input_paths: list[Path]) -> int:
    output_path = determine_output_path(args, result)
    summary_path = safe_output_path(Path(args.summary), Path(args.summary)) if args.summary else None
    write_sheet_set(result.sheets, output_path)
    summary = build_run_summary(
        flow=result.flow,
        input_paths=input_paths,
        output_path=output_path,
        metrics=result.metrics,
        warnings=result.warnings,
    )
    if summary_path is not None:
        write_json(summary_path, summary)
    if args.json:
        maybe_emit_json_stdout(summary, True)
    else:
        emit_human(render_run_text(summary).rstrip(), quiet=args.quiet)
        emit_human(f"Report written: {output_path}", quiet=args.quiet)
        if summary_path is not None:
            emit_human(f"Run summary: {summary_path}", quiet=args.quiet)
    return EXIT_SUCCESS


def run_tollfree(args: argparse.Namespace) -> int:
    try:
        paths = [check_input(Path(args.calls)), check_input(Path(args.roster))]
        options = build_options(args)
        calls, roster = load_inputs(paths, options)
        result = run_tollfree_billing(calls, roster, options)
        return finish_run(args, result, paths)
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_ani(args: argparse.Namespace) -> int:
    try:
        paths = [check_input(Path(name)) for name in args.inputs]
        options = build_options(args)
        result = run_ani_aggregation(load_inputs(paths, options), options)
        return finish_run(args, result, paths)
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_compare(args: argparse.Namespace) -> int:
    try:
        paths = [check_input(Path(args.roster)), check_input(Path(args.calls))]
        options = build_options(args)
        roster, calls = load_inputs(paths, options)
        result = run_domain_comparison(roster, calls, options)
        return finish_run(args, result, paths)
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_json(config_path, STARTER_CONFIG)
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def add_run_arguments(
    parser: argparse.ArgumentParser,
    *,
    reconcile: bool = False,
    unit_rate: bool = False,
    surcharge: bool = False,
    response_code: bool = False,
) -> None:
    parser.add_argument("-o", "--out", dest="out_dir", help="Output directory (default: current directory)")
    parser.add_argument("--output", help="Explicit report output path")
    parser.add_argument("--start", help="Keep calls on or after this date (YYYY-MM-DD)")
    parser.add_argument("--end", help="Keep calls on or before this date (YYYY-MM-DD)")
    parser.add_argument("--sheet", dest="sheet_name", help="Workbook sheet to read from every input")
    if reconcile:
        parser.add_argument(
            "--mode",
            dest="reconcile_mode",
            choices=[mode.value for mode in ReconcileMode],
            help="Which side drives reconciliation (default: matched)",
        )
    if unit_rate:
        parser.add_argument("--unit-rate", dest="unit_rate", help="Per-minute rate (default: 0.035)")
    if surcharge:
        parser.add_argument("--surcharge-factor", dest="surcharge_factor", help="Amount multiplier (default: 1.30)")
    if response_code:
        parser.add_argument("--response-code", dest="response_code", help="Response code a toll-free call must carry (default: 200)")
    parser.add_argument("--config", help="JSON config with run options")
    parser.add_argument("--json", action="store_true", help="Write the run summary JSON to stdout")
    parser.add_argument("--summary", help="Also write the run summary JSON to this path")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")


def build_parser() -> argparse.ArgumentParser:
    parser = CallBillingArgumentParser(prog="call-billing", description="Call-detail billing reports from CSV and Excel exports.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    tollfree = subparsers.add_parser("tollfree", help="Bill toll-free destinations against a customer roster.")
    tollfree.add_argument("calls", help="Call data file")
    tollfree.add_argument("roster", help="Customer roster file")
    add_run_arguments(tollfree, reconcile=True, unit_rate=True, response_code=True)

    ani = subparsers.add_parser("ani", help="Total duration and amount per ANI across call logs.")
    ani.add_argument("inputs", nargs="+", help="One or more call data files")
    add_run_arguments(ani, surcharge=True)

    compare = subparsers.add_parser("compare", help="Total calls per domain for enabled client numbers.")
    compare.add_argument("roster", help="Client list file (phone, domain, enable)")
    compare.add_argument("calls", help="Call data file")
    add_run_arguments(compare, reconcile=True, surcharge=True)

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default=DEFAULT_CONFIG_PATH, help="Config output path")

    subparsers.add_parser("version", help="Print the tool version.")
    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "tollfree":
            return run_tollfree(args)
        if args.command == "ani":
            return run_ani(args)
        if args.command == "compare":
            return run_compare(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
