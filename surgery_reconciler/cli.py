from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from surgery_reconciler import __version__ as TOOL_VERSION
from surgery_reconciler.config import ConfigError, default_config_payload, load_config
from surgery_reconciler.contracts import build_contract, build_run_summary
from surgery_reconciler.narrative import generate_narrative
from surgery_reconciler.pipeline import ProcessingResult, build_narrative_payload, process_files
from surgery_reconciler.reader import load_grid
from surgery_reconciler.validation import ReconcileValidationError, validate_reports
from surgery_reconciler.workbook import write_result_workbook

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_ISSUES_FOUND = 3
EXIT_VALIDATE_FAILED = 5

OUTPUT_STAMP_ENV = "SURGERY_RECONCILER_OUTPUT_STAMP"


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class ReconcilerArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True, default=str)


def timestamp_token() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV)
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def determine_output_dir(args: argparse.Namespace, list_path: Path) -> Path:
    if getattr(args, "out_dir", None):
        return Path(args.out_dir)
    return Path.cwd() / "surgery-reconciler-output" / f"{list_path.stem}-{timestamp_token()}"


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def configure_logging(args: argparse.Namespace) -> None:
    level = logging.DEBUG if getattr(args, "verbose", False) else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s", stream=sys.stderr)


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, ReconcileValidationError):
        return EXIT_VALIDATE_FAILED
    if isinstance(exc, ConfigError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError, ValueError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def require_inputs(args: argparse.Namespace) -> tuple[Path, Path]:
    list_path, detail_path = Path(args.list_file), Path(args.detail_file)
    for path in (list_path, detail_path):
        if not path.exists():
            raise CliError(f"File not found: {path}", EXIT_COMMAND_ERROR)
    return list_path, detail_path


def render_process_text(result: ProcessingResult) -> str:
    stats = result.stats
    lines = [
        "surgery-reconciler process",
        f"Period: {result.periods.label}",
        f"Records: {stats['total_records']}",
        f"Total duration (min): {stats['total_duration_minutes']}",
        f"Staff conflicts: {stats['staff_conflicts']}",
        f"Machine conflicts: {stats['machine_conflicts']}",
        f"Missing machine codes: {stats['missing_machines']}",
        f"Records with quantity < 1: {stats['low_quantity_records']}",
        f"Outside time norms: {stats['time_norm_violations']}",
        f"Payment columns: {', '.join(result.payment.columns) or '[none]'}",
        f"Total payment: {stats['total_payment_amount']:,.0f}",
    ]
    warnings = result.warnings()
    if warnings:
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in warnings)
    return "\n".join(lines) + "\n"


def build_parser() -> argparse.ArgumentParser:
    parser = ReconcilerArgumentParser(
        prog="surgery-reconciler",
        description="Reconcile surgery list and detail exports, detect conflicts and compute payments.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    process = subparsers.add_parser("process", help="Process both reports and write the result workbook.")
    process.add_argument("list_file", help="DANH SÁCH PHẪU THUẬT export")
    process.add_argument("detail_file", help="CHI TIẾT PHẪU THUẬT THEO KHOA export")
    process.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    process.add_argument("--output", help="Explicit workbook output path")
    process.add_argument("--config", help="Configuration JSON (prices, time norms, ignore list)")
    process.add_argument("--narrative", action="store_true", help="Request a prose summary from the text-generation API")
    process.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    process.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    process.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    validate = subparsers.add_parser("validate", help="Check both reports' format and period without processing.")
    validate.add_argument("list_file", help="DANH SÁCH PHẪU THUẬT export")
    validate.add_argument("detail_file", help="CHI TIẾT PHẪU THUẬT THEO KHOA export")
    validate.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    validate.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    validate.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write the default configuration file.")
    config_init.add_argument("--path", default="surgery-reconciler.json", help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def run_process(args: argparse.Namespace) -> int:
    try:
        list_path, detail_path = require_inputs(args)
        config = load_config(args.config)
        result = process_files(list_path, detail_path, config)

        if args.output and not args.out_dir:
            workbook_path = Path(args.output)
            out_dir = workbook_path.parent
        else:
            out_dir = determine_output_dir(args, list_path)
            workbook_path = Path(args.output) if args.output else out_dir / f"{list_path.stem}-reconciled.xlsx"
        if workbook_path.exists():
            raise CliError(f"Refusing to overwrite existing output: {workbook_path}", EXIT_COMMAND_ERROR)
        write_result_workbook(result, workbook_path)

        payload = result.to_dict(output_path=workbook_path)
        if args.narrative:
            payload["narrative"] = generate_narrative(build_narrative_payload(result))
        summary_path = out_dir / "result.json"
        write_text(summary_path, json_dumps(payload))

        if args.json:
            print(json_dumps(payload))
        else:
            emit_human(render_process_text(result).rstrip(), quiet=args.quiet)
            if args.narrative:
                emit_human(payload["narrative"], quiet=args.quiet)
            emit_human(f"Workbook written: {workbook_path}", quiet=args.quiet)
            emit_human(f"Result written: {summary_path}", quiet=args.quiet)
        return EXIT_ISSUES_FOUND if result.has_issues else EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_validate(args: argparse.Namespace) -> int:
    try:
        list_path, detail_path = require_inputs(args)
        list_grid = load_grid(list_path)
        detail_grid = load_grid(detail_path)
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)

    contract = build_contract("reconcile.validation")
    payload: dict[str, Any] = {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "valid": True,
        "error": None,
        "period": None,
    }
    try:
        periods = validate_reports(list_grid, detail_grid)
        payload["period"] = periods.label
    except ReconcileValidationError as exc:
        payload["valid"] = False
        payload["error"] = str(exc)
    payload["run_summary"] = build_run_summary(
        "validate",
        list_path=list_path,
        detail_path=detail_path,
        period=payload["period"],
        status="ok" if payload["valid"] else "failed",
    )

    if args.json:
        print(json_dumps(payload))
    elif payload["valid"]:
        emit_human(f"Both reports are valid for period: {payload['period']}", quiet=args.quiet)
    else:
        eprint(payload["error"])
    return EXIT_SUCCESS if payload["valid"] else EXIT_VALIDATE_FAILED


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_text(config_path, json.dumps(default_config_payload(), indent=2, ensure_ascii=False) + "\n")
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "process":
            return run_process(args)
        if args.command == "validate":
            return run_validate(args)
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
