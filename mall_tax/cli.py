from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from mall_tax import __version__ as TOOL_VERSION
from mall_tax.analysis import analyze_file
from mall_tax.batch import process_files
from mall_tax.contracts import build_payload, build_run_summary
from mall_tax.errors import OptionsError
from mall_tax.exporter import EXPORT_FORMATS, export_results
from mall_tax.header_detection import locate_header
from mall_tax.header_dialects import combine_multi_row_headers
from mall_tax.loader import load_workbook_grid
from mall_tax.merges import resolve_merges
from mall_tax.options import PRESETS, ProcessingOptions, load_options, preset_options, starter_options_payload

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_PARTIAL = 6

DEFAULT_PRESET = "traditional"
LOG_FORMAT = "%(levelname)s %(name)s: %(message)s"


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class MallTaxArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True, default=str)


def configure_logging(args: argparse.Namespace) -> None:
    level = logging.WARNING
    if getattr(args, "verbose", False):
        level = logging.INFO
    if getattr(args, "quiet", False):
        level = logging.ERROR
    logging.basicConfig(level=level, stream=sys.stderr, format=LOG_FORMAT, force=True)


def timestamp_token() -> str:
    override = os.environ.get("MALL_TAX_OUTPUT_STAMP")
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def default_output_path(fmt: str) -> Path:
    return Path.cwd() / "mall-tax-output" / f"mall-tax-summary-{timestamp_token()}.{fmt}"


def safe_output_path(explicit: Path | None, default_path: Path) -> Path:
    path = explicit or default_path
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def write_text(path: Path, payload: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(payload, encoding="utf-8")


def remove_generated_at(value: Any) -> Any:
    if isinstance(value, dict):
        return {
            key: ("1970-01-01T00:00:00Z" if key == "generated_at" else remove_generated_at(item))
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [remove_generated_at(item) for item in value]
    return value


def maybe_emit_json_stdout(payload: Any, enabled: bool) -> None:
    if enabled:
        print(json_dumps(remove_generated_at(payload)))


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, OptionsError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ImportError, UnicodeDecodeError, ValueError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def require_input(path_text: str) -> Path:
    path = Path(path_text)
    if not path.exists():
        raise CliError(f"File not found: {path}", EXIT_COMMAND_ERROR)
    return path


# ══════════════════════════════════════════════════════════════════════════════
# OPTIONS FROM ARGUMENTS
# ══════════════════════════════════════════════════════════════════════════════

def build_options(args: argparse.Namespace) -> ProcessingOptions:
    if args.config and args.preset:
        raise CliError("Use either --config or --preset, not both.", EXIT_COMMAND_ERROR)
    if args.config:
        options = load_options(Path(args.config))
    else:
        options = preset_options(args.preset or DEFAULT_PRESET)

    overrides: dict[str, Any] = {
        "sheet_name": args.sheet_name,
        "header_row": args.header_row,
        "date_column": args.date_column,
        "tax_exempt_column": args.tax_exempt_column,
        "taxable_column": args.taxable_column,
        "tax_type_column": args.tax_type_column,
    }
    if args.tax_type_column:
        overrides["use_tax_type_classification"] = True
    if args.amount_columns:
        overrides["use_tax_type_classification"] = True
        if len(args.amount_columns) == 1:
            overrides["amount_column"] = args.amount_columns[0]
            overrides["use_multi_column_sum"] = False
        else:
            overrides["amount_columns"] = list(args.amount_columns)
            overrides["use_multi_column_sum"] = True
    return options.with_overrides(**overrides).validate()


# ══════════════════════════════════════════════════════════════════════════════
# TEXT RENDERING
# ══════════════════════════════════════════════════════════════════════════════

def render_headers_text(payload: dict[str, Any]) -> str:
    header = payload["header_detection"]
    lines = [
        f"Header row: {header['header_row']} (confidence {header['confidence']}%)",
        f"Header rows: {header['header_rows']} [{header['dialect']}]",
        "Reasons:",
    ]
    lines.extend(f"  - {reason}" for reason in header["reasons"])
    lines.append("Columns:")
    lines.extend(f"  {index + 1}. {name}" for index, name in enumerate(payload["columns"]))
    return "\n".join(lines)


def render_analysis_text(report: dict[str, Any]) -> str:
    header = report["header_detection"]
    structure = report["structure"]
    lines = [
        f"File: {report['file_info']['name']} ({report['file_info']['format']})",
        f"Rows x columns: {structure['total_rows']} x {structure['total_columns']}",
        f"Header row: {header['header_row']} (confidence {header['confidence']}%, {header['dialect']})",
        f"Columns: {', '.join(header['headers']) or '[none]'}",
        f"Merged ranges: {len(structure['merged_cells'])}",
    ]
    amounts = report["amount_columns"]
    if amounts["candidates"]:
        lines.append(f"Amount columns: {', '.join(amounts['candidates'])}")
    if report["recommendations"]:
        lines.append("Recommendations:")
        lines.extend(f"  - {item}" for item in report["recommendations"])
    return "\n".join(lines)


def render_process_text(file_results, output_path: Path | None) -> str:
    lines = []
    for item in file_results:
        if item.ok:
            yearly = item.result.yearly_total
            lines.append(
                f"{item.mall_name}: {len(item.result.monthly_totals)} month(s), "
                f"면세 {yearly.tax_exempt:,.0f} / 과세 {yearly.taxable:,.0f} / 합계 {yearly.total:,.0f}"
            )
            lines.extend(f"  warning: {warning}" for warning in item.warnings)
        else:
            lines.append(f"{item.mall_name}: FAILED - {item.error}")
    if output_path:
        lines.append(f"Summary written: {output_path}")
    return "\n".join(lines)


# ══════════════════════════════════════════════════════════════════════════════
# PARSER
# ══════════════════════════════════════════════════════════════════════════════

def _add_common(sub: argparse.ArgumentParser) -> None:
    sub.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    sub.add_argument("-q", "--quiet", action="store_true", help="Errors only")
    sub.add_argument("-v", "--verbose", action="store_true", help="Log detection and extraction details")


def build_parser() -> argparse.ArgumentParser:
    parser = MallTaxArgumentParser(
        prog="mall-tax",
        description="Monthly tax-exempt / taxable totals from mall spreadsheet exports.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    headers = subparsers.add_parser("headers", help="Detect the header row and list column names.")
    headers.add_argument("input", help="Input file path")
    headers.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name (default: first sheet)")
    headers.add_argument("--header-row", type=int, help="0-based header row; skips auto-detection")
    _add_common(headers)

    analyze = subparsers.add_parser("analyze", help="Report on layout, merges and likely columns.")
    analyze.add_argument("input", help="Input file path")
    analyze.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name (default: first sheet)")
    analyze.add_argument("--output", help="Also write the JSON report to this path")
    _add_common(analyze)

    process = subparsers.add_parser("process", help="Compute monthly totals and export a summary.")
    process.add_argument("inputs", nargs="+", help="One or more mall export files")
    process.add_argument("--config", help="JSON options file")
    process.add_argument("--preset", choices=sorted(PRESETS), help=f"Named options preset (default: {DEFAULT_PRESET})")
    process.add_argument("--sheet", dest="sheet_name", help="Workbook sheet name (default: first sheet)")
    process.add_argument("--header-row", type=int, help="0-based header row; skips auto-detection")
    process.add_argument("--date-column", help="Date column name")
    process.add_argument("--tax-exempt-column", help="Tax-exempt amount column (traditional mode)")
    process.add_argument("--taxable-column", help="Taxable amount column (traditional mode)")
    process.add_argument("--tax-type-column", help="Tax-type tag column (switches to tax-type mode)")
    process.add_argument(
        "--amount-column",
        dest="amount_columns",
        action="append",
        help="Amount column for tax-type mode; repeat to sum several columns",
    )
    process.add_argument("--workers", type=int, default=1, help="Parallel workers for several files")
    process.add_argument("--output", help="Summary output path")
    process.add_argument("--format", choices=list(EXPORT_FORMATS), default="xlsx", help="Summary format")
    process.add_argument("--fail-fast", action="store_true", help="Stop at the first file that fails")
    _add_common(process)

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter options file.")
    config_init.add_argument("--path", default="mall-tax.json", help="Options output path")

    subparsers.add_parser("version", help="Print version")
    return parser


# ══════════════════════════════════════════════════════════════════════════════
# COMMANDS
# ══════════════════════════════════════════════════════════════════════════════

def run_headers(args: argparse.Namespace) -> int:
    try:
        input_path = require_input(args.input)
        loaded = load_workbook_grid(input_path, args.sheet_name)
        resolved = resolve_merges(loaded.grid, loaded.merges)
        detection = locate_header(resolved, args.header_row, sheet_hint=loaded.sheet_name or input_path.name)
        columns = combine_multi_row_headers(resolved, detection.header_rows, detection.dialect)
        payload = build_payload(
            "mall_tax.headers",
            {"header_detection": detection.to_dict(), "columns": columns, "sheet_name": loaded.sheet_name},
            build_run_summary(
                command="headers",
                input_paths=[input_path],
                metrics={"columns": len(columns), "confidence": detection.confidence},
                warnings=loaded.warnings,
            ),
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_headers_text(payload), quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_analyze(args: argparse.Namespace) -> int:
    try:
        input_path = require_input(args.input)
        report = analyze_file(input_path, args.sheet_name)
        output_path = safe_output_path(None, Path(args.output)) if args.output else None
        payload = build_payload(
            "mall_tax.analyze",
            report,
            build_run_summary(
                command="analyze",
                input_paths=[input_path],
                output_path=output_path,
                metrics={
                    "confidence": report["header_detection"]["confidence"],
                    "merged_ranges": len(report["structure"]["merged_cells"]),
                },
                warnings=report["warnings"],
            ),
        )
        if output_path:
            write_text(output_path, json_dumps(payload))
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_analysis_text(report), quiet=args.quiet)
            if output_path:
                emit_human(f"Report written: {output_path}", quiet=args.quiet)
        return EXIT_SUCCESS
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def exit_code_for_batch(file_results) -> int:
    failed = sum(1 for item in file_results if not item.ok)
    if not failed:
        return EXIT_SUCCESS
    if failed == len(file_results):
        return EXIT_PARSE_FAILED
    return EXIT_PARTIAL


def run_process(args: argparse.Namespace) -> int:
    try:
        input_paths = [require_input(item) for item in args.inputs]
        if args.workers < 1:
            raise CliError("--workers must be 1 or more", EXIT_COMMAND_ERROR)
        options = build_options(args)
        output_path = safe_output_path(Path(args.output) if args.output else None, default_output_path(args.format))

        file_results = process_files(input_paths, options, max_workers=args.workers, fail_fast=args.fail_fast)
        succeeded = [item.result for item in file_results if item.ok]
        written = export_results(succeeded, output_path, args.format) if succeeded else None

        warnings = [f"{item.mall_name}: {warning}" for item in file_results for warning in item.warnings]
        code = exit_code_for_batch(file_results)
        payload = build_payload(
            "mall_tax.process",
            {
                "options": options.to_dict(),
                "files": [item.to_dict() for item in file_results],
            },
            build_run_summary(
                command="process",
                input_paths=input_paths,
                status="ok" if code == EXIT_SUCCESS else ("partial" if code == EXIT_PARTIAL else "failed"),
                output_path=written,
                metrics={
                    "files": len(file_results),
                    "succeeded": len(succeeded),
                    "failed": len(file_results) - len(succeeded),
                },
                warnings=warnings,
            ),
        )
        if args.json:
            maybe_emit_json_stdout(payload, True)
        else:
            emit_human(render_process_text(file_results, written), quiet=args.quiet)
        return code
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_text(config_path, json_dumps(starter_options_payload()) + "\n")
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
        if args.command == "headers":
            return run_headers(args)
        if args.command == "analyze":
            return run_analyze(args)
        if args.command == "process":
            return run_process(args)
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
