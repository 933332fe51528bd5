from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from receipt_sheet import __version__ as TOOL_VERSION
from receipt_sheet.config import DEFAULT_CONFIG_NAME, ConfigError, load_config, starter_config, timestamp_token
from receipt_sheet.contracts import build_contract, build_run_summary
from receipt_sheet.layout import MODES
from receipt_sheet.loader import join_pages, load_template, read_receipt_text
from receipt_sheet.parser import ReceiptRecord, parse_receipts, records_frame
from receipt_sheet.populate import (
    OUTPUT_FILENAME,
    Layout,
    PopulateError,
    TemplateRequired,
    build_structured_summary,
    populate,
    workbook_to_bytes,
)

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_LOAD_FAILED = 2
EXIT_PRECONDITION = 3
EXIT_PARTIAL = 6


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class ReceiptSheetArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True)


def configure_logging(args: argparse.Namespace) -> None:
    if getattr(args, "verbose", False):
        level = logging.DEBUG
    elif getattr(args, "quiet", False):
        level = logging.ERROR
    else:
        level = logging.WARNING
    logging.basicConfig(stream=sys.stderr, level=level, format="%(levelname)s %(name)s: %(message)s", force=True)


def ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_text(path: Path, payload: str) -> None:
    ensure_parent(path)
    path.write_text(payload, encoding="utf-8")


def write_json(path: Path, payload: Any) -> None:
    write_text(path, json_dumps(payload))


def safe_output_path(path: Path) -> Path:
    if path.exists():
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def default_output_dir(stem: str) -> Path:
    return Path.cwd() / "receipt-sheet-output" / f"{stem}-{timestamp_token()}"


def classify_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, PopulateError):
        return EXIT_PRECONDITION
    if isinstance(exc, FileNotFoundError):
        return EXIT_COMMAND_ERROR
    if isinstance(exc, (ValueError, UnicodeDecodeError)):
        return EXIT_LOAD_FAILED
    return EXIT_COMMAND_ERROR


def read_inputs(paths: list[str], *, as_pages: bool) -> tuple[list[str], list[str]]:
    input_paths = [Path(item) for item in paths]
    for path in input_paths:
        if not path.exists():
            raise CliError(f"File not found: {path}", EXIT_COMMAND_ERROR)
    texts = [read_receipt_text(path) for path in input_paths]
    if as_pages and texts:
        return [join_pages(texts)], [input_paths[0].name]
    return texts, [path.name for path in input_paths]


def record_payload(record: ReceiptRecord) -> dict[str, Any]:
    return {
        "source": record.source,
        "branch": record.branch,
        "sheet": record.sheet,
        "fields": dict(record.fields),
    }


def build_parse_payload(records: list[ReceiptRecord], input_paths: list[Path]) -> dict[str, Any]:
    contract = build_contract("receipt_sheet.parse")
    unrouted = [record.source for record in records if not record.sheet]
    warnings = [f"No branch detected in {source or 'receipt'}" for source in unrouted]
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "records": [record_payload(record) for record in records],
        "run_summary": build_run_summary(
            tool="receipt-sheet",
            command="parse",
            input_paths=input_paths,
            status="partial" if unrouted else "ok",
            metrics={"records_parsed": len(records), "records_unrouted": len(unrouted)},
            warnings=warnings,
        ),
    }


def render_parse_text(records: list[ReceiptRecord]) -> str:
    lines = ["receipt-sheet parse", f"Receipts: {len(records)}"]
    for record in records:
        lines.append(f"- {record.source or '[text]'}: sheet={record.sheet or '[none]'} fields={len(record.fields)}")
    return "\n".join(lines) + "\n"


def render_populate_summary(summary: dict[str, Any], output_path: Path | None) -> str:
    metrics = summary.get("run_summary", {}).get("metrics", {})
    lines = [
        "receipt-sheet populate",
        f"Output: {output_path or '[dry run]'}",
        f"Mode: {summary.get('mode', '[unknown]')}",
        f"Records written: {metrics.get('records_written', 0)}",
        f"Records skipped: {metrics.get('records_skipped', 0)}",
    ]
    for sheet, rows in sorted(summary.get("rows_written", {}).items()):
        lines.append(f"  {sheet}: rows {', '.join(str(row) for row in rows)}")
    if summary.get("warnings"):
        lines.append("Warnings:")
        lines.extend(f"- {warning}" for warning in summary["warnings"])
    return "\n".join(lines) + "\n"


def run_parse(args: argparse.Namespace) -> int:
    try:
        config = load_config(Path(args.config) if args.config else None)
        texts, sources = read_inputs(args.inputs, as_pages=args.as_pages)
        records = parse_receipts(
            texts,
            sources=sources,
            branch_map=config.branches,
            header_window=config.header_window,
        )
        payload = build_parse_payload(records, [Path(item) for item in args.inputs])
        if args.output:
            output_path = safe_output_path(Path(args.output))
            write_json(output_path, payload)
            emit_human(f"Records written: {output_path}", quiet=args.quiet)
        if args.csv:
            csv_path = safe_output_path(Path(args.csv))
            ensure_parent(csv_path)
            records_frame(records).to_csv(csv_path, index=False)
            emit_human(f"CSV written: {csv_path}", quiet=args.quiet)
        if args.json:
            print(json_dumps(payload))
        else:
            emit_human(render_parse_text(records).rstrip(), quiet=args.quiet)
        if any(not record.sheet for record in records):
            return EXIT_PARTIAL
        return EXIT_SUCCESS
    except ConfigError as exc:
        eprint(str(exc))
        return EXIT_COMMAND_ERROR
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_populate(args: argparse.Namespace) -> int:
    try:
        config = load_config(Path(args.config) if args.config else None)
        mode = args.mode or config.mode
        if not args.template:
            raise TemplateRequired("A template workbook is required: pass --template PATH.")
        template_path = Path(args.template)
        if not template_path.exists():
            raise CliError(f"Template not found: {template_path}", EXIT_COMMAND_ERROR)

        texts, sources = read_inputs(args.inputs, as_pages=args.as_pages)
        records = parse_receipts(
            texts,
            sources=sources,
            branch_map=config.branches,
            header_window=config.header_window,
        )
        workbook = load_template(template_path)

        layout = Layout(header_mapping=dict(config.header_mapping))
        result = populate(workbook, records, layout=layout, mode=mode, branch_map=config.branches)

        out_dir = Path(args.out_dir) if args.out_dir else default_output_dir(template_path.stem)
        output_path = Path(args.output) if args.output else out_dir / OUTPUT_FILENAME
        summary_path = Path(args.json_summary) if args.json_summary else out_dir / "populate-summary.json"
        summary = build_structured_summary(
            result,
            input_paths=[Path(item) for item in args.inputs],
            output_path=None if args.dry_run else output_path,
        )
        if not args.dry_run:
            safe_output_path(output_path)
            safe_output_path(summary_path)
            ensure_parent(output_path)
            output_path.write_bytes(workbook_to_bytes(workbook))
            write_json(summary_path, summary)

        if args.json:
            print(json_dumps(summary))
        else:
            emit_human(render_populate_summary(summary, None if args.dry_run else output_path).rstrip(), quiet=args.quiet)
            if not args.dry_run:
                emit_human(f"Populate summary: {summary_path}", quiet=args.quiet)
        return EXIT_PARTIAL if result.skipped else EXIT_SUCCESS
    except ConfigError as exc:
        eprint(str(exc))
        return EXIT_COMMAND_ERROR
    except Exception as exc:
        eprint(str(exc))
        return classify_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    write_json(config_path, starter_config())
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def build_parser() -> argparse.ArgumentParser:
    parser = ReceiptSheetArgumentParser(prog="receipt-sheet", description="Turn OCR receipt text into branch sales-report rows.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse = subparsers.add_parser("parse", help="Parse OCR text files into receipt records.")
    parse.add_argument("inputs", nargs="+", help="OCR text files, one receipt per file")
    parse.add_argument("--as-pages", action="store_true", help="Treat all inputs as pages of a single receipt")
    parse.add_argument("--output", help="Write the records JSON to this path")
    parse.add_argument("--csv", help="Write a flat CSV of the records to this path")
    parse.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parse.add_argument("--config", help="JSON config path")
    parse.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parse.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    fill = subparsers.add_parser("populate", help="Populate a template workbook from OCR text files.")
    fill.add_argument("inputs", nargs="*", help="OCR text files, one receipt per file")
    fill.add_argument("-t", "--template", help="Template workbook (.xlsx/.xlsm)")
    fill.add_argument("-o", "--out", dest="out_dir", help="Output directory")
    fill.add_argument("--output", help=f"Explicit workbook output path (default: {OUTPUT_FILENAME})")
    fill.add_argument("--json-summary", dest="json_summary", help="Explicit JSON summary output path")
    fill.add_argument("--mode", choices=list(MODES), help="Layout variant (default from config: branch-sheets)")
    fill.add_argument("--as-pages", action="store_true", help="Treat all inputs as pages of a single receipt")
    fill.add_argument("--config", help="JSON config path")
    fill.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    fill.add_argument("--dry-run", action="store_true", help="Populate in memory without writing outputs")
    fill.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    fill.add_argument("-v", "--verbose", action="store_true", help="More human logs")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter config file.")
    config_init.add_argument("--path", default=DEFAULT_CONFIG_NAME, help="Config output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        configure_logging(args)
        if args.command == "parse":
            return run_parse(args)
        if args.command == "populate":
            return run_populate(args)
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
