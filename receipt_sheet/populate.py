from __future__ import annotations

import io
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any

from receipt_sheet import __version__ as TOOL_VERSION
from receipt_sheet.branches import BRANCH_MAP
from receipt_sheet.contracts import build_contract, build_run_summary
from receipt_sheet.layout import (
    DATE_KEYS,
    DEFAULT_FORMAT,
    FIRST_DATA_ROW,
    FORMULA_COLUMNS,
    HEADER_MAPPING,
    HEADER_ROW,
    HEADERS,
    HIDE_ZERO_FORMAT,
    LAST_DATA_ROW,
    MODE_BRANCH_SHEETS,
    MODE_SINGLE_SHEET,
    MODES,
    OVERFLOW_FIRST_ROW,
    RESERVED_ROW,
    SORT_KEY,
    header_errors,
    mapping_keys,
)
from receipt_sheet.loader import load_template
from receipt_sheet.normalizer import POLICY_PASS_THROUGH, POLICY_STRICT, is_blank, normalize, parse_date
from receipt_sheet.parser import ReceiptRecord, parse_receipt

logger = logging.getLogger(__name__)

OUTPUT_FILENAME = "populated_excel.xlsx"
XLSX_MIME_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

_POPULATE_LOCK = threading.Lock()


class PopulateError(ValueError):
    pass


class TemplateRequired(PopulateError):
    def __init__(self, message: str = "Please upload an Excel template first.") -> None:
        super().__init__(message)


class NothingToPopulate(PopulateError):
    def __init__(self, message: str = "Please upload at least one receipt first.") -> None:
        super().__init__(message)


@dataclass
class Layout:
    headers: list[str] = field(default_factory=lambda: list(HEADERS))
    header_mapping: dict[str, str | tuple[str, ...]] = field(default_factory=lambda: dict(HEADER_MAPPING))
    formula_columns: frozenset[int] = FORMULA_COLUMNS
    date_keys: frozenset[str] = DATE_KEYS
    sort_key: str = SORT_KEY

    @property
    def width(self) -> int:
        return len(self.headers)


@dataclass
class SkippedRecord:
    source: str | None
    sheet: str | None
    reason: str


@dataclass
class PopulateResult:
    workbook: Any
    mode: str
    rows_written: dict[str, list[int]] = field(default_factory=dict)
    skipped: list[SkippedRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stats: Counter = field(default_factory=Counter)

    @property
    def records_written(self) -> int:
        return sum(len(rows) for rows in self.rows_written.values())

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)


def sort_records(records: list[ReceiptRecord], sort_key: str = SORT_KEY) -> list[ReceiptRecord]:
    """Newest first; records without a parseable date go last in input order."""

    def key(record: ReceiptRecord) -> tuple[bool, datetime]:
        parsed = parse_date(record.get(sort_key))
        return (parsed is not None, parsed or datetime.min)

    return sorted(records, key=key, reverse=True)


def group_by_sheet(records: list[ReceiptRecord]) -> dict[str | None, list[ReceiptRecord]]:
    groups: dict[str | None, list[ReceiptRecord]] = {}
    for record in records:
        groups.setdefault(record.sheet, []).append(record)
    return groups


def known_sheet_names(records: list[ReceiptRecord], branch_map: dict[str, str] | None = None) -> list[str]:
    names: list[str] = []
    for name in list((branch_map or BRANCH_MAP).values()) + [record.sheet for record in records]:
        if name and name not in names:
            names.append(name)
    return names


def clear_data_rows(sheet, layout: Layout, stats: Counter, *, wipe_overflow: bool = False) -> None:
    width = max(layout.width, sheet.max_column)
    for row in sheet.iter_rows(min_row=FIRST_DATA_ROW, max_row=LAST_DATA_ROW, max_col=width):
        for cell in row:
            if cell.column in layout.formula_columns:
                if cell.value is not None:
                    stats["formula_cells_preserved"] += 1
                continue
            if cell.value is not None:
                cell.value = None
                stats["cells_cleared"] += 1

    if wipe_overflow and sheet.max_row >= OVERFLOW_FIRST_ROW:
        for row in sheet.iter_rows(min_row=OVERFLOW_FIRST_ROW, max_row=sheet.max_row):
            for cell in row:
                if cell.value is not None:
                    cell.value = None
                    stats["overflow_cells_cleared"] += 1


def write_record(
    sheet,
    row_idx: int,
    record: ReceiptRecord,
    layout: Layout,
    stats: Counter,
    *,
    policy: str = POLICY_STRICT,
    hide_zeros: bool = True,
) -> None:
    for col_idx, header in enumerate(layout.headers):
        col = col_idx + 1
        if col in layout.formula_columns:
            continue
        keys = mapping_keys(layout.header_mapping.get(header))
        is_date_column = bool(keys) and keys[0] in layout.date_keys
        key = next((candidate for candidate in keys if not is_blank(record.get(candidate))), keys[0] if keys else None)
        normalized = normalize(key, record.get(key), is_date_column, policy=policy)
        cell = sheet.cell(row=row_idx, column=col)
        cell.value = None if normalized.value == "" else normalized.value
        if hide_zeros and normalized.implicit_zero:
            cell.number_format = HIDE_ZERO_FORMAT
            stats["implicit_zeros_hidden"] += 1
        elif cell.number_format == HIDE_ZERO_FORMAT:
            cell.number_format = DEFAULT_FORMAT
        if is_date_column and normalized.value:
            stats["dates_formatted"] += 1
    stats["records_written"] += 1


def write_records(sheet, records: list[ReceiptRecord], layout: Layout, stats: Counter, **kwargs) -> list[int]:
    rows = []
    row_idx = FIRST_DATA_ROW
    for record in records:
        if row_idx == RESERVED_ROW:
            row_idx += 1
            stats["reserved_rows_skipped"] += 1
        write_record(sheet, row_idx, record, layout, stats, **kwargs)
        rows.append(row_idx)
        row_idx += 1
    return rows


def check_header_row(sheet, layout: Layout, result: PopulateResult) -> None:
    values = [sheet.cell(row=HEADER_ROW, column=col).value for col in range(1, layout.width + 1)]
    errors = header_errors(values, layout.headers)
    if errors:
        result.warn(
            f"Worksheet '{sheet.title}' header row {HEADER_ROW} does not match the expected layout "
            f"({len(errors)} mismatched columns, first: {errors[0]})"
        )


def _populate_branch_sheets(workbook, records, layout, branch_map, result: PopulateResult) -> None:
    located = {}
    for name in known_sheet_names(records, branch_map):
        if name not in workbook.sheetnames:
            result.stats["sheets_missing"] += 1
            result.warn(f"Worksheet '{name}' not found in template; skipped")
            continue
        sheet = workbook[name]
        located[name] = sheet
        result.stats["sheets_located"] += 1
        check_header_row(sheet, layout, result)
        clear_data_rows(sheet, layout, result.stats)

    for sheet_name, group in group_by_sheet(sort_records(records, layout.sort_key)).items():
        sheet = located.get(sheet_name) if sheet_name else None
        if sheet is None:
            reason = "no branch detected" if not sheet_name else f"worksheet '{sheet_name}' not found"
            for record in group:
                result.skipped.append(SkippedRecord(source=record.source, sheet=sheet_name, reason=reason))
                result.stats["records_skipped"] += 1
            result.warn(f"{len(group)} record(s) skipped: {reason}")
            continue
        rows = write_records(sheet, group, layout, result.stats, policy=POLICY_STRICT, hide_zeros=True)
        result.rows_written[sheet_name] = rows
        logger.info("Wrote %d record(s) to worksheet '%s'", len(rows), sheet_name)


def _populate_single_sheet(workbook, records, layout, result: PopulateResult) -> None:
    sheet = workbook.worksheets[0] if workbook.worksheets else workbook.create_sheet("Sheet1")
    result.stats["sheets_located"] += 1
    clear_data_rows(sheet, layout, result.stats, wipe_overflow=True)
    rows = write_records(
        sheet,
        sort_records(records, layout.sort_key),
        layout,
        result.stats,
        policy=POLICY_PASS_THROUGH,
        hide_zeros=False,
    )
    result.rows_written[sheet.title] = rows
    logger.info("Wrote %d record(s) to worksheet '%s'", len(rows), sheet.title)


def populate(
    workbook,
    records: list[ReceiptRecord],
    *,
    layout: Layout | None = None,
    mode: str = MODE_BRANCH_SHEETS,
    branch_map: dict[str, str] | None = None,
) -> PopulateResult:
    """Write parsed receipts into the template workbook in place.

    ``branch-sheets`` routes each record to the worksheet named by its
    ``sheet`` and hides implicit zeros. ``single-sheet`` is the older layout:
    everything goes to the first worksheet, rows from 50 down are wiped, and
    values are written without zero tracking.
    """
    if workbook is None:
        raise TemplateRequired()
    if not records:
        raise NothingToPopulate()
    if mode not in MODES:
        raise ValueError(f"Unknown layout mode: {mode}")
    layout = layout or Layout()

    with _POPULATE_LOCK:
        result = PopulateResult(workbook=workbook, mode=mode)
        if mode == MODE_SINGLE_SHEET:
            _populate_single_sheet(workbook, records, layout, result)
        else:
            _populate_branch_sheets(workbook, records, layout, branch_map, result)
    return result


def workbook_to_bytes(workbook) -> bytes:
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def build_structured_summary(
    result: PopulateResult,
    *,
    input_paths: list[Path] | None = None,
    output_path: Path | None = None,
) -> dict:
    contract = build_contract("receipt_sheet.populate_summary")
    status = "partial" if result.skipped else "ok"
    metrics = {
        "mode": result.mode,
        "records_written": result.records_written,
        "records_skipped": len(result.skipped),
        "sheets_located": result.stats["sheets_located"],
        "sheets_missing": result.stats["sheets_missing"],
        "cells_cleared": result.stats["cells_cleared"],
        "formula_cells_preserved": result.stats["formula_cells_preserved"],
        "implicit_zeros_hidden": result.stats["implicit_zeros_hidden"],
        "reserved_rows_skipped": result.stats["reserved_rows_skipped"],
    }
    assumptions = [
        f"Rows {FIRST_DATA_ROW}-{LAST_DATA_ROW} are cleared before writing; row {RESERVED_ROW} is never written",
        "Formula columns " + ", ".join(str(col) for col in sorted(FORMULA_COLUMNS)) + " are left untouched",
        "Records are written newest first by date issued; records without a readable date go last",
        "Dates are written as MM/DD/YY text",
    ]
    if result.mode == MODE_SINGLE_SHEET:
        assumptions.append(f"Rows from {OVERFLOW_FIRST_ROW} down are cleared entirely, formulas included")
    else:
        assumptions.append("Missing amounts are written as hidden zeros; zeros read from the receipt stay visible")
    return {
        "contract": contract,
        "schema_version": contract["version"],
        "tool_version": TOOL_VERSION,
        "mode": result.mode,
        "rows_written": {name: rows for name, rows in result.rows_written.items()},
        "skipped_records": [
            {"source": item.source, "sheet": item.sheet, "reason": item.reason} for item in result.skipped
        ],
        "stats": dict(result.stats),
        "warnings": list(result.warnings),
        "assumptions": assumptions,
        "run_summary": build_run_summary(
            tool="receipt-sheet",
            command="populate",
            input_paths=input_paths,
            status=status,
            output_path=output_path,
            metrics=metrics,
            warnings=result.warnings,
        ),
    }


def populate_template(
    template,
    receipts: list,
    *,
    layout: Layout | None = None,
    mode: str = MODE_BRANCH_SHEETS,
    branch_map: dict[str, str] | None = None,
) -> tuple[bytes, PopulateResult]:
    """Load ``template``, populate it from receipt texts or records, return xlsx bytes."""
    if template is None:
        raise TemplateRequired()
    workbook = load_template(template)
    records = [
        item if isinstance(item, ReceiptRecord) else parse_receipt(item, branch_map=branch_map)
        for item in receipts
    ]
    result = populate(workbook, records, layout=layout, mode=mode, branch_map=branch_map)
    return workbook_to_bytes(workbook), result
