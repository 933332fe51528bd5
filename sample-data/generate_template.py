#!/usr/bin/env python3
"""
Generates sample-data/branch_report_template.xlsx, a daily sales report
template shaped like the ones receipt-sheet populates.

Run from the repo root:
    python sample-data/generate_template.py

Layout baked in, per branch sheet ("CLARK", "PAMPANGA"):
  - Row 1: sheet title
  - Row 2: the column headers from receipt_sheet.layout.HEADERS
  - Rows 3-48: formulas in the formula columns, everything else blank
  - Row 49: TOTAL row (reserved, never written by populate)
"""

from __future__ import annotations

import sys
from pathlib import Path

import openpyxl
from openpyxl.utils import get_column_letter

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from receipt_sheet.branches import BRANCH_MAP
from receipt_sheet.layout import (
    COL,
    FIRST_DATA_ROW,
    HEADER_ROW,
    HEADERS,
    LAST_DATA_ROW,
    RESERVED_ROW,
    TITLE_ROW,
)

OUTPUT = Path(__file__).parent / "branch_report_template.xlsx"


def letter(header: str) -> str:
    return get_column_letter(COL[header])


def row_formulas(row: int) -> dict[int, str]:
    declared = f"{letter('DECLARED CASH')}{row}"
    calculated = f"{letter('CALCULATED CASH (SALES INVOICE)')}{row}"
    deposit = f"{letter('CASH DEPOSIT')}{row}"
    non_cash = f"{letter('CREDIT CARD SALES')}{row}:{letter('METROMART')}{row}"
    special = f"{letter('BULK / WHOLESALE/IN HOUSE')}{row}:{letter('CART SALES')}{row}"
    return {
        COL["NET OF SPECIAL SALES"]: f"={calculated}-{letter('TOTAL SPECIAL SALES')}{row}",
        COL["CASH OVER/SHORT - VARIANCE DECLARED VS CALCULATED"]: f"={declared}-{calculated}",
        COL["VARIANCE DECLARED VS DEPOSITED"]: f"={declared}-{deposit}",
        COL["TOTAL NON-CASH"]: f"=SUM({non_cash})",
        COL["TOTAL PAYMENTS"]: f"={declared}+{letter('TOTAL NON-CASH')}{row}",
        COL["TOTAL SPECIAL SALES"]: f"=SUM({special})",
        COL["OVERALL SALES"]: f"={letter('TOTAL PAYMENTS')}{row}+{letter('TOTAL SPECIAL SALES')}{row}",
    }


def add_branch_sheet(workbook, name: str):
    ws = workbook.create_sheet(name)
    ws.cell(row=TITLE_ROW, column=1, value=f"{name} DAILY SALES REPORT")
    for col, header in enumerate(HEADERS, start=1):
        ws.cell(row=HEADER_ROW, column=col, value=header)
    for row in range(FIRST_DATA_ROW, LAST_DATA_ROW + 1):
        for col, formula in row_formulas(row).items():
            ws.cell(row=row, column=col, value=formula)
    ws.cell(row=RESERVED_ROW, column=1, value="TOTAL")
    for col in row_formulas(RESERVED_ROW):
        column = get_column_letter(col)
        ws.cell(row=RESERVED_ROW, column=col, value=f"=SUM({column}{FIRST_DATA_ROW}:{column}{LAST_DATA_ROW})")
    return ws


def build_template(sheet_names: list[str] | None = None):
    workbook = openpyxl.Workbook()
    workbook.remove(workbook.active)
    for name in sheet_names or list(dict.fromkeys(BRANCH_MAP.values())):
        add_branch_sheet(workbook, name)
    return workbook


if __name__ == "__main__":
    build_template().save(OUTPUT)
    print(f"Created: {OUTPUT}")
