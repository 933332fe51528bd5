"""Fixed layout of the branch sales-report template.

Row 1 holds the sheet title, row 2 the column headers below. Data rows run
from row 3 to row 48; row 49 is a reserved template row and never receives
data.
"""

from __future__ import annotations

HEADERS = [
    "DATE",
    "SHIFT",
    "CASHIER(FULLNAME/NICKNAME)",
    "DECLARED CASH",
    "CALCULATED CASH (SALES INVOICE)",
    "NET OF SPECIAL SALES",
    "CASH OVER/SHORT - VARIANCE DECLARED VS CALCULATED",
    "DATE OF TRANSACTION",
    "CASH DEPOSIT",
    "VARIANCE DECLARED VS DEPOSITED",
    "OTHER DEPOSITS(MANUAL SALES)",
    "CREDIT CARD SALES",
    "CREDIT CARD CHARGE",
    "CR MEMO",
    "G.C.",
    "PAYMAYA",
    "VIP SOLD",
    "VIP",
    "CENTURY SHOPAHOLIC VOUCHERS",
    "GCASH",
    "FOOD PANDA A/R",
    "HONESTBEE",
    "METRODEAL(NET SALE)",
    "MARKETING A/R",
    "OTHER A/R",
    "LAZADA",
    "SHOPEE",
    "GRAB",
    "BOOKY",
    "POODTRIP",
    "PICK.A.ROO",
    "PARAHERO",
    "RARE FOOD SHOP",
    "SHOPEEPAY",
    "METROMART",
    "TOTAL NON-CASH",
    "TOTAL PAYMENTS",
    "BULK / WHOLESALE/IN HOUSE",
    "OTHERS (Please Specify)",
    "CATERING",
    "OFFSITE SELLING",
    "SNACKSHOP",
    "DELIVERY FEE",
    "CART SALES",
    "TOTAL SPECIAL SALES",
    "OVERALL SALES",
    "SR. CITIZEN DISC",
    "PWD DISC",
    "OTHER DISC",
    "TRANSACTION COUNT (POS)",
    "GC ORIGINATING STORE",
    "GC SERIAL NUMBER",
    "TERMINALID",
    "VOIDS",
]
N_COLS = len(HEADERS)
COL = {name: i + 1 for i, name in enumerate(HEADERS)}

HEADER_MAPPING = {
    "DATE": ("for", "date"),
    "GRAB": "grab",
    "GCASH": "gcash",
    "PWD DISC": "pwdDiscount",
    "SR. CITIZEN DISC": "seniorDiscount",
    "OTHER DISC": "regularDiscount",
    "TRANSACTION COUNT (POS)": "noTransactions",
    "VOIDS": "cancelledAmount",
    "CALCULATED CASH (SALES INVOICE)": "cashSales",
}

# Template formulas live in these 1-based columns.
FORMULA_COLUMNS = frozenset({6, 7, 10, 36, 37, 45, 46})

DATE_KEYS = frozenset({"dateIssued", "dateOfTransaction", "for"})
SORT_KEY = "dateIssued"

TITLE_ROW = 1
HEADER_ROW = 2
FIRST_DATA_ROW = 3
LAST_DATA_ROW = 48
RESERVED_ROW = 49
OVERFLOW_FIRST_ROW = 50

# positive;negative;zero;text - the empty zero section hides zeros.
HIDE_ZERO_FORMAT = "0;-0;;@"
DEFAULT_FORMAT = "General"

MODE_BRANCH_SHEETS = "branch-sheets"
MODE_SINGLE_SHEET = "single-sheet"
MODES = (MODE_BRANCH_SHEETS, MODE_SINGLE_SHEET)


def data_rows(count: int, start: int = FIRST_DATA_ROW) -> list[int]:
    """Row numbers for ``count`` consecutive records, stepping over the reserved row."""
    rows = []
    row = start
    for _ in range(count):
        if row == RESERVED_ROW:
            row += 1
        rows.append(row)
        row += 1
    return rows


def header_errors(values: list, headers: list[str] | None = None) -> list[str]:
    errors = []
    for col, expected in enumerate(headers or HEADERS, start=1):
        actual = values[col - 1] if col - 1 < len(values) else None
        actual_text = " ".join(str(actual or "").split())
        if actual_text.lower() != " ".join(expected.split()).lower():
            errors.append(f"column {col}: expected {expected!r}, found {actual_text or '[blank]'!r}")
    return errors


def mapping_keys(value) -> tuple[str, ...]:
    """Header mapping values are one field key or an ordered tuple of fallbacks."""
    if not value:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)
