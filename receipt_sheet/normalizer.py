from __future__ import annotations

import re
import warnings
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import pandas as pd

from receipt_sheet.layout import DATE_KEYS

POLICY_STRICT = "strict"
POLICY_PASS_THROUGH = "pass-through"
POLICIES = (POLICY_STRICT, POLICY_PASS_THROUGH)

ORDINAL_RE = re.compile(r"(\d+)(st|nd|rd|th)", re.IGNORECASE)
CURRENCY_RE = re.compile(r"-?[\d,]+\.\d+")
PAREN_NEGATIVE_RE = re.compile(r"^\(\s*([^()]+?)\s*\)$")
PLAIN_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
DATE_HINT_RE = re.compile(r"[A-Za-z]{3}|\d[/.-]\d")
DIGIT_RE = re.compile(r"\d")

DATE_FORMATS = [
    "%Y-%m-%d",
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%m-%d-%Y",
    "%d %b %Y",
    "%d %B %Y",
    "%d %b, %Y",
    "%d %B, %Y",
    "%d-%b-%Y",
    "%b %d %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%B %d, %Y",
]
OUTPUT_DATE_FORMAT = "%m/%d/%y"


@dataclass(frozen=True)
class NormalizedValue:
    value: Any
    implicit_zero: bool = False


def is_blank(value) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def strip_ordinals(text: str) -> str:
    return ORDINAL_RE.sub(r"\1", text)


def parse_date(value) -> datetime | None:
    """Parse receipt date text such as ``1st Jan 2024`` or ``2024-01-05``.

    Returns ``None`` when the text is not recognisably a date. Results are
    always naive; zoned input is converted to UTC first.
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            return value.astimezone(timezone.utc).replace(tzinfo=None)
        return value
    if is_blank(value) or not isinstance(value, str):
        return None
    cleaned = " ".join(strip_ordinals(value).split())
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(cleaned, fmt)
        except ValueError:
            continue
    # Bare words such as "today" stay raw.
    if not DIGIT_RE.search(cleaned) or not DATE_HINT_RE.search(cleaned):
        return None
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        try:
            parsed = pd.to_datetime(cleaned, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            return None
    if pd.isna(parsed) or not isinstance(parsed, pd.Timestamp):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.tz_convert(None)
    return parsed.to_pydatetime()


def format_date_value(value):
    parsed = parse_date(value)
    if parsed is None:
        return value
    return parsed.strftime(OUTPUT_DATE_FORMAT)


def parse_amount(value) -> float | int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if is_blank(value) or not isinstance(value, str):
        return None
    text = value.strip()
    # Accounting style: (1,234.56) is a negative amount.
    bracketed = PAREN_NEGATIVE_RE.match(text)
    if bracketed:
        amount = parse_amount(bracketed.group(1))
        return -abs(amount) if amount is not None else None
    match = CURRENCY_RE.search(text)
    if match:
        try:
            return float(match.group(0).replace(",", ""))
        except ValueError:
            return None
    if PLAIN_NUMBER_RE.match(text):
        return float(text) if "." in text else int(text)
    return None


def normalize(field_key: str | None, raw_value, is_date_field: bool | None = None, *, policy: str = POLICY_STRICT) -> NormalizedValue:
    if policy not in POLICIES:
        raise ValueError(f"Unknown normalization policy: {policy}")
    if is_date_field is None:
        is_date_field = field_key in DATE_KEYS

    if is_blank(raw_value):
        if is_date_field or policy == POLICY_PASS_THROUGH:
            return NormalizedValue("")
        return NormalizedValue(0, implicit_zero=True)

    if is_date_field:
        return NormalizedValue(format_date_value(raw_value))

    if policy == POLICY_PASS_THROUGH:
        if isinstance(raw_value, str) and CURRENCY_RE.search(raw_value):
            amount = parse_amount(raw_value)
            if amount is not None:
                return NormalizedValue(amount)
        return NormalizedValue(raw_value)

    amount = parse_amount(raw_value)
    if amount is not None:
        return NormalizedValue(amount)
    return NormalizedValue(raw_value.strip() if isinstance(raw_value, str) else raw_value)
