from __future__ import annotations

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import pandas as pd

from receipt_sheet.branches import DEFAULT_HEADER_WINDOW, detect_branch, require_branch

logger = logging.getLogger(__name__)

NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]+")


@dataclass
class ReceiptRecord:
    """Fields parsed from one receipt, keyed by camel-cased label."""

    sheet: str | None
    fields: dict[str, str] = field(default_factory=dict)
    branch: str | None = None
    source: str | None = None

    def get(self, key: str | None) -> str | None:
        if key is None:
            return None
        if key == "sheet":
            return self.sheet
        return self.fields.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self.fields

    def as_dict(self) -> dict[str, str | None]:
        return {"sheet": self.sheet, **self.fields}


def to_camel_case(label: str) -> str:
    words = [word.lower() for word in NON_ALNUM_RE.split(label) if word]
    if not words:
        return ""
    return words[0] + "".join(word[:1].upper() + word[1:] for word in words[1:])


def split_field_line(line: str) -> tuple[str, str] | None:
    text = line.strip()
    if ":" not in text:
        return None
    label, value = text.split(":", 1)
    key = to_camel_case(label.strip())
    if not key:
        return None
    return key, value.strip()


def parse_receipt(
    raw_text: str,
    *,
    branch_map: dict[str, str] | None = None,
    header_window: int = DEFAULT_HEADER_WINDOW,
    source: str | None = None,
    strict: bool = False,
) -> ReceiptRecord:
    lines = raw_text.splitlines()
    if strict:
        match = require_branch(lines, header_window, branch_map)
    else:
        match = detect_branch(lines, header_window, branch_map)
        if match is None:
            logger.warning(
                "No known branch in the first %d lines of %s; record will not be routed",
                header_window,
                source or "receipt",
            )

    fields: dict[str, str] = {}
    for line in lines:
        pair = split_field_line(line)
        if pair is None:
            continue
        key, value = pair
        if key == "sheet":
            continue
        fields[key] = value

    return ReceiptRecord(
        sheet=match.sheet if match else None,
        fields=fields,
        branch=match.name if match else None,
        source=source,
    )


def parse_receipts(
    texts: list[str],
    *,
    sources: list[str] | None = None,
    branch_map: dict[str, str] | None = None,
    header_window: int = DEFAULT_HEADER_WINDOW,
    max_workers: int | None = None,
) -> list[ReceiptRecord]:
    sources = list(sources) if sources is not None else [None] * len(texts)
    if len(sources) != len(texts):
        raise ValueError("sources must have one entry per receipt text")

    def parse_one(item: tuple[str, str | None]) -> ReceiptRecord:
        text, source = item
        return parse_receipt(text, branch_map=branch_map, header_window=header_window, source=source)

    items = list(zip(texts, sources))
    if len(items) <= 1:
        return [parse_one(item) for item in items]
    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        records = list(executor.map(parse_one, items))
    logger.info("Parsed %d receipts", len(records))
    return records


def records_frame(records: list[ReceiptRecord]) -> pd.DataFrame:
    rows = [{"source": record.source, **record.as_dict()} for record in records]
    frame = pd.DataFrame(rows)
    if frame.empty:
        return pd.DataFrame(columns=["source", "sheet"])
    leading = ["source", "sheet"]
    rest = [column for column in frame.columns if column not in leading]
    return frame[leading + rest]
