#!/usr/bin/env python3
from __future__ import annotations

import sys
from pathlib import Path

import pandas as pd
import streamlit as st

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

from receipt_sheet.layout import MODE_BRANCH_SHEETS, MODES
from receipt_sheet.loader import decode_text, join_pages
from receipt_sheet.parser import ReceiptRecord, parse_receipts, records_frame
from receipt_sheet.populate import (
    OUTPUT_FILENAME,
    XLSX_MIME_TYPE,
    PopulateError,
    build_structured_summary,
    populate_template,
)

TEXT_EXTS = ["txt", "text", "ocr"]


def ensure_state() -> None:
    st.session_state.setdefault("records", [])
    st.session_state.setdefault("download_bytes", None)
    st.session_state.setdefault("summary", None)


def receipts_from_uploads(uploads, *, as_pages: bool = False) -> list[ReceiptRecord]:
    texts = [decode_text(upload.getvalue()) for upload in uploads]
    names = [upload.name for upload in uploads]
    if as_pages and texts:
        texts, names = [join_pages(texts)], [names[0]]
    return parse_receipts(texts, sources=names)


def generate_report(template_bytes: bytes | None, records: list[ReceiptRecord], mode: str = MODE_BRANCH_SHEETS) -> tuple[bytes, dict]:
    data, result = populate_template(template_bytes, records, mode=mode)
    return data, build_structured_summary(result)


def render_records(records: list[ReceiptRecord]) -> None:
    if not records:
        return
    st.subheader("Parsed receipts")
    frame = records_frame(records)
    st.dataframe(frame, width="stretch", hide_index=True)
    unrouted = [record.source for record in records if not record.sheet]
    if unrouted:
        st.warning("No branch detected in: " + ", ".join(name or "[text]" for name in unrouted))


def render_summary(summary: dict | None) -> None:
    if not summary:
        return
    metrics = summary["run_summary"]["metrics"]
    cols = st.columns(3)
    cols[0].metric("Records written", metrics["records_written"])
    cols[1].metric("Records skipped", metrics["records_skipped"])
    cols[2].metric("Sheets located", metrics["sheets_located"])
    if summary.get("warnings"):
        st.warning("\n".join(f"- {warning}" for warning in summary["warnings"]))
    if summary.get("rows_written"):
        rows = [
            {"sheet": sheet, "first_row": rows[0], "last_row": rows[-1], "records": len(rows)}
            for sheet, rows in summary["rows_written"].items()
        ]
        st.dataframe(pd.DataFrame(rows), width="stretch", hide_index=True)


def main() -> None:
    st.set_page_config(page_title="Receipts to Excel", layout="centered")
    ensure_state()

    st.title("Receipts to Excel")
    st.caption("Upload OCR text for each receipt and the branch report template, then generate the populated report.")

    uploads = st.file_uploader("OCR text files", type=TEXT_EXTS, accept_multiple_files=True)
    as_pages = st.checkbox("Files are pages of one receipt", value=False)
    template = st.file_uploader("Excel template", type=["xlsx", "xlsm"])
    mode = st.radio("Layout", options=list(MODES), index=list(MODES).index(MODE_BRANCH_SHEETS), horizontal=True)

    if uploads:
        st.session_state["records"] = receipts_from_uploads(uploads, as_pages=as_pages)
    render_records(st.session_state["records"])

    if st.button("Generate Report", type="primary", width="stretch"):
        try:
            data, summary = generate_report(
                template.getvalue() if template else None,
                st.session_state["records"],
                mode=mode,
            )
        except PopulateError as exc:
            st.error(str(exc))
        except ValueError as exc:
            st.error(f"Could not populate the template: {exc}")
        else:
            st.session_state["download_bytes"] = data
            st.session_state["summary"] = summary

    render_summary(st.session_state["summary"])
    if st.session_state["download_bytes"]:
        st.download_button(
            "Download populated workbook",
            data=st.session_state["download_bytes"],
            file_name=OUTPUT_FILENAME,
            mime=XLSX_MIME_TYPE,
            width="stretch",
        )


if __name__ == "__main__":
    main()
