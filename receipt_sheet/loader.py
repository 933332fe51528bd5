"""
Input loading for receipt-sheet.

OCR text arrives as files in whatever encoding the OCR tool produced, so
text files are decoded line by line with chardet's guess as a fallback.
Templates are loaded with openpyxl from a path, raw bytes, or an already
open workbook.
"""

from __future__ import annotations

import io
import logging
import zipfile
from pathlib import Path

import chardet
from openpyxl import Workbook, load_workbook

logger = logging.getLogger(__name__)

TEXT_FORMATS = {".txt", ".text", ".ocr"}
TEMPLATE_FORMATS = {".xlsx", ".xlsm"}
PAGE_SEPARATOR = "\n\n"


def detect_encoding(raw: bytes) -> dict:
    result = chardet.detect(raw)
    detected = result.get("encoding") or "unknown"
    confidence = round(result.get("confidence") or 0.0, 2)
    return {
        "detected": detected,
        "confidence": confidence,
        "is_utf8": detected.upper().replace("-", "") in ("UTF8", "ASCII"),
    }


def read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Each line tries UTF-8, then the detected encoding, then latin-1, and
    finally CP1252 with replacement. Null bytes and a leading BOM are dropped.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc or enc == "unknown":
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


def decode_text(raw: bytes) -> str:
    info = detect_encoding(raw)
    if not info["is_utf8"]:
        logger.debug("Decoding OCR text as %s (confidence %.2f)", info["detected"], info["confidence"])
    return read_text_safely(raw, info["detected"])


def read_receipt_text(path: Path) -> str:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return decode_text(path.read_bytes())


def join_pages(pages: list[str]) -> str:
    """One receipt spread over several pages becomes one text block."""
    return "".join(page + PAGE_SEPARATOR for page in pages)


def is_encrypted_ooxml(raw: bytes) -> bool:
    try:
        with zipfile.ZipFile(io.BytesIO(raw)) as archive:
            names = set(archive.namelist())
    except zipfile.BadZipFile:
        return False
    return {"EncryptedPackage", "EncryptionInfo"}.issubset(names)


def load_template(source) -> Workbook:
    if isinstance(source, Workbook):
        return source
    keep_vba = False
    if isinstance(source, (str, Path)):
        path = Path(source)
        if not path.exists():
            raise FileNotFoundError(f"Template not found: {path}")
        if path.suffix.lower() not in TEMPLATE_FORMATS:
            raise ValueError(f"Expected an .xlsx/.xlsm template, got: {path.suffix or '[missing extension]'}")
        keep_vba = path.suffix.lower() == ".xlsm"
        raw = path.read_bytes()
    else:
        raw = bytes(source)
    if is_encrypted_ooxml(raw):
        raise ValueError("Password-protected / encrypted OOXML workbooks are not supported")
    try:
        return load_workbook(io.BytesIO(raw), keep_vba=keep_vba)
    except Exception as exc:
        raise ValueError(f"Could not read workbook: {exc}") from exc
