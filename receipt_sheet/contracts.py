"""Versioned contracts for receipt-sheet JSON outputs.

Every machine payload carries ``contract`` and a ``run_summary`` block so a
downstream reader can check the shape before trusting the numbers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from receipt_sheet import __version__ as TOOL_VERSION

CONTRACT_VERSIONS = {
    "receipt_sheet.parse": "1.0.0",
    "receipt_sheet.populate_summary": "1.0.0",
}
RUN_STATUSES = ("ok", "partial")


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def build_contract(name: str) -> dict[str, str]:
    return {"name": name, "version": CONTRACT_VERSIONS[name]}


def build_run_summary(
    *,
    tool: str,
    command: str,
    input_paths: list[Path] | None = None,
    status: str = "ok",
    output_path: Path | None = None,
    metrics: dict[str, Any] | None = None,
    warnings: list[str] | None = None,
) -> dict[str, Any]:
    if status not in RUN_STATUSES:
        raise ValueError(f"Unknown run status: {status}")
    inputs = [str(path) for path in input_paths or []]
    warnings = list(warnings or [])
    return {
        "tool": tool,
        "tool_version": TOOL_VERSION,
        "command": command,
        "status": status,
        "generated_at": utc_now_iso(),
        "input_files": inputs,
        "input_count": len(inputs),
        "output_file": str(output_path) if output_path else None,
        "warnings_count": len(warnings),
        "warnings": warnings,
        "metrics": dict(metrics or {}),
    }
