from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from receipt_sheet.branches import BRANCH_MAP, DEFAULT_HEADER_WINDOW
from receipt_sheet.layout import HEADER_MAPPING, HEADERS, MODE_BRANCH_SHEETS, MODES

OUTPUT_STAMP_ENV = "RECEIPT_SHEET_OUTPUT_STAMP"
DEFAULT_CONFIG_NAME = "receipt-sheet.json"
CONFIG_KEYS = {"branches", "header_mapping", "mode", "header_window"}


class ConfigError(ValueError):
    pass


@dataclass
class SheetConfig:
    branches: dict[str, str] = field(default_factory=lambda: dict(BRANCH_MAP))
    header_mapping: dict[str, str | tuple[str, ...]] = field(default_factory=lambda: dict(HEADER_MAPPING))
    mode: str = MODE_BRANCH_SHEETS
    header_window: int = DEFAULT_HEADER_WINDOW


def _string_map(payload, name: str) -> dict[str, str]:
    if not isinstance(payload, dict):
        raise ConfigError(f"'{name}' must be a JSON object")
    for key, value in payload.items():
        if not isinstance(value, str) or not value.strip():
            raise ConfigError(f"'{name}.{key}' must be a non-empty string")
    return dict(payload)


def _key_map(payload, name: str) -> dict[str, str | tuple[str, ...]]:
    if not isinstance(payload, dict):
        raise ConfigError(f"'{name}' must be a JSON object")
    mapping: dict[str, str | tuple[str, ...]] = {}
    for header, value in payload.items():
        if isinstance(value, str) and value.strip():
            mapping[header] = value
        elif isinstance(value, list) and value and all(isinstance(item, str) and item.strip() for item in value):
            mapping[header] = tuple(value)
        else:
            raise ConfigError(f"'{name}.{header}' must be a field key or a list of field keys")
    return mapping


def config_from_dict(payload: dict) -> SheetConfig:
    if not isinstance(payload, dict):
        raise ConfigError("Config root must be a JSON object.")
    unknown = sorted(set(payload) - CONFIG_KEYS)
    if unknown:
        raise ConfigError(f"Unknown config keys: {', '.join(unknown)}")

    config = SheetConfig()
    if "branches" in payload:
        config.branches.update(_string_map(payload["branches"], "branches"))
    if "header_mapping" in payload:
        mapping = _key_map(payload["header_mapping"], "header_mapping")
        unknown_headers = sorted(set(mapping) - set(HEADERS))
        if unknown_headers:
            raise ConfigError(f"header_mapping names headers not in the template layout: {', '.join(unknown_headers)}")
        config.header_mapping.update(mapping)
    if "mode" in payload:
        if payload["mode"] not in MODES:
            raise ConfigError(f"mode must be one of: {', '.join(MODES)}")
        config.mode = payload["mode"]
    if "header_window" in payload:
        window = payload["header_window"]
        if not isinstance(window, int) or isinstance(window, bool) or window < 1:
            raise ConfigError("header_window must be a positive integer")
        config.header_window = window
    return config


def load_config(path: Path | None) -> SheetConfig:
    if path is None:
        return SheetConfig()
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config not found: {path}")
    if path.suffix.lower() != ".json":
        raise ConfigError("Config must be a .json file")
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        raise ConfigError(f"Could not read config: {exc}") from exc
    return config_from_dict(payload)


def starter_config() -> dict:
    return {
        "branches": dict(BRANCH_MAP),
        "header_mapping": dict(HEADER_MAPPING),
        "mode": MODE_BRANCH_SHEETS,
        "header_window": DEFAULT_HEADER_WINDOW,
    }


def timestamp_token() -> str:
    override = os.environ.get(OUTPUT_STAMP_ENV)
    if override:
        return override
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
