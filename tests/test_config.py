from __future__ import annotations

import json
import os
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from receipt_sheet.config import (
    OUTPUT_STAMP_ENV,
    ConfigError,
    SheetConfig,
    config_from_dict,
    load_config,
    starter_config,
    timestamp_token,
)
from receipt_sheet.layout import HEADER_MAPPING, MODE_BRANCH_SHEETS, MODE_SINGLE_SHEET


class ConfigTests(unittest.TestCase):
    def test_defaults(self):
        config = load_config(None)
        self.assertIsInstance(config, SheetConfig)
        self.assertEqual(config.branches["SM CITY CLARK"], "CLARK")
        self.assertEqual(config.header_mapping, HEADER_MAPPING)
        self.assertEqual(config.mode, MODE_BRANCH_SHEETS)
        self.assertEqual(config.header_window, 8)

    def test_overrides_merge_with_defaults(self):
        config = config_from_dict(
            {
                "branches": {"SM CITY BAGUIO": "BAGUIO"},
                "header_mapping": {"SHIFT": "shift", "DATE": ["for", "dateIssued"]},
                "mode": MODE_SINGLE_SHEET,
                "header_window": 12,
            }
        )
        self.assertEqual(config.branches["SM CITY BAGUIO"], "BAGUIO")
        self.assertEqual(config.branches["SM CITY PAMPANGA"], "PAMPANGA")
        self.assertEqual(config.header_mapping["SHIFT"], "shift")
        self.assertEqual(config.header_mapping["DATE"], ("for", "dateIssued"))
        self.assertEqual(config.header_mapping["GRAB"], "grab")
        self.assertEqual(config.mode, MODE_SINGLE_SHEET)
        self.assertEqual(config.header_window, 12)

    def test_invalid_payloads(self):
        cases = [
            [],
            {"colour": "blue"},
            {"branches": ["SM CITY CLARK"]},
            {"branches": {"SM CITY CLARK": ""}},
            {"header_mapping": {"NOT A HEADER": "grab"}},
            {"header_mapping": {"GRAB": 5}},
            {"mode": "columns"},
            {"header_window": 0},
            {"header_window": True},
        ]
        for payload in cases:
            with self.subTest(payload=payload):
                with self.assertRaises(ConfigError):
                    config_from_dict(payload)

    def test_load_config_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "receipt-sheet.json"
            path.write_text(json.dumps(starter_config()), encoding="utf-8")
            self.assertEqual(load_config(path).header_mapping["GRAB"], "grab")

            bad = Path(tmpdir) / "broken.json"
            bad.write_text("{not json", encoding="utf-8")
            with self.assertRaisesRegex(ConfigError, "Could not read config"):
                load_config(bad)

            yaml_path = Path(tmpdir) / "config.yaml"
            yaml_path.write_text("mode: single-sheet\n", encoding="utf-8")
            with self.assertRaisesRegex(ConfigError, ".json"):
                load_config(yaml_path)

            with self.assertRaisesRegex(ConfigError, "Config not found"):
                load_config(Path(tmpdir) / "missing.json")

    def test_starter_config_is_json_serializable(self):
        payload = json.loads(json.dumps(starter_config()))
        self.assertEqual(payload["header_mapping"]["DATE"], ["for", "date"])
        self.assertEqual(config_from_dict(payload).header_mapping["DATE"], ("for", "date"))

    def test_timestamp_token_override(self):
        with mock.patch.dict(os.environ, {OUTPUT_STAMP_ENV: "20260301T010203Z"}):
            self.assertEqual(timestamp_token(), "20260301T010203Z")
        with mock.patch.dict(os.environ, {OUTPUT_STAMP_ENV: ""}):
            self.assertRegex(timestamp_token(), r"^\d{8}T\d{6}Z$")


if __name__ == "__main__":
    unittest.main()
