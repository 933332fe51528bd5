from __future__ import annotations

import importlib.util
import io
import sys
import unittest
from pathlib import Path

from openpyxl import load_workbook

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from receipt_sheet.layout import COL, HIDE_ZERO_FORMAT, MODE_SINGLE_SHEET
from receipt_sheet.parser import ReceiptRecord, parse_receipt
from receipt_sheet.populate import (
    NothingToPopulate,
    TemplateRequired,
    build_structured_summary,
    populate,
    populate_template,
    sort_records,
    workbook_to_bytes,
)

RECEIPTS_DIR = ROOT / "sample-data" / "receipts"


def load_module(module_path: Path, module_name: str):
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


TEMPLATE = load_module(ROOT / "sample-data" / "generate_template.py", "generate_template")


def clark(**fields) -> ReceiptRecord:
    return ReceiptRecord(sheet="CLARK", fields=fields, branch="SM CITY CLARK")


def sample_records() -> list[ReceiptRecord]:
    paths = sorted(RECEIPTS_DIR.glob("*.txt"))
    return [parse_receipt(path.read_text(encoding="utf-8"), source=path.name) for path in paths]


class BranchSheetPopulateTests(unittest.TestCase):
    def setUp(self):
        self.workbook = TEMPLATE.build_template()

    def test_single_record_fills_row_three(self):
        record = clark(date="1st Jan 2024", grab="1,000.50", gcash="0")
        populate(self.workbook, [record])
        sheet = self.workbook["CLARK"]
        self.assertEqual(sheet.cell(row=3, column=1).value, "01/01/24")
        self.assertEqual(sheet.cell(row=3, column=COL["GRAB"]).value, 1000.5)
        gcash = sheet.cell(row=3, column=COL["GCASH"])
        self.assertEqual(gcash.value, 0)
        self.assertNotEqual(gcash.number_format, HIDE_ZERO_FORMAT)

    def test_absent_amount_is_hidden_zero(self):
        populate(self.workbook, [clark(**{"for": "1st Jan 2024", "grab": "10.00"})])
        cell = self.workbook["CLARK"].cell(row=3, column=COL["PWD DISC"])
        self.assertEqual(cell.value, 0)
        self.assertEqual(cell.number_format, HIDE_ZERO_FORMAT)

    def test_records_written_newest_first(self):
        records = [
            clark(dateIssued="January 2nd, 2024", grab="1.00"),
            clark(dateIssued="January 5th, 2024", grab="5.00"),
        ]
        populate(self.workbook, records)
        sheet = self.workbook["CLARK"]
        self.assertEqual(sheet.cell(row=3, column=COL["GRAB"]).value, 5.0)
        self.assertEqual(sheet.cell(row=4, column=COL["GRAB"]).value, 1.0)

    def test_undated_records_sort_last_in_input_order(self):
        records = [
            clark(dateIssued="garbage", grab="1.00"),
            clark(dateIssued="January 2nd, 2024", grab="2.00"),
            clark(grab="3.00"),
        ]
        ordered = sort_records(records)
        self.assertEqual([record.get("grab") for record in ordered], ["2.00", "1.00", "3.00"])

    def test_zoned_and_naive_dates_sort_together(self):
        records = [
            clark(dateIssued="2024-01-02", grab="2.00"),
            clark(dateIssued="today", grab="0.50"),
            clark(dateIssued="2024-01-05 10:00 UTC", grab="5.00"),
        ]
        ordered = sort_records(records)
        self.assertEqual([record.get("grab") for record in ordered], ["5.00", "2.00", "0.50"])

    def test_odd_dates_and_negative_amounts_populate(self):
        records = [
            clark(**{"for": "today", "dateIssued": "2024-01-05 10:00 UTC", "cashSales": "-1,234.56"}),
            clark(**{"for": "2nd Jan 2024", "dateIssued": "2024-01-02", "cancelledAmount": "(55.25)"}),
        ]
        result = populate(self.workbook, records)
        sheet = self.workbook["CLARK"]
        self.assertEqual(result.rows_written, {"CLARK": [3, 4]})
        self.assertEqual(sheet.cell(row=3, column=1).value, "today")
        self.assertEqual(sheet.cell(row=3, column=COL["CALCULATED CASH (SALES INVOICE)"]).value, -1234.56)
        self.assertEqual(sheet.cell(row=4, column=1).value, "01/02/24")
        self.assertEqual(sheet.cell(row=4, column=COL["VOIDS"]).value, -55.25)

    def test_forty_seven_records_skip_reserved_row(self):
        records = [clark(grab=f"{index}.00") for index in range(1, 48)]
        result = populate(self.workbook, records)
        sheet = self.workbook["CLARK"]
        rows = result.rows_written["CLARK"]
        self.assertEqual(len(rows), 47)
        self.assertNotIn(49, rows)
        self.assertEqual(rows[-1], 50)
        self.assertEqual(sheet.cell(row=49, column=1).value, "TOTAL")
        self.assertEqual(sheet.cell(row=50, column=COL["GRAB"]).value, 47.0)
        self.assertEqual(result.stats["reserved_rows_skipped"], 1)

    def test_formula_columns_are_preserved(self):
        before = self.workbook["CLARK"].cell(row=3, column=6).value
        populate(self.workbook, [clark(grab="1.00")])
        sheet = self.workbook["CLARK"]
        self.assertEqual(sheet.cell(row=3, column=6).value, before)
        self.assertTrue(str(sheet.cell(row=3, column=36).value).startswith("=SUM("))
        self.assertTrue(str(sheet.cell(row=3, column=46).value).startswith("="))

    def test_prior_data_is_cleared(self):
        sheet = self.workbook["CLARK"]
        sheet.cell(row=10, column=COL["GRAB"], value=999)
        sheet.cell(row=48, column=2, value="stale")
        result = populate(self.workbook, [clark(grab="1.00")])
        self.assertIsNone(sheet.cell(row=10, column=COL["GRAB"]).value)
        self.assertIsNone(sheet.cell(row=48, column=2).value)
        self.assertGreaterEqual(result.stats["cells_cleared"], 2)

    def test_untouched_branch_sheet_is_still_cleared(self):
        self.workbook["PAMPANGA"].cell(row=5, column=COL["GRAB"], value=12)
        populate(self.workbook, [clark(grab="1.00")])
        self.assertIsNone(self.workbook["PAMPANGA"].cell(row=5, column=COL["GRAB"]).value)

    def test_missing_sheet_warns_and_skips(self):
        workbook = TEMPLATE.build_template(["CLARK"])
        records = [clark(grab="1.00"), ReceiptRecord(sheet="PAMPANGA", fields={"grab": "2.00"}, source="p.txt")]
        with self.assertLogs("receipt_sheet.populate", level="WARNING"):
            result = populate(workbook, records)
        self.assertEqual(result.rows_written, {"CLARK": [3]})
        self.assertEqual(len(result.skipped), 1)
        self.assertEqual(result.skipped[0].source, "p.txt")
        self.assertIn("PAMPANGA", " ".join(result.warnings))
        self.assertEqual(result.stats["sheets_missing"], 1)

    def test_unrouted_record_is_skipped(self):
        records = [clark(grab="1.00"), ReceiptRecord(sheet=None, fields={"grab": "2.00"}, source="x.txt")]
        result = populate(self.workbook, records)
        self.assertEqual(result.records_written, 1)
        self.assertEqual(result.skipped[0].reason, "no branch detected")

    def test_header_mismatch_is_reported(self):
        self.workbook["CLARK"].cell(row=2, column=1, value="WRONG")
        result = populate(self.workbook, [clark(grab="1.00")])
        self.assertTrue(any("header row" in warning for warning in result.warnings))

    def test_preconditions(self):
        with self.assertRaises(TemplateRequired) as ctx:
            populate(None, [clark()])
        self.assertEqual(str(ctx.exception), "Please upload an Excel template first.")
        with self.assertRaises(NothingToPopulate) as ctx:
            populate(self.workbook, [])
        self.assertEqual(str(ctx.exception), "Please upload at least one receipt first.")
        with self.assertRaises(ValueError):
            populate(self.workbook, [clark()], mode="columns")

    def test_sample_receipts_route_to_branch_sheets(self):
        result = populate(self.workbook, sample_records())
        self.assertEqual(result.rows_written, {"CLARK": [3, 4], "PAMPANGA": [3]})
        clark_sheet = self.workbook["CLARK"]
        self.assertEqual(clark_sheet.cell(row=3, column=1).value, "01/05/24")
        self.assertEqual(clark_sheet.cell(row=4, column=1).value, "01/02/24")
        self.assertEqual(clark_sheet.cell(row=3, column=COL["TRANSACTION COUNT (POS)"]).value, 87)
        self.assertEqual(self.workbook["PAMPANGA"].cell(row=3, column=COL["GCASH"]).value, 2310.0)


class SingleSheetPopulateTests(unittest.TestCase):
    def test_first_sheet_receives_everything_and_overflow_is_wiped(self):
        workbook = TEMPLATE.build_template(["REPORT"])
        sheet = workbook["REPORT"]
        sheet.cell(row=60, column=3, value="leftover")
        records = [
            clark(grab="1.00"),
            ReceiptRecord(sheet="PAMPANGA", fields={"grab": "2.00"}),
        ]
        result = populate(workbook, records, mode=MODE_SINGLE_SHEET)
        self.assertEqual(result.rows_written, {"REPORT": [3, 4]})
        self.assertIsNone(sheet.cell(row=60, column=3).value)
        self.assertIsNone(sheet.cell(row=3, column=COL["GCASH"]).value)
        self.assertEqual(result.skipped, [])


class OutputTests(unittest.TestCase):
    def test_workbook_bytes_reload(self):
        workbook = TEMPLATE.build_template()
        populate(workbook, [clark(grab="1,000.50")])
        reloaded = load_workbook(io.BytesIO(workbook_to_bytes(workbook)))
        self.assertEqual(reloaded["CLARK"].cell(row=3, column=COL["GRAB"]).value, 1000.5)

    def test_structured_summary_contract(self):
        workbook = TEMPLATE.build_template()
        records = [clark(grab="1.00"), ReceiptRecord(sheet=None, fields={}, source="lost.txt")]
        summary = build_structured_summary(populate(workbook, records))
        self.assertEqual(summary["contract"]["name"], "receipt_sheet.populate_summary")
        self.assertEqual(summary["schema_version"], summary["contract"]["version"])
        self.assertEqual(summary["run_summary"]["tool"], "receipt-sheet")
        self.assertEqual(summary["run_summary"]["status"], "partial")
        self.assertEqual(summary["run_summary"]["metrics"]["records_written"], 1)
        self.assertEqual(summary["skipped_records"][0]["source"], "lost.txt")
        self.assertTrue(summary["assumptions"])

    def test_populate_template_accepts_bytes_and_raw_text(self):
        template_bytes = workbook_to_bytes(TEMPLATE.build_template())
        text = (RECEIPTS_DIR / "pampanga_2024-01-03.txt").read_text(encoding="utf-8")
        data, result = populate_template(template_bytes, [text])
        self.assertEqual(result.rows_written, {"PAMPANGA": [3]})
        reloaded = load_workbook(io.BytesIO(data))
        self.assertEqual(reloaded["PAMPANGA"].cell(row=3, column=1).value, "01/03/24")

    def test_populate_template_requires_template(self):
        with self.assertRaises(TemplateRequired):
            populate_template(None, [clark()])


if __name__ == "__main__":
    unittest.main()
