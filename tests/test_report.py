"""Tests for the Excel batch report."""

from datetime import date

import pytest
from conftest import ACCOUNT, USER, statement_line
from openpyxl import load_workbook

from budget_recon.reports.excel_generator import ExcelReportGenerator
from budget_recon.utils.exceptions import ValidationError


@pytest.fixture
def parsed_batch(controller, add_transaction):
    add_transaction("-42.00", date(2026, 1, 9), "Restaurant", txn_id="bistrot")
    add_transaction("2800.00", date(2026, 1, 21), "Salaire", txn_id="salary-jan")
    add_transaction("2800.00", date(2025, 12, 19), "Salaire", txn_id="salary-dec")
    return controller.parse(
        USER,
        ACCOUNT,
        [
            statement_line("09/01/2026", "PAIEMENT RESTAURANT NICE", "-42,00"),
            statement_line("20/01/2026", "VIR SEPA SALAIRE JANVIER", "2 800,00"),
            statement_line("12/01/2026", "CARTE 11/01/26 LIDL CB*7166", "-23,40"),
            ["31/02/2026", "Date impossible", "-1,00"],
        ],
        filename="releve.csv",
        first_line=2,
    )


def _values(ws):
    return [list(row) for row in ws.iter_rows(values_only=True)]


class TestExcelReport:
    def test_all_sheets(self, config, parsed_batch, tmp_path):
        path = ExcelReportGenerator(config).generate_report(parsed_batch, tmp_path / "report.xlsx")

        wb = load_workbook(path)
        assert wb.sheetnames == ["Summary", "Rows", "Candidates", "Errors"]

        summary = {row[0]: row[1] for row in _values(wb["Summary"]) if row[0]}
        assert summary["Batch ID:"] == parsed_batch.id
        assert summary["File:"] == "releve.csv"
        assert summary["Status:"] == "pending"
        assert summary["Total Rows:"] == 3
        assert summary["Parse Errors:"] == 1
        assert summary["CB*7166"] == 1

        rows = _values(wb["Rows"])
        assert rows[0][:3] == ["Row", "Line", "Date"]
        assert [r[7] for r in rows[1:]] == ["exact", "probable", "new"]
        assert rows[1][10] == "bistrot"
        assert rows[3][11] == "Lidl"

        candidates = _values(wb["Candidates"])[1:]
        assert [c[3] for c in candidates] == ["bistrot", "salary-jan", "salary-dec"]
        assert [c[10] == "yes" for c in candidates] == [True, False, False]

        errors = _values(wb["Errors"])[1:]
        assert len(errors) == 1
        assert errors[0][:2] == ["parse", 5]

    def test_failed_batch_lists_confirm_errors(self, config, controller, parsed_batch, tmp_path):
        with pytest.raises(ValidationError):
            controller.confirm(parsed_batch.id, USER)
        failed = controller.get_batch(parsed_batch.id, USER)

        path = ExcelReportGenerator(config).generate_report(failed, tmp_path / "failed.xlsx")

        wb = load_workbook(path)
        summary = {row[0]: row[1] for row in _values(wb["Summary"]) if row[0]}
        assert summary["Status:"] == "failed"
        assert summary["Failure:"] == failed.error_message
        stages = [row[0] for row in _values(wb["Errors"])[1:]]
        assert stages == ["parse", "confirm"]

    def test_disabled_sheets_are_left_out(self, config, parsed_batch, tmp_path):
        config.output.sheets.candidates.enabled = False
        config.output.sheets.errors.enabled = False

        path = ExcelReportGenerator(config).generate_report(parsed_batch, tmp_path / "report.xlsx")

        assert load_workbook(path).sheetnames == ["Summary", "Rows"]

    def test_nothing_enabled_still_writes_a_workbook(self, config, parsed_batch, tmp_path):
        for sheet in ("summary", "rows", "candidates", "errors"):
            getattr(config.output.sheets, sheet).enabled = False

        path = ExcelReportGenerator(config).generate_report(parsed_batch, tmp_path / "out" / "r.xlsx")

        assert load_workbook(path).sheetnames == ["Summary"]

    def test_default_filename(self, config, parsed_batch):
        name = ExcelReportGenerator(config).default_filename(parsed_batch)
        assert name.startswith(f"import_report_{parsed_batch.id[:8]}_")
        assert name.endswith(".xlsx")
