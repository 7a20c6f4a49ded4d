"""Tests for reading CSV and Excel statement files."""

from datetime import datetime

import pytest
from openpyxl import Workbook

from budget_recon.config import ReconConfig
from budget_recon.parsers.normalizer import Normalizer
from budget_recon.parsers.statement_reader import StatementReader
from budget_recon.utils.exceptions import StatementReadError


@pytest.fixture
def reader():
    return StatementReader(ReconConfig())


class TestCsv:
    def test_reads_semicolon_csv_as_strings(self, reader, tmp_path):
        path = tmp_path / "releve.csv"
        path.write_text(
            "Date;Libelle;Montant\n"
            "09/01/2026;PAIEMENT RESTAURANT NICE;-42,00\n"
            "\n"
            "20/01/2026;VIR SEPA SALAIRE;2 800,00\n",
            encoding="utf-8",
        )

        rows = reader.read_file(path)

        assert rows == [
            ["09/01/2026", "PAIEMENT RESTAURANT NICE", "-42,00"],
            ["20/01/2026", "VIR SEPA SALAIRE", "2 800,00"],
        ]
        assert reader.first_data_line(path) == 2

    def test_skip_rows_and_no_header(self, tmp_path):
        config = ReconConfig()
        config.input.csv.skip_rows = 2
        config.input.csv.has_header = False
        reader = StatementReader(config)

        path = tmp_path / "export.csv"
        path.write_text("Banque;X;Y\nCompte;1;2\n09/01/2026;Boulangerie;-3,20\n")

        assert reader.read_file(path) == [["09/01/2026", "Boulangerie", "-3,20"]]
        assert reader.first_data_line(path) == 3

    def test_missing_file(self, reader, tmp_path):
        with pytest.raises(StatementReadError):
            reader.read_file(tmp_path / "missing.csv")

    def test_rows_feed_the_normalizer(self, reader, tmp_path):
        path = tmp_path / "releve.csv"
        path.write_text("Date;Libelle;Montant\n09/01/2026;CARTE 08/01/26 LIDL CB*7166;-23,40\n")

        config = ReconConfig()
        rows, issues = Normalizer(config.mapping, config.locale).normalize_all(
            reader.read_file(path), first_line=reader.first_data_line(path)
        )

        assert issues == []
        assert rows[0].card_suffix == "7166"
        assert rows[0].line == 2


class TestExcel:
    def test_reads_typed_cells(self, reader, tmp_path):
        """Test that dates come back as datetimes and empty cells as empty strings."""
        wb = Workbook()
        ws = wb.active
        ws.append(["Date", "Libelle", "Montant", "Note"])
        ws.append([datetime(2026, 1, 9), "PAIEMENT RESTAURANT NICE", -42.0, None])
        path = tmp_path / "releve.xlsx"
        wb.save(path)

        rows = reader.read_file(path)

        assert len(rows) == 1
        assert rows[0][0] == datetime(2026, 1, 9)
        assert rows[0][1] == "PAIEMENT RESTAURANT NICE"
        assert rows[0][2] == -42.0
        assert rows[0][3] == ""
        assert reader.is_excel(path)
