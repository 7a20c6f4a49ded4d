"""Tests for amount/date parsing and statement line normalization."""

from datetime import date, datetime
from decimal import Decimal

import pytest

from budget_recon.config import ColumnMapping, LocaleSettings
from budget_recon.parsers.normalizer import Normalizer, parse_amount, parse_date
from budget_recon.utils.exceptions import ParseError


class TestParseAmount:
    """Amounts under comma and dot decimal conventions."""

    @pytest.mark.parametrize(
        "text,expected",
        [
            ("-42,00", Decimal("-42.00")),
            ("1 234,56", Decimal("1234.56")),
            ("1.234,56", Decimal("1234.56")),
            ("1,234.56", Decimal("1234.56")),
            ("2800", Decimal("2800.00")),
            ("+15,5", Decimal("15.50")),
            ("42,00-", Decimal("-42.00")),
            ("(15,00)", Decimal("-15.00")),
            ("€ 3,50", Decimal("3.50")),
        ],
    )
    def test_comma_decimal_locale(self, text, expected):
        """Test the default French convention, including ambiguous strings."""
        assert parse_amount(text, ",", " ") == expected

    def test_last_separator_wins_when_both_present(self):
        """Test that the separator appearing last is the decimal one."""
        assert parse_amount("1.234,5", ".", ",") == Decimal("1234.50")
        assert parse_amount("1,234.5", ",", ".") == Decimal("1234.50")

    def test_dot_locale_grouping(self):
        """Test that a comma followed by three digits is read as grouping."""
        assert parse_amount("1,234", ".", ",") == Decimal("1234.00")
        assert parse_amount("1,5", ".", ",") == Decimal("1.50")
        assert parse_amount("12.50", ".", ",") == Decimal("12.50")

    def test_numbers_pass_through(self):
        """Test that numeric cells from spreadsheets are accepted."""
        assert parse_amount(-42.5) == Decimal("-42.50")
        assert parse_amount(12) == Decimal("12.00")
        assert parse_amount(Decimal("10.005")) == Decimal("10.01")

    @pytest.mark.parametrize(
        "value",
        [
            "",
            "abc",
            "12,3,4x",
            "12,3,4",
            "1,2,3",
            "1.2.3,45",
            "12.345,678",
            "1,234",
            "1.234",
            None,
            float("nan"),
        ],
    )
    def test_invalid_amounts(self, value):
        """Test that unusable or malformed amounts raise ParseError on the amount column."""
        with pytest.raises(ParseError) as exc_info:
            parse_amount(value)
        assert exc_info.value.column == "amount"

    def test_repeated_grouping(self):
        """Test that well-formed groups of thousands are accepted in both locales."""
        assert parse_amount("1.234.567,89") == Decimal("1234567.89")
        assert parse_amount("1,234,567.5", ".", ",") == Decimal("1234567.50")

    def test_misplaced_grouping_in_dot_locale(self):
        with pytest.raises(ParseError):
            parse_amount("1,23,4", ".", ",")
        with pytest.raises(ParseError):
            parse_amount("12.345", ".", ",")


class TestParseDate:
    def test_configured_format(self):
        assert parse_date("09/01/2026", "%d/%m/%Y") == date(2026, 1, 9)

    def test_date_objects(self):
        assert parse_date(datetime(2026, 1, 9, 12, 30), "%d/%m/%Y") == date(2026, 1, 9)
        assert parse_date(date(2026, 1, 9), "%d/%m/%Y") == date(2026, 1, 9)

    def test_wrong_format_raises(self):
        with pytest.raises(ParseError) as exc_info:
            parse_date("2026-01-09", "%d/%m/%Y")
        assert exc_info.value.column == "date"

    def test_missing_date_raises(self):
        with pytest.raises(ParseError):
            parse_date("  ", "%d/%m/%Y")


class TestNormalizer:
    """Tests for Normalizer.normalize and normalize_all."""

    @pytest.fixture
    def normalizer(self):
        return Normalizer(ColumnMapping(), LocaleSettings())

    def test_normalize_line(self, normalizer):
        """Test a card payment line with card suffix and purchase date."""
        row = normalizer.normalize(
            ["29/12/2025", "CARTE 28/12/25 LIDL 1234 CB*7166", "-23,40"], line=2
        )
        assert row.date == date(2025, 12, 29)
        assert row.amount == Decimal("-23.40")
        assert row.description == "CARTE 28/12/25 LIDL 1234 CB*7166"
        assert row.card_suffix == "7166"
        assert row.purchase_date == date(2025, 12, 28)
        assert row.line == 2
        assert row.import_hash

    def test_check_number_from_description(self, normalizer):
        row = normalizer.normalize(["05/01/2026", "CHQ 1234567", "-80,00"])
        assert row.check_number == "1234567"

    def test_mapped_check_number_column(self):
        mapping = ColumnMapping(date=0, description=1, amount=2, check_number=3)
        normalizer = Normalizer(mapping, LocaleSettings())
        row = normalizer.normalize(["05/01/2026", "Cheque", "-80,00", "0042"])
        assert row.check_number == "0042"

    def test_debit_credit_columns(self):
        """Test that debit is negative and credit positive."""
        mapping = ColumnMapping(date=0, description=1, amount=None, debit=2, credit=3)
        normalizer = Normalizer(mapping, LocaleSettings())

        debit = normalizer.normalize(["05/01/2026", "Loyer", "750,00", ""])
        credit = normalizer.normalize(["20/01/2026", "Salaire", "", "2 800,00"])

        assert debit.amount == Decimal("-750.00")
        assert credit.amount == Decimal("2800.00")

    def test_debit_credit_both_empty_raises(self):
        mapping = ColumnMapping(date=0, description=1, amount=None, debit=2, credit=3)
        normalizer = Normalizer(mapping, LocaleSettings())
        with pytest.raises(ParseError):
            normalizer.normalize(["05/01/2026", "Rien", "", ""])

    def test_invert_amounts(self):
        mapping = ColumnMapping(invert_amounts=True)
        normalizer = Normalizer(mapping, LocaleSettings())
        row = normalizer.normalize(["05/01/2026", "Card statement", "42,00"])
        assert row.amount == Decimal("-42.00")

    def test_missing_column_raises_with_line(self, normalizer):
        with pytest.raises(ParseError) as exc_info:
            normalizer.normalize(["05/01/2026", "Short line"], line=7)
        assert exc_info.value.line == 7
        assert exc_info.value.column == "amount"

    def test_normalize_all_collects_errors(self, normalizer):
        """Test that bad lines are reported and the rest still parse."""
        raw = [
            ["09/01/2026", "PAIEMENT RESTAURANT NICE", "-42,00"],
            ["not a date", "Broken", "-1,00"],
            ["", "", ""],
            ["10/01/2026", "Boulangerie", "abc"],
            ["11/01/2026", "VIR SEPA SALAIRE", "2 800,00"],
        ]
        rows, issues = normalizer.normalize_all(raw, first_line=2)

        assert [r.description for r in rows] == ["PAIEMENT RESTAURANT NICE", "VIR SEPA SALAIRE"]
        assert [r.line for r in rows] == [2, 6]
        assert [i.row_index for i in issues] == [3, 5]
        assert "not a date" in issues[0].message

    def test_import_hash_ignores_description_case(self, normalizer):
        first = normalizer.normalize(["09/01/2026", "Paiement Restaurant Nice", "-42,00"])
        second = normalizer.normalize(["09/01/2026", "PAIEMENT RESTAURANT NICE", "-42,00"])
        assert first.import_hash == second.import_hash
