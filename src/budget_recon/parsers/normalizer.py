"""
Statement line normalizer.

Turns tokenized statement lines and a column mapping into ImportRow objects.
Amounts are read under the user's locale; a string carrying both "." and ","
takes whichever appears last as its decimal separator.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence
import logging
import math
import re

from ..config import ColumnMapping, LocaleSettings
from ..models.reconciliation import ImportRow
from ..utils.exceptions import ParseError, RowIssue
from ..utils.text import quantize_amount
from .bank_patterns import analyze_description

logger = logging.getLogger(__name__)

_CURRENCY_RE = re.compile(r"[€$£¥]|\b(?:EUR|USD|GBP|CHF)\b", re.IGNORECASE)
_SPACES_RE = re.compile(r"[\s']")
_DIGITS_RE = re.compile(r"\d*")
_FRACTION_RE = re.compile(r"\d{0,2}")


def _split_amount(
    text: str, decimal_separator: str, digit_grouping: str
) -> Optional[tuple[str, str, Optional[str]]]:
    """
    Split ``text`` into integer part, fraction and grouping character.

    Returns None when the separators cannot form a valid amount, such as a
    decimal separator used twice.
    """
    has_dot = "." in text
    has_comma = "," in text

    if not has_dot and not has_comma:
        return text, "", None

    if has_dot and has_comma:
        decimal = "." if text.rfind(".") > text.rfind(",") else ","
        grouping: Optional[str] = "," if decimal == "." else "."
    else:
        sep = "." if has_dot else ","
        if text.count(sep) > 1:
            # Repeated, so it can only be grouping
            if sep == decimal_separator:
                return None
            return text, "", sep
        tail = text.rsplit(sep, 1)[1]
        if sep == digit_grouping and len(tail) == 3:
            return text, "", sep
        decimal, grouping = sep, None

    if text.count(decimal) > 1:
        return None
    integer_part, _, fraction = text.rpartition(decimal)
    return integer_part, fraction, grouping


def _valid_integer_part(integer_part: str, grouping: Optional[str]) -> bool:
    if grouping and grouping in integer_part:
        pattern = rf"\d{{1,3}}(?:{re.escape(grouping)}\d{{3}})*"
        return re.fullmatch(pattern, integer_part) is not None
    return _DIGITS_RE.fullmatch(integer_part) is not None


def parse_amount(
    value: Any,
    decimal_separator: str = ",",
    digit_grouping: str = " ",
) -> Decimal:
    """
    Parse a statement amount.

    Args:
        value: Cell value (string, number or Decimal)
        decimal_separator: Locale decimal separator ("," or ".")
        digit_grouping: Locale grouping character (" ", ",", "." or "")

    Returns:
        Signed amount quantized to cents

    Raises:
        ParseError: If the value is empty, not a number, badly grouped
            or carries more than two decimals
    """
    if value is None or isinstance(value, bool):
        raise ParseError("Missing amount", column="amount")

    if isinstance(value, (int, Decimal)):
        return quantize_amount(Decimal(value))
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ParseError("Missing amount", column="amount")
        return quantize_amount(Decimal(str(value)))

    text = str(value).strip()
    negative = False
    if text.startswith("(") and text.endswith(")"):
        negative = True
        text = text[1:-1]

    text = _CURRENCY_RE.sub("", text)
    text = _SPACES_RE.sub("", text)

    if text.endswith("-"):
        negative = not negative
        text = text[:-1]

    sign = ""
    if text[:1] in ("+", "-"):
        sign, text = text[0], text[1:]

    if not text:
        raise ParseError(f"Invalid amount: {value!r}", column="amount")

    parts = _split_amount(text, decimal_separator, digit_grouping)
    if parts is None:
        raise ParseError(f"Invalid amount: {value!r}", column="amount")
    integer_part, fraction, grouping = parts

    if (
        not _valid_integer_part(integer_part, grouping)
        or not _DIGITS_RE.fullmatch(fraction)
        or not (integer_part or fraction)
    ):
        raise ParseError(f"Invalid amount: {value!r}", column="amount")
    if not _FRACTION_RE.fullmatch(fraction):
        raise ParseError(f"Too many decimals in amount: {value!r}", column="amount")
    if grouping:
        integer_part = integer_part.replace(grouping, "")

    try:
        amount = Decimal(f"{sign}{integer_part or '0'}.{fraction or '0'}")
    except InvalidOperation as e:
        raise ParseError(f"Invalid amount: {value!r}", column="amount") from e

    return quantize_amount(-amount if negative else amount)


def parse_date(value: Any, date_format: str) -> date:
    """
    Parse a statement date with the configured strptime format.

    Raises:
        ParseError: If the value does not match the format
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = "" if value is None else str(value).strip()
    if not text:
        raise ParseError("Missing date", column="date")

    try:
        return datetime.strptime(text, date_format).date()
    except ValueError as e:
        raise ParseError(
            f"Date {text!r} does not match format {date_format!r}", column="date"
        ) from e


class Normalizer:
    """
    Converts tokenized statement lines into ImportRow objects.

    Has no side effects; a failing line raises ParseError and never affects
    other lines.
    """

    def __init__(self, mapping: ColumnMapping, locale: LocaleSettings):
        """
        Initialize the normalizer.

        Args:
            mapping: Column indexes and date format
            locale: Decimal separator and digit grouping
        """
        self.mapping = mapping
        self.locale = locale

    def normalize(self, fields: Sequence[Any], line: Optional[int] = None) -> ImportRow:
        """
        Normalize one statement line.

        Args:
            fields: Cell values of the line
            line: Source line number, carried into the row and any error

        Returns:
            Normalized row

        Raises:
            ParseError: If the date, amount or a mapped column is unusable
        """
        try:
            row_date = parse_date(
                self._cell(fields, self.mapping.date, "date"), self.mapping.date_format
            )
            amount = self._read_amount(fields)
            description = self._text(self._cell(fields, self.mapping.description, "description"))
        except ParseError as e:
            e.line = line
            raise

        analysis = analyze_description(description)

        check_number = None
        if self.mapping.check_number is not None:
            check_number = self._text(self._optional_cell(fields, self.mapping.check_number)) or None
        check_number = check_number or analysis.check_number

        card_suffix = None
        if self.mapping.card_suffix is not None:
            digits = re.sub(r"\D", "", self._text(self._optional_cell(fields, self.mapping.card_suffix)))
            card_suffix = digits[-4:] if len(digits) >= 4 else None
        card_suffix = card_suffix or analysis.card_suffix

        return ImportRow(
            date=row_date,
            amount=amount,
            description=description,
            check_number=check_number,
            card_suffix=card_suffix,
            purchase_date=analysis.purchase_date,
            line=line,
        )

    def normalize_all(
        self, raw_rows: Sequence[Sequence[Any]], first_line: int = 1
    ) -> tuple[list[ImportRow], list[RowIssue]]:
        """
        Normalize a whole statement, collecting failures instead of stopping.

        Args:
            raw_rows: Tokenized statement lines
            first_line: Source line number of ``raw_rows[0]``

        Returns:
            Tuple of (rows, issues) where each issue names the failing line
        """
        rows: list[ImportRow] = []
        issues: list[RowIssue] = []

        for offset, fields in enumerate(raw_rows):
            line = first_line + offset
            if not any(self._text(cell) for cell in fields):
                continue
            try:
                rows.append(self.normalize(fields, line=line))
            except ParseError as e:
                logger.warning(f"Line {line}: {e}")
                issues.append(RowIssue(line, str(e)))

        return rows, issues

    def _read_amount(self, fields: Sequence[Any]) -> Decimal:
        decimal_separator = self.locale.decimal_separator
        grouping = self.locale.digit_grouping

        if self.mapping.amount is not None:
            amount = parse_amount(
                self._cell(fields, self.mapping.amount, "amount"), decimal_separator, grouping
            )
        else:
            debit_value = self._optional_cell(fields, self.mapping.debit)
            credit_value = self._optional_cell(fields, self.mapping.credit)
            if not self._text(debit_value) and not self._text(credit_value):
                raise ParseError("Neither debit nor credit is set", column="amount")

            amount = Decimal("0")
            if self._text(credit_value):
                amount += abs(parse_amount(credit_value, decimal_separator, grouping))
            if self._text(debit_value):
                amount -= abs(parse_amount(debit_value, decimal_separator, grouping))

        return -amount if self.mapping.invert_amounts else amount

    @staticmethod
    def _cell(fields: Sequence[Any], index: int, name: str) -> Any:
        try:
            return fields[index]
        except IndexError:
            raise ParseError(f"Column {index} ({name}) is missing", column=name) from None

    @staticmethod
    def _optional_cell(fields: Sequence[Any], index: Optional[int]) -> Any:
        if index is None or index >= len(fields):
            return None
        return fields[index]

    @staticmethod
    def _text(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, float) and math.isnan(value):
            return ""
        return str(value).strip()
