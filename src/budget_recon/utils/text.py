"""Text and money helpers shared by the parsers, models and matching layers."""

from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional
import hashlib
import re
import unicodedata

CENT = Decimal("0.01")


def strip_accents(value: str) -> str:
    """Drop combining marks ("Crédit" -> "Credit")."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_description(description: Optional[str]) -> str:
    """Lowercase, accent-free, alphanumerics and single spaces only."""
    if not description:
        return ""
    desc = strip_accents(description).casefold()
    desc = re.sub(r"[^a-z0-9\s]", "", desc)
    return " ".join(desc.split())


def quantize_amount(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal) -> int:
    """Convert a decimal amount to signed cents."""
    return int(quantize_amount(amount) * 100)


def from_minor_units(cents: int) -> Decimal:
    return quantize_amount(Decimal(cents) / 100)


def compute_import_hash(txn_date: date, amount: Decimal, description: Optional[str]) -> str:
    """
    Fingerprint of a statement line: date, amount and normalized description.

    Two lines with the same fingerprint are indistinguishable to the bank export,
    which is what the ``import_hash`` duplicate policy relies on.
    """
    payload = f"{txn_date.isoformat()}|{quantize_amount(amount)}|{normalize_description(description)}"
    return hashlib.md5(payload.encode("utf-8")).hexdigest()
