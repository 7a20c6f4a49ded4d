"""
Bank description analysis.

French retail banks pack card, date and cheque details into the free-text
label of a statement line ("CARTE 28/12/25 LIDL 1234 CB*7166"). The helpers
here pull those details out and reduce the label to the merchant pattern used
as the payee alias key.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional
import re

from ..utils.text import strip_accents

CARD_SUFFIX_RE = re.compile(r"CB\s?\*\s?(\d{4})\s*$", re.IGNORECASE)
PURCHASE_DATE_RE = re.compile(r"CARTE\s+(\d{2})/(\d{2})/(\d{2,4})", re.IGNORECASE)
CHECK_NUMBER_RE = re.compile(r"^(?:CHQ|CHEQUE)\s*\.?\s*(?:N[O°]?\.?\s*)?(\d{3,})", re.IGNORECASE)

_BANK_PREFIXES = [
    re.compile(r"^VIR(?:EMENT)?\s+SEPA\s*", re.IGNORECASE),
    re.compile(r"^PRLV\s+SEPA\s*", re.IGNORECASE),
    re.compile(r"^PAIEMENT\s+PAR\s+CARTE\s*", re.IGNORECASE),
    re.compile(r"^PAIEMENT\s+CB\s*", re.IGNORECASE),
    re.compile(r"^RETRAIT\s+DAB\s*", re.IGNORECASE),
    re.compile(r"^CHQ\s*\.?\s*", re.IGNORECASE),
    re.compile(r"^CHEQUE\s*", re.IGNORECASE),
]
_CARD_DATE_RE = re.compile(r"CARTE\s+\d{2}/\d{2}/\d{2,4}\s*", re.IGNORECASE)
_CARD_SUFFIX_STRIP_RE = re.compile(r"\s*CB\s?\*\s?\d{4}\s*$", re.IGNORECASE)

# Lowercase merchant name -> payee display name
KNOWN_BRANDS: dict[str, str] = {
    "amazon": "Amazon",
    "apple": "Apple",
    "carrefour": "Carrefour",
    "edf": "EDF",
    "free": "Free",
    "leclerc": "E.Leclerc",
    "e.leclerc": "E.Leclerc",
    "e leclerc": "E.Leclerc",
    "lidl": "Lidl",
    "microsoft": "Microsoft",
    "netflix": "Netflix",
    "orange": "Orange",
    "sfr": "SFR",
    "spotify": "Spotify",
    "total": "TotalEnergies",
    "totalenergies": "TotalEnergies",
}


@dataclass(frozen=True)
class DescriptionAnalysis:
    """Details recovered from a raw bank description."""

    card_suffix: Optional[str]
    purchase_date: Optional[date]
    check_number: Optional[str]
    merchant_pattern: str
    is_card_payment: bool


def extract_card_suffix(description: Optional[str]) -> Optional[str]:
    """Last four card digits from a trailing ``CB*1234`` marker."""
    if not description:
        return None
    match = CARD_SUFFIX_RE.search(description)
    return match.group(1) if match else None


def extract_purchase_date(description: Optional[str]) -> Optional[date]:
    """Purchase date from a ``CARTE dd/mm/yy`` marker; two-digit years pivot at 70."""
    if not description:
        return None
    match = PURCHASE_DATE_RE.search(description)
    if not match:
        return None

    day, month, year = (int(part) for part in match.groups())
    if len(match.group(3)) == 2:
        year += 1900 if year >= 70 else 2000

    try:
        return date(year, month, day)
    except ValueError:
        return None


def extract_check_number(description: Optional[str]) -> Optional[str]:
    if not description:
        return None
    match = CHECK_NUMBER_RE.search(description.strip())
    return match.group(1) if match else None


def extract_merchant_pattern(description: Optional[str]) -> str:
    """Strip bank boilerplate (transfer/debit prefixes, card markers) from a label."""
    if not description:
        return ""

    cleaned = description.strip()

    changed = True
    while changed:
        changed = False
        for prefix in _BANK_PREFIXES:
            stripped = prefix.sub("", cleaned, count=1)
            if stripped != cleaned:
                cleaned = stripped
                changed = True

    cleaned = _CARD_DATE_RE.sub("", cleaned, count=1)
    cleaned = _CARD_SUFFIX_STRIP_RE.sub("", cleaned)
    return cleaned.strip()


def normalize_pattern(description: Optional[str]) -> str:
    """
    Alias key for a bank description.

    Case-folded, accent-free, without digits or punctuation and with single
    spaces. A pure function of its input.
    """
    pattern = strip_accents(extract_merchant_pattern(description)).casefold()
    pattern = re.sub(r"\d+", " ", pattern)
    pattern = re.sub(r"[^a-z\s]", " ", pattern)
    return " ".join(pattern.split())


def detect_known_brand(description: Optional[str]) -> Optional[str]:
    """
    Best-effort merchant name for well-known brands.

    Whole-word match, longest brand first, so "carrefour market" beats "free".
    """
    if not description or len(description.strip()) < 3:
        return None

    text = strip_accents(extract_merchant_pattern(description)).lower()
    if text in KNOWN_BRANDS:
        return KNOWN_BRANDS[text]

    for brand in sorted(KNOWN_BRANDS, key=len, reverse=True):
        if re.search(rf"\b{re.escape(brand)}\b", text):
            return KNOWN_BRANDS[brand]
    return None


def analyze_description(description: Optional[str]) -> DescriptionAnalysis:
    card_suffix = extract_card_suffix(description)
    return DescriptionAnalysis(
        card_suffix=card_suffix,
        purchase_date=extract_purchase_date(description),
        check_number=extract_check_number(description),
        merchant_pattern=extract_merchant_pattern(description),
        is_card_payment=bool(card_suffix or _CARD_DATE_RE.search(description or "")),
    )
