"""Statement reading and line normalization."""

from .bank_patterns import (
    analyze_description,
    detect_known_brand,
    extract_merchant_pattern,
    normalize_pattern,
)
from .normalizer import Normalizer, parse_amount, parse_date
from .statement_reader import StatementReader

__all__ = [
    "Normalizer",
    "StatementReader",
    "analyze_description",
    "detect_known_brand",
    "extract_merchant_pattern",
    "normalize_pattern",
    "parse_amount",
    "parse_date",
]
