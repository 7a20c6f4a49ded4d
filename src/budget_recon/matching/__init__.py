"""Matching: candidate lookup, payee aliases, classification and confirm."""

from .aliases import AliasResolver
from .candidates import CandidateFinder
from .classifier import Classifier
from .controller import ReconciliationController
from .strategies import (
    DuplicatePolicy,
    ImportHashDuplicatePolicy,
    LedgerDuplicatePolicy,
    build_duplicate_policy,
    calculate_match_score,
)

__all__ = [
    "AliasResolver",
    "CandidateFinder",
    "Classifier",
    "DuplicatePolicy",
    "ImportHashDuplicatePolicy",
    "LedgerDuplicatePolicy",
    "ReconciliationController",
    "build_duplicate_policy",
    "calculate_match_score",
]
