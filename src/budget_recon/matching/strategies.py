"""
Duplicate detection policies and candidate scoring.
Each policy implements one rule for recognizing an already-imported line.
"""

from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional

from ..models.reconciliation import ImportRow, MatchCandidate
from ..storage.repository import LedgerRepository
from ..utils.exceptions import ConfigurationError
from ..utils.text import normalize_description


class DuplicatePolicy(ABC):
    """Abstract base class for duplicate detection rules."""

    name: str = ""

    @abstractmethod
    def find_duplicate(
        self, ledger: LedgerRepository, account_id: str, row: ImportRow
    ) -> Optional[str]:
        """
        Look for a ledger transaction this row was already imported as.

        Args:
            ledger: Ledger access bound to the current session
            account_id: Account being imported into
            row: Imported row

        Returns:
            Id of the duplicated transaction, or None
        """
        pass


class LedgerDuplicatePolicy(DuplicatePolicy):
    """
    Identical reconciled transaction (date, amount, description) from a
    confirmed batch of the same account.
    """

    name = "ledger"

    def find_duplicate(
        self, ledger: LedgerRepository, account_id: str, row: ImportRow
    ) -> Optional[str]:
        twin = ledger.find_reconciled_twin(account_id, row)
        return twin.id if twin else None


class ImportHashDuplicatePolicy(DuplicatePolicy):
    """
    Transaction carrying the row's import hash, whether created from the line
    or reconciled against it by an earlier import.
    """

    name = "import_hash"

    def find_duplicate(
        self, ledger: LedgerRepository, account_id: str, row: ImportRow
    ) -> Optional[str]:
        txn = ledger.find_by_import_hash(account_id, row.import_hash)
        return txn.id if txn else None


_POLICIES: dict[str, type[DuplicatePolicy]] = {
    LedgerDuplicatePolicy.name: LedgerDuplicatePolicy,
    ImportHashDuplicatePolicy.name: ImportHashDuplicatePolicy,
}


def build_duplicate_policy(name: str) -> DuplicatePolicy:
    """
    Raises:
        ConfigurationError: For an unknown policy name
    """
    try:
        return _POLICIES[name]()
    except KeyError:
        raise ConfigurationError(f"Unknown duplicate policy: {name}") from None


def calculate_match_score(row: ImportRow, candidate: MatchCandidate) -> tuple[int, str]:
    """
    Rank signal (0-100) and reason for a candidate of an imported row.

    Amount counts for 50, date proximity for 30 and description overlap
    for 20. Display and ordering only.
    """
    score = 0
    reasons: list[str] = []

    if row.amount == candidate.amount:
        score += 50
        reasons.append("same amount")
    elif row.amount and abs(row.amount - candidate.amount) / abs(row.amount) <= Decimal("0.01"):
        score += 30
        reasons.append("amount within 1%")

    days = candidate.date_distance(row.date)
    if days == 0:
        score += 30
        reasons.append("same day")
    elif days <= 2:
        score += 15
        reasons.append(f"{days} day(s) apart")
    elif days <= 5:
        score += 5
        reasons.append(f"{days} days apart")

    row_desc = normalize_description(row.description)
    candidate_desc = normalize_description(candidate.description)
    if row_desc and candidate_desc:
        if row_desc == candidate_desc:
            score += 20
            reasons.append("same description")
        elif row_desc in candidate_desc or candidate_desc in row_desc:
            score += 10
            reasons.append("similar description")

    return score, ", ".join(reasons) or "amount only"
