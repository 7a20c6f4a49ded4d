"""Candidate lookup: ledger transactions an imported row may correspond to."""

from datetime import date
from decimal import Decimal
from typing import Optional
import logging

from sqlalchemy.orm import Session

from ..models.reconciliation import MatchCandidate
from ..storage.repository import LedgerRepository
from ..storage.tables import LedgerTransaction

logger = logging.getLogger(__name__)


def to_candidate(txn: LedgerTransaction) -> MatchCandidate:
    return MatchCandidate(
        id=txn.id,
        date=txn.date,
        amount=txn.amount,
        description=txn.description or "",
        account_id=txn.account_id,
        payee_id=txn.payee_id,
        payee_name=txn.payee.name if txn.payee else None,
        reconciled=txn.reconciled,
    )


class CandidateFinder:
    """
    Finds unreconciled transactions of an account with the same absolute amount.

    Results are ordered by distance to the target date, then by transaction
    id, so the order never depends on how the database returns rows.
    """

    def __init__(self, session: Session):
        self.ledger = LedgerRepository(session)

    def find_candidates(
        self,
        account_id: str,
        amount: Decimal,
        target_date: date,
        exclude_reconciled: bool = True,
        date_tolerance_days: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> list[MatchCandidate]:
        """
        Args:
            account_id: Account to search
            amount: Row amount; only its absolute value is compared
            target_date: Date the results are ordered around
            exclude_reconciled: Leave out reconciled transactions
            date_tolerance_days: Optional window around ``target_date``
            user_id: Restrict to transactions owned by this user

        Returns:
            Candidates sorted by ascending date distance, ties by id
        """
        txns = self.ledger.find_by_abs_amount(
            account_id,
            amount,
            exclude_reconciled=exclude_reconciled,
            around=target_date,
            tolerance_days=date_tolerance_days,
            user_id=user_id,
        )
        candidates = [to_candidate(txn) for txn in txns]
        candidates.sort(key=lambda c: (c.date_distance(target_date), c.id))

        logger.debug(
            f"{len(candidates)} candidate(s) for {amount} around {target_date} in account {account_id}"
        )
        return candidates
