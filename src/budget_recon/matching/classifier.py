"""
Row classification against the existing ledger.

Assigns each imported row a match type (duplicate, exact, probable, new) and
the default action that goes with it.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Optional, Sequence
import logging

from sqlalchemy.orm import Session

from ..config import ReconConfig
from ..models.reconciliation import ImportRow, MatchCandidate, MatchType, RowResult
from ..parsers.bank_patterns import detect_known_brand
from ..storage.database import Database
from ..storage.repository import LedgerRepository
from .aliases import AliasResolver
from .candidates import CandidateFinder
from .strategies import build_duplicate_policy, calculate_match_score

logger = logging.getLogger(__name__)


class Classifier:
    """
    Classifies statement rows one by one, in input order.

    Candidate queries may run on a bounded worker pool; the decisions are
    always taken afterwards, sequentially, so the outcome never depends on
    query completion order. A candidate pre-selected for a row is withheld
    from every later row of the same statement.
    """

    def __init__(self, config: ReconConfig, database: Database):
        """
        Initialize the classifier.

        Args:
            config: Application configuration
            database: Ledger database, used for worker sessions
        """
        self.settings = config.matching
        self.database = database
        self.duplicate_policy = build_duplicate_policy(self.settings.duplicate_policy)

    def classify(
        self,
        session: Session,
        user_id: str,
        account_id: str,
        rows: Sequence[ImportRow],
    ) -> list[RowResult]:
        """
        Classify a statement.

        Args:
            session: Session used for duplicate and alias lookups
            user_id: Owner of the ledger and aliases
            account_id: Account the statement belongs to
            rows: Normalized rows, in statement order

        Returns:
            One RowResult per row, ``row_index`` being the position in ``rows``
        """
        pools = self._fetch_candidates(session, user_id, account_id, rows)
        ledger = LedgerRepository(session)
        aliases = AliasResolver(session)

        claimed: set[str] = set()
        results: list[RowResult] = []

        for index, (row, candidates) in enumerate(zip(rows, pools)):
            pool = [c for c in candidates if c.id not in claimed]
            result = self._classify_row(index, row, pool, ledger, aliases, user_id, account_id)
            if result.matched_transaction_id:
                claimed.add(result.matched_transaction_id)
            results.append(result)

            logger.debug(
                f"Row {index} ({row.date} {row.amount} {row.description!r}): "
                f"{result.match_type.value} with {len(pool)} candidate(s)"
            )

        return results

    def _fetch_candidates(
        self, session: Session, user_id: str, account_id: str, rows: Sequence[ImportRow]
    ) -> list[list[MatchCandidate]]:
        tolerance = self.settings.auto_date_tolerance_days
        workers = min(self.settings.max_workers, len(rows))

        if workers <= 1 or not self.database.supports_concurrent_reads:
            finder = CandidateFinder(session)
            return [
                finder.find_candidates(
                    account_id,
                    row.amount,
                    row.date,
                    date_tolerance_days=tolerance,
                    user_id=user_id,
                )
                for row in rows
            ]

        def fetch(row: ImportRow) -> list[MatchCandidate]:
            with self.database.session_scope() as worker_session:
                return CandidateFinder(worker_session).find_candidates(
                    account_id,
                    row.amount,
                    row.date,
                    date_tolerance_days=tolerance,
                    user_id=user_id,
                )

        # map() yields in submission order whatever the completion order
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="candidates") as executor:
            return list(executor.map(fetch, rows))

    def _classify_row(
        self,
        index: int,
        row: ImportRow,
        pool: list[MatchCandidate],
        ledger: LedgerRepository,
        aliases: AliasResolver,
        user_id: str,
        account_id: str,
    ) -> RowResult:
        scored = tuple(self._with_score(row, c) for c in pool)
        suggested_id, suggested_name = self._suggest_payee(aliases, user_id, row)
        check_duplicate_first = self.settings.duplicate_precedence == "before_exact"

        def build(match_type: MatchType, **kwargs) -> RowResult:
            fields = {
                "suggested_payee_id": suggested_id,
                "suggested_payee_name": suggested_name,
                "candidates": scored,
            }
            fields.update(kwargs)
            return RowResult(
                row_index=index,
                match_type=match_type,
                action=match_type.default_action,
                **fields,
            )

        if check_duplicate_first:
            duplicate_of = self.duplicate_policy.find_duplicate(ledger, account_id, row)
            if duplicate_of:
                return build(MatchType.DUPLICATE, duplicate_of=duplicate_of)

        if len(scored) == 1 and scored[0].amount == row.amount and scored[0].date == row.date:
            return build(
                MatchType.EXACT,
                score=scored[0].score,
                matched_transaction_id=scored[0].id,
            )

        if not check_duplicate_first:
            duplicate_of = self.duplicate_policy.find_duplicate(ledger, account_id, row)
            if duplicate_of:
                return build(MatchType.DUPLICATE, duplicate_of=duplicate_of)

        if scored:
            # Several candidates stay unselected until the user picks one
            selected = scored[0] if len(scored) == 1 else None
            return build(
                MatchType.PROBABLE,
                score=max(c.score or 0 for c in scored),
                matched_transaction_id=selected.id if selected else None,
            )

        if suggested_id is None:
            # Brand detection only ever proposes a payee to create
            return build(MatchType.NEW, suggested_payee_name=detect_known_brand(row.description))
        return build(MatchType.NEW)

    @staticmethod
    def _with_score(row: ImportRow, candidate: MatchCandidate) -> MatchCandidate:
        score, _ = calculate_match_score(row, candidate)
        return replace(candidate, score=score)

    @staticmethod
    def _suggest_payee(
        aliases: AliasResolver, user_id: str, row: ImportRow
    ) -> tuple[Optional[str], Optional[str]]:
        alias = aliases.find_alias(user_id, row.description)
        if alias is None:
            return None, None
        return alias.payee_id, alias.payee.name if alias.payee else None
