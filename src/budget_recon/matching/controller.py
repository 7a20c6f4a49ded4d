"""
Import workflow: parse, review and confirm of bank statement batches.

Confirm applies every row decision of a batch in one database transaction.
Any validation failure or conflict rolls the ledger back and leaves the batch
in the ``failed`` state.
"""

from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence, Union
import logging

from sqlalchemy.orm import Session

from ..config import ColumnMapping, LocaleSettings, ReconConfig
from ..models.reconciliation import (
    BatchStatus,
    ConfirmResult,
    EffectiveRow,
    ImportBatch,
    ImportRow,
    MatchCandidate,
    RowAction,
    RowOverride,
)
from ..parsers.normalizer import Normalizer
from ..parsers.statement_reader import StatementReader
from ..storage.database import Database
from ..storage.locks import acquire_advisory_lock
from ..storage.repository import VOID_STATUS, ImportBatchStore, LedgerRepository
from ..storage.tables import LedgerTransaction, new_id
from ..utils.exceptions import (
    BatchStateError,
    ConflictError,
    RowIssue,
    RowIssueError,
    ValidationError,
)
from ..utils.text import to_minor_units
from .aliases import AliasResolver
from .candidates import CandidateFinder
from .classifier import Classifier

logger = logging.getLogger(__name__)

OverrideInput = Union[RowOverride, dict[str, Any]]


class ReconciliationController:
    """
    Orchestrates the import of one statement into one account.

    Batches move from parsed to reviewed (overrides stored) and end either
    confirmed or failed. Confirms for the same account are serialized.
    """

    def __init__(
        self,
        config: ReconConfig,
        database: Database,
        lock_timeout: Optional[float] = None,
    ):
        """
        Initialize the controller.

        Args:
            config: Application configuration
            database: Ledger database
            lock_timeout: Seconds to wait for a concurrent confirm of the same
                account before giving up; None waits indefinitely
        """
        self.config = config
        self.database = database
        self.lock_timeout = lock_timeout
        self.classifier = Classifier(config, database)

    def parse(
        self,
        user_id: str,
        account_id: str,
        raw_rows: Sequence[Sequence[Any]],
        mapping: Optional[ColumnMapping] = None,
        locale: Optional[LocaleSettings] = None,
        filename: Optional[str] = None,
        first_line: int = 1,
    ) -> ImportBatch:
        """
        Normalize and classify tokenized statement lines into a pending batch.

        Lines that fail to parse are reported in ``parse_errors``; the other
        lines are classified normally.

        Args:
            user_id: Owner of the account
            account_id: Account the statement belongs to
            raw_rows: Tokenized statement lines
            mapping: Column mapping, defaults to the configured one
            locale: Amount conventions, defaults to the configured ones
            filename: Source file name, kept for audit
            first_line: Source line number of ``raw_rows[0]``

        Returns:
            The persisted pending batch
        """
        normalizer = Normalizer(mapping or self.config.mapping, locale or self.config.locale)
        rows, issues = normalizer.normalize_all(raw_rows, first_line=first_line)
        return self._create_batch(user_id, account_id, rows, issues, filename)

    def parse_file(self, user_id: str, account_id: str, file_path: Path) -> ImportBatch:
        """Read a CSV or Excel statement and parse it with the configured mapping."""
        reader = StatementReader(self.config)
        raw_rows = reader.read_file(file_path)
        return self.parse(
            user_id,
            account_id,
            raw_rows,
            filename=file_path.name,
            first_line=reader.first_data_line(file_path),
        )

    def match_candidates(
        self, user_id: str, account_id: str, amount: Decimal, on_date: date
    ) -> list[MatchCandidate]:
        """Manual candidate search: amount equality only, closest dates first."""
        with self.database.session_scope() as session:
            return CandidateFinder(session).find_candidates(
                account_id, amount, on_date, user_id=user_id
            )

    def get_batch(self, batch_id: str, user_id: str) -> ImportBatch:
        with self.database.session_scope() as session:
            return ImportBatchStore(session).get(batch_id, user_id)

    def list_batches(
        self,
        user_id: str,
        account_id: Optional[str] = None,
        status: Optional[BatchStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ImportBatch]:
        with self.database.session_scope() as session:
            return ImportBatchStore(session).list_batches(
                user_id, account_id=account_id, status=status, limit=limit, offset=offset
            )

    def review(
        self, batch_id: str, user_id: str, overrides: Iterable[OverrideInput]
    ) -> ImportBatch:
        """
        Store user overrides on a pending batch without touching the ledger.

        Overrides for a row already overridden are merged field by field.

        Raises:
            BatchNotFoundError: If the batch does not exist for the user
            BatchStateError: If the batch is no longer pending
            ValidationError: If an override names an unknown row or action
        """
        with self.database.session_scope() as session:
            store = ImportBatchStore(session)
            record = store.get_record(batch_id, user_id, for_update=True)
            batch = store.to_domain(record)
            self._require_pending(batch)

            batch.overrides = self._merge_overrides(batch, overrides)
            store.save_overrides(record, batch.overrides.values())

        logger.info(f"Batch {batch_id}: {len(batch.overrides)} row override(s) stored")
        return batch

    def confirm(
        self,
        batch_id: str,
        user_id: str,
        overrides: Optional[Iterable[OverrideInput]] = None,
    ) -> ConfirmResult:
        """
        Apply the batch to the ledger, all rows or none.

        Args:
            batch_id: Pending batch to confirm
            user_id: Owner of the batch
            overrides: Last-minute overrides, merged over the stored ones

        Returns:
            Counts and ids of created and reconciled transactions

        Raises:
            BatchNotFoundError: If the batch does not exist for the user
            BatchStateError: If the batch is no longer pending
            ValidationError: If any row decision is invalid; batch becomes failed
            ConflictError: If a target was reconciled meanwhile; batch becomes failed
        """
        batch = self.get_batch(batch_id, user_id)
        self._require_pending(batch)

        with self.database.locks.hold(batch.account_id, timeout=self.lock_timeout):
            try:
                with self.database.session_scope() as session:
                    result = self._apply(
                        session, batch_id, user_id, batch.account_id, overrides or []
                    )
            except RowIssueError as e:
                logger.warning(f"Confirm of batch {batch_id} failed: {e}")
                self._record_failure(batch_id, user_id, e)
                raise

        logger.info(
            f"Batch {batch_id} confirmed: {result.created} created, "
            f"{result.reconciled} reconciled, {result.skipped} skipped, "
            f"{result.aliases_learned} alias(es) learned"
        )
        return result

    def reclassify(self, batch_id: str, user_id: str) -> ImportBatch:
        """
        Classify the rows of a failed batch again as a new pending batch.

        Raises:
            BatchStateError: If the batch has not failed
        """
        batch = self.get_batch(batch_id, user_id)
        if batch.status is not BatchStatus.FAILED:
            raise BatchStateError(f"Import batch {batch_id} is {batch.status.value}, not failed")

        logger.info(f"Reclassifying failed batch {batch_id}")
        return self._create_batch(
            user_id, batch.account_id, batch.rows, batch.parse_errors, batch.filename
        )

    def _create_batch(
        self,
        user_id: str,
        account_id: str,
        rows: Sequence[ImportRow],
        issues: Sequence[RowIssue],
        filename: Optional[str],
    ) -> ImportBatch:
        with self.database.session_scope() as session:
            results = self.classifier.classify(session, user_id, account_id, rows)
            batch = ImportBatch(
                id=new_id(),
                user_id=user_id,
                account_id=account_id,
                status=BatchStatus.PENDING,
                rows=list(rows),
                results=results,
                parse_errors=list(issues),
                matched_count=sum(1 for r in results if r.matched_transaction_id),
                filename=filename,
            )
            ImportBatchStore(session).create(batch)

        summary = batch.summary
        logger.info(
            f"Batch {batch.id} parsed: {summary['total']} rows, {summary['new']} new, "
            f"{summary['matches']} matches, {summary['duplicates']} duplicates, "
            f"{summary['parse_errors']} parse errors"
        )
        return batch

    def _apply(
        self,
        session: Session,
        batch_id: str,
        user_id: str,
        account_id: str,
        overrides: Iterable[OverrideInput],
    ) -> ConfirmResult:
        acquire_advisory_lock(session, account_id)
        store = ImportBatchStore(session)
        record = store.get_record(batch_id, user_id, for_update=True)
        batch = store.to_domain(record)
        self._require_pending(batch)

        batch.overrides = self._merge_overrides(batch, overrides)
        effective = batch.effective_rows()

        ledger = LedgerRepository(session)
        targets = self._validate(ledger, batch, effective)

        aliases = AliasResolver(session)
        result = ConfirmResult(batch_id=batch.id)
        reconcile_created = self.config.matching.reconcile_created

        for item in effective:
            if item.action is RowAction.SKIP:
                result.skipped += 1
                continue

            payee_id = item.payee_id
            if item.new_payee_name:
                payee_id = ledger.get_or_create_payee(user_id, item.new_payee_name).id

            if item.action is RowAction.CREATE:
                txn = ledger.add_transaction(
                    user_id,
                    batch.account_id,
                    item.row,
                    item.description,
                    batch.id,
                    payee_id=payee_id,
                    reconciled=reconcile_created,
                )
                result.created += 1
                result.created_transaction_ids.append(txn.id)
                learn_payee = payee_id if item.payee_assigned else None
            else:
                txn = targets[item.row_index]
                if item.payee_assigned and payee_id:
                    txn.payee_id = payee_id
                ledger.mark_reconciled(txn, batch.id, item.row.import_hash)
                result.reconciled += 1
                result.reconciled_transaction_ids.append(txn.id)
                learn_payee = txn.payee_id

            if learn_payee and aliases.learn(user_id, learn_payee, item.row.description):
                result.aliases_learned += 1

        store.mark_confirmed(record, result, batch.overrides.values())
        return result

    def _validate(
        self,
        ledger: LedgerRepository,
        batch: ImportBatch,
        effective: list[EffectiveRow],
    ) -> dict[int, LedgerTransaction]:
        """
        Check every row before anything is written.

        Returns:
            Locked target transaction per match row index

        Raises:
            ValidationError: For malformed decisions, reported before conflicts
            ConflictError: If a target is already reconciled
        """
        issues: list[RowIssue] = []
        conflicts: list[RowIssue] = []
        targets: dict[int, LedgerTransaction] = {}
        claimed_by: dict[str, int] = {}

        for item in effective:
            if item.action is RowAction.SKIP:
                continue

            if item.payee_id and not item.new_payee_name:
                if ledger.get_payee(batch.user_id, item.payee_id) is None:
                    issues.append(RowIssue(item.row_index, f"payee {item.payee_id} not found"))

            if item.action is not RowAction.MATCH:
                continue

            txn_id = item.matched_transaction_id
            if not txn_id:
                issues.append(RowIssue(item.row_index, "match action without a matched transaction"))
                continue
            if txn_id in claimed_by:
                issues.append(
                    RowIssue(
                        item.row_index,
                        f"transaction {txn_id} is already matched by row {claimed_by[txn_id]}",
                    )
                )
                continue
            claimed_by[txn_id] = item.row_index

            txn = ledger.get_transaction(txn_id, for_update=True)
            if txn is None or txn.account_id != batch.account_id or txn.user_id != batch.user_id:
                issues.append(RowIssue(item.row_index, f"transaction {txn_id} not found in this account"))
                continue
            if txn.status == VOID_STATUS:
                issues.append(RowIssue(item.row_index, f"transaction {txn_id} is void"))
                continue
            if abs(txn.amount_cents) != abs(to_minor_units(item.row.amount)):
                issues.append(RowIssue(item.row_index, f"transaction {txn_id} has a different amount"))
                continue
            if txn.reconciled:
                conflicts.append(RowIssue(item.row_index, f"transaction {txn_id} is already reconciled"))
                continue
            targets[item.row_index] = txn

        if issues:
            raise ValidationError(f"Import batch {batch.id} failed validation", issues)
        if conflicts:
            raise ConflictError(
                f"Import batch {batch.id} targets transactions reconciled elsewhere", conflicts
            )
        return targets

    def _merge_overrides(
        self, batch: ImportBatch, overrides: Iterable[OverrideInput]
    ) -> dict[int, RowOverride]:
        merged = dict(batch.overrides)
        issues: list[RowIssue] = []

        for raw in overrides:
            try:
                override = raw if isinstance(raw, RowOverride) else RowOverride.from_dict(raw)
            except ValidationError as e:
                issues.extend(e.issues)
                continue
            if not 0 <= override.row_index < len(batch.results):
                issues.append(RowIssue(override.row_index, "no such row in this batch"))
                continue
            if override.action is not None:
                try:
                    RowAction.parse(override.action, override.row_index)
                except ValidationError as e:
                    issues.extend(e.issues)
                    continue

            previous = merged.get(override.row_index)
            merged[override.row_index] = previous.merged_with(override) if previous else override

        if issues:
            raise ValidationError(f"Invalid overrides for import batch {batch.id}", issues)
        return merged

    @staticmethod
    def _require_pending(batch: ImportBatch) -> None:
        if batch.status is not BatchStatus.PENDING:
            raise BatchStateError(f"Import batch {batch.id} is {batch.status.value}, not pending")

    def _record_failure(self, batch_id: str, user_id: str, error: RowIssueError) -> None:
        with self.database.session_scope() as session:
            store = ImportBatchStore(session)
            record = store.get_record(batch_id, user_id, for_update=True)
            if record.status == BatchStatus.PENDING.value:
                store.mark_failed(record, error.args[0], error.issues)
