"""
Query and persistence helpers for the ledger and the import record store.

Both repositories work inside a caller-supplied Session and never commit;
transaction boundaries belong to the caller.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.orm import Session, joinedload

from ..models.reconciliation import (
    BatchStatus,
    ConfirmResult,
    ImportBatch,
    ImportRow,
    RowOverride,
    RowResult,
)
from ..utils.exceptions import BatchNotFoundError, BatchStateError, RowIssue
from ..utils.text import to_minor_units
from .tables import ImportBatchRecord, LedgerTransaction, Payee, new_id, utcnow

VOID_STATUS = "void"


class LedgerRepository:
    """Transaction and payee access for the reconciliation engine."""

    def __init__(self, session: Session):
        self.session = session

    def find_by_abs_amount(
        self,
        account_id: str,
        amount: Decimal,
        exclude_reconciled: bool = True,
        around: Optional[date] = None,
        tolerance_days: Optional[int] = None,
        user_id: Optional[str] = None,
    ) -> list[LedgerTransaction]:
        """Non-void transactions of an account whose absolute amount equals ``abs(amount)``."""
        stmt = (
            select(LedgerTransaction)
            .options(joinedload(LedgerTransaction.payee))
            .where(
                LedgerTransaction.account_id == account_id,
                func.abs(LedgerTransaction.amount_cents) == abs(to_minor_units(amount)),
                LedgerTransaction.status != VOID_STATUS,
            )
        )
        if exclude_reconciled:
            stmt = stmt.where(LedgerTransaction.reconciled.is_(False))
        if user_id is not None:
            stmt = stmt.where(LedgerTransaction.user_id == user_id)
        if around is not None and tolerance_days is not None:
            stmt = stmt.where(
                LedgerTransaction.date >= around - timedelta(days=tolerance_days),
                LedgerTransaction.date <= around + timedelta(days=tolerance_days),
            )
        return list(self.session.scalars(stmt).unique().all())

    def find_reconciled_twin(self, account_id: str, row: ImportRow) -> Optional[LedgerTransaction]:
        """
        Reconciled transaction identical to ``row`` (date, amount, description)
        created or reconciled by a confirmed batch of the same account.
        """
        confirmed = select(ImportBatchRecord.id).where(
            ImportBatchRecord.account_id == account_id,
            ImportBatchRecord.status == BatchStatus.CONFIRMED.value,
        )
        stmt = (
            select(LedgerTransaction)
            .where(
                LedgerTransaction.account_id == account_id,
                LedgerTransaction.date == row.date,
                LedgerTransaction.amount_cents == to_minor_units(row.amount),
                LedgerTransaction.description == row.description,
                LedgerTransaction.reconciled.is_(True),
                or_(
                    LedgerTransaction.reconciled_batch_id.in_(confirmed),
                    LedgerTransaction.import_batch_id.in_(confirmed),
                ),
            )
            .order_by(LedgerTransaction.id)
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def find_by_import_hash(self, account_id: str, import_hash: str) -> Optional[LedgerTransaction]:
        """Non-void transaction previously created or matched from the same statement line."""
        stmt = (
            select(LedgerTransaction)
            .where(
                LedgerTransaction.account_id == account_id,
                LedgerTransaction.import_hash == import_hash,
                LedgerTransaction.status != VOID_STATUS,
            )
            .order_by(LedgerTransaction.id)
            .limit(1)
        )
        return self.session.scalars(stmt).first()

    def get_transaction(self, transaction_id: str, for_update: bool = False) -> Optional[LedgerTransaction]:
        return self.session.get(LedgerTransaction, transaction_id, with_for_update=for_update)

    def add_transaction(
        self,
        user_id: str,
        account_id: str,
        row: ImportRow,
        description: str,
        batch_id: str,
        payee_id: Optional[str] = None,
        reconciled: bool = False,
    ) -> LedgerTransaction:
        txn = LedgerTransaction(
            id=new_id(),
            user_id=user_id,
            account_id=account_id,
            payee_id=payee_id,
            date=row.date,
            amount_cents=to_minor_units(row.amount),
            description=description,
            check_number=row.check_number,
            status="cleared",
            reconciled=reconciled,
            reconciled_at=utcnow() if reconciled else None,
            reconciled_batch_id=batch_id if reconciled else None,
            import_batch_id=batch_id,
            import_hash=row.import_hash,
        )
        self.session.add(txn)
        self.session.flush()
        return txn

    def mark_reconciled(self, txn: LedgerTransaction, batch_id: str, import_hash: str) -> None:
        txn.reconciled = True
        txn.reconciled_at = utcnow()
        txn.reconciled_batch_id = batch_id
        txn.import_hash = import_hash
        self.session.flush()

    def get_payee(self, user_id: str, payee_id: str) -> Optional[Payee]:
        payee = self.session.get(Payee, payee_id)
        if payee is None or payee.user_id != user_id:
            return None
        return payee

    def get_or_create_payee(self, user_id: str, name: str) -> Payee:
        clean_name = name.strip()
        stmt = select(Payee).where(
            Payee.user_id == user_id, func.lower(Payee.name) == clean_name.lower()
        )
        existing = self.session.scalars(stmt).first()
        if existing:
            return existing

        payee = Payee(id=new_id(), user_id=user_id, name=clean_name)
        self.session.add(payee)
        self.session.flush()
        return payee


class ImportBatchStore:
    """Persistence of import batches for audit and confirm."""

    def __init__(self, session: Session):
        self.session = session

    def create(self, batch: ImportBatch) -> ImportBatchRecord:
        record = ImportBatchRecord(
            id=batch.id,
            user_id=batch.user_id,
            account_id=batch.account_id,
            status=batch.status.value,
            filename=batch.filename,
            parsed_data=[row.to_dict() for row in batch.rows],
            parse_errors=[issue.to_dict() for issue in batch.parse_errors],
            match_results=[result.to_dict() for result in batch.results],
            overrides=[o.to_dict() for o in batch.overrides.values()],
            matched_count=batch.matched_count,
        )
        self.session.add(record)
        self.session.flush()
        batch.created_at = record.created_at
        batch.updated_at = record.updated_at
        return record

    def get_record(self, batch_id: str, user_id: str, for_update: bool = False) -> ImportBatchRecord:
        """
        Raises:
            BatchNotFoundError: If no batch with that id belongs to the user
        """
        record = self.session.get(ImportBatchRecord, batch_id, with_for_update=for_update)
        if record is None or record.user_id != user_id:
            raise BatchNotFoundError(f"Import batch {batch_id} not found")
        return record

    def get(self, batch_id: str, user_id: str) -> ImportBatch:
        return self.to_domain(self.get_record(batch_id, user_id))

    def list_batches(
        self,
        user_id: str,
        account_id: Optional[str] = None,
        status: Optional[BatchStatus] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[ImportBatch]:
        stmt = select(ImportBatchRecord).where(ImportBatchRecord.user_id == user_id)
        if account_id:
            stmt = stmt.where(ImportBatchRecord.account_id == account_id)
        if status:
            stmt = stmt.where(ImportBatchRecord.status == status.value)
        stmt = (
            stmt.order_by(ImportBatchRecord.created_at.desc(), ImportBatchRecord.id)
            .limit(limit)
            .offset(offset)
        )
        return [self.to_domain(record) for record in self.session.scalars(stmt).all()]

    def save_overrides(self, record: ImportBatchRecord, overrides: Iterable[RowOverride]) -> None:
        self._require_pending(record)
        record.overrides = [o.to_dict() for o in overrides]
        self.session.flush()

    def mark_confirmed(
        self,
        record: ImportBatchRecord,
        result: ConfirmResult,
        overrides: Iterable[RowOverride],
    ) -> None:
        self._require_pending(record)
        record.status = BatchStatus.CONFIRMED.value
        record.overrides = [o.to_dict() for o in overrides]
        record.matched_count = result.reconciled
        record.created_count = result.created
        record.reconciled_count = result.reconciled
        record.skipped_count = result.skipped
        record.error_details = None
        record.confirmed_at = utcnow()
        self.session.flush()

    def mark_failed(self, record: ImportBatchRecord, message: str, issues: Iterable[RowIssue]) -> None:
        self._require_pending(record)
        record.status = BatchStatus.FAILED.value
        record.error_details = [{"row": None, "error": message}] + [i.to_dict() for i in issues]
        self.session.flush()

    @staticmethod
    def _require_pending(record: ImportBatchRecord) -> None:
        if record.status != BatchStatus.PENDING.value:
            raise BatchStateError(f"Import batch {record.id} is {record.status}, not pending")

    @staticmethod
    def to_domain(record: ImportBatchRecord) -> ImportBatch:
        overrides = [RowOverride.from_dict(o) for o in record.overrides or []]
        details = record.error_details or []
        return ImportBatch(
            id=record.id,
            user_id=record.user_id,
            account_id=record.account_id,
            status=BatchStatus(record.status),
            rows=[ImportRow.from_dict(r) for r in record.parsed_data or []],
            results=[RowResult.from_dict(r) for r in record.match_results or []],
            parse_errors=[RowIssue(e["row"], e["error"]) for e in record.parse_errors or []],
            overrides={o.row_index: o for o in overrides},
            matched_count=record.matched_count,
            filename=record.filename,
            error_message=next((e["error"] for e in details if e.get("row") is None), None),
            error_details=[RowIssue(e["row"], e["error"]) for e in details if e.get("row") is not None],
            created_at=record.created_at,
            updated_at=record.updated_at,
            confirmed_at=record.confirmed_at,
        )
