"""Shared fixtures: a temporary SQLite ledger and helpers to seed it."""

from datetime import date
from decimal import Decimal
from typing import Optional

import pytest
from sqlalchemy import func, select

from budget_recon.config import ReconConfig
from budget_recon.matching.controller import ReconciliationController
from budget_recon.storage.database import Database
from budget_recon.storage.tables import LedgerTransaction, Payee, PayeeAlias, new_id
from budget_recon.utils.text import to_minor_units

USER = "user-1"
ACCOUNT = "account-checking"
OTHER_ACCOUNT = "account-savings"


@pytest.fixture
def config(tmp_path) -> ReconConfig:
    cfg = ReconConfig()
    cfg.database.url = f"sqlite:///{tmp_path / 'ledger.db'}"
    return cfg


@pytest.fixture
def database(config):
    db = Database.from_config(config.database)
    db.init_schema()
    yield db
    db.dispose()


@pytest.fixture
def controller(config, database) -> ReconciliationController:
    return ReconciliationController(config, database, lock_timeout=5)


@pytest.fixture
def add_payee(database):
    """Insert a payee and return its id."""

    def _add(name: str, user_id: str = USER) -> str:
        with database.session_scope() as session:
            payee = Payee(id=new_id(), user_id=user_id, name=name)
            session.add(payee)
        return payee.id

    return _add


@pytest.fixture
def add_transaction(database):
    """Insert a ledger transaction and return its id."""

    def _add(
        amount: str,
        on: date,
        description: str = "",
        account_id: str = ACCOUNT,
        user_id: str = USER,
        payee_id: Optional[str] = None,
        reconciled: bool = False,
        status: str = "cleared",
        txn_id: Optional[str] = None,
    ) -> str:
        with database.session_scope() as session:
            txn = LedgerTransaction(
                id=txn_id or new_id(),
                user_id=user_id,
                account_id=account_id,
                payee_id=payee_id,
                date=on,
                amount_cents=to_minor_units(Decimal(amount)),
                description=description,
                status=status,
                reconciled=reconciled,
            )
            session.add(txn)
        return txn.id

    return _add


@pytest.fixture
def load_transaction(database):
    def _load(txn_id: str) -> Optional[LedgerTransaction]:
        with database.session_scope() as session:
            return session.get(LedgerTransaction, txn_id)

    return _load


@pytest.fixture
def count_transactions(database):
    def _count(account_id: str = ACCOUNT) -> int:
        with database.session_scope() as session:
            stmt = select(func.count()).select_from(LedgerTransaction).where(
                LedgerTransaction.account_id == account_id
            )
            return session.scalar(stmt)

    return _count


@pytest.fixture
def load_aliases(database):
    def _load(user_id: str = USER) -> list[PayeeAlias]:
        with database.session_scope() as session:
            stmt = select(PayeeAlias).where(PayeeAlias.user_id == user_id).order_by(PayeeAlias.id)
            return list(session.scalars(stmt).all())

    return _load


def statement_line(day: str, description: str, amount: str) -> list[str]:
    """A tokenized line in the default column layout: date, description, amount."""
    return [day, description, amount]
