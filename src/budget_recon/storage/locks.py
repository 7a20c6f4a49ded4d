"""Serialization of confirm operations per account."""

from contextlib import contextmanager
from typing import Iterator, Optional
import logging
import threading

from sqlalchemy import text
from sqlalchemy.orm import Session

from ..utils.exceptions import ConflictError

logger = logging.getLogger(__name__)


class AccountLockRegistry:
    """
    In-process locks keyed by account id.

    A lock lives only while some caller holds or waits for it, so the
    registry does not grow with the number of accounts ever confirmed.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._users: dict[str, int] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def _checkout(self, account_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = self._locks[account_id] = threading.Lock()
            self._users[account_id] = self._users.get(account_id, 0) + 1
            return lock

    def _checkin(self, account_id: str) -> None:
        with self._guard:
            self._users[account_id] -= 1
            if self._users[account_id] == 0:
                del self._users[account_id]
                del self._locks[account_id]

    @contextmanager
    def hold(self, account_id: str, timeout: Optional[float] = None) -> Iterator[None]:
        """
        Hold the account lock for the duration of the block.

        Raises:
            ConflictError: If the lock is not acquired within ``timeout`` seconds
        """
        lock = self._checkout(account_id)
        try:
            acquired = lock.acquire(timeout=-1 if timeout is None else timeout)
            if not acquired:
                raise ConflictError(f"Another import is being confirmed for account {account_id}")
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(account_id)


def acquire_advisory_lock(session: Session, account_id: str) -> None:
    """Take a transaction-scoped advisory lock where the database offers one."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        session.execute(
            text("SELECT pg_advisory_xact_lock(hashtext(:key))"),
            {"key": f"budget_recon:import:{account_id}"},
        )
        logger.debug(f"Advisory lock taken for account {account_id}")
