"""Database engine, sessions and transaction scopes."""

from contextlib import contextmanager
from typing import Iterator, Optional
import logging

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..config import DatabaseConfig
from .locks import AccountLockRegistry
from .tables import Base

logger = logging.getLogger(__name__)


def _is_memory_sqlite(url: str) -> bool:
    return url.startswith("sqlite") and (url.endswith(":memory:") or url.rstrip("/") in ("sqlite:", "sqlite+pysqlite:"))


def create_db_engine(config: DatabaseConfig) -> Engine:
    """
    Build an engine for the configured URL.

    SQLite connections may be used from the classifier's worker threads and get
    foreign keys switched on.
    """
    kwargs: dict = {"echo": config.echo}
    if config.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if _is_memory_sqlite(config.url):
            kwargs["poolclass"] = StaticPool

    engine = create_engine(config.url, **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


class Database:
    """Engine, session factory and per-account confirm locks for one ledger."""

    def __init__(self, engine: Engine, locks: Optional[AccountLockRegistry] = None):
        self.engine = engine
        self.session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self.locks = locks or AccountLockRegistry()

    @classmethod
    def from_config(cls, config: DatabaseConfig) -> "Database":
        return cls(create_db_engine(config))

    @property
    def supports_concurrent_reads(self) -> bool:
        """False for a single shared in-memory SQLite connection."""
        return not (
            self.engine.dialect.name == "sqlite" and _is_memory_sqlite(str(self.engine.url))
        )

    def init_schema(self) -> None:
        Base.metadata.create_all(self.engine)
        logger.info(f"Database schema ready: {self.engine.url!r}")

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        """Commit on success, roll back on any error."""
        session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
