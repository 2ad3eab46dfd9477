"""
Database access for the Cinema Booking Backend.

``Database`` owns the SQLAlchemy engine and hands out short-lived sessions.
Every unit of work goes through ``Database.run`` which commits on ``Ok``,
rolls back on ``Err`` and retries transient storage failures a bounded
number of times.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import make_url
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker

from models import Base
from outcomes import Err, ErrorKind, Outcome

logger = logging.getLogger(__name__)

# psycopg2 SQLSTATEs
PG_UNIQUE_VIOLATION = "23505"
PG_FOREIGN_KEY_VIOLATION = "23503"
# MySQL ER_DUP_ENTRY, ER_ROW_IS_REFERENCED_2, ER_NO_REFERENCED_ROW_2
MYSQL_DUP_ENTRY = 1062
MYSQL_FOREIGN_KEY_ERRORS = (1451, 1452)
# Execution option read by the SQLite begin hook
SQLITE_BEGIN = "sqlite_begin"


def is_unique_violation(exc: IntegrityError, constraint: Optional[str] = None) -> bool:
    """True when ``exc`` was raised by a UNIQUE constraint (optionally a named one)."""
    orig = exc.orig
    if getattr(orig, "pgcode", None) == PG_UNIQUE_VIOLATION:
        diag = getattr(orig, "diag", None)
        name = getattr(diag, "constraint_name", None)
        return constraint is None or name is None or name == constraint
    args = getattr(orig, "args", ())
    if args and args[0] == MYSQL_DUP_ENTRY:
        return True
    return "UNIQUE constraint failed" in str(orig)


def is_foreign_key_violation(exc: IntegrityError) -> bool:
    orig = exc.orig
    if getattr(orig, "pgcode", None) == PG_FOREIGN_KEY_VIOLATION:
        return True
    args = getattr(orig, "args", ())
    if args and args[0] in MYSQL_FOREIGN_KEY_ERRORS:
        return True
    return "FOREIGN KEY constraint failed" in str(orig)


def _configure_sqlite(engine) -> None:
    # pysqlite defers BEGIN until the first write, so a read-then-insert is
    # not isolated. Serializable sessions take the write lock when the
    # transaction opens; everything else gets a plain deferred BEGIN.
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        mode = conn.get_execution_options().get(SQLITE_BEGIN, "DEFERRED")
        conn.exec_driver_sql(f"BEGIN {mode}")


class Database:
    def __init__(
        self,
        url: str,
        retry_attempts: int = 3,
        retry_delay: float = 0.1,
        timeout: float = 30.0,
    ):
        self.url = url
        self.retry_attempts = max(1, retry_attempts)
        self.retry_delay = retry_delay

        backend = make_url(url).get_backend_name()
        connect_args: Dict[str, Any] = {}
        if backend == "sqlite":
            connect_args = {"check_same_thread": False, "timeout": timeout}
        elif backend == "postgresql":
            connect_args = {"options": f"-c lock_timeout={int(timeout * 1000)}"}

        self.engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        if backend == "sqlite":
            _configure_sqlite(self.engine)
            serializable_engine = self.engine.execution_options(**{SQLITE_BEGIN: "IMMEDIATE"})
        else:
            serializable_engine = self.engine.execution_options(isolation_level="SERIALIZABLE")

        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        self._serializable_sessions = sessionmaker(
            bind=serializable_engine, autoflush=False, expire_on_commit=False
        )

    @classmethod
    def from_settings(cls, settings) -> "Database":
        return cls(
            settings.database_url,
            retry_attempts=settings.store_retry_attempts,
            retry_delay=settings.store_retry_delay,
            timeout=settings.store_timeout,
        )

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def create_schema(self) -> None:
        Base.metadata.create_all(bind=self.engine)

    def drop_schema(self) -> None:
        Base.metadata.drop_all(bind=self.engine)

    def dispose(self) -> None:
        self.engine.dispose()

    def run(
        self,
        work: Callable[[Session], Outcome],
        on_integrity_error: Optional[Callable[[IntegrityError], Outcome]] = None,
        serializable: bool = False,
    ) -> Outcome:
        """Run ``work`` in one transaction and return its outcome.

        ``OperationalError`` (serialization failure, deadlock, lock timeout)
        restarts the whole unit of work with exponential backoff. Once the
        attempts are used up the caller gets ``TRANSIENT_FAILURE``.
        ``IntegrityError`` is handed to ``on_integrity_error`` when given,
        otherwise it propagates.
        """
        factory = self._serializable_sessions if serializable else self._sessions
        for attempt in range(1, self.retry_attempts + 1):
            session = factory()
            try:
                outcome = work(session)
                if isinstance(outcome, Err):
                    session.rollback()
                else:
                    session.commit()
                return outcome
            except IntegrityError as exc:
                session.rollback()
                if on_integrity_error is None:
                    raise
                return on_integrity_error(exc)
            except OperationalError as exc:
                session.rollback()
                if attempt == self.retry_attempts:
                    logger.error(f"Giving up after {attempt} attempts: {exc.orig!r}")
                    return Err(
                        ErrorKind.TRANSIENT_FAILURE,
                        "The request could not be completed right now, please retry",
                    )
                delay = self.retry_delay * (2 ** (attempt - 1))
                logger.warning(f"Transient store failure (attempt {attempt}), retrying in {delay:.2f}s: {exc.orig!r}")
                time.sleep(delay)
            finally:
                session.close()

    def describe(self) -> Dict[str, Any]:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
            tables = inspect(conn).get_table_names()
        return {"dialect": self.dialect, "tables": sorted(tables)}
