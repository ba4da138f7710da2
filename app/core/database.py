import time
import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import DateTime, create_engine, event, text, Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from sqlalchemy.sql.expression import FunctionElement

from app.core.errors import DeadlineExceededError


logger = logging.getLogger(__name__)

Base = declarative_base()

DEADLINE_KEY = "deadline"


class statement_clock(FunctionElement):
    """
    Current time as seen by the executing statement.

    PostgreSQL's ``now()`` is frozen at transaction start, so concurrent
    senders could store timestamps out of insertion order; there the clock
    compiles to ``clock_timestamp()``.
    """

    type = DateTime()
    inherit_cache = True


@compiles(statement_clock)
def _compile_statement_clock(element, compiler, **kw):
    return "CURRENT_TIMESTAMP"


@compiles(statement_clock, "postgresql")
def _compile_statement_clock_postgresql(element, compiler, **kw):
    return "clock_timestamp()"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _check_deadline(session: Session):
    deadline = session.info.get(DEADLINE_KEY)
    if deadline is not None and time.monotonic() >= deadline:
        raise DeadlineExceededError()


def _deadline_on_execute(orm_execute_state):
    _check_deadline(orm_execute_state.session)


def _deadline_on_flush(session, flush_context, instances):
    _check_deadline(session)


class Database:
    """
    Relational storage handle shared by every component.

    Owned by the process entry point (the FastAPI lifespan) and passed
    explicitly to the services; nothing reaches it through module state.
    """

    def __init__(self, url: str, echo: bool = False):
        self.url = url
        self.engine: Engine = self._create_engine(url, echo)
        self._session_factory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )
        event.listen(self._session_factory, "do_orm_execute", _deadline_on_execute)
        event.listen(self._session_factory, "before_flush", _deadline_on_flush)

    @staticmethod
    def _create_engine(url: str, echo: bool) -> Engine:
        if not url.startswith("sqlite"):
            return create_engine(url, echo=echo, pool_pre_ping=True)

        kwargs = {"connect_args": {"check_same_thread": False}}
        # In-memory databases live as long as their connection
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool

        engine = create_engine(url, echo=echo, **kwargs)
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
        return engine

    @property
    def dialect(self) -> str:
        return self.engine.dialect.name

    def create_schema(self):
        # Table classes register themselves on Base when imported
        from app.users import models as user_models  # noqa: F401
        from app.chat import models as chat_models  # noqa: F401

        Base.metadata.create_all(self.engine)
        logger.info(f"database_schema_ready dialect={self.dialect}")

    @contextmanager
    def transaction(self, timeout: Optional[float] = None) -> Iterator[Session]:
        """
        Yield a session wrapped in a single transaction.

        Commits when the block exits normally and rolls back on any exception.
        With ``timeout`` (seconds) every statement issued after the deadline
        raises DeadlineExceededError, so nothing uncommitted survives.
        """
        session = self._session_factory()
        if timeout is not None:
            session.info[DEADLINE_KEY] = time.monotonic() + timeout
        try:
            yield session
            _check_deadline(session)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def upsert(self, table: Table):
        """Dialect-specific INSERT supporting ``on_conflict_do_update``."""
        if self.dialect == "postgresql":
            return postgresql.insert(table)
        return sqlite.insert(table)

    def ping(self) -> bool:
        with self.engine.connect() as connection:
            connection.execute(text("SELECT 1"))
        return True

    def dispose(self):
        self.engine.dispose()
