import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool


logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


def _is_sqlite(url: str) -> bool:
    return url.startswith("sqlite")


def _is_sqlite_memory(url: str) -> bool:
    return _is_sqlite(url) and (url.endswith("://") or ":memory:" in url)


def _create_engine(database_url: str) -> Engine:
    kwargs: dict[str, object] = {}
    if _is_sqlite(database_url):
        kwargs["connect_args"] = {"check_same_thread": False}
    if _is_sqlite_memory(database_url):
        # one shared connection, otherwise every checkout sees an empty database
        kwargs["poolclass"] = StaticPool

    eng = create_engine(database_url, **kwargs)
    if _is_sqlite(database_url):
        event.listen(eng, "connect", _enable_sqlite_pragmas)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


class Database:
    """Store handle shared by the API layer.

    Owns the engine and the session factory. Services never see this object,
    they receive a request-scoped ``Session`` instead.
    """

    def __init__(self, database_url: str) -> None:
        self.database_url = database_url
        self.engine = _create_engine(database_url)
        self.session_factory = sessionmaker(
            bind=self.engine, autoflush=False, expire_on_commit=False
        )

    def connect(self) -> None:
        self.ping()
        logger.info(f"database_connected: dialect={self.engine.dialect.name}")

    def ping(self) -> bool:
        with self.engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True

    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def dispose(self) -> None:
        self.engine.dispose()
        logger.info("database_disposed")

    @contextmanager
    def session_scope(self) -> Iterator[Session]:
        session: Session = self.session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
