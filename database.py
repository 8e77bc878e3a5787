from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from config import get_settings

# Connection execution option asking the "begin" listener for the write lock.
WRITE_LOCK = "sqlite_begin_immediate"


def _create_engine(database_url: Optional[str] = None) -> Engine:
    settings = get_settings()
    database_url = database_url or settings.database_url
    connect_args: dict[str, object] = {}
    is_sqlite = database_url.startswith("sqlite")
    if is_sqlite:
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = settings.sqlite_busy_timeout_secs
    eng = create_engine(database_url, connect_args=connect_args)
    if is_sqlite:
        event.listen(eng, "connect", _enable_sqlite_pragmas)
        event.listen(eng, "begin", _begin)
    return eng


def _enable_sqlite_pragmas(dbapi_conn, _record):
    # Hand transaction control to the "begin" listener below.
    dbapi_conn.isolation_level = None
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA foreign_keys=ON;")
    cursor.close()


def _begin(conn):
    # Reads stay deferred so they never hold the write lock. Write units
    # opened through begin_write() take it up front, which serializes
    # balance writers the way SELECT ... FOR UPDATE does elsewhere.
    if conn.get_execution_options().get(WRITE_LOCK):
        conn.exec_driver_sql("BEGIN IMMEDIATE")
    else:
        conn.exec_driver_sql("BEGIN")


def begin_write(session: Session) -> None:
    """Start ``session``'s next transaction as a write transaction.

    On SQLite any read transaction still open is ended first, because a
    deferred reader cannot be upgraded to a writer without risking
    "database is locked".
    """
    if session.get_bind().dialect.name != "sqlite":
        return
    if session.in_transaction():
        session.commit()
    session.connection(execution_options={WRITE_LOCK: True})


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


class Base(DeclarativeBase):
    pass


@contextmanager
def session_scope() -> Iterator[Session]:
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
