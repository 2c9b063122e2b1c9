from __future__ import annotations

from pathlib import Path
from typing import Any, Generator

from fastapi import Request
from sqlalchemy import create_engine, event
from sqlalchemy.engine import URL, Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

# Execution option naming the BEGIN mode of a connection's next transaction.
BEGIN_MODE = "sqlite_begin"
_BEGIN_MODES = {"DEFERRED", "IMMEDIATE"}


def is_memory_database(url: URL) -> bool:
    database = url.database
    if not database or database == ":memory:" or database.startswith("file::memory:"):
        return True
    # sqlite:///file:name?mode=memory&uri=true
    return url.query.get("mode") == "memory"


def _install_sqlite_hooks(engine: Engine, *, file_backed: bool) -> None:
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection: Any, connection_record: Any) -> None:
        # Take over transaction control from pysqlite: it would otherwise
        # BEGIN lazily (deferred) and commit around some DDL.
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        if file_backed:
            cursor.execute("PRAGMA journal_mode = WAL")
        cursor.close()

    @event.listens_for(engine, "begin")
    def _on_begin(conn: Any) -> None:
        # Writers grab the write lock up front and wait on the busy timeout
        # instead of failing on a shared -> reserved lock upgrade. Read-only
        # sessions opt into DEFERRED (see read_only) so WAL readers never queue.
        mode = conn.get_execution_options().get(BEGIN_MODE, "IMMEDIATE")
        if mode not in _BEGIN_MODES:
            raise ValueError(f"Unsupported BEGIN mode: {mode!r}")
        conn.exec_driver_sql(f"BEGIN {mode}")


def create_store_engine(database_url: str, *, busy_timeout_secs: float = 5.0) -> Engine:
    """Open the embedded store.

    In-memory URLs get a single shared connection, so such an engine must
    only be used from one thread at a time. The served app refuses them
    (see ``Settings.require_sqlite``). The caller owns the returned engine
    and must ``dispose()`` it.
    """
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite":
        raise ValueError(f"Unsupported store backend: {url.get_backend_name()}")

    kwargs: dict[str, Any] = {
        "connect_args": {"check_same_thread": False, "timeout": busy_timeout_secs},
        "pool_pre_ping": True,
    }

    file_backed = not is_memory_database(url)
    if file_backed:
        Path(url.database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)
    else:
        # One shared connection, otherwise every checkout sees an empty database.
        kwargs["poolclass"] = StaticPool

    engine = create_engine(url, **kwargs)
    _install_sqlite_hooks(engine, file_backed=file_backed)
    return engine


def create_session_factory(engine: Engine) -> sessionmaker[Session]:
    # Rows returned from a committed transaction keep their loaded state.
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


def read_only(db: Session) -> None:
    """Start the session's next transaction as DEFERRED (shared lock only).

    No-op when a transaction is already open; it keeps whatever mode it
    began with.
    """
    if not db.in_transaction():
        db.connection(execution_options={BEGIN_MODE: "DEFERRED"})


def begin_write(db: Session) -> None:
    """Open a fresh IMMEDIATE transaction holding the store's write lock.

    Whatever the session had open is committed first, so a write never has
    to upgrade a lock taken by an earlier read.
    """
    if db.in_transaction():
        db.commit()
    db.connection()


def get_db(request: Request) -> Generator[Session, None, None]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()
