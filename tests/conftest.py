from __future__ import annotations

import itertools
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from library_api.core.config import Settings
from library_api.crud.books import create_book
from library_api.db.migrate import apply_migrations
from library_api.db.session import create_session_factory, create_store_engine
from library_api.main import create_app


@pytest.fixture()
def make_settings(tmp_path):
    """Settings built from explicit values only (no .env, no redis, no tracing)."""

    def _make(**overrides) -> Settings:
        values = {
            "DATABASE_URL": f"sqlite+pysqlite:///{tmp_path / 'settings.db'}",
            "RATE_LIMIT_ENABLED": False,
            "OTEL_ENABLED": False,
            "LOG_LEVEL": "DEBUG",
        }
        values.update(overrides)
        return Settings(_env_file=None, **values)

    return _make


@pytest.fixture()
def engine():
    # In-memory store; StaticPool keeps one shared connection.
    eng = create_store_engine("sqlite+pysqlite:///:memory:")
    apply_migrations(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def file_engine(tmp_path):
    # A real file so several connections can contend for the write lock.
    eng = create_store_engine(f"sqlite+pysqlite:///{tmp_path / 'books.db'}")
    apply_migrations(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def app_settings(tmp_path, make_settings):
    return make_settings(DATABASE_URL=f"sqlite+pysqlite:///{tmp_path / 'api.db'}")


@pytest.fixture()
def client(app_settings):
    app = create_app(app_settings)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def clock(monkeypatch):
    """Strictly increasing timestamps one second apart for every row stamp."""
    start = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
    ticks = itertools.count()

    def fake_utcnow() -> datetime:
        return start + timedelta(seconds=next(ticks))

    for target in (
        "library_api.crud.books.utcnow",
        "library_api.crud.checkout_history.utcnow",
        "library_api.services.checkout.utcnow",
    ):
        monkeypatch.setattr(target, fake_utcnow)
    return fake_utcnow


@pytest.fixture()
def add_book(db_session):
    counter = itertools.count(1)

    def _add(**overrides):
        n = next(counter)
        fields = {
            "title": f"Book {n}",
            "author": f"Author {n}",
            "isbn": f"isbn-{n:04d}",
            "published_year": 2000 + n,
        }
        fields.update(overrides)
        return create_book(db_session, **fields)

    return _add
