"""Versioned SQL migrations.

Scripts live in ``db/migrations`` and are applied in lexicographic file-name
order, so names carry a numeric prefix (``001_...sql``). Each script runs in
its own transaction together with the ``_migrations`` row that records it:
either both land or neither does.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import sys
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from library_api.core.config import get_settings
from library_api.core.logging import configure_logging
from library_api.db.session import create_store_engine
from library_api.domain.errors import MigrationError
from library_api.models.migration_record import MigrationRecord
from sqlalchemy import insert, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).resolve().parent / "migrations"

_BOOTSTRAP_SQL = """
CREATE TABLE IF NOT EXISTS _migrations (
  name        TEXT PRIMARY KEY,
  applied_at  TEXT NOT NULL DEFAULT (datetime('now'))
)
"""

_comments = re.compile(r"--[^\n]*|/\*.*?\*/", re.DOTALL)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MigrationScript:
    name: str
    path: Path

    def read_sql(self) -> str:
        return self.path.read_text(encoding="utf-8")


def discover_migrations(migrations_dir: Path | None = None) -> list[MigrationScript]:
    directory = Path(migrations_dir) if migrations_dir is not None else MIGRATIONS_DIR
    if not directory.is_dir():
        return []
    paths = [p for p in directory.iterdir() if p.is_file() and p.suffix == ".sql"]
    return [MigrationScript(name=p.name, path=p) for p in sorted(paths, key=lambda p: p.name)]


def _has_sql(fragment: str) -> bool:
    return bool(_comments.sub("", fragment).strip(" \t\r\n;"))


def split_statements(sql: str) -> list[str]:
    """Split a script into single statements.

    Semicolons inside string literals, comments and trigger bodies do not end
    a statement; ``sqlite3.complete_statement`` decides where one ends.
    """
    statements: list[str] = []
    buffer = ""
    parts = sql.split(";")
    for part in parts[:-1]:
        buffer += part + ";"
        if sqlite3.complete_statement(buffer):
            if _has_sql(buffer):
                statements.append(buffer.strip())
            buffer = ""
    buffer += parts[-1]
    if _has_sql(buffer):
        statements.append(buffer.strip())
    return statements


def _ensure_migrations_table(engine: Engine) -> None:
    with engine.begin() as conn:
        conn.exec_driver_sql(_BOOTSTRAP_SQL)


def applied_migrations(engine: Engine) -> list[MigrationRecord]:
    with Session(engine) as db:
        return list(db.execute(select(MigrationRecord).order_by(MigrationRecord.name)).scalars())


def _applied_names(engine: Engine) -> set[str]:
    with engine.connect() as conn:
        return set(conn.execute(select(MigrationRecord.name)).scalars())


def _apply_one(engine: Engine, script: MigrationScript) -> bool:
    statements = split_statements(script.read_sql())
    with engine.begin() as conn:
        # Another process may have applied it since we listed the table.
        already = conn.execute(
            select(MigrationRecord.name).where(MigrationRecord.name == script.name)
        ).first()
        if already is not None:
            return False
        for statement in statements:
            conn.exec_driver_sql(statement)
        conn.execute(insert(MigrationRecord).values(name=script.name, applied_at=utcnow()))
    return True


def apply_migrations(engine: Engine, migrations_dir: Path | None = None) -> list[str]:
    """Bring the store up to the latest schema.

    Returns the names applied by this call, in order. Safe to call any number
    of times; an up-to-date store is a successful no-op. The first failing
    script raises :class:`MigrationError` and nothing after it is attempted.
    """
    try:
        _ensure_migrations_table(engine)
        applied = _applied_names(engine)
    except SQLAlchemyError as exc:
        logger.error("Could not read migration state: %s", exc)
        raise MigrationError("Could not read migration state") from exc

    newly_applied: list[str] = []
    for script in discover_migrations(migrations_dir):
        if script.name in applied:
            continue
        try:
            if not _apply_one(engine, script):
                continue
        except (SQLAlchemyError, OSError, UnicodeDecodeError) as exc:
            logger.error("Migration %s failed: %s", script.name, exc)
            raise MigrationError(f"Migration {script.name} failed", migration=script.name) from exc

        logger.info("Applied migration %s", script.name)
        newly_applied.append(script.name)

    if not newly_applied:
        logger.debug("Schema is up to date")
    return newly_applied


def main() -> int:
    settings = get_settings()
    configure_logging(settings.log_level)

    engine = create_store_engine(
        settings.database_url, busy_timeout_secs=settings.db_busy_timeout_secs
    )
    try:
        names = apply_migrations(engine, settings.migrations_dir)
    except MigrationError as exc:
        logger.critical("%s", exc.message)
        return 1
    finally:
        engine.dispose()

    logger.info("Applied %d migration(s)", len(names))
    return 0


if __name__ == "__main__":
    sys.exit(main())
