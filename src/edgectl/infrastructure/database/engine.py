"""Database engine setup for SQLite with WAL mode.

The registry is stored at ``{state_dir}/edgectl.db``. SQLAlchemy Core (not
ORM) is used because edgectl is a short-lived CLI process.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine

from edgectl.infrastructure.database.schema import metadata

DB_FILENAME = "edgectl.db"


def create_db_engine(db_path: Path | str) -> Engine:
    """Create a SQLite engine with WAL mode and foreign keys enabled.

    Pass ``":memory:"`` for a throwaway in-memory registry.
    """
    url = "sqlite://" if str(db_path) == ":memory:" else f"sqlite:///{db_path}"
    engine = create_engine(url, echo=False)

    @event.listens_for(engine, "connect")
    def _set_sqlite_pragma(dbapi_conn: Any, _: Any) -> None:
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    return engine


def init_database(state_dir: Path) -> Engine:
    """Initialize the registry at ``{state_dir}/edgectl.db``.

    Idempotent; safe to call on an existing state directory.
    """
    state_dir.mkdir(parents=True, exist_ok=True)
    engine = create_db_engine(state_dir / DB_FILENAME)
    metadata.create_all(engine)
    return engine
