"""
core/db.py -- SQLAlchemy engine construction shared by all stores.

Each store owns its tables and MetaData but builds its engine here so the
SQLite connection tweaks are applied in one place.
"""

from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def _sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL and foreign keys on every new SQLite connection.

    PRAGMAs are per-connection, so they are set from the connect event
    rather than once at startup.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def make_engine(db_url: str) -> Engine:
    """Create an engine, applying the SQLite tweaks when relevant."""
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _sqlite_pragmas)
    return engine


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
