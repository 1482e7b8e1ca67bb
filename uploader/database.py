"""SQLite storage for the file ledger and the pin index."""

import sqlite3
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import ContextManager, Generator, Optional

from uploader import config

# files: the ledger, one immutable row per successful publish.
# pins: key/value pin index, root CID -> JSON descriptor.
SCHEMA = """
CREATE TABLE IF NOT EXISTS files (
    file_id TEXT PRIMARY KEY,
    filename TEXT NOT NULL,
    cid TEXT NOT NULL,
    size INTEGER NOT NULL,
    uploaded_at TEXT NOT NULL,
    origin_ip TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_files_cid ON files(cid);
CREATE INDEX IF NOT EXISTS idx_files_uploaded_at ON files(uploaded_at);

CREATE TABLE IF NOT EXISTS pins (
    cid TEXT PRIMARY KEY,
    descriptor TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""


def init_database() -> None:
    """
    Create the database file and its tables if missing, in WAL journal mode.
    """
    Path(config.DATABASE_PATH).parent.mkdir(parents=True, exist_ok=True)

    with get_db_connection() as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.executescript(SCHEMA)
        conn.commit()


@contextmanager
def get_db_connection() -> Generator[sqlite3.Connection, None, None]:
    """
    Open a connection to the configured database, closed on exit.

    Rows come back as ``sqlite3.Row``. Callers commit their own writes.
    """
    conn = sqlite3.connect(config.DATABASE_PATH, timeout=30)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def use_connection(conn: Optional[sqlite3.Connection] = None) -> ContextManager[sqlite3.Connection]:
    """
    Reuse the caller's connection, or open one that is closed on exit.

    A borrowed connection is left open and uncommitted for its owner.
    """
    if conn is not None:
        return nullcontext(conn)
    return get_db_connection()
