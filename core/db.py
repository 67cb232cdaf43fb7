"""SQLite helpers for the run ledger."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator

__all__ = [
    "BUSY_TIMEOUT_MS",
    "connect",
    "ensure_schema",
    "open_db",
    "transaction",
]

BUSY_TIMEOUT_MS = 5000


def connect(db_path: str | Path, *, timeout: float = 5.0) -> sqlite3.Connection:
    """Open *db_path* in autocommit mode with WAL and a busy timeout.

    Transactions are explicit (see :func:`transaction`), so a daily and a
    weekly run finishing at the same time serialise on ``BEGIN IMMEDIATE``.
    """

    path = Path(db_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=timeout, isolation_level=None)
    conn.execute(f"PRAGMA busy_timeout={int(BUSY_TIMEOUT_MS)}")
    try:
        conn.execute("PRAGMA journal_mode=WAL")
    except sqlite3.DatabaseError:
        # Some filesystems (NFS/CIFS mounts) refuse WAL; rollback journal still works.
        pass
    return conn


@contextmanager
def open_db(db_path: str | Path) -> Iterator[sqlite3.Connection]:
    conn = connect(db_path)
    try:
        yield conn
    finally:
        conn.close()


def ensure_schema(db_path: str | Path, statements: Iterable[str]) -> None:
    with open_db(db_path) as conn:
        for statement in statements:
            conn.execute(statement)


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    try:
        conn.execute("BEGIN IMMEDIATE")
        yield conn
    except Exception:
        conn.rollback()
        raise
    else:
        conn.commit()
