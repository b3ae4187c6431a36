"""Nested key/value buckets on top of SQLite.

A bucket is an ordered namespace of ``bytes`` keys to ``bytes`` values.
Buckets nest: every bucket has a parent, the top level hangs off a fixed root
row. Keys are BLOBs, so iteration order is plain byte order.

All access goes through a transaction obtained from :meth:`BucketDB.update`
(read/write, one writer at a time) or :meth:`BucketDB.view` (read-only
snapshot). Each transaction runs on its own connection; with the WAL journal
readers never block the writer or each other.
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from ..errors import (
    BucketError,
    BucketExistsError,
    BucketNotFoundError,
    StoreClosedError,
    TxNotWritableError,
)

logger = logging.getLogger(__name__)

_ROOT_ID = 1
_BUSY_TIMEOUT = 30.0


class Bucket:
    """Handle on one bucket inside a live transaction."""

    def __init__(self, tx: "Transaction", bucket_id: int, name: bytes) -> None:
        self._tx = tx
        self.id = bucket_id
        self.name = name

    # ------------------------------------------------------------------
    # Key/value access
    def get(self, key: bytes) -> Optional[bytes]:
        row = self._tx._fetchone(
            "SELECT value FROM items WHERE bucket_id = ? AND key = ?", self.id, key
        )
        return None if row is None else bytes(row[0])

    def put(self, key: bytes, value: bytes) -> None:
        self._tx._check_writable()
        self._tx._execute(
            "INSERT OR REPLACE INTO items (bucket_id, key, value) VALUES (?, ?, ?)",
            self.id,
            key,
            value,
        )

    def delete(self, key: bytes) -> None:
        """Remove ``key``; deleting a missing key is a no-op."""
        self._tx._check_writable()
        self._tx._execute(
            "DELETE FROM items WHERE bucket_id = ? AND key = ?", self.id, key
        )

    def items(self) -> list[tuple[bytes, bytes]]:
        """Return every key/value pair, ordered by key.

        The pairs are materialised so the caller may modify the bucket while
        walking them.
        """
        rows = self._tx._fetchall(
            "SELECT key, value FROM items WHERE bucket_id = ? ORDER BY key", self.id
        )
        return [(bytes(k), bytes(v)) for k, v in rows]

    def keys(self) -> list[bytes]:
        rows = self._tx._fetchall(
            "SELECT key FROM items WHERE bucket_id = ? ORDER BY key", self.id
        )
        return [bytes(r[0]) for r in rows]

    # ------------------------------------------------------------------
    # Nested buckets
    def bucket(self, name: bytes) -> Optional["Bucket"]:
        row = self._tx._fetchone(
            "SELECT id FROM buckets WHERE parent_id = ? AND name = ?", self.id, name
        )
        return None if row is None else Bucket(self._tx, row[0], name)

    def create_bucket(self, name: bytes) -> "Bucket":
        self._tx._check_writable()
        if not name:
            raise BucketError("bucket name required")
        if self.bucket(name) is not None:
            raise BucketExistsError(f"bucket {name!r} already exists")
        cur = self._tx._execute(
            "INSERT INTO buckets (parent_id, name) VALUES (?, ?)", self.id, name
        )
        return Bucket(self._tx, cur.lastrowid, name)

    def create_bucket_if_not_exists(self, name: bytes) -> "Bucket":
        existing = self.bucket(name)
        if existing is not None:
            return existing
        return self.create_bucket(name)

    def delete_bucket(self, name: bytes) -> None:
        """Delete a nested bucket together with its keys and sub-buckets."""
        self._tx._check_writable()
        child = self.bucket(name)
        if child is None:
            raise BucketNotFoundError(f"bucket {name!r} not found")
        # items and descendant buckets go through ON DELETE CASCADE
        self._tx._execute("DELETE FROM buckets WHERE id = ?", child.id)


class Transaction:
    """A single read or read/write transaction."""

    def __init__(self, conn: sqlite3.Connection, writable: bool) -> None:
        self._conn = conn
        self.writable = writable
        self._root = Bucket(self, _ROOT_ID, b"")

    # ------------------------------------------------------------------
    # Helper methods
    def _check_writable(self) -> None:
        if not self.writable:
            raise TxNotWritableError("transaction is read-only")

    def _execute(self, query: str, *params: object) -> sqlite3.Cursor:
        return self._conn.execute(query, params)

    def _fetchone(self, query: str, *params: object) -> Optional[tuple]:
        return self._conn.execute(query, params).fetchone()

    def _fetchall(self, query: str, *params: object) -> list[tuple]:
        return self._conn.execute(query, params).fetchall()

    # ------------------------------------------------------------------
    # Top-level buckets
    def bucket(self, name: bytes) -> Optional[Bucket]:
        return self._root.bucket(name)

    def create_bucket(self, name: bytes) -> Bucket:
        return self._root.create_bucket(name)

    def create_bucket_if_not_exists(self, name: bytes) -> Bucket:
        return self._root.create_bucket_if_not_exists(name)

    def delete_bucket(self, name: bytes) -> None:
        self._root.delete_bucket(name)


class BucketDB:
    """A bucket database stored in a single SQLite file."""

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)
        self._closed = False
        # held until close(); transactions use their own connections
        self._conn = self._connect()
        try:
            self._ensure_schema()
        except BaseException:
            self._conn.close()
            raise

    # ------------------------------------------------------------------
    # Schema management
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.path,
            timeout=_BUSY_TIMEOUT,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute("PRAGMA journal_mode = WAL")
        cur.execute("BEGIN IMMEDIATE")
        try:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS buckets (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    parent_id INTEGER REFERENCES buckets (id) ON DELETE CASCADE,
                    name BLOB NOT NULL,
                    UNIQUE (parent_id, name)
                )
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS items (
                    bucket_id INTEGER NOT NULL REFERENCES buckets (id) ON DELETE CASCADE,
                    key BLOB NOT NULL,
                    value BLOB NOT NULL,
                    PRIMARY KEY (bucket_id, key)
                ) WITHOUT ROWID
                """
            )
            cur.execute(
                "INSERT OR IGNORE INTO buckets (id, parent_id, name) VALUES (?, NULL, ?)",
                (_ROOT_ID, b""),
            )
        except BaseException:
            cur.execute("ROLLBACK")
            raise
        cur.execute("COMMIT")

    # ------------------------------------------------------------------
    # Transactions
    @contextmanager
    def update(self) -> Iterator[Transaction]:
        """Run a read/write transaction; commit on success, roll back on error."""
        with self._transaction("BEGIN IMMEDIATE", writable=True) as tx:
            yield tx

    @contextmanager
    def view(self) -> Iterator[Transaction]:
        """Run a read-only transaction over a consistent snapshot."""
        with self._transaction("BEGIN", writable=False) as tx:
            yield tx

    @contextmanager
    def _transaction(self, begin: str, writable: bool) -> Iterator[Transaction]:
        if self._closed:
            raise StoreClosedError(f"database {self.path} is closed")
        conn = self._connect()
        try:
            conn.execute(begin)
            try:
                yield Transaction(conn, writable)
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            if writable:
                conn.execute("COMMIT")
            else:
                conn.execute("ROLLBACK")
        finally:
            conn.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._conn.close()
        logger.debug(f"Closed bucket database {self.path}")

    @property
    def closed(self) -> bool:
        return self._closed
