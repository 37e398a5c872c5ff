"""SQLite connection for the durable secret store.

One connection per thread, autocommit unless inside
``get_transaction_context()``. Any ``sqlite3.Error`` (corrupt file, not a
database, read-only location, missing table) leaves this module as
``StoreUnavailableError``.
"""

import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path

from .schema import SCHEMA_VERSION, get_init_schema
from ..core.exceptions import StoreUnavailableError


@contextmanager
def store_errors(action):
    """Re-raise sqlite3.Error from the block as StoreUnavailableError."""
    try:
        yield
    except sqlite3.Error as e:
        raise StoreUnavailableError(f"Secret store {action} failed: {e}") from e


def _run(cursor, query, params):
    if params:
        cursor.execute(query, params)
    else:
        cursor.execute(query)


class DatabaseConnection:
    """Thread-local sqlite connection plus schema bootstrap."""

    __slots__ = ("db_path", "_local", "_lock", "_initialized")

    def __init__(self, db_path):
        self.db_path = Path(db_path)
        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

    def initialize(self):
        """Create the store file and schema once; refuse a store from a newer release."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StoreUnavailableError(
                    f"Cannot create secret store directory {self.db_path.parent}: {e}"
                ) from e

            try:
                with self.get_transaction_context() as cursor:
                    for statement in get_init_schema():
                        cursor.execute(statement)
                version = self.get_version()
            except StoreUnavailableError:
                self.close()
                raise

            if version > SCHEMA_VERSION:
                self.close()
                raise StoreUnavailableError(
                    f"Secret store schema v{version} is newer than supported v{SCHEMA_VERSION}"
                )
            try:
                # secrets are key material: owner-only
                os.chmod(self.db_path, 0o600)
            except OSError:
                pass
            self._initialized = True

    def _get_connection(self):
        connection = getattr(self._local, "connection", None)
        if connection is None:
            with store_errors("open"):
                connection = sqlite3.connect(
                    str(self.db_path), check_same_thread=False, isolation_level=None
                )
                connection.row_factory = sqlite3.Row
                # a committed mint or retire must survive power loss
                connection.execute("PRAGMA synchronous = FULL")
            self._local.connection = connection
        return connection

    @contextmanager
    def get_cursor_context(self):
        """Yield a cursor in autocommit mode."""
        connection = self._get_connection()
        with store_errors("query"):
            cursor = connection.cursor()
            try:
                yield cursor
            finally:
                cursor.close()

    @contextmanager
    def get_transaction_context(self):
        """Yield a cursor inside BEGIN IMMEDIATE; commit on success, roll back on any error."""
        connection = self._get_connection()
        with store_errors("transaction"):
            cursor = connection.cursor()
            try:
                cursor.execute("BEGIN IMMEDIATE")
                try:
                    yield cursor
                except BaseException:
                    connection.rollback()
                    raise
                connection.commit()
            finally:
                cursor.close()

    def execute(self, query, params=None):
        """Run one statement; return the affected row count."""
        with self.get_cursor_context() as cursor:
            _run(cursor, query, params)
            return cursor.rowcount

    def fetch_one(self, query, params=None):
        with self.get_cursor_context() as cursor:
            _run(cursor, query, params)
            row = cursor.fetchone()
        return dict(row) if row else None

    def fetch_all(self, query, params=None):
        with self.get_cursor_context() as cursor:
            _run(cursor, query, params)
            rows = cursor.fetchall()
        return [dict(row) for row in rows]

    def get_version(self):
        """Highest applied schema version, 0 for an empty store."""
        row = self.fetch_one("SELECT MAX(version) AS version FROM schema_version")
        return row["version"] if row and row["version"] else 0

    def close(self):
        connection = getattr(self._local, "connection", None)
        if connection is not None:
            connection.close()
            self._local.connection = None
        self._initialized = False
