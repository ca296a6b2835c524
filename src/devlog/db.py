"""Storage engine: one SQLite connection per process, schema applied on first open.

    storage = open_storage(cfg)      # once, at process start
    entries = EntryStore(storage)    # pass the handle to every store
    ...
    storage.close()

Schema (column names, CHECKs and index names are fixed: existing devlog.db
files and ad-hoc sqlite3 sessions depend on them):

    entries(id, entry_id UNIQUE, type, title, description, priority,
            is_complete, page_url, page_path, user_agent, created_at, updated_at)
    attachments(id, entry_id -> entries.entry_id ON DELETE CASCADE, filename,
                original_name, mime_type, size_bytes, storage_type,
                blob_data, file_path, created_at)
    counters(type PRIMARY KEY, next_number)

Errors: every sqlite3 error leaving this module is re-raised as StoreError or
one of its subclasses. Not-found is never an error here; stores return None.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import threading
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from pathlib import Path

    from devlog.config import DevlogConfig

logger = logging.getLogger("devlog.db")

# Millisecond UTC timestamp, same text layout as datetime('now') plus ".SSS".
# SQLite evaluates 'now' once per statement, so two uses in one INSERT agree.
NOW_SQL = "strftime('%Y-%m-%d %H:%M:%f', 'now')"

SCHEMA_SQL = """
    CREATE TABLE IF NOT EXISTS entries (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      entry_id TEXT UNIQUE NOT NULL,
      type TEXT NOT NULL CHECK(type IN ('change_request', 'bug_report', 'note')),
      title TEXT NOT NULL,
      description TEXT DEFAULT '',
      priority TEXT CHECK(priority IN ('low', 'medium', 'high', 'critical') OR priority IS NULL),
      is_complete INTEGER NOT NULL DEFAULT 0,
      page_url TEXT NOT NULL,
      page_path TEXT NOT NULL,
      user_agent TEXT,
      created_at TEXT NOT NULL DEFAULT (datetime('now')),
      updated_at TEXT NOT NULL DEFAULT (datetime('now'))
    );

    CREATE TABLE IF NOT EXISTS attachments (
      id INTEGER PRIMARY KEY AUTOINCREMENT,
      entry_id TEXT NOT NULL REFERENCES entries(entry_id) ON DELETE CASCADE,
      filename TEXT NOT NULL,
      original_name TEXT NOT NULL,
      mime_type TEXT NOT NULL,
      size_bytes INTEGER NOT NULL,
      storage_type TEXT NOT NULL CHECK(storage_type IN ('filesystem', 'blob')),
      blob_data BLOB,
      file_path TEXT,
      created_at TEXT NOT NULL DEFAULT (datetime('now'))
    );

    CREATE TABLE IF NOT EXISTS counters (
      type TEXT PRIMARY KEY,
      next_number INTEGER NOT NULL DEFAULT 1
    );

    INSERT OR IGNORE INTO counters (type, next_number) VALUES ('change_request', 1);
    INSERT OR IGNORE INTO counters (type, next_number) VALUES ('bug_report', 1);
    INSERT OR IGNORE INTO counters (type, next_number) VALUES ('note', 1);

    CREATE INDEX IF NOT EXISTS idx_entries_page_path ON entries(page_path);
    CREATE INDEX IF NOT EXISTS idx_entries_type ON entries(type);
    CREATE INDEX IF NOT EXISTS idx_entries_is_complete ON entries(is_complete);
    CREATE INDEX IF NOT EXISTS idx_attachments_entry_id ON attachments(entry_id);
"""


class StoreError(Exception):
    """Raised when a storage operation fails."""


class ConstraintViolation(StoreError):
    """A write broke a CHECK / NOT NULL / UNIQUE / FOREIGN KEY rule, or a
    required creation field was missing."""


class StoreUnavailable(StoreError):
    """The backing directory or database file could not be created or opened.

    Fatal: there is no degraded mode without a store.
    """


@contextlib.contextmanager
def translate_errors() -> Iterator[None]:
    """Re-raise sqlite3 errors as StoreError kinds."""
    try:
        yield
    except sqlite3.IntegrityError as exc:
        raise ConstraintViolation(str(exc)) from exc
    except sqlite3.Error as exc:
        raise StoreError(str(exc)) from exc


class Storage:
    """Handle on the devlog database and uploads directory.

    Construct once per process and pass it to EntryStore / AttachmentStore.
    open() is idempotent: the first call creates directories and schema, later
    calls return the same live connection.
    """

    def __init__(self, cfg: DevlogConfig) -> None:
        self.cfg = cfg
        self._conn: sqlite3.Connection | None = None
        # Writers on the shared connection take turns; SQLite does the rest.
        self._lock = threading.RLock()

    @property
    def uploads_dir(self) -> Path:
        return self.cfg.uploads_dir

    @property
    def storage_type(self) -> str:
        return self.cfg.storage_type

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self) -> sqlite3.Connection:
        if self._conn is not None:
            return self._conn
        with self._lock:
            if self._conn is None:
                self._conn = self._connect()
        return self._conn

    def _connect(self) -> sqlite3.Connection:
        db_path = self.cfg.db_path
        try:
            self.cfg.ensure_dirs()
            # A 0-byte file gives an opaque "disk I/O error" on PRAGMA; say what it is.
            empty = db_path.exists() and db_path.stat().st_size == 0
        except OSError as exc:
            msg = f"Cannot prepare devlog data dir {self.cfg.data_dir}: {exc}"
            raise StoreUnavailable(msg) from exc

        if empty:
            msg = (
                f"SQLite DB is empty (0 bytes): {db_path}\n"
                f"Fix: rm {db_path}* (entries in it are already gone)"
            )
            raise StoreUnavailable(msg)

        try:
            conn = sqlite3.connect(
                str(db_path),
                isolation_level=None,      # explicit BEGIN/COMMIT in transaction()
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            msg = f"Failed to open DB {db_path}: {exc}"
            raise StoreUnavailable(msg) from exc

        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA foreign_keys=ON")
            conn.executescript(SCHEMA_SQL)
        except sqlite3.Error as exc:
            conn.close()
            msg = (
                f"Failed to initialise DB {db_path} — may be corrupt.\n"
                f"Original error: {exc}"
            )
            raise StoreUnavailable(msg) from exc

        logger.info("devlog store opened at %s (attachments: %s)", db_path, self.storage_type)
        return conn

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    # ------------------------------------------------------------------
    # Statement helpers
    # ------------------------------------------------------------------

    @contextlib.contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """BEGIN IMMEDIATE ... COMMIT, rolled back on any error.

        Re-entrant: a nested call joins the outer transaction.
        """
        conn = self.open()
        with self._lock:
            if conn.in_transaction:
                with translate_errors():
                    yield conn
                return
            with translate_errors():
                conn.execute("BEGIN IMMEDIATE")
                # A failed COMMIT leaves the transaction open; roll it back too.
                try:
                    yield conn
                    conn.commit()
                except BaseException:
                    conn.rollback()
                    raise

    def execute(self, sql: str, params: Sequence[Any] | dict[str, Any] = ()) -> sqlite3.Cursor:
        conn = self.open()
        with self._lock, translate_errors():
            return conn.execute(sql, params)

    def fetchone(self, sql: str, params: Sequence[Any] | dict[str, Any] = ()) -> sqlite3.Row | None:
        conn = self.open()
        with self._lock, translate_errors():
            return conn.execute(sql, params).fetchone()  # type: ignore[no-any-return]

    def fetchall(self, sql: str, params: Sequence[Any] | dict[str, Any] = ()) -> list[sqlite3.Row]:
        conn = self.open()
        with self._lock, translate_errors():
            return conn.execute(sql, params).fetchall()

    def scalar(self, sql: str, params: Sequence[Any] | dict[str, Any] = ()) -> Any:
        row = self.fetchone(sql, params)
        return None if row is None else row[0]


def open_storage(cfg: DevlogConfig) -> Storage:
    """Construct the process's Storage handle and open it."""
    storage = Storage(cfg)
    storage.open()
    return storage
