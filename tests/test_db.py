"""Tests for the storage engine: schema, open/close, error translation."""

import sqlite3
from pathlib import Path

import pytest

from devlog.db import ConstraintViolation, Storage, StoreError, StoreUnavailable, open_storage


class TestOpen:
    """Storage.open() creates dirs + schema once."""

    def test_creates_layout(self, cfg):
        storage = open_storage(cfg)
        try:
            assert cfg.db_path.exists()
            assert cfg.uploads_dir.is_dir()
            assert (cfg.data_dir / ".gitignore").read_text().startswith("uploads/")
        finally:
            storage.close()

    def test_open_is_idempotent(self, storage):
        first = storage.open()
        assert storage.open() is first
        assert storage.is_open

    def test_reopen_keeps_data_and_counters(self, cfg, storage):
        storage.execute("UPDATE counters SET next_number = 7 WHERE type = 'note'")
        storage.close()
        assert not storage.is_open

        again = Storage(cfg)
        try:
            assert again.scalar("SELECT next_number FROM counters WHERE type = 'note'") == 7
        finally:
            again.close()

    def test_tables_and_indexes(self, storage):
        tables = {r["name"] for r in storage.fetchall("SELECT name FROM sqlite_master WHERE type = 'table'")}
        assert {"entries", "attachments", "counters"} <= tables

        indexes = {r["name"] for r in storage.fetchall("SELECT name FROM sqlite_master WHERE type = 'index'")}
        assert {
            "idx_entries_page_path",
            "idx_entries_type",
            "idx_entries_is_complete",
            "idx_attachments_entry_id",
        } <= indexes

    def test_counters_seeded_at_one(self, storage):
        rows = storage.fetchall("SELECT type, next_number FROM counters ORDER BY type")
        assert {r["type"]: r["next_number"] for r in rows} == {
            "bug_report": 1,
            "change_request": 1,
            "note": 1,
        }

    def test_pragmas(self, storage):
        assert storage.scalar("PRAGMA journal_mode") == "wal"
        assert storage.scalar("PRAGMA foreign_keys") == 1

    def test_empty_db_file_is_unavailable(self, cfg):
        cfg.ensure_dirs()
        cfg.db_path.write_bytes(b"")
        with pytest.raises(StoreUnavailable, match="0 bytes"):
            open_storage(cfg)

    def test_unwritable_data_dir_is_unavailable(self, cfg, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        cfg.data_dir = blocker / ".devlog"
        with pytest.raises(StoreUnavailable):
            open_storage(cfg)


class TestErrors:
    """sqlite3 errors never leave the store untranslated."""

    def test_check_constraint(self, storage):
        with pytest.raises(ConstraintViolation):
            storage.execute(
                "INSERT INTO entries (entry_id, type, title, page_url, page_path) "
                "VALUES ('X-001', 'feature', 't', 'u', '/')"
            )

    def test_not_null(self, storage):
        with pytest.raises(ConstraintViolation):
            storage.execute(
                "INSERT INTO entries (entry_id, type, title, page_url, page_path) "
                "VALUES ('NOTE-001', 'note', NULL, 'u', '/')"
            )

    def test_foreign_key(self, storage):
        with pytest.raises(ConstraintViolation):
            storage.execute(
                "INSERT INTO attachments (entry_id, filename, original_name, mime_type, "
                "size_bytes, storage_type) VALUES ('NOPE-1', 'f', 'f', 'text/plain', 1, 'blob')"
            )

    def test_bad_sql_is_store_error(self, storage):
        with pytest.raises(StoreError) as exc_info:
            storage.execute("SELECT * FROM no_such_table")
        assert not isinstance(exc_info.value, ConstraintViolation)
        assert isinstance(exc_info.value.__cause__, sqlite3.Error)


class TestTransaction:
    """BEGIN IMMEDIATE / COMMIT / ROLLBACK."""

    def test_rollback_on_error(self, storage):
        with pytest.raises(RuntimeError), storage.transaction() as conn:
            conn.execute("UPDATE counters SET next_number = 50 WHERE type = 'note'")
            raise RuntimeError("boom")
        assert storage.scalar("SELECT next_number FROM counters WHERE type = 'note'") == 1

    def test_commit(self, storage):
        with storage.transaction() as conn:
            conn.execute("UPDATE counters SET next_number = 50 WHERE type = 'note'")
        assert storage.scalar("SELECT next_number FROM counters WHERE type = 'note'") == 50

    def test_nested_joins_outer(self, storage):
        with pytest.raises(RuntimeError), storage.transaction() as outer:
            outer.execute("UPDATE counters SET next_number = 5 WHERE type = 'note'")
            with storage.transaction() as inner:
                inner.execute("UPDATE counters SET next_number = 9 WHERE type = 'bug_report'")
            raise RuntimeError("boom")
        assert storage.scalar("SELECT next_number FROM counters WHERE type = 'note'") == 1
        assert storage.scalar("SELECT next_number FROM counters WHERE type = 'bug_report'") == 1

    def test_failed_commit_is_rolled_back(self, cfg, storage, entries, make_entry):
        """A COMMIT that fails must not leave the connection inside a transaction."""
        with pytest.raises(ConstraintViolation), storage.transaction() as conn:
            conn.execute("PRAGMA defer_foreign_keys = ON")
            conn.execute(
                "INSERT INTO attachments (entry_id, filename, original_name, mime_type, "
                "size_bytes, storage_type) VALUES ('CR-404', 'f', 'f', 'text/plain', 1, 'blob')"
            )
        assert not storage.open().in_transaction
        assert storage.scalar("SELECT COUNT(*) FROM attachments") == 0

        entry = entries.create(make_entry())
        storage.close()

        again = Storage(cfg)
        try:
            assert again.scalar(
                "SELECT entry_id FROM entries WHERE entry_id = ?", (entry.entry_id,)
            ) == entry.entry_id
        finally:
            again.close()


class TestStatFailure:
    def test_unreadable_db_path_is_unavailable(self, cfg, monkeypatch):
        cfg.ensure_dirs()
        cfg.db_path.write_bytes(b"not checked")
        real_stat = Path.stat

        def deny_db(self, *args, **kwargs):
            if self == cfg.db_path:
                raise PermissionError(13, "Permission denied", str(self))
            return real_stat(self, *args, **kwargs)

        monkeypatch.setattr(Path, "stat", deny_db)
        with pytest.raises(StoreUnavailable, match="Permission denied"):
            open_storage(cfg)
