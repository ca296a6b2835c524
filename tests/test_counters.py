"""Tests for per-type entry ID allocation."""

import threading

import pytest

from devlog import counters
from devlog.db import ConstraintViolation


class TestFormat:
    def test_padding(self):
        assert counters.format_entry_id("change_request", 1) == "CR-001"
        assert counters.format_entry_id("bug_report", 42) == "BUG-042"
        assert counters.format_entry_id("note", 999) == "NOTE-999"

    def test_wider_past_999(self):
        assert counters.format_entry_id("note", 1000) == "NOTE-1000"
        assert counters.format_entry_id("bug_report", 123456) == "BUG-123456"


class TestAllocate:
    """allocate() hands out consecutive, never-reused numbers per type."""

    def test_consecutive(self, storage):
        assert counters.allocate(storage, "change_request") == "CR-001"
        assert counters.allocate(storage, "change_request") == "CR-002"
        assert counters.peek(storage, "change_request") == 3

    def test_types_are_independent(self, storage):
        assert counters.allocate(storage, "bug_report") == "BUG-001"
        assert counters.allocate(storage, "note") == "NOTE-001"
        assert counters.allocate(storage, "bug_report") == "BUG-002"
        assert counters.peek(storage, "change_request") == 1

    def test_unknown_type(self, storage):
        with pytest.raises(ConstraintViolation):
            counters.allocate(storage, "feature")

    def test_past_999(self, storage):
        storage.execute("UPDATE counters SET next_number = 1000 WHERE type = 'note'")
        assert counters.allocate(storage, "note") == "NOTE-1000"

    def test_not_reused_after_delete(self, entries, make_entry):
        first = entries.create(make_entry(entry_type="bug_report"))
        assert entries.delete(first.entry_id)
        second = entries.create(make_entry(entry_type="bug_report"))
        assert first.entry_id == "BUG-001"
        assert second.entry_id == "BUG-002"

    def test_threads_get_distinct_ids(self, storage):
        ids: list[str] = []
        lock = threading.Lock()

        def worker():
            for _ in range(10):
                with storage.transaction():
                    entry_id = counters.allocate(storage, "note")
                with lock:
                    ids.append(entry_id)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(ids) == 40
        assert len(set(ids)) == 40
        assert counters.peek(storage, "note") == 41
