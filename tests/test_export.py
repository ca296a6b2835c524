"""Tests for JSON and Markdown export."""

import json
from datetime import UTC, datetime

import pytest

from devlog.export import entry_to_markdown, export_filename, render, to_json, to_markdown
from devlog.models import EntryPatch, Upload

NOW = datetime(2026, 3, 14, 9, 26, 53, 589000, tzinfo=UTC)


@pytest.fixture
def populated(entries, make_entry):
    """Two pages, one with a screenshot and a text file."""
    first = entries.create(make_entry("Wider table", page_path="/orders", priority="high", description="Needs 3 more columns"))
    entries.attachments.add(first.entry_id, Upload.from_bytes("shot.png", b"png", "image/png"))
    entries.attachments.add(first.entry_id, Upload.from_bytes("log.txt", b"log", "text/plain"))
    entries.create(make_entry("Typo in header", entry_type="bug_report", page_path="/settings"))
    done = entries.create(make_entry("Ask about totals", entry_type="note", page_path="/orders"))
    entries.update(done.entry_id, EntryPatch(is_complete=True))
    return entries.export_all()


class TestJson:
    def test_envelope(self, populated):
        data = json.loads(to_json(populated, now=NOW))
        assert data["exportedAt"] == "2026-03-14T09:26:53.589Z"
        assert data["totalEntries"] == 3
        assert [e["entryId"] for e in data["entries"]] == ["NOTE-001", "BUG-001", "CR-001"]

    def test_attachments_have_no_bytes(self, populated):
        data = json.loads(to_json(populated, now=NOW))
        cr = data["entries"][-1]
        assert [a["originalName"] for a in cr["attachments"]] == ["shot.png", "log.txt"]
        assert all("data" not in a and "blobData" not in a for a in cr["attachments"])

    def test_deterministic(self, populated):
        assert to_json(populated, now=NOW) == to_json(populated, now=NOW)

    def test_empty(self):
        data = json.loads(to_json([], now=NOW))
        assert data["totalEntries"] == 0
        assert data["entries"] == []


class TestMarkdown:
    def test_grouped_by_page(self, populated):
        md = to_markdown(populated, now=NOW)
        assert md.startswith("# DevLog Export\n")
        assert "Exported: 2026-03-14" in md
        assert "Total entries: 3" in md
        assert md.count("## /orders\n") == 1
        assert md.count("## /settings\n") == 1
        # first-seen order: NOTE-001 (/orders) is newest
        assert md.index("## /orders") < md.index("## /settings")

    def test_entry_block(self, populated):
        md = to_markdown(populated, now=NOW)
        assert "### [CR-001] Wider table" in md
        assert "**Type**: Change Request | **Priority**: High | **Status**: Open" in md
        assert "**Type**: Note | **Status**: Complete" in md
        assert "Needs 3 more columns" in md
        assert md.count("---") == 3

    def test_attachment_lines(self, populated):
        md = to_markdown(populated, now=NOW, uploads_hint=".devlog/uploads")
        cr = next(e for e in populated if e.entry_id == "CR-001")
        shot, log = cr.attachments
        assert f"- Image: `.devlog/uploads/CR-001/{shot.filename}`" in md
        assert f"- File: `.devlog/uploads/CR-001/{log.filename}`" in md

    def test_blob_attachment_line(self, blob_entries, make_entry):
        entry = blob_entries.create(make_entry())
        blob_entries.attachments.add(entry.entry_id, Upload.from_bytes("shot.png", b"png", "image/png"))
        md = to_markdown(blob_entries.export_all(), now=NOW)
        assert "- shot.png (image/png, stored as blob)" in md


class TestSingleEntry:
    def test_hand_off_block(self, populated):
        cr = next(e for e in populated if e.entry_id == "CR-001")
        md = entry_to_markdown(cr)
        assert md.startswith("## [CR-001] Wider table\n")
        assert "**Status**: Open" in md
        assert "**Page**: /orders" in md
        assert "### Description\nNeeds 3 more columns" in md
        assert "- Screenshot: `.devlog/uploads/CR-001/" in md
        assert "- log.txt: `.devlog/uploads/CR-001/" in md

    def test_resolved(self, populated):
        note = next(e for e in populated if e.entry_id == "NOTE-001")
        md = entry_to_markdown(note)
        assert "**Status**: Resolved" in md
        assert "### Description" not in md
        assert "### Attachments" not in md


class TestHelpers:
    def test_export_filename(self):
        assert export_filename("json", NOW) == "devlog-export-2026-03-14.json"
        assert export_filename("markdown", NOW) == "devlog-export-2026-03-14.md"

    def test_render_unknown_format(self):
        with pytest.raises(ValueError, match="csv"):
            render("csv", [])

    def test_render_dispatch(self, populated):
        assert render("json", populated, now=NOW) == to_json(populated, now=NOW)
        assert render("markdown", populated, now=NOW) == to_markdown(populated, now=NOW)
