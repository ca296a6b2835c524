"""Entry CRUD over the devlog SQLite store.

EntryStore is the public API:
    store = EntryStore(storage)
    entry = store.create(NewEntry(type="bug_report", title="Null pointer on save",
                                  page_url="http://localhost:3000/orders/7",
                                  page_path="/orders/7"))
    store.update(entry.entry_id, EntryPatch(is_complete=True))
    store.list_entries(page_path="/orders/7", include_complete=False)

Every returned Entry is hydrated with its attachments (metadata only).
Timestamps are UTC text written by SQLite, "YYYY-MM-DD HH:MM:SS.SSS".
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from devlog import counters
from devlog.attachments import AttachmentStore, remove_file
from devlog.db import NOW_SQL, ConstraintViolation
from devlog.models import Counts, Entry, EntryList

if TYPE_CHECKING:
    from devlog.db import Storage
    from devlog.models import EntryPatch, NewEntry

logger = logging.getLogger("devlog.entries")

# updated_at must move forward on every write, even twice in one millisecond.
_BUMP_UPDATED_AT_SQL = (
    f"updated_at = CASE WHEN {NOW_SQL} > updated_at THEN {NOW_SQL} "
    "ELSE strftime('%Y-%m-%d %H:%M:%f', updated_at, '+0.001 seconds') END"
)


class EntryStore:
    """SQLite-backed entry store."""

    def __init__(self, storage: Storage, attachments: AttachmentStore | None = None) -> None:
        self.storage = storage
        self.attachments = attachments or AttachmentStore(storage)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> Entry | None:
        """Load an entry with its attachments (oldest first)."""
        row = self.storage.fetchone("SELECT * FROM entries WHERE entry_id = ?", (entry_id,))
        if row is None:
            return None
        return Entry.from_row(row, self.attachments.list_for(entry_id))

    def exists(self, entry_id: str) -> bool:
        return self.storage.fetchone(
            "SELECT 1 FROM entries WHERE entry_id = ?", (entry_id,)
        ) is not None

    def list_entries(
        self,
        *,
        page_path: str | None = None,
        entry_type: str | None = None,
        include_complete: bool = True,
    ) -> EntryList:
        """Entries matching every supplied filter, newest first.

        open_count is the page's incomplete-entry count: it ignores both
        include_complete and entry_type, so the page badge stays right while
        the caller is browsing closed items or a single type.
        """
        conditions: list[str] = []
        params: list[Any] = []
        if page_path:
            conditions.append("page_path = ?")
            params.append(page_path)
        if entry_type:
            conditions.append("type = ?")
            params.append(entry_type)
        if not include_complete:
            conditions.append("is_complete = 0")
        where = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self.storage.fetchall(
            f"SELECT * FROM entries {where} ORDER BY created_at DESC, id DESC", params
        )
        by_entry = self.attachments.grouped(where, params) if rows else {}
        entries = [Entry.from_row(r, by_entry.get(r["entry_id"], [])) for r in rows]

        return EntryList(entries=entries, open_count=self.count(page_path).open_count)

    def count(self, page_path: str | None = None) -> Counts:
        """Open and total entries for page_path, or for the whole store."""
        if page_path:
            where, params = "WHERE page_path = ?", (page_path,)
        else:
            where, params = "", ()
        row = self.storage.fetchone(
            "SELECT COUNT(*) AS total_count, "
            "COALESCE(SUM(CASE WHEN is_complete = 0 THEN 1 ELSE 0 END), 0) AS open_count "
            f"FROM entries {where}",
            params,
        )
        if row is None:
            return Counts(open_count=0, total_count=0)
        return Counts(open_count=int(row["open_count"]), total_count=int(row["total_count"]))

    def export_all(self) -> list[Entry]:
        """Every entry, newest first, with attachments."""
        rows = self.storage.fetchall("SELECT * FROM entries ORDER BY created_at DESC, id DESC")
        by_entry = self.attachments.grouped()
        return [Entry.from_row(r, by_entry.get(r["entry_id"], [])) for r in rows]

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def create(self, new_entry: NewEntry) -> Entry:
        """Allocate an ID and insert. Raises ConstraintViolation on bad input."""
        missing = new_entry.missing_fields()
        if missing:
            msg = f"Missing required fields: {', '.join(missing)}"
            raise ConstraintViolation(msg)
        dto = new_entry.with_defaults()

        # A failed insert rolls the counter back too: the number was never used.
        with self.storage.transaction() as conn:
            entry_id = counters.allocate(self.storage, dto.type)
            conn.execute(
                f"""INSERT INTO entries
                    (entry_id, type, title, description, priority,
                     page_url, page_path, user_agent, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, {NOW_SQL}, {NOW_SQL})""",
                (
                    entry_id,
                    dto.type,
                    dto.title,
                    dto.description,
                    dto.priority,
                    dto.page_url,
                    dto.page_path,
                    dto.user_agent,
                ),
            )

        logger.info("entry %s created on %s", entry_id, dto.page_path)
        entry = self.get(entry_id)
        if entry is None:
            msg = f"Entry {entry_id} vanished after insert"
            raise ConstraintViolation(msg)
        return entry

    def update(self, entry_id: str, patch: EntryPatch) -> Entry | None:
        """Apply the supplied fields only; updated_at always moves forward."""
        changes = patch.changes()
        sets = [f"{column} = ?" for column in changes]
        sets.append(_BUMP_UPDATED_AT_SQL)

        with self.storage.transaction() as conn:
            cur = conn.execute(
                f"UPDATE entries SET {', '.join(sets)} WHERE entry_id = ?",
                (*changes.values(), entry_id),
            )
            updated = cur.rowcount > 0

        if not updated:
            return None
        logger.debug("entry %s updated: %s", entry_id, ", ".join(changes) or "touch")
        return self.get(entry_id)

    def delete(self, entry_id: str) -> bool:
        """Delete an entry, its attachment files, and its upload dir.

        File cleanup is best-effort; the row delete (which cascades to
        attachment rows) is what decides the return value.
        """
        rows = self.storage.fetchall(
            "SELECT file_path FROM attachments WHERE entry_id = ? AND storage_type = 'filesystem'",
            (entry_id,),
        )
        for row in rows:
            if row["file_path"]:
                remove_file(row["file_path"])
        self.attachments.remove_entry_dir(entry_id)

        with self.storage.transaction() as conn:
            cur = conn.execute("DELETE FROM entries WHERE entry_id = ?", (entry_id,))
            removed = cur.rowcount > 0

        if removed:
            logger.info("entry %s deleted (%d files removed)", entry_id, len(rows))
        return removed
