"""Attachment storage: files bound to entries, kept on disk or inside the DB.

The storage mode (cfg.storage.type, DEVLOG_STORAGE_TYPE) is read at write
time; rows written under the other mode stay where they are and are still
readable.

filesystem:  .devlog/uploads/<entry_id>/<prefix>-<safe name>, path in file_path
blob:        bytes in attachments.blob_data, file_path NULL
"""

from __future__ import annotations

import contextlib
import logging
import mimetypes
import re
import secrets
import shutil
import string
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Any

from devlog.db import NOW_SQL, ConstraintViolation, StoreError
from devlog.models import Attachment, AttachmentData, BlobPayload, FilesystemPayload, Payload

if TYPE_CHECKING:
    from collections.abc import Sequence

    from devlog.db import Storage
    from devlog.models import Upload

logger = logging.getLogger("devlog.attachments")

# Everything except blob_data: listings never drag bytes out of the DB.
ATTACHMENT_COLUMNS = (
    "id, entry_id, filename, original_name, mime_type, size_bytes, "
    "storage_type, file_path, created_at"
)

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]")
_PREFIX_ALPHABET = string.ascii_lowercase + string.digits
_PREFIX_LEN = 6
DEFAULT_MIME_TYPE = "application/octet-stream"


def sanitize_filename(name: str) -> str:
    return _UNSAFE_CHARS_RE.sub("_", name)


def make_filename(original_name: str) -> str:
    """<6 random [a-z0-9]>-<original name with unsafe chars replaced by _>."""
    prefix = "".join(secrets.choice(_PREFIX_ALPHABET) for _ in range(_PREFIX_LEN))
    return f"{prefix}-{sanitize_filename(original_name)}"


def guess_mime_type(name: str) -> str:
    return mimetypes.guess_type(name)[0] or DEFAULT_MIME_TYPE


def remove_file(path: str | Path) -> None:
    """Best-effort unlink; an already-missing file counts as removed."""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        logger.warning("could not remove attachment file %s: %s", path, exc)


class AttachmentStore:
    """Add / read / delete attachments for entries."""

    def __init__(self, storage: Storage) -> None:
        self.storage = storage

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def entry_dir(self, entry_id: str) -> Path | None:
        """uploads/<entry_id>, or None if entry_id would escape uploads/."""
        uploads = self.storage.uploads_dir
        if not entry_id or entry_id in (".", "..") or "/" in entry_id or "\\" in entry_id:
            return None
        return uploads / entry_id

    def remove_entry_dir(self, entry_id: str) -> None:
        """Best-effort recursive removal of uploads/<entry_id>."""
        entry_dir = self.entry_dir(entry_id)
        if entry_dir is not None:
            shutil.rmtree(entry_dir, ignore_errors=True)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get(self, attachment_id: int) -> AttachmentData | None:
        """Metadata + bytes, or None if the row or its file is gone."""
        row = self.storage.fetchone("SELECT * FROM attachments WHERE id = ?", (attachment_id,))
        if row is None:
            return None
        attachment = Attachment.from_row(row)
        data = self._read_payload(attachment)
        if data is None:
            return None
        return AttachmentData(attachment=attachment, data=data)

    def get_meta(self, attachment_id: int) -> Attachment | None:
        row = self.storage.fetchone(
            f"SELECT {ATTACHMENT_COLUMNS} FROM attachments WHERE id = ?", (attachment_id,)
        )
        return Attachment.from_row(row) if row is not None else None

    def list_for(self, entry_id: str) -> list[Attachment]:
        """Attachments of one entry, oldest first."""
        rows = self.storage.fetchall(
            f"SELECT {ATTACHMENT_COLUMNS} FROM attachments WHERE entry_id = ? "
            "ORDER BY created_at ASC, id ASC",
            (entry_id,),
        )
        return [Attachment.from_row(r) for r in rows]

    def grouped(
        self,
        entries_where: str = "",
        params: Sequence[Any] = (),
    ) -> dict[str, list[Attachment]]:
        """Attachments of every entry matching entries_where, keyed by entry_id."""
        if entries_where:
            sql = (
                f"SELECT {ATTACHMENT_COLUMNS} FROM attachments "
                f"WHERE entry_id IN (SELECT entry_id FROM entries {entries_where}) "
                "ORDER BY created_at ASC, id ASC"
            )
        else:
            sql = f"SELECT {ATTACHMENT_COLUMNS} FROM attachments ORDER BY created_at ASC, id ASC"
        by_entry: dict[str, list[Attachment]] = defaultdict(list)
        for row in self.storage.fetchall(sql, params):
            by_entry[row["entry_id"]].append(Attachment.from_row(row))
        return by_entry

    def _read_payload(self, attachment: Attachment) -> bytes | None:
        payload = attachment.payload
        if isinstance(payload, BlobPayload):
            return payload.data
        if isinstance(payload, FilesystemPayload):
            if not payload.path:
                return None
            try:
                return Path(payload.path).read_bytes()
            except FileNotFoundError:
                logger.warning(
                    "attachment %d: file missing on disk (%s)", attachment.id, payload.path
                )
                return None
            except OSError as exc:
                msg = f"Cannot read attachment {attachment.id} at {payload.path}: {exc}"
                raise StoreError(msg) from exc
        return None

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def add(self, entry_id: str, upload: Upload) -> Attachment:
        """Store upload against entry_id (which the caller has checked exists).

        Returns metadata only; fetch bytes with get().
        """
        filename = make_filename(upload.name)
        payload = self._write_payload(entry_id, filename, upload.data)
        file_path = payload.path if isinstance(payload, FilesystemPayload) else None
        blob_data = payload.data if isinstance(payload, BlobPayload) else None
        storage_type = "filesystem" if file_path is not None else "blob"

        try:
            with self.storage.transaction() as conn:
                cur = conn.execute(
                    f"""INSERT INTO attachments
                        (entry_id, filename, original_name, mime_type, size_bytes,
                         storage_type, blob_data, file_path, created_at)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?, {NOW_SQL})""",
                    (
                        entry_id,
                        filename,
                        upload.name,
                        upload.mime_type,
                        upload.size_bytes,
                        storage_type,
                        blob_data,
                        file_path,
                    ),
                )
                attachment_id = cur.lastrowid
        except StoreError:
            self._discard(payload)
            raise

        logger.info(
            "attachment %s added to %s (%s, %d bytes)",
            filename, entry_id, storage_type, upload.size_bytes,
        )
        attachment = self.get_meta(attachment_id) if attachment_id is not None else None
        if attachment is None:
            msg = f"Attachment row for {filename} vanished after insert"
            raise StoreError(msg)
        return attachment

    def _write_payload(self, entry_id: str, filename: str, data: bytes) -> Payload:
        if self.storage.storage_type == "blob":
            return BlobPayload(data=data)

        entry_dir = self.entry_dir(entry_id)
        if entry_dir is None:
            msg = f"Invalid entry id for upload path: {entry_id!r}"
            raise ConstraintViolation(msg)
        path = entry_dir / filename
        try:
            entry_dir.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            msg = f"Cannot write attachment {path}: {exc}"
            raise StoreError(msg) from exc
        return FilesystemPayload(path=str(path))

    def _discard(self, payload: Payload) -> None:
        """Undo _write_payload after a failed insert."""
        if isinstance(payload, FilesystemPayload):
            remove_file(payload.path)
            # Drop the entry dir too if this upload created it and it is empty.
            with contextlib.suppress(OSError):
                Path(payload.path).parent.rmdir()

    def delete(self, attachment_id: int) -> bool:
        """Remove the file (if any) then the row. True if a row was removed."""
        attachment = self.get_meta(attachment_id)
        if attachment is None:
            return False
        if attachment.file_path:
            remove_file(attachment.file_path)
        with self.storage.transaction() as conn:
            cur = conn.execute("DELETE FROM attachments WHERE id = ?", (attachment_id,))
            removed = cur.rowcount > 0
        if removed:
            logger.info("attachment %d deleted from %s", attachment_id, attachment.entry_id)
        return removed
