"""Data models for entries and attachments."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import sqlite3

ENTRY_TYPES = ("change_request", "bug_report", "note")
PRIORITIES = ("low", "medium", "high", "critical")

ENTRY_TYPE_PREFIX = {
    "change_request": "CR",
    "bug_report": "BUG",
    "note": "NOTE",
}

ENTRY_TYPE_LABELS = {
    "change_request": "Change Request",
    "bug_report": "Bug Report",
    "note": "Note",
}

PRIORITY_LABELS = {
    "low": "Low",
    "medium": "Medium",
    "high": "High",
    "critical": "Critical",
}


class _Unset:
    """Marker for "field not supplied" in a partial update."""

    _instance: _Unset | None = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilesystemPayload:
    """Bytes live at path on disk (uploads/<entry_id>/<filename>)."""

    path: str


@dataclass(frozen=True)
class BlobPayload:
    """Bytes live in attachments.blob_data.

    data is None on metadata-only reads (listings, hydrated entries).
    """

    data: bytes | None = field(default=None, repr=False)


Payload = FilesystemPayload | BlobPayload


@dataclass
class Attachment:
    """A file bound to exactly one entry."""

    id: int
    entry_id: str
    filename: str                  # <random prefix>-<sanitized original name>
    original_name: str
    mime_type: str
    size_bytes: int
    payload: Payload
    created_at: str = ""

    @property
    def storage_type(self) -> str:
        return "filesystem" if isinstance(self.payload, FilesystemPayload) else "blob"

    @property
    def file_path(self) -> str | None:
        if isinstance(self.payload, FilesystemPayload):
            return self.payload.path
        return None

    @property
    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> Attachment:
        keys = row.keys()
        payload: Payload
        if row["storage_type"] == "filesystem":
            payload = FilesystemPayload(path=row["file_path"] or "")
        else:
            payload = BlobPayload(data=row["blob_data"] if "blob_data" in keys else None)
        return cls(
            id=row["id"],
            entry_id=row["entry_id"],
            filename=row["filename"],
            original_name=row["original_name"],
            mime_type=row["mime_type"],
            size_bytes=row["size_bytes"],
            payload=payload,
            created_at=row["created_at"],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entryId": self.entry_id,
            "filename": self.filename,
            "originalName": self.original_name,
            "mimeType": self.mime_type,
            "sizeBytes": self.size_bytes,
            "storageType": self.storage_type,
            "filePath": self.file_path,
            "createdAt": self.created_at,
        }


@dataclass
class Upload:
    """An incoming file, as handed over by the caller."""

    name: str
    mime_type: str
    size_bytes: int
    data: bytes = field(repr=False)

    @classmethod
    def from_bytes(cls, name: str, data: bytes, mime_type: str = "application/octet-stream") -> Upload:
        return cls(name=name, mime_type=mime_type, size_bytes=len(data), data=data)


@dataclass
class AttachmentData:
    """Attachment metadata plus its bytes (result of AttachmentStore.get)."""

    attachment: Attachment
    data: bytes = field(repr=False)


# ---------------------------------------------------------------------------
# Entries
# ---------------------------------------------------------------------------


@dataclass
class Entry:
    """A change request, bug report, or note tagged to a page."""

    id: int
    entry_id: str                  # CR-001 | BUG-002 | NOTE-003
    type: str                      # change_request | bug_report | note
    title: str
    page_url: str
    page_path: str
    description: str = ""
    priority: str | None = None    # low | medium | high | critical
    is_complete: bool = False
    user_agent: str | None = None
    created_at: str = ""
    updated_at: str = ""
    attachments: list[Attachment] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "Complete" if self.is_complete else "Open"

    @classmethod
    def from_row(cls, row: sqlite3.Row, attachments: list[Attachment] | None = None) -> Entry:
        return cls(
            id=row["id"],
            entry_id=row["entry_id"],
            type=row["type"],
            title=row["title"],
            description=row["description"] or "",
            priority=row["priority"],
            is_complete=row["is_complete"] == 1,
            page_url=row["page_url"],
            page_path=row["page_path"],
            user_agent=row["user_agent"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
            attachments=list(attachments or []),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "entryId": self.entry_id,
            "type": self.type,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "isComplete": self.is_complete,
            "pageUrl": self.page_url,
            "pagePath": self.page_path,
            "userAgent": self.user_agent,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "attachments": [a.to_dict() for a in self.attachments],
        }


@dataclass
class NewEntry:
    """Payload for EntryStore.create. Required: type, title, page_url, page_path."""

    type: str
    title: str
    page_url: str
    page_path: str
    description: str | None = None
    priority: str | None = None
    user_agent: str | None = None

    REQUIRED = ("type", "title", "page_url", "page_path")

    def missing_fields(self) -> list[str]:
        return [name for name in self.REQUIRED if not getattr(self, name)]

    def with_defaults(self) -> NewEntry:
        """Fill the storage defaults: description "", no priority, no user agent."""
        return replace(
            self,
            description=self.description or "",
            priority=self.priority or None,
            user_agent=self.user_agent or None,
        )

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> NewEntry:
        """Accept the camelCase body posted by the browser widget."""
        return cls(
            type=d.get("type", ""),
            title=d.get("title", ""),
            page_url=d.get("pageUrl", ""),
            page_path=d.get("pagePath", ""),
            description=d.get("description"),
            priority=d.get("priority"),
            user_agent=d.get("userAgent"),
        )


@dataclass
class EntryPatch:
    """Partial update. Fields left UNSET are not touched; priority=None clears it."""

    title: Any = UNSET
    description: Any = UNSET
    priority: Any = UNSET
    is_complete: Any = UNSET

    def changes(self) -> dict[str, Any]:
        """Supplied fields as {column: value}."""
        out: dict[str, Any] = {}
        if self.title is not UNSET:
            out["title"] = self.title
        if self.description is not UNSET:
            out["description"] = self.description
        if self.priority is not UNSET:
            out["priority"] = self.priority
        if self.is_complete is not UNSET:
            out["is_complete"] = 1 if self.is_complete else 0
        return out

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> EntryPatch:
        return cls(
            title=d.get("title", UNSET),
            description=d.get("description", UNSET),
            priority=d.get("priority", UNSET),
            is_complete=d.get("isComplete", UNSET),
        )


# ---------------------------------------------------------------------------
# Query results
# ---------------------------------------------------------------------------


@dataclass
class EntryList:
    entries: list[Entry]
    open_count: int

    @property
    def total(self) -> int:
        return len(self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entries": [e.to_dict() for e in self.entries],
            "total": self.total,
            "openCount": self.open_count,
        }


@dataclass
class Counts:
    open_count: int
    total_count: int

    def to_dict(self) -> dict[str, Any]:
        return {"openCount": self.open_count, "totalCount": self.total_count}
