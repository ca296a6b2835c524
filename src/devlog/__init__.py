"""Local dev-time feedback store: change requests, bug reports and notes pinned to pages.

Layout:
    devlog.toml             # project config (git-tracked)
    .devlog/
        devlog.db           # SQLite: entries, attachments, per-type counters
        uploads/
            <entry_id>/     # filesystem-mode attachment bytes

Entry IDs are <PREFIX>-<NNN> per type (CR-001, BUG-001, NOTE-001) and are
never reused. Attachment bytes live on disk or inside devlog.db depending on
the storage mode in effect when each attachment was written.

Usage:
    cfg = load_config()
    storage = open_storage(cfg)
    entries = EntryStore(storage)
    entry = entries.create(NewEntry(type="note", title="...", page_url=url,
                                    page_path=page_path_from_url(url)))
"""

from devlog.attachments import AttachmentStore
from devlog.config import DevlogConfig, init_config, load_config
from devlog.db import ConstraintViolation, Storage, StoreError, StoreUnavailable, open_storage
from devlog.entries import EntryStore
from devlog.export import entry_to_markdown, to_json, to_markdown
from devlog.models import (
    Attachment,
    AttachmentData,
    BlobPayload,
    Counts,
    Entry,
    EntryList,
    EntryPatch,
    FilesystemPayload,
    NewEntry,
    Upload,
)
from devlog.paths import normalize_page_path, page_path_from_url

__all__ = [
    "Attachment",
    "AttachmentData",
    "AttachmentStore",
    "BlobPayload",
    "ConstraintViolation",
    "Counts",
    "DevlogConfig",
    "Entry",
    "EntryList",
    "EntryPatch",
    "EntryStore",
    "FilesystemPayload",
    "NewEntry",
    "Storage",
    "StoreError",
    "StoreUnavailable",
    "Upload",
    "entry_to_markdown",
    "init_config",
    "load_config",
    "normalize_page_path",
    "open_storage",
    "page_path_from_url",
    "to_json",
    "to_markdown",
]
