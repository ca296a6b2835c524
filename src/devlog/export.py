"""Render entries as a JSON snapshot or a Markdown report.

Both renderers are pure: the same entries and the same `now` give the same
text. Input order is kept (export_all() hands entries over newest first).
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from devlog.models import ENTRY_TYPE_LABELS, PRIORITY_LABELS

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from devlog.models import Attachment, Entry

DEFAULT_UPLOADS_HINT = ".devlog/uploads"
FORMATS = ("json", "markdown")


def _now(now: datetime | None) -> datetime:
    return now if now is not None else datetime.now(UTC)


def _iso(now: datetime) -> str:
    """2026-10-18T09:30:00.000Z"""
    utc = now.astimezone(UTC) if now.tzinfo else now
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def export_filename(fmt: str, now: datetime | None = None) -> str:
    ext = "md" if fmt == "markdown" else "json"
    return f"devlog-export-{_now(now).strftime('%Y-%m-%d')}.{ext}"


# ---------------------------------------------------------------------------
# JSON
# ---------------------------------------------------------------------------


def to_json(entries: Sequence[Entry], now: datetime | None = None) -> str:
    """{exportedAt, totalEntries, entries}; attachment bytes are never included."""
    envelope = {
        "exportedAt": _iso(_now(now)),
        "totalEntries": len(entries),
        "entries": [e.to_dict() for e in entries],
    }
    return json.dumps(envelope, indent=2)


# ---------------------------------------------------------------------------
# Markdown
# ---------------------------------------------------------------------------


def _group_by_page(entries: Iterable[Entry]) -> dict[str, list[Entry]]:
    """First-seen order of page_path; entries keep their input order."""
    groups: dict[str, list[Entry]] = {}
    for entry in entries:
        groups.setdefault(entry.page_path, []).append(entry)
    return groups


def _meta_line(entry: Entry) -> str:
    priority = f" | **Priority**: {PRIORITY_LABELS.get(entry.priority, entry.priority)}" if entry.priority else ""
    label = ENTRY_TYPE_LABELS.get(entry.type, entry.type)
    return f"**Type**: {label}{priority} | **Status**: {entry.status}"


def _attachment_line(entry: Entry, att: Attachment, uploads_hint: str) -> str:
    if att.file_path:
        rel = f"{uploads_hint}/{entry.entry_id}/{att.filename}"
        if att.is_image:
            return f"- Image: `{rel}`"
        return f"- File: `{rel}` (read with `cat {rel}`)"
    return f"- {att.original_name} ({att.mime_type}, stored as blob)"


def to_markdown(
    entries: Sequence[Entry],
    now: datetime | None = None,
    uploads_hint: str = DEFAULT_UPLOADS_HINT,
) -> str:
    """Report grouped under one `## <page_path>` heading per page."""
    lines: list[str] = ["# DevLog Export", ""]
    lines += [
        f"Exported: {_now(now).strftime('%Y-%m-%d')}",
        f"Total entries: {len(entries)}",
        "",
    ]

    for page_path, page_entries in _group_by_page(entries).items():
        lines += [f"## {page_path}", ""]
        for entry in page_entries:
            lines.append(f"### [{entry.entry_id}] {entry.title}")
            lines.append(_meta_line(entry))
            lines.append(f"**Created**: {entry.created_at}")
            lines.append("")

            if entry.description:
                lines += [entry.description, ""]

            if entry.attachments:
                lines.append("**Attachments:**")
                lines += [_attachment_line(entry, a, uploads_hint) for a in entry.attachments]
                lines.append("")

            lines += ["---", ""]

    return "\n".join(lines)


def entry_to_markdown(entry: Entry, uploads_hint: str = DEFAULT_UPLOADS_HINT) -> str:
    """One entry as a paste-ready block for a coding assistant or an issue."""
    status = "Resolved" if entry.is_complete else "Open"
    priority = f" | **Priority**: {PRIORITY_LABELS.get(entry.priority, entry.priority)}" if entry.priority else ""
    lines = [
        f"## [{entry.entry_id}] {entry.title}",
        f"**Type**: {ENTRY_TYPE_LABELS.get(entry.type, entry.type)}{priority} | **Status**: {status}",
        f"**Page**: {entry.page_path}",
        f"**Created**: {entry.created_at}",
        "",
    ]

    if entry.description:
        lines += ["### Description", entry.description, ""]

    if entry.attachments:
        lines.append("### Attachments")
        for att in entry.attachments:
            if not att.file_path:
                lines.append(f"- {att.original_name} ({att.mime_type}, stored as blob)")
                continue
            rel = f"{uploads_hint}/{entry.entry_id}/{att.filename}"
            if att.is_image:
                lines.append(f"- Screenshot: `{rel}`")
            else:
                lines.append(f"- {att.original_name}: `{rel}` (read with `cat {rel}`)")
        lines.append("")

    return "\n".join(lines)


def render(fmt: str, entries: Sequence[Entry], now: datetime | None = None, uploads_hint: str = DEFAULT_UPLOADS_HINT) -> str:
    if fmt == "markdown":
        return to_markdown(entries, now=now, uploads_hint=uploads_hint)
    if fmt == "json":
        return to_json(entries, now=now)
    msg = f"Unknown export format: {fmt!r} (expected one of {', '.join(FORMATS)})"
    raise ValueError(msg)
