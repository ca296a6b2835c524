"""devlog CLI: change requests, bug reports and notes pinned to app pages.

Commands:
    devlog init [NAME]              create devlog.toml + .devlog/ dirs
    devlog add TITLE --url URL      log an entry (prints its ID)
    devlog list [--path P]          entries, newest first
    devlog show ENTRY_ID            one entry (--markdown for a paste-ready block)
    devlog update ENTRY_ID ...      change title / description / priority
    devlog done|reopen ENTRY_ID     toggle completion
    devlog delete ENTRY_ID          delete entry, its attachments and files
    devlog attach ENTRY_ID FILE     attach a file
    devlog attachment get|rm ID     fetch or delete one attachment
    devlog count [--path P]         open / total counts
    devlog export [--format F]      JSON snapshot or Markdown report
    devlog status                   config, storage mode, counts
"""

from __future__ import annotations

import json
import logging
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import click

from devlog import counters
from devlog.attachments import AttachmentStore, guess_mime_type, sanitize_filename
from devlog.config import DevlogConfig, init_config, load_config
from devlog.db import StoreError, open_storage
from devlog.entries import EntryStore
from devlog.export import FORMATS, entry_to_markdown, export_filename, render
from devlog.models import ENTRY_TYPES, PRIORITIES, UNSET, EntryPatch, NewEntry, Upload
from devlog.paths import normalize_page_path, page_path_from_url, shorten_page_path

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_cfg() -> DevlogConfig:
    try:
        return load_config()
    except (OSError, tomllib.TOMLDecodeError, ValueError) as exc:
        raise click.ClickException(str(exc)) from exc


@dataclass
class _Stores:
    cfg: DevlogConfig
    entries: EntryStore
    attachments: AttachmentStore


def _open_stores() -> _Stores:
    """Open the process's one Storage handle; closed when the command ends."""
    cfg = _load_cfg()
    storage = open_storage(cfg)
    click.get_current_context().call_on_close(storage.close)
    attachments = AttachmentStore(storage)
    return _Stores(cfg=cfg, entries=EntryStore(storage, attachments), attachments=attachments)


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


class _DevlogGroup(click.Group):
    """Root group: store failures become a one-line error instead of a traceback."""

    def invoke(self, ctx: click.Context) -> Any:
        try:
            return super().invoke(ctx)
        except StoreError as exc:
            raise click.ClickException(str(exc)) from exc


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group(cls=_DevlogGroup)
@click.version_option(package_name="devlog")
@click.option("--verbose", "-v", is_flag=True, help="Log store activity to stderr")
def cli(verbose: bool) -> None:
    """devlog: local dev-time notes pinned to your app's pages."""
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
            stream=sys.stderr,
        )


# ---------------------------------------------------------------------------
# devlog init
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("name", required=False)
@click.option("--dir", "root", default=".", show_default=True, help="Project root")
def init(name: str | None, root: str) -> None:
    """Create devlog.toml and the .devlog/ data dir in the current project."""
    root_path = Path(root).resolve()
    try:
        config_path = init_config(root_path, name=name)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("devlog.toml already exists — skipping init")

    cfg = load_config(root_path)
    storage = open_storage(cfg)
    storage.close()
    click.echo(f"Database : {cfg.db_path}")
    click.echo(f"Uploads  : {cfg.uploads_dir}")
    click.echo(f"Storage  : {cfg.storage_type}")


# ---------------------------------------------------------------------------
# devlog add / show / list
# ---------------------------------------------------------------------------


TYPE_ALIASES = {"cr": "change_request", "bug": "bug_report", "note": "note"}


def _resolve_type(value: str) -> str:
    return TYPE_ALIASES.get(value, value)


@cli.command()
@click.argument("title")
@click.option(
    "--type", "entry_type", default="note", show_default=True,
    type=click.Choice([*ENTRY_TYPES, *TYPE_ALIASES]),
)
@click.option("--url", "page_url", required=True, help="Full page URL the entry is about")
@click.option("--path", "page_path", default=None, help="Page path (default: derived from --url)")
@click.option("--priority", default=None, type=click.Choice(PRIORITIES))
@click.option("--description", "-d", default="", help="Longer description")
@click.option("--user-agent", default=None)
@click.option("--json", "as_json", is_flag=True, help="Print the created entry as JSON")
def add(
    title: str,
    entry_type: str,
    page_url: str,
    page_path: str | None,
    priority: str | None,
    description: str,
    user_agent: str | None,
    as_json: bool,
) -> None:
    """Log a change request, bug report or note.

    \b
    devlog add "Save button overlaps footer" --type cr --priority high \\
        --url http://localhost:3000/orders/42
    """
    entry_type = _resolve_type(entry_type)
    if not title.strip():
        raise click.ClickException("Title must not be empty")
    if entry_type == "note" and priority:
        raise click.ClickException("Notes do not take a priority")

    stores = _open_stores()
    entry = stores.entries.create(NewEntry(
        type=entry_type,
        title=title.strip(),
        page_url=page_url,
        page_path=normalize_page_path(page_path) if page_path else page_path_from_url(page_url),
        description=description,
        priority=priority,
        user_agent=user_agent,
    ))
    if as_json:
        _echo_json(entry.to_dict())
    else:
        click.echo(entry.entry_id)


@cli.command()
@click.argument("entry_id")
@click.option("--markdown", "-m", is_flag=True, help="Paste-ready Markdown block")
@click.option("--json", "as_json", is_flag=True)
def show(entry_id: str, markdown: bool, as_json: bool) -> None:
    """Show one entry with its attachments."""
    stores = _open_stores()
    entry = stores.entries.get(entry_id)
    if entry is None:
        raise click.ClickException(f"Entry not found: {entry_id}")

    if as_json:
        _echo_json(entry.to_dict())
        return
    if markdown:
        click.echo(entry_to_markdown(entry, uploads_hint=stores.cfg.uploads_hint()))
        return

    priority = f"  priority={entry.priority}" if entry.priority else ""
    click.echo(f"[{entry.entry_id}] {entry.title}")
    click.echo(f"  {entry.type}  {entry.status}{priority}")
    click.echo(f"  page    {entry.page_path}  ({entry.page_url})")
    click.echo(f"  created {entry.created_at}  updated {entry.updated_at}")
    if entry.description:
        click.echo("")
        click.echo(entry.description)
    if entry.attachments:
        click.echo("")
        for att in entry.attachments:
            click.echo(
                f"  #{att.id}  {att.original_name}  {att.mime_type}  {att.size_bytes}B  ({att.storage_type})"
            )


@cli.command("list")
@click.option("--path", "page_path", default=None, help="Only entries for this page path")
@click.option("--type", "entry_type", default=None, type=click.Choice([*ENTRY_TYPES, *TYPE_ALIASES]))
@click.option("--open", "open_only", is_flag=True, help="Hide completed entries")
@click.option("--json", "as_json", is_flag=True)
def list_cmd(page_path: str | None, entry_type: str | None, open_only: bool, as_json: bool) -> None:
    """List entries, newest first."""
    from rich.console import Console
    from rich.table import Table

    stores = _open_stores()
    result = stores.entries.list_entries(
        page_path=normalize_page_path(page_path) if page_path else None,
        entry_type=_resolve_type(entry_type) if entry_type else None,
        include_complete=not open_only,
    )
    if as_json:
        _echo_json(result.to_dict())
        return
    if not result.entries:
        click.echo("(no entries)")
        return

    table = Table(show_header=True, header_style="bold")
    table.add_column("ID", no_wrap=True)
    table.add_column("Title")
    table.add_column("Priority", style="dim")
    table.add_column("Status")
    table.add_column("Page", style="dim")
    table.add_column("Files", justify="right")
    for e in result.entries:
        status = "[green]Complete[/green]" if e.is_complete else "Open"
        table.add_row(
            e.entry_id, e.title, e.priority or "", status,
            shorten_page_path(e.page_path), str(len(e.attachments) or ""),
        )
    console = Console()
    console.print(table)
    console.print(f"{result.total} shown, {result.open_count} open")


# ---------------------------------------------------------------------------
# devlog update / done / reopen / delete
# ---------------------------------------------------------------------------


def _apply(stores: _Stores, entry_id: str, patch: EntryPatch) -> None:
    entry = stores.entries.update(entry_id, patch)
    if entry is None:
        raise click.ClickException(f"Entry not found: {entry_id}")
    click.echo(f"Updated {entry.entry_id} ({entry.status})")


@cli.command()
@click.argument("entry_id")
@click.option("--title", default=None)
@click.option("--description", "-d", default=None)
@click.option("--priority", default=None, type=click.Choice(PRIORITIES))
@click.option("--clear-priority", is_flag=True, help="Remove the priority")
def update(
    entry_id: str,
    title: str | None,
    description: str | None,
    priority: str | None,
    clear_priority: bool,
) -> None:
    """Change fields of an entry; options left out stay as they are."""
    if priority and clear_priority:
        raise click.ClickException("Use either --priority or --clear-priority")
    if title is not None and not title.strip():
        raise click.ClickException("Title must not be empty")

    stores = _open_stores()
    if priority:
        current = stores.entries.get(entry_id)
        if current is None:
            raise click.ClickException(f"Entry not found: {entry_id}")
        if current.type == "note":
            raise click.ClickException("Notes do not take a priority")

    patch = EntryPatch(
        title=title.strip() if title is not None else UNSET,
        description=description if description is not None else UNSET,
        priority=None if clear_priority else (priority or UNSET),
    )
    _apply(stores, entry_id, patch)


@cli.command()
@click.argument("entry_ids", nargs=-1, required=True)
def done(entry_ids: tuple[str, ...]) -> None:
    """Mark entries complete.

    \b
    devlog done BUG-004 CR-011
    """
    stores = _open_stores()
    for entry_id in entry_ids:
        _apply(stores, entry_id, EntryPatch(is_complete=True))


@cli.command()
@click.argument("entry_ids", nargs=-1, required=True)
def reopen(entry_ids: tuple[str, ...]) -> None:
    """Mark entries open again."""
    stores = _open_stores()
    for entry_id in entry_ids:
        _apply(stores, entry_id, EntryPatch(is_complete=False))


@cli.command()
@click.argument("entry_id")
def delete(entry_id: str) -> None:
    """Delete an entry together with its attachments and upload dir."""
    stores = _open_stores()
    if not stores.entries.delete(entry_id):
        raise click.ClickException(f"Entry not found: {entry_id}")
    click.echo(f"Deleted {entry_id}")


# ---------------------------------------------------------------------------
# devlog attach / attachment
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("entry_id")
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--name", default=None, help="Name to store (default: the file's name)")
@click.option("--mime-type", default=None, help="MIME type (default: guessed from name)")
def attach(entry_id: str, file: Path, name: str | None, mime_type: str | None) -> None:
    """Attach a file to an entry."""
    stores = _open_stores()
    if not stores.entries.exists(entry_id):
        raise click.ClickException(f"Entry not found: {entry_id}")

    size = file.stat().st_size
    if size > stores.cfg.max_upload_bytes:
        raise click.ClickException(
            f"File too large ({size} bytes, max {stores.cfg.storage.max_upload_mb}MB)"
        )

    original_name = name or file.name
    upload = Upload(
        name=original_name,
        mime_type=mime_type or guess_mime_type(original_name),
        size_bytes=size,
        data=file.read_bytes(),
    )
    att = stores.attachments.add(entry_id, upload)
    click.echo(f"#{att.id} {att.filename} ({att.storage_type}, {att.size_bytes} bytes)")


@cli.group()
def attachment() -> None:
    """Fetch or delete a single attachment by numeric ID."""


@attachment.command("get")
@click.argument("attachment_id", type=int)
@click.option("--output", "-o", default=None, help="Write to this path ('-' for stdout)")
def attachment_get(attachment_id: int, output: str | None) -> None:
    """Write an attachment's bytes to a file (default: its original name)."""
    stores = _open_stores()
    result = stores.attachments.get(attachment_id)
    if result is None:
        raise click.ClickException(f"Attachment not found: {attachment_id}")

    if output == "-":
        with click.open_file("-", "wb") as out:
            out.write(result.data)
        return
    target = Path(output) if output else Path(sanitize_filename(result.attachment.original_name))
    target.write_bytes(result.data)
    click.echo(f"Wrote {target} ({len(result.data)} bytes)", err=True)


@attachment.command("rm")
@click.argument("attachment_id", type=int)
def attachment_rm(attachment_id: int) -> None:
    """Delete an attachment (the entry stays)."""
    stores = _open_stores()
    if not stores.attachments.delete(attachment_id):
        raise click.ClickException(f"Attachment not found: {attachment_id}")
    click.echo(f"Deleted attachment #{attachment_id}")


# ---------------------------------------------------------------------------
# devlog count / export / status
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--path", "page_path", default=None, help="Count for this page path only")
@click.option("--json", "as_json", is_flag=True)
def count(page_path: str | None, as_json: bool) -> None:
    """Open and total entry counts."""
    stores = _open_stores()
    counts = stores.entries.count(normalize_page_path(page_path) if page_path else None)
    if as_json:
        _echo_json(counts.to_dict())
    else:
        click.echo(f"{counts.open_count} open / {counts.total_count} total")


@cli.command()
@click.option("--format", "fmt", default="json", show_default=True, type=click.Choice(FORMATS))
@click.option("--output", "-o", default=None, help="Output path ('-' for stdout; default devlog-export-<date>.<ext>)")
def export(fmt: str, output: str | None) -> None:
    """Export every entry as JSON or Markdown."""
    stores = _open_stores()
    entries = stores.entries.export_all()
    text = render(fmt, entries, uploads_hint=stores.cfg.uploads_hint())
    if output == "-":
        click.echo(text)
        return
    target = Path(output) if output else Path(export_filename(fmt))
    target.write_text(text)
    click.echo(f"Exported {len(entries)} entries to {target}")


@cli.command()
def status() -> None:
    """Show config, storage mode and counts."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as _pkg_version

    from rich.console import Console
    from rich.table import Table

    stores = _open_stores()
    cfg = stores.cfg
    console = Console()

    table = Table(title=f"devlog — {cfg.name}", show_header=True, header_style="bold")
    table.add_column("Metric", style="dim", no_wrap=True)
    table.add_column("Value", justify="right")

    try:
        _ver = _pkg_version("devlog")
    except PackageNotFoundError:
        _ver = "unknown"
    table.add_row("Version", _ver)
    table.add_row("Config", str(cfg.root / "devlog.toml"))
    table.add_row("Database", str(cfg.db_path))
    table.add_row("Storage", cfg.storage_type)
    table.add_row("", "")

    counts = stores.entries.count()
    table.add_row("Entries", str(counts.total_count))
    table.add_row("  Open", f"[yellow]{counts.open_count}[/yellow]" if counts.open_count else "0")
    for entry_type in ENTRY_TYPES:
        nxt = counters.peek(stores.entries.storage, entry_type)
        table.add_row(f"  Next {entry_type}", counters.format_entry_id(entry_type, nxt))

    console.print(table)


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
