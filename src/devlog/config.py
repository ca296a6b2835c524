"""DevlogConfig: project-local config for the devlog store.

Default layout (all relative to the project root):

    devlog.toml           # project config (git-tracked)
    .env                  # optional: DEVLOG_STORAGE_TYPE (gitignore this)
    .devlog/
        devlog.db         # SQLite store: entries, attachments, counters
        uploads/          # filesystem-backed attachments
            <entry_id>/
                <prefix>-<name>
        .gitignore        # auto-written: ignores uploads/ and WAL side files

The data dir sits next to the web app, never inside its source tree, so dev
servers don't pick up writes as changes.

devlog.toml example:

    [devlog]
    name = "my-app"
    # data_dir = ".devlog"   # default

    [storage]
    type = "filesystem"      # or "blob" (bytes stored inside devlog.db)
    max_upload_mb = 10
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

_CONFIG_FILENAME = "devlog.toml"
_DEFAULT_DATA_DIR = ".devlog"
_DB_FILENAME = "devlog.db"
_UPLOADS_DIRNAME = "uploads"
_GITIGNORE_CONTENT = "uploads/\n*.db-wal\n*.db-shm\n"

STORAGE_ENV_VAR = "DEVLOG_STORAGE_TYPE"
DEFAULT_MAX_UPLOAD_MB = 10


def resolve_storage_type(value: str | None) -> str:
    """Anything other than "blob" means filesystem."""
    return "blob" if (value or "").strip().lower() == "blob" else "filesystem"


@dataclass
class StorageConfig:
    type: str = "filesystem"           # filesystem | blob; applies to new attachments only
    max_upload_mb: int = DEFAULT_MAX_UPLOAD_MB


@dataclass
class DevlogConfig:
    """Resolved configuration for a devlog project."""

    root: Path                      # directory that contains devlog.toml
    name: str = ""
    data_dir: Path = field(default_factory=Path)
    storage: StorageConfig = field(default_factory=StorageConfig)

    @property
    def db_path(self) -> Path:
        return self.data_dir / _DB_FILENAME

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / _UPLOADS_DIRNAME

    @property
    def storage_type(self) -> str:
        return resolve_storage_type(self.storage.type)

    @property
    def max_upload_bytes(self) -> int:
        return self.storage.max_upload_mb * 1024 * 1024

    def uploads_hint(self) -> str:
        """uploads_dir relative to root when possible (used in Markdown exports)."""
        try:
            return self.uploads_dir.relative_to(self.root).as_posix()
        except ValueError:
            return self.uploads_dir.as_posix()

    def ensure_dirs(self) -> None:
        """Create data_dir and uploads_dir if they don't exist."""
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self._write_gitignore()

    def _write_gitignore(self) -> None:
        gitignore = self.data_dir / ".gitignore"
        if not gitignore.exists():
            gitignore.write_text(_GITIGNORE_CONTENT)


def _load_env(root: Path) -> dict[str, str]:
    """Parse a simple KEY=VALUE .env file."""
    env_file = root / ".env"
    if not env_file.exists():
        return {}
    env: dict[str, str] = {}
    for line in env_file.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#") and "=" in line:
            k, _, v = line.partition("=")
            env[k.strip()] = v.strip().strip('"').strip("'")
    return env


def load_config(root: Path | str | None = None) -> DevlogConfig:
    """Load devlog.toml from root (or search upward from cwd if root is None).

    Storage type precedence: process env, then .env, then devlog.toml.
    """
    root_path = _find_root(Path(root) if root else Path.cwd())
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        with config_path.open("rb") as f:
            raw = tomllib.load(f)

    env = _load_env(root_path)

    devlog_section = raw.get("devlog", {})
    storage_section = raw.get("storage", {})

    name = devlog_section.get("name", root_path.name)
    data_rel = devlog_section.get("data_dir", _DEFAULT_DATA_DIR)

    storage_type = (
        os.environ.get(STORAGE_ENV_VAR)
        or env.get(STORAGE_ENV_VAR)
        or str(storage_section.get("type", "filesystem"))
    )

    return DevlogConfig(
        root=root_path,
        name=name,
        data_dir=root_path / data_rel,
        storage=StorageConfig(
            type=resolve_storage_type(storage_type),
            max_upload_mb=int(storage_section.get("max_upload_mb", DEFAULT_MAX_UPLOAD_MB)),
        ),
    )


def _find_root(start: Path) -> Path:
    """Walk upward from start looking for devlog.toml."""
    for directory in (start, *start.parents):
        if (directory / _CONFIG_FILENAME).exists():
            return directory
    return start


def init_config(root: Path, name: str | None = None) -> Path:
    """Write a default devlog.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"devlog.toml already exists at {config_path}"
        raise FileExistsError(msg)

    project_name = name or root.name
    content = f"""\
[devlog]
name = "{project_name}"
# data_dir = ".devlog"   # default; keep it outside the app's source tree

[storage]
# type = "filesystem"    # or "blob"; or set DEVLOG_STORAGE_TYPE in .env
# max_upload_mb = 10
"""
    config_path.write_text(content)
    return config_path
