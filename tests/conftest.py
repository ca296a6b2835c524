"""Shared fixtures: a fresh devlog project under tmp_path per test."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from devlog.attachments import AttachmentStore
from devlog.config import STORAGE_ENV_VAR, DevlogConfig, StorageConfig
from devlog.db import Storage, open_storage
from devlog.entries import EntryStore
from devlog.models import NewEntry


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """A developer's own DEVLOG_STORAGE_TYPE must not leak into tests."""
    monkeypatch.delenv(STORAGE_ENV_VAR, raising=False)


def _make_cfg(root: Path, storage_type: str) -> DevlogConfig:
    return DevlogConfig(
        root=root,
        name="test-app",
        data_dir=root / ".devlog",
        storage=StorageConfig(type=storage_type),
    )


@pytest.fixture
def cfg(tmp_path: Path) -> DevlogConfig:
    return _make_cfg(tmp_path, "filesystem")


@pytest.fixture
def blob_cfg(tmp_path: Path) -> DevlogConfig:
    return _make_cfg(tmp_path, "blob")


@pytest.fixture
def storage(cfg: DevlogConfig) -> Iterator[Storage]:
    handle = open_storage(cfg)
    yield handle
    handle.close()


@pytest.fixture
def blob_storage(blob_cfg: DevlogConfig) -> Iterator[Storage]:
    handle = open_storage(blob_cfg)
    yield handle
    handle.close()


@pytest.fixture
def attachments(storage: Storage) -> AttachmentStore:
    return AttachmentStore(storage)


@pytest.fixture
def entries(storage: Storage, attachments: AttachmentStore) -> EntryStore:
    return EntryStore(storage, attachments)


@pytest.fixture
def blob_entries(blob_storage: Storage) -> EntryStore:
    return EntryStore(blob_storage)


def new_entry(
    title: str = "Save button overlaps footer",
    entry_type: str = "change_request",
    page_path: str = "/orders",
    **kwargs,
) -> NewEntry:
    """NewEntry with the required fields filled in."""
    return NewEntry(
        type=entry_type,
        title=title,
        page_url=f"http://localhost:3000{page_path}",
        page_path=page_path,
        **kwargs,
    )


@pytest.fixture
def make_entry():
    return new_entry
