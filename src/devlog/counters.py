"""Per-type entry ID sequences: CR-001, BUG-001, NOTE-001, ...

Numbers are never reused, even after the entry holding them is deleted.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from devlog.db import ConstraintViolation
from devlog.models import ENTRY_TYPE_PREFIX

if TYPE_CHECKING:
    from devlog.db import Storage

logger = logging.getLogger("devlog.counters")

# One statement: increment and hand back the pre-increment value.
_ALLOCATE_SQL = (
    "UPDATE counters SET next_number = next_number + 1 "
    "WHERE type = ? RETURNING next_number - 1 AS num"
)


def format_entry_id(entry_type: str, number: int) -> str:
    """CR-007, BUG-042, NOTE-1234 (padded to 3, never truncated)."""
    return f"{ENTRY_TYPE_PREFIX[entry_type]}-{number:03d}"


def allocate(storage: Storage, entry_type: str) -> str:
    """Reserve the next number for entry_type and return the formatted ID."""
    if entry_type not in ENTRY_TYPE_PREFIX:
        msg = f"Unknown entry type: {entry_type!r}"
        raise ConstraintViolation(msg)
    # fetchall steps the statement to completion before the caller commits.
    rows = storage.fetchall(_ALLOCATE_SQL, (entry_type,))
    if not rows:
        msg = f"No counter row for entry type {entry_type!r}"
        raise ConstraintViolation(msg)
    entry_id = format_entry_id(entry_type, rows[0]["num"])
    logger.debug("allocated %s", entry_id)
    return entry_id


def peek(storage: Storage, entry_type: str) -> int:
    """Next number that allocate() would hand out, without taking it."""
    value = storage.scalar("SELECT next_number FROM counters WHERE type = ?", (entry_type,))
    return int(value) if value is not None else 1
