"""Durable IDs and short aliases.

A durable ID is 16 bytes, 6 bytes of big-endian Unix milliseconds followed by
10 random bytes, encoded as unpadded base32hex (``0-9A-V``). That alphabet is
in ascending ASCII order, so IDs from later milliseconds sort after earlier ones.

Short aliases are small integers for open threads only. They are allocated as
max + 1 over a full scan, with no persisted counter and no lock: two writers
racing on one workspace can hand out the same alias. ``reindex_assignments``
is the repair.
"""

from __future__ import annotations

import base64
import secrets
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from threadkeeper.models import ThreadRecord

_TIMESTAMP_BYTES = 6
_RANDOM_BYTES = 10


def generate_id(now_ms: int | None = None) -> str:
    """Return a new time-sortable durable ID (26 characters)."""
    ms = int(time.time() * 1000) if now_ms is None else now_ms
    raw = ms.to_bytes(_TIMESTAMP_BYTES, "big") + secrets.token_bytes(_RANDOM_BYTES)
    return base64.b32hexencode(raw).decode("ascii").rstrip("=")


def next_short_id(records: Iterable[ThreadRecord]) -> int:
    """One more than the highest short id currently assigned, or 1."""
    highest = 0
    for record in records:
        if record.short_id is not None and record.short_id > highest:
            highest = record.short_id
    return highest + 1


def reindex_assignments(records: Iterable[ThreadRecord]) -> list[ThreadRecord]:
    """Renumber open threads 1..K by (created_at, id); strip aliases from the rest.

    Mutates the records in place and returns the ones whose short id changed.
    Running it twice in a row changes nothing the second time.
    """
    ordered = sorted(records, key=lambda r: r.sort_key)
    changed: list[ThreadRecord] = []
    next_alias = 1
    for record in ordered:
        if record.is_active:
            wanted: int | None = next_alias
            next_alias += 1
        else:
            wanted = None
        if record.short_id != wanted:
            record.short_id = wanted
            changed.append(record)
    return changed
