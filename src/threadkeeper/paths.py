"""Directory sharding for thread storage.

    <root>/<id[0:2]>/<id>/thread.json
    <root>/<id[0:2]>/<id>/attachments.jsonl
    <root>/<id[0:2]>/<id>/blobs/<algo>/<h0:2>/<h2:4>/<hash>

There is no index: the bucket rule is the only way to find a thread directory,
so it must never change once data exists under it.
"""

from __future__ import annotations

from pathlib import Path

from threadkeeper.errors import InvalidInputError
from threadkeeper.models import ATTACHMENTS_LOG

BUCKET_LEN = 2
THREAD_FILE = "thread.json"
BLOBS_DIR = "blobs"


def bucket(thread_id: str) -> str:
    if len(thread_id) < BUCKET_LEN:
        msg = f"thread id {thread_id!r} is shorter than the {BUCKET_LEN}-character bucket prefix"
        raise InvalidInputError(msg)
    return thread_id[:BUCKET_LEN]


def shard_path(root: Path | str, thread_id: str) -> Path:
    """Return root/bucket(id)/id."""
    return Path(root) / bucket(thread_id) / thread_id


def thread_file_path(root: Path | str, thread_id: str) -> Path:
    return shard_path(root, thread_id) / THREAD_FILE


def ledger_path(thread_dir: Path) -> Path:
    return thread_dir / ATTACHMENTS_LOG


def is_plausible_id(token: str) -> bool:
    """True if token could name a thread directory (no separators, no dot-names)."""
    return (
        len(token) >= BUCKET_LEN
        and not token.startswith(".")
        and "/" not in token
        and "\\" not in token
    )
