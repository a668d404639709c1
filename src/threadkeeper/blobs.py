"""Content-addressed blob storage for note bodies.

    <thread-dir>/blobs/sha256/<h0:2>/<h2:4>/<hash>

Write-once: an existing file at the hash path is taken as authoritative and is
neither rewritten nor re-verified. The write itself is a plain open/write with
no temp file; a failed write removes whatever partial file it left behind.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import re
from typing import TYPE_CHECKING

from threadkeeper.errors import StorageError
from threadkeeper.paths import BLOBS_DIR

if TYPE_CHECKING:
    from pathlib import Path

    from threadkeeper.models import BlobRef

logger = logging.getLogger("threadkeeper.blobs")

DEFAULT_ALGO = "sha256"
_DIGEST_RE = {DEFAULT_ALGO: re.compile(r"^[0-9a-f]{64}\Z")}


def blob_path(thread_dir: Path, ref: BlobRef) -> Path | None:
    """Map a blob reference to its file, or None if it cannot be resolved.

    None means the algorithm is unsupported or the hash is not a well-formed
    digest for it, so a hash read from the ledger never leaves the blob tree.
    """
    pattern = _DIGEST_RE.get(ref.algo)
    if pattern is None or not pattern.match(ref.hash):
        return None
    return _digest_path(thread_dir, ref.algo, ref.hash)


def _digest_path(thread_dir: Path, algo: str, digest: str) -> Path:
    return thread_dir / BLOBS_DIR / algo / digest[0:2] / digest[2:4] / digest


def store_blob(thread_dir: Path, data: bytes) -> tuple[str, int]:
    """Store data under its sha256 and return (hash_hex, size)."""
    digest = hashlib.sha256(data).hexdigest()
    path = _digest_path(thread_dir, DEFAULT_ALGO, digest)

    if path.exists():
        try:
            size = path.stat().st_size
        except OSError as exc:
            raise StorageError("failed to stat existing blob", path, exc) from exc
        logger.debug("blob %s already stored (%d bytes)", digest, size)
        return digest, size

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError("failed to create blob directory", path.parent, exc) from exc

    try:
        with path.open("wb") as f:
            f.write(data)
    except OSError as exc:
        with contextlib.suppress(OSError):
            path.unlink()
        raise StorageError("failed to write blob", path, exc) from exc

    logger.debug("stored blob %s (%d bytes)", digest, len(data))
    return digest, len(data)

