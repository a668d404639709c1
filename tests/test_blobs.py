"""Content-addressed blob storage."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

import pytest

from threadkeeper.blobs import blob_path, store_blob
from threadkeeper.models import BlobRef

if TYPE_CHECKING:
    from pathlib import Path


def _blob_files(thread_dir: Path) -> list[Path]:
    return [p for p in (thread_dir / "blobs").rglob("*") if p.is_file()]


def test_store_blob_layout(tmp_path: Path) -> None:
    data = b"hello world\n"
    digest, size = store_blob(tmp_path, data)

    assert digest == hashlib.sha256(data).hexdigest()
    assert size == len(data)
    expected = tmp_path / "blobs" / "sha256" / digest[:2] / digest[2:4] / digest
    assert expected.read_bytes() == data


def test_store_blob_is_idempotent(tmp_path: Path) -> None:
    first = store_blob(tmp_path, b"same bytes")
    second = store_blob(tmp_path, b"same bytes")

    assert first == second
    assert len(_blob_files(tmp_path)) == 1


def test_distinct_payloads_get_distinct_paths(tmp_path: Path) -> None:
    h1, _ = store_blob(tmp_path, b"one")
    h2, _ = store_blob(tmp_path, b"two")

    p1 = blob_path(tmp_path, BlobRef("sha256", h1))
    p2 = blob_path(tmp_path, BlobRef("sha256", h2))
    assert p1 != p2
    assert len(_blob_files(tmp_path)) == 2


def test_existing_blob_is_authoritative(tmp_path: Path) -> None:
    data = b"original payload"
    digest = hashlib.sha256(data).hexdigest()
    path = blob_path(tmp_path, BlobRef("sha256", digest))
    assert path is not None
    path.parent.mkdir(parents=True)
    path.write_bytes(b"short")

    assert store_blob(tmp_path, data) == (digest, 5)
    assert path.read_bytes() == b"short"


def test_blob_path_unresolvable(tmp_path: Path) -> None:
    digest = hashlib.sha256(b"x").hexdigest()
    assert blob_path(tmp_path, BlobRef("md5", "d41d8cd98f00b204e9800998ecf8427e")) is None
    assert blob_path(tmp_path, BlobRef("sha256", "abc")) is None
    assert blob_path(tmp_path, BlobRef("sha256", "abcd")) is None
    assert blob_path(tmp_path, BlobRef("sha256", digest.upper())) is None
    assert blob_path(tmp_path, BlobRef("sha256", digest + "\n")) is None
    assert blob_path(tmp_path, BlobRef("sha256", digest)) == (
        tmp_path / "blobs" / "sha256" / digest[:2] / digest[2:4] / digest
    )


@pytest.mark.parametrize(
    "bad_hash",
    ["../../../../../../etc/passwd", "ab/../../../" + "0" * 53, "/" * 64, "../" * 21 + "a"],
)
def test_blob_path_never_escapes_thread_dir(tmp_path: Path, bad_hash: str) -> None:
    assert blob_path(tmp_path, BlobRef("sha256", bad_hash)) is None
