"""ThreadStore: persistence, resolution, reindex and attachment glue."""

from __future__ import annotations

import json
import logging
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from threadkeeper.blobs import blob_path
from threadkeeper.errors import (
    AmbiguousError,
    AttachmentNotFoundError,
    InvalidInputError,
    InvalidTokenError,
    NotFoundError,
    StorageError,
    ThreadNotFoundError,
)
from threadkeeper.ledger import load_events
from threadkeeper.models import STATUS_ARCHIVED, STATUS_DONE, STATUS_OPEN

if TYPE_CHECKING:
    from pathlib import Path

    from threadkeeper.store import ThreadStore


def _raw(store: ThreadStore, thread_id: str) -> dict:
    return json.loads((store.thread_dir(thread_id) / "thread.json").read_text(encoding="utf-8"))


# ---------------------------------------------------------------------------
# create / get / save
# ---------------------------------------------------------------------------


def test_create_persists_sharded_record(store: ThreadStore, threads_dir: Path) -> None:
    record = store.create("Write report", project="ops", tags=["Q1", "q1", " urgent "])

    path = threads_dir / record.id[:2] / record.id / "thread.json"
    assert path.is_file()
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw["id"] == record.id
    assert raw["status"] == STATUS_OPEN
    assert raw["short_id"] == 1
    assert raw["tags"] == ["q1", "urgent"]
    assert raw["created_at"].endswith("Z")
    assert "attachments_log" not in raw
    assert not path.with_suffix(".json.tmp").exists()


def test_create_allocates_increasing_short_ids(store: ThreadStore) -> None:
    assert [store.create(f"t{i}").short_id for i in range(3)] == [1, 2, 3]


def test_closed_record_has_no_short_id_key(store: ThreadStore) -> None:
    record = store.create("t")
    record.status = STATUS_DONE
    record.short_id = None
    store.save(record)

    assert "short_id" not in _raw(store, record.id)


def test_unknown_fields_survive_load_and_save(store: ThreadStore) -> None:
    record = store.create("t")
    path = store.thread_dir(record.id) / "thread.json"
    raw = _raw(store, record.id)
    raw["custom"] = {"nested": [1, 2]}
    path.write_text(json.dumps(raw), encoding="utf-8")

    loaded = store.get(record.id)
    assert loaded is not None
    loaded.title = "renamed"
    store.save(loaded)

    assert _raw(store, record.id)["custom"] == {"nested": [1, 2]}
    assert _raw(store, record.id)["title"] == "renamed"


def test_get_unknown_returns_none(store: ThreadStore) -> None:
    assert store.get("ZZZZZZ") is None
    assert store.get("../etc") is None


def test_get_corrupt_record_raises_storage_error(store: ThreadStore) -> None:
    record = store.create("t")
    (store.thread_dir(record.id) / "thread.json").write_text("{broken", encoding="utf-8")

    with pytest.raises(StorageError) as excinfo:
        store.get(record.id)
    assert record.id in str(excinfo.value)


def test_load_all_skips_corrupt_records(
    store: ThreadStore, threads_dir: Path, caplog: pytest.LogCaptureFixture
) -> None:
    good = store.create("good")
    bad_dir = threads_dir / "ZZ" / "ZZBROKEN"
    bad_dir.mkdir(parents=True)
    (bad_dir / "thread.json").write_text("[]", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="threadkeeper.store"):
        records = store.load_all()

    assert [r.id for r in records] == [good.id]
    assert "ZZBROKEN" in caplog.text


def test_load_all_orders_by_created_at(store: ThreadStore) -> None:
    base = datetime(2026, 1, 1, tzinfo=UTC)
    late = store.create("late")
    early = store.create("early")
    late.created_at = base + timedelta(days=2)
    early.created_at = base
    store.save(late)
    store.save(early)

    assert [r.title for r in store.load_all()] == ["early", "late"]


def test_missing_status_loads_as_open(store: ThreadStore) -> None:
    record = store.create("t")
    raw = _raw(store, record.id)
    del raw["status"]
    (store.thread_dir(record.id) / "thread.json").write_text(json.dumps(raw), encoding="utf-8")

    loaded = store.get(record.id)
    assert loaded is not None
    assert loaded.status == STATUS_OPEN


def test_delete_removes_thread_directory(store: ThreadStore) -> None:
    record = store.create("t")
    store.attach_link(record.id, url="https://example.com")

    store.delete(record.id)

    assert not store.thread_dir(record.id).exists()
    assert store.get(record.id) is None
    with pytest.raises(ThreadNotFoundError):
        store.delete(record.id)


# ---------------------------------------------------------------------------
# resolve / short ids
# ---------------------------------------------------------------------------


def test_resolve_by_short_id(store: ThreadStore) -> None:
    store.create("one")
    two = store.create("two")

    assert store.resolve("2").id == two.id
    assert store.resolve(" 2 ").id == two.id


def test_resolve_by_durable_id(store: ThreadStore) -> None:
    record = store.create("t")
    assert store.resolve(record.id).title == "t"


def test_resolve_non_numeric_token(store: ThreadStore) -> None:
    store.create("t")
    with pytest.raises(InvalidTokenError) as excinfo:
        store.resolve("nope")
    assert isinstance(excinfo.value, NotFoundError)
    assert isinstance(excinfo.value, InvalidInputError)


def test_resolve_unknown_short_id(store: ThreadStore) -> None:
    store.create("t")
    with pytest.raises(ThreadNotFoundError):
        store.resolve("42")


def test_short_id_only_matches_open_threads(store: ThreadStore) -> None:
    record = store.create("t")
    record.status = STATUS_ARCHIVED
    store.save(record)  # stale alias left behind on purpose

    with pytest.raises(ThreadNotFoundError) as excinfo:
        store.resolve("1")
    assert "durable ID" in str(excinfo.value)


def test_resolve_ambiguous_short_id(store: ThreadStore) -> None:
    first = store.create("a")
    second = store.create("b")
    second.short_id = first.short_id
    store.save(second)

    with pytest.raises(AmbiguousError) as excinfo:
        store.resolve("1")
    assert set(excinfo.value.thread_ids) == {first.id, second.id}


def test_resolve_assigns_missing_short_id(store: ThreadStore) -> None:
    store.create("a")
    record = store.create("b")
    record.short_id = None
    store.save(record)

    resolved = store.resolve(record.id)

    assert resolved.short_id == 2
    assert _raw(store, record.id)["short_id"] == 2


def test_ensure_short_id_ignores_closed_records(store: ThreadStore) -> None:
    record = store.create("t")
    record.status = STATUS_DONE
    record.short_id = None
    store.save(record)

    assert store.ensure_short_id(record).short_id is None
    assert "short_id" not in _raw(store, record.id)


def test_next_short_id_after_gap(store: ThreadStore) -> None:
    a = store.create("a")
    store.create("b")
    c = store.create("c")
    a.status = STATUS_DONE
    a.short_id = None
    store.save(a)

    assert c.short_id == 3
    assert store.next_short_id() == 4


def test_reindex_renumbers_and_persists(store: ThreadStore) -> None:
    records = [store.create(f"t{i}") for i in range(4)]
    base = datetime(2026, 1, 1, tzinfo=UTC)
    for offset, record in enumerate(records):
        record.created_at = base + timedelta(minutes=offset)
    records[1].status = STATUS_DONE
    records[3].short_id = 9
    for record in records:
        store.save(record)

    assert store.reindex() == 3

    assert [_raw(store, r.id).get("short_id") for r in records] == [1, None, 2, 3]
    assert store.reindex() == 3
    assert [_raw(store, r.id).get("short_id") for r in records] == [1, None, 2, 3]


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


def test_attach_note_stores_blob_and_event(store: ThreadStore) -> None:
    record = store.create("t")
    raw = _raw(store, record.id)
    raw["custom"] = "kept"
    (store.thread_dir(record.id) / "thread.json").write_text(json.dumps(raw), encoding="utf-8")

    event = store.attach_note(record.id, b"# hello\n")

    att = event.att
    assert att.kind == "note"
    assert att.name.startswith("note-")
    assert att.media_type == "text/markdown"
    assert att.size == len(b"# hello\n")
    assert att.blob is not None
    path = blob_path(store.thread_dir(record.id), att.blob)
    assert path is not None
    assert path.read_bytes() == b"# hello\n"

    persisted = _raw(store, record.id)
    assert persisted["attachments_log"] == "attachments.jsonl"
    assert persisted["custom"] == "kept"
    assert load_events(store.thread_dir(record.id)).events == [event]


def test_attach_link_default_name(store: ThreadStore) -> None:
    record = store.create("t")
    unnamed = store.attach_link(record.id, url="https://example.com/a")
    labelled = store.attach_link(record.id, url="https://example.com/b", label="docs")

    assert unnamed.att.name.startswith("link-")
    assert labelled.att.name == "docs"
    assert labelled.att.label == "docs"


def test_attach_link_requires_url(store: ThreadStore) -> None:
    record = store.create("t")
    with pytest.raises(InvalidInputError):
        store.attach_link(record.id, url="  ")


def test_detach_and_rename(store: ThreadStore) -> None:
    record = store.create("t")
    first = store.attach_link(record.id, url="https://example.com/1", label="one")
    second = store.attach_link(record.id, url="https://example.com/2", label="two")

    store.rename_attachment(record.id, second.att, "renamed")
    store.detach(record.id, first.att)

    current = store.current_attachments(record.id)
    assert [(e.att.att_id, e.att.name) for e in current] == [(second.att.att_id, "renamed")]
    assert current[0].att.url == "https://example.com/2"
    assert len(load_events(store.thread_dir(record.id)).events) == 4


def test_find_attachment(store: ThreadStore) -> None:
    record = store.create("t")
    first = store.attach_link(record.id, url="https://example.com/1")
    second = store.attach_link(record.id, url="https://example.com/2")

    assert store.find_attachment(record.id, index=1).att.att_id == first.att.att_id
    assert store.find_attachment(record.id, att_id=second.att.att_id).att == second.att

    with pytest.raises(InvalidInputError):
        store.find_attachment(record.id, index=0)
    with pytest.raises(AttachmentNotFoundError) as excinfo:
        store.find_attachment(record.id, index=3)
    assert "max: 2" in str(excinfo.value)
    with pytest.raises(AttachmentNotFoundError):
        store.find_attachment(record.id, att_id="missing")


def test_attach_to_unknown_thread(store: ThreadStore) -> None:
    with pytest.raises(ThreadNotFoundError):
        store.attach_link("ZZZZZZ", url="https://example.com")


def test_attach_without_record_leaves_no_orphans(store: ThreadStore) -> None:
    record = store.create("t")
    thread_dir = store.thread_dir(record.id)
    (thread_dir / "thread.json").unlink()

    with pytest.raises(ThreadNotFoundError):
        store.attach_link(record.id, url="https://example.com")
    with pytest.raises(ThreadNotFoundError):
        store.attach_note(record.id, b"body")

    assert not (thread_dir / "attachments.jsonl").exists()
    assert not (thread_dir / "blobs").exists()
