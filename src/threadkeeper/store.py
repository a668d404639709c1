"""Read and write thread records under a sharded threads/ directory.

ThreadStore is the public API:
    store = ThreadStore("/path/to/workspace/threads")
    record = store.create("Write the quarterly report")
    record = store.resolve("3")          # short alias or durable ID
    store.attach_link(record.id, url="https://example.com/pr/1", label="pr")
    store.reindex()

thread.json is rewritten whole on every save (write temp, then rename).
attachments.jsonl is append-only and owned by threadkeeper.ledger; blobs are
owned by threadkeeper.blobs. Single writer per workspace: nothing here locks.
"""

from __future__ import annotations

import contextlib
import json
import logging
import shutil
from dataclasses import replace
from pathlib import Path
from typing import TYPE_CHECKING, Any

from threadkeeper.blobs import DEFAULT_ALGO, store_blob
from threadkeeper.errors import (
    AmbiguousError,
    AttachmentNotFoundError,
    InvalidInputError,
    InvalidTokenError,
    StorageError,
    ThreadNotFoundError,
)
from threadkeeper.identity import generate_id, next_short_id, reindex_assignments
from threadkeeper.ledger import append_event, compute_current, load_events
from threadkeeper.models import (
    ATTACHMENTS_LOG,
    KIND_LINK,
    KIND_NOTE,
    OP_ADD,
    OP_REMOVE,
    STATUS_OPEN,
    Attachment,
    AttachmentEvent,
    BlobRef,
    ThreadRecord,
    format_ts,
    normalize_tags,
    utcnow,
)
from threadkeeper.paths import THREAD_FILE, is_plausible_id, shard_path

if TYPE_CHECKING:
    from collections.abc import Iterator
    from datetime import datetime

logger = logging.getLogger("threadkeeper.store")


class ThreadStore:
    """JSON-backed thread store."""

    def __init__(self, threads_dir: Path | str) -> None:
        self.threads_dir = Path(threads_dir)

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def thread_dir(self, thread_id: str) -> Path:
        return shard_path(self.threads_dir, thread_id)

    def _record_path(self, thread_id: str) -> Path:
        return self.thread_dir(thread_id) / THREAD_FILE

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def exists(self, thread_id: str) -> bool:
        return is_plausible_id(thread_id) and self._record_path(thread_id).is_file()

    def _read_raw(self, path: Path) -> dict[str, Any]:
        try:
            with path.open(encoding="utf-8") as f:
                data = json.load(f)
        except OSError as exc:
            raise StorageError("failed to read", path, exc) from exc
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise StorageError("failed to parse", path, exc) from exc
        if not isinstance(data, dict) or not data.get("id"):
            msg = "thread record is not an object with an id"
            raise StorageError(msg, path)
        return data

    def get(self, thread_id: str) -> ThreadRecord | None:
        """Load a record by durable ID, or None if there is none."""
        if not self.exists(thread_id):
            return None
        return ThreadRecord.from_dict(self._read_raw(self._record_path(thread_id)))

    def iter_record_paths(self) -> Iterator[Path]:
        if not self.threads_dir.is_dir():
            return
        yield from self.threads_dir.glob(f"*/*/{THREAD_FILE}")

    def load_all(self) -> list[ThreadRecord]:
        """Every readable record, ordered by (created_at, id).

        A record that cannot be read or parsed is logged and skipped so one
        damaged file does not take the whole workspace down.
        """
        records: list[ThreadRecord] = []
        for path in self.iter_record_paths():
            try:
                records.append(ThreadRecord.from_dict(self._read_raw(path)))
            except StorageError as exc:
                logger.warning("skipping thread record: %s", exc)
        records.sort(key=lambda r: r.sort_key)
        return records

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------

    def next_short_id(self) -> int:
        return next_short_id(self.load_all())

    def ensure_short_id(self, record: ThreadRecord) -> ThreadRecord:
        """Give an open record without a short id the next free one, and save it."""
        if not record.is_active or record.short_id is not None:
            return record
        record.short_id = self.next_short_id()
        self.save(record)
        logger.info("assigned short id %d to %s", record.short_id, record.id)
        return record

    def get_by_id(self, thread_id: str) -> ThreadRecord:
        record = self.get(thread_id)
        if record is None:
            raise ThreadNotFoundError(thread_id)
        return self.ensure_short_id(record)

    def get_by_short_id(self, short_id: int) -> ThreadRecord:
        """The one open record carrying short_id."""
        matches = [
            r for r in self.load_all() if r.is_active and r.short_id == short_id
        ]
        if not matches:
            raise ThreadNotFoundError(
                str(short_id),
                f"no active thread with short id {short_id} "
                "(use the durable ID for done or archived threads)",
            )
        if len(matches) > 1:
            raise AmbiguousError(short_id, [r.id for r in matches])
        return matches[0]

    def resolve(self, token: str) -> ThreadRecord:
        """Resolve a durable ID or a short alias to a record.

        Durable IDs are tried first. Otherwise the token must be an integer
        naming exactly one open thread.
        """
        token = token.strip()
        record = self.get(token)
        if record is not None:
            return self.ensure_short_id(record)
        try:
            short_id = int(token)
        except ValueError:
            raise InvalidTokenError(token) from None
        return self.ensure_short_id(self.get_by_short_id(short_id))

    def reindex(self) -> int:
        """Renumber open threads 1..K and strip aliases elsewhere. Returns K."""
        records = self.load_all()
        changed = reindex_assignments(records)
        for record in changed:
            self.save(record)
        active = sum(1 for r in records if r.is_active)
        logger.info("reindexed %d active threads (%d records rewritten)", active, len(changed))
        return active

    # ------------------------------------------------------------------
    # Write: records
    # ------------------------------------------------------------------

    def create(
        self,
        title: str,
        *,
        description: str = "",
        project: str = "",
        tags: list[str] | tuple[str, ...] = (),
        due_at: datetime | None = None,
    ) -> ThreadRecord:
        """Create a new open thread with a fresh durable ID and short id."""
        now = utcnow()
        record = ThreadRecord(
            id=generate_id(),
            title=title,
            description=description,
            status=STATUS_OPEN,
            created_at=now,
            updated_at=now,
            due_at=due_at,
            project=project,
            tags=normalize_tags(tags),
            short_id=self.next_short_id(),
        )
        self.save(record)
        return record

    def save(self, record: ThreadRecord) -> None:
        self._write_raw(self._record_path(record.id), record.to_dict())

    def patch(self, thread_id: str, fields: dict[str, Any]) -> None:
        """Set fields on the raw persisted record, keeping every other key as-is."""
        path = self._record_path(thread_id)
        if not path.is_file():
            raise ThreadNotFoundError(thread_id)
        data = self._read_raw(path)
        data.update(fields)
        self._write_raw(path, data)

    def _write_raw(self, path: Path, data: dict[str, Any]) -> None:
        """Atomically write thread.json: temp file, then rename over the original."""
        tmp = path.with_suffix(".json.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp.open("w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, ensure_ascii=False)
                f.write("\n")
            tmp.replace(path)
        except OSError as exc:
            with contextlib.suppress(OSError):
                tmp.unlink()
            raise StorageError("failed to write", path, exc) from exc

    def delete(self, thread_id: str) -> None:
        """Remove a thread directory with everything in it."""
        thread_dir = self.thread_dir(thread_id)
        if not thread_dir.is_dir():
            raise ThreadNotFoundError(thread_id, f"thread directory for {thread_id} not found")
        try:
            shutil.rmtree(thread_dir)
        except OSError as exc:
            raise StorageError("failed to remove", thread_dir, exc) from exc

    # ------------------------------------------------------------------
    # Attachments
    # ------------------------------------------------------------------

    def current_attachments(self, thread_id: str) -> list[AttachmentEvent]:
        return compute_current(load_events(self.thread_dir(thread_id)).events)

    def find_attachment(
        self,
        thread_id: str,
        *,
        index: int | None = None,
        att_id: str | None = None,
    ) -> AttachmentEvent:
        """Pick a current attachment by 1-based index or by attachment id."""
        current = self.current_attachments(thread_id)
        if att_id is not None:
            for event in current:
                if event.att.att_id == att_id:
                    return event
            msg = f"attachment with ID {att_id!r} not found"
            raise AttachmentNotFoundError(msg)
        if index is None or index < 1:
            msg = "attachment index must be >= 1"
            raise InvalidInputError(msg)
        if index > len(current):
            msg = f"attachment index {index} out of range (max: {len(current)})"
            raise AttachmentNotFoundError(msg)
        return current[index - 1]

    def _require_record(self, thread_id: str) -> None:
        if not self._record_path(thread_id).is_file():
            raise ThreadNotFoundError(thread_id)

    def record_event(self, thread_id: str, op: str, att: Attachment) -> AttachmentEvent:
        """Append an event, then point thread.json at the ledger.

        The record is checked first so a missing thread never gains a ledger line.
        """
        self._require_record(thread_id)
        now = utcnow()
        event = AttachmentEvent(op=op, ts=format_ts(now), att=att)
        append_event(self.thread_dir(thread_id), event)
        self.patch(thread_id, {"attachments_log": ATTACHMENTS_LOG, "updated_at": format_ts(now)})
        return event

    def attach_note(
        self,
        thread_id: str,
        content: bytes,
        *,
        name: str | None = None,
        media_type: str = "text/markdown",
    ) -> AttachmentEvent:
        self._require_record(thread_id)
        hash_hex, size = store_blob(self.thread_dir(thread_id), content)
        att = Attachment(
            att_id=generate_id(),
            kind=KIND_NOTE,
            name=name or f"note-{utcnow():%Y%m%d-%H%M%S}",
            media_type=media_type,
            blob=BlobRef(algo=DEFAULT_ALGO, hash=hash_hex),
            size=size,
        )
        return self.record_event(thread_id, OP_ADD, att)

    def attach_link(self, thread_id: str, *, url: str, label: str = "") -> AttachmentEvent:
        if not url.strip():
            msg = "link attachments need a URL"
            raise InvalidInputError(msg)
        att = Attachment(
            att_id=generate_id(),
            kind=KIND_LINK,
            name=label or f"link-{utcnow():%Y%m%d-%H%M%S}",
            url=url,
            label=label,
        )
        return self.record_event(thread_id, OP_ADD, att)

    def detach(self, thread_id: str, att: Attachment) -> AttachmentEvent:
        return self.record_event(thread_id, OP_REMOVE, att)

    def rename_attachment(self, thread_id: str, att: Attachment, name: str) -> AttachmentEvent:
        if not name.strip():
            msg = "attachment name must not be empty"
            raise InvalidInputError(msg)
        renamed = replace(att, name=name.strip())
        return self.record_event(thread_id, OP_ADD, renamed)
