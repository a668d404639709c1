"""Data models for the thread store and the attachment ledger."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

STATUS_OPEN = "open"            # the active lifecycle state: only these carry a short id
STATUS_DONE = "done"
STATUS_ARCHIVED = "archived"
STATUSES = (STATUS_OPEN, STATUS_DONE, STATUS_ARCHIVED)

OP_ADD = "add"
OP_REMOVE = "remove"
KIND_NOTE = "note"
KIND_LINK = "link"

ATTACHMENTS_LOG = "attachments.jsonl"

_EPOCH = datetime.fromtimestamp(0, UTC)


def utcnow() -> datetime:
    """Current UTC time truncated to whole seconds (the on-disk resolution)."""
    return datetime.now(UTC).replace(microsecond=0)


def format_ts(dt: datetime) -> str:
    """RFC 3339 in UTC with a ``Z`` suffix: 2026-01-02T03:04:05Z."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def parse_ts(value: Any) -> datetime | None:
    """Parse an RFC 3339 / ISO 8601 timestamp. Naive values are taken as UTC."""
    if not isinstance(value, str) or not value.strip():
        return None
    try:
        dt = datetime.fromisoformat(value.strip())
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def normalize_tags(tags: list[str] | tuple[str, ...]) -> list[str]:
    """Trim, lower-case and de-duplicate tags, keeping first-seen order."""
    out: list[str] = []
    for tag in tags:
        cleaned = str(tag).strip().lower()
        if cleaned and cleaned not in out:
            out.append(cleaned)
    return out


# ---------------------------------------------------------------------------
# Thread record
# ---------------------------------------------------------------------------

_RECORD_KEYS = frozenset({
    "id", "title", "description", "status", "created_at", "updated_at",
    "due_at", "project", "tags", "short_id", "attachments_log",
})


@dataclass
class ThreadRecord:
    """One thread, persisted as <root>/<bucket>/<id>/thread.json.

    Keys this model does not know about are kept in ``extra`` and written back
    unchanged, so newer writers can add fields without older ones dropping them.
    """

    id: str
    title: str = ""
    description: str = ""
    status: str = STATUS_OPEN
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    due_at: datetime | None = None
    project: str = ""
    tags: list[str] = field(default_factory=list)
    short_id: int | None = None          # present only while status == open
    attachments_log: str | None = None   # set once the ledger exists
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_OPEN

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.created_at, self.id)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> ThreadRecord:
        created = parse_ts(d.get("created_at")) or _EPOCH
        short_id = d.get("short_id")
        if isinstance(short_id, bool) or not isinstance(short_id, int):
            short_id = None
        tags = d.get("tags") or []
        return cls(
            id=str(d["id"]),
            title=d.get("title") or "",
            description=d.get("description") or "",
            status=d.get("status") or STATUS_OPEN,
            created_at=created,
            updated_at=parse_ts(d.get("updated_at")) or created,
            due_at=parse_ts(d.get("due_at")),
            project=d.get("project") or "",
            tags=normalize_tags(tags if isinstance(tags, list) else []),
            short_id=short_id,
            attachments_log=d.get("attachments_log") or None,
            extra={k: v for k, v in d.items() if k not in _RECORD_KEYS},
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "created_at": format_ts(self.created_at),
            "updated_at": format_ts(self.updated_at),
        }
        if self.due_at is not None:
            d["due_at"] = format_ts(self.due_at)
        if self.project:
            d["project"] = self.project
        d["tags"] = list(self.tags)
        if self.short_id is not None:
            d["short_id"] = self.short_id
        if self.attachments_log:
            d["attachments_log"] = self.attachments_log
        for key, value in self.extra.items():
            d.setdefault(key, value)
        return d


# ---------------------------------------------------------------------------
# Attachments
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BlobRef:
    algo: str
    hash: str

    def to_dict(self) -> dict[str, str]:
        return {"algo": self.algo, "hash": self.hash}


@dataclass(frozen=True)
class Attachment:
    """Metadata snapshot carried by every ledger event."""

    att_id: str
    kind: str                          # note | link
    name: str
    media_type: str = ""               # notes only
    blob: BlobRef | None = None        # notes only
    size: int = 0                      # notes only
    url: str = ""                      # links only
    label: str = ""                    # links only

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Attachment:
        blob = d.get("blob")
        return cls(
            att_id=d["att_id"],
            kind=d.get("kind", ""),
            name=d.get("name", ""),
            media_type=d.get("media_type", ""),
            blob=BlobRef(algo=str(blob["algo"]), hash=str(blob["hash"])) if blob else None,
            size=int(d.get("size", 0)),
            url=d.get("url", ""),
            label=d.get("label", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"att_id": self.att_id, "kind": self.kind, "name": self.name}
        if self.media_type:
            d["media_type"] = self.media_type
        if self.blob is not None:
            d["blob"] = self.blob.to_dict()
        if self.size:
            d["size"] = self.size
        if self.url:
            d["url"] = self.url
        if self.label:
            d["label"] = self.label
        return d


@dataclass(frozen=True)
class AttachmentEvent:
    """One line of attachments.jsonl."""

    op: str                            # add | remove
    ts: str                            # RFC 3339 UTC
    att: Attachment

    @property
    def timestamp(self) -> datetime:
        return parse_ts(self.ts) or _EPOCH

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> AttachmentEvent:
        return cls(op=d["op"], ts=d["ts"], att=Attachment.from_dict(d["att"]))

    def to_dict(self) -> dict[str, Any]:
        return {"op": self.op, "ts": self.ts, "att": self.att.to_dict()}
