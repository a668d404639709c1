"""Append-only attachment ledger (attachments.jsonl).

Each line is one self-contained event:

    {"op":"add","ts":"2026-01-02T03:04:05Z","att":{"att_id":...,"kind":"note",...}}
    {"op":"remove","ts":"...","att":{...snapshot of the removed attachment...}}

Lines are never edited or deleted. The visible attachment set is derived by
``compute_current``, which replays the whole history.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from threadkeeper.errors import StorageError
from threadkeeper.models import OP_ADD, OP_REMOVE, AttachmentEvent, parse_ts
from threadkeeper.paths import ledger_path

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

logger = logging.getLogger("threadkeeper.ledger")

_OPS = frozenset({OP_ADD, OP_REMOVE})


@dataclass
class LoadResult:
    events: list[AttachmentEvent] = field(default_factory=list)
    malformed: int = 0


def append_event(thread_dir: Path, event: AttachmentEvent) -> None:
    """Append one event line, creating the ledger if needed.

    The line goes out in a single write call, so a failed append never leaves
    a partial event that a later read would count as written.
    """
    path = ledger_path(thread_dir)
    line = json.dumps(event.to_dict(), ensure_ascii=False, separators=(",", ":")) + "\n"
    try:
        with path.open("a", encoding="utf-8") as f:
            f.write(line)
            f.flush()
    except OSError as exc:
        raise StorageError("failed to append attachment event to", path, exc) from exc


def _parse_line(raw: bytes) -> AttachmentEvent | None:
    try:
        obj: Any = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError):
        return None
    if not isinstance(obj, dict) or obj.get("op") not in _OPS:
        return None
    if parse_ts(obj.get("ts")) is None:
        return None
    att = obj.get("att")
    if not isinstance(att, dict) or not isinstance(att.get("att_id"), str) or not att["att_id"]:
        return None
    blob = att.get("blob")
    if blob is not None and not (isinstance(blob, dict) and "algo" in blob and "hash" in blob):
        return None
    try:
        return AttachmentEvent.from_dict(obj)
    except (KeyError, TypeError, ValueError):
        return None


def load_events(thread_dir: Path) -> LoadResult:
    """Read every event in file order.

    Blank lines are ignored. Lines that are not well-formed events, including
    ones that are not valid UTF-8, are skipped and counted, and the read always
    continues to the end of the file. A missing ledger is an empty result.
    """
    path = ledger_path(thread_dir)
    result = LoadResult()
    try:
        f = path.open("rb")
    except FileNotFoundError:
        return result
    except OSError as exc:
        raise StorageError("failed to open", path, exc) from exc

    with f:
        try:
            for lineno, raw in enumerate(f, start=1):
                line = raw.strip()
                if not line:
                    continue
                event = _parse_line(line)
                if event is None:
                    logger.debug("%s:%d: skipping malformed ledger line", path, lineno)
                    result.malformed += 1
                    continue
                result.events.append(event)
        except OSError as exc:
            raise StorageError("failed to read", path, exc) from exc

    if result.malformed:
        logger.info("%s: skipped %d malformed line(s)", path, result.malformed)
    return result


def compute_current(events: Iterable[AttachmentEvent]) -> list[AttachmentEvent]:
    """Replay events into the visible attachments.

    Per attachment id the latest event wins: ``add`` sets or replaces the
    metadata, ``remove`` hides it. "Latest" is by event timestamp, with ledger
    order breaking ties, so the surviving set does not depend on the order the
    events are passed in. Returns the surviving ``add`` events sorted by
    timestamp. Pure: no I/O, same input gives the same output.
    """
    indexed = sorted(enumerate(events), key=lambda pair: (pair[1].timestamp, pair[0]))
    current: dict[str, tuple[int, AttachmentEvent]] = {}
    for seq, event in indexed:
        if event.op == OP_ADD:
            current[event.att.att_id] = (seq, event)
        elif event.op == OP_REMOVE:
            current.pop(event.att.att_id, None)
    survivors = sorted(current.values(), key=lambda pair: (pair[1].timestamp, pair[0]))
    return [event for _, event in survivors]
