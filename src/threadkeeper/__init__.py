"""Thread store: durable IDs, short aliases and an append-only attachment ledger.

Layout:
    <workspace>/threads/
        <id[0:2]>/
            <id>/
                thread.json          # the record, rewritten atomically on save
                attachments.jsonl    # add/remove events, append-only
                blobs/sha256/<h0:2>/<h2:4>/<hash>   # note bodies, write-once

Durable IDs are time-sortable base32hex strings and never change. Short ids are
small integers that only open threads carry; ``ThreadStore.reindex`` renumbers them.
The visible attachments are whatever ``compute_current`` derives from the ledger.
"""

from threadkeeper.config import TKConfig, load_config
from threadkeeper.ledger import compute_current, load_events
from threadkeeper.models import Attachment, AttachmentEvent, BlobRef, ThreadRecord
from threadkeeper.store import ThreadStore

__all__ = [
    "Attachment",
    "AttachmentEvent",
    "BlobRef",
    "TKConfig",
    "ThreadRecord",
    "ThreadStore",
    "compute_current",
    "load_config",
    "load_events",
]
