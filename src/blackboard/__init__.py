"""Blackboard: a JSON-file log of violations that many processes write at once.

Layout (data directory, BLACKBOARD_DIR):
    blackboard.json       # the document
    .blackboard.lock      # lock marker: holder pid, present only during a write
    blackboard.log        # diagnostic log

blackboard.json:
    {"version": "1.0.0",
     "meta": {"title": ..., "totalEntries": N, "lastUpdated": ...},
     "entries": [{"id": "bb-<12hex>", "violation": "I WILL NOT ...", "context": ...,
                  "agent": ..., "severity": ..., "category": ..., "trigger": ...,
                  "repetitions": N, "timestamp": ..., "lastSeen": ...}]}

Concurrent writes: every mutation goes through Store.update, which holds the
lock for the whole read-modify-write and commits with temp file + os.replace.
Reads take no lock and always see a complete document.
"""

from blackboard.config import BlackboardConfig, init_config, load_config
from blackboard.errors import (
    BlackboardError,
    LockTimeoutError,
    MalformedDocumentError,
    NotFoundError,
    StoreIOError,
    ValidationError,
)
from blackboard.lock import Lock, LockHandle
from blackboard.models import Document, Entry
from blackboard.repository import EntryRepository, Stats
from blackboard.store import Store

__all__ = [
    "BlackboardConfig",
    "BlackboardError",
    "Document",
    "Entry",
    "EntryRepository",
    "Lock",
    "LockHandle",
    "LockTimeoutError",
    "MalformedDocumentError",
    "NotFoundError",
    "Stats",
    "Store",
    "StoreIOError",
    "ValidationError",
    "init_config",
    "load_config",
]
