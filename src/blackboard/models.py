"""Data models for the blackboard document and its entries."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from blackboard.errors import MalformedDocumentError, ValidationError

SCHEMA_VERSION = "1.0.0"
DEFAULT_TITLE = "SimpleLLMs Blackboard"
DEFAULT_CONTEXT = "Added via CLI"
VIOLATION_PREFIX = "I WILL NOT"

MAX_VIOLATION_LENGTH = 200
MAX_CONTEXT_LENGTH = 500

AGENTS = ("universal", "ralph", "bart", "lisa", "marge", "homer")
SEVERITIES = ("critical", "high", "medium", "low")
CATEGORIES = ("hallucination", "security", "efficiency", "scope", "quality", "custom")

DEFAULT_AGENT = "universal"
DEFAULT_SEVERITY = "medium"
DEFAULT_CATEGORY = "custom"

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

_STRING_FIELDS = ("context", "agent", "severity", "category", "trigger", "timestamp", "last_seen")

# \t and \n are kept here; the violation normalizer folds them into spaces.
_CONTROL_CHARS = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_WHITESPACE = re.compile(r"\s+")


def new_entry_id() -> str:
    """Generate a compact entry ID: bb-<12 hex chars>."""
    return "bb-" + uuid.uuid4().hex[:12]


def utc_now() -> str:
    return datetime.now(UTC).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime | None:
    """Parse a stored timestamp. Returns None for empty or unparseable values."""
    if not value:
        return None
    try:
        return datetime.strptime(value, _TIMESTAMP_FORMAT).replace(tzinfo=UTC)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def normalize_violation(raw: str, max_length: int = MAX_VIOLATION_LENGTH) -> str:
    """Uppercase, strip control chars, enforce the I WILL NOT prefix, bound length.

    Text that already starts with I WILL NOT is kept as is, even when the
    prefix runs into the next word ("I WILL NOTHING").

    Raises ValidationError when nothing is left after the prefix.
    """
    text = _CONTROL_CHARS.sub("", raw or "")
    text = _WHITESPACE.sub(" ", text).strip().upper()

    if not text.startswith(VIOLATION_PREFIX):
        text = f"{VIOLATION_PREFIX} {text}".rstrip()
    if not text[len(VIOLATION_PREFIX):].strip():
        msg = "Violation text required"
        raise ValidationError(msg)

    return text[:max_length].rstrip()


def normalize_context(raw: str | None, max_length: int = MAX_CONTEXT_LENGTH) -> str:
    text = _CONTROL_CHARS.sub("", raw or "").strip()
    return text[:max_length] if text else DEFAULT_CONTEXT


def _choose(value: str | None, allowed: tuple[str, ...], default: str) -> str:
    candidate = (value or "").strip().lower()
    return candidate if candidate in allowed else default


def normalize_agent(value: str | None) -> str:
    return _choose(value, AGENTS, DEFAULT_AGENT)


def normalize_severity(value: str | None) -> str:
    return _choose(value, SEVERITIES, DEFAULT_SEVERITY)


def normalize_category(value: str | None) -> str:
    return _choose(value, CATEGORIES, DEFAULT_CATEGORY)


def dedup_key(violation: str) -> str:
    """Case-insensitive key deciding whether two violations are the same entry."""
    return violation.upper()


# ---------------------------------------------------------------------------
# Entry / Document
# ---------------------------------------------------------------------------


@dataclass
class Entry:
    """One recorded violation."""

    id: str
    violation: str
    context: str = DEFAULT_CONTEXT
    agent: str = DEFAULT_AGENT
    severity: str = DEFAULT_SEVERITY
    category: str = DEFAULT_CATEGORY
    trigger: str = "cli"                # cli | capture
    repetitions: int = 1
    timestamp: str = ""                 # creation time, never changes
    last_seen: str = ""                 # bumped on every duplicate insert

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Entry:
        try:
            entry_id = d["id"]
            violation = d["violation"]
        except KeyError as exc:
            msg = f"Entry is missing required field {exc.args[0]!r}"
            raise MalformedDocumentError(msg) from exc
        entry = cls(
            id=str(entry_id),
            violation=str(violation),
            context=d.get("context", DEFAULT_CONTEXT),
            agent=d.get("agent", DEFAULT_AGENT),
            severity=d.get("severity", DEFAULT_SEVERITY),
            category=d.get("category", DEFAULT_CATEGORY),
            trigger=d.get("trigger", "cli"),
            repetitions=int(d.get("repetitions", 1)),
            timestamp=d.get("timestamp", ""),
            last_seen=d.get("lastSeen", d.get("timestamp", "")),
        )
        for name in _STRING_FIELDS:
            if not isinstance(getattr(entry, name), str):
                msg = f"Entry {entry.id}: {name!r} must be a string"
                raise MalformedDocumentError(msg)
        if entry.repetitions < 1:
            msg = f"Entry {entry.id}: repetitions must be at least 1, got {entry.repetitions}"
            raise MalformedDocumentError(msg)
        return entry

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "lastSeen": self.last_seen,
            "agent": self.agent,
            "violation": self.violation,
            "context": self.context,
            "trigger": self.trigger,
            "repetitions": self.repetitions,
            "severity": self.severity,
            "category": self.category,
        }


@dataclass
class Document:
    """The whole blackboard file: metadata plus entries.

    totalEntries is never stored independently; it is len(entries) at
    serialization time.
    """

    version: str = SCHEMA_VERSION
    title: str = DEFAULT_TITLE
    last_updated: str = ""
    entries: list[Entry] = field(default_factory=list)

    @property
    def total_entries(self) -> int:
        return len(self.entries)

    @classmethod
    def from_dict(cls, d: Any) -> Document:
        if not isinstance(d, dict):
            msg = f"Document must be a JSON object, got {type(d).__name__}"
            raise MalformedDocumentError(msg)
        raw_entries = d.get("entries", [])
        if not isinstance(raw_entries, list) or not all(isinstance(e, dict) for e in raw_entries):
            msg = "Document 'entries' must be a list of objects"
            raise MalformedDocumentError(msg)
        meta = d.get("meta") or {}
        if not isinstance(meta, dict):
            msg = "Document 'meta' must be an object"
            raise MalformedDocumentError(msg)
        try:
            entries = [Entry.from_dict(e) for e in raw_entries]
        except (TypeError, ValueError) as exc:
            msg = f"Document has an invalid entry: {exc}"
            raise MalformedDocumentError(msg) from exc
        return cls(
            version=str(d.get("version", SCHEMA_VERSION)),
            title=meta.get("title", DEFAULT_TITLE),
            last_updated=meta.get("lastUpdated", ""),
            entries=entries,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "meta": {
                "title": self.title,
                "totalEntries": self.total_entries,
                "lastUpdated": self.last_updated,
            },
            "entries": [e.to_dict() for e in self.entries],
        }

    def find_by_id(self, entry_id: str) -> Entry | None:
        for e in self.entries:
            if e.id == entry_id:
                return e
        return None

    def find_duplicate(self, violation: str) -> Entry | None:
        """First entry whose violation matches case-insensitively.

        Linear scan; entry counts are small enough that no index is kept.
        """
        key = dedup_key(violation)
        for e in self.entries:
            if dedup_key(e.violation) == key:
                return e
        return None
