"""Entry-level operations on top of Store.

Mutations (insert, delete) each run one Store.update with a mutation
function; the duplicate check happens inside it, under the lock, so two
writers inserting the same text cannot both create an entry.

Queries (get, find, list_entries, search, recent, stats) read a lock-free
snapshot and may be one commit behind a concurrent writer.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from blackboard.errors import NotFoundError
from blackboard.models import (
    MAX_CONTEXT_LENGTH,
    MAX_VIOLATION_LENGTH,
    SEVERITIES,
    Document,
    Entry,
    new_entry_id,
    normalize_agent,
    normalize_category,
    normalize_context,
    normalize_severity,
    normalize_violation,
    parse_timestamp,
    utc_now,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from blackboard.store import Store

logger = logging.getLogger("blackboard.repository")


@dataclass
class Stats:
    total_entries: int = 0
    total_repetitions: int = 0
    by_severity: dict[str, int] = field(default_factory=dict)
    by_agent: dict[str, int] = field(default_factory=dict)


class EntryRepository:
    """Validated domain operations over a Store."""

    def __init__(
        self,
        store: Store,
        *,
        max_violation_length: int = MAX_VIOLATION_LENGTH,
        max_context_length: int = MAX_CONTEXT_LENGTH,
    ) -> None:
        self.store = store
        self.max_violation_length = max_violation_length
        self.max_context_length = max_context_length

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def insert(
        self,
        violation: str,
        context: str | None = None,
        agent: str | None = None,
        severity: str | None = None,
        category: str | None = None,
        *,
        trigger: str = "cli",
    ) -> Entry:
        """Add a violation, or bump repetitions of the existing one with the same text.

        A returned entry with repetitions == 1 was created by this call.

        Normalization runs before the lock is taken; a ValidationError
        therefore never touches the store.
        """
        text = normalize_violation(violation, self.max_violation_length)
        candidate = Entry(
            id="",
            violation=text,
            context=normalize_context(context, self.max_context_length),
            agent=normalize_agent(agent),
            severity=normalize_severity(severity),
            category=normalize_category(category),
            trigger=trigger,
        )
        result: list[Entry] = []

        def mutate(doc: Document) -> Document:
            now = utc_now()
            existing = doc.find_duplicate(text)
            if existing is not None:
                existing.repetitions += 1
                existing.last_seen = now
                result.append(replace(existing))
            else:
                taken = {e.id for e in doc.entries}
                entry_id = new_entry_id()
                while entry_id in taken:
                    entry_id = new_entry_id()
                entry = replace(candidate, id=entry_id, timestamp=now, last_seen=now, repetitions=1)
                doc.entries.append(entry)
                result.append(replace(entry))
            doc.last_updated = now
            return doc

        self.store.update(mutate)
        entry = result[0]
        if entry.repetitions == 1:
            logger.info("inserted %s: %s", entry.id, entry.violation)
        else:
            logger.info("duplicate %s: %s (repetitions=%d)", entry.id, entry.violation, entry.repetitions)
        return entry

    def delete(self, entry_id: str) -> Entry:
        """Remove an entry by id. Raises NotFoundError if absent."""
        removed: list[Entry] = []

        def mutate(doc: Document) -> Document:
            entry = doc.find_by_id(entry_id)
            if entry is None:
                msg = f"Entry not found: {entry_id}"
                raise NotFoundError(msg)
            doc.entries = [e for e in doc.entries if e.id != entry_id]
            doc.last_updated = utc_now()
            removed.append(entry)
            return doc

        self.store.update(mutate)
        logger.info("deleted %s: %s", entry_id, removed[0].violation)
        return removed[0]

    # ------------------------------------------------------------------
    # Queries (lock-free)
    # ------------------------------------------------------------------

    def get(self, entry_id: str) -> Entry:
        entry = self.store.read().find_by_id(entry_id)
        if entry is None:
            msg = f"Entry not found: {entry_id}"
            raise NotFoundError(msg)
        return entry

    def find(self, predicate: Callable[[Entry], bool]) -> list[Entry]:
        return [e for e in self.store.read().entries if predicate(e)]

    def list_entries(self, agent: str | None = None) -> list[Entry]:
        """All entries, most repeated first. An agent filter keeps universal entries too."""
        if agent:
            wanted = agent.strip().lower()
            entries = self.find(lambda e: e.agent in (wanted, "universal"))
        else:
            entries = self.find(lambda e: True)
        return sorted(entries, key=lambda e: e.repetitions, reverse=True)

    def search(self, query: str) -> list[Entry]:
        needle = query.lower()
        return self.find(lambda e: needle in e.violation.lower() or needle in e.context.lower())

    def recent(self, hours: float = 24, *, now: datetime | None = None) -> list[Entry]:
        """Entries created or seen within the last `hours`, newest first."""
        cutoff = (now or datetime.now(UTC)) - timedelta(hours=hours)

        def seen_since(e: Entry) -> bool:
            stamps = (parse_timestamp(e.timestamp), parse_timestamp(e.last_seen))
            return any(ts is not None and ts >= cutoff for ts in stamps)

        return sorted(self.find(seen_since), key=lambda e: e.last_seen, reverse=True)

    def stats(self) -> Stats:
        entries = self.store.read().entries
        severity = Counter(e.severity for e in entries)
        return Stats(
            total_entries=len(entries),
            total_repetitions=sum(e.repetitions for e in entries),
            by_severity={s: severity.get(s, 0) for s in SEVERITIES},
            by_agent=dict(sorted(Counter(e.agent for e in entries).items())),
        )
