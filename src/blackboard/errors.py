"""Exceptions raised by the lock, store and repository layers."""

from __future__ import annotations


class BlackboardError(Exception):
    """Base class for every error the blackboard library raises."""


class LockTimeoutError(BlackboardError):
    """The store lock could not be acquired within the timeout.

    Nothing was read or written; retrying later is safe.
    """


class ValidationError(BlackboardError):
    """Input was rejected and has no safe default (e.g. empty violation text)."""


class NotFoundError(BlackboardError):
    """No entry with the requested id exists."""


class StoreIOError(BlackboardError):
    """Reading, writing or renaming the backing file failed.

    The document on disk is left at its last committed state.
    """


class MalformedDocumentError(BlackboardError):
    """The backing file exists but is not a valid blackboard document.

    Never repaired automatically: reinitializing would discard the entries.
    """
