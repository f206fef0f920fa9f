"""Spot corrections in agent transcripts and turn them into violations.

    "No. You must not hallucinate file paths!"  ->  I WILL NOT HALLUCINATE FILE PATHS
"""

from __future__ import annotations

import re
from dataclasses import dataclass

MAX_INPUT_BYTES = 10 * 1024

_TRIGGERS = re.compile(
    r"never do|I told you|must not|should not|don't do that|stop doing|that's wrong|WILL NOT",
    re.IGNORECASE,
)
# Up to 50 chars of lead-in, the verb phrase, then the action up to a sentence end.
_CONTEXT = re.compile(
    r".{0,50}\b(?:never|don't|must not|should not|stop)\s+[^.!?\n]+.{0,20}",
    re.IGNORECASE,
)
# Greedy lead-in: the action follows the last verb phrase.
_ACTION = re.compile(
    r".*\b(?:never|don't|must not|should not|stop)\s+([^.!?\n]+)",
    re.IGNORECASE,
)


@dataclass
class Capture:
    violation: str      # "I WILL NOT <ACTION>", not yet length-bounded
    context: str        # surrounding snippet the action was taken from


def _bounded(text: str) -> str:
    raw = text.encode("utf-8")[:MAX_INPUT_BYTES]
    return raw.decode("utf-8", errors="ignore")


def detect(text: str) -> Capture | None:
    """Return the correction found in text, or None."""
    text = _bounded(text)
    if not _TRIGGERS.search(text):
        return None
    context_match = _CONTEXT.search(text)
    if context_match is None:
        return None
    context = context_match.group(0).strip()
    action_match = _ACTION.search(context)
    if action_match is None:
        return None
    action = action_match.group(1).strip().upper()
    if not action:
        return None
    return Capture(violation=f"I WILL NOT {action}", context=context)
