"""Store: the on-disk blackboard document and its transactional update.

    store = Store("/path/to/blackboard.json")
    doc = store.read()                     # lock-free snapshot
    doc = store.update(lambda d: d)        # locked read-modify-write

update() is the only code path that writes the backing file:

    acquire lock -> load -> mutate -> write <name>.tmp.<pid>.<rand>
                 -> fsync -> os.replace over the target -> release lock

The rename is the single step that makes new content visible, so a reader
sees either the previous commit or the next one, never a partial file.
"""

from __future__ import annotations

import contextlib
import json
import logging
import os
import stat
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

from blackboard.errors import MalformedDocumentError, StoreIOError
from blackboard.lock import DEFAULT_TIMEOUT, Lock, lock_path_for
from blackboard.models import Document

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger("blackboard.store")

_NEW_FILE_MODE = 0o600


class Store:
    """JSON-file-backed document store with locked, atomic updates."""

    def __init__(
        self,
        path: Path | str,
        *,
        lock: Lock | None = None,
        lock_timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.path = Path(path)
        self.lock = lock or Lock(lock_path_for(self.path))
        self.lock_timeout = lock_timeout

    @property
    def tmp_prefix(self) -> str:
        return f"{self.path.name}.tmp."

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def read(self) -> Document:
        """Current document, or a fresh empty one if the file does not exist yet.

        Never takes the lock.
        """
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return Document()
        except UnicodeDecodeError as exc:
            msg = f"{self.path} is not valid UTF-8 ({exc}); refusing to overwrite it"
            raise MalformedDocumentError(msg) from exc
        except OSError as exc:
            msg = f"Cannot read {self.path}: {exc}"
            raise StoreIOError(msg) from exc

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            msg = f"{self.path} is not valid JSON ({exc}); refusing to overwrite it"
            raise MalformedDocumentError(msg) from exc
        return Document.from_dict(data)

    def exists(self) -> bool:
        return self.path.exists()

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def update(self, mutate: Callable[[Document], Document]) -> Document:
        """Apply mutate to the current document under the lock and commit it.

        If mutate raises, nothing is written and the exception propagates
        unchanged. Returns the committed document.
        """
        with self.lock.held(self.lock_timeout):
            created = not self.path.exists()
            doc = self.read()
            new_doc = mutate(doc)
            self._write(new_doc)
        if created:
            logger.info("initialized %s", self.path)
        logger.debug("committed %s (%d entries)", self.path, new_doc.total_entries)
        return new_doc

    def initialize(self) -> Document:
        """Create the backing file if missing (through the locked path)."""
        return self.update(lambda doc: doc)

    def _write(self, doc: Document) -> None:
        """Serialize doc to a sibling temp file and rename it over the target.

        Must only be called with the lock held.
        """
        self.path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=f"{self.tmp_prefix}{os.getpid()}.",
            )
        except OSError as exc:
            msg = f"Cannot create temporary file next to {self.path}: {exc}"
            raise StoreIOError(msg) from exc

        tmp = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc.to_dict(), f, indent=2)
                f.write("\n")
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp, self._target_mode())
            os.replace(tmp, self.path)
        except BaseException as exc:
            with contextlib.suppress(FileNotFoundError):
                tmp.unlink()
            logger.error("commit to %s failed, temporary file removed: %s", self.path, exc)
            if isinstance(exc, OSError):
                msg = f"Cannot write {self.path}: {exc}"
                raise StoreIOError(msg) from exc
            raise

    def _target_mode(self) -> int:
        try:
            return stat.S_IMODE(self.path.stat().st_mode)
        except FileNotFoundError:
            return _NEW_FILE_MODE

    def leftover_temp_files(self) -> list[Path]:
        """Temp files from this store still present in its directory."""
        if not self.path.parent.exists():
            return []
        return sorted(self.path.parent.glob(f"{self.tmp_prefix}*"))
