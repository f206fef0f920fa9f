"""Cross-process lock guarding the blackboard file.

The lock is a marker file created with O_CREAT|O_EXCL, so "create if it does
not exist" is a single filesystem operation. Its only content is the pid of
the holder:

    .blackboard.lock      # "12345"

A marker whose pid is no longer running is stale and is reclaimed by the next
acquirer instead of blocking everybody until the timeout. A marker that never
received a pid (holder died between create and write) is stale once it is
older than `stale_after` seconds.

Reclaiming is serialized by an flock on a second, permanent file:

    .blackboard.lock.reclaim

Waiters poll; the lock is not fair and there is no queue.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
import signal
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from blackboard.errors import LockTimeoutError

if TYPE_CHECKING:
    from collections.abc import Iterator

logger = logging.getLogger("blackboard.lock")

DEFAULT_TIMEOUT = 10.0
DEFAULT_POLL_INTERVAL = 0.1
DEFAULT_STALE_AFTER = 30.0

_SIGTERM_EXIT_CODE = 128 + signal.SIGTERM


def lock_path_for(data_file: Path) -> Path:
    """Marker path next to the data file: blackboard.json -> .blackboard.lock"""
    return data_file.with_name(f".{data_file.stem}.lock")


def pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    if pid == os.getpid():
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by another user.
        return True
    return True


def _read_pid(path: Path) -> int | None:
    try:
        return int(path.read_text().strip())
    except (OSError, ValueError):
        return None


@dataclass(frozen=True)
class LockHandle:
    path: Path
    pid: int
    acquired_at: float


class Lock:
    """Named mutual-exclusion lock backed by an exclusively-created file."""

    def __init__(
        self,
        path: Path | str,
        *,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stale_after: float = DEFAULT_STALE_AFTER,
    ) -> None:
        self.path = Path(path)
        self.guard_path = self.path.with_name(f"{self.path.name}.reclaim")
        self.poll_interval = poll_interval
        self.stale_after = stale_after

    # ------------------------------------------------------------------
    # Acquire / release
    # ------------------------------------------------------------------

    def acquire(self, timeout: float = DEFAULT_TIMEOUT) -> LockHandle:
        """Block until the marker is ours or raise LockTimeoutError."""
        deadline = time.monotonic() + timeout
        self.path.parent.mkdir(parents=True, exist_ok=True)
        while True:
            handle = self._try_create()
            if handle is not None:
                logger.debug("lock acquired: %s (pid %d)", self.path, handle.pid)
                return handle
            if self._reclaim_if_stale():
                continue
            if time.monotonic() >= deadline:
                logger.warning("lock timeout after %.1fs: %s", timeout, self.path)
                msg = f"Could not acquire lock after {timeout:g}s: {self.path}"
                raise LockTimeoutError(msg)
            time.sleep(self.poll_interval)

    def release(self, handle: LockHandle | None = None) -> None:  # noqa: ARG002
        """Remove the marker. Removing an absent marker is not an error."""
        with contextlib.suppress(FileNotFoundError):
            self.path.unlink()
        logger.debug("lock released: %s", self.path)

    @contextlib.contextmanager
    def held(self, timeout: float = DEFAULT_TIMEOUT) -> Iterator[LockHandle]:
        """Hold the lock for the body of a with-block; always released.

        SIGTERM is turned into SystemExit while the lock is held (main thread
        only) so the finally clause runs; SIGINT already raises
        KeyboardInterrupt.
        """
        with _sigterm_raises_exit():
            handle = self.acquire(timeout)
            try:
                yield handle
            finally:
                self.release(handle)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _try_create(self) -> LockHandle | None:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
        except FileExistsError:
            return None
        pid = os.getpid()
        try:
            with os.fdopen(fd, "w") as f:
                f.write(str(pid))
        except BaseException:
            self.release()
            raise
        return LockHandle(path=self.path, pid=pid, acquired_at=time.time())

    def holder_pid(self) -> int | None:
        return _read_pid(self.path)

    def is_stale(self) -> bool:
        """True when the marker exists and its holder is gone."""
        return self._marker_is_stale(self.path)

    def _marker_is_stale(self, path: Path) -> bool:
        try:
            mtime = path.stat().st_mtime
        except FileNotFoundError:
            return False
        pid = _read_pid(path)
        if pid is None:
            return time.time() - mtime > self.stale_after
        return not pid_alive(pid)

    def _reclaim_if_stale(self) -> bool:
        """Remove a stale marker. Returns True if the caller should retry now.

        A marker the caller did not create is only ever removed by the
        process holding the reclaim guard, an flock on `guard_path` that the
        kernel drops when its holder dies. Under the guard the marker is
        examined again and unlinked only if it is still the same stale file.
        A stale marker has no live owner to release it, so nothing can
        replace it between that check and the unlink.
        """
        if not self.is_stale():
            return False
        with self._reclaim_guard() as guarded:
            if not guarded:
                return False
            try:
                before = self.path.stat()
            except FileNotFoundError:
                return True
            if not self._marker_is_stale(self.path):
                return False
            pid = _read_pid(self.path)
            try:
                after = self.path.stat()
            except FileNotFoundError:
                return True
            if (before.st_dev, before.st_ino) != (after.st_dev, after.st_ino):
                return False
            with contextlib.suppress(FileNotFoundError):
                self.path.unlink()
            logger.warning("reclaimed stale lock %s (pid %s)", self.path, pid)
            return True

    @contextlib.contextmanager
    def _reclaim_guard(self) -> Iterator[bool]:
        """Non-blocking exclusive flock on guard_path; yields False if busy."""
        fd = os.open(self.guard_path, os.O_CREAT | os.O_RDWR, 0o600)
        try:
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                yield False
                return
            try:
                yield True
            finally:
                fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)


@contextlib.contextmanager
def _sigterm_raises_exit() -> Iterator[None]:
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _on_sigterm(signum: int, frame: object) -> None:  # noqa: ARG001
        logger.warning("SIGTERM received while holding the store lock")
        raise SystemExit(_SIGTERM_EXIT_CODE)

    previous = signal.signal(signal.SIGTERM, _on_sigterm)
    if previous is None:   # installed outside Python
        previous = signal.SIG_DFL
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)
