"""BlackboardConfig: where the blackboard lives and how it is locked.

Default layout (all inside the data directory):

    blackboard.toml       # optional config
    blackboard.json       # the document (mode 0600)
    .blackboard.lock      # lock marker, present only while a write is in flight
    .blackboard.lock.reclaim  # flock guard for stale-marker reclamation
    blackboard.log        # append-only diagnostic log (mode 0600)

blackboard.toml example:

    [store]
    file = "blackboard.json"
    lock_timeout = 10.0
    poll_interval = 0.1
    stale_after = 30.0

    [limits]
    max_violation_length = 200
    max_context_length = 500

    [log]
    file = "blackboard.log"
    level = "INFO"

Environment variables override the file:

    BLACKBOARD_DIR            data directory (default ~/Projects/simplellms-blackboard)
    BLACKBOARD_FILE           document path
    BLACKBOARD_LOCK_TIMEOUT   seconds
    BLACKBOARD_LOG_LEVEL      logging level name
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from blackboard.errors import BlackboardError
from blackboard.lock import DEFAULT_POLL_INTERVAL, DEFAULT_STALE_AFTER, DEFAULT_TIMEOUT, Lock, lock_path_for
from blackboard.models import MAX_CONTEXT_LENGTH, MAX_VIOLATION_LENGTH
from blackboard.repository import EntryRepository
from blackboard.store import Store

_CONFIG_FILENAME = "blackboard.toml"
_DEFAULT_DIR = Path("~/Projects/simplellms-blackboard")
_DEFAULT_FILE = "blackboard.json"
_DEFAULT_LOG_FILE = "blackboard.log"


@dataclass
class StoreConfig:
    file: str = _DEFAULT_FILE           # relative to the data dir unless absolute
    lock_timeout: float = DEFAULT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    stale_after: float = DEFAULT_STALE_AFTER


@dataclass
class LimitsConfig:
    max_violation_length: int = MAX_VIOLATION_LENGTH
    max_context_length: int = MAX_CONTEXT_LENGTH


@dataclass
class LogConfig:
    file: str = _DEFAULT_LOG_FILE
    level: str = "INFO"


@dataclass
class BlackboardConfig:
    """Resolved configuration for one blackboard."""

    root: Path                          # data directory
    store: StoreConfig = field(default_factory=StoreConfig)
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    log: LogConfig = field(default_factory=LogConfig)

    @property
    def data_file(self) -> Path:
        return self.root / Path(self.store.file).expanduser()

    @property
    def lock_file(self) -> Path:
        return lock_path_for(self.data_file)

    @property
    def log_file(self) -> Path:
        return self.root / Path(self.log.file).expanduser()

    def ensure_dirs(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def open_store(self) -> Store:
        lock = Lock(
            self.lock_file,
            poll_interval=self.store.poll_interval,
            stale_after=self.store.stale_after,
        )
        return Store(self.data_file, lock=lock, lock_timeout=self.store.lock_timeout)

    def open_repository(self) -> EntryRepository:
        return EntryRepository(
            self.open_store(),
            max_violation_length=self.limits.max_violation_length,
            max_context_length=self.limits.max_context_length,
        )


def _float(value: Any, name: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        msg = f"{name} must be a number, got {value!r}"
        raise BlackboardError(msg) from exc


def _int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        msg = f"{name} must be an integer, got {value!r}"
        raise BlackboardError(msg) from exc


def load_config(root: Path | str | None = None, env: dict[str, str] | None = None) -> BlackboardConfig:
    """Load blackboard.toml from the data dir and apply environment overrides.

    root wins over BLACKBOARD_DIR; env defaults to os.environ.
    """
    env = dict(os.environ) if env is None else env
    root_path = Path(root or env.get("BLACKBOARD_DIR") or _DEFAULT_DIR).expanduser()
    config_path = root_path / _CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_path.exists():
        try:
            with config_path.open("rb") as f:
                raw = tomllib.load(f)
        except tomllib.TOMLDecodeError as exc:
            msg = f"Invalid {config_path}: {exc}"
            raise BlackboardError(msg) from exc

    store_section = raw.get("store", {})
    limits_section = raw.get("limits", {})
    log_section = raw.get("log", {})

    store = StoreConfig(
        file=str(store_section.get("file", _DEFAULT_FILE)),
        lock_timeout=_float(store_section.get("lock_timeout", DEFAULT_TIMEOUT), "store.lock_timeout"),
        poll_interval=_float(store_section.get("poll_interval", DEFAULT_POLL_INTERVAL), "store.poll_interval"),
        stale_after=_float(store_section.get("stale_after", DEFAULT_STALE_AFTER), "store.stale_after"),
    )
    limits = LimitsConfig(
        max_violation_length=_int(
            limits_section.get("max_violation_length", MAX_VIOLATION_LENGTH), "limits.max_violation_length",
        ),
        max_context_length=_int(
            limits_section.get("max_context_length", MAX_CONTEXT_LENGTH), "limits.max_context_length",
        ),
    )
    log = LogConfig(
        file=str(log_section.get("file", _DEFAULT_LOG_FILE)),
        level=str(log_section.get("level", "INFO")).upper(),
    )

    # Environment overrides
    if env.get("BLACKBOARD_FILE"):
        store.file = env["BLACKBOARD_FILE"]
    if env.get("BLACKBOARD_LOCK_TIMEOUT"):
        store.lock_timeout = _float(env["BLACKBOARD_LOCK_TIMEOUT"], "BLACKBOARD_LOCK_TIMEOUT")
    if env.get("BLACKBOARD_LOG_LEVEL"):
        log.level = env["BLACKBOARD_LOG_LEVEL"].upper()

    return BlackboardConfig(root=root_path, store=store, limits=limits, log=log)


def init_config(root: Path) -> Path:
    """Write a default blackboard.toml at root. Raises if already exists."""
    config_path = root / _CONFIG_FILENAME
    if config_path.exists():
        msg = f"blackboard.toml already exists at {config_path}"
        raise FileExistsError(msg)

    root.mkdir(parents=True, exist_ok=True)
    content = """\
[store]
# file = "blackboard.json"   # relative to this directory, or absolute
# lock_timeout = 10.0        # seconds to wait for the write lock
# poll_interval = 0.1        # seconds between lock attempts
# stale_after = 30.0         # age after which a lock without a pid is reclaimed

[limits]
# max_violation_length = 200
# max_context_length = 500

[log]
# file = "blackboard.log"
# level = "INFO"
"""
    config_path.write_text(content)
    return config_path
