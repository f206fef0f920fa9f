"""Shared fixtures: every test gets its own data directory."""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

from blackboard.lock import Lock, lock_path_for
from blackboard.repository import EntryRepository
from blackboard.store import Store

SRC_DIR = Path(__file__).resolve().parent.parent / "src"


@pytest.fixture
def data_file(tmp_path: Path) -> Path:
    return tmp_path / "blackboard.json"


@pytest.fixture
def store(data_file: Path) -> Store:
    lock = Lock(lock_path_for(data_file), poll_interval=0.01)
    return Store(data_file, lock=lock, lock_timeout=5.0)


@pytest.fixture
def repo(store: Store) -> EntryRepository:
    return EntryRepository(store)


@pytest.fixture
def bb_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at tmp_path."""
    monkeypatch.setenv("BLACKBOARD_DIR", str(tmp_path))
    for name in ("BLACKBOARD_FILE", "BLACKBOARD_LOCK_TIMEOUT", "BLACKBOARD_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return tmp_path


def subprocess_env(data_dir: Path, **extra: str) -> dict[str, str]:
    """Environment for child interpreters running the package from source."""
    env = dict(os.environ)
    env["BLACKBOARD_DIR"] = str(data_dir)
    env["PYTHONPATH"] = os.pathsep.join(p for p in (str(SRC_DIR), env.get("PYTHONPATH", "")) if p)
    env.update(extra)
    return env


PYTHON = sys.executable
