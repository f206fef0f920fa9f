"""Store: initialization, atomic commit, failure paths."""

from __future__ import annotations

import json
import os
import threading
from pathlib import Path

import pytest

from blackboard.errors import LockTimeoutError, MalformedDocumentError, StoreIOError
from blackboard.models import SCHEMA_VERSION, Document, Entry
from blackboard.store import Store


def _add(violation: str):
    def mutate(doc: Document) -> Document:
        doc.entries.append(Entry(id=f"bb-{len(doc.entries)}", violation=violation))
        return doc
    return mutate


def test_read_missing_file_returns_empty_document_without_writing(store: Store) -> None:
    doc = store.read()
    assert doc.entries == []
    assert doc.version == SCHEMA_VERSION
    assert not store.path.exists()


def test_first_update_creates_owner_only_file(store: Store) -> None:
    store.update(lambda doc: doc)
    assert store.path.exists()
    assert (store.path.stat().st_mode & 0o777) == 0o600
    data = json.loads(store.path.read_text())
    assert data["meta"]["totalEntries"] == 0
    assert data["entries"] == []


def test_update_commits_and_returns_document(store: Store) -> None:
    doc = store.update(_add("I WILL NOT A"))
    assert doc.total_entries == 1
    on_disk = json.loads(store.path.read_text())
    assert on_disk["meta"]["totalEntries"] == 1
    assert on_disk["entries"][0]["violation"] == "I WILL NOT A"
    assert store.read().entries[0].violation == "I WILL NOT A"


def test_existing_file_mode_is_preserved(store: Store) -> None:
    store.initialize()
    os.chmod(store.path, 0o640)
    store.update(_add("I WILL NOT A"))
    assert (store.path.stat().st_mode & 0o777) == 0o640


def test_failing_mutation_leaves_file_untouched(store: Store) -> None:
    store.update(_add("I WILL NOT A"))
    before = store.path.read_bytes()

    def boom(doc: Document) -> Document:
        doc.entries.clear()
        raise ValueError("rejected")

    with pytest.raises(ValueError, match="rejected"):
        store.update(boom)
    assert store.path.read_bytes() == before
    assert not store.lock.path.exists()
    assert store.leftover_temp_files() == []


def test_failed_rename_raises_store_io_error_and_cleans_up(store: Store, monkeypatch: pytest.MonkeyPatch) -> None:
    store.update(_add("I WILL NOT A"))
    before = store.path.read_bytes()

    def broken_replace(src: object, dst: object) -> None:
        raise OSError("disk on fire")

    monkeypatch.setattr("blackboard.store.os.replace", broken_replace)
    with pytest.raises(StoreIOError):
        store.update(_add("I WILL NOT B"))
    assert store.path.read_bytes() == before
    assert store.leftover_temp_files() == []
    assert not store.lock.path.exists()


def test_unserializable_document_cleans_up(store: Store) -> None:
    def bad(doc: Document) -> Document:
        doc.entries.append(Entry(id="bb-x", violation="I WILL NOT A", repetitions=object()))  # type: ignore[arg-type]
        return doc

    with pytest.raises(TypeError):
        store.update(bad)
    assert not store.path.exists()
    assert store.leftover_temp_files() == []


@pytest.mark.parametrize("raw", [b'{"entries": [', b'{"entries": [], "x": "\xff\xfe"}'])
def test_malformed_file_is_reported_and_never_overwritten(store: Store, raw: bytes) -> None:
    store.path.write_bytes(raw)
    with pytest.raises(MalformedDocumentError):
        store.read()
    with pytest.raises(MalformedDocumentError):
        store.update(_add("I WILL NOT A"))
    assert store.path.read_bytes() == raw
    assert not store.lock.path.exists()


def test_wrong_shape_is_malformed(store: Store) -> None:
    store.path.write_text('{"entries": "nope"}')
    with pytest.raises(MalformedDocumentError):
        store.read()


def test_unreadable_path_is_store_io_error(tmp_path: Path) -> None:
    target = tmp_path / "blackboard.json"
    target.mkdir()
    with pytest.raises(StoreIOError):
        Store(target).read()


def test_update_times_out_when_lock_is_held(store: Store) -> None:
    store.lock.path.parent.mkdir(parents=True, exist_ok=True)
    store.lock.path.write_text(str(os.getpid()))
    store.lock_timeout = 0.1
    called = []
    with pytest.raises(LockTimeoutError):
        store.update(lambda doc: called.append(doc) or doc)
    assert called == []
    assert not store.path.exists()
    # Someone else's marker is not ours to remove.
    assert store.lock.path.exists()


def test_temp_files_use_pid_in_name(store: Store, monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[str] = []
    real_replace = os.replace

    def spy(src: str, dst: str) -> None:
        seen.append(os.path.basename(src))
        real_replace(src, dst)

    monkeypatch.setattr("blackboard.store.os.replace", spy)
    store.initialize()
    assert len(seen) == 1
    assert seen[0].startswith(f"blackboard.json.tmp.{os.getpid()}.")


def test_readers_never_see_partial_documents(store: Store) -> None:
    store.initialize()
    stop = threading.Event()
    errors: list[Exception] = []
    reads = 0

    def reader() -> None:
        nonlocal reads
        while not stop.is_set():
            try:
                json.loads(store.path.read_text())
                reads += 1
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

    t = threading.Thread(target=reader)
    t.start()
    try:
        for i in range(100):
            store.update(_add(f"I WILL NOT {'X' * 500} {i}"))
    finally:
        stop.set()
        t.join()
    assert errors == []
    assert reads > 0
    assert store.read().total_entries == 100
