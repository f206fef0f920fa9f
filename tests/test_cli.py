"""CLI commands through click's test runner."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from blackboard.cli import cli


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


def _doc(data_dir: Path) -> dict:
    return json.loads((data_dir / "blackboard.json").read_text())


def test_add_then_duplicate(runner: CliRunner, bb_env: Path) -> None:
    result = runner.invoke(cli, ["add", "hallucinate file paths", "--agent", "bart", "--severity", "low",
                                 "--category", "bogus"])
    assert result.exit_code == 0, result.output
    assert "Added: I WILL NOT HALLUCINATE FILE PATHS" in result.output

    result = runner.invoke(cli, ["add", "Hallucinate File Paths"])
    assert result.exit_code == 0, result.output
    assert "Incremented repetitions to 2" in result.output

    entries = _doc(bb_env)["entries"]
    assert len(entries) == 1
    assert entries[0]["category"] == "custom"
    assert entries[0]["repetitions"] == 2


def test_add_empty_fails(runner: CliRunner, bb_env: Path) -> None:
    result = runner.invoke(cli, ["add", "   "])
    assert result.exit_code == 1
    assert "Violation text required" in result.output
    assert not (bb_env / "blackboard.json").exists()


def test_list_and_agent(runner: CliRunner, bb_env: Path) -> None:
    result = runner.invoke(cli, ["list"])
    assert result.exit_code == 0
    assert "The blackboard is clean" in result.output

    runner.invoke(cli, ["add", "one", "--agent", "bart"])
    runner.invoke(cli, ["add", "two", "--agent", "lisa"])
    result = runner.invoke(cli, ["ls"])
    assert "I WILL NOT ONE" in result.output
    assert "I WILL NOT TWO" in result.output

    result = runner.invoke(cli, ["agent", "bart"])
    assert result.exit_code == 0
    assert "I WILL NOT ONE" in result.output
    assert "I WILL NOT TWO" not in result.output


def test_check_shows_totals(runner: CliRunner, bb_env: Path) -> None:
    runner.invoke(cli, ["add", "a", "--severity", "critical"])
    runner.invoke(cli, ["add", "a"])
    result = runner.invoke(cli, ["stats"])
    assert result.exit_code == 0
    assert "Total Entries:      1" in result.output
    assert "Total Repetitions:  2" in result.output
    assert "universal: 1" in result.output


def test_search(runner: CliRunner, bb_env: Path) -> None:
    runner.invoke(cli, ["add", "skip tests", "--context", "claimed pytest passed"])
    result = runner.invoke(cli, ["find", "PYTEST"])
    assert "I WILL NOT SKIP TESTS" in result.output
    result = runner.invoke(cli, ["search", "zzz"])
    assert "No matches found." in result.output


def test_violations_window(runner: CliRunner, bb_env: Path) -> None:
    runner.invoke(cli, ["add", "a"])
    result = runner.invoke(cli, ["violations", "--last", "24h"])
    assert result.exit_code == 0
    assert "I WILL NOT A" in result.output
    result = runner.invoke(cli, ["violations", "--last", "soon"])
    assert result.exit_code == 2


def test_delete_confirm_and_yes(runner: CliRunner, bb_env: Path) -> None:
    runner.invoke(cli, ["add", "a"])
    entry_id = _doc(bb_env)["entries"][0]["id"]

    result = runner.invoke(cli, ["delete", entry_id], input="n\n")
    assert "Cancelled." in result.output
    assert len(_doc(bb_env)["entries"]) == 1

    result = runner.invoke(cli, ["rm", entry_id], input="y\n")
    assert result.exit_code == 0, result.output
    assert "Deleted." in result.output
    assert _doc(bb_env)["meta"]["totalEntries"] == 0

    result = runner.invoke(cli, ["delete", entry_id, "--yes"])
    assert result.exit_code == 1
    assert f"Entry not found: {entry_id}" in result.output


def test_export_formats(runner: CliRunner, bb_env: Path) -> None:
    runner.invoke(cli, ["add", "a"])
    result = runner.invoke(cli, ["export", "--format", "csv"])
    assert result.output.splitlines()[0] == "id,agent,violation,severity,repetitions,timestamp,lastSeen"
    result = runner.invoke(cli, ["export", "--format", "md"])
    assert "| I WILL NOT A | universal | medium | 1 |" in result.output
    result = runner.invoke(cli, ["export"])
    assert json.loads(result.output)["meta"]["totalEntries"] == 1


def test_capture_accept_edit_skip(runner: CliRunner, bb_env: Path) -> None:
    result = runner.invoke(cli, ["capture", "You must not hallucinate file paths!"], input="y\n")
    assert result.exit_code == 0, result.output
    assert "Added to blackboard: I WILL NOT HALLUCINATE FILE PATHS" in result.output
    entry = _doc(bb_env)["entries"][0]
    assert entry["trigger"] == "capture"
    assert "must not hallucinate" in entry["context"]

    result = runner.invoke(cli, ["capture", "never do that again, don't rewrite history"], input="e\nforce push\n")
    assert result.exit_code == 0, result.output
    assert "I WILL NOT FORCE PUSH" in result.output

    result = runner.invoke(cli, ["capture", "you should not guess"], input="n\n")
    assert "Skipped." in result.output
    assert _doc(bb_env)["meta"]["totalEntries"] == 2

    result = runner.invoke(cli, ["capture", "all good here"])
    assert "No correction detected." in result.output


def test_init_writes_config_and_document(runner: CliRunner, bb_env: Path) -> None:
    result = runner.invoke(cli, ["init"])
    assert result.exit_code == 0, result.output
    assert (bb_env / "blackboard.toml").exists()
    assert _doc(bb_env)["entries"] == []
    result = runner.invoke(cli, ["init"])
    assert "already exists" in result.output


def test_log_file_is_owner_only_and_records_events(runner: CliRunner, bb_env: Path) -> None:
    runner.invoke(cli, ["add", "a"])
    log_file = bb_env / "blackboard.log"
    assert log_file.exists()
    assert (log_file.stat().st_mode & 0o777) == 0o600
    assert "inserted bb-" in log_file.read_text()


@pytest.mark.parametrize("raw", [b"{ not json", b'{"entries": [], "x": "\xff"}'])
def test_malformed_document_is_reported(runner: CliRunner, bb_env: Path, raw: bytes) -> None:
    (bb_env / "blackboard.json").write_bytes(raw)
    for args in (["add", "a"], ["list"]):
        result = runner.invoke(cli, args)
        assert result.exit_code == 1
        assert "refusing to overwrite" in result.output
    assert (bb_env / "blackboard.json").read_bytes() == raw


def test_lock_timeout_is_reported(runner: CliRunner, bb_env: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    import os

    monkeypatch.setenv("BLACKBOARD_LOCK_TIMEOUT", "0.2")
    (bb_env / ".blackboard.lock").write_text(str(os.getpid()))
    result = runner.invoke(cli, ["add", "a"])
    assert result.exit_code == 1
    assert "Could not acquire lock" in result.output
