"""blackboard CLI — record "I WILL NOT ..." violations in a shared JSON file.

Commands:
    blackboard init                      write blackboard.toml in the data dir
    blackboard add TEXT                  add a violation (or bump a duplicate)
    blackboard list [--agent NAME]       list entries, most repeated first
    blackboard agent NAME                entries for an agent (plus universal)
    blackboard check                     statistics
    blackboard violations --last 24h     recently seen violations
    blackboard search QUERY              substring search
    blackboard delete ID                 delete an entry
    blackboard export --format csv       export as json / csv / md
    blackboard capture [TEXT]            detect a correction and offer to save it
"""

from __future__ import annotations

import logging
import os
import sys
from typing import TYPE_CHECKING

import click

from blackboard.capture import detect
from blackboard.config import BlackboardConfig, init_config, load_config
from blackboard.errors import BlackboardError
from blackboard.export import to_csv, to_json, to_markdown
from blackboard.models import AGENTS, CATEGORIES, SEVERITIES, utc_now

if TYPE_CHECKING:
    from blackboard.models import Entry
    from blackboard.repository import EntryRepository

logger = logging.getLogger("blackboard.cli")

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
_SEVERITY_ICON = {"critical": "🔴", "high": "🟠", "medium": "🔵", "low": "🟢"}

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _setup_logging(cfg: BlackboardConfig) -> None:
    """Attach the owner-only append log to the blackboard logger tree."""
    root_logger = logging.getLogger("blackboard")
    target = os.path.abspath(cfg.log_file)
    for h in list(root_logger.handlers):
        if isinstance(h, logging.FileHandler):
            if h.baseFilename == target:
                return
            root_logger.removeHandler(h)
            h.close()
    try:
        cfg.ensure_dirs()
        fd = os.open(cfg.log_file, os.O_CREAT | os.O_APPEND | os.O_WRONLY, 0o600)
        os.close(fd)
        os.chmod(cfg.log_file, 0o600)
        handler = logging.FileHandler(cfg.log_file, encoding="utf-8")
    except OSError as exc:
        click.echo(f"Warning: cannot open log file {cfg.log_file}: {exc}", err=True)
        return
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, cfg.log.level, logging.INFO))


def _load_cfg() -> BlackboardConfig:
    try:
        cfg = load_config()
    except BlackboardError as exc:
        raise click.ClickException(str(exc)) from exc
    _setup_logging(cfg)
    return cfg


def _repo() -> EntryRepository:
    return _load_cfg().open_repository()


def _fail(exc: BlackboardError) -> click.ClickException:
    logger.error("%s: %s", type(exc).__name__, exc)
    return click.ClickException(str(exc))


def _echo_entries(entries: list[Entry]) -> None:
    for e in entries:
        click.echo(f"{_SEVERITY_ICON.get(e.severity, '•')} {e.violation}")
        click.echo(f"   Agent: {e.agent} | Reps: {e.repetitions} | ID: {e.id}")


def _parse_hours(value: str) -> float:
    try:
        hours = float(value.lower().removesuffix("h"))
    except ValueError as exc:
        raise click.BadParameter(f"expected hours like 24 or 24h, got {value!r}") from exc
    if hours <= 0:
        raise click.BadParameter("hours must be positive")
    return hours


# ---------------------------------------------------------------------------
# Root group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(package_name="blackboard")
def cli() -> None:
    """blackboard — a shared log of things agents WILL NOT do again."""


# ---------------------------------------------------------------------------
# blackboard init
# ---------------------------------------------------------------------------


@cli.command()
def init() -> None:
    """Write a default blackboard.toml and create the document."""
    cfg = _load_cfg()
    try:
        config_path = init_config(cfg.root)
        click.echo(f"Created {config_path}")
    except FileExistsError:
        click.echo("blackboard.toml already exists — skipping")

    cfg = _load_cfg()
    store = cfg.open_store()
    try:
        doc = store.initialize()
    except BlackboardError as exc:
        raise _fail(exc) from exc
    click.echo(f"Document  : {cfg.data_file} ({doc.total_entries} entries)")
    click.echo(f"Log       : {cfg.log_file}")


# ---------------------------------------------------------------------------
# blackboard add / delete
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("violation")
@click.option("--severity", default="medium", show_default=True, help=f"One of {', '.join(SEVERITIES)}")
@click.option("--agent", default="universal", show_default=True, help=f"One of {', '.join(AGENTS)}")
@click.option("--category", default="custom", show_default=True, help=f"One of {', '.join(CATEGORIES)}")
@click.option("--context", default=None, help="Free-text note stored with the entry")
def add(violation: str, severity: str, agent: str, category: str, context: str | None) -> None:
    """Add a violation (the I WILL NOT prefix is added if missing).

    \b
    blackboard add "echo secrets to terminal" --severity critical
    """
    repo = _repo()
    try:
        entry = repo.insert(violation, context=context, agent=agent, severity=severity, category=category)
    except BlackboardError as exc:
        raise _fail(exc) from exc
    if entry.repetitions == 1:
        click.secho(f"Added: {entry.violation}", fg="green")
        click.echo(f"   ID: {entry.id}")
    else:
        click.secho(f"Entry exists. Incremented repetitions to {entry.repetitions}.", fg="yellow")
        click.echo(f"   ID: {entry.id}")


@cli.command()
@click.argument("entry_id")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
def delete(entry_id: str, yes: bool) -> None:
    """Delete an entry by ID."""
    repo = _repo()
    try:
        entry = repo.get(entry_id)
    except BlackboardError as exc:
        raise _fail(exc) from exc
    if not yes and not click.confirm(f"Delete: {entry.violation}?", default=False):
        click.echo("Cancelled.")
        return
    try:
        repo.delete(entry_id)
    except BlackboardError as exc:
        raise _fail(exc) from exc
    click.secho("Deleted.", fg="green")


# ---------------------------------------------------------------------------
# blackboard list / agent / search / violations
# ---------------------------------------------------------------------------


@cli.command("list")
@click.option("--agent", default=None, help="Only this agent's entries (plus universal)")
def list_cmd(agent: str | None) -> None:
    """List entries, most repeated first."""
    try:
        entries = _repo().list_entries(agent=agent)
    except BlackboardError as exc:
        raise _fail(exc) from exc
    if not entries:
        click.echo("No entries found. The blackboard is clean!")
        return
    _echo_entries(entries)


@cli.command()
@click.argument("name")
@click.pass_context
def agent(ctx: click.Context, name: str) -> None:
    """Entries for one agent (ralph, bart, lisa, marge, homer)."""
    ctx.invoke(list_cmd, agent=name)


@cli.command()
@click.argument("query")
def search(query: str) -> None:
    """Case-insensitive search over violation and context."""
    try:
        entries = _repo().search(query)
    except BlackboardError as exc:
        raise _fail(exc) from exc
    if not entries:
        click.echo("No matches found.")
        return
    for e in entries:
        snippet = e.context[:100] + ("..." if len(e.context) > 100 else "")
        click.echo(f"● {e.violation}  [{e.id}]")
        click.echo(f"  {snippet}")


@cli.command()
@click.option("--last", "last", default="24h", show_default=True, help="Window, e.g. 24h or 6")
def violations(last: str) -> None:
    """Violations created or seen recently."""
    hours = _parse_hours(last)
    try:
        entries = _repo().recent(hours)
    except BlackboardError as exc:
        raise _fail(exc) from exc
    click.echo(f"Violations in last {hours:g}h")
    if not entries:
        click.echo("No recent violations. Good behavior!")
        return
    for e in entries:
        click.echo(f"[{e.severity}] {e.violation}")
        click.echo(f"  Last seen: {e.last_seen}")


# ---------------------------------------------------------------------------
# blackboard check
# ---------------------------------------------------------------------------


@cli.command()
def check() -> None:
    """Show totals per severity and per agent."""
    try:
        stats = _repo().stats()
    except BlackboardError as exc:
        raise _fail(exc) from exc
    click.echo(f"Total Entries:      {stats.total_entries}")
    click.echo(f"Total Repetitions:  {stats.total_repetitions}")
    click.echo("")
    for severity, count in stats.by_severity.items():
        click.echo(f"{_SEVERITY_ICON[severity]} {severity.capitalize() + ':':<10} {count}")
    click.echo("")
    click.echo("By Agent:")
    if not stats.by_agent:
        click.echo("  (none)")
    for name, count in stats.by_agent.items():
        click.echo(f"  {name}: {count}")


# ---------------------------------------------------------------------------
# blackboard export
# ---------------------------------------------------------------------------


@cli.command()
@click.option(
    "--format", "fmt",
    type=click.Choice(["json", "csv", "md"]),
    default="json",
    show_default=True,
)
def export(fmt: str) -> None:
    """Write the blackboard to stdout."""
    repo = _repo()
    try:
        doc = repo.store.read()
    except BlackboardError as exc:
        raise _fail(exc) from exc
    if fmt == "csv":
        click.echo(to_csv(doc.entries), nl=False)
    elif fmt == "md":
        click.echo(to_markdown(doc.entries, exported_at=utc_now(), title=doc.title), nl=False)
    else:
        click.echo(to_json(doc))


# ---------------------------------------------------------------------------
# blackboard capture
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("text", required=False)
@click.option("--agent", default="universal", show_default=True)
@click.option("--severity", default="medium", show_default=True)
@click.option("--yes", "-y", is_flag=True, help="Save without asking")
def capture(text: str | None, agent: str, severity: str, yes: bool) -> None:
    """Detect a correction in TEXT (or stdin) and offer to save it.

    \b
    echo "you must not hallucinate file paths" | blackboard capture --yes
    """
    repo = _repo()
    if text is None:
        text = sys.stdin.read() if not sys.stdin.isatty() else ""
    found = detect(text)
    if found is None:
        click.echo("No correction detected.")
        return
    logger.info("capture detected: %s", found.violation)

    click.secho("BLACKBOARD CAPTURE DETECTED", bold=True)
    click.echo(f"  {found.violation}")
    violation = found.violation
    if not yes:
        choice = click.prompt(
            "Add this to the blackboard? [Y/n/e(dit)]",
            default="y",
            show_default=False,
            type=click.Choice(["y", "n", "e"], case_sensitive=False),
            show_choices=False,
        ).lower()
        if choice == "n":
            logger.info("capture skipped: %s", found.violation)
            click.echo("Skipped.")
            return
        if choice == "e":
            violation = click.prompt("Enter corrected violation (without 'I WILL NOT')")

    try:
        entry = repo.insert(
            violation, context=found.context, agent=agent, severity=severity, trigger="capture",
        )
    except BlackboardError as exc:
        raise _fail(exc) from exc
    logger.info("capture accepted: %s", entry.id)
    click.echo(f"Added to blackboard: {entry.violation}")


cli.add_command(list_cmd, "ls")
cli.add_command(check, "stats")
cli.add_command(search, "find")
cli.add_command(delete, "rm")


def main() -> None:
    cli()
