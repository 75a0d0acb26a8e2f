"""switchboard history — list recent agent sessions."""

from __future__ import annotations

from pathlib import Path

import click

from switchboard.agent.helpers import short_id
from switchboard.config.parser import ConfigError, load_config
from switchboard.history import HistoryStore


@click.command()
@click.option(
    "-f", "--file", "config_file", type=click.Path(), help="Config file path."
)
@click.option(
    "-n", "--limit", type=int, default=10, show_default=True, help="Entries to show."
)
def history(config_file: str | None, limit: int) -> None:
    """List recent sessions from the agent CLI history."""
    try:
        config = load_config(Path(config_file) if config_file else None)
    except ConfigError as exc:
        click.echo(f"Error: {exc}", err=True)
        raise SystemExit(1) from exc

    entries = HistoryStore(config.claude_dir).recent(limit)
    if not entries:
        click.echo("No recent sessions found.")
        return

    for entry in entries:
        stamp = entry.timestamp[:16].replace("T", " ") if entry.timestamp else "-"
        line = f"{short_id(entry.session_id)}  {stamp:<16}  {entry.project_path}"
        if entry.summary:
            line += f"  {entry.summary[:50]}"
        click.echo(line)
