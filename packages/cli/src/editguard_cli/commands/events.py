"""events command — display recorded events from the log."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console
from rich.table import Table

from editguard_cli.commands.common import build_event_log, styled_level
from editguard_store.models import (
    EDIT_ALLOWED,
    EDIT_BLOCKED,
    EVENT_TYPES,
    LLM_ANALYSIS,
    RISK_ASSESSED,
    SANITY_FAILED,
    SANITY_PASSED,
    Event,
)

console = Console()

_TYPE_STYLE = {
    EDIT_BLOCKED: "red",
    EDIT_ALLOWED: "green",
    SANITY_FAILED: "red",
    SANITY_PASSED: "green",
    RISK_ASSESSED: "cyan",
    LLM_ANALYSIS: "magenta",
}


def _summary(event: Event) -> str:
    data = event.data
    if event.type == RISK_ASSESSED:
        return f"score {data.get('rulesScore', 0)} {styled_level(event.text('level'))}"
    if event.type == EDIT_BLOCKED:
        return str(data.get("reason", ""))
    if event.type == LLM_ANALYSIS:
        return str(data.get("reasoning", ""))[:60]
    if event.type == SANITY_FAILED:
        errors = data.get("errors")
        return f"{event.text('tool')}: {len(errors) if isinstance(errors, list) else 0} error(s)"
    return ""


@click.command("events")
@click.option("--session", "session_id", default=None, help="Filter by session id.")
@click.option("--type", "event_type", type=click.Choice(EVENT_TYPES), default=None, help="Filter by event type.")
@click.option("--limit", default=20, show_default=True, help="Maximum number of events to show.")
@click.pass_context
def events_cmd(ctx, session_id: str | None, event_type: str | None, limit: int):
    """Show recorded events, most recent first."""

    async def _run():
        log = build_event_log(ctx)
        try:
            return await log.read()
        finally:
            await log.aclose()

    events = asyncio.run(_run())
    if session_id:
        events = [e for e in events if e.session_id == session_id]
    if event_type:
        events = [e for e in events if e.type == event_type]
    if not events:
        console.print("[yellow]No events found.[/yellow]")
        return

    # Show most recent first, capped at --limit.
    events = list(reversed(events))[:limit]

    table = Table(title="Edit Events", show_header=True, header_style="bold cyan")
    table.add_column("Time", width=19)
    table.add_column("Session", width=8)
    table.add_column("Type", width=14)
    table.add_column("File", max_width=40)
    table.add_column("Details", max_width=60)

    for e in events:
        style = _TYPE_STYLE.get(e.type, "white")
        table.add_row(
            e.timestamp[:19].replace("T", " "),
            e.session_id[:8],
            f"[{style}]{e.type}[/{style}]",
            e.file,
            _summary(e),
        )

    console.print(table)
