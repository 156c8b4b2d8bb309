"""stats command — aggregate risk per file across the event log."""

from __future__ import annotations

import asyncio
from collections import Counter
from dataclasses import dataclass

import click
from rich.console import Console
from rich.table import Table

from editguard_cli.commands.common import build_event_log, styled_level
from editguard_core.scoring import HIGH, LEVEL_RANK, LOW, MEDIUM
from editguard_store.models import (
    EDIT_ALLOWED,
    EDIT_BLOCKED,
    LLM_ANALYSIS,
    RISK_ASSESSED,
    SANITY_FAILED,
    Event,
)

console = Console()


@dataclass
class FileStats:
    edit_count: int = 0
    worst_level: str | None = None


def aggregate_file_stats(events: list[Event]) -> dict[str, FileStats]:
    """Per-file edit count (gate decisions) and worst risk level seen."""
    stats: dict[str, FileStats] = {}
    for event in events:
        file_path = event.file
        if not file_path:
            continue
        if event.type in (EDIT_ALLOWED, EDIT_BLOCKED):
            stats.setdefault(file_path, FileStats()).edit_count += 1
        elif event.type == RISK_ASSESSED:
            level = event.text("level")
            if level not in LEVEL_RANK:
                continue
            entry = stats.setdefault(file_path, FileStats())
            if entry.worst_level is None or LEVEL_RANK[level] > LEVEL_RANK[entry.worst_level]:
                entry.worst_level = level
    return stats


@click.command("stats")
@click.option("--session", "session_id", default=None, help="Only count events from this session.")
@click.option("--top", default=10, show_default=True, help="Number of files to show.")
@click.pass_context
def stats_cmd(ctx, session_id: str | None, top: int):
    """Show a per-file risk map and event totals.

    Files are ranked by their worst risk level, then by how often they were
    edited, which points at the parts of the codebase the agent keeps
    touching dangerously.
    """

    async def _run():
        log = build_event_log(ctx)
        try:
            if session_id:
                return await log.read_by_session(session_id)
            return await log.read()
        finally:
            await log.aclose()

    events = asyncio.run(_run())
    if not events:
        console.print("[yellow]No events recorded yet.[/yellow]")
        return

    type_counter: Counter[str] = Counter(e.type for e in events)
    level_counter: Counter[str] = Counter(
        e.text("level") for e in events if e.type == RISK_ASSESSED and e.text("level") in LEVEL_RANK
    )
    assessed = sum(level_counter.values())

    # --- Summary ---
    title = f" for session [cyan]{session_id}[/cyan]" if session_id else ""
    console.print(f"\n[bold]Edit stats{title}[/bold]")
    console.print(f"  Gate decisions:  {type_counter[EDIT_ALLOWED] + type_counter[EDIT_BLOCKED]}")
    console.print(f"  Blocked edits:   {type_counter[EDIT_BLOCKED]}")
    console.print(f"  Sanity failures: {type_counter[SANITY_FAILED]}")
    console.print(f"  Risk assessed:   {assessed}")
    console.print(f"  Explanations:    {type_counter[LLM_ANALYSIS]}")

    # --- Level breakdown ---
    if assessed:
        level_table = Table(title="Risk Levels", show_header=True)
        level_table.add_column("Level", style="bold")
        level_table.add_column("Count", justify="right")
        level_table.add_column("% of total", justify="right")
        for level in (HIGH, MEDIUM, LOW):
            count = level_counter.get(level, 0)
            level_table.add_row(styled_level(level), str(count), f"{count / assessed * 100:.1f}%")
        console.print(level_table)

    # --- Per-file risk map ---
    file_stats = aggregate_file_stats(events)
    if file_stats:
        ranked = sorted(
            file_stats.items(),
            key=lambda item: (-LEVEL_RANK.get(item[1].worst_level, -1), -item[1].edit_count, item[0]),
        )
        file_table = Table(title=f"Top {top} Riskiest Files", show_header=True)
        file_table.add_column("File")
        file_table.add_column("Edits", justify="right")
        file_table.add_column("Worst risk")
        for file_path, entry in ranked[:top]:
            worst = styled_level(entry.worst_level) if entry.worst_level else "[dim]unscored[/dim]"
            file_table.add_row(file_path, str(entry.edit_count), worst)
        console.print(file_table)
