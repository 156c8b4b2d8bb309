"""enrich command — explain risky events already in the log."""

from __future__ import annotations

import asyncio

import click
from rich.console import Console

from editguard_cli.commands.common import build_guard
from editguard_store.models import LLM_ANALYSIS

console = Console()


@click.command("enrich")
@click.pass_context
def enrich_cmd(ctx):
    """Request LLM explanations for every medium/high-risk event in the log.

    Calls are spaced by `min_interval_seconds`; events are explained at most
    once per run.
    """

    async def _run():
        async with build_guard(ctx) as guard:
            if guard.dispatcher is None:
                return None
            queued = await guard.enrich_pending()
            await guard.drain()
            events = await guard.event_log.read_by_type(LLM_ANALYSIS)
            return queued, len(events)

    result = asyncio.run(_run())
    if result is None:
        provider = ctx.obj["config"].get("provider", "anthropic")
        raise click.UsageError(
            f"No API key configured for provider '{provider}'. Set the provider's API key "
            "environment variable (e.g. ANTHROPIC_API_KEY) to enable enrichment."
        )

    queued, total = result
    if not queued:
        console.print("[yellow]No medium or high-risk events to explain.[/yellow]")
        return
    console.print(f"Processed {queued} event(s); the log now holds {total} explanation(s).")
