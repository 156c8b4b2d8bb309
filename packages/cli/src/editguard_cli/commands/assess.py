"""check / assess / sanity commands — run the edit pipeline for one file."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table

from editguard_cli.commands.common import build_guard, styled_level

console = Console()


def _resolve_after(ctx: click.Context, file_path: str, after: str | None) -> Path:
    if after:
        return Path(after)
    return Path(ctx.obj.get("workspace", ".")) / file_path


@click.command("check")
@click.argument("file_path")
@click.option("--before", "before_path", default=None, help="Snapshot before the edit. Omit for a new file.")
@click.option("--after", "after_path", default=None, help="Proposed content. Defaults to FILE_PATH.")
@click.option("--dry-run", is_flag=True, help="Decide without recording an event.")
@click.pass_context
def check_cmd(ctx, file_path: str, before_path: str | None, after_path: str | None, dry_run: bool):
    """Pre-edit gate: allow or block a destructive edit to FILE_PATH.

    Exits with status 2 when the edit is blocked so hook scripts can refuse it.
    """
    after = _resolve_after(ctx, file_path, after_path)

    async def _run():
        async with build_guard(ctx, enrich=False, dry_run=dry_run) as guard:
            return await guard.check_edit(file_path, before_path, after)

    decision = asyncio.run(_run())
    if decision.allowed:
        console.print(f"[green]Allowed[/green] {file_path}")
        return
    console.print(f"[red]Blocked[/red] {file_path}: {decision.reason}")
    ctx.exit(2)


@click.command("assess")
@click.argument("file_path")
@click.option("--before", "before_path", default=None, help="Snapshot before the edit. Omit for a new file.")
@click.option("--after", "after_path", default=None, help="Content after the edit. Defaults to FILE_PATH.")
@click.option(
    "--diff",
    "diff_file",
    type=click.Path(exists=True, dir_okay=False),
    default=None,
    help="Unified diff of the edit; counted for scoring and published for enrichment.",
)
@click.option("--diff-lines", type=int, default=None, help="Diff size in lines when no --diff file is given.")
@click.option("--sanity-failed", is_flag=True, help="The external static checks failed for this edit.")
@click.option("--tool", "tools", multiple=True, help="Static-check tool that ran (repeatable).")
@click.option("--wait", is_flag=True, help="Wait for the LLM explanation before exiting.")
@click.option("--json", "as_json", is_flag=True, help="Print the assessment as JSON.")
@click.option("--dry-run", is_flag=True, help="Score without recording an event or publishing the diff.")
@click.pass_context
def assess_cmd(
    ctx,
    file_path: str,
    before_path: str | None,
    after_path: str | None,
    diff_file: str | None,
    diff_lines: int | None,
    sanity_failed: bool,
    tools: tuple[str, ...],
    wait: bool,
    as_json: bool,
    dry_run: bool,
):
    """Score an applied edit to FILE_PATH and record a risk-assessed event.

    Medium and high scores are queued for an LLM explanation when an API key
    is configured. Without --wait the process exits immediately and the
    queued job is picked up later by `editguard enrich`.
    """
    after = _resolve_after(ctx, file_path, after_path)
    diff = Path(diff_file).read_text(encoding="utf-8", errors="replace") if diff_file else None
    if diff is not None:
        diff_line_count = len(diff.splitlines())
    else:
        diff_line_count = diff_lines or 0

    async def _run():
        async with build_guard(ctx, enrich=wait, dry_run=dry_run) as guard:
            if diff is not None and not dry_run:
                await guard.write_diff_sidecar(file_path, diff)
            assessment = await guard.assess_edit(
                file_path,
                before_path,
                after,
                sanity_passed=not sanity_failed,
                diff_line_count=diff_line_count,
                sanity_tools=tools,
            )
            if wait:
                await guard.drain()
            return assessment

    assessment = asyncio.run(_run())
    risk = assessment.risk

    if as_json:
        click.echo(
            json.dumps(
                {
                    "file": file_path,
                    "score": risk.score,
                    "level": risk.level,
                    "reasons": risk.reasons_as_dicts(),
                    "structuralChange": assessment.change.to_dict(),
                    "recorded": assessment.recorded,
                },
                indent=2,
            )
        )
        return

    console.print(f"[bold]{file_path}[/bold]  score [bold]{risk.score}[/bold]  level {styled_level(risk.level)}")
    if risk.reasons:
        table = Table(show_header=True, header_style="bold cyan")
        table.add_column("Rule", style="bold")
        table.add_column("Points", justify="right")
        table.add_column("Reason")
        for reason in risk.reasons:
            table.add_row(reason.rule, f"{reason.points:+d}", reason.description)
        console.print(table)
    if not assessment.recorded and not dry_run:
        console.print("[yellow]Warning: the event could not be written to the log.[/yellow]")


@click.command("sanity")
@click.argument("file_path")
@click.option("--passed/--failed", default=True, show_default=True, help="Outcome of the static checks.")
@click.option("--tool", "tools", multiple=True, help="Static-check tool that ran (repeatable).")
@click.option("--error", "errors", multiple=True, help="Error message reported by a tool (repeatable).")
@click.option("--retry-count", type=int, default=1, show_default=True)
@click.option("--max-retries", type=int, default=3, show_default=True)
@click.option("--duration", type=float, default=None, help="Seconds the checks took.")
@click.pass_context
def sanity_cmd(
    ctx,
    file_path: str,
    passed: bool,
    tools: tuple[str, ...],
    errors: tuple[str, ...],
    retry_count: int,
    max_retries: int,
    duration: float | None,
):
    """Record the outcome of external static checks for FILE_PATH."""

    async def _run():
        async with build_guard(ctx, enrich=False) as guard:
            return await guard.record_sanity(
                file_path,
                passed,
                list(tools),
                errors=list(errors),
                retry_count=retry_count,
                max_retries=max_retries,
                duration=duration,
            )

    recorded = asyncio.run(_run())
    if not recorded:
        console.print("[yellow]Warning: the event could not be written to the log.[/yellow]")
        return
    outcome = "[green]passed[/green]" if passed else "[red]failed[/red]"
    console.print(f"Recorded sanity check {outcome} for {file_path}")
