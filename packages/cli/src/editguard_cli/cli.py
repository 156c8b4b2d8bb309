"""CLI entry point for editguard.

Commands:
  analyze  — print the structural change between two snapshots as JSON
  check    — pre-edit gate: allow or block a destructive edit
  assess   — score an applied edit and record it
  sanity   — record the outcome of external static checks
  enrich   — explain medium/high-risk events already in the log
  events   — display recorded events
  stats    — aggregate risk per file
"""

from __future__ import annotations

import importlib.metadata
import logging
import os

import click
import yaml
from rich.console import Console
from rich.logging import RichHandler

from editguard_cli.commands.analyze import analyze_cmd
from editguard_cli.commands.assess import assess_cmd, check_cmd, sanity_cmd
from editguard_cli.commands.enrich import enrich_cmd
from editguard_cli.commands.events import events_cmd
from editguard_cli.commands.stats import stats_cmd


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _version() -> str:
    try:
        return importlib.metadata.version("editguard")
    except importlib.metadata.PackageNotFoundError:
        return "unknown"


@click.group()
@click.version_option(version=_version(), prog_name="editguard")
@click.option(
    "--config",
    "config_path",
    default=".editguard.yml",
    show_default=True,
    help="Path to the configuration file.",
    envvar="EDITGUARD_CONFIG",
)
@click.option(
    "--workspace",
    default=".",
    show_default=True,
    type=click.Path(file_okay=False),
    help="Workspace root; the event log and edited files are resolved against it.",
    envvar="EDITGUARD_WORKSPACE",
)
@click.option(
    "--session",
    "session_id",
    default=None,
    help="Session identifier stamped on recorded events. Generated when omitted.",
    envvar="EDITGUARD_SESSION_ID",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(ctx: click.Context, config_path: str, workspace: str, session_id: str | None, verbose: bool):
    """Edit-safety gate for AI-driven code changes."""
    from editguard_core.config import load_config

    _configure_logging(verbose)
    ctx.ensure_object(dict)

    # A relative config path is looked up inside the workspace.
    if not os.path.isabs(config_path) and not os.path.exists(config_path):
        config_path = os.path.join(workspace, config_path)
    try:
        config = load_config(config_path)
    except (ValueError, OSError, yaml.YAMLError) as e:
        raise click.UsageError(f"Could not load {config_path}: {e}")

    ctx.obj["config"] = config
    ctx.obj["workspace"] = workspace
    ctx.obj["session_id"] = session_id


main.add_command(analyze_cmd)
main.add_command(check_cmd)
main.add_command(assess_cmd)
main.add_command(sanity_cmd)
main.add_command(enrich_cmd)
main.add_command(events_cmd)
main.add_command(stats_cmd)
