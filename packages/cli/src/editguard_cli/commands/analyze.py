"""analyze command — structural change between two snapshots."""

from __future__ import annotations

import json

import click

from editguard_core.analyzer import analyze_structural_change
from editguard_core.symbols import extractor_for_path


@click.command("analyze")
@click.argument("before_path")
@click.argument("after_path")
@click.option(
    "--as",
    "as_path",
    default=None,
    help="Logical file name used to pick the symbol extractor (defaults to AFTER_PATH).",
)
def analyze_cmd(before_path: str, after_path: str, as_path: str | None):
    """Print function/export deltas between BEFORE_PATH and AFTER_PATH as JSON.

    Always exits 0 so hook scripts can parse the output unconditionally; an
    unreadable input is reported in the "error" field with zeroed counts.
    """
    extractor = extractor_for_path(as_path or after_path)
    change = analyze_structural_change(before_path, after_path, extractor=extractor)
    click.echo(json.dumps(change.to_dict(), indent=2))
