"""Helpers shared by the editguard subcommands."""

from __future__ import annotations

from pathlib import Path

import click

from editguard_core.guard import EditGuard
from editguard_store.jsonfile import DEFAULT_LOG_PATH, JsonFileEventLog
from editguard_store.noop import NoOpEventLog

LEVEL_STYLE = {"low": "green", "medium": "yellow", "high": "red"}


def build_guard(ctx: click.Context, enrich: bool = True, dry_run: bool = False) -> EditGuard:
    """Build the EditGuard for this invocation from the group's config.

    Must be called inside the coroutine that uses it: the guard's queues and
    worker tasks belong to the running event loop. A dry run records nothing.
    """
    obj = ctx.obj or {}
    config = dict(obj.get("config") or {})
    if not enrich or dry_run:
        config["enrich"] = False
    return EditGuard(
        config,
        workspace_root=obj.get("workspace", "."),
        session_id=obj.get("session_id"),
        event_log=NoOpEventLog() if dry_run else None,
    )


def build_event_log(ctx: click.Context) -> JsonFileEventLog:
    obj = ctx.obj or {}
    config = obj.get("config") or {}
    return JsonFileEventLog(Path(obj.get("workspace", ".")) / config.get("log_path", DEFAULT_LOG_PATH))


def styled_level(level: str) -> str:
    style = LEVEL_STYLE.get(level, "white")
    return f"[{style}]{level}[/{style}]"
