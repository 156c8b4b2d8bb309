"""Pre-edit gate: refuse edits that delete too much structure at once."""

from __future__ import annotations

from dataclasses import dataclass

from editguard_core.analyzer import StructuralChange


@dataclass
class GateThresholds:
    max_deleted_functions: int = 3
    max_structural_change_percent: int = 50
    # Files shorter than this are too small for a percentage to mean much.
    min_lines_for_percent: int = 20

    @classmethod
    def from_config(cls, config: dict) -> GateThresholds:
        no_nuke = config.get("no_nuke") or {}
        defaults = cls()
        return cls(
            max_deleted_functions=no_nuke.get("max_deleted_functions", defaults.max_deleted_functions),
            max_structural_change_percent=no_nuke.get(
                "max_structural_change_percent", defaults.max_structural_change_percent
            ),
            min_lines_for_percent=no_nuke.get("min_lines_for_percent", defaults.min_lines_for_percent),
        )


@dataclass
class GateDecision:
    allowed: bool
    change: StructuralChange
    reason: str | None = None


def evaluate_edit(change: StructuralChange, thresholds: GateThresholds | None = None) -> GateDecision:
    """Decide whether an edit may proceed.

    An analyzer error carries no signal, so the gate fails open rather than
    blocking an edit it cannot judge.
    """
    thresholds = thresholds or GateThresholds()

    if change.error is not None:
        return GateDecision(allowed=True, change=change)

    if change.deleted_functions > thresholds.max_deleted_functions:
        return GateDecision(
            allowed=False,
            change=change,
            reason=(
                f"Edit deletes {change.deleted_functions} functions "
                f"(limit {thresholds.max_deleted_functions}). Make smaller, incremental changes."
            ),
        )

    if (
        change.before_lines >= thresholds.min_lines_for_percent
        and change.structural_change_percent > thresholds.max_structural_change_percent
    ):
        return GateDecision(
            allowed=False,
            change=change,
            reason=(
                f"Edit changes {change.structural_change_percent}% of the file's functions "
                f"(limit {thresholds.max_structural_change_percent}%). Make smaller, incremental changes."
            ),
        )

    return GateDecision(allowed=True, change=change)
