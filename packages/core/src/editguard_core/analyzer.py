"""Structural change analysis between two snapshots of the same file."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from editguard_core.symbols import SymbolExtractor, SymbolParseError, SymbolTable, extractor_for_path

logger = logging.getLogger(__name__)


@dataclass
class StructuralChange:
    structural_change_percent: int = 0
    deleted_functions: int = 0
    added_functions: int = 0
    deleted_exports: int = 0
    error: str | None = None
    # Not part of the serialised result; the edit gate uses it to skip the
    # percent check on tiny files.
    before_lines: int = 0

    def to_dict(self) -> dict:
        d = {
            "structuralChangePercent": self.structural_change_percent,
            "deletedFunctions": self.deleted_functions,
            "addedFunctions": self.added_functions,
            "deletedExports": self.deleted_exports,
        }
        if self.error is not None:
            d["error"] = self.error
        return d


def _percent(changed: int, total: int) -> int:
    """round(100 * changed / total), halves rounded up, 0 when total is 0."""
    if total == 0:
        return 0
    return (200 * changed + total) // (2 * total)


def compare_symbols(before: SymbolTable, after: SymbolTable) -> StructuralChange:
    deleted = len(before.functions - after.functions)
    added = len(after.functions - before.functions)
    return StructuralChange(
        structural_change_percent=_percent(deleted + added, len(before.functions) + len(after.functions)),
        deleted_functions=deleted,
        added_functions=added,
        deleted_exports=len(before.exports - after.exports),
    )


def analyze_sources(before_source: str, after_source: str, extractor: SymbolExtractor) -> StructuralChange:
    """Diff two in-memory snapshots. Never raises."""
    try:
        before = extractor.extract(before_source)
        after = extractor.extract(after_source)
    except SymbolParseError as e:
        logger.debug("%s could not parse snapshot, treating as zero signal: %s", extractor.name, e)
        return StructuralChange(error=f"Parse error: {e}")

    change = compare_symbols(before, after)
    change.before_lines = len(before_source.splitlines())
    return change


def analyze_structural_change(
    before_path: str | Path,
    after_path: str | Path,
    extractor: SymbolExtractor | None = None,
) -> StructuralChange:
    """Compare the function and export sets of two files.

    Never raises: returns a StructuralChange with ``error`` set when
    either file cannot be read. ``extractor`` defaults to the one matching
    ``after_path``'s suffix.
    """
    sources = []
    for path in (before_path, after_path):
        try:
            sources.append(Path(path).read_text(encoding="utf-8", errors="replace"))
        except OSError:
            return StructuralChange(error=f"File not found: {path}")

    if extractor is None:
        extractor = extractor_for_path(str(after_path))
    return analyze_sources(sources[0], sources[1], extractor)
