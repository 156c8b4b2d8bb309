"""Rules-based risk scoring for a single edit.

Rules are additive and evaluated in a fixed order; the order is part of the
output because ``reasons`` lists them as they fire. The raw sum may go
negative (test-file deduction) or above 100 before being clamped.

    protected_path            +30
    structural_change_high    +40   (> 75%)        } one of
    structural_change_medium  +25   (> 50%)        }
    deleted_functions_high    +35   (> 3 deleted)  } one of
    deleted_functions_low     +20   (> 0 deleted)  }
    sanity_failed             +20
    large_diff                +15   (> 200 lines)
    test_file                 -10
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

from editguard_core.utils.code import (
    DEFAULT_PROTECTED_FILES,
    DEFAULT_PROTECTED_PREFIXES,
    is_protected_path,
    is_test_file,
)

LOW, MEDIUM, HIGH = "low", "medium", "high"
LEVEL_RANK = {LOW: 0, MEDIUM: 1, HIGH: 2}

_LARGE_DIFF_LINES = 200


@dataclass
class RiskInput:
    file_path: str
    structural_change_percent: int
    deleted_functions: int
    sanity_passed: bool
    diff_line_count: int
    sanity_tools: tuple[str, ...] = ()


@dataclass
class RiskReason:
    rule: str
    points: int
    description: str


@dataclass
class RiskResult:
    score: int
    level: str
    reasons: list[RiskReason] = field(default_factory=list)

    def reasons_as_dicts(self) -> list[dict]:
        return [asdict(r) for r in self.reasons]


def level_from_score(score: int) -> str:
    if score <= 30:
        return LOW
    if score <= 60:
        return MEDIUM
    return HIGH


def compute_risk_score(
    risk_input: RiskInput,
    protected_prefixes: list[str] | None = None,
    protected_files: list[str] | None = None,
) -> RiskResult:
    prefixes = DEFAULT_PROTECTED_PREFIXES if protected_prefixes is None else protected_prefixes
    files = DEFAULT_PROTECTED_FILES if protected_files is None else protected_files
    reasons: list[RiskReason] = []

    if is_protected_path(risk_input.file_path, prefixes, files):
        reasons.append(
            RiskReason("protected_path", 30, f"File is in a protected path ({risk_input.file_path})")
        )

    percent = risk_input.structural_change_percent
    if percent > 75:
        reasons.append(
            RiskReason("structural_change_high", 40, f"Structural change is {percent}% (exceeds 75%)")
        )
    elif percent > 50:
        reasons.append(
            RiskReason("structural_change_medium", 25, f"Structural change is {percent}% (exceeds 50%)")
        )

    deleted = risk_input.deleted_functions
    if deleted > 3:
        reasons.append(RiskReason("deleted_functions_high", 35, f"{deleted} functions deleted (exceeds 3)"))
    elif deleted > 0:
        reasons.append(RiskReason("deleted_functions_low", 20, f"{deleted} function(s) deleted"))

    if not risk_input.sanity_passed:
        tools = "/".join(risk_input.sanity_tools) if risk_input.sanity_tools else "static checks"
        reasons.append(RiskReason("sanity_failed", 20, f"Quality checks ({tools}) failed after this edit"))

    if risk_input.diff_line_count > _LARGE_DIFF_LINES:
        reasons.append(
            RiskReason(
                "large_diff", 15, f"Diff is {risk_input.diff_line_count} lines (exceeds {_LARGE_DIFF_LINES})"
            )
        )

    if is_test_file(risk_input.file_path):
        reasons.append(RiskReason("test_file", -10, "Test file, lower inherent risk"))

    raw = sum(r.points for r in reasons)
    score = min(100, max(0, raw))
    return RiskResult(score=score, level=level_from_score(score), reasons=reasons)
