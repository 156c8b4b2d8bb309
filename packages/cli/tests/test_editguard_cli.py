"""Tests for the CLI entry point."""

import json

import pytest
from click.testing import CliRunner

from editguard_cli.cli import main
from editguard_cli.commands.stats import aggregate_file_stats
from editguard_store.models import EDIT_ALLOWED, EDIT_BLOCKED, RISK_ASSESSED, Event


class _StaticExplainer:
    source = "stub-model"

    async def explain(self, diff, file_content, file_path, score, reasons):
        return "Removes the auth guard."


@pytest.fixture(autouse=True)
def _no_api_keys(monkeypatch):
    for var in ("ANTHROPIC_API_KEY", "OPENAI_API_KEY", "GEMINI_API_KEY", "EDITGUARD_SESSION_ID"):
        monkeypatch.delenv(var, raising=False)


def _functions(*names: str) -> str:
    return "".join(f"function {name}() {{\n  return 1;\n}}\n" for name in names)


def _invoke(tmp_path, *args, config: str | None = None):
    cfg = tmp_path / ".editguard.yml"
    cfg.write_text(config or "min_interval_seconds: 0\n")
    return CliRunner().invoke(main, ["--config", str(cfg), "--workspace", str(tmp_path), *args])


def _snapshots(tmp_path, before_names, after_names, file_path="a.ts"):
    before = tmp_path / "before.ts"
    before.write_text(_functions(*before_names))
    after = tmp_path / file_path
    after.parent.mkdir(parents=True, exist_ok=True)
    after.write_text(_functions(*after_names))
    return before, after


def _log(tmp_path) -> list[dict]:
    return json.loads((tmp_path / ".editguard" / "events.json").read_text())


class TestCLIConfig:
    def test_invalid_config_is_usage_error(self, tmp_path):
        result = _invoke(tmp_path, "events", config="- not\n- a mapping\n")
        assert result.exit_code == 2
        assert "Could not load" in result.output

    def test_unknown_provider_is_usage_error(self, tmp_path):
        result = _invoke(tmp_path, "events", config="provider: mystery\n")
        assert result.exit_code == 2
        assert "mystery" in result.output

    def test_version(self):
        result = CliRunner().invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "editguard" in result.output


class TestAnalyzeCommand:
    def test_prints_structural_change(self, tmp_path):
        before, after = _snapshots(tmp_path, ["a", "b", "c"], ["a"])
        result = _invoke(tmp_path, "analyze", str(before), str(after))
        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["deletedFunctions"] == 2
        assert payload["structuralChangePercent"] == 50
        assert "error" not in payload

    def test_missing_file_still_exits_zero(self, tmp_path):
        _, after = _snapshots(tmp_path, [], ["a"])
        result = _invoke(tmp_path, "analyze", str(tmp_path / "gone.ts"), str(after))
        assert result.exit_code == 0
        assert json.loads(result.output)["error"].startswith("File not found:")

    def test_as_selects_extractor(self, tmp_path):
        before = tmp_path / "before.txt"
        before.write_text("def a():\n    pass\n\ndef b():\n    pass\n")
        after = tmp_path / "after.txt"
        after.write_text("def a():\n    pass\n")
        result = _invoke(tmp_path, "analyze", str(before), str(after), "--as", "module.py")
        assert json.loads(result.output)["deletedFunctions"] == 1


class TestCheckCommand:
    def test_allowed_edit_exits_zero(self, tmp_path):
        before, _ = _snapshots(tmp_path, ["a", "b"], ["a", "b"])
        result = _invoke(tmp_path, "check", "a.ts", "--before", str(before))
        assert result.exit_code == 0
        assert "Allowed" in result.output
        assert [e["type"] for e in _log(tmp_path)] == [EDIT_ALLOWED]

    def test_blocked_edit_exits_two(self, tmp_path):
        before, _ = _snapshots(tmp_path, ["a", "b", "c", "d", "e"], ["a"])
        result = _invoke(tmp_path, "check", "a.ts", "--before", str(before))
        assert result.exit_code == 2
        assert "Blocked" in result.output
        assert [e["type"] for e in _log(tmp_path)] == [EDIT_BLOCKED]

    def test_session_stamped_on_event(self, tmp_path):
        before, _ = _snapshots(tmp_path, ["a"], ["a"])
        # --session is a group option, so it precedes the subcommand.
        _invoke(tmp_path, "--session", "sess-42", "check", "a.ts", "--before", str(before))
        assert _log(tmp_path)[0]["sessionId"] == "sess-42"

    def test_dry_run_records_nothing(self, tmp_path):
        before, _ = _snapshots(tmp_path, ["a", "b", "c", "d", "e"], ["a"])
        result = _invoke(tmp_path, "check", "a.ts", "--before", str(before), "--dry-run")
        assert result.exit_code == 2
        assert not (tmp_path / ".editguard" / "events.json").exists()


class TestAssessCommand:
    def test_json_output_and_event(self, tmp_path):
        before, _ = _snapshots(tmp_path, ["a", "b"], ["a"], file_path="src/auth/index.ts")
        result = _invoke(
            tmp_path,
            "assess",
            "src/auth/index.ts",
            "--before",
            str(before),
            "--sanity-failed",
            "--tool",
            "tsc",
            "--json",
        )
        assert result.exit_code == 0
        payload = json.loads(result.output)
        assert payload["score"] == 70
        assert payload["level"] == "high"
        assert payload["recorded"] is True
        assert payload["structuralChange"]["deletedFunctions"] == 1

        (entry,) = _log(tmp_path)
        assert entry["type"] == RISK_ASSESSED
        assert entry["data"]["rulesScore"] == 70

    def test_diff_file_counts_lines_and_writes_sidecar(self, tmp_path):
        before, _ = _snapshots(tmp_path, ["a"], ["a"])
        diff = tmp_path / "edit.diff"
        diff.write_text("\n".join(f"+line {i}" for i in range(250)))
        result = _invoke(tmp_path, "assess", "a.ts", "--before", str(before), "--diff", str(diff), "--json")
        payload = json.loads(result.output)
        assert [r["rule"] for r in payload["reasons"]] == ["large_diff"]

        sidecar = json.loads((tmp_path / ".editguard" / "diff-context.json").read_text())
        assert sidecar["file"] == "a.ts"
        assert sidecar["diff"].startswith("+line 0")

    def test_table_output(self, tmp_path):
        before, _ = _snapshots(tmp_path, ["a"], ["a"])
        result = _invoke(tmp_path, "assess", "a.ts", "--before", str(before), "--diff-lines", "300")
        assert result.exit_code == 0
        assert "large_diff" in result.output
        assert "+15" in result.output

    def test_dry_run_scores_without_recording(self, tmp_path):
        before, _ = _snapshots(tmp_path, ["a"], ["a"])
        diff = tmp_path / "edit.diff"
        diff.write_text("+line\n")
        result = _invoke(
            tmp_path, "assess", "a.ts", "--before", str(before), "--diff", str(diff), "--dry-run", "--json"
        )
        assert result.exit_code == 0
        assert json.loads(result.output)["recorded"] is False
        assert not (tmp_path / ".editguard").exists()

    def test_wait_appends_explanation(self, tmp_path, mocker):
        mocker.patch("editguard_core.guard.get_explainer", return_value=_StaticExplainer())
        before, _ = _snapshots(tmp_path, ["a", "b"], ["a"], file_path="src/auth/index.ts")
        result = _invoke(tmp_path, "assess", "src/auth/index.ts", "--before", str(before), "--wait")
        assert result.exit_code == 0
        assert [e["type"] for e in _log(tmp_path)] == [RISK_ASSESSED, "llm-analysis"]


class TestSanityCommand:
    def test_failed_checks_recorded(self, tmp_path):
        result = _invoke(
            tmp_path, "sanity", "a.ts", "--failed", "--tool", "tsc", "--error", "TS2304: no name", "--retry-count=2"
        )
        assert result.exit_code == 0
        (entry,) = _log(tmp_path)
        assert entry["type"] == "sanity-failed"
        assert entry["data"]["errors"] == ["TS2304: no name"]
        assert entry["data"]["retryCount"] == 2

    def test_passed_checks_recorded(self, tmp_path):
        result = _invoke(tmp_path, "sanity", "a.ts", "--tool", "eslint")
        assert result.exit_code == 0
        assert _log(tmp_path)[0]["type"] == "sanity-passed"


class TestEnrichCommand:
    def test_missing_key_is_usage_error(self, tmp_path):
        result = _invoke(tmp_path, "enrich")
        assert result.exit_code == 2
        assert "API key" in result.output

    def test_explains_pending_events(self, tmp_path, mocker):
        before, _ = _snapshots(tmp_path, ["a", "b"], ["a"], file_path="src/auth/index.ts")
        _invoke(tmp_path, "assess", "src/auth/index.ts", "--before", str(before), "--sanity-failed")

        mocker.patch("editguard_core.guard.get_explainer", return_value=_StaticExplainer())
        result = _invoke(tmp_path, "enrich")
        assert result.exit_code == 0
        assert "Processed 1" in result.output
        assert [e["type"] for e in _log(tmp_path)] == [RISK_ASSESSED, "llm-analysis"]

    def test_nothing_to_explain(self, tmp_path, mocker):
        mocker.patch("editguard_core.guard.get_explainer", return_value=_StaticExplainer())
        result = _invoke(tmp_path, "enrich")
        assert result.exit_code == 0
        assert "No medium or high-risk events" in result.output


class TestEventsCommand:
    def test_no_events(self, tmp_path):
        result = _invoke(tmp_path, "events")
        assert result.exit_code == 0
        assert "No events found" in result.output

    def test_lists_events(self, tmp_path):
        _invoke(tmp_path, "sanity", "a.ts", "--failed", "--tool", "tsc")
        result = _invoke(tmp_path, "events")
        assert result.exit_code == 0
        assert "sanity-failed" in result.output

    def test_type_filter(self, tmp_path):
        _invoke(tmp_path, "sanity", "a.ts", "--failed", "--tool", "tsc")
        result = _invoke(tmp_path, "events", "--type", "risk-assessed")
        assert "No events found" in result.output

    def test_invalid_type_rejected(self, tmp_path):
        result = _invoke(tmp_path, "events", "--type", "bogus")
        assert result.exit_code != 0


class TestStatsCommand:
    def test_no_events(self, tmp_path):
        result = _invoke(tmp_path, "stats")
        assert result.exit_code == 0
        assert "No events recorded yet" in result.output

    def test_summary(self, tmp_path):
        before, _ = _snapshots(tmp_path, ["a", "b", "c", "d", "e"], ["a"])
        _invoke(tmp_path, "check", "a.ts", "--before", str(before))
        _invoke(tmp_path, "assess", "a.ts", "--before", str(before))
        result = _invoke(tmp_path, "stats")
        assert result.exit_code == 0
        assert "Blocked edits:   1" in result.output
        assert "Risk assessed:   1" in result.output
        assert "a.ts" in result.output

    def test_malformed_log_entries_tolerated(self, tmp_path):
        log_dir = tmp_path / ".editguard"
        log_dir.mkdir()
        entries = [
            {"timestamp": "t1", "sessionId": "s1", "type": RISK_ASSESSED, "data": {"file": "a.ts", "level": ["high"]}},
            {"timestamp": "t2", "sessionId": "s1", "type": RISK_ASSESSED, "data": {"file": ["b.ts"], "level": "high"}},
            {"timestamp": "t3", "sessionId": "s1", "type": "sanity-failed", "data": {"file": "a.ts", "errors": 3}},
            {"timestamp": "t4", "sessionId": "s1", "type": RISK_ASSESSED, "data": {"file": "c.ts", "level": "medium"}},
        ]
        (log_dir / "events.json").write_text(json.dumps(entries))

        result = _invoke(tmp_path, "stats")
        assert result.exit_code == 0
        assert "c.ts" in result.output
        assert _invoke(tmp_path, "events").exit_code == 0


class TestAggregateFileStats:
    def _event(self, type, file, level=None):
        data = {"file": file}
        if level:
            data["level"] = level
        return Event(timestamp="t", session_id="s", type=type, data=data)

    def test_counts_edits_and_worst_level(self):
        stats = aggregate_file_stats(
            [
                self._event(EDIT_ALLOWED, "a.ts"),
                self._event(EDIT_BLOCKED, "a.ts"),
                self._event(RISK_ASSESSED, "a.ts", "high"),
                self._event(RISK_ASSESSED, "a.ts", "low"),
                self._event(RISK_ASSESSED, "b.ts", "medium"),
            ]
        )
        assert stats["a.ts"].edit_count == 2
        assert stats["a.ts"].worst_level == "high"
        assert stats["b.ts"].edit_count == 0
        assert stats["b.ts"].worst_level == "medium"

    def test_non_string_level_ignored(self):
        stats = aggregate_file_stats(
            [self._event(RISK_ASSESSED, "a.ts", ["high"]), self._event(RISK_ASSESSED, "a.ts", "low")]
        )
        assert stats["a.ts"].worst_level == "low"

    def test_events_without_file_ignored(self):
        assert aggregate_file_stats([self._event(EDIT_ALLOWED, "")]) == {}
