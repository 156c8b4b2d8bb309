"""Edit-safety orchestration.

EditGuard is the long-lived service object for one workspace. It owns the
per-path write queue, the event log and (when an explainer is configured)
the enrichment dispatcher, and tears all three down in aclose():

    async with EditGuard(config, workspace_root=".") as guard:
        decision = await guard.check_edit("src/auth/index.ts", before, after)
        assessment = await guard.assess_edit("src/auth/index.ts", before, after, sanity_passed=False)
        await guard.drain()
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from pathlib import Path

from editguard_core.analyzer import StructuralChange, analyze_sources, analyze_structural_change
from editguard_core.dispatcher import DEFAULT_SIDECAR_PATH, EnrichmentDispatcher
from editguard_core.gate import GateDecision, GateThresholds, evaluate_edit
from editguard_core.providers.anthropic import AnthropicExplainer
from editguard_core.providers.base import BaseExplainer
from editguard_core.providers.gemini import GeminiExplainer
from editguard_core.providers.openai import OpenAIExplainer
from editguard_core.scoring import MEDIUM, RiskInput, RiskResult, compute_risk_score
from editguard_core.symbols import extractor_for_path
from editguard_store.base import EventLog
from editguard_store.jsonfile import DEFAULT_LOG_PATH, JsonFileEventLog, write_json_atomic
from editguard_store.models import (
    EDIT_ALLOWED,
    EDIT_BLOCKED,
    RISK_ASSESSED,
    SANITY_FAILED,
    SANITY_PASSED,
    Event,
)
from editguard_store.write_queue import WriteQueue

logger = logging.getLogger(__name__)

_PROVIDERS = {
    "anthropic": (AnthropicExplainer, "anthropic_api_key", "ANTHROPIC_API_KEY"),
    "openai": (OpenAIExplainer, "openai_api_key", "OPENAI_API_KEY"),
    "gemini": (GeminiExplainer, "gemini_api_key", "GEMINI_API_KEY"),
}


def get_explainer(config: dict) -> BaseExplainer | None:
    """Build the configured explainer, or None when its API key is not set.

    A missing key disables enrichment rather than failing: scoring and
    logging work without any network access.
    """
    provider = config.get("provider", "anthropic")
    if provider not in _PROVIDERS:
        raise ValueError(f"Unknown provider: {provider!r}. Choose one of {', '.join(sorted(_PROVIDERS))}.")
    explainer_cls, key_name, env_var = _PROVIDERS[provider]
    api_key = config.get(key_name)
    if not api_key:
        logger.info("%s is not set; LLM enrichment is disabled", env_var)
        return None
    return explainer_cls(api_key=api_key)


@dataclass
class Assessment:
    change: StructuralChange
    risk: RiskResult
    event: Event
    recorded: bool


class EditGuard:
    def __init__(
        self,
        config: dict,
        workspace_root: str | Path = ".",
        session_id: str | None = None,
        event_log: EventLog | None = None,
        explainer: BaseExplainer | None = None,
    ):
        self.config = config
        self.workspace_root = Path(workspace_root)
        self.session_id = session_id or str(uuid.uuid4())
        self.thresholds = GateThresholds.from_config(config)

        self._write_queue = WriteQueue()
        self._owns_log = event_log is None
        self.event_log = event_log or JsonFileEventLog(
            self.workspace_root / config.get("log_path", DEFAULT_LOG_PATH),
            write_queue=self._write_queue,
        )
        sidecar_path = config.get("sidecar_path", DEFAULT_SIDECAR_PATH)
        self.sidecar_path = self.workspace_root / sidecar_path

        if explainer is None and config.get("enrich", True):
            explainer = get_explainer(config)
        self.dispatcher: EnrichmentDispatcher | None = None
        if explainer is not None:
            self.dispatcher = EnrichmentDispatcher(
                self.event_log,
                explainer,
                workspace_root=self.workspace_root,
                min_interval=config.get("min_interval_seconds", 4.0),
                min_level=config.get("enrich_min_level", MEDIUM),
                max_file_chars=config.get("max_file_chars", 8000),
                max_diff_chars=config.get("max_diff_chars", 4000),
                sidecar_path=sidecar_path,
            )

    async def __aenter__(self) -> EditGuard:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self.dispatcher is not None:
            await self.dispatcher.aclose()
        if self._owns_log:
            await self.event_log.aclose()
        await self._write_queue.aclose()

    # ------------------------------------------------------------------ #
    # Pipeline                                                             #
    # ------------------------------------------------------------------ #

    def analyze(self, file_path: str, before_path: str | Path | None, after_path: str | Path) -> StructuralChange:
        """Analyze an edit. A missing ``before_path`` means the file is new."""
        extractor = extractor_for_path(file_path)
        if before_path is None:
            try:
                after_source = Path(after_path).read_text(encoding="utf-8", errors="replace")
            except OSError:
                return StructuralChange(error=f"File not found: {after_path}")
            return analyze_sources("", after_source, extractor)
        return analyze_structural_change(before_path, after_path, extractor=extractor)

    async def check_edit(
        self, file_path: str, before_path: str | Path | None, after_path: str | Path
    ) -> GateDecision:
        """Run the pre-edit gate and record ``edit-allowed`` / ``edit-blocked``."""
        change = await asyncio.to_thread(self.analyze, file_path, before_path, after_path)
        decision = evaluate_edit(change, self.thresholds)

        data = {
            "file": file_path,
            "structuralChangePercent": change.structural_change_percent,
            "functionsDeleted": change.deleted_functions,
            "exportsDeleted": change.deleted_exports,
        }
        if decision.allowed:
            event = Event.create(EDIT_ALLOWED, self.session_id, data)
        else:
            event = Event.create(EDIT_BLOCKED, self.session_id, {**data, "reason": decision.reason})
            logger.info("Blocked edit to %s: %s", file_path, decision.reason)
        await self.event_log.append(event)
        return decision

    async def assess_edit(
        self,
        file_path: str,
        before_path: str | Path | None,
        after_path: str | Path,
        sanity_passed: bool = True,
        diff_line_count: int = 0,
        sanity_tools: tuple[str, ...] = (),
    ) -> Assessment:
        """Score an applied edit, record ``risk-assessed`` and queue it for enrichment.

        Enrichment is fire-and-forget; call drain() to wait for it.
        """
        change = await asyncio.to_thread(self.analyze, file_path, before_path, after_path)
        if change.error:
            logger.warning("Structural analysis of %s failed: %s", file_path, change.error)

        risk_config = self.config.get("risk") or {}
        risk = compute_risk_score(
            RiskInput(
                file_path=file_path,
                structural_change_percent=change.structural_change_percent,
                deleted_functions=change.deleted_functions,
                sanity_passed=sanity_passed,
                diff_line_count=diff_line_count,
                sanity_tools=tuple(sanity_tools),
            ),
            protected_prefixes=risk_config.get("protected_paths"),
            protected_files=risk_config.get("protected_files"),
        )

        event = Event.create(
            RISK_ASSESSED,
            self.session_id,
            {
                "file": file_path,
                "rulesScore": risk.score,
                "level": risk.level,
                "reasons": risk.reasons_as_dicts(),
            },
        )
        recorded = await self.event_log.append(event)
        if recorded and self.dispatcher is not None:
            self.dispatcher.enqueue(event)
        return Assessment(change=change, risk=risk, event=event, recorded=recorded)

    async def record_sanity(
        self,
        file_path: str,
        passed: bool,
        tools: list[str],
        errors: list[str] | None = None,
        retry_count: int = 1,
        max_retries: int = 3,
        duration: float | None = None,
    ) -> bool:
        """Record the outcome of the external static checks for an edit."""
        if passed:
            data: dict = {"file": file_path, "tools": list(tools)}
            if duration is not None:
                data["duration"] = duration
            event = Event.create(SANITY_PASSED, self.session_id, data)
        else:
            event = Event.create(
                SANITY_FAILED,
                self.session_id,
                {
                    "file": file_path,
                    "tool": ", ".join(tools),
                    "errors": list(errors or []),
                    "retryCount": retry_count,
                    "maxRetries": max_retries,
                },
            )
        return await self.event_log.append(event)

    async def write_diff_sidecar(self, file_path: str, diff: str) -> bool:
        """Publish the latest edit's diff for the dispatcher to pick up by file path."""
        try:
            await asyncio.to_thread(write_json_atomic, self.sidecar_path, {"file": file_path, "diff": diff})
        except (OSError, TypeError, ValueError) as e:
            logger.warning("Could not write diff sidecar %s: %s", self.sidecar_path, e)
            return False
        return True

    async def enrich_pending(self) -> int:
        """Queue every qualifying event already in the log; return how many were new."""
        if self.dispatcher is None:
            return 0
        return await self.dispatcher.scan()

    async def drain(self) -> None:
        if self.dispatcher is not None:
            await self.dispatcher.drain()
