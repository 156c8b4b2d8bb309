"""Rate-limited, deduplicated enrichment of risk-assessed events.

The dispatcher watches the event log for medium/high-risk ``risk-assessed``
events and, for each one, asks an explainer for a natural-language reason
why the edit is risky. The answer is appended as a separate ``llm-analysis``
event; the original score is never touched.

Job lifecycle, per event identity:

    new ──enqueue()──▶ enqueued ──worker──▶ dispatched ──▶ done

``enqueue`` is idempotent for the dispatcher's lifetime: the log is observed
by re-reading it whenever it changes, so the same event is seen many times.
A single worker drains one FIFO queue and spaces explainer calls at least
``min_interval`` seconds apart. Nothing is dropped; a burst just waits.

Everything is best-effort. A job that fails at any step appends nothing and
the worker moves on.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable

from editguard_core.scoring import LEVEL_RANK, MEDIUM
from editguard_core.utils.code import normalize_path
from editguard_store.models import LLM_ANALYSIS, RISK_ASSESSED, Event

if TYPE_CHECKING:
    from editguard_core.providers.base import BaseExplainer
    from editguard_store.base import EventLog

logger = logging.getLogger(__name__)

ENQUEUED = "enqueued"
DISPATCHED = "dispatched"
DONE = "done"

DEFAULT_SIDECAR_PATH = Path(".editguard") / "diff-context.json"


def event_identity(event: Event) -> tuple[str, str, str]:
    # Timestamps alone can collide across sessions, so session and file are
    # folded in.
    return (event.timestamp, event.session_id, event.file)


def truncate(text: str, limit: int, label: str) -> str:
    if len(text) > limit:
        return text[:limit] + f"\n... [{label} truncated]"
    return text


@dataclass
class EnrichmentContext:
    diff: str = ""
    file_content: str = ""


class EnrichmentDispatcher:
    def __init__(
        self,
        event_log: EventLog,
        explainer: BaseExplainer,
        workspace_root: str | Path = ".",
        min_interval: float = 4.0,
        min_level: str = MEDIUM,
        max_file_chars: int = 8000,
        max_diff_chars: int = 4000,
        sidecar_path: str | Path | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if min_level not in LEVEL_RANK:
            raise ValueError(f"Unknown risk level: {min_level!r}")
        self._event_log = event_log
        self._explainer = explainer
        self._workspace_root = Path(workspace_root)
        self._min_interval = min_interval
        self._min_rank = LEVEL_RANK[min_level]
        self._max_file_chars = max_file_chars
        self._max_diff_chars = max_diff_chars
        self._sidecar_path = self._workspace_root / (sidecar_path or DEFAULT_SIDECAR_PATH)
        self._clock = clock
        self._sleep = sleep

        self._queue: asyncio.Queue[Event] = asyncio.Queue()
        self._seen: set[tuple[str, str, str]] = set()
        self._states: dict[tuple[str, str, str], str] = {}
        self._last_call: float | None = None
        self._worker: asyncio.Task | None = None
        self._closed = False

    async def __aenter__(self) -> EnrichmentDispatcher:
        self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------ #
    # Queue management                                                     #
    # ------------------------------------------------------------------ #

    def start(self) -> None:
        """Start the consuming worker. Must be called from a running event loop."""
        if self._worker is None and not self._closed:
            self._worker = asyncio.create_task(self._run())

    def qualifies(self, event: Event) -> bool:
        if event.type != RISK_ASSESSED:
            return False
        rank = LEVEL_RANK.get(event.text("level"))
        return rank is not None and rank >= self._min_rank and bool(event.file)

    def enqueue(self, event: Event) -> bool:
        """Queue ``event`` for enrichment. Returns False if it was skipped.

        Never blocks: the caller does not wait for the explanation.
        """
        if self._closed or not self.qualifies(event):
            return False
        key = event_identity(event)
        if key in self._seen:
            return False
        self._seen.add(key)
        self._states[key] = ENQUEUED
        self._queue.put_nowait(event)
        self.start()
        logger.debug("Enqueued %s for enrichment (%d pending)", event.file, self._queue.qsize())
        return True

    def observe(self, events: Iterable[Event]) -> int:
        """Enqueue every qualifying event not seen before; return how many were new."""
        return sum(1 for event in events if self.enqueue(event))

    async def scan(self) -> int:
        """Re-read the event log and enqueue anything new.

        Events that already have an ``llm-analysis`` answer in the log are
        marked seen, so a restarted dispatcher does not explain them twice.
        """
        events = await self._event_log.read()
        for event in events:
            if event.type == LLM_ANALYSIS:
                related = (event.text("relatedRiskEventTimestamp"), event.session_id, event.file)
                self._seen.add(related)
        return self.observe(events)

    async def drain(self) -> None:
        """Wait until every job enqueued so far has finished. Returns at once after aclose()."""
        await self._queue.join()

    def job_state(self, event: Event) -> str | None:
        return self._states.get(event_identity(event))

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def aclose(self) -> None:
        """Stop the worker. Queued jobs that have not started are abandoned."""
        self._closed = True
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None
        while not self._queue.empty():
            abandoned = self._queue.get_nowait()
            self._states.pop(event_identity(abandoned), None)
            self._queue.task_done()

    # ------------------------------------------------------------------ #
    # Worker                                                               #
    # ------------------------------------------------------------------ #

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            key = event_identity(event)
            try:
                await self.process(event)
            finally:
                self._states[key] = DONE
                self._queue.task_done()

    async def _wait_for_slot(self) -> None:
        if self._last_call is not None:
            remaining = self._min_interval - (self._clock() - self._last_call)
            if remaining > 0:
                await self._sleep(remaining)
        self._last_call = self._clock()

    async def process(self, event: Event) -> bool:
        """Enrich one event. Returns True if an ``llm-analysis`` event was appended."""
        try:
            file_path = event.file
            context = await self.gather_context(file_path)

            await self._wait_for_slot()
            self._states[event_identity(event)] = DISPATCHED
            started = self._clock()
            explanation = await self._explainer.explain(
                context.diff,
                context.file_content,
                file_path,
                event.data.get("rulesScore", 0),
                event.data.get("reasons", []),
            )
            duration = self._clock() - started
            if explanation is None:
                logger.info("No explanation for %s after %.2fs", file_path, duration)
                return False

            enrichment = Event.create(
                LLM_ANALYSIS,
                event.session_id,
                {
                    "file": file_path,
                    "relatedRiskEventTimestamp": event.timestamp,
                    "reasoning": explanation,
                    "model": self._explainer.source,
                    "duration": round(duration, 3),
                },
            )
            return await self._event_log.append(enrichment)
        except Exception as e:
            logger.warning("Enrichment of %s failed (%s): %s", event.file, type(e).__name__, e)
            return False

    # ------------------------------------------------------------------ #
    # Context gathering                                                    #
    # ------------------------------------------------------------------ #

    async def gather_context(self, file_path: str) -> EnrichmentContext:
        diff, content = await asyncio.gather(self._read_diff(file_path), self._read_file(file_path))
        return EnrichmentContext(diff=diff, file_content=content)

    async def _read_diff(self, file_path: str) -> str:
        """Return the sidecar diff if it belongs to ``file_path``, else ''.

        The sidecar holds only the most recent edit's diff, so by the time a
        queued job runs it may describe a different file.
        """
        try:
            raw = await asyncio.to_thread(self._sidecar_path.read_text, encoding="utf-8")
            sidecar = json.loads(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.debug("Diff sidecar unavailable: %s", e)
            return ""
        if not isinstance(sidecar, dict):
            return ""
        sidecar_file = sidecar.get("file")
        diff = sidecar.get("diff")
        if not isinstance(sidecar_file, str) or not isinstance(diff, str):
            return ""
        if normalize_path(sidecar_file) != normalize_path(file_path):
            logger.debug("Diff sidecar is for %s, not %s", sidecar_file, file_path)
            return ""
        return truncate(diff, self._max_diff_chars, "diff")

    async def _read_file(self, file_path: str) -> str:
        if not file_path:
            return ""
        try:
            raw = await asyncio.to_thread(
                (self._workspace_root / file_path).read_text, encoding="utf-8", errors="replace"
            )
        except OSError as e:
            logger.debug("Could not read %s: %s", file_path, e)
            return ""
        return truncate(raw, self._max_file_chars, "file")
