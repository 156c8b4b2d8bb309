"""Base explainer implementing the Template Method pattern.

All providers share the same explanation algorithm:
    explain() → _build_prompt()
              → _call_with_retry() → _call_api()   ← only this differs per provider
              → _parse()

Subclasses implement two things only:
  - __init__: validate and store the SDK client
  - _call_api: make one raw API call and return the text response

Prompt construction, JSON parsing and retry logic live here, defined once
and inherited by every provider.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)

# Shared defaults; subclasses may override them as class attributes.
# The dispatcher paces calls to stay under the provider's rate limit, and a
# retry here would fire outside that pacing, so one attempt is the default.
_MAX_RETRIES = 1
_MAX_TOKENS = 1024


class BaseExplainer(ABC):
    MODEL: str = ""
    MAX_RETRIES: int = _MAX_RETRIES
    MAX_TOKENS: int = _MAX_TOKENS

    @property
    def source(self) -> str:
        """Identifier recorded on enrichment events."""
        return self.MODEL

    # ------------------------------------------------------------------ #
    # Public interface                                                     #
    # ------------------------------------------------------------------ #

    async def explain(
        self,
        diff: str,
        file_content: str,
        file_path: str,
        score: int,
        reasons: list[dict],
    ) -> str | None:
        """Return a short natural-language explanation of why an edit is risky.

        Returns None on any failure: a network error, an SDK error,
        or a response that is not ``{"explanation": "<text>"}``.
        """
        try:
            prompt = self._build_prompt(diff, file_content, file_path, score, reasons)
            raw = await self._call_with_retry(prompt)
        except Exception as e:
            logger.warning("%s: explanation failed (%s): %s", self.__class__.__name__, type(e).__name__, e)
            return None
        if raw is None:
            return None
        return self._parse(raw)

    # ------------------------------------------------------------------ #
    # Abstract: implement in each provider                                #
    # ------------------------------------------------------------------ #

    @abstractmethod
    async def _call_api(self, prompt: str) -> str:
        """Make a single API call and return the raw text response.

        This is the only method subclasses must implement. It should raise
        on failure; _call_with_retry handles retries and logging.
        """

    # ------------------------------------------------------------------ #
    # Shared implementations                                               #
    # ------------------------------------------------------------------ #

    async def _call_with_retry(self, prompt: str) -> str | None:
        """Retry _call_api up to MAX_RETRIES times with exponential backoff."""
        for attempt in range(self.MAX_RETRIES):
            try:
                return await self._call_api(prompt)
            except Exception as e:
                if attempt == self.MAX_RETRIES - 1:
                    logger.error(
                        "%s API failed after %d attempt(s): %s",
                        self.__class__.__name__,
                        self.MAX_RETRIES,
                        e,
                    )
                    return None
                delay = 2**attempt
                logger.warning(
                    "%s API error (attempt %d/%d): %s. Retrying in %ds...",
                    self.__class__.__name__,
                    attempt + 1,
                    self.MAX_RETRIES,
                    e,
                    delay,
                )
                await asyncio.sleep(delay)
        return None

    def _build_prompt(
        self,
        diff: str,
        file_content: str,
        file_path: str,
        score: int,
        reasons: list[dict],
    ) -> str:
        """Build the single prompt sent for one risk-assessed edit.

        The rules that fired are listed with their points so the model can
        explain the score rather than re-derive it.
        """
        if reasons:
            reasons_summary = "\n".join(
                f"- {r.get('description', r.get('rule', ''))} ({r.get('points', 0):+d})" for r in reasons
            )
        else:
            reasons_summary = "- None"

        return f"""You are a code review assistant. An AI agent just edited `{file_path}` and an
automated rules engine flagged the edit as risky.

Rules-based risk score: {score}/100
Rules that fired:
{reasons_summary}

## Diff
{diff or "(no diff available)"}

## Full File Content
{file_content or "(file content unavailable)"}

In 2-3 sentences, explain to the developer what this edit changed and why it
may be risky. Be specific about removed behaviour (deleted functions, guards,
error handling) when the diff shows it.

Respond with JSON only, no markdown fences:
{{"explanation": "<your explanation>"}}"""

    def _parse(self, raw: str) -> str | None:
        """Extract the ``explanation`` string from the model's raw text response."""
        try:
            # Strip only the outer ```json ... ``` fence the model may wrap the
            # response in.
            cleaned = re.sub(r"^```(?:json)?\s*", "", raw.strip())
            cleaned = re.sub(r"\s*```$", "", cleaned.strip())
            payload = json.loads(cleaned)
        except (json.JSONDecodeError, AttributeError):
            logger.warning(
                "%s: failed to parse response as JSON: %s",
                self.__class__.__name__,
                str(raw)[:200],
            )
            return None

        explanation = payload.get("explanation") if isinstance(payload, dict) else None
        if not isinstance(explanation, str) or not explanation.strip():
            logger.warning("%s: response has no 'explanation' string", self.__class__.__name__)
            return None
        return explanation.strip()
