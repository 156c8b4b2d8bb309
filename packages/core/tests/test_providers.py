"""Tests for explainer provider implementations.

Shared behaviour (_parse, _build_prompt, _call_with_retry) lives in
BaseExplainer and is tested once via a lightweight stub. Provider-specific
tests cover only what differs between implementations: the client setup and
_call_api.
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from editguard_core.providers.anthropic import AnthropicExplainer
from editguard_core.providers.base import BaseExplainer
from editguard_core.providers.gemini import GeminiExplainer
from editguard_core.providers.openai import OpenAIExplainer

VALID_JSON = json.dumps({"explanation": "Removes the token check from login."})
REASONS = [{"rule": "protected_path", "points": 30, "description": "File is in a protected path (src/auth/index.ts)"}]


class _StubExplainer(BaseExplainer):
    """Minimal concrete subclass used to test BaseExplainer shared methods."""

    MODEL = "stub-model"

    def __init__(self, response: str = VALID_JSON):
        self.response = response
        self.prompts: list[str] = []

    async def _call_api(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.response


def _explain(explainer: BaseExplainer) -> str | None:
    return asyncio.run(explainer.explain("-check()\n", "export function login() {}", "src/auth/index.ts", 70, REASONS))


# ---------------------------------------------------------------------------
# Shared behaviour, tested once through the stub
# ---------------------------------------------------------------------------


class TestBaseExplainerParse:
    def test_parses_valid_json(self):
        assert _StubExplainer()._parse(VALID_JSON) == "Removes the token check from login."

    def test_strips_markdown_code_fences(self):
        assert _StubExplainer()._parse(f"```json\n{VALID_JSON}\n```") == "Removes the token check from login."

    def test_returns_none_on_invalid_json(self):
        assert _StubExplainer()._parse("not json at all") is None

    def test_returns_none_on_non_object(self):
        assert _StubExplainer()._parse('["explanation"]') is None

    def test_returns_none_without_explanation(self):
        assert _StubExplainer()._parse('{"summary": "x"}') is None

    def test_returns_none_on_blank_explanation(self):
        assert _StubExplainer()._parse('{"explanation": "   "}') is None

    def test_returns_none_on_non_string_explanation(self):
        assert _StubExplainer()._parse('{"explanation": 42}') is None


class TestBaseExplainerPrompt:
    def _prompt(self, diff="+x", content="x", reasons=REASONS) -> str:
        return _StubExplainer()._build_prompt(diff, content, "src/auth/index.ts", 70, reasons)

    def test_contains_file_path_and_score(self):
        prompt = self._prompt()
        assert "src/auth/index.ts" in prompt
        assert "70/100" in prompt

    def test_lists_reasons_with_points(self):
        assert "File is in a protected path (src/auth/index.ts) (+30)" in self._prompt()

    def test_negative_points_are_signed(self):
        prompt = self._prompt(reasons=[{"rule": "test_file", "points": -10, "description": "Test file"}])
        assert "Test file (-10)" in prompt

    def test_contains_diff_and_content(self):
        prompt = self._prompt(diff="-removed line", content="function kept() {}")
        assert "-removed line" in prompt
        assert "function kept() {}" in prompt

    def test_placeholders_for_missing_context(self):
        prompt = self._prompt(diff="", content="")
        assert "(no diff available)" in prompt
        assert "(file content unavailable)" in prompt

    def test_asks_for_json_explanation(self):
        assert '{"explanation":' in self._prompt()


class TestBaseExplainerExplain:
    def test_returns_explanation(self):
        explainer = _StubExplainer()
        assert _explain(explainer) == "Removes the token check from login."
        assert len(explainer.prompts) == 1

    def test_malformed_response_returns_none(self):
        assert _explain(_StubExplainer(response="Sure! Here you go.")) is None

    def test_api_failure_returns_none(self):
        class _AlwaysFail(BaseExplainer):
            async def _call_api(self, prompt: str) -> str:
                raise RuntimeError("network error")

        assert _explain(_AlwaysFail()) is None

    def test_single_attempt_by_default(self):
        calls = 0

        class _CountingFail(BaseExplainer):
            async def _call_api(self, prompt: str) -> str:
                nonlocal calls
                calls += 1
                raise RuntimeError("rate limited")

        assert _explain(_CountingFail()) is None
        assert calls == 1

    def test_retries_when_configured(self):
        calls = 0

        class _FailOnceThenSucceed(BaseExplainer):
            MAX_RETRIES = 2

            async def _call_api(self, prompt: str) -> str:
                nonlocal calls
                calls += 1
                if calls == 1:
                    raise RuntimeError("transient")
                return VALID_JSON

        # Patch asyncio.sleep so the test doesn't actually wait.
        with patch("editguard_core.providers.base.asyncio.sleep", new=AsyncMock()):
            result = _explain(_FailOnceThenSucceed())
        assert result == "Removes the token check from login."
        assert calls == 2

    def test_source_is_model(self):
        assert _StubExplainer().source == "stub-model"


# ---------------------------------------------------------------------------
# Provider-specific
# ---------------------------------------------------------------------------


class TestAnthropicExplainer:
    def test_raises_import_error_without_sdk(self):
        with patch.dict("sys.modules", {"anthropic": None}):
            with pytest.raises(ImportError, match="editguard\\[anthropic\\]"):
                AnthropicExplainer(api_key="key")

    def test_model_is_claude(self):
        assert "claude" in AnthropicExplainer.MODEL


class TestOpenAIExplainer:
    def test_raises_import_error_without_sdk(self):
        import editguard_core.providers.openai as openai_mod

        real_openai = openai_mod._AsyncOpenAI
        openai_mod._AsyncOpenAI = None
        try:
            with pytest.raises(ImportError):
                OpenAIExplainer(api_key="key")
        finally:
            openai_mod._AsyncOpenAI = real_openai

    def test_call_api_requests_json_object(self):
        explainer = OpenAIExplainer.__new__(OpenAIExplainer)
        message = SimpleNamespace(content=VALID_JSON)
        explainer.client = MagicMock()
        explainer.client.chat.completions.create = AsyncMock(
            return_value=SimpleNamespace(choices=[SimpleNamespace(message=message)])
        )

        assert _explain(explainer) == "Removes the token check from login."
        kwargs = explainer.client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o"
        assert kwargs["response_format"] == {"type": "json_object"}

    def test_model_is_gpt(self):
        assert "gpt" in OpenAIExplainer.MODEL


class TestGeminiExplainer:
    def _explainer(self, handler) -> GeminiExplainer:
        return GeminiExplainer(api_key="gem-key", transport=httpx.MockTransport(handler))

    def test_extracts_candidate_text(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["key"] = request.headers["x-goog-api-key"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": VALID_JSON}]}}]})

        assert _explain(self._explainer(handler)) == "Removes the token check from login."
        assert seen["url"].endswith("/gemini-2.5-flash:generateContent")
        assert seen["key"] == "gem-key"
        assert seen["body"]["generationConfig"]["responseMimeType"] == "application/json"
        assert "src/auth/index.ts" in seen["body"]["contents"][0]["parts"][0]["text"]

    def test_http_error_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={"error": {"message": "quota"}})

        assert _explain(self._explainer(handler)) is None

    def test_unexpected_shape_returns_none(self):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"candidates": []})

        assert _explain(self._explainer(handler)) is None

    def test_model_is_gemini(self):
        assert GeminiExplainer.MODEL == "gemini-2.5-flash"
