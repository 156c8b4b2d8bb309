"""Gemini provider over the Generative Language REST API.

There is no SDK dependency here: one POST to ``generateContent`` with the
JSON response mime type, and the text pulled out of the first candidate.
"""

from __future__ import annotations

import httpx

from editguard_core.providers.base import BaseExplainer

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class GeminiExplainer(BaseExplainer):
    MODEL = "gemini-2.5-flash"
    TIMEOUT_SECONDS = 30.0

    def __init__(
        self,
        api_key: str,
        base_url: str = GEMINI_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._api_key = api_key
        self._url = f"{base_url.rstrip('/')}/{self.MODEL}:generateContent"
        self._transport = transport

    async def _call_api(self, prompt: str) -> str:
        payload = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {"responseMimeType": "application/json", "maxOutputTokens": self.MAX_TOKENS},
        }
        async with httpx.AsyncClient(timeout=self.TIMEOUT_SECONDS, transport=self._transport) as client:
            resp = await client.post(self._url, json=payload, headers={"x-goog-api-key": self._api_key})
        resp.raise_for_status()
        body = resp.json()

        try:
            text = body["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise ValueError(f"unexpected response shape: {str(body)[:200]}") from e
        if not isinstance(text, str):
            raise ValueError("candidate text is not a string")
        return text
