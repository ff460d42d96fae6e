"""Google AI (Gemini) OCR engine using generateContent with inline image data.

Requires RECEIPTS_GOOGLE_AI_API_KEY.
See: https://ai.google.dev/api/generate-content
"""

from typing import Any

import httpx

from receipts.ocr.base import OcrEngine
from receipts.ocr.schema import OcrRequest
from receipts.shared.config import Settings

GOOGLE_AI_API_BASE = "https://generativelanguage.googleapis.com/v1beta/models"


class GoogleAIOcrEngine(OcrEngine):
    """Gemini vision OCR engine."""

    def __init__(self, api_key: str, settings: Settings, client: httpx.Client | None = None) -> None:
        """Initialize Google AI OCR engine.

        Args:
            api_key: Google AI Studio API key
            settings: Application settings
            client: Optional shared HTTP client
        """
        super().__init__(api_key, settings)
        self._client = client or httpx.Client()

    @property
    def name(self) -> str:
        return "google-ai"

    @property
    def display_name(self) -> str:
        return "Google AI Gemini Vision"

    @property
    def endpoint(self) -> str:
        return f"{GOOGLE_AI_API_BASE}/{self.settings.google_ai_model}:generateContent"

    def _send(
        self, request: OcrRequest, image_data: str, mime_type: str, prompt: str, timeout: float
    ) -> str:
        # Key goes in a header so it never shows up in logged URLs
        response = self._client.post(
            self.endpoint,
            headers={"x-goog-api-key": self._api_key},
            json={
                "contents": [
                    {
                        "parts": [
                            {"text": prompt},
                            {"inline_data": {"mime_type": mime_type, "data": image_data}},
                        ]
                    }
                ],
                "generationConfig": {
                    "maxOutputTokens": self.settings.ocr_max_tokens,
                    "temperature": 0.1,
                },
            },
            timeout=timeout,
        )
        response.raise_for_status()
        return response.text

    def _extract_content(self, payload: dict[str, Any]) -> str | None:
        candidates = payload.get("candidates") or []
        if not candidates:
            return None
        parts = (candidates[0].get("content") or {}).get("parts") or []
        texts = [part["text"] for part in parts if part.get("text")]
        return "".join(texts) or None

    def close(self) -> None:
        self._client.close()
