"""Anthropic Claude OCR engine using the Messages API with image input.

Calls the REST endpoint directly over httpx, the same way the other HTTP
engines do, so timeouts and transient-error handling are uniform.

Requires RECEIPTS_CLAUDE_API_KEY.
See: https://docs.anthropic.com/en/api/messages
"""

from typing import Any

import httpx

from receipts.ocr.base import OcrEngine
from receipts.ocr.schema import OcrRequest
from receipts.shared.config import Settings

CLAUDE_API_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"


class ClaudeOcrEngine(OcrEngine):
    """Claude vision OCR engine."""

    def __init__(self, api_key: str, settings: Settings, client: httpx.Client | None = None) -> None:
        """Initialize Claude OCR engine.

        Args:
            api_key: Anthropic API key
            settings: Application settings
            client: Optional shared HTTP client
        """
        super().__init__(api_key, settings)
        self._client = client or httpx.Client()

    @property
    def name(self) -> str:
        return "claude"

    @property
    def display_name(self) -> str:
        return "Claude Vision"

    def _send(
        self, request: OcrRequest, image_data: str, mime_type: str, prompt: str, timeout: float
    ) -> str:
        response = self._client.post(
            CLAUDE_API_URL,
            headers={
                "x-api-key": self._api_key,
                "anthropic-version": ANTHROPIC_VERSION,
            },
            json=self._build_request_body(image_data, mime_type, prompt),
            timeout=timeout,
        )
        response.raise_for_status()
        return response.text

    def _build_request_body(self, image_data: str, mime_type: str, prompt: str) -> dict[str, Any]:
        """Build the Messages API body: one document/image block followed by the prompt."""
        block_type = "document" if mime_type == "application/pdf" else "image"
        return {
            "model": self.settings.claude_model,
            "max_tokens": self.settings.ocr_max_tokens,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": block_type,
                            "source": {
                                "type": "base64",
                                "media_type": mime_type,
                                "data": image_data,
                            },
                        },
                        {"type": "text", "text": prompt},
                    ],
                }
            ],
        }

    def _extract_content(self, payload: dict[str, Any]) -> str | None:
        for block in payload.get("content") or []:
            if block.get("type") == "text":
                text: str | None = block.get("text")
                return text
        return None

    def close(self) -> None:
        self._client.close()
