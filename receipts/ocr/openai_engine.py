"""OpenAI-based OCR engine for receipt field extraction.

Sends the document image to a vision-capable chat completions model and asks
for a structured JSON answer. Retries are handled by the shared engine template,
so the SDK's own retry loop is disabled.

Requires RECEIPTS_OPENAI_API_KEY.
"""

from typing import Any

import openai
from openai import OpenAI

from receipts.ocr.base import OcrEngine
from receipts.ocr.schema import OcrRequest
from receipts.shared.config import Settings


class OpenAIOcrEngine(OcrEngine):
    """OpenAI vision OCR engine using the chat completions API."""

    def __init__(self, api_key: str, settings: Settings) -> None:
        """Initialize OpenAI OCR engine.

        Args:
            api_key: OpenAI API key
            settings: Application settings
        """
        super().__init__(api_key, settings)
        self._client: OpenAI | None = None

    @property
    def name(self) -> str:
        return "openai"

    @property
    def display_name(self) -> str:
        return "OpenAI Vision"

    def is_transient_error(self, exc: BaseException) -> bool:
        """Retry on timeouts, connection errors, rate limits and server errors."""
        return isinstance(
            exc,
            (
                openai.APITimeoutError,
                openai.APIConnectionError,
                openai.RateLimitError,
                openai.InternalServerError,
            ),
        )

    def _get_client(self) -> OpenAI:
        """Get or create the OpenAI client (lazy initialization)."""
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key, max_retries=0)
        return self._client

    def _send(
        self, request: OcrRequest, image_data: str, mime_type: str, prompt: str, timeout: float
    ) -> str:
        response = self._get_client().chat.completions.create(
            model=self.settings.openai_model,
            messages=[
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": prompt},
                        {
                            "type": "image_url",
                            "image_url": {"url": f"data:{mime_type};base64,{image_data}"},
                        },
                    ],
                }
            ],
            max_tokens=self.settings.ocr_max_tokens,
            temperature=0,  # Deterministic output
            timeout=timeout,
        )
        body: str = response.model_dump_json()
        return body

    def _extract_content(self, payload: dict[str, Any]) -> str | None:
        content: str | None = payload["choices"][0]["message"]["content"]
        return content

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None
