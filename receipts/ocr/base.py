"""Abstract base class for vision OCR engines.

Enables switching between OCR providers (OpenAI, Claude, Google AI) while
maintaining one request/result contract.

Based on Strategy Pattern:
https://refactoring.guru/design-patterns/strategy/python

The shared extract() template owns everything that is not provider-specific:
- request validation (the only case that raises)
- availability check
- image encoding and prompt building
- retries with exponential backoff for transient errors, bounded by timeout_ms
  (backoff sleeps included; each call only gets the time that is left)
- translation of every provider/network/parse error into OcrFailure
Providers only implement the HTTP call and the response-content lookup.
"""

import base64
import json
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    stop_before_delay,
    wait_exponential_jitter,
)

from receipts.ocr.parsing import build_receipt_prompt, parse_receipt_fields
from receipts.ocr.schema import EMPTY_RAW_JSON, OcrFailure, OcrRequest, OcrResult, OcrSuccess
from receipts.shared import metrics
from receipts.shared.config import Settings

logger = logging.getLogger(__name__)

# Values shipped in sample configs that must never be treated as real credentials
PLACEHOLDER_API_KEYS = frozenset(
    {
        "openaiapikey",
        "claudeapikey",
        "googleaiapikey",
        "changeme",
        "change-me",
        "your-api-key",
        "your_api_key",
        "<api-key>",
        "xxx",
    }
)

MIME_TYPES = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "bmp": "image/bmp",
    "webp": "image/webp",
    "tiff": "image/tiff",
    "pdf": "application/pdf",
}


def is_placeholder_key(api_key: str | None) -> bool:
    """Return True if the key is absent, blank or a known placeholder value."""
    if api_key is None or not api_key.strip():
        return True
    return api_key.strip().lower() in PLACEHOLDER_API_KEYS


def detect_mime_type(path: Path) -> str:
    """Map a file extension to the MIME type sent to providers (default image/jpeg)."""
    return MIME_TYPES.get(path.suffix.lower().lstrip("."), "image/jpeg")


def is_transient_http_error(exc: BaseException) -> bool:
    """Timeouts, connection failures, HTTP 429 and 5xx are worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


class OcrEngine(ABC):
    """Abstract base class for vision OCR engines.

    All engines must implement this interface so that callers can select,
    fall back between and add providers without changing call sites.

    Example implementations:
    - OpenAIOcrEngine: OpenAI chat completions with image input
    - ClaudeOcrEngine: Anthropic Messages API
    - GoogleAIOcrEngine: Gemini generateContent
    """

    def __init__(self, api_key: str, settings: Settings) -> None:
        """Initialize engine with its credential and settings.

        Args:
            api_key: Provider API key
            settings: Application settings
        """
        self._api_key = api_key
        self.settings = settings

    @property
    @abstractmethod
    def name(self) -> str:
        """Get engine identifier for logging/metrics (e.g. 'openai')."""

    @property
    def display_name(self) -> str:
        return self.name

    def is_available(self) -> bool:
        """Check if the provider credential is configured and not a placeholder.

        Returns:
            True if the engine can be used, False otherwise
        """
        return not is_placeholder_key(self._api_key)

    def extract(self, request: OcrRequest) -> OcrResult:
        """Extract receipt fields from the requested file.

        Args:
            request: OCR request (file and processing options)

        Returns:
            OcrSuccess with extracted fields, or OcrFailure with a reason

        Raises:
            InvalidOcrRequestError: If the request is invalid (no network call is made)
        """
        request.ensure_valid()
        started = time.monotonic()

        if not self.is_available():
            return self._finish(
                OcrFailure(error_message=f"{self.display_name} OCR engine is not available"),
                started,
            )

        logger.debug(f"Processing file with {self.display_name}: {request.file.name}")
        raw = EMPTY_RAW_JSON
        try:
            image_data = base64.b64encode(request.file.read_bytes()).decode("ascii")
            mime_type = detect_mime_type(request.file)
            prompt = build_receipt_prompt(request.expected_language, request.extraction_hints)
            raw = self._call_with_retry(
                request,
                started,
                lambda timeout: self._send(request, image_data, mime_type, prompt, timeout),
            )
        except Exception as e:
            logger.error(f"{self.display_name} API call failed for {request.file.name}: {e}")
            return self._finish(
                OcrFailure(
                    error_message=f"{self.display_name} API error: {e}",
                    raw_json=self._error_body(e),
                ),
                started,
            )

        return self._finish(self._parse_response(raw), started)

    def close(self) -> None:
        """Release network resources held by the engine."""

    def _call_with_retry(
        self, request: OcrRequest, started: float, call: Callable[[float], str]
    ) -> str:
        """Run the provider call, retrying transient errors.

        Makes at most max_retries + 1 attempts, all within timeout_ms of
        ``started``: a retry is skipped when its backoff would cross the
        deadline, and each call receives the remaining budget as its timeout.
        The last exception is re-raised when attempts run out.
        """
        deadline = started + request.timeout_seconds

        def attempt() -> str:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                raise TimeoutError(f"OCR timeout of {request.timeout_ms} ms exceeded")
            return call(remaining)

        retrying = Retrying(
            retry=retry_if_exception(self.is_transient_error),
            stop=stop_after_attempt(request.max_retries + 1)
            | stop_before_delay(max(deadline - time.monotonic(), 0)),
            wait=wait_exponential_jitter(
                initial=self.settings.ocr_retry_initial_wait,
                max=self.settings.ocr_retry_max_wait,
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        return retrying(attempt)

    def is_transient_error(self, exc: BaseException) -> bool:
        """Decide whether a provider error is worth another attempt."""
        return is_transient_http_error(exc)

    @abstractmethod
    def _send(
        self, request: OcrRequest, image_data: str, mime_type: str, prompt: str, timeout: float
    ) -> str:
        """Issue one provider request.

        Args:
            request: OCR request (for hints)
            image_data: Base64-encoded file content
            mime_type: MIME type of the file
            prompt: Structured-extraction prompt
            timeout: Seconds left of the request's timeout_ms budget

        Returns:
            Raw JSON response body
        """

    @abstractmethod
    def _extract_content(self, payload: dict[str, Any]) -> str | None:
        """Locate the model's text answer inside the provider response."""

    def _parse_response(self, raw: str) -> OcrResult:
        try:
            content = self._extract_content(json.loads(raw))
        except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
            logger.error(f"Error parsing {self.display_name} response: {e}")
            return OcrFailure(
                error_message=f"Failed to parse {self.display_name} response: {e}",
                raw_json=raw,
            )

        if not content or not content.strip():
            return OcrFailure(
                error_message=f"Empty content in {self.display_name} response", raw_json=raw
            )

        # pydantic's ValidationError is a ValueError
        try:
            return OcrSuccess(**parse_receipt_fields(content), raw_json=raw)
        except ValueError as e:
            logger.warning(f"Error parsing receipt data from content: {content!r}")
            return OcrFailure(error_message=f"Failed to parse receipt data: {e}", raw_json=raw)

    def _error_body(self, exc: BaseException) -> str:
        """Return the provider's JSON error body when the exception carries one."""
        response = getattr(exc, "response", None)
        if not isinstance(response, httpx.Response):
            return EMPTY_RAW_JSON
        try:
            json.loads(response.text)
        except (ValueError, httpx.ResponseNotRead):
            return EMPTY_RAW_JSON
        return response.text

    def _finish(self, result: OcrResult, started: float) -> OcrResult:
        elapsed = time.monotonic() - started
        status = "success" if result.success else "failed"
        metrics.ocr_requests_total.labels(engine=self.name, status=status).inc()
        metrics.ocr_processing_duration_seconds.labels(engine=self.name).observe(elapsed)
        return result.model_copy(
            update={"processing_time_ms": int(elapsed * 1000), "engine": self.name}
        )
