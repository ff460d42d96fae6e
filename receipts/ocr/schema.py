"""Data contracts crossing the OCR engine boundary.

OcrRequest carries the file and processing options into an engine.
OcrResult is a closed two-way union: OcrSuccess (extracted fields) or
OcrFailure (mandatory error message). A result can never carry both.
"""

import datetime
import os
from decimal import Decimal
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

EMPTY_RAW_JSON = "{}"


class InvalidOcrRequestError(ValueError):
    """Raised when an OcrRequest fails validation before any network call."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        super().__init__("Invalid OCR request: " + "; ".join(errors))


class OcrRequest(BaseModel):
    """Input to an OCR attempt.

    Construction never fails; call validation_errors()/is_valid() to check
    that the request can be processed.

    Attributes:
        file: Path to the document to analyse
        expected_language: Optional language hint (e.g. 'en', 'de')
        max_retries: Re-attempts allowed on transient provider errors
        timeout_ms: Timeout for the provider call in milliseconds
        extraction_hints: Free-text hints appended to the extraction prompt
    """

    model_config = ConfigDict(frozen=True)

    file: Path
    expected_language: str | None = None
    max_retries: int = 3
    timeout_ms: int = 30000
    extraction_hints: list[str] = Field(default_factory=list)

    def validation_errors(self) -> list[str]:
        """Collect every problem that prevents this request from being processed.

        Returns:
            List of human-readable problems, empty when the request is valid
        """
        errors: list[str] = []
        path = self.file.absolute()

        if not self.file.is_file():
            errors.append(f"File does not exist: {path}")
        else:
            if not os.access(self.file, os.R_OK):
                errors.append(f"File is not readable: {path}")
            if self.file.stat().st_size == 0:
                errors.append(f"File is empty: {path}")

        if self.max_retries < 0:
            errors.append(f"Max retries cannot be negative: {self.max_retries}")

        if self.timeout_ms <= 0:
            errors.append(f"Timeout must be positive: {self.timeout_ms}")

        return errors

    def is_valid(self) -> bool:
        """Return True if the request can be handed to an engine."""
        return not self.validation_errors()

    def ensure_valid(self) -> None:
        """Raise InvalidOcrRequestError if the request is not valid."""
        errors = self.validation_errors()
        if errors:
            raise InvalidOcrRequestError(errors)

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


class OcrSuccess(BaseModel):
    """Successful OCR attempt with the fields extracted from the document.

    Attributes:
        provider: Merchant or service provider name
        amount: Total amount
        date: Document date
        currency: ISO 4217 currency code
        confidence: Engine confidence (0-1)
        raw_json: Raw provider response body
        processing_time_ms: Wall time spent in the engine
        engine: Name of the engine that produced the result
    """

    model_config = ConfigDict(frozen=True)

    success: Literal[True] = True
    provider: str | None = None
    amount: Decimal | None = None
    date: datetime.date | None = None
    currency: str | None = None
    confidence: float | None = Field(None, ge=0, le=1)
    raw_json: str = EMPTY_RAW_JSON
    processing_time_ms: int | None = None
    engine: str | None = None

    @property
    def error_message(self) -> None:
        return None


class OcrFailure(BaseModel):
    """Failed OCR attempt.

    Attributes:
        error_message: Why the attempt failed (mandatory)
        raw_json: Raw provider response body, if one was received
        processing_time_ms: Wall time spent in the engine
        engine: Name of the engine that produced the result
    """

    model_config = ConfigDict(frozen=True)

    success: Literal[False] = False
    error_message: str = Field(min_length=1)
    raw_json: str = EMPTY_RAW_JSON
    processing_time_ms: int | None = None
    engine: str | None = None


OcrResult = OcrSuccess | OcrFailure
