"""OCR orchestration over the configured engines.

Selects an engine from the registry, falls back across engines in
registration order when asked to, and records one OcrAttempt per engine call
when an attempt repository is configured. Problems that stop OCR before an
engine answers (no engines, missing file, invalid request) come back as
OcrFailure so callers can move the inbox item to FAILED and retry later.
"""

import logging
from pathlib import Path

from receipts.ocr.base import OcrEngine
from receipts.ocr.factory import OcrEngineRegistry
from receipts.ocr.schema import InvalidOcrRequestError, OcrFailure, OcrRequest, OcrResult
from receipts.storage.repository import OcrAttempt, OcrAttemptRepository

logger = logging.getLogger(__name__)

NO_ENGINES_MESSAGE = "No OCR engines available"


class OcrService:
    """Runs OCR requests against the engines of a registry."""

    def __init__(
        self,
        registry: OcrEngineRegistry,
        attempt_repository: OcrAttemptRepository | None = None,
        max_retries: int = 3,
        timeout_ms: int = 30000,
    ) -> None:
        """Initialize OCR service.

        Args:
            registry: Configured OCR engines
            attempt_repository: Optional store for per-attempt history
            max_retries: Default retries per engine call
            timeout_ms: Default timeout per engine call
        """
        self.registry = registry
        self.attempt_repository = attempt_repository
        self.max_retries = max_retries
        self.timeout_ms = timeout_ms

    def has_available_engines(self) -> bool:
        return bool(self.registry)

    def available_engine_names(self) -> list[str]:
        return self.registry.engine_names()

    def build_request(self, file_path: Path, **options: object) -> OcrRequest:
        """Create a request with the service defaults, overridable per call."""
        values: dict[str, object] = {"max_retries": self.max_retries, "timeout_ms": self.timeout_ms}
        values.update(options)
        return OcrRequest(file=Path(file_path), **values)  # type: ignore[arg-type]

    def process_file(self, file_path: Path, item_id: str | None = None) -> OcrResult:
        """Run OCR with the first available engine.

        Args:
            file_path: Document to analyse
            item_id: Inbox item the attempt is recorded against

        Returns:
            Result of the primary engine
        """
        engine = self.registry.first_available()
        if engine is None:
            logger.warning(f"{NO_ENGINES_MESSAGE} for {file_path}")
            return OcrFailure(error_message=NO_ENGINES_MESSAGE)
        return self._run(engine, Path(file_path), item_id)

    def process_with_engine(
        self, engine_name: str, file_path: Path, item_id: str | None = None
    ) -> OcrResult:
        """Run OCR with an explicitly chosen engine.

        Raises:
            ValueError: If no engine with that name is configured
        """
        return self._run(self.registry.get(engine_name), Path(file_path), item_id)

    def process_file_with_fallback(self, file_path: Path, item_id: str | None = None) -> OcrResult:
        """Try each available engine in order until one succeeds.

        Returns:
            First successful result, or a failure carrying the last engine's error
        """
        engines = self.registry.available_engines()
        if not engines:
            logger.warning(f"{NO_ENGINES_MESSAGE} for {file_path}")
            return OcrFailure(error_message=NO_ENGINES_MESSAGE)

        last: OcrResult = OcrFailure(error_message=NO_ENGINES_MESSAGE)
        for engine in engines:
            last = self._run(engine, Path(file_path), item_id)
            if last.success:
                return last
            logger.warning(f"OCR engine {engine.name} failed, trying next: {last.error_message}")

        return OcrFailure(
            error_message=f"All OCR engines failed. Last error: {last.error_message}",
            raw_json=last.raw_json,
            processing_time_ms=last.processing_time_ms,
            engine=last.engine,
        )

    def close(self) -> None:
        self.registry.close()

    def _run(self, engine: OcrEngine, file_path: Path, item_id: str | None) -> OcrResult:
        if not file_path.is_file():
            logger.warning(f"File not found on disk: {file_path}")
            return OcrFailure(error_message=f"File not found on disk: {file_path}", engine=engine.name)

        attempt = self._start_attempt(engine, item_id)

        try:
            result = engine.extract(self.build_request(file_path))
        except InvalidOcrRequestError as e:
            logger.warning(f"Rejected OCR request for {file_path}: {e}")
            result = OcrFailure(error_message=str(e), engine=engine.name)

        if result.success:
            logger.info(f"OCR with {engine.name} succeeded for {file_path.name}")
            self._save_attempt(attempt and attempt.succeeded(result.raw_json))
        else:
            logger.warning(f"OCR with {engine.name} failed for {file_path.name}: {result.error_message}")
            self._save_attempt(attempt and attempt.failed(str(result.error_message), result.raw_json))
        return result

    def _start_attempt(self, engine: OcrEngine, item_id: str | None) -> OcrAttempt | None:
        if item_id is None or self.attempt_repository is None:
            return None
        return self.attempt_repository.save(OcrAttempt(item_id=item_id, engine=engine.name))

    def _save_attempt(self, attempt: OcrAttempt | None) -> None:
        if attempt is not None and self.attempt_repository is not None:
            self.attempt_repository.save(attempt)
