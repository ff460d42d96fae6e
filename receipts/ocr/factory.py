"""Factory and registry for OCR engines.

Implements Factory Pattern for engine construction with a registry of engine
types for extensibility.

Based on:
- Factory Pattern: https://refactoring.guru/design-patterns/factory-method/python
- Registry Pattern: Python Cookbook 3rd Edition, Recipe 9.22

An engine is only constructed when its API key is configured and is not a
placeholder value. Unconfigured providers never reach the registry, which is
how the pipeline degrades gracefully when a provider is missing.
"""

import logging
from collections.abc import Iterable, Iterator

from pydantic import SecretStr

from receipts.ocr.base import OcrEngine, is_placeholder_key
from receipts.ocr.claude_engine import ClaudeOcrEngine
from receipts.ocr.google_engine import GoogleAIOcrEngine
from receipts.ocr.openai_engine import OpenAIOcrEngine
from receipts.shared.config import Settings

logger = logging.getLogger(__name__)


class OcrEngineRegistry:
    """Set of configured, available OCR engines.

    The class keeps a mapping of engine names to their implementation class and
    the Settings field holding their API key; instances hold the engines that
    were actually constructed. Iteration order is registration order.
    """

    _engine_types: dict[str, tuple[type[OcrEngine], str]] = {
        "openai": (OpenAIOcrEngine, "openai_api_key"),
        "claude": (ClaudeOcrEngine, "claude_api_key"),
        "google-ai": (GoogleAIOcrEngine, "google_ai_api_key"),
    }

    def __init__(self, engines: Iterable[OcrEngine] = ()) -> None:
        """Initialize registry with already constructed engines.

        Args:
            engines: Engines to expose, in selection order
        """
        self._engines: dict[str, OcrEngine] = {}
        for engine in engines:
            self._engines[engine.name] = engine

    @classmethod
    def register(cls, name: str, engine_class: type[OcrEngine], key_setting: str) -> None:
        """Register a new engine type.

        Args:
            name: Engine identifier
            engine_class: Class implementing OcrEngine, constructed as engine_class(api_key, settings)
            key_setting: Name of the Settings field holding the engine's API key
        """
        cls._engine_types[name] = (engine_class, key_setting)
        logger.info(f"Registered OCR engine type: {name}")

    @classmethod
    def list_engine_types(cls) -> list[str]:
        """List all registered engine type names."""
        return list(cls._engine_types.keys())

    @classmethod
    def engine_types(cls) -> dict[str, tuple[type[OcrEngine], str]]:
        return dict(cls._engine_types)

    def available_engines(self) -> tuple[OcrEngine, ...]:
        """Return the engines that were configured and are currently available."""
        return tuple(engine for engine in self._engines.values() if engine.is_available())

    def engine_names(self) -> list[str]:
        return [engine.name for engine in self.available_engines()]

    def get(self, name: str) -> OcrEngine:
        """Get a configured engine by name.

        Raises:
            ValueError: If no engine with that name is configured
        """
        if name not in self._engines:
            available = ", ".join(self._engines) or "none"
            raise ValueError(f"Unknown OCR engine: '{name}'. Available engines: {available}")
        return self._engines[name]

    def first_available(self) -> OcrEngine | None:
        return next(iter(self.available_engines()), None)

    def close(self) -> None:
        for engine in self._engines.values():
            engine.close()

    def __iter__(self) -> Iterator[OcrEngine]:
        return iter(self.available_engines())

    def __len__(self) -> int:
        return len(self.available_engines())

    def __bool__(self) -> bool:
        return len(self) > 0

    def __contains__(self, name: object) -> bool:
        return name in self._engines


def _secret_value(value: SecretStr | str | None) -> str | None:
    if isinstance(value, SecretStr):
        return value.get_secret_value()
    return value


def create_ocr_registry(settings: Settings) -> OcrEngineRegistry:
    """Build the registry from whichever providers have a real API key.

    Args:
        settings: Application settings with provider API keys

    Returns:
        Registry holding one engine per configured provider (possibly empty)

    Example:
        >>> settings = Settings(claude_api_key="sk-ant-...")
        >>> registry = create_ocr_registry(settings)
        >>> registry.engine_names()
        ['claude']
    """
    engines: list[OcrEngine] = []

    for name, (engine_class, key_setting) in OcrEngineRegistry.engine_types().items():
        api_key = _secret_value(getattr(settings, key_setting, None))
        if api_key is None or is_placeholder_key(api_key):
            logger.debug(f"{name} API key not configured, skipping {name} OCR engine")
            continue

        logger.info(f"Configuring {name} OCR engine")
        engines.append(engine_class(api_key.strip(), settings))

    registry = OcrEngineRegistry(engines)
    if registry:
        logger.info(f"Available OCR engines: {registry.engine_names()}")
    else:
        logger.warning("No OCR engines configured! Please configure at least one API key.")
    return registry
