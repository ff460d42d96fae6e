"""Logging setup shared by the watcher entry point and scripts."""

import logging

from receipts.shared.config import Settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def configure_logging(settings: Settings) -> None:
    """Configure root logging from settings.

    Args:
        settings: Application settings (uses log_level)
    """
    logging.basicConfig(level=settings.log_level, format=LOG_FORMAT)
    # httpx logs every request at INFO, which drowns out pipeline messages
    logging.getLogger("httpx").setLevel(logging.WARNING)
