"""Collision-free storage paths for ingested files."""

import logging
from collections.abc import Callable
from datetime import date
from pathlib import Path

logger = logging.getLogger(__name__)


def split_extension(filename: str) -> tuple[str, str]:
    """Split a filename at its last dot.

    Returns:
        (stem, extension) where extension keeps its leading dot, or is empty
        when the name has no dot
    """
    stem, dot, ext = filename.rpartition(".")
    if not dot or not stem:
        return filename, ""
    return stem, f".{ext}"


class StoragePathAllocator:
    """Picks a free path under the storage root for an incoming filename.

    Names are prefixed with the allocation date (YYYY-MM-DD-<name>). When the
    name is taken, a counter goes before the extension: -1, -2, ... until a
    free name is found. The date comes from the injected ``today`` callable.
    """

    def __init__(self, root: Path, today: Callable[[], date] = date.today) -> None:
        self.root = Path(root)
        self.today = today

    def allocate(self, filename: str) -> Path:
        """Return a path under the root that does not exist yet.

        Creates the root directory if it is missing.

        Raises:
            OSError: If the root directory cannot be created
        """
        self.root.mkdir(parents=True, exist_ok=True)

        prefix = self.today().isoformat()
        candidate = self.root / f"{prefix}-{filename}"
        if not candidate.exists():
            return candidate

        stem, ext = split_extension(filename)
        counter = 1
        while True:
            candidate = self.root / f"{prefix}-{stem}-{counter}{ext}"
            if not candidate.exists():
                logger.debug(f"Storage name for {filename} taken, using {candidate.name}")
                return candidate
            counter += 1
