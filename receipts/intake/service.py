"""File intake: deduplicate, move into storage and record an inbox item.

Processing order for one file:
1. readiness check (exists, regular, readable, non-empty, supported extension)
2. content checksum
3. global duplicate lookup by checksum (across all users)
4. allocate a storage path and move the file there
5. persist a CREATED inbox item

Persistence happens only after the move succeeded, so a storage failure
leaves no record behind and the source file where it was. A failed save
moves the file back to the inbox.
"""

import logging
import os
import shutil
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path

from receipts.inbox.model import InboxItem, InboxState
from receipts.intake.checksum import ChecksumStore
from receipts.intake.paths import StoragePathAllocator
from receipts.shared import metrics
from receipts.storage.repository import DuplicateChecksumError, InboxRepository

logger = logging.getLogger(__name__)

DEFAULT_SUPPORTED_EXTENSIONS = ("pdf", "jpg", "jpeg", "png", "gif", "bmp", "tiff", "webp")


class StorageError(Exception):
    """Raised when an ingested file cannot be placed in storage."""


class FileIntakeService:
    """Turns files dropped into the inbox folder into inbox items."""

    def __init__(
        self,
        repository: InboxRepository,
        checksums: ChecksumStore,
        allocator: StoragePathAllocator,
        supported_extensions: Iterable[str] = DEFAULT_SUPPORTED_EXTENSIONS,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialize intake service.

        Args:
            repository: Inbox item store
            checksums: Content hasher
            allocator: Storage path allocator
            supported_extensions: Accepted extensions, case-insensitive, with or without dot
            now: Clock for upload timestamps
        """
        self.repository = repository
        self.checksums = checksums
        self.allocator = allocator
        self.supported_extensions = frozenset(
            ext.lower().lstrip(".") for ext in supported_extensions
        )
        self.now = now

    def is_ready(self, path: Path) -> bool:
        """Check whether a file can be ingested.

        Never raises; every rejection is logged at WARNING.
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"File does not exist: {path}")
            return False
        if not path.is_file():
            logger.warning(f"Not a regular file: {path}")
            return False
        if not os.access(path, os.R_OK):
            logger.warning(f"File is not readable: {path}")
            return False
        try:
            size = path.stat().st_size
        except OSError as e:
            logger.warning(f"Cannot stat file {path}: {e}")
            return False
        if size == 0:
            logger.warning(f"File is empty: {path}")
            return False
        if not self.is_supported(path):
            logger.warning(f"Unsupported file type: {path}")
            return False
        return True

    def is_supported(self, path: Path) -> bool:
        return Path(path).suffix.lower().lstrip(".") in self.supported_extensions

    def process(self, path: Path, user_id: str) -> InboxItem | None:
        """Ingest one file.

        Args:
            path: File in the inbox folder
            user_id: Owner of the new inbox item

        Returns:
            The persisted CREATED item, or None when the file was not ready
            or its content was already ingested

        Raises:
            StorageError: If the file could not be moved into storage
            OSError: If the file could not be read for hashing

        Any other error raised while saving the item is re-raised after the
        file has been moved back to the inbox.
        """
        path = Path(path)
        if not self.is_ready(path):
            metrics.intake_files_total.labels(outcome="not_ready").inc()
            return None

        checksum = self.checksums.checksum(path)

        existing = self.repository.find_by_checksum(checksum)
        if existing is not None:
            logger.warning(
                f"Duplicate file {path.name} skipped, matches inbox item {existing.id} "
                f"(checksum {checksum})"
            )
            metrics.intake_files_total.labels(outcome="duplicate").inc()
            return None

        size = path.stat().st_size
        target = self._move_to_storage(path)

        item = InboxItem(
            filename=path.name,
            file_path=str(target),
            upload_date=self.now(),
            checksum=checksum,
            user_id=str(user_id),
            state=InboxState.CREATED,
        )
        try:
            saved = self.repository.save(item)
        except DuplicateChecksumError:
            # Lost a race with another save of the same content
            logger.warning(f"Duplicate file {path.name} detected on save, restoring to inbox")
            shutil.move(str(target), str(path))
            metrics.intake_files_total.labels(outcome="duplicate").inc()
            return None
        except Exception:
            logger.error(f"Failed to record {path.name}, restoring it to the inbox")
            shutil.move(str(target), str(path))
            metrics.intake_files_total.labels(outcome="storage_error").inc()
            raise

        metrics.intake_files_total.labels(outcome="ingested").inc()
        metrics.intake_file_size_bytes.observe(size)
        logger.info(f"Ingested {path.name} as inbox item {saved.id} at {target}")
        return saved

    def _move_to_storage(self, path: Path) -> Path:
        try:
            target = self.allocator.allocate(path.name)
            shutil.move(str(path), str(target))
        except OSError as e:
            metrics.intake_files_total.labels(outcome="storage_error").inc()
            logger.error(f"Failed to move {path} into storage: {e}")
            raise StorageError(f"Failed to store file {path.name}: {e}") from e
        return target
