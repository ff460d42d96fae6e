"""Inbox folder watcher.

Periodically scans the inbox directory, ingests every new file and, when OCR
engines are configured, runs OCR for the items it created.

Run with: python -m receipts.intake.watcher
Or, for a single scan: python -m receipts.intake.watcher --once
"""

import argparse
import logging
import os
import threading
from pathlib import Path

from receipts.inbox.model import InboxItem
from receipts.inbox.ocr_processing import InboxOcrService
from receipts.intake.checksum import ChecksumStore
from receipts.intake.paths import StoragePathAllocator
from receipts.intake.service import FileIntakeService
from receipts.ocr.factory import create_ocr_registry
from receipts.ocr.service import OcrService
from receipts.shared.config import Settings, get_settings
from receipts.shared.logging import configure_logging
from receipts.storage.sql import SqlInboxRepository, SqlOcrAttemptRepository, create_session_factory

logger = logging.getLogger(__name__)


class InboxWatcher:
    """Scans an inbox directory and feeds new files to intake and OCR."""

    def __init__(
        self,
        inbox_path: Path,
        intake: FileIntakeService,
        default_user_id: str,
        inbox_ocr: InboxOcrService | None = None,
        scan_interval_seconds: float = 30.0,
    ) -> None:
        """Initialize watcher.

        Args:
            inbox_path: Directory to scan (created if missing)
            intake: Intake service that ingests each file
            default_user_id: Owner of files found in the directory
            inbox_ocr: Optional OCR driver run on newly created items
            scan_interval_seconds: Delay between scans in run_forever
        """
        self.inbox_path = Path(inbox_path)
        self.intake = intake
        self.default_user_id = default_user_id
        self.inbox_ocr = inbox_ocr
        self.scan_interval_seconds = scan_interval_seconds

    def candidate_files(self) -> list[Path]:
        """List regular, non-hidden, readable files in the inbox directory."""
        self.inbox_path.mkdir(parents=True, exist_ok=True)
        return sorted(
            path
            for path in self.inbox_path.iterdir()
            if path.is_file() and not path.name.startswith(".") and os.access(path, os.R_OK)
        )

    def scan_once(self) -> list[InboxItem]:
        """Run one scan over the inbox directory.

        A failure on one file is logged and the scan moves on to the next.

        Returns:
            Items created during this scan, in their state after OCR
        """
        created: list[InboxItem] = []
        for path in self.candidate_files():
            try:
                item = self.intake.process(path, self.default_user_id)
            except Exception:
                logger.exception(f"Failed to ingest {path}")
                continue
            if item is None:
                continue
            created.append(self._run_ocr(item))

        if created:
            logger.info(f"Ingested {len(created)} new file(s) from {self.inbox_path}")
        return created

    def run_forever(self, stop_event: threading.Event | None = None) -> None:
        """Scan repeatedly until the stop event is set."""
        stop_event = stop_event or threading.Event()
        logger.info(
            f"Watching {self.inbox_path} every {self.scan_interval_seconds}s "
            f"for user {self.default_user_id}"
        )
        while not stop_event.is_set():
            self.scan_once()
            stop_event.wait(self.scan_interval_seconds)

    def recover_interrupted(self) -> None:
        """Fail items a previous run left in PROCESSING so they can be retried."""
        if self.inbox_ocr is not None:
            self.inbox_ocr.recover_interrupted()

    def _run_ocr(self, item: InboxItem) -> InboxItem:
        if self.inbox_ocr is None or not self.inbox_ocr.ocr_service.has_available_engines():
            return item
        try:
            return self.inbox_ocr.process_item(item)
        except Exception:
            logger.exception(f"OCR failed for newly ingested inbox item {item.id}")
            return item


def build_watcher(settings: Settings) -> InboxWatcher:
    """Wire the watcher and its services from settings."""
    session_factory = create_session_factory(settings.database_url)
    repository = SqlInboxRepository(session_factory)
    intake = FileIntakeService(
        repository=repository,
        checksums=ChecksumStore(settings.checksum_algorithm),
        allocator=StoragePathAllocator(Path(settings.attachments_path)),
        supported_extensions=settings.supported_extensions,
    )
    ocr_service = OcrService(
        create_ocr_registry(settings),
        attempt_repository=SqlOcrAttemptRepository(session_factory),
    )
    return InboxWatcher(
        inbox_path=Path(settings.inbox_path),
        intake=intake,
        default_user_id=settings.default_user_id,
        inbox_ocr=InboxOcrService(repository, ocr_service),
        scan_interval_seconds=settings.scan_interval_seconds,
    )


def main(argv: list[str] | None = None) -> None:
    """Run the inbox watcher."""
    parser = argparse.ArgumentParser(description="Watch the inbox directory for new documents")
    parser.add_argument("--once", action="store_true", help="Run a single scan and exit")
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings)

    logger.info(f"Starting {settings.service_name} {settings.service_version}")
    logger.info(f"Inbox: {settings.inbox_path}, attachments: {settings.attachments_path}")

    watcher = build_watcher(settings)
    try:
        watcher.recover_interrupted()
        if args.once:
            watcher.scan_once()
        else:
            watcher.run_forever()
    except KeyboardInterrupt:
        logger.info("Watcher stopped")
    finally:
        if watcher.inbox_ocr is not None:
            watcher.inbox_ocr.ocr_service.close()


if __name__ == "__main__":
    main()
