"""Drives OCR outcomes into the inbox item lifecycle."""

import logging
from collections import Counter
from pathlib import Path

from receipts.inbox.model import InboxItem, InboxState
from receipts.ocr.service import OcrService
from receipts.shared import metrics
from receipts.storage.repository import InboxRepository

logger = logging.getLogger(__name__)

INTERRUPTED_MESSAGE = "OCR was interrupted before completion"


class InboxOcrService:
    """Runs OCR for inbox items and persists every state change.

    Items move CREATED -> PROCESSING -> PROCESSED or FAILED, with each step
    saved so a crash mid-OCR leaves a visible PROCESSING item rather than a
    silently lost one. process_pending() moves such items to FAILED, where
    they can be retried or rejected.
    """

    def __init__(
        self,
        repository: InboxRepository,
        ocr_service: OcrService,
        use_fallback: bool = True,
    ) -> None:
        """Initialize inbox OCR service.

        Args:
            repository: Inbox item store
            ocr_service: OCR orchestration over the configured engines
            use_fallback: Try every engine in turn instead of only the first
        """
        self.repository = repository
        self.ocr_service = ocr_service
        self.use_fallback = use_fallback

    def process_item(self, item: InboxItem) -> InboxItem:
        """Run OCR for a CREATED item.

        Returns:
            The saved item in PROCESSED or FAILED state

        Raises:
            InvalidTransitionError: If the item is not in CREATED state
        """
        processing = self._save(item.start_processing())
        file_path = Path(processing.file_path)

        try:
            if self.use_fallback:
                result = self.ocr_service.process_file_with_fallback(file_path, processing.id)
            else:
                result = self.ocr_service.process_file(file_path, processing.id)
        except Exception as e:
            logger.exception(f"Unexpected error during OCR of inbox item {processing.id}")
            updated = processing.fail_ocr(f"Unexpected OCR error: {e}")
        else:
            updated = processing.complete_ocr(result)

        saved = self._save(updated)
        if saved.state == InboxState.PROCESSED:
            logger.info(f"Inbox item {saved.id} processed by {saved.ocr_engine}")
        else:
            logger.warning(f"OCR failed for inbox item {saved.id}: {saved.failure_reason}")
        return saved

    def process_by_id(self, item_id: str) -> InboxItem:
        return self.process_item(self._get(item_id))

    def retry(self, item_id: str) -> InboxItem:
        """Reset a FAILED item and run OCR again.

        Raises:
            ValueError: If the item does not exist
            InvalidTransitionError: If the item is not in FAILED state
        """
        item = self._save(self._get(item_id).retry())
        logger.info(f"Retrying OCR for inbox item {item.id}")
        return self.process_item(item)

    def recover_interrupted(self) -> list[InboxItem]:
        """Fail items left in PROCESSING by an earlier run so they can be retried.

        Only call this when no OCR is in flight; the pipeline runs as a single
        instance, so at the start of a batch every PROCESSING item is stale.
        """
        recovered: list[InboxItem] = []
        for item in self.repository.find_by_status(InboxState.PROCESSING):
            logger.warning(f"Inbox item {item.id} was left in PROCESSING, marking it FAILED")
            recovered.append(self._save(item.fail_ocr(INTERRUPTED_MESSAGE)))
        return recovered

    def process_pending(self) -> list[InboxItem]:
        """Run OCR for every CREATED item, continuing past individual errors.

        Interrupted PROCESSING items are recovered to FAILED first.
        """
        self.recover_interrupted()
        processed: list[InboxItem] = []
        for item in self.repository.find_by_status(InboxState.CREATED):
            try:
                processed.append(self.process_item(item))
            except Exception:
                logger.exception(f"Failed to process pending inbox item {item.id}")
        return processed

    def statistics(self, user_id: str | None = None) -> dict[InboxState, int]:
        """Count items per state, for one user or across all users."""
        items = (
            self.repository.find_by_user_id(user_id)
            if user_id is not None
            else self.repository.find_all()
        )
        counts = Counter(item.state for item in items)
        return {state: counts.get(state, 0) for state in InboxState}

    def _save(self, item: InboxItem) -> InboxItem:
        saved = self.repository.save(item)
        metrics.inbox_transitions_total.labels(to_state=saved.state.value).inc()
        return saved

    def _get(self, item_id: str) -> InboxItem:
        item = self.repository.find_by_id(item_id)
        if item is None:
            raise ValueError(f"Inbox item not found: {item_id}")
        return item
