"""Unit tests for InboxOcrService."""

from datetime import date, datetime
from decimal import Decimal
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from receipts.inbox.model import InboxItem, InboxState, InvalidTransitionError
from receipts.inbox.ocr_processing import INTERRUPTED_MESSAGE, InboxOcrService
from receipts.ocr.factory import OcrEngineRegistry
from receipts.ocr.schema import OcrFailure, OcrSuccess
from receipts.ocr.service import OcrService
from receipts.storage.repository import InMemoryInboxRepository

SUCCESS = OcrSuccess(
    provider="Corner Cafe",
    amount=Decimal("12.50"),
    date=date(2025, 1, 15),
    currency="USD",
    engine="claude",
)


@pytest.fixture
def repository() -> InMemoryInboxRepository:
    return InMemoryInboxRepository()


@pytest.fixture
def ocr_service() -> MagicMock:
    service = MagicMock(spec=OcrService)
    service.process_file_with_fallback.return_value = SUCCESS
    service.process_file.return_value = SUCCESS
    return service


@pytest.fixture
def inbox_ocr(repository: InMemoryInboxRepository, ocr_service: MagicMock) -> InboxOcrService:
    return InboxOcrService(repository, ocr_service)


def add_item(
    repository: InMemoryInboxRepository,
    checksum: str = "a" * 64,
    user_id: str = "1",
    state: InboxState = InboxState.CREATED,
) -> InboxItem:
    return repository.save(
        InboxItem(
            filename="receipt.jpg",
            file_path="/data/attachments/2025-01-15-receipt.jpg",
            upload_date=datetime(2025, 1, 15, 9, 30),
            checksum=checksum,
            user_id=user_id,
            state=state,
        )
    )


class TestProcessItem:
    """Test OCR for a single item."""

    def test_success_saved_as_processed(
        self,
        inbox_ocr: InboxOcrService,
        repository: InMemoryInboxRepository,
        ocr_service: MagicMock,
    ) -> None:
        item = add_item(repository)

        processed = inbox_ocr.process_item(item)

        assert processed.state == InboxState.PROCESSED
        assert processed.extracted_amount == Decimal("12.50")
        assert processed.ocr_engine == "claude"
        assert repository.find_by_id(str(item.id)) == processed
        ocr_service.process_file_with_fallback.assert_called_once_with(
            Path(item.file_path), item.id
        )

    def test_failure_saved_as_failed(
        self,
        inbox_ocr: InboxOcrService,
        repository: InMemoryInboxRepository,
        ocr_service: MagicMock,
    ) -> None:
        ocr_service.process_file_with_fallback.return_value = OcrFailure(error_message="rate limit")
        item = add_item(repository)

        failed = inbox_ocr.process_item(item)

        assert failed.state == InboxState.FAILED
        assert failed.failure_reason == "rate limit"

    def test_passes_through_processing(
        self, repository: InMemoryInboxRepository, ocr_service: MagicMock
    ) -> None:
        """The PROCESSING state is persisted before the OCR call."""
        states_during_ocr: list[InboxState] = []

        def observe(*args: object) -> OcrSuccess:
            states_during_ocr.append(repository.find_all()[0].state)
            return SUCCESS

        ocr_service.process_file_with_fallback.side_effect = observe
        InboxOcrService(repository, ocr_service).process_item(add_item(repository))

        assert states_during_ocr == [InboxState.PROCESSING]

    def test_unexpected_error_marks_failed(
        self,
        inbox_ocr: InboxOcrService,
        repository: InMemoryInboxRepository,
        ocr_service: MagicMock,
    ) -> None:
        ocr_service.process_file_with_fallback.side_effect = RuntimeError("boom")

        failed = inbox_ocr.process_item(add_item(repository))

        assert failed.state == InboxState.FAILED
        assert failed.failure_reason == "Unexpected OCR error: boom"

    def test_primary_engine_only(
        self, repository: InMemoryInboxRepository, ocr_service: MagicMock
    ) -> None:
        service = InboxOcrService(repository, ocr_service, use_fallback=False)

        service.process_item(add_item(repository))

        ocr_service.process_file.assert_called_once()
        ocr_service.process_file_with_fallback.assert_not_called()

    def test_requires_created_state(
        self, inbox_ocr: InboxOcrService, repository: InMemoryInboxRepository
    ) -> None:
        item = add_item(repository, state=InboxState.PROCESSED)

        with pytest.raises(InvalidTransitionError):
            inbox_ocr.process_item(item)

    def test_no_engines_marks_failed(self, repository: InMemoryInboxRepository) -> None:
        """Without engines the item fails with a retryable reason."""
        service = InboxOcrService(repository, OcrService(OcrEngineRegistry()))

        failed = service.process_item(add_item(repository))

        assert failed.state == InboxState.FAILED
        assert failed.failure_reason == "No OCR engines available"
        assert failed.can_retry() is True


class TestRetry:
    """Test retrying failed items."""

    def test_retry_reprocesses(
        self,
        inbox_ocr: InboxOcrService,
        repository: InMemoryInboxRepository,
    ) -> None:
        item = add_item(repository, state=InboxState.FAILED)

        retried = inbox_ocr.retry(str(item.id))

        assert retried.state == InboxState.PROCESSED
        assert retried.failure_reason is None

    def test_retry_unknown_item(self, inbox_ocr: InboxOcrService) -> None:
        with pytest.raises(ValueError, match="Inbox item not found"):
            inbox_ocr.retry("missing")

    def test_retry_requires_failed(
        self, inbox_ocr: InboxOcrService, repository: InMemoryInboxRepository
    ) -> None:
        item = add_item(repository)

        with pytest.raises(InvalidTransitionError):
            inbox_ocr.retry(str(item.id))


class TestBatch:
    """Test pending processing and statistics."""

    def test_process_pending(
        self, inbox_ocr: InboxOcrService, repository: InMemoryInboxRepository
    ) -> None:
        add_item(repository, checksum="a" * 64)
        add_item(repository, checksum="b" * 64)
        add_item(repository, checksum="c" * 64, state=InboxState.FAILED)

        processed = inbox_ocr.process_pending()

        assert len(processed) == 2
        assert all(item.state == InboxState.PROCESSED for item in processed)
        assert len(repository.find_by_status(InboxState.FAILED)) == 1

    def test_process_pending_recovers_interrupted_items(
        self, inbox_ocr: InboxOcrService, repository: InMemoryInboxRepository
    ) -> None:
        """An item left in PROCESSING by a crashed run is failed, then retryable."""
        stuck = add_item(repository, state=InboxState.PROCESSING)

        processed = inbox_ocr.process_pending()

        assert processed == []
        recovered = repository.find_by_id(str(stuck.id))
        assert recovered is not None
        assert recovered.state == InboxState.FAILED
        assert recovered.failure_reason == INTERRUPTED_MESSAGE
        assert inbox_ocr.retry(str(stuck.id)).state == InboxState.PROCESSED

    def test_process_by_id(
        self, inbox_ocr: InboxOcrService, repository: InMemoryInboxRepository
    ) -> None:
        item = add_item(repository)

        assert inbox_ocr.process_by_id(str(item.id)).state == InboxState.PROCESSED

    def test_statistics(
        self, inbox_ocr: InboxOcrService, repository: InMemoryInboxRepository
    ) -> None:
        add_item(repository, checksum="a" * 64)
        add_item(repository, checksum="b" * 64, state=InboxState.FAILED)
        add_item(repository, checksum="c" * 64, user_id="2", state=InboxState.FAILED)

        user_stats = inbox_ocr.statistics("1")
        all_stats = inbox_ocr.statistics()

        assert user_stats[InboxState.CREATED] == 1
        assert user_stats[InboxState.FAILED] == 1
        assert user_stats[InboxState.APPROVED] == 0
        assert all_stats[InboxState.FAILED] == 2
        assert set(all_stats) == set(InboxState)
