"""Unit tests for FileIntakeService."""

import logging
from datetime import date, datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from receipts.inbox.model import InboxState
from receipts.intake.checksum import ChecksumStore
from receipts.intake.paths import StoragePathAllocator
from receipts.intake.service import FileIntakeService, StorageError
from receipts.storage.repository import DuplicateChecksumError, InMemoryInboxRepository


@pytest.fixture
def inbox_dir(tmp_path: Path) -> Path:
    path = tmp_path / "inbox"
    path.mkdir()
    return path


@pytest.fixture
def repository() -> InMemoryInboxRepository:
    return InMemoryInboxRepository()


@pytest.fixture
def allocator(tmp_path: Path) -> StoragePathAllocator:
    return StoragePathAllocator(tmp_path / "attachments", today=lambda: date(2025, 1, 15))


@pytest.fixture
def service(
    repository: InMemoryInboxRepository, allocator: StoragePathAllocator
) -> FileIntakeService:
    return FileIntakeService(
        repository=repository,
        checksums=ChecksumStore(),
        allocator=allocator,
        now=lambda: datetime(2025, 1, 15, 9, 30),
    )


def write(path: Path, data: bytes = b"receipt-bytes") -> Path:
    path.write_bytes(data)
    return path


class TestIsReady:
    """Test readiness checks."""

    def test_supported_non_empty_file(self, service: FileIntakeService, inbox_dir: Path) -> None:
        assert service.is_ready(write(inbox_dir / "receipt.jpg")) is True

    def test_extension_is_case_insensitive(
        self, service: FileIntakeService, inbox_dir: Path
    ) -> None:
        assert service.is_ready(write(inbox_dir / "SCAN.PDF")) is True

    def test_missing_file(self, service: FileIntakeService, inbox_dir: Path) -> None:
        assert service.is_ready(inbox_dir / "missing.pdf") is False

    def test_directory(self, service: FileIntakeService, inbox_dir: Path) -> None:
        folder = inbox_dir / "folder.pdf"
        folder.mkdir()

        assert service.is_ready(folder) is False

    def test_empty_file(self, service: FileIntakeService, inbox_dir: Path) -> None:
        assert service.is_ready(write(inbox_dir / "empty.pdf", b"")) is False

    def test_unsupported_extension(self, service: FileIntakeService, inbox_dir: Path) -> None:
        assert service.is_ready(write(inbox_dir / "notes.txt")) is False

    def test_unreadable_file(self, service: FileIntakeService, inbox_dir: Path) -> None:
        path = write(inbox_dir / "locked.pdf")

        with patch("receipts.intake.service.os.access", return_value=False):
            assert service.is_ready(path) is False

    def test_rejection_is_logged_as_warning(
        self, service: FileIntakeService, inbox_dir: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        with caplog.at_level(logging.WARNING):
            service.is_ready(write(inbox_dir / "notes.txt"))

        assert "Unsupported file type" in caplog.text

    def test_custom_extensions(
        self, repository: InMemoryInboxRepository, allocator: StoragePathAllocator, inbox_dir: Path
    ) -> None:
        service = FileIntakeService(repository, ChecksumStore(), allocator, [".PDF"])

        assert service.is_ready(write(inbox_dir / "a.pdf")) is True
        assert service.is_ready(write(inbox_dir / "b.jpg")) is False


class TestProcess:
    """Test ingestion of a single file."""

    def test_new_file_is_moved_and_recorded(
        self,
        service: FileIntakeService,
        repository: InMemoryInboxRepository,
        allocator: StoragePathAllocator,
        inbox_dir: Path,
    ) -> None:
        source = write(inbox_dir / "receipt.jpg")

        item = service.process(source, "1")

        assert item is not None
        assert item.id is not None
        assert item.state == InboxState.CREATED
        assert item.filename == "receipt.jpg"
        assert item.user_id == "1"
        assert item.upload_date == datetime(2025, 1, 15, 9, 30)
        assert item.file_path == str(allocator.root / "2025-01-15-receipt.jpg")
        assert not source.exists()
        assert Path(item.file_path).read_bytes() == b"receipt-bytes"
        assert repository.find_by_id(item.id) == item

    def test_checksum_recorded(self, service: FileIntakeService, inbox_dir: Path) -> None:
        item = service.process(write(inbox_dir / "receipt.jpg"), "1")

        assert item is not None
        assert item.checksum == ChecksumStore().checksum(Path(item.file_path))

    def test_not_ready_returns_none_without_record(
        self, service: FileIntakeService, repository: InMemoryInboxRepository, inbox_dir: Path
    ) -> None:
        source = write(inbox_dir / "empty.pdf", b"")

        assert service.process(source, "1") is None
        assert repository.find_all() == []
        assert source.exists()

    def test_duplicate_content_is_skipped(
        self,
        service: FileIntakeService,
        repository: InMemoryInboxRepository,
        allocator: StoragePathAllocator,
        inbox_dir: Path,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Same bytes under another name create no record and no second stored file."""
        service.process(write(inbox_dir / "receipt.jpg"), "1")
        duplicate = write(inbox_dir / "copy.jpg")

        with caplog.at_level(logging.WARNING):
            assert service.process(duplicate, "1") is None

        assert len(repository.find_all()) == 1
        assert duplicate.exists()
        assert len(list(allocator.root.iterdir())) == 1
        assert "Duplicate file copy.jpg" in caplog.text

    def test_dedup_is_global_across_users(
        self, service: FileIntakeService, repository: InMemoryInboxRepository, inbox_dir: Path
    ) -> None:
        """A file already ingested for one user is a duplicate for every other user."""
        assert service.process(write(inbox_dir / "receipt.jpg"), "1") is not None

        assert service.process(write(inbox_dir / "other-user.jpg"), "2") is None
        assert repository.find_by_user_id("2") == []

    def test_name_collision_in_storage(
        self, service: FileIntakeService, allocator: StoragePathAllocator, inbox_dir: Path
    ) -> None:
        first = service.process(write(inbox_dir / "receipt.jpg", b"one"), "1")
        second = service.process(write(inbox_dir / "receipt.jpg", b"two"), "1")

        assert first is not None and second is not None
        assert Path(first.file_path).name == "2025-01-15-receipt.jpg"
        assert Path(second.file_path).name == "2025-01-15-receipt-1.jpg"

    def test_move_failure_raises_storage_error(
        self, service: FileIntakeService, repository: InMemoryInboxRepository, inbox_dir: Path
    ) -> None:
        """Nothing is persisted and the source stays put when the move fails."""
        source = write(inbox_dir / "receipt.jpg")

        with patch("receipts.intake.service.shutil.move", side_effect=OSError("disk full")):
            with pytest.raises(StorageError, match="disk full"):
                service.process(source, "1")

        assert repository.find_all() == []
        assert source.exists()

    def test_allocation_failure_raises_storage_error(
        self, repository: InMemoryInboxRepository, inbox_dir: Path
    ) -> None:
        allocator = MagicMock(spec=StoragePathAllocator)
        allocator.allocate.side_effect = PermissionError("read-only filesystem")
        service = FileIntakeService(repository, ChecksumStore(), allocator)
        source = write(inbox_dir / "receipt.jpg")

        with pytest.raises(StorageError):
            service.process(source, "1")

        assert repository.find_all() == []
        assert source.exists()

    def test_duplicate_detected_on_save_restores_file(
        self, allocator: StoragePathAllocator, inbox_dir: Path
    ) -> None:
        """A checksum conflict raised by the store is treated as a duplicate."""
        repository = MagicMock()
        repository.find_by_checksum.return_value = None
        repository.save.side_effect = DuplicateChecksumError("abc")
        service = FileIntakeService(repository, ChecksumStore(), allocator)
        source = write(inbox_dir / "receipt.jpg")

        assert service.process(source, "1") is None
        assert source.exists()
        assert list(allocator.root.iterdir()) == []

    def test_save_failure_restores_file(
        self, allocator: StoragePathAllocator, inbox_dir: Path
    ) -> None:
        """A store error is re-raised with the file back in the inbox."""
        repository = MagicMock()
        repository.find_by_checksum.return_value = None
        repository.save.side_effect = RuntimeError("database is locked")
        service = FileIntakeService(repository, ChecksumStore(), allocator)
        source = write(inbox_dir / "receipt.jpg", b"receipt-bytes")

        with pytest.raises(RuntimeError, match="database is locked"):
            service.process(source, "1")

        assert source.read_bytes() == b"receipt-bytes"
        assert list(allocator.root.iterdir()) == []

    def test_user_id_stored_as_string(self, service: FileIntakeService, inbox_dir: Path) -> None:
        item = service.process(write(inbox_dir / "receipt.jpg"), 42)  # type: ignore[arg-type]

        assert item is not None
        assert item.user_id == "42"
