"""Repository contracts and in-memory implementations.

Repositories are the only identity map: domain objects are immutable and
saving returns the stored copy (with an id assigned on first save). The
in-memory repositories back tests and the single-process watcher; see
receipts.storage.sql for the SQLAlchemy-backed store.
"""

import logging
import uuid
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Protocol, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from receipts.inbox.entities import Bill, Receipt
from receipts.inbox.model import InboxItem, InboxState

logger = logging.getLogger(__name__)


class DuplicateChecksumError(Exception):
    """Raised when saving an inbox item whose checksum is already stored."""

    def __init__(self, checksum: str) -> None:
        self.checksum = checksum
        super().__init__(f"Inbox item with checksum {checksum} already exists")


class AttemptStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


class OcrAttempt(BaseModel):
    """One OCR engine attempt against an inbox item.

    Attributes:
        id: Identifier assigned by the repository on first save
        item_id: Inbox item the attempt belongs to
        engine: Engine name
        status: Attempt outcome
        raw_json: Raw provider response
        error_message: Failure reason for FAILED attempts
        attempted_at: When the attempt started
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    item_id: str
    engine: str
    status: AttemptStatus = AttemptStatus.IN_PROGRESS
    raw_json: str | None = None
    error_message: str | None = None
    attempted_at: datetime = Field(default_factory=datetime.now)

    def succeeded(self, raw_json: str) -> "OcrAttempt":
        return self.model_copy(update={"status": AttemptStatus.SUCCESS, "raw_json": raw_json})

    def failed(self, error_message: str, raw_json: str | None = None) -> "OcrAttempt":
        return self.model_copy(
            update={
                "status": AttemptStatus.FAILED,
                "error_message": error_message,
                "raw_json": raw_json,
            }
        )


def new_id() -> str:
    return uuid.uuid4().hex


class InboxRepository(Protocol):
    def find_by_checksum(self, checksum: str) -> InboxItem | None: ...

    def save(self, item: InboxItem) -> InboxItem: ...

    def find_by_status(self, state: InboxState) -> list[InboxItem]: ...

    def find_by_user_id_and_status(self, user_id: str, state: InboxState) -> list[InboxItem]: ...

    def find_by_id(self, item_id: str) -> InboxItem | None: ...

    def find_by_user_id(self, user_id: str) -> list[InboxItem]: ...

    def find_all(self) -> list[InboxItem]: ...

    def delete(self, item_id: str) -> None: ...


class BillRepository(Protocol):
    def save(self, bill: Bill) -> Bill: ...

    def find_by_id(self, bill_id: str) -> Bill | None: ...

    def find_all(self) -> list[Bill]: ...

    def delete(self, bill_id: str) -> None: ...


class ReceiptRepository(Protocol):
    def save(self, receipt: Receipt) -> Receipt: ...

    def find_by_id(self, receipt_id: str) -> Receipt | None: ...

    def find_all(self) -> list[Receipt]: ...

    def delete(self, receipt_id: str) -> None: ...


class OcrAttemptRepository(Protocol):
    def save(self, attempt: OcrAttempt) -> OcrAttempt: ...

    def find_by_item_id(self, item_id: str) -> list[OcrAttempt]: ...


ModelT = TypeVar("ModelT", InboxItem, Bill, Receipt, OcrAttempt)


class _InMemoryStore:
    """Dict-backed storage keyed by id, preserving insertion order."""

    def __init__(self) -> None:
        self._rows: dict[str, BaseModel] = {}

    def _store(self, obj: ModelT) -> ModelT:
        if obj.id is None:
            obj = obj.model_copy(update={"id": new_id()})
        self._rows[str(obj.id)] = obj
        return obj

    def _get(self, obj_id: str) -> BaseModel | None:
        return self._rows.get(obj_id)

    def _select(self, predicate: Callable[[BaseModel], bool] = lambda _: True) -> list:
        return [row for row in self._rows.values() if predicate(row)]

    def delete(self, obj_id: str) -> None:
        self._rows.pop(obj_id, None)


class InMemoryInboxRepository(_InMemoryStore):
    """Inbox repository held in process memory.

    Enforces the same global checksum uniqueness as the SQL store.
    """

    def find_by_checksum(self, checksum: str) -> InboxItem | None:
        matches = self._select(lambda item: item.checksum == checksum)
        return matches[0] if matches else None

    def save(self, item: InboxItem) -> InboxItem:
        existing = self.find_by_checksum(item.checksum)
        if existing is not None and existing.id != item.id:
            raise DuplicateChecksumError(item.checksum)
        saved = self._store(item)
        logger.debug(f"Saved inbox item {saved.id} in state {saved.state.value}")
        return saved

    def find_by_status(self, state: InboxState) -> list[InboxItem]:
        return self._select(lambda item: item.state == state)

    def find_by_user_id_and_status(self, user_id: str, state: InboxState) -> list[InboxItem]:
        return self._select(lambda item: item.user_id == user_id and item.state == state)

    def find_by_id(self, item_id: str) -> InboxItem | None:
        item: InboxItem | None = self._get(item_id)  # type: ignore[assignment]
        return item

    def find_by_user_id(self, user_id: str) -> list[InboxItem]:
        return self._select(lambda item: item.user_id == user_id)

    def find_all(self) -> list[InboxItem]:
        return self._select()


class InMemoryBillRepository(_InMemoryStore):
    def save(self, bill: Bill) -> Bill:
        return self._store(bill)

    def find_by_id(self, bill_id: str) -> Bill | None:
        bill: Bill | None = self._get(bill_id)  # type: ignore[assignment]
        return bill

    def find_all(self) -> list[Bill]:
        return self._select()


class InMemoryReceiptRepository(_InMemoryStore):
    def save(self, receipt: Receipt) -> Receipt:
        return self._store(receipt)

    def find_by_id(self, receipt_id: str) -> Receipt | None:
        receipt: Receipt | None = self._get(receipt_id)  # type: ignore[assignment]
        return receipt

    def find_all(self) -> list[Receipt]:
        return self._select()


class InMemoryOcrAttemptRepository(_InMemoryStore):
    def save(self, attempt: OcrAttempt) -> OcrAttempt:
        return self._store(attempt)

    def find_by_item_id(self, item_id: str) -> list[OcrAttempt]:
        return self._select(lambda attempt: attempt.item_id == item_id)
