"""SQLAlchemy-backed inbox and OCR attempt repositories.

The unique constraint on inbox_items.checksum is the persistence-level guard
against duplicate intake: a save that violates it raises
DuplicateChecksumError, which intake treats as "already ingested".
"""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import Column, Date, DateTime, Float, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from receipts.inbox.model import EntityType, InboxItem, InboxState
from receipts.storage.repository import (
    AttemptStatus,
    DuplicateChecksumError,
    OcrAttempt,
    new_id,
)

logger = logging.getLogger(__name__)

Base = declarative_base()


class InboxItemRow(Base):  # type: ignore[valid-type,misc]
    __tablename__ = "inbox_items"
    id = Column(String(32), primary_key=True)
    filename = Column(String(512), nullable=False)
    file_path = Column(String(1024), nullable=False)
    upload_date = Column(DateTime, nullable=False)
    checksum = Column(String(128), unique=True, index=True, nullable=False)
    user_id = Column(String(64), index=True, nullable=False)
    state = Column(String(16), index=True, nullable=False)
    ocr_raw_json = Column(Text, nullable=True)
    extracted_provider = Column(String(512), nullable=True)
    extracted_amount = Column(String(32), nullable=True)  # Decimal as text, exact
    extracted_date = Column(Date, nullable=True)
    extracted_currency = Column(String(8), nullable=True)
    extracted_confidence = Column(Float, nullable=True)
    ocr_engine = Column(String(32), nullable=True)
    ocr_processed_at = Column(DateTime, nullable=True)
    failure_reason = Column(Text, nullable=True)
    linked_entity_id = Column(String(64), nullable=True)
    linked_entity_type = Column(String(16), nullable=True)


class OcrAttemptRow(Base):  # type: ignore[valid-type,misc]
    __tablename__ = "ocr_attempts"
    id = Column(String(32), primary_key=True)
    item_id = Column(String(32), index=True, nullable=False)
    engine = Column(String(32), nullable=False)
    status = Column(String(16), nullable=False)
    raw_json = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    attempted_at = Column(DateTime, default=datetime.now, nullable=False)


def create_session_factory(database_url: str) -> sessionmaker:
    """Create the engine and session factory, creating tables if needed.

    Args:
        database_url: SQLAlchemy URL (e.g. sqlite:///./receipts.db)

    Returns:
        Session factory bound to the new engine
    """
    engine = create_engine(database_url, pool_pre_ping=True)
    init_db(engine)
    return sessionmaker(bind=engine, autoflush=False)


def init_db(engine: Engine) -> None:
    Base.metadata.create_all(bind=engine)


def _item_to_row(item: InboxItem) -> InboxItemRow:
    return InboxItemRow(
        id=item.id,
        filename=item.filename,
        file_path=item.file_path,
        upload_date=item.upload_date,
        checksum=item.checksum,
        user_id=item.user_id,
        state=item.state.value,
        ocr_raw_json=item.ocr_raw_json,
        extracted_provider=item.extracted_provider,
        extracted_amount=str(item.extracted_amount) if item.extracted_amount is not None else None,
        extracted_date=item.extracted_date,
        extracted_currency=item.extracted_currency,
        extracted_confidence=item.extracted_confidence,
        ocr_engine=item.ocr_engine,
        ocr_processed_at=item.ocr_processed_at,
        failure_reason=item.failure_reason,
        linked_entity_id=item.linked_entity_id,
        linked_entity_type=item.linked_entity_type.value if item.linked_entity_type else None,
    )


def _row_to_item(row: InboxItemRow) -> InboxItem:
    return InboxItem(
        id=row.id,
        filename=row.filename,
        file_path=row.file_path,
        upload_date=row.upload_date,
        checksum=row.checksum,
        user_id=row.user_id,
        state=InboxState(row.state),
        ocr_raw_json=row.ocr_raw_json,
        extracted_provider=row.extracted_provider,
        extracted_amount=Decimal(row.extracted_amount) if row.extracted_amount else None,
        extracted_date=row.extracted_date,
        extracted_currency=row.extracted_currency,
        extracted_confidence=row.extracted_confidence,
        ocr_engine=row.ocr_engine,
        ocr_processed_at=row.ocr_processed_at,
        failure_reason=row.failure_reason,
        linked_entity_id=row.linked_entity_id,
        linked_entity_type=EntityType(row.linked_entity_type) if row.linked_entity_type else None,
    )


class SqlInboxRepository:
    """Inbox repository persisted through SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def _query(self, session: Session, **filters: str) -> list[InboxItem]:
        rows = (
            session.query(InboxItemRow)
            .filter_by(**filters)
            .order_by(InboxItemRow.upload_date)
            .all()
        )
        return [_row_to_item(row) for row in rows]

    def find_by_checksum(self, checksum: str) -> InboxItem | None:
        with self._session_factory() as session:
            row = session.query(InboxItemRow).filter_by(checksum=checksum).first()
            return _row_to_item(row) if row else None

    def save(self, item: InboxItem) -> InboxItem:
        """Insert or update an item, assigning an id on first save.

        Raises:
            DuplicateChecksumError: If another item already has this checksum
        """
        if item.id is None:
            item = item.model_copy(update={"id": new_id()})

        with self._session_factory() as session:
            try:
                session.merge(_item_to_row(item))
                session.commit()
            except IntegrityError as e:
                session.rollback()
                logger.warning(f"Rejected inbox item with duplicate checksum {item.checksum}")
                raise DuplicateChecksumError(item.checksum) from e
        return item

    def find_by_status(self, state: InboxState) -> list[InboxItem]:
        with self._session_factory() as session:
            return self._query(session, state=InboxState(state).value)

    def find_by_user_id_and_status(self, user_id: str, state: InboxState) -> list[InboxItem]:
        with self._session_factory() as session:
            return self._query(session, user_id=user_id, state=InboxState(state).value)

    def find_by_id(self, item_id: str) -> InboxItem | None:
        with self._session_factory() as session:
            row = session.get(InboxItemRow, item_id)
            return _row_to_item(row) if row else None

    def find_by_user_id(self, user_id: str) -> list[InboxItem]:
        with self._session_factory() as session:
            return self._query(session, user_id=user_id)

    def find_all(self) -> list[InboxItem]:
        with self._session_factory() as session:
            return self._query(session)

    def delete(self, item_id: str) -> None:
        with self._session_factory() as session:
            row = session.get(InboxItemRow, item_id)
            if row is not None:
                session.delete(row)
                session.commit()


class SqlOcrAttemptRepository:
    """OCR attempt history persisted through SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    def save(self, attempt: OcrAttempt) -> OcrAttempt:
        if attempt.id is None:
            attempt = attempt.model_copy(update={"id": new_id()})

        with self._session_factory() as session:
            session.merge(
                OcrAttemptRow(
                    id=attempt.id,
                    item_id=attempt.item_id,
                    engine=attempt.engine,
                    status=attempt.status.value,
                    raw_json=attempt.raw_json,
                    error_message=attempt.error_message,
                    attempted_at=attempt.attempted_at,
                )
            )
            session.commit()
        return attempt

    def find_by_item_id(self, item_id: str) -> list[OcrAttempt]:
        with self._session_factory() as session:
            rows = (
                session.query(OcrAttemptRow)
                .filter_by(item_id=item_id)
                .order_by(OcrAttemptRow.attempted_at)
                .all()
            )
            return [
                OcrAttempt(
                    id=row.id,
                    item_id=row.item_id,
                    engine=row.engine,
                    status=AttemptStatus(row.status),
                    raw_json=row.raw_json,
                    error_message=row.error_message,
                    attempted_at=row.attempted_at,
                )
                for row in rows
            ]
