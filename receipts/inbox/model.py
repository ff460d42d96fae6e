"""Inbox item lifecycle.

An inbox item tracks one ingested document from intake through OCR to user
approval, where it is linked to the Bill or Receipt created from it.

    CREATED ──ocr ok──▶ PROCESSED ──approve──▶ APPROVED
       │  ╲                 │
       │   ╲─ocr failed─▶ FAILED ──retry──▶ CREATED
       │                    │
       └──────reject────────┴──▶ REJECTED

PROCESSING is an optional marker between CREATED and the OCR outcome. An
item left there by an interrupted run can still be completed, failed or
rejected.
Items are immutable: every transition returns a new instance and the
repository is the only place that maps an id to its current value. A
transition attempted outside its guard raises InvalidTransitionError.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from receipts.ocr.schema import OcrFailure, OcrResult, OcrSuccess


class InboxState(str, Enum):
    """Current state of an inbox item in the processing workflow."""

    CREATED = "CREATED"  # Ingested, OCR pending
    PROCESSING = "PROCESSING"  # OCR in flight
    PROCESSED = "PROCESSED"  # OCR succeeded, awaiting approval
    FAILED = "FAILED"  # OCR failed, may be retried
    APPROVED = "APPROVED"  # Bill or receipt created
    REJECTED = "REJECTED"  # Discarded by the user


class EntityType(str, Enum):
    """Type of entity an approved inbox item is linked to."""

    BILL = "BILL"
    RECEIPT = "RECEIPT"


class InvalidTransitionError(RuntimeError):
    """Raised when a lifecycle transition is attempted from a state that does not allow it."""


TERMINAL_STATES = frozenset({InboxState.APPROVED, InboxState.REJECTED})

REJECTABLE_STATES = frozenset(
    {InboxState.CREATED, InboxState.PROCESSING, InboxState.PROCESSED, InboxState.FAILED}
)

# Applied on retry and on OCR failure so no partial results survive
_CLEARED_OCR_FIELDS: dict[str, Any] = {
    "ocr_raw_json": None,
    "extracted_provider": None,
    "extracted_amount": None,
    "extracted_date": None,
    "extracted_currency": None,
    "extracted_confidence": None,
    "ocr_engine": None,
    "ocr_processed_at": None,
}


class InboxItem(BaseModel):
    """One ingested document and its OCR/approval state.

    Attributes:
        id: Identifier assigned by the repository on first save
        filename: Original filename at intake
        file_path: Location in durable storage
        upload_date: When the file was ingested
        checksum: Hex content digest, unique across the store
        user_id: Owning user
        state: Current lifecycle state
        ocr_raw_json: Raw provider response of the last OCR attempt
        extracted_*: Fields extracted by OCR (only set in PROCESSED and later)
        ocr_engine: Engine that produced the OCR result
        ocr_processed_at: When the last OCR result was applied
        failure_reason: Why OCR failed (only set in FAILED) or why the item was rejected
        linked_entity_id: Id of the Bill/Receipt created on approval
        linked_entity_type: Type of the linked entity
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    filename: str = Field(min_length=1)
    file_path: str = Field(min_length=1)
    upload_date: datetime
    checksum: str = Field(min_length=1)
    user_id: str
    state: InboxState = InboxState.CREATED

    ocr_raw_json: str | None = None
    extracted_provider: str | None = None
    extracted_amount: Decimal | None = None
    extracted_date: date | None = None
    extracted_currency: str | None = None
    extracted_confidence: float | None = None
    ocr_engine: str | None = None
    ocr_processed_at: datetime | None = None
    failure_reason: str | None = None

    linked_entity_id: str | None = None
    linked_entity_type: EntityType | None = None

    def _transition(
        self, allowed: set[InboxState], action: str, target: InboxState, **updates: Any
    ) -> "InboxItem":
        if self.state not in allowed:
            raise InvalidTransitionError(f"Cannot {action} from state {self.state.value}")
        return self.model_copy(update={"state": target, **updates})

    def start_processing(self) -> "InboxItem":
        """Mark OCR as in flight (CREATED -> PROCESSING)."""
        return self._transition({InboxState.CREATED}, "start processing", InboxState.PROCESSING)

    def complete_ocr(self, result: OcrResult, processed_at: datetime | None = None) -> "InboxItem":
        """Apply an OCR outcome (CREATED/PROCESSING -> PROCESSED or FAILED).

        Args:
            result: OcrSuccess stores the extracted fields, OcrFailure stores the reason
            processed_at: Timestamp of the outcome (defaults to now)

        Returns:
            New item in PROCESSED or FAILED state
        """
        allowed = {InboxState.CREATED, InboxState.PROCESSING}
        processed_at = processed_at or datetime.now()

        if isinstance(result, OcrSuccess):
            return self._transition(
                allowed,
                "process OCR",
                InboxState.PROCESSED,
                ocr_raw_json=result.raw_json,
                extracted_provider=result.provider,
                extracted_amount=result.amount,
                extracted_date=result.date,
                extracted_currency=result.currency,
                extracted_confidence=result.confidence,
                ocr_engine=result.engine,
                ocr_processed_at=processed_at,
                failure_reason=None,
            )

        return self._transition(
            allowed,
            "fail OCR",
            InboxState.FAILED,
            **{
                **_CLEARED_OCR_FIELDS,
                "ocr_raw_json": result.raw_json,
                "ocr_engine": result.engine,
                "ocr_processed_at": processed_at,
            },
            failure_reason=result.error_message,
        )

    def process_ocr(self, result: OcrSuccess) -> "InboxItem":
        """Apply a successful OCR result."""
        return self.complete_ocr(result)

    def fail_ocr(self, reason: str) -> "InboxItem":
        """Mark OCR as failed with the given reason."""
        return self.complete_ocr(OcrFailure(error_message=reason))

    def retry(self) -> "InboxItem":
        """Reset a failed item for another OCR attempt (FAILED -> CREATED).

        This is a full reset: the failure reason and any OCR output are cleared.
        """
        return self._transition(
            {InboxState.FAILED},
            "retry OCR",
            InboxState.CREATED,
            **_CLEARED_OCR_FIELDS,
            failure_reason=None,
        )

    def approve(self, entity_id: str, entity_type: EntityType) -> "InboxItem":
        """Link the item to the Bill/Receipt created from it (PROCESSED -> APPROVED).

        This is the only way the linked entity reference is set.
        """
        if not entity_id or not entity_id.strip():
            raise ValueError("Linked entity id cannot be blank")
        return self._transition(
            {InboxState.PROCESSED},
            "approve",
            InboxState.APPROVED,
            linked_entity_id=entity_id,
            linked_entity_type=EntityType(entity_type),
        )

    def reject(self, reason: str | None = None) -> "InboxItem":
        """Discard the item (CREATED/PROCESSING/PROCESSED/FAILED -> REJECTED)."""
        return self._transition(
            set(REJECTABLE_STATES),
            "reject",
            InboxState.REJECTED,
            failure_reason=reason if reason is not None else self.failure_reason,
        )

    def can_approve(self) -> bool:
        return self.state == InboxState.PROCESSED

    def can_retry(self) -> bool:
        return self.state == InboxState.FAILED

    def can_reject(self) -> bool:
        return self.state in REJECTABLE_STATES

    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES
