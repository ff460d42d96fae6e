"""Approval and rejection of processed inbox items.

Approving creates the Bill or Receipt from the extracted OCR fields (explicit
values passed by the user win over extracted ones), persists it, then links
the inbox item to it. If the item cannot be saved, the new entity is deleted
again so no bill or receipt is left without its inbox item.
"""

import logging
from datetime import date
from decimal import Decimal

from receipts.inbox.entities import Bill, Receipt
from receipts.inbox.model import EntityType, InboxItem, InvalidTransitionError
from receipts.shared import metrics
from receipts.storage.repository import BillRepository, InboxRepository, ReceiptRepository

logger = logging.getLogger(__name__)


class ApprovalService:
    """Converts processed inbox items into bills and receipts."""

    def __init__(
        self,
        inbox_repository: InboxRepository,
        bill_repository: BillRepository,
        receipt_repository: ReceiptRepository,
    ) -> None:
        self.inbox_repository = inbox_repository
        self.bill_repository = bill_repository
        self.receipt_repository = receipt_repository

    def approve_as_bill(
        self,
        item_id: str,
        service_provider_id: str,
        amount: Decimal | None = None,
        bill_date: date | None = None,
        description: str | None = None,
        user_id: str | None = None,
    ) -> Bill:
        """Create a bill from a PROCESSED item and approve the item.

        Args:
            item_id: Inbox item to approve
            service_provider_id: Provider the bill belongs to
            amount: Overrides the extracted amount
            bill_date: Overrides the extracted date
            description: Bill description (defaults to the extracted provider)
            user_id: When given, the item must belong to this user

        Returns:
            The persisted bill

        Raises:
            ValueError: If the item is unknown or amount/date are unavailable
            PermissionError: If the item belongs to another user
            InvalidTransitionError: If the item is not PROCESSED
        """
        item = self._load_approvable(item_id, user_id)
        bill = Bill.create_from_inbox(
            inbox_item_id=item_id,
            service_provider_id=service_provider_id,
            bill_date=self._resolve_date(item, bill_date),
            amount=self._resolve_amount(item, amount),
            description=description if description is not None else item.extracted_provider,
        )
        bill = self.bill_repository.save(bill)
        self._link(item, str(bill.id), EntityType.BILL, self.bill_repository)
        logger.info(f"Inbox item {item_id} approved as bill {bill.id}")
        return bill

    def approve_as_receipt(
        self,
        item_id: str,
        payment_type_id: str,
        amount: Decimal | None = None,
        payment_date: date | None = None,
        merchant_name: str | None = None,
        description: str | None = None,
        user_id: str | None = None,
    ) -> Receipt:
        """Create a receipt from a PROCESSED item and approve the item.

        The merchant defaults to the extracted provider. See approve_as_bill
        for the error cases.
        """
        item = self._load_approvable(item_id, user_id)
        receipt = Receipt.create_from_inbox(
            inbox_item_id=item_id,
            payment_type_id=payment_type_id,
            payment_date=self._resolve_date(item, payment_date),
            amount=self._resolve_amount(item, amount),
            merchant_name=merchant_name if merchant_name is not None else item.extracted_provider,
            description=description,
        )
        receipt = self.receipt_repository.save(receipt)
        self._link(item, str(receipt.id), EntityType.RECEIPT, self.receipt_repository)
        logger.info(f"Inbox item {item_id} approved as receipt {receipt.id}")
        return receipt

    def reject(self, item_id: str, reason: str | None = None, user_id: str | None = None) -> InboxItem:
        """Reject an item that is CREATED, PROCESSING, PROCESSED or FAILED."""
        item = self._load(item_id, user_id)
        rejected = self._save(item.reject(reason))
        logger.info(f"Inbox item {item_id} rejected")
        return rejected

    def _link(
        self,
        item: InboxItem,
        entity_id: str,
        entity_type: EntityType,
        entity_repository: BillRepository | ReceiptRepository,
    ) -> None:
        try:
            self._save(item.approve(entity_id, entity_type))
        except Exception:
            logger.error(
                f"Could not approve inbox item {item.id}, "
                f"deleting {entity_type.value.lower()} {entity_id}"
            )
            entity_repository.delete(entity_id)
            raise

    def _save(self, item: InboxItem) -> InboxItem:
        saved = self.inbox_repository.save(item)
        metrics.inbox_transitions_total.labels(to_state=saved.state.value).inc()
        return saved

    def _load(self, item_id: str, user_id: str | None) -> InboxItem:
        item = self.inbox_repository.find_by_id(item_id)
        if item is None:
            raise ValueError(f"Inbox item not found: {item_id}")
        if user_id is not None and item.user_id != str(user_id):
            raise PermissionError(f"Inbox item {item_id} does not belong to user {user_id}")
        return item

    def _load_approvable(self, item_id: str, user_id: str | None) -> InboxItem:
        item = self._load(item_id, user_id)
        if not item.can_approve():
            raise InvalidTransitionError(
                f"Inbox item {item_id} cannot be approved in state {item.state.value}"
            )
        return item

    @staticmethod
    def _resolve_amount(item: InboxItem, amount: Decimal | None) -> Decimal:
        resolved = amount if amount is not None else item.extracted_amount
        if resolved is None:
            raise ValueError(f"No amount given or extracted for inbox item {item.id}")
        return resolved

    @staticmethod
    def _resolve_date(item: InboxItem, value: date | None) -> date:
        resolved = value if value is not None else item.extracted_date
        if resolved is None:
            raise ValueError(f"No date given or extracted for inbox item {item.id}")
        return resolved
