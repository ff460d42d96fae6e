"""Bill and Receipt records created from approved inbox items or by hand."""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from receipts.inbox.model import InvalidTransitionError


class EntityState(str, Enum):
    ACTIVE = "ACTIVE"
    REMOVED = "REMOVED"


def _require_positive(amount: Decimal) -> Decimal:
    amount = Decimal(amount)
    if amount <= 0:
        raise ValueError(f"Amount must be positive: {amount}")
    return amount


def _require_not_blank(value: str, what: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{what} cannot be blank")
    return value


class _FinancialEntity(BaseModel):
    """Fields and lifecycle shared by bills and receipts.

    Entities are immutable; updates return a new instance. Removal is one-way
    and a removed entity accepts no further changes.
    """

    model_config = ConfigDict(frozen=True)

    id: str | None = None
    amount: Decimal = Field(gt=0)
    description: str | None = None
    inbox_item_id: str | None = None
    state: EntityState = EntityState.ACTIVE
    created_date: datetime = Field(default_factory=datetime.now)

    def _update(self, **changes: Any) -> Any:
        if self.state == EntityState.REMOVED:
            raise InvalidTransitionError(f"Cannot modify removed {type(self).__name__.lower()}")
        return self.model_copy(update=changes)

    def update_amount(self, amount: Decimal) -> Any:
        return self._update(amount=_require_positive(amount))

    def update_description(self, description: str | None) -> Any:
        return self._update(description=description)

    def remove(self) -> Any:
        """Mark the entity as removed (ACTIVE -> REMOVED)."""
        if not self.can_remove():
            raise InvalidTransitionError(
                f"Cannot remove {type(self).__name__.lower()} in state {self.state.value}"
            )
        return self.model_copy(update={"state": EntityState.REMOVED})

    def can_remove(self) -> bool:
        return self.state == EntityState.ACTIVE

    def is_active(self) -> bool:
        return self.state == EntityState.ACTIVE

    def is_from_inbox(self) -> bool:
        return self.inbox_item_id is not None


class Bill(_FinancialEntity):
    """A bill from a service provider."""

    service_provider_id: str = Field(min_length=1)
    bill_date: date

    @classmethod
    def create_from_inbox(
        cls,
        inbox_item_id: str,
        service_provider_id: str,
        bill_date: date,
        amount: Decimal,
        description: str | None = None,
    ) -> "Bill":
        """Create a bill linked to the inbox item it was extracted from."""
        _require_not_blank(inbox_item_id, "Inbox item id")
        return cls(
            service_provider_id=_require_not_blank(service_provider_id, "Service provider"),
            bill_date=bill_date,
            amount=_require_positive(amount),
            description=description,
            inbox_item_id=inbox_item_id,
        )

    @classmethod
    def create_manually(
        cls,
        service_provider_id: str,
        bill_date: date,
        amount: Decimal,
        description: str | None = None,
    ) -> "Bill":
        return cls(
            service_provider_id=_require_not_blank(service_provider_id, "Service provider"),
            bill_date=bill_date,
            amount=_require_positive(amount),
            description=description,
        )

    def update_service_provider(self, service_provider_id: str) -> "Bill":
        bill: Bill = self._update(
            service_provider_id=_require_not_blank(service_provider_id, "Service provider")
        )
        return bill


class Receipt(_FinancialEntity):
    """A payment receipt, optionally tied to a merchant."""

    payment_type_id: str = Field(min_length=1)
    payment_date: date
    merchant_name: str | None = None

    @classmethod
    def create_from_inbox(
        cls,
        inbox_item_id: str,
        payment_type_id: str,
        payment_date: date,
        amount: Decimal,
        merchant_name: str | None = None,
        description: str | None = None,
    ) -> "Receipt":
        """Create a receipt linked to the inbox item it was extracted from."""
        _require_not_blank(inbox_item_id, "Inbox item id")
        return cls(
            payment_type_id=_require_not_blank(payment_type_id, "Payment type"),
            payment_date=payment_date,
            amount=_require_positive(amount),
            merchant_name=_blank_to_none(merchant_name),
            description=description,
            inbox_item_id=inbox_item_id,
        )

    @classmethod
    def create_manually(
        cls,
        payment_type_id: str,
        payment_date: date,
        amount: Decimal,
        merchant_name: str | None = None,
        description: str | None = None,
    ) -> "Receipt":
        return cls(
            payment_type_id=_require_not_blank(payment_type_id, "Payment type"),
            payment_date=payment_date,
            amount=_require_positive(amount),
            merchant_name=_blank_to_none(merchant_name),
            description=description,
        )

    def update_payment_type(self, payment_type_id: str) -> "Receipt":
        receipt: Receipt = self._update(
            payment_type_id=_require_not_blank(payment_type_id, "Payment type")
        )
        return receipt

    def update_merchant(self, merchant_name: str | None) -> "Receipt":
        """Set the merchant name; a blank name clears it."""
        receipt: Receipt = self._update(merchant_name=_blank_to_none(merchant_name))
        return receipt


def _blank_to_none(value: str | None) -> str | None:
    if value is None or not value.strip():
        return None
    return value.strip()
