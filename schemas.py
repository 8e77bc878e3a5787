import datetime as dt
from datetime import date
from decimal import Decimal
from typing import ClassVar, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import Frequency, TransactionType


def amount_field():
    return Field(..., gt=0, max_digits=16, decimal_places=2)


class PartialUpdate(BaseModel):
    """Base for PATCH payloads: only fields the caller sent are applied."""

    model_config = ConfigDict(extra="forbid")

    non_nullable: ClassVar[tuple[str, ...]] = ()

    @model_validator(mode="after")
    def reject_explicit_nulls(self):
        for name in self.non_nullable:
            if name in self.model_fields_set and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be null")
        return self

    def changes(self) -> dict[str, object]:
        return {name: getattr(self, name) for name in self.model_fields_set}


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionType
    color: Optional[str] = Field(default=None, max_length=9)
    icon: Optional[str] = Field(default=None, max_length=50)


class CategoryUpdate(PartialUpdate):
    non_nullable = ("name", "type")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[TransactionType] = None
    color: Optional[str] = Field(default=None, max_length=9)
    icon: Optional[str] = Field(default=None, max_length=50)


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    bank: str = Field(..., min_length=1, max_length=100)
    type: str = Field(..., min_length=1, max_length=50)
    account_number: str = Field(..., min_length=1, max_length=50)
    balance: Decimal = Field(default=Decimal("0"), max_digits=16, decimal_places=2)
    color: Optional[str] = Field(default=None, max_length=9)


class AccountUpdate(PartialUpdate):
    non_nullable = ("name", "bank", "type", "account_number", "balance")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    bank: Optional[str] = Field(default=None, min_length=1, max_length=100)
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    account_number: Optional[str] = Field(default=None, min_length=1, max_length=50)
    balance: Optional[Decimal] = Field(default=None, max_digits=16, decimal_places=2)
    color: Optional[str] = Field(default=None, max_length=9)


class CreditCardIn(BaseModel):
    # ``used`` is accepted for compatibility and ignored: cards start at zero.
    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., min_length=1, max_length=100)
    bank: str = Field(..., min_length=1, max_length=100)
    last_four: str = Field(..., min_length=4, max_length=4)
    limit: Decimal = Field(..., ge=0, max_digits=16, decimal_places=2)
    due_day: int = Field(..., ge=1, le=31)
    min_due: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=16, decimal_places=2
    )
    billing_cycle_start: Optional[int] = Field(default=None, ge=1, le=31)
    color: Optional[str] = Field(default=None, max_length=9)


class CreditCardUpdate(PartialUpdate):
    non_nullable = ("name", "bank", "last_four", "limit", "used", "due_day")

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    bank: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_four: Optional[str] = Field(default=None, min_length=4, max_length=4)
    limit: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=16, decimal_places=2
    )
    used: Optional[Decimal] = Field(default=None, ge=0, max_digits=16, decimal_places=2)
    due_day: Optional[int] = Field(default=None, ge=1, le=31)
    min_due: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=16, decimal_places=2
    )
    billing_cycle_start: Optional[int] = Field(default=None, ge=1, le=31)
    color: Optional[str] = Field(default=None, max_length=9)


class DebitCardIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    bank: str = Field(..., min_length=1, max_length=100)
    last_four: str = Field(..., min_length=4, max_length=4)
    linked_account_id: int
    card_network: str = Field(..., min_length=1, max_length=50)
    expiry_date: Optional[str] = Field(default=None, pattern=r"^\d{2}/\d{2}$")
    is_active: bool = True
    color: Optional[str] = Field(default=None, max_length=9)


class DebitCardUpdate(PartialUpdate):
    non_nullable = (
        "name",
        "bank",
        "last_four",
        "linked_account_id",
        "card_network",
        "is_active",
    )

    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    bank: Optional[str] = Field(default=None, min_length=1, max_length=100)
    last_four: Optional[str] = Field(default=None, min_length=4, max_length=4)
    linked_account_id: Optional[int] = None
    card_network: Optional[str] = Field(default=None, min_length=1, max_length=50)
    expiry_date: Optional[str] = Field(default=None, pattern=r"^\d{2}/\d{2}$")
    is_active: Optional[bool] = None
    color: Optional[str] = Field(default=None, max_length=9)


class TransactionIn(BaseModel):
    type: TransactionType
    amount: Decimal = amount_field()
    date: dt.date
    description: str = Field(..., min_length=1, max_length=500)
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    credit_card_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class TransactionUpdate(PartialUpdate):
    non_nullable = ("type", "amount", "date", "description")

    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=16, decimal_places=2
    )
    date: Optional[dt.date] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    credit_card_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=1000)


class RecurringTransactionIn(BaseModel):
    type: TransactionType
    amount: Decimal = amount_field()
    description: str = Field(..., min_length=1, max_length=500)
    frequency: Frequency
    custom_days: Optional[int] = Field(default=None, gt=0)
    start_date: date
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    credit_card_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def require_custom_days(self) -> "RecurringTransactionIn":
        if self.frequency == Frequency.custom and self.custom_days is None:
            raise ValueError("custom_days is required when frequency is 'custom'")
        return self


class RecurringTransactionUpdate(PartialUpdate):
    non_nullable = (
        "type",
        "amount",
        "description",
        "frequency",
        "start_date",
        "is_active",
    )

    type: Optional[TransactionType] = None
    amount: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=16, decimal_places=2
    )
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    frequency: Optional[Frequency] = None
    custom_days: Optional[int] = Field(default=None, gt=0)
    start_date: Optional[date] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    credit_card_id: Optional[int] = None
    notes: Optional[str] = Field(default=None, max_length=1000)
    is_active: Optional[bool] = None


class InvestmentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    type: str = Field(..., min_length=1, max_length=50)
    invested: Decimal = Field(..., ge=0, max_digits=16, decimal_places=2)
    current_value: Decimal = Field(..., ge=0, max_digits=16, decimal_places=2)
    purchase_date: Optional[date] = None
    color: Optional[str] = Field(default=None, max_length=9)


class InvestmentUpdate(PartialUpdate):
    non_nullable = ("name", "type", "invested", "current_value")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    invested: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=16, decimal_places=2
    )
    current_value: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=16, decimal_places=2
    )
    purchase_date: Optional[date] = None
    color: Optional[str] = Field(default=None, max_length=9)


class SIPIn(BaseModel):
    # ``total_invested`` is accepted for compatibility and ignored.
    model_config = ConfigDict(extra="ignore")

    investment_id: Optional[int] = None
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = amount_field()
    frequency: Frequency
    start_date: date

    @model_validator(mode="after")
    def require_calendar_frequency(self) -> "SIPIn":
        if self.frequency == Frequency.custom:
            raise ValueError("SIP frequency must be monthly, quarterly or yearly")
        return self


class SIPUpdate(PartialUpdate):
    non_nullable = (
        "name",
        "amount",
        "frequency",
        "start_date",
        "total_invested",
        "is_active",
    )

    investment_id: Optional[int] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=16, decimal_places=2
    )
    frequency: Optional[Frequency] = None
    start_date: Optional[date] = None
    total_invested: Optional[Decimal] = Field(
        default=None, ge=0, max_digits=16, decimal_places=2
    )
    is_active: Optional[bool] = None

    @model_validator(mode="after")
    def require_calendar_frequency(self) -> "SIPUpdate":
        if self.frequency == Frequency.custom:
            raise ValueError("SIP frequency must be monthly, quarterly or yearly")
        return self


class BudgetIn(BaseModel):
    category_id: int
    monthly_limit: Decimal = amount_field()
    alert_threshold: Optional[int] = Field(default=None, ge=0, le=100)


class BudgetUpdate(PartialUpdate):
    non_nullable = ("monthly_limit",)

    monthly_limit: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=16, decimal_places=2
    )
    alert_threshold: Optional[int] = Field(default=None, ge=0, le=100)


class CommitmentIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = amount_field()
    due_date: date
    type: str = Field(..., min_length=1, max_length=50)
    is_recurring: bool = False
    frequency: Optional[str] = Field(default=None, min_length=1, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def require_frequency_when_recurring(self) -> "CommitmentIn":
        if self.is_recurring and self.frequency is None:
            raise ValueError("frequency is required for recurring commitments")
        return self


class CommitmentUpdate(PartialUpdate):
    non_nullable = ("name", "amount", "due_date", "type", "is_recurring")

    name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount: Optional[Decimal] = Field(
        default=None, gt=0, max_digits=16, decimal_places=2
    )
    due_date: Optional[date] = None
    type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    is_recurring: Optional[bool] = None
    frequency: Optional[str] = Field(default=None, min_length=1, max_length=50)
    notes: Optional[str] = Field(default=None, max_length=1000)
