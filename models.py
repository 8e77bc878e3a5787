from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base
from money import Money


class TransactionType(str, Enum):
    income = "income"
    expense = "expense"


class Frequency(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    yearly = "yearly"
    custom = "custom"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    color: Mapped[Optional[str]] = mapped_column(String(9))
    icon: Mapped[Optional[str]] = mapped_column(String(50))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    bank: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    account_number: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(9))
    balance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    opening_balance: Mapped[Decimal] = mapped_column(
        Money, nullable=False, default=0
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account"
    )
    debit_cards: Mapped[list["DebitCard"]] = relationship(
        "DebitCard", back_populates="linked_account"
    )

    __table_args__ = (Index("ix_accounts_user", "user_id"),)


class CreditCard(Base, TimestampMixin):
    __tablename__ = "credit_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    bank: Mapped[str] = mapped_column(String(100), nullable=False)
    last_four: Mapped[str] = mapped_column(String(4), nullable=False)
    limit: Mapped[Decimal] = mapped_column("credit_limit", Money, nullable=False)
    used: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    opening_used: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    due_day: Mapped[int] = mapped_column(Integer, nullable=False)
    min_due: Mapped[Optional[Decimal]] = mapped_column(Money)
    billing_cycle_start: Mapped[Optional[int]] = mapped_column(Integer)
    color: Mapped[Optional[str]] = mapped_column(String(9))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="credit_card"
    )

    __table_args__ = (
        CheckConstraint("credit_limit >= 0", name="ck_credit_card_limit_positive"),
        CheckConstraint("due_day BETWEEN 1 AND 31", name="ck_credit_card_due_day"),
        Index("ix_credit_cards_user", "user_id"),
    )


class DebitCard(Base, TimestampMixin):
    __tablename__ = "debit_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    bank: Mapped[str] = mapped_column(String(100), nullable=False)
    last_four: Mapped[str] = mapped_column(String(4), nullable=False)
    linked_account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )
    card_network: Mapped[str] = mapped_column(String(50), nullable=False)
    expiry_date: Mapped[Optional[str]] = mapped_column(String(5))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    color: Mapped[Optional[str]] = mapped_column(String(9))

    linked_account: Mapped["Account"] = relationship(
        "Account", back_populates="debit_cards"
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    credit_card_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("credit_cards.id")
    )

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )
    account: Mapped[Optional["Account"]] = relationship(
        "Account", back_populates="transactions"
    )
    credit_card: Mapped[Optional["CreditCard"]] = relationship(
        "CreditCard", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_category_date", "user_id", "category_id", "date"),
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        Index("ix_transactions_account", "account_id"),
        Index("ix_transactions_credit_card", "credit_card_id"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "(account_id IS NULL) <> (credit_card_id IS NULL)",
            name="ck_transactions_single_funding_source",
        ),
    )


class RecurringTransaction(Base, TimestampMixin):
    __tablename__ = "recurring_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        SAEnum(TransactionType), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    description: Mapped[str] = mapped_column(String(500), nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    credit_card_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("credit_cards.id")
    )
    frequency: Mapped[Frequency] = mapped_column(SAEnum(Frequency), nullable=False)
    custom_days: Mapped[Optional[int]] = mapped_column(Integer)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    next_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_recurring_amount_positive"),
        CheckConstraint(
            "custom_days IS NULL OR custom_days > 0",
            name="ck_recurring_custom_days_positive",
        ),
        Index("ix_recurring_user_active_next", "user_id", "is_active", "next_date"),
    )


class Investment(Base, TimestampMixin):
    __tablename__ = "investments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    invested: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    current_value: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    purchase_date: Mapped[Optional[date]] = mapped_column(Date)
    color: Mapped[Optional[str]] = mapped_column(String(9))

    sips: Mapped[list["SIP"]] = relationship("SIP", back_populates="investment")


class SIP(Base, TimestampMixin):
    __tablename__ = "sips"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    investment_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("investments.id")
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    frequency: Mapped[Frequency] = mapped_column(SAEnum(Frequency), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    next_date: Mapped[date] = mapped_column(Date, nullable=False)
    total_invested: Mapped[Decimal] = mapped_column(Money, nullable=False, default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    investment: Mapped[Optional["Investment"]] = relationship(
        "Investment", back_populates="sips"
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_sip_amount_positive"),
        Index("ix_sips_user_active_next", "user_id", "is_active", "next_date"),
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    monthly_limit: Mapped[Decimal] = mapped_column(Money, nullable=False)
    alert_threshold: Mapped[Optional[int]] = mapped_column(Integer)

    category: Mapped["Category"] = relationship("Category")

    __table_args__ = (
        UniqueConstraint("user_id", "category_id", name="uq_budget_user_category"),
        CheckConstraint("monthly_limit > 0", name="ck_budget_limit_positive"),
        CheckConstraint(
            "alert_threshold IS NULL OR alert_threshold BETWEEN 0 AND 100",
            name="ck_budget_alert_threshold_range",
        ),
    )


class Commitment(Base, TimestampMixin):
    """A one-off or repeating obligation, such as an EMI, tracked by due date."""

    __tablename__ = "commitments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False)
    is_recurring: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    frequency: Mapped[Optional[str]] = mapped_column(String(50))
    notes: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_commitment_amount_positive"),
        Index("ix_commitments_user_due", "user_id", "due_date"),
    )
