from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Frequency, TransactionType
from schemas import (
    AccountIn,
    AccountUpdate,
    CategoryIn,
    CategoryUpdate,
    CreditCardIn,
    CreditCardUpdate,
    DebitCardIn,
    InvestmentIn,
    SIPIn,
    SIPUpdate,
    TransactionIn,
)
from services import (
    AccountService,
    BalanceAuditService,
    CategoryService,
    ConstraintViolation,
    CreditCardService,
    DebitCardService,
    InvestmentService,
    NotFound,
    SIPService,
    TransactionService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def account_in(balance="1000") -> AccountIn:
    return AccountIn(
        name="Main",
        bank="SBI",
        type="savings",
        account_number="0001",
        balance=Decimal(balance),
    )


def card_in(**extra) -> CreditCardIn:
    data = {
        "name": "Rewards",
        "bank": "Axis",
        "last_four": "1111",
        "limit": "1000",
        "due_day": 12,
    }
    data.update(extra)
    return CreditCardIn(**data)


def expense(amount, **kwargs) -> TransactionIn:
    return TransactionIn(
        type=TransactionType.expense,
        amount=Decimal(amount),
        date=date(2025, 3, 5),
        description="Purchase",
        **kwargs,
    )


def test_new_card_starts_unused_even_if_used_is_supplied():
    session = make_session()
    card = CreditCardService(session, 1).create(card_in(used="400"))
    assert card.used == Decimal("0.00")
    assert card.opening_used == Decimal("0.00")


def test_card_utilization():
    session = make_session()
    cards = CreditCardService(session, 1)
    card = cards.create(card_in())
    TransactionService(session, 1).create(expense("250", credit_card_id=card.id))

    report = cards.utilization(card.id)
    assert report["used"] == Decimal("250.00")
    assert report["available"] == Decimal("750.00")
    assert report["utilization_percent"] == Decimal("25.00")


def test_account_with_transactions_cannot_be_deleted():
    session = make_session()
    accounts = AccountService(session, 1)
    account = accounts.create(account_in())
    txn = TransactionService(session, 1).create(expense("10", account_id=account.id))

    with pytest.raises(ConstraintViolation):
        accounts.delete(account.id)

    TransactionService(session, 1).delete(txn.id)
    accounts.delete(account.id)
    with pytest.raises(NotFound):
        accounts.get(account.id)


def test_account_with_debit_card_cannot_be_deleted():
    session = make_session()
    accounts = AccountService(session, 1)
    account = accounts.create(account_in())
    DebitCardService(session, 1).create(
        DebitCardIn(
            name="Everyday",
            bank="SBI",
            last_four="9876",
            linked_account_id=account.id,
            card_network="RuPay",
            expiry_date="08/29",
        )
    )
    with pytest.raises(ConstraintViolation):
        accounts.delete(account.id)


def test_debit_card_must_link_to_own_account():
    session = make_session()
    account = AccountService(session, 1).create(account_in())
    with pytest.raises(NotFound):
        DebitCardService(session, 2).create(
            DebitCardIn(
                name="Borrowed",
                bank="SBI",
                last_four="0000",
                linked_account_id=account.id,
                card_network="Visa",
            )
        )


def test_card_with_transactions_cannot_be_deleted():
    session = make_session()
    cards = CreditCardService(session, 1)
    card = cards.create(card_in())
    TransactionService(session, 1).create(expense("10", credit_card_id=card.id))
    with pytest.raises(ConstraintViolation):
        cards.delete(card.id)


def test_manual_balance_override_keeps_log_consistent():
    session = make_session()
    accounts = AccountService(session, 1)
    account = accounts.create(account_in("1000"))
    txns = TransactionService(session, 1)
    txn = txns.create(expense("200", account_id=account.id))

    accounts.update(account.id, AccountUpdate(balance=Decimal("900"), name="Primary"))
    assert account.balance == Decimal("900.00")
    assert account.name == "Primary"
    assert account.opening_balance == Decimal("1100.00")
    assert BalanceAuditService(session, 1).audit() == []

    txns.delete(txn.id)
    session.refresh(account)
    assert account.balance == Decimal("1100.00")


def test_manual_used_override_keeps_log_consistent():
    session = make_session()
    cards = CreditCardService(session, 1)
    card = cards.create(card_in())
    TransactionService(session, 1).create(expense("300", credit_card_id=card.id))

    cards.update(card.id, CreditCardUpdate(used=Decimal("100")))
    assert card.used == Decimal("100.00")
    assert card.opening_used == Decimal("-200.00")
    assert BalanceAuditService(session, 1).audit() == []


def test_category_crud_and_uniqueness():
    session = make_session()
    categories = CategoryService(session, 1)
    food = categories.create(CategoryIn(name="Food", type=TransactionType.expense))
    categories.create(CategoryIn(name="Food", type=TransactionType.income))

    with pytest.raises(ConstraintViolation):
        categories.create(CategoryIn(name=" food ", type=TransactionType.expense))

    categories.update(food.id, CategoryUpdate(color="#ff0000"))
    assert categories.get(food.id).color == "#ff0000"

    listed = categories.list_all(TransactionType.expense)
    assert [(c.name, n) for c, n in listed] == [("Food", 0)]


def test_category_in_use_cannot_be_deleted():
    session = make_session()
    categories = CategoryService(session, 1)
    food = categories.create(CategoryIn(name="Food", type=TransactionType.expense))
    account = AccountService(session, 1).create(account_in())
    TransactionService(session, 1).create(
        expense("10", account_id=account.id, category_id=food.id)
    )

    with pytest.raises(ConstraintViolation):
        categories.delete(food.id)
    assert categories.list_all()[0][1] == 1


def test_investment_with_active_sip_cannot_be_deleted():
    session = make_session()
    investments = InvestmentService(session, 1)
    sips = SIPService(session, 1)
    fund = investments.create(
        InvestmentIn(
            name="Index Fund",
            type="mutual_fund",
            invested=Decimal("10000"),
            current_value=Decimal("12500"),
        )
    )
    sip = sips.create(
        SIPIn(
            investment_id=fund.id,
            name="Monthly index",
            amount=Decimal("5000"),
            frequency=Frequency.monthly,
            start_date=date(2025, 1, 31),
            total_invested="99999",
        )
    )
    assert sip.total_invested == Decimal("0.00")
    assert sip.next_date == date(2025, 2, 28)

    with pytest.raises(ConstraintViolation):
        investments.delete(fund.id)

    sips.update(sip.id, SIPUpdate(is_active=False))
    investments.delete(fund.id)
    session.refresh(sip)
    assert sip.investment_id is None


def test_investment_summary_and_upcoming_sips():
    session = make_session()
    investments = InvestmentService(session, 1)
    investments.create(
        InvestmentIn(
            name="Gold",
            type="gold",
            invested=Decimal("1000"),
            current_value=Decimal("1100"),
        )
    )
    investments.create(
        InvestmentIn(
            name="Stocks",
            type="equity",
            invested=Decimal("3000"),
            current_value=Decimal("2900"),
        )
    )
    summary = investments.summary()
    assert summary["total_invested"] == Decimal("4000.00")
    assert summary["total_returns"] == Decimal("0.00")
    assert summary["count"] == 2

    sips = SIPService(session, 1)
    soon = sips.create(
        SIPIn(
            name="Soon",
            amount=Decimal("100"),
            frequency=Frequency.monthly,
            start_date=date(2025, 3, 1),
        )
    )
    sips.create(
        SIPIn(
            name="Later",
            amount=Decimal("100"),
            frequency=Frequency.yearly,
            start_date=date(2025, 3, 1),
        )
    )
    upcoming = sips.upcoming(days=30, today=date(2025, 3, 20))
    assert [s.id for s in upcoming] == [soon.id]

    sips.update(soon.id, SIPUpdate(frequency=Frequency.quarterly))
    session.refresh(soon)
    assert soon.next_date == date(2025, 6, 1)


def test_sip_schedule_must_be_calendar_based():
    with pytest.raises(ValidationError):
        SIPIn(
            name="Odd",
            amount=Decimal("100"),
            frequency=Frequency.custom,
            start_date=date(2025, 3, 1),
        )
    with pytest.raises(ValidationError):
        SIPUpdate(frequency=Frequency.custom)
