import logging
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
    CreditCardIn,
    RecurringTransactionIn,
    RecurringTransactionUpdate,
)
from services import (
    AccountService,
    CreditCardService,
    InvalidReference,
    RecurringTransactionService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_account(session):
    return AccountService(session, 1).create(
        AccountIn(name="Main", bank="SBI", type="savings", account_number="0001")
    )


def template(**overrides) -> RecurringTransactionIn:
    data = {
        "type": TransactionType.expense,
        "amount": Decimal("999.00"),
        "description": "Internet",
        "frequency": Frequency.monthly,
        "start_date": date(2024, 1, 31),
    }
    data.update(overrides)
    return RecurringTransactionIn(**data)


def test_create_computes_next_date_from_start():
    session = make_session()
    account = make_account(session)
    recurring = RecurringTransactionService(session, 1).create(
        template(account_id=account.id)
    )
    assert recurring.next_date == date(2024, 2, 29)
    assert recurring.is_active is True


def test_custom_frequency_requires_days_on_create():
    with pytest.raises(ValidationError):
        template(frequency=Frequency.custom)
    assert template(frequency=Frequency.custom, custom_days=14).custom_days == 14


def test_template_needs_exactly_one_funding_source():
    session = make_session()
    account = make_account(session)
    card = CreditCardService(session, 1).create(
        CreditCardIn(name="Card", bank="Axis", last_four="1234", limit="100", due_day=1)
    )
    service = RecurringTransactionService(session, 1)
    with pytest.raises(InvalidReference):
        service.create(template())
    with pytest.raises(InvalidReference):
        service.create(template(account_id=account.id, credit_card_id=card.id))

    recurring = service.create(template(account_id=account.id))
    updated = service.update(
        recurring.id, RecurringTransactionUpdate(credit_card_id=card.id)
    )
    assert (updated.account_id, updated.credit_card_id) == (None, card.id)


def test_update_recomputes_next_date(caplog):
    session = make_session()
    account = make_account(session)
    service = RecurringTransactionService(session, 1)
    recurring = service.create(template(account_id=account.id))

    updated = service.update(
        recurring.id,
        RecurringTransactionUpdate(frequency=Frequency.custom, custom_days=45),
    )
    assert updated.next_date == date(2024, 3, 16)

    updated = service.update(
        recurring.id, RecurringTransactionUpdate(start_date=date(2024, 3, 1))
    )
    assert updated.next_date == date(2024, 4, 15)

    with caplog.at_level(logging.WARNING, logger="recurrence"):
        updated = service.update(
            recurring.id, RecurringTransactionUpdate(custom_days=None)
        )
    assert updated.next_date == date(2024, 4, 1)
    assert "custom_frequency_fallback" in caplog.text


def test_description_only_update_keeps_schedule():
    session = make_session()
    account = make_account(session)
    service = RecurringTransactionService(session, 1)
    recurring = service.create(template(account_id=account.id))

    updated = service.update(
        recurring.id,
        RecurringTransactionUpdate(description="Fibre", is_active=False),
    )
    assert updated.next_date == date(2024, 2, 29)
    assert [r.id for r in service.list(is_active=False)] == [recurring.id]
    assert service.list(is_active=True) == []


def test_occurrence_preview():
    session = make_session()
    account = make_account(session)
    service = RecurringTransactionService(session, 1)
    recurring = service.create(
        template(account_id=account.id, frequency=Frequency.quarterly)
    )
    assert service.occurrences(recurring.id, count=3) == [
        date(2024, 4, 30),
        date(2024, 7, 31),
        date(2024, 10, 31),
    ]
