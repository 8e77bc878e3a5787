from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Category, TransactionType
from schemas import AccountIn, BudgetIn, BudgetUpdate, TransactionIn
from services import (
    AccountService,
    BudgetService,
    ConstraintViolation,
    NotFound,
    TransactionService,
)

TODAY = date(2025, 3, 20)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def seed(session):
    account = AccountService(session, 1).create(
        AccountIn(
            name="Main",
            bank="SBI",
            type="savings",
            account_number="0001",
            balance=Decimal("10000"),
        )
    )
    food = Category(user_id=1, name="Food", type=TransactionType.expense)
    rent = Category(user_id=1, name="Rent", type=TransactionType.expense)
    session.add_all([food, rent])
    session.commit()
    return account, food, rent


def spend(session, account, category, amount, when=TODAY, type=TransactionType.expense):
    TransactionService(session, 1).create(
        TransactionIn(
            type=type,
            amount=Decimal(amount),
            date=when,
            description="Spend",
            category_id=category.id,
            account_id=account.id,
        )
    )


def test_budget_near_limit_but_not_over():
    session = make_session()
    account, food, _rent = seed(session)
    service = BudgetService(session, 1)
    service.create(
        BudgetIn(category_id=food.id, monthly_limit=Decimal("2000"), alert_threshold=80)
    )

    spend(session, account, food, "500", date(2025, 3, 1))
    spend(session, account, food, "700", date(2025, 3, 10))
    spend(session, account, food, "500", date(2025, 3, 31))
    # Outside the month or not an expense: ignored.
    spend(session, account, food, "999", date(2025, 2, 28))
    spend(session, account, food, "50", date(2025, 3, 2), type=TransactionType.income)

    [status] = service.list_with_spent(today=TODAY)
    assert status.spent == Decimal("1700.00")
    assert status.percentage == Decimal("85.00")
    assert status.remaining == Decimal("300.00")
    assert status.is_near_limit is True
    assert status.is_over_budget is False
    assert status.category_name == "Food"


def test_near_limit_ignores_display_rounding():
    session = make_session()
    account, food, _rent = seed(session)
    service = BudgetService(session, 1)
    service.create(
        BudgetIn(category_id=food.id, monthly_limit=Decimal("2000"), alert_threshold=80)
    )

    spend(session, account, food, "1599.99")
    [status] = service.list_with_spent(today=TODAY)
    assert status.percentage == Decimal("80.00")
    assert status.is_near_limit is False

    spend(session, account, food, "0.01")
    [status] = service.list_with_spent(today=TODAY)
    assert status.is_near_limit is True


def test_budget_over_limit_and_without_threshold():
    session = make_session()
    account, food, rent = seed(session)
    service = BudgetService(session, 1)
    service.create(BudgetIn(category_id=food.id, monthly_limit=Decimal("100")))
    service.create(
        BudgetIn(category_id=rent.id, monthly_limit=Decimal("1000"), alert_threshold=50)
    )
    spend(session, account, food, "150")

    by_category = {s.category_id: s for s in service.list_with_spent(today=TODAY)}
    food_status = by_category[food.id]
    assert food_status.is_over_budget is True
    # No threshold configured: never "near", display default is 80.
    assert food_status.is_near_limit is False
    assert food_status.alert_threshold == 80
    assert food_status.percentage == Decimal("150.00")

    rent_status = by_category[rent.id]
    assert rent_status.spent == Decimal("0.00")
    assert rent_status.is_near_limit is False


def test_one_budget_per_category():
    session = make_session()
    _account, food, _rent = seed(session)
    service = BudgetService(session, 1)
    service.create(BudgetIn(category_id=food.id, monthly_limit=Decimal("100")))
    with pytest.raises(ConstraintViolation):
        service.create(BudgetIn(category_id=food.id, monthly_limit=Decimal("200")))


def test_budget_category_must_be_owned():
    session = make_session()
    _account, food, _rent = seed(session)
    with pytest.raises(NotFound):
        BudgetService(session, 2).create(
            BudgetIn(category_id=food.id, monthly_limit=Decimal("100"))
        )


def test_update_get_and_summary():
    session = make_session()
    account, food, rent = seed(session)
    service = BudgetService(session, 1)
    budget = service.create(BudgetIn(category_id=food.id, monthly_limit=Decimal("400")))
    service.create(BudgetIn(category_id=rent.id, monthly_limit=Decimal("600")))
    spend(session, account, food, "250")

    service.update(budget.id, BudgetUpdate(alert_threshold=50))
    status = service.get_with_spent(budget.id, today=TODAY)
    assert status.percentage == Decimal("62.50")
    assert status.is_near_limit is True

    summary = service.summary(today=TODAY)
    assert summary["totals"]["limit"] == Decimal("1000.00")
    assert summary["totals"]["spent"] == Decimal("250.00")
    assert summary["totals"]["percentage"] == Decimal("25.00")

    service.delete(budget.id)
    with pytest.raises(NotFound):
        service.get_with_spent(budget.id)
