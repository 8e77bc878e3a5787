from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine, update
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import sessionmaker

from database import Base
from models import Account, CreditCard, TransactionType
from schemas import AccountIn, CreditCardIn, TransactionIn
from services import (
    AccountService,
    BalanceAuditService,
    CreditCardService,
    TransactionService,
)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def seed(session, user_id=1):
    account = AccountService(session, user_id).create(
        AccountIn(
            name="Main",
            bank="SBI",
            type="savings",
            account_number="0001",
            balance=Decimal("1000"),
        )
    )
    card = CreditCardService(session, user_id).create(
        CreditCardIn(name="Card", bank="Axis", last_four="1234", limit="5000", due_day=1)
    )
    txns = TransactionService(session, user_id)
    for type, amount, source in [
        (TransactionType.expense, "200", {"account_id": account.id}),
        (TransactionType.income, "75.25", {"account_id": account.id}),
        (TransactionType.expense, "300", {"credit_card_id": card.id}),
        (TransactionType.income, "100", {"credit_card_id": card.id}),
    ]:
        txns.create(
            TransactionIn(
                type=type,
                amount=Decimal(amount),
                date=date(2025, 3, 1),
                description="Seed",
                **source,
            )
        )
    return account, card


def test_consistent_ledger_has_no_drift():
    session = make_session()
    seed(session)
    assert BalanceAuditService(session).audit() == []


def test_drift_is_reported_then_repaired():
    session = make_session()
    account, card = seed(session)
    session.execute(
        update(Account).where(Account.id == account.id).values(balance=Decimal("1.00"))
    )
    session.execute(
        update(CreditCard).where(CreditCard.id == card.id).values(used=Decimal("0"))
    )
    session.commit()

    drifts = BalanceAuditService(session, 1).audit()
    assert [(d.kind, d.stored, d.expected) for d in drifts] == [
        ("account", Decimal("1.00"), Decimal("875.25")),
        ("credit_card", Decimal("0.00"), Decimal("300.00")),
    ]
    assert drifts[0].drift == Decimal("-874.25")

    BalanceAuditService(session, 1).audit(repair=True)
    session.refresh(account)
    session.refresh(card)
    assert account.balance == Decimal("875.25")
    assert card.used == Decimal("300.00")
    assert BalanceAuditService(session).audit() == []


def test_audit_scoped_to_user():
    session = make_session()
    account, _card = seed(session, user_id=1)
    seed(session, user_id=2)
    session.execute(
        update(Account).where(Account.id == account.id).values(balance=Decimal("0"))
    )
    session.commit()

    assert BalanceAuditService(session, 2).audit() == []
    assert len(BalanceAuditService(session, 1).audit()) == 1
    assert len(BalanceAuditService(session).audit()) == 1


def test_repair_locks_the_rows_it_rewrites():
    service = BalanceAuditService(make_session(), 1)
    dialect = postgresql.dialect()

    def compiled(model, lock):
        return str(service.scoped_query(model, lock).compile(dialect=dialect))

    assert "FOR UPDATE" in compiled(Account, lock=True)
    assert "FOR UPDATE" in compiled(CreditCard, lock=True)
    assert "FOR UPDATE" not in compiled(Account, lock=False)
