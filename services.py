from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterator, Optional

from sqlalchemy import case, delete, func, select, type_coerce, update
from sqlalchemy.orm import Session, joinedload
from sqlalchemy.orm.exc import StaleDataError

from database import begin_write
from models import (
    SIP,
    Account,
    Budget,
    Category,
    Commitment,
    CreditCard,
    DebitCard,
    Investment,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from money import ZERO, Money, percentage, reaches_percent
from periods import (
    Period,
    month_end,
    month_start,
    shift_months,
    trailing_months,
    trailing_quarters,
)
from recurrence import calculate_next_date, local_today, upcoming_occurrences
from schemas import (
    AccountIn,
    AccountUpdate,
    BudgetIn,
    BudgetUpdate,
    CategoryIn,
    CategoryUpdate,
    CommitmentIn,
    CommitmentUpdate,
    CreditCardIn,
    CreditCardUpdate,
    DebitCardIn,
    DebitCardUpdate,
    InvestmentIn,
    InvestmentUpdate,
    RecurringTransactionIn,
    RecurringTransactionUpdate,
    SIPIn,
    SIPUpdate,
    TransactionIn,
    TransactionUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_ALERT_THRESHOLD = 80
CARD_UTILIZATION_WARNING = Decimal("75")
UPCOMING_WINDOW_DAYS = 7
COMMITMENT_HORIZON_DAYS = 90
COMMITMENT_WARNING_DAYS = 3
COMMITMENT_INSIGHT_LIMIT = 5


class NotFound(ValueError):
    pass


class InvalidReference(ValueError):
    pass


class ConstraintViolation(ValueError):
    pass


@contextmanager
def atomic(session: Session) -> Iterator[Session]:
    """Commit everything done inside the block as one unit, or nothing."""
    begin_write(session)
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise


def get_owned(session: Session, model, entity_id: int, user_id: int, label: str):
    entity = session.get(model, entity_id)
    if not entity or entity.user_id != user_id:
        raise NotFound(f"{label} not found")
    return entity


def lock_owned(session: Session, model, entity_id: int, user_id: int, label: str):
    entity = session.scalar(
        select(model)
        .where(model.id == entity_id, model.user_id == user_id)
        .with_for_update()
    )
    if entity is None:
        raise NotFound(f"{label} not found")
    return entity


def sum_money(expr):
    return type_coerce(func.coalesce(func.sum(expr), 0), Money)


def transaction_totals(session: Session, *criteria) -> tuple[Decimal, Decimal]:
    """Income and expense sums over the transactions matching ``criteria``."""
    stmt = select(
        sum_money(
            case(
                (Transaction.type == TransactionType.income, Transaction.amount),
                else_=0,
            )
        ).label("income"),
        sum_money(
            case(
                (Transaction.type == TransactionType.expense, Transaction.amount),
                else_=0,
            )
        ).label("expenses"),
    ).where(*criteria)
    row = session.execute(stmt).one()
    return row.income, row.expenses


def resolve_funding_source(
    session: Session,
    user_id: int,
    account_id: Optional[int],
    credit_card_id: Optional[int],
) -> tuple[Optional[int], Optional[int]]:
    if account_id is not None and credit_card_id is not None:
        raise InvalidReference(
            "Provide either account_id or credit_card_id, not both"
        )
    if account_id is None and credit_card_id is None:
        raise InvalidReference("Either account_id or credit_card_id must be provided")
    if account_id is not None:
        get_owned(session, Account, account_id, user_id, "Account")
    else:
        get_owned(session, CreditCard, credit_card_id, user_id, "Credit card")
    return account_id, credit_card_id


def funding_after_update(
    session: Session, user_id: int, current, changes: dict[str, object]
) -> tuple[Optional[int], Optional[int]]:
    """Funding source of ``current`` once ``changes`` are applied.

    Naming a new account (or card) on its own switches the source and clears
    the other reference; naming both is ambiguous; nulling the only source
    without a replacement leaves the record unfunded. The last two are
    rejected by ``resolve_funding_source``.
    """
    account_id = current.account_id
    credit_card_id = current.credit_card_id
    if "account_id" in changes:
        account_id = changes["account_id"]
        if account_id is not None and "credit_card_id" not in changes:
            credit_card_id = None
    if "credit_card_id" in changes:
        credit_card_id = changes["credit_card_id"]
        if credit_card_id is not None and "account_id" not in changes:
            account_id = None
    return resolve_funding_source(session, user_id, account_id, credit_card_id)


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    credit_card_id: Optional[int] = None


@dataclass(frozen=True)
class BalanceEffect:
    """What one transaction contributes to its funding source."""

    type: TransactionType
    amount: Decimal
    account_id: Optional[int]
    credit_card_id: Optional[int]

    @classmethod
    def of(cls, txn: Transaction) -> "BalanceEffect":
        return cls(
            type=TransactionType(txn.type),
            amount=txn.amount,
            account_id=txn.account_id,
            credit_card_id=txn.credit_card_id,
        )

    @property
    def account_delta(self) -> Decimal:
        return self.amount if self.type == TransactionType.income else -self.amount

    @property
    def card_delta(self) -> Decimal:
        # Income charged to a card never reduces what is drawn on it.
        return self.amount if self.type == TransactionType.expense else ZERO


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(
        self, type: Optional[TransactionType] = None
    ) -> list[tuple[Category, int]]:
        counts = (
            select(Transaction.category_id, func.count(Transaction.id).label("n"))
            .where(Transaction.user_id == self.user_id)
            .group_by(Transaction.category_id)
            .subquery()
        )
        stmt = (
            select(Category, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.category_id == Category.id)
            .where(Category.user_id == self.user_id)
            .order_by(Category.type, Category.name)
        )
        if type:
            stmt = stmt.where(Category.type == type)
        return [(category, int(n)) for category, n in self.session.execute(stmt)]

    def get(self, category_id: int) -> Category:
        return get_owned(self.session, Category, category_id, self.user_id, "Category")

    def _ensure_unique(
        self, name: str, type: TransactionType, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            Category.type == type,
            func.lower(Category.name) == name.strip().lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ConstraintViolation("Category with this name and type already exists")

    def create(self, data: CategoryIn) -> Category:
        self._ensure_unique(data.name, data.type)
        category = Category(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            color=data.color,
            icon=data.icon,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        changes = data.changes()
        if "name" in changes or "type" in changes:
            self._ensure_unique(
                changes.get("name", category.name),
                changes.get("type", category.type),
                exclude_id=category.id,
            )
        for field, value in changes.items():
            setattr(category, field, value.strip() if field == "name" else value)
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        with atomic(self.session):
            category = self.get(category_id)
            in_use = self.session.scalar(
                select(func.count(Transaction.id)).where(
                    Transaction.category_id == category.id
                )
            )
            if in_use:
                raise ConstraintViolation(
                    "Cannot delete category with existing transactions. "
                    "Please reassign or delete transactions first."
                )
            self.session.execute(delete(Budget).where(Budget.category_id == category.id))
            self.session.execute(
                update(RecurringTransaction)
                .where(RecurringTransaction.category_id == category.id)
                .values(category_id=None)
            )
            self.session.delete(category)


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.created_at.desc(), Account.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        return get_owned(self.session, Account, account_id, self.user_id, "Account")

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name,
            bank=data.bank,
            type=data.type,
            account_number=data.account_number,
            color=data.color,
            balance=data.balance,
            opening_balance=data.balance,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountUpdate) -> Account:
        changes = data.changes()
        new_balance = changes.pop("balance", None)
        with atomic(self.session):
            account = lock_owned(
                self.session, Account, account_id, self.user_id, "Account"
            )
            for field, value in changes.items():
                setattr(account, field, value)
            if new_balance is not None:
                self._override_balance(account, new_balance)
        self.session.refresh(account)
        return account

    def set_balance(self, account_id: int, balance: Decimal) -> Account:
        """Manual correction that bypasses the transaction log.

        The opening balance is rebased so the stored balance still equals
        opening balance plus the net of the account's transactions.
        """
        with atomic(self.session):
            account = lock_owned(
                self.session, Account, account_id, self.user_id, "Account"
            )
            self._override_balance(account, balance)
        self.session.refresh(account)
        return account

    def _override_balance(self, account: Account, balance: Decimal) -> None:
        income, expenses = transaction_totals(
            self.session, Transaction.account_id == account.id
        )
        previous = account.balance
        account.balance = balance
        account.opening_balance = balance - (income - expenses)
        logger.warning(
            f"balance_override: user_id={self.user_id} account_id={account.id} "
            f"previous={previous} new={balance}"
        )

    def delete(self, account_id: int) -> None:
        with atomic(self.session):
            account = lock_owned(
                self.session, Account, account_id, self.user_id, "Account"
            )
            txn_count = self.session.scalar(
                select(func.count(Transaction.id)).where(
                    Transaction.account_id == account.id
                )
            )
            if txn_count:
                raise ConstraintViolation(
                    "Cannot delete account with existing transactions. "
                    "Please delete or reassign transactions first."
                )
            card_count = self.session.scalar(
                select(func.count(DebitCard.id)).where(
                    DebitCard.linked_account_id == account.id
                )
            )
            if card_count:
                raise ConstraintViolation(
                    "Cannot delete account with linked debit cards. "
                    "Please delete debit cards first."
                )
            recurring_count = self.session.scalar(
                select(func.count(RecurringTransaction.id)).where(
                    RecurringTransaction.account_id == account.id
                )
            )
            if recurring_count:
                raise ConstraintViolation(
                    "Cannot delete account with recurring transactions. "
                    "Please delete or reassign them first."
                )
            self.session.delete(account)

    def transactions(self, account_id: int) -> list[Transaction]:
        account = self.get(account_id)
        return TransactionService(self.session, self.user_id).list(
            TransactionFilters(account_id=account.id)
        )


class CreditCardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[CreditCard]:
        stmt = (
            select(CreditCard)
            .where(CreditCard.user_id == self.user_id)
            .order_by(CreditCard.created_at.desc(), CreditCard.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, card_id: int) -> CreditCard:
        return get_owned(self.session, CreditCard, card_id, self.user_id, "Credit card")

    def create(self, data: CreditCardIn) -> CreditCard:
        card = CreditCard(
            user_id=self.user_id,
            name=data.name,
            bank=data.bank,
            last_four=data.last_four,
            limit=data.limit,
            used=ZERO,
            opening_used=ZERO,
            due_day=data.due_day,
            min_due=data.min_due,
            billing_cycle_start=data.billing_cycle_start,
            color=data.color,
        )
        self.session.add(card)
        self.session.commit()
        self.session.refresh(card)
        return card

    def update(self, card_id: int, data: CreditCardUpdate) -> CreditCard:
        changes = data.changes()
        new_used = changes.pop("used", None)
        with atomic(self.session):
            card = lock_owned(
                self.session, CreditCard, card_id, self.user_id, "Credit card"
            )
            for field, value in changes.items():
                setattr(card, field, value)
            if new_used is not None:
                self._override_used(card, new_used)
        self.session.refresh(card)
        return card

    def set_used(self, card_id: int, used: Decimal) -> CreditCard:
        """Manual correction of the drawn amount; rebases ``opening_used``."""
        with atomic(self.session):
            card = lock_owned(
                self.session, CreditCard, card_id, self.user_id, "Credit card"
            )
            self._override_used(card, used)
        self.session.refresh(card)
        return card

    def _override_used(self, card: CreditCard, used: Decimal) -> None:
        _income, expenses = transaction_totals(
            self.session, Transaction.credit_card_id == card.id
        )
        previous = card.used
        card.used = used
        card.opening_used = used - expenses
        logger.warning(
            f"used_override: user_id={self.user_id} credit_card_id={card.id} "
            f"previous={previous} new={used}"
        )

    def delete(self, card_id: int) -> None:
        with atomic(self.session):
            card = lock_owned(
                self.session, CreditCard, card_id, self.user_id, "Credit card"
            )
            txn_count = self.session.scalar(
                select(func.count(Transaction.id)).where(
                    Transaction.credit_card_id == card.id
                )
            )
            if txn_count:
                raise ConstraintViolation(
                    "Cannot delete credit card with existing transactions. "
                    "Please delete or reassign transactions first."
                )
            recurring_count = self.session.scalar(
                select(func.count(RecurringTransaction.id)).where(
                    RecurringTransaction.credit_card_id == card.id
                )
            )
            if recurring_count:
                raise ConstraintViolation(
                    "Cannot delete credit card with recurring transactions. "
                    "Please delete or reassign them first."
                )
            self.session.delete(card)

    def transactions(self, card_id: int) -> list[Transaction]:
        card = self.get(card_id)
        return TransactionService(self.session, self.user_id).list(
            TransactionFilters(credit_card_id=card.id)
        )

    def utilization(self, card_id: int) -> dict[str, Decimal]:
        card = self.get(card_id)
        return {
            "limit": card.limit,
            "used": card.used,
            "available": card.limit - card.used,
            "utilization_percent": percentage(card.used, card.limit),
        }


class DebitCardService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[DebitCard]:
        stmt = (
            select(DebitCard)
            .options(joinedload(DebitCard.linked_account))
            .where(DebitCard.user_id == self.user_id)
            .order_by(DebitCard.created_at.desc(), DebitCard.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, card_id: int) -> DebitCard:
        return get_owned(self.session, DebitCard, card_id, self.user_id, "Debit card")

    def create(self, data: DebitCardIn) -> DebitCard:
        get_owned(
            self.session, Account, data.linked_account_id, self.user_id, "Account"
        )
        card = DebitCard(user_id=self.user_id, **data.model_dump())
        self.session.add(card)
        self.session.commit()
        self.session.refresh(card)
        return card

    def update(self, card_id: int, data: DebitCardUpdate) -> DebitCard:
        card = self.get(card_id)
        changes = data.changes()
        if "linked_account_id" in changes:
            get_owned(
                self.session,
                Account,
                changes["linked_account_id"],
                self.user_id,
                "Account",
            )
        for field, value in changes.items():
            setattr(card, field, value)
        self.session.commit()
        self.session.refresh(card)
        return card

    def delete(self, card_id: int) -> None:
        card = self.get(card_id)
        self.session.delete(card)
        self.session.commit()


class TransactionService:
    """The only writer allowed to move account balances and card usage.

    Every create, update and delete runs in one database transaction: the
    transaction row and the funding source rows are locked, the balance
    change is a SQL-side increment, and any failure rolls the whole unit back.
    Updates always fully revert the old effect and fully reapply the new one.
    """

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(
                joinedload(Transaction.category),
                joinedload(Transaction.account),
                joinedload(Transaction.credit_card),
            )
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def list(
        self,
        filters: Optional[TransactionFilters] = None,
        period: Optional[Period] = None,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(joinedload(Transaction.category))
            .where(Transaction.user_id == self.user_id)
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .offset(offset)
        )
        if period:
            stmt = stmt.where(Transaction.date.between(period.start, period.end))
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.category_id:
            stmt = stmt.where(Transaction.category_id == filters.category_id)
        if filters.account_id:
            stmt = stmt.where(Transaction.account_id == filters.account_id)
        if filters.credit_card_id:
            stmt = stmt.where(Transaction.credit_card_id == filters.credit_card_id)
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.session.scalars(stmt).all()

    def create(self, data: TransactionIn) -> Transaction:
        with atomic(self.session):
            if data.category_id is not None:
                get_owned(
                    self.session, Category, data.category_id, self.user_id, "Category"
                )
            account_id, credit_card_id = resolve_funding_source(
                self.session, self.user_id, data.account_id, data.credit_card_id
            )
            txn = Transaction(
                user_id=self.user_id,
                type=data.type,
                amount=data.amount,
                date=data.date,
                description=data.description,
                notes=data.notes,
                category_id=data.category_id,
                account_id=account_id,
                credit_card_id=credit_card_id,
            )
            self.session.add(txn)
            self.session.flush()
            self._apply(BalanceEffect.of(txn), 1)
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: user_id={self.user_id} id={txn.id} "
            f"type={txn.type.value} account_id={txn.account_id} "
            f"credit_card_id={txn.credit_card_id}"
        )
        return txn

    def update(self, transaction_id: int, data: TransactionUpdate) -> Transaction:
        changes = data.changes()
        with atomic(self.session):
            txn = self._lock(transaction_id)
            self._apply(BalanceEffect.of(txn), -1)

            if changes.get("category_id") is not None:
                get_owned(
                    self.session,
                    Category,
                    changes["category_id"],
                    self.user_id,
                    "Category",
                )
            account_id, credit_card_id = funding_after_update(
                self.session, self.user_id, txn, changes
            )

            for field, value in changes.items():
                if field not in ("account_id", "credit_card_id"):
                    setattr(txn, field, value)
            txn.account_id = account_id
            txn.credit_card_id = credit_card_id
            self.session.flush()

            self._apply(BalanceEffect.of(txn), 1)
        self.session.refresh(txn)
        logger.info(
            f"transaction_updated: user_id={self.user_id} id={txn.id} "
            f"fields={sorted(changes)}"
        )
        return txn

    def delete(self, transaction_id: int) -> None:
        try:
            with atomic(self.session):
                txn = self._lock(transaction_id)
                effect = BalanceEffect.of(txn)
                self.session.delete(txn)
                self.session.flush()
                self._apply(effect, -1)
        except StaleDataError as exc:
            # Another writer removed the row between our read and our delete.
            raise NotFound("Transaction not found") from exc
        logger.info(f"transaction_deleted: user_id={self.user_id} id={transaction_id}")

    def _lock(self, transaction_id: int) -> Transaction:
        return lock_owned(
            self.session, Transaction, transaction_id, self.user_id, "Transaction"
        )

    def _apply(self, effect: BalanceEffect, direction: int) -> None:
        if effect.account_id is not None:
            self._increment(
                Account, Account.balance, effect.account_id, effect.account_delta * direction
            )
        elif effect.credit_card_id is not None and effect.card_delta:
            self._increment(
                CreditCard,
                CreditCard.used,
                effect.credit_card_id,
                effect.card_delta * direction,
            )

    def _increment(self, model, column, entity_id: int, delta: Decimal) -> None:
        label = "Account" if model is Account else "Credit card"
        target = lock_owned(self.session, model, entity_id, self.user_id, label)
        self.session.execute(
            update(model)
            .where(model.id == target.id)
            .values({column: column + delta})
            .execution_options(synchronize_session=False)
        )
        self.session.expire(target, [column.key])


class RecurringTransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, is_active: Optional[bool] = None) -> list[RecurringTransaction]:
        stmt = (
            select(RecurringTransaction)
            .options(joinedload(RecurringTransaction.category))
            .where(RecurringTransaction.user_id == self.user_id)
            .order_by(RecurringTransaction.next_date, RecurringTransaction.id)
        )
        if is_active is not None:
            stmt = stmt.where(RecurringTransaction.is_active.is_(is_active))
        return self.session.scalars(stmt).all()

    def get(self, recurring_id: int) -> RecurringTransaction:
        return get_owned(
            self.session,
            RecurringTransaction,
            recurring_id,
            self.user_id,
            "Recurring transaction",
        )

    def create(self, data: RecurringTransactionIn) -> RecurringTransaction:
        if data.category_id is not None:
            get_owned(self.session, Category, data.category_id, self.user_id, "Category")
        account_id, credit_card_id = resolve_funding_source(
            self.session, self.user_id, data.account_id, data.credit_card_id
        )
        recurring = RecurringTransaction(
            user_id=self.user_id,
            type=data.type,
            amount=data.amount,
            description=data.description,
            notes=data.notes,
            category_id=data.category_id,
            account_id=account_id,
            credit_card_id=credit_card_id,
            frequency=data.frequency,
            custom_days=data.custom_days,
            start_date=data.start_date,
            next_date=calculate_next_date(
                data.start_date, data.frequency, data.custom_days
            ),
            is_active=True,
        )
        self.session.add(recurring)
        self.session.commit()
        self.session.refresh(recurring)
        return recurring

    def update(
        self, recurring_id: int, data: RecurringTransactionUpdate
    ) -> RecurringTransaction:
        recurring = self.get(recurring_id)
        changes = data.changes()
        if changes.get("category_id") is not None:
            get_owned(
                self.session, Category, changes["category_id"], self.user_id, "Category"
            )
        if "account_id" in changes or "credit_card_id" in changes:
            account_id, credit_card_id = funding_after_update(
                self.session, self.user_id, recurring, changes
            )
            changes["account_id"] = account_id
            changes["credit_card_id"] = credit_card_id

        for field, value in changes.items():
            setattr(recurring, field, value)
        if changes.keys() & {"frequency", "start_date", "custom_days"}:
            recurring.next_date = calculate_next_date(
                recurring.start_date, recurring.frequency, recurring.custom_days
            )
        self.session.commit()
        self.session.refresh(recurring)
        return recurring

    def delete(self, recurring_id: int) -> None:
        recurring = self.get(recurring_id)
        self.session.delete(recurring)
        self.session.commit()

    def occurrences(self, recurring_id: int, count: int = 6) -> list[date]:
        recurring = self.get(recurring_id)
        return upcoming_occurrences(
            recurring.start_date,
            recurring.frequency,
            recurring.custom_days,
            count=count,
        )


class InvestmentService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @staticmethod
    def returns_percent(investment: Investment) -> Decimal:
        return percentage(
            investment.current_value - investment.invested, investment.invested
        )

    def list_all(self) -> list[Investment]:
        stmt = (
            select(Investment)
            .where(Investment.user_id == self.user_id)
            .order_by(Investment.created_at.desc(), Investment.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, investment_id: int) -> Investment:
        return get_owned(
            self.session, Investment, investment_id, self.user_id, "Investment"
        )

    def create(self, data: InvestmentIn) -> Investment:
        investment = Investment(user_id=self.user_id, **data.model_dump())
        self.session.add(investment)
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def update(self, investment_id: int, data: InvestmentUpdate) -> Investment:
        investment = self.get(investment_id)
        for field, value in data.changes().items():
            setattr(investment, field, value)
        self.session.commit()
        self.session.refresh(investment)
        return investment

    def delete(self, investment_id: int) -> None:
        with atomic(self.session):
            investment = self.get(investment_id)
            active_sips = self.session.scalar(
                select(func.count(SIP.id)).where(
                    SIP.investment_id == investment.id, SIP.is_active.is_(True)
                )
            )
            if active_sips:
                raise ConstraintViolation(
                    "Cannot delete investment with active SIPs. "
                    "Please deactivate or delete SIPs first."
                )
            self.session.execute(
                update(SIP)
                .where(SIP.investment_id == investment.id)
                .values(investment_id=None)
            )
            self.session.delete(investment)

    def summary(self) -> dict[str, object]:
        row = self.session.execute(
            select(
                sum_money(Investment.invested).label("invested"),
                sum_money(Investment.current_value).label("current"),
                func.count(Investment.id).label("count"),
            ).where(Investment.user_id == self.user_id)
        ).one()
        returns = row.current - row.invested
        return {
            "total_invested": row.invested,
            "total_current": row.current,
            "total_returns": returns,
            "returns_percent": percentage(returns, row.invested),
            "count": int(row.count),
        }


class SIPService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list(self, is_active: Optional[bool] = None) -> list[SIP]:
        stmt = (
            select(SIP)
            .options(joinedload(SIP.investment))
            .where(SIP.user_id == self.user_id)
            .order_by(SIP.next_date, SIP.id)
        )
        if is_active is not None:
            stmt = stmt.where(SIP.is_active.is_(is_active))
        return self.session.scalars(stmt).all()

    def get(self, sip_id: int) -> SIP:
        return get_owned(self.session, SIP, sip_id, self.user_id, "SIP")

    def create(self, data: SIPIn) -> SIP:
        if data.investment_id is not None:
            get_owned(
                self.session, Investment, data.investment_id, self.user_id, "Investment"
            )
        sip = SIP(
            user_id=self.user_id,
            investment_id=data.investment_id,
            name=data.name,
            amount=data.amount,
            frequency=data.frequency,
            start_date=data.start_date,
            next_date=calculate_next_date(data.start_date, data.frequency),
            total_invested=ZERO,
            is_active=True,
        )
        self.session.add(sip)
        self.session.commit()
        self.session.refresh(sip)
        return sip

    def update(self, sip_id: int, data: SIPUpdate) -> SIP:
        sip = self.get(sip_id)
        changes = data.changes()
        if changes.get("investment_id") is not None:
            get_owned(
                self.session,
                Investment,
                changes["investment_id"],
                self.user_id,
                "Investment",
            )
        for field, value in changes.items():
            setattr(sip, field, value)
        if changes.keys() & {"frequency", "start_date"}:
            sip.next_date = calculate_next_date(sip.start_date, sip.frequency)
        self.session.commit()
        self.session.refresh(sip)
        return sip

    def delete(self, sip_id: int) -> None:
        sip = self.get(sip_id)
        self.session.delete(sip)
        self.session.commit()

    def upcoming(self, days: int = 30, today: Optional[date] = None) -> list[SIP]:
        today = today or local_today()
        stmt = (
            select(SIP)
            .options(joinedload(SIP.investment))
            .where(
                SIP.user_id == self.user_id,
                SIP.is_active.is_(True),
                SIP.next_date.between(today, today + timedelta(days=days)),
            )
            .order_by(SIP.next_date, SIP.id)
        )
        return self.session.scalars(stmt).all()


@dataclass(frozen=True)
class CommitmentDue:
    commitment: Commitment
    days_until: int
    is_due_soon: bool
    is_overdue: bool


class CommitmentService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _window(self, days: int, today: date, include_overdue: bool = False):
        criteria = [Commitment.due_date <= today + timedelta(days=days)]
        if not include_overdue:
            criteria.append(Commitment.due_date >= today)
        return criteria

    def list(
        self,
        type: Optional[str] = None,
        upcoming: bool = False,
        days: int = COMMITMENT_HORIZON_DAYS,
        today: Optional[date] = None,
    ) -> list[Commitment]:
        stmt = (
            select(Commitment)
            .where(Commitment.user_id == self.user_id)
            .order_by(Commitment.due_date, Commitment.id)
        )
        if type:
            stmt = stmt.where(Commitment.type == type)
        if upcoming:
            stmt = stmt.where(*self._window(days, today or local_today()))
        return self.session.scalars(stmt).all()

    def get(self, commitment_id: int) -> Commitment:
        return get_owned(
            self.session, Commitment, commitment_id, self.user_id, "Commitment"
        )

    def create(self, data: CommitmentIn) -> Commitment:
        commitment = Commitment(user_id=self.user_id, **data.model_dump())
        self.session.add(commitment)
        self.session.commit()
        self.session.refresh(commitment)
        return commitment

    def update(self, commitment_id: int, data: CommitmentUpdate) -> Commitment:
        commitment = self.get(commitment_id)
        for field, value in data.changes().items():
            setattr(commitment, field, value)
        self.session.commit()
        self.session.refresh(commitment)
        return commitment

    def delete(self, commitment_id: int) -> None:
        commitment = self.get(commitment_id)
        self.session.delete(commitment)
        self.session.commit()

    def upcoming(
        self,
        days: int = COMMITMENT_HORIZON_DAYS,
        today: Optional[date] = None,
        include_overdue: bool = False,
    ) -> list[CommitmentDue]:
        """Commitments due within ``days``, soonest first, with due-date flags.

        ``include_overdue`` also returns commitments whose due date has passed.
        """
        today = today or local_today()
        stmt = (
            select(Commitment)
            .where(
                Commitment.user_id == self.user_id,
                *self._window(days, today, include_overdue),
            )
            .order_by(Commitment.due_date, Commitment.id)
        )
        rows = []
        for commitment in self.session.scalars(stmt):
            days_until = (commitment.due_date - today).days
            rows.append(
                CommitmentDue(
                    commitment=commitment,
                    days_until=days_until,
                    is_due_soon=days_until <= UPCOMING_WINDOW_DAYS,
                    is_overdue=days_until < 0,
                )
            )
        return rows


@dataclass(frozen=True)
class BudgetStatus:
    id: int
    category_id: int
    category_name: str
    limit: Decimal
    spent: Decimal
    remaining: Decimal
    percentage: Decimal
    alert_threshold: int
    is_over_budget: bool
    is_near_limit: bool


class BudgetService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def spent_by_category(self, period: Period) -> dict[int, Decimal]:
        stmt = (
            select(
                Transaction.category_id,
                sum_money(Transaction.amount).label("spent"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.category_id.isnot(None),
                Transaction.date.between(period.start, period.end),
            )
            .group_by(Transaction.category_id)
        )
        return {row.category_id: row.spent for row in self.session.execute(stmt)}

    @staticmethod
    def status(budget: Budget, spent: Decimal) -> BudgetStatus:
        limit = budget.monthly_limit
        threshold = budget.alert_threshold
        return BudgetStatus(
            id=budget.id,
            category_id=budget.category_id,
            category_name=budget.category.name,
            limit=limit,
            spent=spent,
            remaining=limit - spent,
            percentage=percentage(spent, limit),
            alert_threshold=(
                threshold if threshold is not None else DEFAULT_ALERT_THRESHOLD
            ),
            is_over_budget=spent > limit,
            is_near_limit=(
                threshold is not None and reaches_percent(spent, limit, threshold)
            ),
        )

    def _current_month(self, today: Optional[date]) -> Period:
        today = today or local_today()
        return Period("this_month", month_start(today), month_end(today))

    def list_with_spent(self, today: Optional[date] = None) -> list[BudgetStatus]:
        budgets = self.session.scalars(
            select(Budget)
            .options(joinedload(Budget.category))
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.created_at.desc(), Budget.id.desc())
        ).all()
        spent = self.spent_by_category(self._current_month(today))
        return [self.status(b, spent.get(b.category_id, ZERO)) for b in budgets]

    def get_with_spent(
        self, budget_id: int, today: Optional[date] = None
    ) -> BudgetStatus:
        budget = get_owned(self.session, Budget, budget_id, self.user_id, "Budget")
        spent = self.spent_by_category(self._current_month(today))
        return self.status(budget, spent.get(budget.category_id, ZERO))

    def create(self, data: BudgetIn) -> Budget:
        get_owned(self.session, Category, data.category_id, self.user_id, "Category")
        existing = self.session.scalar(
            select(Budget.id).where(
                Budget.user_id == self.user_id,
                Budget.category_id == data.category_id,
            )
        )
        if existing:
            raise ConstraintViolation("Budget already exists for this category")
        budget = Budget(
            user_id=self.user_id,
            category_id=data.category_id,
            monthly_limit=data.monthly_limit,
            alert_threshold=data.alert_threshold,
        )
        self.session.add(budget)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def update(self, budget_id: int, data: BudgetUpdate) -> Budget:
        budget = get_owned(self.session, Budget, budget_id, self.user_id, "Budget")
        for field, value in data.changes().items():
            setattr(budget, field, value)
        self.session.commit()
        self.session.refresh(budget)
        return budget

    def delete(self, budget_id: int) -> None:
        budget = get_owned(self.session, Budget, budget_id, self.user_id, "Budget")
        self.session.delete(budget)
        self.session.commit()

    def summary(self, today: Optional[date] = None) -> dict[str, object]:
        rows = self.list_with_spent(today)
        total_limit = sum((r.limit for r in rows), ZERO)
        total_spent = sum((r.spent for r in rows), ZERO)
        return {
            "budgets": rows,
            "totals": {
                "limit": total_limit,
                "spent": total_spent,
                "remaining": total_limit - total_spent,
                "percentage": percentage(total_spent, total_limit),
            },
        }


class AnalyticsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def totals(self, period: Period) -> tuple[Decimal, Decimal]:
        return transaction_totals(
            self.session,
            Transaction.user_id == self.user_id,
            Transaction.date.between(period.start, period.end),
        )

    def _account_balances(self) -> Decimal:
        return self.session.scalar(
            select(sum_money(Account.balance)).where(Account.user_id == self.user_id)
        )

    def dashboard_summary(self, today: Optional[date] = None) -> dict[str, Decimal]:
        today = today or local_today()
        this_month = Period("this_month", month_start(today), month_end(today))
        prev_start = shift_months(today, -1)
        last_month = Period("last_month", prev_start, month_end(prev_start))

        net_balance = self._account_balances()
        income, expenses = self.totals(this_month)
        prev_income, prev_expenses = self.totals(last_month)
        savings = income - expenses
        return {
            "net_balance": net_balance,
            "monthly_income": income,
            "monthly_expenses": expenses,
            "savings": savings,
            "savings_rate": percentage(savings, income) if income > 0 else ZERO,
            "income_change": (
                percentage(income - prev_income, prev_income)
                if prev_income > 0
                else ZERO
            ),
            "balance_change": savings - (prev_income - prev_expenses),
        }

    def cash_flow(
        self, period: str = "month", today: Optional[date] = None
    ) -> list[dict[str, object]]:
        today = today or local_today()
        if period == "month":
            windows = trailing_months(today, 6)
        elif period == "quarter":
            windows = trailing_quarters(today, 4)
        else:
            raise ValueError("period must be 'month' or 'quarter'")

        series = []
        for window in windows:
            income, expense = self.totals(window)
            series.append({"name": window.slug, "income": income, "expense": expense})
        return series

    def category_spend(self, today: Optional[date] = None) -> list[dict[str, object]]:
        today = today or local_today()
        stmt = (
            select(
                Category.id,
                Category.name,
                Category.color,
                sum_money(Transaction.amount).label("amount"),
            )
            .join(Transaction, Transaction.category_id == Category.id)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.date.between(month_start(today), month_end(today)),
                Category.user_id == self.user_id,
                Category.type == TransactionType.expense,
            )
            .group_by(Category.id, Category.name, Category.color)
        )
        rows = [
            {
                "category_id": row.id,
                "category_name": row.name,
                "color": row.color,
                "amount": row.amount,
            }
            for row in self.session.execute(stmt)
            if row.amount > 0
        ]
        return sorted(rows, key=lambda r: r["amount"], reverse=True)

    def spend_type(self, today: Optional[date] = None) -> dict[str, Decimal]:
        today = today or local_today()
        fixed = self.session.scalar(
            select(sum_money(RecurringTransaction.amount)).where(
                RecurringTransaction.user_id == self.user_id,
                RecurringTransaction.type == TransactionType.expense,
                RecurringTransaction.is_active.is_(True),
            )
        )
        _income, total = self.totals(
            Period("this_month", month_start(today), month_end(today))
        )
        return {
            "fixed": fixed,
            "variable": max(ZERO, total - fixed),
            "total": total,
        }

    def insights(self, today: Optional[date] = None) -> list[dict[str, str]]:
        today = today or local_today()
        insights: list[dict[str, str]] = []

        due = CommitmentService(self.session, self.user_id).upcoming(
            days=UPCOMING_WINDOW_DAYS, today=today
        )
        for row in due[:COMMITMENT_INSIGHT_LIMIT]:
            commitment, days = row.commitment, row.days_until
            insights.append(
                {
                    "id": f"commitment-{commitment.id}",
                    "type": "warning" if days <= COMMITMENT_WARNING_DAYS else "info",
                    "title": f"{commitment.name} Due Soon",
                    "description": (
                        f"{commitment.name} payment of {commitment.amount:,.2f} "
                        f"is due in {days} day{'' if days == 1 else 's'}."
                    ),
                    "action": "View Commitment",
                }
            )

        for status in BudgetService(self.session, self.user_id).list_with_spent(today):
            if status.is_over_budget:
                insights.append(
                    {
                        "id": f"budget-exceeded-{status.id}",
                        "type": "warning",
                        "title": f"Budget Exceeded: {status.category_name}",
                        "description": (
                            f"You've exceeded your {status.category_name} budget "
                            f"by {status.spent - status.limit:,.2f}."
                        ),
                        "action": "View Budget",
                    }
                )
            elif status.is_near_limit:
                insights.append(
                    {
                        "id": f"budget-alert-{status.id}",
                        "type": "warning",
                        "title": f"Budget Alert: {status.category_name}",
                        "description": (
                            f"You've used {status.percentage:.0f}% of your "
                            f"{status.category_name} budget."
                        ),
                        "action": "View Budget",
                    }
                )

        for card in CreditCardService(self.session, self.user_id).list_all():
            if reaches_percent(card.used, card.limit, CARD_UTILIZATION_WARNING):
                utilization = percentage(card.used, card.limit)
                insights.append(
                    {
                        "id": f"card-utilization-{card.id}",
                        "type": "warning",
                        "title": f"High Card Utilization: {card.name}",
                        "description": (
                            f"Your {card.name} is at {utilization:.0f}% "
                            "utilization. Consider paying down."
                        ),
                        "action": "View Card",
                    }
                )

        expected = self.session.scalar(
            select(RecurringTransaction)
            .where(
                RecurringTransaction.user_id == self.user_id,
                RecurringTransaction.type == TransactionType.income,
                RecurringTransaction.is_active.is_(True),
                RecurringTransaction.next_date
                <= today + timedelta(days=UPCOMING_WINDOW_DAYS),
            )
            .order_by(RecurringTransaction.next_date, RecurringTransaction.id)
            .limit(1)
        )
        if expected:
            days = (expected.next_date - today).days
            insights.append(
                {
                    "id": f"income-expected-{expected.id}",
                    "type": "success",
                    "title": "Income Expected",
                    "description": (
                        f"Your {expected.description} of {expected.amount:,.2f} "
                        f"is expected in {days} day{'' if days == 1 else 's'}."
                    ),
                }
            )
        return insights

    def net_worth(self) -> dict[str, Decimal]:
        accounts = self._account_balances()
        investments = self.session.scalar(
            select(sum_money(Investment.current_value)).where(
                Investment.user_id == self.user_id
            )
        )
        card_debt = self.session.scalar(
            select(sum_money(CreditCard.used)).where(
                CreditCard.user_id == self.user_id
            )
        )
        return {
            "accounts": accounts,
            "investments": investments,
            "credit_card_debt": card_debt,
            "net_worth": accounts + investments - card_debt,
        }


@dataclass(frozen=True)
class BalanceDrift:
    kind: str  # "account" | "credit_card"
    entity_id: int
    user_id: int
    stored: Decimal
    expected: Decimal

    @property
    def drift(self) -> Decimal:
        return self.stored - self.expected


class BalanceAuditService:
    """Recomputes materialized balances from the transaction log.

    ``user_id=None`` audits every user, which is what the nightly job does.
    """

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id

    def scoped_query(self, model, lock: bool = False):
        stmt = select(model).order_by(model.id)
        if self.user_id is not None:
            stmt = stmt.where(model.user_id == self.user_id)
        if lock:
            # Repairs overwrite balances; hold the rows against the mutator.
            stmt = stmt.with_for_update()
        return stmt

    def _scoped(self, model, lock: bool = False):
        return self.session.scalars(self.scoped_query(model, lock)).all()

    def audit(self, repair: bool = False) -> list[BalanceDrift]:
        drifts: list[BalanceDrift] = []
        with atomic(self.session):
            for account in self._scoped(Account, lock=repair):
                income, expenses = transaction_totals(
                    self.session, Transaction.account_id == account.id
                )
                expected = account.opening_balance + income - expenses
                if account.balance != expected:
                    drifts.append(
                        BalanceDrift(
                            "account", account.id, account.user_id,
                            account.balance, expected,
                        )
                    )
                    if repair:
                        account.balance = expected

            for card in self._scoped(CreditCard, lock=repair):
                _income, expenses = transaction_totals(
                    self.session, Transaction.credit_card_id == card.id
                )
                expected = card.opening_used + expenses
                if card.used != expected:
                    drifts.append(
                        BalanceDrift(
                            "credit_card", card.id, card.user_id, card.used, expected
                        )
                    )
                    if repair:
                        card.used = expected

        for d in drifts:
            logger.warning(
                f"balance_drift: kind={d.kind} id={d.entity_id} user_id={d.user_id} "
                f"stored={d.stored} expected={d.expected} repaired={repair}"
            )
        return drifts
