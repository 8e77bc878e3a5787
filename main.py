import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from database import SessionLocal
from models import (
    SIP,
    Account,
    Budget,
    Category,
    Commitment,
    CreditCard,
    DebitCard,
    Frequency,
    Investment,
    RecurringTransaction,
    Transaction,
    TransactionType,
)
from money import InvalidAmount
from periods import Period, resolve_period
from recurrence import calculate_next_date, local_today, upcoming_occurrences
from scheduler import SchedulerManager
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
from services import (
    AccountService,
    AnalyticsService,
    BalanceAuditService,
    BudgetService,
    CategoryService,
    CommitmentService,
    ConstraintViolation,
    CreditCardService,
    DebitCardService,
    InvalidReference,
    InvestmentService,
    NotFound,
    RecurringTransactionService,
    SIPService,
    TransactionFilters,
    TransactionService,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Personal Finance Tracker")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(x_user_id: int = Header(...)) -> int:
    if x_user_id <= 0:
        raise HTTPException(status_code=401, detail="Invalid user")
    return x_user_id


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


@app.exception_handler(NotFound)
def not_found_handler(request: Request, exc: NotFound):
    return _error(404, exc)


@app.exception_handler(InvalidReference)
def invalid_reference_handler(request: Request, exc: InvalidReference):
    return _error(400, exc)


@app.exception_handler(InvalidAmount)
def invalid_amount_handler(request: Request, exc: InvalidAmount):
    return _error(400, exc)


@app.exception_handler(ConstraintViolation)
def constraint_violation_handler(request: Request, exc: ConstraintViolation):
    return _error(409, exc)


@app.exception_handler(IntegrityError)
def integrity_error_handler(request: Request, exc: IntegrityError):
    logger.warning(f"integrity_error: path={request.url.path} error={exc.orig}")
    return JSONResponse(
        status_code=409, content={"detail": "Conflicts with existing data"}
    )


def encode(payload):
    """JSON-ready payload with amounts rendered as exact decimal strings."""
    return jsonable_encoder(payload, custom_encoder={Decimal: str})


def period_from_request(request: Request) -> Period:
    try:
        return resolve_period(
            request.query_params.get("period"),
            request.query_params.get("start"),
            request.query_params.get("end"),
            today=local_today(),
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def filters_from_request(request: Request) -> TransactionFilters:
    def int_param(name: str) -> Optional[int]:
        raw = request.query_params.get(name)
        if not raw:
            return None
        try:
            return int(raw)
        except ValueError as exc:
            raise HTTPException(
                status_code=400, detail=f"{name} must be an integer"
            ) from exc

    txn_type = None
    type_param = request.query_params.get("type")
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid type") from exc
    return TransactionFilters(
        type=txn_type,
        category_id=int_param("category_id"),
        account_id=int_param("account_id"),
        credit_card_id=int_param("credit_card_id"),
    )


def category_json(category: Category, transaction_count: Optional[int] = None) -> dict:
    data = {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "color": category.color,
        "icon": category.icon,
    }
    if transaction_count is not None:
        data["transaction_count"] = transaction_count
    return data


def account_json(account: Account) -> dict:
    return encode(
        {
            "id": account.id,
            "name": account.name,
            "bank": account.bank,
            "type": account.type,
            "account_number": account.account_number,
            "balance": account.balance,
            "color": account.color,
        }
    )


def credit_card_json(card: CreditCard) -> dict:
    return encode(
        {
            "id": card.id,
            "name": card.name,
            "bank": card.bank,
            "last_four": card.last_four,
            "limit": card.limit,
            "used": card.used,
            "available": card.limit - card.used,
            "due_day": card.due_day,
            "min_due": card.min_due,
            "billing_cycle_start": card.billing_cycle_start,
            "color": card.color,
        }
    )


def debit_card_json(card: DebitCard) -> dict:
    return {
        "id": card.id,
        "name": card.name,
        "bank": card.bank,
        "last_four": card.last_four,
        "linked_account_id": card.linked_account_id,
        "card_network": card.card_network,
        "expiry_date": card.expiry_date,
        "is_active": card.is_active,
        "color": card.color,
    }


def transaction_json(txn: Transaction) -> dict:
    return encode(
        {
            "id": txn.id,
            "type": txn.type.value,
            "amount": txn.amount,
            "date": txn.date.isoformat(),
            "description": txn.description,
            "notes": txn.notes,
            "category_id": txn.category_id,
            "category": txn.category.name if txn.category else None,
            "account_id": txn.account_id,
            "credit_card_id": txn.credit_card_id,
        }
    )


def recurring_json(recurring: RecurringTransaction) -> dict:
    return encode(
        {
            "id": recurring.id,
            "type": recurring.type.value,
            "amount": recurring.amount,
            "description": recurring.description,
            "notes": recurring.notes,
            "category_id": recurring.category_id,
            "account_id": recurring.account_id,
            "credit_card_id": recurring.credit_card_id,
            "frequency": recurring.frequency.value,
            "custom_days": recurring.custom_days,
            "start_date": recurring.start_date.isoformat(),
            "next_date": recurring.next_date.isoformat(),
            "is_active": recurring.is_active,
        }
    )


def investment_json(investment: Investment) -> dict:
    return encode(
        {
            "id": investment.id,
            "name": investment.name,
            "type": investment.type,
            "invested": investment.invested,
            "current_value": investment.current_value,
            "returns": investment.current_value - investment.invested,
            "returns_percent": InvestmentService.returns_percent(investment),
            "purchase_date": (
                investment.purchase_date.isoformat()
                if investment.purchase_date
                else None
            ),
            "color": investment.color,
        }
    )


def sip_json(sip: SIP) -> dict:
    return encode(
        {
            "id": sip.id,
            "investment_id": sip.investment_id,
            "name": sip.name,
            "amount": sip.amount,
            "frequency": sip.frequency.value,
            "start_date": sip.start_date.isoformat(),
            "next_date": sip.next_date.isoformat(),
            "total_invested": sip.total_invested,
            "is_active": sip.is_active,
        }
    )


def commitment_json(commitment: Commitment, **extra) -> dict:
    return encode(
        {
            "id": commitment.id,
            "name": commitment.name,
            "amount": commitment.amount,
            "due_date": commitment.due_date.isoformat(),
            "type": commitment.type,
            "is_recurring": commitment.is_recurring,
            "frequency": commitment.frequency,
            "notes": commitment.notes,
            **extra,
        }
    )


def budget_json(budget: Budget) -> dict:
    return encode(
        {
            "id": budget.id,
            "category_id": budget.category_id,
            "monthly_limit": budget.monthly_limit,
            "alert_threshold": budget.alert_threshold,
        }
    )


# --- categories ---


@app.get("/api/categories")
def list_categories(
    type: Optional[TransactionType] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    rows = CategoryService(db, user_id).list_all(type)
    return [category_json(category, count) for category, count in rows]


@app.post("/api/categories", status_code=201)
def create_category(
    payload: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return category_json(CategoryService(db, user_id).create(payload))


@app.patch("/api/categories/{category_id}")
def update_category(
    category_id: int,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return category_json(CategoryService(db, user_id).update(category_id, payload))


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CategoryService(db, user_id).delete(category_id)
    return Response(status_code=204)


# --- accounts ---


@app.get("/api/accounts")
def list_accounts(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return [account_json(a) for a in AccountService(db, user_id).list_all()]


@app.post("/api/accounts", status_code=201)
def create_account(
    payload: AccountIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return account_json(AccountService(db, user_id).create(payload))


@app.get("/api/accounts/{account_id}")
def get_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return account_json(AccountService(db, user_id).get(account_id))


@app.patch("/api/accounts/{account_id}")
def update_account(
    account_id: int,
    payload: AccountUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return account_json(AccountService(db, user_id).update(account_id, payload))


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    AccountService(db, user_id).delete(account_id)
    return Response(status_code=204)


@app.get("/api/accounts/{account_id}/transactions")
def account_transactions(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    items = AccountService(db, user_id).transactions(account_id)
    return [transaction_json(txn) for txn in items]


# --- credit cards ---


@app.get("/api/credit-cards")
def list_credit_cards(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return [credit_card_json(c) for c in CreditCardService(db, user_id).list_all()]


@app.post("/api/credit-cards", status_code=201)
def create_credit_card(
    payload: CreditCardIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return credit_card_json(CreditCardService(db, user_id).create(payload))


@app.get("/api/credit-cards/{card_id}")
def get_credit_card(
    card_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return credit_card_json(CreditCardService(db, user_id).get(card_id))


@app.patch("/api/credit-cards/{card_id}")
def update_credit_card(
    card_id: int,
    payload: CreditCardUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return credit_card_json(CreditCardService(db, user_id).update(card_id, payload))


@app.delete("/api/credit-cards/{card_id}", status_code=204)
def delete_credit_card(
    card_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CreditCardService(db, user_id).delete(card_id)
    return Response(status_code=204)


@app.get("/api/credit-cards/{card_id}/transactions")
def credit_card_transactions(
    card_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    items = CreditCardService(db, user_id).transactions(card_id)
    return [transaction_json(txn) for txn in items]


@app.get("/api/credit-cards/{card_id}/utilization")
def credit_card_utilization(
    card_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return encode(CreditCardService(db, user_id).utilization(card_id))


# --- debit cards ---


@app.get("/api/debit-cards")
def list_debit_cards(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return [debit_card_json(c) for c in DebitCardService(db, user_id).list_all()]


@app.post("/api/debit-cards", status_code=201)
def create_debit_card(
    payload: DebitCardIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return debit_card_json(DebitCardService(db, user_id).create(payload))


@app.patch("/api/debit-cards/{card_id}")
def update_debit_card(
    card_id: int,
    payload: DebitCardUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return debit_card_json(DebitCardService(db, user_id).update(card_id, payload))


@app.delete("/api/debit-cards/{card_id}", status_code=204)
def delete_debit_card(
    card_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    DebitCardService(db, user_id).delete(card_id)
    return Response(status_code=204)


# --- transactions ---


@app.get("/api/transactions")
def list_transactions(
    request: Request,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    period = period_from_request(request)
    filters = filters_from_request(request)
    page = int(request.query_params.get("page", "1"))
    page = max(page, 1)
    limit = int(request.query_params.get("limit", "50"))
    limit = min(max(limit, 1), 100)
    offset = (page - 1) * limit
    items = TransactionService(db, user_id).list(
        filters, period, limit=limit + 1, offset=offset
    )
    has_more = len(items) > limit
    items = items[:limit]
    return {
        "items": [transaction_json(txn) for txn in items],
        "page": page,
        "limit": limit,
        "has_more": has_more,
    }


@app.post("/api/transactions", status_code=201)
def create_transaction(
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = TransactionService(db, user_id)
    txn = service.create(payload)
    return transaction_json(service.get(txn.id))


@app.get("/api/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return transaction_json(TransactionService(db, user_id).get(transaction_id))


@app.patch("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    payload: TransactionUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = TransactionService(db, user_id)
    service.update(transaction_id, payload)
    return transaction_json(service.get(transaction_id))


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    TransactionService(db, user_id).delete(transaction_id)
    return Response(status_code=204)


# --- recurring ---


@app.get("/api/recurring")
def list_recurring(
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    items = RecurringTransactionService(db, user_id).list(is_active)
    return [recurring_json(r) for r in items]


@app.get("/api/recurring/next-date")
def preview_next_date(
    anchor: date,
    frequency: Frequency,
    custom_days: Optional[int] = None,
    count: int = 1,
):
    if custom_days is not None and custom_days <= 0:
        raise HTTPException(status_code=400, detail="custom_days must be positive")
    count = min(max(count, 1), 24)
    return {
        "next_date": calculate_next_date(anchor, frequency, custom_days).isoformat(),
        "occurrences": [
            d.isoformat()
            for d in upcoming_occurrences(anchor, frequency, custom_days, count=count)
        ],
    }


@app.post("/api/recurring", status_code=201)
def create_recurring(
    payload: RecurringTransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return recurring_json(RecurringTransactionService(db, user_id).create(payload))


@app.get("/api/recurring/{recurring_id}")
def get_recurring(
    recurring_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return recurring_json(RecurringTransactionService(db, user_id).get(recurring_id))


@app.patch("/api/recurring/{recurring_id}")
def update_recurring(
    recurring_id: int,
    payload: RecurringTransactionUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = RecurringTransactionService(db, user_id)
    return recurring_json(service.update(recurring_id, payload))


@app.delete("/api/recurring/{recurring_id}", status_code=204)
def delete_recurring(
    recurring_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    RecurringTransactionService(db, user_id).delete(recurring_id)
    return Response(status_code=204)


@app.get("/api/recurring/{recurring_id}/occurrences")
def recurring_occurrences(
    recurring_id: int,
    count: int = 6,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    count = min(max(count, 1), 24)
    dates = RecurringTransactionService(db, user_id).occurrences(recurring_id, count)
    return [d.isoformat() for d in dates]


# --- investments & SIPs ---


@app.get("/api/investments")
def list_investments(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return [investment_json(i) for i in InvestmentService(db, user_id).list_all()]


@app.get("/api/investments/summary")
def investments_summary(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return encode(InvestmentService(db, user_id).summary())


@app.post("/api/investments", status_code=201)
def create_investment(
    payload: InvestmentIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return investment_json(InvestmentService(db, user_id).create(payload))


@app.patch("/api/investments/{investment_id}")
def update_investment(
    investment_id: int,
    payload: InvestmentUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = InvestmentService(db, user_id)
    return investment_json(service.update(investment_id, payload))


@app.delete("/api/investments/{investment_id}", status_code=204)
def delete_investment(
    investment_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    InvestmentService(db, user_id).delete(investment_id)
    return Response(status_code=204)


@app.get("/api/sips")
def list_sips(
    is_active: Optional[bool] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return [sip_json(s) for s in SIPService(db, user_id).list(is_active)]


@app.get("/api/sips/upcoming")
def upcoming_sips(
    days: int = 30,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    days = min(max(days, 1), 366)
    return [sip_json(s) for s in SIPService(db, user_id).upcoming(days)]


@app.post("/api/sips", status_code=201)
def create_sip(
    payload: SIPIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return sip_json(SIPService(db, user_id).create(payload))


@app.patch("/api/sips/{sip_id}")
def update_sip(
    sip_id: int,
    payload: SIPUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return sip_json(SIPService(db, user_id).update(sip_id, payload))


@app.delete("/api/sips/{sip_id}", status_code=204)
def delete_sip(
    sip_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    SIPService(db, user_id).delete(sip_id)
    return Response(status_code=204)


# --- commitments ---


@app.get("/api/commitments")
def list_commitments(
    type: Optional[str] = None,
    upcoming: bool = False,
    days: int = 90,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    days = min(max(days, 1), 366)
    rows = CommitmentService(db, user_id).list(
        type=type, upcoming=upcoming, days=days
    )
    return [commitment_json(c) for c in rows]


@app.get("/api/commitments/upcoming")
def upcoming_commitments(
    days: int = 90,
    include_overdue: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    days = min(max(days, 1), 366)
    rows = CommitmentService(db, user_id).upcoming(
        days=days, include_overdue=include_overdue
    )
    return [
        commitment_json(
            row.commitment,
            days_until=row.days_until,
            is_due_soon=row.is_due_soon,
            is_overdue=row.is_overdue,
        )
        for row in rows
    ]


@app.get("/api/commitments/{commitment_id}")
def get_commitment(
    commitment_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return commitment_json(CommitmentService(db, user_id).get(commitment_id))


@app.post("/api/commitments", status_code=201)
def create_commitment(
    payload: CommitmentIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return commitment_json(CommitmentService(db, user_id).create(payload))


@app.patch("/api/commitments/{commitment_id}")
def update_commitment(
    commitment_id: int,
    payload: CommitmentUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return commitment_json(
        CommitmentService(db, user_id).update(commitment_id, payload)
    )


@app.delete("/api/commitments/{commitment_id}", status_code=204)
def delete_commitment(
    commitment_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CommitmentService(db, user_id).delete(commitment_id)
    return Response(status_code=204)


# --- budgets ---


@app.get("/api/budgets")
def list_budgets(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return encode(BudgetService(db, user_id).list_with_spent())


@app.get("/api/budgets/summary")
def budgets_summary(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return encode(BudgetService(db, user_id).summary())


@app.post("/api/budgets", status_code=201)
def create_budget(
    payload: BudgetIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return budget_json(BudgetService(db, user_id).create(payload))


@app.get("/api/budgets/{budget_id}")
def get_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return encode(BudgetService(db, user_id).get_with_spent(budget_id))


@app.patch("/api/budgets/{budget_id}")
def update_budget(
    budget_id: int,
    payload: BudgetUpdate,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return budget_json(BudgetService(db, user_id).update(budget_id, payload))


@app.delete("/api/budgets/{budget_id}", status_code=204)
def delete_budget(
    budget_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    BudgetService(db, user_id).delete(budget_id)
    return Response(status_code=204)


# --- analytics ---


@app.get("/api/analytics/summary")
def analytics_summary(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return encode(AnalyticsService(db, user_id).dashboard_summary())


@app.get("/api/analytics/cash-flow")
def analytics_cash_flow(
    period: str = "month",
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    try:
        series = AnalyticsService(db, user_id).cash_flow(period)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return encode(series)


@app.get("/api/analytics/category-spend")
def analytics_category_spend(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return encode(AnalyticsService(db, user_id).category_spend())


@app.get("/api/analytics/spend-type")
def analytics_spend_type(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return encode(AnalyticsService(db, user_id).spend_type())


@app.get("/api/analytics/insights")
def analytics_insights(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return AnalyticsService(db, user_id).insights()


@app.get("/api/analytics/net-worth")
def analytics_net_worth(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
):
    return encode(AnalyticsService(db, user_id).net_worth())


# --- balance audit ---


@app.post("/api/balance-audit")
def balance_audit(
    repair: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    drifts = BalanceAuditService(db, user_id).audit(repair=repair)
    return encode(
        {
            "repaired": repair,
            "drifts": [
                {
                    "kind": d.kind,
                    "id": d.entity_id,
                    "stored": d.stored,
                    "expected": d.expected,
                    "drift": d.drift,
                }
                for d in drifts
            ],
        }
    )
