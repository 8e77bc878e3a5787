"""initial finance schema

Revision ID: 202610180900
Revises:
Create Date: 2026-10-18 09:00:00.000000

Amounts are BIGINT minor units (hundredths).
"""

from alembic import op
import sqlalchemy as sa


revision = "202610180900"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_TYPE = ("income", "expense")
FREQUENCY = ("monthly", "quarterly", "yearly", "custom")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type", sa.Enum(*TRANSACTION_TYPE, name="transactiontype"), nullable=False
        ),
        sa.Column("color", sa.String(length=9)),
        sa.Column("icon", sa.String(length=50)),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "type", "name", name="uq_category_user_type_name"
        ),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("bank", sa.String(length=100), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("account_number", sa.String(length=50), nullable=False),
        sa.Column("color", sa.String(length=9)),
        sa.Column("balance", sa.BigInteger(), nullable=False),
        sa.Column("opening_balance", sa.BigInteger(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_accounts_user", "accounts", ["user_id"])

    op.create_table(
        "credit_cards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("bank", sa.String(length=100), nullable=False),
        sa.Column("last_four", sa.String(length=4), nullable=False),
        sa.Column("credit_limit", sa.BigInteger(), nullable=False),
        sa.Column("used", sa.BigInteger(), nullable=False),
        sa.Column("opening_used", sa.BigInteger(), nullable=False),
        sa.Column("due_day", sa.Integer(), nullable=False),
        sa.Column("min_due", sa.BigInteger()),
        sa.Column("billing_cycle_start", sa.Integer()),
        sa.Column("color", sa.String(length=9)),
        *_timestamps(),
        sa.CheckConstraint("credit_limit >= 0", name="ck_credit_card_limit_positive"),
        sa.CheckConstraint("due_day BETWEEN 1 AND 31", name="ck_credit_card_due_day"),
    )
    op.create_index("ix_credit_cards_user", "credit_cards", ["user_id"])

    op.create_table(
        "debit_cards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("bank", sa.String(length=100), nullable=False),
        sa.Column("last_four", sa.String(length=4), nullable=False),
        sa.Column(
            "linked_account_id",
            sa.Integer(),
            sa.ForeignKey("accounts.id"),
            nullable=False,
        ),
        sa.Column("card_network", sa.String(length=50), nullable=False),
        sa.Column("expiry_date", sa.String(length=5)),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("color", sa.String(length=9)),
        *_timestamps(),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "type", sa.Enum(*TRANSACTION_TYPE, name="transactiontype"), nullable=False
        ),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("credit_card_id", sa.Integer(), sa.ForeignKey("credit_cards.id")),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "(account_id IS NULL) <> (credit_card_id IS NULL)",
            name="ck_transactions_single_funding_source",
        ),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_category_date",
        "transactions",
        ["user_id", "category_id", "date"],
    )
    op.create_index(
        "ix_transactions_user_type_date", "transactions", ["user_id", "type", "date"]
    )
    op.create_index("ix_transactions_account", "transactions", ["account_id"])
    op.create_index("ix_transactions_credit_card", "transactions", ["credit_card_id"])

    op.create_table(
        "recurring_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "type", sa.Enum(*TRANSACTION_TYPE, name="transactiontype"), nullable=False
        ),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("credit_card_id", sa.Integer(), sa.ForeignKey("credit_cards.id")),
        sa.Column(
            "frequency", sa.Enum(*FREQUENCY, name="frequency"), nullable=False
        ),
        sa.Column("custom_days", sa.Integer()),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("next_date", sa.Date(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_recurring_amount_positive"),
        sa.CheckConstraint(
            "custom_days IS NULL OR custom_days > 0",
            name="ck_recurring_custom_days_positive",
        ),
    )
    op.create_index(
        "ix_recurring_user_active_next",
        "recurring_transactions",
        ["user_id", "is_active", "next_date"],
    )

    op.create_table(
        "investments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("type", sa.String(length=50), nullable=False),
        sa.Column("invested", sa.BigInteger(), nullable=False),
        sa.Column("current_value", sa.BigInteger(), nullable=False),
        sa.Column("purchase_date", sa.Date()),
        sa.Column("color", sa.String(length=9)),
        *_timestamps(),
    )

    op.create_table(
        "sips",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("investment_id", sa.Integer(), sa.ForeignKey("investments.id")),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column(
            "frequency", sa.Enum(*FREQUENCY, name="frequency"), nullable=False
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("next_date", sa.Date(), nullable=False),
        sa.Column("total_invested", sa.BigInteger(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_sip_amount_positive"),
    )
    op.create_index(
        "ix_sips_user_active_next", "sips", ["user_id", "is_active", "next_date"]
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("monthly_limit", sa.BigInteger(), nullable=False),
        sa.Column("alert_threshold", sa.Integer()),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "category_id", name="uq_budget_user_category"),
        sa.CheckConstraint("monthly_limit > 0", name="ck_budget_limit_positive"),
        sa.CheckConstraint(
            "alert_threshold IS NULL OR alert_threshold BETWEEN 0 AND 100",
            name="ck_budget_alert_threshold_range",
        ),
    )


def downgrade():
    op.drop_table("budgets")
    op.drop_index("ix_sips_user_active_next", table_name="sips")
    op.drop_table("sips")
    op.drop_table("investments")
    op.drop_index("ix_recurring_user_active_next", table_name="recurring_transactions")
    op.drop_table("recurring_transactions")
    for name in (
        "ix_transactions_credit_card",
        "ix_transactions_account",
        "ix_transactions_user_type_date",
        "ix_transactions_user_category_date",
        "ix_transactions_user_date",
    ):
        op.drop_index(name, table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("debit_cards")
    op.drop_index("ix_credit_cards_user", table_name="credit_cards")
    op.drop_table("credit_cards")
    op.drop_index("ix_accounts_user", table_name="accounts")
    op.drop_table("accounts")
    op.drop_table("categories")
    sa.Enum(name="frequency").drop(op.get_bind(), checkfirst=True)
    sa.Enum(name="transactiontype").drop(op.get_bind(), checkfirst=True)
