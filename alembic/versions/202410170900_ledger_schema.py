"""ledger schema for budget bars

Revision ID: 202410170900
Revises:
Create Date: 2024-10-17 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202410170900"
down_revision = None
branch_labels = None
depends_on = None


ACCOUNT_TYPES = ("income", "expense", "bank", "credit_card", "asset", "liability")
BUDGET_PERIOD_TYPES = ("monthly", "annual", "weekly", "biweekly")


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "currencies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("code", sa.String(length=3), nullable=False, unique=True),
        sa.Column("name", sa.String(length=60), nullable=False),
        sa.Column("symbol", sa.String(length=8), nullable=False, server_default=""),
        sa.Column("decimal_places", sa.Integer(), nullable=False, server_default="2"),
        sa.Column(
            "rate_micros", sa.Integer(), nullable=False, server_default="1000000"
        ),
        sa.Column("is_base", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
        sa.CheckConstraint("rate_micros > 0", name="ck_currency_rate_positive"),
        sa.CheckConstraint(
            "decimal_places >= 0 AND decimal_places <= 8",
            name="ck_currency_decimal_places",
        ),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("uuid", sa.String(length=36), nullable=False, unique=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type", sa.Enum(*ACCOUNT_TYPES, name="accounttype"), nullable=False
        ),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column(
            "currency_id", sa.Integer(), sa.ForeignKey("currencies.id"), nullable=False
        ),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "is_inactive", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "hide_on_home_page", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        *_timestamps(),
        sa.UniqueConstraint("parent_id", "type", "name", name="uq_account_parent_name"),
    )
    op.create_index("ix_accounts_parent_order", "accounts", ["parent_id", "order"])

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False, unique=True),
        sa.Column(
            "period_type",
            sa.Enum(*BUDGET_PERIOD_TYPES, name="budgetperiodtype"),
            nullable=False,
            server_default="monthly",
        ),
        *_timestamps(),
    )

    op.create_table(
        "budget_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "budget_id", sa.Integer(), sa.ForeignKey("budgets.id"), nullable=False
        ),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "budget_id",
            "account_id",
            "year",
            "month",
            name="uq_budget_item_account_month",
        ),
        sa.CheckConstraint("month >= 1 AND month <= 12", name="ck_budget_item_month"),
    )
    op.create_index(
        "ix_budget_items_budget_month", "budget_items", ["budget_id", "year", "month"]
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("note", sa.Text()),
        sa.Column("deleted_at", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index(
        "ix_transactions_account_date", "transactions", ["account_id", "date"]
    )

    op.create_table(
        "preferences",
        sa.Column("key", sa.String(length=100), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False, server_default=""),
        *_timestamps(),
    )


def downgrade():
    op.drop_table("preferences")
    op.drop_index("ix_transactions_account_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_budget_items_budget_month", table_name="budget_items")
    op.drop_table("budget_items")
    op.drop_table("budgets")
    op.drop_index("ix_accounts_parent_order", table_name="accounts")
    op.drop_table("accounts")
    op.drop_table("currencies")
