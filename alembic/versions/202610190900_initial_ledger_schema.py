"""initial ledger schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "user_preferences",
        sa.Column("user_id", sa.Integer(), primary_key=True),
        sa.Column("default_currency", sa.String(length=3)),
        *_timestamps(),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "account_type",
            sa.Enum(
                "CHEQUING",
                "SAVINGS",
                "CREDIT_CARD",
                "CASH",
                "LOAN",
                "INVESTMENT",
                name="accounttype",
            ),
            nullable=False,
        ),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("parent_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("color", sa.String(length=7)),
        sa.Column("is_income", sa.Boolean(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "parent_id", "name", name="uq_category_user_parent_name"
        ),
    )

    op.create_table(
        "payees",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_payee_user_name"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("transaction_date", sa.Date(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("payee_id", sa.Integer(), sa.ForeignKey("payees.id")),
        sa.Column("payee_name", sa.String(length=200)),
        sa.Column("description", sa.Text()),
        sa.Column("is_transfer", sa.Boolean(), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "UNRECONCILED",
                "CLEARED",
                "RECONCILED",
                "VOID",
                name="transactionstatus",
            ),
        ),
        sa.Column(
            "parent_transaction_id", sa.Integer(), sa.ForeignKey("transactions.id")
        ),
        *_timestamps(),
    )
    op.create_index(
        "ix_transactions_user_date", "transactions", ["user_id", "transaction_date"]
    )

    op.create_table(
        "transaction_splits",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "transaction_id",
            sa.Integer(),
            sa.ForeignKey("transactions.id"),
            nullable=False,
        ),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("transfer_account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("memo", sa.Text()),
        *_timestamps(),
    )

    op.create_table(
        "scheduled_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("currency_code", sa.String(length=3), nullable=False),
        sa.Column("payee_id", sa.Integer(), sa.ForeignKey("payees.id")),
        sa.Column("payee_name", sa.String(length=200)),
        sa.Column("is_transfer", sa.Boolean(), nullable=False),
        sa.Column("next_due_date", sa.Date()),
        *_timestamps(),
    )

    op.create_table(
        "exchange_rates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("from_currency", sa.String(length=3), nullable=False),
        sa.Column("to_currency", sa.String(length=3), nullable=False),
        sa.Column("rate_micros", sa.Integer(), nullable=False),
        sa.Column("rate_date", sa.Date(), nullable=False),
        sa.Column("source", sa.String(length=40)),
        *_timestamps(),
        sa.UniqueConstraint(
            "from_currency",
            "to_currency",
            "rate_date",
            name="uq_exchange_rate_pair_date",
        ),
    )


def downgrade():
    op.drop_table("exchange_rates")
    op.drop_table("scheduled_transactions")
    op.drop_table("transaction_splits")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("payees")
    op.drop_table("categories")
    op.drop_table("accounts")
    op.drop_table("user_preferences")
