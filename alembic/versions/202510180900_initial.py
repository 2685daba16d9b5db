"""initial schema

Revision ID: 202510180900
Revises:
Create Date: 2025-10-18 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202510180900"
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
        "couples",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("created_by", sa.Integer(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "profiles",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "couple_id",
            sa.Integer(),
            sa.ForeignKey("couples.id", ondelete="SET NULL"),
        ),
        *_timestamps(),
    )
    op.create_index("ix_profiles_couple", "profiles", ["couple_id"])

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("bank_name", sa.String(length=100), nullable=False),
        sa.Column("account_number", sa.String(length=40), nullable=False),
        sa.Column(
            "account_type",
            sa.Enum("checking", "savings", name="accounttype"),
            nullable=False,
        ),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_accounts_user", "accounts", ["user_id"])

    op.create_table(
        "cards",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("type", sa.Enum("credit", "debit", name="cardtype"), nullable=False),
        sa.Column("bank", sa.String(length=100), nullable=False),
        sa.Column("last_four", sa.String(length=4), nullable=False),
        sa.Column("limit_cents", sa.Integer()),
        sa.Column(
            "current_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.CheckConstraint(
            "limit_cents IS NULL OR limit_cents >= 0", name="ck_cards_limit_positive"
        ),
    )
    op.create_index("ix_cards_user", "cards", ["user_id"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "card_id", sa.Integer(), sa.ForeignKey("cards.id", ondelete="SET NULL")
        ),
        sa.Column(
            "type", sa.Enum("income", "expense", name="transactiontype"), nullable=False
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("installments", sa.Integer()),
        sa.Column("current_installment", sa.Integer()),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column("origin_planning_id", sa.Integer()),
        *_timestamps(),
        sa.UniqueConstraint("origin_planning_id", name="uq_txn_origin_planning"),
        sa.CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "due_date"])
    op.create_index(
        "ix_transactions_user_type_date", "transactions", ["user_id", "type", "due_date"]
    )
    op.create_index("ix_transactions_card", "transactions", ["card_id"])

    op.create_table(
        "plannings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("parent_planning_id", sa.Integer()),
        sa.Column("description", sa.String(length=200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column(
            "is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "current_installment", sa.Integer(), nullable=False, server_default="1"
        ),
        sa.Column("installments", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "status",
            sa.Enum("pending", "paid", "overdue", name="planningstatus"),
            nullable=False,
            server_default="pending",
        ),
        sa.Column("transaction_id", sa.Integer()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_plannings_amount_positive"),
        sa.CheckConstraint(
            "installments > 0", name="ck_plannings_installments_positive"
        ),
        sa.CheckConstraint(
            "current_installment > 0 AND current_installment <= installments",
            name="ck_plannings_installment_in_range",
        ),
    )
    op.create_index("ix_plannings_user_due", "plannings", ["user_id", "due_date"])
    op.create_index("ix_plannings_parent", "plannings", ["parent_planning_id"])
    op.create_index("ix_plannings_transaction", "plannings", ["transaction_id"])

    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "couple_id",
            sa.Integer(),
            sa.ForeignKey("couples.id", ondelete="SET NULL"),
        ),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("target_amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "current_amount_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        sa.Column("target_date", sa.Date(), nullable=False),
        sa.Column("description", sa.Text()),
        *_timestamps(),
        sa.CheckConstraint("target_amount_cents > 0", name="ck_goals_target_positive"),
        sa.CheckConstraint(
            "current_amount_cents >= 0", name="ck_goals_current_non_negative"
        ),
    )
    op.create_index("ix_goals_user", "goals", ["user_id"])
    op.create_index("ix_goals_couple", "goals", ["couple_id"])


def downgrade():
    op.drop_table("goals")
    op.drop_table("plannings")
    op.drop_table("transactions")
    op.drop_table("cards")
    op.drop_table("accounts")
    op.drop_table("profiles")
    op.drop_table("couples")
