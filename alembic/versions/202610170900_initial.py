"""initial schema

Revision ID: 202610170900
Revises:
Create Date: 2026-10-17 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610170900"
down_revision = None
branch_labels = None
depends_on = None

TRANSACTION_TYPES = ("INCOME", "EXPENSE", "TRANSFER", "INITIAL_BALANCE")


def upgrade():
    op.create_table(
        "wallets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "kind",
            sa.Enum("CASH", "BANK", "CARD", "OTHER", name="walletkind"),
            nullable=False,
        ),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("initialized_at", sa.DateTime(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )
    op.create_index("ix_wallets_user_kind", "wallets", ["user_id", "kind"])

    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64)),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type", sa.Enum("INCOME", "EXPENSE", name="categorytype"), nullable=False
        ),
        sa.Column("icon", sa.String(length=200)),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "is_default OR user_id IS NOT NULL", name="ck_category_custom_has_owner"
        ),
    )
    op.create_index(
        "uq_category_user_name_type",
        "categories",
        ["user_id", "name", "type"],
        unique=True,
        sqlite_where=sa.text("is_default = 0"),
        postgresql_where=sa.text("NOT is_default"),
    )
    op.create_index(
        "uq_category_default_name_type",
        "categories",
        ["name", "type"],
        unique=True,
        sqlite_where=sa.text("is_default = 1"),
        postgresql_where=sa.text("is_default"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "type", sa.Enum(*TRANSACTION_TYPES, name="transactiontype"), nullable=False
        ),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("wallet_id", sa.Integer(), sa.ForeignKey("wallets.id")),
        sa.Column("from_wallet_id", sa.Integer(), sa.ForeignKey("wallets.id")),
        sa.Column("to_wallet_id", sa.Integer(), sa.ForeignKey("wallets.id")),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("description", sa.Text()),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "(type = 'TRANSFER' AND wallet_id IS NULL AND category_id IS NULL"
            " AND from_wallet_id IS NOT NULL AND to_wallet_id IS NOT NULL"
            " AND from_wallet_id <> to_wallet_id)"
            " OR (type <> 'TRANSFER' AND wallet_id IS NOT NULL"
            " AND from_wallet_id IS NULL AND to_wallet_id IS NULL)",
            name="ck_transactions_wallet_shape",
        ),
    )
    op.create_index(
        "ix_transactions_user_type_date", "transactions", ["user_id", "type", "date"]
    )
    op.create_index("ix_transactions_wallet", "transactions", ["wallet_id"])
    op.create_index("ix_transactions_from_wallet", "transactions", ["from_wallet_id"])
    op.create_index("ix_transactions_to_wallet", "transactions", ["to_wallet_id"])

    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column(
            "wallet_id", sa.Integer(), sa.ForeignKey("wallets.id"), nullable=False
        ),
        sa.Column("target_amount_cents", sa.Integer(), nullable=False),
        sa.Column("target_date", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("IN_PROGRESS", "SUCCESS", "FAIL", name="goalstatus"),
            nullable=False,
            server_default="IN_PROGRESS",
        ),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("wallet_id", name="uq_goal_wallet"),
        sa.CheckConstraint("target_amount_cents > 0", name="ck_goal_target_positive"),
    )

    op.create_table(
        "goal_targets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("goal_id", sa.Integer(), sa.ForeignKey("goals.id"), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("description", sa.String(length=200)),
        sa.CheckConstraint("amount_cents > 0", name="ck_goal_target_amount_positive"),
    )


def downgrade():
    op.drop_table("goal_targets")
    op.drop_table("goals")
    op.drop_index("ix_transactions_to_wallet", table_name="transactions")
    op.drop_index("ix_transactions_from_wallet", table_name="transactions")
    op.drop_index("ix_transactions_wallet", table_name="transactions")
    op.drop_index("ix_transactions_user_type_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("uq_category_default_name_type", table_name="categories")
    op.drop_index("uq_category_user_name_type", table_name="categories")
    op.drop_table("categories")
    op.drop_index("ix_wallets_user_kind", table_name="wallets")
    op.drop_table("wallets")
