from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class TransactionType(str, Enum):
    income = "INCOME"
    expense = "EXPENSE"
    transfer = "TRANSFER"
    initial_balance = "INITIAL_BALANCE"


class CategoryType(str, Enum):
    income = "INCOME"
    expense = "EXPENSE"


class WalletKind(str, Enum):
    cash = "CASH"
    bank = "BANK"
    card = "CARD"
    other = "OTHER"


class GoalStatus(str, Enum):
    in_progress = "IN_PROGRESS"
    success = "SUCCESS"
    fail = "FAIL"


def _value_enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )


TRANSACTION_TYPE_ENUM = _value_enum(TransactionType, "transactiontype")
CATEGORY_TYPE_ENUM = _value_enum(CategoryType, "categorytype")
WALLET_KIND_ENUM = _value_enum(WalletKind, "walletkind")
GOAL_STATUS_ENUM = _value_enum(GoalStatus, "goalstatus")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Wallet(Base, TimestampMixin):
    __tablename__ = "wallets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    kind: Mapped[WalletKind] = mapped_column(WALLET_KIND_ENUM, nullable=False)
    balance_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    initialized_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    # bumped on every flush; a stale version makes the UPDATE match no row
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    goal: Mapped[Optional["Goal"]] = relationship("Goal", back_populates="wallet")

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (Index("ix_wallets_user_kind", "user_id", "kind"),)


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[Optional[str]] = mapped_column(String(64))
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CategoryType] = mapped_column(CATEGORY_TYPE_ENUM, nullable=False)
    icon: Mapped[Optional[str]] = mapped_column(String(200))
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    __table_args__ = (
        Index(
            "uq_category_user_name_type",
            "user_id",
            "name",
            "type",
            unique=True,
            sqlite_where=text("is_default = 0"),
            postgresql_where=text("NOT is_default"),
        ),
        Index(
            "uq_category_default_name_type",
            "name",
            "type",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default"),
        ),
        CheckConstraint(
            "is_default OR user_id IS NOT NULL", name="ck_category_custom_has_owner"
        ),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        TRANSACTION_TYPE_ENUM, nullable=False
    )
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    wallet_id: Mapped[Optional[int]] = mapped_column(ForeignKey("wallets.id"))
    from_wallet_id: Mapped[Optional[int]] = mapped_column(ForeignKey("wallets.id"))
    to_wallet_id: Mapped[Optional[int]] = mapped_column(ForeignKey("wallets.id"))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    description: Mapped[Optional[str]] = mapped_column(Text)
    date: Mapped[date] = mapped_column(Date, nullable=False)

    wallet: Mapped[Optional["Wallet"]] = relationship(
        "Wallet", foreign_keys=[wallet_id]
    )
    from_wallet: Mapped[Optional["Wallet"]] = relationship(
        "Wallet", foreign_keys=[from_wallet_id]
    )
    to_wallet: Mapped[Optional["Wallet"]] = relationship(
        "Wallet", foreign_keys=[to_wallet_id]
    )
    category: Mapped[Optional["Category"]] = relationship("Category")

    __table_args__ = (
        Index("ix_transactions_user_type_date", "user_id", "type", "date"),
        Index("ix_transactions_wallet", "wallet_id"),
        Index("ix_transactions_from_wallet", "from_wallet_id"),
        Index("ix_transactions_to_wallet", "to_wallet_id"),
        CheckConstraint("amount_cents > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "(type = 'TRANSFER' AND wallet_id IS NULL AND category_id IS NULL"
            " AND from_wallet_id IS NOT NULL AND to_wallet_id IS NOT NULL"
            " AND from_wallet_id <> to_wallet_id)"
            " OR (type <> 'TRANSFER' AND wallet_id IS NOT NULL"
            " AND from_wallet_id IS NULL AND to_wallet_id IS NULL)",
            name="ck_transactions_wallet_shape",
        ),
    )


class Goal(Base, TimestampMixin):
    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    wallet_id: Mapped[int] = mapped_column(ForeignKey("wallets.id"), nullable=False)
    target_amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    target_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[GoalStatus] = mapped_column(
        GOAL_STATUS_ENUM, nullable=False, default=GoalStatus.in_progress
    )

    wallet: Mapped["Wallet"] = relationship("Wallet", back_populates="goal")
    targets: Mapped[list["GoalTarget"]] = relationship(
        "GoalTarget",
        back_populates="goal",
        cascade="all, delete-orphan",
        order_by="GoalTarget.id",
    )

    __table_args__ = (
        UniqueConstraint("wallet_id", name="uq_goal_wallet"),
        CheckConstraint("target_amount_cents > 0", name="ck_goal_target_positive"),
    )


class GoalTarget(Base):
    __tablename__ = "goal_targets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    goal_id: Mapped[int] = mapped_column(ForeignKey("goals.id"), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(200))

    goal: Mapped["Goal"] = relationship("Goal", back_populates="targets")

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_goal_target_amount_positive"),
    )
