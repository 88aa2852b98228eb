import datetime as dt
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from models import CategoryType, TransactionType, WalletKind


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    icon: Optional[str] = Field(default=None, max_length=200)


class CategoryUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    icon: Optional[str] = Field(default=None, max_length=200)


class WalletIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    kind: WalletKind
    balance_cents: int = Field(default=0, ge=0)


class WalletUpdateIn(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    kind: Optional[WalletKind] = None


class OpeningWalletIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    balance_cents: int = Field(default=0, ge=0)


class WalletSetupIn(BaseModel):
    cash_in_hand_cents: Optional[int] = Field(default=None, ge=0)
    cash_wallets: list[OpeningWalletIn] = Field(default_factory=list)
    cards: list[OpeningWalletIn] = Field(default_factory=list)


class TransactionIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: TransactionType
    amount_cents: int = Field(..., ge=0)
    date: date
    wallet_id: Optional[int] = None
    from_wallet_id: Optional[int] = None
    to_wallet_id: Optional[int] = None
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)


class TransactionUpdateIn(BaseModel):
    """Partial update: only the fields present in the request are changed."""

    model_config = ConfigDict(extra="forbid")

    type: Optional[TransactionType] = None
    amount_cents: Optional[int] = Field(default=None, ge=0)
    date: Optional[dt.date] = None
    wallet_id: Optional[int] = None
    from_wallet_id: Optional[int] = None
    to_wallet_id: Optional[int] = None
    category_id: Optional[int] = None
    description: Optional[str] = Field(default=None, max_length=500)


class TransferIn(BaseModel):
    from_wallet_id: int
    to_wallet_id: int
    amount_cents: int = Field(..., ge=0)
    date: Optional[dt.date] = None
    note: Optional[str] = Field(default=None, max_length=500)


class GoalTargetIn(BaseModel):
    amount_cents: int
    description: Optional[str] = Field(default=None, max_length=200)


class GoalIn(BaseModel):
    wallet_id: Optional[int] = None
    target_date: date
    targets: list[GoalTargetIn] = Field(default_factory=list)
