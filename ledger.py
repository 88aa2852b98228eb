"""Wallet balance effects of transactions.

A transaction touches wallets in one of two shapes: a single wallet
(income, expense, initial balance) or a pair of wallets (transfer). The shape
is captured by :class:`WalletEntry` / :class:`TransferEntry`; the arithmetic
lives in the pure :func:`apply_effect` / :func:`revert_effect`, and
:class:`BalanceEngine` loads, locks and writes the wallets.

Multi-step changes (a transfer's two legs, an update's revert followed by the
new effect) must run inside :func:`ledger_operation` so they commit together
or not at all.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional, Union

from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from errors import (
    ConcurrentUpdate,
    InsufficientFunds,
    NotFound,
    PersistenceFailure,
    ValidationError,
)
from models import Transaction, TransactionType, Wallet

logger = logging.getLogger(__name__)

CREDIT_TYPES = frozenset({TransactionType.income, TransactionType.initial_balance})


@dataclass(frozen=True)
class WalletEntry:
    type: TransactionType
    wallet_id: int
    amount_cents: int


@dataclass(frozen=True)
class TransferEntry:
    from_wallet_id: int
    to_wallet_id: int
    amount_cents: int

    type = TransactionType.transfer


LedgerEntry = Union[WalletEntry, TransferEntry]


def make_entry(
    txn_type: TransactionType,
    amount_cents: int,
    *,
    wallet_id: Optional[int] = None,
    from_wallet_id: Optional[int] = None,
    to_wallet_id: Optional[int] = None,
) -> LedgerEntry:
    if txn_type == TransactionType.transfer:
        if from_wallet_id is None or to_wallet_id is None:
            raise ValidationError(
                "From wallet and to wallet are required for transfers"
            )
        if from_wallet_id == to_wallet_id:
            raise ValidationError("Cannot transfer to the same wallet")
        return TransferEntry(from_wallet_id, to_wallet_id, amount_cents)
    if wallet_id is None:
        raise ValidationError("Wallet ID is required for this transaction type")
    return WalletEntry(txn_type, wallet_id, amount_cents)


def entry_for(txn: Transaction) -> LedgerEntry:
    return make_entry(
        txn.type,
        txn.amount_cents,
        wallet_id=txn.wallet_id,
        from_wallet_id=txn.from_wallet_id,
        to_wallet_id=txn.to_wallet_id,
    )


def apply_effect(
    balance_cents: int,
    txn_type: TransactionType,
    amount_cents: int,
    *,
    wallet_id: int = 0,
) -> int:
    """Balance after applying a single-wallet effect.

    ``TransactionType.transfer`` here means the debit leg; the credit leg of a
    transfer is an income-like effect on the receiving wallet.
    """
    if txn_type in CREDIT_TYPES:
        return balance_cents + amount_cents
    if balance_cents < amount_cents:
        raise InsufficientFunds(wallet_id, balance_cents, amount_cents)
    return balance_cents - amount_cents


def revert_effect(
    balance_cents: int, txn_type: TransactionType, amount_cents: int
) -> int:
    if txn_type in CREDIT_TYPES:
        return balance_cents - amount_cents
    return balance_cents + amount_cents


class BalanceEngine:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def _lock(self, wallet_id: int) -> Optional[Wallet]:
        stmt = (
            select(Wallet)
            .where(Wallet.id == wallet_id, Wallet.user_id == self.user_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.scalar(stmt)

    def _require(self, wallet_id: int) -> Wallet:
        wallet = self._lock(wallet_id)
        if wallet is None:
            raise NotFound("Wallet not found")
        return wallet

    def _write(self, wallet: Wallet, new_balance: int) -> None:
        wallet.balance_cents = new_balance
        self.session.flush()

    def apply(self, entry: LedgerEntry) -> None:
        if isinstance(entry, TransferEntry):
            self._apply_transfer(entry)
            return
        wallet = self._require(entry.wallet_id)
        self._write(
            wallet,
            apply_effect(
                wallet.balance_cents,
                entry.type,
                entry.amount_cents,
                wallet_id=wallet.id,
            ),
        )

    def _apply_transfer(self, entry: TransferEntry) -> None:
        # lock in id order so two opposite transfers cannot deadlock
        locked = {
            wallet_id: self._require(wallet_id)
            for wallet_id in sorted((entry.from_wallet_id, entry.to_wallet_id))
        }
        source = locked[entry.from_wallet_id]
        target = locked[entry.to_wallet_id]
        debited = apply_effect(
            source.balance_cents,
            TransactionType.transfer,
            entry.amount_cents,
            wallet_id=source.id,
        )
        credited = apply_effect(
            target.balance_cents, TransactionType.income, entry.amount_cents
        )
        source.balance_cents = debited
        target.balance_cents = credited
        self.session.flush()

    def revert(self, entry: LedgerEntry) -> None:
        """Undo ``entry``. Wallets that no longer exist are skipped."""
        if isinstance(entry, TransferEntry):
            legs = [
                (entry.from_wallet_id, TransactionType.expense),
                (entry.to_wallet_id, TransactionType.income),
            ]
        else:
            legs = [(entry.wallet_id, entry.type)]

        for wallet_id, leg_type in sorted(legs):
            wallet = self._lock(wallet_id)
            if wallet is None:
                logger.warning(
                    f"revert_skipped: wallet_id={wallet_id} reason=wallet_missing"
                )
                continue
            new_balance = revert_effect(
                wallet.balance_cents, leg_type, entry.amount_cents
            )
            if new_balance < 0:
                logger.warning(
                    f"negative_balance: wallet_id={wallet_id} balance_cents={new_balance}"
                )
            self._write(wallet, new_balance)


@contextmanager
def ledger_operation(session: Session) -> Iterator[Session]:
    """Run a multi-step ledger change as one store transaction."""
    try:
        yield session
        session.commit()
    except StaleDataError as exc:
        session.rollback()
        raise ConcurrentUpdate(
            "Wallet was modified by another request, please retry"
        ) from exc
    except OperationalError as exc:
        session.rollback()
        raise PersistenceFailure("Storage is unavailable") from exc
    except Exception:
        session.rollback()
        raise
