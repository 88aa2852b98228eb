from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy import case, delete, extract, func, or_, select
from sqlalchemy.orm import Session, joinedload, selectinload

from csv_utils import export_transactions
from errors import NotFound, ValidationError
from goals import GoalProgress, evaluate_goal
from ledger import (
    BalanceEngine,
    LedgerEntry,
    TransferEntry,
    WalletEntry,
    entry_for,
    ledger_operation,
    make_entry,
)
from models import (
    Category,
    CategoryType,
    Goal,
    GoalTarget,
    Transaction,
    TransactionType,
    Wallet,
    WalletKind,
)
from periods import MonthWindow, Period, local_now, trailing_months
from schemas import (
    CategoryIn,
    CategoryUpdateIn,
    GoalIn,
    TransactionIn,
    TransactionUpdateIn,
    TransferIn,
    WalletIn,
    WalletSetupIn,
    WalletUpdateIn,
)

logger = logging.getLogger(__name__)

CATEGORIZED_TYPES = frozenset({TransactionType.income, TransactionType.expense})

DEFAULT_CATEGORIES: dict[CategoryType, list[str]] = {
    CategoryType.income: [
        "Salary",
        "Freelance",
        "Business",
        "Investment",
        "Dividends",
        "Rental Income",
        "Interest",
        "Bonus",
        "Gift",
        "Refund",
        "Cashback",
        "Other Income",
    ],
    CategoryType.expense: [
        "Food & Dining",
        "Groceries",
        "Transportation",
        "Gas",
        "Shopping",
        "Bills & Utilities",
        "Rent",
        "Insurance",
        "Healthcare",
        "Entertainment",
        "Travel",
        "Education",
        "Other Expense",
    ],
}


def seed_default_categories(session: Session) -> int:
    existing = {
        (row.name, row.type)
        for row in session.execute(
            select(Category.name, Category.type).where(Category.is_default.is_(True))
        )
    }
    added = 0
    for category_type, names in DEFAULT_CATEGORIES.items():
        for name in names:
            if (name, category_type) in existing:
                continue
            session.add(
                Category(user_id=None, name=name, type=category_type, is_default=True)
            )
            added += 1
    session.commit()
    if added:
        logger.info(f"default_categories_seeded: added={added}")
    return added


def _today() -> date:
    return local_now().date()


def _assign_wallets(txn: Transaction, entry: LedgerEntry) -> None:
    if isinstance(entry, TransferEntry):
        txn.wallet_id = None
        txn.from_wallet_id = entry.from_wallet_id
        txn.to_wallet_id = entry.to_wallet_id
    else:
        txn.wallet_id = entry.wallet_id
        txn.from_wallet_id = None
        txn.to_wallet_id = None


def _check_wallet_shape(
    txn_type: TransactionType,
    wallet_id: Optional[int],
    from_wallet_id: Optional[int],
    to_wallet_id: Optional[int],
) -> None:
    if txn_type == TransactionType.transfer and wallet_id is not None:
        raise ValidationError("Transfers use from_wallet_id and to_wallet_id")
    if txn_type != TransactionType.transfer and (
        from_wallet_id is not None or to_wallet_id is not None
    ):
        raise ValidationError("Only transfers use from_wallet_id and to_wallet_id")


@dataclass
class TransactionFilters:
    period: Optional[Period] = None
    type: Optional[TransactionType] = None
    wallet_id: Optional[int] = None


class CategoryService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def _visible(self):
        return or_(Category.is_default.is_(True), Category.user_id == self.user_id)

    def list_all(self, type: Optional[CategoryType] = None) -> dict[str, list[Category]]:
        stmt = select(Category).where(self._visible()).order_by(Category.type, Category.name)
        if type is not None:
            stmt = stmt.where(Category.type == type)
        categories = self.session.scalars(stmt).all()
        return {
            "default": [c for c in categories if c.is_default],
            "custom": [c for c in categories if not c.is_default],
        }

    def get(self, category_id: int) -> Category:
        category = self.session.scalar(
            select(Category).where(Category.id == category_id, self._visible())
        )
        if not category:
            raise NotFound("Category not found")
        return category

    def _get_custom(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.is_default or category.user_id != self.user_id:
            raise NotFound("Category not found")
        return category

    def _ensure_unique(
        self, name: str, type: CategoryType, exclude_id: Optional[int] = None
    ) -> None:
        stmt = select(Category.id).where(
            Category.user_id == self.user_id,
            Category.is_default.is_(False),
            Category.type == type,
            Category.name == name,
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt) is not None:
            raise ValidationError("Category with this name and type already exists")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        self._ensure_unique(name, data.type)
        category = Category(
            user_id=self.user_id,
            name=name,
            type=data.type,
            icon=data.icon,
            is_default=False,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdateIn) -> Category:
        category = self._get_custom(category_id)
        if data.name is not None:
            name = data.name.strip()
            self._ensure_unique(name, category.type, exclude_id=category.id)
            category.name = name
        if data.icon is not None:
            category.icon = data.icon
        self.session.commit()
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self._get_custom(category_id)
        in_use = self.session.scalar(
            select(func.count(Transaction.id)).where(
                Transaction.category_id == category.id
            )
        )
        if in_use:
            raise ValidationError(
                "Category is used by existing transactions; recategorize them first"
            )
        self.session.delete(category)
        self.session.commit()

    def resolve_for(
        self, category_id: Optional[int], txn_type: TransactionType
    ) -> Optional[Category]:
        """The category a transaction of ``txn_type`` may reference."""
        if category_id is None:
            return None
        if txn_type not in CATEGORIZED_TYPES:
            raise ValidationError(
                "Categories apply only to income and expense transactions"
            )
        category = self.get(category_id)
        if category.type.value != txn_type.value:
            raise ValidationError("Category type does not match transaction type")
        return category


class TransactionService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.engine = BalanceEngine(session, user_id)
        self.categories = CategoryService(session, user_id)

    def _prepare(
        self,
        txn_type: TransactionType,
        amount_cents: int,
        *,
        wallet_id: Optional[int],
        from_wallet_id: Optional[int],
        to_wallet_id: Optional[int],
        category_id: Optional[int],
    ) -> tuple[LedgerEntry, Optional[int]]:
        if amount_cents <= 0:
            raise ValidationError("Amount must be greater than 0")
        entry = make_entry(
            txn_type,
            amount_cents,
            wallet_id=wallet_id,
            from_wallet_id=from_wallet_id,
            to_wallet_id=to_wallet_id,
        )
        category = self.categories.resolve_for(category_id, txn_type)
        return entry, category.id if category else None

    def create(self, data: TransactionIn) -> Transaction:
        _check_wallet_shape(
            data.type, data.wallet_id, data.from_wallet_id, data.to_wallet_id
        )

        with ledger_operation(self.session):
            entry, category_id = self._prepare(
                data.type,
                data.amount_cents,
                wallet_id=data.wallet_id,
                from_wallet_id=data.from_wallet_id,
                to_wallet_id=data.to_wallet_id,
                category_id=data.category_id,
            )
            self.engine.apply(entry)
            txn = Transaction(
                user_id=self.user_id,
                type=data.type,
                amount_cents=data.amount_cents,
                category_id=category_id,
                description=data.description,
                date=data.date,
            )
            _assign_wallets(txn, entry)
            self.session.add(txn)
            self.session.flush()

        logger.info(
            f"transaction_created: id={txn.id} type={txn.type.value} "
            f"amount_cents={txn.amount_cents}"
        )
        self.session.refresh(txn)
        return txn

    def transfer(self, data: TransferIn) -> Transaction:
        return self.create(
            TransactionIn(
                type=TransactionType.transfer,
                amount_cents=data.amount_cents,
                date=data.date or _today(),
                from_wallet_id=data.from_wallet_id,
                to_wallet_id=data.to_wallet_id,
                description=data.note,
            )
        )

    def get(self, transaction_id: int) -> Transaction:
        stmt = (
            select(Transaction)
            .options(
                joinedload(Transaction.category),
                joinedload(Transaction.wallet),
                joinedload(Transaction.from_wallet),
                joinedload(Transaction.to_wallet),
            )
            .where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        txn = self.session.scalar(stmt)
        if not txn:
            raise NotFound("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionUpdateIn) -> Transaction:
        changes = data.model_dump(exclude_unset=True)

        with ledger_operation(self.session):
            txn = self.get(transaction_id)
            old_type = txn.type
            self.engine.revert(entry_for(txn))

            new_type = changes.get("type") or txn.type
            _check_wallet_shape(
                new_type,
                changes.get("wallet_id"),
                changes.get("from_wallet_id"),
                changes.get("to_wallet_id"),
            )
            new_amount = changes.get("amount_cents")
            if new_amount is None:
                new_amount = txn.amount_cents

            if "category_id" in changes:
                category_id = changes["category_id"]
            elif (
                new_type in CATEGORIZED_TYPES
                and txn.category is not None
                and txn.category.type.value == new_type.value
            ):
                category_id = txn.category_id
            else:
                # the old category does not fit the new type
                category_id = None

            entry, category_id = self._prepare(
                new_type,
                new_amount,
                wallet_id=changes.get("wallet_id", txn.wallet_id),
                from_wallet_id=changes.get("from_wallet_id", txn.from_wallet_id),
                to_wallet_id=changes.get("to_wallet_id", txn.to_wallet_id),
                category_id=category_id,
            )
            self.engine.apply(entry)

            txn.type = new_type
            txn.amount_cents = new_amount
            txn.category_id = category_id
            _assign_wallets(txn, entry)
            if "description" in changes:
                txn.description = changes["description"]
            if changes.get("date") is not None:
                txn.date = changes["date"]
            self.session.flush()

        logger.info(
            f"transaction_updated: id={txn.id} old_type={old_type.value} "
            f"type={txn.type.value} amount_cents={txn.amount_cents}"
        )
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        with ledger_operation(self.session):
            txn = self.get(transaction_id)
            self.engine.revert(entry_for(txn))
            self.session.delete(txn)
        logger.info(f"transaction_deleted: id={transaction_id}")

    def list(self, filters: Optional[TransactionFilters] = None) -> list[Transaction]:
        filters = filters or TransactionFilters()
        stmt = (
            select(Transaction)
            .options(
                joinedload(Transaction.category),
                joinedload(Transaction.wallet),
                joinedload(Transaction.from_wallet),
                joinedload(Transaction.to_wallet),
            )
            .where(Transaction.user_id == self.user_id)
            .order_by(
                Transaction.date.desc(),
                Transaction.created_at.desc(),
                Transaction.id.desc(),
            )
        )
        if filters.period:
            stmt = stmt.where(
                Transaction.date.between(filters.period.start, filters.period.end)
            )
        if filters.type:
            stmt = stmt.where(Transaction.type == filters.type)
        if filters.wallet_id:
            stmt = stmt.where(
                or_(
                    Transaction.wallet_id == filters.wallet_id,
                    Transaction.from_wallet_id == filters.wallet_id,
                    Transaction.to_wallet_id == filters.wallet_id,
                )
            )
        return self.session.scalars(stmt).unique().all()

    def transfers(self) -> list[Transaction]:
        return self.list(TransactionFilters(type=TransactionType.transfer))

    def recent(self, limit: int = 5) -> list[Transaction]:
        return self.list()[:limit]

    def export_csv(self, filters: Optional[TransactionFilters] = None) -> str:
        return export_transactions(self.list(filters))


class WalletService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.engine = BalanceEngine(session, user_id)

    def list_all(self) -> list[Wallet]:
        stmt = (
            select(Wallet)
            .where(Wallet.user_id == self.user_id)
            .order_by(Wallet.kind, Wallet.created_at, Wallet.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, wallet_id: int) -> Wallet:
        wallet = self.session.scalar(
            select(Wallet).where(Wallet.id == wallet_id, Wallet.user_id == self.user_id)
        )
        if not wallet:
            raise NotFound("Wallet not found")
        return wallet

    def _open(self, name: str, kind: WalletKind, balance_cents: int) -> Wallet:
        """Create a wallet and book its opening balance through the ledger."""
        wallet = Wallet(
            user_id=self.user_id,
            name=name.strip(),
            kind=kind,
            balance_cents=0,
            initialized_at=datetime.utcnow(),
        )
        self.session.add(wallet)
        self.session.flush()
        if balance_cents > 0:
            entry = WalletEntry(TransactionType.initial_balance, wallet.id, balance_cents)
            self.engine.apply(entry)
            self.session.add(
                Transaction(
                    user_id=self.user_id,
                    type=TransactionType.initial_balance,
                    amount_cents=balance_cents,
                    wallet_id=wallet.id,
                    date=_today(),
                )
            )
            self.session.flush()
        logger.info(
            f"wallet_created: id={wallet.id} kind={kind.value} "
            f"opening_balance_cents={balance_cents}"
        )
        return wallet

    def create(self, data: WalletIn) -> Wallet:
        with ledger_operation(self.session):
            wallet = self._open(data.name, data.kind, data.balance_cents)
        self.session.refresh(wallet)
        return wallet

    def initialize(self, data: WalletSetupIn) -> list[Wallet]:
        if self.list_all():
            raise ValidationError(
                "Wallets already initialized. Use update endpoint to modify."
            )
        plan: list[tuple[str, WalletKind, int]] = []
        if data.cash_in_hand_cents is not None and not data.cash_wallets:
            plan.append(("Cash In Hand", WalletKind.cash, data.cash_in_hand_cents))
        plan.extend((w.name, WalletKind.cash, w.balance_cents) for w in data.cash_wallets)
        plan.extend((c.name, WalletKind.card, c.balance_cents) for c in data.cards)
        if not plan:
            raise ValidationError("At least one wallet is required")

        with ledger_operation(self.session):
            wallets = [self._open(name, kind, balance) for name, kind, balance in plan]
        return wallets

    def update(self, wallet_id: int, data: WalletUpdateIn) -> Wallet:
        wallet = self.get(wallet_id)
        if data.name is not None:
            wallet.name = data.name.strip()
        if data.kind is not None:
            wallet.kind = data.kind
        with ledger_operation(self.session):
            self.session.flush()
        self.session.refresh(wallet)
        return wallet

    def delete(self, wallet_id: int) -> None:
        with ledger_operation(self.session):
            wallet = self.get(wallet_id)
            remaining = self.session.scalar(
                select(func.count(Wallet.id)).where(Wallet.user_id == self.user_id)
            )
            if remaining <= 1:
                raise ValidationError("Cannot delete the last remaining wallet")
            if wallet.balance_cents != 0:
                raise ValidationError(
                    "Cannot delete a wallet with a non-zero balance. "
                    "Please transfer or remove all funds first."
                )
            shared = self.session.scalar(
                select(func.count(Transaction.id)).where(
                    Transaction.user_id == self.user_id,
                    or_(
                        Transaction.from_wallet_id == wallet.id,
                        Transaction.to_wallet_id == wallet.id,
                    ),
                )
            )
            if shared:
                raise ValidationError(
                    "Cannot delete a wallet with transfer history. "
                    "Delete its transfers first."
                )
            removed = self.session.execute(
                delete(Transaction).where(
                    Transaction.user_id == self.user_id,
                    Transaction.wallet_id == wallet.id,
                )
            ).rowcount
            goal = self.session.scalar(select(Goal).where(Goal.wallet_id == wallet.id))
            if goal:
                self.session.delete(goal)
            self.session.delete(wallet)
        logger.info(
            f"wallet_deleted: id={wallet_id} transactions_removed={removed}"
        )


CLOSING_HISTORY_MONTHS = 6


class DashboardService:
    """Month summaries and closing-balance trends derived from transactions.

    Transfers move money between wallets of the same owner, so they never
    change any of the owner-level sums computed here.
    """

    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id

    def _sums_by_type(self, *conditions) -> dict[TransactionType, int]:
        stmt = (
            select(
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type != TransactionType.transfer,
                *conditions,
            )
            .group_by(Transaction.type)
        )
        return {row.type: int(row.total) for row in self.session.execute(stmt)}

    @staticmethod
    def _net(sums: dict[TransactionType, int]) -> int:
        return (
            sums.get(TransactionType.income, 0)
            + sums.get(TransactionType.initial_balance, 0)
            - sums.get(TransactionType.expense, 0)
        )

    def month_summary(self, window: MonthWindow) -> dict[str, int]:
        this_month = self._sums_by_type(
            Transaction.date >= window.start, Transaction.date < window.next_start
        )
        income = this_month.get(TransactionType.income, 0)
        expense = this_month.get(TransactionType.expense, 0)
        initial = this_month.get(TransactionType.initial_balance, 0)

        broad_forward = self._net(self._sums_by_type(Transaction.date < window.start))
        return {
            "year": window.year,
            "month": window.month,
            "this_month_income": income,
            "this_month_expense": expense,
            "this_month_initial_balance": initial,
            "broad_forward_balance": broad_forward,
            "this_month_total_balance": broad_forward + initial + income - expense,
        }

    def closing_balance_history(
        self, window: MonthWindow, months: int = CLOSING_HISTORY_MONTHS
    ) -> list[dict[str, object]]:
        windows = trailing_months(window, months)
        first = windows[0]

        rolling = self._net(self._sums_by_type(Transaction.date < first.start))

        year = extract("year", Transaction.date).label("year")
        month = extract("month", Transaction.date).label("month")
        stmt = (
            select(
                year,
                month,
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type != TransactionType.transfer,
                Transaction.date >= first.start,
                Transaction.date < window.next_start,
            )
            .group_by(year, month, Transaction.type)
        )
        per_month: dict[tuple[int, int], dict[TransactionType, int]] = {}
        for row in self.session.execute(stmt):
            key = (int(row.year), int(row.month))
            per_month.setdefault(key, {})[row.type] = int(row.total)

        out: list[dict[str, object]] = []
        for current in windows:
            net = self._net(per_month.get((current.year, current.month), {}))
            rolling += net
            out.append(
                {
                    "label": current.label,
                    "year": current.year,
                    "month": current.month,
                    "net": net,
                    "closing_balance": rolling,
                }
            )
        return out

    def _recent_of_type(
        self, txn_type: TransactionType, since: date, until: date
    ) -> tuple[int, list[Transaction]]:
        items = self.session.scalars(
            select(Transaction)
            .options(joinedload(Transaction.category), joinedload(Transaction.wallet))
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == txn_type,
                Transaction.date >= since,
                Transaction.date <= until,
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        ).all()
        return sum(t.amount_cents for t in items), list(items)

    def dashboard(
        self, window: MonthWindow, *, today: Optional[date] = None
    ) -> dict[str, object]:
        today = today or _today()
        wallets = WalletService(self.session, self.user_id).list_all()
        expense_total, expenses = self._recent_of_type(
            TransactionType.expense, today - timedelta(days=30), today
        )
        income_total, incomes = self._recent_of_type(
            TransactionType.income, today - timedelta(days=60), today
        )
        return {
            "summary": self.month_summary(window),
            "closing_balance_history": self.closing_balance_history(window),
            "wallets": wallets,
            "wallets_total_balance": sum(w.balance_cents for w in wallets),
            "last_30_days_expenses": {"total": expense_total, "transactions": expenses},
            "last_60_days_income": {"total": income_total, "transactions": incomes},
            "recent_transactions": TransactionService(
                self.session, self.user_id
            ).recent(5),
        }

    def _wallet_flows(self, wallet_id: int, *conditions) -> dict[str, int]:
        by_type = {
            row.type: int(row.total)
            for row in self.session.execute(
                select(
                    Transaction.type,
                    func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
                )
                .where(
                    Transaction.user_id == self.user_id,
                    Transaction.wallet_id == wallet_id,
                    *conditions,
                )
                .group_by(Transaction.type)
            )
        }
        transfers = self.session.execute(
            select(
                func.coalesce(
                    func.sum(
                        case(
                            (
                                Transaction.to_wallet_id == wallet_id,
                                Transaction.amount_cents,
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ).label("transfer_in"),
                func.coalesce(
                    func.sum(
                        case(
                            (
                                Transaction.from_wallet_id == wallet_id,
                                Transaction.amount_cents,
                            ),
                            else_=0,
                        )
                    ),
                    0,
                ).label("transfer_out"),
            ).where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.transfer,
                or_(
                    Transaction.from_wallet_id == wallet_id,
                    Transaction.to_wallet_id == wallet_id,
                ),
                *conditions,
            )
        ).one()
        return {
            "income": by_type.get(TransactionType.income, 0),
            "initial_balance": by_type.get(TransactionType.initial_balance, 0),
            "expenses": by_type.get(TransactionType.expense, 0),
            "transfer_in": int(transfers.transfer_in),
            "transfer_out": int(transfers.transfer_out),
        }

    @staticmethod
    def _wallet_net(flows: dict[str, int]) -> int:
        return (
            flows["income"]
            + flows["initial_balance"]
            - flows["expenses"]
            + flows["transfer_in"]
            - flows["transfer_out"]
        )

    def wallet_metrics(self, wallet_id: int, window: MonthWindow) -> dict[str, int]:
        WalletService(self.session, self.user_id).get(wallet_id)
        opening = self._wallet_net(
            self._wallet_flows(wallet_id, Transaction.date < window.start)
        )
        flows = self._wallet_flows(
            wallet_id,
            Transaction.date >= window.start,
            Transaction.date < window.next_start,
        )
        return {
            "opening_balance": opening,
            **flows,
            "current_balance": opening + self._wallet_net(flows),
        }


class GoalService:
    def __init__(self, session: Session, user_id: str) -> None:
        self.session = session
        self.user_id = user_id
        self.wallets = WalletService(session, user_id)

    def refresh_status(self, goal: Goal, now: datetime) -> GoalProgress:
        """Re-evaluate ``goal`` against its wallet; mark it dirty if the status moved."""
        result = evaluate_goal(
            goal.wallet.balance_cents, goal.target_amount_cents, goal.target_date, now
        )
        if goal.status != result.status:
            logger.info(
                f"goal_status_changed: goal_id={goal.id} "
                f"from={goal.status.value if goal.status else None} "
                f"to={result.status.value}"
            )
            goal.status = result.status
        return result

    def _describe(self, goal: Goal, result: GoalProgress) -> dict[str, object]:
        amounts = [t.amount_cents for t in goal.targets]
        return {
            "id": goal.id,
            "wallet_id": goal.wallet_id,
            "wallet_name": goal.wallet.name,
            "targets": [
                {"id": t.id, "amount_cents": t.amount_cents, "description": t.description}
                for t in goal.targets
            ],
            "target_amount_cents": goal.target_amount_cents,
            "average_target_cents": (sum(amounts) / len(amounts)) if amounts else 0,
            "target_date": goal.target_date.isoformat(),
            "current_balance_cents": goal.wallet.balance_cents,
            "status": result.status.value,
            "progress": round(result.progress, 2),
            "days_remaining": result.days_remaining,
        }

    def _find(self, wallet_id: int) -> Optional[Goal]:
        return self.session.scalar(
            select(Goal)
            .options(joinedload(Goal.wallet), selectinload(Goal.targets))
            .where(Goal.wallet_id == wallet_id, Goal.user_id == self.user_id)
        )

    def upsert(
        self, data: GoalIn, *, now: Optional[datetime] = None
    ) -> dict[str, object]:
        now = now or local_now()
        if data.wallet_id is None:
            raise ValidationError("Wallet ID is required")
        self.wallets.get(data.wallet_id)
        if not data.targets:
            raise ValidationError("At least one target is required")
        if any(t.amount_cents <= 0 for t in data.targets):
            raise ValidationError("All targets must have a positive amount")
        if data.target_date < now.date():
            raise ValidationError("Target date cannot be in the past")

        goal = self._find(data.wallet_id)
        if goal is None:
            goal = Goal(user_id=self.user_id, wallet_id=data.wallet_id)
            self.session.add(goal)
        goal.targets = [
            GoalTarget(amount_cents=t.amount_cents, description=t.description)
            for t in data.targets
        ]
        goal.target_amount_cents = sum(t.amount_cents for t in data.targets)
        goal.target_date = data.target_date
        self.session.flush()
        self.session.refresh(goal)

        result = self.refresh_status(goal, now)
        self.session.commit()
        return self._describe(goal, result)

    def get_for_wallet(
        self, wallet_id: int, *, now: Optional[datetime] = None
    ) -> Optional[dict[str, object]]:
        self.wallets.get(wallet_id)
        goal = self._find(wallet_id)
        if goal is None:
            return None
        result = self.refresh_status(goal, now or local_now())
        self.session.commit()
        return self._describe(goal, result)

    def list_all(self, *, now: Optional[datetime] = None) -> list[dict[str, object]]:
        now = now or local_now()
        goals = (
            self.session.scalars(
                select(Goal)
                .join(Goal.wallet)
                .options(joinedload(Goal.wallet), selectinload(Goal.targets))
                .where(Goal.user_id == self.user_id, Wallet.user_id == self.user_id)
                .order_by(Goal.created_at.desc(), Goal.id.desc())
            )
            .unique()
            .all()
        )
        described = [self._describe(goal, self.refresh_status(goal, now)) for goal in goals]
        self.session.commit()
        return described

    def delete(self, wallet_id: int) -> None:
        self.wallets.get(wallet_id)
        goal = self._find(wallet_id)
        if goal is None:
            raise NotFound("Monthly goal not found")
        self.session.delete(goal)
        self.session.commit()
