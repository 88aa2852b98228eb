import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse
from sqlalchemy.orm import Session

from auth import read_owner_token
from config import get_settings
from database import SessionLocal, session_scope
from errors import LedgerError, PersistenceFailure, http_status
from models import Category, CategoryType, Transaction, TransactionType, Wallet
from periods import local_now, resolve_month, resolve_period
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
from services import (
    CategoryService,
    DashboardService,
    GoalService,
    TransactionFilters,
    TransactionService,
    WalletService,
    seed_default_categories,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Wallet Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def current_user_id(request: Request) -> str:
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=401, detail="Not authorized")
    user_id = read_owner_token(token.strip())
    if user_id is None:
        raise HTTPException(status_code=401, detail="Not authorized")
    return user_id


@app.on_event("startup")
def startup_event():
    with session_scope() as session:
        seed_default_categories(session)


@app.exception_handler(Exception)
async def unhandled_error(request: Request, exc: Exception):
    logger.error(f"unhandled_error: path={request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def _fail(exc: Exception) -> HTTPException:
    status = http_status(exc)
    if status >= 500:
        logger.error(f"request_failed: status={status} error={exc}")
    return HTTPException(status_code=status, detail=str(exc))


def wallet_out(wallet: Wallet) -> dict:
    return {
        "id": wallet.id,
        "name": wallet.name,
        "kind": wallet.kind.value,
        "balance_cents": wallet.balance_cents,
        "initialized_at": wallet.initialized_at.isoformat(),
        "updated_at": wallet.updated_at.isoformat() if wallet.updated_at else None,
    }


def category_out(category: Category) -> dict:
    return {
        "id": category.id,
        "name": category.name,
        "type": category.type.value,
        "icon": category.icon,
        "is_default": category.is_default,
    }


def transaction_out(txn: Transaction) -> dict:
    return {
        "id": txn.id,
        "type": txn.type.value,
        "amount_cents": txn.amount_cents,
        "wallet_id": txn.wallet_id,
        "from_wallet_id": txn.from_wallet_id,
        "to_wallet_id": txn.to_wallet_id,
        "category_id": txn.category_id,
        "category": txn.category.name if txn.category else None,
        "description": txn.description,
        "date": txn.date.isoformat(),
        "created_at": txn.created_at.isoformat(),
    }


# Wallets


@app.get("/api/wallets")
def list_wallets(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    wallets = WalletService(db, user_id).list_all()
    return {
        "wallets": [wallet_out(w) for w in wallets],
        "total_balance_cents": sum(w.balance_cents for w in wallets),
    }


@app.post("/api/wallets", status_code=201)
def create_wallet(
    data: WalletIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        wallet = WalletService(db, user_id).create(data)
    except (LedgerError, PersistenceFailure) as exc:
        raise _fail(exc) from exc
    return wallet_out(wallet)


@app.post("/api/wallets/initialize", status_code=201)
def initialize_wallets(
    data: WalletSetupIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        wallets = WalletService(db, user_id).initialize(data)
    except (LedgerError, PersistenceFailure) as exc:
        raise _fail(exc) from exc
    return {"wallets": [wallet_out(w) for w in wallets]}


@app.post("/api/wallets/transfer", status_code=201)
def transfer_between_wallets(
    data: TransferIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).transfer(data)
        wallets = WalletService(db, user_id)
        source = wallets.get(data.from_wallet_id)
        target = wallets.get(data.to_wallet_id)
    except (LedgerError, PersistenceFailure) as exc:
        raise _fail(exc) from exc
    return {
        "transfer": transaction_out(txn),
        "from_wallet": wallet_out(source),
        "to_wallet": wallet_out(target),
    }


@app.get("/api/wallets/transfers")
def list_transfers(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return {
        "transfers": [
            transaction_out(t) for t in TransactionService(db, user_id).transfers()
        ]
    }


@app.patch("/api/wallets/{wallet_id}")
def update_wallet(
    wallet_id: int,
    data: WalletUpdateIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        wallet = WalletService(db, user_id).update(wallet_id, data)
    except (LedgerError, PersistenceFailure) as exc:
        raise _fail(exc) from exc
    return wallet_out(wallet)


@app.delete("/api/wallets/{wallet_id}", status_code=204)
def delete_wallet(
    wallet_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        WalletService(db, user_id).delete(wallet_id)
    except (LedgerError, PersistenceFailure) as exc:
        raise _fail(exc) from exc
    return Response(status_code=204)


@app.get("/api/wallets/{wallet_id}/metrics")
def wallet_metrics(
    wallet_id: int,
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        window = resolve_month(year, month)
        metrics = DashboardService(db, user_id).wallet_metrics(wallet_id, window)
    except (LedgerError, PersistenceFailure) as exc:
        raise _fail(exc) from exc
    return {"wallet_id": wallet_id, "year": window.year, "month": window.month, **metrics}


# Transactions


def filters_from_request(
    start: Optional[str],
    end: Optional[str],
    type: Optional[str],
    wallet_id: Optional[int],
) -> TransactionFilters:
    txn_type = None
    if type:
        try:
            txn_type = TransactionType(type.upper())
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid transaction type") from exc
    try:
        period = resolve_period(start, end)
    except LedgerError as exc:
        raise _fail(exc) from exc
    return TransactionFilters(period=period, type=txn_type, wallet_id=wallet_id)


@app.get("/api/transactions")
def list_transactions(
    start: Optional[str] = None,
    end: Optional[str] = None,
    type: Optional[str] = None,
    wallet_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    filters = filters_from_request(start, end, type, wallet_id)
    items = TransactionService(db, user_id).list(filters)
    return {"items": [transaction_out(t) for t in items], "count": len(items)}


@app.get("/api/transactions/export.csv")
def export_transactions_endpoint(
    start: Optional[str] = None,
    end: Optional[str] = None,
    type: Optional[str] = None,
    wallet_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    filters = filters_from_request(start, end, type, wallet_id)
    csv_text = TransactionService(db, user_id).export_csv(filters)
    filename = f"transactions_{local_now().date().isoformat()}.csv"
    return StreamingResponse(
        iter([csv_text]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.post("/api/transactions", status_code=201)
def create_transaction(
    data: TransactionIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).create(data)
    except (LedgerError, PersistenceFailure) as exc:
        raise _fail(exc) from exc
    return transaction_out(txn)


@app.get("/api/transactions/{transaction_id}")
def get_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).get(transaction_id)
    except LedgerError as exc:
        raise _fail(exc) from exc
    return transaction_out(txn)


@app.patch("/api/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    data: TransactionUpdateIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        txn = TransactionService(db, user_id).update(transaction_id, data)
    except (LedgerError, PersistenceFailure) as exc:
        raise _fail(exc) from exc
    return transaction_out(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        TransactionService(db, user_id).delete(transaction_id)
    except (LedgerError, PersistenceFailure) as exc:
        raise _fail(exc) from exc
    return Response(status_code=204)


# Dashboard


@app.get("/api/dashboard")
def dashboard(
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    today = local_now().date()
    try:
        window = resolve_month(year, month, today=today)
    except LedgerError as exc:
        raise _fail(exc) from exc
    data = DashboardService(db, user_id).dashboard(window, today=today)
    return {
        **data["summary"],
        "closing_balance_history": data["closing_balance_history"],
        "wallets": [wallet_out(w) for w in data["wallets"]],
        "wallets_total_balance": data["wallets_total_balance"],
        "last_30_days_expenses": {
            "total": data["last_30_days_expenses"]["total"],
            "transactions": [
                transaction_out(t)
                for t in data["last_30_days_expenses"]["transactions"]
            ],
        },
        "last_60_days_income": {
            "total": data["last_60_days_income"]["total"],
            "transactions": [
                transaction_out(t) for t in data["last_60_days_income"]["transactions"]
            ],
        },
        "recent_transactions": [
            transaction_out(t) for t in data["recent_transactions"]
        ],
    }


# Goals


@app.get("/api/goals")
def list_goals(
    db: Session = Depends(get_db), user_id: str = Depends(current_user_id)
):
    return {"goals": GoalService(db, user_id).list_all()}


@app.put("/api/goals/{wallet_id}")
def upsert_goal(
    wallet_id: int,
    data: GoalIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        return GoalService(db, user_id).upsert(
            data.model_copy(update={"wallet_id": wallet_id})
        )
    except (LedgerError, PersistenceFailure) as exc:
        raise _fail(exc) from exc


@app.get("/api/goals/{wallet_id}")
def get_goal(
    wallet_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        goal = GoalService(db, user_id).get_for_wallet(wallet_id)
    except LedgerError as exc:
        raise _fail(exc) from exc
    return {"goal": goal}


@app.delete("/api/goals/{wallet_id}", status_code=204)
def delete_goal(
    wallet_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        GoalService(db, user_id).delete(wallet_id)
    except LedgerError as exc:
        raise _fail(exc) from exc
    return Response(status_code=204)


# Categories


@app.get("/api/categories")
def list_categories(
    type: Optional[CategoryType] = None,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    grouped = CategoryService(db, user_id).list_all(type)
    return {
        "default": [category_out(c) for c in grouped["default"]],
        "custom": [category_out(c) for c in grouped["custom"]],
    }


@app.post("/api/categories", status_code=201)
def create_category(
    data: CategoryIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).create(data)
    except LedgerError as exc:
        raise _fail(exc) from exc
    return category_out(category)


@app.patch("/api/categories/{category_id}")
def update_category(
    category_id: int,
    data: CategoryUpdateIn,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        category = CategoryService(db, user_id).update(category_id, data)
    except LedgerError as exc:
        raise _fail(exc) from exc
    return category_out(category)


@app.delete("/api/categories/{category_id}", status_code=204)
def delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: str = Depends(current_user_id),
):
    try:
        CategoryService(db, user_id).delete(category_id)
    except LedgerError as exc:
        raise _fail(exc) from exc
    return Response(status_code=204)


@app.get("/healthz")
def healthz():
    return {"status": "ok", "date": date.today().isoformat()}
