from datetime import date, datetime

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base, build_engine, session_factory
from errors import ConcurrentUpdate, InsufficientFunds, NotFound, ValidationError
from models import Goal, Transaction, TransactionType, Wallet, WalletKind
from schemas import (
    GoalIn,
    GoalTargetIn,
    OpeningWalletIn,
    TransactionIn,
    TransferIn,
    WalletIn,
    WalletSetupIn,
    WalletUpdateIn,
)
from services import GoalService, TransactionService, WalletService

USER = "user-1"


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_file_sessionmaker(tmp_path):
    engine = build_engine(f"sqlite+pysqlite:///{tmp_path / 'wallets.db'}")
    Base.metadata.create_all(engine)
    return session_factory(engine)


def expense(wallet_id, amount_cents) -> TransactionIn:
    return TransactionIn(
        type=TransactionType.expense,
        amount_cents=amount_cents,
        date=date(2026, 3, 5),
        wallet_id=wallet_id,
    )


def test_create_records_opening_balance() -> None:
    session = make_session()

    wallet = WalletService(session, USER).create(
        WalletIn(name="  Checking ", kind=WalletKind.bank, balance_cents=2_500)
    )

    assert wallet.name == "Checking"
    assert wallet.balance_cents == 2_500
    opening = session.scalars(select(Transaction)).all()
    assert len(opening) == 1
    assert opening[0].type == TransactionType.initial_balance
    assert opening[0].wallet_id == wallet.id
    assert opening[0].amount_cents == 2_500


def test_zero_opening_balance_records_nothing() -> None:
    session = make_session()
    WalletService(session, USER).create(WalletIn(name="Empty", kind=WalletKind.cash))
    assert session.scalars(select(Transaction)).all() == []


def test_initialize_with_cash_in_hand() -> None:
    session = make_session()

    wallets = WalletService(session, USER).initialize(
        WalletSetupIn(
            cash_in_hand_cents=1_000,
            cards=[OpeningWalletIn(name="Visa", balance_cents=500)],
        )
    )

    assert [(w.name, w.kind, w.balance_cents) for w in wallets] == [
        ("Cash In Hand", WalletKind.cash, 1_000),
        ("Visa", WalletKind.card, 500),
    ]


def test_initialize_prefers_named_cash_wallets() -> None:
    session = make_session()

    wallets = WalletService(session, USER).initialize(
        WalletSetupIn(
            cash_in_hand_cents=1_000,
            cash_wallets=[OpeningWalletIn(name="Purse", balance_cents=300)],
        )
    )

    assert [w.name for w in wallets] == ["Purse"]


def test_initialize_only_once() -> None:
    session = make_session()
    service = WalletService(session, USER)
    service.initialize(WalletSetupIn(cash_in_hand_cents=0))

    with pytest.raises(ValidationError):
        service.initialize(WalletSetupIn(cash_in_hand_cents=100))


def test_initialize_requires_a_wallet() -> None:
    session = make_session()
    with pytest.raises(ValidationError):
        WalletService(session, USER).initialize(WalletSetupIn())


def test_update_name_and_kind() -> None:
    session = make_session()
    service = WalletService(session, USER)
    wallet = service.create(WalletIn(name="Cash", kind=WalletKind.cash))

    updated = service.update(wallet.id, WalletUpdateIn(name="Bank", kind=WalletKind.bank))

    assert updated.name == "Bank"
    assert updated.kind == WalletKind.bank


def test_list_is_owner_scoped() -> None:
    session = make_session()
    WalletService(session, USER).create(WalletIn(name="Mine", kind=WalletKind.cash))
    WalletService(session, "user-2").create(WalletIn(name="Theirs", kind=WalletKind.cash))

    assert [w.name for w in WalletService(session, USER).list_all()] == ["Mine"]
    with pytest.raises(NotFound):
        WalletService(session, "user-2").get(
            WalletService(session, USER).list_all()[0].id
        )


def test_last_wallet_cannot_be_deleted() -> None:
    session = make_session()
    service = WalletService(session, USER)
    wallet = service.create(WalletIn(name="Only", kind=WalletKind.cash))

    with pytest.raises(ValidationError):
        service.delete(wallet.id)


def test_wallet_with_balance_cannot_be_deleted() -> None:
    session = make_session()
    service = WalletService(session, USER)
    full = service.create(WalletIn(name="Full", kind=WalletKind.cash, balance_cents=10))
    service.create(WalletIn(name="Other", kind=WalletKind.cash))

    with pytest.raises(ValidationError):
        service.delete(full.id)
    assert service.get(full.id).balance_cents == 10


def net_from_records(session, wallet_id) -> int:
    net = 0
    for txn in session.scalars(select(Transaction)):
        if txn.type == TransactionType.transfer:
            if txn.from_wallet_id == wallet_id:
                net -= txn.amount_cents
            if txn.to_wallet_id == wallet_id:
                net += txn.amount_cents
        elif txn.wallet_id == wallet_id:
            sign = -1 if txn.type == TransactionType.expense else 1
            net += sign * txn.amount_cents
    return net


def test_delete_removes_history_and_goal() -> None:
    session = make_session()
    service = WalletService(session, USER)
    main = service.create(WalletIn(name="Main", kind=WalletKind.bank, balance_cents=100))
    spare = service.create(WalletIn(name="Spare", kind=WalletKind.cash, balance_cents=40))
    TransactionService(session, USER).create(expense(spare.id, 40))
    GoalService(session, USER).upsert(
        GoalIn(
            wallet_id=spare.id,
            target_date=date(2026, 12, 31),
            targets=[GoalTargetIn(amount_cents=500)],
        ),
        now=datetime(2026, 10, 17, 9, 0),
    )

    service.delete(spare.id)

    assert [w.name for w in service.list_all()] == ["Main"]
    assert session.scalar(select(Goal)) is None
    remaining = session.scalars(select(Transaction)).all()
    assert [t.type for t in remaining] == [TransactionType.initial_balance]
    assert service.get(main.id).balance_cents == 100


def test_wallet_with_transfers_cannot_be_deleted() -> None:
    session = make_session()
    service = WalletService(session, USER)
    main = service.create(WalletIn(name="Main", kind=WalletKind.bank, balance_cents=100))
    spare = service.create(WalletIn(name="Spare", kind=WalletKind.cash))
    txns = TransactionService(session, USER)
    txns.transfer(TransferIn(from_wallet_id=main.id, to_wallet_id=spare.id, amount_cents=40))
    txns.create(expense(spare.id, 40))

    with pytest.raises(ValidationError):
        service.delete(spare.id)

    assert sorted(w.name for w in service.list_all()) == ["Main", "Spare"]
    for wallet in service.list_all():
        assert wallet.balance_cents == net_from_records(session, wallet.id)
    assert service.get(main.id).balance_cents == 60
    assert len(session.scalars(select(Transaction)).all()) == 3


def test_stale_write_is_reported_as_concurrent_update(tmp_path) -> None:
    Session = make_file_sessionmaker(tmp_path)
    first, second = Session(), Session()
    wallet = WalletService(first, USER).create(
        WalletIn(name="Cash", kind=WalletKind.cash, balance_cents=100)
    )
    stale = WalletService(second, USER).get(wallet.id)
    second.commit()

    TransactionService(first, USER).create(expense(wallet.id, 30))

    assert stale.balance_cents == 100
    with pytest.raises(ConcurrentUpdate):
        WalletService(second, USER).update(wallet.id, WalletUpdateIn(name="Renamed"))

    check = Session()
    stored = check.get(Wallet, wallet.id)
    assert stored.name == "Cash"
    assert stored.balance_cents == 70


def test_balance_write_reloads_wallet_before_applying(tmp_path) -> None:
    Session = make_file_sessionmaker(tmp_path)
    first, second = Session(), Session()
    wallet = WalletService(first, USER).create(
        WalletIn(name="Cash", kind=WalletKind.cash, balance_cents=100)
    )
    stale = WalletService(second, USER).get(wallet.id)
    second.commit()
    assert stale.balance_cents == 100

    TransactionService(first, USER).create(expense(wallet.id, 30))
    TransactionService(second, USER).create(expense(wallet.id, 50))

    check = Session()
    assert check.get(Wallet, wallet.id).balance_cents == 20
    with pytest.raises(InsufficientFunds):
        TransactionService(second, USER).create(expense(wallet.id, 21))
