import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from database import Base, build_engine, session_factory, session_scope
from models import Wallet, WalletKind


def test_sqlite_connections_enforce_foreign_keys(tmp_path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")

    with engine.connect() as conn:
        assert conn.exec_driver_sql("PRAGMA foreign_keys").scalar() == 1
        assert conn.exec_driver_sql("PRAGMA journal_mode").scalar() == "wal"


def test_session_scope_commits_and_rolls_back(tmp_path) -> None:
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(engine)
    factory = session_factory(engine)

    with session_scope(factory) as session:
        session.add(Wallet(user_id="user-1", name="Cash", kind=WalletKind.cash))

    with pytest.raises(IntegrityError):
        with session_scope(factory) as session:
            session.add(Wallet(user_id="user-1", name=None, kind=WalletKind.cash))

    with session_scope(factory) as session:
        names = session.scalars(select(Wallet.name)).all()
    assert names == ["Cash"]
