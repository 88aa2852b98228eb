from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import NotFound, ValidationError
from models import CategoryType, TransactionType, WalletKind
from schemas import CategoryIn, CategoryUpdateIn, TransactionIn, WalletIn
from services import (
    DEFAULT_CATEGORIES,
    CategoryService,
    TransactionService,
    WalletService,
    seed_default_categories,
)

USER = "user-1"


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_seeding_is_idempotent() -> None:
    session = make_session()
    expected = sum(len(names) for names in DEFAULT_CATEGORIES.values())

    assert seed_default_categories(session) == expected
    assert seed_default_categories(session) == 0
    listed = CategoryService(session, USER).list_all()
    assert len(listed["default"]) == expected
    assert listed["custom"] == []


def test_custom_categories_are_private() -> None:
    session = make_session()
    seed_default_categories(session)
    mine = CategoryService(session, USER).create(
        CategoryIn(name="Pets", type=CategoryType.expense)
    )

    theirs = CategoryService(session, "user-2")
    assert theirs.list_all()["custom"] == []
    with pytest.raises(NotFound):
        theirs.get(mine.id)

    expense_only = CategoryService(session, USER).list_all(CategoryType.expense)
    assert [c.name for c in expense_only["custom"]] == ["Pets"]
    assert all(c.type == CategoryType.expense for c in expense_only["default"])


def test_duplicate_custom_category_is_rejected() -> None:
    session = make_session()
    service = CategoryService(session, USER)
    service.create(CategoryIn(name="Pets", type=CategoryType.expense))

    with pytest.raises(ValidationError):
        service.create(CategoryIn(name=" Pets ", type=CategoryType.expense))
    service.create(CategoryIn(name="Pets", type=CategoryType.income))
    CategoryService(session, "user-2").create(
        CategoryIn(name="Pets", type=CategoryType.expense)
    )


def test_defaults_are_read_only() -> None:
    session = make_session()
    seed_default_categories(session)
    service = CategoryService(session, USER)
    salary = next(c for c in service.list_all()["default"] if c.name == "Salary")

    with pytest.raises(NotFound):
        service.update(salary.id, CategoryUpdateIn(name="Wages"))
    with pytest.raises(NotFound):
        service.delete(salary.id)


def test_rename_and_delete_custom_category() -> None:
    session = make_session()
    service = CategoryService(session, USER)
    category = service.create(CategoryIn(name="Pets", type=CategoryType.expense))

    renamed = service.update(category.id, CategoryUpdateIn(name="Animals", icon="paw"))
    assert renamed.name == "Animals"
    assert renamed.icon == "paw"

    service.delete(category.id)
    with pytest.raises(NotFound):
        service.get(category.id)


def test_category_in_use_cannot_be_deleted() -> None:
    session = make_session()
    service = CategoryService(session, USER)
    category = service.create(CategoryIn(name="Pets", type=CategoryType.expense))
    wallet = WalletService(session, USER).create(
        WalletIn(name="Cash", kind=WalletKind.cash, balance_cents=100)
    )
    TransactionService(session, USER).create(
        TransactionIn(
            type=TransactionType.expense,
            amount_cents=10,
            date=date(2026, 3, 1),
            wallet_id=wallet.id,
            category_id=category.id,
        )
    )

    with pytest.raises(ValidationError):
        service.delete(category.id)


def test_transfers_cannot_carry_a_category() -> None:
    session = make_session()
    service = CategoryService(session, USER)
    category = service.create(CategoryIn(name="Pets", type=CategoryType.expense))

    with pytest.raises(ValidationError):
        service.resolve_for(category.id, TransactionType.transfer)
    assert service.resolve_for(None, TransactionType.transfer) is None
    assert service.resolve_for(category.id, TransactionType.expense) == category
