from datetime import date, datetime, timedelta

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import NotFound, ValidationError
from goals import days_until, evaluate_goal
from models import Goal, GoalStatus, TransactionType, WalletKind
from schemas import GoalIn, GoalTargetIn, TransactionIn, WalletIn
from services import GoalService, TransactionService, WalletService

USER = "user-1"
NOW = datetime(2026, 10, 17, 12, 0)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def make_wallet(session, balance_cents, user_id=USER):
    return WalletService(session, user_id).create(
        WalletIn(name="Savings", kind=WalletKind.bank, balance_cents=balance_cents)
    )


def goal_in(wallet_id, target_date, *amounts):
    return GoalIn(
        wallet_id=wallet_id,
        target_date=target_date,
        targets=[GoalTargetIn(amount_cents=a) for a in amounts],
    )


def test_missed_deadline_fails() -> None:
    result = evaluate_goal(800, 1_000, NOW.date() - timedelta(days=1), NOW)
    assert result.status == GoalStatus.fail
    assert result.progress == 80
    assert result.days_remaining == -1


def test_reached_before_deadline_succeeds() -> None:
    result = evaluate_goal(1_200, 1_000, NOW.date() + timedelta(days=3), NOW)
    assert result.status == GoalStatus.success
    assert result.progress == 100
    assert result.days_remaining == 3


def test_not_reached_before_deadline_is_in_progress() -> None:
    result = evaluate_goal(500, 1_000, NOW.date() + timedelta(days=30), NOW)
    assert result.status == GoalStatus.in_progress
    assert result.progress == 50


def test_target_date_today_counts_as_zero_days() -> None:
    assert days_until(NOW.date(), NOW) == 0
    assert evaluate_goal(1_000, 1_000, NOW.date(), NOW).status == GoalStatus.success
    assert evaluate_goal(999, 1_000, NOW.date(), NOW).status == GoalStatus.in_progress


def test_reached_after_deadline_stays_in_progress() -> None:
    result = evaluate_goal(1_500, 1_000, NOW.date() - timedelta(days=2), NOW)
    assert result.status == GoalStatus.in_progress


def test_progress_is_clamped() -> None:
    assert evaluate_goal(-300, 1_000, NOW.date(), NOW).progress == 0
    assert evaluate_goal(50, 0, NOW.date(), NOW).progress == 100


def test_upsert_sums_targets() -> None:
    session = make_session()
    wallet = make_wallet(session, 800)

    goal = GoalService(session, USER).upsert(
        goal_in(wallet.id, date(2026, 12, 31), 600, 400), now=NOW
    )

    assert goal["target_amount_cents"] == 1_000
    assert goal["average_target_cents"] == 500
    assert goal["current_balance_cents"] == 800
    assert goal["status"] == GoalStatus.in_progress.value
    assert goal["progress"] == 80
    assert len(goal["targets"]) == 2


def test_upsert_replaces_existing_goal() -> None:
    session = make_session()
    wallet = make_wallet(session, 800)
    service = GoalService(session, USER)
    first = service.upsert(goal_in(wallet.id, date(2026, 12, 31), 600, 400), now=NOW)

    second = service.upsert(goal_in(wallet.id, date(2027, 1, 31), 700), now=NOW)

    assert second["id"] == first["id"]
    assert second["target_amount_cents"] == 700
    assert [t["amount_cents"] for t in second["targets"]] == [700]
    assert second["status"] == GoalStatus.success.value
    assert len(service.list_all(now=NOW)) == 1


def test_status_is_persisted_when_read() -> None:
    session = make_session()
    wallet = make_wallet(session, 800)
    service = GoalService(session, USER)
    service.upsert(goal_in(wallet.id, NOW.date(), 1_000), now=NOW)

    later = service.get_for_wallet(wallet.id, now=NOW + timedelta(days=2))

    assert later["status"] == GoalStatus.fail.value
    assert later["progress"] == 80
    stored = session.scalar(select(Goal).where(Goal.wallet_id == wallet.id))
    assert stored.status == GoalStatus.fail


def test_balance_change_flips_status_on_next_read() -> None:
    session = make_session()
    wallet = make_wallet(session, 800)
    service = GoalService(session, USER)
    service.upsert(goal_in(wallet.id, date(2026, 12, 31), 1_000), now=NOW)

    TransactionService(session, USER).create(
        TransactionIn(
            type=TransactionType.income,
            amount_cents=300,
            date=NOW.date(),
            wallet_id=wallet.id,
        )
    )

    goal = service.get_for_wallet(wallet.id, now=NOW)
    assert goal["status"] == GoalStatus.success.value
    assert goal["current_balance_cents"] == 1_100


def test_invalid_goals_are_rejected() -> None:
    session = make_session()
    wallet = make_wallet(session, 800)
    service = GoalService(session, USER)

    with pytest.raises(ValidationError):
        service.upsert(goal_in(wallet.id, NOW.date() - timedelta(days=1), 1_000), now=NOW)
    with pytest.raises(ValidationError):
        service.upsert(goal_in(wallet.id, date(2026, 12, 31)), now=NOW)
    with pytest.raises(ValidationError):
        service.upsert(goal_in(wallet.id, date(2026, 12, 31), 500, 0), now=NOW)
    with pytest.raises(NotFound):
        service.upsert(goal_in(wallet.id + 99, date(2026, 12, 31), 500), now=NOW)


def test_goal_on_other_owners_wallet_is_not_found() -> None:
    session = make_session()
    foreign = make_wallet(session, 800, user_id="user-2")

    with pytest.raises(NotFound):
        GoalService(session, USER).upsert(
            goal_in(foreign.id, date(2026, 12, 31), 500), now=NOW
        )


def test_delete_goal() -> None:
    session = make_session()
    wallet = make_wallet(session, 800)
    service = GoalService(session, USER)
    service.upsert(goal_in(wallet.id, date(2026, 12, 31), 500), now=NOW)

    service.delete(wallet.id)

    assert service.get_for_wallet(wallet.id, now=NOW) is None
    with pytest.raises(NotFound):
        service.delete(wallet.id)
