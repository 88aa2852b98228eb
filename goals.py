import math
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from models import GoalStatus

ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class GoalProgress:
    status: GoalStatus
    progress: float
    days_remaining: int


def days_until(target_date: date, now: datetime) -> int:
    """Whole days from ``now`` to the start of ``target_date``, rounded up.

    A target of today yields 0 for the rest of the day; yesterday yields -1.
    """
    delta = datetime.combine(target_date, time.min) - now
    return math.ceil(delta / ONE_DAY)


def evaluate_goal(
    balance_cents: int,
    target_amount_cents: int,
    target_date: date,
    now: datetime,
) -> GoalProgress:
    days_remaining = days_until(target_date, now)
    reached = balance_cents >= target_amount_cents

    if reached and days_remaining >= 0:
        status = GoalStatus.success
    elif days_remaining < 0 and not reached:
        status = GoalStatus.fail
    else:
        status = GoalStatus.in_progress

    if target_amount_cents <= 0:
        progress = 100.0
    else:
        progress = balance_cents / target_amount_cents * 100
    progress = min(100.0, max(0.0, progress))
    return GoalProgress(status=status, progress=progress, days_remaining=days_remaining)
