from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from errors import ValidationError


@dataclass(frozen=True)
class Period:
    """Inclusive date range used to filter transaction listings."""

    start: date
    end: date


@dataclass(frozen=True)
class MonthWindow:
    """Half-open month range ``[start, next_start)``."""

    start: date
    next_start: date

    @property
    def year(self) -> int:
        return self.start.year

    @property
    def month(self) -> int:
        return self.start.month

    @property
    def label(self) -> str:
        return self.start.strftime("%b %Y")


def local_now() -> datetime:
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)


def month_start(d: date) -> date:
    return d.replace(day=1)


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def month_window(year: int, month: int) -> MonthWindow:
    start = date(year, month, 1)
    return MonthWindow(start, add_months(start, 1))


def trailing_months(reference: MonthWindow, count: int) -> list[MonthWindow]:
    """The ``count`` consecutive months ending with ``reference``, oldest first."""
    first = add_months(reference.start, -(count - 1))
    return [
        month_window(m.year, m.month)
        for m in (add_months(first, offset) for offset in range(count))
    ]


def resolve_month(
    year: Optional[int],
    month: Optional[int],
    *,
    today: Optional[date] = None,
) -> MonthWindow:
    if year is None and month is None:
        today = today or local_now().date()
        return month_window(today.year, today.month)
    if year is None or month is None:
        raise ValidationError("Both year and month are required")
    if not 1 <= month <= 12:
        raise ValidationError("Month must be between 1 and 12")
    if not 1970 <= year <= 3000:
        raise ValidationError("Year out of range")
    return month_window(year, month)


def resolve_period(start: Optional[str], end: Optional[str]) -> Optional[Period]:
    if not start and not end:
        return None
    if not start or not end:
        raise ValidationError("Both start and end dates are required for filtering")
    try:
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
    except ValueError as exc:
        raise ValidationError(
            "Invalid date. Please provide a valid date in YYYY-MM-DD format"
        ) from exc
    if start_date > end_date:
        raise ValidationError("Start date must be before or equal to end date")
    return Period(start_date, end_date)
