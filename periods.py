import calendar
from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Optional, TypeVar

_D = TypeVar("_D", date, datetime)


@dataclass(frozen=True)
class Window:
    """Inclusive timestamp range."""

    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    def window(self) -> Window:
        return day_window(self.start, self.end)


def day_window(start: date, end: date) -> Window:
    return Window(datetime.combine(start, time.min), datetime.combine(end, time.max))


def month_start(d: date) -> date:
    return date(d.year, d.month, 1)


def month_end(d: date) -> date:
    last_day = calendar.monthrange(d.year, d.month)[1]
    return date(d.year, d.month, last_day)


def month_window(year: int, month: int) -> Window:
    first = date(year, month, 1)
    return day_window(first, month_end(first))


def add_months(d: _D, count: int) -> _D:
    """Shift by calendar months, clamping the day to the target month's length."""
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return d.replace(year=year, month=month, day=day)


def trailing_months(today: date, count: int) -> list[date]:
    """First days of the last ``count`` months, oldest first, ending with today's."""
    current = month_start(today)
    return [add_months(current, -offset) for offset in range(count - 1, -1, -1)]


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if period == "all":
        return Period("all", date(1970, 1, 1), today)
    if period == "last_month":
        last_month = add_months(month_start(today), -1)
        return Period("last_month", last_month, month_end(last_month))
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period and period != "this_month":
        raise ValueError(f"Unknown period: {period}")

    return Period("this_month", month_start(today), month_end(today))
