import calendar
import datetime
from typing import Iterable, Optional

DateLike = datetime.date | str


def _as_date(value: DateLike) -> datetime.date:
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(str(value)[:10])


def month_grid(year: int, month: int) -> list[Optional[datetime.date]]:
    """Return the cells of a Sunday-first month view.

    Leading cells before the first of the month are ``None``; one cell
    follows per day of the month.
    """
    if not 1 <= month <= 12:
        raise ValueError("month must be between 1 and 12")
    first = datetime.date(year, month, 1)
    offset = (first.weekday() + 1) % 7
    days = calendar.monthrange(year, month)[1]
    cells: list[Optional[datetime.date]] = [None] * offset
    cells.extend(datetime.date(year, month, d) for d in range(1, days + 1))
    return cells


def month_bounds(year: int, month: int) -> tuple[datetime.date, datetime.date]:
    days = calendar.monthrange(year, month)[1]
    return datetime.date(year, month, 1), datetime.date(year, month, days)


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def relative_label(value: DateLike, today: Optional[datetime.date] = None) -> str:
    day = _as_date(value)
    today = today or datetime.date.today()
    diff = (day - today).days
    if diff == 0:
        return "Today"
    if diff == 1:
        return "Tomorrow"
    if diff == -1:
        return "Yesterday"
    return f"{day.strftime('%a, %b')} {day.day}"


def is_past(value: DateLike, today: Optional[datetime.date] = None) -> bool:
    return _as_date(value) < (today or datetime.date.today())


def is_future(value: DateLike, today: Optional[datetime.date] = None) -> bool:
    return _as_date(value) > (today or datetime.date.today())


def is_upcoming(
    value: DateLike, is_completed: bool = False, today: Optional[datetime.date] = None
) -> bool:
    """A workout is upcoming when it is scheduled today or later and not done."""
    return not is_completed and _as_date(value) >= (today or datetime.date.today())


def has_workout(value: DateLike, dates: Iterable[DateLike]) -> bool:
    day = _as_date(value)
    return any(_as_date(d) == day for d in dates)
