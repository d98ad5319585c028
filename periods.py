from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings


@dataclass(frozen=True)
class Period:
    start: str
    end: str


def today_local(timezone: Optional[str] = None) -> date:
    tz = ZoneInfo(timezone or get_settings().timezone)
    return datetime.now(tz).date()


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def add_months(d: date, count: int) -> date:
    month_index = (d.year * 12) + (d.month - 1) + count
    year = month_index // 12
    month = (month_index % 12) + 1
    return date(year, month, 1)


def trailing_months(today: date, count: int = 12) -> list[str]:
    """Month keys of the ``count`` months ending at ``today``'s month, oldest first."""
    first = today.replace(day=1)
    return [month_key(add_months(first, -offset)) for offset in range(count - 1, -1, -1)]


def year_months(year: int) -> list[str]:
    return [f"{year:04d}-{month:02d}" for month in range(1, 13)]


def month_period(year_month: str) -> Period:
    # string bounds: every ISO date of the month sorts between these two
    return Period(f"{year_month}-01", f"{year_month}-31")


def year_period(year: int) -> Period:
    return Period(f"{year:04d}-01-01", f"{year:04d}-12-31")


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or today_local()
    if not period or period == "this_month":
        return month_period(month_key(today))
    if period == "last_month":
        return month_period(month_key(add_months(today.replace(day=1), -1)))
    if period == "this_year":
        return year_period(today.year)
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period(start_date.isoformat(), end_date.isoformat())
    raise ValueError(f"Unknown period: {period}")
