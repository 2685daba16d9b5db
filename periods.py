from dataclasses import dataclass
from datetime import date
from typing import Optional

from installments import days_in_month


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def month_period(year: int, month: int, slug: str = "month") -> Period:
    return Period(
        slug, date(year, month, 1), date(year, month, days_in_month(year, month))
    )


def resolve_period(
    period: Optional[str],
    start: Optional[str] = None,
    end: Optional[str] = None,
    *,
    month: Optional[str] = None,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if not period or period == "all":
        return Period("all", date(1970, 1, 1), date(9999, 12, 31))
    if period == "last_month":
        first_this = today.replace(day=1)
        last_month_end = first_this - date.resolution
        return month_period(last_month_end.year, last_month_end.month, "last_month")
    if period == "month":
        if not month:
            raise ValueError("Month period requires a YYYY-MM month")
        try:
            year_str, month_str = month.split("-", 1)
            return month_period(int(year_str), int(month_str))
        except ValueError as exc:
            raise ValueError(f"Invalid month: {month}") from exc
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)
    if period == "this_month":
        return month_period(today.year, today.month, "this_month")
    raise ValueError(f"Unknown period: {period}")
