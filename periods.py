from dataclasses import dataclass
from datetime import date
from typing import Optional


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date


def month_start(d: date) -> date:
    return d.replace(day=1)


def month_end(d: date) -> date:
    first = month_start(d)
    if first.month == 12:
        next_month = first.replace(year=first.year + 1, month=1)
    else:
        next_month = first.replace(month=first.month + 1)
    return next_month - date.resolution


def shift_months(d: date, count: int) -> date:
    """First day of the month ``count`` months away from ``d``."""
    month_index = (d.year * 12) + (d.month - 1) + count
    return date(month_index // 12, (month_index % 12) + 1, 1)


def quarter_start(d: date) -> date:
    return date(d.year, ((d.month - 1) // 3) * 3 + 1, 1)


def quarter_end(d: date) -> date:
    return month_end(shift_months(quarter_start(d), 2))


def month_period(d: date) -> Period:
    return Period(d.strftime("%b"), month_start(d), month_end(d))


def quarter_period(d: date) -> Period:
    start = quarter_start(d)
    return Period(f"Q{(start.month - 1) // 3 + 1}", start, quarter_end(d))


def trailing_months(today: date, count: int) -> list[Period]:
    """Calendar months ending with the one containing ``today``, oldest first."""
    return [month_period(shift_months(today, -i)) for i in range(count - 1, -1, -1)]


def trailing_quarters(today: date, count: int) -> list[Period]:
    return [
        quarter_period(shift_months(today, -3 * i)) for i in range(count - 1, -1, -1)
    ]


def resolve_period(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if not period or period == "all":
        return Period("all", date(1970, 1, 1), date.max)
    if period == "last_month":
        return Period(
            "last_month",
            shift_months(today, -1),
            month_end(shift_months(today, -1)),
        )
    if period == "this_quarter":
        return Period("this_quarter", quarter_start(today), quarter_end(today))
    if period == "custom":
        if not start or not end:
            raise ValueError("Custom period requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        return Period("custom", start_date, end_date)

    return Period("this_month", month_start(today), month_end(today))
