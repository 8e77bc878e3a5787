import logging
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from config import get_settings
from models import Frequency

logger = logging.getLogger(__name__)

MONTHS_PER_STEP = {
    Frequency.monthly: 1,
    Frequency.quarterly: 3,
    Frequency.yearly: 12,
}


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def add_months(base: date, months: int) -> date:
    total_months = base.month - 1 + months
    year = base.year + total_months // 12
    month = total_months % 12 + 1
    day = min(base.day, days_in_month(year, month))
    return date(year, month, day)


def _advance(
    anchor: date, frequency: Frequency, custom_days: Optional[int], steps: int
) -> date:
    frequency = Frequency(frequency)
    if frequency in MONTHS_PER_STEP:
        return add_months(anchor, MONTHS_PER_STEP[frequency] * steps)
    if custom_days:
        return anchor + timedelta(days=custom_days * steps)
    logger.warning(
        f"custom_frequency_fallback: anchor={anchor.isoformat()} "
        "custom_days missing, advancing monthly"
    )
    return add_months(anchor, steps)


def calculate_next_date(
    anchor: date, frequency: Frequency, custom_days: Optional[int] = None
) -> date:
    return _advance(anchor, frequency, custom_days, 1)


def upcoming_occurrences(
    anchor: date,
    frequency: Frequency,
    custom_days: Optional[int] = None,
    *,
    count: int = 6,
) -> list[date]:
    # Every step is measured from the anchor so month-end clamping does not
    # drift (Jan 31 -> Feb 29 -> Mar 31, not Mar 29).
    return [
        _advance(anchor, frequency, custom_days, step)
        for step in range(1, count + 1)
    ]
