"""
Fee calendar: fee-month labels, month arithmetic, due dates and the computed fee status.

Everything here is pure. Status is never stored; every code path that needs it calls
compute_fee_status so two paths cannot disagree for the same inputs.
"""

import calendar
import re
from datetime import date, datetime, time
from typing import Optional, Tuple, Union

from feecycle.core.enums import FeeStatus

Period = Tuple[int, int]  # (year, month)

END_OF_DAY = time(23, 59, 59, 999999)

_MONTH_NAMES = (
    "january", "february", "march", "april", "may", "june",
    "july", "august", "september", "october", "november", "december",
)

_ISO_MONTH_RE = re.compile(r"^(\d{4})-(\d{1,2})$")
_NAMED_MONTH_RE = re.compile(r"^([A-Za-z]+)\.?\s+(\d{4})$")


def format_fee_month(year: int, month: int) -> str:
    """Canonical label, e.g. 2025-02."""
    return f"{year:04d}-{month:02d}"


def parse_fee_month(label: Optional[str]) -> Optional[Period]:
    """Parse "2025-02", "February 2025" or "Feb 2025". Returns None when unrecognised."""
    if not label:
        return None
    text = label.strip()
    match = _ISO_MONTH_RE.match(text)
    if match:
        year, month = int(match.group(1)), int(match.group(2))
        return (year, month) if 1 <= month <= 12 else None
    match = _NAMED_MONTH_RE.match(text)
    if match:
        name = match.group(1).lower()
        for idx, full in enumerate(_MONTH_NAMES, start=1):
            if full == name or (len(name) >= 3 and full.startswith(name)):
                return (int(match.group(2)), idx)
    return None


def is_canonical_fee_month(label: str) -> bool:
    period = parse_fee_month(label)
    return period is not None and label == format_fee_month(*period)


def period_of(value: Union[date, datetime]) -> Period:
    return (value.year, value.month)


def add_months(period: Period, count: int) -> Period:
    year, month = period
    index = year * 12 + (month - 1) + count
    return (index // 12, index % 12 + 1)


def months_between(start: Period, end: Period) -> int:
    """Signed number of calendar months from start to end."""
    return (end[0] - start[0]) * 12 + (end[1] - start[1])


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def calculate_due_date(year: int, month: int, anchor_day: int) -> datetime:
    """
    Due date for a fee month: min(anchor day, last day of month) at end of day.

    Anchor days 29-31 clamp to the last day of shorter months and never roll into the next month.
    """
    if not 1 <= anchor_day <= 31:
        raise ValueError(f"anchor_day must be between 1 and 31, got {anchor_day}")
    day = min(anchor_day, last_day_of_month(year, month))
    return datetime.combine(date(year, month, day), END_OF_DAY)


def resolve_today(today: Optional[date] = None) -> date:
    return today if today is not None else date.today()


def compute_fee_status(
    due_date: Union[date, datetime],
    payment_date: Optional[Union[date, datetime]],
    paid_amount: int,
    fee_amount: int,
    today: Optional[date] = None,
) -> FeeStatus:
    if payment_date is not None:
        return FeeStatus.paid if (paid_amount or 0) >= fee_amount else FeeStatus.partially_paid
    due_day = due_date.date() if isinstance(due_date, datetime) else due_date
    return FeeStatus.overdue if due_day < resolve_today(today) else FeeStatus.upcoming
