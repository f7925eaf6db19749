"""
Date, billing-period and money helpers.

A billing period (competência) is a "YYYY-MM" string. Month arithmetic clamps
the day of month, so Jan 31 + 1 month is Feb 28/29.
"""

import calendar
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

from finnko.models.entities import Recurrence


CENT = Decimal("0.01")


def to_period(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def parse_period(period: str) -> tuple[int, int]:
    """Split "YYYY-MM" into (year, month)."""
    year_str, month_str = period.split("-", 1)
    year, month = int(year_str), int(month_str)
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid billing period: {period}")
    return year, month


def add_months(d: date, months: int) -> date:
    """Shift a date by whole months, clamping the day to the target month's length."""
    total = d.year * 12 + (d.month - 1) + months
    year, month = divmod(total, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_period_months(period: str, months: int) -> str:
    year, month = parse_period(period)
    return to_period(add_months(date(year, month, 1), months))


def first_billing_period(purchase_date: date, closing_day: int) -> str:
    """
    Period of the bill that receives a purchase's first installment.

    Purchases on or after the card's closing day fall into the next bill.
    """
    if purchase_date.day >= closing_day:
        return to_period(add_months(purchase_date.replace(day=1), 1))
    return to_period(purchase_date)


def occurrence_date(start: date, recurrence: Recurrence, index: int) -> date:
    """Date of the index-th occurrence (0 = start) of a recurring entry."""
    if recurrence is Recurrence.DAILY:
        return start + timedelta(days=index)
    if recurrence is Recurrence.WEEKLY:
        return start + timedelta(weeks=index)
    if recurrence is Recurrence.MONTHLY:
        return add_months(start, index)
    if recurrence is Recurrence.ANNUAL:
        return add_months(start, 12 * index)
    raise ValueError(f"Unsupported recurrence: {recurrence}")


def to_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Coerce to a Decimal rounded to cents."""
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def split_installments(total: Union[Decimal, int, float, str], count: int) -> list[Decimal]:
    """
    Split total into count amounts that sum exactly to total (in cents).

    Leftover cents go to the first installments: 100.00 / 3 ->
    [33.34, 33.33, 33.33]. Negative totals split symmetrically.
    """
    if count < 1:
        raise ValueError("Installment count must be at least 1")
    amount = to_money(total)
    sign = -1 if amount < 0 else 1
    cents = int(abs(amount) * 100)
    base, remainder = divmod(cents, count)
    parts = []
    for i in range(count):
        share = base + (1 if i < remainder else 0)
        parts.append(sign * (Decimal(share) / 100).quantize(CENT))
    return parts
