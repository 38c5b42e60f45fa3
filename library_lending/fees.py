"""
fees.py

Late fee arithmetic. Amounts are `Decimal` values quantized to cents.
"""

from __future__ import annotations
import datetime
from decimal import Decimal, ROUND_HALF_UP

from .config import DEFAULT_FEE_PER_DAY, DEFAULT_MAX_FEE

CENTS = Decimal("0.01")


def days_overdue(due_date: datetime.datetime, evaluated_at: datetime.datetime) -> int:
    """
    Whole days past due, counting any started day as a full one.

    Returns 0 when `evaluated_at` is on or before `due_date`.
    """
    if evaluated_at <= due_date:
        return 0
    delta = evaluated_at - due_date
    partial = 1 if (delta.seconds or delta.microseconds) else 0
    return delta.days + partial


def late_fee(due_date: datetime.datetime,
             evaluated_at: datetime.datetime,
             fee_per_day: Decimal = DEFAULT_FEE_PER_DAY,
             max_fee: Decimal = DEFAULT_MAX_FEE) -> Decimal:
    """
    Fee owed for a loan due at `due_date` and returned (or checked) at `evaluated_at`.

    fee = min(days_overdue * fee_per_day, max_fee)
    """
    days = days_overdue(due_date, evaluated_at)
    if days == 0:
        return Decimal("0").quantize(CENTS)
    fee = min(Decimal(days) * fee_per_day, max_fee)
    return fee.quantize(CENTS, rounding=ROUND_HALF_UP)
