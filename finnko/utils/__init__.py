"""Shared helpers."""

from finnko.utils.periods import (
    add_months,
    add_period_months,
    first_billing_period,
    occurrence_date,
    parse_period,
    split_installments,
    to_money,
    to_period,
)

__all__ = [
    "add_months",
    "add_period_months",
    "first_billing_period",
    "occurrence_date",
    "parse_period",
    "split_installments",
    "to_money",
    "to_period",
]
