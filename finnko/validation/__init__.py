"""Referential integrity checks run before destructive operations."""

from finnko.validation.referential import (
    check_account_deletion,
    check_category_deletion,
)

__all__ = [
    "check_account_deletion",
    "check_category_deletion",
]
