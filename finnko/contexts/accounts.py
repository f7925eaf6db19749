"""Accounts context."""

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

from finnko.contexts.base import DomainContext
from finnko.models.entities import Account, Card, DeletionViolation


class AccountsContext(DomainContext[Account]):
    """
    Bank accounts in memory.

    update() never touches the opening balance/date; use
    update_opening_balance() for that.
    """

    def update(self, entity: Account, **changes: Any) -> Account:
        current = self.get(entity.id)
        return self.replace(self._repository.update(entity, current=current, **changes))

    def update_opening_balance(self, account_id: str, amount: Decimal, opening_date: date) -> Account:
        """
        Change the opening balance/date in memory and write it through the
        remote side channel.
        """
        current = self.require(account_id)
        updated = self._repository.with_opening_value(current, amount, opening_date)
        self.replace(updated)
        self.schedule(
            "update_opening_value",
            lambda: self._repository.update_opening_value(account_id, amount, opening_date),
        )
        return updated

    def validate_deletion(self, account_id: str, cards: Iterable[Card]) -> Optional[DeletionViolation]:
        return self._repository.validate_deletion(self.require(account_id), cards)

    def try_delete(self, account_id: str, cards: Iterable[Card]) -> Optional[DeletionViolation]:
        """Delete unless blocked; returns the violation when blocked."""
        violation = self.validate_deletion(account_id, cards)
        if violation is None:
            self.delete(account_id)
        return violation

    @property
    def active(self) -> list[Account]:
        return [a for a in self._items if a.active]
