"""
Transactions context.

Deleting either side of a transfer deletes both sides.
"""

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from finnko.contexts.base import DomainContext
from finnko.models.entities import (
    Account,
    Card,
    CardPurchase,
    Category,
    Installment,
    Recurrence,
    Transaction,
)


class TransactionsContext(DomainContext[Transaction]):

    def add_transaction(self, category: Category, **fields: Any) -> Transaction:
        return self.add(self._repository.create(category, **fields))

    def add_recurring(self, category: Category, recurrence: Recurrence, **fields: Any) -> list[Transaction]:
        return self.add_many(self._repository.create_recurring(category, recurrence, **fields))

    def add_transfer(
        self,
        origin_id: str,
        destination_id: str,
        amount: Decimal,
        occurred_on: date,
        description: str,
        accounts: Iterable[Account],
        categories: Iterable[Category] = (),
    ) -> tuple[Transaction, Transaction]:
        pair = self._repository.create_transfer(
            origin_id, destination_id, amount, occurred_on, description, accounts, categories
        )
        self.add_many(pair)
        return pair

    def update(self, entity: Transaction, category: Optional[Category] = None, **changes: Any) -> Transaction:
        return self.replace(self._repository.update(entity, category=category, **changes))

    def update_transfer(
        self,
        transaction_id: str,
        amount: Decimal,
        occurred_on: date,
        description: str,
        accounts: Iterable[Account],
    ) -> tuple[Transaction, Transaction]:
        pair = self._repository.update_transfer(
            transaction_id, self._items, accounts, amount, occurred_on, description
        )
        self.add_many(pair)
        return pair

    def _with_pairs(self, ids: Iterable[str]) -> list[str]:
        by_id = {t.id: t for t in self._items}
        expanded = []
        for tx_id in ids:
            expanded.append(tx_id)
            tx = by_id.get(tx_id)
            if tx is not None and tx.transfer_pair_id:
                expanded.append(tx.transfer_pair_id)
        return list(dict.fromkeys(expanded))

    def delete_many(self, keys: Iterable[str], remote: bool = True) -> None:
        super().delete_many(self._with_pairs(keys), remote=remote)

    def update_category(self, ids: Sequence[str], category: Category) -> list[Transaction]:
        """Move transactions to category (type follows the category)."""
        wanted = set(ids)
        updated = [
            self._repository.update(t, category=category)
            for t in self._items
            if t.id in wanted
        ]
        return self.add_many(updated)

    def toggle_realized(self, transaction_id: str) -> Transaction:
        tx = self.require(transaction_id)
        realized = not tx.realized
        # A realized entry is no longer a forecast
        return self.update(tx, realized=realized, forecast=tx.forecast and not realized)

    def add_payment(
        self,
        card: Card,
        account_id: str,
        amount: Decimal,
        occurred_on: date,
        period: str,
        categories: Iterable[Category],
        installments: Iterable[Installment],
        purchases: Iterable[CardPurchase],
    ) -> Transaction:
        """Record a card bill payment."""
        payment = self._repository.create_payment(
            card, account_id, amount, occurred_on, period, categories, installments, purchases
        )
        return self.add(payment)

    def add_reversal(
        self,
        payment_id: str,
        card_name: str,
        reason: str,
        notes: Optional[str] = None,
        category_id: Optional[str] = None,
    ) -> Transaction:
        """Record the reversal (refund) of a card bill payment."""
        payment = self.require(payment_id)
        reversal = self._repository.create_reversal(
            payment, card_name, reason, notes=notes, category_id=category_id
        )
        return self.add(reversal)

    def bulk_add(self, transactions: Sequence[Transaction]) -> list[Transaction]:
        return self.add_many(transactions)

    def remove_by_account(self, account_id: str, remote: bool = True) -> None:
        """Drop every transaction of an account (cascade after account deletion)."""
        self._mutate(lambda items: [t for t in items if t.account_id != account_id])
        if remote:
            self.schedule(
                "delete_by_account",
                lambda: self._repository.delete_remote_by_account(account_id),
            )

    def for_account(self, account_id: str) -> list[Transaction]:
        return [t for t in self._items if t.account_id == account_id]

    def balance_of(self, account_id: str, include_forecast: bool = False) -> Decimal:
        """Sum of the account's realized entries (plus forecasts if asked)."""
        return sum(
            (t.amount for t in self._items
             if t.account_id == account_id and (t.realized or include_forecast)),
            Decimal("0"),
        )
