"""
Transaction Repository

Besides the generic operations, this repository builds the derived
transactions of the ledger:
- recurring series (one realized entry followed by forecast entries)
- transfers (a debit/credit pair linked through transfer_pair_id)
- card bill payments and their reversals
"""

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional, Sequence

from finnko.config import get_settings
from finnko.models.defaults import (
    CARD_PAYMENT_CATEGORY_NAME,
    CARD_PAYMENT_CATEGORY_ID,
    REVERSAL_CATEGORY_ID,
    TRANSFER_CATEGORY_ID,
    TRANSFER_CATEGORY_NAME,
)
from finnko.models.entities import (
    Account,
    Card,
    CardPurchase,
    Category,
    CategoryType,
    Installment,
    Recurrence,
    Transaction,
    new_id,
)
from finnko.repositories.base import EntityRepository
from finnko.services.storage.interface import NotFoundError
from finnko.utils.periods import occurrence_date, to_money


class TransactionRepository(EntityRepository[Transaction]):

    entity_type = "transaction"
    model = Transaction
    local_key = "transacoes"
    table = "transacoes_banco"
    order_by = ("data", "id")

    def create(self, category: Category, **fields: Any) -> Transaction:
        """New transaction whose type follows its category."""
        fields["category_id"] = category.id
        fields["type"] = category.type
        return super().create(**fields)

    def update(self, entity: Transaction, category: Optional[Category] = None, **changes: Any) -> Transaction:
        if category is not None:
            changes["category_id"] = category.id
            changes["type"] = category.type
        return super().update(entity, **changes)

    def create_recurring(
        self,
        category: Category,
        recurrence: Recurrence,
        occurrences: Optional[int] = None,
        **fields: Any,
    ) -> list[Transaction]:
        """
        Expand a recurring transaction into its series.

        The first entry keeps the given flags; later ones are forecast and not
        realized. All entries share one recurrence_id.

        Args:
            occurrences: Series length; defaults to the configured horizon
                (24, or 5 for annual recurrences)
        """
        if occurrences is None:
            app = get_settings().app
            occurrences = (
                app.annual_recurrence_occurrences
                if recurrence is Recurrence.ANNUAL
                else app.recurrence_occurrences
            )
        start: date = fields.pop("occurred_on")
        recurrence_id = new_id()
        series = []
        for index in range(occurrences):
            entry = dict(fields)
            entry.update(
                occurred_on=occurrence_date(start, recurrence, index),
                recurrence=recurrence,
                recurrence_id=recurrence_id,
            )
            if index > 0:
                entry.update(forecast=True, realized=False)
            series.append(self.create(category, **entry))
        return series

    @staticmethod
    def _transfer_category_id(categories: Iterable[Category]) -> str:
        for category in categories:
            if (category.system and category.type is CategoryType.TRANSFER
                    and category.name == TRANSFER_CATEGORY_NAME):
                return category.id
        return TRANSFER_CATEGORY_ID

    @staticmethod
    def _account_name(accounts: Iterable[Account], account_id: str) -> str:
        for account in accounts:
            if account.id == account_id:
                return account.name
        return account_id

    def create_transfer(
        self,
        origin_id: str,
        destination_id: str,
        amount: Decimal,
        occurred_on: date,
        description: str,
        accounts: Iterable[Account],
        categories: Iterable[Category] = (),
    ) -> tuple[Transaction, Transaction]:
        """
        Build a transfer pair.

        The debit (origin, negative amount) always gets the smaller id of the
        pair, so either side can find its role from the ids alone.
        """
        if origin_id == destination_id:
            raise ValueError("Transfer origin and destination must differ")
        accounts = list(accounts)
        first, second = sorted((new_id(), new_id()))
        debit_id, credit_id = first, second
        category_id = self._transfer_category_id(categories)
        value = abs(to_money(amount))
        origin_name = self._account_name(accounts, origin_id)
        destination_name = self._account_name(accounts, destination_id)

        debit = super().create(
            account_id=origin_id,
            occurred_on=occurred_on,
            amount=-value,
            category_id=category_id,
            type=CategoryType.TRANSFER,
            description=f"Transf. p/ {destination_name}: {description}",
            transfer_pair_id=credit_id,
        ).model_copy(update={"id": debit_id})
        credit = super().create(
            account_id=destination_id,
            occurred_on=occurred_on,
            amount=value,
            category_id=category_id,
            type=CategoryType.TRANSFER,
            description=f"Transf. de {origin_name}: {description}",
            transfer_pair_id=debit_id,
        ).model_copy(update={"id": credit_id})
        return debit, credit

    def update_transfer(
        self,
        transaction_id: str,
        transactions: Sequence[Transaction],
        accounts: Iterable[Account],
        amount: Decimal,
        occurred_on: date,
        description: str,
    ) -> tuple[Transaction, Transaction]:
        """
        Rewrite both sides of a transfer.

        Raises:
            NotFoundError: transaction or its pair is missing
        """
        by_id = {t.id: t for t in transactions}
        tx = by_id.get(transaction_id)
        if tx is None or tx.transfer_pair_id is None:
            raise NotFoundError(f"Transfer {transaction_id} not found")
        pair = by_id.get(tx.transfer_pair_id)
        if pair is None:
            raise NotFoundError(f"Transfer pair {tx.transfer_pair_id} not found")

        debit, credit = (tx, pair) if tx.id < pair.id else (pair, tx)
        accounts = list(accounts)
        value = abs(to_money(amount))
        updated_debit = super().update(
            debit,
            amount=-value,
            occurred_on=occurred_on,
            description=f"Transf. p/ {self._account_name(accounts, credit.account_id)}: {description}",
        )
        updated_credit = super().update(
            credit,
            amount=value,
            occurred_on=occurred_on,
            description=f"Transf. de {self._account_name(accounts, debit.account_id)}: {description}",
        )
        return updated_debit, updated_credit

    def create_payment(
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
        """
        Bill payment of card for period.

        When every purchase billed in the period shares one category the
        payment uses it; otherwise the "Pagamento de Cartão" system category.
        """
        card_purchases = {p.id: p for p in purchases if p.card_id == card.id}
        billed = [
            card_purchases[i.purchase_id]
            for i in installments
            if i.billing_period == period and i.purchase_id in card_purchases
        ]

        category_ids = list(dict.fromkeys(p.category_id for p in billed if p.category_id))
        if len(category_ids) == 1:
            category_id = category_ids[0]
        else:
            categories = list(categories)
            fallback = next(
                (c for c in categories
                 if c.system and c.name == CARD_PAYMENT_CATEGORY_NAME and c.type is CategoryType.EXPENSE),
                None,
            ) or next((c for c in categories if c.type is CategoryType.EXPENSE), None)
            category_id = fallback.id if fallback else CARD_PAYMENT_CATEGORY_ID

        descriptions = list(dict.fromkeys(p.description for p in billed if p.description))
        description = f"Pagamento Fatura {card.nickname}"
        if descriptions:
            description += " - " + ", ".join(descriptions)

        return super().create(
            account_id=account_id,
            occurred_on=occurred_on,
            amount=to_money(amount),
            category_id=category_id,
            type=CategoryType.EXPENSE,
            description=description,
            forecast=False,
            realized=True,
            is_card_payment=True,
            card_id=card.id,
            billing_period=period,
        )

    def create_reversal(
        self,
        payment: Transaction,
        card_name: str,
        reason: str,
        notes: Optional[str] = None,
        category_id: Optional[str] = None,
        occurred_on: Optional[date] = None,
    ) -> Transaction:
        """Income entry that reverses a card bill payment."""
        if not payment.is_card_payment:
            raise ValueError(f"Transaction {payment.id} is not a card payment")
        description = f"[ESTORNO] Pagamento Fatura {card_name} - {reason}"
        if notes:
            description += f" ({notes})"
        return super().create(
            account_id=payment.account_id,
            occurred_on=occurred_on or date.today(),
            amount=abs(payment.amount),
            category_id=category_id or REVERSAL_CATEGORY_ID,
            type=CategoryType.INCOME,
            description=description,
            forecast=False,
            realized=True,
            is_card_payment=False,
            card_id=payment.card_id,
            billing_period=payment.billing_period,
        )

    async def delete_remote_by_account(self, account_id: str) -> None:
        await self.delete_remote_where({"conta_id": account_id})
