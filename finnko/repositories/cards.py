"""
Card, purchase and installment repositories.

A purchase of N installments is split by cents (leftover cents on the first
installments). Installment k is billed k-1 months after the purchase's first
billing period, which depends on the card's closing day.
"""

from datetime import date
from typing import Any, Optional

from finnko.config import get_settings
from finnko.models.entities import (
    Card,
    CardPurchase,
    Installment,
    Recurrence,
    new_id,
)
from finnko.repositories.base import EntityRepository
from finnko.utils.periods import (
    add_period_months,
    first_billing_period,
    occurrence_date,
    split_installments,
)


class CardRepository(EntityRepository[Card]):

    entity_type = "card"
    model = Card
    local_key = "cartoes"
    table = "cartoes"
    order_by = ("apelido", "id")


class InstallmentRepository(EntityRepository[Installment]):

    entity_type = "installment"
    model = Installment
    local_key = "parcelas"
    table = "parcelas_cartao"
    order_by = ("competencia_fatura", "n_parcela", "id")

    def build_for(self, purchase: CardPurchase, card: Card) -> list[Installment]:
        """Installments of purchase on card."""
        amounts = split_installments(purchase.total_amount, purchase.installment_count)
        first_period = first_billing_period(purchase.purchase_date, card.closing_day)
        return [
            self.create(
                purchase_id=purchase.id,
                number=index + 1,
                amount=amount,
                billing_period=add_period_months(first_period, index),
            )
            for index, amount in enumerate(amounts)
        ]


class PurchaseRepository(EntityRepository[CardPurchase]):

    entity_type = "purchase"
    model = CardPurchase
    local_key = "compras"
    table = "compras_cartao"
    order_by = ("data_compra", "id")

    def __init__(self, *args: Any, installments: Optional[InstallmentRepository] = None, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._installments = installments or InstallmentRepository(*args, **kwargs)

    def create_purchase(
        self,
        card: Card,
        installment_count: int = 1,
        **fields: Any,
    ) -> tuple[CardPurchase, list[Installment]]:
        """New purchase on card plus its installments."""
        purchase = self.create(card_id=card.id, installment_count=installment_count, **fields)
        return purchase, self._installments.build_for(purchase, card)

    def create_recurring_purchase(
        self,
        card: Card,
        recurrence: Recurrence,
        occurrences: Optional[int] = None,
        **fields: Any,
    ) -> tuple[list[CardPurchase], list[Installment]]:
        """
        Expand a recurring purchase: one single-installment purchase per occurrence.
        """
        if occurrences is None:
            app = get_settings().app
            occurrences = (
                app.annual_recurrence_occurrences
                if recurrence is Recurrence.ANNUAL
                else app.recurrence_occurrences
            )
        start: date = fields.pop("purchase_date")
        fields.pop("installment_count", None)
        recurrence_id = new_id()
        purchases: list[CardPurchase] = []
        installments: list[Installment] = []
        for index in range(occurrences):
            purchase, parts = self.create_purchase(
                card,
                installment_count=1,
                purchase_date=occurrence_date(start, recurrence, index),
                recurrence=recurrence,
                recurrence_id=recurrence_id,
                **fields,
            )
            purchases.append(purchase)
            installments.extend(parts)
        return purchases, installments

    def rebuild_purchase(
        self,
        purchase: CardPurchase,
        card: Card,
        installment_count: Optional[int] = None,
    ) -> tuple[CardPurchase, list[Installment]]:
        """Updated purchase plus freshly generated installments replacing the old ones."""
        changes: dict[str, Any] = {"card_id": card.id}
        if installment_count is not None:
            changes["installment_count"] = installment_count
        updated = self.update(purchase, **changes)
        return updated, self._installments.build_for(updated, card)
