"""
Cards context.

Composes three collections (cards, purchases, installments) that load and
save independently but are mutated together: a purchase always comes with
its installments, and deleting a card removes its purchases and their
installments.

DESIGN DECISION: the remote cascade of a card deletion runs as one task
under the cards lock. It first waits for the purchase and installment saves
already in flight (a save started before the deletion would otherwise
re-insert the rows), then deletes installments, then purchases, then the
card, so foreign keys are never violated midway.
"""

import asyncio
from decimal import Decimal
from typing import Any, Optional

from finnko.audit.logger import PersistenceSink
from finnko.contexts.base import DomainContext, LoadState
from finnko.models.entities import Card, CardPurchase, Installment, Recurrence
from finnko.repositories.cards import CardRepository, InstallmentRepository, PurchaseRepository
from finnko.services.identity import IdentityResolver


class CardsContext:
    """
    Credit cards with their purchases and installments.

    Args:
        cards: Card repository
        purchases: Purchase repository (builds installments)
        installments: Installment repository
        identity: Resolver gating the initial load
        sink: Receives background persistence failures
    """

    def __init__(
        self,
        cards: CardRepository,
        purchases: PurchaseRepository,
        installments: InstallmentRepository,
        identity: IdentityResolver,
        sink: Optional[PersistenceSink] = None,
    ):
        self._cards: DomainContext[Card] = DomainContext(cards, identity, sink)
        self._purchases: DomainContext[CardPurchase] = DomainContext(purchases, identity, sink)
        self._installments: DomainContext[Installment] = DomainContext(installments, identity, sink)
        self._parts = (self._cards, self._purchases, self._installments)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @property
    def state(self) -> LoadState:
        states = {part.state for part in self._parts}
        if states == {LoadState.LOADED}:
            return LoadState.LOADED
        if states == {LoadState.UNINITIALIZED}:
            return LoadState.UNINITIALIZED
        return LoadState.LOADING

    @property
    def is_loaded(self) -> bool:
        return self.state is LoadState.LOADED

    async def initialize(self) -> None:
        await asyncio.gather(*(part.initialize() for part in self._parts))

    def invalidate(self) -> None:
        for part in self._parts:
            part.invalidate()

    async def reload(self) -> None:
        await asyncio.gather(*(part.reload() for part in self._parts))

    async def flush(self) -> None:
        await asyncio.gather(*(part.flush() for part in self._parts))

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def cards(self) -> list[Card]:
        return self._cards.items

    @property
    def purchases(self) -> list[CardPurchase]:
        return self._purchases.items

    @property
    def installments(self) -> list[Installment]:
        return self._installments.items

    def get_card(self, card_id: str) -> Optional[Card]:
        return self._cards.get(card_id)

    def get_purchase(self, purchase_id: str) -> Optional[CardPurchase]:
        return self._purchases.get(purchase_id)

    def purchases_for(self, card_id: str) -> list[CardPurchase]:
        return [p for p in self._purchases.items if p.card_id == card_id]

    def installments_for(self, purchase_id: str) -> list[Installment]:
        return sorted(
            (i for i in self._installments.items if i.purchase_id == purchase_id),
            key=lambda i: i.number,
        )

    def bill_installments(self, card_id: str, period: str) -> list[Installment]:
        """Installments billed on card for period."""
        purchase_ids = {p.id for p in self.purchases_for(card_id)}
        return [
            i for i in self._installments.items
            if i.purchase_id in purchase_ids and i.billing_period == period
        ]

    def bill_total(self, card_id: str, period: str) -> Decimal:
        return sum((i.amount for i in self.bill_installments(card_id, period)), Decimal("0"))

    # -------------------------------------------------------------------------
    # Cards
    # -------------------------------------------------------------------------

    def add_card(self, **fields: Any) -> Card:
        return self._cards.create(**fields)

    def update_card(self, card: Card, **changes: Any) -> Card:
        return self._cards.update(card, **changes)

    def delete_card(self, card_id: str) -> None:
        """Delete a card with its purchases and their installments."""
        purchase_ids = [p.id for p in self.purchases_for(card_id)]
        wanted = set(purchase_ids)
        installment_ids = [i.id for i in self._installments.items if i.purchase_id in wanted]

        self._installments.delete_many(installment_ids, remote=False)
        self._purchases.delete_many(purchase_ids, remote=False)
        self._cards.delete_many([card_id], remote=False)

        async def cascade() -> None:
            await self._purchases.flush()
            await self._installments.flush()
            if purchase_ids:
                await self._installments.repository.delete_remote_where({"compra_id": purchase_ids})
            await self._purchases.repository.delete_remote_where({"cartao_id": card_id})
            await self._cards.repository.delete_remote([card_id])

        self._cards.schedule("delete_cascade", cascade)

    def bulk_replace_cards(self, cards: list[Card]) -> None:
        self._cards.bulk_replace(cards)

    # -------------------------------------------------------------------------
    # Purchases
    # -------------------------------------------------------------------------

    def add_purchase(self, card_id: str, installment_count: int = 1, **fields: Any) -> CardPurchase:
        """
        Record a purchase and its installments.

        Raises:
            NotFoundError: unknown card
        """
        card = self._cards.require(card_id)
        purchase, installments = self._purchases.repository.create_purchase(
            card, installment_count=installment_count, **fields
        )
        self._purchases.add(purchase)
        self._installments.add_many(installments)
        return purchase

    def add_recurring_purchase(
        self,
        card_id: str,
        recurrence: Recurrence,
        occurrences: Optional[int] = None,
        **fields: Any,
    ) -> list[CardPurchase]:
        card = self._cards.require(card_id)
        purchases, installments = self._purchases.repository.create_recurring_purchase(
            card, recurrence, occurrences=occurrences, **fields
        )
        self._purchases.add_many(purchases)
        self._installments.add_many(installments)
        return purchases

    def update_purchase(
        self,
        purchase: CardPurchase,
        card_id: Optional[str] = None,
        installment_count: Optional[int] = None,
        **changes: Any,
    ) -> CardPurchase:
        """
        Update a purchase and regenerate its installments.

        The old installments are deleted (remotely too) and replaced, so paid
        flags on them are reset.
        """
        current = self._purchases.require(purchase.id)
        card = self._cards.require(card_id or current.card_id)
        edited = self._purchases.repository.update(current, **changes) if changes else current
        updated, installments = self._purchases.repository.rebuild_purchase(
            edited, card, installment_count=installment_count
        )
        old_ids = [i.id for i in self.installments_for(purchase.id)]
        self._purchases.replace(updated)
        self._installments.delete_many(old_ids)
        self._installments.add_many(installments)
        return updated

    def delete_purchase(self, purchase_id: str) -> None:
        installment_ids = [i.id for i in self.installments_for(purchase_id)]
        self._installments.delete_many(installment_ids, remote=False)
        self._purchases.delete_many([purchase_id], remote=False)

        async def cascade() -> None:
            await self._installments.flush()
            await self._installments.repository.delete_remote_where({"compra_id": purchase_id})
            await self._purchases.repository.delete_remote([purchase_id])

        self._purchases.schedule("delete_cascade", cascade)

    def bulk_replace_purchases(self, purchases: list[CardPurchase]) -> None:
        self._purchases.bulk_replace(purchases)

    # -------------------------------------------------------------------------
    # Installments
    # -------------------------------------------------------------------------

    def mark_installments_paid(self, card_id: str, period: str, paid: bool = True) -> list[Installment]:
        """Flag every installment of a card's bill for period."""
        updated = [
            self._installments.repository.update(i, paid=paid)
            for i in self.bill_installments(card_id, period)
            if i.paid != paid
        ]
        return self._installments.add_many(updated)

    def bulk_replace_installments(self, installments: list[Installment]) -> None:
        self._installments.bulk_replace(installments)
