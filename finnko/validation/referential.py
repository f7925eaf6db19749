"""
Referential Integrity Checks

DESIGN DECISION: Deletion checks return a DeletionViolation value (or None)
instead of raising. Callers must check before deleting; the reason is a
human-readable message shown to the user as-is.

Rules:
- An account cannot be deleted while a card uses it as default settlement account
- A system category cannot be deleted
- A category cannot be deleted while a transaction or card purchase references it
- Cards, goals and assets are never blocked; their dependents
  (purchases, installments, allocations) are removed with them

IMPORTANT: These checks only see the collections passed in. They never load
anything themselves.
"""

from typing import Iterable, Optional

from finnko.models.entities import (
    Account,
    Card,
    CardPurchase,
    Category,
    DeletionViolation,
    Transaction,
)


def _names(items: list[str], limit: int = 3) -> str:
    shown = ", ".join(f'"{name}"' for name in items[:limit])
    if len(items) > limit:
        shown += f" (+{len(items) - limit})"
    return shown


def check_account_deletion(account: Account, cards: Iterable[Card]) -> Optional[DeletionViolation]:
    blocking = [card for card in cards if card.default_account_id == account.id]
    if not blocking:
        return None
    return DeletionViolation(
        entity_type="account",
        entity_id=account.id,
        reason=(
            f'Account "{account.name}" cannot be deleted: it is the default '
            f"account of card {_names([c.nickname for c in blocking])}."
        ),
        blocking_ids=tuple(card.id for card in blocking),
    )


def check_category_deletion(
    category: Category,
    transactions: Iterable[Transaction] = (),
    purchases: Iterable[CardPurchase] = (),
) -> Optional[DeletionViolation]:
    if category.system:
        return DeletionViolation(
            entity_type="category",
            entity_id=category.id,
            reason=f'Category "{category.name}" is a system category and cannot be deleted.',
        )

    tx_ids = [t.id for t in transactions if t.category_id == category.id]
    purchase_ids = [p.id for p in purchases if p.category_id == category.id]
    if not tx_ids and not purchase_ids:
        return None

    parts = []
    if tx_ids:
        parts.append(f"{len(tx_ids)} transaction(s)")
    if purchase_ids:
        parts.append(f"{len(purchase_ids)} card purchase(s)")
    return DeletionViolation(
        entity_type="category",
        entity_id=category.id,
        reason=(
            f'Category "{category.name}" cannot be deleted: it is used by '
            f"{' and '.join(parts)}."
        ),
        blocking_ids=tuple(tx_ids + purchase_ids),
    )

