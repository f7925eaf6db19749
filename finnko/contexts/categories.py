"""Categories context."""

from typing import Iterable, Optional, Sequence

from finnko.contexts.base import DomainContext
from finnko.models.entities import (
    CardPurchase,
    Category,
    CategoryType,
    DeletionViolation,
    Transaction,
)


class CategoriesContext(DomainContext[Category]):

    def validate_deletion(
        self,
        category_id: str,
        transactions: Iterable[Transaction] = (),
        purchases: Iterable[CardPurchase] = (),
    ) -> Optional[DeletionViolation]:
        return self._repository.validate_deletion(self.require(category_id), transactions, purchases)

    def try_delete(
        self,
        category_id: str,
        transactions: Iterable[Transaction] = (),
        purchases: Iterable[CardPurchase] = (),
    ) -> Optional[DeletionViolation]:
        """Delete unless blocked; returns the violation when blocked."""
        violation = self.validate_deletion(category_id, transactions, purchases)
        if violation is None:
            self.delete(category_id)
        return violation

    def import_categories(self, imported: Sequence[Category]) -> None:
        """Replace user categories with imported ones, keeping the system set."""
        self.bulk_replace(self._repository.import_categories(imported))

    def by_type(self, category_type: CategoryType) -> list[Category]:
        """Categories of one type in display order."""
        matching = [c for c in self._items if c.type is category_type]
        return sorted(matching, key=lambda c: (c.order if c.order is not None else 1_000_000, c.name))

    def find_system(self, category_type: CategoryType, name: str) -> Optional[Category]:
        for category in self._items:
            if category.system and category.type is category_type and category.name == name:
                return category
        return None
