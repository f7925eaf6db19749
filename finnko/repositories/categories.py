"""Category repository."""

from typing import Any, Iterable, Optional, Sequence

import structlog

from finnko.models.defaults import DEFAULT_CATEGORIES, SYSTEM_CATEGORIES
from finnko.models.entities import CardPurchase, Category, DeletionViolation, Transaction
from finnko.repositories.base import EntityRepository
from finnko.validation.referential import check_category_deletion


logger = structlog.get_logger(__name__)


class CategoryRepository(EntityRepository[Category]):
    """
    Transaction categories.

    Locally, system categories are merged into every read and written back
    at once, and a profile with no categories at all gets the starter set.
    Remotely, seeding is done by the create_default_categories procedure at
    sign-in.
    """

    entity_type = "category"
    model = Category
    local_key = "categorias"
    table = "categorias"
    order_by = ("nome", "id")

    def _read_local(self) -> list[Category]:
        stored_raw = self._local.get(self.local_key)
        if stored_raw is None:
            seeded = list(DEFAULT_CATEGORIES)
            self._write_local(seeded)
            logger.info("default_categories_seeded", count=len(seeded))
            return seeded

        stored = super()._read_local()
        known = {c.id for c in stored}
        missing = [c for c in SYSTEM_CATEGORIES if c.id not in known]
        if missing:
            stored.extend(missing)
            self._write_local(stored)
            logger.info("system_categories_restored", count=len(missing))
        return stored

    def create(self, **fields: Any) -> Category:
        """User categories are never system categories."""
        fields["system"] = False
        return super().create(**fields)

    def import_categories(self, imported: Sequence[Category]) -> list[Category]:
        """System defaults followed by the imported user (non-system) categories."""
        return list(SYSTEM_CATEGORIES) + [c for c in imported if not c.system]

    def validate_deletion(
        self,
        entity: Category,
        transactions: Iterable[Transaction] = (),
        purchases: Iterable[CardPurchase] = (),
    ) -> Optional[DeletionViolation]:
        return check_category_deletion(entity, transactions, purchases)
