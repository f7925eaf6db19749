"""
Category Budget Repository

Budgets have no id of their own: they are keyed by (category, period) and
upserted on that composite key. Deployments whose categoria_orcamentos table
lacks the matching unique constraint are handled by the remote adapter's
delete-then-insert fallback.

When the remote table is unavailable, reads and writes fall back to the
local store so budgets still work for the session.
"""

from decimal import Decimal
from typing import Any, Sequence

import structlog

from finnko.models.entities import CategoryBudget
from finnko.repositories.base import EntityRepository
from finnko.services.storage.interface import RemoteStoreError


logger = structlog.get_logger(__name__)


class BudgetRepository(EntityRepository[CategoryBudget]):

    entity_type = "budget"
    model = CategoryBudget
    local_key = "cat_budgets"
    table = "categoria_orcamentos"
    order_by = ("competencia", "categoria_id")
    conflict_key = ("categoria_id", "competencia")
    remote_timestamps = False

    async def get_all(self) -> list[CategoryBudget]:
        identity = await self._remote_identity()
        if identity is None:
            return self._read_local()
        try:
            rows = await self._remote.select_all(self.table, identity, order_by=self.order_by)
        except RemoteStoreError as e:
            logger.warning("budget_remote_unavailable", kind=e.kind.value, error=str(e))
            return self._read_local()
        return self._parse(rows, source="remote")

    async def get_for_month(self, period: str) -> list[CategoryBudget]:
        """Budgets of one billing period."""
        identity = await self._remote_identity()
        if identity is not None:
            try:
                rows = await self._remote.select_all(
                    self.table, identity, order_by=("categoria_id",), filters={"competencia": period}
                )
                return self._parse(rows, source="remote")
            except RemoteStoreError as e:
                logger.warning("budget_remote_unavailable", kind=e.kind.value, error=str(e))
        return [b for b in self._read_local() if b.period == period]

    async def save(self, entities: Sequence[CategoryBudget]) -> None:
        """
        Upsert every budget on (categoria_id, competencia).

        A remote failure still keeps a local copy, then propagates.
        """
        try:
            await super().save(entities)
        except RemoteStoreError:
            self._write_local(entities)
            raise

    def create(self, **fields: Any) -> CategoryBudget:
        return CategoryBudget(**fields)

    def update(self, entity: CategoryBudget, **changes: Any) -> CategoryBudget:
        data = entity.model_dump()
        data.update(changes)
        return CategoryBudget.model_validate(data)

    def for_months(
        self,
        periods: Sequence[str],
        amounts: dict[str, Decimal],
    ) -> list[CategoryBudget]:
        """One budget per (period, category) pair."""
        return [
            self.create(category_id=category_id, period=period, amount=amount)
            for period in periods
            for category_id, amount in amounts.items()
        ]
