"""Category budgets context, keyed by (category_id, period)."""

from decimal import Decimal
from typing import Mapping, Sequence

from finnko.contexts.base import DomainContext
from finnko.models.entities import CategoryBudget
from finnko.utils.periods import add_period_months


class BudgetsContext(DomainContext[CategoryBudget]):

    @staticmethod
    def key_of(entity: CategoryBudget) -> tuple[str, str]:
        return entity.key

    def _schedule_remote_delete(self, keys: Sequence[tuple[str, str]]) -> None:
        keys = list(keys)
        if not keys:
            return

        async def delete() -> None:
            for category_id, period in keys:
                await self._repository.delete_remote_where(
                    {"categoria_id": category_id, "competencia": period}
                )

        self.schedule("delete", delete)

    def for_period(self, period: str) -> list[CategoryBudget]:
        return [b for b in self._items if b.period == period]

    def amount_for(self, category_id: str, period: str) -> Decimal:
        budget = self.get((category_id, period))
        return budget.amount if budget is not None else Decimal("0")

    def set_budgets(self, period: str, amounts: Mapping[str, Decimal]) -> list[CategoryBudget]:
        """Set (create or overwrite) the budgets of one period."""
        return self.add_many(self._repository.for_months([period], dict(amounts)))

    def repeat_for_next_months(
        self,
        start: str,
        months: int,
        amounts: Mapping[str, Decimal],
    ) -> list[CategoryBudget]:
        """Copy amounts into the `months` periods following start."""
        if months < 1:
            raise ValueError("months must be at least 1")
        periods = [add_period_months(start, offset) for offset in range(1, months + 1)]
        return self.add_many(self._repository.for_months(periods, dict(amounts)))

    def remove(self, category_id: str, period: str) -> None:
        self.delete((category_id, period))
