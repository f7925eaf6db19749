"""
Investments context: goals, assets and the allocations linking them.

An allocation assigns a percentage of an asset's current value to a goal.
An asset's allocations never exceed 100% in total.
"""

import asyncio
from decimal import Decimal
from typing import Any, Mapping, Optional

from finnko.audit.logger import PersistenceSink
from finnko.contexts.base import DomainContext, LoadState
from finnko.models.entities import Allocation, Asset, InvestmentGoal
from finnko.repositories.investments import AllocationRepository, AssetRepository, GoalRepository
from finnko.services.identity import IdentityResolver


HUNDRED = Decimal("100")


class InvestmentsContext:

    def __init__(
        self,
        goals: GoalRepository,
        assets: AssetRepository,
        allocations: AllocationRepository,
        identity: IdentityResolver,
        sink: Optional[PersistenceSink] = None,
    ):
        self._goals: DomainContext[InvestmentGoal] = DomainContext(goals, identity, sink)
        self._assets: DomainContext[Asset] = DomainContext(assets, identity, sink)
        self._allocations: DomainContext[Allocation] = DomainContext(allocations, identity, sink)
        self._parts = (self._goals, self._assets, self._allocations)

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

    @property
    def goals(self) -> list[InvestmentGoal]:
        return self._goals.items

    @property
    def assets(self) -> list[Asset]:
        return self._assets.items

    @property
    def allocations(self) -> list[Allocation]:
        return self._allocations.items

    # Goals

    def add_goal(self, **fields: Any) -> InvestmentGoal:
        return self._goals.create(**fields)

    def update_goal(self, goal: InvestmentGoal, **changes: Any) -> InvestmentGoal:
        return self._goals.update(goal, **changes)

    def delete_goal(self, goal_id: str) -> None:
        """Delete a goal and every allocation pointing at it."""
        self._goals.require(goal_id)
        self._allocations.delete_many(
            [a.id for a in self._allocations.items if a.goal_id == goal_id], remote=False
        )
        self._goals.delete_many([goal_id], remote=False)
        self._schedule_cascade(self._goals, {"objetivo_id": goal_id}, goal_id)

    # Assets

    def add_asset(self, **fields: Any) -> Asset:
        return self._assets.create(**fields)

    def update_asset(self, asset: Asset, **changes: Any) -> Asset:
        return self._assets.update(asset, **changes)

    def delete_asset(self, asset_id: str) -> None:
        """Delete an asset and its allocations."""
        self._assets.require(asset_id)
        self._allocations.delete_many((a.id for a in self.allocations_for(asset_id)), remote=False)
        self._assets.delete_many([asset_id], remote=False)
        self._schedule_cascade(self._assets, {"ativo_id": asset_id}, asset_id)

    def _schedule_cascade(self, parent: DomainContext, filters: Mapping[str, Any], parent_id: str) -> None:
        """Remote delete of the allocations, then the parent row, after allocation saves settle."""

        async def cascade() -> None:
            await self._allocations.flush()
            await self._allocations.repository.delete_remote_where(filters)
            await parent.repository.delete_remote([parent_id])

        parent.schedule("delete_cascade", cascade)

    # Allocations

    def allocations_for(self, asset_id: str) -> list[Allocation]:
        return [a for a in self._allocations.items if a.asset_id == asset_id]

    def set_allocations(self, asset_id: str, percents: Mapping[str, Decimal]) -> list[Allocation]:
        """
        Replace an asset's allocations with {goal_id: percent}.

        Zero percentages are dropped.

        Raises:
            NotFoundError: unknown asset or goal
            ValueError: total above 100%
        """
        self._assets.require(asset_id)
        wanted = {goal_id: Decimal(str(p)) for goal_id, p in percents.items() if Decimal(str(p)) != 0}
        for goal_id in wanted:
            self._goals.require(goal_id)
        total = sum(wanted.values(), Decimal("0"))
        if total > HUNDRED:
            raise ValueError(f"Allocations for asset {asset_id} total {total}%, above 100%")

        existing = {a.goal_id: a for a in self.allocations_for(asset_id)}
        removed = [a.id for goal_id, a in existing.items() if goal_id not in wanted]
        kept = []
        for goal_id, percent in wanted.items():
            current = existing.get(goal_id)
            if current is None:
                kept.append(self._allocations.repository.create(
                    asset_id=asset_id, goal_id=goal_id, percent=percent
                ))
            elif current.percent != percent:
                kept.append(self._allocations.repository.update(current, percent=percent))
            else:
                kept.append(current)

        self._allocations.delete_many(removed)
        self._allocations.add_many(kept)
        return kept

    def goal_progress(self, goal_id: str) -> Decimal:
        """Value currently allocated to goal across all assets."""
        assets = {a.id: a for a in self._assets.items}
        total = Decimal("0")
        for allocation in self._allocations.items:
            asset = assets.get(allocation.asset_id)
            if allocation.goal_id == goal_id and asset is not None:
                total += asset.current_value * allocation.percent / HUNDRED
        return total.quantize(Decimal("0.01"))
