"""Investment goal, asset and allocation repositories."""

from finnko.models.entities import Allocation, Asset, InvestmentGoal
from finnko.repositories.base import EntityRepository


class GoalRepository(EntityRepository[InvestmentGoal]):

    entity_type = "goal"
    model = InvestmentGoal
    local_key = "objetivos"
    table = "objetivos"
    order_by = ("nome", "id")


class AssetRepository(EntityRepository[Asset]):

    entity_type = "asset"
    model = Asset
    local_key = "ativos"
    table = "ativos"
    order_by = ("nome", "id")


class AllocationRepository(EntityRepository[Allocation]):
    """Allocations carry no timestamps remotely."""

    entity_type = "allocation"
    model = Allocation
    local_key = "alocacoes"
    table = "alocacoes"
    order_by = ("ativo_id", "objetivo_id", "id")
    remote_timestamps = False
