"""
Entity Repositories

Stateless mediators between the identity resolver and the storage adapters,
one per entity type.
"""

from finnko.repositories.accounts import AccountRepository
from finnko.repositories.base import EntityRepository
from finnko.repositories.budgets import BudgetRepository
from finnko.repositories.cards import (
    CardRepository,
    InstallmentRepository,
    PurchaseRepository,
)
from finnko.repositories.categories import CategoryRepository
from finnko.repositories.investments import (
    AllocationRepository,
    AssetRepository,
    GoalRepository,
)
from finnko.repositories.transactions import TransactionRepository

__all__ = [
    "AccountRepository",
    "AllocationRepository",
    "AssetRepository",
    "BudgetRepository",
    "CardRepository",
    "CategoryRepository",
    "EntityRepository",
    "GoalRepository",
    "InstallmentRepository",
    "PurchaseRepository",
    "TransactionRepository",
]
