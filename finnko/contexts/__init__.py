"""
Domain Contexts

In-memory authoritative collections with optimistic mutations and
background persistence.
"""

from finnko.contexts.accounts import AccountsContext
from finnko.contexts.base import DomainContext, LoadState
from finnko.contexts.budgets import BudgetsContext
from finnko.contexts.cards import CardsContext
from finnko.contexts.categories import CategoriesContext
from finnko.contexts.investments import InvestmentsContext
from finnko.contexts.transactions import TransactionsContext

__all__ = [
    "AccountsContext",
    "BudgetsContext",
    "CardsContext",
    "CategoriesContext",
    "DomainContext",
    "InvestmentsContext",
    "LoadState",
    "TransactionsContext",
]
