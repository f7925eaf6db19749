"""
Data Models Package

This package contains all Pydantic models used by Finnko.
All data flowing between contexts, repositories and stores conforms to these schemas.
"""

from finnko.models.entities import (
    Account,
    Allocation,
    Asset,
    AssetCategory,
    Card,
    CardBrand,
    CardPurchase,
    Category,
    CategoryBudget,
    CategoryType,
    DeletionViolation,
    Identity,
    Installment,
    InvestmentGoal,
    LedgerEntity,
    Recurrence,
    Transaction,
    utc_now,
)
from finnko.models.defaults import (
    CARD_PAYMENT_CATEGORY_ID,
    DEFAULT_CATEGORIES,
    OPENING_BALANCE_CATEGORY_ID,
    REVERSAL_CATEGORY_ID,
    SYSTEM_CATEGORIES,
    TRANSFER_CATEGORY_ID,
)

__all__ = [
    # Entities
    "Account",
    "Allocation",
    "Asset",
    "Card",
    "CardPurchase",
    "Category",
    "CategoryBudget",
    "Installment",
    "InvestmentGoal",
    "LedgerEntity",
    "Transaction",
    # Enums
    "AssetCategory",
    "CardBrand",
    "CategoryType",
    "Recurrence",
    # Session / validation
    "DeletionViolation",
    "Identity",
    # Seed data
    "CARD_PAYMENT_CATEGORY_ID",
    "DEFAULT_CATEGORIES",
    "OPENING_BALANCE_CATEGORY_ID",
    "REVERSAL_CATEGORY_ID",
    "SYSTEM_CATEGORIES",
    "TRANSFER_CATEGORY_ID",
    "utc_now",
]
