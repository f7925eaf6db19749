"""
Seed data: default categories.

System categories are referenced by fixed ids from generated transactions
(opening balances, transfers, card payments), so their ids never change.
"""

from finnko.models.entities import Category, CategoryType


TRANSFER_CATEGORY_ID = "t3d4e5f6-a7b8-4c9d-0e1f-2a3b4c5d6e70"
OPENING_BALANCE_CATEGORY_ID = "t3d4e5f6-a7b8-4c9d-0e1f-2a3b4c5d6e71"
CARD_PAYMENT_CATEGORY_ID = "t3d4e5f6-a7b8-4c9d-0e1f-2a3b4c5d6e72"
REVERSAL_CATEGORY_ID = "t3d4e5f6-a7b8-4c9d-0e1f-2a3b4c5d6e73"

TRANSFER_CATEGORY_NAME = "Transferência"
CARD_PAYMENT_CATEGORY_NAME = "Pagamento de Cartão"


SYSTEM_CATEGORIES: tuple[Category, ...] = (
    Category(id=TRANSFER_CATEGORY_ID, name=TRANSFER_CATEGORY_NAME,
             type=CategoryType.TRANSFER, system=True, order=0),
    Category(id=OPENING_BALANCE_CATEGORY_ID, name="Saldo Inicial",
             type=CategoryType.TRANSFER, system=True, order=1),
    Category(id=CARD_PAYMENT_CATEGORY_ID, name=CARD_PAYMENT_CATEGORY_NAME,
             type=CategoryType.EXPENSE, system=True, order=0),
    Category(id=REVERSAL_CATEGORY_ID, name="Estorno",
             type=CategoryType.REVERSAL, system=True, order=0),
)

# Starter user categories, written once when an identity has none.
STARTER_CATEGORIES: tuple[Category, ...] = (
    Category(id="c0a1b2c3-d4e5-4f60-8a1b-2c3d4e5f6a01", name="Salário",
             type=CategoryType.INCOME, order=0),
    Category(id="c0a1b2c3-d4e5-4f60-8a1b-2c3d4e5f6a02", name="Alimentação",
             type=CategoryType.EXPENSE, order=1),
    Category(id="c0a1b2c3-d4e5-4f60-8a1b-2c3d4e5f6a03", name="Moradia",
             type=CategoryType.EXPENSE, order=2),
    Category(id="c0a1b2c3-d4e5-4f60-8a1b-2c3d4e5f6a04", name="Transporte",
             type=CategoryType.EXPENSE, order=3),
    Category(id="c0a1b2c3-d4e5-4f60-8a1b-2c3d4e5f6a05", name="Lazer",
             type=CategoryType.EXPENSE, order=4),
    Category(id="c0a1b2c3-d4e5-4f60-8a1b-2c3d4e5f6a06", name="Reserva",
             type=CategoryType.INVESTMENT, order=0),
)

DEFAULT_CATEGORIES: tuple[Category, ...] = SYSTEM_CATEGORIES + STARTER_CATEGORIES
