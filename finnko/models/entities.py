"""
Core Data Models for Finnko

These models define the schemas of every ledger entity. Attribute names are
English; the serialized (wire) names are the Portuguese keys used by both the
local JSON documents and the remote tables, so stored data stays readable by
every client of the same backend.

DESIGN DECISION: Entities are immutable (frozen). Contexts replace an entity
with an updated copy instead of mutating it in place.

Serialization:
- to_local() produces the local JSON document shape (camelCase timestamps)
- to_row(user_id) produces a remote row (snake_case timestamps + user_id)
- from_row() / model_validate() accept either shape
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Optional
from uuid import uuid4

from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    PlainSerializer,
    StringConstraints,
    field_validator,
)


# =============================================================================
# SHARED TYPES
# =============================================================================

Money = Annotated[
    Decimal,
    PlainSerializer(lambda v: float(v), return_type=float, when_used="json"),
]

# Billing period (competência), "YYYY-MM"
Period = Annotated[str, StringConstraints(pattern=r"^\d{4}-(0[1-9]|1[0-2])$")]

# Nullable remote columns read back as the field default
Flag = Annotated[bool, BeforeValidator(lambda v: False if v is None else v)]
Text = Annotated[str, BeforeValidator(lambda v: "" if v is None else v)]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid4())


# =============================================================================
# ENUMS
# =============================================================================

class CategoryType(str, Enum):
    """Category / transaction type."""
    INCOME = "Entrada"
    EXPENSE = "Saida"
    INVESTMENT = "Investimento"
    TRANSFER = "Transferencia"
    REVERSAL = "Estorno"


class CardBrand(str, Enum):
    VISA = "Visa"
    MASTERCARD = "Mastercard"
    ELO = "Elo"
    AMEX = "Amex"
    HIPERCARD = "Hipercard"
    OTHER = "Outra"


class Recurrence(str, Enum):
    DAILY = "diario"
    WEEKLY = "semanal"
    MONTHLY = "mensal"
    ANNUAL = "anual"


class AssetCategory(str, Enum):
    VARIABLE_INCOME = "Renda Variável"
    FIXED_INCOME = "Renda Fixa"
    OTHER = "Outros"


# =============================================================================
# BASE ENTITY
# =============================================================================

class LedgerEntity(BaseModel):
    """
    Base for every identified ledger entity.

    Ids are opaque strings assigned by the repository factory (uuid4 for new
    entities). Timestamps are optional because legacy local data may lack them.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    id: str = Field(default_factory=new_id, min_length=1)
    created_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
    )
    updated_at: Optional[datetime] = Field(
        default=None,
        validation_alias=AliasChoices("updatedAt", "updated_at"),
        serialization_alias="updatedAt",
    )

    def to_local(self) -> dict[str, Any]:
        """Serialize to the local JSON document shape."""
        return self.model_dump(mode="json", by_alias=True)

    def to_row(self, user_id: str) -> dict[str, Any]:
        """
        Serialize to a remote row scoped to user_id.

        Every row of a batch carries the same key set; missing timestamps are
        filled so PostgREST accepts the batch.
        """
        data = self.to_local()
        now = utc_now().isoformat()
        created = data.pop("createdAt", None) or now
        data["created_at"] = created
        data["updated_at"] = data.pop("updatedAt", None) or created
        data["user_id"] = user_id
        return data

    @classmethod
    def from_row(cls, row: dict[str, Any]):
        return cls.model_validate(row)


# =============================================================================
# ENTITIES
# =============================================================================

class Account(LedgerEntity):
    """
    Bank account (conta).

    opening_balance / opening_date are only changed through the explicit
    opening-balance operation, never through a generic update.
    """
    name: str = Field(..., alias="nome", min_length=1)
    opening_balance: Money = Field(default=Decimal("0"), alias="saldo_inicial")
    opening_date: date = Field(default_factory=date.today, alias="data_inicial")
    active: Flag = Field(default=True, alias="ativo")
    color: Optional[str] = Field(default=None, alias="cor")

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Account name cannot be empty")
        return v


class Card(LedgerEntity):
    """Credit card (cartão)."""
    nickname: str = Field(..., alias="apelido", min_length=1)
    closing_day: int = Field(..., alias="dia_fechamento", ge=1, le=31)
    due_day: int = Field(..., alias="dia_vencimento", ge=1, le=31)
    limit: Optional[Money] = Field(default=None, alias="limite")
    brand: CardBrand = Field(default=CardBrand.OTHER, alias="bandeira")
    color: str = Field(default="#000000", alias="cor")
    default_account_id: Optional[str] = Field(default=None, alias="conta_id_padrao")


class Category(LedgerEntity):
    """Transaction category. System categories are seeded, never user-created."""
    name: str = Field(..., alias="nome", min_length=1)
    type: CategoryType = Field(..., alias="tipo")
    system: Flag = Field(default=False, alias="sistema")
    monthly_budget: Optional[Money] = Field(default=None, alias="orcamento_mensal")
    order: Optional[int] = Field(default=None, alias="ordem")


class Transaction(LedgerEntity):
    """
    Bank transaction (transação).

    A transfer is two transactions linked through transfer_pair_id with
    opposite signed amounts.
    """
    account_id: str = Field(..., alias="conta_id")
    occurred_on: date = Field(..., alias="data")
    amount: Money = Field(..., alias="valor")
    category_id: str = Field(..., alias="categoria_id")
    type: CategoryType = Field(..., alias="tipo")
    description: Text = Field(default="", alias="descricao")
    transfer_pair_id: Optional[str] = Field(default=None, alias="transferencia_par_id")
    forecast: Flag = Field(default=False, alias="previsto")
    realized: Flag = Field(default=True, alias="realizado")
    card_id: Optional[str] = Field(default=None, alias="cartao_id")
    billing_period: Optional[Period] = Field(default=None, alias="competencia_fatura")
    is_card_payment: Flag = Field(default=False, alias="meta_pagamento")
    is_opening_balance: Flag = Field(default=False, alias="meta_saldo_inicial")
    recurrence: Optional[Recurrence] = Field(default=None, alias="recorrencia")
    recurrence_id: Optional[str] = Field(default=None, alias="recorrencia_id")
    goal_id: Optional[str] = Field(default=None, alias="objetivo_id")

    @property
    def is_transfer(self) -> bool:
        return self.transfer_pair_id is not None


class CardPurchase(LedgerEntity):
    """Card purchase (compra), split into installments."""
    card_id: str = Field(..., alias="cartao_id")
    purchase_date: date = Field(..., alias="data_compra")
    total_amount: Money = Field(..., alias="valor_total")
    installment_count: int = Field(default=1, alias="parcelas_total", ge=1)
    category_id: str = Field(..., alias="categoria_id")
    description: Text = Field(default="", alias="descricao")
    is_reversal: Flag = Field(default=False, alias="estorno")
    recurrence: Optional[Recurrence] = Field(default=None, alias="recorrencia")
    recurrence_id: Optional[str] = Field(default=None, alias="recorrencia_id")


class Installment(LedgerEntity):
    """Installment (parcela) of a card purchase, billed in one period."""
    purchase_id: str = Field(..., alias="compra_id")
    number: int = Field(..., alias="n_parcela", ge=1)
    amount: Money = Field(..., alias="valor_parcela")
    billing_period: Period = Field(..., alias="competencia_fatura")
    paid: Flag = Field(default=False, alias="paga")


class InvestmentGoal(LedgerEntity):
    """Investment goal (objetivo)."""
    name: str = Field(..., alias="nome", min_length=1)
    target_amount: Money = Field(..., alias="valor_meta")
    target_date: date = Field(..., alias="data_meta")


class Asset(LedgerEntity):
    """Investment asset (ativo)."""
    name: str = Field(..., alias="nome", min_length=1)
    category: AssetCategory = Field(default=AssetCategory.OTHER, alias="categoria")
    asset_class: Text = Field(default="", alias="classe_ativo")
    quantity: Decimal = Field(default=Decimal("0"), alias="quantidade")
    purchase_date: date = Field(..., alias="data_compra")
    unit_purchase_price: Money = Field(default=Decimal("0"), alias="valor_compra_unitario")
    unit_current_price: Money = Field(default=Decimal("0"), alias="valor_atual_unitario")
    notes: Optional[str] = Field(default=None, alias="observacao")

    @property
    def current_value(self) -> Decimal:
        return self.quantity * self.unit_current_price


class Allocation(LedgerEntity):
    """Share (percent) of an asset assigned to a goal."""
    asset_id: str = Field(..., alias="ativo_id")
    goal_id: str = Field(..., alias="objetivo_id")
    percent: Decimal = Field(..., alias="percentual", ge=0, le=100)


class CategoryBudget(BaseModel):
    """
    Budget of one category for one billing period.

    Unique per (identity, category, period); it carries no id of its own.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )

    category_id: str = Field(..., alias="categoria_id")
    period: Period = Field(..., alias="competencia")
    amount: Money = Field(..., alias="valor")

    @property
    def key(self) -> tuple[str, str]:
        return (self.category_id, self.period)

    def to_local(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def to_row(self, user_id: str) -> dict[str, Any]:
        data = self.to_local()
        data["user_id"] = user_id
        return data

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "CategoryBudget":
        return cls.model_validate(row)


# =============================================================================
# IDENTITY & VALIDATION RESULTS
# =============================================================================

class Identity(BaseModel):
    """An authenticated session. Anonymous is represented by None."""
    model_config = ConfigDict(frozen=True)

    user_id: str = Field(..., min_length=1)
    email: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None


class DeletionViolation(BaseModel):
    """
    Why a destructive operation is blocked.

    Returned as a value, never raised.
    """
    model_config = ConfigDict(frozen=True)

    entity_type: str
    entity_id: str
    reason: str
    blocking_ids: tuple[str, ...] = ()

    def __str__(self) -> str:
        return self.reason
