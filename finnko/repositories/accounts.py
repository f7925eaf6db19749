"""Account repository."""

from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Optional

import structlog

from finnko.models.defaults import OPENING_BALANCE_CATEGORY_ID
from finnko.models.entities import (
    Account,
    Card,
    CategoryType,
    DeletionViolation,
    Transaction,
    new_id,
    utc_now,
)
from finnko.repositories.base import EntityRepository
from finnko.services.storage.interface import RemoteStoreError
from finnko.validation.referential import check_account_deletion


logger = structlog.get_logger(__name__)

_OPENING_FIELDS = ("opening_balance", "opening_date")


class AccountRepository(EntityRepository[Account]):
    """
    Bank accounts.

    The opening balance and date are excluded from the generic update path:
    update() always carries them over from the current entity, and
    update_opening_value() is the only way to change them remotely.
    """

    entity_type = "account"
    model = Account
    local_key = "contas"
    table = "contas"
    order_by = ("nome", "id")

    def update(self, entity: Account, current: Optional[Account] = None, **changes: Any) -> Account:
        """
        Refresh updated_at and apply changes, keeping the opening balance/date.

        Args:
            entity: Edited account
            current: Account as currently held; its opening fields win
        """
        dropped = [name for name in _OPENING_FIELDS if name in changes]
        if dropped:
            logger.warning("opening_fields_ignored", account_id=entity.id, fields=dropped)
            for name in dropped:
                changes.pop(name)
        source = current if current is not None else entity
        changes["opening_balance"] = source.opening_balance
        changes["opening_date"] = source.opening_date
        return super().update(entity, **changes)

    def with_opening_value(self, account: Account, amount: Decimal, opening_date: date) -> Account:
        """Copy of account with a new opening balance/date (in-memory only)."""
        return super().update(account, opening_balance=amount, opening_date=opening_date)

    async def update_opening_value(self, account_id: str, amount: Decimal, opening_date: date) -> None:
        """
        Write the opening balance/date of one account straight to the remote store.

        Best effort: failures are logged and swallowed. Anonymous identities
        have nothing to do here (the full-collection save carries the values).
        """
        identity = await self._remote_identity()
        if identity is None:
            return
        try:
            await self._remote.update_where(
                self.table,
                {
                    "saldo_inicial": float(amount),
                    "data_inicial": opening_date.isoformat(),
                    "updated_at": utc_now().isoformat(),
                },
                {"id": account_id},
                identity,
            )
        except RemoteStoreError as e:
            logger.error("opening_value_update_failed", account_id=account_id,
                         kind=e.kind.value, error=str(e))
            self._report("update_opening_value", e)

    def create_opening_balance_transaction(self, account: Account) -> Transaction:
        """Transaction that represents the account's opening balance in statements."""
        now = utc_now()
        return Transaction(
            id=new_id(),
            account_id=account.id,
            occurred_on=account.opening_date,
            amount=account.opening_balance,
            category_id=OPENING_BALANCE_CATEGORY_ID,
            type=CategoryType.TRANSFER,
            description="Saldo inicial da conta",
            forecast=False,
            realized=True,
            is_opening_balance=True,
            created_at=now,
            updated_at=now,
        )

    def validate_deletion(self, entity: Account, cards: Iterable[Card] = ()) -> Optional[DeletionViolation]:
        return check_account_deletion(entity, cards)
