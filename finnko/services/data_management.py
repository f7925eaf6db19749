"""
Data Management: export and bulk delete

DataExporter serializes the in-memory state of every context into one JSON
document. Import is declared but not supported yet and says so explicitly.

DataPurgeService deletes everything the current identity owns. It is a two
step flow: preview() fetches itemized counts for display, and purge() only
runs when handed that preview back as the confirmation.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional, Union

import structlog
from pydantic import BaseModel, ConfigDict, Field

from finnko.models.entities import utc_now
from finnko.services.identity import IdentityResolver
from finnko.services.preferences import PreferencesStore
from finnko.services.storage.interface import (
    LocalStoreInterface,
    RemoteStoreError,
    RemoteStoreInterface,
)

if TYPE_CHECKING:
    from finnko.contexts import (
        AccountsContext,
        BudgetsContext,
        CardsContext,
        CategoriesContext,
        InvestmentsContext,
        TransactionsContext,
    )


logger = structlog.get_logger(__name__)

SNAPSHOT_VERSION = "1.0.0"

# Collections shown in the purge confirmation, in display order
PURGE_COUNT_KEYS: tuple[str, ...] = (
    "contas",
    "cartoes",
    "transacoes",
    "compras",
    "parcelas",
    "ativos",
    "objetivos",
    "categorias",
)

PURGE_LABELS: dict[str, str] = {
    "contas": "Contas",
    "cartoes": "Cartões",
    "transacoes": "Transações",
    "compras": "Compras",
    "parcelas": "Parcelas",
    "ativos": "Ativos",
    "objetivos": "Objetivos",
    "categorias": "Categorias",
}

BUDGETS_LOCAL_KEY = "cat_budgets"


class ImportNotSupportedError(Exception):
    """Importing a backup is not supported yet."""
    pass


class PurgeNotConfirmedError(Exception):
    """purge() was called without a matching preview."""
    pass


# =============================================================================
# EXPORT
# =============================================================================

class DataExporter:
    """
    Snapshot of the whole ledger as held in memory by the contexts.

    Args:
        accounts, categories, transactions, cards, budgets, investments:
            The application's contexts
        preferences: Device preferences (settings and theme are exported)
    """

    def __init__(
        self,
        accounts: "AccountsContext",
        categories: "CategoriesContext",
        transactions: "TransactionsContext",
        cards: "CardsContext",
        budgets: "BudgetsContext",
        investments: "InvestmentsContext",
        preferences: PreferencesStore,
    ):
        self._accounts = accounts
        self._categories = categories
        self._transactions = transactions
        self._cards = cards
        self._budgets = budgets
        self._investments = investments
        self._preferences = preferences

    def build_snapshot(self) -> dict[str, Any]:
        collections = {
            "contas": self._accounts.items,
            "categorias": self._categories.items,
            "transacoes": self._transactions.items,
            "cartoes": self._cards.cards,
            "compras": self._cards.purchases,
            "parcelas": self._cards.installments,
            "cat_budgets": self._budgets.items,
            "objetivos": self._investments.goals,
            "ativos": self._investments.assets,
            "alocacoes": self._investments.allocations,
        }
        snapshot: dict[str, Any] = {
            "version": SNAPSHOT_VERSION,
            "exported_at": utc_now().isoformat(),
        }
        for key, items in collections.items():
            snapshot[key] = [item.to_local() for item in items]
        snapshot.update(self._preferences.snapshot())
        return snapshot

    def export_bytes(self) -> bytes:
        return json.dumps(self.build_snapshot(), ensure_ascii=False, indent=2).encode("utf-8")

    @staticmethod
    def backup_filename(now: Optional[datetime] = None) -> str:
        return f"finnko_backup_{(now or utc_now()).strftime('%Y-%m-%d')}.json"

    def export_to_file(self, directory: Union[str, Path]) -> Path:
        """Write the snapshot into directory and return the file path."""
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / self.backup_filename()
        path.write_bytes(self.export_bytes())
        logger.info("data_exported", path=str(path))
        return path

    def import_snapshot(self, artifact: Union[bytes, str, Path, dict]) -> None:
        """
        Raises:
            ImportNotSupportedError: always
        """
        raise ImportNotSupportedError("Importing a backup is not supported yet")


# =============================================================================
# BULK DELETE
# =============================================================================

class PurgeSummary(BaseModel):
    """Itemized counts shown before a purge. Passing it back confirms the purge."""
    model_config = ConfigDict(frozen=True)

    user_id: Optional[str] = None
    remote: bool = False
    counts: Optional[dict[str, int]] = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def total(self) -> int:
        return sum(self.counts.values()) if self.counts else 0

    @property
    def message(self) -> str:
        header = "Esta ação é irreversível. Confirme para apagar permanentemente seus dados."
        if self.counts is None:
            return header
        parts = " • ".join(
            f"{PURGE_LABELS[key]}: {self.counts.get(key, 0)}" for key in PURGE_COUNT_KEYS
        )
        return f"{header}\n\nResumo: {parts}"


class DataPurgeService:

    def __init__(
        self,
        identity: IdentityResolver,
        local: LocalStoreInterface,
        remote: Optional[RemoteStoreInterface] = None,
    ):
        self._identity = identity
        self._local = local
        self._remote = remote

    async def preview(self) -> PurgeSummary:
        """
        Count what a purge would delete.

        Authenticated: count_user_data RPC (counts are omitted if it fails).
        Anonymous: sizes of the local collections.
        """
        identity = await self._identity.current_identity()
        if identity is not None and self._remote is not None:
            try:
                data = await self._remote.rpc("count_user_data", identity=identity)
            except RemoteStoreError as e:
                logger.warning("purge_count_failed", kind=e.kind.value, error=str(e))
                data = None
            counts = None
            if isinstance(data, list) and data:
                data = data[0]
            if isinstance(data, dict):
                counts = {key: int(data.get(key) or 0) for key in PURGE_COUNT_KEYS}
            return PurgeSummary(user_id=identity.user_id, remote=True, counts=counts)

        counts = {}
        for key in PURGE_COUNT_KEYS:
            value = self._local.get(key, [])
            counts[key] = len(value) if isinstance(value, list) else 0
        return PurgeSummary(remote=False, counts=counts)

    async def purge(self, summary: Optional[PurgeSummary]) -> None:
        """
        Delete every row/key the current identity owns.

        Raises:
            PurgeNotConfirmedError: no summary, or one taken for another identity
            RemoteStoreError: the purge RPC failed
        """
        if summary is None:
            raise PurgeNotConfirmedError("purge() requires the summary returned by preview()")

        identity = await self._identity.current_identity()
        remote = identity is not None and self._remote is not None
        if summary.remote != remote or summary.user_id != (identity.user_id if remote else None):
            raise PurgeNotConfirmedError("Identity changed since the preview; preview again")

        if remote:
            await self._remote.rpc("purge_user_data", identity=identity)
            logger.info("user_data_purged", user_id=identity.user_id, counts=summary.counts)
            return

        self._local.clear_all()
        self._local.remove(BUDGETS_LOCAL_KEY)
        logger.info("local_data_purged", counts=summary.counts)
