"""
Main Orchestrator for Finnko

This module ties together the identity resolver, the storage adapters, the
repositories and the domain contexts, and defines the application flows
that span more than one context:
1. Start-up (settle identity -> load every context concurrently)
2. Identity change (invalidate -> reload every context)
3. Cross-context operations (account opening, cascaded deletions, purge)
4. Shutdown (flush pending writes -> close the HTTP client)

DESIGN DECISION: Nothing here talks to a backend directly. Every read and
write goes through a context or a repository, which resolve the identity
again at call time.
"""

import asyncio
from datetime import date
from decimal import Decimal
from typing import Any, Optional

import httpx
import structlog

from finnko.audit import CompositePersistenceSink, LoggingPersistenceSink, MetricsPersistenceSink
from finnko.audit.logger import PersistenceSink, configure_logging
from finnko.config import Settings, get_settings
from finnko.contexts import (
    AccountsContext,
    BudgetsContext,
    CardsContext,
    CategoriesContext,
    InvestmentsContext,
    TransactionsContext,
)
from finnko.models.entities import Account, DeletionViolation, Identity
from finnko.repositories import (
    AccountRepository,
    AllocationRepository,
    AssetRepository,
    BudgetRepository,
    CardRepository,
    CategoryRepository,
    GoalRepository,
    InstallmentRepository,
    PurchaseRepository,
    TransactionRepository,
)
from finnko.services.data_management import DataExporter, DataPurgeService, PurgeSummary
from finnko.services.identity import IdentityResolver, StaticIdentityResolver, SupabaseIdentityResolver
from finnko.services.preferences import PreferencesStore
from finnko.services.storage import (
    FileLocalStore,
    LocalStoreInterface,
    MemoryLocalStore,
    RemoteStoreInterface,
    SupabaseClient,
    SupabaseRemoteStore,
)


logger = structlog.get_logger(__name__)


class LedgerApp:
    """
    The assembled application.

    Contexts are public attributes; use them for single-collection
    operations. Methods here cover the flows that touch several contexts.
    """

    def __init__(
        self,
        identity: IdentityResolver,
        local: LocalStoreInterface,
        accounts: AccountsContext,
        categories: CategoriesContext,
        transactions: TransactionsContext,
        cards: CardsContext,
        budgets: BudgetsContext,
        investments: InvestmentsContext,
        preferences: PreferencesStore,
        metrics: MetricsPersistenceSink,
        remote: Optional[RemoteStoreInterface] = None,
        client: Optional[SupabaseClient] = None,
    ):
        self.identity = identity
        self.local = local
        self.remote = remote
        self.accounts = accounts
        self.categories = categories
        self.transactions = transactions
        self.cards = cards
        self.budgets = budgets
        self.investments = investments
        self.preferences = preferences
        self.metrics = metrics
        self.exporter = DataExporter(
            accounts, categories, transactions, cards, budgets, investments, preferences
        )
        self.purger = DataPurgeService(identity, local, remote)
        self._client = client
        self._unsubscribe = None

    @property
    def contexts(self) -> tuple:
        return (
            self.accounts,
            self.categories,
            self.transactions,
            self.cards,
            self.budgets,
            self.investments,
        )

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Settle the identity and load every context concurrently."""
        if isinstance(self.identity, SupabaseIdentityResolver) and not self.identity.is_settled:
            await self.identity.restore()
        if self._unsubscribe is None:
            self._unsubscribe = self.identity.subscribe(self._on_identity_changed)
        await asyncio.gather(*(context.initialize() for context in self.contexts))
        identity = await self.identity.current_identity()
        logger.info("app_started", user_id=identity.user_id if identity else None)

    async def _on_identity_changed(self, identity: Optional[Identity]) -> None:
        logger.info("identity_changed", user_id=identity.user_id if identity else None)
        await self.reload()

    async def reload(self) -> None:
        # Invalidate everything first so no context saves into the new identity
        for context in self.contexts:
            context.invalidate()
        await asyncio.gather(*(context.reload() for context in self.contexts))

    async def flush(self) -> None:
        await asyncio.gather(*(context.flush() for context in self.contexts))

    async def shutdown(self) -> None:
        """Wait for pending writes, then release the HTTP client."""
        await self.flush()
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        if self._client is not None:
            await self._client.aclose()
        logger.info("app_stopped", failures=self.metrics.total)

    # -------------------------------------------------------------------------
    # Cross-context flows
    # -------------------------------------------------------------------------

    def open_account(
        self,
        name: str,
        opening_balance: Decimal = Decimal("0"),
        opening_date: Optional[date] = None,
        **fields: Any,
    ) -> Account:
        """Create an account; a non-zero opening balance also gets its statement entry."""
        account = self.accounts.create(
            name=name,
            opening_balance=opening_balance,
            opening_date=opening_date or date.today(),
            **fields,
        )
        if account.opening_balance != 0:
            self.transactions.add(
                self.accounts.repository.create_opening_balance_transaction(account)
            )
        return account

    def delete_account(self, account_id: str) -> Optional[DeletionViolation]:
        """
        Delete an account and its transactions unless a card still points at it.

        Remotely the transactions go first, then the account, in one task that
        waits for transaction saves already in flight.
        """
        violation = self.accounts.validate_deletion(account_id, self.cards.cards)
        if violation is not None:
            return violation

        self.transactions.remove_by_account(account_id, remote=False)
        self.accounts.delete_many([account_id], remote=False)

        async def cascade() -> None:
            await self.transactions.flush()
            await self.transactions.repository.delete_remote_by_account(account_id)
            await self.accounts.repository.delete_remote([account_id])

        self.accounts.schedule("delete_cascade", cascade)
        return None

    def delete_category(self, category_id: str) -> Optional[DeletionViolation]:
        return self.categories.try_delete(
            category_id, self.transactions.items, self.cards.purchases
        )

    async def preview_purge(self) -> PurgeSummary:
        return await self.purger.preview()

    async def purge_all(self, summary: Optional[PurgeSummary]) -> None:
        """Purge everything the identity owns, then reload the (now empty) contexts."""
        await self.flush()
        await self.purger.purge(summary)
        await self.reload()


def create_app_components(
    settings: Optional[Settings] = None,
    local: Optional[LocalStoreInterface] = None,
    identity: Optional[IdentityResolver] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    sink: Optional[PersistenceSink] = None,
) -> LedgerApp:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (default: get_settings())
        local: Local store override (default: from LOCAL_STORE_* settings)
        identity: Resolver override (default: Supabase Auth when configured,
            otherwise an anonymous resolver)
        transport: httpx transport for the Supabase client (tests)
        sink: Extra persistence failure sink

    Returns:
        LedgerApp, not started yet
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)

    if local is None:
        store_settings = settings.local_store
        local = MemoryLocalStore() if store_settings.in_memory else FileLocalStore(store_settings.directory)

    client = None
    remote = None
    if settings.remote_enabled:
        client = SupabaseClient.from_settings(settings, transport=transport)
        remote = SupabaseRemoteStore(client)
        if identity is None:
            identity = SupabaseIdentityResolver(client, remote, local)
    else:
        logger.info("remote_store_disabled", reason="SUPABASE_URL/SUPABASE_ANON_KEY not set")
    if identity is None:
        identity = StaticIdentityResolver(None, settled=True)

    metrics = MetricsPersistenceSink()
    sinks = [LoggingPersistenceSink(), metrics]
    if sink is not None:
        sinks.append(sink)
    failures = CompositePersistenceSink(*sinks)

    def repo(cls, **kwargs):
        return cls(identity, local, remote, failures, **kwargs)

    installments = repo(InstallmentRepository)
    return LedgerApp(
        identity=identity,
        local=local,
        accounts=AccountsContext(repo(AccountRepository), identity, failures),
        categories=CategoriesContext(repo(CategoryRepository), identity, failures),
        transactions=TransactionsContext(repo(TransactionRepository), identity, failures),
        cards=CardsContext(
            repo(CardRepository),
            repo(PurchaseRepository, installments=installments),
            installments,
            identity,
            failures,
        ),
        budgets=BudgetsContext(repo(BudgetRepository), identity, failures),
        investments=InvestmentsContext(
            repo(GoalRepository),
            repo(AssetRepository),
            repo(AllocationRepository),
            identity,
            failures,
        ),
        preferences=PreferencesStore(local),
        metrics=metrics,
        remote=remote,
        client=client,
    )
