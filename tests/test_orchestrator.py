"""
End-to-end tests of the assembled LedgerApp.

Demo mode runs on the in-memory local store; authenticated mode runs the
real Supabase client against FakePostgrest.
"""

import asyncio
import pytest
from datetime import date
from decimal import Decimal

from finnko.config import Settings
from finnko.contexts import LoadState
from finnko.orchestrator import LedgerApp, create_app_components
from finnko.services.data_management import PurgeNotConfirmedError
from finnko.services.identity import SESSION_KEY, StaticIdentityResolver, SupabaseIdentityResolver


class TestDemoMode:
    """Anonymous identity, local store only."""

    @pytest.mark.asyncio
    async def test_wiring(self, anonymous_app):
        assert isinstance(anonymous_app, LedgerApp)
        assert anonymous_app.remote is None
        assert isinstance(anonymous_app.identity, StaticIdentityResolver)

    @pytest.mark.asyncio
    async def test_open_account_persists_locally(self, anonymous_app, local):
        """
        Test the demo-mode account scenario.

        "Carteira" with opening balance 100 lands under the "contas" key,
        with its opening-balance entry under "transacoes".
        """
        app = anonymous_app
        await app.start()
        assert all(context.state is LoadState.LOADED for context in app.contexts)

        account = app.open_account("Carteira", Decimal("100"), date(2024, 1, 1))
        await app.flush()

        stored = local.get("contas")
        assert len(stored) == 1
        assert stored[0]["id"] == account.id
        assert stored[0]["nome"] == "Carteira"
        assert stored[0]["saldo_inicial"] == 100.0
        opening = local.get("transacoes")
        assert len(opening) == 1
        assert opening[0]["conta_id"] == account.id
        assert opening[0]["valor"] == 100.0
        assert app.transactions.balance_of(account.id) == Decimal("100")

    @pytest.mark.asyncio
    async def test_zero_opening_balance_has_no_entry(self, anonymous_app):
        await anonymous_app.start()
        anonymous_app.open_account("Banco")
        assert anonymous_app.transactions.items == []

    @pytest.mark.asyncio
    async def test_state_survives_restart(self, anonymous_app, local):
        await anonymous_app.start()
        anonymous_app.open_account("Carteira", Decimal("100"))
        await anonymous_app.shutdown()

        restarted = create_app_components(settings=Settings(), local=local)
        await restarted.start()
        assert [a.name for a in restarted.accounts.items] == ["Carteira"]
        assert len(restarted.transactions.items) == 1

    @pytest.mark.asyncio
    async def test_delete_account_blocked_by_card(self, anonymous_app):
        app = anonymous_app
        await app.start()
        account = app.open_account("Banco", Decimal("10"))
        app.cards.add_card(nickname="Roxinho", closing_day=5, due_day=12,
                           default_account_id=account.id)

        violation = app.delete_account(account.id)

        assert violation is not None
        assert violation.entity_id == account.id
        assert app.accounts.get(account.id) is not None
        assert len(app.transactions.items) == 1

    @pytest.mark.asyncio
    async def test_delete_account_cascades(self, anonymous_app, local):
        app = anonymous_app
        await app.start()
        keep = app.open_account("Banco", Decimal("10"))
        drop = app.open_account("Carteira", Decimal("20"))

        assert app.delete_account(drop.id) is None
        await app.flush()

        assert [a["id"] for a in local.get("contas")] == [keep.id]
        assert [t["conta_id"] for t in local.get("transacoes")] == [keep.id]

    @pytest.mark.asyncio
    async def test_delete_category_in_use(self, anonymous_app):
        app = anonymous_app
        await app.start()
        category = app.categories.create(name="Pets", type="Saida")
        app.transactions.add_transaction(category, account_id="a1",
                                         occurred_on=date(2024, 5, 1), amount=Decimal("-5"))
        assert app.delete_category(category.id) is not None
        app.transactions.delete_many([t.id for t in app.transactions.items])
        assert app.delete_category(category.id) is None

    @pytest.mark.asyncio
    async def test_purge_all(self, anonymous_app, local):
        """Test that a confirmed purge empties the store and the contexts."""
        app = anonymous_app
        await app.start()
        app.open_account("Banco", Decimal("10"))
        await app.flush()

        with pytest.raises(PurgeNotConfirmedError):
            await app.purge_all(None)
        summary = await app.preview_purge()
        assert summary.counts["contas"] == 1

        await app.purge_all(summary)

        assert app.accounts.items == []
        assert app.transactions.items == []
        assert app.categories.items
        assert local.get("contas") is None


class TestAuthenticatedMode:
    """Supabase Auth plus the remote store."""

    @pytest.mark.asyncio
    async def test_restores_session_and_loads_remote(self, remote_app, backend, local, alice):
        backend.tables["contas"] = [
            {"id": "acc-1", "nome": "Conta Alice", "user_id": "user-alice"},
            {"id": "acc-2", "nome": "Conta Bob", "user_id": "user-bob"},
        ]
        local.set(SESSION_KEY, alice.model_dump(mode="json"))
        assert isinstance(remote_app.identity, SupabaseIdentityResolver)

        await remote_app.start()

        assert [a.id for a in remote_app.accounts.items] == ["acc-1"]
        assert local.get("contas") is None
        await remote_app.shutdown()

    @pytest.mark.asyncio
    async def test_open_and_delete_account_remotely(self, remote_app, backend, local, alice):
        """Test that deleting an account removes its transactions first, then the account."""
        app = remote_app
        local.set(SESSION_KEY, alice.model_dump(mode="json"))
        await app.start()

        account = app.open_account("Banco", Decimal("50"), date(2024, 1, 1))
        await app.flush()
        assert backend.rows("contas")[0]["saldo_inicial"] == 50.0
        assert backend.rows("transacoes_banco")[0]["meta_saldo_inicial"] is True

        app.delete_account(account.id)
        await app.flush()

        deleted = [path for method, path, _p, _b in backend.requests if method == "DELETE"]
        assert deleted == ["/rest/v1/transacoes_banco", "/rest/v1/contas"]
        assert backend.rows("contas") == []
        assert backend.rows("transacoes_banco") == []
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_delete_account_waits_for_transaction_saves(self, remote_app, backend, local, alice):
        """Test that a transaction save in flight does not leave rows behind the deleted account."""
        app = remote_app
        local.set(SESSION_KEY, alice.model_dump(mode="json"))
        await app.start()
        account = app.open_account("Banco")
        category = app.categories.create(name="Pets", type="Saida")
        await app.flush()
        backend.delays[("POST", "transacoes_banco")] = 0.05

        app.transactions.add_transaction(category, account_id=account.id,
                                         occurred_on=date(2024, 5, 1), amount=Decimal("-5"))
        await asyncio.sleep(0.01)
        assert app.delete_account(account.id) is None
        await app.flush()

        assert backend.rows("contas") == []
        assert backend.rows("transacoes_banco") == []
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_sign_in_switches_collections(self, remote_app, backend, alice, bob):
        """Test that changing user reloads every context for the new user."""
        backend.tables["contas"] = [{"id": "bob-1", "nome": "Conta Bob", "user_id": "user-bob"}]
        app = remote_app
        await app.start()
        assert app.accounts.items == []

        await app.identity.sign_in("alice@example.com", "s3cret")
        app.open_account("Conta Alice")
        await app.flush()
        assert [r["nome"] for r in backend.rows("contas", "user-alice")] == ["Conta Alice"]

        await app.identity.sign_in("bob@example.com", "hunter2")
        assert [a.id for a in app.accounts.items] == ["bob-1"]
        assert all(c.state is LoadState.LOADED for c in app.contexts)

        await app.identity.sign_out()
        assert app.accounts.items == []
        await app.shutdown()

    @pytest.mark.asyncio
    async def test_save_failures_counted(self, remote_app, backend, local, alice):
        local.set(SESSION_KEY, alice.model_dump(mode="json"))
        await remote_app.start()
        backend.fail("POST", "cartoes", status=403, code="42501")

        card = remote_app.cards.add_card(nickname="Roxinho", closing_day=5, due_day=12)
        await remote_app.flush()

        assert remote_app.cards.get_card(card.id) == card
        assert remote_app.metrics.counts[("card", "save")] == 1
        assert remote_app.metrics.failures[-1].kind == "permission_denied"
        await remote_app.shutdown()

    @pytest.mark.asyncio
    async def test_purge_all_remote(self, remote_app, backend, local, alice):
        backend.tables["contas"] = [
            {"id": "acc-1", "nome": "A", "user_id": "user-alice"},
            {"id": "acc-2", "nome": "B", "user_id": "user-bob"},
        ]
        local.set(SESSION_KEY, alice.model_dump(mode="json"))
        await remote_app.start()

        summary = await remote_app.preview_purge()
        assert summary.counts["contas"] == 1
        await remote_app.purge_all(summary)

        assert remote_app.accounts.items == []
        assert [r["id"] for r in backend.rows("contas")] == ["acc-2"]
        await remote_app.shutdown()
