"""Tests for export, import and the confirmed bulk delete."""

import json
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal

from finnko.services.data_management import (
    BUDGETS_LOCAL_KEY,
    PURGE_COUNT_KEYS,
    SNAPSHOT_VERSION,
    DataExporter,
    DataPurgeService,
    ImportNotSupportedError,
    PurgeNotConfirmedError,
    PurgeSummary,
)
from finnko.services.identity import StaticIdentityResolver
from finnko.services.preferences import Theme


class TestExport:

    def test_backup_filename(self):
        now = datetime(2024, 5, 7, 23, 0, tzinfo=timezone.utc)
        assert DataExporter.backup_filename(now) == "finnko_backup_2024-05-07.json"

    @pytest.mark.asyncio
    async def test_snapshot_contents(self, anonymous_app):
        """Test that the snapshot carries every collection plus preferences."""
        app = anonymous_app
        await app.start()
        app.open_account("Carteira", Decimal("100"), date(2024, 1, 1))
        app.budgets.set_budgets("2024-05", {"cat-a": Decimal("10")})
        app.preferences.set_theme(Theme.LIGHT)

        snapshot = app.exporter.build_snapshot()

        assert snapshot["version"] == SNAPSHOT_VERSION
        assert snapshot["contas"][0]["nome"] == "Carteira"
        assert snapshot["contas"][0]["saldo_inicial"] == 100.0
        assert snapshot["transacoes"][0]["meta_saldo_inicial"] is True
        assert snapshot["cat_budgets"] == [
            {"categoria_id": "cat-a", "competencia": "2024-05", "valor": 10.0}
        ]
        assert snapshot["categorias"]
        for key in ("cartoes", "compras", "parcelas", "objetivos", "ativos", "alocacoes"):
            assert snapshot[key] == []
        assert snapshot["theme"] == "light"
        assert snapshot["settings"] == {"showPercentageChange": False}

    @pytest.mark.asyncio
    async def test_export_to_file(self, anonymous_app, tmp_path):
        await anonymous_app.start()
        anonymous_app.open_account("Banco")

        path = anonymous_app.exporter.export_to_file(tmp_path / "backups")

        assert path.name.startswith("finnko_backup_") and path.suffix == ".json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert [a["nome"] for a in data["contas"]] == ["Banco"]

    @pytest.mark.asyncio
    async def test_import_not_supported(self, anonymous_app, tmp_path):
        """Test that import fails loudly instead of pretending to succeed."""
        await anonymous_app.start()
        path = anonymous_app.exporter.export_to_file(tmp_path)
        with pytest.raises(ImportNotSupportedError):
            anonymous_app.exporter.import_snapshot(path)
        with pytest.raises(ImportNotSupportedError):
            anonymous_app.exporter.import_snapshot({})


class TestPurgeSummary:

    def test_message_itemizes_counts(self):
        counts = {key: 0 for key in PURGE_COUNT_KEYS}
        counts.update(contas=2, transacoes=15)
        summary = PurgeSummary(user_id="user-alice", remote=True, counts=counts)

        assert summary.total == 17
        assert "irreversível" in summary.message
        assert "Resumo: Contas: 2 • Cartões: 0 • Transações: 15" in summary.message

    def test_message_without_counts(self):
        summary = PurgeSummary(user_id="user-alice", remote=True, counts=None)
        assert summary.total == 0
        assert "Resumo" not in summary.message


class TestLocalPurge:

    @pytest.mark.asyncio
    async def test_preview_counts_local_collections(self, anonymous, local):
        local.set("contas", [{"id": "1"}, {"id": "2"}])
        local.set("transacoes", [{"id": "t"}])
        local.set("cartoes", "corrupt")
        summary = await DataPurgeService(anonymous, local).preview()
        assert summary.remote is False
        assert summary.counts["contas"] == 2
        assert summary.counts["transacoes"] == 1
        assert summary.counts["cartoes"] == 0

    @pytest.mark.asyncio
    async def test_purge_requires_summary(self, anonymous, local):
        local.set("contas", [{"id": "1"}])
        with pytest.raises(PurgeNotConfirmedError):
            await DataPurgeService(anonymous, local).purge(None)
        assert local.get("contas") == [{"id": "1"}]

    @pytest.mark.asyncio
    async def test_purge_clears_local_keys(self, anonymous, local):
        for key in ("contas", "transacoes", "alocacoes", BUDGETS_LOCAL_KEY):
            local.set(key, [{"id": "x"}])
        local.set("session", {"user_id": "kept"})
        service = DataPurgeService(anonymous, local)

        await service.purge(await service.preview())

        for key in ("contas", "transacoes", "alocacoes", BUDGETS_LOCAL_KEY):
            assert local.get(key) is None
        assert local.get("session") == {"user_id": "kept"}


class TestRemotePurge:

    @pytest.mark.asyncio
    async def test_preview_uses_count_rpc(self, backend, remote, local, signed_in):
        backend.tables["contas"] = [
            {"id": "1", "user_id": "user-alice"},
            {"id": "2", "user_id": "user-bob"},
        ]
        summary = await DataPurgeService(signed_in, local, remote).preview()
        assert summary.remote is True
        assert summary.user_id == "user-alice"
        assert summary.counts["contas"] == 1
        assert set(summary.counts) == set(PURGE_COUNT_KEYS)

    @pytest.mark.asyncio
    async def test_preview_without_counts_when_rpc_fails(self, backend, remote, local, signed_in):
        backend.fail("POST", "count_user_data", status=404, code="PGRST202")
        summary = await DataPurgeService(signed_in, local, remote).preview()
        assert summary.counts is None
        assert summary.remote is True

    @pytest.mark.asyncio
    async def test_purge_only_own_rows(self, backend, remote, local, signed_in, bob):
        backend.tables["contas"] = [
            {"id": "1", "user_id": "user-alice"},
            {"id": "2", "user_id": "user-bob"},
        ]
        service = DataPurgeService(signed_in, local, remote)
        await service.purge(await service.preview())
        assert [r["id"] for r in backend.rows("contas")] == ["2"]
        assert ("purge_user_data", {}) in backend.rpc_calls

    @pytest.mark.asyncio
    async def test_summary_from_other_identity_rejected(self, backend, remote, local, alice, bob):
        """Test that a preview taken as alice cannot confirm a purge as bob."""
        backend.tables["contas"] = [{"id": "2", "user_id": "user-bob"}]
        resolver = StaticIdentityResolver(alice)
        service = DataPurgeService(resolver, local, remote)
        summary = await service.preview()

        await resolver.set_identity(bob)
        with pytest.raises(PurgeNotConfirmedError):
            await service.purge(summary)
        assert backend.rows("contas", "user-bob")

    @pytest.mark.asyncio
    async def test_local_summary_rejected_when_signed_in(self, remote, local, signed_in):
        service = DataPurgeService(signed_in, local, remote)
        with pytest.raises(PurgeNotConfirmedError):
            await service.purge(PurgeSummary(remote=False, counts={}))
