"""
Shared fixtures.

FakePostgrest is an in-memory stand-in for the Supabase REST and Auth APIs,
served through httpx.MockTransport so the real SupabaseClient and
SupabaseRemoteStore run unmodified against it.
"""

import asyncio
import json
from typing import Any, Optional
from urllib.parse import parse_qsl

import httpx
import pytest

from finnko.config import Settings
from finnko.models.entities import Identity
from finnko.orchestrator import create_app_components
from finnko.services.identity import StaticIdentityResolver
from finnko.services.storage import MemoryLocalStore, SupabaseClient, SupabaseRemoteStore


BASE_URL = "https://finnko.test"

COUNTED_TABLES = {
    "contas": "contas",
    "cartoes": "cartoes",
    "transacoes": "transacoes_banco",
    "compras": "compras_cartao",
    "parcelas": "parcelas_cartao",
    "ativos": "ativos",
    "objetivos": "objetivos",
    "categorias": "categorias",
}


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _split_in_list(body: str) -> list[str]:
    """Split the inside of in.(...) honouring double quotes."""
    values, current, quoted, escaped = [], [], False, False
    for ch in body:
        if escaped:
            current.append(ch)
            escaped = False
        elif ch == "\\" and quoted:
            escaped = True
        elif ch == '"':
            quoted = not quoted
        elif ch == "," and not quoted:
            values.append("".join(current))
            current = []
        else:
            current.append(ch)
    values.append("".join(current))
    return values


def _matches(row: dict, column: str, expression: str) -> bool:
    value = row.get(column)
    if expression == "is.null":
        return value is None
    if expression.startswith("eq."):
        return _text(value) == expression[3:]
    if expression.startswith("in.(") and expression.endswith(")"):
        return _text(value) in _split_in_list(expression[4:-1])
    raise AssertionError(f"unsupported filter {column}={expression}")


class FakePostgrest:
    """
    In-memory Supabase.

    Attributes:
        tables: table name -> rows
        unique_keys: table name -> provisioned unique column sets
            (("id",) is provisioned for every table by default)
        requests: (method, path, params, body) of every request received
        offline: when True every request fails at the transport level
    """

    def __init__(self):
        self.tables: dict[str, list[dict]] = {}
        self.unique_keys: dict[str, set[tuple[str, ...]]] = {}
        self.requests: list[tuple[str, str, list[tuple[str, str]], Any]] = []
        self.users: dict[str, tuple[str, str]] = {}
        self.sessions: dict[str, str] = {}
        self.refresh_tokens: dict[str, str] = {}
        self.failures: dict[tuple[str, str], list[tuple[int, dict]]] = {}
        self.delays: dict[tuple[str, str], float] = {}
        self.rpc_calls: list[tuple[str, Any]] = []
        self.offline = False

    # Setup helpers

    def add_user(self, email: str, password: str, user_id: str) -> None:
        self.users[email] = (password, user_id)

    def add_session(self, identity: Identity) -> None:
        self.sessions[identity.access_token] = identity.user_id
        if identity.refresh_token:
            self.refresh_tokens[identity.refresh_token] = identity.user_id

    def provision_unique(self, table: str, *columns: str) -> None:
        self.unique_keys.setdefault(table, {("id",)}).add(tuple(columns))

    def fail(self, method: str, table: str, status: int = 500, code: Optional[str] = None,
             message: str = "boom", times: int = 1) -> None:
        """Make the next `times` requests of method on table fail."""
        queue = self.failures.setdefault((method, table), [])
        queue.extend([(status, {"code": code, "message": message})] * times)

    def rows(self, table: str, user_id: Optional[str] = None) -> list[dict]:
        return [r for r in self.tables.get(table, []) if user_id is None or r.get("user_id") == user_id]

    def calls(self, method: str, table: str) -> list[tuple[str, str, list[tuple[str, str]], Any]]:
        return [r for r in self.requests if r[0] == method and r[1] == f"/rest/v1/{table}"]

    # Dispatch

    async def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        params = parse_qsl(request.url.query.decode(), keep_blank_values=True)
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, params, body))

        if self.offline:
            raise httpx.ConnectError("network unreachable", request=request)

        table = path.rsplit("/", 1)[-1]
        delay = self.delays.get((request.method, table))
        if delay:
            await asyncio.sleep(delay)
        queue = self.failures.get((request.method, table))
        if queue:
            status, payload = queue.pop(0)
            return httpx.Response(status, json=payload)

        if path.startswith("/auth/v1/"):
            return self._auth(request, path[len("/auth/v1/"):], params, body)
        if path.startswith("/rest/v1/rpc/"):
            return self._rpc(request, table, body or {})
        if path.startswith("/rest/v1/"):
            return self._rest(request.method, table, params, body)
        return httpx.Response(404, json={"message": "not found"})

    def _caller(self, request: httpx.Request) -> Optional[str]:
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        return self.sessions.get(token)

    def _session(self, user_id: str, email: str) -> dict:
        token = f"access-{user_id}-{len(self.sessions)}"
        refresh = f"refresh-{user_id}-{len(self.refresh_tokens)}"
        self.sessions[token] = user_id
        self.refresh_tokens[refresh] = user_id
        return {
            "access_token": token,
            "refresh_token": refresh,
            "user": {"id": user_id, "email": email},
        }

    def _email_of(self, user_id: str) -> Optional[str]:
        for email, (_password, uid) in self.users.items():
            if uid == user_id:
                return email
        return None

    def _auth(self, request, action, params, body) -> httpx.Response:
        query = dict(params)
        if action == "token" and query.get("grant_type") == "password":
            user = self.users.get(body["email"])
            if user is None or user[0] != body["password"]:
                return httpx.Response(400, json={"error": "invalid_grant",
                                                 "error_description": "Invalid login credentials"})
            return httpx.Response(200, json=self._session(user[1], body["email"]))
        if action == "token" and query.get("grant_type") == "refresh_token":
            user_id = self.refresh_tokens.pop(body.get("refresh_token"), None)
            if user_id is None:
                return httpx.Response(400, json={"error": "invalid_grant",
                                                 "error_description": "Invalid Refresh Token"})
            return httpx.Response(200, json=self._session(user_id, self._email_of(user_id)))
        if action == "signup":
            user_id = f"user-{len(self.users) + 1}"
            self.users[body["email"]] = (body["password"], user_id)
            return httpx.Response(200, json=self._session(user_id, body["email"]))
        if action == "user":
            user_id = self._caller(request)
            if user_id is None:
                return httpx.Response(401, json={"code": 401, "msg": "invalid JWT"})
            return httpx.Response(200, json={"id": user_id, "email": self._email_of(user_id)})
        if action == "logout":
            token = request.headers.get("Authorization", "").removeprefix("Bearer ")
            self.sessions.pop(token, None)
            return httpx.Response(204)
        return httpx.Response(404, json={"message": "not found"})

    def _rpc(self, request, name, args) -> httpx.Response:
        self.rpc_calls.append((name, args))
        user_id = self._caller(request)
        if user_id is None:
            return httpx.Response(401, json={"code": "PGRST301", "message": "JWT expired"})
        if name == "count_user_data":
            return httpx.Response(200, json={
                key: len(self.rows(table, user_id)) for key, table in COUNTED_TABLES.items()
            })
        if name == "purge_user_data":
            for table, rows in self.tables.items():
                self.tables[table] = [r for r in rows if r.get("user_id") != user_id]
            return httpx.Response(204)
        if name == "create_default_categories":
            return httpx.Response(204)
        return httpx.Response(404, json={"code": "PGRST202", "message": f"function {name} not found"})

    def _rest(self, method, table, params, body) -> httpx.Response:
        filters = [(k, v) for k, v in params if k not in ("select", "order", "on_conflict")]
        rows = self.tables.setdefault(table, [])
        selected = [r for r in rows if all(_matches(r, k, v) for k, v in filters)]

        if method == "GET":
            order = dict(params).get("order")
            if order:
                columns = [part.rsplit(".", 1)[0] for part in order.split(",")]
                selected.sort(key=lambda r: tuple(_text(r.get(c)) for c in columns))
            return httpx.Response(200, json=selected)

        if method == "DELETE":
            self.tables[table] = [r for r in rows if r not in selected]
            return httpx.Response(204)

        if method == "PATCH":
            for row in selected:
                row.update(body)
            return httpx.Response(204)

        if method == "POST":
            unique = self.unique_keys.get(table, {("id",)})
            on_conflict = dict(params).get("on_conflict")
            if on_conflict:
                key = tuple(on_conflict.split(","))
                if key not in unique:
                    return httpx.Response(400, json={
                        "code": "42P10",
                        "message": "there is no unique or exclusion constraint "
                                   "matching the ON CONFLICT specification",
                    })
                for incoming in body:
                    existing = next(
                        (r for r in rows if all(r.get(c) == incoming.get(c) for c in key)), None
                    )
                    if existing is None:
                        rows.append(dict(incoming))
                    else:
                        existing.update(incoming)
                return httpx.Response(201)

            for incoming in body:
                for key in unique:
                    if any(incoming.get(c) is None for c in key):
                        continue
                    if any(all(r.get(c) == incoming.get(c) for c in key) for r in rows):
                        return httpx.Response(409, json={
                            "code": "23505",
                            "message": "duplicate key value violates unique constraint",
                        })
                rows.append(dict(incoming))
            return httpx.Response(201)

        return httpx.Response(405, json={"message": "method not allowed"})


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def backend() -> FakePostgrest:
    return FakePostgrest()


@pytest.fixture
def client(backend) -> SupabaseClient:
    return SupabaseClient(
        BASE_URL,
        "anon-key",
        retry_attempts=1,
        retry_min_wait=0,
        retry_max_wait=0,
        transport=httpx.MockTransport(backend.handle),
    )


@pytest.fixture
def remote(client) -> SupabaseRemoteStore:
    return SupabaseRemoteStore(client)


@pytest.fixture
def local() -> MemoryLocalStore:
    return MemoryLocalStore()


@pytest.fixture
def alice(backend) -> Identity:
    identity = Identity(
        user_id="user-alice",
        email="alice@example.com",
        access_token="token-alice",
        refresh_token="refresh-alice",
    )
    backend.add_user("alice@example.com", "s3cret", "user-alice")
    backend.add_session(identity)
    return identity


@pytest.fixture
def bob(backend) -> Identity:
    identity = Identity(user_id="user-bob", email="bob@example.com", access_token="token-bob")
    backend.add_user("bob@example.com", "hunter2", "user-bob")
    backend.add_session(identity)
    return identity


@pytest.fixture
def anonymous() -> StaticIdentityResolver:
    return StaticIdentityResolver(None)


@pytest.fixture
def signed_in(alice) -> StaticIdentityResolver:
    return StaticIdentityResolver(alice)


@pytest.fixture
def anonymous_app(monkeypatch, local):
    """LedgerApp with no remote configured (demo mode), not started."""
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    return create_app_components(settings=Settings(), local=local)


@pytest.fixture
def remote_app(monkeypatch, backend, local):
    """LedgerApp wired to FakePostgrest with Supabase Auth, not started."""
    monkeypatch.setenv("SUPABASE_URL", BASE_URL)
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    monkeypatch.setenv("SYNC_RETRY_ATTEMPTS", "1")
    monkeypatch.setenv("SYNC_RETRY_MIN_WAIT", "0")
    monkeypatch.setenv("SYNC_RETRY_MAX_WAIT", "0")
    return create_app_components(
        settings=Settings(),
        local=local,
        transport=httpx.MockTransport(backend.handle),
    )
