"""
Remote Store Implementation (Supabase / PostgREST)

DESIGN DECISION: The remote store is reached through PostgREST's HTTP API
with httpx instead of a vendor SDK. Only a handful of primitives are needed
(select, upsert, insert, update, delete, rpc), each scoped to the identity
that owns the rows.

Failure handling:
- Transport errors (timeouts, connection resets) are retried with tenacity,
  then surface as RemoteErrorKind.NETWORK.
- HTTP errors are decoded once into RemoteStoreError(kind=...).
- An upsert rejected with 42P10 (no unique constraint matches the
  ON CONFLICT target) is replayed as delete-then-insert scoped to the
  identity and the batch's natural keys. If that also fails the error
  propagates.
"""

from typing import Any, Iterable, Mapping, Optional, Sequence

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finnko.config import Settings, get_settings
from finnko.models.entities import Identity
from finnko.services.storage.interface import (
    RemoteErrorKind,
    RemoteStoreError,
    RemoteStoreInterface,
    decode_remote_error,
)


logger = structlog.get_logger(__name__)

_RESERVED_CHARS = set(',()":. ')


def _literal(value: Any) -> str:
    """Render a scalar the way PostgREST filter syntax expects."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _quoted(value: Any) -> str:
    text = _literal(value)
    if any(ch in _RESERVED_CHARS for ch in text):
        return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'
    return text


def format_filter(value: Any) -> str:
    """
    Build a PostgREST filter expression.

    Scalars become eq.<v>, None becomes is.null, and a list/tuple/set
    becomes in.(<v1>,<v2>,...).
    """
    if value is None:
        return "is.null"
    if isinstance(value, (list, tuple, set, frozenset)):
        return "in.(" + ",".join(_quoted(v) for v in value) + ")"
    return f"eq.{_literal(value)}"


def _is_empty_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset)) and len(value) == 0


class SupabaseClient:
    """
    Low-level Supabase HTTP client wrapper.

    Handles auth headers and provides retry logic for transport failures.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 15.0,
        retry_attempts: int = 3,
        retry_min_wait: float = 2.0,
        retry_max_wait: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._url = url.rstrip("/")
        self._anon_key = anon_key
        self._retry_attempts = retry_attempts
        self._retry_min_wait = retry_min_wait
        self._retry_max_wait = retry_max_wait
        self._client = httpx.AsyncClient(
            base_url=self._url,
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "SupabaseClient":
        settings = settings or get_settings()
        supabase = settings.supabase
        if not supabase.is_configured:
            raise RemoteStoreError(
                "SUPABASE_URL and SUPABASE_ANON_KEY must be set",
                kind=RemoteErrorKind.PERMISSION_DENIED,
            )
        sync = settings.sync
        return cls(
            url=supabase.url,
            anon_key=supabase.anon_key,
            timeout=supabase.timeout_seconds,
            retry_attempts=sync.retry_attempts,
            retry_min_wait=sync.retry_min_wait,
            retry_max_wait=sync.retry_max_wait,
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    def _headers(self, identity: Optional[Identity], extra: Optional[Mapping[str, str]]) -> dict[str, str]:
        token = identity.access_token if identity and identity.access_token else self._anon_key
        headers = {
            "apikey": self._anon_key,
            "Authorization": f"Bearer {token}",
        }
        if extra:
            headers.update(extra)
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        identity: Optional[Identity] = None,
        params: Optional[Sequence[tuple[str, str]]] = None,
        json: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> httpx.Response:
        """
        Send a request and return the successful response.

        Raises:
            RemoteStoreError: decoded HTTP error, or NETWORK after retries
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._retry_attempts),
            wait=wait_exponential(
                multiplier=1,
                min=self._retry_min_wait,
                max=self._retry_max_wait,
            ),
            retry=retry_if_exception_type(httpx.TransportError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    response = await self._client.request(
                        method,
                        path,
                        params=list(params or ()),
                        json=json,
                        headers=self._headers(identity, headers),
                    )
        except httpx.TransportError as e:
            logger.error("remote_transport_failed", method=method, path=path, error=str(e))
            raise RemoteStoreError(
                f"Could not reach remote store: {e}",
                kind=RemoteErrorKind.NETWORK,
            ) from e

        if response.is_error:
            error = decode_remote_error(response.status_code, _payload(response))
            logger.warning(
                "remote_request_failed",
                method=method,
                path=path,
                status=response.status_code,
                code=error.code,
                kind=error.kind.value,
            )
            raise error

        return response

    async def aclose(self) -> None:
        await self._client.aclose()


def _payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text


class SupabaseRemoteStore(RemoteStoreInterface):
    """
    PostgREST implementation of RemoteStoreInterface.

    Every statement carries user_id=eq.<identity> so rows of other users are
    never read or touched, independent of row-level security on the backend.
    """

    def __init__(self, client: SupabaseClient):
        self._client = client

    @property
    def client(self) -> SupabaseClient:
        return self._client

    @staticmethod
    def _scope(identity: Identity, filters: Optional[Mapping[str, Any]] = None) -> list[tuple[str, str]]:
        params = [("user_id", format_filter(identity.user_id))]
        for column, value in (filters or {}).items():
            if column == "user_id":
                continue
            params.append((column, format_filter(value)))
        return params

    @staticmethod
    def _owned(rows: Iterable[Mapping[str, Any]], identity: Identity) -> list[dict[str, Any]]:
        return [{**row, "user_id": identity.user_id} for row in rows]

    async def select_all(
        self,
        table: str,
        identity: Identity,
        order_by: Sequence[str] = (),
        filters: Optional[Mapping[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        params = [("select", "*")] + self._scope(identity, filters)
        if order_by:
            params.append(("order", ",".join(f"{column}.asc" for column in order_by)))
        response = await self._client.request(
            "GET", f"/rest/v1/{table}", identity=identity, params=params
        )
        data = _payload(response)
        if not isinstance(data, list):
            raise RemoteStoreError(
                f"Unexpected select payload from {table}",
                kind=RemoteErrorKind.UNKNOWN,
                status=response.status_code,
            )
        return data

    async def upsert_many(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_key: Sequence[str],
        identity: Identity,
    ) -> None:
        if not rows:
            return
        payload = self._owned(rows, identity)
        try:
            await self._client.request(
                "POST",
                f"/rest/v1/{table}",
                identity=identity,
                params=[("on_conflict", ",".join(conflict_key))],
                json=payload,
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            )
        except RemoteStoreError as e:
            if e.kind is not RemoteErrorKind.CONFLICT_TARGET_MISSING:
                raise
            logger.warning(
                "remote_upsert_fallback",
                table=table,
                conflict_key=list(conflict_key),
                rows=len(payload),
            )
            await self._replace_rows(table, payload, conflict_key, identity)

    async def _replace_rows(
        self,
        table: str,
        rows: list[dict[str, Any]],
        conflict_key: Sequence[str],
        identity: Identity,
    ) -> None:
        """
        Delete-then-insert equivalent of an upsert.

        Rows are deduplicated on conflict_key (last wins). Deletes are grouped
        by the trailing key columns so each delete matches only keys present
        in the batch.
        """
        deduped: dict[tuple, dict[str, Any]] = {}
        for row in rows:
            deduped[tuple(row.get(column) for column in conflict_key)] = row
        unique_rows = list(deduped.values())

        lead, trailing = conflict_key[0], list(conflict_key[1:])
        groups: dict[tuple, list[Any]] = {}
        for key in deduped:
            values = groups.setdefault(key[1:], [])
            if key[0] not in values:
                values.append(key[0])

        for trailing_values, lead_values in groups.items():
            filters: dict[str, Any] = {
                lead: lead_values[0] if len(lead_values) == 1 else lead_values
            }
            filters.update(zip(trailing, trailing_values))
            await self.delete_where(table, filters, identity)

        await self.insert_many(table, unique_rows, identity)

    async def insert_many(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        identity: Identity,
    ) -> None:
        if not rows:
            return
        await self._client.request(
            "POST",
            f"/rest/v1/{table}",
            identity=identity,
            json=self._owned(rows, identity),
            headers={"Prefer": "return=minimal"},
        )

    async def update_where(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Mapping[str, Any],
        identity: Identity,
    ) -> None:
        if not filters:
            raise ValueError("update_where requires at least one filter")
        await self._client.request(
            "PATCH",
            f"/rest/v1/{table}",
            identity=identity,
            params=self._scope(identity, filters),
            json=dict(values),
            headers={"Prefer": "return=minimal"},
        )

    async def delete_where(
        self,
        table: str,
        filters: Mapping[str, Any],
        identity: Identity,
    ) -> None:
        if not filters:
            raise ValueError("delete_where requires at least one filter")
        if any(_is_empty_collection(v) for v in filters.values()):
            return
        await self._client.request(
            "DELETE",
            f"/rest/v1/{table}",
            identity=identity,
            params=self._scope(identity, filters),
            headers={"Prefer": "return=minimal"},
        )

    async def rpc(
        self,
        name: str,
        args: Optional[Mapping[str, Any]] = None,
        identity: Optional[Identity] = None,
    ) -> Any:
        response = await self._client.request(
            "POST",
            f"/rest/v1/rpc/{name}",
            identity=identity,
            json=dict(args or {}),
        )
        if not response.content:
            return None
        return _payload(response)
