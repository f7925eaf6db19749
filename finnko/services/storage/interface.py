"""
Abstract Storage Interfaces

DESIGN DECISION: Two storage collaborators with deliberately different
failure contracts.
- LocalStoreInterface never raises: reads degrade to the caller's default,
  writes degrade to a logged no-op.
- RemoteStoreInterface raises RemoteStoreError whose `kind` is decoded once,
  here at the adapter boundary, from the backend's error payload.

The interfaces are intentionally small. Repositories decide which one to use
per call based on the identity resolved at that moment.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Mapping, Optional, Sequence

from finnko.models.entities import Identity


# Every key the application writes to the local store. clear_all() removes
# exactly this set.
LOCAL_STORE_KEYS: tuple[str, ...] = (
    "contas",
    "transacoes",
    "cartoes",
    "categorias",
    "compras",
    "parcelas",
    "objetivos",
    "ativos",
    "alocacoes",
    "profilePicture",
    "settings",
    "theme",
)


# =============================================================================
# ERRORS
# =============================================================================

class RemoteErrorKind(str, Enum):
    """Closed set of remote failure categories."""
    CONFLICT_TARGET_MISSING = "conflict_target_missing"
    UNDEFINED_TABLE = "undefined_table"
    UNIQUE_VIOLATION = "unique_violation"
    FOREIGN_KEY_VIOLATION = "foreign_key_violation"
    PERMISSION_DENIED = "permission_denied"
    NETWORK = "network"
    UNKNOWN = "unknown"


# PostgreSQL SQLSTATE / PostgREST codes -> kind
_CODE_KINDS: dict[str, RemoteErrorKind] = {
    "42P10": RemoteErrorKind.CONFLICT_TARGET_MISSING,
    "42P01": RemoteErrorKind.UNDEFINED_TABLE,
    "PGRST205": RemoteErrorKind.UNDEFINED_TABLE,
    "23505": RemoteErrorKind.UNIQUE_VIOLATION,
    "23503": RemoteErrorKind.FOREIGN_KEY_VIOLATION,
    "42501": RemoteErrorKind.PERMISSION_DENIED,
    "PGRST301": RemoteErrorKind.PERMISSION_DENIED,
    "PGRST302": RemoteErrorKind.PERMISSION_DENIED,
}


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class RemoteStoreError(StorageError):
    """A remote call failed. `kind` tells callers how to react."""

    def __init__(
        self,
        message: str,
        kind: RemoteErrorKind = RemoteErrorKind.UNKNOWN,
        code: Optional[str] = None,
        status: Optional[int] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.status = status

    def __repr__(self) -> str:
        return (
            f"RemoteStoreError(kind={self.kind.value!r}, code={self.code!r}, "
            f"status={self.status!r}, message={str(self)!r})"
        )


def decode_remote_error(status: int, payload: Any) -> RemoteStoreError:
    """
    Translate a failed PostgREST response into a RemoteStoreError.

    Args:
        status: HTTP status code
        payload: Parsed JSON body (dict with code/message/details/hint) or raw text

    Returns:
        RemoteStoreError with the decoded kind
    """
    code: Optional[str] = None
    message = ""
    if isinstance(payload, Mapping):
        raw_code = payload.get("code") or payload.get("error_code")
        code = str(raw_code) if raw_code is not None else None
        message = str(
            payload.get("message")
            or payload.get("msg")
            or payload.get("error_description")
            or payload.get("error")
            or ""
        )
    elif payload:
        message = str(payload)

    kind = _CODE_KINDS.get(code or "")
    if kind is None:
        if status in (401, 403):
            kind = RemoteErrorKind.PERMISSION_DENIED
        elif status == 409:
            kind = RemoteErrorKind.UNIQUE_VIOLATION
        else:
            kind = RemoteErrorKind.UNKNOWN

    return RemoteStoreError(
        message or f"Remote request failed with HTTP {status}",
        kind=kind,
        code=code,
        status=status,
    )


# =============================================================================
# INTERFACES
# =============================================================================

class LocalStoreInterface(ABC):
    """
    Key-value durable store for anonymous (demo) mode.

    Implementations must never raise from any method.
    """

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """
        Read the JSON value stored under key.

        Returns:
            The stored value, or default when missing or unreadable
        """
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> bool:
        """
        Store a JSON-serializable value under key.

        Returns:
            True if written, False if the write was dropped (and logged)
        """
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete a key if present."""
        pass

    def clear_all(self) -> None:
        """Remove every application key (LOCAL_STORE_KEYS)."""
        for key in LOCAL_STORE_KEYS:
            self.remove(key)


class RemoteStoreInterface(ABC):
    """
    Identity-scoped CRUD against the remote relational store.

    Every method raises RemoteStoreError on failure.
    """

    @abstractmethod
    async def select_all(
        self,
        table: str,
        identity: Identity,
        order_by: Sequence[str] = (),
        filters: Optional[Mapping[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """
        Select every row owned by identity.

        Args:
            table: Table name
            identity: Owner of the rows
            order_by: Columns to order by, ascending
            filters: Extra equality filters, {column: value}
        """
        pass

    @abstractmethod
    async def upsert_many(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_key: Sequence[str],
        identity: Identity,
    ) -> None:
        """
        Insert-or-update rows keyed on conflict_key.

        When the backend lacks a unique constraint on conflict_key the
        implementation falls back to delete-then-insert scoped to identity and
        the batch's natural keys.
        """
        pass

    @abstractmethod
    async def insert_many(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        identity: Identity,
    ) -> None:
        pass

    @abstractmethod
    async def update_where(
        self,
        table: str,
        values: Mapping[str, Any],
        filters: Mapping[str, Any],
        identity: Identity,
    ) -> None:
        pass

    @abstractmethod
    async def delete_where(
        self,
        table: str,
        filters: Mapping[str, Any],
        identity: Identity,
    ) -> None:
        """
        Delete identity's rows matching filters.

        A filter value that is a list/tuple/set matches any of its members.
        """
        pass

    async def delete_by_id(self, table: str, entity_id: str, identity: Identity) -> None:
        await self.delete_where(table, {"id": entity_id}, identity)

    async def delete_by_ids(
        self,
        table: str,
        entity_ids: Sequence[str],
        identity: Identity,
    ) -> None:
        if not entity_ids:
            return
        await self.delete_where(table, {"id": list(entity_ids)}, identity)

    @abstractmethod
    async def rpc(
        self,
        name: str,
        args: Optional[Mapping[str, Any]] = None,
        identity: Optional[Identity] = None,
    ) -> Any:
        """Call a remote procedure and return its decoded JSON result."""
        pass
