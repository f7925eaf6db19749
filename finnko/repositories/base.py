"""
Entity Repository Base

A repository is a stateless mediator between the identity resolver and the
two storage adapters. Each call resolves the identity again and then picks
the backend:

- anonymous (or no remote configured) -> local store, one JSON list per key
- authenticated                       -> remote table, rows scoped by user_id

DESIGN DECISION: save() always writes the full collection (local: replace
the document; remote: one batch upsert). Rows removed in memory are deleted
remotely through delete_remote(), because an upsert cannot remove rows.

Failure policy:
- get_all(): never raises; failures are logged and degrade to []
- save()/delete_remote(): raise; the owning context reports the failure
- create()/update(): synchronous, no I/O
"""

from abc import ABC
from typing import Any, ClassVar, Generic, Mapping, Optional, Sequence, TypeVar

import structlog
from pydantic import ValidationError

from finnko.audit.logger import PersistenceSink
from finnko.models.entities import Identity, new_id, utc_now
from finnko.services.identity import IdentityResolver
from finnko.services.storage.interface import (
    LocalStoreInterface,
    RemoteStoreError,
    RemoteStoreInterface,
)


logger = structlog.get_logger(__name__)

T = TypeVar("T")


class EntityRepository(ABC, Generic[T]):
    """
    Generic repository for one entity type.

    Subclasses set the class attributes; most need nothing else.
    """

    entity_type: ClassVar[str]
    model: ClassVar[type]
    local_key: ClassVar[str]
    table: ClassVar[str]
    order_by: ClassVar[tuple[str, ...]] = ("id",)
    conflict_key: ClassVar[tuple[str, ...]] = ("id",)
    remote_timestamps: ClassVar[bool] = True

    def __init__(
        self,
        identity: IdentityResolver,
        local: LocalStoreInterface,
        remote: Optional[RemoteStoreInterface] = None,
        sink: Optional[PersistenceSink] = None,
    ):
        self._identity = identity
        self._local = local
        self._remote = remote
        self._sink = sink

    # -------------------------------------------------------------------------
    # Backend selection
    # -------------------------------------------------------------------------

    async def _remote_identity(self) -> Optional[Identity]:
        """Identity to use for a remote call, or None for the local path."""
        identity = await self._identity.current_identity()
        if identity is None or self._remote is None:
            return None
        return identity

    def _report(self, operation: str, error: BaseException) -> None:
        if self._sink is not None:
            self._sink.report_failure(operation, self.entity_type, error)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def _parse(self, items: Sequence[Any], source: str) -> list[T]:
        """Validate raw items, skipping (and logging) the ones that don't parse."""
        entities = []
        for index, item in enumerate(items):
            if not isinstance(item, Mapping):
                logger.warning("entity_skipped", entity_type=self.entity_type,
                               source=source, index=index, reason="not an object")
                continue
            try:
                entities.append(self.model.model_validate(item))
            except ValidationError as e:
                logger.warning("entity_skipped", entity_type=self.entity_type,
                               source=source, index=index, reason=str(e))
        return entities

    def _to_row(self, entity: T, user_id: str) -> dict[str, Any]:
        row = entity.to_row(user_id)
        if not self.remote_timestamps:
            row.pop("created_at", None)
            row.pop("updated_at", None)
        return row

    def _read_local(self) -> list[T]:
        raw = self._local.get(self.local_key, [])
        if not isinstance(raw, list):
            logger.warning("local_collection_corrupt", key=self.local_key,
                           found=type(raw).__name__)
            return []
        return self._parse(raw, source="local")

    def _write_local(self, entities: Sequence[T]) -> None:
        self._local.set(self.local_key, [e.to_local() for e in entities])

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def get_all(self) -> list[T]:
        """Load the whole collection from the backend matching the current identity."""
        identity = await self._remote_identity()
        if identity is None:
            return self._read_local()

        try:
            rows = await self._remote.select_all(self.table, identity, order_by=self.order_by)
        except RemoteStoreError as e:
            logger.error("remote_load_failed", entity_type=self.entity_type,
                         table=self.table, kind=e.kind.value, error=str(e))
            self._report("load", e)
            return []
        return self._parse(rows, source="remote")

    async def save(self, entities: Sequence[T]) -> None:
        """
        Persist the full collection.

        Raises:
            RemoteStoreError: remote write failed (after the upsert fallback)
        """
        identity = await self._remote_identity()
        if identity is None:
            self._write_local(entities)
            return

        rows = [self._to_row(e, identity.user_id) for e in entities]
        await self._remote.upsert_many(self.table, rows, self.conflict_key, identity)

    async def delete_remote(self, ids: Sequence[str]) -> None:
        """Delete rows by id on the remote store. No-op for anonymous identities."""
        identity = await self._remote_identity()
        if identity is None or not ids:
            return
        await self._remote.delete_by_ids(self.table, list(ids), identity)

    async def delete_remote_where(self, filters: Mapping[str, Any]) -> None:
        identity = await self._remote_identity()
        if identity is None:
            return
        await self._remote.delete_where(self.table, filters, identity)

    def create(self, **fields: Any) -> T:
        """Build a new entity with a fresh id and timestamps. Does not persist."""
        now = utc_now()
        return self.model(**{**fields, "id": new_id(), "created_at": now, "updated_at": now})

    def update(self, entity: T, **changes: Any) -> T:
        """
        Return entity with changes applied and updated_at refreshed. Does not persist.

        Changes are validated like a fresh entity.
        """
        data = entity.model_dump()
        data.update(changes)
        data["id"] = entity.id
        data["updated_at"] = utc_now()
        return self.model.model_validate(data)

    def validate_deletion(self, entity: T, *related: Any):
        """Referential check before deletion; None means deletable."""
        return None
