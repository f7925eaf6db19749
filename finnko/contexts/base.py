"""
Domain Context Base (in-memory state cache)

A context owns one entity collection in memory and is the only place it is
mutated. It follows a small state machine:

    UNINITIALIZED -> LOADING -> LOADED

- initialize() waits for the identity resolver to settle, loads through the
  repository and only then enters LOADED.
- Mutations apply synchronously to the in-memory collection and return at
  once (optimistic). Each one is also recorded as a replayable operation.
- Before LOADED nothing is saved. Operations recorded while loading are
  replayed on top of the loaded baseline, then the result is saved. This is
  what keeps a slow initial load from being overwritten by an almost empty
  collection.
- After LOADED every mutation schedules a background save of the whole
  collection. Saves are serialized per context with an asyncio.Lock and
  always write the latest state, so overlapping saves collapse into one.
- A failed save is reported to the PersistenceSink and NOT rolled back.
  Memory and backend may diverge until the next successful save
  (eventual consistency).

Mutations schedule asyncio tasks, so they must be called from within a
running event loop.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, Sequence, TypeVar

import structlog

from finnko.audit.logger import LoggingPersistenceSink, PersistenceSink
from finnko.repositories.base import EntityRepository
from finnko.services.identity import IdentityResolver
from finnko.services.storage.interface import NotFoundError


logger = structlog.get_logger(__name__)

T = TypeVar("T")
Operation = Callable[[list[T]], list[T]]


class LoadState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    LOADED = "loaded"


class DomainContext(Generic[T]):
    """
    In-memory authoritative collection for one entity type.

    Args:
        repository: Repository used for load/save/delete
        identity: Resolver whose settlement gates the initial load
        sink: Receives background persistence failures
    """

    def __init__(
        self,
        repository: EntityRepository[T],
        identity: IdentityResolver,
        sink: Optional[PersistenceSink] = None,
    ):
        self._repository = repository
        self._identity = identity
        self._sink = sink or LoggingPersistenceSink()
        self._items: list[T] = []
        self._state = LoadState.UNINITIALIZED
        self._pending: list[Operation] = []
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._version = 0
        self._saved_version = 0
        self._generation = 0

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def repository(self) -> EntityRepository[T]:
        return self._repository

    @property
    def entity_type(self) -> str:
        return self._repository.entity_type

    @property
    def state(self) -> LoadState:
        return self._state

    @property
    def is_loaded(self) -> bool:
        return self._state is LoadState.LOADED

    @property
    def items(self) -> list[T]:
        """Snapshot of the collection."""
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    @staticmethod
    def key_of(entity: T) -> Any:
        return entity.id

    def get(self, key: Any) -> Optional[T]:
        for item in self._items:
            if self.key_of(item) == key:
                return item
        return None

    def require(self, key: Any) -> T:
        item = self.get(key)
        if item is None:
            raise NotFoundError(f"{self.entity_type} {key} not found")
        return item

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    async def initialize(self) -> None:
        """Load once the identity is settled. Later calls are no-ops."""
        if self._state is not LoadState.UNINITIALIZED:
            return
        await self._identity.wait_until_settled()
        await self._load()

    def invalidate(self) -> None:
        """
        Leave LOADED ahead of a reload (e.g. the identity just changed).

        Saves that have not started yet are skipped; mutations are queued for
        replay on the next load.
        """
        self._generation += 1
        self._state = LoadState.LOADING

    async def reload(self) -> None:
        """Discard the current baseline and load again for the current identity."""
        self.invalidate()
        await self._load()

    async def _load(self) -> None:
        self._generation += 1
        generation = self._generation
        self._state = LoadState.LOADING

        baseline = await self._repository.get_all()
        if generation != self._generation:
            # A newer load superseded this one
            return

        items = list(baseline)
        dropped: set[Any] = set()
        pending, self._pending = self._pending, []
        for operation in pending:
            before = items
            items = operation(items)
            if getattr(operation, "replaces_collection", False):
                kept = {self.key_of(i) for i in items}
                dropped.update(self.key_of(i) for i in before if self.key_of(i) not in kept)

        self._items = items
        self._saved_version = self._version
        self._state = LoadState.LOADED
        logger.debug("context_loaded", entity_type=self.entity_type,
                     count=len(items), replayed=len(pending))

        if pending:
            self._schedule_save()
        # Baseline rows dropped by a replace made while loading still exist remotely
        final = {self.key_of(i) for i in items}
        self._schedule_remote_delete(
            [self.key_of(i) for i in baseline
             if self.key_of(i) in dropped and self.key_of(i) not in final]
        )

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _schedule_save(self) -> None:
        self._version += 1
        self._spawn(self._save_latest())

    async def _save_latest(self) -> None:
        async with self._lock:
            if self._state is not LoadState.LOADED or self._saved_version >= self._version:
                return
            version = self._version
            snapshot = list(self._items)
            try:
                await self._repository.save(snapshot)
            except Exception as e:
                self._sink.report_failure("save", self.entity_type, e)
                return
            self._saved_version = max(self._saved_version, version)

    async def run_exclusive(
        self,
        operation: str,
        action: Callable[[], Awaitable[None]],
        entity_type: Optional[str] = None,
    ) -> None:
        """Run a remote side effect under this context's lock; failures go to the sink."""
        async with self._lock:
            try:
                await action()
            except Exception as e:
                self._sink.report_failure(operation, entity_type or self.entity_type, e)

    def _schedule_remote_delete(self, ids: Sequence[str]) -> None:
        ids = list(ids)
        if not ids:
            return
        self._spawn(self.run_exclusive("delete", lambda: self._repository.delete_remote(ids)))

    def schedule(self, operation: str, action: Callable[[], Awaitable[None]]) -> None:
        """Fire-and-forget a side effect serialized with this context's saves."""
        self._spawn(self.run_exclusive(operation, action))

    @property
    def has_pending_writes(self) -> bool:
        return bool(self._tasks)

    async def flush(self) -> None:
        """Wait until every scheduled save and side effect has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    def _mutate(self, operation: Operation) -> None:
        self._items = operation(list(self._items))
        if self._state is LoadState.LOADED:
            self._schedule_save()
        else:
            self._pending.append(operation)

    def _upsert_op(self, entities: Sequence[T]) -> Operation:
        entities = list(entities)

        def apply(items: list[T]) -> list[T]:
            replacements = {self.key_of(e): e for e in entities}
            result = []
            for item in items:
                key = self.key_of(item)
                result.append(replacements.pop(key, item))
            result.extend(e for e in entities if self.key_of(e) in replacements)
            return result

        return apply

    def _remove_op(self, keys: Iterable[Any]) -> Operation:
        keys = set(keys)

        def apply(items: list[T]) -> list[T]:
            return [item for item in items if self.key_of(item) not in keys]

        return apply

    def add(self, entity: T) -> T:
        """Add (or replace by key) one entity."""
        self._mutate(self._upsert_op([entity]))
        return entity

    def add_many(self, entities: Sequence[T]) -> list[T]:
        entities = list(entities)
        if entities:
            self._mutate(self._upsert_op(entities))
        return entities

    def create(self, **fields: Any) -> T:
        """Build through the repository factory and add."""
        return self.add(self._repository.create(**fields))

    def replace(self, entity: T) -> T:
        """
        Store an already-updated entity.

        Raises:
            NotFoundError: context is loaded and has no entity with that key
        """
        if self._state is LoadState.LOADED and self.get(self.key_of(entity)) is None:
            raise NotFoundError(f"{self.entity_type} {self.key_of(entity)} not found")
        self._mutate(self._upsert_op([entity]))
        return entity

    def update(self, entity: T, **changes: Any) -> T:
        """Refresh updated_at (plus optional changes) and store."""
        return self.replace(self._repository.update(entity, **changes))

    def delete(self, key: Any) -> None:
        self.delete_many([key])

    def delete_many(self, keys: Iterable[Any], remote: bool = True) -> None:
        """
        Remove entities by key.

        With remote=False only memory (and the next save) changes; the caller
        owns the remote delete, as cascades do.
        """
        keys = list(dict.fromkeys(keys))
        if not keys:
            return
        self._mutate(self._remove_op(keys))
        if remote:
            self._schedule_remote_delete(keys)

    def bulk_replace(self, entities: Sequence[T]) -> None:
        """
        Replace the whole collection; entities no longer present are deleted remotely.

        While loading, the removed keys are only known once the baseline
        arrives, so _load computes them when it replays this operation.
        """
        entities = list(entities)
        new_keys = {self.key_of(e) for e in entities}
        removed = [self.key_of(i) for i in self._items if self.key_of(i) not in new_keys]

        def apply(_items: list[T]) -> list[T]:
            return list(entities)

        apply.replaces_collection = True
        self._mutate(apply)
        if self._state is LoadState.LOADED:
            self._schedule_remote_delete(removed)
