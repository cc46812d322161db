"""Tracked-entity store with per-entity mutual exclusion.

Design notes:
    - Persistence is delegated to an EntityRepository (a synchronous
      key-value contract).  The store keeps no state of its own beyond
      what the repository accepted.
    - Every mutation runs inside that entity's lock, so at most one
      update per entity is in flight.  Different entities never wait on
      each other.
    - A save that fails leaves the previous version in place and raises
      StoreUnavailableError to the caller for retry.
    - Unchanged entities are not re-saved, which makes duplicate event
      delivery a no-op for the stored version.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from typing import Protocol

from safezone_core.domain.entity import TrackedEntity
from safezone_core.domain.enums import Zone
from safezone_core.store.locks import KeyedLock

logger = logging.getLogger(__name__)


class StoreUnavailableError(Exception):
    """The persistence collaborator failed.  Retryable."""

    def __init__(self, entity_id: str, reason: str) -> None:
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(f"Store unavailable for entity '{entity_id}': {reason}")


class UnknownEntityError(KeyError):
    """No tracked entity with this id has ever been registered."""

    def __init__(self, entity_id: str) -> None:
        self.entity_id = entity_id
        super().__init__(entity_id)

    def __str__(self) -> str:
        return f"Unknown entity '{self.entity_id}'"


class EntityRepository(Protocol):
    """Persistence contract for tracked entities."""

    def load_entity(self, entity_id: str) -> TrackedEntity | None:
        ...

    def save_entity(self, entity_id: str, state: TrackedEntity) -> None:
        ...

    def entity_ids(self) -> list[str]:
        ...


class InMemoryEntityRepository:
    """Dict-backed repository used by default and in tests."""

    def __init__(self) -> None:
        self._rows: dict[str, TrackedEntity] = {}

    def load_entity(self, entity_id: str) -> TrackedEntity | None:
        return self._rows.get(entity_id)

    def save_entity(self, entity_id: str, state: TrackedEntity) -> None:
        self._rows[entity_id] = state

    def entity_ids(self) -> list[str]:
        return list(self._rows)


class EntityHandle:
    """Mutable slot handed out by ``TrackedEntityStore.mutate``.

    The caller reads ``current`` and assigns ``updated``; the store saves
    ``updated`` when the block exits without error.
    """

    __slots__ = ("current", "updated")

    def __init__(self, current: TrackedEntity) -> None:
        self.current = current
        self.updated = current


class TrackedEntityStore:
    """Async-safe access to TrackedEntity state."""

    def __init__(self, repository: EntityRepository | None = None) -> None:
        self._repository = repository or InMemoryEntityRepository()
        self._locks = KeyedLock()

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def assign(
        self,
        entity_id: str,
        farm_id: str,
        owner_id: str | None = None,
    ) -> TrackedEntity:
        """Assign *entity_id* to *farm_id*, creating it on first assignment.

        Moving to a different farm starts a fresh zone history; the
        cumulative counters and breach count are kept.
        """
        async with self._locks.hold(entity_id):
            existing = self._load(entity_id)
            if existing is None:
                entity = TrackedEntity(entity_id=entity_id, farm_id=farm_id, owner_id=owner_id)
                logger.info("Tracking entity %s on farm %s", entity_id, farm_id)
            elif existing.farm_id == farm_id:
                entity = existing.model_copy(update={
                    "owner_id": owner_id or existing.owner_id,
                })
            else:
                entity = existing.with_cleared_slots().model_copy(update={
                    "farm_id": farm_id,
                    "owner_id": owner_id or existing.owner_id,
                    "current_zone": Zone.UNKNOWN,
                    "last_zone_change": None,
                    "actual_safe_seconds": 0.0,
                    "actual_unsafe_seconds": 0.0,
                })
                logger.info(
                    "Entity %s moved from farm %s to farm %s",
                    entity_id, existing.farm_id, farm_id,
                )
            return self._save(existing, entity)

    async def unassign(self, entity_id: str) -> TrackedEntity:
        """Detach *entity_id* from its farm; its alarm slots become not applicable."""
        async with self._locks.hold(entity_id):
            existing = self._require(entity_id)
            entity = existing.with_cleared_slots().model_copy(update={
                "farm_id": None,
                "current_zone": Zone.UNKNOWN,
                "last_zone_change": None,
                "actual_safe_seconds": 0.0,
                "actual_unsafe_seconds": 0.0,
            })
            logger.info("Entity %s unassigned from farm %s", entity_id, existing.farm_id)
            return self._save(existing, entity)

    # ── Mutation ─────────────────────────────────────────────────────────

    @asynccontextmanager
    async def mutate(self, entity_id: str) -> AsyncIterator[EntityHandle]:
        """Hold *entity_id*'s lock, yield a handle, persist on clean exit."""
        async with self._locks.hold(entity_id):
            handle = EntityHandle(self._require(entity_id))
            yield handle
            handle.updated = self._save(handle.current, handle.updated)

    async def update(
        self,
        entity_id: str,
        fn: Callable[[TrackedEntity], TrackedEntity],
    ) -> TrackedEntity:
        """Apply *fn* to the entity under its lock and persist the result."""
        async with self.mutate(entity_id) as handle:
            handle.updated = fn(handle.current)
        return handle.updated

    # ── Queries ──────────────────────────────────────────────────────────

    async def get(self, entity_id: str) -> TrackedEntity | None:
        return self._load(entity_id)

    async def entity_ids(self) -> list[str]:
        return self._repository.entity_ids()

    async def all(self) -> list[TrackedEntity]:
        entities = []
        for entity_id in self._repository.entity_ids():
            entity = self._load(entity_id)
            if entity is not None:
                entities.append(entity)
        return entities

    async def zone_counts(self) -> dict[str, int]:
        counts = {zone.value: 0 for zone in Zone}
        for entity in await self.all():
            counts[entity.current_zone.value] += 1
        return counts

    def is_locked(self, entity_id: str) -> bool:
        return self._locks.is_locked(entity_id)

    # ── Internals ────────────────────────────────────────────────────────

    def _load(self, entity_id: str) -> TrackedEntity | None:
        try:
            return self._repository.load_entity(entity_id)
        except StoreUnavailableError:
            raise
        except Exception as exc:
            raise StoreUnavailableError(entity_id, str(exc)) from exc

    def _require(self, entity_id: str) -> TrackedEntity:
        entity = self._load(entity_id)
        if entity is None:
            raise UnknownEntityError(entity_id)
        return entity

    def _save(self, previous: TrackedEntity | None, entity: TrackedEntity) -> TrackedEntity:
        """Must be called while holding the entity's lock."""
        if previous is not None and entity == previous:
            return previous
        versioned = entity.model_copy(update={
            "version": (previous.version + 1) if previous else entity.version,
        })
        try:
            self._repository.save_entity(versioned.entity_id, versioned)
        except StoreUnavailableError:
            raise
        except Exception as exc:
            logger.warning("Save failed for entity %s: %s", versioned.entity_id, exc)
            raise StoreUnavailableError(versioned.entity_id, str(exc)) from exc
        return versioned
