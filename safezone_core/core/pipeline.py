"""Position ingestion pipeline — the hot path for every GPS fix.

    producer ─► ingest ─► classify ─► advance ─► alarm ladder ─► store
                                                                  │
                              notification queue ◄── fired alarms ┤
                              subscriber hub     ◄── entity state ┘

Each ingestion runs inside the entity's lock, so two fixes for the same
animal are applied one after the other while fixes for different animals
proceed independently.  Notification dispatch and subscriber fan-out
happen after the lock is released and never block the caller.

Timestamps: zone time and alarm dwell are measured on the producer's
clock, so a replayed event yields the same result as its first delivery.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any

from safezone_core.core.accountant import advance
from safezone_core.core.alarm_ladder import AlarmLadder
from safezone_core.core.geofence import classify
from safezone_core.domain.entity import TrackedEntity
from safezone_core.domain.enums import AlarmLevel, ProducerKind, Zone
from safezone_core.domain.geometry import GeoPoint
from safezone_core.domain.position import PositionEvent
from safezone_core.domain.results import FireResult, IngestResult, ZoneTransition
from safezone_core.foundation.clock import ensure_utc, utc_now
from safezone_core.services.fences import FenceSource
from safezone_core.services.notifier import NotificationDispatcher
from safezone_core.services.subscribers import SubscriberHub
from safezone_core.store.entity_store import TrackedEntityStore

logger = logging.getLogger(__name__)


def notification_context(entity: TrackedEntity, result: FireResult) -> dict[str, Any]:
    """Context attached to an alarm notification."""
    position = entity.last_position
    return {
        "entity_id": entity.entity_id,
        "farm_id": entity.farm_id,
        "zone": entity.current_zone.value,
        "latitude": position.latitude if position else None,
        "longitude": position.longitude if position else None,
        "triggered_at": result.triggered_at.isoformat() if result.triggered_at else None,
        "breach_count": entity.breach_count,
    }


def dispatch_fired(
    notifier: NotificationDispatcher | None,
    entity: TrackedEntity,
    fired: list[FireResult],
) -> None:
    """Hand every successful fire to the notifier exactly once."""
    if notifier is None:
        return
    for result in fired:
        if not result.fired:
            continue
        notifier.notify(
            entity.owner_id,
            result.level,
            entity.entity_id,
            notification_context(entity, result),
        )


class PositionPipeline:
    """Classifier → Accountant → Alarm Ladder → Store, plus fan-out.

    Args:
        store: Where entity state lives.
        fences: Read-only fence and farm-policy lookup.
        ladder: Alarm ladder (levels 2 and 3 are evaluated on ingest).
        notifier: Receives newly fired alarms.  Optional.
        hub: Receives every ingested entity snapshot.  Optional.
        boundary_distance_m: Default Warning/Danger boundary.
    """

    def __init__(
        self,
        store: TrackedEntityStore,
        fences: FenceSource,
        ladder: AlarmLadder | None = None,
        notifier: NotificationDispatcher | None = None,
        hub: SubscriberHub | None = None,
        boundary_distance_m: float = 50.0,
    ) -> None:
        self._store = store
        self._fences = fences
        self._ladder = ladder or AlarmLadder()
        self._notifier = notifier
        self._hub = hub
        self._boundary_distance_m = boundary_distance_m
        self._tasks: set[asyncio.Task] = set()
        self.ingested_count: int = 0

    @property
    def ladder(self) -> AlarmLadder:
        return self._ladder

    # ── Public API ───────────────────────────────────────────────────────

    async def ingest_event(self, event: PositionEvent) -> IngestResult:
        return await self.ingest(
            event.entity_id,
            event.point,
            event.timestamp,
            producer=event.producer,
        )

    async def ingest(
        self,
        entity_id: str,
        point: GeoPoint,
        producer_timestamp: datetime,
        producer: ProducerKind = ProducerKind.UNSPECIFIED,
    ) -> IngestResult:
        """Apply one position fix to *entity_id* and persist the outcome.

        Raises:
            UnknownEntityError: The entity was never registered.
            StoreUnavailableError: Persistence failed; nothing was applied.
        """
        now = ensure_utc(producer_timestamp)
        transition: ZoneTransition | None = None
        fired: list[FireResult] = []

        async with self._store.mutate(entity_id) as handle:
            entity = self._with_position(handle.current, point, now)
            zone = self._classify(entity, point)

            entity, transition = advance(entity, zone, now)
            if transition is not None and transition.returned_to_safe:
                entity = self._ladder.reset_cycle(entity)

            if zone.is_known and entity.is_assigned:
                entity, fired = self._ladder.evaluate(entity, now)

            handle.updated = entity

        entity = handle.updated
        self.ingested_count += 1
        logger.debug(
            "Ingested %s fix for %s at %s → %s (v=%d)",
            producer.value,
            entity_id,
            point,
            zone.value,
            entity.version,
        )

        result = IngestResult(entity=entity, zone=zone, transition=transition, fired=fired)
        dispatch_fired(self._notifier, entity, fired)
        self._publish_update(result)
        return result

    async def trigger(
        self,
        entity_id: str,
        level: AlarmLevel,
        now: datetime | None = None,
    ) -> FireResult:
        """Caller-requested fire (the level-1 audio alarm, or a manual retry).

        Raises:
            UnknownEntityError: The entity was never registered.
            StoreUnavailableError: Persistence failed; the slot is unchanged.
        """
        now = now or utc_now()
        async with self._store.mutate(entity_id) as handle:
            handle.updated, result = self._ladder.try_fire(handle.current, level, now)

        if result.fired:
            dispatch_fired(self._notifier, handle.updated, [result])
            self._publish_alarm(handle.updated, result)
        return result

    async def flush(self) -> None:
        """Wait for pending fan-out tasks.  Used on shutdown and in tests."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ── Internals ────────────────────────────────────────────────────────

    def boundary_for(self, farm_id: str | None) -> float:
        if farm_id is not None:
            policy = self._fences.get_policy(farm_id)
            if policy is not None and policy.boundary_distance_m is not None:
                return policy.boundary_distance_m
        return self._boundary_distance_m

    def _classify(self, entity: TrackedEntity, point: GeoPoint) -> Zone:
        if not entity.is_assigned:
            return Zone.UNKNOWN
        fence = self._fences.get_fence(entity.farm_id)
        return classify(point, fence, self.boundary_for(entity.farm_id))

    @staticmethod
    def _with_position(entity: TrackedEntity, point: GeoPoint, at: datetime) -> TrackedEntity:
        # An older fix must not overwrite a newer reported position
        if entity.last_position_at is not None and at < entity.last_position_at:
            return entity
        return entity.model_copy(update={"last_position": point, "last_position_at": at})

    def _publish_update(self, result: IngestResult) -> None:
        if self._hub is None:
            return
        self._spawn(self._hub.publish({"type": "entity_update", **result.to_dict()}))
        for fire in result.fired:
            self._publish_alarm(result.entity, fire)

    def _publish_alarm(self, entity: TrackedEntity, result: FireResult) -> None:
        if self._hub is None:
            return
        self._spawn(self._hub.publish({
            "type": "alarm",
            "alarm": result.to_dict(),
            "entity": entity.summary(now=result.triggered_at or entity.last_position_at),
        }))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
