"""REST endpoints used by operator consoles.

Paths (all under /api):
    POST /console/heartbeat          keep a console's live ownership
    POST /console/disconnect         release it explicitly
    GET  /entities                   every tracked entity
    GET  /entities/{id}              one entity with time-in-zone
    PUT  /entities/{id}/assign       bind to a farm (creates on first call)
    PUT  /entities/{id}/unassign     detach from its farm
    GET  /alarms/{id}                per-level alarm state
    POST /alarms/{id}/trigger        caller-requested fire (audio alarm)
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from safezone_core.core.arbiter import MonitoringArbiter
from safezone_core.core.pipeline import PositionPipeline
from safezone_core.domain.enums import AlarmLevel
from safezone_core.domain.ownership import OwnershipRecord
from safezone_core.store.entity_store import (
    StoreUnavailableError,
    TrackedEntityStore,
    UnknownEntityError,
)
from safezone_core.store.ownership import OwnershipRegistry

logger = logging.getLogger(__name__)


class HeartbeatRequest(BaseModel):
    owner_id: str = Field(..., min_length=1)
    entity_id: str | None = None


class DisconnectRequest(BaseModel):
    owner_id: str = Field(..., min_length=1)


class AssignRequest(BaseModel):
    farm_id: str = Field(..., min_length=1)
    owner_id: str | None = None


class TriggerRequest(BaseModel):
    level: AlarmLevel = AlarmLevel.AUDIO


def _record_dict(record: OwnershipRecord, arbiter: MonitoringArbiter) -> dict[str, Any]:
    return {
        "owner_id": record.owner_id,
        "connection_state": record.connection_state.value,
        "last_heartbeat": record.last_heartbeat.isoformat(),
        "entity_ids": sorted(record.entity_ids),
        "monitor_owns_alarming": arbiter.owns_alarming(record.owner_id),
    }


def _not_found(exc: UnknownEntityError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(exc))


def _unavailable(exc: StoreUnavailableError) -> HTTPException:
    return HTTPException(status_code=503, detail=str(exc))


def create_console_router(
    store: TrackedEntityStore,
    pipeline: PositionPipeline,
    ownership: OwnershipRegistry,
    arbiter: MonitoringArbiter,
) -> APIRouter:
    """Factory that wires the console endpoints to shared engine state."""

    router = APIRouter(prefix="/api", tags=["console"])

    # ── Console liveness ─────────────────────────────────────────────

    @router.post("/console/heartbeat")
    async def heartbeat(body: HeartbeatRequest) -> dict[str, Any]:
        record = await ownership.heartbeat(body.owner_id, body.entity_id)
        return {"status": "ok", **_record_dict(record, arbiter)}

    @router.post("/console/disconnect")
    async def disconnect(body: DisconnectRequest) -> dict[str, Any]:
        record = await ownership.disconnect(body.owner_id)
        if record is None:
            raise HTTPException(status_code=404, detail=f"No console session for owner {body.owner_id}")
        return {"status": "ok", **_record_dict(record, arbiter)}

    # ── Entities ─────────────────────────────────────────────────────

    @router.get("/entities")
    async def list_entities() -> dict[str, Any]:
        try:
            entities = await store.all()
        except StoreUnavailableError as exc:
            raise _unavailable(exc) from exc
        return {
            "entities": [e.summary() for e in entities],
            "count": len(entities),
        }

    @router.get("/entities/{entity_id}")
    async def get_entity(entity_id: str) -> dict[str, Any]:
        try:
            entity = await store.get(entity_id)
        except StoreUnavailableError as exc:
            raise _unavailable(exc) from exc
        if entity is None:
            raise HTTPException(status_code=404, detail=f"Unknown entity '{entity_id}'")
        return entity.summary()

    @router.put("/entities/{entity_id}/assign")
    async def assign(entity_id: str, body: AssignRequest) -> dict[str, Any]:
        try:
            entity = await store.assign(entity_id, body.farm_id, body.owner_id)
        except StoreUnavailableError as exc:
            raise _unavailable(exc) from exc
        return entity.summary()

    @router.put("/entities/{entity_id}/unassign")
    async def unassign(entity_id: str) -> dict[str, Any]:
        try:
            entity = await store.unassign(entity_id)
        except UnknownEntityError as exc:
            raise _not_found(exc) from exc
        except StoreUnavailableError as exc:
            raise _unavailable(exc) from exc
        return entity.summary()

    # ── Alarms ───────────────────────────────────────────────────────

    @router.get("/alarms/{entity_id}")
    async def alarm_state(entity_id: str) -> dict[str, Any]:
        try:
            entity = await store.get(entity_id)
        except StoreUnavailableError as exc:
            raise _unavailable(exc) from exc
        if entity is None:
            raise HTTPException(status_code=404, detail=f"Unknown entity '{entity_id}'")
        return {
            "entity_id": entity.entity_id,
            "zone": entity.current_zone.value,
            "alarms": entity.alarm_states(),
        }

    @router.post("/alarms/{entity_id}/trigger")
    async def trigger(entity_id: str, body: TriggerRequest) -> dict[str, Any]:
        try:
            result = await pipeline.trigger(entity_id, body.level)
        except UnknownEntityError as exc:
            raise _not_found(exc) from exc
        except StoreUnavailableError as exc:
            raise _unavailable(exc) from exc
        if not result.fired:
            logger.debug("Trigger of level %d for %s refused: %s", result.level, entity_id, result.reason.value)
        return result.to_dict()

    return router
