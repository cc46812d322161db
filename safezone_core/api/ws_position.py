"""WebSocket endpoint for position ingestion.

Path: /ws/position

Accepts JSON matching the PositionEvent schema, or any producer dialect
an adapter understands.  Each frame is routed through the ingestion
pipeline and acknowledged with the entity's new state and any alarms
that fired.
"""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from safezone_core.adapters.registry import AdaptationError, AdapterRegistry, NoAdapterFoundError
from safezone_core.core.pipeline import PositionPipeline
from safezone_core.domain.position import PositionEvent
from safezone_core.store.entity_store import StoreUnavailableError, UnknownEntityError

logger = logging.getLogger(__name__)


def create_position_router(
    pipeline: PositionPipeline,
    adapter_registry: AdapterRegistry | None = None,
) -> APIRouter:
    """Factory that wires the position endpoint to a concrete pipeline.

    Args:
        pipeline: The PositionPipeline to ingest fixes into.
        adapter_registry: Optional AdapterRegistry for producer dialects.
    """

    router = APIRouter()

    @router.websocket("/ws/position")
    async def ingest_position(websocket: WebSocket) -> None:
        await websocket.accept()
        logger.info("Position producer connected")

        try:
            while True:
                text = await websocket.receive_text()
                try:
                    raw = json.loads(text)
                except json.JSONDecodeError as exc:
                    await websocket.send_json({
                        "status": "error",
                        "reason": "invalid_json",
                        "detail": str(exc),
                    })
                    continue

                # ── Validate at the boundary ─────────────────────────────
                try:
                    event = PositionEvent.model_validate(raw)
                except ValidationError as exc:
                    if adapter_registry is None or not isinstance(raw, dict):
                        await websocket.send_json({
                            "status": "error",
                            "reason": "invalid_position",
                            "detail": str(exc),
                        })
                        continue
                    try:
                        event = adapter_registry.adapt(raw)
                    except NoAdapterFoundError as adapt_exc:
                        await websocket.send_json({
                            "status": "error",
                            "reason": "no_adapter",
                            "detail": str(adapt_exc),
                        })
                        continue
                    except AdaptationError as adapt_exc:
                        await websocket.send_json({
                            "status": "error",
                            "reason": "adaptation_failed",
                            "producer": adapt_exc.producer.value,
                            "detail": adapt_exc.reason,
                        })
                        continue

                # ── Route into pipeline ──────────────────────────────────
                try:
                    result = await pipeline.ingest_event(event)
                except UnknownEntityError as exc:
                    logger.warning("Position for unknown entity %s dropped", exc.entity_id)
                    await websocket.send_json({
                        "status": "error",
                        "reason": "unknown_entity",
                        "entity_id": exc.entity_id,
                    })
                    continue
                except StoreUnavailableError as exc:
                    await websocket.send_json({
                        "status": "error",
                        "reason": "store_unavailable",
                        "entity_id": exc.entity_id,
                        "retryable": True,
                    })
                    continue

                # ── Acknowledge ──────────────────────────────────────────
                await websocket.send_json({"status": "accepted", **result.to_dict()})

        except WebSocketDisconnect:
            logger.info("Position producer disconnected")

    return router
