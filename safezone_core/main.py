"""safezone-core: geofence classification and alarm escalation service.

This is the application entry point.  It wires the fence source, the
tracked-entity store, the position pipeline, the background monitor and
the WebSocket/REST endpoints together.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI

from safezone_core.adapters.collar import CollarAdapter
from safezone_core.adapters.recovery import RecoveryAgentAdapter
from safezone_core.adapters.registry import AdapterRegistry
from safezone_core.adapters.simulator import SimulatorAdapter
from safezone_core.api.console import create_console_router
from safezone_core.api.ws_dashboard import create_dashboard_router
from safezone_core.api.ws_position import create_position_router
from safezone_core.config import settings
from safezone_core.core.alarm_ladder import AlarmLadder
from safezone_core.core.arbiter import MonitoringArbiter
from safezone_core.core.monitor import BackgroundMonitor
from safezone_core.core.pipeline import PositionPipeline
from safezone_core.services.fences import InMemoryFenceSource, dwell_lookup, load_fences
from safezone_core.services.notifier import NotificationQueue
from safezone_core.services.subscribers import SubscriberHub
from safezone_core.store.entity_store import TrackedEntityStore
from safezone_core.store.ownership import OwnershipRegistry

# ── Logging ──────────────────────────────────────────────────────────────────

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

# ── Fences ───────────────────────────────────────────────────────────────────

fences = InMemoryFenceSource()
if settings.fences_file:
    load_fences(settings.fences_file, fences)

# ── State ────────────────────────────────────────────────────────────────────

store = TrackedEntityStore()
ownership = OwnershipRegistry()
arbiter = MonitoringArbiter(
    ownership,
    liveness_window=timedelta(seconds=settings.liveness_window_seconds),
)

# ── Engine ───────────────────────────────────────────────────────────────────

ladder = AlarmLadder(
    warning_dwell_seconds=settings.warning_dwell_seconds,
    dwell_lookup=dwell_lookup(fences),
)
notifier = NotificationQueue(maxsize=settings.notification_queue_size)
hub = SubscriberHub()

pipeline = PositionPipeline(
    store,
    fences,
    ladder=ladder,
    notifier=notifier,
    hub=hub,
    boundary_distance_m=settings.boundary_distance_m,
)

monitor = BackgroundMonitor(
    store,
    arbiter,
    ladder,
    notifier=notifier,
    interval_seconds=settings.monitor_interval_seconds,
    start_delay_seconds=settings.monitor_start_delay_seconds,
)

# ── Adapter Registry ────────────────────────────────────────────────────────

registry = AdapterRegistry()
registry.register(CollarAdapter())
registry.register(RecoveryAgentAdapter())
registry.register(SimulatorAdapter())

# ── App ──────────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    notifier.start()
    monitor.start()
    yield
    await monitor.stop()
    await pipeline.flush()
    await notifier.drain()
    await notifier.stop()


app = FastAPI(
    title=settings.app_name,
    description="Geofence zone classification, zone-time accounting & alarm escalation",
    version="0.1.0",
    lifespan=lifespan,
)

# ── Routes ───────────────────────────────────────────────────────────────────

app.include_router(create_position_router(pipeline, registry))
app.include_router(create_dashboard_router(hub))
app.include_router(create_console_router(store, pipeline, ownership, arbiter))


# ── Health ───────────────────────────────────────────────────────────────────

@app.get("/health")
async def health() -> dict:
    zones = await store.zone_counts()
    last = monitor.last_report
    return {
        "status": "ok",
        "tracked_entities": sum(zones.values()),
        "zones": zones,
        "live_owners": arbiter.live_owners(),
        "ingested": pipeline.ingested_count,
        "monitor_running": monitor.running,
        "monitor_ticks": monitor.tick_count,
        "last_tick": last.to_dict() if last else None,
        "notifications": notifier.stats(),
        "dashboard_clients": hub.client_count,
        "adapters": registry.stats(),
    }
