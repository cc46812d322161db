"""Background monitor — the always-on fallback for dwell-time alarms.

A stationary animal sends no new zone, so nothing on the ingestion path
notices that 25 seconds in Warning have elapsed.  Every few seconds this
loop walks the assigned, unsafe entities whose owner has no live console
and tries the position-driven alarm levels against wall-clock time.

It runs outside the ingestion path.  Each entity lock is held only for
one evaluation and notifications are enqueued, never awaited.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from safezone_core.core.alarm_ladder import AlarmLadder
from safezone_core.core.arbiter import MonitoringArbiter
from safezone_core.core.pipeline import dispatch_fired
from safezone_core.domain.entity import TrackedEntity
from safezone_core.domain.enums import Zone
from safezone_core.domain.results import FireResult, MonitorTickReport
from safezone_core.foundation.clock import elapsed_seconds, utc_now
from safezone_core.services.notifier import NotificationDispatcher
from safezone_core.store.entity_store import StoreUnavailableError, TrackedEntityStore, UnknownEntityError

logger = logging.getLogger(__name__)


def _refresh_actual(entity: TrackedEntity, now: datetime) -> TrackedEntity:
    """Recompute the current zone's actual counter from wall-clock time."""
    elapsed = elapsed_seconds(entity.last_zone_change, now)
    if entity.current_zone == Zone.SAFE:
        return entity.model_copy(update={
            "actual_safe_seconds": max(entity.actual_safe_seconds, elapsed),
        })
    return entity.model_copy(update={
        "actual_unsafe_seconds": max(entity.actual_unsafe_seconds, elapsed),
    })


def _needs_watch(entity: TrackedEntity) -> bool:
    return entity.is_assigned and entity.current_zone.is_unsafe and entity.last_zone_change is not None


class BackgroundMonitor:
    """Periodic re-evaluation of alarm conditions from stored state.

    Args:
        store: Tracked-entity store shared with the pipeline.
        arbiter: Decides whether a live console owns an entity's alarms.
        ladder: The same alarm ladder the pipeline uses.
        notifier: Receives newly fired alarms.
        interval_seconds: Time between ticks.
        start_delay_seconds: Wait before the first tick.
    """

    def __init__(
        self,
        store: TrackedEntityStore,
        arbiter: MonitoringArbiter,
        ladder: AlarmLadder,
        notifier: NotificationDispatcher | None = None,
        interval_seconds: float = 5.0,
        start_delay_seconds: float = 10.0,
    ) -> None:
        self._store = store
        self._arbiter = arbiter
        self._ladder = ladder
        self._notifier = notifier
        self._interval = interval_seconds
        self._start_delay = start_delay_seconds
        self._task: asyncio.Task | None = None
        self.tick_count: int = 0
        self.last_report: MonitorTickReport | None = None

    # ── One pass ─────────────────────────────────────────────────────────

    async def tick(self, now: datetime | None = None) -> MonitorTickReport:
        """Examine every tracked entity once."""
        now = now or utc_now()
        examined = skipped_live = skipped_safe = 0
        fired: list[FireResult] = []
        failed: list[str] = []

        for entity in await self._store.all():
            if not _needs_watch(entity):
                skipped_safe += 1
                continue
            if not self._arbiter.owns_alarming(entity.owner_id, now):
                skipped_live += 1
                continue

            examined += 1
            try:
                fired.extend(await self._evaluate(entity.entity_id, now))
            except (StoreUnavailableError, UnknownEntityError) as exc:
                failed.append(entity.entity_id)
                logger.warning("Monitor skipped entity %s: %s", entity.entity_id, exc)

        report = MonitorTickReport(
            at=now,
            examined=examined,
            skipped_live=skipped_live,
            skipped_safe=skipped_safe,
            fired=fired,
            failed=failed,
        )
        self.tick_count += 1
        self.last_report = report
        if fired:
            logger.info("Monitor tick fired %d alarm(s)", len(fired))
        return report

    async def _evaluate(self, entity_id: str, now: datetime) -> list[FireResult]:
        fired: list[FireResult] = []
        async with self._store.mutate(entity_id) as handle:
            entity = handle.current
            # Re-check under the lock: a fix may have landed since the scan
            if not _needs_watch(entity) or not self._arbiter.owns_alarming(entity.owner_id, now):
                return []
            entity = _refresh_actual(entity, now)
            entity, fired = self._ladder.evaluate(entity, now)
            handle.updated = entity

        dispatch_fired(self._notifier, handle.updated, fired)
        return fired

    # ── Loop ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run(), name="background-monitor")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Background monitor stopped")

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def _run(self) -> None:
        logger.info(
            "Background monitor starts in %.0fs, ticking every %.0fs",
            self._start_delay,
            self._interval,
        )
        await asyncio.sleep(self._start_delay)
        logger.info("Background monitor active")
        while True:
            try:
                report = await self.tick()
                if report.failed:
                    logger.warning(
                        "Monitor tick could not persist %d entit(ies): %s",
                        len(report.failed),
                        ", ".join(report.failed),
                    )
            except Exception as exc:
                logger.error("Monitor tick failed: %s", exc, exc_info=True)
            await asyncio.sleep(self._interval)
