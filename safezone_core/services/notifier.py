"""Fire-and-forget delivery of alarm notifications.

The engine never waits on delivery.  ``notify`` enqueues and returns; a
background worker drains the queue into a NotificationSink.  Delivery
failures are logged and dropped: the sink is assumed to be an
at-least-once, idempotence-tolerant collaborator (email, push, SMS).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Protocol

from pydantic import BaseModel, Field

from safezone_core.domain.enums import AlarmLevel, NotificationKind, notification_kind_for
from safezone_core.foundation.clock import utc_now

logger = logging.getLogger(__name__)


class Notification(BaseModel):
    """One alarm notification addressed to an owner."""

    owner_id: str | None
    level: AlarmLevel
    kind: NotificationKind
    entity_id: str
    context: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utc_now)

    model_config = {"frozen": True}


class NotificationDispatcher(Protocol):
    """What the pipeline and monitor call after a successful fire."""

    def notify(
        self,
        owner_id: str | None,
        level: AlarmLevel,
        entity_id: str,
        context: dict[str, Any],
    ) -> None:
        ...


class NotificationSink(Protocol):
    async def deliver(self, notification: Notification) -> None:
        ...


class LoggingNotificationSink:
    """Writes notifications to the log.  Default when no sink is wired."""

    async def deliver(self, notification: Notification) -> None:
        logger.info(
            "Notify owner=%s kind=%s entity=%s context=%s",
            notification.owner_id,
            notification.kind.value,
            notification.entity_id,
            notification.context,
        )


class NotificationQueue:
    """Bounded asyncio queue with a single delivery worker.

    Args:
        sink: Where notifications are delivered.
        maxsize: Queue bound.  When full, new notifications are dropped
            with a warning rather than blocking the caller.
    """

    def __init__(
        self,
        sink: NotificationSink | None = None,
        maxsize: int = 1000,
    ) -> None:
        self._sink = sink or LoggingNotificationSink()
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=maxsize)
        self._worker: asyncio.Task | None = None
        self.delivered_count: int = 0
        self.failed_count: int = 0
        self.dropped_count: int = 0

    # ── Producer side ────────────────────────────────────────────────────

    def notify(
        self,
        owner_id: str | None,
        level: AlarmLevel,
        entity_id: str,
        context: dict[str, Any],
    ) -> None:
        notification = Notification(
            owner_id=owner_id,
            level=level,
            kind=notification_kind_for(level),
            entity_id=entity_id,
            context=dict(context),
        )
        try:
            self._queue.put_nowait(notification)
        except asyncio.QueueFull:
            self.dropped_count += 1
            logger.warning(
                "Notification queue full, dropped %s for entity %s",
                notification.kind.value,
                entity_id,
            )

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # ── Worker ───────────────────────────────────────────────────────────

    def start(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run(), name="notification-worker")
            logger.info("Notification worker started")

    async def stop(self) -> None:
        if self._worker is None:
            return
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
        logger.info("Notification worker stopped")

    async def drain(self) -> None:
        """Deliver everything currently queued, in order.  Used by tests."""
        while not self._queue.empty():
            await self._deliver(self._queue.get_nowait())

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            await self._deliver(notification)

    async def _deliver(self, notification: Notification) -> None:
        try:
            await self._sink.deliver(notification)
            self.delivered_count += 1
        except Exception as exc:
            self.failed_count += 1
            logger.warning(
                "Delivery of %s for entity %s failed: %s",
                notification.kind.value,
                notification.entity_id,
                exc,
            )
        finally:
            self._queue.task_done()

    def stats(self) -> dict[str, int]:
        return {
            "pending": self.pending,
            "delivered": self.delivered_count,
            "failed": self.failed_count,
            "dropped": self.dropped_count,
        }
