"""Manages live subscribers (dashboards, consoles) for state fan-out."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class TextSink(Protocol):
    """Anything that accepts text frames: a WebSocket, or a test double."""

    async def send_text(self, data: str) -> None:
        ...


class SubscriberHub:
    """Tracks connected subscribers and broadcasts JSON payloads.

    Subscribers whose send fails are dropped.  Publishing never raises,
    so fan-out can never fail an ingestion.
    """

    def __init__(self) -> None:
        self._clients: set[TextSink] = set()
        self._lock = asyncio.Lock()
        self.published_count: int = 0

    # ── Client management ────────────────────────────────────────────

    async def add(self, client: TextSink) -> None:
        async with self._lock:
            self._clients.add(client)
        logger.info("Subscriber connected (%d total)", len(self._clients))

    async def remove(self, client: TextSink) -> None:
        async with self._lock:
            self._clients.discard(client)
        logger.info("Subscriber disconnected (%d remaining)", len(self._clients))

    @property
    def client_count(self) -> int:
        return len(self._clients)

    # ── Broadcast ────────────────────────────────────────────────────

    async def publish(self, payload: dict[str, Any]) -> None:
        """Send *payload* to every connected subscriber."""
        if not self._clients:
            return

        message = json.dumps(payload, default=str)
        dead: set[TextSink] = set()

        async with self._lock:
            clients = set(self._clients)

        for client in clients:
            try:
                await client.send_text(message)
            except Exception:
                dead.add(client)

        self.published_count += 1
        if dead:
            async with self._lock:
                self._clients -= dead
            logger.info("Removed %d dead subscriber(s)", len(dead))
