"""Adapter Registry — routes raw producer payloads to PositionEvents.

Adapters are tried in registration order; the first whose can_handle()
returns True owns the payload.  Whatever goes wrong inside the owning
adapter surfaces as a single AdaptationError tagged with its producer,
so a malformed frame never escapes as a raw TypeError into a socket loop.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from safezone_core.adapters.base import PositionAdapter
from safezone_core.domain.enums import ProducerKind
from safezone_core.domain.position import PositionEvent

logger = logging.getLogger(__name__)


class NoAdapterFoundError(Exception):
    """Raised when no registered adapter recognises a payload."""

    def __init__(self, keys: list[str]) -> None:
        self.keys = keys
        super().__init__(f"No adapter can handle payload with keys: {keys}")


class AdaptationError(Exception):
    """Raised when the adapter that owns a payload cannot translate it."""

    def __init__(self, producer: ProducerKind, reason: str) -> None:
        self.producer = producer
        self.reason = reason
        super().__init__(f"{producer.value} payload rejected: {reason}")


class AdapterRegistry:
    """Ordered set of adapters, one per producer kind.

    Usage:
        registry = AdapterRegistry()
        registry.register(CollarAdapter())
        registry.register(RecoveryAgentAdapter())

        event = registry.adapt(raw_payload)
    """

    def __init__(self) -> None:
        self._adapters: dict[ProducerKind, PositionAdapter] = {}
        self._accepted: Counter[ProducerKind] = Counter()
        self._rejected: Counter[ProducerKind] = Counter()
        self._unmatched = 0

    def register(self, adapter: PositionAdapter) -> None:
        if adapter.producer in self._adapters:
            raise ValueError(f"adapter for {adapter.producer.value} already registered")
        self._adapters[adapter.producer] = adapter
        logger.info("Registered adapter for producer %s", adapter.producer.value)

    def select(self, raw: dict[str, Any]) -> PositionAdapter | None:
        for adapter in self._adapters.values():
            if adapter.can_handle(raw):
                return adapter
        return None

    def adapt(self, raw: dict[str, Any]) -> PositionEvent:
        """Translate *raw* through the adapter that recognises it.

        Raises:
            NoAdapterFoundError: If no adapter recognises the payload.
            AdaptationError: If the owning adapter fails for any reason.
        """
        adapter = self.select(raw)
        if adapter is None:
            self._unmatched += 1
            raise NoAdapterFoundError(sorted(str(k) for k in raw.keys()))

        producer = adapter.producer
        try:
            event = adapter.adapt(raw)
        except Exception as exc:
            self._rejected[producer] += 1
            reason = str(exc) or type(exc).__name__
            logger.warning("Rejected %s payload: %s", producer.value, reason)
            raise AdaptationError(producer, reason) from exc

        self._accepted[producer] += 1
        logger.debug("Adapted %s payload → entity %s", producer.value, event.entity_id)
        return event

    def stats(self) -> dict[str, Any]:
        return {
            "accepted": {k.value: self._accepted[k] for k in self._adapters},
            "rejected": {k.value: self._rejected[k] for k in self._adapters},
            "unmatched": self._unmatched,
        }
