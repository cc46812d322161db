"""Console liveness records keyed by owner.

Heartbeats and disconnects are the only writers.  Each owner's record is
replaced under that owner's lock; reads return the current immutable
record without locking.
"""

from __future__ import annotations

import logging
from datetime import datetime

from safezone_core.domain.enums import ConnectionState
from safezone_core.domain.ownership import OwnershipRecord
from safezone_core.foundation.clock import utc_now
from safezone_core.store.locks import KeyedLock

logger = logging.getLogger(__name__)


class OwnershipRegistry:
    """In-memory store of OwnershipRecords."""

    def __init__(self) -> None:
        self._records: dict[str, OwnershipRecord] = {}
        self._locks = KeyedLock()

    # ── Writers ──────────────────────────────────────────────────────────

    async def heartbeat(
        self,
        owner_id: str,
        entity_id: str | None = None,
        now: datetime | None = None,
    ) -> OwnershipRecord:
        """Refresh (or open) the console session for *owner_id*."""
        now = now or utc_now()
        async with self._locks.hold(owner_id):
            previous = self._records.get(owner_id)
            entity_ids = set(previous.entity_ids) if previous else set()
            if entity_id:
                entity_ids.add(entity_id)
            record = OwnershipRecord(
                owner_id=owner_id,
                last_heartbeat=now,
                connection_state=ConnectionState.CONNECTED,
                entity_ids=frozenset(entity_ids),
            )
            self._records[owner_id] = record
            if previous is None or previous.connection_state != ConnectionState.CONNECTED:
                logger.info("Console connected for owner %s", owner_id)
            return record

    async def disconnect(self, owner_id: str) -> OwnershipRecord | None:
        """Explicitly release live ownership for *owner_id*."""
        async with self._locks.hold(owner_id):
            previous = self._records.get(owner_id)
            if previous is None:
                return None
            record = previous.model_copy(
                update={"connection_state": ConnectionState.DISCONNECTED}
            )
            self._records[owner_id] = record
            logger.info("Console disconnected for owner %s", owner_id)
            return record

    # ── Readers ──────────────────────────────────────────────────────────

    def get(self, owner_id: str) -> OwnershipRecord | None:
        return self._records.get(owner_id)

    def records(self) -> list[OwnershipRecord]:
        return list(self._records.values())
