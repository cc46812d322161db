"""Monitoring arbiter — who emits alarms for an owner right now.

A live console (connected and heartbeating within the liveness window)
owns alarm emission for its owner's entities.  Otherwise the background
monitor does.  A missing record means the monitor owns it.  Ownership
is per owner: the entities a console has reported viewing do not narrow it.

This is a pure read.  It never mutates ownership state.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from safezone_core.foundation.clock import utc_now
from safezone_core.store.ownership import OwnershipRegistry


class MonitoringArbiter:
    """Answers ``owns_alarming`` from the OwnershipRegistry."""

    def __init__(
        self,
        registry: OwnershipRegistry,
        liveness_window: timedelta = timedelta(seconds=30),
    ) -> None:
        self._registry = registry
        self._liveness_window = liveness_window

    @property
    def liveness_window(self) -> timedelta:
        return self._liveness_window

    def owns_alarming(self, owner_id: str | None, now: datetime | None = None) -> bool:
        """True if the background monitor should act for *owner_id*."""
        if owner_id is None:
            return True
        record = self._registry.get(owner_id)
        if record is None:
            return True
        return not record.is_live(now or utc_now(), self._liveness_window)

    def live_owners(self, now: datetime | None = None) -> list[str]:
        now = now or utc_now()
        return [
            r.owner_id
            for r in self._registry.records()
            if r.is_live(now, self._liveness_window)
        ]
