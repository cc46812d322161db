"""Which operator console currently owns alarm emission."""

from __future__ import annotations

from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from safezone_core.domain.enums import ConnectionState


class OwnershipRecord(BaseModel):
    """Liveness state of one operator's console session.

    While the console is connected and heartbeating it is responsible for
    alarms on every entity of its owner.  Otherwise the background monitor
    takes over.

    ``entity_ids`` lists the entities the console has reported viewing.
    It is informational only; arbitration is decided per owner.
    """

    owner_id: str = Field(..., min_length=1, max_length=256)
    last_heartbeat: datetime
    connection_state: ConnectionState = ConnectionState.CONNECTED
    entity_ids: frozenset[str] = Field(default_factory=frozenset)

    model_config = {"frozen": True}

    def is_live(self, now: datetime, liveness_window: timedelta) -> bool:
        if self.connection_state != ConnectionState.CONNECTED:
            return False
        return (now - self.last_heartbeat) <= liveness_window
