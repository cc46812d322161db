"""Translates cow positions from recovery sessions.

During a collaborative recovery the agent's client reports where the
animal is.  Expected raw format:
{
    "recoveryId": "recovery3",
    "cowToken": "c-81d2",
    "latitude": 35.44117,
    "longitude": 33.436734,
    "zone": "zone3"
}
"""

from __future__ import annotations

from typing import Any

from safezone_core.adapters.base import (
    PositionAdapter,
    parse_timestamp,
    require,
    require_coordinate,
)
from safezone_core.domain.enums import ProducerKind
from safezone_core.domain.position import PositionEvent


class RecoveryAgentAdapter(PositionAdapter):
    """Maps recovery-session cow positions to PositionEvents."""

    @property
    def producer(self) -> ProducerKind:
        return ProducerKind.RECOVERY_AGENT

    def can_handle(self, raw: dict[str, Any]) -> bool:
        return "recoveryId" in raw and "cowToken" in raw

    def adapt(self, raw: dict[str, Any]) -> PositionEvent:
        recovery_id = str(require(raw, "recoveryId", self.producer))
        return PositionEvent(
            entity_id=str(require(raw, "cowToken", self.producer)),
            latitude=require_coordinate(raw, "latitude", self.producer),
            longitude=require_coordinate(raw, "longitude", self.producer),
            timestamp=parse_timestamp(raw.get("timestamp")),
            producer=self.producer,
            source=recovery_id,
        )
