"""Translates moves from the virtual cow controller.

Expected raw format:
{
    "cowToken": "vc-3f9a",
    "latitude": 35.44117,
    "longitude": 33.436734,
    "speed": 1.5,
    "zone": "zone2",
    "timestamp": "2026-10-18T14:00:00Z"
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


class SimulatorAdapter(PositionAdapter):
    """Maps virtual cow controller moves to PositionEvents."""

    @property
    def producer(self) -> ProducerKind:
        return ProducerKind.SIMULATOR

    def can_handle(self, raw: dict[str, Any]) -> bool:
        return "cowToken" in raw and "recoveryId" not in raw and "type" not in raw

    def adapt(self, raw: dict[str, Any]) -> PositionEvent:
        return PositionEvent(
            entity_id=str(require(raw, "cowToken", self.producer)),
            latitude=require_coordinate(raw, "latitude", self.producer),
            longitude=require_coordinate(raw, "longitude", self.producer),
            timestamp=parse_timestamp(raw.get("timestamp")),
            producer=self.producer,
            source="virtual-controller",
        )
