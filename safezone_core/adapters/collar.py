"""CollarAdapter — translates GPS frames from physical collars.

Expected raw format (relayed from the collar WebSocket bridge):
{
    "type": "gps_data",
    "deviceId": "ESP32-COLLAR-07",
    "latitude": 35.44117,
    "longitude": 33.436734,
    "altitude": 112.0,
    "speed": 0.4,
    "satellites": 9,
    "currentZone": "zone1",
    "timestamp": 1760790000000
}
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from safezone_core.adapters.base import (
    PositionAdapter,
    parse_timestamp,
    require,
    require_coordinate,
)
from safezone_core.domain.enums import ProducerKind
from safezone_core.domain.position import PositionEvent


class CollarAdapter(PositionAdapter):
    """Maps collar GPS frames to PositionEvents.

    Args:
        resolve_entity: Maps a collar device id to the tracked entity it
            is fitted on.  Defaults to using the device id itself.
    """

    def __init__(self, resolve_entity: Callable[[str], str | None] | None = None) -> None:
        self._resolve_entity = resolve_entity

    @property
    def producer(self) -> ProducerKind:
        return ProducerKind.COLLAR

    def can_handle(self, raw: dict[str, Any]) -> bool:
        return raw.get("type") == "gps_data"

    def adapt(self, raw: dict[str, Any]) -> PositionEvent:
        device_id = str(require(raw, "deviceId", self.producer))
        entity_id = device_id
        if self._resolve_entity is not None:
            entity_id = self._resolve_entity(device_id)
            if not entity_id:
                raise ValueError(f"collar '{device_id}' is not fitted on a tracked entity")

        return PositionEvent(
            entity_id=entity_id,
            latitude=require_coordinate(raw, "latitude", self.producer),
            longitude=require_coordinate(raw, "longitude", self.producer),
            timestamp=parse_timestamp(raw.get("timestamp")),
            producer=self.producer,
            source=device_id,
        )
