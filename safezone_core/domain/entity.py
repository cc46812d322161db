"""TrackedEntity — the engine's view of one physical or virtual animal.

A TrackedEntity is an immutable snapshot.  The accountant and the alarm
ladder never mutate it; they return an updated copy which the store
persists as the next version.

Alarm slots:
    Each alarm level owns a single ``triggered_at`` timestamp.  The
    "triggered" flag observers see is never stored: it is recomputed as
    ``current zone is unsafe AND triggered_at is set``.  An entity with no
    farm assignment has its slots in the not-applicable state, which is
    distinct from armed-but-not-fired.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from safezone_core.domain.enums import AlarmLevel, SlotState, Zone
from safezone_core.domain.geometry import GeoPoint
from safezone_core.foundation.clock import elapsed_seconds, utc_now


def _empty_slots() -> dict[AlarmLevel, datetime | None]:
    return {level: None for level in AlarmLevel}


class TrackedEntity(BaseModel):
    """Classification, zone-time and alarm state for one entity."""

    entity_id: str = Field(..., min_length=1, max_length=256)
    farm_id: str | None = None
    owner_id: str | None = None

    current_zone: Zone = Zone.UNKNOWN
    last_zone_change: datetime | None = None
    last_position: GeoPoint | None = None
    last_position_at: datetime | None = None

    cumulative_safe_seconds: float = Field(0.0, ge=0.0)
    cumulative_unsafe_seconds: float = Field(0.0, ge=0.0)
    actual_safe_seconds: float = Field(0.0, ge=0.0)
    actual_unsafe_seconds: float = Field(0.0, ge=0.0)
    breach_count: int = Field(0, ge=0)

    triggered_at: dict[AlarmLevel, datetime | None] = Field(default_factory=_empty_slots)
    version: int = 1

    model_config = {"frozen": True}

    # ── Assignment ───────────────────────────────────────────────────────

    @property
    def is_assigned(self) -> bool:
        return self.farm_id is not None

    # ── Alarm slots ──────────────────────────────────────────────────────

    def slot_timestamp(self, level: AlarmLevel) -> datetime | None:
        return self.triggered_at.get(level)

    def alarm_triggered(self, level: AlarmLevel) -> bool:
        """Derived flag: True only while unsafe with a timestamp set."""
        return (
            self.is_assigned
            and self.current_zone.is_unsafe
            and self.slot_timestamp(level) is not None
        )

    def slot_state(self, level: AlarmLevel) -> SlotState:
        if not self.is_assigned:
            return SlotState.NOT_APPLICABLE
        if self.slot_timestamp(level) is not None:
            return SlotState.FIRED
        return SlotState.ARMED

    def can_trigger(self, level: AlarmLevel) -> bool:
        return self.slot_state(level) == SlotState.ARMED

    def with_slot(self, level: AlarmLevel, value: datetime | None) -> TrackedEntity:
        slots = dict(self.triggered_at)
        slots[level] = value
        return self.model_copy(update={"triggered_at": slots})

    def with_cleared_slots(self) -> TrackedEntity:
        return self.model_copy(update={"triggered_at": _empty_slots()})

    # ── Zone time ────────────────────────────────────────────────────────

    def seconds_in_current_zone(self, now: datetime) -> float:
        """Actual time-in-zone as of *now*, recomputed from the last change."""
        stored = (
            self.actual_safe_seconds
            if self.current_zone == Zone.SAFE
            else self.actual_unsafe_seconds
        )
        if not self.current_zone.is_known:
            return 0.0
        return max(stored, elapsed_seconds(self.last_zone_change, now))

    # ── Summary ──────────────────────────────────────────────────────────

    def summary(self, now: datetime | None = None) -> dict[str, Any]:
        """JSON-friendly view for acknowledgements, fan-out and the API.

        The actual counter of the current zone is derived as of *now*
        (wall clock when omitted), so an entity that stays put between
        fixes still reports how long it has been there.
        """
        now = now or utc_now()
        in_zone = self.seconds_in_current_zone(now)
        return {
            "entity_id": self.entity_id,
            "farm_id": self.farm_id,
            "owner_id": self.owner_id,
            "zone": self.current_zone.value,
            "last_zone_change": _iso(self.last_zone_change),
            "position": (
                {
                    "latitude": self.last_position.latitude,
                    "longitude": self.last_position.longitude,
                }
                if self.last_position
                else None
            ),
            "position_at": _iso(self.last_position_at),
            "cumulative_safe_seconds": round(self.cumulative_safe_seconds, 3),
            "cumulative_unsafe_seconds": round(self.cumulative_unsafe_seconds, 3),
            "actual_safe_seconds": round(in_zone if self.current_zone == Zone.SAFE else 0.0, 3),
            "actual_unsafe_seconds": round(in_zone if self.current_zone.is_unsafe else 0.0, 3),
            "seconds_in_zone": round(in_zone, 3),
            "breach_count": self.breach_count,
            "alarms": self.alarm_states(),
            "version": self.version,
        }

    def alarm_states(self) -> dict[str, dict[str, Any]]:
        return {
            f"alarm{level.value}": {
                "state": self.slot_state(level).value,
                "triggered": self.alarm_triggered(level),
                "can_trigger": self.can_trigger(level),
                "triggered_at": _iso(self.slot_timestamp(level)),
            }
            for level in AlarmLevel
        }


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
