"""Result types returned by the engine.

These are immutable observations handed back to callers.  Nothing here
carries behaviour; the pipeline and monitor decide what to do with them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from safezone_core.domain.entity import TrackedEntity
from safezone_core.domain.enums import AlarmLevel, FireReason, NotificationKind, Zone, notification_kind_for


class ZoneTransition(BaseModel):
    """A change of zone applied by the accountant."""

    entity_id: str
    from_zone: Zone
    to_zone: Zone
    at: datetime
    elapsed_seconds: float = Field(..., ge=0.0, description="Time spent in the previous zone")
    final_actual_seconds: float = Field(
        ..., ge=0.0, description="Closing actual-in-zone value of the previous zone"
    )
    breach: bool = False

    model_config = {"frozen": True}

    @property
    def returned_to_safe(self) -> bool:
        return self.to_zone == Zone.SAFE and self.from_zone.is_unsafe


class FireResult(BaseModel):
    """Outcome of one try-fire attempt on one alarm slot."""

    entity_id: str
    level: AlarmLevel
    fired: bool
    reason: FireReason
    detail: str = ""
    triggered_at: datetime | None = None

    model_config = {"frozen": True}

    @property
    def notification_kind(self) -> NotificationKind:
        return notification_kind_for(self.level)

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_id": self.entity_id,
            "level": int(self.level),
            "kind": self.notification_kind.value,
            "fired": self.fired,
            "reason": self.reason.value,
            "detail": self.detail,
            "triggered_at": self.triggered_at.isoformat() if self.triggered_at else None,
        }


class IngestResult(BaseModel):
    """What one position event did to its entity."""

    entity: TrackedEntity
    zone: Zone
    transition: ZoneTransition | None = None
    fired: list[FireResult] = Field(default_factory=list)

    model_config = {"frozen": True}

    def to_dict(self, now: datetime | None = None) -> dict[str, Any]:
        # Acks and fan-out run on the producer clock of the fix just applied
        return {
            "entity": self.entity.summary(now=now or self.entity.last_position_at),
            "zone": self.zone.value,
            "transition": (
                {
                    "from": self.transition.from_zone.value,
                    "to": self.transition.to_zone.value,
                    "breach": self.transition.breach,
                    "elapsed_seconds": round(self.transition.elapsed_seconds, 3),
                }
                if self.transition
                else None
            ),
            "fired": [f.to_dict() for f in self.fired],
        }


class MonitorTickReport(BaseModel):
    """Observability record for one background monitor pass."""

    at: datetime
    examined: int = 0
    skipped_live: int = 0
    skipped_safe: int = 0
    fired: list[FireResult] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    def to_dict(self) -> dict[str, Any]:
        return {
            "at": self.at.isoformat(),
            "examined": self.examined,
            "skipped_live": self.skipped_live,
            "skipped_safe": self.skipped_safe,
            "fired": [f.to_dict() for f in self.fired],
            "failed": list(self.failed),
        }
