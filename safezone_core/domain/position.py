"""Canonical PositionEvent: the contract between producers and the engine.

Collars, the virtual cow simulator and recovery-session agents all speak
different dialects.  Adapters normalise them into this one model, which
is validated at the boundary so the pipeline never re-checks fields.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from safezone_core.domain.enums import ProducerKind
from safezone_core.domain.geometry import GeoPoint
from safezone_core.foundation.clock import ensure_utc


class PositionEvent(BaseModel):
    """One GPS fix for one tracked entity.

    Immutable after creation.  Duplicate delivery of the same event is
    expected and harmless.
    """

    entity_id: str = Field(..., min_length=1, max_length=256)
    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)
    timestamp: datetime = Field(..., description="When the producer took the fix")
    producer: ProducerKind = ProducerKind.UNSPECIFIED
    source: str | None = Field(
        default=None,
        max_length=256,
        description="Producer instance (collar id, recovery id, ...)",
    )

    model_config = {"frozen": True}

    @field_validator("timestamp")
    @classmethod
    def timestamp_must_be_aware(cls, v: datetime) -> datetime:
        # Collars often report naive UTC
        return ensure_utc(v)

    @property
    def point(self) -> GeoPoint:
        return GeoPoint(latitude=self.latitude, longitude=self.longitude)
