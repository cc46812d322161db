"""Geometry value objects: points, fences and per-farm policy."""

from __future__ import annotations

from pydantic import BaseModel, Field


class GeoPoint(BaseModel):
    """A WGS84 latitude/longitude pair."""

    latitude: float = Field(..., ge=-90.0, le=90.0)
    longitude: float = Field(..., ge=-180.0, le=180.0)

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"({self.latitude:.6f}, {self.longitude:.6f})"


class Fence(BaseModel):
    """An ordered ring of vertices bounding one farm.

    The ring is implicitly closed: the last vertex connects back to the
    first.  A repeated closing vertex is tolerated.
    """

    farm_id: str = Field(..., min_length=1, max_length=256)
    vertices: tuple[GeoPoint, ...] = Field(default_factory=tuple)

    model_config = {"frozen": True}

    @property
    def ring(self) -> tuple[GeoPoint, ...]:
        """Vertices without a duplicated closing point."""
        verts = self.vertices
        if len(verts) > 1 and verts[0] == verts[-1]:
            return verts[:-1]
        return verts

    @property
    def is_valid(self) -> bool:
        return len(self.ring) >= 3

    @property
    def edges(self) -> list[tuple[GeoPoint, GeoPoint]]:
        ring = self.ring
        return [(ring[i], ring[(i + 1) % len(ring)]) for i in range(len(ring))]

    @property
    def reference_latitude(self) -> float:
        """Mean latitude of the ring, used for the local metric scale."""
        ring = self.ring
        if not ring:
            return 0.0
        return sum(p.latitude for p in ring) / len(ring)


class FarmPolicy(BaseModel):
    """Optional per-farm overrides of the global thresholds."""

    boundary_distance_m: float | None = Field(None, gt=0.0)
    warning_dwell_seconds: float | None = Field(None, ge=0.0)

    model_config = {"frozen": True}
