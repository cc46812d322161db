"""Read-only lookup of a farm's boundary and policy."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, Field

from safezone_core.domain.geometry import FarmPolicy, Fence, GeoPoint

logger = logging.getLogger(__name__)


class FenceSource(Protocol):
    """Read-only access to fences.  Fence CRUD lives elsewhere."""

    def get_fence(self, farm_id: str) -> Fence | None:
        ...

    def get_policy(self, farm_id: str) -> FarmPolicy | None:
        ...


class InMemoryFenceSource:
    """Dict-backed fence source.

    Replacing a fence takes effect for subsequent evaluations only; an
    evaluation in progress keeps the Fence object it already fetched.
    """

    def __init__(self) -> None:
        self._fences: dict[str, Fence] = {}
        self._policies: dict[str, FarmPolicy] = {}

    def put_fence(self, fence: Fence) -> None:
        self._fences[fence.farm_id] = fence
        logger.info("Fence for farm %s set (%d vertices)", fence.farm_id, len(fence.ring))

    def remove_fence(self, farm_id: str) -> None:
        self._fences.pop(farm_id, None)

    def put_policy(self, farm_id: str, policy: FarmPolicy) -> None:
        self._policies[farm_id] = policy

    def get_fence(self, farm_id: str) -> Fence | None:
        return self._fences.get(farm_id)

    def get_policy(self, farm_id: str) -> FarmPolicy | None:
        return self._policies.get(farm_id)


def dwell_lookup(source: FenceSource) -> Callable[[str], float | None]:
    """Adapt a FenceSource into the AlarmLadder's per-farm dwell lookup."""

    def _lookup(farm_id: str) -> float | None:
        policy = source.get_policy(farm_id)
        return policy.warning_dwell_seconds if policy else None

    return _lookup


# ── Fence file ───────────────────────────────────────────────────────────


class FarmBoundary(BaseModel):
    """One farm entry in a fence file."""

    farm_id: str = Field(..., min_length=1)
    vertices: list[tuple[float, float]] = Field(
        ..., description="(latitude, longitude) pairs in ring order"
    )
    boundary_distance_m: float | None = Field(None, gt=0.0)
    warning_dwell_seconds: float | None = Field(None, ge=0.0)


class FenceFile(BaseModel):
    farms: list[FarmBoundary] = Field(default_factory=list)


def load_fences(path: str | Path, source: InMemoryFenceSource) -> int:
    """Load farm fences and policies from a JSON file into *source*.

    Returns the number of farms loaded.  A malformed file raises
    pydantic's ValidationError; nothing is loaded in that case.
    """
    document = FenceFile.model_validate_json(Path(path).read_text(encoding="utf-8"))
    for farm in document.farms:
        source.put_fence(Fence(
            farm_id=farm.farm_id,
            vertices=tuple(GeoPoint(latitude=lat, longitude=lng) for lat, lng in farm.vertices),
        ))
        if farm.boundary_distance_m is not None or farm.warning_dwell_seconds is not None:
            source.put_policy(farm.farm_id, FarmPolicy(
                boundary_distance_m=farm.boundary_distance_m,
                warning_dwell_seconds=farm.warning_dwell_seconds,
            ))
    logger.info("Loaded %d farm fence(s) from %s", len(document.farms), path)
    return len(document.farms)
