"""Geofence classifier: polygon + point → Zone.

Pure functions, no state, no I/O.

Farms are local-area, so latitude/longitude are projected onto a plane
around the fence's mean latitude using the same meters-per-degree scale
as the farm area calculation:

    meters_per_deg_lat = 111_320
    meters_per_deg_lng = 111_320 * cos(reference_latitude)

Antimeridian and polar fences are not supported.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

from safezone_core.domain.enums import Zone
from safezone_core.domain.geometry import Fence, GeoPoint

logger = logging.getLogger(__name__)

METERS_PER_DEGREE = 111_320.0


def meters_per_degree(reference_latitude: float) -> tuple[float, float]:
    """Return (meters per degree latitude, meters per degree longitude)."""
    return METERS_PER_DEGREE, METERS_PER_DEGREE * math.cos(math.radians(reference_latitude))


def point_in_polygon(point: GeoPoint, vertices: Sequence[GeoPoint]) -> bool:
    """Ray-casting test.  Points exactly on an edge may land either way."""
    inside = False
    x, y = point.longitude, point.latitude
    n = len(vertices)
    for i in range(n):
        a = vertices[i]
        b = vertices[(i + 1) % n]
        xi, yi = a.longitude, a.latitude
        xj, yj = b.longitude, b.latitude
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
    return inside


def _segment_distance(px: float, py: float, ax: float, ay: float, bx: float, by: float) -> float:
    """Planar distance from P to segment AB."""
    dx, dy = bx - ax, by - ay
    length_sq = dx * dx + dy * dy
    if length_sq == 0.0:
        return math.hypot(px - ax, py - ay)
    t = ((px - ax) * dx + (py - ay) * dy) / length_sq
    t = max(0.0, min(1.0, t))
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))


def distance_to_fence_m(point: GeoPoint, fence: Fence) -> float:
    """Minimum distance in meters from *point* to any edge of *fence*.

    Returns ``math.inf`` for fences with no vertices.
    """
    ring = fence.ring
    if not ring:
        return math.inf
    lat_scale, lng_scale = meters_per_degree(fence.reference_latitude)

    def project(p: GeoPoint) -> tuple[float, float]:
        return p.longitude * lng_scale, p.latitude * lat_scale

    px, py = project(point)
    if len(ring) == 1:
        ax, ay = project(ring[0])
        return math.hypot(px - ax, py - ay)

    best = math.inf
    for a, b in fence.edges:
        ax, ay = project(a)
        bx, by = project(b)
        best = min(best, _segment_distance(px, py, ax, ay, bx, by))
    return best


def classify(
    point: GeoPoint,
    fence: Fence | None,
    boundary_distance_m: float = 50.0,
) -> Zone:
    """Classify *point* against *fence*.

    Safe inside the polygon; Warning outside but within
    *boundary_distance_m* of the nearest edge; Danger beyond it.  No
    fence, or a fence with fewer than three vertices, yields Unknown.
    """
    if fence is None:
        return Zone.UNKNOWN
    if not fence.is_valid:
        logger.warning(
            "InvalidGeometry: fence for farm %s has %d vertices, need at least 3",
            fence.farm_id,
            len(fence.ring),
        )
        return Zone.UNKNOWN

    if point_in_polygon(point, fence.ring):
        return Zone.SAFE

    distance = distance_to_fence_m(point, fence)
    return Zone.WARNING if distance <= boundary_distance_m else Zone.DANGER
