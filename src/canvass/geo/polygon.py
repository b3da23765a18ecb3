"""Pure functions on ordered point sequences.

Polygons are kept in *canonical* form in memory: an open ring that never
repeats its first vertex at the end. Anything that leaves the process
(overlap checks, create/update payloads) is closed again with
:func:`to_closed_ring` and serialized as ``[longitude, latitude]`` pairs.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from typing import Any

from canvass.geo.models import BoundingBox, Point

COORDINATE_TOLERANCE = 1e-6
EARTH_RADIUS_METERS = 6378137.0


def _same_point(a: Point, b: Point, tolerance: float) -> bool:
    return (
        abs(a.latitude - b.latitude) <= tolerance
        and abs(a.longitude - b.longitude) <= tolerance
    )


def normalize(
    points: Sequence[Point], tolerance: float = COORDINATE_TOLERANCE
) -> list[Point]:
    """Strip a trailing closing point, if present."""
    if len(points) > 1 and _same_point(points[0], points[-1], tolerance):
        return list(points[:-1])
    return list(points)


def polygons_equal(
    a: Sequence[Point] | None,
    b: Sequence[Point] | None,
    tolerance: float = COORDINATE_TOLERANCE,
) -> bool:
    """Compare two polygons vertex by vertex in input order.

    Absorbs floating-point noise from map round-trips. Rotated or reversed
    vertex orders are *not* considered equal.
    """
    if a is None or b is None:
        return False
    a_norm = normalize(a, tolerance)
    b_norm = normalize(b, tolerance)
    if len(a_norm) != len(b_norm):
        return False
    return all(
        abs(pa.latitude - pb.latitude) < tolerance
        and abs(pa.longitude - pb.longitude) < tolerance
        for pa, pb in zip(a_norm, b_norm)
    )


def to_closed_ring(
    points: Sequence[Point], tolerance: float = COORDINATE_TOLERANCE
) -> list[Point]:
    """Return the points as a ring whose last point equals its first.

    A trailing point within ``tolerance`` of the first already closes the
    ring and is snapped onto it rather than followed by a duplicate.
    """
    ring = list(points)
    if len(ring) > 1 and _same_point(ring[0], ring[-1], tolerance):
        ring[-1] = ring[0]
    elif len(ring) > 1:
        ring.append(ring[0])
    return ring


def to_lnglat_ring(points: Sequence[Point]) -> list[list[float]]:
    """Closed ring in GIS axis order."""
    return [p.to_lnglat() for p in to_closed_ring(points)]


def to_geojson_polygon(points: Sequence[Point]) -> dict[str, Any]:
    """Build a GeoJSON ``Polygon`` geometry from an in-memory polygon."""
    return {"type": "Polygon", "coordinates": [to_lnglat_ring(points)]}


def from_lnglat_ring(coordinates: Iterable[Any] | None) -> list[Point]:
    """Parse ``[lng, lat]`` pairs into points, skipping malformed entries."""
    points: list[Point] = []
    for coord in coordinates or []:
        if not isinstance(coord, (list, tuple)) or len(coord) < 2:
            continue
        lng, lat = coord[0], coord[1]
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            continue
        if math.isnan(lat) or math.isnan(lng):
            continue
        points.append(Point(latitude=float(lat), longitude=float(lng)))
    return points


def from_geojson_polygon(boundary: dict[str, Any] | None) -> list[Point]:
    """Outer ring of a GeoJSON polygon, closing point included if sent."""
    if not boundary:
        return []
    rings = boundary.get("coordinates") or []
    if not rings:
        return []
    return from_lnglat_ring(rings[0])


def bounding_box(points: Sequence[Point]) -> BoundingBox:
    if not points:
        raise ValueError("Cannot compute the bounding box of an empty polygon")
    lats = [p.latitude for p in points]
    lngs = [p.longitude for p in points]
    return BoundingBox(
        min_lat=min(lats), max_lat=max(lats), min_lng=min(lngs), max_lng=max(lngs)
    )


def point_in_polygon(point: Point, polygon: Sequence[Point]) -> bool:
    """Even-odd ray casting against the closed ring.

    Uses the half-open crossing rule, so for an axis-aligned rectangle a
    point on the minimum-latitude or minimum-longitude edge counts as
    inside and a point on the maximum-latitude or maximum-longitude edge
    counts as outside. Fewer than three vertices never contain anything.
    """
    ring = normalize(polygon)
    if len(ring) < 3:
        return False

    x, y = point.longitude, point.latitude
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i].longitude, ring[i].latitude
        xj, yj = ring[j].longitude, ring[j].latitude
        if (yi > y) != (yj > y):
            x_cross = (xj - xi) * (y - yi) / (yj - yi) + xi
            if x < x_cross:
                inside = not inside
        j = i
    return inside


def polygon_area_m2(points: Sequence[Point]) -> float:
    """Approximate area in square meters (equirectangular projection)."""
    ring = normalize(points)
    if len(ring) < 3:
        return 0.0

    ref_lat = math.radians(sum(p.latitude for p in ring) / len(ring))
    projected = [
        (
            math.radians(p.longitude) * EARTH_RADIUS_METERS * math.cos(ref_lat),
            math.radians(p.latitude) * EARTH_RADIUS_METERS,
        )
        for p in ring
    ]
    total = 0.0
    for i, (x1, y1) in enumerate(projected):
        x2, y2 = projected[(i + 1) % len(projected)]
        total += x1 * y2 - x2 * y1
    return abs(total) / 2.0
