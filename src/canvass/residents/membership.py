"""Which known residents fall inside a polygon."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from canvass.geo.models import Point
from canvass.geo.polygon import bounding_box, normalize, point_in_polygon
from canvass.residents.models import Resident


def filter_in_polygon(
    polygon: Sequence[Point], residents: Iterable[Resident]
) -> list[Resident]:
    """Return the residents whose coordinates lie inside ``polygon``.

    Input order is preserved. Boundary handling follows
    :func:`canvass.geo.polygon.point_in_polygon`. Nothing is cached between
    calls because the drawing changes on every vertex.
    """
    ring = normalize(polygon)
    if len(ring) < 3:
        return []

    bbox = bounding_box(ring)
    return [
        resident
        for resident in residents
        if bbox.contains(resident.point) and point_in_polygon(resident.point, ring)
    ]
