"""
Delivery coverage: polygon containment, overlap and H3 binning.

Delivery areas are small merchant-drawn polygons (a few hundred meters
across), so planar lat/lng geometry is accurate enough.  PostGIS does the
same check server-side; these functions back the fallback shop search and
the overlap guard when a merchant adds an area.

Complexity
----------
* ``point_in_polygon``:  O(n)     -- ray casting over n edges
* ``polygons_overlap``:  O(n x m) -- pairwise edge intersection
"""

from __future__ import annotations

from collections.abc import Sequence

import h3

from .entities import Coordinate

EPSILON = 1e-12

Polygon = Sequence[Coordinate]


def point_in_polygon(point: Coordinate, polygon: Polygon) -> bool:
    """Ray casting.  Fewer than three vertices is never a polygon."""
    if len(polygon) < 3:
        return False

    inside = False
    j = len(polygon) - 1
    for i in range(len(polygon)):
        xi, yi = polygon[i].longitude, polygon[i].latitude
        xj, yj = polygon[j].longitude, polygon[j].latitude
        crosses = (yi > point.latitude) != (yj > point.latitude)
        if crosses and point.longitude < (xj - xi) * (point.latitude - yi) / (
            yj - yi + EPSILON
        ) + xi:
            inside = not inside
        j = i
    return inside


def _orientation(p: Coordinate, q: Coordinate, r: Coordinate) -> int:
    """0 = collinear, 1 = clockwise, 2 = counter-clockwise."""
    val = (q.longitude - p.longitude) * (r.latitude - p.latitude) - (
        q.latitude - p.latitude
    ) * (r.longitude - p.longitude)
    if abs(val) < EPSILON:
        return 0
    return 1 if val > 0 else 2


def _on_segment(p: Coordinate, q: Coordinate, r: Coordinate) -> bool:
    """Is *q* within the bounding box of segment p-r (given collinear)."""
    return (
        min(p.longitude, r.longitude) - EPSILON
        <= q.longitude
        <= max(p.longitude, r.longitude) + EPSILON
        and min(p.latitude, r.latitude) - EPSILON
        <= q.latitude
        <= max(p.latitude, r.latitude) + EPSILON
    )


def _segments_intersect(
    p1: Coordinate, q1: Coordinate, p2: Coordinate, q2: Coordinate
) -> bool:
    o1 = _orientation(p1, q1, p2)
    o2 = _orientation(p1, q1, q2)
    o3 = _orientation(p2, q2, p1)
    o4 = _orientation(p2, q2, q1)

    if o1 != o2 and o3 != o4:
        return True

    return (
        (o1 == 0 and _on_segment(p1, p2, q1))
        or (o2 == 0 and _on_segment(p1, q2, q1))
        or (o3 == 0 and _on_segment(p2, p1, q2))
        or (o4 == 0 and _on_segment(p2, q1, q2))
    )


def polygons_overlap(a: Polygon, b: Polygon) -> bool:
    if len(a) < 3 or len(b) < 3:
        return False

    for i in range(len(a)):
        a_next = a[(i + 1) % len(a)]
        for j in range(len(b)):
            b_next = b[(j + 1) % len(b)]
            if _segments_intersect(a[i], a_next, b[j], b_next):
                return True

    # No crossing edges: overlap only if one contains the other
    return point_in_polygon(a[0], b) or point_in_polygon(b[0], a)


def overlaps_existing(polygon: Polygon, existing: Sequence[Polygon]) -> bool:
    return any(polygons_overlap(polygon, other) for other in existing)


# ── H3 binning ────────────────────────────────────────────────────────


def shop_h3_cell(lat: float, lng: float, resolution: int = 8) -> str:
    """Map a geo-point to an H3 hexagonal cell index.  O(1)."""
    return h3.latlng_to_cell(lat, lng, resolution)


def nearby_cells(lat: float, lng: float, resolution: int = 8, k: int = 2) -> set[str]:
    """Cells within *k* rings of the point's cell (the cell included)."""
    return set(h3.grid_disk(shop_h3_cell(lat, lng, resolution), k))
