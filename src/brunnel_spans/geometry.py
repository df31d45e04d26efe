#!/usr/bin/env python3
"""
Spherical geometry primitives for matching brunnels against a route.

All angles are handled in radians internally and exposed in degrees. Distances
use a spherical Earth (radius 6,371,008.8 m); bearings follow rhumb lines.
Polylines may be given as a sequence of Position objects or as a Shapely
LineString in (longitude, latitude) order.
"""

from typing import List, NamedTuple, Optional, Sequence, Tuple, Union
import logging
import math

from shapely.geometry import LineString, MultiPolygon, Polygon

logger = logging.getLogger(__name__)

EARTH_RADIUS = 6371008.8  # meters

# Near-zero denominator separating parallel from nearly parallel segments
PARALLEL_EPSILON = 1e-12

MIN_LATITUDE = -80.0
MAX_LATITUDE = 80.0

_UNIT_FACTORS = {
    "meters": EARTH_RADIUS,
    "metres": EARTH_RADIUS,
    "kilometers": EARTH_RADIUS / 1000.0,
    "kilometres": EARTH_RADIUS / 1000.0,
    "miles": 3958.761333810546,
}


class Position(NamedTuple):
    """Represents a geographic position with latitude and longitude."""

    latitude: float
    longitude: float


class NearestPoint(NamedTuple):
    """Result of projecting a point onto a polyline."""

    position: Position  # Projection on the polyline
    distance: float  # Great-circle distance from the point to the projection (meters)
    location: float  # Great-circle distance along the polyline to the projection (meters)
    index: int  # Index of the segment holding the projection


Polyline = Union[Sequence[Position], LineString]


def _unit_factor(units: str) -> float:
    try:
        return _UNIT_FACTORS[units]
    except KeyError:
        raise ValueError(f"Invalid units: {units}") from None


def length_to_radians(distance: float, units: str = "meters") -> float:
    """Convert a length on the Earth's surface to an angle in radians."""
    return distance / _unit_factor(units)


def radians_to_length(radians: float, units: str = "meters") -> float:
    """Convert an angle in radians to a length on the Earth's surface."""
    return radians * _unit_factor(units)


def is_valid_coordinate(latitude, longitude) -> bool:
    """
    Check that a latitude/longitude pair is numeric and inside the supported range.

    Latitudes beyond ±80° are rejected because rhumb-line math degenerates
    towards the poles.
    """
    for value in (latitude, longitude):
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return False
        if math.isnan(value):
            return False
    return (
        MIN_LATITUDE <= latitude <= MAX_LATITUDE and -180.0 <= longitude <= 180.0
    )


def coords_to_polyline(coord_tuples: Sequence[Tuple[float, float]]) -> LineString:
    """
    Convert a list of coordinate tuples to a Shapely LineString.

    Args:
        coord_tuples: List of (longitude, latitude) tuples

    Returns:
        LineString object in geographic coordinates

    Raises:
        ValueError: If coord_tuples is empty or has less than 2 points
    """
    if not coord_tuples or len(coord_tuples) < 2:
        raise ValueError("At least two positions are required to create a LineString.")
    return LineString(coord_tuples)


def _as_positions(polyline: Polyline) -> Sequence[Position]:
    if isinstance(polyline, LineString):
        return [Position(latitude=y, longitude=x) for x, y in polyline.coords]
    return polyline


def haversine_distance(
    pos1: Position, pos2: Position, units: str = "meters"
) -> float:
    """
    Calculate the great-circle distance between two positions.

    Args:
        pos1: First position
        pos2: Second position
        units: Output units (meters, kilometers or miles)

    Returns:
        Distance in the requested units

    Raises:
        ValueError: If units is not recognised
    """
    lat1 = math.radians(pos1.latitude)
    lat2 = math.radians(pos2.latitude)
    dlat = math.radians(pos2.latitude - pos1.latitude)
    dlon = math.radians(pos2.longitude - pos1.longitude)

    a = math.sin(dlat / 2) ** 2 + math.sin(dlon / 2) ** 2 * (
        math.cos(lat1) * math.cos(lat2)
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return radians_to_length(c, units)


def rhumb_bearing(start: Position, end: Position) -> float:
    """
    Calculate the constant (rhumb line) bearing from start to end.

    The longitude difference is normalised into [-180°, 180°] first, so the
    shorter rhumb line across the antimeridian is used.

    Returns:
        Bearing in degrees in the range [0, 360)
    """
    phi1 = math.radians(start.latitude)
    phi2 = math.radians(end.latitude)
    delta_lambda = math.radians(end.longitude - start.longitude)

    if delta_lambda > math.pi:
        delta_lambda -= 2 * math.pi
    if delta_lambda < -math.pi:
        delta_lambda += 2 * math.pi

    delta_psi = math.log(
        math.tan(phi2 / 2 + math.pi / 4) / math.tan(phi1 / 2 + math.pi / 4)
    )

    theta = math.atan2(delta_lambda, delta_psi)
    return (math.degrees(theta) + 360.0) % 360.0


def rhumb_destination(
    origin: Position, distance: float, bearing: float, units: str = "meters"
) -> Position:
    """
    Travel a distance along a constant bearing from origin.

    Args:
        origin: Starting position
        distance: Distance to travel
        bearing: Bearing in degrees clockwise from north
        units: Units of distance

    Returns:
        Destination position, longitude normalised into [-180, 180]
    """
    delta = length_to_radians(distance, units)
    lambda1 = math.radians(origin.longitude)
    phi1 = math.radians(origin.latitude)
    theta = math.radians(bearing)

    delta_phi = delta * math.cos(theta)
    phi2 = phi1 + delta_phi

    # Past a pole: fold the latitude back
    if abs(phi2) > math.pi / 2:
        phi2 = math.pi - phi2 if phi2 > 0 else -math.pi - phi2

    delta_psi = math.log(
        math.tan(phi2 / 2 + math.pi / 4) / math.tan(phi1 / 2 + math.pi / 4)
    )
    q = delta_phi / delta_psi if abs(delta_psi) > PARALLEL_EPSILON else math.cos(phi1)
    delta_lambda = delta * math.sin(theta) / q
    lambda2 = lambda1 + delta_lambda

    longitude = (math.degrees(lambda2) + 540.0) % 360.0 - 180.0
    return Position(latitude=math.degrees(phi2), longitude=longitude)


def bearing_difference(bearing1: float, bearing2: float) -> float:
    """
    Undirected angle between two bearings, folded into [0, 90] degrees.

    Opposite directions count as the same line, so a segment traversed
    backwards is still aligned.
    """
    diff = abs(bearing1 - bearing2)
    if diff > 180:
        diff = 360 - diff
    if diff > 90:
        diff = abs(180 - diff)
    return diff


def point_on_segment(
    start: Position, end: Position, point: Position
) -> Tuple[Position, float]:
    """
    Project a point orthogonally onto a segment in (longitude, latitude) space.

    Args:
        start: Segment start
        end: Segment end
        point: Point to project

    Returns:
        Tuple of (projected position, t) with t clamped to [0, 1]
    """
    dx = end.longitude - start.longitude
    dy = end.latitude - start.latitude
    length_sq = dx * dx + dy * dy

    if length_sq == 0:
        return start, 0.0

    t = (
        (point.longitude - start.longitude) * dx + (point.latitude - start.latitude) * dy
    ) / length_sq
    t = max(0.0, min(1.0, t))

    return (
        Position(latitude=start.latitude + t * dy, longitude=start.longitude + t * dx),
        t,
    )


def nearest_point_on_polyline(polyline: Polyline, point: Position) -> NearestPoint:
    """
    Find the point on a polyline closest to the given point.

    Each segment is tried in order; the first projection with the smallest
    great-circle distance wins, so the lowest segment index breaks exact ties.

    Args:
        polyline: Sequence of Positions or a LineString, at least two points
        point: Point to project

    Returns:
        NearestPoint with the projection, its distance from the point and its
        cumulative great-circle location along the polyline (all in meters)

    Raises:
        ValueError: If the polyline has fewer than two points
    """
    coords = _as_positions(polyline)
    if len(coords) < 2:
        raise ValueError("Polyline must have at least two points")

    candidates: List[NearestPoint] = []
    travelled = 0.0

    for i in range(len(coords) - 1):
        start = coords[i]
        end = coords[i + 1]
        segment_length = haversine_distance(start, end)

        projection, t = point_on_segment(start, end, point)
        candidates.append(
            NearestPoint(
                position=projection,
                distance=haversine_distance(projection, point),
                location=travelled + t * segment_length,
                index=i,
            )
        )

        travelled += segment_length

    # min() keeps the first of equal distances
    return min(candidates, key=lambda candidate: candidate.distance)


def _in_ring(x: float, y: float, ring: Sequence[Tuple[float, float]]) -> bool:
    """Ray casting test for a single closed ring of (x, y) tuples."""
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def _on_ring(x: float, y: float, ring: Sequence[Tuple[float, float]]) -> bool:
    """Check whether (x, y) lies on one of the ring's edges."""
    for i in range(len(ring) - 1):
        x1, y1 = ring[i][0], ring[i][1]
        x2, y2 = ring[i + 1][0], ring[i + 1][1]
        cross = (x - x1) * (y2 - y1) - (y - y1) * (x2 - x1)
        if abs(cross) > PARALLEL_EPSILON:
            continue
        if min(x1, x2) <= x <= max(x1, x2) and min(y1, y2) <= y <= max(y1, y2):
            return True
    return False


def point_in_polygon(point: Position, polygon: Union[Polygon, MultiPolygon]) -> bool:
    """
    Check whether a point lies inside a polygon using ray casting.

    The polygon's bounding box is checked first. A point inside a hole, or on
    a hole's boundary, is outside the polygon.

    Args:
        point: Position to test
        polygon: Shapely Polygon or MultiPolygon in (longitude, latitude)

    Returns:
        True if the point is inside the polygon
    """
    if polygon.is_empty:
        return False

    x, y = point.longitude, point.latitude
    min_x, min_y, max_x, max_y = polygon.bounds
    if not (min_x <= x <= max_x and min_y <= y <= max_y):
        return False

    polygons = polygon.geoms if isinstance(polygon, MultiPolygon) else [polygon]
    for poly in polygons:
        if not _in_ring(x, y, list(poly.exterior.coords)):
            continue
        in_hole = False
        for hole in poly.interiors:
            hole_coords = list(hole.coords)
            if _in_ring(x, y, hole_coords) or _on_ring(x, y, hole_coords):
                in_hole = True
                break
        if not in_hole:
            return True
    return False


def segment_intersect(
    p1: Position, p2: Position, p3: Position, p4: Position
) -> Optional[Position]:
    """
    Intersect segment p1-p2 with segment p3-p4 in (longitude, latitude) space.

    Returns:
        The intersection position, or None if the segments are parallel
        (denominator below 1e-12) or do not cross within both segments
    """
    x1, y1 = p1.longitude, p1.latitude
    x2, y2 = p2.longitude, p2.latitude
    x3, y3 = p3.longitude, p3.latitude
    x4, y4 = p4.longitude, p4.latitude

    denom = (y4 - y3) * (x2 - x1) - (x4 - x3) * (y2 - y1)
    if abs(denom) < PARALLEL_EPSILON:
        return None

    ua = ((x4 - x3) * (y1 - y3) - (y4 - y3) * (x1 - x3)) / denom
    ub = ((x2 - x1) * (y1 - y3) - (y2 - y1) * (x1 - x3)) / denom

    if 0 <= ua <= 1 and 0 <= ub <= 1:
        return Position(latitude=y1 + ua * (y2 - y1), longitude=x1 + ua * (x2 - x1))
    return None


def line_intersect(line1: Polyline, line2: Polyline) -> List[Position]:
    """Return every intersection between the segments of two polylines."""
    coords1 = _as_positions(line1)
    coords2 = _as_positions(line2)

    intersections = []
    for i in range(len(coords1) - 1):
        for j in range(len(coords2) - 1):
            crossing = segment_intersect(
                coords1[i], coords1[i + 1], coords2[j], coords2[j + 1]
            )
            if crossing is not None:
                intersections.append(crossing)
    return intersections


def buffer_polyline(coords: Sequence[Position], radius: float) -> Polygon:
    """
    Build an offset polygon around a polyline using rhumb-line offsets.

    Each vertex is offset perpendicular to the local bearing on both sides;
    interior vertices use the mean of the incoming and outgoing bearings, which
    bevels the corners.

    Args:
        coords: Polyline vertices, at least two
        radius: Offset distance in meters

    Returns:
        Shapely Polygon in (longitude, latitude)

    Raises:
        ValueError: If fewer than two vertices are given
    """
    if len(coords) < 2:
        raise ValueError("At least two positions are required to buffer a polyline.")

    left_offsets = []
    right_offsets = []

    for i, coord in enumerate(coords):
        if i == 0:
            bearing = rhumb_bearing(coords[0], coords[1])
        elif i == len(coords) - 1:
            bearing = rhumb_bearing(coords[i - 1], coords[i])
        else:
            bearing_in = rhumb_bearing(coords[i - 1], coords[i])
            bearing_out = rhumb_bearing(coords[i], coords[i + 1])
            diff = bearing_out - bearing_in
            if diff > 180:
                diff -= 360
            if diff < -180:
                diff += 360
            bearing = bearing_in + diff / 2

        left = rhumb_destination(coord, radius, bearing - 90)
        right = rhumb_destination(coord, radius, bearing + 90)
        left_offsets.append((left.longitude, left.latitude))
        right_offsets.append((right.longitude, right.latitude))

    ring = left_offsets + list(reversed(right_offsets)) + [left_offsets[0]]
    return Polygon(ring)
