#!/usr/bin/env python3
"""
Route data model for brunnel analysis.
"""

from typing import Iterable, List, NamedTuple, Optional, Sequence, TextIO, Tuple
from bisect import bisect_left, bisect_right
import logging
import math

import gpxpy
import pyproj
from shapely.geometry import LineString

from .geometry import (
    MAX_LATITUDE,
    Position,
    coords_to_polyline,
    haversine_distance,
)

logger = logging.getLogger(__name__)

METERS_PER_DEGREE_LATITUDE = 111320.0

_WGS84 = pyproj.Geod(ellps="WGS84")


class TrackPoint(NamedTuple):
    """A route point with its externally supplied cumulative distance."""

    latitude: float
    longitude: float
    elevation: Optional[float]
    distance: float  # Reference distance from the route start (meters)

    @property
    def position(self) -> Position:
        return Position(latitude=self.latitude, longitude=self.longitude)


def calculate_reference_distances(
    positions: Sequence[Position], elevations: Sequence[Optional[float]]
) -> List[float]:
    """
    Calculate cumulative 3D distances along the WGS84 ellipsoid.

    Used for routes that arrive without their own distances (GPX files). The
    ellipsoidal segment length is combined with the elevation change using the
    Pythagorean theorem when both elevations are known.

    Returns:
        Cumulative distances in meters, starting at 0.0
    """
    if not positions:
        return []

    distances = [0.0]
    for i in range(1, len(positions)):
        prev, curr = positions[i - 1], positions[i]
        _, _, surface = _WGS84.inv(
            prev.longitude, prev.latitude, curr.longitude, curr.latitude
        )
        if elevations[i - 1] is not None and elevations[i] is not None:
            segment = math.hypot(surface, elevations[i] - elevations[i - 1])
        else:
            segment = surface
        distances.append(distances[-1] + segment)
    return distances


class Route:
    """Represents a route with reference distances and memoized geometry."""

    def __init__(self, trackpoints: Iterable[TrackPoint]):
        """Initializes a Route object.

        Args:
            trackpoints: Ordered TrackPoint objects; reference distances must be
                non-decreasing (not verified).

        Raises:
            ValueError: If there are fewer than two points or the final
                reference distance is not a positive number.
            RuntimeError: If a point is too close to a pole or the route
                crosses the antimeridian.
        """
        trackpoints = list(trackpoints)
        if not trackpoints:
            raise ValueError("Route coordinates cannot be empty")
        if len(trackpoints) < 2:
            raise ValueError("Route must have at least two coordinates")

        for i, point in enumerate(trackpoints):
            if abs(point.latitude) > MAX_LATITUDE:
                raise RuntimeError(
                    f"Route point {i} at latitude {point.latitude:.3f}° is beyond "
                    f"{MAX_LATITUDE:.0f} degrees"
                )

        for i in range(1, len(trackpoints)):
            lon_diff = abs(trackpoints[i].longitude - trackpoints[i - 1].longitude)
            if lon_diff > 180.0:
                raise RuntimeError(
                    f"Route crosses antimeridian between points {i-1} and {i} "
                    f"(longitude jump: {lon_diff:.3f}°)"
                )

        total = trackpoints[-1].distance
        if not isinstance(total, (int, float)) or not math.isfinite(total) or total <= 0:
            raise ValueError(f"Route has unusable total distance: {total!r}")

        self.trackpoints: List[TrackPoint] = trackpoints
        self.coords: List[Position] = [point.position for point in trackpoints]
        self.distances: List[float] = [float(point.distance) for point in trackpoints]
        self.bbox = self._calculate_bbox()

        coord_tuples = [(pos.longitude, pos.latitude) for pos in self.coords]
        self.linestring: LineString = coords_to_polyline(coord_tuples)

        # Great-circle metric, accumulated in traversal order
        self.segment_lengths: List[float] = []
        self.great_circle_distances: List[float] = [0.0]
        for i in range(len(self.coords) - 1):
            length = haversine_distance(self.coords[i], self.coords[i + 1])
            self.segment_lengths.append(length)
            self.great_circle_distances.append(self.great_circle_distances[-1] + length)

    @property
    def total_distance(self) -> float:
        """Total route length in the reference metric (meters)."""
        return self.distances[-1]

    def get_bbox(self, buffer: float = 0.0) -> Tuple[float, float, float, float]:
        """
        Get bounding box for this route, optionally with a buffer.

        Args:
            buffer: Buffer distance in meters (default: 0.0)

        Returns:
            Tuple of (south, west, north, east) in decimal degrees
        """
        if buffer == 0.0:
            return self.bbox

        south, west, north, east = self.bbox

        # Longitude degrees shrink with latitude; use the middle of the box
        avg_lat = (south + north) / 2
        lat_buffer = buffer / METERS_PER_DEGREE_LATITUDE
        lon_buffer = buffer / (METERS_PER_DEGREE_LATITUDE * abs(math.cos(math.radians(avg_lat))))

        buffered = (
            max(-90.0, south - lat_buffer),
            max(-180.0, west - lon_buffer),
            min(90.0, north + lat_buffer),
            min(180.0, east + lon_buffer),
        )
        logger.debug(
            f"Buffered bounding box: ({buffered[0]:.4f}, {buffered[1]:.4f}, "
            f"{buffered[2]:.4f}, {buffered[3]:.4f}) with {buffer}m buffer"
        )
        return buffered

    def _calculate_bbox(self) -> Tuple[float, float, float, float]:
        latitudes = [coord.latitude for coord in self.coords]
        longitudes = [coord.longitude for coord in self.coords]
        return (min(latitudes), min(longitudes), max(latitudes), max(longitudes))

    def great_circle_to_reference_distance(self, location: float) -> float:
        """
        Convert a great-circle distance along the route to a reference distance.

        Finds the first segment whose great-circle end reaches the location,
        takes the fractional position within that segment and interpolates the
        reference distances of its end points. A location beyond the route
        falls on the last segment.

        Args:
            location: Great-circle distance from the route start (meters)

        Returns:
            Reference distance in meters
        """
        last_segment = len(self.coords) - 2
        index = min(
            bisect_left(self.great_circle_distances, location, lo=1) - 1, last_segment
        )

        segment_length = self.segment_lengths[index]
        if segment_length > 0:
            t = (location - self.great_circle_distances[index]) / segment_length
            t = max(0.0, min(1.0, t))
        else:
            t = 0.0

        start = self.distances[index]
        end = self.distances[index + 1]
        return start + t * (end - start)

    def reference_window(self, start: float, end: float) -> Tuple[int, int]:
        """
        Find the track points covering a reference-distance window.

        Args:
            start: Window start in meters
            end: Window end in meters

        Returns:
            (first, last) indices of the track points with reference distance in
            [start, end]; widened by one point on each side when fewer than two
            points fall inside.
        """
        first = bisect_left(self.distances, start)
        last = bisect_right(self.distances, end) - 1
        if last - first + 1 < 2:
            first = max(0, first - 1)
            last = min(len(self.distances) - 1, last + 1)
        return first, last

    @classmethod
    def from_points(cls, points: Iterable[Sequence[float]]) -> "Route":
        """
        Build a route from [latitude, longitude, elevation, distance] tuples.

        Raises:
            ValueError: If a point has fewer than four values or the route is invalid
        """
        trackpoints = []
        for i, point in enumerate(points):
            if len(point) < 4:
                raise ValueError(f"Route point {i} has {len(point)} values, expected 4")
            lat, lon, elevation, distance = point[0], point[1], point[2], point[3]
            trackpoints.append(
                TrackPoint(
                    latitude=float(lat),
                    longitude=float(lon),
                    elevation=float(elevation) if elevation is not None else None,
                    distance=float(distance),
                )
            )
        return cls(trackpoints)

    @classmethod
    def from_gpx(cls, file_input: TextIO) -> "Route":
        """
        Parse GPX file and concatenate all tracks/segments into a single route.

        Reference distances are computed on the WGS84 ellipsoid, since GPX
        carries none.

        Args:
            file_input: File-like object containing GPX data

        Returns:
            Route object representing the concatenated route

        Raises:
            RuntimeError: If the route crosses the antimeridian or approaches poles.
            gpxpy.gpx.GPXException: If GPX file is malformed.
        """
        gpx_data = gpxpy.parse(file_input)

        positions = []
        elevations = []
        for track in gpx_data.tracks:
            for segment in track.segments:
                for point in segment.points:
                    positions.append(
                        Position(latitude=point.latitude, longitude=point.longitude)
                    )
                    elevations.append(point.elevation)

        distances = calculate_reference_distances(positions, elevations)
        trackpoints = [
            TrackPoint(pos.latitude, pos.longitude, elevation, distance)
            for pos, elevation, distance in zip(positions, elevations, distances)
        ]

        route = cls(trackpoints)
        logger.debug(f"Parsed {len(route)} track points from GPX file")
        return route

    @classmethod
    def from_file(cls, filename: str) -> "Route":
        """
        Load and parse a GPX file into a route.

        Raises:
            FileNotFoundError: If file doesn't exist.
            PermissionError: If file can't be read.
            gpxpy.gpx.GPXException: If GPX file is malformed.
        """
        logger.debug(f"Reading GPX file: {filename}")
        with open(filename, "r", encoding="utf-8") as f:
            return cls.from_gpx(f)

    def __len__(self) -> int:
        """Return number of trackpoints in route."""
        return len(self.trackpoints)

    def __getitem__(self, index):
        """Allow indexing into trackpoints."""
        return self.trackpoints[index]

    def __iter__(self):
        """Allow iteration over trackpoints."""
        return iter(self.trackpoints)
