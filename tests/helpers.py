"""Shared builders for routes and brunnels on the equator."""

import math

from brunnel_spans.brunnel import Brunnel, BrunnelType
from brunnel_spans.geometry import EARTH_RADIUS, Position
from brunnel_spans.route import Route

# Meters per degree of longitude on the equator (spherical Earth)
METERS_PER_DEGREE = EARTH_RADIUS * math.pi / 180


def equator_route(length=1000.0, points=5, scale=1.0):
    """Straight eastbound route on the equator with evenly spaced points.

    Reference distances are the great-circle distances multiplied by scale.
    """
    step = length / (points - 1)
    return Route.from_points(
        [
            [0.0, i * step / METERS_PER_DEGREE, 100.0, i * step * scale]
            for i in range(points)
        ]
    )


def east_west_brunnel(
    brunnel_id, start_m, end_m, offset_m=1.0, brunnel_type=BrunnelType.BRIDGE, **kwargs
):
    """Brunnel running east-west between two along-route positions, offset north."""
    lat = offset_m / METERS_PER_DEGREE
    return Brunnel(
        brunnel_id,
        brunnel_type,
        [
            Position(latitude=lat, longitude=start_m / METERS_PER_DEGREE),
            Position(latitude=lat, longitude=end_m / METERS_PER_DEGREE),
        ],
        **kwargs,
    )


def north_south_brunnel(brunnel_id, along_m, half_length_m=1.0):
    """Brunnel crossing the route at right angles."""
    lon = along_m / METERS_PER_DEGREE
    half = half_length_m / METERS_PER_DEGREE
    return Brunnel(
        brunnel_id,
        BrunnelType.BRIDGE,
        [
            Position(latitude=-half, longitude=lon),
            Position(latitude=half, longitude=lon),
        ],
    )
