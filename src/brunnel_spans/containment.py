#!/usr/bin/env python3
"""
Containment filtering: decide which brunnels lie within a buffer around the route.

Two strategies are available. The distance strategy thresholds the distance of
every brunnel vertex to the route line and is the default. The buffer-polygon
strategy builds a rhumb-offset polygon around the route and requires every
vertex inside it with no crossing of its boundary.
"""

from abc import ABC, abstractmethod
from typing import Dict, List, Sequence, Tuple, Type
import logging

from shapely.geometry import LineString, Polygon

from .brunnel import Brunnel, Excluded, ExclusionReason
from .geometry import (
    buffer_polyline,
    line_intersect,
    nearest_point_on_polyline,
    point_in_polygon,
)
from .route import Route

logger = logging.getLogger(__name__)


class ContainmentStrategy(ABC):
    """Policy deciding whether a brunnel is contained in the route buffer."""

    def __init__(self, route: Route, buffer: float):
        if buffer <= 0:
            raise ValueError(f"Route buffer must be positive, got {buffer} meters")
        self.route = route
        self.buffer = buffer

    @abstractmethod
    def contains(self, brunnel: Brunnel) -> bool:
        """Return True if the brunnel lies within the route buffer."""


class DistanceContainment(ContainmentStrategy):
    """Every vertex must be within the buffer distance of the route line."""

    def contains(self, brunnel: Brunnel) -> bool:
        for vertex in brunnel.coords:
            nearest = nearest_point_on_polyline(self.route.coords, vertex)
            if nearest.distance > self.buffer:
                logger.debug(
                    f"{brunnel.get_short_description()} vertex is {nearest.distance:.1f}m "
                    f"from the route (buffer: {self.buffer}m)"
                )
                return False
        return True


class BufferPolygonContainment(ContainmentStrategy):
    """Every vertex inside the offset polygon, and no crossing of its boundary."""

    def __init__(self, route: Route, buffer: float):
        super().__init__(route, buffer)
        self.polygon: Polygon = buffer_polyline(route.coords, buffer)
        self.boundary = LineString(self.polygon.exterior.coords)

    def contains(self, brunnel: Brunnel) -> bool:
        for vertex in brunnel.coords:
            if not point_in_polygon(vertex, self.polygon):
                return False
        return not line_intersect(brunnel.linestring, self.boundary)


CONTAINMENT_STRATEGIES: Dict[str, Type[ContainmentStrategy]] = {
    "distance": DistanceContainment,
    "polygon": BufferPolygonContainment,
}


def create_containment_strategy(
    name: str, route: Route, buffer: float
) -> ContainmentStrategy:
    """
    Create a containment strategy by name ("distance" or "polygon").

    Raises:
        ValueError: If the name is unknown or the buffer is not positive
    """
    try:
        strategy_class = CONTAINMENT_STRATEGIES[name]
    except KeyError:
        raise ValueError(f"Unknown containment strategy: {name}") from None
    return strategy_class(route, buffer)


def filter_contained(
    brunnels: Sequence[Brunnel], strategy: ContainmentStrategy
) -> Tuple[List[Brunnel], List[Excluded]]:
    """
    Split brunnels into those contained in the route buffer and outliers.

    Args:
        brunnels: Candidate brunnels
        strategy: Containment policy to apply

    Returns:
        Tuple of (contained brunnels, Excluded results with reason OUTLIER)
    """
    contained = []
    outliers = []

    for brunnel in brunnels:
        if strategy.contains(brunnel):
            contained.append(brunnel)
        else:
            outliers.append(Excluded(brunnel, ExclusionReason.OUTLIER))

    logger.debug(
        f"{len(contained)}/{len(brunnels)} brunnels contained in "
        f"{strategy.buffer}m route buffer ({type(strategy).__name__})"
    )
    return contained, outliers
