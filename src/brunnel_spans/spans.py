#!/usr/bin/env python3
"""
Route-span projection.

Brunnel end points are projected onto the route with great-circle geometry,
then placed using the route's own reference distances so that spans agree with
the distances the route's source already uses (e.g. on its elevation chart).
"""

from typing import List, Optional, Sequence
import logging

from .brunnel import Brunnel, Included, RouteSpan
from .geometry import nearest_point_on_polyline
from .route import Route

logger = logging.getLogger(__name__)


def calculate_route_span(brunnel: Brunnel, route: Route) -> Optional[RouteSpan]:
    """
    Calculate the span of a brunnel along the route in reference distances.

    Args:
        brunnel: Brunnel to place
        route: Route providing geometry and reference distances

    Returns:
        RouteSpan in meters, or None if the brunnel has no vertices
    """
    if not brunnel.coords:
        return None

    start_nearest = nearest_point_on_polyline(route.coords, brunnel.coords[0])
    end_nearest = nearest_point_on_polyline(route.coords, brunnel.coords[-1])

    start_distance = route.great_circle_to_reference_distance(start_nearest.location)
    end_distance = route.great_circle_to_reference_distance(end_nearest.location)

    logger.debug(
        f"{brunnel.get_short_description()}: great-circle "
        f"{start_nearest.location:.1f}-{end_nearest.location:.1f}m -> reference "
        f"{start_distance:.1f}-{end_distance:.1f}m"
    )

    return RouteSpan(
        min(start_distance, end_distance), max(start_distance, end_distance)
    )


def project_route_spans(brunnels: Sequence[Brunnel], route: Route) -> List[Included]:
    """
    Calculate the route span for each contained brunnel.

    Brunnels without a span cannot be placed and are left out.
    """
    included = []
    for brunnel in brunnels:
        route_span = calculate_route_span(brunnel, route)
        if route_span is None:
            logger.debug(f"{brunnel.get_short_description()} has no route span")
            continue
        included.append(Included(brunnel, route_span))
    return included
