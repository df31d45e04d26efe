#!/usr/bin/env python3
"""
Bearing alignment between brunnels and the route section they span.
"""

from typing import List, Sequence, Tuple
import logging

from .brunnel import Brunnel, Excluded, ExclusionReason, Included, RouteSpan
from .geometry import bearing_difference, rhumb_bearing
from .route import Route

logger = logging.getLogger(__name__)


def is_aligned(
    brunnel: Brunnel, route_span: RouteSpan, route: Route, tolerance_degrees: float
) -> bool:
    """
    Check if any brunnel segment runs parallel to any route segment in its span.

    The route section is the run of track points whose reference distances
    fall within the span. Direction does not matter: a brunnel drawn against
    the direction of travel is still aligned. With fewer than two points on
    either side there is nothing to compare and the brunnel counts as aligned.

    Args:
        brunnel: Brunnel to check
        route_span: The brunnel's span along the route (meters)
        route: Route the span refers to
        tolerance_degrees: Allowed bearing deviation in degrees

    Returns:
        True if any segment pair is within tolerance
    """
    first, last = route.reference_window(
        route_span.start_distance, route_span.end_distance
    )
    route_coords = route.coords[first : last + 1]
    brunnel_coords = brunnel.coords

    if len(brunnel_coords) < 2 or len(route_coords) < 2:
        return True

    for b_idx in range(len(brunnel_coords) - 1):
        b_start, b_end = brunnel_coords[b_idx], brunnel_coords[b_idx + 1]
        if b_start == b_end:
            continue  # Skip zero-length brunnel segment
        brunnel_bearing = rhumb_bearing(b_start, b_end)

        for r_idx in range(len(route_coords) - 1):
            r_start, r_end = route_coords[r_idx], route_coords[r_idx + 1]
            if r_start == r_end:
                continue  # Skip zero-length route segment
            route_bearing = rhumb_bearing(r_start, r_end)

            if bearing_difference(brunnel_bearing, route_bearing) <= tolerance_degrees:
                return True

    logger.debug(f"{brunnel.get_short_description()} is not aligned with the route")
    return False


def filter_aligned(
    included: Sequence[Included], route: Route, tolerance_degrees: float
) -> Tuple[List[Included], List[Excluded]]:
    """
    Split included brunnels into aligned ones and misaligned exclusions.

    Returns:
        Tuple of (aligned Included results, Excluded results with reason MISALIGNED)
    """
    aligned = []
    misaligned = []

    for result in included:
        if is_aligned(result.brunnel, result.route_span, route, tolerance_degrees):
            aligned.append(result)
        else:
            misaligned.append(
                Excluded(result.brunnel, ExclusionReason.MISALIGNED, result.route_span)
            )

    if misaligned:
        logger.debug(
            f"Excluded {len(misaligned)} brunnels out of {len(included)} "
            f"contained brunnels due to bearing misalignment (tolerance: {tolerance_degrees}°)"
        )
    return aligned, misaligned
