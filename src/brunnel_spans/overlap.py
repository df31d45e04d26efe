#!/usr/bin/env python3
"""
Overlap resolution: among brunnels sharing a stretch of route, keep the closest.
"""

from typing import List, Sequence, Tuple
import logging

from .brunnel import Brunnel, Excluded, ExclusionReason, Included, RouteSpan
from .geometry import nearest_point_on_polyline
from .route import Route

logger = logging.getLogger(__name__)


def spans_overlap(span1: RouteSpan, span2: RouteSpan) -> bool:
    """Open-interval overlap test; spans that only touch do not overlap."""
    return not (
        span1.end_distance <= span2.start_distance
        or span2.end_distance <= span1.start_distance
    )


def find_overlap_groups(included: Sequence[Included]) -> List[List[Included]]:
    """
    Group brunnels whose route spans overlap.

    Brunnels are scanned once in the order given. Each one joins the first
    existing group holding a member it overlaps, otherwise it starts a new group.
    Groups are never joined afterwards, so a brunnel only competes with the
    group it landed in.

    Returns:
        All groups, including single-member ones, in scan order
    """
    groups: List[List[Included]] = []

    for result in included:
        for group in groups:
            if any(spans_overlap(result.route_span, other.route_span) for other in group):
                group.append(result)
                break
        else:
            groups.append([result])

    return groups


def average_distance_to_route(brunnel: Brunnel, route: Route) -> float:
    """
    Mean distance from the brunnel's vertices to their nearest route points.

    Returns:
        Average distance in meters
    """
    total_distance = 0.0
    for vertex in brunnel.coords:
        total_distance += nearest_point_on_polyline(route.coords, vertex).distance
    return total_distance / len(brunnel.coords)


def resolve_overlaps(
    included: Sequence[Included], route: Route
) -> Tuple[List[Included], List[Excluded]]:
    """
    Keep the brunnel nearest to the route in every overlap group.

    Args:
        included: Included results with route spans
        route: Route used to measure distances

    Returns:
        Tuple of (kept Included results in span order, Excluded results with
        reason ALTERNATIVE)
    """
    kept: List[Included] = []
    alternatives: List[Excluded] = []

    for group in find_overlap_groups(included):
        if len(group) == 1:
            kept.append(group[0])
            continue

        logger.debug(f"Processing overlap group with {len(group)} brunnels")

        distances = []
        for result in group:
            avg_distance = average_distance_to_route(result.brunnel, route)
            distances.append((result, avg_distance))
            logger.debug(
                f"  {result.brunnel.get_short_description()}: avg distance = {avg_distance:.2f}m"
            )

        # Stable sort keeps scan order among equal distances
        distances.sort(key=lambda item: item[1])

        nearest, nearest_distance = distances[0]
        kept.append(nearest)
        logger.debug(
            f"  Keeping closest: {nearest.brunnel.get_short_description()} "
            f"(distance: {nearest_distance:.2f}m)"
        )

        for result, distance in distances[1:]:
            alternatives.append(
                Excluded(result.brunnel, ExclusionReason.ALTERNATIVE, result.route_span)
            )
            logger.debug(
                f"  Excluded: {result.brunnel.get_short_description()} "
                f"(distance: {distance:.2f}m, reason: {ExclusionReason.ALTERNATIVE})"
            )

    kept.sort(key=lambda r: r.route_span.start_distance)
    if alternatives:
        logger.debug(
            f"Excluded {len(alternatives)} overlapping brunnels, keeping nearest in each group"
        )
    return kept, alternatives
