#!/usr/bin/env python3
"""
Brunnel merging for combining adjacent segments.

OpenStreetMap frequently splits one physical bridge or tunnel into several
ways at arbitrary nodes. Ways of the same type whose spans meet (within a
small gap) are reported as one span.
"""

from typing import Dict, List, Sequence
import logging

from .brunnel import AcceptedSpan, BrunnelType, Included

logger = logging.getLogger(__name__)

DEFAULT_MAX_GAP = 1.0  # meters


def _combine_names(names: Sequence[str]) -> str:
    """De-duplicate names, keeping first-seen order, and join with '; '."""
    distinct: List[str] = []
    for name in names:
        if name not in distinct:
            distinct.append(name)
    return "; ".join(distinct)


def _accept_group(group: List[Included]) -> AcceptedSpan:
    return AcceptedSpan(
        brunnel_id=";".join(result.brunnel.brunnel_id for result in group),
        brunnel_type=group[0].brunnel.brunnel_type,
        name=_combine_names([result.brunnel.name for result in group]),
        start_distance=min(result.route_span.start_distance for result in group),
        end_distance=max(result.route_span.end_distance for result in group),
        segments=len(group),
    )


def merge_adjacent(
    included: Sequence[Included], max_gap: float = DEFAULT_MAX_GAP
) -> List[AcceptedSpan]:
    """
    Merge same-type brunnels whose spans are adjacent along the route.

    Bridges and tunnels are merged separately. Within a type, brunnels are
    taken in order of span start, and one joins the open group when the gap
    from the group's end to its start is at most max_gap meters.

    Args:
        included: Included results with route spans
        max_gap: Largest gap in meters bridged by a merge

    Returns:
        Accepted spans ordered by start distance
    """
    by_type: Dict[BrunnelType, List[Included]] = {}
    for result in included:
        by_type.setdefault(result.brunnel.brunnel_type, []).append(result)

    accepted: List[AcceptedSpan] = []

    for brunnel_type, results in by_type.items():
        results = sorted(results, key=lambda r: r.route_span.start_distance)

        group = [results[0]]
        group_end = results[0].route_span.end_distance

        for result in results[1:]:
            if result.route_span.start_distance - group_end <= max_gap:
                group.append(result)
                group_end = max(group_end, result.route_span.end_distance)
            else:
                accepted.append(_accept_group(group))
                group = [result]
                group_end = result.route_span.end_distance
        accepted.append(_accept_group(group))

    merged_count = sum(span.segments - 1 for span in accepted)
    if merged_count:
        logger.debug(f"Merged {merged_count} adjacent brunnel segments")

    accepted.sort(key=lambda span: (span.start_distance, span.end_distance))
    return accepted
