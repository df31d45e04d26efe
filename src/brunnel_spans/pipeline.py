#!/usr/bin/env python3
"""
The brunnel matching pipeline.

containment -> route spans -> alignment -> overlap resolution -> adjacency merge
"""

from typing import Dict, List, NamedTuple, Sequence
import logging

from .alignment import filter_aligned
from .brunnel import AcceptedSpan, Brunnel, Excluded, Included, MatchResult
from .config import BrunnelsConfig
from .containment import create_containment_strategy, filter_contained
from .merge import merge_adjacent
from .overlap import resolve_overlaps
from .route import Route
from .spans import project_route_spans

logger = logging.getLogger(__name__)


class PipelineResult(NamedTuple):
    """Outcome of one pipeline run."""

    results: List[MatchResult]  # Final outcome per input brunnel, in input order
    accepted: List[AcceptedSpan]  # Merged spans ordered by start distance


def detect_brunnels(
    route: Route, brunnels: Sequence[Brunnel], config: BrunnelsConfig
) -> PipelineResult:
    """
    Match candidate brunnels against a route.

    Args:
        route: Route with reference distances
        brunnels: Candidate brunnels, each with at least two valid vertices
        config: Route buffer, bearing tolerance, containment strategy, merge
            gap and overlap switch

    Returns:
        PipelineResult with every brunnel's outcome and the accepted spans

    Raises:
        ValueError: If the containment strategy is unknown or the route buffer
            is not positive
    """
    strategy = create_containment_strategy(config.containment, route, config.route_buffer)

    contained, excluded = filter_contained(brunnels, strategy)
    included = project_route_spans(contained, route)

    if config.bearing_tolerance > 0:
        included, misaligned = filter_aligned(included, route, config.bearing_tolerance)
        excluded.extend(misaligned)

    if not config.no_overlap_exclusion:
        included, alternatives = resolve_overlaps(included, route)
        excluded.extend(alternatives)

    accepted = merge_adjacent(included, config.merge_gap)

    outcomes: Dict[int, MatchResult] = {}
    for result in list(included) + list(excluded):
        outcomes[id(result.brunnel)] = result
    results = [outcomes[id(b)] for b in brunnels if id(b) in outcomes]

    included_count = sum(1 for r in results if isinstance(r, Included))
    logger.debug(
        f"Found {included_count}/{len(brunnels)} included brunnels, "
        f"{len(accepted)} accepted spans after merging"
    )
    return PipelineResult(results=results, accepted=accepted)


def excluded_results(results: Sequence[MatchResult]) -> List[Excluded]:
    """Return only the excluded outcomes."""
    return [r for r in results if isinstance(r, Excluded)]
