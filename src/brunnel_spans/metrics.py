"""
Module for collecting and logging metrics related to brunnel matching.
"""

import collections
import logging
from typing import Dict, NamedTuple, Sequence

from .brunnel import AcceptedSpan, BrunnelType, Excluded, MatchResult
from .config import BrunnelsConfig

logger = logging.getLogger(__name__)


class BrunnelMetrics(NamedTuple):
    """Container for brunnel metrics data."""

    bridge_counts: Dict[str, int]
    tunnel_counts: Dict[str, int]


def collect_metrics(
    results: Sequence[MatchResult], accepted: Sequence[AcceptedSpan]
) -> BrunnelMetrics:
    """
    Count pipeline outcomes per brunnel type.

    Keys are "total", "included", "accepted" (merged spans) and one key per
    exclusion reason value.

    Args:
        results: Final outcome per candidate brunnel
        accepted: Merged accepted spans

    Returns:
        BrunnelMetrics containing all collected metrics
    """
    bridge_counts: Dict[str, int] = collections.defaultdict(int)
    tunnel_counts: Dict[str, int] = collections.defaultdict(int)

    def counts_for(brunnel_type: BrunnelType) -> Dict[str, int]:
        return bridge_counts if brunnel_type == BrunnelType.BRIDGE else tunnel_counts

    for result in results:
        counts_dict = counts_for(result.brunnel.brunnel_type)
        counts_dict["total"] += 1
        if isinstance(result, Excluded):
            counts_dict[result.reason.value] += 1
        else:
            counts_dict["included"] += 1

    for span in accepted:
        counts_for(span.brunnel_type)["accepted"] += 1

    return BrunnelMetrics(
        bridge_counts=dict(bridge_counts),
        tunnel_counts=dict(tunnel_counts),
    )


def log_metrics(
    candidate_count: int, metrics: BrunnelMetrics, config: BrunnelsConfig
) -> None:
    """
    Log detailed metrics after matching.

    Args:
        candidate_count: Number of candidate brunnels found near the route
        metrics: BrunnelMetrics containing collected metrics
        config: Settings; nothing is logged unless config.metrics is set
    """
    if not config.metrics:
        return

    summary_keys = ["total", "included", "accepted"]

    logger.debug("=== BRUNNELS_METRICS ===")
    logger.debug(f"total_brunnels_found={candidate_count}")
    logger.debug(f"total_bridges_found={metrics.bridge_counts.get('total', 0)}")
    logger.debug(f"total_tunnels_found={metrics.tunnel_counts.get('total', 0)}")

    for label, counts in (
        ("bridge", metrics.bridge_counts),
        ("tunnel", metrics.tunnel_counts),
    ):
        for key, count in counts.items():
            if key not in summary_keys and count > 0:
                logger.debug(f"excluded_reason[{key}][{label}]={count}")

    logger.debug(f"included_bridges={metrics.bridge_counts.get('included', 0)}")
    logger.debug(f"included_tunnels={metrics.tunnel_counts.get('included', 0)}")
    logger.debug(
        f"final_accepted_total={metrics.bridge_counts.get('accepted', 0) + metrics.tunnel_counts.get('accepted', 0)}"
    )
    logger.debug("=== END_BRUNNELS_METRICS ===")
