#!/usr/bin/env python3
"""
Brunnel spans - find where a route crosses bridges and tunnels.

This package matches OpenStreetMap bridges and tunnels against a route and
reports the distance range of each one along the route.
"""
import importlib.metadata

__version__ = importlib.metadata.version("brunnel-spans")
__author__ = "Jim Mattson"
__email__ = "jsmattsonjr@gmail.com"

# Import main classes for public API
from .brunnel import (
    AcceptedSpan,
    Brunnel,
    BrunnelType,
    Excluded,
    ExclusionReason,
    Included,
    RouteSpan,
)
from .config import BrunnelsConfig
from .geometry import Position
from .pipeline import PipelineResult, detect_brunnels
from .route import Route, TrackPoint

__all__ = [
    "AcceptedSpan",
    "Brunnel",
    "BrunnelType",
    "BrunnelsConfig",
    "Excluded",
    "ExclusionReason",
    "Included",
    "PipelineResult",
    "Position",
    "Route",
    "RouteSpan",
    "TrackPoint",
    "detect_brunnels",
]
