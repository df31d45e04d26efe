#!/usr/bin/env python3
"""Data structures for representing bridges and tunnels (brunnels) and match results."""

from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Union
from enum import Enum
import logging

from shapely.geometry import LineString

from .geometry import Position, coords_to_polyline, is_valid_coordinate

logger = logging.getLogger(__name__)

NAME_TAGS = ["name", "name:en", "ref", "bridge:name", "tunnel:name"]


class BrunnelType(Enum):
    """Enumeration for brunnel (bridge/tunnel) types."""

    BRIDGE = "bridge"
    TUNNEL = "tunnel"

    def __str__(self) -> str:
        return self.value.capitalize()


class ExclusionReason(Enum):
    """Enumeration for brunnel exclusion reasons."""

    OUTLIER = "outlier"
    MISALIGNED = "misaligned"
    ALTERNATIVE = "alternative"

    def __str__(self) -> str:
        return self.value


class RouteSpan(NamedTuple):
    """Information about where a brunnel spans along a route."""

    start_distance: float  # Reference distance where the brunnel begins (meters)
    end_distance: float  # Reference distance where the brunnel ends (meters)

    @property
    def length(self) -> float:
        return self.end_distance - self.start_distance


def extract_name(tags: Dict[str, Any], brunnel_type: BrunnelType) -> str:
    """
    Choose a display name from OpenStreetMap tags.

    Tries the explicit name tags first, then the capitalised highway tag, and
    finally falls back to the brunnel type.
    """
    for key in NAME_TAGS:
        if tags.get(key):
            return str(tags[key])

    highway = tags.get("highway")
    if highway:
        return str(highway).capitalize()
    return str(brunnel_type)


class Brunnel:
    """A single bridge or tunnel way from OpenStreetMap."""

    def __init__(
        self,
        brunnel_id: Any,
        brunnel_type: BrunnelType,
        coords: Sequence[Position],
        tags: Optional[Dict[str, Any]] = None,
        name: Optional[str] = None,
        nodes: Optional[List[int]] = None,
    ):
        """Initializes a Brunnel object.

        Args:
            brunnel_id: The OpenStreetMap way id.
            brunnel_type: The type of the brunnel (BRIDGE or TUNNEL).
            coords: A list of Position objects representing the brunnel's geometry.
            tags: OpenStreetMap tags of the way.
            name: Display name; derived from the tags when omitted.
            nodes: OpenStreetMap node ids of the way.

        Raises:
            ValueError: If coords has fewer than two positions.
        """
        self.brunnel_id = str(brunnel_id)
        self.brunnel_type = brunnel_type
        self.tags: Dict[str, Any] = dict(tags or {})
        self.name = name if name is not None else extract_name(self.tags, brunnel_type)
        self.nodes: List[int] = list(nodes or [])
        self.coords: tuple = tuple(coords)
        if len(self.coords) < 2:
            raise ValueError(
                f"{self.get_short_description()} has insufficient coordinates"
            )
        coord_tuples = [(pos.longitude, pos.latitude) for pos in self.coords]
        self.linestring: LineString = coords_to_polyline(coord_tuples)

    def __repr__(self) -> str:
        return f"Brunnel({self.brunnel_id!r}, {self.brunnel_type.value}, {self.name!r})"

    def get_short_description(self) -> str:
        """Get a short, human-readable description for logging, e.g. "Bridge: Main St"."""
        return f"{self.brunnel_type}: {self.name}"

    @classmethod
    def from_overpass_data(
        cls, way_data: Dict[str, Any], brunnel_type: BrunnelType
    ) -> "Brunnel":
        """
        Parse a single way from an Overpass response into a Brunnel object.

        Vertices with missing or out-of-range coordinates are dropped.

        Args:
            way_data: Raw way data from the Overpass API
            brunnel_type: Type of brunnel (BRIDGE or TUNNEL)

        Returns:
            Brunnel object

        Raises:
            KeyError: If the way has no id
            ValueError: If fewer than two valid vertices remain
        """
        coords = []
        for node in way_data.get("geometry", []):
            lat = node.get("lat")
            lon = node.get("lon")
            if is_valid_coordinate(lat, lon):
                coords.append(Position(latitude=lat, longitude=lon))

        return cls(
            brunnel_id=way_data["id"],
            brunnel_type=brunnel_type,
            coords=coords,
            tags=way_data.get("tags", {}),
            nodes=way_data.get("nodes", []),
        )


class Included(NamedTuple):
    """A brunnel still accepted after a pipeline stage."""

    brunnel: Brunnel
    route_span: RouteSpan

    def is_included(self) -> bool:
        return True


class Excluded(NamedTuple):
    """A brunnel rejected by a pipeline stage, with the reason."""

    brunnel: Brunnel
    reason: ExclusionReason
    route_span: Optional[RouteSpan] = None

    def is_included(self) -> bool:
        return False


MatchResult = Union[Included, Excluded]


class AcceptedSpan(NamedTuple):
    """A final, possibly merged, brunnel span along the route."""

    brunnel_id: str
    brunnel_type: BrunnelType
    name: str
    start_distance: float  # meters
    end_distance: float  # meters
    segments: int = 1

    @property
    def start_km(self) -> float:
        return self.start_distance / 1000.0

    @property
    def end_km(self) -> float:
        return self.end_distance / 1000.0

    def get_short_description(self) -> str:
        count = f" [{self.segments} segments]" if self.segments > 1 else ""
        return f"{self.brunnel_type}: {self.name}{count}"

    def to_dict(self) -> Dict[str, Any]:
        """Serialise to the output format consumed by the route editor."""
        return {
            "id": self.brunnel_id,
            "type": self.brunnel_type.value,
            "name": self.name,
            "startDistanceKm": self.start_km,
            "endDistanceKm": self.end_km,
        }
