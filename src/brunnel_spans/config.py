from dataclasses import dataclass


@dataclass
class BrunnelsConfig:
    """Configuration for brunnel detection and the CLI."""

    query_buffer: float = 10.0
    route_buffer: float = 3.0
    bearing_tolerance: float = 20.0
    containment: str = "distance"
    merge_gap: float = 1.0
    no_overlap_exclusion: bool = False
    include_bicycle_no: bool = False
    include_waterways: bool = False
    include_active_railways: bool = False
    timeout: int = 30
    log_level: str = "WARNING"
    metrics: bool = False
