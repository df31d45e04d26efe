from typing import Any, Dict, List, Tuple
import logging
import math
import time

import requests

from .brunnel import Brunnel, BrunnelType
from .config import BrunnelsConfig
from .route import Route

OVERPASS_API_URL = "https://overpass-api.de/api/interpreter"

# Active railway types that are filtered out by default (unless include_active_railways is set)
ACTIVE_RAILWAY_TYPES = [
    "rail",
    "light_rail",
    "subway",
    "tram",
    "narrow_gauge",
    "funicular",
    "monorail",
    "miniature",
    "preserved",
]

MAX_RETRIES = 5
BASE_DELAY = 2.0

# Configure logging
logger = logging.getLogger(__name__)


def _build_base_filters(config: BrunnelsConfig) -> str:
    """Build base filter string for Overpass query."""
    base_filters = ""

    if not config.include_waterways:
        base_filters += "[!waterway]"

    if not config.include_bicycle_no:
        base_filters += '["bicycle"!="no"]'

    return base_filters


def _build_railway_exclusions(
    config: BrunnelsConfig, base_filters: str
) -> Tuple[str, str]:
    """Build railway exclusion strings for bridges and tunnels."""
    if config.include_active_railways:
        return "", ""

    active_railway_pattern = "|".join(ACTIVE_RAILWAY_TYPES)
    railway_exclusion = (
        f'["railway"~"^({active_railway_pattern})$"]{base_filters}(if:!is_closed());'
    )

    return (
        f"\n    - way[bridge]{railway_exclusion}",
        f"\n    - way[tunnel]{railway_exclusion}",
    )


def build_overpass_query(
    bbox: Tuple[float, float, float, float], config: BrunnelsConfig
) -> str:
    """Build the complete Overpass QL query string.

    Bridges and tunnels are returned as two result sets, each preceded by a
    count element so the response can be split again.
    """
    south, west, north, east = bbox
    base_filters = _build_base_filters(config)
    bridge_railway_exclusion, tunnel_railway_exclusion = _build_railway_exclusions(
        config, base_filters
    )

    return (
        f"[out:json][timeout:{config.timeout}][bbox:{south},{west},{north},{east}];\n"
        f"(\n"
        f"  (\n"
        f"    way[bridge]{base_filters}(if:!is_closed());{bridge_railway_exclusion}\n"
        f"  );\n"
        f"  way[bridge][highway=cycleway](if:!is_closed());\n"
        f");\n"
        f"out count;\n"
        f"out geom qt;\n"
        f"(\n"
        f"  (\n"
        f"    way[tunnel]{base_filters}(if:!is_closed());{tunnel_railway_exclusion}\n"
        f"  );\n"
        f"  way[tunnel][highway=cycleway](if:!is_closed());\n"
        f");\n"
        f"out count;\n"
        f"out geom qt;\n"
    )


def _is_retryable_error(e: requests.exceptions.HTTPError) -> bool:
    """Check if an HTTP error is retryable."""
    if e.response is not None:
        return e.response.status_code == 429 or e.response.status_code >= 500
    error_msg = str(e).lower()
    return any(code in error_msg for code in ["429", "500", "502", "503", "504"])


def query_overpass_brunnels(
    bbox: Tuple[float, float, float, float],
    config: BrunnelsConfig,
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Query Overpass API for bridge and tunnel ways within bounding box with cycling-relevant filtering.

    Retries with exponential backoff on 429 (rate limit) and 5xx errors.

    Returns:
        Tuple of (bridges, tunnels) as separate lists

    Raises:
        requests.exceptions.RequestException: On network or HTTP errors after retries
    """
    query = build_overpass_query(bbox, config)
    attempt = 0

    while True:
        try:
            response = requests.post(
                OVERPASS_API_URL, data={"data": query}, timeout=config.timeout
            )
            response.raise_for_status()
            elements = response.json().get("elements", [])
            return parse_separated_results(elements)

        except requests.exceptions.HTTPError as e:
            status_code = e.response.status_code if e.response is not None else None
            logger.debug(
                f"HTTPError caught: status={status_code}, attempt={attempt}, max_retries={MAX_RETRIES}"
            )

            if _is_retryable_error(e) and attempt < MAX_RETRIES:
                delay = BASE_DELAY * (2**attempt)
                error_type = (
                    "Server error"
                    if status_code and status_code >= 500
                    else "Rate limited"
                )
                logger.warning(
                    f"{error_type} ({status_code or 'unknown'}), retrying in {delay:.0f}s (attempt {attempt + 1} of {MAX_RETRIES + 1})"
                )
                time.sleep(delay)
                attempt += 1
                continue
            raise


def parse_separated_results(
    elements: List[Dict[str, Any]],
) -> Tuple[List[Dict[str, Any]], List[Dict[str, Any]]]:
    """Parse Overpass response with count separators into bridges and tunnels.

    Args:
        elements: Raw elements from Overpass response

    Returns:
        Tuple of (bridges, tunnels) as separate lists
    """
    bridges = []
    tunnels = []
    current_type = None

    for element in elements:
        if element["type"] == "count":
            # First count is bridges, second count is tunnels
            current_type = "tunnels" if current_type == "bridges" else "bridges"
            total = element.get("tags", {}).get("total", "?")
            logger.debug(f"Overpass query found {total} {current_type}")
        elif element["type"] == "way":
            if current_type == "bridges":
                bridges.append(element)
            elif current_type == "tunnels":
                tunnels.append(element)
            else:
                logger.warning(
                    f"Found way {element.get('id')} before any count element"
                )

    return bridges, tunnels


def parse_brunnels(
    raw_bridges: List[Dict[str, Any]], raw_tunnels: List[Dict[str, Any]]
) -> List[Brunnel]:
    """Process raw bridge and tunnel data into Brunnel objects.

    Ways without enough valid vertices are skipped; repeated way ids are kept once.
    """
    brunnels = []
    seen = set()

    for raw_ways, brunnel_type in (
        (raw_bridges, BrunnelType.BRIDGE),
        (raw_tunnels, BrunnelType.TUNNEL),
    ):
        for way_data in raw_ways:
            try:
                brunnel = Brunnel.from_overpass_data(way_data, brunnel_type)
            except (KeyError, ValueError) as e:
                logger.warning(f"Failed to parse {brunnel_type.value} way: {e}")
                continue

            key = (brunnel_type, brunnel.brunnel_id)
            if key in seen:
                continue
            seen.add(key)
            brunnels.append(brunnel)

    return brunnels


def find_brunnels(route: Route, config: BrunnelsConfig) -> List[Brunnel]:
    """
    Find all bridges and tunnels in the route's bounding box.

    Args:
        route: Route to search around
        config: Query buffer, filter switches and timeout

    Returns:
        Candidate Brunnel objects
    """
    bbox = route.get_bbox(config.query_buffer)

    south, west, north, east = bbox
    avg_lat = (north + south) / 2
    lat_km = (north - south) * 111.32
    lon_km = (east - west) * 111.32 * abs(math.cos(math.radians(avg_lat)))
    logger.debug(
        f"Querying Overpass API for bridges and tunnels in "
        f"{lat_km * lon_km:.1f} sq km area..."
    )

    raw_bridges, raw_tunnels = query_overpass_brunnels(bbox, config)
    return parse_brunnels(raw_bridges, raw_tunnels)
