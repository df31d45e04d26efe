#!/usr/bin/env python3
"""
Route extraction from a route editor's page data (SvelteKit ``__data.json``).

SvelteKit de-duplicates values into one flat array per data node and refers to
them by index. The high-resolution ``editableRoute`` is an index table of
points, each point itself a list of indices
``[lat, lon, elevation, distance, smoothed_elevation]``. Older pages only carry
``simple_route``, a JSON string of ``[lat, lon, elevation, distance]`` rows.
"""

from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, urlparse
import json
import logging
import re

import requests

from .route import Route

logger = logging.getLogger(__name__)

ROUTE_DATA_URL = "https://biketerra.com/routes/new/__data.json"

RoutePoints = List[List[Any]]


def get_route_id(url: str) -> Optional[str]:
    """
    Extract the route id from an editor URL.

    Supports ``...?id=<route_id>`` and ``/editor/<route_id>``.
    """
    parsed = urlparse(url)
    ids = parse_qs(parsed.query).get("id")
    if ids:
        return ids[0]

    match = re.search(r"/editor/(\d+)", parsed.path)
    if match:
        return match.group(1)
    return None


def find_editable_route(data_array: List[Any]) -> Optional[RoutePoints]:
    """Dereference the editableRoute index table, falling back to simple_route."""
    editable_route_index = None
    for item in data_array:
        if isinstance(item, dict) and "editableRoute" in item:
            editable_route_index = item["editableRoute"]
            break

    if editable_route_index is None:
        logger.debug("editableRoute key not found, falling back to simple_route")
        return find_simple_route(data_array)

    point_indices = data_array[editable_route_index]
    if not isinstance(point_indices, list):
        logger.debug("editableRoute is not an array, falling back to simple_route")
        return find_simple_route(data_array)

    points = []
    for point_index in point_indices:
        indices = data_array[point_index]
        if isinstance(indices, list) and len(indices) >= 4:
            points.append([data_array[i] for i in indices[:4]])

    if points:
        logger.debug(f"Found editableRoute with {len(points)} points")
        return points
    return None


def find_simple_route(data_array: List[Any]) -> Optional[RoutePoints]:
    """Find the JSON-encoded simple_route string in a data array."""
    for item in data_array:
        if not (isinstance(item, str) and item.startswith("[[")):
            continue
        try:
            parsed = json.loads(item)
        except ValueError:
            continue
        if (
            isinstance(parsed, list)
            and parsed
            and isinstance(parsed[0], list)
            and len(parsed[0]) == 4
            and isinstance(parsed[0][0], (int, float))
        ):
            logger.debug(f"Found simple_route with {len(parsed)} points")
            return parsed
    return None


def parse_data_json(data: Dict[str, Any]) -> RoutePoints:
    """
    Extract route points from a parsed ``__data.json`` document.

    Data nodes are tried largest first.

    Returns:
        List of [latitude, longitude, elevation, distance] rows

    Raises:
        ValueError: If the document has no nodes or no route data
    """
    nodes = data.get("nodes")
    if not isinstance(nodes, list):
        raise ValueError("Invalid data format: missing nodes array")

    data_nodes = [
        node
        for node in nodes
        if isinstance(node, dict)
        and node.get("type") == "data"
        and isinstance(node.get("data"), list)
    ]
    data_nodes.sort(key=lambda node: len(node["data"]), reverse=True)

    for node in data_nodes:
        points = find_editable_route(node["data"])
        if points:
            return points

    raise ValueError("Could not find route data in response")


def fetch_route_data(
    route_id: str, timeout: int = 30, session: Optional[requests.Session] = None
) -> RoutePoints:
    """
    Download and parse the page data of a route.

    Raises:
        requests.exceptions.RequestException: On network or HTTP errors
        ValueError: If the response holds no route data
    """
    logger.debug(f"Fetching route data for ID: {route_id}")
    if session is None:
        with requests.Session() as http:
            response = http.get(ROUTE_DATA_URL, params={"id": route_id}, timeout=timeout)
    else:
        response = session.get(ROUTE_DATA_URL, params={"id": route_id}, timeout=timeout)
    response.raise_for_status()
    return parse_data_json(response.json())


def load_route(filename: str) -> Route:
    """
    Load a saved ``__data.json`` file into a Route.

    Raises:
        FileNotFoundError: If file doesn't exist.
        ValueError: If the file holds no usable route.
    """
    logger.debug(f"Reading route data file: {filename}")
    with open(filename, "r", encoding="utf-8") as f:
        data = json.load(f)
    return Route.from_points(parse_data_json(data))
