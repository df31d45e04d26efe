#!/usr/bin/env python3
"""
Brunnel (Bridge/Tunnel) span tool

This script loads a route, finds the bridges and tunnels it passes over or
through, and reports each one's start and end distance along the route.

Requirements:
    pip install gpxpy folium requests shapely pyproj

"""

from typing import Optional, Sequence, TextIO
import webbrowser
import argparse
import json
import logging
import sys
import os
from gpxpy import gpx
import requests

from . import __version__
from . import visualization
from .brunnel import AcceptedSpan, BrunnelType, Excluded, ExclusionReason, MatchResult
from .config import BrunnelsConfig
from .containment import CONTAINMENT_STRATEGIES
from .file_utils import generate_output_filename
from .metrics import collect_metrics, log_metrics
from .overpass import find_brunnels
from .pipeline import detect_brunnels, excluded_results
from .route import Route
from .route_data import fetch_route_data, get_route_id, load_route

# Configure logging
logger = logging.getLogger("brunnel_spans")


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the command-line argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    defaults = BrunnelsConfig()
    parser = argparse.ArgumentParser(
        description="Find bridge and tunnel spans along a route",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "filename",
        type=str,
        nargs="?",
        help="GPX file, saved route __data.json file, or route editor URL",
    )
    parser.add_argument(
        "--query-buffer",
        type=float,
        default=defaults.query_buffer,
        help=f"Search buffer around route in meters (default: {defaults.query_buffer:g})",
    )
    parser.add_argument(
        "--route-buffer",
        type=float,
        default=defaults.route_buffer,
        help=f"Route buffer for containment detection in meters (default: {defaults.route_buffer:g})",
    )
    parser.add_argument(
        "--bearing-tolerance",
        type=float,
        default=defaults.bearing_tolerance,
        help=f"Bearing alignment tolerance in degrees, 0 disables (default: {defaults.bearing_tolerance:g})",
    )
    parser.add_argument(
        "--containment",
        type=str,
        default=defaults.containment,
        choices=sorted(CONTAINMENT_STRATEGIES),
        help=f"Containment test (default: {defaults.containment})",
    )
    parser.add_argument(
        "--merge-gap",
        type=float,
        default=defaults.merge_gap,
        help=f"Largest gap in meters between merged adjacent brunnels (default: {defaults.merge_gap:g})",
    )
    parser.add_argument(
        "--no-overlap-exclusion",
        action="store_true",
        help="Disable exclusion of overlapping brunnels (keep all overlapping brunnels)",
    )
    parser.add_argument(
        "--include-bicycle-no",
        action="store_true",
        help="Include ways tagged bicycle=no in the Overpass query",
    )
    parser.add_argument(
        "--include-waterways",
        action="store_true",
        help="Include ways tagged waterway in the Overpass query",
    )
    parser.add_argument(
        "--include-active-railways",
        action="store_true",
        help="Include ways tagged with an active railway type in the Overpass query",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        default=defaults.timeout,
        help=f"Network timeout in seconds (default: {defaults.timeout})",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print the accepted spans as JSON",
    )
    parser.add_argument(
        "--map",
        action="store_true",
        help="Write an interactive HTML map of the result",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output HTML map file (implies --map; default: auto-generated based on input filename)",
    )
    parser.add_argument(
        "--no-open",
        action="store_true",
        help="Don't automatically open the HTML map in browser",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=defaults.log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help=f"Set logging level (default: {defaults.log_level})",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Output structured metrics after processing",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"brunnel-spans {__version__}",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> BrunnelsConfig:
    """Build a BrunnelsConfig from parsed command-line arguments."""
    return BrunnelsConfig(
        query_buffer=args.query_buffer,
        route_buffer=args.route_buffer,
        bearing_tolerance=args.bearing_tolerance,
        containment=args.containment,
        merge_gap=args.merge_gap,
        no_overlap_exclusion=args.no_overlap_exclusion,
        include_bicycle_no=args.include_bicycle_no,
        include_waterways=args.include_waterways,
        include_active_railways=args.include_active_railways,
        timeout=args.timeout,
        log_level=args.log_level,
        metrics=args.metrics,
    )


def determine_output_filename(input_filename: str, output_arg: Optional[str]) -> str:
    """
    Determine the map output filename to use.

    Args:
        input_filename: Path to the input route file, or a route editor URL
        output_arg: Value from --output argument (None if not specified)

    Returns:
        Output filename to use

    Raises:
        RuntimeError: If auto-generation fails
        ValueError: If constructed filename would be illegal
    """
    if output_arg is not None:
        return output_arg

    if input_filename.startswith(("http://", "https://")):
        route_id = get_route_id(input_filename)
        if route_id is None:
            logger.error(f"Could not extract a route id from {input_filename}")
            raise ValueError(f"Could not extract a route id from {input_filename}")
        # Saved in the current directory
        input_filename = f"route {route_id}"

    try:
        return generate_output_filename(input_filename)
    except (RuntimeError, ValueError) as e:
        logger.error(f"Failed to generate output filename: {e}")
        raise


def open_file_in_browser(filename: str) -> None:
    """
    Open the specified file in the default browser.

    Args:
        filename: Path to the file to open
    """
    abs_path = os.path.abspath(filename)
    try:
        webbrowser.open(f"file://{abs_path}")
        logger.debug(f"Opening {abs_path} in your default browser...")
    except webbrowser.Error as e:
        logger.warning(f"Could not automatically open browser: {e}")
        logger.warning(f"Please manually open {abs_path}")


def setup_logging(log_level: str) -> None:
    """Setup logging configuration."""
    if hasattr(sys.stdout, "reconfigure") and sys.stdout.encoding != "utf-8":
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            if hasattr(sys.stderr, "reconfigure") and sys.stderr.encoding != "utf-8":
                sys.stderr.reconfigure(encoding="utf-8")
            logger.debug("Reconfigured stdout and stderr to UTF-8 encoding.")
        except (AttributeError, ValueError, OSError) as e:
            logger.debug(f"Could not reconfigure stdout/stderr to UTF-8: {e}")
    level = getattr(logging, log_level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    # Configure the root logger so all modules inherit the configuration
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    # Suppress overly verbose third-party logging
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)


def load_input_route(source: str, timeout: int) -> Route:
    """
    Load a route from a route editor URL, a saved __data.json file, or a GPX file.

    Raises:
        FileNotFoundError, PermissionError: If the file can't be read
        gpx.GPXException: If a GPX file is malformed
        ValueError: If the input holds no usable route
        RuntimeError: If the route crosses the antimeridian or approaches poles
        requests.exceptions.RequestException: On network errors
    """
    if source.startswith(("http://", "https://")):
        route_id = get_route_id(source)
        if route_id is None:
            raise ValueError(f"Could not extract a route id from {source}")
        return Route.from_points(fetch_route_data(route_id, timeout=timeout))

    if source.lower().endswith(".json"):
        return load_route(source)

    return Route.from_file(source)


def log_nearby_brunnels(
    results: Sequence[MatchResult], stream: Optional[TextIO] = None
) -> None:
    """
    Print all nearby brunnels (included, misaligned, and alternatives from overlap groups).

    Outliers have no route span and are not listed.

    Args:
        results: Final outcome per candidate brunnel
        stream: Where to print; stdout when None
    """
    nearby = [
        result
        for result in results
        if result.route_span is not None
        and not (
            isinstance(result, Excluded) and result.reason == ExclusionReason.OUTLIER
        )
    ]

    if not nearby:
        print("No nearby brunnels found", file=stream)
        return

    # Sort by start distance in decameters, then by end distance
    nearby.sort(
        key=lambda r: (
            int(r.route_span.start_distance / 10),
            r.route_span.end_distance,
        )
    )

    bridge_count = tunnel_count = 0
    included_bridge_count = included_tunnel_count = 0
    for result in nearby:
        if result.brunnel.brunnel_type == BrunnelType.BRIDGE:
            bridge_count += 1
            included_bridge_count += result.is_included()
        else:
            tunnel_count += 1
            included_tunnel_count += result.is_included()

    print(
        f"Nearby brunnels ({included_bridge_count}/{bridge_count} bridges; {included_tunnel_count}/{tunnel_count} tunnels):",
        file=stream,
    )

    max_distance = max(r.route_span.end_distance / 1000 for r in nearby)
    max_length = max(r.route_span.length / 1000 for r in nearby)

    # Digits before the decimal point plus ".XX"
    distance_width = len(f"{max_distance:.0f}") + 3
    length_width = len(f"{max_length:.0f}") + 3

    for result in nearby:
        route_span = result.route_span
        start_km = route_span.start_distance / 1000
        end_km = route_span.end_distance / 1000
        length_km = route_span.length / 1000

        span_info = f"{start_km:{distance_width}.2f}-{end_km:{distance_width}.2f} km ({length_km:{length_width}.2f} km)"
        if result.is_included():
            annotation, reason = "*", ""
        else:
            annotation, reason = "-", f" ({result.reason.value})"

        print(
            f"{span_info} {annotation} {result.brunnel.get_short_description()}{reason}",
            file=stream,
        )


def print_accepted_spans(accepted: Sequence[AcceptedSpan]) -> None:
    """Print the accepted spans as a JSON array."""
    print(json.dumps([span.to_dict() for span in accepted], indent=2))


def main(argv: Optional[Sequence[str]] = None):
    """
    Parses command-line arguments, loads the route,
    finds brunnels, and reports their spans.
    """
    parser = create_argument_parser()
    args = parser.parse_args(argv)

    if not args.filename:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.log_level)
    config = config_from_args(args)

    output_filename = None
    if args.map or args.output is not None:
        try:
            output_filename = determine_output_filename(args.filename, args.output)
            logger.debug(f"Output filename: {output_filename}")
        except (RuntimeError, ValueError):
            sys.exit(1)

    try:
        route = load_input_route(args.filename, config.timeout)
    except FileNotFoundError:
        logger.error(f"Route file not found: {args.filename}")
        sys.exit(1)
    except PermissionError:
        logger.error(f"Cannot read route file (permission denied): {args.filename}")
        sys.exit(1)
    except gpx.GPXException as e:
        logger.error(f"Invalid GPX file: {e}")
        sys.exit(1)
    except (ValueError, RuntimeError) as e:
        logger.error(f"Invalid route: {e}")
        sys.exit(1)
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to fetch route data: {e}")
        sys.exit(1)
    logger.info(f"Loaded route with {len(route)} points")
    logger.info(f"Total route distance: {route.total_distance / 1000:.2f} km")

    try:
        brunnels = find_brunnels(route, config)
    except requests.exceptions.RequestException as e:
        logger.error(f"Failed to query Overpass API: {e}")
        sys.exit(1)
    logger.info(f"Found {len(brunnels)} brunnels near route")

    try:
        result = detect_brunnels(route, brunnels, config)
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    excluded_count = len(excluded_results(result.results))
    if excluded_count > 0:
        logger.debug(f"{excluded_count} brunnels excluded")

    if args.json:
        # stdout carries only the JSON array
        log_nearby_brunnels(result.results, stream=sys.stderr)
        print_accepted_spans(result.accepted)
    else:
        log_nearby_brunnels(result.results)

    metrics = collect_metrics(result.results, result.accepted)

    if output_filename is not None:
        try:
            visualization.create_route_map(
                route, output_filename, result.results, metrics, config.query_buffer
            )
        except (OSError, ValueError) as e:
            logger.error(f"Failed to create map: {e}")
            sys.exit(1)

    log_metrics(len(brunnels), metrics, config)

    if output_filename is not None and not args.no_open:
        open_file_in_browser(output_filename)


if __name__ == "__main__":
    main()
