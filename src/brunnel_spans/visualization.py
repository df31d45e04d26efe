#!/usr/bin/env python3
"""
Route visualization using folium maps.
"""

from typing import Any, Optional, Sequence
import logging
import folium
from folium.template import Template

from .brunnel import (
    Brunnel,
    BrunnelType,
    Excluded,
    ExclusionReason,
    MatchResult,
    RouteSpan,
)
from .metrics import BrunnelMetrics
from .route import Route

logger = logging.getLogger(__name__)

# (included, alternative) colors per type
BRUNNEL_COLORS = {
    BrunnelType.BRIDGE: ("#D23C4C", "#DF94A7"),
    BrunnelType.TUNNEL: ("#69498F", "#B495C2"),
}
ROUTE_COLOR = "#2E86AB"


class BrunnelLegend(folium.MacroElement):
    """Custom legend for brunnel visualization with dynamic counts."""

    def __init__(self, metrics: BrunnelMetrics):
        super().__init__()
        self.included_bridge_count = metrics.bridge_counts.get("included", 0)
        self.included_tunnel_count = metrics.tunnel_counts.get("included", 0)
        self.alternative_bridge_count = metrics.bridge_counts.get(
            ExclusionReason.ALTERNATIVE.value, 0
        )
        self.alternative_tunnel_count = metrics.tunnel_counts.get(
            ExclusionReason.ALTERNATIVE.value, 0
        )

        self._template = Template(
            """
        {% macro html(this, kwargs) %}
        <div id="brunnel-legend" style="
            position: fixed;
            bottom: 50px;
            left: 50px;
            width: 230px;
            min-height: 90px;
            background-color: white;
            border: 2px solid grey;
            z-index: 9999;
            font-size: 13px;
            padding: 12px;
            font-family: Arial, sans-serif;
            border-radius: 5px;
            box-shadow: 0 2px 5px rgba(0,0,0,0.2);
            box-sizing: border-box;
        ">
            <b>Legend</b><br>
            <div style="margin: 4px 0; line-height: 1.3;">
                <span style="color: #2E86AB; font-size: 18px;">&#9472;</span>
                Route
            </div>
            <div style="margin: 4px 0; line-height: 1.3;">
                <span style="color: #D23C4C; font-weight: bold; font-size: 18px;">&#9472;</span>
                Included Bridges ({{ this.included_bridge_count }})
            </div>
            <div style="margin: 4px 0; line-height: 1.3;">
                <span style="color: #69498F; font-weight: bold; font-size: 18px;">&#9472;</span>
                Included Tunnels ({{ this.included_tunnel_count }})
            </div>
            {% if this.alternative_bridge_count > 0 %}
            <div style="margin: 4px 0; line-height: 1.3;">
                <span style="color: #DF94A7; font-weight: bold; font-size: 18px;">&#9472;</span>
                Alternative Bridges ({{ this.alternative_bridge_count }})
            </div>
            {% endif %}
            {% if this.alternative_tunnel_count > 0 %}
            <div style="margin: 4px 0; line-height: 1.3;">
                <span style="color: #B495C2; font-weight: bold; font-size: 18px;">&#9472;</span>
                Alternative Tunnels ({{ this.alternative_tunnel_count }})
            </div>
            {% endif %}
        </div>
        {% endmacro %}
        """
        )


def format_complex_value(key: str, value: Any, indent_level: int = 0) -> str:
    """
    Format nested dicts and lists into indented HTML lines.

    Args:
        key: The key name
        value: The value to format
        indent_level: Current indentation level

    Returns:
        Formatted HTML string
    """
    indent = "&nbsp;" * (indent_level * 4)

    if isinstance(value, dict):
        items = list(value.items())
    elif isinstance(value, list):
        items = [(f"[{i}]", item) for i, item in enumerate(value)]
    else:
        return f"{indent}<i>{key}:</i> {value}"

    if not items:
        empty = "{}" if isinstance(value, dict) else "[]"
        return f"{indent}<i>{key}:</i> {empty}"

    parts = [f"{indent}<i>{key}:</i>"]
    for k, v in items:
        parts.append(format_complex_value(k, v, indent_level + 1))
    return "<br>".join(parts)


def brunnel_to_html(brunnel: Brunnel) -> str:
    """
    Format a brunnel's tags into HTML for popup display.

    Args:
        brunnel: The Brunnel object to format

    Returns:
        HTML-formatted string with metadata
    """
    html_parts = [f"<b>{brunnel.name}</b>"]

    tags = brunnel.tags
    if "alt_name" in tags:
        html_parts.append(f"<br><b>AKA:</b> {tags['alt_name']}")

    html_parts.append(f"<br><b>OSM ID:</b> {brunnel.brunnel_id}")

    remaining_tags = {k: v for k, v in tags.items() if k not in ["name", "alt_name"]}
    if remaining_tags:
        html_parts.append("<br><b>Tags:</b>")
        for key, value in sorted(remaining_tags.items()):
            # Tags that are filtered out of the default query
            highlight = (
                key == "bicycle"
                and value == "no"
                or key == "waterway"
                or key == "railway"
                and value != "abandoned"
            )
            prefix = "<span style='color: red;'>" if highlight else ""
            suffix = "</span>" if highlight else ""
            html_parts.append(f"<br>&nbsp;&nbsp;{prefix}<i>{key}:</i> {value}{suffix}")

    if brunnel.nodes:
        html_parts.append("<br>" + format_complex_value("nodes", brunnel.nodes, 1))

    return "".join(html_parts)


def _span_status(route_span: Optional[RouteSpan]) -> str:
    if route_span is None:
        return "no route span"
    return (
        f"{route_span.start_distance / 1000:.2f} - {route_span.end_distance / 1000:.2f} km; "
        f"length: {route_span.length / 1000:.2f} km"
    )


def create_route_map(
    route: Route,
    output_filename: str,
    results: Sequence[MatchResult],
    metrics: BrunnelMetrics,
    query_buffer: float = 10.0,
) -> None:
    """
    Create an interactive map showing the route and matched bridges/tunnels, save as HTML.

    Included brunnels are drawn in full color, overlap alternatives in a lighter
    shade; other exclusions are not drawn.

    Args:
        route: Route object representing the route
        output_filename: Path where HTML map file should be saved
        results: Final outcome per candidate brunnel
        metrics: BrunnelMetrics containing pre-collected metrics
        query_buffer: Buffer in meters around the route for the map bounds
    """
    south, west, north, east = route.get_bbox(query_buffer)

    center_lat = (south + north) / 2
    center_lon = (west + east) / 2

    logger.debug(f"Creating map centered at ({center_lat:.4f}, {center_lon:.4f})")

    route_map = folium.Map(
        location=[center_lat, center_lon],
        tiles=None,
    )

    folium.TileLayer(
        tiles="CartoDB positron",
        attr=(
            "&copy; <a href='https://www.openstreetmap.org/copyright'>OpenStreetMap</a> "
            "contributors &copy; <a href='https://carto.com/attributions'>CARTO</a>"
        ),
        name="Standard",
        control=True,
        show=True,
    ).add_to(route_map)

    folium.TileLayer(
        tiles="https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}",
        attr=(
            "Tiles &copy; Esri &mdash; Source: Esri, i-cubed, USDA, USGS, AEX, GeoEye, "
            "Getmapping, Aerogrid, IGN, IGP, UPR-EGP, and the GIS User Community"
        ),
        name="Satellite",
        control=True,
        show=False,
    ).add_to(route_map)

    folium.LayerControl().add_to(route_map)

    coordinates = [[pos.latitude, pos.longitude] for pos in route.coords]
    folium.PolyLine(
        coordinates,
        color=ROUTE_COLOR,
        weight=2,
        opacity=0.6,
        popup="Route",
        z_index=1,
    ).add_to(route_map)

    folium.Marker(
        [route[0].latitude, route[0].longitude],
        popup="Start",
        icon=folium.Icon(color="green", icon="play"),
    ).add_to(route_map)

    folium.Marker(
        [route[-1].latitude, route[-1].longitude],
        popup="End",
        icon=folium.Icon(color="red", icon="stop"),
    ).add_to(route_map)

    drawn = 0
    for result in results:
        brunnel = result.brunnel
        is_alternative = (
            isinstance(result, Excluded)
            and result.reason == ExclusionReason.ALTERNATIVE
        )
        if isinstance(result, Excluded) and not is_alternative:
            continue

        included_color, alternative_color = BRUNNEL_COLORS[brunnel.brunnel_type]
        if is_alternative:
            color, weight, opacity = alternative_color, 3, 0.6
            status = "alternative among overlapping brunnels"
        else:
            color, weight, opacity = included_color, 4, 0.9
            status = _span_status(result.route_span)

        popup_text = f"<b>{brunnel.brunnel_type}</b> ({status})<br>" + brunnel_to_html(
            brunnel
        )

        folium.PolyLine(
            [[pos.latitude, pos.longitude] for pos in brunnel.coords],
            color=color,
            weight=weight,
            opacity=opacity,
            popup=folium.Popup(popup_text, max_width=400),
            z_index=2,
        ).add_to(route_map)
        drawn += 1

    route_map.add_child(BrunnelLegend(metrics))

    route_map.fit_bounds([[south, west], [north, east]])
    route_map.save(output_filename)

    logger.debug(f"Map saved to {output_filename} with {drawn} brunnels drawn")
