import unittest
from unittest.mock import MagicMock, patch

import pytest
import requests

from brunnel_spans.brunnel import BrunnelType
from brunnel_spans.config import BrunnelsConfig
from brunnel_spans.overpass import (
    MAX_RETRIES,
    OVERPASS_API_URL,
    build_overpass_query,
    find_brunnels,
    parse_brunnels,
    parse_separated_results,
    query_overpass_brunnels,
)

from helpers import equator_route

BBOX = (45.0, 7.0, 45.1, 7.1)


def _way(way_id, lat=45.0, tags=None):
    return {
        "type": "way",
        "id": way_id,
        "tags": tags or {},
        "geometry": [{"lat": lat, "lon": 7.0}, {"lat": lat, "lon": 7.001}],
    }


def _count(total):
    return {"type": "count", "id": 0, "tags": {"total": str(total)}}


class TestBuildOverpassQuery(unittest.TestCase):

    def test_default_filters(self):
        query = build_overpass_query(BBOX, BrunnelsConfig())

        self.assertIn("[out:json][timeout:30][bbox:45.0,7.0,45.1,7.1];", query)
        self.assertIn('way[bridge][!waterway]["bicycle"!="no"](if:!is_closed());', query)
        self.assertIn('way[tunnel][!waterway]["bicycle"!="no"](if:!is_closed());', query)
        self.assertIn('- way[bridge]["railway"~"^(rail|light_rail|', query)
        self.assertIn("way[bridge][highway=cycleway](if:!is_closed());", query)
        self.assertEqual(query.count("out count;"), 2)
        self.assertEqual(query.count("out geom qt;"), 2)

    def test_switches_remove_filters(self):
        config = BrunnelsConfig(
            include_waterways=True,
            include_bicycle_no=True,
            include_active_railways=True,
            timeout=60,
        )
        query = build_overpass_query(BBOX, config)

        self.assertIn("[timeout:60]", query)
        self.assertNotIn("waterway", query)
        self.assertNotIn("bicycle", query)
        self.assertNotIn("railway", query)

    def test_railway_exclusion_repeats_base_filters(self):
        query = build_overpass_query(BBOX, BrunnelsConfig(include_bicycle_no=True))
        self.assertIn('preserved)$"][!waterway](if:!is_closed());', query)


class TestParseResults(unittest.TestCase):

    def test_parse_separated_results(self):
        elements = [_count(2), _way(1), _way(2), _count(1), _way(3)]
        bridges, tunnels = parse_separated_results(elements)
        self.assertEqual([w["id"] for w in bridges], [1, 2])
        self.assertEqual([w["id"] for w in tunnels], [3])

    def test_way_before_count_is_ignored(self):
        with self.assertLogs("brunnel_spans.overpass", level="WARNING"):
            bridges, tunnels = parse_separated_results([_way(1), _count(0), _count(0)])
        self.assertEqual(bridges, [])
        self.assertEqual(tunnels, [])

    def test_parse_brunnels_skips_invalid_and_duplicates(self):
        broken = {"type": "way", "id": 9, "geometry": [{"lat": 45.0, "lon": 7.0}]}
        no_id = {"type": "way", "geometry": _way(0)["geometry"]}

        with self.assertLogs("brunnel_spans.overpass", level="WARNING") as logs:
            brunnels = parse_brunnels([_way(1), broken, _way(1), no_id], [_way(1)])

        self.assertEqual(
            [(b.brunnel_id, b.brunnel_type) for b in brunnels],
            [("1", BrunnelType.BRIDGE), ("1", BrunnelType.TUNNEL)],
        )
        self.assertEqual(len(logs.output), 2)


def _response(status_code=200, elements=None):
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = {"elements": elements or []}
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError(
            f"{status_code} Error", response=response
        )
    else:
        response.raise_for_status.return_value = None
    return response


@patch("brunnel_spans.overpass.time.sleep")
@patch("brunnel_spans.overpass.requests.post")
class TestQueryOverpass(unittest.TestCase):

    def test_successful_query(self, mock_post, mock_sleep):
        mock_post.return_value = _response(elements=[_count(1), _way(1), _count(0)])

        bridges, tunnels = query_overpass_brunnels(BBOX, BrunnelsConfig(timeout=12))

        self.assertEqual(len(bridges), 1)
        self.assertEqual(tunnels, [])
        args, kwargs = mock_post.call_args
        self.assertEqual(args[0], OVERPASS_API_URL)
        self.assertIn("way[bridge]", kwargs["data"]["data"])
        self.assertEqual(kwargs["timeout"], 12)
        mock_sleep.assert_not_called()

    def test_retries_rate_limit_then_succeeds(self, mock_post, mock_sleep):
        mock_post.side_effect = [
            _response(429),
            _response(503),
            _response(elements=[_count(0), _count(1), _way(5)]),
        ]

        bridges, tunnels = query_overpass_brunnels(BBOX, BrunnelsConfig())

        self.assertEqual([w["id"] for w in tunnels], [5])
        self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [2.0, 4.0])

    def test_client_error_is_not_retried(self, mock_post, mock_sleep):
        mock_post.return_value = _response(400)

        with self.assertRaises(requests.exceptions.HTTPError):
            query_overpass_brunnels(BBOX, BrunnelsConfig())
        self.assertEqual(mock_post.call_count, 1)
        mock_sleep.assert_not_called()

    def test_gives_up_after_max_retries(self, mock_post, mock_sleep):
        mock_post.return_value = _response(504)

        with self.assertRaises(requests.exceptions.HTTPError):
            query_overpass_brunnels(BBOX, BrunnelsConfig())
        self.assertEqual(mock_post.call_count, MAX_RETRIES + 1)
        self.assertEqual(mock_sleep.call_count, MAX_RETRIES)


def test_find_brunnels_uses_buffered_bbox():
    route = equator_route()
    config = BrunnelsConfig(query_buffer=50.0)

    with patch(
        "brunnel_spans.overpass.query_overpass_brunnels",
        return_value=([_way(1, lat=0.0)], [_way(2, lat=0.0, tags={"name": "Galleria"})]),
    ) as mock_query:
        brunnels = find_brunnels(route, config)

    bbox, passed_config = mock_query.call_args.args
    assert bbox == route.get_bbox(50.0)
    assert passed_config is config
    assert [b.name for b in brunnels] == ["Bridge", "Galleria"]
    assert brunnels[1].brunnel_type == BrunnelType.TUNNEL
    assert bbox[0] == pytest.approx(-50.0 / 111320)
