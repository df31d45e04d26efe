import json
from unittest.mock import MagicMock, patch

import pytest

from brunnel_spans.route_data import (
    ROUTE_DATA_URL,
    fetch_route_data,
    find_editable_route,
    find_simple_route,
    get_route_id,
    load_route,
    parse_data_json,
)

SIMPLE_ROUTE = [[45.0, 7.0, 100.0, 0.0], [45.001, 7.0, 101.0, 111.2]]


def editable_data_array():
    """A flattened SvelteKit data array holding a two-point editableRoute."""
    return [
        {"editableRoute": 1, "title": 14},
        [2, 3],
        [4, 5, 6, 7, 8],
        [9, 10, 11, 12, 13],
        45.0,
        7.0,
        100.0,
        0.0,
        100.5,
        45.001,
        7.0,
        101.0,
        111.2,
        101.5,
        "Morning ride",
    ]


def document(*data_arrays):
    return {
        "type": "data",
        "nodes": [{"type": "skip"}]
        + [{"type": "data", "data": data} for data in data_arrays],
    }


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://biketerra.com/routes/new?id=12345", "12345"),
        ("https://biketerra.com/routes/new?foo=1&id=abc", "abc"),
        ("https://biketerra.com/editor/67890", "67890"),
        ("https://biketerra.com/editor/67890/settings", "67890"),
        ("https://biketerra.com/routes", None),
    ],
)
def test_get_route_id(url, expected):
    assert get_route_id(url) == expected


def test_editable_route_is_dereferenced():
    points = find_editable_route(editable_data_array())
    assert points == [[45.0, 7.0, 100.0, 0.0], [45.001, 7.0, 101.0, 111.2]]


def test_simple_route_fallback():
    data = [{"title": 2}, "not a route", "Evening ride", json.dumps(SIMPLE_ROUTE)]
    assert find_editable_route(data) == SIMPLE_ROUTE


def test_simple_route_requires_four_values():
    data = ["[[45.0, 7.0, 100.0]]", "[[broken", json.dumps(SIMPLE_ROUTE)]
    assert find_simple_route(data) == SIMPLE_ROUTE
    assert find_simple_route(["[[45.0, 7.0, 100.0]]"]) is None


def test_editable_route_that_is_not_an_array_falls_back():
    data = [{"editableRoute": 1}, "oops", json.dumps(SIMPLE_ROUTE)]
    assert find_editable_route(data) == SIMPLE_ROUTE


def test_parse_data_json_prefers_largest_node():
    small = ["x", json.dumps([[1.0, 2.0, 3.0, 4.0], [1.0, 2.0, 3.0, 5.0]])]
    points = parse_data_json(document(small, editable_data_array()))
    assert points[0] == [45.0, 7.0, 100.0, 0.0]


def test_parse_data_json_errors():
    with pytest.raises(ValueError, match="nodes"):
        parse_data_json({"type": "data"})
    with pytest.raises(ValueError, match="Could not find route data"):
        parse_data_json(document(["nothing", 1, 2]))


def test_load_route(tmp_path):
    path = tmp_path / "__data.json"
    path.write_text(json.dumps(document(editable_data_array())), encoding="utf-8")

    route = load_route(str(path))

    assert len(route) == 2
    assert route.total_distance == 111.2
    assert route[0].elevation == 100.0


def test_fetch_route_data():
    session = MagicMock()
    session.get.return_value.json.return_value = document(editable_data_array())

    points = fetch_route_data("12345", timeout=5, session=session)

    assert len(points) == 2
    session.get.assert_called_once_with(
        ROUTE_DATA_URL, params={"id": "12345"}, timeout=5
    )
    session.get.return_value.raise_for_status.assert_called_once()


@patch("brunnel_spans.route_data.requests.Session")
def test_fetch_route_data_closes_its_own_session(mock_session_cls):
    http = mock_session_cls.return_value.__enter__.return_value
    http.get.return_value.json.return_value = document(editable_data_array())

    points = fetch_route_data("12345", timeout=5)

    assert len(points) == 2
    http.get.assert_called_once_with(ROUTE_DATA_URL, params={"id": "12345"}, timeout=5)
    mock_session_cls.return_value.__exit__.assert_called_once()
