import io

import pytest

from brunnel_spans.geometry import Position, haversine_distance
from brunnel_spans.route import Route, TrackPoint, calculate_reference_distances

from helpers import METERS_PER_DEGREE, equator_route


def test_route_creation_and_basic_properties():
    """
    Tests Route creation from points, length, indexing, and iteration.
    """
    points = [
        [45.0, 7.0, 200.0, 0.0],
        [45.001, 7.0, 205.0, 112.0],
        [45.002, 7.0, None, 224.0],
    ]
    route = Route.from_points(points)

    assert len(route) == 3
    assert route[0] == TrackPoint(45.0, 7.0, 200.0, 0.0)
    assert route[-1].elevation is None
    assert [tp.distance for tp in route] == [0.0, 112.0, 224.0]
    assert route.coords == [Position(45.0, 7.0), Position(45.001, 7.0), Position(45.002, 7.0)]
    assert route.distances == [0.0, 112.0, 224.0]
    assert route.total_distance == 224.0
    assert list(route.linestring.coords) == [(7.0, 45.0), (7.0, 45.001), (7.0, 45.002)]


def test_great_circle_distances_are_cumulative(straight_route):
    assert straight_route.great_circle_distances == pytest.approx([0, 250, 500, 750, 1000])
    assert straight_route.segment_lengths == pytest.approx([250] * 4)


@pytest.mark.parametrize(
    "points, message",
    [
        ([], "empty"),
        ([[45.0, 7.0, 0.0, 0.0]], "at least two"),
        ([[45.0, 7.0, 0.0, 0.0], [45.001, 7.0, 0.0, 0.0]], "total distance"),
        ([[45.0, 7.0, 0.0, 0.0], [45.001, 7.0, 0.0, float("nan")]], "total distance"),
    ],
)
def test_invalid_routes_raise_value_error(points, message):
    with pytest.raises(ValueError, match=message):
        Route.from_points(points)


def test_point_with_missing_values():
    with pytest.raises(ValueError, match="expected 4"):
        Route.from_points([[45.0, 7.0, 0.0], [45.001, 7.0, 0.0, 100.0]])


def test_polar_route_raises_runtime_error():
    with pytest.raises(RuntimeError, match="latitude"):
        Route.from_points([[85.0, 7.0, 0.0, 0.0], [85.001, 7.0, 0.0, 100.0]])


def test_antimeridian_crossing_raises_runtime_error():
    with pytest.raises(RuntimeError, match="antimeridian"):
        Route.from_points([[0.0, 179.99, 0.0, 0.0], [0.0, -179.99, 0.0, 2000.0]])


def test_get_bbox(straight_route):
    assert straight_route.get_bbox() == pytest.approx((0.0, 0.0, 0.0, 1000 / METERS_PER_DEGREE))

    south, west, north, east = straight_route.get_bbox(111.32)
    assert south == pytest.approx(-0.001)
    assert north == pytest.approx(0.001)
    assert west == pytest.approx(-0.001)
    assert east == pytest.approx(1000 / METERS_PER_DEGREE + 0.001)


class TestGreatCircleToReferenceDistance:
    def test_identity_when_metrics_agree(self, straight_route):
        assert straight_route.great_circle_to_reference_distance(0) == pytest.approx(0)
        assert straight_route.great_circle_to_reference_distance(375) == pytest.approx(375)
        assert straight_route.great_circle_to_reference_distance(1000) == pytest.approx(1000)

    def test_scaled_reference_metric(self):
        route = equator_route(scale=1.1)
        assert route.great_circle_to_reference_distance(500) == pytest.approx(550)
        assert route.great_circle_to_reference_distance(125) == pytest.approx(137.5)

    def test_beyond_end_clamps_to_total(self, straight_route):
        assert straight_route.great_circle_to_reference_distance(1500) == pytest.approx(1000)

    def test_before_start_clamps_to_zero(self, straight_route):
        assert straight_route.great_circle_to_reference_distance(-10) == 0

    def test_repeated_point_is_skipped(self):
        step = 250 / METERS_PER_DEGREE
        route = Route.from_points(
            [
                [0.0, 0.0, 0.0, 0.0],
                [0.0, step, 0.0, 250.0],
                [0.0, step, 0.0, 260.0],
                [0.0, 2 * step, 0.0, 510.0],
            ]
        )
        assert route.great_circle_to_reference_distance(200) == pytest.approx(200)
        assert route.great_circle_to_reference_distance(300) == pytest.approx(310)


class TestReferenceWindow:
    def test_points_inside_window(self, straight_route):
        assert straight_route.reference_window(200, 800) == (1, 3)

    def test_inclusive_bounds(self, straight_route):
        assert straight_route.reference_window(250, 750) == (1, 3)

    def test_widened_when_one_point_inside(self, straight_route):
        assert straight_route.reference_window(450, 550) == (1, 3)

    def test_widened_when_no_point_inside(self, straight_route):
        assert straight_route.reference_window(510, 540) == (2, 3)

    def test_widening_is_clamped(self, straight_route):
        assert straight_route.reference_window(-10, 10) == (0, 1)
        assert straight_route.reference_window(990, 1010) == (3, 4)


GPX_TEXT = """<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" creator="test" xmlns="http://www.topografix.com/GPX/1/1">
  <trk>
    <trkseg>
      <trkpt lat="45.000" lon="7.000"><ele>100</ele></trkpt>
      <trkpt lat="45.001" lon="7.000"><ele>100</ele></trkpt>
    </trkseg>
    <trkseg>
      <trkpt lat="45.002" lon="7.000"><ele>110</ele></trkpt>
    </trkseg>
  </trk>
</gpx>
"""


def test_from_gpx_concatenates_segments():
    route = Route.from_gpx(io.StringIO(GPX_TEXT))

    assert len(route) == 3
    assert route.distances[0] == 0.0
    # Ellipsoidal distances differ slightly from the spherical ones
    spherical = haversine_distance(route.coords[0], route.coords[1])
    assert route.distances[1] == pytest.approx(spherical, rel=0.01)
    assert route.distances[1] != pytest.approx(spherical, rel=1e-6)
    assert route.distances[2] - route.distances[1] > route.distances[1]


def test_from_file(tmp_path):
    gpx_file = tmp_path / "ride.gpx"
    gpx_file.write_text(GPX_TEXT, encoding="utf-8")
    route = Route.from_file(str(gpx_file))
    assert len(route) == 3


def test_calculate_reference_distances_uses_elevation():
    positions = [Position(45.0, 7.0), Position(45.001, 7.0)]
    flat = calculate_reference_distances(positions, [100.0, 100.0])
    climb = calculate_reference_distances(positions, [100.0, 130.0])
    unknown = calculate_reference_distances(positions, [100.0, None])

    assert flat[1] == pytest.approx(111.1, abs=0.5)
    assert climb[1] == pytest.approx((flat[1] ** 2 + 30**2) ** 0.5)
    assert unknown[1] == flat[1]
    assert calculate_reference_distances([], []) == []
