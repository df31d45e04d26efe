import pytest

from brunnel_spans.brunnel import BrunnelType, ExclusionReason, Included, RouteSpan
from brunnel_spans.overlap import (
    average_distance_to_route,
    find_overlap_groups,
    resolve_overlaps,
    spans_overlap,
)

from helpers import east_west_brunnel


def _included(brunnel_id, start, end, offset_m=1.0, brunnel_type=BrunnelType.BRIDGE):
    brunnel = east_west_brunnel(brunnel_id, start, end, offset_m, brunnel_type)
    return Included(brunnel, RouteSpan(start, end))


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((10, 20), (15, 25), True),
        ((10, 20), (5, 15), True),
        ((10, 20), (10, 20), True),
        ((10, 20), (12, 18), True),
        ((10, 20), (25, 30), False),
        ((10, 20), (20, 30), False),  # touching only
        ((10, 20), (0, 10), False),
    ],
)
def test_spans_overlap(a, b, expected):
    assert spans_overlap(RouteSpan(*a), RouteSpan(*b)) is expected
    assert spans_overlap(RouteSpan(*b), RouteSpan(*a)) is expected


def test_find_overlap_groups_scans_in_input_order():
    c = _included("c", 500, 600)
    a = _included("a", 100, 200)
    b = _included("b", 150, 250)
    d = _included("d", 550, 650)

    groups = find_overlap_groups([c, a, b, d])

    assert [[r.brunnel.brunnel_id for r in group] for group in groups] == [
        ["c", "d"],
        ["a", "b"],
    ]


def test_bridging_brunnel_does_not_merge_groups(straight_route):
    a = _included("a", 100, 200, offset_m=1.0)
    b = _included("b", 300, 400, offset_m=2.0)
    c = _included("c", 150, 350, offset_m=2.5)

    groups = find_overlap_groups([a, b, c])
    assert [[r.brunnel.brunnel_id for r in group] for group in groups] == [
        ["a", "c"],
        ["b"],
    ]

    kept, alternatives = resolve_overlaps([a, b, c], straight_route)
    assert [r.brunnel.brunnel_id for r in kept] == ["a", "b"]
    assert [r.brunnel.brunnel_id for r in alternatives] == ["c"]


def test_chained_overlaps_form_one_group():
    groups = find_overlap_groups(
        [_included("a", 100, 200), _included("b", 190, 300), _included("c", 290, 400)]
    )
    assert len(groups) == 1
    assert len(groups[0]) == 3


def test_average_distance_to_route(straight_route):
    brunnel = east_west_brunnel("1", 400, 600, offset_m=2.0)
    assert average_distance_to_route(brunnel, straight_route) == pytest.approx(2.0, rel=1e-6)


def test_nearest_brunnel_is_kept(straight_route):
    near = _included("near", 400, 600, offset_m=2.0)
    far = _included("far", 400, 600, offset_m=5.0)

    kept, alternatives = resolve_overlaps([far, near], straight_route)

    assert kept == [near]
    assert len(alternatives) == 1
    assert alternatives[0].brunnel is far.brunnel
    assert alternatives[0].reason == ExclusionReason.ALTERNATIVE
    assert alternatives[0].route_span == far.route_span


def test_tie_keeps_first_in_scan_order(straight_route):
    # Same geometry, so the average distances are identical
    first = _included("first", 400, 600, offset_m=2.0)
    second = Included(
        east_west_brunnel("second", 400, 600, offset_m=2.0), RouteSpan(450, 600)
    )

    kept, alternatives = resolve_overlaps([first, second], straight_route)

    assert kept == [first]
    assert [r.brunnel.brunnel_id for r in alternatives] == ["second"]


def test_bridges_and_tunnels_compete(straight_route):
    bridge = _included("bridge", 400, 600, offset_m=4.0)
    tunnel = _included("tunnel", 400, 600, offset_m=1.0, brunnel_type=BrunnelType.TUNNEL)

    kept, alternatives = resolve_overlaps([bridge, tunnel], straight_route)

    assert kept == [tunnel]
    assert alternatives[0].brunnel is bridge.brunnel


def test_non_overlapping_brunnels_are_all_kept(straight_route):
    results = [_included("b", 500, 600), _included("a", 100, 200)]
    kept, alternatives = resolve_overlaps(results, straight_route)
    assert [r.brunnel.brunnel_id for r in kept] == ["a", "b"]
    assert alternatives == []
