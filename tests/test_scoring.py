"""
Tests for canonical point scoring.
"""
import math

import pytest

from dartcam.core.geometry import (
    BOARD_RADIUS_PX,
    BULL_RADIUS_PX,
    CANONICAL_CENTER,
    DARTBOARD_SEGMENTS,
    DEGREES_PER_SEGMENT,
    DOUBLE_INNER_RADIUS_PX,
    OUTER_BULL_RADIUS_PX,
    TRIPLE_INNER_RADIUS_PX,
    TRIPLE_OUTER_RADIUS_PX,
    CanonicalPoint,
    Ring,
    get_segment_from_angle,
    get_zone_from_distance,
)
from dartcam.core.scoring import score_point, scoring_system

CX, CY = CANONICAL_CENTER


def at(radius: float, degrees_from_top: float = 0.0) -> CanonicalPoint:
    """Point at a distance from the bull, measured clockwise from 12 o'clock."""
    angle = math.radians(degrees_from_top)
    return CanonicalPoint(CX + radius * math.sin(angle), CY - radius * math.cos(angle))


def test_center_is_inner_bull():
    result = score_point(CanonicalPoint(CX, CY))
    assert result.ring == Ring.INNER_BULL
    assert result.score == 50
    assert result.segment == 25
    assert result.multiplier == 2


def test_band_edges_are_inclusive():
    assert get_zone_from_distance(BULL_RADIUS_PX) == (Ring.INNER_BULL, 1)
    assert get_zone_from_distance(OUTER_BULL_RADIUS_PX) == (Ring.OUTER_BULL, 1)
    assert get_zone_from_distance(TRIPLE_INNER_RADIUS_PX) == (Ring.TRIPLE, 3)
    assert get_zone_from_distance(TRIPLE_OUTER_RADIUS_PX) == (Ring.TRIPLE, 3)
    assert get_zone_from_distance(DOUBLE_INNER_RADIUS_PX) == (Ring.DOUBLE, 2)
    assert get_zone_from_distance(BOARD_RADIUS_PX) == (Ring.DOUBLE, 2)


def test_inner_bull_edge():
    assert score_point(at(BULL_RADIUS_PX - 0.01)).ring == Ring.INNER_BULL
    assert score_point(at(BULL_RADIUS_PX + 0.01)).ring == Ring.OUTER_BULL


def test_outer_bull():
    result = score_point(at((BULL_RADIUS_PX + OUTER_BULL_RADIUS_PX) / 2, 45))
    assert result.ring == Ring.OUTER_BULL
    assert result.score == 25
    assert result.segment == 25


@pytest.mark.parametrize("radius,ring,multiplier", [
    (OUTER_BULL_RADIUS_PX + 1, Ring.SINGLE, 1),
    (TRIPLE_INNER_RADIUS_PX + 0.01, Ring.TRIPLE, 3),
    (TRIPLE_OUTER_RADIUS_PX - 0.01, Ring.TRIPLE, 3),
    (TRIPLE_OUTER_RADIUS_PX + 1, Ring.SINGLE, 1),
    (DOUBLE_INNER_RADIUS_PX + 0.01, Ring.DOUBLE, 2),
    (BOARD_RADIUS_PX - 0.01, Ring.DOUBLE, 2),
])
def test_ring_bands_at_segment_20(radius, ring, multiplier):
    result = score_point(at(radius))
    assert result.ring == ring
    assert result.segment == 20
    assert result.multiplier == multiplier
    assert result.score == 20 * multiplier


def test_just_outside_board_is_miss():
    result = score_point(at(BOARD_RADIUS_PX + 1, 123))
    assert result.ring == Ring.MISS
    assert result.score == 0
    assert result.segment == 0
    assert result.multiplier == 0


def test_every_segment_center_single_and_triple():
    single_radius = (TRIPLE_OUTER_RADIUS_PX + DOUBLE_INNER_RADIUS_PX) / 2
    triple_radius = (TRIPLE_INNER_RADIUS_PX + TRIPLE_OUTER_RADIUS_PX) / 2
    for index, segment in enumerate(DARTBOARD_SEGMENTS):
        degrees = index * DEGREES_PER_SEGMENT

        single = score_point(at(single_radius, degrees))
        assert (single.segment, single.ring, single.score) == (segment, Ring.SINGLE, segment)

        triple = score_point(at(triple_radius, degrees))
        assert (triple.segment, triple.ring, triple.score) == (segment, Ring.TRIPLE, segment * 3)


def test_compass_points():
    assert get_segment_from_angle(-math.pi / 2) == 20
    assert get_segment_from_angle(0.0) == 6
    assert get_segment_from_angle(math.pi / 2) == 3
    assert get_segment_from_angle(math.pi) == 11


def test_segment_wire_goes_clockwise():
    # Half a segment either side of the top wire between 20 and 1
    assert score_point(at(150, 8.9)).segment == 20
    assert score_point(at(150, 9.1)).segment == 1


def test_scoring_is_deterministic():
    point = CanonicalPoint(301.7, 122.4)
    assert score_point(point) == score_point(point)
    assert scoring_system.score_from_canonical_coords(301.7, 122.4) == score_point(point)


def test_zone_from_distance():
    assert get_zone_from_distance(0.0) == (Ring.INNER_BULL, 1)
    assert get_zone_from_distance(BOARD_RADIUS_PX + 0.5) == (Ring.MISS, 0)


def test_result_serialization():
    data = score_point(at(TRIPLE_INNER_RADIUS_PX + 1)).to_dict()
    assert data["ring"] == "triple"
    assert data["score"] == 60
    assert set(data) == {"score", "ring", "segment", "multiplier", "confidence", "x", "y"}
