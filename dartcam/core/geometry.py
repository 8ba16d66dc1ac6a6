"""
Dartboard Geometry Constants

Standard dartboard dimensions in millimeters, projected onto the canonical
board view: a square of CANONICAL_SIZE pixels with the board centered in it
and the outer edge of the double ring at BOARD_RADIUS_PX.
All radii are measured from the center (bullseye).
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import List, Tuple

# Segment order clockwise from top (20 at 12 o'clock)
DARTBOARD_SEGMENTS: List[int] = [
    20, 1, 18, 4, 13, 6, 10, 15, 2, 17,
    3, 19, 7, 16, 8, 11, 14, 9, 12, 5
]

# Radii in millimeters (standard dartboard)
BULL_RADIUS_MM = 6.35           # Inner bull (50 points)
OUTER_BULL_RADIUS_MM = 15.9     # Outer bull (25 points)
TRIPLE_INNER_RADIUS_MM = 99.0   # Inner edge of triple ring
TRIPLE_OUTER_RADIUS_MM = 107.0  # Outer edge of triple ring
DOUBLE_INNER_RADIUS_MM = 162.0  # Inner edge of double ring
DOUBLE_OUTER_RADIUS_MM = 170.0  # Outer edge of double ring (board edge)

# Canonical (perspective-corrected) view
CANONICAL_SIZE = 500
CANONICAL_CENTER: Tuple[float, float] = (CANONICAL_SIZE / 2, CANONICAL_SIZE / 2)
BOARD_RADIUS_PX = 215.0
PX_PER_MM = BOARD_RADIUS_PX / DOUBLE_OUTER_RADIUS_MM

# Radii in canonical pixels
BULL_RADIUS_PX = BULL_RADIUS_MM * PX_PER_MM
OUTER_BULL_RADIUS_PX = OUTER_BULL_RADIUS_MM * PX_PER_MM
TRIPLE_INNER_RADIUS_PX = TRIPLE_INNER_RADIUS_MM * PX_PER_MM
TRIPLE_OUTER_RADIUS_PX = TRIPLE_OUTER_RADIUS_MM * PX_PER_MM
DOUBLE_INNER_RADIUS_PX = DOUBLE_INNER_RADIUS_MM * PX_PER_MM
DOUBLE_OUTER_RADIUS_PX = BOARD_RADIUS_PX

# Degrees per segment
DEGREES_PER_SEGMENT = 18.0  # 360 / 20

# Angle offset: segment 20 is centered at top (12 o'clock = -90 degrees),
# so its left wire sits half a segment further counter-clockwise.
SEGMENT_ANGLE_OFFSET = -math.pi / 2 - math.radians(DEGREES_PER_SEGMENT / 2)


class Ring(str, Enum):
    """Scoring band a point falls into."""
    SINGLE = "single"
    DOUBLE = "double"
    TRIPLE = "triple"
    OUTER_BULL = "outer_bull"
    INNER_BULL = "inner_bull"
    MISS = "miss"


@dataclass(frozen=True)
class SourceDimensions:
    """Raw source-frame size in pixels."""
    width: int
    height: int

    def to_dict(self) -> dict:
        return {"width": self.width, "height": self.height}


@dataclass(frozen=True)
class ImagePoint:
    """Point in raw source-frame pixel coordinates."""
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class CanonicalPoint:
    """Point in canonical board coordinates, origin top-left."""
    x: float
    y: float

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}


def _on_board_edge(angle_from_top_deg: float) -> CanonicalPoint:
    angle = math.radians(angle_from_top_deg)
    return CanonicalPoint(
        x=CANONICAL_CENTER[0] + BOARD_RADIUS_PX * math.sin(angle),
        y=CANONICAL_CENTER[1] - BOARD_RADIUS_PX * math.cos(angle),
    )


# Calibration targets, in the order the operator clicks them:
# top (D20), right (D6), bottom (D3), left (D11) outer double edges.
CALIBRATION_REFERENCE_POINTS: List[CanonicalPoint] = [
    _on_board_edge(0.0),
    _on_board_edge(90.0),
    _on_board_edge(180.0),
    _on_board_edge(270.0),
]

CALIBRATION_PROMPTS: List[str] = [
    "Click the OUTER MIDDLE of DOUBLE 20 (Top)",
    "Click the OUTER MIDDLE of DOUBLE 6 (Right)",
    "Click the OUTER MIDDLE of DOUBLE 3 (Bottom)",
    "Click the OUTER MIDDLE of DOUBLE 11 (Left)",
]


def get_segment_from_angle(angle_radians: float, rotation_offset: float = 0.0) -> int:
    """
    Get the segment number from an angle (in radians).

    Args:
        angle_radians: Angle from center, where 0 = right (3 o'clock) and
            angles grow clockwise (image y axis points down)
        rotation_offset: Additional rotation in radians

    Returns:
        Segment number (1-20)
    """
    # Adjust for segment offset and any rotation
    adjusted = (angle_radians - SEGMENT_ANGLE_OFFSET + rotation_offset) % (2 * math.pi)

    segment_index = int(math.degrees(adjusted) // DEGREES_PER_SEGMENT) % 20

    return DARTBOARD_SEGMENTS[segment_index]


def get_zone_from_distance(distance_px: float) -> Tuple[Ring, int]:
    """
    Get the ring and multiplier from distance to center.

    Bands are inclusive on both ends. Bulls are checked first, then the
    board edge, then triple before double; whatever remains is a single.

    Args:
        distance_px: Distance from center in canonical pixels

    Returns:
        Tuple of (ring, multiplier)
    """
    if distance_px <= BULL_RADIUS_PX:
        return (Ring.INNER_BULL, 1)
    elif distance_px <= OUTER_BULL_RADIUS_PX:
        return (Ring.OUTER_BULL, 1)
    elif distance_px > DOUBLE_OUTER_RADIUS_PX:
        return (Ring.MISS, 0)
    elif TRIPLE_INNER_RADIUS_PX <= distance_px <= TRIPLE_OUTER_RADIUS_PX:
        return (Ring.TRIPLE, 3)
    elif DOUBLE_INNER_RADIUS_PX <= distance_px <= DOUBLE_OUTER_RADIUS_PX:
        return (Ring.DOUBLE, 2)
    else:
        return (Ring.SINGLE, 1)
