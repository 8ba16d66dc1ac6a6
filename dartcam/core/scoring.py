"""
Scoring module for dart detection.

Converts a landing point in canonical board coordinates into a score.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, Tuple

from dartcam.core.geometry import (
    CANONICAL_CENTER,
    CanonicalPoint,
    Ring,
    get_segment_from_angle,
    get_zone_from_distance,
)


@dataclass(frozen=True)
class DetectionResult:
    """Score for one landed dart."""
    score: int
    ring: Ring
    point: CanonicalPoint
    segment: int  # 1-20, 25 for bulls, 0 for a miss
    multiplier: int
    confidence: float = 1.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "ring": self.ring.value,
            "segment": self.segment,
            "multiplier": self.multiplier,
            "confidence": self.confidence,
            "x": self.point.x,
            "y": self.point.y,
        }


def score_point(point: CanonicalPoint, center: Tuple[float, float] = CANONICAL_CENTER) -> DetectionResult:
    """
    Calculate the complete score for a dart landing point.

    Args:
        point: Landing point in canonical board coordinates
        center: Board center in canonical coordinates

    Returns:
        DetectionResult with score, ring, segment and multiplier
    """
    dx = point.x - center[0]
    dy = point.y - center[1]
    distance = math.hypot(dx, dy)

    ring, multiplier = get_zone_from_distance(distance)

    # Bulls don't have segments
    if ring == Ring.INNER_BULL:
        return DetectionResult(score=50, ring=ring, point=point, segment=25, multiplier=2)
    if ring == Ring.OUTER_BULL:
        return DetectionResult(score=25, ring=ring, point=point, segment=25, multiplier=1)
    if ring == Ring.MISS:
        return DetectionResult(score=0, ring=ring, point=point, segment=0, multiplier=0)

    segment = get_segment_from_angle(math.atan2(dy, dx))
    return DetectionResult(
        score=segment * multiplier,
        ring=ring,
        point=point,
        segment=segment,
        multiplier=multiplier,
    )


class ScoringSystem:
    """
    Calculate dart scores from positions in canonical board space.
    """

    def __init__(self, center: Tuple[float, float] = CANONICAL_CENTER):
        self.center = center

    def score_from_canonical_coords(self, x: float, y: float) -> DetectionResult:
        """Score a point given as bare canonical coordinates."""
        return score_point(CanonicalPoint(x=float(x), y=float(y)), self.center)


# Global instance
scoring_system = ScoringSystem()
