"""
Dart Isolation & Tip Extraction

Diffs the last still frame before a throw against the first still frame
after it. The new dart shows up as a bright blob in the thresholded
difference; its landing point is taken from the blob's outline.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from dartcam.config import DetectionConfig
from dartcam.core.frames import CanonicalFrame, to_gray
from dartcam.core.geometry import CanonicalPoint

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DartIsolation:
    """Outcome of one detection attempt. `tip` is None for NoDetection."""
    contour: Optional[np.ndarray] = None  # (N, 2) int32, canonical px
    area: float = 0.0
    centroid: Optional[Tuple[float, float]] = None
    tip: Optional[CanonicalPoint] = None
    candidates: int = 0

    @property
    def detected(self) -> bool:
        return self.tip is not None


def contour_centroid(contour: np.ndarray) -> Optional[Tuple[float, float]]:
    """Centroid from image moments, None for a zero-area contour."""
    m = cv2.moments(contour.reshape(-1, 1, 2))
    if m["m00"] == 0:
        return None
    return (m["m10"] / m["m00"], m["m01"] / m["m00"])


class CentroidDistanceTip:
    """
    Landing point is the outline point furthest from the blob centroid.

    The shaft and flight pull the centroid back from the tip, so the far
    extremity is the tip end rather than the body.
    """
    name = "centroid_distance"

    def locate(self, contour: np.ndarray) -> Optional[CanonicalPoint]:
        centroid = contour_centroid(contour)
        if centroid is None:
            return None
        points = contour.reshape(-1, 2).astype(np.float64)
        distances_sq = ((points - np.array(centroid)) ** 2).sum(axis=1)
        x, y = points[int(np.argmax(distances_sq))]
        return CanonicalPoint(x=float(x), y=float(y))


class LowestPointTip:
    """Landing point is the lowest outline point on screen (largest y)."""
    name = "lowest_point"

    def locate(self, contour: np.ndarray) -> Optional[CanonicalPoint]:
        points = contour.reshape(-1, 2)
        if len(points) == 0:
            return None
        x, y = points[int(np.argmax(points[:, 1]))]
        return CanonicalPoint(x=float(x), y=float(y))


TIP_LOCATORS = {
    CentroidDistanceTip.name: CentroidDistanceTip,
    LowestPointTip.name: LowestPointTip,
}


def difference_mask(after: CanonicalFrame, before: CanonicalFrame, cutoff: int) -> np.ndarray:
    """Binary mask (0/255) of pixels whose intensity changed by more than cutoff."""
    if after.pixels.shape != before.pixels.shape:
        raise ValueError(
            f"Cannot diff frames of different shapes {after.pixels.shape} and {before.pixels.shape}"
        )
    diff = cv2.absdiff(after.pixels, before.pixels)
    gray = to_gray(diff)
    _, mask = cv2.threshold(gray, cutoff, 255, cv2.THRESH_BINARY)
    return mask


class DartDetector:
    """
    Finds the newly landed dart between two canonical frames.
    """

    def __init__(self, config: Optional[DetectionConfig] = None):
        self.config = config or DetectionConfig()
        self.tip_locator = TIP_LOCATORS[self.config.tip_strategy]()

    def isolate(self, after: CanonicalFrame, before: CanonicalFrame) -> DartIsolation:
        """
        Diff, threshold and segment; pick the largest plausibly sized blob.

        Returns a DartIsolation without a tip when nothing qualifies. That is
        a normal outcome (dart off-frame, too subtle a change), not an error.
        """
        mask = difference_mask(after, before, self.config.diff_intensity_cutoff)
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)

        best: Optional[np.ndarray] = None
        best_area = 0.0
        candidates = 0
        for contour in contours:
            area = cv2.contourArea(contour)
            if not self.config.min_dart_area <= area <= self.config.max_dart_area:
                continue
            candidates += 1
            if area > best_area:
                best_area = area
                best = contour

        if best is None:
            logger.info(f"[DETECT] No dart-sized contour among {len(contours)}")
            return DartIsolation()

        outline = best.reshape(-1, 2)
        tip = self.tip_locator.locate(outline)
        if tip is None:
            logger.info("[DETECT] Could not determine tip from contour")
            return DartIsolation(contour=outline, area=best_area, candidates=candidates)

        logger.info(
            f"[DETECT] Dart contour area={best_area:.0f} ({candidates} candidates), "
            f"tip=({tip.x:.0f}, {tip.y:.0f}) via {self.tip_locator.name}"
        )
        return DartIsolation(
            contour=outline,
            area=best_area,
            centroid=contour_centroid(outline),
            tip=tip,
            candidates=candidates,
        )
