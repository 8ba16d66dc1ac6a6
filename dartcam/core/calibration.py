"""
Dartboard Calibration Module

The operator clicks the outer edge of the double ring at four fixed places on
a raw camera frame (top, right, bottom, left). Those clicks and the matching
canonical reference points give a planar homography that maps the camera view
onto the head-on canonical board.

A CalibrationRecord is only valid for frames with exactly the source
dimensions it was computed for.
"""
import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from dartcam.core.geometry import (
    CALIBRATION_PROMPTS,
    CALIBRATION_REFERENCE_POINTS,
    CanonicalPoint,
    ImagePoint,
    SourceDimensions,
)
from dartcam.core.storage import CALIBRATION_KEY, CalibrationStore

logger = logging.getLogger(__name__)

CALIBRATION_POINTS_REQUIRED = 4

# Reprojection error allowed when checking a solved homography, in canonical px
MAX_REPROJECTION_ERROR_PX = 1.0
RANSAC_REPROJECTION_THRESHOLD = 3.0

# Smallest triangle area (px^2) any three clicks may span
MIN_TRIANGLE_AREA_PX = 1.0


class CalibrationFailed(Exception):
    """The four clicked points did not give a usable homography."""


@dataclass(frozen=True)
class CalibrationRecord:
    """Clicked points, their canonical targets and the homography between them."""
    image_points: Tuple[ImagePoint, ...]
    world_points: Tuple[CanonicalPoint, ...]
    homography: Tuple[float, ...]  # 3x3, row-major
    source_dimensions: SourceDimensions

    @property
    def matrix(self) -> np.ndarray:
        return np.array(self.homography, dtype=np.float64).reshape(3, 3)

    def matches(self, dimensions: SourceDimensions) -> bool:
        return self.source_dimensions == dimensions

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imagePoints": [p.to_dict() for p in self.image_points],
            "worldPoints": [p.to_dict() for p in self.world_points],
            "homographyMatrix": list(self.homography),
            "sourceDimensions": self.source_dimensions.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Any) -> "CalibrationRecord":
        """
        Rebuild a record from its serialized form.

        Raises:
            ValueError: if the document does not have 4 image points, 4 world
                points, a 9-element matrix and source dimensions.
        """
        try:
            image_points = tuple(ImagePoint(float(p["x"]), float(p["y"])) for p in data["imagePoints"])
            world_points = tuple(CanonicalPoint(float(p["x"]), float(p["y"])) for p in data["worldPoints"])
            homography = tuple(float(v) for v in data["homographyMatrix"])
            dims = data["sourceDimensions"]
            source_dimensions = SourceDimensions(int(dims["width"]), int(dims["height"]))
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"Malformed calibration record: {e}") from e

        if len(image_points) != CALIBRATION_POINTS_REQUIRED or len(world_points) != CALIBRATION_POINTS_REQUIRED:
            raise ValueError("Calibration record needs exactly 4 image and 4 world points")
        if len(homography) != 9 or not all(math.isfinite(v) for v in homography):
            raise ValueError("Calibration record needs a finite 9-element homography")
        if source_dimensions.width <= 0 or source_dimensions.height <= 0:
            raise ValueError("Calibration record has empty source dimensions")

        return cls(
            image_points=image_points,
            world_points=world_points,
            homography=homography,
            source_dimensions=source_dimensions,
        )


def _triangle_area(a: ImagePoint, b: ImagePoint, c: ImagePoint) -> float:
    return abs((b.x - a.x) * (c.y - a.y) - (c.x - a.x) * (b.y - a.y)) / 2.0


def compute_homography(
    image_points: Sequence[ImagePoint],
    world_points: Sequence[CanonicalPoint],
) -> np.ndarray:
    """
    Solve the 3x3 projective transform mapping image_points onto world_points.

    Uses RANSAC so collinear or inconsistent clicks are rejected rather than
    fitted, then checks that every click reprojects onto its target.

    Raises:
        CalibrationFailed: degenerate point layout or singular solution
    """
    if len(image_points) != CALIBRATION_POINTS_REQUIRED or len(world_points) != CALIBRATION_POINTS_REQUIRED:
        raise CalibrationFailed(f"Need exactly {CALIBRATION_POINTS_REQUIRED} point pairs")

    for i in range(CALIBRATION_POINTS_REQUIRED):
        others = [p for j, p in enumerate(image_points) if j != i]
        if _triangle_area(*others) < MIN_TRIANGLE_AREA_PX:
            raise CalibrationFailed("Three of the clicked points are (nearly) collinear")

    src = np.array([[p.x, p.y] for p in image_points], dtype=np.float32).reshape(-1, 1, 2)
    dst = np.array([[p.x, p.y] for p in world_points], dtype=np.float32).reshape(-1, 1, 2)

    try:
        homography, _ = cv2.findHomography(src, dst, cv2.RANSAC, RANSAC_REPROJECTION_THRESHOLD)
    except cv2.error as e:
        raise CalibrationFailed(f"Homography solve failed: {e}") from e

    if homography is None or homography.shape != (3, 3) or not np.all(np.isfinite(homography)):
        raise CalibrationFailed("Could not calculate perspective from the clicked points")
    if abs(np.linalg.det(homography)) < 1e-12:
        raise CalibrationFailed("Homography is singular")

    projected = cv2.perspectiveTransform(src.astype(np.float64), homography).reshape(-1, 2)
    error = float(np.max(np.linalg.norm(projected - dst.reshape(-1, 2), axis=1)))
    if error > MAX_REPROJECTION_ERROR_PX:
        raise CalibrationFailed(f"Clicked points are inconsistent (reprojection error {error:.2f}px)")

    return homography


def scale_display_point(
    x: float,
    y: float,
    display_width: float,
    display_height: float,
    source_dimensions: SourceDimensions,
) -> ImagePoint:
    """Map a click on a scaled display of the frame back to source pixels."""
    if display_width <= 0 or display_height <= 0:
        raise ValueError("Display size must be positive")
    return ImagePoint(
        x=x * source_dimensions.width / display_width,
        y=y * source_dimensions.height / display_height,
    )


@dataclass(frozen=True)
class PointSubmission:
    """What happened to one submitted calibration click."""
    accepted: bool
    points_collected: int
    record: Optional[CalibrationRecord] = None


class CalibrationEngine:
    """
    Collects the operator's four clicks and owns the active CalibrationRecord.
    """

    def __init__(
        self,
        store: CalibrationStore,
        reference_points: Sequence[CanonicalPoint] = CALIBRATION_REFERENCE_POINTS,
    ):
        self.store = store
        self.reference_points = tuple(reference_points)
        self.record: Optional[CalibrationRecord] = None
        self._points: List[ImagePoint] = []
        self._collecting = False
        self._source_dimensions: Optional[SourceDimensions] = None

    @property
    def collecting(self) -> bool:
        return self._collecting

    @property
    def points(self) -> Tuple[ImagePoint, ...]:
        return tuple(self._points)

    @property
    def next_prompt(self) -> Optional[str]:
        if not self._collecting or len(self._points) >= CALIBRATION_POINTS_REQUIRED:
            return None
        return CALIBRATION_PROMPTS[len(self._points)]

    def begin_calibration(self, source_dimensions: Optional[SourceDimensions] = None) -> None:
        """Clear any in-progress clicks and start collecting."""
        self._points = []
        self._collecting = True
        self._source_dimensions = source_dimensions
        logger.info("[CALIBRATE] Calibration started")

    def submit_point(
        self,
        point: ImagePoint,
        source_dimensions: Optional[SourceDimensions] = None,
    ) -> PointSubmission:
        """
        Add one click. The fourth click triggers the homography solve.

        Raises:
            CalibrationFailed: the solve or the write to storage failed; the clicks are discarded and
                the engine keeps collecting. Any existing record is untouched.
        """
        if not self._collecting or len(self._points) >= CALIBRATION_POINTS_REQUIRED:
            return PointSubmission(accepted=False, points_collected=len(self._points))

        if source_dimensions is not None:
            self._source_dimensions = source_dimensions

        self._points.append(point)
        logger.info(f"[CALIBRATE] Point {len(self._points)} at ({point.x:.1f}, {point.y:.1f})")

        if len(self._points) < CALIBRATION_POINTS_REQUIRED:
            return PointSubmission(accepted=True, points_collected=len(self._points))

        points, self._points = self._points, []
        if self._source_dimensions is None:
            raise CalibrationFailed("Source frame dimensions are unknown; wait for a frame")

        try:
            homography = compute_homography(points, self.reference_points)
        except CalibrationFailed as e:
            logger.warning(f"[CALIBRATE] Solve failed: {e}")
            raise

        record = CalibrationRecord(
            image_points=tuple(points),
            world_points=self.reference_points,
            homography=tuple(float(v) for v in homography.flatten()),
            source_dimensions=self._source_dimensions,
        )
        try:
            self.store.save(CALIBRATION_KEY, record.to_dict())
        except OSError as e:
            logger.error(f"[CALIBRATE] Could not store calibration: {e}")
            raise CalibrationFailed(f"Could not store calibration: {e}") from e

        self.record = record
        self._collecting = False
        logger.info(f"[CALIBRATE] Homography stored for {record.source_dimensions.width}x{record.source_dimensions.height}")

        return PointSubmission(accepted=True, points_collected=CALIBRATION_POINTS_REQUIRED, record=record)

    def cancel_calibration(self) -> None:
        """Discard in-progress clicks. The active record is kept."""
        self._points = []
        self._collecting = False
        logger.info("[CALIBRATE] Calibration cancelled")

    def reset(self) -> None:
        """Invalidate and delete the stored record."""
        self.record = None
        self._points = []
        self._collecting = False
        self.store.delete(CALIBRATION_KEY)
        logger.info("[CALIBRATE] Calibration reset")

    def load_persisted(self) -> Optional[CalibrationRecord]:
        """Restore a stored record, dropping it if it is structurally invalid."""
        data = self.store.get(CALIBRATION_KEY)
        if data is None:
            return None
        try:
            self.record = CalibrationRecord.from_dict(data)
        except ValueError as e:
            logger.info(f"[CALIBRATE] Discarding stored calibration: {e}")
            self.store.delete(CALIBRATION_KEY)
            return None
        logger.info("[CALIBRATE] Loaded calibration from storage")
        return self.record
