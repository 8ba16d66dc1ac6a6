"""
Rectification Stage

Warps raw camera frames into the canonical board view using the active
calibration homography.
"""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import cv2

from dartcam.core.calibration import CalibrationRecord
from dartcam.core.frames import CanonicalFrame, RawFrame
from dartcam.core.geometry import CANONICAL_SIZE

logger = logging.getLogger(__name__)


class RectificationStatus(str, Enum):
    RECTIFIED = "rectified"
    UNCALIBRATED = "uncalibrated"
    DIMENSION_MISMATCH = "dimension_mismatch"


class RectificationError(RuntimeError):
    """The warp itself failed, e.g. because of a malformed matrix."""


@dataclass(frozen=True)
class RectificationResult:
    status: RectificationStatus
    frame: Optional[CanonicalFrame] = None

    @property
    def uncalibrated(self) -> bool:
        """True when the caller must fall back to the raw frame."""
        return self.status != RectificationStatus.RECTIFIED

    @property
    def invalidates_calibration(self) -> bool:
        return self.status == RectificationStatus.DIMENSION_MISMATCH


class Rectifier:
    """Applies a CalibrationRecord to raw frames."""

    def __init__(self, output_size: int = CANONICAL_SIZE):
        self.output_size = output_size

    def rectify(self, frame: RawFrame, record: Optional[CalibrationRecord]) -> RectificationResult:
        """
        Warp a raw frame into canonical space.

        Returns UNCALIBRATED when there is no record and DIMENSION_MISMATCH
        when the record was made for a different frame size; in both cases no
        canonical frame is produced.

        Raises:
            RectificationError: OpenCV rejected the warp
        """
        if record is None:
            return RectificationResult(RectificationStatus.UNCALIBRATED)

        if not record.matches(frame.dimensions):
            logger.warning(
                f"[RECTIFY] Frame is {frame.width}x{frame.height} but calibration was for "
                f"{record.source_dimensions.width}x{record.source_dimensions.height}. Recalibration needed."
            )
            return RectificationResult(RectificationStatus.DIMENSION_MISMATCH)

        try:
            warped = cv2.warpPerspective(
                frame.pixels,
                record.matrix,
                (self.output_size, self.output_size),
                flags=cv2.INTER_LINEAR,
                borderMode=cv2.BORDER_CONSTANT,
                borderValue=0,
            )
        except (cv2.error, ValueError) as e:
            raise RectificationError(f"Perspective warp failed: {e}") from e

        return RectificationResult(RectificationStatus.RECTIFIED, CanonicalFrame(warped))
