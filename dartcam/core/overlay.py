"""
Viewer frame rendering.

Produces the image an operator sees: the raw feed while uncalibrated or
calibrating, the canonical board with the last detection drawn on it once
calibrated.
"""
from typing import Optional, Sequence

import cv2
import numpy as np

from dartcam.core.detection import DartIsolation
from dartcam.core.frames import CanonicalFrame, RawFrame
from dartcam.core.geometry import (
    BULL_RADIUS_PX,
    CANONICAL_CENTER,
    DOUBLE_INNER_RADIUS_PX,
    DOUBLE_OUTER_RADIUS_PX,
    OUTER_BULL_RADIUS_PX,
    TRIPLE_INNER_RADIUS_PX,
    TRIPLE_OUTER_RADIUS_PX,
    ImagePoint,
)

# BGR
YELLOW = (0, 255, 255)
MAGENTA = (255, 0, 255)
LIME = (0, 255, 0)
CYAN = (255, 255, 0)
BLACK = (0, 0, 0)
RING_COLOR = (90, 90, 90)


def _as_bgr(pixels: np.ndarray) -> np.ndarray:
    if pixels.ndim == 2:
        return cv2.cvtColor(pixels, cv2.COLOR_GRAY2BGR)
    if pixels.shape[2] == 4:
        return cv2.cvtColor(pixels, cv2.COLOR_BGRA2BGR)
    return pixels.copy()


def render_uncalibrated(frame: RawFrame) -> np.ndarray:
    """Raw feed with a 'Calibration Needed' banner."""
    image = _as_bgr(frame.pixels)
    text = "Calibration Needed"
    (tw, _), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, 0.6, 2)
    cv2.putText(image, text, ((image.shape[1] - tw) // 2, 30),
                cv2.FONT_HERSHEY_SIMPLEX, 0.6, YELLOW, 2, cv2.LINE_AA)
    return image


def render_calibrating(frame: RawFrame, points: Sequence[ImagePoint], prompt: Optional[str]) -> np.ndarray:
    """Raw feed with numbered calibration clicks and the next prompt."""
    image = _as_bgr(frame.pixels)
    for index, p in enumerate(points):
        center = (int(round(p.x)), int(round(p.y)))
        cv2.circle(image, center, 5, YELLOW, -1)
        cv2.putText(image, str(index + 1), (center[0] + 7, center[1] + 3),
                    cv2.FONT_HERSHEY_SIMPLEX, 0.5, BLACK, 1, cv2.LINE_AA)
    if prompt:
        cv2.rectangle(image, (0, 0), (image.shape[1], 28), BLACK, -1)
        cv2.putText(image, prompt, (8, 19), cv2.FONT_HERSHEY_SIMPLEX, 0.5, YELLOW, 1, cv2.LINE_AA)
    return image


def render_canonical(
    frame: CanonicalFrame,
    isolation: Optional[DartIsolation] = None,
    draw_rings: bool = True,
) -> np.ndarray:
    """Canonical board with scoring rings and the last detected contour, centroid and tip."""
    image = _as_bgr(frame.pixels)
    center = (int(CANONICAL_CENTER[0]), int(CANONICAL_CENTER[1]))

    if draw_rings:
        for radius in (BULL_RADIUS_PX, OUTER_BULL_RADIUS_PX, TRIPLE_INNER_RADIUS_PX,
                       TRIPLE_OUTER_RADIUS_PX, DOUBLE_INNER_RADIUS_PX, DOUBLE_OUTER_RADIUS_PX):
            cv2.circle(image, center, int(round(radius)), RING_COLOR, 1, cv2.LINE_AA)

    if isolation is not None:
        if isolation.contour is not None:
            cv2.drawContours(image, [isolation.contour.reshape(-1, 1, 2)], 0, MAGENTA, 2)
        if isolation.centroid is not None:
            cv2.circle(image, (int(isolation.centroid[0]), int(isolation.centroid[1])), 5, LIME, -1)
        if isolation.tip is not None:
            cv2.circle(image, (int(isolation.tip.x), int(isolation.tip.y)), 5, CYAN, -1)

    return image


def encode_jpeg(image: np.ndarray, quality: int = 85) -> bytes:
    """Encode an OpenCV image as JPEG bytes."""
    success, buffer = cv2.imencode(".jpg", image, [cv2.IMWRITE_JPEG_QUALITY, quality])
    if not success:
        raise ValueError("Failed to encode image")
    return buffer.tobytes()
