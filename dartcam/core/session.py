"""
Detection session - one camera feed from connect to disconnect.

Owns every piece of per-camera state (calibration, current frame, motion
state, held reference frames) and runs the pipeline:

    encoded buffer -> FrameIngestor -> Rectifier -> StillnessStateMachine
        -> DartDetector -> score_point -> result listeners

All stages run synchronously on the caller's thread. The ingestor coalesces
arrivals so only one processing pass is ever pending.
"""
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np

from dartcam.config import DetectionConfig
from dartcam.core.calibration import (
    CalibrationEngine,
    CalibrationFailed,
    PointSubmission,
    scale_display_point,
)
from dartcam.core.detection import DartDetector, DartIsolation
from dartcam.core.frames import CanonicalFrame
from dartcam.core.geometry import ImagePoint
from dartcam.core.ingestion import FrameIngestor, Scheduler
from dartcam.core.motion_detector import StillnessStateMachine
from dartcam.core.overlay import render_calibrating, render_canonical, render_uncalibrated
from dartcam.core.rectification import RectificationStatus, Rectifier
from dartcam.core.scoring import DetectionResult, score_point
from dartcam.core.storage import CalibrationStore

logger = logging.getLogger(__name__)

ResultListener = Callable[[DetectionResult], None]

DIMENSIONS_CHANGED_ERROR = "Camera dimensions changed. Please recalibrate."


def run_immediately(callback: Callable[[], None]) -> None:
    """Scheduler that processes each frame as soon as it is pushed."""
    callback()


class DetectionSession:
    """
    Per-camera detection session.

    Construct one per camera connection; call disconnect() when the
    transport goes away.
    """

    def __init__(
        self,
        store: Optional[CalibrationStore] = None,
        config: Optional[DetectionConfig] = None,
        scheduler: Scheduler = run_immediately,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or DetectionConfig()
        self.calibration = CalibrationEngine(store or CalibrationStore())
        self.rectifier = Rectifier()
        self.detector = DartDetector(self.config)
        self.stillness = StillnessStateMachine(self._on_throw_landed, self.config, clock)
        self.ingestor = FrameIngestor(scheduler, self.process_pending)

        self._listeners: List[ResultListener] = []
        self.connected = False
        self.frames_processed = 0
        self.rectification_status = RectificationStatus.UNCALIBRATED
        self.last_error: Optional[str] = None
        self.last_result: Optional[DetectionResult] = None
        self.last_isolation: Optional[DartIsolation] = None

    # === Lifecycle ===

    def start(self) -> None:
        """Restore a persisted calibration, if there is a valid one."""
        self.calibration.load_persisted()

    def connect(self) -> None:
        self.connected = True
        self.last_error = None
        logger.info("[SESSION] Video transport connected")

    def disconnect(self) -> None:
        """Transport gone: drop every held frame and restart motion tracking."""
        self.connected = False
        self.ingestor.reset()
        self.stillness.reset()
        self.last_isolation = None
        logger.info("[SESSION] Video transport disconnected")

    def add_listener(self, listener: ResultListener) -> None:
        self._listeners.append(listener)

    # === Frames ===

    def push_frame(self, buffer: bytes) -> bool:
        """Hand one encoded buffer from the transport to ingestion."""
        if not self.connected:
            self.connect()
        return self.ingestor.push(buffer)

    def process_pending(self) -> None:
        """
        One processing pass over the newest frame.

        Never raises: failures are recorded in last_error and the frame is
        dropped.
        """
        frame = self.ingestor.next_frame()
        if frame is None:
            return

        try:
            if self.calibration.collecting:
                return

            result = self.rectifier.rectify(frame, self.calibration.record)
            self.rectification_status = result.status

            if result.invalidates_calibration:
                self.calibration.reset()
                self.stillness.reset()
                self.last_error = DIMENSIONS_CHANGED_ERROR
                return

            if result.uncalibrated:
                if self.stillness.previous.occupied or self.stillness.pre_throw.occupied:
                    self.stillness.reset()
                return

            self.stillness.observe(result.frame)
            self.frames_processed += 1
        except Exception as e:
            logger.error(f"[SESSION] Error processing frame: {e}", exc_info=True)
            self.last_error = f"Error during image processing: {e}"

    def _on_throw_landed(self, post_throw: CanonicalFrame, pre_throw: CanonicalFrame) -> bool:
        isolation = self.detector.isolate(post_throw, pre_throw)
        self.last_isolation = isolation
        if not isolation.detected:
            return False

        result = score_point(isolation.tip)
        self.last_result = result
        logger.info(
            f"[DETECT] {result.ring.value} segment={result.segment} x{result.multiplier} = {result.score} "
            f"at ({result.point.x:.0f}, {result.point.y:.0f})"
        )

        for listener in self._listeners:
            try:
                listener(result)
            except Exception as e:
                logger.error(f"[SESSION] Result listener failed: {e}", exc_info=True)

        return True

    # === Calibration ===

    def begin_calibration(self) -> None:
        current = self.ingestor.current
        self.calibration.begin_calibration(current.dimensions if current is not None else None)
        self.stillness.reset()
        self.last_isolation = None
        self.last_error = None

    def submit_calibration_point(
        self,
        x: float,
        y: float,
        display_size: Optional[Tuple[float, float]] = None,
    ) -> PointSubmission:
        """
        Submit an operator click.

        With display_size the click is in display coordinates and is scaled
        to the current frame's source size first.

        Raises:
            CalibrationFailed: the fourth click did not give a usable solve
            ValueError: display coordinates given before any frame arrived
        """
        current = self.ingestor.current
        dims = current.dimensions if current is not None else None

        if display_size is not None:
            if dims is None:
                raise ValueError("No camera frame received yet; cannot scale display coordinates")
            point = scale_display_point(x, y, display_size[0], display_size[1], dims)
        else:
            point = ImagePoint(x=float(x), y=float(y))

        try:
            submission = self.calibration.submit_point(point, dims)
        except CalibrationFailed as e:
            self.last_error = f"Calibration failed: {e}. Try clicking points again."
            raise

        if submission.record is not None:
            self.stillness.reset()
            self.last_error = None
        return submission

    def cancel_calibration(self) -> None:
        self.calibration.cancel_calibration()
        self.last_error = None

    def reset_calibration(self) -> None:
        self.calibration.reset()
        self.stillness.reset()
        self.last_isolation = None
        self.last_error = None

    # === Operator view ===

    def render_display(self) -> Optional[np.ndarray]:
        """The image an operator should currently see, or None before any frame."""
        current = self.ingestor.current
        if current is None:
            return None
        if self.calibration.collecting:
            return render_calibrating(current, self.calibration.points, self.calibration.next_prompt)
        if self.calibration.record is None:
            return render_uncalibrated(current)
        canonical = self.stillness.previous.frame
        if canonical is None:
            return current.pixels.copy()
        return render_canonical(canonical, self.last_isolation)

    def get_status(self) -> Dict[str, Any]:
        record = self.calibration.record
        return {
            "connected": self.connected,
            "calibrating": self.calibration.collecting,
            "points_collected": len(self.calibration.points),
            "next_prompt": self.calibration.next_prompt,
            "calibrated": record is not None,
            "needs_calibration": record is None,
            "source_dimensions": record.source_dimensions.to_dict() if record else None,
            "rectification": self.rectification_status.value,
            "motion_state": self.stillness.state.value,
            "in_cooldown": self.stillness.in_cooldown,
            "has_pre_throw": self.stillness.pre_throw.occupied,
            "last_mean_diff": self.stillness.last_mean_diff,
            "frames_received": self.ingestor.frames_received,
            "frames_dropped": self.ingestor.frames_dropped,
            "frames_processed": self.frames_processed,
            "detection_attempts": self.stillness.detection_attempts,
            "last_error": self.last_error,
            "last_result": self.last_result.to_dict() if self.last_result else None,
        }
