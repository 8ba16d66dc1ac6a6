"""
Stillness State Machine

Compares each new canonical frame with the one before it. A throw is taken
to have landed when the board goes from Moving to Still; the still frame
before the throw and the first still frame after it are then handed to dart
detection.
"""
import logging
import time
from enum import Enum
from typing import Callable, Optional

import cv2

from dartcam.config import DetectionConfig
from dartcam.core.frames import CanonicalFrame, FrameSlot, to_gray

logger = logging.getLogger(__name__)

# Called with (post_throw, pre_throw); returns True if a dart was found
DetectCallback = Callable[[CanonicalFrame, CanonicalFrame], bool]


class MotionState(str, Enum):
    MOVING = "moving"
    STILL = "still"


class Transition(str, Enum):
    BECAME_STILL = "became_still"
    BECAME_MOVING = "became_moving"


def mean_frame_difference(current: CanonicalFrame, previous: CanonicalFrame) -> float:
    """Full-frame mean of the grey-level absolute difference."""
    diff = cv2.absdiff(current.pixels, previous.pixels)
    return float(cv2.mean(to_gray(diff))[0])


class StillnessStateMachine:
    """
    Moving/Still classifier driving dart detection.

    Holds at most one previous, one pre-throw and one post-throw frame.
    """

    def __init__(
        self,
        detect: DetectCallback,
        config: Optional[DetectionConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or DetectionConfig()
        self._detect = detect
        self._clock = clock

        self.state = MotionState.MOVING
        self.last_transition_at: Optional[float] = None
        self.cooldown_until: float = float("-inf")
        self.last_mean_diff: Optional[float] = None
        self.detection_attempts = 0

        self.previous: FrameSlot[CanonicalFrame] = FrameSlot("previous")
        self.pre_throw: FrameSlot[CanonicalFrame] = FrameSlot("pre_throw")
        self.post_throw: FrameSlot[CanonicalFrame] = FrameSlot("post_throw")
        self._quiet_run = 0

    @property
    def in_cooldown(self) -> bool:
        return self._clock() < self.cooldown_until

    def reset(self) -> None:
        """Back to the initial state with no held frames."""
        self.state = MotionState.MOVING
        self.last_transition_at = None
        self.cooldown_until = float("-inf")
        self.last_mean_diff = None
        self._quiet_run = 0
        self.previous.release()
        self.pre_throw.release()
        self.post_throw.release()
        logger.info("[STILLNESS] Reset")

    def observe(self, frame: CanonicalFrame) -> Optional[Transition]:
        """
        Evaluate one newly rectified frame.

        Returns the transition it caused, if any.
        """
        transition = None
        try:
            if self.in_cooldown:
                # Held Still so settling vibration cannot re-trigger
                self.state = MotionState.STILL
                self._quiet_run = 0
            elif self.previous.frame is not None:
                transition = self._evaluate(frame, self.previous.frame)
        finally:
            self.previous.replace(frame)
        return transition

    def _evaluate(self, frame: CanonicalFrame, previous: CanonicalFrame) -> Optional[Transition]:
        mean_diff = mean_frame_difference(frame, previous)
        self.last_mean_diff = mean_diff
        quiet = mean_diff < self.config.motion_threshold
        logger.debug(f"[STILLNESS] meanDiff={mean_diff:.3f} threshold={self.config.motion_threshold} quiet={quiet}")

        if quiet:
            self._quiet_run += 1
        else:
            self._quiet_run = 0

        if self.state == MotionState.MOVING and quiet and self._quiet_run >= self.config.still_run_length:
            self._set_state(MotionState.STILL)
            self._on_became_still(frame)
            return Transition.BECAME_STILL

        if self.state == MotionState.STILL and not quiet:
            self._set_state(MotionState.MOVING)
            self._on_became_moving(previous)
            return Transition.BECAME_MOVING

        return None

    def _set_state(self, state: MotionState) -> None:
        logger.info(f"[STILLNESS] {self.state.value} -> {state.value}")
        self.state = state
        self.last_transition_at = self._clock()

    def _on_became_still(self, frame: CanonicalFrame) -> None:
        pre_throw = self.pre_throw.frame
        if pre_throw is None:
            logger.info("[STILLNESS] First still frame, storing as pre-throw reference")
            self.pre_throw.replace(frame)
            return

        self.post_throw.replace(frame)
        self.detection_attempts += 1
        detected = self._detect(frame, pre_throw)

        if detected:
            self.cooldown_until = self._clock() + self.config.cooldown_seconds

        if detected or self.config.advance_baseline_on_miss:
            self.pre_throw.replace(frame)
        else:
            logger.info("[STILLNESS] No dart found, keeping previous pre-throw reference")

    def _on_became_moving(self, previous: CanonicalFrame) -> None:
        if self.pre_throw.frame is None:
            logger.info("[STILLNESS] Capturing frame before motion as pre-throw reference")
            self.pre_throw.replace(previous)
