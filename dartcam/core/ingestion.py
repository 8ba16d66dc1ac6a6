"""
Frame Ingestion

Encoded image buffers arrive from the video relay at whatever rate it sends
them. Each one is decoded and dropped into a capacity-1 channel: the newest
frame always replaces an undelivered older one, and at most one processing
pass is scheduled no matter how many frames arrive before it runs.
"""
import logging
from typing import Callable, Optional

import cv2
import numpy as np

from dartcam.core.frames import FrameSlot, RawFrame

logger = logging.getLogger(__name__)

# A scheduler takes the processing callback and arranges for it to run on
# the next tick, e.g. loop.call_soon.
Scheduler = Callable[[Callable[[], None]], None]


class FrameDecodeError(ValueError):
    """An encoded buffer could not be turned into an image."""


def decode_frame(buffer: bytes) -> RawFrame:
    """Decode an encoded image buffer (JPEG, PNG, ...) to a BGR RawFrame."""
    if not buffer:
        raise FrameDecodeError("Empty frame buffer")

    nparr = np.frombuffer(buffer, np.uint8)
    try:
        image = cv2.imdecode(nparr, cv2.IMREAD_COLOR)
    except cv2.error as e:
        raise FrameDecodeError(f"Failed to decode frame: {e}") from e

    if image is None:
        raise FrameDecodeError("Failed to decode frame")

    return RawFrame(image)


class LatestFrameChannel:
    """
    Single-producer/single-consumer channel holding at most one frame.

    put() overwrites whatever is waiting; take() hands the newest frame to
    the consumer and empties the channel.
    """

    def __init__(self):
        self._slot: FrameSlot[RawFrame] = FrameSlot("pending")
        self.overwritten = 0

    @property
    def pending(self) -> bool:
        return self._slot.occupied

    def put(self, frame: RawFrame) -> None:
        if self._slot.occupied:
            self.overwritten += 1
        self._slot.replace(frame)

    def take(self) -> Optional[RawFrame]:
        frame = self._slot.frame
        self._slot.release()
        return frame

    def clear(self) -> None:
        self._slot.release()


class FrameIngestor:
    """
    Receives encoded buffers, keeps the most recent decoded frame as
    "current" and schedules processing once per tick.
    """

    def __init__(self, scheduler: Scheduler, process: Callable[[], None]):
        self._scheduler = scheduler
        self._process = process
        self._channel = LatestFrameChannel()
        self._current: FrameSlot[RawFrame] = FrameSlot("current")
        self._scheduled = False

        self.frames_received = 0
        self.decode_errors = 0

    @property
    def current(self) -> Optional[RawFrame]:
        """Most recently decoded frame, processed or not."""
        return self._current.frame

    @property
    def frames_dropped(self) -> int:
        """Frames lost to decode errors or replaced before processing."""
        return self.decode_errors + self._channel.overwritten

    def push(self, buffer: bytes) -> bool:
        """
        Accept one encoded buffer from the transport.

        Returns:
            True if the buffer was decoded, False if it was dropped.
        """
        self.frames_received += 1
        try:
            frame = decode_frame(buffer)
        except FrameDecodeError as e:
            self.decode_errors += 1
            logger.warning(f"[INGEST] Dropping frame {self.frames_received}: {e}")
            return False

        self._current.replace(frame)
        self._channel.put(frame)

        if not self._scheduled:
            self._scheduled = True
            self._scheduler(self._run)

        return True

    def next_frame(self) -> Optional[RawFrame]:
        """Take the pending frame for processing, if any."""
        return self._channel.take()

    def _run(self) -> None:
        self._scheduled = False
        self._process()

    def reset(self) -> None:
        """Forget all held frames (transport disconnected)."""
        self._channel.clear()
        self._current.release()
