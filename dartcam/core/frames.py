"""
Frame buffers for the detection pipeline.

RawFrame holds a decoded source image, CanonicalFrame a perspective-corrected
board view. Both wrap a read-only numpy array so a buffered frame can never
be modified by a later stage.

Each stage that keeps a frame around does so through a FrameSlot, a single
reference with explicit replace-and-release semantics.
"""
from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

import cv2
import numpy as np

from dartcam.core.geometry import SourceDimensions


def _freeze(pixels: np.ndarray) -> np.ndarray:
    frozen = np.array(pixels, copy=True)
    frozen.setflags(write=False)
    return frozen


@dataclass(frozen=True, eq=False)
class _Frame:
    pixels: np.ndarray

    def __post_init__(self):
        if self.pixels.ndim not in (2, 3):
            raise ValueError(f"Frame must be 2D or 3D, got shape {self.pixels.shape}")
        if self.pixels.flags.writeable:
            object.__setattr__(self, "pixels", _freeze(self.pixels))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return 1 if self.pixels.ndim == 2 else int(self.pixels.shape[2])


@dataclass(frozen=True, eq=False)
class RawFrame(_Frame):
    """Decoded frame in source-pixel space."""

    @property
    def dimensions(self) -> SourceDimensions:
        return SourceDimensions(width=self.width, height=self.height)


@dataclass(frozen=True, eq=False)
class CanonicalFrame(_Frame):
    """Frame rectified into canonical board space."""


F = TypeVar("F", bound=_Frame)


class FrameSlot(Generic[F]):
    """
    Holds at most one frame reference.

    replace() drops the previous frame before storing the new one, so a slot
    never keeps two generations alive.
    """

    def __init__(self, name: str):
        self.name = name
        self._frame: Optional[F] = None

    @property
    def frame(self) -> Optional[F]:
        return self._frame

    @property
    def occupied(self) -> bool:
        return self._frame is not None

    def replace(self, frame: Optional[F]) -> None:
        self.release()
        self._frame = frame

    def release(self) -> None:
        self._frame = None

    def __repr__(self) -> str:
        state = "empty" if self._frame is None else f"{self._frame.width}x{self._frame.height}"
        return f"FrameSlot({self.name}: {state})"


def to_gray(pixels: np.ndarray) -> np.ndarray:
    """Single-channel intensity view of a BGR, BGRA or grey image."""
    if pixels.ndim == 2:
        return pixels
    channels = pixels.shape[2]
    if channels == 1:
        return pixels[:, :, 0]
    if channels == 4:
        return cv2.cvtColor(pixels, cv2.COLOR_BGRA2GRAY)
    return cv2.cvtColor(pixels, cv2.COLOR_BGR2GRAY)
