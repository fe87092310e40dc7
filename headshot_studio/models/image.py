from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence
import numpy as np

from ..errors import InvalidDimensions


@dataclass(frozen=True, eq=False)
class RasterImage:
    """
    Decoded source image, before cropping.
    No decoding logic here; see ImageRepository.
    """
    pixels: np.ndarray  # Shape (H, W, 4), dtype uint8, RGBA order.
    path: Path | None = None  # Source of the image, if it came from disk.

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])


@dataclass(frozen=True, eq=False)
class PixelBuffer:
    """
    Fixed-size RGBA8 frame, row-major.

    `pixels` is an (H, W, 4) uint8 array; its C-contiguous flat view is the
    interleaved R,G,B,A sequence of length width*height*4.
    """
    pixels: np.ndarray

    def __post_init__(self):
        px = self.pixels
        if px.ndim != 3 or px.shape[2] != 4 or px.dtype != np.uint8:
            raise InvalidDimensions(
                f"PixelBuffer expects (H, W, 4) uint8, got {px.shape} {px.dtype}"
            )
        if px.shape[0] <= 0 or px.shape[1] <= 0:
            raise InvalidDimensions(f"Empty pixel buffer: {px.shape}")
        if not px.flags["C_CONTIGUOUS"]:
            object.__setattr__(self, "pixels", np.ascontiguousarray(px))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    @property
    def flat(self) -> np.ndarray:
        """Interleaved RGBA view, length width*height*4."""
        return self.pixels.reshape(-1)

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.pixels.copy())

    def frozen(self) -> "PixelBuffer":
        """Return a buffer whose array refuses in-place writes."""
        px = self.pixels.copy()
        px.setflags(write=False)
        return PixelBuffer(px)

    def equals(self, other: "PixelBuffer") -> bool:
        return self.pixels.shape == other.pixels.shape and np.array_equal(self.pixels, other.pixels)

    @classmethod
    def from_flat(cls, values: Sequence[int] | np.ndarray, width: int, height: int) -> "PixelBuffer":
        if width <= 0 or height <= 0:
            raise InvalidDimensions(f"Invalid buffer size {width}x{height}")
        arr = np.asarray(values, dtype=np.uint8)
        if arr.size != width * height * 4:
            raise InvalidDimensions(
                f"Expected {width * height * 4} channel values for {width}x{height}, got {arr.size}"
            )
        return cls(arr.reshape(height, width, 4).copy())

    @classmethod
    def filled(cls, width: int, height: int, rgba: Sequence[int]) -> "PixelBuffer":
        """Uniform frame of a single colour."""
        if width <= 0 or height <= 0:
            raise InvalidDimensions(f"Invalid buffer size {width}x{height}")
        px = np.empty((height, width, 4), dtype=np.uint8)
        px[...] = np.asarray(rgba, dtype=np.uint8)
        return cls(px)
