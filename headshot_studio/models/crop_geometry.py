from __future__ import annotations
from dataclasses import dataclass
from typing import Dict
import os

from dotenv import load_dotenv

from ..errors import InvalidDimensions

load_dotenv()


@dataclass(frozen=True)
class FrameTarget:
    """
    Output frame for one presentation mode.

    bias_factor shifts the crop window of taller-than-target sources
    toward the top so the head stays in frame.
    """
    name: str
    width: int
    height: int
    bias_factor: float

    @property
    def aspect(self) -> float:
        return self.width / self.height


PORTRAIT = FrameTarget("portrait", 1024, 1536, 0.25)
SQUARE = FrameTarget("square", 800, 800, 1 / 3)

FRAME_TARGETS: Dict[str, FrameTarget] = {t.name: t for t in (PORTRAIT, SQUARE)}


def get_frame_target(name: str | None = None) -> FrameTarget:
    name = (name or os.getenv("DEFAULT_FRAME_MODE", PORTRAIT.name)).lower()
    try:
        return FRAME_TARGETS[name]
    except KeyError:
        raise InvalidDimensions(
            f"Unknown frame mode {name!r}; expected one of {sorted(FRAME_TARGETS)}"
        ) from None


@dataclass(frozen=True)
class CropGeometry:
    """Source rectangle (float, source pixels) mapped onto the target frame."""
    source_offset_x: float
    source_offset_y: float
    source_crop_width: float
    source_crop_height: float
    target_width: int
    target_height: int

    @property
    def scale_x(self) -> float:
        return self.target_width / self.source_crop_width

    @property
    def scale_y(self) -> float:
        return self.target_height / self.source_crop_height
