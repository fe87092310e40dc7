from __future__ import annotations
from dataclasses import dataclass, asdict, fields, replace as dc_replace
from typing import Any, Dict
import math
import os

from dotenv import load_dotenv

from ..errors import InvalidSettings

load_dotenv()

BRIGHTNESS_RANGE = (-255, 255)
CONTRAST_RANGE = (-100, 100)      # formula has a pole at 259; UI domain is enforced
SATURATION_RANGE = (-100, 100)
VIGNETTE_RANGE = (0.0, 100.0)
MAX_BLUR_RADIUS = float(os.getenv("MAX_BLUR_RADIUS", "50"))


def contrast_factor(contrast: int) -> float:
    return (259 * (contrast + 255)) / (255 * (259 - contrast))


@dataclass(frozen=True)
class AdjustmentSettings:
    """
    Value-object holding the local adjustment sliders.
    All zero is the identity transform.
    """
    brightness: int = 0      # [-255, +255] added to each RGB channel
    contrast:   int = 0      # [-100, +100]
    saturation: int = 0      # [-100, +100]  (-100 → grayscale)
    blur:       float = 0.0  # Gaussian std-dev in pixels, 0 = off
    vignette:   float = 0.0  # [0, 100] strength in percent

    def __post_init__(self):
        self.validate()

    # ── Validation ───────────────────────────────────────────────────
    def validate(self) -> None:
        for name, (lo, hi) in (("brightness", BRIGHTNESS_RANGE),
                               ("contrast", CONTRAST_RANGE),
                               ("saturation", SATURATION_RANGE)):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidSettings(f"{name} must be an integer, got {value!r}")
            if not lo <= value <= hi:
                raise InvalidSettings(f"{name}={value} outside [{lo}, {hi}]")

        for name, (lo, hi) in (("blur", (0.0, MAX_BLUR_RADIUS)),
                               ("vignette", VIGNETTE_RANGE)):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidSettings(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or not lo <= value <= hi:
                raise InvalidSettings(f"{name}={value} outside [{lo}, {hi}]")

    # ── Helpers ──────────────────────────────────────────────────────
    @property
    def is_identity(self) -> bool:
        return (self.brightness == 0 and self.contrast == 0 and self.saturation == 0
                and self.blur == 0 and self.vignette == 0)

    @property
    def contrast_factor(self) -> float:
        return contrast_factor(self.contrast)

    def replace(self, **changes) -> "AdjustmentSettings":
        """Validated copy with some sliders changed."""
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise InvalidSettings(f"Unknown adjustment(s): {', '.join(sorted(unknown))}")
        return dc_replace(self, **changes)

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "AdjustmentSettings":
        return cls().replace(**(data or {}))
