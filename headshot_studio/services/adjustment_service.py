from __future__ import annotations
from contextlib import nullcontext
from typing import Any, Dict, Tuple, Union
import logging
import threading
import time

import cv2
import numpy as np

from ..errors import InvalidSettings
from ..models.image import PixelBuffer
from ..models.image_adjustments import AdjustmentSettings, contrast_factor

logger = logging.getLogger(__name__)

# ITU-R BT.601 luma weights
GRAY_WEIGHTS = np.array([0.2989, 0.5870, 0.1140], dtype=np.float64)

VIGNETTE_INNER = 0.4     # × max radius, fully transparent
VIGNETTE_OUTER = 1.2     # × max radius, full strength
VIGNETTE_MAX_ALPHA = 0.7


class RenderContext:
    """
    Per-session scratch state for the adjustment pipeline.

    Holds only size-keyed caches (blur scratch frame, vignette ramp); a
    buffer is reused while the frame dimensions match and reallocated
    otherwise. Results never alias these caches.

    The caches are shared mutable state, so a render that uses them holds
    `lock` for its whole duration.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self._blur_scratch: np.ndarray | None = None
        self._ramp_key: Tuple[int, int] | None = None
        self._ramp: np.ndarray | None = None
        self.blur_allocations = 0

    def blur_scratch(self, shape: Tuple[int, ...]) -> np.ndarray:
        if self._blur_scratch is None or self._blur_scratch.shape != shape:
            self._blur_scratch = np.empty(shape, dtype=np.uint8)
            self.blur_allocations += 1
        return self._blur_scratch

    def owns(self, pixels: np.ndarray) -> bool:
        return pixels is self._blur_scratch

    def vignette_ramp(self, height: int, width: int) -> np.ndarray:
        if self._ramp_key != (height, width):
            self._ramp = AdjustmentService.vignette_ramp(height, width)
            self._ramp_key = (height, width)
        return self._ramp


class AdjustmentService:
    """
    Local adjustment pipeline.

    render() is a pure function of (original, settings): it never reads a
    previously rendered frame, so any sequence of slider changes that ends
    at the same settings yields the same pixels.

    Stage order: brightness/contrast → saturation → uniform blur → vignette.
    Each stage writes 8-bit clamped values before the next one reads them.
    """

    # ─── Stage 1: brightness / contrast ──────────────────────────────
    @staticmethod
    def brightness_contrast_lut(brightness: int, contrast: int) -> np.ndarray:
        """256-entry lookup table for v' = clamp(f*((v+b)-128)+128)."""
        factor = contrast_factor(contrast)
        v = np.arange(256, dtype=np.float64)
        out = factor * ((v + brightness) - 128.0) + 128.0
        return np.rint(np.clip(out, 0, 255)).astype(np.uint8)

    @classmethod
    def apply_brightness_contrast(cls, pixels: np.ndarray, brightness: int, contrast: int) -> np.ndarray:
        lut = cls.brightness_contrast_lut(brightness, contrast)
        out = pixels.copy()
        out[..., :3] = lut[pixels[..., :3]]
        return out

    # ─── Stage 2: saturation ─────────────────────────────────────────
    @staticmethod
    def apply_saturation(pixels: np.ndarray, saturation: int) -> np.ndarray:
        factor = 1.0 + saturation / 100.0
        rgb = pixels[..., :3].astype(np.float64)
        gray = (rgb @ GRAY_WEIGHTS)[..., None]
        mixed = gray + (rgb - gray) * factor

        out = pixels.copy()
        out[..., :3] = np.rint(np.clip(mixed, 0, 255)).astype(np.uint8)
        return out

    # ─── Stage 3: uniform (full-frame) blur ──────────────────────────
    @staticmethod
    def uniform_blur(pixels: np.ndarray, radius: float, scratch: np.ndarray | None = None) -> np.ndarray:
        """
        Gaussian blur of the whole frame, std-dev = radius pixels.
        No subject/background separation is attempted.
        """
        src = pixels if pixels.flags.writeable else pixels.copy()
        if scratch is None or scratch.shape != src.shape:
            scratch = np.empty_like(src)
        cv2.GaussianBlur(src, (0, 0), sigmaX=float(radius), sigmaY=float(radius),
                         dst=scratch, borderType=cv2.BORDER_REFLECT_101)
        return scratch

    # ─── Stage 4: vignette ───────────────────────────────────────────
    @staticmethod
    def vignette_ramp(height: int, width: int) -> np.ndarray:
        """
        Normalised radial ramp in [0, 1]: 0 inside 0.4·maxR, 1 beyond 1.2·maxR.
        Distances are taken from pixel centres.
        """
        cx, cy = width / 2.0, height / 2.0
        max_radius = np.hypot(cx, cy)
        inner, outer = VIGNETTE_INNER * max_radius, VIGNETTE_OUTER * max_radius

        ys = np.arange(height, dtype=np.float64) + 0.5 - cy
        xs = np.arange(width, dtype=np.float64) + 0.5 - cx
        dist = np.hypot(xs[None, :], ys[:, None])
        return np.clip((dist - inner) / (outer - inner), 0.0, 1.0)

    @staticmethod
    def apply_vignette(pixels: np.ndarray, vignette: float, ramp: np.ndarray | None = None) -> np.ndarray:
        """Composite a black radial gradient "over" the frame."""
        height, width = pixels.shape[:2]
        if ramp is None:
            ramp = AdjustmentService.vignette_ramp(height, width)
        alpha_src = ramp * (vignette / 100.0 * VIGNETTE_MAX_ALPHA)

        px = pixels.astype(np.float64)
        alpha_dst = px[..., 3] / 255.0
        alpha_out = alpha_src + alpha_dst * (1.0 - alpha_src)

        # source colour is black, so only the destination term survives
        weight = np.divide(alpha_dst * (1.0 - alpha_src), alpha_out,
                           out=np.zeros_like(alpha_out), where=alpha_out > 0)

        out = np.empty_like(pixels)
        out[..., :3] = np.rint(np.clip(px[..., :3] * weight[..., None], 0, 255)).astype(np.uint8)
        out[..., 3] = np.rint(np.clip(alpha_out * 255.0, 0, 255)).astype(np.uint8)
        return out

    # ─── Orchestration ───────────────────────────────────────────────
    @staticmethod
    def coerce_settings(settings: Union[AdjustmentSettings, Dict[str, Any], None]) -> AdjustmentSettings:
        if settings is None:
            return AdjustmentSettings()
        if isinstance(settings, AdjustmentSettings):
            settings.validate()
            return settings
        if isinstance(settings, dict):
            return AdjustmentSettings.from_dict(settings)
        raise InvalidSettings(f"Unsupported settings type: {type(settings).__name__}")

    def render(
        self,
        original: PixelBuffer,
        settings: Union[AdjustmentSettings, Dict[str, Any], None] = None,
        context: RenderContext | None = None,
    ) -> PixelBuffer:
        """
        Build the enhanced frame from the original frame.

        Returns a new PixelBuffer; `original` is only read.
        Zero-valued stages are skipped, so default settings give a
        bit-identical copy of `original`.
        """
        settings = self.coerce_settings(settings)
        started = time.perf_counter()
        with context.lock if context is not None else nullcontext():
            pixels = self._run_stages(original.pixels, settings, context)

        logger.debug("Rendered %dx%d with %s in %.1f ms", original.width, original.height,
                     settings.as_dict(), (time.perf_counter() - started) * 1000)
        return PixelBuffer(pixels)

    def _run_stages(self, pixels: np.ndarray, settings: AdjustmentSettings,
                    context: RenderContext | None) -> np.ndarray:
        original = pixels

        if settings.brightness != 0 or settings.contrast != 0:
            pixels = self.apply_brightness_contrast(pixels, settings.brightness, settings.contrast)

        if settings.saturation != 0:
            pixels = self.apply_saturation(pixels, settings.saturation)

        if settings.blur > 0:
            scratch = context.blur_scratch(pixels.shape) if context is not None else None
            pixels = self.uniform_blur(pixels, settings.blur, scratch)

        if settings.vignette > 0:
            ramp = context.vignette_ramp(*pixels.shape[:2]) if context is not None else None
            pixels = self.apply_vignette(pixels, settings.vignette, ramp)

        # never hand out the original's array or a cached scratch frame
        if pixels is original or (context is not None and context.owns(pixels)):
            pixels = pixels.copy()
        return pixels
