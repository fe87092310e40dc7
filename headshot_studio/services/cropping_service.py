from __future__ import annotations
import logging

import cv2
import numpy as np

from ..errors import InvalidDimensions
from ..models.crop_geometry import CropGeometry, FrameTarget
from ..models.image import PixelBuffer, RasterImage

logger = logging.getLogger(__name__)


class CroppingService:
    """
    Frame preparer: crops a source image to the target aspect ratio and
    resamples it into a fixed-size RGBA buffer.

    Wider sources are cropped centred horizontally. Taller sources keep the
    full width and the crop window is pushed toward the top by bias_factor.
    """

    @staticmethod
    def _check_target(target_width: int, target_height: int, bias_factor: float) -> None:
        if target_width <= 0 or target_height <= 0:
            raise InvalidDimensions(f"Invalid target size {target_width}x{target_height}")
        if not 0 <= bias_factor < 0.5:
            raise InvalidDimensions(f"bias_factor={bias_factor} outside [0, 0.5)")

    def compute_geometry(
        self,
        source_width: int,
        source_height: int,
        target_width: int,
        target_height: int,
        bias_factor: float = 0.25,
    ) -> CropGeometry:
        if source_width <= 0 or source_height <= 0:
            raise InvalidDimensions(f"Invalid source size {source_width}x{source_height}")
        self._check_target(target_width, target_height, bias_factor)

        target_aspect = target_width / target_height
        source_aspect = source_width / source_height

        if source_aspect > target_aspect:
            # Source is wider than target: crop width, keep full height
            crop_height = float(source_height)
            crop_width = source_height * target_aspect
            offset_x = (source_width - crop_width) / 2
            offset_y = 0.0
        else:
            # Source is taller (or equal): crop height, bias toward the top
            crop_width = float(source_width)
            crop_height = source_width / target_aspect
            offset_x = 0.0
            offset_y = max(0.0, (source_height - crop_height) * bias_factor)

        return CropGeometry(
            source_offset_x=offset_x,
            source_offset_y=offset_y,
            source_crop_width=crop_width,
            source_crop_height=crop_height,
            target_width=int(target_width),
            target_height=int(target_height),
        )

    @staticmethod
    def resample(pixels: np.ndarray, geometry: CropGeometry) -> np.ndarray:
        """
        Bilinear resample of the (fractional) crop rectangle into the target
        size. Pixel centres are aligned: dst (x + .5) maps to src (ox + (x + .5) / scale).
        """
        inv_x = 1.0 / geometry.scale_x
        inv_y = 1.0 / geometry.scale_y
        inverse_map = np.array(
            [
                [inv_x, 0.0, geometry.source_offset_x + 0.5 * inv_x - 0.5],
                [0.0, inv_y, geometry.source_offset_y + 0.5 * inv_y - 0.5],
            ],
            dtype=np.float64,
        )
        return cv2.warpAffine(
            np.ascontiguousarray(pixels),
            inverse_map,
            (geometry.target_width, geometry.target_height),
            flags=cv2.INTER_LINEAR | cv2.WARP_INVERSE_MAP,
            borderMode=cv2.BORDER_REPLICATE,
        )

    def prepare(
        self,
        image: RasterImage,
        target_width: int,
        target_height: int,
        bias_factor: float = 0.25,
    ) -> PixelBuffer:
        """
        Crop + resample `image` into a target_width x target_height RGBA buffer.
        """
        if image.width <= 0 or image.height <= 0:
            raise InvalidDimensions(f"Invalid source size {image.width}x{image.height}")

        geometry = self.compute_geometry(image.width, image.height,
                                         target_width, target_height, bias_factor)
        logger.debug(
            "Crop %dx%d → (%.2f, %.2f, %.2f x %.2f) → %dx%d",
            image.width, image.height,
            geometry.source_offset_x, geometry.source_offset_y,
            geometry.source_crop_width, geometry.source_crop_height,
            target_width, target_height,
        )
        return PixelBuffer(self.resample(image.pixels, geometry))

    def prepare_for(self, image: RasterImage, target: FrameTarget) -> PixelBuffer:
        return self.prepare(image, target.width, target.height, target.bias_factor)
