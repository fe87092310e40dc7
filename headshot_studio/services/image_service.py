from __future__ import annotations
from pathlib import Path
from typing import List, Union

from ..models.image import PixelBuffer, RasterImage
from ..repositories.image_repository import ImageRepository, ImageSource


class ImageService:
    """I/O helpers.  No pixel math here."""
    def __init__(self, image_repository: ImageRepository | None = None):
        self.image_repository = image_repository or ImageRepository()

    def load(self, source: ImageSource) -> RasterImage:
        """Load a single image (bytes, data URL or path) into a RasterImage."""
        return self.image_repository.load(source)

    def list_paths(self, folder: Union[str, Path], *, recursive: bool = False) -> List[Path]:
        return self.image_repository.list_paths(folder, recursive=recursive)

    def to_png_bytes(self, buffer: PixelBuffer) -> bytes:
        return self.image_repository.encode_png(buffer)

    def to_data_url(self, buffer: PixelBuffer) -> str:
        return self.image_repository.to_data_url(self.to_png_bytes(buffer))

    def save(self, buffer: PixelBuffer, path: Union[str, Path]) -> Path:
        """
        Business-level method to save the frame as PNG.
        """
        return self.image_repository.save(buffer, path)

