from __future__ import annotations
from io import BytesIO
from pathlib import Path
from typing import Iterable, Iterator, List, Union
import base64
import binascii
import logging
import os

import numpy as np
from PIL import Image as PILImage, ImageOps
from dotenv import load_dotenv

from ..errors import DecodeError, InvalidDimensions
from ..models.image import PixelBuffer, RasterImage

load_dotenv()

logger = logging.getLogger(__name__)

ImageSource = Union[bytes, bytearray, str, Path]


class ImageRepository:
    """
    Handles decode/encode and file I/O for RasterImage / PixelBuffer.
    """
    def __init__(self):
        self.VALID_EXTS = {
            ext.strip().lower()
            for ext in os.getenv("VALID_IMAGE_EXTENSIONS", ".jpg,.jpeg,.png,.webp,.bmp").split(",")
            if ext.strip()
        }

    # ─── Decoding ─────────────────────────────────────────────────────
    @staticmethod
    def decode_data_url(data_url: str) -> bytes:
        """`data:image/png;base64,....` → raw bytes."""
        if not data_url.startswith("data:image/") or "," not in data_url:
            raise DecodeError("Invalid image data URL")
        header, payload = data_url.split(",", 1)
        if ";base64" not in header:
            raise DecodeError("Only base64 image data URLs are supported")
        try:
            return base64.b64decode(payload, validate=True)
        except (binascii.Error, ValueError) as err:
            raise DecodeError(f"Malformed base64 payload: {err}") from err

    @staticmethod
    def decode(data: bytes | bytearray, path: Path | None = None) -> RasterImage:
        """Decode encoded image bytes into an RGBA RasterImage."""
        if not data:
            raise DecodeError("Empty image data")
        try:
            with PILImage.open(BytesIO(bytes(data))) as pil_img:
                pil_img.load()
                oriented = ImageOps.exif_transpose(pil_img)
                rgba = oriented.convert("RGBA")
        except Exception as err:  # Pillow reports corrupt data with assorted exception types
            raise DecodeError(f"Could not decode image{f' {path}' if path else ''}: {err}") from err

        width, height = rgba.size
        if width <= 0 or height <= 0:
            raise InvalidDimensions(f"Decoded image has invalid size {width}x{height}")

        pixels = np.asarray(rgba, dtype=np.uint8).copy()
        return RasterImage(pixels=pixels, path=path)

    def load(self, source: ImageSource) -> RasterImage:
        """
        Load a RasterImage from raw bytes, a data URL or a file path.
        """
        if isinstance(source, (bytes, bytearray)):
            return self.decode(source)
        if isinstance(source, str) and source.startswith("data:"):
            return self.decode(self.decode_data_url(source))

        path = Path(source)
        try:
            data = path.read_bytes()
        except OSError as err:
            raise DecodeError(f"Image not found or unreadable: {path}") from err
        return self.decode(data, path=path)

    # ─── Encoding ─────────────────────────────────────────────────────
    @staticmethod
    def encode_png(buffer: PixelBuffer) -> bytes:
        out = BytesIO()
        PILImage.fromarray(buffer.pixels).save(out, format="PNG")
        return out.getvalue()

    @staticmethod
    def to_data_url(png_bytes: bytes) -> str:
        return "data:image/png;base64," + base64.b64encode(png_bytes).decode("utf-8")

    def save(self, buffer: PixelBuffer, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.encode_png(buffer))
        return path

    # ─── Directory streaming ──────────────────────────────────────────
    def iter_paths(
        self,
        folder: Union[str, Path],
        *,
        recursive: bool = False,
        exts: Iterable[str] | None = None,
    ) -> Iterator[Path]:
        """
        Yield candidate image paths one at a time, sorted for stable output.
        """
        folder = Path(folder)
        if not folder.is_dir():
            raise NotADirectoryError(folder)

        allowed = {e.lower() for e in (exts or self.VALID_EXTS)}
        pattern = "**/*" if recursive else "*"

        for p in sorted(folder.glob(pattern)):
            if not p.is_file():
                continue
            if p.suffix.lower() not in allowed:
                logger.debug("Skipping due to extension: %s", p)
                continue
            yield p

    def list_paths(self, folder: Union[str, Path], *, recursive=False, exts=None) -> List[Path]:
        return list(self.iter_paths(folder, recursive=recursive, exts=exts))
