"""
Gallery Enhancer Pipeline
Crops every photo in a folder to the headshot frame, applies one set of
local adjustments and writes the results as PNG.
"""
from __future__ import annotations
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Set

from dotenv import load_dotenv
from tqdm import tqdm

from ..errors import HeadshotError
from ..models.crop_geometry import FrameTarget, get_frame_target
from ..models.image_adjustments import AdjustmentSettings
from ..services.adjustment_service import AdjustmentService, RenderContext
from ..services.cropping_service import CroppingService
from ..services.image_service import ImageService

load_dotenv()

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = os.getenv("OUTPUT_SUFFIX", "_headshot")


@dataclass
class EnhancedFile:
    source: Path
    output: Path


def output_name(path: Path, input_dir: Path | None, taken: Set[str]) -> str:
    """
    `<stem>_headshot.png`, unique within one run.

    Files below `input_dir` get their sub-folder in the name (`a/x.jpg` →
    `a__x_headshot.png`); same-stem files of different types get their
    extension (`x.png` → `x_png_headshot.png`).
    """
    try:
        relative = path.relative_to(input_dir) if input_dir is not None else Path(path.name)
    except ValueError:
        relative = Path(path.name)
    base = "__".join(relative.with_suffix("").parts)

    candidate = base
    if candidate in taken:
        candidate = f"{base}_{path.suffix.lstrip('.').lower()}"
    counter = 2
    while candidate in taken:
        candidate = f"{base}_{counter}"
        counter += 1
    taken.add(candidate)
    return f"{candidate}{OUTPUT_SUFFIX}.png"


def enhance_gallery(
    paths: Iterable[Path],
    output_dir: str | Path,
    *,
    input_dir: str | Path | None = None,
    settings: AdjustmentSettings | None = None,
    frame: FrameTarget | None = None,
    image_service: ImageService | None = None,
    cropping_service: CroppingService | None = None,
    adjustment_service: AdjustmentService | None = None,
    total: int | None = None,
) -> List[EnhancedFile]:
    """
    For every image path:
        • decode and crop to `frame`
        • render `settings` on top of the cropped frame
        • save `<stem>_headshot.png` (suffix from OUTPUT_SUFFIX) into output_dir

    Output names never collide within a run; see output_name().
    Unreadable or unwritable files are logged and skipped. Returns what
    was written.
    """
    settings = settings or AdjustmentSettings()
    frame = frame or get_frame_target()
    image_service = image_service or ImageService()
    cropping_service = cropping_service or CroppingService()
    adjustment_service = adjustment_service or AdjustmentService()

    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    input_dir = Path(input_dir) if input_dir is not None else None

    # one context for the whole run: every frame has the same size
    context = RenderContext()
    written: List[EnhancedFile] = []
    taken: Set[str] = set()

    for path in tqdm(paths, total=total, desc="headshots", ncols=70):
        path = Path(path)
        try:
            image = image_service.load(path)
            original = cropping_service.prepare_for(image, frame)
            enhanced = adjustment_service.render(original, settings, context)
        except HeadshotError as err:
            logger.warning("Skipping %s: %s", path.name, err)
            continue

        target = output_dir / output_name(path, input_dir, taken)
        try:
            image_service.save(enhanced, target)
        except OSError as err:
            logger.warning("Could not write %s: %s", target, err)
            continue
        written.append(EnhancedFile(source=path, output=target))
        logger.debug("Wrote %s", target)

    logger.info("Enhanced %d image(s) into %s", len(written), output_dir)
    return written
