import argparse
import logging
import sys
from typing import List, Optional

from dotenv import load_dotenv

# Load environment variables first
load_dotenv()

from ..errors import HeadshotError
from ..models.crop_geometry import FRAME_TARGETS, get_frame_target
from ..models.image_adjustments import AdjustmentSettings
from ..pipeline.gallery_enhancer import enhance_gallery
from ..services.image_service import ImageService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="headshot-batch",
        description="Crop every photo in a folder to a headshot frame and apply local adjustments.",
    )
    parser.add_argument("input_dir", help="Folder containing source photos")
    parser.add_argument("output_dir", help="Folder to write PNG headshots into")
    parser.add_argument("--mode", choices=sorted(FRAME_TARGETS), default=None,
                        help="Frame preset (default: DEFAULT_FRAME_MODE or portrait)")
    parser.add_argument("--recursive", action="store_true", help="Descend into sub-folders")
    parser.add_argument("--brightness", type=int, default=0)
    parser.add_argument("--contrast", type=int, default=0)
    parser.add_argument("--saturation", type=int, default=0)
    parser.add_argument("--blur", type=float, default=0.0, help="Uniform blur radius in pixels")
    parser.add_argument("--vignette", type=float, default=0.0, help="Vignette strength 0-100")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # --- Centralized Logging Configuration ---
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)-25s - %(levelname)-8s - %(message)s',
        datefmt='%H:%M:%S'
    )

    try:
        settings = AdjustmentSettings(
            brightness=args.brightness,
            contrast=args.contrast,
            saturation=args.saturation,
            blur=args.blur,
            vignette=args.vignette,
        )
        frame = get_frame_target(args.mode)
    except HeadshotError as err:
        logger.error("Invalid arguments: %s", err)
        return 2

    image_service = ImageService()
    try:
        paths = image_service.list_paths(args.input_dir, recursive=args.recursive)
    except NotADirectoryError:
        logger.error("Input folder not found: %s", args.input_dir)
        return 2

    logger.info("Processing %d image(s) into %s frame %dx%d",
                len(paths), frame.name, frame.width, frame.height)
    written = enhance_gallery(paths, args.output_dir, input_dir=args.input_dir,
                              settings=settings, frame=frame,
                              image_service=image_service, total=len(paths))

    if paths and not written:
        logger.error("No image could be processed")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
