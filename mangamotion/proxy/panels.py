"""
Local panel splitting.

Used when a page should be cut up without the remote panel detector: the
whole page plus its four quadrants, colour preserved.
"""

import io
from typing import List

from PIL import Image, UnidentifiedImageError

from mangamotion.core.artifacts import image_format_from_mime, to_data_uri
from mangamotion.core.constants import DEFAULT_IMAGE_FORMAT
from mangamotion.core.logging_config import get_logger

logger = get_logger("proxy.panels")


def _encode(img: Image.Image, fmt: str) -> str:
    buffer = io.BytesIO()
    img.save(buffer, format=fmt.upper())
    return to_data_uri(buffer.getvalue(), f"image/{fmt.lower()}")


def split_quadrants(image: bytes) -> List[str]:
    """
    Split a page into the full image followed by its four quadrants.

    Grayscale pages are promoted to RGB. Odd dimensions give the extra
    row/column to the right and bottom quadrants.

    Raises:
        ValueError: if the bytes are not a readable image
    """
    try:
        with Image.open(io.BytesIO(image)) as src:
            fmt = (src.format or DEFAULT_IMAGE_FORMAT).lower()
            img = src.convert("RGB") if src.mode in ("L", "1", "LA") else src.copy()
    except (UnidentifiedImageError, OSError) as e:
        raise ValueError(f"Could not read image: {e}") from e

    logger.info(f"Image format: {fmt}, mode: {img.mode}, size: {img.size}")

    width, height = img.size
    if not width or not height:
        raise ValueError("Could not determine image dimensions")

    half_w, half_h = width // 2, height // 2
    boxes = [
        (0, 0, half_w, half_h),
        (half_w, 0, width, half_h),
        (0, half_h, half_w, height),
        (half_w, half_h, width, height),
    ]

    panels = [_encode(img, fmt)]
    panels.extend(_encode(img.crop(box), fmt) for box in boxes)
    logger.info(f"Generated {len(panels)} panels with preserved color")
    return panels


def original_as_panel(image: bytes, content_type: str) -> List[str]:
    """The unmodified upload as a single panel."""
    fmt = image_format_from_mime(content_type) or DEFAULT_IMAGE_FORMAT
    return [to_data_uri(image, f"image/{fmt}")]
