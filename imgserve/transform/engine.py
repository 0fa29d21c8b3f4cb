"""Transform engine: decode, resize and re-encode raster images.

Pure functions over bytes. No filesystem or network access; the resize
service owns all I/O and caching.

Fit modes (both width and height given):
- contain: scale to fit inside the box, aspect preserved, no padding
- cover:   scale to fill the box, aspect preserved, centre-cropped
- fill:    stretch to exactly width x height

With a single axis the image is scaled proportionally to it. Output is
always JPEG.
"""

import io
import logging
from enum import Enum
from typing import Optional, Tuple

from PIL import Image, ImageOps

from ..config.server_config import MAX_DIMENSION
from ..utils.errors import ImageServiceError

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 75
OUTPUT_MIME_TYPE = "image/jpeg"

RESAMPLE = Image.Resampling.LANCZOS


class TransformError(ImageServiceError):
    """Base exception for transform failures."""
    pass


class DecodeError(TransformError):
    """Bytes are not a decodable raster image."""
    pass


class UnsupportedDimensions(TransformError):
    """Requested width/height is not a positive size."""
    pass


class FitMode(str, Enum):
    """How a source image maps into a width x height box."""
    CONTAIN = "contain"
    COVER = "cover"
    FILL = "fill"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'FitMode':
        """Parse a fit name, falling back to CONTAIN for anything unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.CONTAIN


def _check_axis(name: str, value: Optional[int], max_dimension: int) -> Optional[int]:
    if value is None:
        return None
    if value <= 0:
        raise UnsupportedDimensions(f"{name} must be positive, got {value}")
    return min(value, max_dimension)


def _scaled(value: float) -> int:
    return max(1, int(round(value)))


def _bounded(size: Tuple[int, int], max_dimension: int) -> Tuple[int, int]:
    """Shrink proportionally so neither axis exceeds max_dimension."""
    out_w, out_h = size
    longest = max(out_w, out_h)
    if longest <= max_dimension:
        return size
    scale = max_dimension / longest
    return min(max_dimension, _scaled(out_w * scale)), min(max_dimension, _scaled(out_h * scale))


def target_size(
    source: Tuple[int, int],
    width: Optional[int],
    height: Optional[int],
    fit: FitMode,
    max_dimension: int = MAX_DIMENSION
) -> Tuple[int, int]:
    """
    Compute output pixel size for a source size and request.

    For COVER this is the final canvas size (the crop box); the scaling
    step inside transform_image() picks the intermediate size itself.

    Args:
        source: (width, height) of the decoded source
        width: Requested width or None
        height: Requested height or None
        fit: Fit mode (only used when both axes are given)
        max_dimension: Bound for an axis derived from the source aspect
          ratio; with a single requested axis both are scaled down together

    Returns:
        (width, height) tuple, each at least 1
    """
    src_w, src_h = source

    if width and height:
        if fit in (FitMode.FILL, FitMode.COVER):
            return width, height
        scale = min(width / src_w, height / src_h)
        return min(width, _scaled(src_w * scale)), min(height, _scaled(src_h * scale))

    if width:
        return _bounded((width, _scaled(src_h * width / src_w)), max_dimension)

    return _bounded((_scaled(src_w * height / src_h), height), max_dimension)


def _flatten(img: Image.Image) -> Image.Image:
    """Convert to RGB, compositing any transparency onto white."""
    if img.mode == "P" and "transparency" in img.info:
        img = img.convert("RGBA")

    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.getchannel("A"))
        return background

    if img.mode != "RGB":
        return img.convert("RGB")
    return img


def decode_image(data: bytes) -> Image.Image:
    """
    Decode bytes into a fully loaded, orientation-corrected image.

    Raises:
        DecodeError: If the bytes are not a supported raster image
    """
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except Exception as e:
        raise DecodeError(f"Unsupported or corrupted image: {e}")

    try:
        img = ImageOps.exif_transpose(img)
    except Exception as e:
        # Malformed EXIF blocks are common; keep the stored orientation
        logger.debug(f"EXIF transpose skipped: {e}")

    return img


def transform_image(
    data: bytes,
    width: Optional[int] = None,
    height: Optional[int] = None,
    fit: Optional[str] = None,
    quality: int = DEFAULT_JPEG_QUALITY,
    max_dimension: int = MAX_DIMENSION
) -> bytes:
    """
    Resize an encoded image and re-encode it as JPEG.

    Args:
        data: Raw bytes of the source image
        width: Target width in px (clamped to max_dimension)
        height: Target height in px (clamped to max_dimension)
        fit: 'contain', 'cover' or 'fill'; anything else means 'contain'
        quality: JPEG quality
        max_dimension: Per-axis upper bound

    Returns:
        JPEG bytes

    Raises:
        UnsupportedDimensions: If an axis is <= 0 or neither axis is given
        DecodeError: If data cannot be decoded
    """
    width = _check_axis("width", width, max_dimension)
    height = _check_axis("height", height, max_dimension)
    if width is None and height is None:
        raise UnsupportedDimensions("At least one of width or height is required")

    mode = FitMode.parse(fit)
    img = decode_image(data)
    src_size = img.size
    img = _flatten(img)
    out_w, out_h = target_size(src_size, width, height, mode, max_dimension)

    if width and height and mode is FitMode.COVER:
        resized = ImageOps.fit(img, (out_w, out_h), method=RESAMPLE, centering=(0.5, 0.5))
    else:
        resized = img.resize((out_w, out_h), RESAMPLE)

    output = io.BytesIO()
    resized.save(output, format="JPEG", quality=quality)

    logger.debug(
        f"Transformed {src_size[0]}x{src_size[1]} -> {out_w}x{out_h} "
        f"(fit={mode.value}, {len(data)} -> {output.tell()} bytes)"
    )
    return output.getvalue()
