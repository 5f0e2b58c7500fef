"""Image processing utilities using Pillow.

Provides:
- Dimension extraction and SHA-256 hashing of generated images
- Thumbnails for persisted assets (max 512px)
- High-resolution re-rendering for downloads (longer edge 2048px)
"""

from __future__ import annotations

import hashlib
import io
import logging
from typing import Tuple

from PIL import Image

logger = logging.getLogger(__name__)

MAX_THUMBNAIL_SIZE = 512
THUMBNAIL_QUALITY = 85

# Longer edge of a re-rendered download
TARGET_RESOLUTION = 2048

FORMAT_TO_MIME = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "JPG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


def compute_sha256(data: bytes) -> str:
    """Lowercase hex SHA-256 of ``data``."""
    return hashlib.sha256(data).hexdigest()


def get_image_dimensions(data: bytes) -> Tuple[int, int]:
    """Extract (width, height) from image bytes.

    Raises:
        ValueError: If data is not a valid image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except Exception as e:
        raise ValueError(f"Cannot read image dimensions: {e}") from e


def scaled_size(width: int, height: int, target: int) -> Tuple[int, int]:
    """Size whose longer edge equals ``target``, preserving aspect ratio."""
    if width <= 0 or height <= 0:
        raise ValueError(f"Invalid image size {width}x{height}")
    ratio = target / max(width, height)
    return max(1, round(width * ratio)), max(1, round(height * ratio))


def _flatten_alpha(img: Image.Image) -> Image.Image:
    """Composite transparency onto white (JPEG has no alpha channel)."""
    if img.mode == "P":
        img = img.convert("RGBA")
    if img.mode in ("RGBA", "LA"):
        background = Image.new("RGB", img.size, (255, 255, 255))
        background.paste(img, mask=img.split()[-1])
        return background
    return img.convert("RGB")


def generate_thumbnail(
    data: bytes,
    max_size: int = MAX_THUMBNAIL_SIZE,
    output_format: str | None = None,
) -> Tuple[bytes, str]:
    """Shrink an image so its largest dimension is at most ``max_size``.

    Smaller images are re-encoded without resizing.

    Returns:
        Tuple of (thumbnail_bytes, media_type).

    Raises:
        ValueError: If input is not a valid image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            fmt = (output_format or img.format or "PNG").upper()
            if fmt == "JPG":
                fmt = "JPEG"

            if fmt == "JPEG" and img.mode != "RGB":
                img = _flatten_alpha(img)

            width, height = img.size
            if width > max_size or height > max_size:
                img = img.resize(scaled_size(width, height, max_size), Image.Resampling.LANCZOS)

            output = io.BytesIO()
            save_kwargs: dict = {}
            if fmt in ("JPEG", "WEBP"):
                save_kwargs["quality"] = THUMBNAIL_QUALITY
            if fmt in ("JPEG", "PNG"):
                save_kwargs["optimize"] = True
            img.save(output, format=fmt, **save_kwargs)
            return output.getvalue(), FORMAT_TO_MIME.get(fmt, "image/png")

    except Exception as e:
        raise ValueError(f"Cannot generate thumbnail: {e}") from e


def render_high_resolution(data: bytes, target: int = TARGET_RESOLUTION) -> Tuple[bytes, str, Tuple[int, int]]:
    """Redraw an image so its longer edge reaches ``target`` pixels.

    Aspect ratio is preserved, resampling is LANCZOS and the result is
    exported as PNG.

    Returns:
        Tuple of (png_bytes, media_type, (width, height)).

    Raises:
        ValueError: If input is not a valid image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            if img.mode not in ("RGB", "RGBA"):
                img = img.convert("RGBA" if "A" in img.getbands() or img.mode == "P" else "RGB")

            size = scaled_size(img.width, img.height, target)
            canvas = img.resize(size, Image.Resampling.LANCZOS)

            output = io.BytesIO()
            canvas.save(output, format="PNG")
            logger.debug(f"Re-rendered image {img.width}x{img.height} -> {size[0]}x{size[1]}")
            return output.getvalue(), "image/png", size

    except Exception as e:
        raise ValueError(f"Cannot re-render image: {e}") from e


def sniff_media_type(data: bytes, default: str = "image/png") -> str:
    """Media type from the image header, ``default`` if unreadable."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return FORMAT_TO_MIME.get((img.format or "").upper(), default)
    except Exception:
        return default
