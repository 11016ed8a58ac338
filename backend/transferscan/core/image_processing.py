"""Image normalization before recognition.

Screenshots and camera photos are auto-oriented, flattened to RGB and
downscaled so backends get a small JPEG that still keeps OCR-legible text.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

# ------------------------------------------------------------------
# Constants
# ------------------------------------------------------------------

DEFAULT_MAX_WIDTH = 1920
DEFAULT_MAX_HEIGHT = 1080
DEFAULT_QUALITY = 85


@dataclass
class NormalizedImage:
    content: bytes
    width: int
    height: int
    original_size: int
    optimized_size: int

    @property
    def compression_ratio(self) -> float:
        return self.original_size / max(self.optimized_size, 1)


def normalize_for_recognition(
    content: bytes,
    *,
    max_width: int = DEFAULT_MAX_WIDTH,
    max_height: int = DEFAULT_MAX_HEIGHT,
    quality: int = DEFAULT_QUALITY,
) -> NormalizedImage:
    """Return a downscaled JPEG version of *content*.

    Raises ``ValueError`` when *content* is not a decodable image. When the
    re-encoded JPEG would be larger than the input, the original bytes are
    kept.
    """
    try:
        img = Image.open(io.BytesIO(content))
        img = ImageOps.exif_transpose(img)  # auto-orient
        img.load()
    except (UnidentifiedImageError, OSError) as exc:
        msg = "content is not a decodable image"
        raise ValueError(msg) from exc

    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")

    resized = img.copy()
    resized.thumbnail((max_width, max_height), Image.LANCZOS)

    buf = io.BytesIO()
    resized.save(buf, format="JPEG", quality=quality, optimize=True)
    compressed = buf.getvalue()

    if len(compressed) >= len(content):
        logger.debug("Re-encoded image is not smaller (%d >= %d bytes), keeping original", len(compressed), len(content))
        return NormalizedImage(
            content=content,
            width=img.width,
            height=img.height,
            original_size=len(content),
            optimized_size=len(content),
        )

    logger.info(
        "Normalized image %dx%d -> %dx%d, %d -> %d bytes",
        img.width,
        img.height,
        resized.width,
        resized.height,
        len(content),
        len(compressed),
    )
    return NormalizedImage(
        content=compressed,
        width=resized.width,
        height=resized.height,
        original_size=len(content),
        optimized_size=len(compressed),
    )
