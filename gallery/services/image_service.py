"""
Image transformation for uploaded files.

Produces the stored "full" variant, bounded to a maximum dimension, and a
square thumbnail cropped to fill. Images already within the bound are stored
as the original bytes without re-encoding.
"""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

JPEG_QUALITY = 90
# Thumbnails fall back to PNG when the source format cannot hold the square.
THUMBNAIL_FALLBACK_FORMAT = "PNG"
THUMBNAIL_FALLBACK_TYPE = "image/png"
# Largest side a format can encode, where it has one.
FORMAT_MAX_SIDE = {"ICO": 256}
# Modes the JPEG encoder accepts; anything else is flattened to RGB first.
JPEG_MODES = ("RGB", "L", "CMYK")


class ImageProcessingError(Exception):
    """Raised when the decoder or encoder cannot handle an uploaded image."""


@dataclass(frozen=True, slots=True)
class TransformedImage:
    """Encoded variants of one upload plus its original dimensions."""

    full: bytes
    thumbnail: bytes
    width: Optional[int]
    height: Optional[int]
    resized: bool
    # Set when the thumbnail was encoded in a different format than the source.
    thumbnail_type: Optional[str] = None


def _dimensions(image: Image.Image) -> Tuple[Optional[int], Optional[int]]:
    width, height = image.size
    if width and height and width > 0 and height > 0:
        return width, height
    return None, None


def _thumbnail_format(fmt: Optional[str], size: int) -> Optional[str]:
    if fmt and (fmt not in Image.SAVE or FORMAT_MAX_SIDE.get(fmt, size) < size):
        return THUMBNAIL_FALLBACK_FORMAT
    return fmt


def _encode(image: Image.Image, fmt: Optional[str]) -> bytes:
    if not fmt:
        raise ImageProcessingError("Decoded image has no known format")
    params = {}
    if fmt == "JPEG":
        if image.mode not in JPEG_MODES:
            image = image.convert("RGB")
        params["quality"] = JPEG_QUALITY
    buffer = io.BytesIO()
    image.save(buffer, format=fmt, **params)
    return buffer.getvalue()


class ImageTransformer:
    """Resizes oversized images and generates thumbnails with Pillow."""

    def __init__(self, max_dimension: int = 2000, thumbnail_size: int = 300):
        self.max_dimension = max_dimension
        self.thumbnail_size = thumbnail_size

    def needs_resize(self, width: Optional[int], height: Optional[int]) -> bool:
        if width is None or height is None:
            return False
        return width > self.max_dimension or height > self.max_dimension

    def fit_inside(self, image: Image.Image) -> Image.Image:
        """Scale down to fit the bounding square, keeping the aspect ratio."""
        resized = image.copy()
        resized.thumbnail(
            (self.max_dimension, self.max_dimension), Image.Resampling.LANCZOS
        )
        return resized

    def cover(self, image: Image.Image) -> Image.Image:
        """Scale and centre-crop to the thumbnail square."""
        return ImageOps.fit(
            image,
            (self.thumbnail_size, self.thumbnail_size),
            method=Image.Resampling.LANCZOS,
        )

    def transform(self, data: bytes) -> TransformedImage:
        try:
            with Image.open(io.BytesIO(data)) as image:
                image.load()
                fmt = image.format
                width, height = _dimensions(image)

                resized = self.needs_resize(width, height)
                if resized:
                    full = _encode(self.fit_inside(image), fmt)
                else:
                    full = data
                thumb_fmt = _thumbnail_format(fmt, self.thumbnail_size)
                thumbnail = _encode(self.cover(image), thumb_fmt)
        except ImageProcessingError:
            raise
        except (UnidentifiedImageError, Image.DecompressionBombError) as exc:
            raise ImageProcessingError(f"Cannot decode image: {exc}") from exc
        except Exception as exc:
            # Pillow plugins also raise SyntaxError, struct.error, EOFError and IndexError.
            raise ImageProcessingError(f"Image processing failed: {exc}") from exc

        logger.debug(
            "Transformed %sx%s %s image resized=%s", width, height, fmt, resized
        )
        return TransformedImage(
            full=full,
            thumbnail=thumbnail,
            width=width,
            height=height,
            resized=resized,
            thumbnail_type=THUMBNAIL_FALLBACK_TYPE if thumb_fmt != fmt else None,
        )
