from __future__ import annotations

import io
import logging

from PIL import Image, UnidentifiedImageError

from garment_recolor.errors import DecodeError, InvalidDimensionsError

logger = logging.getLogger(__name__)


def open_image(buffer: bytes) -> Image.Image:
    """Decode `buffer` fully; raise DecodeError on anything PIL cannot read."""
    if not buffer:
        raise DecodeError("empty image buffer")
    try:
        image = Image.open(io.BytesIO(buffer))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeError(f"cannot decode image: {exc}") from exc
    return image


def open_rgba(buffer: bytes) -> Image.Image:
    image = open_image(buffer)
    if image.mode != "RGBA":
        image = image.convert("RGBA")
    return image


def encode_png(image: Image.Image) -> bytes:
    out = io.BytesIO()
    image.save(out, format="PNG")
    return out.getvalue()


def normalize(buffer: bytes) -> bytes:
    """Return `buffer` as an RGBA PNG.

    The edit service rejects images without an alpha channel, so opaque
    sources get a fully opaque one. RGBA PNG input is returned unchanged.
    """
    image = open_image(buffer)
    if image.format == "PNG" and image.mode == "RGBA":
        return buffer

    logger.debug("normalizing %s/%s %dx%d to RGBA PNG", image.format, image.mode, *image.size)
    return encode_png(image.convert("RGBA"))


def read_dimensions(buffer: bytes) -> tuple[int, int]:
    try:
        image = Image.open(io.BytesIO(buffer))
        width, height = image.size
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise InvalidDimensionsError(f"cannot read image dimensions: {exc}") from exc
    if not width or not height:
        raise InvalidDimensionsError(f"invalid image dimensions: {width}x{height}")
    return width, height
