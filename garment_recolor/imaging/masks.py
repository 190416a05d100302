from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from PIL import Image

from garment_recolor.config import settings
from garment_recolor.imaging.composite import fit_to_canvas
from garment_recolor.imaging.normalize import encode_png, open_rgba

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ProtectionBox:
    x: float
    y: float
    w: float
    h: float


def _resize_nearest(image: Image.Image, size: tuple[int, int]) -> Image.Image:
    if image.size == size:
        return image
    # Nearest keeps mask edges hard.
    return image.resize(size, Image.Resampling.NEAREST)


def mask_to_alpha(mask: bytes, size: tuple[int, int]) -> np.ndarray:
    """Return a uint8 (h, w) stencil, 255 on editable pixels.

    A pixel is editable in proportion to both its brightness and its opacity,
    so black or transparent pixels are locked.
    """
    rgba = _resize_nearest(open_rgba(mask), size)
    arr = np.asarray(rgba, dtype=np.float32)
    luminance = arr[:, :, :3].mean(axis=2)
    alpha = luminance * (arr[:, :, 3] / 255.0)
    return np.clip(np.round(alpha), 0, 255).astype(np.uint8)


def fit_mask(mask: bytes, width: int, height: int) -> bytes:
    rgba = open_rgba(mask)
    if rgba.size != (width, height):
        logger.debug("resizing mask %dx%d -> %dx%d", *rgba.size, width, height)
    return encode_png(_resize_nearest(rgba, (width, height)))


def invert_mask(mask: bytes) -> bytes:
    """Swap editable and locked areas; alpha is left as is.

    Silhouette masks are drawn with the garment in black, which is the
    opposite of what the edit service expects.
    """
    arr = np.asarray(open_rgba(mask), dtype=np.uint8).copy()
    arr[:, :, :3] = 255 - arr[:, :, :3]
    return encode_png(Image.fromarray(arr))


def apply_protection_boxes(mask: bytes, boxes: Sequence[ProtectionBox]) -> bytes:
    """Paint `boxes` black so logos and numbers under them stay locked."""
    if not boxes:
        return mask

    arr = np.asarray(open_rgba(mask), dtype=np.uint8).copy()
    h, w = arr.shape[:2]
    for box in boxes:
        x1 = max(0, int(np.floor(box.x)))
        y1 = max(0, int(np.floor(box.y)))
        x2 = min(w, int(np.ceil(box.x + box.w)))
        y2 = min(h, int(np.ceil(box.y + box.h)))
        if x2 <= x1 or y2 <= y1:
            continue
        logger.debug("protecting box x=%d y=%d w=%d h=%d", x1, y1, x2 - x1, y2 - y1)
        arr[y1:y2, x1:x2, :3] = 0
    return encode_png(Image.fromarray(arr))


def full_image_mask(width: int, height: int) -> bytes:
    return encode_png(Image.new("RGBA", (width, height), (255, 255, 255, 255)))


def validate_mask(mask: bytes, *, threshold: int | None = None) -> float:
    """Return the editable fraction of `mask`; raise if nothing is editable."""
    limit = settings.mask_white_threshold if threshold is None else threshold
    rgba = open_rgba(mask)
    stencil = mask_to_alpha(mask, rgba.size)
    editable = int((stencil > limit).sum())
    total = stencil.size

    if editable == 0:
        raise ValueError("mask is completely black: no editable area defined")
    if editable == total:
        logger.warning("mask is completely white: no locked areas")
    return editable / total


def clip_layer_to_mask(layer: bytes, mask: bytes, size: tuple[int, int]) -> bytes:
    """Resample `layer` to `size` and keep it only where `mask` is editable."""
    rgba = fit_to_canvas(open_rgba(layer), size)
    arr = np.asarray(rgba, dtype=np.uint8).copy()
    stencil = mask_to_alpha(mask, size)
    arr[:, :, 3] = np.minimum(arr[:, :, 3], stencil)
    return encode_png(Image.fromarray(arr))


def prepare_mask(
    mask: bytes,
    width: int,
    height: int,
    *,
    invert: bool = False,
    boxes: Sequence[ProtectionBox] = (),
) -> bytes:
    """Fit `mask` to the template, optionally invert it, lock `boxes`, validate.

    Raises ValueError when the prepared mask leaves nothing editable.
    """
    prepared = fit_mask(mask, width, height)
    if invert:
        prepared = invert_mask(prepared)
    prepared = apply_protection_boxes(prepared, boxes)
    validate_mask(prepared)
    return prepared
