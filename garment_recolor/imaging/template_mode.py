from __future__ import annotations

import logging

import numpy as np
from PIL import Image

from garment_recolor.errors import MasksMissingError
from garment_recolor.imaging.guards import parse_color
from garment_recolor.imaging.masks import mask_to_alpha
from garment_recolor.imaging.normalize import encode_png, open_rgba
from garment_recolor.recolor.types import REGION_ORDER, ColorPalette, MaskSet

logger = logging.getLogger(__name__)

REQUIRED_TEMPLATE_MASKS: tuple[str, ...] = ("body", "sleeves")


def _multiply_layer(
    canvas_rgb: np.ndarray,
    stencil: np.ndarray,
    color: tuple[int, int, int],
) -> np.ndarray:
    # Multiply keeps the template's shading; the stencil fades it in.
    tint = np.array(color, dtype=np.float32)[None, None, :] / 255.0
    multiplied = canvas_rgb * tint
    a3 = (stencil.astype(np.float32) / 255.0)[:, :, None]
    return multiplied * a3 + canvas_rgb * (1.0 - a3)


def recolor_template(template: bytes, palette: ColorPalette, masks: MaskSet) -> bytes:
    """Recolor locally with solid multiply layers; no edit service involved.

    Output geometry is identical to the template. Body and sleeves masks are
    required, trims is optional.
    """
    missing = [region for region in REQUIRED_TEMPLATE_MASKS if not masks.get(region)]
    if missing:
        raise MasksMissingError(missing)

    image = open_rgba(template)
    arr = np.asarray(image, dtype=np.float32)
    canvas_rgb = arr[:, :, :3]

    for region in REGION_ORDER:
        mask = masks.get(region)
        color = palette.color_for(region)
        if not mask or not color:
            continue
        logger.debug("template layer %s -> %s", region, color)
        stencil = mask_to_alpha(mask, image.size)
        canvas_rgb = _multiply_layer(canvas_rgb, stencil, parse_color(color))

    out = np.empty(arr.shape, dtype=np.uint8)
    out[:, :, :3] = np.clip(np.round(canvas_rgb), 0, 255).astype(np.uint8)
    out[:, :, 3] = arr[:, :, 3].astype(np.uint8)
    return encode_png(Image.fromarray(out))
