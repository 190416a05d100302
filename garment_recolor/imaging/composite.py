from __future__ import annotations

import logging
from collections.abc import Sequence

from PIL import Image

from garment_recolor.imaging.normalize import encode_png, open_rgba, read_dimensions

logger = logging.getLogger(__name__)


def fit_to_canvas(layer: Image.Image, size: tuple[int, int]) -> Image.Image:
    if layer.size == size:
        return layer
    return layer.resize(size, Image.Resampling.LANCZOS)


def composite(template: bytes, layers: Sequence[bytes]) -> bytes:
    """Blend `layers` over `template` in order ("over" operator).

    The canvas keeps the template's dimensions; layers of another size are
    resampled onto it first.
    """
    width, height = read_dimensions(template)
    canvas = open_rgba(template)
    if not layers:
        return encode_png(canvas)

    logger.debug("compositing %d layer(s) on %dx%d canvas", len(layers), width, height)
    for layer_buffer in layers:
        layer = fit_to_canvas(open_rgba(layer_buffer), (width, height))
        canvas = Image.alpha_composite(canvas, layer)
    return encode_png(canvas)
