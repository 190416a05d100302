from __future__ import annotations

import logging
from collections.abc import Sequence

from PIL import Image

from garment_recolor.config import settings
from garment_recolor.edit.client import VariantEditClient, get_default_edit_client
from garment_recolor.errors import InvalidRequest
from garment_recolor.imaging.composite import composite
from garment_recolor.imaging.masks import (
    ProtectionBox,
    clip_layer_to_mask,
    full_image_mask,
    prepare_mask,
)
from garment_recolor.imaging.normalize import encode_png, open_image, open_rgba
from garment_recolor.recolor.prompts import (
    build_maskless_prompt,
    build_region_prompt,
    build_variant_prompt,
)
from garment_recolor.recolor.types import (
    REGION_ORDER,
    ColorPalette,
    MaskDriven,
    Maskless,
    MaskSet,
    RecolorStrategy,
)

logger = logging.getLogger(__name__)


def select_edit_size(width: int, height: int, sizes: Sequence[int] | None = None) -> int:
    """Largest bucket the template reaches, or the smallest bucket."""
    buckets = sorted(sizes or settings.recolor_edit_sizes)
    longest = max(width, height)
    chosen = buckets[0]
    for bucket in buckets:
        if longest >= bucket:
            chosen = bucket
    return chosen


def select_strategy(masks: MaskSet | None) -> RecolorStrategy:
    if masks is not None and masks.has_any():
        return MaskDriven(masks)
    return Maskless()


async def recolor(
    template: bytes,
    palette: ColorPalette,
    masks: MaskSet | None = None,
    *,
    client: VariantEditClient | None = None,
    invert_masks: bool = False,
    protect: Sequence[ProtectionBox] = (),
) -> bytes:
    """Recolor `template` to `palette` and return a PNG buffer.

    With masks, each region (body, sleeves, trims) that has both a mask and
    a color gets its own masked edit and the results are layered over the
    template in that order. Masks are fitted to the template, inverted when
    `invert_masks` is set, and locked under the `protect` boxes before any
    edit is sent. Without masks a single edit addresses every color through
    the prompt. Any edit failure fails the whole call.
    """
    edit_client = client or get_default_edit_client()
    width, height = open_image(template).size
    size = select_edit_size(width, height)
    strategy = select_strategy(masks)

    if isinstance(strategy, MaskDriven):
        logger.info("mask-driven recolor at %dx%d", size, size)
        return await _recolor_masked(
            template,
            palette,
            strategy.masks,
            size,
            (width, height),
            edit_client,
            invert=invert_masks,
            boxes=protect,
        )

    logger.info("maskless recolor at %dx%d", size, size)
    prompt = build_maskless_prompt(palette)
    return await edit_client.edit_once(template, prompt, size)


async def _recolor_masked(
    template: bytes,
    palette: ColorPalette,
    masks: MaskSet,
    size: int,
    canvas_size: tuple[int, int],
    edit_client: VariantEditClient,
    *,
    invert: bool = False,
    boxes: Sequence[ProtectionBox] = (),
) -> bytes:
    width, height = canvas_size
    layers: list[bytes] = []

    for region in REGION_ORDER:
        mask = masks.get(region)
        color = palette.color_for(region)
        if not mask:
            # Unmasked colors are dropped, not sent through a maskless edit.
            if color:
                logger.warning("no %s mask; color %s is not applied", region, color)
            continue
        if not color:
            logger.info("skipping %s: mask given without a color", region)
            continue

        try:
            mask = prepare_mask(mask, width, height, invert=invert, boxes=boxes)
        except ValueError as exc:
            raise InvalidRequest(f"{region} mask: {exc}") from exc

        logger.info("recoloring %s to %s", region, color)
        edited = await edit_client.edit_once(
            template,
            build_region_prompt(color),
            size,
            mask=mask,
        )
        layers.append(clip_layer_to_mask(edited, mask, canvas_size))

    if not layers:
        logger.info("no region has both a mask and a color; returning template")
        return encode_png(open_rgba(template))

    return composite(template, layers)


async def recolor_variants(
    template: bytes,
    palette: ColorPalette,
    n: int = 1,
    *,
    client: VariantEditClient | None = None,
) -> list[bytes]:
    """Maskless multi-variant recolor, each variant at the template's size."""
    edit_client = client or get_default_edit_client()
    width, height = open_image(template).size
    size = select_edit_size(width, height, settings.variant_edit_sizes)

    variants = await edit_client.edit_variants(
        template,
        build_variant_prompt(palette),
        size,
        n,
        mask=full_image_mask(width, height),
    )

    results: list[bytes] = []
    for variant in variants:
        image = open_rgba(variant)
        if image.size != (width, height):
            logger.debug("resizing variant %dx%d -> %dx%d", *image.size, width, height)
            image = image.resize((width, height), Image.Resampling.LANCZOS)
        results.append(encode_png(image))
    return results
