from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from PIL import ImageColor

from garment_recolor.config import settings
from garment_recolor.errors import GeometryChangedError
from garment_recolor.imaging.masks import mask_to_alpha
from garment_recolor.imaging.normalize import open_rgba
from garment_recolor.recolor.types import REGION_ORDER, ColorPalette, MaskSet

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GuardResult:
    passed: bool
    reason: str | None = None


@dataclass(slots=True)
class ColorCheckResult:
    region: str
    target: str
    mean_rgb: tuple[int, int, int]
    distance: float
    passed: bool


def parse_color(value: str) -> tuple[int, int, int]:
    """Hex (`#FF0000`) or CSS color name to an RGB triple."""
    try:
        rgb = ImageColor.getrgb(value)
    except ValueError as exc:
        raise ValueError(f"invalid color: {value}") from exc
    return rgb[0], rgb[1], rgb[2]


def check_geometry_locked(
    base: bytes,
    result: bytes,
    *,
    max_changed_ratio: float | None = None,
    alpha_tolerance: int | None = None,
) -> GuardResult:
    ratio_limit = settings.geometry_max_changed_ratio if max_changed_ratio is None else max_changed_ratio
    tolerance = settings.geometry_alpha_tolerance if alpha_tolerance is None else alpha_tolerance

    base_img = open_rgba(base)
    result_img = open_rgba(result)
    if base_img.size != result_img.size:
        return GuardResult(
            passed=False,
            reason=(
                "dimensions mismatch: "
                f"{base_img.size[0]}x{base_img.size[1]} vs {result_img.size[0]}x{result_img.size[1]}"
            ),
        )

    # Silhouette lives in the alpha channel.
    base_alpha = np.asarray(base_img, dtype=np.int16)[:, :, 3]
    result_alpha = np.asarray(result_img, dtype=np.int16)[:, :, 3]
    changed = int((np.abs(base_alpha - result_alpha) > tolerance).sum())
    ratio = changed / base_alpha.size

    logger.debug("geometry check: %d alpha pixels differ (%.4f%%)", changed, ratio * 100)
    if ratio > ratio_limit:
        return GuardResult(
            passed=False,
            reason=f"{ratio * 100:.2f}% alpha pixels differ (threshold {ratio_limit * 100:.2f}%)",
        )
    return GuardResult(passed=True)


def assert_geometry_locked(base: bytes, result: bytes, **kwargs: float) -> None:
    check = check_geometry_locked(base, result, **kwargs)
    if not check.passed:
        raise GeometryChangedError(f"GEOMETRY_CHANGED: {check.reason}")


def check_color_targets(
    result: bytes,
    masks: MaskSet,
    palette: ColorPalette,
    *,
    max_distance: float | None = None,
    white_threshold: int | None = None,
) -> list[ColorCheckResult]:
    """Compare the mean color inside each mask with its target color.

    Out-of-range regions are reported and logged, not raised; regions whose
    mask selects no pixel are left out.
    """
    limit = settings.color_target_max_distance if max_distance is None else max_distance
    threshold = settings.mask_white_threshold if white_threshold is None else white_threshold

    image = open_rgba(result)
    rgb = np.asarray(image, dtype=np.float64)[:, :, :3]
    checks: list[ColorCheckResult] = []

    for region in REGION_ORDER:
        mask = masks.get(region)
        target = palette.color_for(region)
        if not mask or not target:
            continue

        selected = mask_to_alpha(mask, image.size) > threshold
        if not selected.any():
            logger.warning("no pixels selected by %s mask", region)
            continue

        mean = rgb[selected].mean(axis=0)
        mean_rgb = (int(round(mean[0])), int(round(mean[1])), int(round(mean[2])))
        distance = float(np.linalg.norm(np.array(mean_rgb) - np.array(parse_color(target))))
        passed = distance <= limit
        if not passed:
            logger.warning(
                "%s color distance %.2f exceeds threshold %.2f (mean %s, target %s)",
                region,
                distance,
                limit,
                mean_rgb,
                target,
            )
        checks.append(
            ColorCheckResult(
                region=region,
                target=target,
                mean_rgb=mean_rgb,
                distance=distance,
                passed=passed,
            )
        )
    return checks
