from __future__ import annotations

import base64
import logging
import time

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import Response
from pydantic import TypeAdapter, ValidationError

from garment_recolor.api.deps import get_edit_client
from garment_recolor.config import settings
from garment_recolor.edit.client import VariantEditClient
from garment_recolor.errors import (
    EditExhaustedError,
    GeometryChangedError,
    InvalidRequest,
    MasksMissingError,
    RecolorError,
)
from garment_recolor.imaging.guards import assert_geometry_locked, check_color_targets
from garment_recolor.imaging.masks import ProtectionBox
from garment_recolor.imaging.normalize import read_dimensions
from garment_recolor.imaging.template_mode import recolor_template
from garment_recolor.recolor.pipeline import recolor, recolor_variants
from garment_recolor.recolor.types import ColorPalette, MaskSet
from garment_recolor.schemas import RecolorVariantsResponse


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recolor", tags=["recolor"])

_protection_boxes = TypeAdapter(list[ProtectionBox])


def _build_palette(primary: str, secondary: str | None, tertiary: str | None) -> ColorPalette:
    try:
        return ColorPalette(primary=primary, secondary=secondary, tertiary=tertiary)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "BAD_INPUT", "message": str(exc)},
        ) from exc


def _parse_protection_boxes(raw: str | None) -> list[ProtectionBox]:
    """Parse a JSON list of {"x", "y", "w", "h"} boxes in template pixels."""
    if not raw:
        return []
    try:
        return _protection_boxes.validate_json(raw)
    except ValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "BAD_INPUT", "message": f"invalid protect_boxes: {exc.error_count()} error(s)"},
        ) from exc


async def _read_optional(upload: UploadFile | None) -> bytes | None:
    if upload is None:
        return None
    data = await upload.read()
    return data or None


def _to_http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, MasksMissingError):
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "MASKS_MISSING", "message": str(exc), "missing": exc.missing},
        )
    if isinstance(exc, GeometryChangedError):
        return HTTPException(
            status_code=422,
            detail={"error": "GEOMETRY_CHANGED", "message": str(exc)},
        )
    if isinstance(exc, EditExhaustedError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "EDIT_EXHAUSTED",
                "message": str(exc),
                "attempts": exc.attempts,
                "status": exc.last_error.status,
            },
        )
    if isinstance(exc, InvalidRequest):
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "INVALID_REQUEST", "message": str(exc), "status": exc.status},
        )
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"error": "BAD_INPUT", "message": str(exc)},
    )


def _png(data: bytes, started: float) -> Response:
    return Response(
        content=data,
        media_type="image/png",
        headers={"X-Duration-Ms": str(int((time.monotonic() - started) * 1000))},
    )


@router.post("", response_class=Response)
async def recolor_garment(
    template: UploadFile = File(...),
    primary: str = Form(...),
    secondary: str | None = Form(None),
    tertiary: str | None = Form(None),
    body_mask: UploadFile | None = File(None),
    sleeves_mask: UploadFile | None = File(None),
    trims_mask: UploadFile | None = File(None),
    invert_masks: bool = Form(False),
    protect_boxes: str | None = Form(None),
    client: VariantEditClient = Depends(get_edit_client),
) -> Response:
    started = time.monotonic()
    palette = _build_palette(primary, secondary, tertiary)
    boxes = _parse_protection_boxes(protect_boxes)
    masks = MaskSet(
        body=await _read_optional(body_mask),
        sleeves=await _read_optional(sleeves_mask),
        trims=await _read_optional(trims_mask),
    )

    try:
        result = await recolor(
            await template.read(),
            palette,
            masks,
            client=client,
            invert_masks=invert_masks,
            protect=boxes,
        )
    except (RecolorError, ValueError) as exc:
        logger.error("recolor failed: %s", exc)
        raise _to_http_error(exc) from exc
    return _png(result, started)


@router.post("/template", response_class=Response)
async def recolor_garment_template(
    template: UploadFile = File(...),
    primary: str = Form(...),
    secondary: str | None = Form(None),
    tertiary: str | None = Form(None),
    body_mask: UploadFile | None = File(None),
    sleeves_mask: UploadFile | None = File(None),
    trims_mask: UploadFile | None = File(None),
) -> Response:
    started = time.monotonic()
    palette = _build_palette(primary, secondary, tertiary)
    masks = MaskSet(
        body=await _read_optional(body_mask),
        sleeves=await _read_optional(sleeves_mask),
        trims=await _read_optional(trims_mask),
    )
    template_bytes = await template.read()

    try:
        result = recolor_template(template_bytes, palette, masks)
        assert_geometry_locked(template_bytes, result)
        color_checks = check_color_targets(result, masks, palette)
    except (RecolorError, ValueError) as exc:
        logger.error("template recolor failed: %s", exc)
        raise _to_http_error(exc) from exc

    response = _png(result, started)
    response.headers["X-Color-Check"] = ",".join(
        f"{c.region}={'pass' if c.passed else 'warn'}:{c.distance:.1f}" for c in color_checks
    )
    return response


@router.post("/variants", response_model=RecolorVariantsResponse)
async def recolor_garment_variants(
    template: UploadFile = File(...),
    primary: str = Form(...),
    secondary: str | None = Form(None),
    tertiary: str | None = Form(None),
    n: int = Form(1),
    client: VariantEditClient = Depends(get_edit_client),
) -> RecolorVariantsResponse:
    if n < 1 or n > settings.max_variants:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "BAD_INPUT", "message": f"n must be between 1 and {settings.max_variants}"},
        )
    palette = _build_palette(primary, secondary, tertiary)
    template_bytes = await template.read()

    try:
        variants = await recolor_variants(template_bytes, palette, n, client=client)
        width, height = read_dimensions(template_bytes)
    except (RecolorError, ValueError) as exc:
        logger.error("variant recolor failed: %s", exc)
        raise _to_http_error(exc) from exc

    return RecolorVariantsResponse(
        count=len(variants),
        width=width,
        height=height,
        variants=[base64.b64encode(v).decode("ascii") for v in variants],
    )
