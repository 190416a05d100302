from __future__ import annotations

from garment_recolor.config import settings
from garment_recolor.recolor.types import ColorPalette

MASKLESS_PRESERVATION = (
    "Keep the exact same design composition, fabric texture, wrinkles, seams, "
    "highlights, and shadows. Do not alter logos, text, or background. "
    "Preserve all visual details except colors."
)


def build_region_prompt(color: str) -> str:
    return (
        f"Recolor only the white pixels of the mask to {color}. "
        "Preserve all fabric texture, wrinkles, seams, and shadows. "
        "Do not modify logos or text."
    )


def build_maskless_prompt(palette: ColorPalette, garment: str | None = None) -> str:
    clauses = [f"main body to {palette.primary}"]
    if palette.secondary:
        clauses.append(f"sleeves/accents to {palette.secondary}")
    if palette.tertiary:
        clauses.append(f"trims/borders to {palette.tertiary}")

    subject = garment or settings.garment_description
    return f"Recolor this {subject}: change {', '.join(clauses)}. {MASKLESS_PRESERVATION}"


def build_variant_prompt(palette: ColorPalette, garment: str | None = None) -> str:
    subject = garment or settings.garment_description
    lines = [f"Recreate this exact {subject} design using these specific colors:"]
    lines.append(f"- Primary color: {palette.primary}")
    if palette.secondary:
        lines.append(f"- Secondary color: {palette.secondary}")
    if palette.tertiary:
        lines.append(f"- Tertiary/accent color: {palette.tertiary}")
    lines.append("")
    lines.append("Keep the exact same style, design patterns, stripes, graphics, and overall look.")
    lines.append("Only change the colors to match the ones specified above.")
    lines.append("Maintain all details, seams, wrinkles, shadows, and textures.")
    lines.append("Do not add or remove any design elements.")
    return "\n".join(lines)
