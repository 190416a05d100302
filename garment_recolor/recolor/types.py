from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

REGION_ORDER: tuple[str, ...] = ("body", "sleeves", "trims")

# Palette slot that colors each garment region.
REGION_SLOTS: dict[str, str] = {
    "body": "primary",
    "sleeves": "secondary",
    "trims": "tertiary",
}


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    value = value.strip()
    return value or None


@dataclass(slots=True, frozen=True)
class ColorPalette:
    primary: str
    secondary: str | None = None
    tertiary: str | None = None

    def __post_init__(self) -> None:
        primary = _clean(self.primary)
        if primary is None:
            raise ValueError("palette primary color is required")
        object.__setattr__(self, "primary", primary)
        object.__setattr__(self, "secondary", _clean(self.secondary))
        object.__setattr__(self, "tertiary", _clean(self.tertiary))

    def color_for(self, region: str) -> str | None:
        return getattr(self, REGION_SLOTS[region])


@dataclass(slots=True, frozen=True)
class MaskSet:
    body: bytes | None = None
    sleeves: bytes | None = None
    trims: bytes | None = None

    def get(self, region: str) -> bytes | None:
        return getattr(self, region)

    def items(self) -> Iterator[tuple[str, bytes]]:
        """Populated masks in compositing order."""
        for region in REGION_ORDER:
            mask = self.get(region)
            if mask:
                yield region, mask

    def has_any(self) -> bool:
        return any(True for _ in self.items())


@dataclass(slots=True, frozen=True)
class MaskDriven:
    masks: MaskSet


@dataclass(slots=True, frozen=True)
class Maskless:
    pass


RecolorStrategy = MaskDriven | Maskless
