from __future__ import annotations

from dataclasses import dataclass

SUPPORTED_EDIT_SIZES: tuple[int, ...] = (1024, 1536, 2048)


@dataclass(slots=True, frozen=True)
class EditRequest:
    base: bytes
    prompt: str
    size: int
    n: int = 1
    mask: bytes | None = None

    @property
    def size_label(self) -> str:
        return f"{self.size}x{self.size}"


@dataclass(slots=True, frozen=True)
class InlineBytes:
    data: bytes


@dataclass(slots=True, frozen=True)
class RemoteUrl:
    url: str


VariantPayload = InlineBytes | RemoteUrl
