"""
Pytest configuration and shared fixtures for the recolor tests.

Provides image factories and scripted stand-ins for the image edit
service so the pipeline can be exercised without network access.
"""

import io
import struct
import zlib

import pytest
from PIL import Image

from garment_recolor.edit.client import VariantEditClient
from garment_recolor.edit.types import InlineBytes


def _encode(image, fmt):
    out = io.BytesIO()
    image.save(out, format=fmt)
    return out.getvalue()


@pytest.fixture
def make_image():
    """
    Build an encoded image.

    Returns:
        Callable (size, color, mode="RGB", fmt="PNG") -> bytes
    """

    def _make(size=(64, 64), color=(128, 128, 128), mode="RGB", fmt="PNG"):
        return _encode(Image.new(mode, size, color), fmt)

    return _make


@pytest.fixture
def make_mask():
    """
    Build a mask that is white inside `box` (x1, y1, x2, y2) and black elsewhere.
    """

    def _make(size=(64, 64), box=None):
        image = Image.new("RGBA", size, (0, 0, 0, 255))
        if box is None:
            box = (0, 0, size[0], size[1])
        image.paste((255, 255, 255, 255), box)
        return _encode(image, "PNG")

    return _make


def _png_chunk(kind, payload):
    crc = zlib.crc32(kind + payload) & 0xFFFFFFFF
    return struct.pack(">I", len(payload)) + kind + payload + struct.pack(">I", crc)


@pytest.fixture
def oversized_png():
    """PNG header declaring 20000x20000 pixels, past Pillow's decompression bomb limit."""
    ihdr = struct.pack(">IIBBBBB", 20000, 20000, 8, 2, 0, 0, 0)
    return b"\x89PNG\r\n\x1a\n" + _png_chunk(b"IHDR", ihdr) + _png_chunk(b"IEND", b"")


class ScriptedEditAdapter:
    """Edit adapter replaying a list of outcomes, one per call.

    An outcome is an exception to raise, a list of payloads, or a callable
    taking the request and returning payloads.
    """

    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.requests = []

    async def edit(self, request):
        self.requests.append(request)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(request)
        return outcome


class RecordingSleep:
    def __init__(self):
        self.waits = []

    async def __call__(self, seconds):
        self.waits.append(seconds)


@pytest.fixture
def scripted_adapter():
    return ScriptedEditAdapter


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def echo_outcome():
    """Outcome returning the normalized base image for every variant."""

    def _echo(request):
        return [InlineBytes(request.base) for _ in range(request.n)]

    return _echo


@pytest.fixture
def solid_outcome():
    """Outcome factory returning `n` solid images of `color` at the request size."""

    def _factory(color):
        def _outcome(request):
            image = _encode(Image.new("RGBA", (request.size, request.size), color), "PNG")
            return [InlineBytes(image) for _ in range(request.n)]

        return _outcome

    return _factory


@pytest.fixture
def make_client(recording_sleep):
    def _make(adapter, **kwargs):
        kwargs.setdefault("sleep", recording_sleep)
        kwargs.setdefault("backoff_seconds", 1.0)
        kwargs.setdefault("max_retries", 3)
        return VariantEditClient(adapter, **kwargs)

    return _make
