import asyncio
import io

import httpx
import pytest
from PIL import Image

from garment_recolor.edit.types import InlineBytes, RemoteUrl
from garment_recolor.errors import (
    DecodeError,
    EditExhaustedError,
    InvalidRequest,
    RateLimited,
    ServiceUnavailable,
)


def _decode(buffer):
    return Image.open(io.BytesIO(buffer))


@pytest.mark.parametrize("n", [1, 2, 3, 5])
def test_returns_exactly_n_decoded_variants(n, make_image, scripted_adapter, echo_outcome, make_client):
    adapter = scripted_adapter([echo_outcome])
    client = make_client(adapter)

    variants = asyncio.run(client.edit_variants(make_image(), "make it red", 1024, n))

    assert len(variants) == n
    for variant in variants:
        image = _decode(variant)
        assert image.format == "PNG"
        assert image.mode == "RGBA"
    assert adapter.requests[0].n == n


def test_base_and_mask_are_normalized_before_sending(make_image, scripted_adapter, echo_outcome, make_client):
    adapter = scripted_adapter([echo_outcome])
    client = make_client(adapter)

    asyncio.run(
        client.edit_variants(
            make_image(fmt="JPEG"),
            "recolor",
            1536,
            mask=make_image(mode="L", color=255),
        )
    )

    request = adapter.requests[0]
    assert _decode(request.base).mode == "RGBA"
    assert _decode(request.mask).mode == "RGBA"
    assert request.size_label == "1536x1536"


def test_retries_server_errors_then_succeeds(make_image, scripted_adapter, echo_outcome, make_client, recording_sleep):
    adapter = scripted_adapter(
        [
            ServiceUnavailable("bad gateway", status=503),
            ServiceUnavailable("bad gateway", status=503),
            echo_outcome,
        ]
    )
    client = make_client(adapter)

    variants = asyncio.run(client.edit_variants(make_image(), "recolor", 1024, 3))

    assert len(variants) == 3
    assert len(adapter.requests) == 3
    assert recording_sleep.waits == [1.0, 2.0]


def test_retries_reissue_identical_request(make_image, scripted_adapter, echo_outcome, make_client):
    adapter = scripted_adapter([RateLimited("slow down", status=429), echo_outcome])
    client = make_client(adapter)

    asyncio.run(client.edit_variants(make_image(), "recolor", 1024, 2))

    first, second = adapter.requests
    assert first == second


@pytest.mark.parametrize("max_retries", [1, 2, 3, 5])
def test_persistent_rate_limit_exhausts_with_bounded_backoff(
    max_retries, make_image, scripted_adapter, make_client, recording_sleep
):
    adapter = scripted_adapter([RateLimited("slow down", status=429)])
    client = make_client(adapter, max_retries=max_retries)

    with pytest.raises(EditExhaustedError) as info:
        asyncio.run(client.edit_variants(make_image(), "recolor", 1024))

    assert len(adapter.requests) == max_retries
    assert info.value.attempts == max_retries
    assert isinstance(info.value.last_error, RateLimited)
    assert info.value.last_error.status == 429
    assert recording_sleep.waits == [2.0**i for i in range(max_retries - 1)]


def test_backoff_scales_with_unit(make_image, scripted_adapter, make_client, recording_sleep):
    adapter = scripted_adapter([ServiceUnavailable("down", status=500)])
    client = make_client(adapter, backoff_seconds=0.5)

    with pytest.raises(EditExhaustedError):
        asyncio.run(client.edit_variants(make_image(), "recolor", 1024))

    assert recording_sleep.waits == [0.5, 1.0]


def test_invalid_request_short_circuits(make_image, scripted_adapter, make_client, recording_sleep):
    adapter = scripted_adapter([InvalidRequest("OpenAI API error: prompt rejected", status=400)])
    client = make_client(adapter)

    with pytest.raises(InvalidRequest) as info:
        asyncio.run(client.edit_once(make_image(), "bad prompt", 1024))

    assert len(adapter.requests) == 1
    assert recording_sleep.waits == []
    assert info.value.status == 400
    assert info.value.attempt == 0
    assert "prompt rejected" in str(info.value)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"prompt": "   ", "size": 1024, "n": 1},
        {"prompt": "ok", "size": 512, "n": 1},
        {"prompt": "ok", "size": 1024, "n": 0},
    ],
)
def test_local_validation_never_contacts_service(kwargs, make_image, scripted_adapter, echo_outcome, make_client):
    adapter = scripted_adapter([echo_outcome])
    client = make_client(adapter)

    with pytest.raises(InvalidRequest):
        asyncio.run(client.edit_variants(make_image(), kwargs["prompt"], kwargs["size"], kwargs["n"]))

    assert adapter.requests == []


def test_undecodable_base_raises_decode_error(scripted_adapter, echo_outcome, make_client):
    adapter = scripted_adapter([echo_outcome])
    client = make_client(adapter)

    with pytest.raises(DecodeError):
        asyncio.run(client.edit_once(b"not an image", "recolor", 1024))

    assert adapter.requests == []


def test_wrong_variant_count_fails_whole_attempt(make_image, scripted_adapter, make_client, recording_sleep):
    one = InlineBytes(make_image(mode="RGBA"))
    adapter = scripted_adapter([[one], [one, one]])
    client = make_client(adapter)

    variants = asyncio.run(client.edit_variants(make_image(), "recolor", 1024, 2))

    assert len(variants) == 2
    assert len(adapter.requests) == 2
    assert recording_sleep.waits == [1.0]


def test_partially_undecodable_variants_are_never_returned(make_image, scripted_adapter, make_client):
    good = InlineBytes(make_image(mode="RGBA"))
    adapter = scripted_adapter([[good, InlineBytes(b"corrupt")]])
    client = make_client(adapter, max_retries=2)

    with pytest.raises(EditExhaustedError) as info:
        asyncio.run(client.edit_variants(make_image(), "recolor", 1024, 2))

    assert isinstance(info.value.last_error, ServiceUnavailable)
    assert len(adapter.requests) == 2


def test_url_variants_are_downloaded(make_image, scripted_adapter, make_client):
    remote = make_image(size=(16, 16), color=(0, 255, 0), fmt="JPEG")
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, content=remote)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = scripted_adapter(
        [[RemoteUrl("https://images.example/a.png"), InlineBytes(make_image(mode="RGBA"))]]
    )
    client = make_client(adapter, http_client=http_client)

    variants = asyncio.run(client.edit_variants(make_image(), "recolor", 1024, 2))

    assert seen == ["https://images.example/a.png"]
    assert _decode(variants[0]).size == (16, 16)
    assert _decode(variants[0]).mode == "RGBA"


def test_failed_download_is_retried(make_image, scripted_adapter, make_client, recording_sleep):
    remote = make_image(mode="RGBA")
    responses = [httpx.Response(500), httpx.Response(200, content=remote)]

    def handler(request):
        return responses.pop(0)

    http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    adapter = scripted_adapter([[RemoteUrl("https://images.example/v.png")]])
    client = make_client(adapter, http_client=http_client)

    result = asyncio.run(client.edit_once(make_image(), "recolor", 1024))

    assert result == remote
    assert len(adapter.requests) == 2
    assert recording_sleep.waits == [1.0]


def test_edit_once_returns_sole_variant(make_image, scripted_adapter, solid_outcome, make_client):
    adapter = scripted_adapter([solid_outcome((255, 0, 0, 255))])
    client = make_client(adapter)

    result = asyncio.run(client.edit_once(make_image(), "recolor", 1024))

    assert adapter.requests[0].n == 1
    assert _decode(result).getpixel((0, 0)) == (255, 0, 0, 255)


def test_downloads_follow_redirects(make_image, scripted_adapter, make_client, recording_sleep):
    remote = make_image(mode="RGBA")
    seen = []

    def handler(request):
        seen.append(str(request.url))
        if request.url.host == "images.example":
            return httpx.Response(302, headers={"Location": "https://cdn.example/v.png"})
        return httpx.Response(200, content=remote)

    adapter = scripted_adapter([[RemoteUrl("https://images.example/v.png")]])
    client = make_client(adapter, transport=httpx.MockTransport(handler))

    result = asyncio.run(client.edit_once(make_image(), "recolor", 1024))

    assert result == remote
    assert seen == ["https://images.example/v.png", "https://cdn.example/v.png"]
    assert len(adapter.requests) == 1
    assert recording_sleep.waits == []
