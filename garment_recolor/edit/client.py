from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from functools import lru_cache

import httpx

from garment_recolor.config import settings
from garment_recolor.edit.adapters import ImageEditAdapter, create_default_edit_adapter
from garment_recolor.edit.types import (
    SUPPORTED_EDIT_SIZES,
    EditRequest,
    InlineBytes,
    RemoteUrl,
    VariantPayload,
)
from garment_recolor.errors import (
    DecodeError,
    EditExhaustedError,
    EditServiceError,
    InvalidRequest,
    ServiceUnavailable,
)
from garment_recolor.imaging.normalize import normalize

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class VariantEditClient:
    """Multi-variant image edit with exponential backoff.

    Rate limits and server-side failures are retried, waiting
    `2**attempt * backoff_seconds` between attempts. Anything else fails on
    the first attempt. A call either returns exactly `n` decoded images or
    raises; partial results are never returned or kept between attempts.
    """

    def __init__(
        self,
        adapter: ImageEditAdapter | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleep = asyncio.sleep,
        backoff_seconds: float | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._adapter = adapter or create_default_edit_adapter()
        self._http_client = http_client
        self._transport = transport
        self._sleep = sleep
        self._backoff_seconds = (
            settings.edit_backoff_seconds if backoff_seconds is None else backoff_seconds
        )
        self._max_retries = settings.edit_max_retries if max_retries is None else max_retries

    @property
    def adapter_name(self) -> str:
        return type(self._adapter).__name__

    async def edit_variants(
        self,
        base: bytes,
        prompt: str,
        size: int,
        n: int = 1,
        *,
        mask: bytes | None = None,
        max_retries: int | None = None,
    ) -> list[bytes]:
        if not prompt.strip():
            raise InvalidRequest("prompt must not be empty")
        if n < 1:
            raise InvalidRequest(f"variant count must be >= 1, got {n}")
        if size not in SUPPORTED_EDIT_SIZES:
            raise InvalidRequest(f"unsupported edit size: {size}")

        request = EditRequest(
            base=normalize(base),
            mask=normalize(mask) if mask is not None else None,
            prompt=prompt,
            size=size,
            n=n,
        )
        attempts = max(1, self._max_retries if max_retries is None else max_retries)

        logger.info("requesting %d variant(s) at %s via %s", n, request.size_label, self.adapter_name)
        logger.debug("prompt: %s", prompt[:150])

        last_error: EditServiceError | None = None
        for attempt in range(attempts):
            logger.debug("edit attempt %d/%d", attempt + 1, attempts)
            try:
                variants = await self._run_attempt(request)
            except EditServiceError as exc:
                exc.attempt = attempt
                if not exc.retryable:
                    logger.error("edit failed without retry: %s", exc)
                    raise
                last_error = exc
                if attempt < attempts - 1:
                    wait = (2**attempt) * self._backoff_seconds
                    logger.warning("edit error (%s), retrying in %.2fs", exc, wait)
                    await self._sleep(wait)
                continue

            logger.info("edit succeeded with %d variant(s)", len(variants))
            return variants

        assert last_error is not None
        raise EditExhaustedError(last_error, attempts)

    async def edit_once(
        self,
        base: bytes,
        prompt: str,
        size: int,
        *,
        mask: bytes | None = None,
        max_retries: int | None = None,
    ) -> bytes:
        variants = await self.edit_variants(
            base,
            prompt,
            size,
            1,
            mask=mask,
            max_retries=max_retries,
        )
        return variants[0]

    async def _run_attempt(self, request: EditRequest) -> list[bytes]:
        payloads = await self._adapter.edit(request)
        if len(payloads) != request.n:
            raise ServiceUnavailable(
                f"expected {request.n} variant(s), service returned {len(payloads)}"
            )

        variants: list[bytes] = []
        for idx, payload in enumerate(payloads):
            raw = await self._resolve(payload, idx)
            try:
                variants.append(normalize(raw))
            except DecodeError as exc:
                raise ServiceUnavailable(f"variant {idx} is not a decodable image: {exc}") from exc
            logger.debug("variant %d: %d bytes", idx + 1, len(raw))
        return variants

    async def _resolve(self, payload: VariantPayload, idx: int) -> bytes:
        if isinstance(payload, InlineBytes):
            return payload.data
        if isinstance(payload, RemoteUrl):
            return await self._download(payload.url, idx)
        raise TypeError(f"unknown variant payload: {payload!r}")

    async def _download(self, url: str, idx: int) -> bytes:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(url)
            else:
                async with httpx.AsyncClient(
                    timeout=settings.download_timeout_seconds,
                    follow_redirects=True,
                    transport=self._transport,
                ) as client:
                    response = await client.get(url)
        except httpx.RequestError as exc:
            raise ServiceUnavailable(f"failed to download variant {idx}: {exc}") from exc

        if response.status_code >= 400:
            raise ServiceUnavailable(
                f"failed to download variant {idx}: {response.reason_phrase}",
                status=response.status_code,
            )
        return response.content


@lru_cache(maxsize=1)
def get_default_edit_client() -> VariantEditClient:
    return VariantEditClient()


async def edit_variants(
    base: bytes,
    prompt: str,
    size: int,
    n: int = 1,
    *,
    mask: bytes | None = None,
    max_retries: int | None = None,
) -> list[bytes]:
    return await get_default_edit_client().edit_variants(
        base, prompt, size, n, mask=mask, max_retries=max_retries
    )


async def edit_once(
    base: bytes,
    prompt: str,
    size: int,
    *,
    mask: bytes | None = None,
    max_retries: int | None = None,
) -> bytes:
    return await get_default_edit_client().edit_once(
        base, prompt, size, mask=mask, max_retries=max_retries
    )
