from __future__ import annotations

import base64
import logging
from functools import lru_cache
from typing import Protocol

import openai

from garment_recolor.config import settings
from garment_recolor.edit.types import EditRequest, InlineBytes, RemoteUrl, VariantPayload
from garment_recolor.errors import InvalidRequest, RateLimited, ServiceUnavailable

logger = logging.getLogger(__name__)


class ImageEditAdapter(Protocol):
    async def edit(self, request: EditRequest) -> list[VariantPayload]:
        """Submit one edit request and return the raw variant payloads.

        Failures are raised as RateLimited, ServiceUnavailable or
        InvalidRequest so the caller can decide whether to retry.
        """


class PassthroughEditAdapter:
    """Non-generative placeholder that echoes the base image.

    Lets the pipeline run end-to-end when no edit service is configured.
    """

    async def edit(self, request: EditRequest) -> list[VariantPayload]:
        return [InlineBytes(request.base) for _ in range(request.n)]


class OpenAIImageEditAdapter:
    """Image edit adapter backed by the OpenAI Images API."""

    def __init__(
        self,
        client: openai.AsyncOpenAI | None = None,
        *,
        model: str | None = None,
    ) -> None:
        if client is None:
            if not settings.openai_api_key:
                raise RuntimeError("OPENAI_API_KEY is required for the openai edit provider")
            # Retries are handled by the edit client, not the SDK.
            client = openai.AsyncOpenAI(
                api_key=settings.openai_api_key,
                timeout=settings.edit_request_timeout_seconds,
                max_retries=0,
            )
        self._client = client
        self._model = model or settings.edit_model

    async def edit(self, request: EditRequest) -> list[VariantPayload]:
        kwargs: dict[str, object] = {
            "model": self._model,
            "image": ("image.png", request.base, "image/png"),
            "prompt": request.prompt,
            "size": request.size_label,
            "n": request.n,
        }
        if request.mask is not None:
            kwargs["mask"] = ("mask.png", request.mask, "image/png")

        try:
            response = await self._client.images.edit(**kwargs)
        except openai.RateLimitError as exc:
            raise RateLimited(f"rate limited: {exc.message}", status=exc.status_code) from exc
        except openai.APIStatusError as exc:
            if exc.status_code >= 500:
                raise ServiceUnavailable(f"server error: {exc.message}", status=exc.status_code) from exc
            raise InvalidRequest(f"OpenAI API error: {exc.message}", status=exc.status_code) from exc
        except openai.APIConnectionError as exc:
            raise ServiceUnavailable(f"connection error: {exc}") from exc

        payloads: list[VariantPayload] = []
        for idx, item in enumerate(response.data or []):
            if item.b64_json:
                payloads.append(InlineBytes(_b64decode(item.b64_json, idx)))
            elif item.url:
                payloads.append(RemoteUrl(item.url))
            else:
                raise ServiceUnavailable(f"variant {idx} has neither b64_json nor url")
        return payloads


def _b64decode(data: str, idx: int) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except ValueError as exc:
        raise ServiceUnavailable(f"variant {idx} carries invalid base64: {exc}") from exc


@lru_cache(maxsize=1)
def _create_cached_openai_adapter() -> OpenAIImageEditAdapter:
    return OpenAIImageEditAdapter()


def create_default_edit_adapter() -> ImageEditAdapter:
    provider = settings.edit_provider.lower().strip()

    if provider in {"passthrough", "none"}:
        return PassthroughEditAdapter()

    if provider in {"openai", "auto"}:
        try:
            return _create_cached_openai_adapter()
        except RuntimeError:
            if provider == "openai":
                raise
            logger.warning("no OpenAI API key configured; using passthrough edit adapter")

    return PassthroughEditAdapter()
