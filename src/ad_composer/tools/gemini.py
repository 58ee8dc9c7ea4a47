"""Gemini image generation and Veo video jobs — async adapters over google-genai."""

from __future__ import annotations

import httpx
import structlog
from google import genai
from google.genai import types

from ad_composer.campaign.pipeline import GeneratedImage
from ad_composer.campaign.poller import JobHandle
from ad_composer.config import settings
from ad_composer.errors import MalformedPayloadError, ProviderError, SetupError

logger = structlog.get_logger()


def create_client(api_key: str | None = None) -> genai.Client:
    """Build a Gemini client. Failure here is fatal for the whole operation."""
    key = api_key if api_key is not None else settings.gemini_api_key
    if not key:
        raise SetupError("GEMINI_API_KEY is not configured")
    try:
        return genai.Client(api_key=key)
    except Exception as exc:
        raise SetupError(f"Failed to initialize Gemini client: {exc}") from exc


class GeminiImageGenerator:
    """Generates a scene still; the brand logo is sent as a reference image."""

    def __init__(self, client: genai.Client, model: str | None = None) -> None:
        self.client = client
        self.model = model or settings.image_model

    async def generate_image(
        self,
        prompt: str,
        logo_bytes: bytes | None = None,
        logo_mime_type: str | None = None,
    ) -> GeneratedImage:
        logger.info("gemini_image.start", prompt_len=len(prompt), with_logo=bool(logo_bytes))

        parts = [types.Part.from_text(text=prompt)]
        if logo_bytes:
            parts.append(
                types.Part.from_bytes(data=logo_bytes, mime_type=logo_mime_type or "image/png")
            )

        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=parts,
                config=types.GenerateContentConfig(response_modalities=["IMAGE", "TEXT"]),
            )
        except Exception as exc:
            raise ProviderError(f"Image generation request failed: {exc}") from exc

        candidates = response.candidates or []
        content_parts = (candidates[0].content.parts or []) if candidates and candidates[0].content else []
        image_part = next((p for p in content_parts if p.inline_data and p.inline_data.data), None)
        if image_part is None:
            raise MalformedPayloadError(
                "no image part returned (the prompt may have been blocked)"
            )

        data = image_part.inline_data.data
        logger.info("gemini_image.done", bytes=len(data))
        return GeneratedImage(data=data, mime_type=image_part.inline_data.mime_type or "image/png")


class VeoJobService:
    """Image-to-video jobs on Veo, exposed through the poller's job protocol."""

    def __init__(
        self,
        client: genai.Client,
        model: str | None = None,
        api_key: str | None = None,
    ) -> None:
        self.client = client
        self.model = model or settings.video_model
        self.api_key = api_key if api_key is not None else settings.gemini_api_key

    @staticmethod
    def _to_handle(operation) -> JobHandle:
        error = None
        result = None
        if operation.error:
            err = operation.error
            message = err.get("message") if isinstance(err, dict) else None
            error = message or "Unknown video generation error."
        elif operation.done and operation.response:
            videos = operation.response.generated_videos or []
            if videos and videos[0].video and videos[0].video.uri:
                result = videos[0].video.uri
        return JobHandle(
            name=operation.name or "",
            done=bool(operation.done),
            result=result,
            error=error,
            operation=operation,
        )

    async def submit(self, prompt: str, image_bytes: bytes, mime_type: str) -> JobHandle:
        try:
            operation = await self.client.aio.models.generate_videos(
                model=self.model,
                prompt=prompt,
                image=types.Image(image_bytes=image_bytes, mime_type=mime_type),
                config=types.GenerateVideosConfig(number_of_videos=1),
            )
        except Exception as exc:
            raise ProviderError(f"Video job submission failed: {exc}") from exc
        return self._to_handle(operation)

    async def poll(self, handle: JobHandle) -> JobHandle:
        try:
            operation = await self.client.aio.operations.get(handle.operation)
        except Exception as exc:
            raise ProviderError(f"Video job poll failed: {exc}") from exc
        return self._to_handle(operation)

    async def fetch(self, locator: str) -> bytes:
        async with httpx.AsyncClient(timeout=120, follow_redirects=True) as http:
            resp = await http.get(locator, headers={"x-goog-api-key": self.api_key})
            if not resp.is_success:
                raise ProviderError(
                    f"Failed to download video: {resp.status_code} {resp.reason_phrase}"
                )

        logger.info("veo.fetch.done", bytes_written=len(resp.content))
        return resp.content
