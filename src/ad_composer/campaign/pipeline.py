"""Scene asset pipeline — image, voice-over and video generation per scene.

Every batch walks the scene list strictly in order, one scene at a time.
A scene failure is recorded on that scene's asset and the batch moves on;
callers inspect the final statuses (or the readiness predicates on the
asset set) to decide what may run next.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Protocol

import structlog

from ad_composer.campaign.poller import JobPoller
from ad_composer.campaign.state import AssetKind, AssetStatus, Campaign
from ad_composer.config import settings
from ad_composer.errors import (
    AssetsIncompleteError,
    MalformedPayloadError,
    OperationInProgressError,
    ProviderError,
)
from ad_composer.render.watermark import watermark_png

logger = structlog.get_logger()


@dataclass(frozen=True)
class GeneratedImage:
    data: bytes
    mime_type: str = "image/png"


class ImageGenerator(Protocol):
    async def generate_image(
        self,
        prompt: str,
        logo_bytes: bytes | None = None,
        logo_mime_type: str | None = None,
    ) -> GeneratedImage: ...


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, voice_id: str) -> bytes: ...


def image_prompt(visual_prompt: str, with_logo: bool) -> str:
    prompt = f'Generate a photorealistic image based on this description: "{visual_prompt}".'
    if with_logo:
        prompt += (
            " The second image provided is a logo. Please place this logo naturally"
            " and realistically onto the main product described in the scene."
        )
    return prompt


def video_prompt(visual_prompt: str) -> str:
    return f'Animate this image according to the following description: "{visual_prompt}"'


class ScenePipeline:
    """Runs the per-scene generation steps against one campaign.

    The pipeline is the only writer of the campaign's asset set while an
    operation runs; starting a second operation concurrently is rejected.
    """

    def __init__(
        self,
        campaign: Campaign,
        image_generator: ImageGenerator,
        synthesizer: SpeechSynthesizer,
        poller: JobPoller,
        voice_id: str | None = None,
        video_timeout: float | None = None,
    ) -> None:
        self.campaign = campaign
        self.image_generator = image_generator
        self.synthesizer = synthesizer
        self.poller = poller
        self.voice_id = voice_id or settings.elevenlabs_voice_id
        self.video_timeout = video_timeout
        self._lock = asyncio.Lock()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    @asynccontextmanager
    async def _exclusive(self, operation: str):
        if self._lock.locked():
            raise OperationInProgressError(
                f"Cannot start {operation}: another generation is already running"
            )
        async with self._lock:
            yield

    # ------------------------------------------------------------------
    # Batch operations
    # ------------------------------------------------------------------

    async def generate_all_images(self) -> list[AssetStatus]:
        async with self._exclusive("image generation"):
            return await self._run_batch(AssetKind.IMAGE, self._image_step)

    async def generate_all_voiceovers(self) -> list[AssetStatus]:
        async with self._exclusive("voice-over generation"):
            return await self._run_batch(AssetKind.VOICEOVER, self._voiceover_step)

    async def generate_all_videos(self) -> list[AssetStatus]:
        assets = self.campaign.assets
        if not assets.videos_unlocked:
            raise AssetsIncompleteError(
                assets.incomplete(AssetKind.IMAGE),
                "video generation requires every image to be complete",
            )
        async with self._exclusive("video generation"):
            return await self._run_batch(AssetKind.VIDEO, self._video_step)

    async def _run_batch(
        self,
        kind: AssetKind,
        step: Callable[[int], Awaitable[None]],
    ) -> list[AssetStatus]:
        logger.info("pipeline.batch.start", kind=kind.value, num_scenes=len(self.campaign))
        for index in range(len(self.campaign)):
            await step(index)

        statuses = self.campaign.assets.statuses(kind)
        logger.info(
            "pipeline.batch.done",
            kind=kind.value,
            complete=sum(s is AssetStatus.COMPLETE for s in statuses),
            failed=sum(s is AssetStatus.FAILED for s in statuses),
        )
        return statuses

    # ------------------------------------------------------------------
    # Single-scene entry points (manual retry)
    # ------------------------------------------------------------------

    async def generate_image(self, index: int) -> AssetStatus:
        async with self._exclusive("image generation"):
            await self._image_step(index)
        return self.campaign.assets[index].status(AssetKind.IMAGE)

    async def generate_voiceover(self, index: int) -> AssetStatus:
        async with self._exclusive("voice-over generation"):
            await self._voiceover_step(index)
        return self.campaign.assets[index].status(AssetKind.VOICEOVER)

    async def generate_video(self, index: int) -> AssetStatus:
        async with self._exclusive("video generation"):
            await self._video_step(index)
        return self.campaign.assets[index].status(AssetKind.VIDEO)

    async def generate(self, index: int, kind: AssetKind) -> AssetStatus:
        if kind is AssetKind.IMAGE:
            return await self.generate_image(index)
        if kind is AssetKind.VOICEOVER:
            return await self.generate_voiceover(index)
        return await self.generate_video(index)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    async def _run_step(
        self,
        index: int,
        kind: AssetKind,
        produce: Callable[[], Awaitable[None]],
    ) -> None:
        assets = self.campaign.assets
        if assets[index].status(kind) is AssetStatus.COMPLETE:
            logger.debug("pipeline.step.skip_complete", index=index, kind=kind.value)
            return

        assets.transition(index, kind, AssetStatus.GENERATING)
        logger.info("pipeline.step.start", index=index, kind=kind.value)
        try:
            await produce()
        except asyncio.CancelledError:
            assets.transition(index, kind, AssetStatus.FAILED, error="cancelled")
            raise
        except Exception as exc:
            logger.exception("pipeline.step.failed", index=index, kind=kind.value)
            assets.transition(index, kind, AssetStatus.FAILED, error=str(exc) or repr(exc))
            return

        assets.transition(index, kind, AssetStatus.COMPLETE)
        logger.info("pipeline.step.done", index=index, kind=kind.value)

    async def _image_step(self, index: int) -> None:
        campaign = self.campaign
        scene = campaign.scenes[index]
        asset = campaign.assets[index]
        branding = campaign.branding

        async def produce() -> None:
            generated = await self.image_generator.generate_image(
                image_prompt(scene.visual_prompt, branding.has_logo),
                logo_bytes=branding.logo_bytes,
                logo_mime_type=branding.logo_mime_type,
            )
            if not generated.data:
                raise MalformedPayloadError("Image generator returned an empty payload")
            stamped = watermark_png(generated.data, branding.watermark_text)

            path = campaign.scene_file("images", index, "png")
            path.write_bytes(stamped)
            asset.image_bytes = generated.data
            asset.image_mime_type = generated.mime_type
            asset.image_path = path

        await self._run_step(index, AssetKind.IMAGE, produce)

    async def _voiceover_step(self, index: int) -> None:
        campaign = self.campaign
        scene = campaign.scenes[index]
        asset = campaign.assets[index]

        async def produce() -> None:
            audio = await self.synthesizer.synthesize(scene.voiceover_text, self.voice_id)
            if not audio:
                raise MalformedPayloadError("Text-to-speech returned empty audio")

            path = campaign.scene_file("audio", index, "mp3")
            path.write_bytes(audio)
            asset.audio_path = path

        await self._run_step(index, AssetKind.VOICEOVER, produce)

    async def _video_step(self, index: int) -> None:
        campaign = self.campaign
        scene = campaign.scenes[index]
        asset = campaign.assets[index]

        # Precondition gate, not an error: nothing to animate yet.
        if not asset.image.is_complete or asset.image_bytes is None:
            logger.info("pipeline.video.skip_no_image", index=index)
            return

        image_bytes = asset.image_bytes
        mime_type = asset.image_mime_type or "image/png"

        async def produce() -> None:
            handle = await self.poller.run(
                video_prompt(scene.visual_prompt),
                image_bytes,
                mime_type,
                timeout=self.video_timeout,
            )
            if handle.error:
                raise ProviderError(f"Video generation failed: {handle.error}")
            if not handle.result:
                raise MalformedPayloadError(
                    "Video generation finished but no video URI was found."
                )

            video = await self.poller.service.fetch(handle.result)
            if not video:
                raise MalformedPayloadError("Downloaded video is empty")

            path = campaign.scene_file("video", index, "mp4")
            path.write_bytes(video)
            asset.video_path = path

        await self._run_step(index, AssetKind.VIDEO, produce)
