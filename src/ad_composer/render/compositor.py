"""Timeline compositor — synchronises scene clips and voice-overs into one branded file.

The compositor only reads the campaign's assets. It requires every scene's
video and voice-over to be complete, lays the voice-overs back to back from
t=0, plays each scene clip for its natural duration with branding drawn onto
every frame, appends a logo end-card, and encodes everything in one muxed
MoviePy/ffmpeg pass.
"""

from __future__ import annotations

import asyncio
import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

import structlog
from moviepy import (
    AudioFileClip,
    CompositeAudioClip,
    ImageClip,
    VideoClip,
    VideoFileClip,
    concatenate_videoclips,
)

from ad_composer.campaign.state import AssetKind, Campaign, CampaignAssetSet
from ad_composer.config import settings
from ad_composer.errors import (
    AssetsIncompleteError,
    ExportError,
    ExportInProgressError,
    ExportSetupError,
)
from ad_composer.models.output import ExportArtifact
from ad_composer.render.overlays import OverlayRenderer

logger = structlog.get_logger()

_MEDIA_TYPES = {"mp4": "video/mp4", "webm": "video/webm", "mov": "video/quicktime"}


def schedule_audio(durations: list[float]) -> list[float]:
    """Start offsets for back-to-back buffers: buffer i starts at sum(durations[:i])."""
    offsets: list[float] = []
    cursor = 0.0
    for duration in durations:
        offsets.append(cursor)
        cursor += duration
    return offsets


def export_filename(product_name: str, extension: str, on: date | None = None) -> str:
    """``<product>_ad_<YYYY-MM-DD>.<ext>``"""
    slug = re.sub(r"[^a-z0-9]+", "-", product_name.lower()).strip("-") or "campaign"
    day = (on or date.today()).isoformat()
    return f"{slug}_ad_{day}.{extension}"


@dataclass
class ExportSources:
    """Decoded inputs for one export; closed once encoding finishes or fails."""

    renderer: OverlayRenderer
    videos: list[VideoFileClip] = field(default_factory=list)
    voiceovers: list[AudioFileClip] = field(default_factory=list)

    def close(self) -> None:
        for clip in [*self.videos, *self.voiceovers]:
            try:
                clip.close()
            except Exception:
                logger.warning("compositor.close_failed", exc_info=True)


@dataclass
class Timeline:
    clip: VideoClip
    audio_offsets: list[float]
    scene_durations: list[float]
    end_card_duration: float

    @property
    def duration(self) -> float:
        return self.clip.duration


class TimelineCompositor:
    """Owns the output canvas/encoder pair; one export at a time."""

    def __init__(
        self,
        fps: int | None = None,
        end_card_duration: float | None = None,
        codec: str | None = None,
        audio_codec: str | None = None,
        extension: str | None = None,
    ) -> None:
        self.fps = fps or settings.video_fps
        self.end_card_duration = (
            settings.end_card_duration_sec if end_card_duration is None else end_card_duration
        )
        self.codec = codec or settings.video_codec
        self.audio_codec = audio_codec or settings.audio_codec
        self.extension = extension or settings.export_extension
        self._lock = asyncio.Lock()

    @property
    def active(self) -> bool:
        return self._lock.locked()

    # ------------------------------------------------------------------
    # Preconditions + setup
    # ------------------------------------------------------------------

    @staticmethod
    def ensure_ready(assets: CampaignAssetSet) -> None:
        missing = assets.incomplete(AssetKind.VIDEO, AssetKind.VOICEOVER)
        if missing:
            raise AssetsIncompleteError(missing)

    def open_sources(self, campaign: Campaign) -> ExportSources:
        """Open every clip and voice-over up front; any failure aborts the export."""
        try:
            renderer = OverlayRenderer(campaign.branding.canvas_size, campaign.branding)
        except Exception as exc:
            raise ExportSetupError(f"Branding could not be prepared: {exc}") from exc

        sources = ExportSources(renderer=renderer)
        try:
            for asset in campaign.assets:
                scene_no = asset.index + 1
                if asset.video_path is None or not Path(asset.video_path).is_file():
                    raise ExportSetupError(f"Scene {scene_no}: video clip is missing")
                if asset.audio_path is None or not Path(asset.audio_path).is_file():
                    raise ExportSetupError(f"Scene {scene_no}: voice-over is missing")
                sources.videos.append(VideoFileClip(str(asset.video_path), audio=False))
                sources.voiceovers.append(AudioFileClip(str(asset.audio_path)))
        except ExportSetupError:
            sources.close()
            raise
        except Exception as exc:
            sources.close()
            raise ExportSetupError(f"Export setup failed: {exc}") from exc
        return sources

    # ------------------------------------------------------------------
    # Timeline
    # ------------------------------------------------------------------

    def _scene_clip(self, renderer: OverlayRenderer, source: VideoFileClip, caption: str) -> VideoClip:
        overlay = renderer.scene_overlay(caption)

        def frame_function(t):
            return renderer.compose_frame(source.get_frame(t), overlay)

        return VideoClip(frame_function=frame_function, duration=source.duration)

    def build_timeline(self, campaign: Campaign, sources: ExportSources) -> Timeline:
        renderer = sources.renderer
        segments: list[VideoClip] = [
            self._scene_clip(renderer, source, scene.on_screen_text)
            for scene, source in zip(campaign.scenes, sources.videos)
        ]

        end_card = 0.0
        if campaign.branding.has_logo:
            end_card = self.end_card_duration
            segments.append(ImageClip(renderer.end_card(), duration=end_card))

        video = concatenate_videoclips(segments, method="chain")

        durations = [vo.duration for vo in sources.voiceovers]
        offsets = schedule_audio(durations)
        narration = CompositeAudioClip(
            [vo.with_start(start) for vo, start in zip(sources.voiceovers, offsets)]
        ).with_duration(video.duration)
        video = video.with_audio(narration)

        return Timeline(
            clip=video,
            audio_offsets=offsets,
            scene_durations=[source.duration for source in sources.videos],
            end_card_duration=end_card,
        )

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def _encode(self, timeline: Timeline, output_path: Path) -> None:
        timeline.clip.write_videofile(
            str(output_path),
            fps=self.fps,
            codec=self.codec,
            audio_codec=self.audio_codec,
            preset=settings.encoder_preset,
            threads=settings.encoder_threads,
            logger=None,
        )

    async def export(self, campaign: Campaign, output_dir: str | Path | None = None) -> ExportArtifact:
        """Render *campaign* to one file and return it as a downloadable artifact."""
        if self._lock.locked():
            raise ExportInProgressError("An export is already running")
        self.ensure_ready(campaign.assets)

        async with self._lock:
            width, height = campaign.branding.canvas_size
            filename = export_filename(campaign.product_name, self.extension)
            out_dir = Path(output_dir) if output_dir else campaign.work_dir / "export"
            out_dir.mkdir(parents=True, exist_ok=True)
            output_path = out_dir / filename

            logger.info(
                "compositor.export.start",
                campaign_id=campaign.campaign_id,
                num_scenes=len(campaign),
                canvas=f"{width}x{height}",
            )

            sources = self.open_sources(campaign)
            try:
                try:
                    timeline = self.build_timeline(campaign, sources)
                except Exception as exc:
                    raise ExportSetupError(f"Timeline could not be built: {exc}") from exc
                try:
                    await asyncio.to_thread(self._encode, timeline, output_path)
                except Exception as exc:
                    output_path.unlink(missing_ok=True)
                    raise ExportError(f"Encoding failed: {exc}") from exc
            finally:
                sources.close()

            logger.info(
                "compositor.export.done",
                campaign_id=campaign.campaign_id,
                output_path=str(output_path),
                duration=timeline.duration,
                audio_offsets=timeline.audio_offsets,
            )
            return ExportArtifact(
                filename=filename,
                path=output_path,
                media_type=_MEDIA_TYPES.get(self.extension, "application/octet-stream"),
                duration_sec=timeline.duration,
                width=width,
                height=height,
            )
