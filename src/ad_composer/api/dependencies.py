"""FastAPI dependency injection — the current campaign and its collaborators."""

from __future__ import annotations

from collections.abc import Callable
from functools import lru_cache

import structlog

from ad_composer.campaign.pipeline import ImageGenerator, ScenePipeline, SpeechSynthesizer
from ad_composer.campaign.poller import JobPoller, VideoJobService
from ad_composer.campaign.state import Campaign
from ad_composer.errors import OperationInProgressError
from ad_composer.render.compositor import TimelineCompositor
from ad_composer.tools.storyboard import StoryboardGenerator

logger = structlog.get_logger()


class CampaignStore:
    """Holds the single in-memory campaign. A new plan discards the previous one."""

    def __init__(
        self,
        storyboard: StoryboardGenerator,
        image_generator: ImageGenerator | None = None,
        synthesizer: SpeechSynthesizer | None = None,
        video_jobs: VideoJobService | None = None,
        compositor: TimelineCompositor | None = None,
    ) -> None:
        self.storyboard = storyboard
        self._image_generator = image_generator
        self._synthesizer = synthesizer
        self._video_jobs = video_jobs
        self.compositor = compositor or TimelineCompositor()
        self.campaign: Campaign | None = None
        self.pipeline: ScenePipeline | None = None
        self._replace_listeners: list[Callable[[], None]] = []

    def _providers(self) -> tuple[ImageGenerator, SpeechSynthesizer, VideoJobService]:
        if self._image_generator is None or self._video_jobs is None:
            from ad_composer.tools.gemini import GeminiImageGenerator, VeoJobService, create_client

            client = create_client()
            self._image_generator = self._image_generator or GeminiImageGenerator(client)
            self._video_jobs = self._video_jobs or VeoJobService(client)
        if self._synthesizer is None:
            from ad_composer.tools.elevenlabs import ElevenLabsSynthesizer

            self._synthesizer = ElevenLabsSynthesizer()
        return self._image_generator, self._synthesizer, self._video_jobs

    def on_replace(self, listener: Callable[[], None]) -> Callable[[], None]:
        """Call *listener* once the current campaign is discarded. Returns an unsubscribe callable."""
        self._replace_listeners.append(listener)

        def _remove() -> None:
            if listener in self._replace_listeners:
                self._replace_listeners.remove(listener)

        return _remove

    @property
    def busy(self) -> bool:
        return (self.pipeline is not None and self.pipeline.busy) or self.compositor.active

    def replace(self, campaign: Campaign) -> ScenePipeline:
        """Install *campaign* as the current one, discarding the previous campaign."""
        if self.busy:
            raise OperationInProgressError("Cannot replace the campaign while an operation is running")
        image_generator, synthesizer, video_jobs = self._providers()
        self.campaign = campaign
        self.pipeline = ScenePipeline(
            campaign,
            image_generator=image_generator,
            synthesizer=synthesizer,
            poller=JobPoller(video_jobs),
        )
        listeners, self._replace_listeners = self._replace_listeners, []
        for listener in listeners:
            listener()
        logger.info("store.campaign_replaced", campaign_id=campaign.campaign_id)
        return self.pipeline


@lru_cache(maxsize=1)
def get_store() -> CampaignStore:
    """Return the process-wide campaign store."""
    return CampaignStore(storyboard=StoryboardGenerator())
