"""Shared fixtures: in-memory fakes for every remote collaborator."""

from __future__ import annotations

import asyncio
import io

import pytest
from PIL import Image

from ad_composer.campaign.pipeline import GeneratedImage, ScenePipeline
from ad_composer.campaign.poller import JobHandle, JobPoller
from ad_composer.campaign.state import AssetKind, AssetStatus, Campaign
from ad_composer.errors import ProviderError
from ad_composer.models.branding import AspectRatio, BrandingConfig
from ad_composer.models.scene import Scene, StoryboardPlan


def png_bytes(size=(64, 48), color=(30, 60, 200, 255)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGBA", size, color).save(buf, format="PNG")
    return buf.getvalue()


class FakeImageGenerator:
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.fail_on: set[str] = set()
        self.payload = png_bytes()
        self.gate: asyncio.Event | None = None

    async def generate_image(self, prompt, logo_bytes=None, logo_mime_type=None):
        self.calls.append(prompt)
        if self.gate is not None:
            await self.gate.wait()
        if any(marker in prompt for marker in self.fail_on):
            raise ProviderError("no image part returned")
        return GeneratedImage(data=self.payload, mime_type="image/png")


class FakeSynthesizer:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()

    async def synthesize(self, text, voice_id):
        self.calls.append((text, voice_id))
        if any(marker in text for marker in self.fail_on):
            raise ProviderError("ElevenLabs API Error: 401 - invalid api key")
        return b"ID3" + text.encode()


class FakeVideoJobs:
    """Jobs finish after ``polls_needed`` polls; prompts can be made to fail."""

    def __init__(self, polls_needed: int = 2) -> None:
        self.polls_needed = polls_needed
        self.submitted: list[str] = []
        self.polls: dict[str, int] = {}
        self.fail_on: set[str] = set()
        self.no_result_on: set[str] = set()
        self.fetched: list[str] = []

    async def submit(self, prompt, image_bytes, mime_type):
        name = f"operations/{len(self.submitted)}"
        self.submitted.append(prompt)
        self.polls[name] = 0
        return JobHandle(name=name, operation=prompt)

    async def poll(self, handle):
        self.polls[handle.name] += 1
        if self.polls[handle.name] < self.polls_needed:
            return handle
        prompt = handle.operation
        if any(marker in prompt for marker in self.fail_on):
            return JobHandle(name=handle.name, done=True, error="quota exceeded", operation=prompt)
        if any(marker in prompt for marker in self.no_result_on):
            return JobHandle(name=handle.name, done=True, operation=prompt)
        return JobHandle(
            name=handle.name,
            done=True,
            result=f"https://files.example/{handle.name}:download",
            operation=prompt,
        )

    async def fetch(self, locator):
        self.fetched.append(locator)
        return b"\x00\x00\x00\x18ftypmp42" + locator.encode()


class FakeStructuredLLM:
    """Stands in for a LangChain chat model's ``with_structured_output``."""

    def __init__(self, results: dict | None = None, error: Exception | None = None) -> None:
        self.results = results or {}
        self.error = error
        self.messages: list = []

    def with_structured_output(self, schema):
        llm = self

        class _Runnable:
            async def ainvoke(self, messages):
                llm.messages.append(messages)
                if llm.error is not None:
                    raise llm.error
                return llm.results[schema.__name__]

        return _Runnable()


def make_plan(count: int = 3) -> StoryboardPlan:
    return StoryboardPlan(
        scenes=[
            Scene(
                id=i,
                voiceover=f"Voice line scene-{i}",
                on_screen_text=f"Caption {i}",
                visual_prompt=f"Close-up product shot scene-{i}",
            )
            for i in range(1, count + 1)
        ]
    )


def complete(campaign: Campaign, index: int, kind: AssetKind) -> None:
    campaign.assets.transition(index, kind, AssetStatus.GENERATING)
    campaign.assets.transition(index, kind, AssetStatus.COMPLETE)


@pytest.fixture
def branding() -> BrandingConfig:
    return BrandingConfig(
        logo_bytes=png_bytes((200, 100), (255, 0, 0, 255)),
        logo_mime_type="image/png",
        watermark_text="DEMO",
        aspect_ratio=AspectRatio.SQUARE_1X1,
    )


@pytest.fixture
def campaign(tmp_path, branding) -> Campaign:
    return Campaign(
        make_plan(3),
        branding,
        product_name="Acme Cold Brew",
        target_audience="busy commuters",
        work_dir=tmp_path / "campaign",
    )


@pytest.fixture
def image_generator() -> FakeImageGenerator:
    return FakeImageGenerator()


@pytest.fixture
def synthesizer() -> FakeSynthesizer:
    return FakeSynthesizer()


@pytest.fixture
def video_jobs() -> FakeVideoJobs:
    return FakeVideoJobs()


@pytest.fixture
def pipeline(campaign, image_generator, synthesizer, video_jobs) -> ScenePipeline:
    return ScenePipeline(
        campaign,
        image_generator=image_generator,
        synthesizer=synthesizer,
        poller=JobPoller(video_jobs, interval=0),
        voice_id="voice-123",
    )
