"""Storyboard planning and social post copy — LLM structured output via LangChain."""

from __future__ import annotations

import structlog
from langchain_openai import ChatOpenAI

from ad_composer.campaign.state import AssetKind, Campaign
from ad_composer.config import settings
from ad_composer.errors import AssetsIncompleteError, PlanGenerationError
from ad_composer.models.branding import AspectRatio
from ad_composer.models.scene import PostCopy, Scene, StoryboardPlan

logger = structlog.get_logger()

# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

PLAN_SYSTEM_PROMPT = """\
You are a world-class marketing creative director. You create complete social \
ad campaigns as structured storyboards."""

PLAN_USER_PROMPT = """\
Create a social ad campaign storyboard.

Product: {product_description}
Primary audience: {target_audience}
Ad Format: {platform_text}
Total scenes desired: {scene_count}

Each scene must have:
- "id": its 1-based index
- "voiceover": a short, punchy line
- "on_screen_text": a few words, max 9
- "visual_prompt": a rich, descriptive prompt for an image generation model, \
including camera shots, lighting, and mood, suitable for the chosen ad format"""

POST_COPY_SYSTEM_PROMPT = """\
You are a social media marketing expert specializing in creating viral \
short-form video content."""

POST_COPY_USER_PROMPT = """\
Based on the following ad campaign details, generate a compelling post copy \
and relevant hashtags.

Campaign Details:
- Product: {product_description}
- Target Audience: {target_audience}
- Platform: {platform_text}

Video Storyboard Summary:
{storyboard_summary}

Instructions:
1. Write a captivating and concise caption for the post. It should grab \
attention, explain the value proposition, and have a clear call-to-action.
2. Provide a list of 5-7 highly relevant and trending hashtags."""

_POST_PLATFORMS = {
    AspectRatio.PORTRAIT_9X16: "vertical video platforms like TikTok, Instagram Reels, and YouTube Shorts",
    AspectRatio.SQUARE_1X1: "feed-based platforms like Instagram and Facebook",
}


def _default_llm(temperature: float) -> ChatOpenAI:
    return ChatOpenAI(
        model=settings.plan_model,
        api_key=settings.openai_api_key,
        temperature=temperature,
    )


def _renumber(scenes: list[Scene]) -> list[Scene]:
    """Force 1-based, gap-free scene ids in storyboard order."""
    return [s.model_copy(update={"id": i}) for i, s in enumerate(scenes, 1)]


class StoryboardGenerator:
    """Plans storyboards and writes post copy.

    *llm* is any LangChain chat model supporting ``with_structured_output``;
    defaults to ``ChatOpenAI`` configured from settings.
    """

    def __init__(self, llm=None) -> None:
        self.llm = llm

    async def generate_plan(
        self,
        product_description: str,
        target_audience: str,
        aspect_ratio: AspectRatio,
        scene_count: int,
    ) -> StoryboardPlan:
        logger.info(
            "storyboard.plan.start",
            aspect_ratio=aspect_ratio.value,
            scene_count=scene_count,
        )
        plan_llm = (self.llm or _default_llm(0.7)).with_structured_output(StoryboardPlan)

        try:
            result = await plan_llm.ainvoke(
                [
                    {"role": "system", "content": PLAN_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": PLAN_USER_PROMPT.format(
                            product_description=product_description,
                            target_audience=target_audience,
                            platform_text=aspect_ratio.platform_text,
                            scene_count=scene_count,
                        ),
                    },
                ]
            )
            plan = result if isinstance(result, StoryboardPlan) else StoryboardPlan.model_validate(result)
        except Exception as exc:
            logger.exception("storyboard.plan.failed")
            raise PlanGenerationError("plan generation failed") from exc

        plan = StoryboardPlan(scenes=_renumber(plan.scenes))
        logger.info("storyboard.plan.done", scene_count=len(plan.scenes))
        return plan

    async def generate_post_copy(self, campaign: Campaign) -> PostCopy:
        """Caption + hashtags for a finished campaign (every video and voice-over complete)."""
        assets = campaign.assets
        if not assets.export_ready:
            raise AssetsIncompleteError(assets.incomplete(AssetKind.VIDEO, AssetKind.VOICEOVER))

        storyboard_summary = "\n\n".join(
            f"Scene {scene.id}:\n"
            f"- Visuals: {scene.visual_prompt}\n"
            f"- Voiceover: {scene.voiceover_text}\n"
            f"- On-screen text: {scene.on_screen_text}"
            for scene in campaign.scenes
        )

        copy_llm = (self.llm or _default_llm(0.8)).with_structured_output(PostCopy)
        try:
            result = await copy_llm.ainvoke(
                [
                    {"role": "system", "content": POST_COPY_SYSTEM_PROMPT},
                    {
                        "role": "user",
                        "content": POST_COPY_USER_PROMPT.format(
                            product_description=campaign.product_description,
                            target_audience=campaign.target_audience,
                            platform_text=_POST_PLATFORMS[campaign.branding.aspect_ratio],
                            storyboard_summary=storyboard_summary,
                        ),
                    },
                ]
            )
            copy = result if isinstance(result, PostCopy) else PostCopy.model_validate(result)
        except Exception as exc:
            logger.exception("storyboard.post_copy.failed", campaign_id=campaign.campaign_id)
            raise PlanGenerationError("post copy generation failed") from exc

        logger.info("storyboard.post_copy.done", hashtags=len(copy.hashtags))
        return copy
