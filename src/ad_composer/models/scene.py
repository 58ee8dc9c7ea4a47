"""Pydantic models for storyboard data."""

from pydantic import BaseModel, ConfigDict, Field


class Scene(BaseModel):
    """One storyboard beat. Immutable once the plan is accepted."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    # Not bounded here: the model's raw ids are renumbered 1..N after parsing.
    id: int = Field(description="1-based scene index")
    voiceover_text: str = Field(
        alias="voiceover", description="A short, punchy voice-over line"
    )
    on_screen_text: str = Field(
        default="", description="Caption burned into the video (a few words, max 9)"
    )
    visual_prompt: str = Field(
        description="Rich image prompt including camera shot, lighting and mood"
    )


class StoryboardPlan(BaseModel):
    """Structured output returned by the storyboard generator."""

    scenes: list[Scene] = Field(min_length=1, description="Ordered storyboard scenes")


class PostCopy(BaseModel):
    """Social post caption and hashtags for the finished ad."""

    caption: str = Field(description="Attention-grabbing caption with a clear call-to-action")
    hashtags: list[str] = Field(description="5-7 relevant, trending hashtags")
