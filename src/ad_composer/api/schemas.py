"""Request/Response schemas for the FastAPI endpoints."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from ad_composer.campaign.state import AssetKind, AssetStatus, Campaign
from ad_composer.models.branding import AspectRatio
from ad_composer.models.scene import Scene


class PlanRequest(BaseModel):
    product_description: str = Field(min_length=1)
    target_audience: str = Field(min_length=1)
    product_name: Optional[str] = Field(
        default=None, description="Short product name used in the export filename"
    )
    aspect_ratio: AspectRatio = AspectRatio.PORTRAIT_9X16
    scene_count: int = Field(default=4, ge=1, le=12)
    watermark_text: str = ""
    logo_base64: Optional[str] = Field(default=None, description="Brand logo, base64-encoded")
    logo_mime_type: Optional[str] = None


class SceneStatusModel(BaseModel):
    index: int
    scene: Scene
    image_status: AssetStatus
    voiceover_status: AssetStatus
    video_status: AssetStatus
    image_error: Optional[str] = None
    voiceover_error: Optional[str] = None
    video_error: Optional[str] = None


class ReadinessModel(BaseModel):
    images_complete: bool
    voiceovers_complete: bool
    videos_complete: bool
    videos_unlocked: bool
    export_ready: bool


class CampaignStatusResponse(BaseModel):
    campaign_id: str
    product_name: str
    aspect_ratio: AspectRatio
    busy: bool
    exporting: bool
    scenes: list[SceneStatusModel]
    readiness: ReadinessModel

    @classmethod
    def from_campaign(cls, campaign: Campaign, busy: bool, exporting: bool) -> CampaignStatusResponse:
        assets = campaign.assets
        scenes = [
            SceneStatusModel(
                index=asset.index,
                scene=scene,
                image_status=asset.image.status,
                voiceover_status=asset.voiceover.status,
                video_status=asset.video.status,
                image_error=asset.image.error,
                voiceover_error=asset.voiceover.error,
                video_error=asset.video.error,
            )
            for scene, asset in zip(campaign.scenes, assets)
        ]
        readiness = ReadinessModel(
            images_complete=assets.videos_unlocked,
            voiceovers_complete=assets.all_complete(AssetKind.VOICEOVER),
            videos_complete=assets.all_complete(AssetKind.VIDEO),
            videos_unlocked=assets.videos_unlocked,
            export_ready=assets.export_ready,
        )
        return cls(
            campaign_id=campaign.campaign_id,
            product_name=campaign.product_name,
            aspect_ratio=campaign.branding.aspect_ratio,
            busy=busy,
            exporting=exporting,
            scenes=scenes,
            readiness=readiness,
        )


class StageStartResponse(BaseModel):
    campaign_id: str
    stage: str
    status: str = "started"


class SceneRetryResponse(BaseModel):
    campaign_id: str
    index: int
    kind: str
    status: AssetStatus
    error: Optional[str] = None


class PostCopyResponse(BaseModel):
    campaign_id: str
    caption: str
    hashtags: list[str]
    text: str
