"""FastAPI route handlers for the campaign API."""

from __future__ import annotations

import asyncio
import base64
import binascii
import json

import structlog
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from fastapi.responses import FileResponse
from sse_starlette.sse import EventSourceResponse

from ad_composer.api.dependencies import CampaignStore, get_store
from ad_composer.api.schemas import (
    CampaignStatusResponse,
    PlanRequest,
    PostCopyResponse,
    SceneRetryResponse,
    StageStartResponse,
)
from ad_composer.campaign.state import AssetKind, Campaign, StatusChange
from ad_composer.errors import (
    ExportError,
    ExportSetupError,
    MalformedPayloadError,
    PlanGenerationError,
    PreconditionError,
    SetupError,
)
from ad_composer.models.branding import BrandingConfig

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/campaign")

_STAGES = {
    "images": AssetKind.IMAGE,
    "voiceovers": AssetKind.VOICEOVER,
    "videos": AssetKind.VIDEO,
}


def _require_campaign(store: CampaignStore) -> Campaign:
    if store.campaign is None or store.pipeline is None:
        raise HTTPException(status_code=404, detail="No campaign plan has been generated yet")
    return store.campaign


def _status(store: CampaignStore) -> CampaignStatusResponse:
    campaign = _require_campaign(store)
    return CampaignStatusResponse.from_campaign(
        campaign, busy=store.pipeline.busy, exporting=store.compositor.active
    )


def _decode_logo(request: PlanRequest) -> bytes | None:
    if not request.logo_base64:
        return None
    data = request.logo_base64
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError):
        raise HTTPException(status_code=422, detail="logo_base64 is not valid base64")


@router.post("/plan", response_model=CampaignStatusResponse)
async def create_plan(request: PlanRequest, store: CampaignStore = Depends(get_store)):
    """Generate a storyboard plan and start a fresh campaign from it."""
    if store.busy:
        raise HTTPException(status_code=409, detail="An operation is still running")

    logo_bytes = _decode_logo(request)
    branding = BrandingConfig(
        logo_bytes=logo_bytes,
        logo_mime_type=request.logo_mime_type or ("image/png" if logo_bytes else None),
        watermark_text=request.watermark_text,
        aspect_ratio=request.aspect_ratio,
    )
    try:
        branding.logo_image()
    except MalformedPayloadError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    try:
        plan = await store.storyboard.generate_plan(
            request.product_description,
            request.target_audience,
            request.aspect_ratio,
            request.scene_count,
        )
        product_name = request.product_name or " ".join(request.product_description.split()[:3])
        store.replace(
            Campaign(
                plan,
                branding,
                product_name=product_name,
                product_description=request.product_description,
                target_audience=request.target_audience,
            )
        )
    except PlanGenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    except SetupError as exc:
        raise HTTPException(status_code=500, detail=str(exc))
    except PreconditionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    return _status(store)


@router.get("", response_model=CampaignStatusResponse)
async def get_campaign(store: CampaignStore = Depends(get_store)):
    """Per-scene statuses, error messages and stage readiness."""
    return _status(store)


@router.get("/events")
async def campaign_events(store: CampaignStore = Depends(get_store)):
    """Stream per-scene status changes as server-sent events."""
    campaign = _require_campaign(store)
    queue: asyncio.Queue[StatusChange | None] = asyncio.Queue()
    unsubscribe = campaign.assets.subscribe(queue.put_nowait)
    # None marks the end of this campaign's stream.
    stop_on_replace = store.on_replace(lambda: queue.put_nowait(None))

    async def event_generator():
        try:
            while True:
                change = await queue.get()
                if change is None:
                    yield {
                        "event": "replaced",
                        "data": json.dumps({"campaign_id": campaign.campaign_id}),
                    }
                    return
                yield {
                    "event": "status",
                    "data": json.dumps(
                        {
                            "campaign_id": campaign.campaign_id,
                            "index": change.index,
                            "kind": change.kind.value,
                            "status": change.status.value,
                            "error": change.error,
                        }
                    ),
                }
        finally:
            unsubscribe()
            stop_on_replace()

    return EventSourceResponse(event_generator())


@router.post("/post-copy", response_model=PostCopyResponse)
async def create_post_copy(store: CampaignStore = Depends(get_store)):
    """Write a social caption and hashtags for the finished ad."""
    campaign = _require_campaign(store)
    try:
        copy = await store.storyboard.generate_post_copy(campaign)
    except PreconditionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except PlanGenerationError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    return PostCopyResponse(
        campaign_id=campaign.campaign_id,
        caption=copy.caption,
        hashtags=copy.hashtags,
        text=f"{copy.caption}\n\n{' '.join(copy.hashtags)}",
    )


@router.post("/export")
async def export_campaign(store: CampaignStore = Depends(get_store)):
    """Render the final video and return it as a download."""
    campaign = _require_campaign(store)
    if store.pipeline.busy:
        raise HTTPException(status_code=409, detail="Generation is still running")

    try:
        artifact = await store.compositor.export(campaign)
    except PreconditionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except (ExportSetupError, ExportError) as exc:
        logger.exception("campaign.export_failed", campaign_id=campaign.campaign_id)
        raise HTTPException(status_code=500, detail=str(exc))

    return FileResponse(
        artifact.path,
        media_type=artifact.media_type,
        filename=artifact.filename,
    )


@router.post("/{stage}", response_model=StageStartResponse)
async def start_stage(
    stage: str,
    background_tasks: BackgroundTasks,
    store: CampaignStore = Depends(get_store),
):
    """Run one batch stage (images, voiceovers, videos) in the background."""
    kind = _STAGES.get(stage)
    if kind is None:
        raise HTTPException(status_code=404, detail=f"Unknown stage {stage!r}")
    campaign = _require_campaign(store)
    pipeline = store.pipeline

    if pipeline.busy or store.compositor.active:
        raise HTTPException(status_code=409, detail="An operation is already running")
    if kind is AssetKind.VIDEO and not campaign.assets.videos_unlocked:
        raise HTTPException(status_code=409, detail="All images must be complete before videos")

    batch = {
        AssetKind.IMAGE: pipeline.generate_all_images,
        AssetKind.VOICEOVER: pipeline.generate_all_voiceovers,
        AssetKind.VIDEO: pipeline.generate_all_videos,
    }[kind]

    async def _run():
        try:
            await batch()
        except Exception:
            logger.exception("campaign.stage_failed", stage=stage, campaign_id=campaign.campaign_id)

    background_tasks.add_task(_run)

    logger.info("campaign.stage_started", stage=stage, campaign_id=campaign.campaign_id)
    return StageStartResponse(campaign_id=campaign.campaign_id, stage=stage)


@router.post("/scenes/{index}/{kind}", response_model=SceneRetryResponse)
async def retry_scene(index: int, kind: AssetKind, store: CampaignStore = Depends(get_store)):
    """Re-invoke one scene's step (skips when already complete)."""
    campaign = _require_campaign(store)
    if not 0 <= index < len(campaign):
        raise HTTPException(status_code=404, detail=f"Scene index {index} out of range")
    if store.compositor.active:
        raise HTTPException(status_code=409, detail="An export is running")

    try:
        status = await store.pipeline.generate(index, kind)
    except PreconditionError as exc:
        raise HTTPException(status_code=409, detail=str(exc))

    return SceneRetryResponse(
        campaign_id=campaign.campaign_id,
        index=index,
        kind=kind.value,
        status=status,
        error=campaign.assets[index].state(kind).error,
    )
