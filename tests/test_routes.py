import asyncio
import base64
import json

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from conftest import FakeImageGenerator, FakeStructuredLLM, FakeSynthesizer, FakeVideoJobs, make_plan, png_bytes
from ad_composer.api.dependencies import CampaignStore, get_store
from ad_composer.api.routes import campaign_events, router
from ad_composer.campaign.state import AssetKind, AssetStatus, Campaign
from ad_composer.config import settings
from ad_composer.models.branding import BrandingConfig
from ad_composer.tools.storyboard import StoryboardGenerator

PLAN_BODY = {
    "product_description": "Acme Cold Brew coffee in a can",
    "target_audience": "busy commuters",
    "aspect_ratio": "1:1",
    "scene_count": 3,
    "watermark_text": "DEMO",
}


@pytest.fixture
def store(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "output_base_dir", str(tmp_path / "output"))
    return CampaignStore(
        storyboard=StoryboardGenerator(FakeStructuredLLM({"StoryboardPlan": make_plan(3)})),
        image_generator=FakeImageGenerator(),
        synthesizer=FakeSynthesizer(),
        video_jobs=FakeVideoJobs(),
    )


@pytest.fixture
def client(store):
    app = FastAPI()
    app.include_router(router)
    app.dependency_overrides[get_store] = lambda: store
    with TestClient(app) as c:
        yield c


def test_campaign_missing_before_plan(client):
    assert client.get("/api/v1/campaign").status_code == 404
    assert client.post("/api/v1/campaign/images").status_code == 404


def test_plan_starts_fresh_campaign(client):
    resp = client.post("/api/v1/campaign/plan", json=PLAN_BODY)

    assert resp.status_code == 200
    body = resp.json()
    assert body["product_name"] == "Acme Cold Brew"
    assert body["aspect_ratio"] == "1:1"
    assert len(body["scenes"]) == 3
    assert {s["image_status"] for s in body["scenes"]} == {"ready"}
    assert body["readiness"]["videos_unlocked"] is False


def test_plan_with_logo(client, store):
    logo = base64.b64encode(png_bytes((40, 20))).decode()
    body = {**PLAN_BODY, "logo_base64": f"data:image/png;base64,{logo}"}

    assert client.post("/api/v1/campaign/plan", json=body).status_code == 200
    assert store.campaign.branding.has_logo
    assert store.campaign.branding.logo_mime_type == "image/png"


@pytest.mark.parametrize(
    "logo",
    [
        "***not base64***",
        base64.b64encode(b"definitely not an image").decode(),
    ],
)
def test_plan_rejects_bad_logo(client, store, logo):
    body = {**PLAN_BODY, "logo_base64": logo}

    assert client.post("/api/v1/campaign/plan", json=body).status_code == 422
    assert store.campaign is None
    assert store.storyboard.llm.messages == []


def test_plan_generation_failure(client, store):
    store.storyboard = StoryboardGenerator(FakeStructuredLLM(error=RuntimeError("down")))
    resp = client.post("/api/v1/campaign/plan", json=PLAN_BODY)
    assert resp.status_code == 502
    assert store.campaign is None


def test_videos_gated_until_images_complete(client):
    client.post("/api/v1/campaign/plan", json=PLAN_BODY)

    resp = client.post("/api/v1/campaign/videos")

    assert resp.status_code == 409


def test_image_stage_runs_in_background(client):
    client.post("/api/v1/campaign/plan", json=PLAN_BODY)

    resp = client.post("/api/v1/campaign/images")
    assert resp.status_code == 200
    assert resp.json()["stage"] == "images"

    body = client.get("/api/v1/campaign").json()
    assert [s["image_status"] for s in body["scenes"]] == ["complete"] * 3
    assert body["readiness"]["videos_unlocked"] is True
    assert body["busy"] is False


def test_unknown_stage(client):
    client.post("/api/v1/campaign/plan", json=PLAN_BODY)
    assert client.post("/api/v1/campaign/music").status_code == 404


def test_scene_retry(client, store):
    client.post("/api/v1/campaign/plan", json=PLAN_BODY)
    store.pipeline.synthesizer.fail_on = {"scene-2"}
    client.post("/api/v1/campaign/voiceovers")

    failed = client.get("/api/v1/campaign").json()["scenes"][1]
    assert failed["voiceover_status"] == "failed"
    assert "401" in failed["voiceover_error"]

    store.pipeline.synthesizer.fail_on = set()
    resp = client.post("/api/v1/campaign/scenes/1/voiceover")

    assert resp.status_code == 200
    assert resp.json()["status"] == "complete"
    assert resp.json()["error"] is None


def test_scene_retry_out_of_range(client):
    client.post("/api/v1/campaign/plan", json=PLAN_BODY)
    assert client.post("/api/v1/campaign/scenes/9/image").status_code == 404


def test_export_and_post_copy_need_finished_assets(client):
    client.post("/api/v1/campaign/plan", json=PLAN_BODY)

    assert client.post("/api/v1/campaign/export").status_code == 409
    assert client.post("/api/v1/campaign/post-copy").status_code == 409


def _new_campaign(tmp_path, name):
    return Campaign(make_plan(2), BrandingConfig(), product_name=name, work_dir=tmp_path / name)


async def test_event_stream_reports_status_changes(store, tmp_path):
    store.replace(_new_campaign(tmp_path, "first"))
    events = (await campaign_events(store=store)).body_iterator

    store.campaign.assets.transition(1, AssetKind.VOICEOVER, AssetStatus.GENERATING)
    event = await asyncio.wait_for(events.__anext__(), timeout=1)

    assert event["event"] == "status"
    assert json.loads(event["data"]) == {
        "campaign_id": store.campaign.campaign_id,
        "index": 1,
        "kind": "voiceover",
        "status": "generating",
        "error": None,
    }
    await events.aclose()


async def test_event_stream_closes_when_campaign_is_replaced(store, tmp_path):
    store.replace(_new_campaign(tmp_path, "first"))
    old = store.campaign
    events = (await campaign_events(store=store)).body_iterator

    store.replace(_new_campaign(tmp_path, "second"))
    event = await asyncio.wait_for(events.__anext__(), timeout=1)

    assert event["event"] == "replaced"
    assert json.loads(event["data"]) == {"campaign_id": old.campaign_id}
    with pytest.raises(StopAsyncIteration):
        await asyncio.wait_for(events.__anext__(), timeout=1)

    # The discarded campaign no longer feeds anyone.
    old.assets.transition(0, AssetKind.IMAGE, AssetStatus.GENERATING)
    assert old.assets._listeners == []
    assert store._replace_listeners == []
