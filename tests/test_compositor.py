from datetime import date

import numpy as np
import pytest
from moviepy import AudioClip, ColorClip

from conftest import complete
from ad_composer.campaign.state import AssetKind
from ad_composer.errors import (
    AssetsIncompleteError,
    ExportError,
    ExportInProgressError,
    ExportSetupError,
)
from ad_composer.render.compositor import (
    TimelineCompositor,
    export_filename,
    schedule_audio,
)

CLIP_DURATIONS = [1.0, 0.8, 1.2]
VOICE_DURATIONS = [0.5, 0.7, 0.4]


def test_schedule_audio_is_back_to_back():
    assert schedule_audio([2.0, 1.5, 3.0]) == [0.0, 2.0, 3.5]
    assert schedule_audio([]) == []


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Acme Cold Brew!", "acme-cold-brew_ad_2026-10-16.mp4"),
        ("  ", "campaign_ad_2026-10-16.mp4"),
        ("Zoë's  Oat-Milk", "zo-s-oat-milk_ad_2026-10-16.mp4"),
    ],
)
def test_export_filename(name, expected):
    assert export_filename(name, "mp4", on=date(2026, 10, 16)) == expected


@pytest.fixture
def media_campaign(campaign):
    """Campaign whose scenes all have a real clip and a real voice-over on disk."""
    for index, (clip_len, voice_len) in enumerate(zip(CLIP_DURATIONS, VOICE_DURATIONS)):
        asset = campaign.assets[index]

        video_path = campaign.scene_file("video", index, "mp4")
        ColorClip(size=(160, 90), color=(0, 0, 255), duration=clip_len).write_videofile(
            str(video_path), fps=10, codec="libx264", audio=False, logger=None
        )
        audio_path = campaign.scene_file("audio", index, "wav")
        AudioClip(
            frame_function=lambda t: np.array(
                [0.2 * np.sin(2 * np.pi * 440 * t), 0.2 * np.sin(2 * np.pi * 440 * t)]
            ).T.copy(order="C"),
            duration=voice_len,
            fps=22050,
        ).write_audiofile(str(audio_path), fps=22050, logger=None)

        complete(campaign, index, AssetKind.IMAGE)
        complete(campaign, index, AssetKind.VIDEO)
        complete(campaign, index, AssetKind.VOICEOVER)
        asset.video_path = video_path
        asset.audio_path = audio_path
    return campaign


def _no_encode(*args, **kwargs):
    raise AssertionError("encoder must not be started")


async def test_incomplete_assets_abort_before_encoding(campaign, monkeypatch):
    compositor = TimelineCompositor()
    monkeypatch.setattr(compositor, "_encode", _no_encode)
    complete(campaign, 0, AssetKind.IMAGE)
    complete(campaign, 0, AssetKind.VIDEO)
    complete(campaign, 0, AssetKind.VOICEOVER)

    with pytest.raises(AssetsIncompleteError) as exc_info:
        await compositor.export(campaign)

    assert exc_info.value.missing == [1, 2]
    assert list((campaign.work_dir / "export").iterdir()) == []


async def test_second_export_is_rejected(campaign, monkeypatch):
    compositor = TimelineCompositor()
    monkeypatch.setattr(compositor, "_encode", _no_encode)

    async with compositor._lock:
        assert compositor.active
        with pytest.raises(ExportInProgressError):
            await compositor.export(campaign)


async def test_missing_clip_fails_setup(media_campaign, monkeypatch):
    compositor = TimelineCompositor()
    monkeypatch.setattr(compositor, "_encode", _no_encode)
    media_campaign.assets[1].video_path.unlink()

    with pytest.raises(ExportSetupError, match="Scene 2"):
        await compositor.export(media_campaign)
    assert not compositor.active


async def test_undecodable_voiceover_fails_setup(media_campaign, monkeypatch):
    compositor = TimelineCompositor()
    monkeypatch.setattr(compositor, "_encode", _no_encode)
    media_campaign.assets[2].audio_path.write_bytes(b"not audio at all")

    with pytest.raises(ExportSetupError):
        await compositor.export(media_campaign)


async def test_encoder_failure_removes_partial_output(media_campaign, monkeypatch):
    compositor = TimelineCompositor()

    def broken_encode(timeline, output_path):
        output_path.write_bytes(b"partial")
        raise RuntimeError("ffmpeg exited with code 1")

    monkeypatch.setattr(compositor, "_encode", broken_encode)

    with pytest.raises(ExportError, match="ffmpeg exited"):
        await compositor.export(media_campaign)

    assert list((media_campaign.work_dir / "export").iterdir()) == []
    assert not compositor.active


def test_timeline_layout(media_campaign):
    compositor = TimelineCompositor(end_card_duration=3.0)
    sources = compositor.open_sources(media_campaign)
    try:
        timeline = compositor.build_timeline(media_campaign, sources)

        assert timeline.scene_durations == pytest.approx(CLIP_DURATIONS, abs=0.15)
        assert timeline.duration == pytest.approx(sum(timeline.scene_durations) + 3.0)
        assert timeline.audio_offsets == pytest.approx([0.0, 0.5, 1.2], abs=0.05)
        assert timeline.clip.audio.duration == pytest.approx(timeline.duration)
        assert timeline.clip.size == (1080, 1080)

        start = 0.0
        for scene_len in timeline.scene_durations:
            frame = timeline.clip.get_frame(start + scene_len / 2)
            assert tuple(frame[60, 979]) == (255, 0, 0)
            start += scene_len

        end_card = timeline.clip.get_frame(timeline.duration - 1.0)
        assert tuple(end_card[540, 540]) == (255, 0, 0)
        assert tuple(end_card[10, 10]) == (0, 0, 0)
    finally:
        sources.close()


def test_no_end_card_without_logo(media_campaign):
    media_campaign.branding = media_campaign.branding.model_copy(
        update={"logo_bytes": None, "logo_mime_type": None}
    )
    compositor = TimelineCompositor()
    sources = compositor.open_sources(media_campaign)
    try:
        timeline = compositor.build_timeline(media_campaign, sources)
        assert timeline.end_card_duration == 0.0
        assert timeline.duration == pytest.approx(sum(timeline.scene_durations))
    finally:
        sources.close()


async def test_export_writes_one_muxed_file(media_campaign):
    compositor = TimelineCompositor(fps=5)

    artifact = await compositor.export(media_campaign)

    assert artifact.path.is_file()
    assert artifact.path.parent == media_campaign.work_dir / "export"
    assert artifact.filename.startswith("acme-cold-brew_ad_")
    assert artifact.filename.endswith(".mp4")
    assert artifact.media_type == "video/mp4"
    assert (artifact.width, artifact.height) == (1080, 1080)
    assert artifact.duration_sec == pytest.approx(sum(CLIP_DURATIONS) + 3.0, abs=0.3)
    assert artifact.read_bytes()[4:8] == b"ftyp"
    assert not compositor.active
