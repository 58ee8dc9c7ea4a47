"""Per-asset status machines, scene assets and the campaign aggregate."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterator, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import structlog

from ad_composer.config import settings
from ad_composer.errors import IllegalTransitionError, PreconditionError
from ad_composer.models.branding import BrandingConfig
from ad_composer.models.scene import Scene, StoryboardPlan

logger = structlog.get_logger()


class AssetStatus(str, Enum):
    READY = "ready"
    GENERATING = "generating"
    COMPLETE = "complete"
    FAILED = "failed"


class AssetKind(str, Enum):
    IMAGE = "image"
    VOICEOVER = "voiceover"
    VIDEO = "video"


# Allowed transitions. COMPLETE has no way out for the life of the campaign.
_TRANSITIONS: dict[AssetStatus, frozenset[AssetStatus]] = {
    AssetStatus.READY: frozenset({AssetStatus.GENERATING}),
    AssetStatus.GENERATING: frozenset({AssetStatus.COMPLETE, AssetStatus.FAILED}),
    AssetStatus.FAILED: frozenset({AssetStatus.GENERATING}),
    AssetStatus.COMPLETE: frozenset(),
}


@dataclass(frozen=True)
class StatusChange:
    index: int
    kind: AssetKind
    status: AssetStatus
    error: str | None = None


StatusListener = Callable[[StatusChange], None]


@dataclass
class AssetState:
    """Status machine for one asset kind of one scene."""

    kind: AssetKind
    status: AssetStatus = AssetStatus.READY
    error: str | None = None

    def can_transition(self, target: AssetStatus) -> bool:
        return target in _TRANSITIONS[self.status]

    def transition(self, target: AssetStatus, error: str | None = None) -> None:
        if not self.can_transition(target):
            raise IllegalTransitionError(
                f"{self.kind.value}: {self.status.value} -> {target.value} is not allowed"
            )
        self.status = target
        self.error = error if target is AssetStatus.FAILED else None

    @property
    def is_complete(self) -> bool:
        return self.status is AssetStatus.COMPLETE


@dataclass
class SceneAsset:
    """Generated media and status for one Scene (same index as the scene)."""

    index: int
    image: AssetState = field(default_factory=lambda: AssetState(AssetKind.IMAGE))
    voiceover: AssetState = field(default_factory=lambda: AssetState(AssetKind.VOICEOVER))
    video: AssetState = field(default_factory=lambda: AssetState(AssetKind.VIDEO))

    # Payloads
    image_bytes: bytes | None = None  # raw, unwatermarked (video generation input)
    image_mime_type: str | None = None
    image_path: Path | None = None  # watermarked PNG
    audio_path: Path | None = None
    video_path: Path | None = None

    def state(self, kind: AssetKind) -> AssetState:
        if kind is AssetKind.IMAGE:
            return self.image
        if kind is AssetKind.VOICEOVER:
            return self.voiceover
        return self.video

    def status(self, kind: AssetKind) -> AssetStatus:
        return self.state(kind).status

    def check_can_start(self, kind: AssetKind) -> None:
        """Central gate: video may only leave ready/failed once the image is complete."""
        if kind is AssetKind.VIDEO and not self.image.is_complete:
            raise PreconditionError(
                f"Scene {self.index + 1}: video requires a complete image"
            )

    def clear_payload(self, kind: AssetKind) -> None:
        if kind is AssetKind.IMAGE:
            self.image_bytes = None
            self.image_mime_type = None
            self.image_path = None
        elif kind is AssetKind.VOICEOVER:
            self.audio_path = None
        else:
            self.video_path = None


class CampaignAssetSet(Sequence[SceneAsset]):
    """Ordered SceneAssets, index-aligned with the scene list. Never resized."""

    def __init__(self, count: int) -> None:
        if count < 1:
            raise ValueError("A campaign needs at least one scene")
        self._assets: tuple[SceneAsset, ...] = tuple(SceneAsset(index=i) for i in range(count))
        self._listeners: list[StatusListener] = []

    def __len__(self) -> int:
        return len(self._assets)

    def __getitem__(self, index):  # type: ignore[override]
        return self._assets[index]

    def __iter__(self) -> Iterator[SceneAsset]:
        return iter(self._assets)

    # ------------------------------------------------------------------
    # Transitions + notifications
    # ------------------------------------------------------------------

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a status-change listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def transition(
        self,
        index: int,
        kind: AssetKind,
        target: AssetStatus,
        error: str | None = None,
    ) -> None:
        asset = self._assets[index]
        if target is AssetStatus.GENERATING:
            asset.check_can_start(kind)
        asset.state(kind).transition(target, error)
        if target is AssetStatus.FAILED:
            asset.clear_payload(kind)

        change = StatusChange(index=index, kind=kind, status=target, error=error)
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.exception("campaign.listener_failed", index=index, kind=kind.value)

    # ------------------------------------------------------------------
    # Readiness predicates
    # ------------------------------------------------------------------

    def statuses(self, kind: AssetKind) -> list[AssetStatus]:
        return [a.status(kind) for a in self._assets]

    def all_complete(self, kind: AssetKind) -> bool:
        return all(a.state(kind).is_complete for a in self._assets)

    def incomplete(self, *kinds: AssetKind) -> list[int]:
        return [
            a.index
            for a in self._assets
            if not all(a.state(k).is_complete for k in kinds)
        ]

    @property
    def videos_unlocked(self) -> bool:
        return self.all_complete(AssetKind.IMAGE)

    @property
    def export_ready(self) -> bool:
        return self.all_complete(AssetKind.VIDEO) and self.all_complete(AssetKind.VOICEOVER)


class Campaign:
    """Single owned aggregate: accepted plan, its asset set and branding."""

    def __init__(
        self,
        plan: StoryboardPlan,
        branding: BrandingConfig,
        product_name: str,
        product_description: str = "",
        target_audience: str = "",
        work_dir: str | Path | None = None,
        campaign_id: str | None = None,
    ) -> None:
        self.campaign_id = campaign_id or uuid.uuid4().hex[:12]
        self.scenes: tuple[Scene, ...] = tuple(plan.scenes)
        self.assets = CampaignAssetSet(len(self.scenes))
        self.branding = branding
        self.product_name = product_name
        self.product_description = product_description or product_name
        self.target_audience = target_audience
        self.work_dir = Path(work_dir or Path(settings.output_base_dir) / self.campaign_id)
        for subdir in ("images", "audio", "video", "export"):
            (self.work_dir / subdir).mkdir(parents=True, exist_ok=True)

        logger.info(
            "campaign.created",
            campaign_id=self.campaign_id,
            num_scenes=len(self.scenes),
            aspect_ratio=branding.aspect_ratio.value,
            has_logo=branding.has_logo,
        )

    def __len__(self) -> int:
        return len(self.scenes)

    def scene_file(self, subdir: str, index: int, extension: str) -> Path:
        return self.work_dir / subdir / f"scene_{self.scenes[index].id}.{extension}"
