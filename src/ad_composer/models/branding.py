"""Branding configuration shared by the image pipeline and the compositor."""

from __future__ import annotations

import io
from enum import Enum
from pathlib import Path

from PIL import Image
from pydantic import BaseModel, ConfigDict

from ad_composer.errors import MalformedPayloadError


class AspectRatio(str, Enum):
    PORTRAIT_9X16 = "9:16"
    SQUARE_1X1 = "1:1"

    @property
    def canvas_size(self) -> tuple[int, int]:
        """Output canvas (width, height) for this format."""
        if self is AspectRatio.PORTRAIT_9X16:
            return 720, 1280
        return 1080, 1080

    @property
    def platform_text(self) -> str:
        if self is AspectRatio.PORTRAIT_9X16:
            return "Vertical Video (9:16) for platforms like TikTok/Reels"
        return "Square Video (1:1) for feed posts"


class BrandingConfig(BaseModel):
    """Immutable per-campaign branding: logo, watermark text and output format."""

    model_config = ConfigDict(frozen=True)

    logo_bytes: bytes | None = None
    logo_mime_type: str | None = None
    watermark_text: str = ""
    aspect_ratio: AspectRatio = AspectRatio.PORTRAIT_9X16

    @classmethod
    def from_logo_file(
        cls,
        logo_path: str | Path | None,
        watermark_text: str = "",
        aspect_ratio: AspectRatio = AspectRatio.PORTRAIT_9X16,
    ) -> BrandingConfig:
        if logo_path is None:
            return cls(watermark_text=watermark_text, aspect_ratio=aspect_ratio)
        path = Path(logo_path)
        data = path.read_bytes()
        with Image.open(io.BytesIO(data)) as img:
            mime = Image.MIME.get(img.format or "", "image/png")
        return cls(
            logo_bytes=data,
            logo_mime_type=mime,
            watermark_text=watermark_text,
            aspect_ratio=aspect_ratio,
        )

    @property
    def has_logo(self) -> bool:
        return bool(self.logo_bytes)

    @property
    def canvas_size(self) -> tuple[int, int]:
        return self.aspect_ratio.canvas_size

    def logo_image(self) -> Image.Image | None:
        """Decode the logo into an RGBA image, or None when no logo is configured."""
        if not self.logo_bytes:
            return None
        try:
            with Image.open(io.BytesIO(self.logo_bytes)) as img:
                return img.convert("RGBA")
        except (OSError, ValueError) as exc:
            raise MalformedPayloadError(f"Logo image could not be decoded: {exc}") from exc
