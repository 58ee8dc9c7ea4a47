"""Logo, watermark, caption and end-card frames drawn with Pillow."""

from __future__ import annotations

import numpy as np
import structlog
from PIL import Image, ImageDraw, ImageOps

from ad_composer.config import settings
from ad_composer.models.branding import BrandingConfig
from ad_composer.render.watermark import WATERMARK_FILL, load_font

logger = structlog.get_logger()

BACKGROUND = (0, 0, 0)
MARGIN = 20

# Relative sizes (fractions of the canvas)
LOGO_MAX_W = 0.15
LOGO_MAX_H = 0.08
END_CARD_LOGO_MAX = 0.5
WATERMARK_FONT = 0.015
CAPTION_FONT = 0.04
CAPTION_STROKE = 0.01
CAPTION_Y = 0.85
CAPTION_STROKE_FILL = (0, 0, 0, 204)


def fit_within(size: tuple[int, int], max_w: float, max_h: float) -> tuple[int, int]:
    """Scale *size* to the largest box within max_w x max_h keeping its aspect ratio."""
    w, h = size
    ratio = w / h
    out_w = max_w
    out_h = max_w / ratio
    if out_h > max_h:
        out_h = max_h
        out_w = max_h * ratio
    return max(1, int(round(out_w))), max(1, int(round(out_h)))


class OverlayRenderer:
    """Draws branding onto a fixed-size output canvas."""

    def __init__(
        self,
        canvas_size: tuple[int, int],
        branding: BrandingConfig,
        font_path: str | None = None,
        bold_font_path: str | None = None,
    ) -> None:
        self.width, self.height = canvas_size
        self.branding = branding
        self.logo = branding.logo_image()
        self.font_path = settings.font_path if font_path is None else font_path
        self.bold_font_path = settings.bold_font_path if bold_font_path is None else bold_font_path

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height

    def logo_box(self) -> tuple[int, int, int, int] | None:
        """(left, top, width, height) of the top-right logo, or None without a logo."""
        if self.logo is None:
            return None
        logo_w, logo_h = fit_within(
            self.logo.size, self.width * LOGO_MAX_W, self.height * LOGO_MAX_H
        )
        return self.width - logo_w - MARGIN, MARGIN, logo_w, logo_h

    def caption_font(self):
        """Bold caption face at 4% of the canvas height."""
        return load_font(self.height * CAPTION_FONT, self.bold_font_path or self.font_path)

    def scene_overlay(self, caption: str) -> Image.Image:
        """Transparent layer with logo, watermark and caption, drawn in that order."""
        layer = Image.new("RGBA", self.size, (0, 0, 0, 0))

        box = self.logo_box()
        if box is not None:
            left, top, logo_w, logo_h = box
            logo = self.logo.resize((logo_w, logo_h), Image.LANCZOS)
            layer.alpha_composite(logo, (left, top))

        draw = ImageDraw.Draw(layer)

        if self.branding.watermark_text:
            draw.text(
                (MARGIN, self.height - MARGIN),
                self.branding.watermark_text,
                font=load_font(self.height * WATERMARK_FONT, self.font_path),
                fill=WATERMARK_FILL,
                anchor="ld",
            )

        if caption:
            font = self.caption_font()
            draw.text(
                (self.width / 2, self.height * CAPTION_Y),
                caption,
                font=font,
                fill=(255, 255, 255, 255),
                anchor="mm",
                stroke_width=max(1, int(round(self.height * CAPTION_STROKE))),
                stroke_fill=CAPTION_STROKE_FILL,
            )

        return layer

    def compose_frame(self, frame: np.ndarray, overlay: Image.Image) -> np.ndarray:
        """Background fill, source frame covering the canvas (center-cropped), overlay."""
        canvas = Image.new("RGBA", self.size, BACKGROUND + (255,))
        source = Image.fromarray(np.asarray(frame, dtype=np.uint8)).convert("RGBA")
        covered = ImageOps.fit(source, self.size, method=Image.BILINEAR, centering=(0.5, 0.5))
        canvas.alpha_composite(covered)
        canvas.alpha_composite(overlay)
        return np.asarray(canvas.convert("RGB"))

    def end_card(self) -> np.ndarray:
        """Solid background with the logo centered, at most half the canvas each way."""
        canvas = Image.new("RGBA", self.size, BACKGROUND + (255,))
        if self.logo is not None:
            logo_w, logo_h = fit_within(
                self.logo.size,
                self.width * END_CARD_LOGO_MAX,
                self.height * END_CARD_LOGO_MAX,
            )
            logo = self.logo.resize((logo_w, logo_h), Image.LANCZOS)
            canvas.alpha_composite(
                logo, ((self.width - logo_w) // 2, (self.height - logo_h) // 2)
            )
        return np.asarray(canvas.convert("RGB"))
