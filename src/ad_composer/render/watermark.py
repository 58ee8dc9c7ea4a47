"""Watermark stamping for generated scene images (Pillow)."""

from __future__ import annotations

import io

import structlog
from PIL import Image, ImageDraw, ImageFont

from ad_composer.config import settings
from ad_composer.errors import MalformedPayloadError

logger = structlog.get_logger()

WATERMARK_FILL = (255, 255, 255, 128)
WATERMARK_MARGIN = 20
MIN_FONT_SIZE = 12


def load_font(size: float, path: str = "") -> ImageFont.FreeTypeFont | ImageFont.ImageFont:
    """Load a TrueType font at *size*, falling back to Pillow's scalable default."""
    size = max(1, int(round(size)))
    if path:
        try:
            return ImageFont.truetype(path, size)
        except OSError:
            logger.warning("font.load_failed", path=path, fallback="pillow-default")
    return ImageFont.load_default(size=size)


def apply_watermark(image: Image.Image, text: str) -> Image.Image:
    """Return a copy of *image* with *text* stamped semi-transparent, bottom-left.

    Empty *text* returns the input object unchanged.
    """
    if not text:
        return image

    base = image.convert("RGBA")
    layer = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(layer)
    font = load_font(max(MIN_FONT_SIZE, base.width / 50), settings.font_path)
    draw.text(
        (WATERMARK_MARGIN, base.height - WATERMARK_MARGIN),
        text,
        font=font,
        fill=WATERMARK_FILL,
        anchor="ld",
    )
    stamped = Image.alpha_composite(base, layer)
    if image.mode != "RGBA":
        stamped = stamped.convert("RGB")
    return stamped


def watermark_png(image_bytes: bytes, text: str) -> bytes:
    """Decode *image_bytes*, stamp *text* and re-encode as PNG."""
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            img.load()
            stamped = apply_watermark(img, text)
            out = io.BytesIO()
            stamped.save(out, format="PNG")
    except (OSError, ValueError) as exc:
        raise MalformedPayloadError(f"Generated image could not be decoded: {exc}") from exc
    return out.getvalue()
