"""
GPS watermarking for report photos.

The watermark is drawn into the pixels (not EXIF) as two text lines in the
bottom-left corner on a translucent box.
"""
import io
from typing import Optional

import structlog
from PIL import Image, ImageDraw, ImageFont, ImageOps, UnidentifiedImageError
from pillow_heif import register_heif_opener

from ..config import settings
from .errors import InvalidUploadError

register_heif_opener()

logger = structlog.get_logger(__name__)


def watermark_lines(latitude: float, longitude: float, decimals: Optional[int] = None) -> tuple:
    decimals = settings.watermark_decimals if decimals is None else decimals
    return (
        f"Lat: {latitude:.{decimals}f}",
        f"Lng: {longitude:.{decimals}f}",
    )


def _font(image_height: int):
    return ImageFont.load_default(size=max(14, image_height // 30))


def watermark_image(image_bytes: bytes, latitude: float, longitude: float, field: str = "image") -> bytes:
    """
    Return a new encoded image with the coordinates drawn on it. PNG input stays
    PNG, everything else (JPEG, HEIC, WEBP ...) is re-encoded as JPEG.
    """
    try:
        im = Image.open(io.BytesIO(image_bytes))
        im.load()
    except (UnidentifiedImageError, OSError) as e:
        raise InvalidUploadError(field, f"Cannot read image: {e}")

    source_format = (im.format or "").upper()
    im = ImageOps.exif_transpose(im)
    keep_png = source_format == "PNG"
    base = im.convert("RGBA")

    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    font = _font(base.height)
    lines = watermark_lines(latitude, longitude)

    padding = max(4, base.height // 100)
    boxes = [draw.textbbox((0, 0), line, font=font) for line in lines]
    line_h = max(b[3] - b[1] for b in boxes)
    text_w = max(b[2] - b[0] for b in boxes)
    box_w = text_w + padding * 2
    box_h = line_h * len(lines) + padding * (len(lines) + 1)
    x0 = padding
    y0 = max(0, base.height - box_h - padding)

    draw.rectangle([x0, y0, x0 + box_w, y0 + box_h], fill=(0, 0, 0, 140))
    for i, line in enumerate(lines):
        y = y0 + padding + i * (line_h + padding)
        draw.text((x0 + padding, y), line, font=font, fill=(255, 255, 255, 255))

    out_img = Image.alpha_composite(base, overlay)
    out = io.BytesIO()
    if keep_png:
        out_img.save(out, format="PNG", optimize=True)
    else:
        out_img.convert("RGB").save(out, format="JPEG", quality=settings.watermark_jpeg_quality, optimize=True)
    logger.info("image_watermarked", field=field, size_in=len(image_bytes), size_out=out.tell())
    return out.getvalue()


def output_content_type(image_bytes: bytes) -> str:
    """Content type of what ``watermark_image`` produced."""
    if image_bytes[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    return "image/jpeg"
