"""
Report photo uploads.

Checks the file, watermarks it with the device position when one is on the
record, hands it to object storage and merges the public URL into the
accumulator. The record only changes after a successful upload.
"""
import mimetypes
from dataclasses import dataclass
from typing import Optional

import anyio
import structlog
from slugify import slugify

from ..config import settings
from ..services.time_rules import millis_clock
from ..storage.provider import StorageProvider
from .accumulator import FieldAccumulator
from .errors import ImageLimitError, InvalidUploadError, UploadError, WorkflowError
from .imaging import output_content_type, watermark_image
from .validation import is_present

logger = structlog.get_logger(__name__)

SINGLE_IMAGE_FIELDS = (
    "before_image_url",
    "after_image_url",
    "ups_input_image_url",
    "ups_output_image_url",
    "thermistor_image_url",
)
MULTI_IMAGE_FIELDS = ("raw_power_supply_images",)
IMAGE_FIELDS = SINGLE_IMAGE_FIELDS + MULTI_IMAGE_FIELDS

NO_GPS_WARNING = "GPS location not available. Image uploaded without watermark."


@dataclass
class UploadResult:
    field: str
    url: str
    key: str
    watermarked: bool
    warning: Optional[str] = None


def check_image_field(field: str) -> None:
    if field not in IMAGE_FIELDS:
        raise InvalidUploadError(field, f"'{field}' is not an image field")


def check_image_file(field: str, data: bytes, content_type: Optional[str]) -> None:
    if not (content_type or "").lower().startswith("image/"):
        raise InvalidUploadError(field, "Please select an image file")
    if not data:
        raise InvalidUploadError(field, "Empty file")
    if len(data) > settings.max_image_bytes:
        limit_mb = settings.max_image_bytes // (1024 * 1024)
        raise InvalidUploadError(field, f"File size must be less than {limit_mb}MB")


def check_image_capacity(accumulator: FieldAccumulator, field: str) -> None:
    if field not in MULTI_IMAGE_FIELDS:
        return
    existing = accumulator.get(field) or []
    if len(existing) >= settings.max_raw_power_images:
        raise ImageLimitError(field, settings.max_raw_power_images)


def storage_key(field: str, content_type: str, filename: Optional[str] = None) -> str:
    ext = mimetypes.guess_extension(content_type or "") or ""
    if not ext and filename and "." in filename:
        ext = "." + filename.rsplit(".", 1)[-1]
    ext = {".jpe": ".jpg", ".jpeg": ".jpg"}.get(ext.lower(), ext.lower()) or ".jpg"
    return f"service_reports/{slugify(field, separator='_')}_{millis_clock.next()}{ext}"


async def upload_image(
    accumulator: FieldAccumulator,
    storage: StorageProvider,
    field: str,
    data: bytes,
    content_type: Optional[str],
    filename: Optional[str] = None,
) -> UploadResult:
    check_image_field(field)
    check_image_file(field, data, content_type)
    # the cap is checked before anything is sent to storage
    check_image_capacity(accumulator, field)

    await accumulator.settle()
    latitude = accumulator.get("latitude")
    longitude = accumulator.get("longitude")
    warning = None
    watermarked = False
    if is_present(latitude) and is_present(longitude):
        data = await anyio.to_thread.run_sync(watermark_image, data, float(latitude), float(longitude), field)
        content_type = output_content_type(data)
        watermarked = True
    else:
        warning = NO_GPS_WARNING
        logger.warning("watermark_skipped", field=field, reason="no_device_position")

    key = storage_key(field, content_type, filename)
    try:
        stored = await anyio.to_thread.run_sync(storage.upload, key, data, content_type)
        url = storage.get_public_url(stored)
    except WorkflowError:
        raise
    except Exception as e:
        logger.error("image_upload_failed", field=field, key=key, error=str(e))
        raise UploadError(field, "Failed to upload image. Please try again.") from e

    async def _apply():
        if field in MULTI_IMAGE_FIELDS:
            existing = list(accumulator.get(field) or [])
            if len(existing) >= settings.max_raw_power_images:
                # another upload filled the last slot meanwhile
                storage.delete(stored)
                raise ImageLimitError(field, settings.max_raw_power_images)
            return {field: existing + [url]}
        return {field: url}

    await accumulator.contribute(_apply(), label=f"upload:{field}")
    logger.info("image_uploaded", field=field, key=stored, watermarked=watermarked)
    return UploadResult(field=field, url=url, key=stored, watermarked=watermarked, warning=warning)


def remove_image(accumulator: FieldAccumulator, field: str, index: Optional[int] = None) -> None:
    """Clear a single-image field, or drop one entry of the multi-image field by index."""
    check_image_field(field)
    if field in MULTI_IMAGE_FIELDS:
        if index is None:
            raise InvalidUploadError(field, "An index is required to remove one of several images")
        images = list(accumulator.get(field) or [])
        if index < 0 or index >= len(images):
            raise InvalidUploadError(field, f"No image at index {index}")
        images.pop(index)
        accumulator.update({field: images})
        return
    accumulator.update({field: None})
